"""Создание, чтение, замена и удаление рецептов."""

import json

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.models import (
    Recipe,
    RecipeComment,
    RecipeIngredient,
    RecipeInstruction,
    RecipeLike,
    SavedRecipe,
)
from app.services.recipe_writer import RecipeWriter

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


async def _recipes_count(client, headers) -> int:
    res = await client.get("/api/auth/me", headers=headers)
    return res.json()["user"]["recipesCount"]


async def test_create_recipe_returns_full_detail(client, register, recipe_data):
    _, headers = await register("alice")
    res = await client.post("/api/recipes", json=recipe_data(), headers=headers)
    assert res.status_code == 201
    body = res.json()
    assert body["message"] == "Recipe created successfully"
    recipe = body["recipe"]
    assert recipe["id"] == body["recipeId"]
    assert recipe["likes"] == 0
    assert recipe["difficulty"] == "Medium"
    assert recipe["isOwner"] is True
    assert [item["name"] for item in recipe["ingredients"]] == ["Water", "Salt"]
    assert [item["orderIndex"] for item in recipe["ingredients"]] == [1, 2]
    assert recipe["ingredients"][1]["quantity"] == "2"
    assert [step["stepNumber"] for step in recipe["instructions"]] == [1, 2]
    assert recipe["instructions"][0]["duration"] == 10


async def test_get_recipe_preserves_order(client, register, create_recipe):
    _, headers = await register("alice")
    created = await create_recipe(headers)

    res = await client.get(f"/api/recipes/{created['id']}")
    assert res.status_code == 200
    recipe = res.json()["recipe"]
    assert [item["name"] for item in recipe["ingredients"]] == ["Water", "Salt"]
    assert [step["instruction"] for step in recipe["instructions"]] == ["Boil the water", "Add salt"]
    assert "isLiked" not in recipe
    assert recipe["author"]["username"] == "alice"


async def test_create_increments_recipes_count(client, register, create_recipe):
    _, headers = await register("alice")
    assert await _recipes_count(client, headers) == 0
    await create_recipe(headers)
    assert await _recipes_count(client, headers) == 1


async def test_create_requires_core_fields(client, register, recipe_data):
    _, headers = await register("alice")
    res = await client.post("/api/recipes", json=recipe_data(title=""), headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Title, description, and category are required"
    assert await _recipes_count(client, headers) == 0


async def test_create_rejects_ingredient_without_name(client, register, recipe_data):
    _, headers = await register("alice")
    payload = recipe_data(ingredients=[{"name": "Water"}, {"name": " ", "quantity": "1"}])
    res = await client.post("/api/recipes", json=payload, headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Ingredient #2 must have a name"


async def test_create_rejects_unknown_difficulty(client, register, recipe_data):
    _, headers = await register("alice")
    res = await client.post("/api/recipes", json=recipe_data(difficulty="Extreme"), headers=headers)
    assert res.status_code == 400


async def test_create_requires_auth(client, recipe_data):
    res = await client.post("/api/recipes", json=recipe_data())
    assert res.status_code == 401


async def test_create_invalid_json_body(client, register):
    _, headers = await register("alice")
    res = await client.post(
        "/api/recipes",
        content=b"{not json",
        headers={**headers, "Content-Type": "application/json"},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid JSON data format"


async def test_create_multipart_with_image(client, register, recipe_data, upload_dir):
    _, headers = await register("alice")
    res = await client.post(
        "/api/recipes",
        data={"data": json.dumps(recipe_data(tags=["soup", "easy"]))},
        files={"image": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    recipe = res.json()["recipe"]
    assert recipe["image"].startswith("http://test/uploads/recipe-")
    assert recipe["tags"] == ["soup", "easy"]
    stored_name = recipe["image"].rsplit("/", 1)[1]
    assert (upload_dir / stored_name).read_bytes() == PNG_BYTES

    served = await client.get(f"/uploads/{stored_name}")
    assert served.status_code == 200


async def test_create_multipart_rejects_non_image(client, register, recipe_data):
    _, headers = await register("alice")
    res = await client.post(
        "/api/recipes",
        data={"data": json.dumps(recipe_data())},
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert res.status_code == 400
    assert await _recipes_count(client, headers) == 0


async def test_create_multipart_invalid_data(client, register):
    _, headers = await register("alice")
    res = await client.post("/api/recipes", data={"data": "{oops"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid JSON data format"


async def test_external_image_url_is_kept(client, register, create_recipe):
    _, headers = await register("alice")
    recipe = await create_recipe(headers, image="https://cdn.example.com/soup.jpg")
    assert recipe["image"] == "https://cdn.example.com/soup.jpg"


async def test_update_replaces_children_in_order(client, register, create_recipe, recipe_data):
    _, headers = await register("alice")
    created = await create_recipe(headers)

    payload = recipe_data(
        title="Better soup",
        difficulty="hard",
        ingredients=[{"name": "Stock"}, {"name": "Carrot"}, {"name": "Pepper"}],
        instructions=[{"text": "Simmer"}],
    )
    res = await client.put(f"/api/recipes/{created['id']}", json=payload, headers=headers)
    assert res.status_code == 200
    recipe = res.json()["recipe"]
    assert recipe["title"] == "Better soup"
    assert recipe["difficulty"] == "Hard"
    assert [(item["name"], item["orderIndex"]) for item in recipe["ingredients"]] == [
        ("Stock", 1),
        ("Carrot", 2),
        ("Pepper", 3),
    ]
    assert [(step["instruction"], step["stepNumber"]) for step in recipe["instructions"]] == [("Simmer", 1)]

    fetched = await client.get(f"/api/recipes/{created['id']}")
    assert [item["name"] for item in fetched.json()["recipe"]["ingredients"]] == ["Stock", "Carrot", "Pepper"]


async def test_update_by_non_owner_is_forbidden(client, register, create_recipe, recipe_data):
    _, alice_headers = await register("alice")
    _, bob_headers = await register("bob")
    created = await create_recipe(alice_headers)

    res = await client.put(
        f"/api/recipes/{created['id']}", json=recipe_data(title="Hijacked"), headers=bob_headers
    )
    assert res.status_code == 403
    assert res.json()["message"] == "Unauthorized to modify this recipe"

    fetched = await client.get(f"/api/recipes/{created['id']}")
    assert fetched.json()["recipe"]["title"] == "Soup"


async def test_update_missing_recipe(client, register, recipe_data):
    _, headers = await register("alice")
    res = await client.put("/api/recipes/999", json=recipe_data(), headers=headers)
    assert res.status_code == 404


async def test_delete_removes_dependents_and_decrements(
    client, register, create_recipe, session_factory
):
    _, alice_headers = await register("alice")
    _, bob_headers = await register("bob")
    created = await create_recipe(alice_headers)
    recipe_id = created["id"]

    await client.post(f"/api/recipes/{recipe_id}/toggle-like", headers=bob_headers)
    await client.post(f"/api/recipes/{recipe_id}/toggle-save", headers=bob_headers)
    await client.post(f"/api/recipes/{recipe_id}/comments", json={"comment": "Nice"}, headers=bob_headers)
    assert await _recipes_count(client, alice_headers) == 1

    res = await client.delete(f"/api/recipes/{recipe_id}", headers=alice_headers)
    assert res.status_code == 200
    assert res.json()["message"] == "Recipe deleted successfully"
    assert await _recipes_count(client, alice_headers) == 0

    async with session_factory() as session:
        for model in (RecipeIngredient, RecipeInstruction, RecipeLike, RecipeComment, SavedRecipe):
            remaining = await session.scalar(
                select(func.count()).select_from(model).where(model.recipe_id == recipe_id)
            )
            assert remaining == 0, model.__name__
        assert await session.get(Recipe, recipe_id) is None

    assert (await client.get(f"/api/recipes/{recipe_id}")).status_code == 404


async def test_delete_by_non_owner_is_forbidden(client, register, create_recipe):
    _, alice_headers = await register("alice")
    _, bob_headers = await register("bob")
    created = await create_recipe(alice_headers)

    res = await client.delete(f"/api/recipes/{created['id']}", headers=bob_headers)
    assert res.status_code == 403
    assert (await client.get(f"/api/recipes/{created['id']}")).status_code == 200
    assert await _recipes_count(client, alice_headers) == 1


async def test_delete_removes_uploaded_image(client, register, recipe_data, upload_dir):
    _, headers = await register("alice")
    res = await client.post(
        "/api/recipes",
        data={"data": json.dumps(recipe_data())},
        files={"image": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    recipe = res.json()["recipe"]
    stored_name = recipe["image"].rsplit("/", 1)[1]
    assert (upload_dir / stored_name).exists()

    await client.delete(f"/api/recipes/{recipe['id']}", headers=headers)
    assert not (upload_dir / stored_name).exists()


def _storage_failure(*args, **kwargs):
    raise OperationalError("UPDATE users", {}, Exception("disk I/O error"))


async def _post_with_image(client, headers, payload):
    res = await client.post(
        "/api/recipes",
        data={"data": json.dumps(payload)},
        files={"image": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["recipe"]


async def test_failed_create_rolls_back_everything(
    client, register, recipe_data, upload_dir, session_factory, monkeypatch
):
    async def broken_counter(*args, **kwargs):
        _storage_failure()

    monkeypatch.setattr(RecipeWriter, "_shift_recipes_count", staticmethod(broken_counter))
    _, headers = await register("alice")
    files_before = set(upload_dir.iterdir())

    res = await client.post(
        "/api/recipes",
        data={"data": json.dumps(recipe_data())},
        files={"image": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert res.status_code == 500
    assert res.json()["code"] == "STORAGE_ERROR"

    assert await _recipes_count(client, headers) == 0
    async with session_factory() as session:
        assert await session.scalar(select(func.count(Recipe.id))) == 0
    assert set(upload_dir.iterdir()) == files_before


async def test_failed_update_keeps_previous_state(
    client, register, recipe_data, upload_dir, monkeypatch
):
    _, headers = await register("alice")
    created = await _post_with_image(client, headers, recipe_data())
    files_before = set(upload_dir.iterdir())

    monkeypatch.setattr(RecipeWriter, "_children", staticmethod(_storage_failure))
    res = await client.put(
        f"/api/recipes/{created['id']}",
        data={"data": json.dumps(recipe_data(title="Stew", ingredients=[{"name": "Beef"}]))},
        files={"image": ("other.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert res.status_code == 500
    assert res.json()["code"] == "STORAGE_ERROR"

    recipe = (await client.get(f"/api/recipes/{created['id']}")).json()["recipe"]
    assert recipe["title"] == "Soup"
    assert [item["name"] for item in recipe["ingredients"]] == ["Water", "Salt"]
    assert [step["instruction"] for step in recipe["instructions"]] == ["Boil the water", "Add salt"]
    assert recipe["image"] == created["image"]
    assert set(upload_dir.iterdir()) == files_before


async def test_update_with_new_image_removes_previous_file(client, register, recipe_data, upload_dir):
    _, headers = await register("alice")
    created = await _post_with_image(client, headers, recipe_data())
    first_name = created["image"].rsplit("/", 1)[1]

    res = await client.put(
        f"/api/recipes/{created['id']}",
        data={"data": json.dumps(recipe_data(title="Stew"))},
        files={"image": ("other.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    second_name = res.json()["recipe"]["image"].rsplit("/", 1)[1]
    assert second_name != first_name
    assert not (upload_dir / first_name).exists()
    assert (upload_dir / second_name).exists()

    res = await client.put(
        f"/api/recipes/{created['id']}", json=recipe_data(title="Broth"), headers=headers
    )
    assert res.status_code == 200
    assert res.json()["recipe"]["image"].rsplit("/", 1)[1] == second_name
    assert (upload_dir / second_name).exists()


async def test_unpublished_recipe_visible_only_to_owner(client, register, create_recipe):
    _, alice_headers = await register("alice")
    _, bob_headers = await register("bob")
    draft = await create_recipe(alice_headers, isPublished=False)

    assert (await client.get(f"/api/recipes/{draft['id']}")).status_code == 404
    assert (await client.get(f"/api/recipes/{draft['id']}", headers=bob_headers)).status_code == 404
    own = await client.get(f"/api/recipes/{draft['id']}", headers=alice_headers)
    assert own.status_code == 200
    assert own.json()["recipe"]["isPublished"] is False


async def test_edit_view_for_owner_only(client, register, create_recipe):
    _, alice_headers = await register("alice")
    _, bob_headers = await register("bob")
    created = await create_recipe(alice_headers, tags="soup, warm")

    res = await client.get(f"/api/recipes/{created['id']}/edit", headers=alice_headers)
    assert res.status_code == 200
    recipe = res.json()["recipe"]
    assert recipe["tags"] == ["soup", "warm"]
    assert [step["text"] for step in recipe["instructions"]] == ["Boil the water", "Add salt"]

    forbidden = await client.get(f"/api/recipes/{created['id']}/edit", headers=bob_headers)
    assert forbidden.status_code == 403
    missing = await client.get("/api/recipes/999/edit", headers=alice_headers)
    assert missing.status_code == 404


async def test_my_recipes_includes_drafts(client, register, create_recipe):
    _, headers = await register("alice")
    await create_recipe(headers, title="Public")
    await create_recipe(headers, title="Draft", isPublished=False)

    res = await client.get("/api/recipes/user/my-recipes", headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 2
    assert {recipe["title"] for recipe in body["recipes"]} == {"Public", "Draft"}


async def test_list_recipes_pagination_and_filters(client, register, create_recipe):
    _, headers = await register("alice")
    for index in range(3):
        await create_recipe(headers, title=f"Soup {index}", tags=["soup"])
    await create_recipe(headers, title="Cake", category="Dessert", tags=["sweet"])
    await create_recipe(headers, title="Hidden", isPublished=False)

    res = await client.get("/api/recipes", params={"page": 1, "limit": 2})
    body = res.json()
    assert len(body["recipes"]) == 2
    assert body["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 4,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    }

    desserts = await client.get("/api/recipes", params={"category": "dessert"})
    assert [recipe["title"] for recipe in desserts.json()["recipes"]] == ["Cake"]

    tagged = await client.get("/api/recipes", params={"tag": "soup"})
    assert tagged.json()["pagination"]["total"] == 3


async def test_list_recipes_clamps_paging(client, register, create_recipe):
    _, headers = await register("alice")
    await create_recipe(headers)

    res = await client.get("/api/recipes", params={"page": "-3", "limit": "5000"})
    pagination = res.json()["pagination"]
    assert pagination["page"] == 1
    assert pagination["limit"] == 100

    res = await client.get("/api/recipes", params={"page": "abc", "limit": "0"})
    pagination = res.json()["pagination"]
    assert pagination["page"] == 1
    assert pagination["limit"] == 10

    res = await client.get("/api/recipes", params={"page": "1x", "limit": "5abc"})
    pagination = res.json()["pagination"]
    assert pagination["page"] == 1
    assert pagination["limit"] == 5

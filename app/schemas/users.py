from typing import Optional

from app.schemas import CamelModel


class ProfileUpdate(CamelModel):
    """Полная замена профиля (PUT): имя и фамилия обязательны."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    experience: Optional[str] = None
    speciality: Optional[str] = None


class ProfilePatch(CamelModel):
    """Частичное обновление профиля (PATCH).

    Меняются только переданные поля; список допустимых полей фиксирован
    этой моделью, всё остальное в теле запроса игнорируется.
    """

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    experience: Optional[str] = None
    speciality: Optional[str] = None

    def changes(self) -> dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in type(self).model_fields if name in self.model_fields_set}


class PasswordChange(CamelModel):
    current_password: str = ""
    new_password: str = ""
    confirm_password: str = ""

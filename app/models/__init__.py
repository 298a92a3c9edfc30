from .user import User
from .recipe import Recipe, RecipeIngredient, RecipeInstruction
from .social import Follower, RecipeComment, RecipeLike, SavedRecipe

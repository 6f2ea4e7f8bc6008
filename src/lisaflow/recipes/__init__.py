"""Recipe mechanism for composable spatial analyses."""

from lisaflow.recipes.base import BaseRecipe
from lisaflow.recipes.registry import get_recipe, list_recipes, recipe, register_recipe

__all__ = [
    "BaseRecipe",
    "register_recipe",
    "recipe",
    "get_recipe",
    "list_recipes",
]

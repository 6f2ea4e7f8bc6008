"""Recipes registered per dataset, looked up by the CLI and scripts.

Recipes register themselves when their module is imported, usually through
the :func:`recipe` decorator::

    @recipe("generic", "lisa_v1")
    class LisaRecipe(BaseRecipe): ...
"""

from collections.abc import Callable
from importlib import import_module

from lisaflow.core.registry import StepRegistry
from lisaflow.core.schema import AnalysisConfig, DatasetConfig
from lisaflow.core.utils import get_logger
from lisaflow.recipes.base import BaseRecipe

logger = get_logger(__name__)

# dataset name -> recipe name -> recipe class
_RECIPE_REGISTRY: dict[str, dict[str, type[BaseRecipe]]] = {}

BUILTIN_RECIPE_MODULES = (
    "lisaflow.recipes.lisa",
    "lisaflow.datasets.chicago_crime.recipes.crime_lisa_v1",
)


def register_recipe(
    dataset_name: str,
    recipe_name: str,
    recipe_class: type[BaseRecipe],
) -> None:
    """Register *recipe_class* as *recipe_name* for *dataset_name*."""
    recipes = _RECIPE_REGISTRY.setdefault(dataset_name, {})
    previous = recipes.get(recipe_name)
    if previous is not None and previous is not recipe_class:
        logger.warning(
            f"Recipe '{recipe_name}' for dataset '{dataset_name}' replaced: "
            f"{previous.__name__} -> {recipe_class.__name__}"
        )
    recipes[recipe_name] = recipe_class
    logger.debug("Registered recipe '%s' for dataset '%s'", recipe_name, dataset_name)


def recipe(dataset_name: str, recipe_name: str) -> Callable[[type[BaseRecipe]], type[BaseRecipe]]:
    """Class decorator form of :func:`register_recipe`."""

    def wrapper(recipe_class: type[BaseRecipe]) -> type[BaseRecipe]:
        register_recipe(dataset_name, recipe_name, recipe_class)
        return recipe_class

    return wrapper


def load_builtin_recipes() -> None:
    """Import the modules that register the built-in recipes."""
    for module in BUILTIN_RECIPE_MODULES:
        import_module(module)


def _lookup(dataset_name: str, recipe_name: str) -> type[BaseRecipe]:
    recipes = _RECIPE_REGISTRY.get(dataset_name)
    if recipes is None:
        raise ValueError(
            f"Dataset '{dataset_name}' not found. Available datasets: {list_datasets()}"
        )
    if recipe_name not in recipes:
        raise ValueError(
            f"Recipe '{recipe_name}' not found for dataset '{dataset_name}'. "
            f"Available recipes: {list(recipes)}"
        )
    return recipes[recipe_name]


def get_recipe(
    dataset_name: str,
    recipe_name: str,
    config: AnalysisConfig | None = None,
    *,
    dataset_config: DatasetConfig | None = None,
    step_registry: StepRegistry | None = None,
) -> BaseRecipe:
    """
    Instantiate a registered recipe.

    Args:
        dataset_name: Name of the dataset
        recipe_name: Name of the recipe
        config: Analysis configuration; defaults to one naming this recipe
        dataset_config: Optional dataset configuration passed to the recipe
        step_registry: Registry for configured step overrides

    Raises:
        ValueError: If dataset or recipe not found
    """
    recipe_class = _lookup(dataset_name, recipe_name)
    if config is None:
        config = AnalysisConfig(dataset=dataset_name, recipe=recipe_name)

    logger.info(f"Creating recipe {recipe_name} ({recipe_class.__name__}) for {dataset_name}")
    return recipe_class(config, dataset_config=dataset_config, step_registry=step_registry)


def list_recipes(dataset_name: str | None = None) -> dict[str, list[str]]:
    """Map dataset names to their recipe names, optionally for one dataset only."""
    return {
        dataset: list(recipes)
        for dataset, recipes in _RECIPE_REGISTRY.items()
        if dataset_name is None or dataset == dataset_name
    }


def list_datasets() -> list[str]:
    """Datasets with at least one registered recipe."""
    return list(_RECIPE_REGISTRY)

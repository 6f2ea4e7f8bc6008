"""Tests for recipe registry."""

from pathlib import Path

import pytest

from lisaflow.core.pipeline import Pipeline
from lisaflow.core.schema import AnalysisConfig, DatasetConfig, InferenceConfig
from lisaflow.core.steps import ContiguityWeightsStep, CountEventsStep, ReprojectUnitsStep
from lisaflow.recipes.base import BaseRecipe
from lisaflow.recipes.lisa import LisaRecipe
from lisaflow.recipes.registry import (
    get_recipe,
    list_datasets,
    list_recipes,
    load_builtin_recipes,
    recipe,
    register_recipe,
)


class DummyRecipe(BaseRecipe):
    """Dummy recipe for testing."""

    def build_pipeline(self) -> Pipeline:
        return Pipeline([])


def test_register_and_get_recipe() -> None:
    """Test registering and retrieving a recipe."""
    register_recipe("test_dataset", "test_recipe", DummyRecipe)

    config = AnalysisConfig(dataset="test_dataset", recipe="test_recipe")
    recipe = get_recipe("test_dataset", "test_recipe", config)

    assert isinstance(recipe, DummyRecipe)
    assert recipe.name == "test_recipe"


def test_get_nonexistent_recipe() -> None:
    """Test getting a recipe that doesn't exist."""
    with pytest.raises(ValueError):
        get_recipe("nonexistent", "recipe")


def test_get_unknown_recipe_for_known_dataset() -> None:
    register_recipe("test_dataset", "known", DummyRecipe)
    with pytest.raises(ValueError, match="not found for dataset"):
        get_recipe("test_dataset", "unknown")


def test_list_recipes() -> None:
    """Test listing recipes."""
    register_recipe("test_dataset", "recipe1", DummyRecipe)
    register_recipe("test_dataset", "recipe2", DummyRecipe)

    recipes = list_recipes("test_dataset")
    assert "test_dataset" in recipes
    assert "recipe1" in recipes["test_dataset"]
    assert "recipe2" in recipes["test_dataset"]
    assert list_recipes("no_such_dataset") == {}


def test_list_datasets() -> None:
    """Test listing datasets."""
    register_recipe("dataset1", "recipe", DummyRecipe)
    register_recipe("dataset2", "recipe", DummyRecipe)

    datasets = list_datasets()
    assert "dataset1" in datasets
    assert "dataset2" in datasets


def test_builtin_recipes_are_registered() -> None:
    load_builtin_recipes()

    recipes = list_recipes()
    assert "lisa_v1" in recipes["generic"]
    assert "crime_lisa_v1" in recipes["chicago_crime"]


def test_lisa_recipe_without_dataset_config_only_analyses(grid_4x4) -> None:
    config = AnalysisConfig(
        dataset="generic",
        recipe="lisa_v1",
        value_col="value",
        inference=InferenceConfig(permutations=19, seed=3),
    )
    recipe = LisaRecipe(config)
    pipeline = recipe.build_pipeline()

    assert isinstance(pipeline.steps[0], ContiguityWeightsStep)
    assert len(pipeline) == 4

    result = recipe.run(grid_4x4)
    assert result.metadata.results["global_moran:value"]["permutation"]["seed"] == 3
    assert "value_cluster" in result.data.columns


def test_lisa_recipe_adds_reprojection_and_counting(tmp_path: Path) -> None:
    dataset = DatasetConfig(
        dataset_name="grid",
        boundaries_path=str(tmp_path / "grid.geojson"),
        events_path=str(tmp_path / "events.csv"),
        target_crs="EPSG:3857",
    )
    config = AnalysisConfig(dataset="generic", recipe="lisa_v1")
    recipe = get_recipe("generic", "lisa_v1", config, dataset_config=dataset)

    steps = recipe.build_pipeline().steps
    assert isinstance(steps[0], ReprojectUnitsStep)
    assert isinstance(steps[1], CountEventsStep)
    assert steps[1].output_col == "event_count"


def test_recipe_decorator_registers_class() -> None:
    @recipe("decorated_dataset", "decorated")
    class DecoratedRecipe(DummyRecipe):
        pass

    assert list_recipes("decorated_dataset") == {"decorated_dataset": ["decorated"]}
    assert isinstance(get_recipe("decorated_dataset", "decorated"), DecoratedRecipe)


def test_describe_lists_planned_steps() -> None:
    config = AnalysisConfig(dataset="generic", recipe="lisa_v1", value_col="value")
    planned = LisaRecipe(config).describe()

    assert planned[0] == "ContiguityWeightsStep(rule=queen, order=1, style=row)"
    assert len(planned) == 4

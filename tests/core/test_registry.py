"""Tests for pipeline step and output adapter registries."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from pydantic import BaseModel, ValidationError

from lisaflow.core.output_adapters import (
    BaseOutputAdapter,
    GeoJSONOutputAdapter,
    TableOutputAdapter,
    register_builtin_output_adapters,
)
from lisaflow.core.pipeline import Pipeline, Step
from lisaflow.core.registry import StepRegistry, OutputAdapterRegistry
from lisaflow.core.schema import AnalysisConfig
from lisaflow.core.steps import (
    ContiguityWeightsStep,
    GlobalMoranStep,
    get_default_registry,
)
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.recipes.base import BaseRecipe


class DummyStep(Step):
    """No-op step for testing."""

    def run(self, unit_frame: UnitFrame) -> UnitFrame:  # pragma: no cover - trivial pass-through
        return unit_frame


class AnotherStep(Step):
    """Another no-op for tagging tests."""

    def run(self, unit_frame: UnitFrame) -> UnitFrame:  # pragma: no cover - trivial pass-through
        return unit_frame


class WindowStep(Step):
    """Step with a validated parameter."""

    def __init__(self, window: int) -> None:
        self.window = window

    def run(self, unit_frame: UnitFrame) -> UnitFrame:  # pragma: no cover - trivial pass-through
        return unit_frame


class WindowConfig(BaseModel):
    window: int


@pytest.fixture()
def fresh_registry() -> StepRegistry:
    return StepRegistry()


def test_step_registry_register_and_get(fresh_registry: StepRegistry) -> None:
    fresh_registry.register(
        "dummy",
        DummyStep,
        tags={"spatial", "weights"},
        description="Dummy test step",
        config_model=None,
    )

    spec = fresh_registry.get("dummy")
    assert spec.name == "dummy"
    assert spec.cls is DummyStep
    assert spec.tags == {"spatial", "weights"}
    assert "dummy" in fresh_registry


def test_step_registry_rejects_duplicates(fresh_registry: StepRegistry) -> None:
    fresh_registry.register("dummy", DummyStep)
    with pytest.raises(ValueError, match="already registered"):
        fresh_registry.register("dummy", AnotherStep)


def test_step_registry_rejects_unknown_tags(fresh_registry: StepRegistry) -> None:
    with pytest.raises(ValueError, match="Unsupported step tags"):
        fresh_registry.register("dummy", DummyStep, tags=["temporal"])


def test_step_registry_requires_pydantic_config(fresh_registry: StepRegistry) -> None:
    with pytest.raises(TypeError, match="pydantic"):
        fresh_registry.register("dummy", DummyStep, config_model=dict)  # type: ignore[arg-type]


def test_step_registry_list_filters_by_tag(fresh_registry: StepRegistry) -> None:
    fresh_registry.register("a", DummyStep, tags=["spatial"])
    fresh_registry.register("b", AnotherStep, tags=["autocorrelation"])

    assert [spec.name for spec in fresh_registry.list()] == ["a", "b"]
    assert [spec.name for spec in fresh_registry.list(tag="autocorrelation")] == ["b"]


def test_decorator_registers_step(fresh_registry: StepRegistry) -> None:
    @fresh_registry.decorator("decorated", tags=["io"])
    class DecoratedStep(DummyStep):
        pass

    assert fresh_registry.get("decorated").cls is DecoratedStep


def test_create_validates_params(fresh_registry: StepRegistry) -> None:
    fresh_registry.register("window", WindowStep, config_model=WindowConfig)

    step = fresh_registry.create("window", params={"window": "3"})
    assert isinstance(step, WindowStep)
    assert step.window == 3

    with pytest.raises(ValidationError):
        fresh_registry.create("window", params={"window": "wide"})


def test_build_pipeline_accepts_all_definition_forms(fresh_registry: StepRegistry) -> None:
    fresh_registry.register("dummy", DummyStep)
    fresh_registry.register("window", WindowStep, config_model=WindowConfig)

    pipeline = fresh_registry.build_pipeline(
        [
            "dummy",
            ("window", {"window": 2}),
            {"name": "window", "params": {"window": 5}},
            {"name": "window", "config": {"window": 7}},
        ]
    )

    assert isinstance(pipeline, Pipeline)
    assert [type(step).__name__ for step in pipeline.steps] == [
        "DummyStep",
        "WindowStep",
        "WindowStep",
        "WindowStep",
    ]
    assert [step.window for step in pipeline.steps[1:]] == [2, 5, 7]


def test_build_pipeline_rejects_bad_definitions(fresh_registry: StepRegistry) -> None:
    fresh_registry.register("dummy", DummyStep)

    with pytest.raises(ValueError, match="'name'"):
        fresh_registry.build_pipeline([{"params": {}}])
    with pytest.raises(TypeError):
        fresh_registry.build_pipeline([42])  # type: ignore[list-item]
    with pytest.raises(KeyError):
        fresh_registry.build_pipeline(["missing"])


def test_default_registry_has_builtin_steps() -> None:
    registry = get_default_registry()

    names = {spec.name for spec in registry.list()}
    assert names == {
        "reproject_units",
        "count_events",
        "join_attributes",
        "contiguity_weights",
        "spatial_lag",
        "global_moran",
        "local_moran",
    }
    assert {spec.name for spec in registry.list(tag="autocorrelation")} == {
        "global_moran",
        "local_moran",
    }


def test_default_registry_builds_analysis_pipeline(grid_4x4: UnitFrame) -> None:
    pipeline = get_default_registry().build_pipeline(
        [
            {"name": "contiguity_weights", "params": {"rule": "rook", "style": "row"}},
            {"name": "global_moran", "params": {"value_col": "value", "permutations": 0}},
            {
                "name": "local_moran",
                "params": {"value_col": "value", "permutations": 19, "seed": 1},
            },
        ]
    )

    assert isinstance(pipeline.steps[0], ContiguityWeightsStep)
    assert isinstance(pipeline.steps[1], GlobalMoranStep)

    result = pipeline.run(grid_4x4)
    assert result.metadata.results["global_moran:value"]["status"] == "ok"
    assert "value_cluster" in result.data.columns


def test_recipe_uses_configured_steps(grid_2x2: UnitFrame) -> None:
    class ConfiguredRecipe(BaseRecipe):
        def build_pipeline(self) -> Pipeline:  # pragma: no cover - configured steps take over
            raise AssertionError("configured steps should be used")

    config = AnalysisConfig(
        dataset="grid",
        recipe="configured",
        steps=[{"name": "contiguity_weights", "params": {"rule": "rook"}}],
    )
    recipe = ConfiguredRecipe(config, step_registry=get_default_registry())
    result = recipe.run(grid_2x2)

    assert result.metadata.results["weights"]["rule"] == "rook"


def test_recipe_with_configured_steps_needs_registry() -> None:
    class ConfiguredRecipe(BaseRecipe):
        def build_pipeline(self) -> Pipeline:  # pragma: no cover - not reached
            return Pipeline([])

    config = AnalysisConfig(dataset="grid", recipe="configured", steps=["contiguity_weights"])
    with pytest.raises(ValueError, match="registry"):
        ConfiguredRecipe(config).get_pipeline()


class RecordingAdapter(BaseOutputAdapter):
    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def write(self, unit_frame: UnitFrame, **kwargs: Any) -> Path:  # pragma: no cover - unused
        return self.path


def test_output_adapter_registry() -> None:
    registry = OutputAdapterRegistry()
    register_builtin_output_adapters(registry)
    registry.register("recording", RecordingAdapter, tags=["io"])

    assert [spec.name for spec in registry.list()] == ["table", "geojson", "recording"]
    assert isinstance(
        registry.create("table", params={"path": "out.csv", "format": "csv"}), TableOutputAdapter
    )
    geojson = registry.create("geojson", params={"path": "out.geojson"})
    assert isinstance(geojson, GeoJSONOutputAdapter)

    with pytest.raises(ValueError, match="already registered"):
        registry.register("table", RecordingAdapter)
    with pytest.raises(ValidationError):
        registry.create("table", params={"path": "out.xlsx", "format": "xlsx"})


def test_step_spec_reports_weight_requirements() -> None:
    registry = get_default_registry()

    assert registry.get("contiguity_weights").provides_weights
    assert registry.get("local_moran").requires_weights
    assert not registry.get("count_events").requires_weights


def test_unknown_step_lists_registered_names(fresh_registry: StepRegistry) -> None:
    fresh_registry.register("dummy", DummyStep)

    with pytest.raises(KeyError, match="registered: \\['dummy'\\]"):
        fresh_registry.get("missing")


def test_register_rejects_non_step_class(fresh_registry: StepRegistry) -> None:
    with pytest.raises(TypeError, match="Step subclasses"):
        fresh_registry.register("adapter", RecordingAdapter)  # type: ignore[arg-type]

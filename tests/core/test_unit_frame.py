"""Tests for the UnitFrame abstraction."""

from __future__ import annotations

import numpy as np
import polars as pl
import pytest
from shapely.geometry import Polygon

from lisaflow.core.contiguity import build_contiguity
from lisaflow.core.errors import InputMismatch
from lisaflow.core.schema import FeatureProvenance, UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.weights import build_weights


def _frame(data: dict) -> UnitFrame:
    return UnitFrame(pl.DataFrame(data), UnitSchema(), UnitMetadata(dataset_name="test"))


def test_integer_ids_are_cast_to_strings() -> None:
    frame = _frame({"unit_id": [1, 2], "geometry": ["POINT (0 0)", "POINT (1 1)"]})

    assert frame.ids == ["1", "2"]
    assert frame.data["unit_id"].dtype == pl.Utf8


def test_missing_required_columns() -> None:
    with pytest.raises(InputMismatch, match="geometry"):
        _frame({"unit_id": ["a"]})


def test_duplicate_ids_rejected() -> None:
    with pytest.raises(InputMismatch, match="unique"):
        _frame({"unit_id": ["a", "a"], "geometry": ["POINT (0 0)", "POINT (1 1)"]})


def test_null_ids_rejected() -> None:
    with pytest.raises(InputMismatch, match="null"):
        _frame({"unit_id": ["a", None], "geometry": ["POINT (0 0)", "POINT (1 1)"]})


def test_geometries_are_parsed(grid_2x2: UnitFrame) -> None:
    geoms = grid_2x2.geometries()

    assert len(geoms) == 4
    assert isinstance(geoms[0], Polygon)
    assert geoms[0].area == pytest.approx(1.0)


def test_values_returns_float_array(grid_2x2: UnitFrame) -> None:
    values = grid_2x2.values("value")

    assert values.dtype == np.float64
    assert list(values) == [10.0, 10.0, 1.0, 1.0]


def test_values_with_nulls_raise(grid_2x2: UnitFrame) -> None:
    frame = grid_2x2.with_columns(pl.Series("partial", [1.0, None, 2.0, 3.0]))
    with pytest.raises(InputMismatch, match="missing"):
        frame.values("partial")


def test_values_missing_column_raises(grid_2x2: UnitFrame) -> None:
    with pytest.raises(InputMismatch, match="not found"):
        grid_2x2.values("nope")


def test_with_data_rejects_reordering(grid_2x2: UnitFrame) -> None:
    with pytest.raises(InputMismatch, match="order"):
        grid_2x2.with_data(grid_2x2.data.reverse())


def test_with_data_rejects_dropping_units(grid_2x2: UnitFrame) -> None:
    with pytest.raises(InputMismatch, match="Unit count"):
        grid_2x2.with_data(grid_2x2.data.head(2))


def test_weights_must_match_units(grid_2x2: UnitFrame, grid_4x4: UnitFrame) -> None:
    graph = build_contiguity(grid_4x4.geometries(), grid_4x4.ids)
    with pytest.raises(InputMismatch, match="weights"):
        grid_2x2.with_weights(build_weights(graph))


def test_with_weights_is_carried_through_updates(grid_2x2: UnitFrame) -> None:
    graph = build_contiguity(grid_2x2.geometries(), grid_2x2.ids, rule="rook")
    frame = grid_2x2.with_weights(build_weights(graph))
    updated = frame.with_columns(pl.lit(1).alias("one"))

    assert updated.weights is frame.weights
    assert grid_2x2.weights is None


def test_register_feature_tracks_provenance(grid_2x2: UnitFrame) -> None:
    frame = grid_2x2.with_columns((pl.col("value") * 2).alias("doubled"))
    provenance = FeatureProvenance(produced_by="test", inputs=["value"], tags={"spatial"})
    frame = frame.register_feature(
        "doubled", {"source_step": "test"}, provenance=provenance, value=True
    )

    assert frame.schema.feature_provenance["doubled"].produced_by == "test"
    assert frame.metadata.feature_provenance["doubled"].inputs == ["value"]
    assert frame.metadata.feature_catalog["doubled"] == {"source_step": "test"}
    assert frame.schema.value_cols == ["value", "doubled"]


def test_register_feature_infers_provenance(grid_2x2: UnitFrame) -> None:
    frame = grid_2x2.register_feature(
        "value", {"source_step": "loader", "inputs": ["raw"], "units": "count"}
    )

    provenance = frame.schema.feature_provenance["value"]
    assert provenance.produced_by == "loader"
    assert provenance.metadata == {"units": "count"}


def test_record_result_is_immutable(grid_2x2: UnitFrame) -> None:
    frame = grid_2x2.record_result("global_moran:value", {"I": 0.0})

    assert frame.metadata.results == {"global_moran:value": {"I": 0.0}}
    assert grid_2x2.metadata.results == {}


def test_len_and_repr(grid_2x2: UnitFrame) -> None:
    assert len(grid_2x2) == 4
    assert "units=4" in repr(grid_2x2)

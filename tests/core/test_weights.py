"""Tests for spatial weights and the spatial lag."""

from __future__ import annotations

import numpy as np
import pytest

from lisaflow.core.contiguity import build_contiguity, from_mapping
from lisaflow.core.errors import DegenerateInput, InputMismatch
from lisaflow.core.schema import WeightStyle
from lisaflow.core.weights import as_values, build_weights, spatial_lag


@pytest.fixture()
def rook_2x2(cell_factory):
    ids, geoms = cell_factory(2, 2)
    return build_contiguity(geoms, ids, rule="rook")


def test_row_weights_average_neighbours(rook_2x2) -> None:
    weights = build_weights(rook_2x2, style="row")

    dense = weights.to_dense()
    assert weights.style is WeightStyle.ROW
    assert np.allclose(np.diag(dense), 0.0)
    assert np.allclose(weights.row_sums, 1.0)
    assert weights.weight(0, 1) == pytest.approx(0.5)
    assert weights.weight(0, 2) == pytest.approx(0.5)
    assert weights.weight(0, 3) == 0.0


def test_binary_weights_are_ones(rook_2x2) -> None:
    weights = build_weights(rook_2x2, style=WeightStyle.BINARY)

    assert set(np.unique(weights.sparse.data)) == {1.0}
    assert weights.s0 == pytest.approx(8.0)


def test_row_weight_sums(rook_2x2) -> None:
    weights = build_weights(rook_2x2, style="row")

    assert weights.s0 == pytest.approx(4.0)
    assert weights.s1 == pytest.approx(4.0)
    assert weights.s2 == pytest.approx(16.0)


def test_row_entries_follow_neighbour_order(rook_2x2) -> None:
    weights = build_weights(rook_2x2, style="row")
    indices, values = weights.row(3)

    assert list(indices) == [1, 2]
    assert np.allclose(values, [0.5, 0.5])


def test_row_style_rejects_islands() -> None:
    graph = from_mapping({"a": ["b"], "b": ["a"], "c": []})

    with pytest.raises(DegenerateInput) as excinfo:
        build_weights(graph, style="row")

    assert excinfo.value.unit_ids == ("c",)


def test_binary_style_keeps_island_row_empty() -> None:
    graph = from_mapping({"a": ["b"], "b": ["a"], "c": []})
    weights = build_weights(graph, style="binary")

    assert weights.islands == ("c",)
    assert list(weights.row_sums) == [1.0, 1.0, 0.0]


def test_spatial_lag_row_is_neighbour_mean(rook_2x2) -> None:
    weights = build_weights(rook_2x2, style="row")
    lag = spatial_lag([10, 10, 1, 1], weights)

    assert np.allclose(lag, [5.5, 5.5, 5.5, 5.5])


def test_spatial_lag_binary_is_neighbour_sum(rook_2x2) -> None:
    weights = build_weights(rook_2x2, style="binary")
    lag = spatial_lag([1, 2, 3, 4], weights)

    # r0c0: r0c1 + r1c0, r1c1: r0c1 + r1c0
    assert np.allclose(lag, [5, 5, 5, 5])


def test_spatial_lag_of_island_is_zero() -> None:
    graph = from_mapping({"a": ["b"], "b": ["a"], "c": []})
    weights = build_weights(graph, style="binary")

    assert np.allclose(spatial_lag([1.0, 2.0, 3.0], weights), [2.0, 1.0, 0.0])


def test_value_length_mismatch_raises(rook_2x2) -> None:
    weights = build_weights(rook_2x2)
    with pytest.raises(InputMismatch, match="3 values for 4"):
        spatial_lag([1, 2, 3], weights)


def test_non_finite_values_raise(rook_2x2) -> None:
    weights = build_weights(rook_2x2)
    with pytest.raises(InputMismatch, match="finite"):
        as_values([1.0, np.nan, 2.0, 3.0], weights)

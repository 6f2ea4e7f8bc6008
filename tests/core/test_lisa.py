"""Tests for local Moran's I and LISA classification."""

from __future__ import annotations

import numpy as np
import pytest

from lisaflow.core.contiguity import build_contiguity, from_mapping
from lisaflow.core.errors import DegenerateInput
from lisaflow.core.lisa import ClusterLabel, _draw_neighbour_samples, classify, local_moran
from lisaflow.core.moran import global_moran
from lisaflow.core.weights import build_weights

HALVES_4X4 = [10.0] * 8 + [1.0] * 8


@pytest.fixture()
def grid_weights(cell_factory):
    def factory(n_rows: int, n_cols: int, rule: str = "rook", style: str = "row"):
        ids, geoms = cell_factory(n_rows, n_cols)
        return build_weights(build_contiguity(geoms, ids, rule=rule), style=style)

    return factory


class TestClassify:
    def test_high_high(self) -> None:
        assert classify(2.0, 1.5, 0.01) is ClusterLabel.HIGH_HIGH

    def test_not_significant_overrides_quadrant(self) -> None:
        assert classify(-0.5, 0.2, 0.2) is ClusterLabel.NOT_SIGNIFICANT

    @pytest.mark.parametrize(
        ("value", "lag", "expected"),
        [
            (-1.0, -1.0, ClusterLabel.LOW_LOW),
            (1.0, -1.0, ClusterLabel.HIGH_LOW),
            (-1.0, 1.0, ClusterLabel.LOW_HIGH),
        ],
    )
    def test_quadrants(self, value: float, lag: float, expected: ClusterLabel) -> None:
        assert classify(value, lag, 0.001) is expected

    def test_zero_takes_non_positive_branch(self) -> None:
        assert classify(0.0, 0.0, 0.01) is ClusterLabel.LOW_LOW
        assert classify(0.0, 1.0, 0.01) is ClusterLabel.LOW_HIGH
        assert classify(1.0, 0.0, 0.01) is ClusterLabel.HIGH_LOW

    def test_p_equal_to_alpha_is_significant(self) -> None:
        assert classify(1.0, 1.0, 0.05, alpha=0.05) is ClusterLabel.HIGH_HIGH

    def test_invalid_alpha(self) -> None:
        with pytest.raises(ValueError, match="alpha"):
            classify(1.0, 1.0, 0.01, alpha=1.5)

    def test_codes(self) -> None:
        assert [label.code for label in ClusterLabel] == ["HH", "LL", "HL", "LH", "NS"]


class TestLocalMoran:
    def test_rook_2x2_statistics(self, grid_weights) -> None:
        result = local_moran([10, 10, 1, 1], grid_weights(2, 2))

        assert result.ids == ("r0c0", "r0c1", "r1c0", "r1c1")
        assert np.allclose(result.Is, 0.0)
        assert np.allclose(result.expected, -1.0 / 3.0)
        assert np.all(result.variance > 0)
        assert np.allclose(result.z, [1.0, 1.0, -1.0, -1.0])
        assert np.allclose(result.lag, 0.0)
        assert result.p_sim is None

    def test_local_statistics_sum_to_scaled_global(self, grid_weights) -> None:
        weights = grid_weights(4, 4)
        result = local_moran(HALVES_4X4, weights)

        assert result.Is.sum() == pytest.approx(weights.s0 * global_moran(HALVES_4X4, weights))

    def test_halves_split_into_high_high_and_low_low(self, grid_weights) -> None:
        result = local_moran(HALVES_4X4, grid_weights(4, 4))
        labels = result.clusters(alpha=0.99)

        assert labels[:8] == [ClusterLabel.HIGH_HIGH] * 8
        assert labels[8:] == [ClusterLabel.LOW_LOW] * 8

    def test_expected_value_uses_row_sums(self, grid_weights) -> None:
        result = local_moran(HALVES_4X4, grid_weights(4, 4, style="binary"))
        # corner cells have two rook neighbours
        assert result.expected[0] == pytest.approx(-2.0 / 15.0)

    def test_same_seed_reproduces_pseudo_p(self, grid_weights) -> None:
        weights = grid_weights(4, 4)
        first = local_moran(HALVES_4X4, weights, permutations=99, seed=2024)
        second = local_moran(HALVES_4X4, weights, permutations=99, seed=2024)

        assert first.p_sim is not None
        assert np.array_equal(first.p_sim, second.p_sim)
        assert np.array_equal(first.z_sim, second.z_sim)
        assert first.p_values is first.p_sim

    def test_pseudo_p_is_bounded(self, grid_weights) -> None:
        result = local_moran(HALVES_4X4, grid_weights(4, 4), permutations=49, seed=5)

        assert result.permutations == 49
        assert np.all(result.p_sim >= 1.0 / 50.0)
        assert np.all(result.p_sim <= 1.0)

    def test_island_is_degenerate_even_with_binary_weights(self, units_with_island) -> None:
        graph = build_contiguity(units_with_island.geometries(), units_with_island.ids)
        weights = build_weights(graph, style="binary")

        with pytest.raises(DegenerateInput) as excinfo:
            local_moran([1, 2, 3, 4, 5], weights)

        assert excinfo.value.unit_ids == ("island",)

    def test_constant_values_are_degenerate(self, grid_weights) -> None:
        with pytest.raises(DegenerateInput):
            local_moran([3.0] * 16, grid_weights(4, 4))

    def test_requires_three_units(self) -> None:
        weights = build_weights(from_mapping({"a": ["b"], "b": ["a"]}))
        with pytest.raises(DegenerateInput, match="at least 3"):
            local_moran([1.0, 2.0], weights)

    def test_fully_connected_units_have_no_variance(self, grid_weights) -> None:
        # every unit neighbours all others, so the conditional distribution is fixed
        with pytest.raises(DegenerateInput, match="not positive"):
            local_moran([10, 10, 1, 1], grid_weights(2, 2, rule="queen"))

    def test_negative_permutations_rejected(self, grid_weights) -> None:
        with pytest.raises(ValueError, match="permutations"):
            local_moran(HALVES_4X4, grid_weights(4, 4), permutations=-1)

    def test_to_frame(self, grid_weights) -> None:
        frame = local_moran(HALVES_4X4, grid_weights(4, 4)).to_frame(alpha=0.99)

        assert frame.columns == [
            "unit_id",
            "value_std",
            "lag_std",
            "local_i",
            "expected_i",
            "variance_i",
            "z_score",
            "z_sim",
            "p_value",
            "cluster",
        ]
        assert frame.height == 16
        assert frame["z_sim"].is_nan().all()
        assert frame["cluster"][0] == "high-high"
        assert frame["cluster"][15] == "low-low"

    def test_to_frame_reports_simulated_z(self, grid_weights) -> None:
        result = local_moran(HALVES_4X4, grid_weights(4, 4), permutations=99, seed=8)
        frame = result.to_frame()

        assert frame["z_sim"].to_list() == pytest.approx(list(result.z_sim))
        assert frame["p_value"].to_list() == pytest.approx(list(result.p_sim))
        # same statistic, so both z-scores agree in sign for the clustered halves
        assert np.all(np.sign(frame["z_sim"].to_numpy()) == np.sign(frame["z_score"].to_numpy()))

    def test_permutations_on_larger_grid(self, grid_weights) -> None:
        values = np.arange(400, dtype=float) % 7
        result = local_moran(values, grid_weights(20, 20), permutations=999, seed=1)

        assert result.p_sim.shape == (400,)
        assert np.all(result.p_sim >= 1.0 / 1000.0)
        assert np.all(result.p_sim <= 1.0)
        assert np.all(np.isfinite(result.z_sim))


class TestNeighbourSamples:
    def test_rows_are_distinct_indices(self) -> None:
        picks = _draw_neighbour_samples(np.random.default_rng(0), 10, 4, 500)

        assert picks.shape == (500, 4)
        assert picks.min() >= 0
        assert picks.max() < 10
        assert all(len(set(row)) == 4 for row in picks.tolist())

    def test_full_draw_is_a_permutation(self) -> None:
        picks = _draw_neighbour_samples(np.random.default_rng(1), 5, 5, 200)
        assert all(sorted(row) == [0, 1, 2, 3, 4] for row in picks.tolist())

    def test_every_position_is_uniform(self) -> None:
        picks = _draw_neighbour_samples(np.random.default_rng(2), 6, 2, 30000)

        for col in range(2):
            counts = np.bincount(picks[:, col], minlength=6)
            assert counts == pytest.approx([5000] * 6, rel=0.05)

    def test_same_generator_state_reproduces(self) -> None:
        first = _draw_neighbour_samples(np.random.default_rng(3), 15, 3, 50)
        second = _draw_neighbour_samples(np.random.default_rng(3), 15, 3, 50)
        assert np.array_equal(first, second)

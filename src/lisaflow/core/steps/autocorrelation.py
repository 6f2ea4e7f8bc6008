"""Weights and spatial autocorrelation pipeline steps.

The contiguity step builds the weight matrix once and attaches it to the
UnitFrame; every later step reads it from there.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import numpy as np
import polars as pl
from pydantic import BaseModel, Field

from lisaflow.core.contiguity import build_contiguity
from lisaflow.core.errors import DegenerateInput
from lisaflow.core.lisa import DEFAULT_ALPHA, ClusterLabel, local_moran
from lisaflow.core.moran import moran_permutation_test, moran_test
from lisaflow.core.pipeline import Step
from lisaflow.core.schema import Alternative, ContiguityRule, FeatureProvenance, WeightStyle
from lisaflow.core.utils import get_logger
from lisaflow.core.weights import SpatialWeights, build_weights, spatial_lag

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Pydantic Config Models for Step Parameters
# -----------------------------------------------------------------------------


class ContiguityWeightsConfig(BaseModel):
    """Configuration for the contiguity weights step."""

    rule: ContiguityRule = Field(default=ContiguityRule.QUEEN, description="rook or queen")
    order: int = Field(default=1, ge=1, description="Neighbour ring order")
    style: WeightStyle = Field(default=WeightStyle.ROW, description="binary or row")


class SpatialLagConfig(BaseModel):
    """Configuration for spatial lag computation step."""

    value_cols: list[str] = Field(..., description="Columns to compute spatial lag for")


class GlobalMoranConfig(BaseModel):
    """Configuration for the global Moran's I step."""

    value_col: str = Field(..., description="Column to test for spatial autocorrelation")
    permutations: int = Field(default=999, ge=0, description="Permutations (0 = analytic only)")
    seed: int | None = Field(default=None, description="Seed for the permutation test")
    alternative: Alternative = Field(default=Alternative.TWO_SIDED)


class LocalMoranConfig(BaseModel):
    """Configuration for the local Moran's I step."""

    value_col: str = Field(..., description="Column to compute local autocorrelation for")
    permutations: int = Field(default=999, ge=0, description="Conditional permutations per unit")
    seed: int | None = Field(default=None, description="Seed for the per-unit random sources")
    alternative: Alternative = Field(default=Alternative.TWO_SIDED)
    alpha: float = Field(default=DEFAULT_ALPHA, gt=0, lt=1, description="Significance level")


def _require_weights(unit_frame: UnitFrame, step_name: str) -> SpatialWeights:
    if unit_frame.weights is None:
        raise ValueError(
            f"{step_name} needs spatial weights; run the contiguity_weights step first"
        )
    return unit_frame.weights


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------


class ContiguityWeightsStep(Step):
    """Build contiguity weights from the unit geometries.

    Outputs:
        - SpatialWeights attached to the UnitFrame
        - n_neighbors column
        - "weights" entry in metadata results
    """

    provides_weights = True

    def __init__(
        self,
        rule: ContiguityRule | str = ContiguityRule.QUEEN,
        order: int = 1,
        style: WeightStyle | str = WeightStyle.ROW,
    ) -> None:
        self.rule = ContiguityRule(rule)
        self.order = order
        self.style = WeightStyle(style)

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute graph construction and normalization."""
        graph = build_contiguity(
            unit_frame.geometries(), unit_frame.ids, rule=self.rule, order=self.order
        )
        weights = build_weights(graph, style=self.style)

        cardinalities = graph.cardinalities
        result = unit_frame.with_weights(weights).with_columns(
            pl.Series("n_neighbors", cardinalities, dtype=pl.Int64)
        )
        result = result.register_feature(
            "n_neighbors",
            {"source_step": "ContiguityWeightsStep", "inputs": [unit_frame.schema.geometry_col]},
            provenance=FeatureProvenance(
                produced_by="ContiguityWeightsStep",
                inputs=[unit_frame.schema.geometry_col],
                tags={"weights"},
                description=f"Number of order-{self.order} {self.rule.value} neighbours",
            ),
        )
        return result.record_result(
            "weights",
            {
                "rule": self.rule.value,
                "order": self.order,
                "style": self.style.value,
                "n_units": graph.n_units,
                "n_links": graph.n_links,
                "mean_neighbors": float(cardinalities.mean()) if graph.n_units else 0.0,
                "islands": list(graph.islands),
            },
        )

    def __repr__(self) -> str:
        return (
            f"ContiguityWeightsStep(rule={self.rule.value}, order={self.order}, "
            f"style={self.style.value})"
        )


class SpatialLagStep(Step):
    """Compute the spatial lag of the given columns.

    Outputs:
        - {value_col}_spatial_lag columns
    """

    requires_weights = True

    def __init__(self, value_cols: Sequence[str]) -> None:
        self.value_cols = list(value_cols)

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute spatial lag computation."""
        weights = _require_weights(unit_frame, "SpatialLagStep")
        result = unit_frame

        for value_col in self.value_cols:
            lag_col = f"{value_col}_spatial_lag"
            lag = spatial_lag(unit_frame.values(value_col), weights)
            result = result.with_columns(pl.Series(lag_col, lag, dtype=pl.Float64))

            provenance = FeatureProvenance(
                produced_by="SpatialLagStep",
                inputs=[value_col],
                tags={"spatial"},
                description=f"Spatial lag of {value_col} using {weights.style.value} weights",
            )
            result = result.register_feature(
                lag_col,
                {"source_step": "SpatialLagStep", "value_col": value_col},
                provenance=provenance,
            )

        return result


class GlobalMoranStep(Step):
    """Test a column for global spatial autocorrelation.

    Records analytic inference and, with ``permutations > 0``, a permutation test
    under ``global_moran:{value_col}`` in metadata results. An undefined statistic
    (zero variance, empty weights) is recorded with ``status="undefined"`` rather
    than failing the run. A permutation test that cannot be run is recorded the
    same way under ``permutation`` next to the analytic result.
    """

    requires_weights = True

    def __init__(
        self,
        value_col: str,
        permutations: int = 999,
        seed: int | None = None,
        alternative: Alternative | str = Alternative.TWO_SIDED,
    ) -> None:
        self.value_col = value_col
        self.permutations = permutations
        self.seed = seed
        self.alternative = Alternative(alternative)

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the global test."""
        weights = _require_weights(unit_frame, "GlobalMoranStep")
        values = unit_frame.values(self.value_col)
        key = f"global_moran:{self.value_col}"

        try:
            analytic = moran_test(values, weights, alternative=self.alternative)
        except DegenerateInput as exc:
            logger.warning(f"Global Moran's I for '{self.value_col}' is undefined: {exc}")
            return unit_frame.record_result(
                key, {"status": "undefined", "reason": str(exc), "n": weights.n}
            )

        summary: dict[str, Any] = {"status": "ok", **analytic.to_dict()}
        logger.info(
            f"Global Moran's I for '{self.value_col}': I={analytic.I:.4f}, "
            f"p={analytic.p_value:.4g}"
        )
        if self.permutations:
            try:
                permuted = moran_permutation_test(
                    values,
                    weights,
                    n_permutations=self.permutations,
                    seed=self.seed,
                    alternative=self.alternative,
                )
            except DegenerateInput as exc:
                logger.warning(
                    f"Permutation test for '{self.value_col}' is undefined; "
                    f"keeping analytic inference: {exc}"
                )
                summary["permutation"] = {"status": "undefined", "reason": str(exc)}
            else:
                summary["permutation"] = {"status": "ok", **permuted.to_dict()}

        return unit_frame.record_result(key, summary)


class LocalMoranStep(Step):
    """Compute local Moran's I and LISA categories.

    Outputs:
        - {value_col}_value_std: standardized value
        - {value_col}_lag_std: spatial lag of the standardized value
        - {value_col}_local_i: local statistic
        - {value_col}_z_score: analytic z-score
        - {value_col}_z_sim: z-score against the permutation distribution
          (NaN when permutations == 0)
        - {value_col}_p_value: pseudo p-value (analytic when permutations == 0)
        - {value_col}_cluster: high-high, low-low, high-low, low-high or non-significant
    """

    requires_weights = True

    def __init__(
        self,
        value_col: str,
        permutations: int = 999,
        seed: int | None = None,
        alternative: Alternative | str = Alternative.TWO_SIDED,
        alpha: float = DEFAULT_ALPHA,
    ) -> None:
        self.value_col = value_col
        self.permutations = permutations
        self.seed = seed
        self.alternative = Alternative(alternative)
        self.alpha = alpha

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute local Moran's I computation."""
        weights = _require_weights(unit_frame, "LocalMoranStep")
        lisa = local_moran(
            unit_frame.values(self.value_col),
            weights,
            permutations=self.permutations,
            seed=self.seed,
            alternative=self.alternative,
        )
        labels = lisa.clusters(self.alpha)
        z_sim = lisa.z_sim if lisa.z_sim is not None else np.full(lisa.n, np.nan)

        prefix = self.value_col
        columns = {
            f"{prefix}_value_std": lisa.z,
            f"{prefix}_lag_std": lisa.lag,
            f"{prefix}_local_i": lisa.Is,
            f"{prefix}_z_score": lisa.z_scores,
            f"{prefix}_z_sim": z_sim,
            f"{prefix}_p_value": lisa.p_values,
        }
        result = unit_frame.with_columns(
            *[pl.Series(name, np.asarray(arr), dtype=pl.Float64) for name, arr in columns.items()],
            pl.Series(f"{prefix}_cluster", [label.value for label in labels], dtype=pl.Utf8),
        )

        provenance = FeatureProvenance(
            produced_by="LocalMoranStep",
            inputs=[self.value_col],
            tags={"autocorrelation"},
            description=f"Local Moran's I for {self.value_col}",
            metadata={
                "weights": weights.style.value,
                "permutations": self.permutations,
                "seed": self.seed,
                "alpha": self.alpha,
            },
        )
        for name in [*columns, f"{prefix}_cluster"]:
            result = result.register_feature(
                name,
                {"source_step": "LocalMoranStep", "value_col": self.value_col},
                provenance=provenance,
            )

        counts = Counter(label.value for label in labels)
        return result.record_result(
            f"local_moran:{self.value_col}",
            {
                "alpha": self.alpha,
                "permutations": self.permutations,
                "seed": self.seed,
                "alternative": self.alternative.value,
                "clusters": {label.value: counts.get(label.value, 0) for label in ClusterLabel},
            },
        )

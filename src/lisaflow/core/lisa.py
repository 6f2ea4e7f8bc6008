"""Local Moran's I (LISA) and cluster/outlier classification."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import polars as pl

from lisaflow.core.errors import DegenerateInput
from lisaflow.core.moran import center_values, normal_p_value, pseudo_p_value
from lisaflow.core.schema import Alternative
from lisaflow.core.utils import ProgressTracker, get_logger
from lisaflow.core.weights import SpatialWeights

logger = get_logger(__name__)

DEFAULT_ALPHA = 0.05

# Variances at or below this are treated as zero (fixed conditional distribution)
VARIANCE_TOLERANCE = 1e-12


class ClusterLabel(str, Enum):
    """LISA category of a unit."""

    HIGH_HIGH = "high-high"
    LOW_LOW = "low-low"
    HIGH_LOW = "high-low"
    LOW_HIGH = "low-high"
    NOT_SIGNIFICANT = "non-significant"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value

    @property
    def code(self) -> str:
        """Two-letter code (HH, LL, HL, LH, NS)."""
        return _CODES[self]


_CODES = {
    ClusterLabel.HIGH_HIGH: "HH",
    ClusterLabel.LOW_LOW: "LL",
    ClusterLabel.HIGH_LOW: "HL",
    ClusterLabel.LOW_HIGH: "LH",
    ClusterLabel.NOT_SIGNIFICANT: "NS",
}

# Evaluated in order, first match wins; anything left over is low-high. A value or
# lag of exactly zero takes the non-positive branch.
_QUADRANT_RULES: tuple[tuple[Callable[[float, float], bool], ClusterLabel], ...] = (
    (lambda value, lag: value > 0 and lag > 0, ClusterLabel.HIGH_HIGH),
    (lambda value, lag: value <= 0 and lag <= 0, ClusterLabel.LOW_LOW),
    (lambda value, lag: value > 0 and lag <= 0, ClusterLabel.HIGH_LOW),
)


def classify(
    value_std: float,
    lag_std: float,
    p_value: float,
    alpha: float = DEFAULT_ALPHA,
) -> ClusterLabel:
    """
    Classify one unit from its standardized value, standardized lag and p-value.

    Args:
        value_std: Standardized attribute value of the unit
        lag_std: Spatial lag of the standardized attribute
        p_value: Significance estimate of the unit's local statistic
        alpha: Significance threshold; units with p_value > alpha are
            non-significant regardless of quadrant

    Returns:
        ClusterLabel
    """
    if not 0 < alpha < 1:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")
    if p_value > alpha:
        return ClusterLabel.NOT_SIGNIFICANT
    for condition, label in _QUADRANT_RULES:
        if condition(value_std, lag_std):
            return label
    return ClusterLabel.LOW_HIGH


@dataclass(frozen=True, eq=False)
class LocalMoranResult:
    """
    Per-unit local Moran's I.

    Attributes:
        ids: Unit identifiers in weights order
        Is: Local statistic I_i
        expected: E[I_i] under total randomization
        variance: Var[I_i] under total randomization
        z_scores: (I_i - E[I_i]) / sqrt(Var[I_i])
        p_values: Permutation p-values when permutations > 0, otherwise the
            normal approximation on z_scores
        z: Standardized attribute values
        lag: Spatial lag of the standardized values
        alternative: Alternative hypothesis of the p-values
        permutations: Conditional permutations drawn per unit (0 = analytic)
        seed: Seed the per-unit random sources were spawned from
        p_sim: Permutation p-values (None when permutations == 0)
        z_sim: Z-scores against the permutation distribution (None when
            permutations == 0)
    """

    ids: tuple[str, ...]
    Is: np.ndarray
    expected: np.ndarray
    variance: np.ndarray
    z_scores: np.ndarray
    p_values: np.ndarray
    z: np.ndarray
    lag: np.ndarray
    alternative: Alternative = Alternative.TWO_SIDED
    permutations: int = 0
    seed: int | None = None
    p_sim: np.ndarray | None = field(default=None, repr=False)
    z_sim: np.ndarray | None = field(default=None, repr=False)

    @property
    def n(self) -> int:
        """Number of units."""
        return len(self.ids)

    def clusters(self, alpha: float = DEFAULT_ALPHA) -> list[ClusterLabel]:
        """Classify every unit."""
        return classify_units(self, alpha=alpha)

    def to_frame(self, alpha: float = DEFAULT_ALPHA, id_col: str = "unit_id") -> pl.DataFrame:
        """
        Per-unit result table.

        Columns: id, value_std, lag_std, local_i, expected_i, variance_i,
        z_score, z_sim, p_value, cluster. ``z_score`` is always the analytic
        randomization z-score; ``z_sim`` is measured against the permutation
        distribution and is NaN when no permutations were drawn.
        """
        z_sim = self.z_sim if self.z_sim is not None else np.full(self.n, np.nan)
        return pl.DataFrame(
            {
                id_col: list(self.ids),
                "value_std": self.z,
                "lag_std": self.lag,
                "local_i": self.Is,
                "expected_i": self.expected,
                "variance_i": self.variance,
                "z_score": self.z_scores,
                "z_sim": z_sim,
                "p_value": self.p_values,
                "cluster": [label.value for label in self.clusters(alpha)],
            }
        )


def classify_units(result: LocalMoranResult, alpha: float = DEFAULT_ALPHA) -> list[ClusterLabel]:
    """Apply :func:`classify` to every unit of *result*."""
    return [
        classify(float(value), float(lag), float(p), alpha=alpha)
        for value, lag, p in zip(result.z, result.lag, result.p_values)
    ]


def local_moran(
    values: Sequence[float] | np.ndarray,
    weights: SpatialWeights,
    permutations: int = 0,
    seed: int | None = None,
    alternative: Alternative | str = Alternative.TWO_SIDED,
) -> LocalMoranResult:
    """
    Compute local Moran's I for every unit.

    I_i = (z_i / m2) * sum_j w_ij z_j with z = x - mean(x) and m2 = sum(z^2) / N.
    Expectation and variance follow the total randomization null
    (Anselin 1995, in the form of Sokal, Oden & Thomson 1998, eqs. A3/A4):

        E[I_i]   = -w_i. / (N - 1)
        Var[I_i] = w_i(2) (N - b2) / (N - 1)
                   + (w_i.^2 - w_i(2)) (2 b2 - N) / ((N - 1)(N - 2))
                   - E[I_i]^2

    where w_i. is the row sum, w_i(2) the row sum of squared weights and
    b2 = m4 / m2^2.

    With ``permutations > 0`` p-values come from conditional randomization:
    unit i keeps its value while the other N - 1 values are permuted over the
    remaining units. Each unit draws from its own numpy Generator spawned from
    ``SeedSequence(seed)``, so results are reproducible for a given seed and
    every unit's draws are attributable to a seed-derived stream.

    Args:
        values: One value per unit in weights order
        weights: Spatial weights
        permutations: Conditional permutations per unit (0 = analytic p-values)
        seed: Seed for the per-unit random sources
        alternative: "greater", "less" or "two-sided"

    Returns:
        LocalMoranResult

    Raises:
        DegenerateInput: For zero variance, fewer than three units, or units
            without neighbours
    """
    if permutations < 0:
        raise ValueError(f"permutations must be >= 0, got {permutations}")
    alternative = Alternative(alternative)

    z = center_values(values, weights)
    n = z.shape[0]
    if n < 3:
        raise DegenerateInput(f"Local Moran's I needs at least 3 units, got {n}")
    if weights.islands:
        raise DegenerateInput(
            "Local Moran's I is undefined for units without neighbours: "
            + ", ".join(weights.islands),
            unit_ids=weights.islands,
        )

    m2 = float(z @ z) / n
    lag = np.asarray(weights.sparse @ z).ravel()
    local_i = z / m2 * lag

    wi = weights.row_sums
    wi2 = np.asarray(weights.sparse.multiply(weights.sparse).sum(axis=1)).ravel()
    b2 = (np.sum(z**4) / n) / m2**2
    expected = -wi / (n - 1)
    variance = (
        wi2 * (n - b2) / (n - 1)
        + (wi**2 - wi2) * (2 * b2 - n) / ((n - 1) * (n - 2))
        - expected**2
    )
    non_positive = np.flatnonzero(variance <= VARIANCE_TOLERANCE)
    if non_positive.size:
        bad_ids = [weights.ids[i] for i in non_positive]
        raise DegenerateInput(
            "Randomization variance of local Moran's I is not positive for: "
            + ", ".join(bad_ids),
            unit_ids=bad_ids,
        )
    z_scores = (local_i - expected) / np.sqrt(variance)
    p_values = np.asarray(normal_p_value(z_scores, alternative), dtype=np.float64)

    std = np.sqrt(m2)
    z_std = z / std
    lag_std = lag / std

    p_sim = None
    z_sim = None
    if permutations:
        p_sim, z_sim = _conditional_permutations(
            z, weights, local_i, m2, permutations, seed, alternative
        )
        p_values = p_sim

    n_sig = int(np.sum(p_values <= DEFAULT_ALPHA))
    logger.info(f"Local Moran's I computed for {n} units ({n_sig} with p <= {DEFAULT_ALPHA})")
    return LocalMoranResult(
        ids=weights.ids,
        Is=local_i,
        expected=expected,
        variance=variance,
        z_scores=z_scores,
        p_values=p_values,
        z=z_std,
        lag=lag_std,
        alternative=alternative,
        permutations=permutations,
        seed=seed,
        p_sim=p_sim,
        z_sim=z_sim,
    )


def _draw_neighbour_samples(
    rng: np.random.Generator, n_other: int, k: int, permutations: int
) -> np.ndarray:
    """
    Draw ``permutations`` ordered samples of k distinct indices from range(n_other).

    Uses Floyd's subset sampling (k draws per row) and then shuffles each row,
    so every ordered k-sample is equally likely without permuting all n_other.
    """
    picks = np.empty((permutations, k), dtype=np.intp)
    for col, upper in enumerate(range(n_other - k, n_other)):
        candidate = rng.integers(0, upper + 1, size=permutations)
        taken = (picks[:, :col] == candidate[:, None]).any(axis=1)
        picks[:, col] = np.where(taken, upper, candidate)
    return rng.permuted(picks, axis=1)


def _conditional_permutations(
    z: np.ndarray,
    weights: SpatialWeights,
    observed: np.ndarray,
    m2: float,
    permutations: int,
    seed: int | None,
    alternative: Alternative,
) -> tuple[np.ndarray, np.ndarray]:
    """Per-unit conditional randomization p-values and simulated z-scores."""
    n = z.shape[0]
    streams = np.random.SeedSequence(seed).spawn(n)
    p_sim = np.empty(n, dtype=np.float64)
    z_sim = np.empty(n, dtype=np.float64)

    tracker = ProgressTracker(n, description="Conditional permutations")
    for i in range(n):
        rng = np.random.default_rng(streams[i])
        _, w_row = weights.row(i)
        others = np.delete(z, i)
        picks = _draw_neighbour_samples(rng, n - 1, w_row.shape[0], permutations)
        sims = z[i] / m2 * (others[picks] @ w_row)

        p_sim[i] = pseudo_p_value(sims, float(observed[i]), alternative)
        sd = sims.std()
        z_sim[i] = (observed[i] - sims.mean()) / sd if sd > 0 else 0.0
        tracker.update()
    tracker.finish()
    return p_sim, z_sim

"""Global Moran's I with analytic and permutation inference."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from scipy import stats

from lisaflow.core.errors import DegenerateInput
from lisaflow.core.schema import Alternative
from lisaflow.core.utils import get_logger
from lisaflow.core.weights import SpatialWeights, as_values

logger = get_logger(__name__)

DEFAULT_PERMUTATIONS = 999


@dataclass(frozen=True)
class GlobalMoranResult:
    """
    Global Moran's I with inference under the randomization assumption.

    Attributes:
        I: Moran's I statistic
        expected_I: Expected I under spatial randomness, -1 / (N - 1)
        variance: Variance of I under randomization
        z_score: Standardized statistic
        p_value: Normal-approximation p-value for *alternative*
        n: Number of units
        alternative: Alternative hypothesis of the p-value
    """

    I: float  # noqa: E741
    expected_I: float
    variance: float
    z_score: float
    p_value: float
    n: int
    alternative: Alternative = Alternative.TWO_SIDED

    def as_tuple(self) -> tuple[float, float, float, float]:
        """Return ``(I, expected_I, variance, p_value)``."""
        return (self.I, self.expected_I, self.variance, self.p_value)

    def to_dict(self) -> dict[str, float | int | str]:
        """Plain-dict form for metadata and reports."""
        return {
            "I": self.I,
            "expected_I": self.expected_I,
            "variance": self.variance,
            "z_score": self.z_score,
            "p_value": self.p_value,
            "n": self.n,
            "alternative": self.alternative.value,
            "inference": "analytic",
        }


@dataclass(frozen=True, eq=False)
class PermutationResult:
    """
    Global Moran's I with a permutation reference distribution.

    Attributes:
        I: Observed Moran's I
        expected_I: Analytic expectation -1 / (N - 1)
        mean: Mean of the reference distribution
        variance: Variance of the reference distribution
        z_score: (I - mean) / sqrt(variance)
        p_value: (extreme count + 1) / (n_permutations + 1)
        n_permutations: Number of permutations drawn
        seed: Seed of the random source (None when unseeded)
        alternative: Alternative hypothesis of the p-value
        simulations: Moran's I of every permutation, in draw order
    """

    I: float  # noqa: E741
    expected_I: float
    mean: float
    variance: float
    z_score: float
    p_value: float
    n_permutations: int
    seed: int | None
    alternative: Alternative
    simulations: np.ndarray = field(repr=False)

    def as_tuple(self) -> tuple[float, float, float, float]:
        """Return ``(I, expected_I, variance, p_value)`` using the reference variance."""
        return (self.I, self.expected_I, self.variance, self.p_value)

    def to_dict(self) -> dict[str, float | int | str | None]:
        """Plain-dict form for metadata and reports."""
        return {
            "I": self.I,
            "expected_I": self.expected_I,
            "mean": self.mean,
            "variance": self.variance,
            "z_score": self.z_score,
            "p_value": self.p_value,
            "n_permutations": self.n_permutations,
            "seed": self.seed,
            "alternative": self.alternative.value,
            "inference": "permutation",
        }


def center_values(values: Sequence[float] | np.ndarray, weights: SpatialWeights) -> np.ndarray:
    """Return deviations from the mean, raising DegenerateInput for constant input."""
    arr = as_values(values, weights)
    if arr.size == 0 or np.ptp(arr) == 0:
        raise DegenerateInput("Moran's I is undefined for a zero-variance attribute")
    return arr - arr.mean()


def _statistic(z: np.ndarray, weights: SpatialWeights, s0: float, ss: float) -> float:
    lag = weights.sparse @ z
    return float(z.shape[0] / s0 * float(z @ lag) / ss)


def _check_s0(weights: SpatialWeights) -> float:
    s0 = weights.s0
    if s0 == 0:
        raise DegenerateInput("Moran's I is undefined for a weight matrix without links")
    return s0


def global_moran(values: Sequence[float] | np.ndarray, weights: SpatialWeights) -> float:
    """
    Compute global Moran's I.

    I = (N / S0) * sum_ij w_ij (x_i - xbar)(x_j - xbar) / sum_i (x_i - xbar)^2

    Raises:
        DegenerateInput: For a zero-variance attribute or an empty weight matrix
        InputMismatch: If the number of values differs from the number of units
    """
    z = center_values(values, weights)
    s0 = _check_s0(weights)
    return _statistic(z, weights, s0, float(z @ z))


def normal_p_value(
    z_score: float | np.ndarray,
    alternative: Alternative | str,
) -> float | np.ndarray:
    """Normal-approximation p-value of *z_score* for *alternative*."""
    alternative = Alternative(alternative)
    if alternative is Alternative.GREATER:
        return stats.norm.sf(z_score)
    if alternative is Alternative.LESS:
        return stats.norm.cdf(z_score)
    return 2.0 * stats.norm.sf(np.abs(z_score))


def pseudo_p_value(
    simulations: np.ndarray,
    observed: float,
    alternative: Alternative | str,
) -> float:
    """
    Permutation p-value: (count at least as extreme as *observed* + 1) / (P + 1).

    Two-sided extremeness is the distance from the reference distribution's mean.
    """
    alternative = Alternative(alternative)
    if alternative is Alternative.GREATER:
        extreme = int(np.sum(simulations >= observed))
    elif alternative is Alternative.LESS:
        extreme = int(np.sum(simulations <= observed))
    else:
        center = simulations.mean()
        extreme = int(np.sum(np.abs(simulations - center) >= abs(observed - center)))
    return (extreme + 1.0) / (simulations.shape[0] + 1.0)


def moran_test(
    values: Sequence[float] | np.ndarray,
    weights: SpatialWeights,
    alternative: Alternative | str = Alternative.TWO_SIDED,
) -> GlobalMoranResult:
    """
    Global Moran's I with analytic inference under randomization.

    Args:
        values: One value per unit in weights order
        weights: Spatial weights
        alternative: "greater", "less" or "two-sided"

    Returns:
        GlobalMoranResult

    Raises:
        DegenerateInput: For zero variance, fewer than four units, or a
            non-positive randomization variance
    """
    alternative = Alternative(alternative)
    z = center_values(values, weights)
    n = z.shape[0]
    if n < 4:
        raise DegenerateInput(f"Randomization variance needs at least 4 units, got {n}")

    s0 = _check_s0(weights)
    ss = float(z @ z)
    observed = _statistic(z, weights, s0, ss)

    s1, s2 = weights.s1, weights.s2
    s02 = s0 * s0
    n2 = n * n
    expected = -1.0 / (n - 1)
    kurtosis = (np.sum(z**4) / n) / (ss / n) ** 2
    a = n * ((n2 - 3 * n + 3) * s1 - n * s2 + 3 * s02)
    b = kurtosis * ((n2 - n) * s1 - 2 * n * s2 + 6 * s02)
    variance = float((a - b) / ((n - 1) * (n - 2) * (n - 3) * s02) - expected**2)
    if variance <= 0:
        raise DegenerateInput("Randomization variance of Moran's I is not positive")

    z_score = (observed - expected) / np.sqrt(variance)
    p_value = float(normal_p_value(z_score, alternative))

    logger.debug("Moran's I=%.4f E[I]=%.4f z=%.3f p=%.4g", observed, expected, z_score, p_value)
    return GlobalMoranResult(
        I=observed,
        expected_I=expected,
        variance=variance,
        z_score=float(z_score),
        p_value=p_value,
        n=n,
        alternative=alternative,
    )


def moran_permutation_test(
    values: Sequence[float] | np.ndarray,
    weights: SpatialWeights,
    n_permutations: int = DEFAULT_PERMUTATIONS,
    seed: int | None = None,
    alternative: Alternative | str = Alternative.TWO_SIDED,
) -> PermutationResult:
    """
    Global Moran's I with a permutation reference distribution.

    Each trial permutes the values across units (sampling without replacement)
    and recomputes I under the same weights. The random source is a numpy
    Generator seeded with *seed*, so the same seed and inputs reproduce the
    permutation sequence, the reference distribution and the p-value exactly.

    Args:
        values: One value per unit in weights order
        weights: Spatial weights
        n_permutations: Number of random permutations
        seed: Seed for the random source
        alternative: "greater", "less" or "two-sided"

    Returns:
        PermutationResult

    Raises:
        DegenerateInput: For zero variance or a degenerate reference distribution
    """
    if n_permutations < 1:
        raise ValueError(f"n_permutations must be >= 1, got {n_permutations}")
    alternative = Alternative(alternative)

    z = center_values(values, weights)
    n = z.shape[0]
    s0 = _check_s0(weights)
    ss = float(z @ z)
    observed = _statistic(z, weights, s0, ss)

    logger.info(f"Running {n_permutations} permutations of global Moran's I over {n} units")
    rng = np.random.default_rng(seed)
    simulations = np.empty(n_permutations, dtype=np.float64)
    for trial in range(n_permutations):
        simulations[trial] = _statistic(rng.permutation(z), weights, s0, ss)

    mean = float(simulations.mean())
    variance = float(simulations.var())
    if variance == 0:
        raise DegenerateInput("Permutation reference distribution has zero variance")

    result = PermutationResult(
        I=observed,
        expected_I=-1.0 / (n - 1),
        mean=mean,
        variance=variance,
        z_score=float((observed - mean) / np.sqrt(variance)),
        p_value=pseudo_p_value(simulations, observed, alternative),
        n_permutations=n_permutations,
        seed=seed,
        alternative=alternative,
        simulations=simulations,
    )
    logger.info(f"Moran's I={result.I:.4f} (pseudo p={result.p_value:.4f})")
    return result

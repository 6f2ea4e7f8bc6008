"""Spatial weights built from neighbour graphs."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp

from lisaflow.core.contiguity import NeighborGraph
from lisaflow.core.errors import DegenerateInput, InputMismatch
from lisaflow.core.schema import WeightStyle
from lisaflow.core.utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class SpatialWeights:
    """
    Weight matrix derived from a neighbour graph.

    Attributes:
        graph: The neighbour graph the weights encode
        style: Normalization scheme ("binary" or "row")
        sparse: N x N CSR matrix with a zero diagonal
    """

    graph: NeighborGraph
    style: WeightStyle
    sparse: sp.csr_matrix

    @property
    def n(self) -> int:
        """Number of units."""
        return self.graph.n_units

    @property
    def ids(self) -> tuple[str, ...]:
        """Unit identifiers in matrix order."""
        return self.graph.ids

    @property
    def islands(self) -> tuple[str, ...]:
        """Units with an all-zero row."""
        return self.graph.islands

    @property
    def row_sums(self) -> np.ndarray:
        """Sum of weights per row."""
        return np.asarray(self.sparse.sum(axis=1)).ravel()

    @property
    def s0(self) -> float:
        """Sum of all weights."""
        return float(self.sparse.sum())

    @property
    def s1(self) -> float:
        """0.5 * sum_ij (w_ij + w_ji)^2."""
        sym = self.sparse + self.sparse.T
        return float(0.5 * sym.multiply(sym).sum())

    @property
    def s2(self) -> float:
        """sum_i (w_i. + w_.i)^2."""
        row = np.asarray(self.sparse.sum(axis=1)).ravel()
        col = np.asarray(self.sparse.sum(axis=0)).ravel()
        return float(((row + col) ** 2).sum())

    def weight(self, i: int, j: int) -> float:
        """Return w(i, j)."""
        return float(self.sparse[i, j])

    def row(self, i: int) -> tuple[np.ndarray, np.ndarray]:
        """Return (neighbour indices, weights) of row *i*."""
        start, end = self.sparse.indptr[i], self.sparse.indptr[i + 1]
        return self.sparse.indices[start:end], self.sparse.data[start:end]

    def to_dense(self) -> np.ndarray:
        """Dense N x N array (for small graphs and tests)."""
        return self.sparse.toarray()

    def __repr__(self) -> str:
        return f"SpatialWeights(n={self.n}, style={self.style.value}, s0={self.s0:.3f})"


def build_weights(
    graph: NeighborGraph,
    style: WeightStyle | str = WeightStyle.ROW,
) -> SpatialWeights:
    """
    Convert a neighbour graph into a weight matrix.

    Args:
        graph: Neighbour graph
        style: "binary" (w_ij = 1 for neighbours) or "row" (w_ij = 1/deg(i))

    Returns:
        SpatialWeights with a zero diagonal

    Raises:
        DegenerateInput: If row standardization is requested and the graph has
            islands, whose rows are undefined
    """
    style = WeightStyle(style)
    n = graph.n_units

    if style is WeightStyle.ROW and graph.islands:
        raise DegenerateInput(
            "Row-standardized weights are undefined for units without neighbours: "
            + ", ".join(graph.islands),
            unit_ids=graph.islands,
        )

    rows: list[int] = []
    cols: list[int] = []
    data: list[float] = []
    for i in range(n):
        nbrs = graph.neighbor_indices(i)
        if not nbrs:
            continue
        value = 1.0 / len(nbrs) if style is WeightStyle.ROW else 1.0
        rows.extend([i] * len(nbrs))
        cols.extend(nbrs)
        data.extend([value] * len(nbrs))

    row_idx = np.asarray(rows, dtype=np.int64)
    col_idx = np.asarray(cols, dtype=np.int64)
    matrix = sp.csr_matrix(
        (np.asarray(data, dtype=np.float64), (row_idx, col_idx)),
        shape=(n, n),
    )
    matrix.sort_indices()

    weights = SpatialWeights(graph=graph, style=style, sparse=matrix)
    logger.info(f"Built {style.value} weights for {n} units ({graph.n_links} links)")
    return weights


def as_values(values: Sequence[float] | np.ndarray, weights: SpatialWeights) -> np.ndarray:
    """Coerce *values* to a float vector aligned with *weights*."""
    arr = np.asarray(values, dtype=np.float64).ravel()
    if arr.shape[0] != weights.n:
        raise InputMismatch(f"Got {arr.shape[0]} values for {weights.n} spatial units")
    if not np.all(np.isfinite(arr)):
        raise InputMismatch("Values must be finite (no NaN or infinity)")
    return arr


def spatial_lag(values: Sequence[float] | np.ndarray, weights: SpatialWeights) -> np.ndarray:
    """
    Compute the spatial lag of *values*.

    For each unit i this is sum_j w(i, j) * values[j]: the average of the
    neighbours' values under row standardization, their sum under binary weights.

    Args:
        values: One value per unit in weights order
        weights: Spatial weights

    Returns:
        Array of lagged values
    """
    arr = as_values(values, weights)
    return np.asarray(weights.sparse @ arr).ravel()

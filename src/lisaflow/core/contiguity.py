"""Contiguity neighbour graphs for polygon units.

Two polygons are queen neighbours when their boundaries intersect at any point and
rook neighbours when the boundary intersection has positive length (a shared edge).
Higher orders are rings: the order-k neighbours of a unit are the units exactly k
hops away in the order-1 graph.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
from shapely import STRtree
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from lisaflow.core.errors import InputMismatch, InvalidGeometry
from lisaflow.core.schema import ContiguityRule
from lisaflow.core.utils import get_logger

logger = get_logger(__name__)

POLYGONAL_TYPES = frozenset({"Polygon", "MultiPolygon"})


@dataclass(frozen=True)
class NeighborGraph:
    """Adjacency relation over a fixed, ordered set of units.

    Attributes:
        ids: Unit identifiers; position in this tuple is the unit index
        neighbors: Neighbour index set per unit (empty for islands)
        rule: Contiguity rule the graph was built with, if any
        order: Neighbour order (1 = direct contiguity)
    """

    ids: tuple[str, ...]
    neighbors: tuple[frozenset[int], ...]
    rule: ContiguityRule | None = None
    order: int = 1
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.ids) != len(self.neighbors):
            raise InputMismatch(
                f"Graph has {len(self.ids)} ids but {len(self.neighbors)} neighbour sets"
            )
        index = {uid: i for i, uid in enumerate(self.ids)}
        if len(index) != len(self.ids):
            raise InputMismatch("Unit identifiers must be unique")
        n = len(self.ids)
        for i, nbrs in enumerate(self.neighbors):
            if i in nbrs:
                raise InputMismatch(f"Unit {self.ids[i]!r} lists itself as a neighbour")
            if any(j < 0 or j >= n for j in nbrs):
                raise InputMismatch(f"Unit {self.ids[i]!r} has out-of-range neighbour indices")
        object.__setattr__(self, "_index", index)

    @property
    def n_units(self) -> int:
        """Number of units in the graph."""
        return len(self.ids)

    @property
    def cardinalities(self) -> np.ndarray:
        """Neighbour count per unit."""
        return np.array([len(nbrs) for nbrs in self.neighbors], dtype=np.int64)

    @property
    def islands(self) -> tuple[str, ...]:
        """Identifiers of units without neighbours."""
        return tuple(uid for uid, nbrs in zip(self.ids, self.neighbors) if not nbrs)

    @property
    def n_links(self) -> int:
        """Number of directed neighbour links."""
        return int(self.cardinalities.sum())

    def index_of(self, unit_id: str) -> int:
        """Return the index of *unit_id* or raise KeyError."""
        return self._index[unit_id]

    def neighbor_indices(self, i: int) -> tuple[int, ...]:
        """Neighbour indices of unit *i* in ascending unit order."""
        return tuple(sorted(self.neighbors[i]))

    def neighbors_of(self, unit_id: str) -> list[str]:
        """Neighbour identifiers of *unit_id* in unit order."""
        return [self.ids[j] for j in self.neighbor_indices(self.index_of(unit_id))]

    def to_dict(self) -> dict[str, list[str]]:
        """Return the adjacency as ``{unit_id: [neighbour ids in unit order]}``."""
        return {
            uid: [self.ids[j] for j in self.neighbor_indices(i)]
            for i, uid in enumerate(self.ids)
        }

    def is_symmetric(self) -> bool:
        """Check that every link i -> j has a matching j -> i."""
        return all(i in self.neighbors[j] for i, nbrs in enumerate(self.neighbors) for j in nbrs)

    def is_subgraph_of(self, other: NeighborGraph) -> bool:
        """True when every link of this graph also exists in *other* (same unit order)."""
        if self.ids != other.ids:
            raise InputMismatch("Graphs must share the same ordered unit ids to be compared")
        return all(nbrs <= other.neighbors[i] for i, nbrs in enumerate(self.neighbors))

    def __len__(self) -> int:
        return self.n_units

    def __repr__(self) -> str:
        rule = self.rule.value if self.rule is not None else "custom"
        return (
            f"NeighborGraph(n_units={self.n_units}, rule={rule}, order={self.order}, "
            f"islands={len(self.islands)})"
        )


def ensure_valid_polygons(
    unit_ids: Sequence[str],
    geometries: Sequence[BaseGeometry | None],
) -> None:
    """Raise InvalidGeometry for the first missing, non-polygonal or invalid geometry."""
    if len(unit_ids) != len(geometries):
        raise InputMismatch(
            f"Got {len(geometries)} geometries for {len(unit_ids)} unit identifiers"
        )
    for uid, geom in zip(unit_ids, geometries):
        if geom is None or geom.is_empty:
            raise InvalidGeometry(uid, "geometry is empty")
        if geom.geom_type not in POLYGONAL_TYPES:
            raise InvalidGeometry(uid, f"expected a polygon, got {geom.geom_type}")
        if not geom.is_valid:
            raise InvalidGeometry(uid, explain_validity(geom))


def build_contiguity(
    geometries: Sequence[BaseGeometry],
    unit_ids: Sequence[str],
    rule: ContiguityRule | str = ContiguityRule.QUEEN,
    order: int = 1,
) -> NeighborGraph:
    """
    Derive the neighbour graph of a set of polygons.

    Args:
        geometries: Polygon geometries in a shared CRS
        unit_ids: Unique identifier per geometry (same order)
        rule: "queen" (shared edge or vertex) or "rook" (shared edge only)
        order: Neighbour order; k > 1 returns the k-th ring

    Returns:
        NeighborGraph where every unit is present, islands included

    Raises:
        InputMismatch: If ids and geometries disagree in length or ids repeat
        InvalidGeometry: If a geometry is empty, non-polygonal or invalid
    """
    rule = ContiguityRule(rule)
    if order < 1:
        raise ValueError(f"order must be >= 1, got {order}")

    ids = tuple(str(uid) for uid in unit_ids)
    if len(set(ids)) != len(ids):
        raise InputMismatch("Unit identifiers must be unique")
    ensure_valid_polygons(ids, geometries)

    geoms = list(geometries)
    logger.info(f"Building {rule.value} contiguity for {len(geoms)} units")

    neighbor_sets: list[set[int]] = [set() for _ in geoms]
    if geoms:
        tree = STRtree(geoms)
        left, right = tree.query(geoms, predicate="intersects")
        for i, j in zip(left.tolist(), right.tolist()):
            if i >= j:
                continue
            if _touches(geoms[i], geoms[j], rule):
                neighbor_sets[i].add(j)
                neighbor_sets[j].add(i)

    graph = NeighborGraph(
        ids=ids,
        neighbors=tuple(frozenset(s) for s in neighbor_sets),
        rule=rule,
    )
    if graph.islands:
        logger.warning(f"{len(graph.islands)} unit(s) have no {rule.value} neighbours")

    if order > 1:
        graph = higher_order(graph, order)
    logger.debug("Contiguity graph built: %s", graph)
    return graph


def _touches(a: BaseGeometry, b: BaseGeometry, rule: ContiguityRule) -> bool:
    """Boundary intersection test for a candidate pair."""
    shared = a.boundary.intersection(b.boundary)
    if shared.is_empty:
        return False
    if rule is ContiguityRule.QUEEN:
        return True
    return shared.length > 0


def higher_order(graph: NeighborGraph, k: int) -> NeighborGraph:
    """
    Return the k-th order ring of *graph*.

    Unit j is an order-k neighbour of i when the shortest path between them in
    *graph* has exactly k hops; units reachable in fewer hops are excluded.
    """
    if k < 1:
        raise ValueError(f"order must be >= 1, got {k}")
    if graph.order != 1:
        raise ValueError("Neighbour rings must be derived from an order-1 graph")
    if k == 1:
        return graph

    rings: list[frozenset[int]] = []
    for i in range(graph.n_units):
        visited = {i}
        frontier = {i}
        for _ in range(k):
            reached: set[int] = set()
            for u in frontier:
                reached |= graph.neighbors[u]
            frontier = reached - visited
            visited |= frontier
            if not frontier:
                break
        rings.append(frozenset(frontier))

    logger.debug("Computed order-%s neighbour rings for %s units", k, graph.n_units)
    return NeighborGraph(ids=graph.ids, neighbors=tuple(rings), rule=graph.rule, order=k)


def from_mapping(
    mapping: Mapping[str, Iterable[str]],
    ids: Sequence[str] | None = None,
) -> NeighborGraph:
    """
    Build a graph from an explicit ``{unit_id: [neighbour ids]}`` adjacency.

    Args:
        mapping: Neighbour ids per unit
        ids: Unit order; defaults to the mapping's key order. Units absent
            from *mapping* are islands.

    Raises:
        InputMismatch: If a neighbour id is not a known unit or a unit lists itself
    """
    ordered = tuple(str(uid) for uid in (ids if ids is not None else mapping.keys()))
    index = {uid: i for i, uid in enumerate(ordered)}

    unknown_keys = [str(uid) for uid in mapping if str(uid) not in index]
    if unknown_keys:
        raise InputMismatch(f"Adjacency lists unknown units: {sorted(unknown_keys)}")

    neighbors: list[set[int]] = [set() for _ in ordered]
    for uid, nbr_ids in mapping.items():
        i = index[str(uid)]
        for nid in nbr_ids:
            key = str(nid)
            if key not in index:
                raise InputMismatch(f"Unit {uid!r} lists unknown neighbour {key!r}")
            neighbors[i].add(index[key])

    return NeighborGraph(ids=ordered, neighbors=tuple(frozenset(s) for s in neighbors))

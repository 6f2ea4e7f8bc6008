"""Chicago crime dataset adapter (community areas and crime points)."""

from lisaflow.datasets.chicago_crime.mapping import load_community_areas, load_crimes
from lisaflow.datasets.chicago_crime.schema import COMMUNITY_AREA_SCHEMA

__all__ = [
    "load_community_areas",
    "load_crimes",
    "COMMUNITY_AREA_SCHEMA",
]

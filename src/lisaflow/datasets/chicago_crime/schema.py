"""Schema definition for the Chicago crime / community area dataset."""

from collections.abc import Mapping
from typing import Any

from lisaflow.core.schema import UnitMetadata, UnitSchema
from lisaflow.core.utils import CRS

# Community area boundaries as published on the Chicago data portal
COMMUNITY_AREA_ID_COL = "area_numbe"
COMMUNITY_AREA_NAME_COL = "community"

# Socrata "Crimes - 2001 to Present" columns
CRIME_LON_COL = "longitude"
CRIME_LAT_COL = "latitude"
CRIME_CATEGORY_COL = "primary_type"
CRIME_COLUMNS = [
    "id",
    "date",
    CRIME_CATEGORY_COL,
    "description",
    "arrest",
    "domestic",
    "community_area",
    CRIME_LAT_COL,
    CRIME_LON_COL,
]

# Projected CRS used for the point-in-polygon join (meters)
CHICAGO_PROJECTED_CRS = CRS.NAD83_ILLINOIS_EAST.value

COMMUNITY_AREA_SCHEMA = UnitSchema(id_col=COMMUNITY_AREA_ID_COL)


def create_chicago_metadata(
    *,
    dataset_name: str = "chicago_crime",
    crs: str = CRS.WGS84.value,
    custom: Mapping[str, Any] | None = None,
) -> UnitMetadata:
    """Create typed metadata tailored for Chicago community areas."""
    return UnitMetadata(
        dataset_name=dataset_name,
        crs=crs,
        custom={"unit": "community_area", **dict(custom or {})},
    )

"""Spatial pipeline steps: reprojection, event counting and attribute joins.

Each step:
- Inherits from Step base class
- Registers derived columns via FeatureProvenance
- Supports Pydantic config models for validation
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import polars as pl
from pydantic import BaseModel, Field

from lisaflow.core.pipeline import Step
from lisaflow.core.schema import FeatureProvenance
from lisaflow.core.spatial import (
    count_events,
    join_attributes,
    load_events,
    read_table,
    reproject_points,
    reproject_units,
)
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Pydantic Config Models for Step Parameters
# -----------------------------------------------------------------------------


class ReprojectUnitsConfig(BaseModel):
    """Configuration for unit reprojection step."""

    target_crs: str = Field(..., description="Target CRS (e.g., 'EPSG:26971')")


class CountEventsConfig(BaseModel):
    """Configuration for point-in-polygon event counting."""

    events_path: str | None = Field(default=None, description="Event file (parquet or CSV)")
    lon_col: str = Field(default="longitude", description="Event longitude / x column")
    lat_col: str = Field(default="latitude", description="Event latitude / y column")
    events_crs: str = Field(default="EPSG:4326", description="CRS of the event coordinates")
    category_col: str | None = Field(default=None, description="Event category column")
    category: str | None = Field(default=None, description="Only count this category")
    output_col: str = Field(default="event_count", description="Name of the count column")


class JoinAttributesConfig(BaseModel):
    """Configuration for joining a unit attribute table."""

    path: str = Field(..., description="Attribute table (parquet or CSV)")
    on: str | None = Field(default=None, description="Key column; defaults to the unit id column")
    value_cols: list[str] = Field(
        default_factory=list, description="Joined columns to register as analysable values"
    )


# -----------------------------------------------------------------------------
# Spatial Steps
# -----------------------------------------------------------------------------


class ReprojectUnitsStep(Step):
    """Transform unit geometries to a different CRS.

    Inputs:
        - geometry_col from UnitSchema

    Outputs:
        - Reprojected geometry column
        - Updated CRS in metadata
    """

    def __init__(self, target_crs: str) -> None:
        self.target_crs = target_crs

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute reprojection."""
        return reproject_units(unit_frame, self.target_crs)

    def __repr__(self) -> str:
        return f"ReprojectUnitsStep(target_crs={self.target_crs!r})"


class CountEventsStep(Step):
    """Count point events inside each unit.

    Events come from *events* when given, otherwise from *events_path*. They are
    projected into the units' CRS before the point-in-polygon test.

    Inputs:
        - Event coordinates (lon_col, lat_col)
        - Unit geometries

    Outputs:
        - {output_col}: number of events per unit (zero when none)
    """

    def __init__(
        self,
        events_path: str | None = None,
        lon_col: str = "longitude",
        lat_col: str = "latitude",
        events_crs: str = "EPSG:4326",
        category_col: str | None = None,
        category: str | None = None,
        output_col: str = "event_count",
        events: pl.DataFrame | None = None,
    ) -> None:
        if events is None and events_path is None:
            raise ValueError("CountEventsStep needs either events or events_path")
        self.events_path = events_path
        self.lon_col = lon_col
        self.lat_col = lat_col
        self.events_crs = events_crs
        self.category_col = category_col
        self.category = category
        self.output_col = output_col
        self.events = events

    def _events(self) -> pl.DataFrame:
        if self.events is not None:
            return self.events
        return load_events(self.events_path, self.lon_col, self.lat_col, self.category_col)

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute point-in-polygon counting."""
        events = reproject_points(
            self._events(),
            self.events_crs,
            unit_frame.metadata.crs,
            lon_col=self.lon_col,
            lat_col=self.lat_col,
            x_col="__x",
            y_col="__y",
        )
        result = count_events(
            unit_frame,
            events,
            output_col=self.output_col,
            category=self.category,
            category_col=self.category_col,
            x_col="__x",
            y_col="__y",
        )

        provenance = FeatureProvenance(
            produced_by="CountEventsStep",
            inputs=[self.lon_col, self.lat_col],
            tags={"spatial"},
            description=f"Events per unit (category={self.category})",
            metadata={"events_crs": self.events_crs, "category": self.category},
        )
        return result.register_feature(
            self.output_col,
            {"source_step": "CountEventsStep", "inputs": [self.lon_col, self.lat_col]},
            provenance=provenance,
            value=True,
        )


class JoinAttributesStep(Step):
    """Attach a per-unit attribute table keyed by unit identifier.

    Outputs:
        - Every column of the table, in unit order
    """

    def __init__(
        self,
        path: str,
        on: str | None = None,
        value_cols: list[str] | None = None,
    ) -> None:
        self.path = path
        self.on = on
        self.value_cols = list(value_cols or [])

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the attribute join."""
        result = join_attributes(unit_frame, read_table(self.path), on=self.on)
        for col in self.value_cols:
            result = result.register_feature(
                col,
                {"source_step": "JoinAttributesStep", "inputs": [self.path]},
                value=True,
            )
        return result

"""Output materialisation adapters for analysed unit tables."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

import geopandas as gpd
from pydantic import BaseModel, Field, field_validator

from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from lisaflow.core.registry import OutputAdapterRegistry

logger = get_logger(__name__)

TABLE_FORMATS = frozenset({"parquet", "csv", "json"})


class BaseOutputAdapter(ABC):
    """Abstract base class for materialising UnitFrames to external targets."""

    @abstractmethod
    def write(self, unit_frame: UnitFrame, **kwargs: Any) -> Path:
        """Persist the provided UnitFrame to the adapter's target and return its path."""
        raise NotImplementedError

    def describe(self) -> str | None:  # pragma: no cover - simple accessor
        """Optional human-readable description of the adapter."""
        return None


class TableOutputConfig(BaseModel):
    """Configuration for the tabular output adapter."""

    path: str = Field(..., description="Destination file")
    format: str = Field(default="parquet", description="parquet, csv or json")
    include_geometry: bool = Field(default=False, description="Keep the WKT geometry column")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Restrict to polars writers."""
        v = v.lower()
        if v not in TABLE_FORMATS:
            raise ValueError(f"Unsupported table format: {v}")
        return v


class TableOutputAdapter(BaseOutputAdapter):
    """Write the per-unit table (identifiers, attributes, LISA columns) with polars."""

    def __init__(self, path: str, format: str = "parquet", include_geometry: bool = False) -> None:
        self.path = Path(path)
        self.format = format.lower()
        if self.format not in TABLE_FORMATS:
            raise ValueError(f"Unsupported table format: {format}")
        self.include_geometry = include_geometry

    def write(self, unit_frame: UnitFrame, **kwargs: Any) -> Path:
        df = unit_frame.collect()
        if not self.include_geometry:
            df = df.drop(unit_frame.schema.geometry_col)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.format == "parquet":
            df.write_parquet(self.path)
        elif self.format == "csv":
            df.write_csv(self.path)
        else:
            df.write_json(self.path)

        logger.info(f"Wrote {df.height} units to {self.path} ({self.format})")
        return self.path

    def describe(self) -> str | None:  # pragma: no cover - simple accessor
        return f"{self.format} table at {self.path}"


class GeoJSONOutputConfig(BaseModel):
    """Configuration for the GeoJSON output adapter."""

    path: str = Field(..., description="Destination .geojson file")
    properties: list[str] | None = Field(
        default=None, description="Columns to export as feature properties (default: all)"
    )


class GeoJSONOutputAdapter(BaseOutputAdapter):
    """
    Write units as a GeoJSON FeatureCollection through geopandas.

    Each feature carries the unit geometry plus its attributes, so cluster maps
    can be drawn directly by an external mapping tool. The collection declares the
    units' CRS. Global results recorded in the metadata go to a
    ``<stem>.results.json`` file next to it.
    """

    def __init__(self, path: str, properties: list[str] | None = None) -> None:
        self.path = Path(path)
        self.properties = properties

    @property
    def results_path(self) -> Path:
        return self.path.with_name(f"{self.path.stem}.results.json")

    def write(self, unit_frame: UnitFrame, **kwargs: Any) -> Path:
        schema = unit_frame.schema
        df = unit_frame.collect()
        columns = self.properties or [c for c in df.columns if c != schema.geometry_col]
        if schema.id_col not in columns:
            columns = [schema.id_col, *columns]

        gdf = gpd.GeoDataFrame(
            df.select(columns).to_dict(as_series=False),
            geometry=gpd.GeoSeries(unit_frame.geometries()),
            crs=unit_frame.metadata.crs,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        gdf.to_file(self.path, driver="GeoJSON")
        logger.info(f"Wrote {len(gdf)} features to {self.path}")

        if unit_frame.metadata.results:
            self.results_path.write_text(
                json.dumps(unit_frame.metadata.results, indent=2, default=str)
            )
            logger.debug("Wrote global results to %s", self.results_path)
        return self.path

    def describe(self) -> str | None:  # pragma: no cover - simple accessor
        return f"GeoJSON FeatureCollection at {self.path}"


def register_builtin_output_adapters(registry: OutputAdapterRegistry) -> None:
    """Register the built-in adapters with *registry*."""
    registry.register(
        "table",
        TableOutputAdapter,
        tags=["io"],
        description="Per-unit table as parquet, CSV or JSON",
        config_model=TableOutputConfig,
    )
    registry.register(
        "geojson",
        GeoJSONOutputAdapter,
        tags=["io"],
        description="GeoJSON FeatureCollection with geometry and cluster labels",
        config_model=GeoJSONOutputConfig,
    )


def adapter_for_format(path: str, format: str) -> BaseOutputAdapter:
    """Pick the built-in adapter matching an output format name."""
    if format.lower() == "geojson":
        return GeoJSONOutputAdapter(path)
    return TableOutputAdapter(path, format=format)

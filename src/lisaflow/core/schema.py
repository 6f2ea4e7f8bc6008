"""Schema and configuration models for spatial units and analyses."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContiguityRule(str, Enum):
    """Adjacency rule for polygons."""

    ROOK = "rook"  # shared edge
    QUEEN = "queen"  # shared edge or vertex

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class WeightStyle(str, Enum):
    """Normalization scheme applied to a neighbour graph."""

    BINARY = "binary"
    ROW = "row"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class Alternative(str, Enum):
    """Alternative hypothesis used for p-values."""

    GREATER = "greater"
    LESS = "less"
    TWO_SIDED = "two-sided"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class FeatureProvenance(BaseModel):
    """Record describing how a derived column was produced during a pipeline run."""

    produced_by: str | None = None
    inputs: list[str] = Field(default_factory=list)
    tags: set[str] = Field(default_factory=set)
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UnitSchema(BaseModel):
    """
    Describes the structure of a spatial unit table.

    Attributes:
        id_col: Name of the unique unit identifier column (string codes)
        geometry_col: Name of the WKT geometry column
        value_cols: Numeric attribute columns (e.g. event counts)
        feature_provenance: Provenance metadata keyed by derived column name
    """

    id_col: str = "unit_id"
    geometry_col: str = "geometry"
    value_cols: list[str] = Field(default_factory=list)
    feature_provenance: dict[str, FeatureProvenance] = Field(default_factory=dict)

    def compatibility_issues(self, other: UnitSchema) -> list[str]:
        """Return human-readable compatibility issues when transitioning to *other*."""

        issues: list[str] = []

        if self.id_col != other.id_col:
            issues.append(f"id_col mismatch: {self.id_col!r} -> {other.id_col!r}")

        if self.geometry_col != other.geometry_col:
            issues.append(
                f"geometry_col mismatch: {self.geometry_col!r} -> {other.geometry_col!r}"
            )

        missing_features = set(self.feature_provenance) - set(other.feature_provenance)
        if missing_features:
            issues.append(
                "missing feature provenance entries: " + ", ".join(sorted(missing_features))
            )

        return issues


class UnitMetadata(BaseModel):
    """
    Metadata about a spatial unit dataset.

    Attributes:
        dataset_name: Name of the dataset
        crs: Coordinate reference system of the geometries
        feature_catalog: Free-form description of registered columns
        feature_provenance: Provenance records keyed by column name
        results: Named scalar analysis results (e.g. global Moran's I)
        custom: Additional custom metadata
    """

    dataset_name: str
    crs: str | None = None
    feature_catalog: dict[str, Any] = Field(default_factory=dict)
    feature_provenance: dict[str, FeatureProvenance] = Field(default_factory=dict)
    results: dict[str, dict[str, Any]] = Field(default_factory=dict)
    custom: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)


class DatasetConfig(BaseModel):
    """
    Configuration for loading boundaries and events.

    Attributes:
        dataset_name: Name of the dataset
        boundaries_path: Polygon boundary file (GeoJSON, parquet or CSV with WKT)
        events_path: Point event file (parquet or CSV); optional when the
            boundary file already carries the attribute to analyse
        unit_id_col: Unique identifier column in the boundary file
        geometry_col: WKT geometry column for tabular boundary files
        lon_col: Event longitude / x column
        lat_col: Event latitude / y column
        category_col: Event category label column
        crs: CRS of the boundary file; None keeps the CRS the file declares (WGS84
            for tabular files)
        events_crs: CRS of the event coordinates
        target_crs: Common CRS both layers are projected into before the join
    """

    dataset_name: str
    boundaries_path: str
    events_path: str | None = None
    unit_id_col: str = "unit_id"
    geometry_col: str = "geometry"
    lon_col: str = "longitude"
    lat_col: str = "latitude"
    category_col: str | None = None
    crs: str | None = None
    events_crs: str = "EPSG:4326"
    target_crs: str | None = None


class ContiguityConfig(BaseModel):
    """Neighbour graph settings."""

    rule: ContiguityRule = ContiguityRule.QUEEN
    order: int = Field(default=1, ge=1)


class WeightsConfig(BaseModel):
    """Spatial weights settings."""

    style: WeightStyle = WeightStyle.ROW


class InferenceConfig(BaseModel):
    """Significance testing settings."""

    permutations: int = Field(default=999, ge=0)
    seed: int | None = None
    alternative: Alternative = Alternative.TWO_SIDED
    alpha: float = Field(default=0.05, gt=0, lt=1)


class OutputConfig(BaseModel):
    """Where and how to write the per-unit result table."""

    path: str | None = None
    format: str = "parquet"

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Restrict to formats the output adapters understand."""
        v = v.lower()
        if v not in {"parquet", "csv", "json", "geojson"}:
            raise ValueError(f"Unsupported output format: {v}")
        return v


class AnalysisConfig(BaseModel):
    """
    Configuration for a recipe run.

    Attributes:
        dataset: Dataset name
        recipe: Recipe name
        value_col: Attribute to analyse (defaults to the event count column)
        category: Optional event category filter applied before counting
        contiguity: Neighbour graph settings
        weights: Spatial weights settings
        inference: Permutation / significance settings
        output: Output table settings
        steps: Optional explicit step definitions overriding the recipe pipeline
    """

    dataset: str
    recipe: str
    value_col: str = "event_count"
    category: str | None = None
    contiguity: ContiguityConfig = Field(default_factory=ContiguityConfig)
    weights: WeightsConfig = Field(default_factory=WeightsConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    steps: list[Any] = Field(default_factory=list)

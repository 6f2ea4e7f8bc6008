"""UnitFrame: Central abstraction for polygon units and their attributes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import polars as pl
from shapely.geometry.base import BaseGeometry
from shapely.wkt import loads as wkt_loads

from lisaflow.core.errors import InputMismatch
from lisaflow.core.schema import FeatureProvenance, UnitMetadata, UnitSchema
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.weights import SpatialWeights

logger = get_logger(__name__)


class UnitFrame:
    """
    Central abstraction for spatial units.

    Wraps a Polars DataFrame with one row per polygon (identifier, WKT geometry and
    numeric attributes) together with its schema, metadata and, once built, the
    spatial weights over those units. Every method returns a new UnitFrame; units
    are only ever extended with derived columns, never removed or reordered.

    Attributes:
        data: The underlying Polars DataFrame
        schema: The unit schema describing column structure
        metadata: Metadata about the dataset (CRS, results, provenance)
        weights: Spatial weights aligned with the row order, if built
    """

    def __init__(
        self,
        data: pl.DataFrame,
        schema: UnitSchema,
        metadata: UnitMetadata,
        weights: SpatialWeights | None = None,
    ) -> None:
        """
        Initialize a UnitFrame.

        Args:
            data: Polars DataFrame containing the unit table
            schema: Schema describing the unit structure
            metadata: Metadata about the dataset
            weights: Optional spatial weights aligned with *data*

        Raises:
            InputMismatch: If required columns are missing, identifiers repeat,
                or the weights do not match the unit order
        """
        missing = [c for c in (schema.id_col, schema.geometry_col) if c not in data.columns]
        if missing:
            raise InputMismatch(f"Unit table is missing required columns: {missing}")

        if data[schema.id_col].dtype != pl.Utf8:
            data = data.with_columns(pl.col(schema.id_col).cast(pl.Utf8))
        if data[schema.id_col].null_count():
            raise InputMismatch("Unit identifiers must not be null")
        if data[schema.id_col].n_unique() != data.height:
            raise InputMismatch("Unit identifiers must be unique")

        if weights is not None and tuple(data[schema.id_col].to_list()) != weights.ids:
            raise InputMismatch("Spatial weights do not match the unit identifiers and order")

        # Keep provenance in sync between schema and metadata.
        combined_provenance = dict(metadata.feature_provenance)
        combined_provenance.update(schema.feature_provenance)
        if combined_provenance != metadata.feature_provenance:
            metadata = metadata.model_copy(update={"feature_provenance": combined_provenance})
        if combined_provenance != schema.feature_provenance:
            schema = schema.model_copy(update={"feature_provenance": combined_provenance})

        self.data = data
        self.schema = schema
        self.metadata = metadata
        self.weights = weights
        logger.debug(
            f"Created UnitFrame for dataset '{metadata.dataset_name}' with {data.height} units"
        )

    def _spawn(
        self,
        *,
        data: pl.DataFrame | None = None,
        schema: UnitSchema | None = None,
        metadata: UnitMetadata | None = None,
        weights: SpatialWeights | None = None,
    ) -> UnitFrame:
        """Internal helper to create new UnitFrame instances preserving invariants."""

        return UnitFrame(
            data if data is not None else self.data,
            schema or self.schema,
            metadata or self.metadata,
            weights if weights is not None else self.weights,
        )

    def with_data(self, data: pl.DataFrame) -> UnitFrame:
        """
        Create a new UnitFrame with a different DataFrame.

        The new table must keep the same units in the same order.
        """
        if data.height != self.data.height:
            raise InputMismatch(
                f"Unit count changed from {self.data.height} to {data.height}"
            )
        if data[self.schema.id_col].cast(pl.Utf8).to_list() != self.ids:
            raise InputMismatch("Unit identifiers or their order changed")
        return self._spawn(data=data)

    def with_columns(self, *exprs: pl.Expr, **named_exprs: pl.Expr) -> UnitFrame:
        """Return a new UnitFrame with additional or transformed columns."""

        return self.with_data(self.data.with_columns(*exprs, **named_exprs))

    def with_metadata(self, **updates: Any) -> UnitFrame:
        """Create a new UnitFrame with updated metadata."""
        return self._spawn(metadata=self.metadata.model_copy(update=updates))

    def with_schema(self, **updates: Any) -> UnitFrame:
        """Return a new UnitFrame with schema updates applied immutably."""
        return self._spawn(schema=self.schema.model_copy(update=updates))

    def with_weights(self, weights: SpatialWeights) -> UnitFrame:
        """Return a new UnitFrame carrying *weights*."""
        return self._spawn(weights=weights)

    def register_feature(
        self,
        name: str,
        info: dict[str, Any],
        *,
        provenance: FeatureProvenance | None = None,
        value: bool = False,
    ) -> UnitFrame:
        """Return a new UnitFrame with the feature catalog updated.

        Args:
            name: Column identifier to register.
            info: Arbitrary metadata describing the column.
            provenance: Optional provenance record; inferred from *info* when omitted.
            value: Also add the column to ``schema.value_cols``.
        """
        catalog = dict(self.metadata.feature_catalog)
        catalog[name] = info

        if provenance is None:
            provenance = FeatureProvenance(
                produced_by=info.get("source_step"),
                inputs=list(info.get("inputs", [])),
                tags=set(info.get("tags", [])),
                description=info.get("description"),
                metadata={
                    k: v
                    for k, v in info.items()
                    if k not in {"source_step", "inputs", "tags", "description"}
                },
            )

        metadata_provenance = dict(self.metadata.feature_provenance)
        metadata_provenance[name] = provenance
        schema_provenance = dict(self.schema.feature_provenance)
        schema_provenance[name] = provenance

        value_cols = list(self.schema.value_cols)
        if value and name not in value_cols:
            value_cols.append(name)

        logger.debug(
            "Registering feature '%s' on dataset '%s'", name, self.metadata.dataset_name
        )
        return self._spawn(
            schema=self.schema.model_copy(
                update={"feature_provenance": schema_provenance, "value_cols": value_cols}
            ),
            metadata=self.metadata.model_copy(
                update={"feature_catalog": catalog, "feature_provenance": metadata_provenance}
            ),
        )

    def record_result(self, name: str, result: dict[str, Any]) -> UnitFrame:
        """Return a new UnitFrame with a named scalar result stored in metadata."""
        results = dict(self.metadata.results)
        results[name] = dict(result)
        return self.with_metadata(results=results)

    @property
    def ids(self) -> list[str]:
        """Unit identifiers in row order."""
        return self.data[self.schema.id_col].to_list()

    def geometries(self) -> list[BaseGeometry]:
        """Parse the WKT geometry column into shapely geometries."""
        return [wkt_loads(wkt) for wkt in self.data[self.schema.geometry_col].to_list()]

    def values(self, column: str) -> np.ndarray:
        """Return *column* as a float array in unit order."""
        if column not in self.data.columns:
            raise InputMismatch(f"Column '{column}' not found in unit table")
        series = self.data[column]
        if series.null_count():
            raise InputMismatch(f"Column '{column}' has {series.null_count()} missing values")
        return series.cast(pl.Float64).to_numpy()

    def select(self, *exprs: pl.Expr | str) -> pl.DataFrame:
        """Select columns from the unit table (returns a plain DataFrame)."""
        return self.data.select(*exprs)

    def collect(self) -> pl.DataFrame:
        """Return the unit table."""
        return self.data

    def __repr__(self) -> str:
        """String representation of the UnitFrame."""

        return (
            "UnitFrame(\n"
            f"  dataset={self.metadata.dataset_name},\n"
            f"  units={self.data.height},\n"
            f"  crs={self.metadata.crs},\n"
            f"  weights={self.weights!r}\n"
            ")"
        )

    def __len__(self) -> int:
        """Return the number of units."""
        return self.data.height

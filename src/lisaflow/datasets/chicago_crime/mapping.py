"""Data loading and mapping for the Chicago crime dataset."""

from pathlib import Path

import polars as pl

from lisaflow.core.schema import DatasetConfig
from lisaflow.core.spatial import load_events, load_units
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import get_logger
from lisaflow.datasets.chicago_crime.schema import (
    COMMUNITY_AREA_ID_COL,
    CRIME_CATEGORY_COL,
    CRIME_LAT_COL,
    CRIME_LON_COL,
    create_chicago_metadata,
)

logger = get_logger(__name__)


def load_community_areas(
    path: str | Path,
    config: DatasetConfig | None = None,
) -> UnitFrame:
    """
    Load Chicago community area boundaries as a UnitFrame.

    Args:
        path: GeoJSON (or parquet/CSV with WKT) boundary file
        config: Optional dataset configuration overriding id column and CRS

    Returns:
        UnitFrame keyed by community area number
    """
    id_col = config.unit_id_col if config is not None else COMMUNITY_AREA_ID_COL
    crs = config.crs if config is not None else None
    geometry_col = config.geometry_col if config is not None else "geometry"

    units = load_units(path, id_col=id_col, crs=crs, geometry_col=geometry_col)
    metadata = create_chicago_metadata(
        dataset_name=config.dataset_name if config is not None else "chicago_crime",
        crs=units.metadata.crs,
    )
    return units.with_metadata(**metadata.model_dump(include={"dataset_name", "crs", "custom"}))


def clean_crimes(df: pl.DataFrame) -> pl.DataFrame:
    """
    Apply basic cleaning to Chicago crime records.

    Args:
        df: Raw crime table

    Returns:
        Cleaned table
    """
    logger.info("Applying data cleaning to Chicago crime data")
    df = df.filter(
        pl.col(CRIME_LAT_COL).is_between(-90, 90) & pl.col(CRIME_LON_COL).is_between(-180, 180)
    )
    if CRIME_CATEGORY_COL in df.columns:
        df = df.with_columns(pl.col(CRIME_CATEGORY_COL).cast(pl.Utf8).str.to_uppercase())
    return df


def load_crimes(path: str | Path, apply_cleaning: bool = True) -> pl.DataFrame:
    """
    Load Chicago crime records (parquet or CSV export of the Socrata dataset).

    Args:
        path: Crime file
        apply_cleaning: Whether to apply data cleaning

    Returns:
        Crime table with Float64 coordinates
    """
    df = load_events(path, CRIME_LON_COL, CRIME_LAT_COL)
    if apply_cleaning:
        df = clean_crimes(df)
    logger.info(f"Loaded {df.height} crime records")
    return df

"""Loading, reprojection and point-to-polygon aggregation for spatial units."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
import polars as pl
import shapely
from pyproj import Transformer
from shapely import STRtree, ops
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from lisaflow.core.contiguity import ensure_valid_polygons
from lisaflow.core.errors import InputMismatch, InvalidGeometry
from lisaflow.core.schema import UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import CRS, get_logger, normalize_crs

logger = get_logger(__name__)

VECTOR_SUFFIXES = frozenset({".geojson", ".json", ".gpkg", ".shp", ".fgb"})


def read_table(path: str | Path) -> pl.DataFrame:
    """Read a parquet or CSV file into a DataFrame."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix == ".csv":
        return pl.read_csv(path)
    raise ValueError(f"Unsupported file type: {path.suffix} ({path})")


def _read_vector(path: Path, geometry_col: str) -> tuple[pl.DataFrame, str | None]:
    """Read a vector boundary file into attribute rows plus WKT, with its declared CRS."""
    gdf = gpd.read_file(path)
    geometry_name = gdf.geometry.name
    columns = {col: gdf[col].tolist() for col in gdf.columns if col != geometry_name}
    columns[geometry_col] = gdf.geometry.to_wkt().tolist()
    declared = gdf.crs.to_string() if gdf.crs is not None else None
    return pl.DataFrame(columns), declared


def parse_geometries(unit_ids: list[str], wkts: list[str | None]) -> list[BaseGeometry]:
    """Parse WKT strings, reporting the unit id of any unreadable geometry."""
    geoms = []
    for uid, wkt in zip(unit_ids, wkts):
        if wkt is None:
            raise InvalidGeometry(uid, "geometry is missing")
        try:
            geoms.append(shapely.from_wkt(wkt))
        except GEOSException as exc:
            raise InvalidGeometry(uid, f"cannot parse WKT ({exc})") from exc
    return geoms


def units_from_frame(
    data: pl.DataFrame,
    dataset_name: str,
    id_col: str = "unit_id",
    geometry_col: str = "geometry",
    crs: str | CRS = CRS.WGS84,
) -> UnitFrame:
    """
    Validate a table of WKT polygons and wrap it in a UnitFrame.

    Args:
        data: One row per unit with an identifier and a WKT geometry column
        dataset_name: Name recorded in the metadata
        id_col: Unique identifier column
        geometry_col: WKT geometry column
        crs: CRS of the geometries

    Returns:
        UnitFrame with string identifiers

    Raises:
        InputMismatch: If columns are missing or identifiers repeat
        InvalidGeometry: If a geometry is unreadable, non-polygonal or invalid
    """
    for col in (id_col, geometry_col):
        if col not in data.columns:
            raise InputMismatch(f"Unit table has no column '{col}'")

    data = data.with_columns(pl.col(id_col).cast(pl.Utf8))
    duplicated = data.filter(pl.col(id_col).is_duplicated())[id_col].unique().sort().to_list()
    if duplicated:
        raise InputMismatch(f"Duplicate unit identifiers: {duplicated}")

    ids = data[id_col].to_list()
    ensure_valid_polygons(ids, parse_geometries(ids, data[geometry_col].to_list()))

    schema = UnitSchema(id_col=id_col, geometry_col=geometry_col)
    metadata = UnitMetadata(dataset_name=dataset_name, crs=normalize_crs(crs))
    return UnitFrame(data, schema, metadata)


def load_units(
    path: str | Path,
    id_col: str = "unit_id",
    crs: str | CRS | None = None,
    geometry_col: str = "geometry",
    dataset_name: str | None = None,
) -> UnitFrame:
    """
    Load polygon units from a vector file, or from parquet/CSV with a WKT column.

    Vector files (GeoJSON, GeoPackage, shapefile, FlatGeobuf) are read with
    geopandas and keep the CRS they declare. An explicit *crs* relabels the
    geometries without transforming them; tabular files default to WGS84.

    Args:
        path: Boundary file
        id_col: Unique identifier property or column
        crs: CRS of the geometries, overriding the one the file declares
        geometry_col: WKT column name (output column name for vector files)
        dataset_name: Dataset name; defaults to the file stem

    Returns:
        UnitFrame
    """
    path = Path(path)
    logger.info(f"Loading spatial units from: {path}")
    declared = None
    if path.suffix.lower() in VECTOR_SUFFIXES:
        data, declared = _read_vector(path, geometry_col)
    else:
        data = read_table(path)

    if crs is None:
        crs = declared or CRS.WGS84
    elif declared is not None and normalize_crs(crs) != declared:
        logger.warning(
            f"{path} declares {declared}; treating its coordinates as {normalize_crs(crs)}"
        )

    unit_frame = units_from_frame(
        data,
        dataset_name=dataset_name or path.stem,
        id_col=id_col,
        geometry_col=geometry_col,
        crs=crs,
    )
    logger.info(f"Loaded {len(unit_frame)} units ({unit_frame.metadata.crs})")
    return unit_frame


def load_events(
    path: str | Path,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    category_col: str | None = None,
) -> pl.DataFrame:
    """
    Load point events from parquet or CSV.

    Rows with missing or non-finite coordinates are dropped.

    Args:
        path: Event file
        lon_col: Longitude / x column
        lat_col: Latitude / y column
        category_col: Optional category column that must be present

    Returns:
        DataFrame with Float64 coordinate columns
    """
    path = Path(path)
    logger.info(f"Loading events from: {path}")
    df = read_table(path)

    required = [lon_col, lat_col] + ([category_col] if category_col else [])
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise InputMismatch(f"Event table is missing columns: {missing}")

    df = df.with_columns(pl.col(lon_col).cast(pl.Float64), pl.col(lat_col).cast(pl.Float64))
    before = df.height
    df = df.filter(
        pl.col(lon_col).is_not_null()
        & pl.col(lat_col).is_not_null()
        & pl.col(lon_col).is_finite()
        & pl.col(lat_col).is_finite()
    )
    if df.height < before:
        logger.warning(f"Dropped {before - df.height} events without coordinates")
    logger.debug("Loaded %s events with columns %s", df.height, df.columns)
    return df


def reproject_units(unit_frame: UnitFrame, target_crs: str | CRS) -> UnitFrame:
    """
    Transform unit geometries to a different CRS.

    Args:
        unit_frame: Input UnitFrame
        target_crs: Target CRS (e.g., "EPSG:26971")

    Returns:
        UnitFrame with reprojected WKT geometries
    """
    target = normalize_crs(target_crs)
    if unit_frame.metadata.crs == target:
        logger.debug(f"CRS already matches target: {target}")
        return unit_frame

    logger.info(f"Transforming unit CRS from {unit_frame.metadata.crs} to {target}")
    transformer = Transformer.from_crs(unit_frame.metadata.crs, target, always_xy=True)
    wkts = [ops.transform(transformer.transform, geom).wkt for geom in unit_frame.geometries()]

    geometry_col = unit_frame.schema.geometry_col
    data = unit_frame.data.with_columns(pl.Series(geometry_col, wkts, dtype=pl.Utf8))
    return unit_frame.with_data(data).with_metadata(crs=target)


def reproject_points(
    df: pl.DataFrame,
    source_crs: str | CRS,
    target_crs: str | CRS,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    x_col: str | None = None,
    y_col: str | None = None,
) -> pl.DataFrame:
    """
    Transform point coordinates to a different CRS.

    Projected coordinates are written to *x_col* / *y_col*, which default to
    ``{lon_col}_proj`` and ``{lat_col}_proj``.
    """
    x_col = x_col or f"{lon_col}_proj"
    y_col = y_col or f"{lat_col}_proj"
    source = normalize_crs(source_crs)
    target = normalize_crs(target_crs)

    if source == target:
        return df.with_columns(pl.col(lon_col).alias(x_col), pl.col(lat_col).alias(y_col))

    logger.info(f"Transforming {df.height} points from {source} to {target}")
    transformer = Transformer.from_crs(source, target, always_xy=True)
    xs, ys = transformer.transform(
        df[lon_col].cast(pl.Float64).to_numpy(),
        df[lat_col].cast(pl.Float64).to_numpy(),
    )
    return df.with_columns(
        pl.Series(x_col, np.asarray(xs, dtype=np.float64)),
        pl.Series(y_col, np.asarray(ys, dtype=np.float64)),
    )


def assign_events_to_units(
    events: pl.DataFrame,
    unit_frame: UnitFrame,
    x_col: str = "longitude",
    y_col: str = "latitude",
    output_col: str | None = None,
) -> pl.DataFrame:
    """
    Assign events to the polygon that contains them.

    Points on a shared boundary go to the unit that comes first in row order.
    Events outside every unit get a null identifier.

    Args:
        events: Event table with coordinates in the units' CRS
        unit_frame: Units to assign to
        x_col: Event x / longitude column
        y_col: Event y / latitude column
        output_col: Name of the assigned id column (defaults to the unit id column)

    Returns:
        Event table with the unit id column added
    """
    output_col = output_col or unit_frame.schema.id_col
    for col in (x_col, y_col):
        if col not in events.columns:
            raise InputMismatch(f"Event table has no column '{col}'")

    ids = unit_frame.ids
    tree = STRtree(unit_frame.geometries())
    points = shapely.points(
        events[x_col].cast(pl.Float64).to_numpy(),
        events[y_col].cast(pl.Float64).to_numpy(),
    )
    point_idx, unit_idx = tree.query(points, predicate="intersects")

    assigned: list[str | None] = [None] * events.height
    for p, u in sorted(zip(point_idx.tolist(), unit_idx.tolist())):
        if assigned[p] is None:
            assigned[p] = ids[u]

    unmatched = assigned.count(None)
    if unmatched:
        logger.warning(f"{unmatched} of {events.height} events fall outside every unit")
    return events.with_columns(pl.Series(output_col, assigned, dtype=pl.Utf8))


def count_events(
    unit_frame: UnitFrame,
    events: pl.DataFrame,
    output_col: str = "event_count",
    category: str | None = None,
    category_col: str | None = None,
    x_col: str = "longitude",
    y_col: str = "latitude",
) -> UnitFrame:
    """
    Count events per unit.

    Every unit gets a count; units without events get zero.

    Args:
        unit_frame: Units to aggregate to
        events: Event table with coordinates in the units' CRS
        output_col: Name of the count column
        category: Only count events whose *category_col* equals this value
        category_col: Category column (required with *category*)
        x_col: Event x / longitude column
        y_col: Event y / latitude column

    Returns:
        UnitFrame with the count column added and registered as a value column
    """
    if category is not None:
        if category_col is None or category_col not in events.columns:
            raise InputMismatch("A category filter needs an existing category column")
        events = events.filter(pl.col(category_col) == category)
        logger.info(f"Counting {events.height} events of category '{category}'")

    id_col = unit_frame.schema.id_col
    key = "__unit_key"
    assigned = assign_events_to_units(events, unit_frame, x_col, y_col, output_col=key)
    counts = (
        assigned.filter(pl.col(key).is_not_null())
        .group_by(key)
        .agg(pl.len().alias(output_col))
        .rename({key: id_col})
    )
    data = (
        unit_frame.data.drop(output_col, strict=False)
        .join(counts, on=id_col, how="left", maintain_order="left")
        .with_columns(pl.col(output_col).fill_null(0).cast(pl.Int64))
    )

    logger.info(f"Counted {int(data[output_col].sum())} events over {data.height} units")
    return unit_frame.with_data(data).register_feature(
        output_col,
        {
            "source_step": "count_events",
            "inputs": [x_col, y_col] + ([category_col] if category_col else []),
            "tags": ["spatial"],
            "description": "Number of events inside each unit",
            "category": category,
        },
        value=True,
    )


def join_attributes(
    unit_frame: UnitFrame,
    table: pl.DataFrame,
    on: str | None = None,
) -> UnitFrame:
    """
    Attach an attribute table keyed by unit identifier.

    The table must describe exactly the same set of units, once each.

    Args:
        unit_frame: Units to extend
        table: Attribute table
        on: Key column in *table* (defaults to the unit id column)

    Returns:
        UnitFrame with the table's columns added in unit order

    Raises:
        InputMismatch: If the row count, identifier set or column names disagree
    """
    id_col = unit_frame.schema.id_col
    on = on or id_col
    if on not in table.columns:
        raise InputMismatch(f"Attribute table has no key column '{on}'")

    table = table.with_columns(pl.col(on).cast(pl.Utf8))
    if on != id_col:
        table = table.rename({on: id_col})
    if table.height != len(unit_frame):
        raise InputMismatch(
            f"Attribute table has {table.height} rows for {len(unit_frame)} units"
        )
    if table[id_col].n_unique() != table.height:
        raise InputMismatch("Attribute table repeats unit identifiers")

    unit_ids = set(unit_frame.ids)
    table_ids = set(table[id_col].to_list())
    if unit_ids != table_ids:
        missing = sorted(unit_ids - table_ids)
        extra = sorted(table_ids - unit_ids)
        raise InputMismatch(
            f"Attribute table does not match units (missing: {missing}, unknown: {extra})"
        )

    clashes = sorted((set(table.columns) - {id_col}) & set(unit_frame.data.columns))
    if clashes:
        raise InputMismatch(f"Attribute columns already exist on the units: {clashes}")

    data = unit_frame.data.join(table, on=id_col, how="left", maintain_order="left")
    logger.info(f"Joined {len(table.columns) - 1} attribute columns onto {data.height} units")
    return unit_frame.with_data(data)

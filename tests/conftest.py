"""Common test fixtures and utilities."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import polars as pl
import pytest
from shapely.geometry import box

from lisaflow.core.schema import UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame

GridFactory = Callable[..., UnitFrame]


def grid_cells(n_rows: int, n_cols: int, size: float = 1.0) -> tuple[list[str], list]:
    """Square cells in row-major order, ids ``r{row}c{col}``, row 0 on top."""
    ids = []
    geoms = []
    for r in range(n_rows):
        for c in range(n_cols):
            ids.append(f"r{r}c{c}")
            geoms.append(box(c * size, -(r + 1) * size, (c + 1) * size, -r * size))
    return ids, geoms


def make_units(
    ids: Sequence[str],
    geoms: Sequence,
    values: Sequence[float] | None = None,
    value_col: str = "value",
    crs: str = "EPSG:3857",
) -> UnitFrame:
    data: dict[str, list] = {"unit_id": list(ids), "geometry": [g.wkt for g in geoms]}
    value_cols: list[str] = []
    if values is not None:
        data[value_col] = [float(v) for v in values]
        value_cols.append(value_col)
    schema = UnitSchema(value_cols=value_cols)
    metadata = UnitMetadata(dataset_name="test-grid", crs=crs)
    return UnitFrame(pl.DataFrame(data), schema, metadata)


@pytest.fixture
def sample_data_dir(tmp_path):
    """Create a temporary directory with sample data."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture()
def cell_factory() -> Callable[..., tuple[list[str], list]]:
    """Expose :func:`grid_cells` to tests that need raw shapely cells."""
    return grid_cells


@pytest.fixture()
def units_factory() -> GridFactory:
    """Expose :func:`make_units` to tests that assemble custom layouts."""
    return make_units


@pytest.fixture()
def grid_factory() -> GridFactory:
    """Build a UnitFrame of square cells with optional values."""

    def factory(
        n_rows: int,
        n_cols: int,
        values: Sequence[float] | None = None,
        value_col: str = "value",
    ) -> UnitFrame:
        ids, geoms = grid_cells(n_rows, n_cols)
        return make_units(ids, geoms, values, value_col=value_col)

    return factory


@pytest.fixture()
def grid_2x2(grid_factory: GridFactory) -> UnitFrame:
    """2 x 2 grid with a high top row and a low bottom row."""
    return grid_factory(2, 2, [10, 10, 1, 1])


@pytest.fixture()
def grid_4x4(grid_factory: GridFactory) -> UnitFrame:
    """4 x 4 grid whose top half is 10 and bottom half is 1."""
    return grid_factory(4, 4, [10.0] * 8 + [1.0] * 8)


@pytest.fixture()
def units_with_island() -> UnitFrame:
    """2 x 2 grid plus a detached square far away."""
    ids, geoms = grid_cells(2, 2)
    ids.append("island")
    geoms.append(box(10, 10, 11, 11))
    return make_units(ids, geoms, [1, 2, 3, 4, 5])


@pytest.fixture()
def sample_events() -> pl.DataFrame:
    """Points inside the top-left and bottom-right cells of a 2 x 2 grid, plus one outside."""
    return pl.DataFrame(
        {
            "longitude": [0.5, 0.25, 0.75, 1.5, 5.0],
            "latitude": [-0.5, -0.25, -0.75, -1.5, 5.0],
            "primary_type": ["THEFT", "THEFT", "BATTERY", "THEFT", "THEFT"],
        }
    )

"""Validation checks for spatial units and their weights.

This module provides validation checks for:
- Unique unit identifiers
- Polygon geometry validity
- Attribute completeness
- Weight matrix invariants (zero diagonal, symmetry, row sums)
- Islands
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from lisaflow.core.contiguity import ensure_valid_polygons
from lisaflow.core.errors import InvalidGeometry
from lisaflow.core.schema import WeightStyle
from lisaflow.core.spatial import parse_geometries
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame
    from lisaflow.core.weights import SpatialWeights

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check."""

    is_valid: bool
    check_name: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    severity: str = "error"  # error, warning, info


@dataclass
class ValidationReport:
    """Collection of validation results."""

    results: list[ValidationResult] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Check if all validations passed (no errors)."""
        return all(r.is_valid or r.severity != "error" for r in self.results)

    @property
    def errors(self) -> list[ValidationResult]:
        """Get all error-level failures."""
        return [r for r in self.results if not r.is_valid and r.severity == "error"]

    @property
    def warnings(self) -> list[ValidationResult]:
        """Get all warning-level issues."""
        return [r for r in self.results if not r.is_valid and r.severity == "warning"]

    def add(self, result: ValidationResult) -> None:
        """Add a validation result."""
        self.results.append(result)

    def summary(self) -> str:
        """Generate a summary string."""
        n_passed = sum(1 for r in self.results if r.is_valid)
        n_errors = len(self.errors)
        n_warnings = len(self.warnings)

        lines = [
            f"Validation Summary: {n_passed}/{len(self.results)} passed",
            f"  Errors: {n_errors}",
            f"  Warnings: {n_warnings}",
        ]

        if self.errors:
            lines.append("\nErrors:")
            for e in self.errors:
                lines.append(f"  - {e.check_name}: {e.message}")

        if self.warnings:
            lines.append("\nWarnings:")
            for w in self.warnings:
                lines.append(f"  - {w.check_name}: {w.message}")

        return "\n".join(lines)


# -----------------------------------------------------------------------------
# Unit Validators
# -----------------------------------------------------------------------------


def validate_unique_ids(unit_frame: UnitFrame) -> ValidationResult:
    """Validate that every unit identifier occurs once."""
    ids = unit_frame.ids
    n_duplicates = len(ids) - len(set(ids))
    is_valid = n_duplicates == 0
    return ValidationResult(
        is_valid=is_valid,
        check_name="unique_ids",
        message=(
            f"All {len(ids)} unit identifiers are unique"
            if is_valid
            else f"Found {n_duplicates} repeated unit identifiers"
        ),
        details={"n_units": len(ids), "n_duplicates": n_duplicates},
        severity="error" if not is_valid else "info",
    )


def validate_geometries(unit_frame: UnitFrame) -> ValidationResult:
    """Validate that every geometry is a valid, non-empty polygon."""
    schema = unit_frame.schema
    try:
        geoms = parse_geometries(unit_frame.ids, unit_frame.data[schema.geometry_col].to_list())
        ensure_valid_polygons(unit_frame.ids, geoms)
    except InvalidGeometry as exc:
        return ValidationResult(
            is_valid=False,
            check_name="geometries",
            message=str(exc),
            details={"unit_id": exc.unit_id, "reason": exc.reason},
            severity="error",
        )

    return ValidationResult(
        is_valid=True,
        check_name="geometries",
        message="All geometries are valid polygons",
        severity="info",
    )


def validate_attributes(unit_frame: UnitFrame, columns: list[str]) -> ValidationResult:
    """Validate that each analysed column exists and has a finite value for every unit."""
    problems: dict[str, str] = {}
    for col in columns:
        if col not in unit_frame.data.columns:
            problems[col] = "missing column"
            continue
        series = unit_frame.data[col]
        if not series.dtype.is_numeric():
            problems[col] = f"non-numeric dtype {series.dtype}"
            continue
        values = series.cast(float).to_numpy()
        n_bad = int(np.sum(~np.isfinite(values)))
        if n_bad:
            problems[col] = f"{n_bad} missing or non-finite values"

    is_valid = not problems
    return ValidationResult(
        is_valid=is_valid,
        check_name="attributes",
        message=(
            f"Attributes complete for {len(unit_frame)} units"
            if is_valid
            else "; ".join(f"{col}: {issue}" for col, issue in problems.items())
        ),
        details={"columns": columns, "problems": problems},
        severity="error" if not is_valid else "info",
    )


# -----------------------------------------------------------------------------
# Weight Validators
# -----------------------------------------------------------------------------


def validate_weights(weights: SpatialWeights, tolerance: float = 1e-9) -> ValidationResult:
    """Validate the weight matrix: zero diagonal, symmetric contiguity, unit row sums.

    Row sums are checked only for row-standardized weights; islands are reported
    separately by :func:`validate_islands`.
    """
    issues: list[str] = []

    diagonal = weights.sparse.diagonal()
    if np.any(diagonal != 0):
        issues.append(f"{int(np.count_nonzero(diagonal))} non-zero diagonal entries")

    if not weights.graph.is_symmetric():
        issues.append("neighbour relation is not symmetric")

    if weights.style is WeightStyle.ROW:
        sums = weights.row_sums
        connected = weights.graph.cardinalities > 0
        off = np.abs(sums[connected] - 1.0) > tolerance
        if np.any(off):
            issues.append(f"{int(off.sum())} rows do not sum to 1")

    is_valid = not issues
    return ValidationResult(
        is_valid=is_valid,
        check_name="weights",
        message="Weight matrix invariants hold" if is_valid else "; ".join(issues),
        details={"style": weights.style.value, "n_links": weights.graph.n_links},
        severity="error" if not is_valid else "info",
    )


def validate_islands(weights: SpatialWeights) -> ValidationResult:
    """Report units without neighbours (a warning, not an error)."""
    islands = list(weights.islands)
    is_valid = not islands
    return ValidationResult(
        is_valid=is_valid,
        check_name="islands",
        message="Every unit has at least one neighbour"
        if is_valid
        else f"{len(islands)} unit(s) without neighbours: {', '.join(islands)}",
        details={"islands": islands},
        severity="warning" if not is_valid else "info",
    )


# -----------------------------------------------------------------------------
# Comprehensive Validation
# -----------------------------------------------------------------------------


def validate_units(
    unit_frame: UnitFrame,
    value_cols: list[str] | None = None,
) -> ValidationReport:
    """Run comprehensive validation on a UnitFrame.

    Args:
        unit_frame: UnitFrame to validate
        value_cols: Columns to check for completeness (defaults to schema.value_cols)

    Returns:
        ValidationReport with all check results
    """
    report = ValidationReport()

    report.add(validate_unique_ids(unit_frame))
    report.add(validate_geometries(unit_frame))

    columns = value_cols if value_cols is not None else list(unit_frame.schema.value_cols)
    if columns:
        report.add(validate_attributes(unit_frame, columns))

    if unit_frame.weights is not None:
        report.add(validate_weights(unit_frame.weights))
        report.add(validate_islands(unit_frame.weights))

    logger.info(report.summary())
    return report

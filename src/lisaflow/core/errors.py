"""Error taxonomy for spatial analysis failures.

All failures are deterministic functions of the input, so nothing here is retried;
errors surface immediately to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable


class LisaflowError(ValueError):
    """Base class for lisaflow input errors."""


class InputMismatch(LisaflowError):
    """Geometry and attribute tables disagree on row count or identifiers."""


class DegenerateInput(LisaflowError):
    """Input for which a statistic or weight is undefined.

    Raised for zero-variance attributes and for islands feeding a row-standardized
    lag. ``unit_ids`` lists the offending units when the problem is unit-specific.
    """

    def __init__(self, message: str, unit_ids: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.unit_ids: tuple[str, ...] = tuple(unit_ids or ())


class InvalidGeometry(LisaflowError):
    """Malformed polygon topology, reported with the offending unit identifier."""

    def __init__(self, unit_id: str, reason: str) -> None:
        super().__init__(f"Invalid geometry for unit {unit_id!r}: {reason}")
        self.unit_id = unit_id
        self.reason = reason

"""Shared helpers for logging, coordinate systems and progress reporting."""

import logging
import os
from enum import Enum

LOG_LEVEL_ENV = "LISAFLOW_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger writing to stderr.

    The level defaults to INFO and can be overridden for every lisaflow logger
    through the ``LISAFLOW_LOG_LEVEL`` environment variable (e.g. ``DEBUG``).

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        level = logging.getLevelName(os.environ.get(LOG_LEVEL_ENV, "INFO").upper())
        logger.setLevel(level if isinstance(level, int) else logging.INFO)

    return logger


class CRS(str, Enum):
    """Coordinate reference systems used by the bundled datasets and tests."""

    WGS84 = "EPSG:4326"  # lon/lat, the usual input for event coordinates
    WEB_MERCATOR = "EPSG:3857"
    NAD83_ILLINOIS_EAST = "EPSG:26971"  # Chicago community areas (meters)
    UTM_ZONE_16N = "EPSG:32616"


def normalize_crs(crs: str | CRS) -> str:
    """Return the string form of *crs*, accepting either enum members or strings."""
    if isinstance(crs, CRS):
        return crs.value
    return str(crs)


class ProgressTracker:
    """Log progress of a per-unit loop in roughly ten equal steps."""

    def __init__(self, total: int, description: str = "", steps: int = 10) -> None:
        self.total = total
        self.description = description
        self.current = 0
        self._every = max(1, total // max(1, steps))
        self.logger = get_logger(__name__)

    def update(self, n: int = 1) -> None:
        self.current += n
        if self.total and self.current % self._every == 0:
            pct = (self.current / self.total) * 100
            self.logger.debug("%s: %d/%d (%.1f%%)", self.description, self.current, self.total, pct)

    def finish(self) -> None:
        self.logger.info(f"{self.description}: complete ({self.total} units)")

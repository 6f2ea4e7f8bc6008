"""lisaflow: Spatial autocorrelation (global and local Moran's I) for polygon units."""

__version__ = "0.1.0"

from lisaflow.core.errors import DegenerateInput, InputMismatch, InvalidGeometry
from lisaflow.core.schema import UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame

__all__ = [
    "UnitFrame",
    "UnitSchema",
    "UnitMetadata",
    "InputMismatch",
    "DegenerateInput",
    "InvalidGeometry",
    "__version__",
]

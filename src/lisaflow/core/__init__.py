"""Core module containing generic, dataset-agnostic primitives."""

from lisaflow.core.contiguity import NeighborGraph, build_contiguity, higher_order
from lisaflow.core.errors import DegenerateInput, InputMismatch, InvalidGeometry, LisaflowError
from lisaflow.core.lisa import ClusterLabel, LocalMoranResult, classify, local_moran
from lisaflow.core.moran import (
    GlobalMoranResult,
    PermutationResult,
    global_moran,
    moran_permutation_test,
    moran_test,
)
from lisaflow.core.output_adapters import BaseOutputAdapter
from lisaflow.core.registry import (
    OutputAdapterRegistry,
    OutputAdapterSpec,
    StepRegistry,
    StepSpec,
)
from lisaflow.core.schema import (
    Alternative,
    ContiguityRule,
    FeatureProvenance,
    UnitMetadata,
    UnitSchema,
    WeightStyle,
)
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.weights import SpatialWeights, build_weights, spatial_lag

__all__ = [
    "UnitFrame",
    "UnitSchema",
    "UnitMetadata",
    "FeatureProvenance",
    "ContiguityRule",
    "WeightStyle",
    "Alternative",
    "NeighborGraph",
    "build_contiguity",
    "higher_order",
    "SpatialWeights",
    "build_weights",
    "spatial_lag",
    "GlobalMoranResult",
    "PermutationResult",
    "global_moran",
    "moran_test",
    "moran_permutation_test",
    "ClusterLabel",
    "LocalMoranResult",
    "classify",
    "local_moran",
    "LisaflowError",
    "InputMismatch",
    "DegenerateInput",
    "InvalidGeometry",
    "StepRegistry",
    "StepSpec",
    "OutputAdapterRegistry",
    "OutputAdapterSpec",
    "BaseOutputAdapter",
]

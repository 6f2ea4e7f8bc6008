"""
Registered Step implementations for spatial unit analysis.

All steps in this package:
- Inherit from lisaflow.core.pipeline.Step
- Declare inputs/outputs via registry
- Update UnitSchema with provenance tracking
"""

from lisaflow.core.steps.autocorrelation import (
    ContiguityWeightsStep,
    GlobalMoranStep,
    LocalMoranStep,
    SpatialLagStep,
)
from lisaflow.core.steps.registration import get_default_registry, register_builtin_steps
from lisaflow.core.steps.spatial import CountEventsStep, JoinAttributesStep, ReprojectUnitsStep

__all__ = [
    # Registration
    "get_default_registry",
    "register_builtin_steps",
    # Spatial steps
    "CountEventsStep",
    "JoinAttributesStep",
    "ReprojectUnitsStep",
    # Weights and autocorrelation
    "ContiguityWeightsStep",
    "GlobalMoranStep",
    "LocalMoranStep",
    "SpatialLagStep",
]

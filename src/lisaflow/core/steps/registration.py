"""Step registration for built-in spatial, weights and autocorrelation steps.

This module registers all built-in steps with the StepRegistry.
It can be called explicitly or discovered via entry points.
"""

from __future__ import annotations

from lisaflow.core.registry import StepRegistry
from lisaflow.core.steps.autocorrelation import (
    ContiguityWeightsConfig,
    ContiguityWeightsStep,
    GlobalMoranConfig,
    GlobalMoranStep,
    LocalMoranConfig,
    LocalMoranStep,
    SpatialLagConfig,
    SpatialLagStep,
)
from lisaflow.core.steps.spatial import (
    CountEventsConfig,
    CountEventsStep,
    JoinAttributesConfig,
    JoinAttributesStep,
    ReprojectUnitsConfig,
    ReprojectUnitsStep,
)


def register_builtin_steps(registry: StepRegistry) -> None:
    """Register all built-in steps with the given registry.

    This function can be called directly or via entry point discovery.

    Args:
        registry: The StepRegistry to register steps with.
    """
    # Spatial steps
    registry.register(
        "reproject_units",
        ReprojectUnitsStep,
        tags=["spatial"],
        description="Transform unit geometries to a different CRS",
        config_model=ReprojectUnitsConfig,
    )

    registry.register(
        "count_events",
        CountEventsStep,
        tags=["spatial", "io"],
        description="Count point events inside each unit",
        config_model=CountEventsConfig,
    )

    registry.register(
        "join_attributes",
        JoinAttributesStep,
        tags=["io"],
        description="Attach a per-unit attribute table keyed by unit identifier",
        config_model=JoinAttributesConfig,
    )

    # Weights
    registry.register(
        "contiguity_weights",
        ContiguityWeightsStep,
        tags=["weights"],
        description="Build rook/queen contiguity weights from unit geometries",
        config_model=ContiguityWeightsConfig,
    )

    registry.register(
        "spatial_lag",
        SpatialLagStep,
        tags=["spatial", "weights"],
        description="Compute spatial lag (weighted sum of neighbours)",
        config_model=SpatialLagConfig,
    )

    # Autocorrelation
    registry.register(
        "global_moran",
        GlobalMoranStep,
        tags=["autocorrelation"],
        description="Global Moran's I with analytic and permutation inference",
        config_model=GlobalMoranConfig,
    )

    registry.register(
        "local_moran",
        LocalMoranStep,
        tags=["autocorrelation"],
        description="Local Moran's I with conditional permutation p-values and LISA labels",
        config_model=LocalMoranConfig,
    )


def get_default_registry() -> StepRegistry:
    """Create and return a registry with all built-in steps registered.

    Returns:
        StepRegistry with all built-in steps.
    """
    registry = StepRegistry()
    register_builtin_steps(registry)
    return registry

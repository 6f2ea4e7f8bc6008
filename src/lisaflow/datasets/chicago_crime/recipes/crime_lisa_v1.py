"""Baseline Chicago crime hot spot recipe (v1)."""

from lisaflow.core.pipeline import Step
from lisaflow.core.steps.spatial import CountEventsStep, ReprojectUnitsStep
from lisaflow.datasets.chicago_crime.mapping import load_crimes
from lisaflow.datasets.chicago_crime.schema import (
    CHICAGO_PROJECTED_CRS,
    CRIME_CATEGORY_COL,
    CRIME_LAT_COL,
    CRIME_LON_COL,
)
from lisaflow.recipes.lisa import LisaRecipe
from lisaflow.recipes.registry import recipe


@recipe("chicago_crime", "crime_lisa_v1")
class CrimeLisaV1Recipe(LisaRecipe):
    """
    Baseline recipe for Chicago crime over community areas.

    - Community areas projected to NAD83 / Illinois East (meters)
    - Cleaned crime points counted per area, optionally for one primary type
    - Queen contiguity, row-standardized weights (configurable)
    - Global Moran's I and LISA clusters of the per-area counts
    """

    def spatial_steps(self) -> list[Step]:
        """Project areas and count cleaned crime records."""
        dataset = self.dataset_config
        target_crs = (dataset.target_crs if dataset is not None else None) or CHICAGO_PROJECTED_CRS
        steps: list[Step] = [ReprojectUnitsStep(target_crs=target_crs)]

        if dataset is not None and dataset.events_path:
            steps.append(
                CountEventsStep(
                    events=load_crimes(dataset.events_path),
                    lon_col=CRIME_LON_COL,
                    lat_col=CRIME_LAT_COL,
                    events_crs=dataset.events_crs,
                    category_col=dataset.category_col or CRIME_CATEGORY_COL,
                    category=self.config.category,
                    output_col=self.config.value_col,
                )
            )
        return steps

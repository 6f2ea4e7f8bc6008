"""Generic LISA recipe: optional event counting, contiguity weights, global and local Moran's I."""

from lisaflow.core.pipeline import Pipeline, Step
from lisaflow.core.steps.autocorrelation import (
    ContiguityWeightsStep,
    GlobalMoranStep,
    LocalMoranStep,
    SpatialLagStep,
)
from lisaflow.core.steps.spatial import CountEventsStep, ReprojectUnitsStep
from lisaflow.recipes.base import BaseRecipe
from lisaflow.recipes.registry import recipe


@recipe("generic", "lisa_v1")
class LisaRecipe(BaseRecipe):
    """
    Spatial autocorrelation of one attribute over polygon units.

    Steps:
    - Reproject units when the dataset names a target CRS
    - Count events per unit when the dataset names an event file
    - Contiguity weights (rule, order and style from the config)
    - Spatial lag, global Moran's I and local Moran's I of ``value_col``
    """

    def spatial_steps(self) -> list[Step]:
        """Steps that prepare the attribute before weights are built."""
        steps: list[Step] = []
        dataset = self.dataset_config
        if dataset is None:
            return steps

        if dataset.target_crs:
            steps.append(ReprojectUnitsStep(target_crs=dataset.target_crs))
        if dataset.events_path:
            steps.append(
                CountEventsStep(
                    events_path=dataset.events_path,
                    lon_col=dataset.lon_col,
                    lat_col=dataset.lat_col,
                    events_crs=dataset.events_crs,
                    category_col=dataset.category_col,
                    category=self.config.category,
                    output_col=self.config.value_col,
                )
            )
        return steps

    def build_pipeline(self) -> Pipeline:
        """Build the analysis pipeline."""
        cfg = self.config
        inference = cfg.inference
        return Pipeline(
            [
                *self.spatial_steps(),
                ContiguityWeightsStep(
                    rule=cfg.contiguity.rule,
                    order=cfg.contiguity.order,
                    style=cfg.weights.style,
                ),
                SpatialLagStep(value_cols=[cfg.value_col]),
                GlobalMoranStep(
                    value_col=cfg.value_col,
                    permutations=inference.permutations,
                    seed=inference.seed,
                    alternative=inference.alternative,
                ),
                LocalMoranStep(
                    value_col=cfg.value_col,
                    permutations=inference.permutations,
                    seed=inference.seed,
                    alternative=inference.alternative,
                    alpha=inference.alpha,
                ),
            ]
        )

"""Base recipe abstraction."""

from abc import ABC, abstractmethod

from lisaflow.core.pipeline import Pipeline
from lisaflow.core.registry import StepRegistry
from lisaflow.core.schema import AnalysisConfig, DatasetConfig
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import get_logger

logger = get_logger(__name__)


class BaseRecipe(ABC):
    """
    A named, configured analysis for one dataset.

    Subclasses build the default step sequence from the analysis config. When
    the config lists ``steps`` explicitly, those are resolved through the step
    registry instead and the subclass pipeline is not used.

    Args:
        config: Analysis configuration (attribute, weights, inference, output)
        dataset_config: Where the units and events come from
        step_registry: Registry used to resolve configured step names
    """

    def __init__(
        self,
        config: AnalysisConfig,
        *,
        dataset_config: DatasetConfig | None = None,
        step_registry: StepRegistry | None = None,
    ) -> None:
        self.config = config
        self.dataset_config = dataset_config
        self.name = config.recipe
        self._step_registry = step_registry

    @abstractmethod
    def build_pipeline(self) -> Pipeline:
        """Default pipeline for this recipe."""

    def get_pipeline(self) -> Pipeline:
        """Return the configured pipeline, or the recipe default."""
        if not self.config.steps:
            return self.build_pipeline()
        if self._step_registry is None:
            raise ValueError("Step registry required when steps are configured")
        logger.info(f"Recipe {self.name}: using {len(self.config.steps)} configured steps")
        return self._step_registry.build_pipeline(self.config.steps)

    def describe(self) -> list[str]:
        """Planned steps, in order, as printable strings."""
        return [repr(step) for step in self.get_pipeline().steps]

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Run the recipe pipeline over *unit_frame*."""
        return self.get_pipeline().run(unit_frame)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"

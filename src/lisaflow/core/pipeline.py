"""Sequential execution of analysis steps over a UnitFrame."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from lisaflow.core.errors import InputMismatch
from lisaflow.core.schema import UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import get_logger

logger = get_logger(__name__)


class Step(ABC):
    """
    Base class for pipeline steps.

    A step takes a UnitFrame and returns a new one. It may add columns, attach
    spatial weights or record results, but must keep the units themselves
    (identifiers and their order) unchanged.

    Attributes:
        requires_weights: The step reads the weights attached to its input.
        provides_weights: The step attaches weights to its output.
    """

    requires_weights: bool = False
    provides_weights: bool = False

    @abstractmethod
    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the step transformation and return the modified frame."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Pipeline:
    """
    An ordered list of steps applied to a UnitFrame.

    Before any step runs, the plan is checked so that every step reading
    spatial weights comes after one that builds them (or the input already
    carries weights). After each step the output is checked against its input:
    the unit identifiers must match and the schema must stay compatible.
    """

    def __init__(self, steps: list[Step]) -> None:
        self.steps = steps
        self._last_schema: UnitSchema | None = None
        self._last_metadata: UnitMetadata | None = None
        logger.info(
            f"Created pipeline with {len(steps)} steps: {[s.__class__.__name__ for s in steps]}"
        )

    def plan_issues(self, has_weights: bool = False) -> list[str]:
        """
        List ordering problems in the step sequence.

        Args:
            has_weights: Whether the input frame already carries weights

        Returns:
            One message per step that would run without weights
        """
        issues = []
        available = has_weights
        for i, step in enumerate(self.steps, 1):
            if step.requires_weights and not available:
                issues.append(
                    f"step {i} ({step.__class__.__name__}) needs spatial weights; "
                    "add a contiguity_weights step before it"
                )
            available = available or step.provides_weights
        return issues

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """
        Run every step in order.

        Args:
            unit_frame: Input UnitFrame

        Returns:
            The frame produced by the last step

        Raises:
            ValueError: If the plan is inconsistent or a step breaks the schema
            InputMismatch: If a step changes the set or order of units
            TypeError: If a step does not return a UnitFrame
        """
        issues = self.plan_issues(has_weights=unit_frame.weights is not None)
        if issues:
            raise ValueError("Invalid pipeline: " + "; ".join(issues))

        logger.info(f"Starting pipeline on {len(unit_frame)} units with {len(self.steps)} steps")
        current = unit_frame
        self._last_schema = unit_frame.schema
        self._last_metadata = unit_frame.metadata

        for i, step in enumerate(self.steps, 1):
            step_name = step.__class__.__name__
            logger.info(f"Step {i}/{len(self.steps)}: Executing {step_name}")
            try:
                result = step.run(current)
                self._check_result(step_name, current, result)
            except Exception as e:
                logger.error(f"Step {i}/{len(self.steps)}: {step_name} failed with error: {e}")
                raise

            current = result
            self._last_schema = current.schema
            self._last_metadata = current.metadata
            logger.debug(
                "Step %s completed; value columns=%s, results=%s",
                step_name,
                current.schema.value_cols,
                sorted(current.metadata.results),
            )

        logger.info("Pipeline execution completed successfully")
        return current

    @staticmethod
    def _check_result(step_name: str, before: UnitFrame, after: object) -> None:
        if not isinstance(after, UnitFrame):
            raise TypeError(
                f"Step {step_name} returned {type(after).__name__} instead of UnitFrame"
            )
        if after.ids != before.ids:
            raise InputMismatch(
                f"Step {step_name} changed the units: expected {len(before)} units "
                f"in their original order, got {len(after)}"
            )
        issues = before.schema.compatibility_issues(after.schema)
        if issues:
            raise ValueError(
                f"Step {step_name} produced incompatible schema: {'; '.join(issues)}"
            )

    def add_step(self, step: Step) -> "Pipeline":
        """Append a step and return the pipeline for chaining."""
        self.steps.append(step)
        return self

    def __repr__(self) -> str:
        step_names = [step.__class__.__name__ for step in self.steps]
        return f"Pipeline({' -> '.join(step_names)})"

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def last_schema(self) -> UnitSchema | None:
        """Schema produced by the most recent run."""
        return self._last_schema

    @property
    def last_metadata(self) -> UnitMetadata | None:
        """Metadata produced by the most recent run."""
        return self._last_metadata


class LambdaStep(Step):
    """Wrap a plain function as a step, e.g. for a one-off derived column."""

    def __init__(
        self,
        fn: Callable[[UnitFrame], UnitFrame],
        name: str | None = None,
        requires_weights: bool = False,
    ) -> None:
        self.fn = fn
        self.name = name or "LambdaStep"
        self.requires_weights = requires_weights

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        return self.fn(unit_frame)

    def __repr__(self) -> str:
        return f"LambdaStep({self.name})"

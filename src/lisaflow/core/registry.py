"""Name-based registries for pipeline steps and output adapters.

Both registries map a short name (as used in YAML analysis configs) to a class
and an optional pydantic model that validates the parameters before the class
is instantiated. Third-party packages can contribute components through the
``lisaflow.steps`` and ``lisaflow.output_adapters`` entry point groups; each
entry point must resolve to a callable taking the registry.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from importlib import metadata
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel

from lisaflow.core.output_adapters import BaseOutputAdapter

from .pipeline import Step
from .utils import get_logger

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from .pipeline import Pipeline

StepDefinition = str | tuple[str, Mapping[str, Any] | None] | Mapping[str, Any]

logger = get_logger(__name__)

ALLOWED_STEP_TAGS = frozenset({"spatial", "weights", "autocorrelation", "io"})

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ComponentSpec(Generic[T]):
    """A registered component: its class, tags and parameter model."""

    name: str
    cls: type[T]
    tags: frozenset[str] = field(default_factory=frozenset)
    description: str | None = None
    config_model: type[BaseModel] | None = None

    def build(self, params: Mapping[str, Any] | None = None) -> T:
        """Validate *params* against the config model and instantiate the class."""
        if params is None:
            kwargs: dict[str, Any] = {}
        elif self.config_model is not None:
            kwargs = self.config_model(**dict(params)).model_dump()
        else:
            kwargs = dict(params)
        return self.cls(**kwargs)


@dataclass(frozen=True, slots=True)
class StepSpec(ComponentSpec[Step]):
    """Spec for a pipeline step."""

    @property
    def requires_weights(self) -> bool:
        return self.cls.requires_weights

    @property
    def provides_weights(self) -> bool:
        return self.cls.provides_weights


OutputAdapterSpec = ComponentSpec[BaseOutputAdapter]


class _Registry(Generic[T]):
    kind = "component"
    entry_point_group = ""
    allowed_tags: frozenset[str] | None = None

    def __init__(self) -> None:
        self._registry: dict[str, ComponentSpec[T]] = {}

    def _make_spec(self, **fields: Any) -> ComponentSpec[T]:
        return ComponentSpec(**fields)

    def register(
        self,
        name: str,
        cls: type[T],
        *,
        tags: Iterable[str] | None = None,
        description: str | None = None,
        config_model: type[BaseModel] | None = None,
    ) -> ComponentSpec[T]:
        """Register *cls* under *name* and return its spec."""
        if name in self._registry:
            raise ValueError(f"{self.kind.capitalize()} already registered: {name}")

        tag_set = frozenset(tags or ())
        unknown = tag_set - self.allowed_tags if self.allowed_tags is not None else set()
        if unknown:
            raise ValueError(f"Unsupported {self.kind} tags: {sorted(unknown)}")
        if config_model is not None and not (
            isinstance(config_model, type) and issubclass(config_model, BaseModel)
        ):
            raise TypeError("config_model must inherit from pydantic.BaseModel")

        spec = self._make_spec(
            name=name,
            cls=cls,
            tags=tag_set,
            description=description,
            config_model=config_model,
        )
        self._registry[name] = spec
        logger.debug("Registered %s %s with tags=%s", self.kind, name, sorted(tag_set))
        return spec

    def load_entry_points(self) -> None:
        """Let installed plugins register their components."""
        for ep in metadata.entry_points().select(group=self.entry_point_group):
            try:
                loader = ep.load()
            except Exception as exc:  # pragma: no cover - broken plugin installs
                logger.error("Failed to load %s entry point %s: %s", self.kind, ep.name, exc)
                continue
            if not callable(loader):  # pragma: no cover
                logger.warning("Entry point %s is not callable; skipping", ep.name)
                continue
            loader(self)

    def get(self, name: str) -> ComponentSpec[T]:
        """Return the spec registered as *name*; KeyError lists the known names."""
        try:
            return self._registry[name]
        except KeyError:
            raise KeyError(
                f"Unknown {self.kind} '{name}'; registered: {sorted(self._registry)}"
            ) from None

    def list(self, *, tag: str | None = None) -> list[ComponentSpec[T]]:
        """Registered specs in registration order, optionally filtered by *tag*."""
        specs = list(self._registry.values())
        if tag is None:
            return specs
        return [spec for spec in specs if tag in spec.tags]

    def create(self, name: str, *, params: Mapping[str, Any] | None = None) -> T:
        """Instantiate the component *name* with validated *params*."""
        instance = self.get(name).build(params)
        logger.debug("Instantiated %s %s with params=%s", self.kind, name, sorted(params or {}))
        return instance

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __len__(self) -> int:
        return len(self._registry)


def _parse_definition(entry: StepDefinition) -> tuple[str, Mapping[str, Any] | None]:
    if isinstance(entry, str):
        return entry, None
    if isinstance(entry, tuple) and len(entry) == 2:
        name, params = entry
    elif isinstance(entry, Mapping):
        name = entry.get("name")
        if not isinstance(name, str):
            raise ValueError("Step mapping must include a string 'name' key")
        params = entry.get("params", entry.get("config"))
    else:
        raise TypeError(
            "Step definitions must be str, mapping with 'name', or (name, params) tuple"
        )
    if params is not None and not isinstance(params, Mapping):
        raise TypeError("Step params must be a mapping when provided")
    return name, params


class StepRegistry(_Registry[Step]):
    """Registry of pipeline steps, keyed by the names used in analysis configs."""

    kind = "step"
    entry_point_group = "lisaflow.steps"
    allowed_tags = ALLOWED_STEP_TAGS

    def _make_spec(self, **fields: Any) -> StepSpec:
        if not issubclass(fields["cls"], Step):
            raise TypeError("Only Step subclasses can be registered")
        return StepSpec(**fields)

    def decorator(
        self,
        name: str,
        *,
        tags: Iterable[str] | None = None,
        description: str | None = None,
        config_model: type[BaseModel] | None = None,
    ) -> Callable[[type[Step]], type[Step]]:
        """Class decorator form of :meth:`register`."""

        def wrapper(step_cls: type[Step]) -> type[Step]:
            self.register(
                name, step_cls, tags=tags, description=description, config_model=config_model
            )
            return step_cls

        return wrapper

    def build_pipeline(self, steps: Iterable[StepDefinition]) -> Pipeline:
        """
        Build a Pipeline from step definitions.

        Each definition is a step name, a ``(name, params)`` tuple, or a mapping
        with ``name`` and ``params`` (or ``config``) keys.
        """
        from .pipeline import Pipeline  # Local import to avoid circular reference

        instances = [
            self.create(name, params=params) for name, params in map(_parse_definition, steps)
        ]
        pipeline = Pipeline(instances)
        for issue in pipeline.plan_issues():
            logger.warning(f"Pipeline plan: {issue}")
        return pipeline


class OutputAdapterRegistry(_Registry[BaseOutputAdapter]):
    """Registry of output adapters (where analysed units get written)."""

    kind = "output adapter"
    entry_point_group = "lisaflow.output_adapters"

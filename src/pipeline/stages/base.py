"""
Stage contract.

A stage is one named, parameterized image-processing step. Stages keep
their persisted parameters as plain attributes (setters may normalize
them) and declare which of those parameters a run may override. The
engine resolves overrides before a run starts and hands each stage its
effective values through the context; a stage reads them with
`self.param(ctx, "name")` and never looks at the override table itself.

Example:
    class Invert(Stage):
        type_tag = "Invert"
        description = "Bitwise-not of the working image"

        def process(self, ctx):
            ctx.working_image = cv2.bitwise_not(ctx.require_image())
            return ctx.working_image
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Sequence, Tuple

from ..context import PipelineContext
from ..definitions import StageDefinition
from ..errors import ConfigurationError
from ..properties import ValueType, property_key


@dataclass(frozen=True)
class Overridable:
    """
    Declares a parameter a run may override.

    Attributes:
        expected_types: Accepted override types, in coercion priority order.
        pixels: The parameter is a pixel distance; physical lengths are
            converted with the camera's units-per-pixel.
    """
    expected_types: Tuple[ValueType, ...] = (ValueType.NUMBER,)
    pixels: bool = False


class Signal(Enum):
    SKIP = "skip"
    REPEAT = "repeat"


@dataclass(frozen=True)
class StageOutput:
    """
    A stage result carrying a control signal for the engine.

    Stages normally just return their value. Control stages return a
    StageOutput to end the run early or to jump back to an earlier stage.
    """
    value: Any = None
    signal: Optional[Signal] = None
    target: Optional[str] = None

    @classmethod
    def skip(cls, value: Any = None) -> "StageOutput":
        return cls(value=value, signal=Signal.SKIP)

    @classmethod
    def repeat_from(cls, target: str, value: Any = None) -> "StageOutput":
        return cls(value=value, signal=Signal.REPEAT, target=target)


class Stage(ABC):
    """
    Base class for pipeline stages.

    Subclasses set the class attributes below, accept every persisted
    parameter as a keyword argument with a default, and implement process().

    Attributes:
        type_tag: Registry key; persisted as the definition's "type".
        category: Grouping for stage discovery.
        description: One-line description for stage discovery.
        parameters: Names of the persisted parameters (instance attributes).
        overridable: Parameter name -> Overridable, for run-scoped overrides.
    """

    type_tag: ClassVar[str] = ""
    category: ClassVar[str] = "Image Processing"
    description: ClassVar[str] = ""
    parameters: ClassVar[Tuple[str, ...]] = ()
    overridable: ClassVar[Dict[str, Overridable]] = {}

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None):
        self.name = name
        self.enabled = enabled
        # Stages with overridable parameters are addressed by their type tag
        # unless the definition names a property explicitly.
        if property_name is None and self.overridable:
            property_name = self.type_tag
        self.property_name = property_name

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = str(value or "").strip()

    @abstractmethod
    def process(self, ctx: PipelineContext) -> Any:
        """
        Run the stage against the context's working image.

        Returns:
            The stage's result value (published under the stage name), or a
            StageOutput to signal the engine.
        """
        raise NotImplementedError

    def validate(self, earlier_stages: Sequence[str]) -> None:
        """
        Check references to other stages before a run.

        Args:
            earlier_stages: Names of the stages preceding this one.

        Raises:
            ConfigurationError: If the stage is misconfigured.
        """

    # Parameters

    def overridable_parameters(self) -> Dict[str, Overridable]:
        return dict(self.overridable)

    def override_key(self, parameter: str) -> Optional[str]:
        """Dotted override key for a parameter, or None if the stage has no property name."""
        if not self.property_name:
            return None
        return property_key(self.property_name, parameter)

    def normalize_override(self, parameter: str, value: Any) -> Any:
        """Adjust a resolved override value before the stage sees it."""
        return value

    def param(self, ctx: PipelineContext, parameter: str) -> Any:
        """Effective value of a parameter for this run."""
        return ctx.parameter(parameter, getattr(self, parameter))

    def get_parameters(self) -> Dict[str, Any]:
        return {p: getattr(self, p) for p in self.parameters}

    def set_parameters(self, values: Dict[str, Any]) -> None:
        """
        Update persisted parameters through their setters.

        Raises:
            ConfigurationError: For unknown parameters or rejected values.
        """
        for key, value in values.items():
            if key not in self.parameters:
                raise ConfigurationError(f"{self.type_tag} has no parameter {key!r}")
            try:
                setattr(self, key, value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"{self.type_tag}.{key}: {e}") from e

    # Persistence

    def to_definition(self) -> StageDefinition:
        parameters = self.get_parameters()
        if self.property_name and self.property_name != self.type_tag:
            parameters["property_name"] = self.property_name
        return StageDefinition(
            type=self.type_tag,
            name=self.name,
            parameters=parameters,
            enabled=self.enabled,
        )

    @classmethod
    def from_definition(cls, definition: StageDefinition) -> "Stage":
        """
        Raises:
            ConfigurationError: For unknown parameters or rejected values.
        """
        values = dict(definition.parameters)
        property_name = values.pop("property_name", None)
        stage = cls(name=definition.name, enabled=definition.enabled, property_name=property_name)
        stage.set_parameters(values)
        return stage

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, {self.get_parameters()})"

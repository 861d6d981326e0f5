"""
Stage registry.

Maps persisted type tags to stage classes so pipelines can be built from
configuration, and lists the available stages for discovery. Built-in
stages register themselves with the module-level STAGE_REGISTRY when the
`pipeline.stages` package is imported.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, Union

from ..definitions import StageDefinition
from ..errors import ConfigurationError
from .base import Stage


class StageRegistry:
    """Registry of stage classes keyed by type tag."""

    def __init__(self):
        self._stages: Dict[str, Type[Stage]] = {}

    def register(self, stage_cls: Type[Stage], type_tag: Optional[str] = None) -> Type[Stage]:
        """
        Register a stage class. Returns the class so it can be used as a decorator.

        Raises:
            ValueError: If the tag is empty or already taken by another class.
        """
        tag = type_tag or stage_cls.type_tag or stage_cls.__name__
        if not tag:
            raise ValueError(f"{stage_cls!r} has no type tag")
        existing = self._stages.get(tag)
        if existing is not None and existing is not stage_cls:
            raise ValueError(f"Stage type {tag!r} already registered to {existing.__name__}")
        self._stages[tag] = stage_cls
        logging.debug(f"Registered stage type {tag}")
        return stage_cls

    def unregister(self, type_tag: str) -> bool:
        return self._stages.pop(type_tag, None) is not None

    def get(self, type_tag: str) -> Type[Stage]:
        """
        Raises:
            ConfigurationError: If no stage is registered under the tag.
        """
        try:
            return self._stages[type_tag]
        except KeyError:
            raise ConfigurationError(
                f"Unknown stage type {type_tag!r}. Available: {', '.join(sorted(self._stages))}"
            ) from None

    def create(self, definition: Union[StageDefinition, Dict[str, Any]]) -> Stage:
        """Instantiate a stage from its persisted definition."""
        if not isinstance(definition, StageDefinition):
            definition = StageDefinition.from_dict(definition)
        return self.get(definition.type).from_definition(definition)

    def list_stages(self) -> List[Dict[str, Any]]:
        """Discovery listing: type, category, description, default parameters, overridables."""
        listing = []
        for tag in sorted(self._stages):
            cls = self._stages[tag]
            listing.append({
                "type": tag,
                "category": cls.category,
                "description": cls.description,
                "parameters": cls().get_parameters(),
                "overridable": sorted(cls.overridable),
            })
        return listing

    def __contains__(self, type_tag: str) -> bool:
        return type_tag in self._stages

    def __len__(self) -> int:
        return len(self._stages)


STAGE_REGISTRY = StageRegistry()


def register_stage(stage_cls: Type[Stage]) -> Type[Stage]:
    """Class decorator registering a built-in stage with STAGE_REGISTRY."""
    return STAGE_REGISTRY.register(stage_cls)

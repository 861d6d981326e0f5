"""
Persisted stage definitions.

A StageDefinition is what the configuration side stores for one stage:
its type tag, a name unique within the pipeline, whether it is enabled,
and its parameters. In YAML a definition is a flat mapping:

    - type: BlurGaussian
      name: blur
      kernel_size: 5
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from .errors import ConfigurationError

_RESERVED_KEYS = ("type", "name", "enabled", "parameters")


@dataclass
class StageDefinition:
    """
    Persisted configuration for one stage.

    Attributes:
        type: Registry type tag (e.g. "BlurGaussian").
        name: Name unique within the pipeline; results are published under it.
        parameters: Parameter name -> persisted value.
        enabled: Disabled stages are skipped and publish no result.
    """
    type: str
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StageDefinition":
        """
        Adapter: parameters may be nested under "parameters" or given inline.

        Raises:
            ConfigurationError: If "type" is missing or parameters is not a mapping.
        """
        if not isinstance(d, dict):
            raise ConfigurationError(f"Stage definition must be a mapping, got {type(d).__name__}")
        stage_type = d.get("type")
        if not stage_type or not isinstance(stage_type, str):
            raise ConfigurationError(f"Stage definition without a type: {d!r}")
        nested = d.get("parameters") or {}
        if not isinstance(nested, dict):
            raise ConfigurationError(f"Stage {d.get('name')!r}: parameters must be a mapping")
        parameters = {k: v for k, v in d.items() if k not in _RESERVED_KEYS}
        parameters.update(nested)
        return cls(
            type=stage_type,
            name=str(d.get("name") or ""),
            parameters=parameters,
            enabled=bool(d.get("enabled", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type, "name": self.name}
        if not self.enabled:
            d["enabled"] = False
        d.update(self.parameters)
        return d

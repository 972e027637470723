"""Configuration loading.

Resolution order for each setting (highest first):
1. Explicit keyword arguments (``KnotConfig.with_overrides``)
2. Environment variables (``INKSCOPE_*``)
3. Config file (``inkscope.yaml``)
4. Defaults below
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

from inkscope.runtime.flow_map import KnotFlow, flow_map_from_dict

CONFIG_FILENAME = "inkscope.yaml"

# Default cache lifetimes in seconds
DEFAULT_STATIC_CACHE_TTL = 5 * 60.0
DEFAULT_SOURCE_CACHE_TTL = 5 * 60.0
DEFAULT_COMPILED_CACHE_TTL = 10 * 60.0

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded."""

    def __init__(self, source: Path | str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to load inkscope config from {source}: {reason}")


@dataclass
class KnotConfig:
    """Settings for knot detection, validation and caching.

    Attributes:
        debug: Emit DEBUG events from the detector and validation layer.
            They show only where logging runs at DEBUG; the CLI switches
            its console to DEBUG when this is set.
        enable_static_validation: Check runtime detection against the
            compiled graph.
        static_cache_ttl: Seconds the validation layer trusts its graph.
        enable_source_cache: Keep source scan results.
        source_cache_ttl: Seconds a source scan stays fresh.
        enable_compiled_cache: Keep the compiled graph.
        compiled_cache_ttl: Seconds the compiled graph stays fresh.
        fallback_knot: Knot assumed when detection has nothing better.
        use_example_flow_map: Seed prediction with the example flow map.
        flow_map: Story-supplied transition table.
    """

    debug: bool = False
    enable_static_validation: bool = True
    static_cache_ttl: float = DEFAULT_STATIC_CACHE_TTL
    enable_source_cache: bool = True
    source_cache_ttl: float = DEFAULT_SOURCE_CACHE_TTL
    enable_compiled_cache: bool = True
    compiled_cache_ttl: float = DEFAULT_COMPILED_CACHE_TTL
    fallback_knot: str | None = None
    use_example_flow_map: bool = False
    flow_map: dict[str, KnotFlow] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnotConfig:
        """Create config from dictionary.

        Unknown keys are ignored. ``flow_map`` entries take the form
        ``{knot: {choices: [...], default: ...}}``.

        Raises:
            ValueError: If a value has the wrong type.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            if key == "flow_map":
                if not isinstance(value, dict):
                    raise ValueError("flow_map must be a mapping")
                values[key] = flow_map_from_dict(dict(value))
            elif key.endswith("_ttl"):
                values[key] = _parse_seconds(key, value)
            elif key == "fallback_knot":
                values[key] = str(value)
            else:
                values[key] = _parse_bool(key, value)
        return cls(**values)

    def with_env(self, environ: Mapping[str, str] | None = None) -> KnotConfig:
        """Return a copy with ``INKSCOPE_*`` environment overrides applied."""
        env: Mapping[str, str] = os.environ if environ is None else environ
        updates: dict[str, Any] = {}

        if (value := env.get("INKSCOPE_DEBUG")) is not None:
            updates["debug"] = _parse_bool("INKSCOPE_DEBUG", value)
        if (value := env.get("INKSCOPE_STATIC_VALIDATION")) is not None:
            updates["enable_static_validation"] = _parse_bool("INKSCOPE_STATIC_VALIDATION", value)
        if (value := env.get("INKSCOPE_STATIC_CACHE_TTL")) is not None:
            updates["static_cache_ttl"] = _parse_seconds("INKSCOPE_STATIC_CACHE_TTL", value)
        if (value := env.get("INKSCOPE_SOURCE_CACHE_TTL")) is not None:
            updates["source_cache_ttl"] = _parse_seconds("INKSCOPE_SOURCE_CACHE_TTL", value)
        if (value := env.get("INKSCOPE_COMPILED_CACHE_TTL")) is not None:
            updates["compiled_cache_ttl"] = _parse_seconds("INKSCOPE_COMPILED_CACHE_TTL", value)
        if value := env.get("INKSCOPE_FALLBACK_KNOT"):
            updates["fallback_knot"] = value

        return replace(self, **updates) if updates else self

    def with_overrides(self, **overrides: Any) -> KnotConfig:
        """Return a copy with explicit keyword overrides (None values ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _parse_seconds(key: str, value: Any) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{key} must be a number of seconds, got {value!r}") from e
    if seconds < 0:
        raise ValueError(f"{key} must not be negative, got {value!r}")
    return seconds


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> KnotConfig:
    """Load configuration from a YAML file and the environment.

    Args:
        path: Config file or a directory containing ``inkscope.yaml``.
            A missing file is not an error; defaults are used.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        KnotConfig instance.

    Raises:
        ConfigError: If the file exists but cannot be read or is invalid.
    """
    config = KnotConfig()

    if path is not None:
        config_path = path / CONFIG_FILENAME if path.is_dir() else path
        if config_path.exists():
            config = _load_file(config_path)

    try:
        return config.with_env(environ)
    except ValueError as e:
        raise ConfigError("environment", str(e)) from e


def _load_file(config_path: Path) -> KnotConfig:
    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            return KnotConfig()
        if not isinstance(data, dict):
            raise ConfigError(config_path, "Top level must be a mapping")

        return KnotConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(config_path, str(e)) from e

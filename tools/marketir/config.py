"""
MarketIR Configuration

Configuration for the integrity engine with YAML files, environment
variables and validation.

Configuration Sources (in order of precedence):
    1. Environment variables (MARKETIR_*)
    2. Explicit overrides (CLI flags)
    3. Config file (--config, or ./marketir.yaml in the repository root)
    4. Default values
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar, Union

import yaml

from tools.marketir.errors import ConfigError

T = TypeVar("T")

DEFAULT_CONFIG_FILE = "marketir.yaml"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _rel_path(x: Any) -> bool:
    return isinstance(x, str) and bool(x.strip()) and not x.startswith("/") and ".." not in x.split("/")


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            value = self._coerce(os.environ[self.env_var])
            self._check(value)
            return value
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        self._check(value)
        self._value = value

    def _check(self, value: T) -> None:
        if not isinstance(value, type(self.default)) or isinstance(value, bool) != isinstance(self.default, bool):
            raise ConfigError(f"Invalid type for {self.env_var or 'config'}: {value!r}")
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for {self.env_var or 'config'}: {value!r}")

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            try:
                return int(value)  # type: ignore
            except ValueError as ex:
                raise ConfigError(f"Invalid integer for {self.env_var or 'config'}: {value!r}") from ex
        else:
            return value  # type: ignore


@dataclass(frozen=True)
class Layout:
    """Resolved repo-relative locations of the graph's files."""
    data_dir: str
    index_path: str
    evidence_manifest_path: str
    schema_path: str
    lock_path: str


@dataclass
class MarketIRConfig:
    """Root configuration for the engine."""
    data_dir: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="data",
        env_var="MARKETIR_DATA_DIR",
        description="Directory holding authored graph files; index refs resolve against it",
        validator=_rel_path,
    ))
    index_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="data/marketing.index.json",
        env_var="MARKETIR_INDEX",
        description="Root index document",
        validator=_rel_path,
    ))
    evidence_manifest_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="manifests/evidence.manifest.json",
        env_var="MARKETIR_EVIDENCE_MANIFEST",
        description="Evidence manifest document",
        validator=_rel_path,
    ))
    schema_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="schema/marketing.schema.json",
        env_var="MARKETIR_SCHEMA",
        description="JSON Schema document with one $defs entry per entity kind",
        validator=_rel_path,
    ))
    lock_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="marketing.lock.json",
        env_var="MARKETIR_LOCK",
        description="Committed lockfile",
        validator=_rel_path,
    ))
    hash_workers: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=8,
        env_var="MARKETIR_HASH_WORKERS",
        description="Worker threads used to hash files",
        validator=lambda x: 0 < x <= 256,
    ))
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="MARKETIR_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x.lower() in LOG_LEVELS,
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="text",
        env_var="MARKETIR_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))

    def _values(self) -> Dict[str, ConfigValue]:
        return {k: getattr(self, k) for k in self.__dataclass_fields__}

    def get(self, key: str) -> Any:
        values = self._values()
        if key not in values:
            raise ConfigError(f"Unknown config key: {key}")
        return values[key].get()

    def set(self, key: str, value: Any) -> None:
        values = self._values()
        if key not in values:
            raise ConfigError(f"Unknown config key: {key}")
        values[key].set(value)

    def apply(self, data: Mapping[str, Any]) -> None:
        """Apply a mapping of values; unknown keys are rejected."""
        unknown = sorted(set(data) - set(self._values()))
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        for key, value in data.items():
            self.set(key, value)

    def layout(self) -> Layout:
        return Layout(
            data_dir=self.get("data_dir").strip("/"),
            index_path=self.get("index_path"),
            evidence_manifest_path=self.get("evidence_manifest_path"),
            schema_path=self.get("schema_path"),
            lock_path=self.get("lock_path"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: v.get() for k, v in self._values().items()}

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=True)

    def validate(self) -> List[str]:
        """Re-check every effective value; returns error messages."""
        errors: List[str] = []
        for key, value in self._values().items():
            try:
                value.get()
            except ConfigError as ex:
                errors.append(f"{key}: {ex}")
        return errors


def load_config(
    root: Union[str, Path],
    config_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> MarketIRConfig:
    """Build the effective configuration for a repository root.

    An explicit ``config_file`` must exist; otherwise ``marketir.yaml`` in
    ``root`` is used when present.
    """
    cfg = MarketIRConfig()

    path: Optional[Path] = None
    if config_file:
        path = Path(config_file)
        if not path.is_absolute():
            path = Path(root) / path
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
    elif (Path(root) / DEFAULT_CONFIG_FILE).exists():
        path = Path(root) / DEFAULT_CONFIG_FILE

    if path is not None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as ex:
            raise ConfigError(f"Failed to parse {path}: {ex}") from ex
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Configuration file must be a mapping: {path}")
        if data:
            cfg.apply(data)

    if overrides:
        cfg.apply({k: v for k, v in overrides.items() if v is not None})

    errors = cfg.validate()
    if errors:
        raise ConfigError("; ".join(errors))
    return cfg

"""
Configuration foundations for the VPP dispatch simulator.

Strategy, scenario and run configurations share one contract: they can
report problems without raising (``validate``), refuse to exist in an
invalid state (``ensure_valid``), round-trip through plain mappings, and be
stored as YAML or JSON next to a scenario file.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import json
import logging
from enum import Enum
import yaml

from ..exceptions import InvalidConfigurationError


class ConfigFormat(Enum):
    """File formats a configuration can be stored in."""
    YAML = "yaml"
    JSON = "json"


SUFFIX_FORMATS: Dict[str, ConfigFormat] = {
    ".yaml": ConfigFormat.YAML,
    ".yml": ConfigFormat.YAML,
    ".json": ConfigFormat.JSON,
}


class ValidationLevel(Enum):
    """How ``ensure_valid`` treats errors."""
    STRICT = "strict"          # raise
    WARN = "warn"              # log and keep going
    PERMISSIVE = "permissive"  # keep going silently


@dataclass
class ConfigValidationResult:
    """Errors and warnings collected while checking a configuration."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def extend(self, other: 'ConfigValidationResult', prefix: str = "") -> None:
        """Fold a nested section's result into this one."""
        label = f"{prefix}: " if prefix else ""
        for error in other.errors:
            self.add_error(f"{label}{error}")
        for warning in other.warnings:
            self.add_warning(f"{label}{warning}")


def _dump(data: Dict[str, Any], stream, format: ConfigFormat) -> None:
    if format == ConfigFormat.YAML:
        yaml.safe_dump(data, stream, default_flow_style=False, sort_keys=False, indent=2)
    else:
        json.dump(data, stream, indent=2)


def _load(stream, format: ConfigFormat) -> Any:
    if format == ConfigFormat.YAML:
        return yaml.safe_load(stream)
    return json.load(stream)


def format_for_path(file_path: Path) -> ConfigFormat:
    """Storage format implied by a file suffix."""
    try:
        return SUFFIX_FORMATS[file_path.suffix.lower()]
    except KeyError:
        raise ValueError(f"Unsupported configuration file format: {file_path.suffix or file_path.name}")


class BaseConfig(ABC):
    """Common behaviour of every vppsim configuration object."""

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"vppsim.config.{self.__class__.__name__}")

    @abstractmethod
    def validate(self) -> ConfigValidationResult:
        """Check the configuration and report every problem found."""

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Plain-mapping form, safe for YAML and JSON."""

    @classmethod
    @abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseConfig':
        """Build a configuration from its plain-mapping form."""

    def ensure_valid(self, level: ValidationLevel = ValidationLevel.STRICT) -> ConfigValidationResult:
        """Validate and act on the outcome according to ``level``."""
        result = self.validate()
        name = self.__class__.__name__

        for warning in result.warnings:
            self.logger.warning(f"{name}: {warning}")

        if result.is_valid or level == ValidationLevel.PERMISSIVE:
            return result
        if level == ValidationLevel.STRICT:
            raise InvalidConfigurationError(f"Invalid {name}: " + "; ".join(result.errors))

        for error in result.errors:
            self.logger.warning(f"{name}: ignoring error: {error}")
        return result

    def save_to_file(self, file_path: Union[str, Path], format: Optional[ConfigFormat] = None) -> None:
        """Write the configuration; the format defaults to the one implied by the suffix, else YAML."""
        file_path = Path(file_path)
        if format is None:
            format = SUFFIX_FORMATS.get(file_path.suffix.lower(), ConfigFormat.YAML)

        with open(file_path, "w") as f:
            _dump(self.to_dict(), f, format)
        self.logger.debug(f"Saved {self.__class__.__name__} to {file_path} ({format.value})")

    @classmethod
    def load_from_file(cls, file_path: Union[str, Path]) -> 'BaseConfig':
        """Read a configuration written by ``save_to_file`` (or by hand)."""
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        format = format_for_path(file_path)
        with open(file_path, "r") as f:
            data = _load(f, format)

        if data is not None and not isinstance(data, dict):
            raise InvalidConfigurationError(
                f"{file_path} must contain a mapping, got {type(data).__name__}"
            )
        return cls.from_dict(data or {})

    def merge(self, other: Union['BaseConfig', Dict[str, Any]]) -> 'BaseConfig':
        """New configuration with ``other`` (a config or a partial mapping) laid over this one."""
        overlay = other if isinstance(other, dict) else other.to_dict()
        return self.__class__.from_dict(deep_merge(self.to_dict(), overlay))


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``overlay`` into a copy of ``base``; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged

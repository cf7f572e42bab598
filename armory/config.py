# armory/config.py
"""Explicit configuration for the synchronizer and context builder.

Configuration is loaded from YAML at start-up and passed into the
components that need it; nothing here reads process-wide state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Self

import structlog
import yaml

from armory.constants import (
    DEFAULT_TAG_KEY,
    DEFAULT_TAG_NAMESPACE,
    FALLBACK_ITEM_ICON,
    FALLBACK_ITEM_NAME,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class AttachmentConfig:
    """Where provenance tags live and how unresolved entries are displayed."""

    tag_namespace: str = DEFAULT_TAG_NAMESPACE
    tag_key: str = DEFAULT_TAG_KEY
    fallback_name: str = FALLBACK_ITEM_NAME
    fallback_icon: str = FALLBACK_ITEM_ICON
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.tag_namespace or not self.tag_key:
            raise ValueError("tag_namespace and tag_key must be non-empty")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Self:
        """Build a config from a mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            log.warning("Ignoring unknown attachment config keys", keys=sorted(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def level(self) -> int:
        """Numeric logging level for ``log_level``."""
        value = logging.getLevelName(self.log_level.upper())
        return value if isinstance(value, int) else logging.INFO


def load_yaml_config(config_path: Path, config_name: str) -> Dict[str, Any]:
    """Loads a generic YAML configuration file."""
    log.debug(f"Loading {config_name} config", path=str(config_path))
    if not config_path.is_file():
        log.error(f"{config_name} config file not found", path=str(config_path))
        raise FileNotFoundError(
            f"{config_name} configuration file not found: {config_path}"
        )
    try:
        with config_path.open("r") as f:
            config_data = yaml.safe_load(f)
        if config_data is None:
            log.warning(f"{config_name} config file is empty.", path=str(config_path))
            return {}
        log.info(f"{config_name} config loaded", path=str(config_path))
        return config_data
    except yaml.YAMLError as e:
        log.error(
            f"Error parsing YAML for {config_name}",
            path=str(config_path),
            error=str(e),
            exc_info=True,
        )
        raise

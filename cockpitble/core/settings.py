"""User configuration loaded from ``$XDG_CONFIG_HOME/cockpitble/config.yaml``."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from cockpitble.core.errors import SettingsError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in value if tag != "tag:yaml.org,2002:bool"]
    for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise SettingsError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class ManagerSettings:
    tick_interval_s: float = 0.05
    presence_check_ticks: int = 100
    scan_timeout_s: float = 10.0
    connect_timeout_s: float = 10.0
    excluded_addresses: tuple[str, ...] = field(default_factory=tuple)


def config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "cockpitble/config.yaml"


def _positive_number(doc: dict[str, Any], key: str, default: float, *, integer: bool = False) -> Any:
    value = doc.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise SettingsError(f"'{key}' must be a positive number")
    if integer:
        if int(value) != value:
            raise SettingsError(f"'{key}' must be a whole number")
        return int(value)
    return float(value)


def settings_from_mapping(doc: dict[str, Any]) -> ManagerSettings:
    defaults = ManagerSettings()
    unknown = sorted(set(doc) - {
        "tick_interval_s",
        "presence_check_ticks",
        "scan_timeout_s",
        "connect_timeout_s",
        "excluded_addresses",
    })
    if unknown:
        raise SettingsError(f"Unknown setting(s): {', '.join(unknown)}")

    excluded = doc.get("excluded_addresses", [])
    if not isinstance(excluded, list) or not all(isinstance(a, str) for a in excluded):
        raise SettingsError("'excluded_addresses' must be a list of strings")

    return ManagerSettings(
        tick_interval_s=_positive_number(doc, "tick_interval_s", defaults.tick_interval_s),
        presence_check_ticks=_positive_number(
            doc, "presence_check_ticks", defaults.presence_check_ticks, integer=True
        ),
        scan_timeout_s=_positive_number(doc, "scan_timeout_s", defaults.scan_timeout_s),
        connect_timeout_s=_positive_number(doc, "connect_timeout_s", defaults.connect_timeout_s),
        excluded_addresses=tuple(a.strip() for a in excluded if a.strip()),
    )


def load_settings(path: Path | None = None) -> ManagerSettings:
    path = path or config_path()
    if not path.exists():
        LOGGER.debug("No config file at %s, using defaults", path)
        return ManagerSettings()

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise SettingsError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return ManagerSettings()
    if not isinstance(loaded, dict):
        raise SettingsError(f"Config file {path} must contain a mapping at root")
    return settings_from_mapping(loaded)

"""Loading and validation of the optional YAML configuration file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from printlink.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class BluetoothSettings:
    channel: int = 1
    timeout_s: float = 5.0


@dataclass(frozen=True)
class NetworkSettings:
    port: int = 9100
    timeout_s: float = 5.0


@dataclass(frozen=True)
class DiscoverySettings:
    bluetooth_scan_s: float = 10.0
    network_scan_s: float = 3.0


@dataclass(frozen=True)
class Settings:
    bluetooth: BluetoothSettings = field(default_factory=BluetoothSettings)
    network: NetworkSettings = field(default_factory=NetworkSettings)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "printlink/config.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("printlink.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def _build_settings(doc: dict[str, Any], source: Path) -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    bluetooth = doc.get("bluetooth", {})
    network = doc.get("network", {})
    discovery = doc.get("discovery", {})
    defaults = Settings()
    return Settings(
        bluetooth=BluetoothSettings(
            channel=int(bluetooth.get("channel", defaults.bluetooth.channel)),
            timeout_s=float(bluetooth.get("timeout_s", defaults.bluetooth.timeout_s)),
        ),
        network=NetworkSettings(
            port=int(network.get("port", defaults.network.port)),
            timeout_s=float(network.get("timeout_s", defaults.network.timeout_s)),
        ),
        discovery=DiscoverySettings(
            bluetooth_scan_s=float(
                discovery.get("bluetooth_scan_s", defaults.discovery.bluetooth_scan_s)
            ),
            network_scan_s=float(discovery.get("network_scan_s", defaults.discovery.network_scan_s)),
        ),
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from ``path`` or the XDG default location.

    A missing default file yields built-in defaults; an explicitly given
    path must exist.
    """
    explicit = path is not None
    config_path = path if path is not None else default_config_path()
    if not explicit and not config_path.exists():
        LOGGER.debug("No config file at %s, using defaults", config_path)
        return Settings()
    return _build_settings(_read_yaml(config_path), config_path)

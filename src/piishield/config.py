"""Service configuration: loading, validation and wiring."""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import jsonschema
import yaml

from piishield.engine import Engine
from piishield.exceptions import ConfigError
from piishield.models import RedactOptions
from piishield.registry import PatternRegistry, load_registry
from piishield.remote import RemoteRedactionClient
from piishield.router import LocalRedactor, ModeRouter, RemoteRedactor, ScopedFlagStore

logger = logging.getLogger(__name__)

API_KEY_ENV = "PII_SHIELD_REMOTE_API_KEY"

DEFAULTS: dict[str, Any] = {
    "registry": {"paths": None},
    "redaction": {"include_names": True, "include_addresses": True},
    "remote": {"url": None, "api_key": None, "timeout": 10.0, "enable_ai": True},
    "policy": {"remote_enabled": False, "scopes": {}},
}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "registry": {
            "type": "object",
            "properties": {
                "paths": {"type": ["array", "null"], "items": {"type": "string"}},
            },
        },
        "redaction": {
            "type": "object",
            "properties": {
                "include_names": {"type": "boolean"},
                "include_addresses": {"type": "boolean"},
            },
        },
        "remote": {
            "type": "object",
            "properties": {
                "url": {"type": ["string", "null"]},
                "api_key": {"type": ["string", "null"]},
                "timeout": {"type": "number", "exclusiveMinimum": 0},
                "enable_ai": {"type": "boolean"},
            },
        },
        "policy": {
            "type": "object",
            "properties": {
                "remote_enabled": {"type": "boolean"},
                "scopes": {
                    "type": "object",
                    "additionalProperties": {"type": "boolean"},
                },
            },
        },
        "server": {"type": "object"},
    },
}


def load_config(data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """
    Validate a config dict and fill in defaults.

    The settings may sit at the top level or under a ``pii_shield`` key.

    Raises:
        ConfigError: If the config does not match the schema
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")
    if "pii_shield" in data:
        data = data["pii_shield"] or {}

    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Invalid configuration at {location}: {e.message}") from e

    config = copy.deepcopy(DEFAULTS)
    for section, values in data.items():
        if isinstance(values, dict) and section in config:
            config[section].update(values)
        else:
            config[section] = values

    if not config["remote"]["api_key"]:
        config["remote"]["api_key"] = os.environ.get(API_KEY_ENV)

    return config


def load_from_yaml(path: Union[str, Path]) -> dict[str, Any]:
    """Load and validate a YAML config file."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return load_config(data)


def default_options(config: dict[str, Any]) -> RedactOptions:
    """Default per-call options from the ``redaction`` section."""
    redaction = config.get("redaction", {})
    return RedactOptions(
        include_names=redaction.get("include_names", True),
        include_addresses=redaction.get("include_addresses", True),
    )


def build_registry(config: dict[str, Any]) -> PatternRegistry:
    return load_registry(paths=config.get("registry", {}).get("paths"))


def build_router(config: dict[str, Any], registry: Optional[PatternRegistry] = None) -> ModeRouter:
    """
    Wire a ModeRouter from a loaded config.

    Args:
        config: Output of :func:`load_config`
        registry: Pattern registry to use; loaded from ``registry.paths`` if omitted

    Returns:
        ModeRouter with a remote redactor only when ``remote.url`` is set
    """
    if registry is None:
        registry = build_registry(config)

    remote_config = config.get("remote", {})
    remote = None
    if remote_config.get("url"):
        client = RemoteRedactionClient(
            base_url=remote_config["url"],
            api_key=remote_config.get("api_key"),
            timeout=remote_config.get("timeout", 10.0),
            enable_ai=remote_config.get("enable_ai", True),
        )
        remote = RemoteRedactor(client)

    policy = config.get("policy", {})
    flags = ScopedFlagStore(
        default=policy.get("remote_enabled", False),
        scopes=policy.get("scopes", {}),
    )
    if flags.default and remote is None:
        logger.warning("Remote redaction enabled by policy but remote.url is not set")

    return ModeRouter(local=LocalRedactor(Engine(registry)), remote=remote, flags=flags)

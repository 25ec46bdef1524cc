"""
Configuration Loader (``garment_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the frozen
``garment_config.schema`` dataclasses.  Runtime callers go through
``garment_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Required keys raise ``KeyError``; malformed values raise ``ValueError``.
  There are no silent defaults for ``config_id``, ``version`` or the access
  rules.
* ``compute_checksum`` is deterministic over the parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from garment_config.schema import (
    AccessRuleDef,
    BatchSkuFormat,
    LoggingSettings,
    ProductionConfigurationSet,
    StoreSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_access_rules(data: dict[str, Any]) -> tuple[AccessRuleDef, ...]:
    """``{action: [role, ...]}`` -> AccessRuleDef tuple, in document order."""
    if not isinstance(data, dict):
        raise ValueError("access_policy must be a mapping of action to roles")
    rules = []
    for action, roles in data.items():
        if isinstance(roles, str):
            roles = [roles]
        if not isinstance(roles, list):
            raise ValueError(f"access_policy.{action} must be a list of roles")
        rules.append(AccessRuleDef(action=str(action), roles=tuple(str(r) for r in roles)))
    return tuple(rules)


def parse_batch_sku(data: dict[str, Any] | None) -> BatchSkuFormat:
    if not data:
        return BatchSkuFormat()
    return BatchSkuFormat(
        prefix=str(data.get("prefix", "PROD")),
        width=int(data.get("width", 3)),
    )


def parse_store(data: dict[str, Any] | None) -> StoreSettings:
    if not data:
        return StoreSettings()
    defaults = StoreSettings()
    return StoreSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        pool_recycle=int(data.get("pool_recycle", defaults.pool_recycle)),
        sqlite_busy_timeout=int(data.get("sqlite_busy_timeout", defaults.sqlite_busy_timeout)),
    )


def parse_logging(data: dict[str, Any] | None) -> LoggingSettings:
    if not data:
        return LoggingSettings()
    return LoggingSettings(level=str(data.get("level", "INFO")).upper())


def parse_configuration(data: dict[str, Any]) -> ProductionConfigurationSet:
    return ProductionConfigurationSet(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        description=str(data.get("description", "")),
        access_rules=parse_access_rules(data["access_policy"]),
        batch_sku=parse_batch_sku(data.get("batch_sku")),
        store=parse_store(data.get("store")),
        logging=parse_logging(data.get("logging")),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> ProductionConfigurationSet:
    return parse_configuration(load_yaml_file(path))

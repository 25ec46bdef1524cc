"""
ProductionConfigurationSet schema.

The human-authored source artifact for the production kernel's
configuration.  YAML is parsed into these types by the loader, checked by
the validator, and turned into kernel inputs by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BatchSkuFormat:
    """``{prefix}-YYYYMMDD-{number:0{width}d}``."""

    prefix: str = "PROD"
    width: int = 3


@dataclass(frozen=True)
class StoreSettings:
    database_url: str = "sqlite:///garment.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: int = 30


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class AccessRuleDef:
    """Roles permitted to perform one action."""

    action: str
    roles: tuple[str, ...]


@dataclass(frozen=True)
class ProductionConfigurationSet:
    config_id: str
    version: int
    description: str = ""
    access_rules: tuple[AccessRuleDef, ...] = ()
    batch_sku: BatchSkuFormat = field(default_factory=BatchSkuFormat)
    store: StoreSettings = field(default_factory=StoreSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    # SHA-256 of the parsed source document
    checksum: str = ""

    def roles_for(self, action: str) -> tuple[str, ...]:
        for rule in self.access_rules:
            if rule.action == action:
                return rule.roles
        return ()

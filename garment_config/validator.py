"""
Configuration Validator (``garment_config.validator``).

Responsibility
--------------
Checks a ``ProductionConfigurationSet`` before it is handed to the kernel.

Invariants enforced
-------------------
* Every kernel action has an access rule, and no rule names an unknown
  action or role.
* Each action grants between one and two roles.
* The batch SKU prefix is a non-empty alphanumeric token and the counter
  width is between 1 and 9.
* Store pool settings are positive.
* The logging level is a standard level name.

Failure modes
-------------
* ``ConfigValidationResult.errors``  -> the configuration MUST NOT be used.
* ``ConfigValidationResult.warnings``  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from garment_config.schema import ProductionConfigurationSet
from garment_kernel.domain.lifecycle import Action
from garment_kernel.domain.roles import MAX_ROLES_PER_ACTION, Role


@dataclass
class ConfigValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ProductionConfigurationSet) -> ConfigValidationResult:
    result = ConfigValidationResult()
    _validate_access_rules(config, result)
    _validate_batch_sku(config, result)
    _validate_store(config, result)
    _validate_logging(config, result)
    return result


def _validate_access_rules(
    config: ProductionConfigurationSet, result: ConfigValidationResult
) -> None:
    known_actions = {a.value for a in Action}
    known_roles = {r.value for r in Role}
    seen: set[str] = set()

    for rule in config.access_rules:
        if rule.action in seen:
            result.add_error(f"Duplicate access rule for action '{rule.action}'")
        seen.add(rule.action)
        if rule.action not in known_actions:
            result.add_error(f"Access rule for unknown action '{rule.action}'")
        unknown = [r for r in rule.roles if r not in known_roles]
        if unknown:
            result.add_error(
                f"Action '{rule.action}' names unknown role(s): {', '.join(unknown)}"
            )
        distinct = set(rule.roles)
        if not distinct:
            result.add_error(f"Action '{rule.action}' grants no roles")
        elif len(distinct) > MAX_ROLES_PER_ACTION:
            result.add_error(
                f"Action '{rule.action}' grants {len(distinct)} roles "
                f"(max {MAX_ROLES_PER_ACTION})"
            )
        if len(distinct) != len(rule.roles):
            result.add_warning(f"Action '{rule.action}' lists a role twice")

    for action in sorted(known_actions - seen):
        result.add_error(f"No access rule for action '{action}'")


def _validate_batch_sku(
    config: ProductionConfigurationSet, result: ConfigValidationResult
) -> None:
    prefix = config.batch_sku.prefix
    if not prefix or not prefix.isalnum():
        result.add_error(f"Batch SKU prefix must be alphanumeric, got {prefix!r}")
    if not 1 <= config.batch_sku.width <= 9:
        result.add_error(f"Batch SKU width must be 1-9, got {config.batch_sku.width}")


def _validate_store(
    config: ProductionConfigurationSet, result: ConfigValidationResult
) -> None:
    store = config.store
    if not store.database_url:
        result.add_error("store.database_url is required")
    for name in ("pool_size", "pool_timeout", "sqlite_busy_timeout"):
        if getattr(store, name) <= 0:
            result.add_error(f"store.{name} must be positive")
    if store.max_overflow < 0:
        result.add_error("store.max_overflow must be non-negative")


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _validate_logging(
    config: ProductionConfigurationSet, result: ConfigValidationResult
) -> None:
    if config.logging.level not in _LOG_LEVELS:
        result.add_error(
            f"logging.level must be one of {', '.join(_LOG_LEVELS)}, "
            f"got {config.logging.level!r}"
        )

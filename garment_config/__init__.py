"""
garment_config -- single public entrypoint for production configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen
    ``ProductionConfigurationSet``; ``bridges`` turns it into kernel inputs
    (AccessPolicy, Store, wired services).

Architecture position:
    Configuration -- sits above ``garment_kernel``.  The kernel MUST NEVER
    import from ``garment_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Every kernel action has a role rule of one or two roles before the
      configuration is returned.
    - Deterministic checksum: the same document always yields the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or validation failures.

Audit relevance:
    Every successful call emits a ``config_loaded`` log entry with the
    config id, version and checksum, tying each run to the exact role matrix
    that governed it.
"""

from __future__ import annotations

from pathlib import Path

from garment_config.loader import load_configuration
from garment_config.schema import (
    AccessRuleDef,
    BatchSkuFormat,
    LoggingSettings,
    ProductionConfigurationSet,
    StoreSettings,
)
from garment_config.validator import ConfigValidationResult, validate_configuration
from garment_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ProductionConfigurationSet:
    """
    Load, validate and return the active configuration.

    Args:
        config_path: YAML document to load.  Defaults to the packaged
            ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document fails validation.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        config = load_configuration(path)
    except KeyError as exc:
        raise ValueError(f"Configuration {path} is missing key {exc.args[0]!r}") from exc

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_warning", extra={"detail": warning})

    _logger.info(
        "config_loaded",
        extra={
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "rule_count": len(config.access_rules),
            "source": str(path),
        },
    )
    return config


__all__ = [
    "AccessRuleDef",
    "BatchSkuFormat",
    "ConfigValidationResult",
    "DEFAULT_CONFIG_PATH",
    "LoggingSettings",
    "ProductionConfigurationSet",
    "StoreSettings",
    "get_active_config",
    "validate_configuration",
]

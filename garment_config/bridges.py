"""
Config -> Kernel bridges.

Functions that turn a validated configuration set into kernel inputs.  They
live here because the kernel never imports ``garment_config``.

Usage:
    config = get_active_config()
    store = build_store(config)
    configure_logging_from(config)
    machine = build_state_machine(config, store.session(), clock)
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from garment_config.schema import ProductionConfigurationSet
from garment_kernel.db.engine import Store, create_store
from garment_kernel.domain.clock import Clock
from garment_kernel.domain.roles import AccessPolicy, Role
from garment_kernel.logging_config import configure_logging
from garment_kernel.services.batch_state_machine import BatchStateMachine
from garment_kernel.services.inventory_service import InventoryService
from garment_kernel.services.notifications import Notifier


def build_access_policy(config: ProductionConfigurationSet) -> AccessPolicy:
    return AccessPolicy(
        rules={rule.action: frozenset(Role(r) for r in rule.roles) for rule in config.access_rules}
    )


def build_store(config: ProductionConfigurationSet, database_url: str | None = None) -> Store:
    """Store from the configured settings; ``database_url`` overrides the file."""
    settings = config.store
    return create_store(
        database_url or settings.database_url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
        sqlite_busy_timeout=settings.sqlite_busy_timeout,
    )


def configure_logging_from(
    config: ProductionConfigurationSet,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON log handler at the configured level (first call wins)."""
    configure_logging(level=config.logging.level, stream=stream, handler=handler)


def build_state_machine(
    config: ProductionConfigurationSet,
    session: Session,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> BatchStateMachine:
    return BatchStateMachine(
        session,
        build_access_policy(config),
        clock=clock,
        notifier=notifier,
        sku_prefix=config.batch_sku.prefix,
        sku_width=config.batch_sku.width,
    )


def build_inventory_service(
    config: ProductionConfigurationSet,
    session: Session,
    clock: Clock | None = None,
) -> InventoryService:
    return InventoryService(session, build_access_policy(config), clock=clock)

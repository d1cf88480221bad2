"""Wiring of stores, engine and views rooted at one data directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from freeco import settings
from freeco.config.system_config import SystemConfigStore
from freeco.entities.store import EntityStore
from freeco.marketplace.service import MarketplaceService
from freeco.moderation.engine import ModerationEngine
from freeco.notifications.dispatcher import NotificationStore
from freeco.reporting.queries import ModerationQueries, NotificationInbox
from freeco.security.audit_log import AuditLogger


@dataclass
class Services:
    store: EntityStore
    notifications: NotificationStore
    audit: AuditLogger
    config: SystemConfigStore
    engine: ModerationEngine
    marketplace: MarketplaceService
    queries: ModerationQueries
    inbox: NotificationInbox


def build_services(data_dir: Optional[str | Path] = None, timeout: Optional[float] = None) -> Services:
    """Create every component under *data_dir* (default ``FREECO_DATA_DIR``)."""
    base = Path(data_dir) if data_dir else settings.DATA_DIR
    store = EntityStore(base / "entities")
    notifications = NotificationStore(base / "notifications")
    audit = AuditLogger(base / "audit_logs")
    config = SystemConfigStore(base / "config")
    engine = ModerationEngine(store, notifications, audit=audit, timeout=timeout, config=config)
    return Services(
        store=store,
        notifications=notifications,
        audit=audit,
        config=config,
        engine=engine,
        marketplace=MarketplaceService(store, config),
        queries=ModerationQueries(store),
        inbox=NotificationInbox(notifications),
    )

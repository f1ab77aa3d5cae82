"""
Tracker Core - wires settings, the serialized store and the services.

This is the one object a presentation layer holds. UI code calls the
services; the services go through the store; nothing else touches the
database.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from lancr.infra.config import Settings, get_settings
from lancr.infra.notifications import LoggingNotifier, Notifier, NullNotifier
from lancr.infra.store import SerializedStore
from lancr.services import (
    BackupService, ClientService, EarningsService, InvoiceService, ProjectService, TimerService,
)
from lancr.utils import now_ms

logger = logging.getLogger(__name__)


class TrackerCore:
    """
    Owns the store and every service built on it.

    Use ``await TrackerCore.open()`` to get a ready instance and
    ``await core.close()`` on shutdown.
    """

    def __init__(self, store: SerializedStore, settings: Settings,
                 notifier: Optional[Notifier] = None, clock: Callable[[], int] = now_ms):
        self.store = store
        self.settings = settings
        prefs = settings.preferences

        if notifier is None:
            notifier = LoggingNotifier() if prefs.notifications_enabled else NullNotifier()

        self.clients = ClientService(store)
        self.projects = ProjectService(store)
        self.timer = TimerService(store, notifier=notifier, clock=clock,
                                  tick_interval=prefs.tick_interval_seconds)
        self.invoices = InvoiceService(store, clock=clock)
        self.earnings = EarningsService(store)
        self.backup = BackupService(store, backup_dir=settings.get_backup_dir())

    @classmethod
    async def open(cls, settings: Optional[Settings] = None, notifier: Optional[Notifier] = None,
                   clock: Callable[[], int] = now_ms) -> "TrackerCore":
        """Open the database and pick up a timer left running by a previous process"""
        settings = settings or get_settings()
        store = await SerializedStore.open(settings.get_db_url())
        core = cls(store, settings, notifier=notifier, clock=clock)
        state = await core.timer.resume()
        if state.is_running:
            logger.info(f"Resumed running timer: {state.display}")
        return core

    async def create_backup(self) -> Path:
        """Write a backup file and prune old ones down to the configured retention"""
        backup_file = await self.backup.create_backup()
        self.backup.cleanup_old_backups(keep_count=self.settings.preferences.backup_retention_count)
        return backup_file

    async def restore(self, payload) -> dict:
        """Import a backup and re-sync the timer with the restored rows"""
        restored = await self.backup.import_snapshot(payload)
        await self.timer.resume()
        return restored

    async def close(self):
        await self.timer.close()
        await self.store.close()

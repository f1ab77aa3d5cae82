"""
Backup Service - snapshot export/import and backup files.

The payload is plain JSON in the shape the mobile app wrote, with every row
keeping its id so references between tables survive a restore.

Export is a single queued read and import a single queued transaction: no
writer can interleave with either, and a failed import leaves the previous
data exactly as it was.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError

from lancr.domain.errors import ValidationError, from_pydantic
from lancr.domain.snapshot import Snapshot
from lancr.infra.db import ClientModel, ProjectModel, TimeEntryModel, InvoiceModel
from lancr.infra.store import SerializedStore

logger = logging.getLogger(__name__)

# Payload key -> table, in parent-before-child order
SNAPSHOT_TABLES = [
    ("clients", ClientModel.__table__),
    ("projects", ProjectModel.__table__),
    ("timeEntries", TimeEntryModel.__table__),
    ("invoices", InvoiceModel.__table__),
]

# Doubles as the strptime pattern when listing
BACKUP_NAME_FORMAT = "lancr_backup_%Y-%m-%d_%H%M%S.json"


class BackupFile(BaseModel):
    path: Path
    created: datetime
    size_bytes: int

    @property
    def size_human(self) -> str:
        size = float(self.size_bytes)
        for unit in ("B", "KB", "MB"):
            if size < 1024:
                return f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} GB"


class BackupService:
    """Full-data snapshots, in memory or as timestamped files."""

    def __init__(self, store: SerializedStore, backup_dir: Optional[Path] = None):
        self.store = store
        self.backup_dir = backup_dir

    async def export_snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Read all four tables in one queued operation.

        Returns:
            {"clients": [...], "projects": [...], "timeEntries": [...], "invoices": [...]}
            with one dict per row, keyed by column name
        """
        async def operation(session):
            snapshot = {}
            for key, table in SNAPSHOT_TABLES:
                result = await session.execute(select(table).order_by(table.c.id))
                snapshot[key] = [dict(row) for row in result.mappings().all()]
            return snapshot

        return await self.store.enqueue(operation)

    async def export_payload(self) -> bytes:
        """The snapshot serialized as UTF-8 JSON"""
        snapshot = await self.export_snapshot()
        return json.dumps(snapshot, indent=2, ensure_ascii=False).encode("utf-8")

    async def import_snapshot(self, data: Union[bytes, str, Dict[str, Any]]) -> Dict[str, int]:
        """
        Replace all data with the snapshot.

        This is a full restore: every existing row is deleted and the snapshot
        rows are inserted with their original ids, all in one transaction.

        Args:
            data: JSON bytes/str, or an already parsed dict

        Returns:
            Dictionary with counts of restored rows per payload key

        Raises:
            ValidationError: malformed payload, duplicate ids, dangling references
                or more than one open time entry. Nothing is changed.
        """
        snapshot = self._parse(data)
        rows = {
            "clients": [row.model_dump() for row in snapshot.clients],
            "projects": [row.model_dump() for row in snapshot.projects],
            "timeEntries": [row.model_dump() for row in snapshot.timeEntries],
            "invoices": [row.model_dump() for row in snapshot.invoices],
        }

        async def operation(session):
            # Children first; the reverse of insertion order
            for _, table in reversed(SNAPSHOT_TABLES):
                await session.execute(delete(table))

            try:
                for key, table in SNAPSHOT_TABLES:
                    if rows[key]:
                        await session.execute(insert(table), rows[key])
            except IntegrityError as e:
                raise ValidationError(f"Backup contains invalid or conflicting rows: {e.orig}") from e

            await self._check_integrity(session)
            return {key: len(rows[key]) for key, _ in SNAPSHOT_TABLES}

        restored = await self.store.enqueue(operation)
        logger.info(f"Backup restored: {restored}")
        return restored

    def _parse(self, data: Union[bytes, str, Dict[str, Any]]) -> Snapshot:
        if isinstance(data, (bytes, str)):
            try:
                data = json.loads(data)
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise ValidationError(f"Backup is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError("Invalid backup file: expected a JSON object")
        try:
            return Snapshot.model_validate(data)
        except PydanticValidationError as e:
            raise from_pydantic(e) from e

    @staticmethod
    async def _check_integrity(session):
        """Reject references to rows the snapshot does not contain"""
        client_ids = select(ClientModel.id)
        project_ids = select(ProjectModel.id)
        checks = [
            ("project without client", select(func.count()).select_from(ProjectModel)
             .where(ProjectModel.client_id.not_in(client_ids))),
            ("time entry without project", select(func.count()).select_from(TimeEntryModel)
             .where(TimeEntryModel.project_id.not_in(project_ids))),
            ("invoice without project or client", select(func.count()).select_from(InvoiceModel)
             .where(InvoiceModel.project_id.not_in(project_ids) | InvoiceModel.client_id.not_in(client_ids))),
        ]
        for label, stmt in checks:
            count = (await session.execute(stmt)).scalar_one()
            if count:
                raise ValidationError(f"Backup is inconsistent: {count} {label}")

        open_count = (await session.execute(
            select(func.count()).select_from(TimeEntryModel).where(TimeEntryModel.ended_at.is_(None))
        )).scalar_one()
        if open_count > 1:
            raise ValidationError(f"Backup is inconsistent: {open_count} running time entries")

    def _resolve_dir(self, backup_dir: Optional[Path]) -> Path:
        target = Path(backup_dir) if backup_dir else self.backup_dir
        if target is None:
            raise ValueError("No backup directory configured")
        target.mkdir(parents=True, exist_ok=True)
        return target

    async def create_backup(self, backup_dir: Optional[Path] = None) -> Path:
        """Write a full snapshot to ``lancr_backup_<timestamp>.json``"""
        target = self._resolve_dir(backup_dir) / datetime.now().strftime(BACKUP_NAME_FORMAT)
        target.write_bytes(await self.export_payload())
        logger.info(f"Backup written to {target}")
        return target

    async def restore_backup(self, backup_file: Path) -> Dict[str, int]:
        """
        Raises:
            FileNotFoundError: no such file
            ValidationError: the file is not a valid backup
        """
        backup_file = Path(backup_file)
        if not backup_file.is_file():
            raise FileNotFoundError(f"No backup at {backup_file}")
        return await self.import_snapshot(backup_file.read_bytes())

    def list_backups(self, backup_dir: Optional[Path] = None) -> List[BackupFile]:
        """Backup files in the directory, newest first. Other files are ignored."""
        found = []
        for path in self._resolve_dir(backup_dir).glob("lancr_backup_*.json"):
            try:
                created = datetime.strptime(path.name, BACKUP_NAME_FORMAT)
            except ValueError:
                continue
            found.append(BackupFile(path=path, created=created, size_bytes=path.stat().st_size))
        return sorted(found, key=lambda b: b.created, reverse=True)

    def cleanup_old_backups(self, keep_count: int = 5, backup_dir: Optional[Path] = None) -> int:
        """Delete all but the ``keep_count`` newest backups; returns how many were deleted"""
        stale = self.list_backups(backup_dir)[keep_count:]
        for backup in stale:
            backup.path.unlink()
            logger.info(f"Pruned backup {backup.path.name}")
        return len(stale)

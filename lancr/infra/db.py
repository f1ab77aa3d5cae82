"""
SQLAlchemy database models and configuration.

Column names keep the camelCase spelling of the mobile app schema so that
backup rows mirror the tables verbatim; the Python attributes are snake_case.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import BigInteger, Float, ForeignKey, Integer, String, Text, delete, inspect, select
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


# Base class for all models
class Base(DeclarativeBase):
    pass


class ClientModel(Base):
    __tablename__ = "clients"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column("createdAt", BigInteger, nullable=False)


class ProjectModel(Base):
    __tablename__ = "projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column("clientId", Integer, ForeignKey("clients.id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", server_default="active")
    hourly_rate: Mapped[float] = mapped_column("hourlyRate", Float, default=0.0, server_default="0")
    deadline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column("createdAt", BigInteger, nullable=False)


class TimeEntryModel(Base):
    __tablename__ = "time_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column("projectId", Integer, ForeignKey("projects.id"), nullable=False)
    started_at: Mapped[int] = mapped_column("startedAt", BigInteger, nullable=False)
    # NULL while the timer is running; at most one such row may exist
    ended_at: Mapped[Optional[int]] = mapped_column("endedAt", BigInteger, nullable=True)
    duration: Mapped[int] = mapped_column(Integer, default=0, server_default="0")


class InvoiceModel(Base):
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column("projectId", Integer, ForeignKey("projects.id"), nullable=False)
    client_id: Mapped[int] = mapped_column("clientId", Integer, ForeignKey("clients.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    hours: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    hourly_rate: Mapped[float] = mapped_column("hourlyRate", Float, default=0.0, server_default="0")
    invoice_number: Mapped[int] = mapped_column("invoiceNumber", Integer, default=0, server_default="0")
    status: Mapped[str] = mapped_column(String(16), default="unpaid", server_default="unpaid")
    created_at: Mapped[int] = mapped_column("createdAt", BigInteger, nullable=False)
    paid_at: Mapped[Optional[int]] = mapped_column("paidAt", BigInteger, nullable=True)


# Columns that did not exist in the first schema; older databases get them on open.
UPGRADE_COLUMNS = [
    ("clients", "notes", "TEXT"),
    ("projects", "notes", "TEXT"),
    ("invoices", "hours", "REAL DEFAULT 0"),
    ("invoices", "hourlyRate", "REAL DEFAULT 0"),
    ("invoices", "invoiceNumber", "INTEGER DEFAULT 0"),
]


def _add_missing_columns(sync_conn) -> int:
    """Apply UPGRADE_COLUMNS; returns how many columns were added."""
    inspector = inspect(sync_conn)
    added = 0
    for table, column, ddl in UPGRADE_COLUMNS:
        existing = {col["name"] for col in inspector.get_columns(table)}
        if column in existing:
            continue
        try:
            sync_conn.exec_driver_sql(f'ALTER TABLE {table} ADD COLUMN "{column}" {ddl}')
            added += 1
        except OperationalError as e:
            # another process may have upgraded the file in between
            if "duplicate column" not in str(e).lower():
                raise
    return added


class DatabaseEngine:
    """
    Manages database connection and session lifecycle.

    Only SerializedStore talks to this class; everything else goes through
    the store's queue.
    """

    def __init__(self, db_url: str):
        self.db_url = db_url
        self.engine = create_async_engine(db_url, echo=False)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    async def create_tables(self):
        """Create all tables and add columns introduced by later versions"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            added = await conn.run_sync(_add_missing_columns)
        if added:
            logger.info(f"Schema upgraded: {added} column(s) added")

    async def sweep_orphans(self) -> Dict[str, int]:
        """
        Delete rows whose parent no longer exists.

        Projects go first so that entries and invoices of a swept project are
        caught in the same pass.
        """
        counts = {}
        async with self.session_factory() as session:
            async with session.begin():
                client_ids = select(ClientModel.id)
                result = await session.execute(
                    delete(ProjectModel).where(ProjectModel.client_id.not_in(client_ids))
                )
                counts["projects"] = result.rowcount

                project_ids = select(ProjectModel.id)
                result = await session.execute(
                    delete(TimeEntryModel).where(TimeEntryModel.project_id.not_in(project_ids))
                )
                counts["time_entries"] = result.rowcount

                result = await session.execute(
                    delete(InvoiceModel).where(
                        InvoiceModel.project_id.not_in(project_ids)
                        | InvoiceModel.client_id.not_in(client_ids)
                    )
                )
                counts["invoices"] = result.rowcount

        if any(counts.values()):
            logger.info(f"Orphan sweep removed rows: {counts}")
        return counts

    def get_session(self) -> AsyncSession:
        """Get a new database session"""
        return self.session_factory()

    async def dispose(self):
        await self.engine.dispose()

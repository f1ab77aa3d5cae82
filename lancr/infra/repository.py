"""
Repository Pattern Implementation.

Repositories are bound to the session of the queued operation they run in;
they never open sessions or commit themselves. The store's transaction
boundary is the operation, so several repository calls inside one operation
are atomic together.
"""

from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lancr.domain.models import Client, Project, TimeEntry, Invoice
from lancr.infra.db import ClientModel, ProjectModel, TimeEntryModel, InvoiceModel


class ClientRepository:
    """
    Handles all Client-related database operations.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> List[Client]:
        result = await self.session.execute(
            select(ClientModel).order_by(ClientModel.created_at.desc(), ClientModel.id.desc())
        )
        return [Client.model_validate(m) for m in result.scalars().all()]

    async def get_by_id(self, client_id: int) -> Optional[Client]:
        model = await self.session.get(ClientModel, client_id)
        return Client.model_validate(model) if model else None

    async def search(self, query: str) -> List[Client]:
        """Case-insensitive substring match on name, email and company"""
        pattern = f"%{query}%"
        result = await self.session.execute(
            select(ClientModel)
            .where(or_(
                ClientModel.name.like(pattern),
                ClientModel.email.like(pattern),
                ClientModel.company.like(pattern),
            ))
            .order_by(ClientModel.created_at.desc(), ClientModel.id.desc())
        )
        return [Client.model_validate(m) for m in result.scalars().all()]

    async def create(self, client: Client) -> Client:
        model = ClientModel(
            name=client.name,
            email=client.email,
            company=client.company,
            notes=client.notes,
            created_at=client.created_at
        )
        self.session.add(model)
        await self.session.flush()
        return Client.model_validate(model)

    async def update(self, client: Client) -> bool:
        """Returns False when the client does not exist"""
        result = await self.session.execute(
            update(ClientModel)
            .where(ClientModel.id == client.id)
            .values(name=client.name, email=client.email, company=client.company, notes=client.notes)
        )
        return result.rowcount > 0

    async def delete_cascade(self, client_id: int) -> bool:
        """
        Delete a client with its projects, their time entries and its invoices.

        Returns False when the client does not exist.
        """
        project_ids = select(ProjectModel.id).where(ProjectModel.client_id == client_id)
        await self.session.execute(
            delete(TimeEntryModel).where(TimeEntryModel.project_id.in_(project_ids))
        )
        await self.session.execute(
            delete(InvoiceModel).where(
                (InvoiceModel.client_id == client_id) | InvoiceModel.project_id.in_(project_ids)
            )
        )
        await self.session.execute(delete(ProjectModel).where(ProjectModel.client_id == client_id))
        result = await self.session.execute(delete(ClientModel).where(ClientModel.id == client_id))
        return result.rowcount > 0


class ProjectRepository:
    """
    Handles all Project-related database operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self, client_id: Optional[int] = None) -> List[Project]:
        stmt = select(ProjectModel)
        if client_id is not None:
            stmt = stmt.where(ProjectModel.client_id == client_id)
        result = await self.session.execute(
            stmt.order_by(ProjectModel.created_at.desc(), ProjectModel.id.desc())
        )
        return [Project.model_validate(m) for m in result.scalars().all()]

    async def get_by_id(self, project_id: int) -> Optional[Project]:
        model = await self.session.get(ProjectModel, project_id)
        return Project.model_validate(model) if model else None

    async def get_name(self, project_id: int) -> Optional[str]:
        result = await self.session.execute(
            select(ProjectModel.name).where(ProjectModel.id == project_id)
        )
        return result.scalar_one_or_none()

    async def create(self, project: Project) -> Project:
        model = ProjectModel(
            client_id=project.client_id,
            name=project.name,
            status=project.status,
            hourly_rate=project.hourly_rate,
            deadline=project.deadline,
            notes=project.notes,
            created_at=project.created_at
        )
        self.session.add(model)
        await self.session.flush()
        return Project.model_validate(model)

    async def update(self, project: Project) -> bool:
        """Update name, rate, deadline and notes. Returns False when missing."""
        result = await self.session.execute(
            update(ProjectModel)
            .where(ProjectModel.id == project.id)
            .values(
                name=project.name,
                hourly_rate=project.hourly_rate,
                deadline=project.deadline,
                notes=project.notes
            )
        )
        return result.rowcount > 0

    async def set_status(self, project_id: int, status: str) -> bool:
        result = await self.session.execute(
            update(ProjectModel).where(ProjectModel.id == project_id).values(status=status)
        )
        return result.rowcount > 0

    async def delete_cascade(self, project_id: int) -> bool:
        """Delete a project with its invoices and time entries. Returns False when missing."""
        await self.session.execute(delete(InvoiceModel).where(InvoiceModel.project_id == project_id))
        await self.session.execute(delete(TimeEntryModel).where(TimeEntryModel.project_id == project_id))
        result = await self.session.execute(delete(ProjectModel).where(ProjectModel.id == project_id))
        return result.rowcount > 0


class TimeEntryRepository:
    """
    Handles all TimeEntry-related database operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, entry_id: int) -> Optional[TimeEntry]:
        model = await self.session.get(TimeEntryModel, entry_id)
        return TimeEntry.model_validate(model) if model else None

    async def get_by_project(self, project_id: int) -> List[TimeEntry]:
        """All entries of a project, newest first; open entries included"""
        result = await self.session.execute(
            select(TimeEntryModel)
            .where(TimeEntryModel.project_id == project_id)
            .order_by(TimeEntryModel.started_at.desc(), TimeEntryModel.id.desc())
        )
        return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def get_open_entries(self) -> List[TimeEntry]:
        """
        Entries without an end time.

        Normally zero or one; a list so that a store written by an older
        version with several open rows can still be repaired.
        """
        result = await self.session.execute(
            select(TimeEntryModel)
            .where(TimeEntryModel.ended_at.is_(None))
            .order_by(TimeEntryModel.started_at.desc(), TimeEntryModel.id.desc())
        )
        return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def create_open(self, project_id: int, started_at: int) -> TimeEntry:
        model = TimeEntryModel(project_id=project_id, started_at=started_at, ended_at=None, duration=0)
        self.session.add(model)
        await self.session.flush()
        return TimeEntry.model_validate(model)

    async def close(self, entry: TimeEntry, ended_at: int) -> TimeEntry:
        """Set the end time and the floored whole-second duration"""
        duration = (ended_at - entry.started_at) // 1000
        await self.session.execute(
            update(TimeEntryModel)
            .where(TimeEntryModel.id == entry.id)
            .values(ended_at=ended_at, duration=duration)
        )
        return entry.model_copy(update={"ended_at": ended_at, "duration": duration})

    async def total_seconds(self, project_id: int) -> int:
        """Sum of durations of the project's closed entries"""
        result = await self.session.execute(
            select(func.coalesce(func.sum(TimeEntryModel.duration), 0))
            .where(TimeEntryModel.project_id == project_id, TimeEntryModel.ended_at.is_not(None))
        )
        return int(result.scalar_one())


class InvoiceRepository:
    """
    Handles all Invoice-related database operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> List[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel).order_by(InvoiceModel.created_at.desc(), InvoiceModel.id.desc())
        )
        return [Invoice.model_validate(m) for m in result.scalars().all()]

    async def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        model = await self.session.get(InvoiceModel, invoice_id)
        return Invoice.model_validate(model) if model else None

    async def next_invoice_number(self) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(InvoiceModel.invoice_number), 0) + 1)
        )
        return int(result.scalar_one())

    async def create(self, invoice: Invoice) -> Invoice:
        model = InvoiceModel(
            project_id=invoice.project_id,
            client_id=invoice.client_id,
            amount=invoice.amount,
            hours=invoice.hours,
            hourly_rate=invoice.hourly_rate,
            invoice_number=invoice.invoice_number,
            status=invoice.status,
            created_at=invoice.created_at,
            paid_at=invoice.paid_at
        )
        self.session.add(model)
        await self.session.flush()
        return Invoice.model_validate(model)

    async def mark_paid(self, invoice_id: int, paid_at: int) -> bool:
        result = await self.session.execute(
            update(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .values(status="paid", paid_at=paid_at)
        )
        return result.rowcount > 0

    async def delete(self, invoice_id: int) -> bool:
        result = await self.session.execute(delete(InvoiceModel).where(InvoiceModel.id == invoice_id))
        return result.rowcount > 0

    async def invoiced_hours(self, project_id: int) -> float:
        result = await self.session.execute(
            select(func.coalesce(func.sum(InvoiceModel.hours), 0))
            .where(InvoiceModel.project_id == project_id)
        )
        return float(result.scalar_one())

    async def totals_by_status(self) -> Dict[str, float]:
        result = await self.session.execute(
            select(InvoiceModel.status, func.sum(InvoiceModel.amount)).group_by(InvoiceModel.status)
        )
        return {status: float(total or 0) for status, total in result.all()}

    async def paid_totals_by_period(self, fmt: str, limit: int) -> List[tuple]:
        """
        Paid amounts grouped by ``strftime(fmt)`` of the creation time (UTC).

        Returns the ``limit`` most recent periods as (period, total), newest first.
        """
        period = func.strftime(fmt, InvoiceModel.created_at // 1000, "unixepoch").label("period")
        result = await self.session.execute(
            select(period, func.sum(InvoiceModel.amount))
            .where(InvoiceModel.status == "paid")
            .group_by(period)
            .order_by(period.desc())
            .limit(limit)
        )
        return [(row[0], float(row[1])) for row in result.all()]

"""
Invoice Service - creates invoices from the hours not billed yet.

The delta computation and the insert happen in the same queued operation,
so two requests in a row can never bill the same hours twice.
"""

import logging
from typing import Callable, List

from lancr.domain.errors import NotFoundError, ValidationError
from lancr.domain.models import Invoice
from lancr.infra.repository import InvoiceRepository, ProjectRepository, TimeEntryRepository
from lancr.infra.store import SerializedStore
from lancr.utils import now_ms

logger = logging.getLogger(__name__)

# Summing billed float hours can leave a residue far below one tracked second
HOURS_EPSILON = 1e-9


class InvoiceService:

    def __init__(self, store: SerializedStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    async def create(self, project_id: int) -> Invoice:
        """
        Bill the project's tracked hours that no invoice covers yet.

        Raises:
            NotFoundError: the project does not exist
            ValidationError: there are no new hours to bill
        """
        async def operation(session):
            project = await ProjectRepository(session).get_by_id(project_id)
            if project is None:
                raise NotFoundError("Project", project_id)

            invoices = InvoiceRepository(session)
            tracked_hours = await TimeEntryRepository(session).total_seconds(project_id) / 3600
            new_hours = tracked_hours - await invoices.invoiced_hours(project_id)
            if new_hours <= HOURS_EPSILON:
                raise ValidationError("All tracked hours have already been invoiced")

            invoice = Invoice(
                project_id=project.id,
                client_id=project.client_id,
                amount=new_hours * project.hourly_rate,
                hours=new_hours,
                hourly_rate=project.hourly_rate,
                invoice_number=await invoices.next_invoice_number(),
                status="unpaid",
                created_at=self.clock()
            )
            return await invoices.create(invoice)

        invoice = await self.store.enqueue(operation)
        logger.info(f"Invoice #{invoice.invoice_number} created: {invoice.hours:.2f}h for project {project_id}")
        return invoice

    async def list(self) -> List[Invoice]:
        """All invoices, newest first"""
        async def operation(session):
            return await InvoiceRepository(session).get_all()

        return await self.store.enqueue(operation)

    async def get(self, invoice_id: int) -> Invoice:
        async def operation(session):
            invoice = await InvoiceRepository(session).get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)
            return invoice

        return await self.store.enqueue(operation)

    async def mark_paid(self, invoice_id: int) -> Invoice:
        async def operation(session):
            invoices = InvoiceRepository(session)
            if not await invoices.mark_paid(invoice_id, self.clock()):
                raise NotFoundError("Invoice", invoice_id)
            return await invoices.get_by_id(invoice_id)

        return await self.store.enqueue(operation)

    async def delete(self, invoice_id: int):
        async def operation(session):
            if not await InvoiceRepository(session).delete(invoice_id):
                raise NotFoundError("Invoice", invoice_id)

        await self.store.enqueue(operation)
        logger.info(f"Invoice {invoice_id} deleted")

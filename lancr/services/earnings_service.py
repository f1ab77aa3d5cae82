"""
Earnings Service - read-only views derived from invoices and time entries.

Each view is a single queued operation, so it reads a state no writer can
change halfway through.
"""

from typing import List

from lancr.domain.models import EarningsBucket, EarningsSummary
from lancr.infra.repository import InvoiceRepository, TimeEntryRepository
from lancr.infra.store import SerializedStore

# Number of months/weeks shown in the earnings charts
BUCKET_COUNT = 6


class EarningsService:
    """
    Sums over invoices and tracked time.
    """

    def __init__(self, store: SerializedStore):
        self.store = store

    async def summary(self) -> EarningsSummary:
        """Invoice amounts split into paid and unpaid"""
        async def operation(session):
            totals = await InvoiceRepository(session).totals_by_status()
            return EarningsSummary(paid=totals.get("paid", 0.0), unpaid=totals.get("unpaid", 0.0))

        return await self.store.enqueue(operation)

    async def monthly(self) -> List[EarningsBucket]:
        """Paid amounts for the last six calendar months that had any, oldest first"""
        async def operation(session):
            rows = await InvoiceRepository(session).paid_totals_by_period("%Y-%m", BUCKET_COUNT)
            return [EarningsBucket(period=period, label=period, amount=amount)
                    for period, amount in reversed(rows)]

        return await self.store.enqueue(operation)

    async def weekly(self) -> List[EarningsBucket]:
        """Paid amounts for the last six weeks that had any, oldest first"""
        async def operation(session):
            rows = await InvoiceRepository(session).paid_totals_by_period("%Y-W%W", BUCKET_COUNT)
            return [EarningsBucket(period=period, label=f"Week {int(period.split('W')[1])}", amount=amount)
                    for period, amount in reversed(rows)]

        return await self.store.enqueue(operation)

    async def invoiced_hours(self, project_id: int) -> float:
        """Hours already billed for a project across all its invoices"""
        async def operation(session):
            return await InvoiceRepository(session).invoiced_hours(project_id)

        return await self.store.enqueue(operation)

    async def tracked_seconds(self, project_id: int) -> int:
        """Seconds recorded on the project's closed time entries"""
        async def operation(session):
            return await TimeEntryRepository(session).total_seconds(project_id)

        return await self.store.enqueue(operation)

    async def uninvoiced_hours(self, project_id: int) -> float:
        """Tracked hours minus invoiced hours; what the next invoice would bill"""
        async def operation(session):
            tracked = await TimeEntryRepository(session).total_seconds(project_id)
            invoiced = await InvoiceRepository(session).invoiced_hours(project_id)
            return tracked / 3600 - invoiced

        return await self.store.enqueue(operation)

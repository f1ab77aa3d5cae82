"""Services layer - Business logic"""

from .timer_service import TimerService
from .earnings_service import EarningsService
from .invoice_service import InvoiceService
from .client_service import ClientService, ProjectService
from .backup_service import BackupService

__all__ = [
    "TimerService", "EarningsService", "InvoiceService",
    "ClientService", "ProjectService", "BackupService",
]

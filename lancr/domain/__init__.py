"""Domain layer - Pure business entities and errors"""

from .errors import LancrError, ValidationError, NotFoundError, StorageError
from .models import Client, Project, TimeEntry, Invoice, TimerState

__all__ = [
    "LancrError", "ValidationError", "NotFoundError", "StorageError",
    "Client", "Project", "TimeEntry", "Invoice", "TimerState",
]

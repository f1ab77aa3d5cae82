"""Infrastructure layer - Database, serialized store and persistence"""

from .db import DatabaseEngine, Base, ClientModel, ProjectModel, TimeEntryModel, InvoiceModel
from .store import SerializedStore

__all__ = [
    "DatabaseEngine", "Base", "ClientModel", "ProjectModel", "TimeEntryModel", "InvoiceModel",
    "SerializedStore",
]

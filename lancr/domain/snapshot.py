"""
Backup payload schema.

Field names mirror the persisted column names verbatim (camelCase), which is
also what the mobile app wrote, so its backup files import cleanly.
Older backups may lack the invoice columns added later; those default to 0.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ClientRow(_Row):
    id: int
    name: str
    email: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    createdAt: int


class ProjectRow(_Row):
    id: int
    clientId: int
    name: str
    status: Literal["active", "paused", "completed"] = "active"
    hourlyRate: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    deadline: Optional[str] = None
    notes: Optional[str] = None
    createdAt: int


class TimeEntryRow(_Row):
    id: int
    projectId: int
    startedAt: int
    endedAt: Optional[int] = None
    duration: int = 0


class InvoiceRow(_Row):
    id: int
    projectId: int
    clientId: int
    amount: float = Field(ge=0, allow_inf_nan=False)
    hours: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    hourlyRate: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    invoiceNumber: int = 0
    status: Literal["unpaid", "paid"] = "unpaid"
    createdAt: int
    paidAt: Optional[int] = None


class Snapshot(BaseModel):
    """Consistent point-in-time copy of all four tables."""

    clients: List[ClientRow]
    projects: List[ProjectRow]
    timeEntries: List[TimeEntryRow]
    invoices: List[InvoiceRow]

"""
Domain Models using Pydantic for validation.

Timestamps are integer milliseconds since the Unix epoch, matching the
persisted columns, so no conversion happens between storage and backups.
"""

from datetime import date
from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from lancr.utils import now_ms, elapsed_seconds, format_duration


ProjectStatus = Literal["active", "paused", "completed"]
InvoiceStatus = Literal["unpaid", "paid"]


class Client(BaseModel):
    """A customer that owns projects."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)


class Project(BaseModel):
    """
    Billable work for a client.

    The hourly rate is snapshotted onto each invoice at creation time, so
    changing it later never rewrites past invoices.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    client_id: int
    name: str = Field(..., min_length=1, max_length=200)
    status: ProjectStatus = "active"
    hourly_rate: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    # Free text as the user typed it; a date is stored in ISO form
    deadline: Optional[str] = None
    notes: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)

    @field_validator("deadline", mode="before")
    @classmethod
    def _normalize_deadline(cls, value):
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, str):
            return value.strip() or None
        return value


class TimeEntry(BaseModel):
    """
    A single tracked session.

    ``ended_at`` is None while the entry is open; ``duration`` is only
    meaningful once it is closed.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    project_id: int
    started_at: int
    ended_at: Optional[int] = None
    duration: int = 0

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class Invoice(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    project_id: int
    client_id: int
    amount: float
    hours: float = 0.0
    hourly_rate: float = 0.0
    invoice_number: int = 0
    status: InvoiceStatus = "unpaid"
    created_at: int = Field(default_factory=now_ms)
    paid_at: Optional[int] = None


class TimerState(BaseModel):
    """
    What the timer looks like right now.

    Idle when ``entry_id`` is None. ``elapsed_seconds`` is always derived
    from ``started_at`` at the moment the state was taken.
    """

    entry_id: Optional[int] = None
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    started_at: Optional[int] = None
    elapsed_seconds: int = 0

    @classmethod
    def idle(cls) -> "TimerState":
        return cls()

    @classmethod
    def running(cls, entry: TimeEntry, project_name: Optional[str], now: int) -> "TimerState":
        return cls(
            entry_id=entry.id,
            project_id=entry.project_id,
            project_name=project_name,
            started_at=entry.started_at,
            elapsed_seconds=max(0, elapsed_seconds(entry.started_at, now)),
        )

    @property
    def is_running(self) -> bool:
        return self.entry_id is not None

    @property
    def display(self) -> str:
        """Text shown next to the running timer, e.g. 'Website: 00:01:05'"""
        if not self.is_running:
            return format_duration(0)
        return f"{self.project_name}: {format_duration(self.elapsed_seconds)}"


class EarningsSummary(BaseModel):
    paid: float = 0.0
    unpaid: float = 0.0


class EarningsBucket(BaseModel):
    """Paid invoice total for one calendar month or week."""

    period: str  # sortable key, "2026-03" or "2026-W09"
    label: str
    amount: float


class TrackerPreferences(BaseModel):
    """
    User configuration loaded from settings.yaml.
    """
    model_config = ConfigDict(from_attributes=True)

    tick_interval_seconds: float = Field(default=1.0, gt=0, description="Display refresh interval")
    notifications_enabled: bool = Field(default=True, description="Show the running-timer notification")

    backup_directory: Optional[str] = Field(default=None, description="Custom backup directory path")
    backup_retention_count: int = Field(default=5, ge=1, description="Number of backup files to keep")

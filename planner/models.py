from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel


class RecurringType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TaskStatus(str, Enum):
    """Task-level status.

    Non-recurring tasks move pending -> completed. Recurring tasks use
    active / paused / cancelled and become completed when their maximum
    repetition count is reached.
    """
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class OccurrenceStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"
    SKIPPED = "skipped"


class Task(SQLModel, table=True):
    """A task record; recurring tasks carry their rule and occurrence history."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=200)
    description: str = Field(default="")
    user: str = Field(default="", max_length=100)
    created_at: datetime = Field(default_factory=datetime.now)

    # For recurring tasks: the next actionable occurrence
    end_time: Optional[datetime] = Field(default=None, index=True)
    due_date: Optional[str] = Field(default=None, max_length=10)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    event_duration: timedelta = Field(default=timedelta(0))

    is_recurring: bool = Field(default=False)
    # Kept as free text so unknown values loaded from old data survive
    recurring_type: Optional[str] = Field(default=None, max_length=16)
    recurring_interval: int = Field(default=1)
    # 0=Sunday..6=Saturday, empty means the plain interval rule
    recurring_weekdays: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    # 0 = unlimited periods
    recurring_max_count: int = Field(default=0, ge=0)
    completion_count: int = Field(default=0, ge=0)

    reminder_minutes: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    # Deprecated per-date completion tracking (YYYY-MM-DD strings)
    legacy_period_completions: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    occurrence_history: List["Occurrence"] = Relationship(
        back_populates="task",
        sa_relationship_kwargs={"order_by": "Occurrence.id", "cascade": "all, delete-orphan"},
    )


class Occurrence(SQLModel, table=True):
    """One scheduled instance of a recurring task."""
    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: Optional[int] = Field(default=None, foreign_key="task.id", index=True)
    scheduled_time: datetime = Field(index=True)
    status: OccurrenceStatus = Field(default=OccurrenceStatus.PENDING)
    completed_at: Optional[datetime] = Field(default=None)
    notes: Optional[str] = Field(default=None, max_length=255)
    # Reminder offsets (minutes) already delivered for this occurrence
    reminders_sent: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    task: Optional[Task] = Relationship(back_populates="occurrence_history")

    @property
    def is_pending(self) -> bool:
        return self.status == OccurrenceStatus.PENDING

    def mark_completed(self, at: datetime) -> None:
        if not self.is_pending:
            raise ValueError(f"Cannot complete an occurrence that is {self.status.value}")
        self.status = OccurrenceStatus.COMPLETED
        self.completed_at = at

    def mark_missed(self) -> None:
        if not self.is_pending:
            raise ValueError(f"Cannot mark an occurrence that is {self.status.value} as missed")
        self.status = OccurrenceStatus.MISSED
        self.completed_at = None


class TaskCreate(SQLModel):
    """Payload for creating a task."""
    name: str
    description: str = ""
    user: str = ""
    end_time: datetime
    event_duration_minutes: int = Field(default=0, ge=0)
    is_recurring: bool = False
    recurring_type: Optional[str] = None
    recurring_interval: int = 0
    recurring_weekdays: List[int] = Field(default_factory=list)
    recurring_max_count: int = 0
    reminder_minutes: Optional[List[int]] = None


class StatusUpdate(SQLModel):
    status: TaskStatus

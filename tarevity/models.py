from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from tarevity.notifications.classifier import Bucket, OriginKey, Severity


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class TaskBase(SQLModel):
    """Base model with shared fields"""

    title: str = Field(min_length=1, max_length=200, index=True)
    description: str | None = Field(default=None)
    priority: str = Field(default="medium", regex="^(low|medium|high)$")
    due_date: date | None = Field(default=None, index=True)


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64, index=True)
    completed: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    pass


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional"""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    completed: bool | None = None
    priority: str | None = Field(default=None, regex="^(low|medium|high)$")
    due_date: date | None = None


class TaskResponse(TaskBase):
    """Schema for task responses"""

    id: int
    completed: bool
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class DismissalReason(str, Enum):
    USER = "user"
    SUPERSEDED = "superseded"


class Notification(SQLModel, table=True):
    """One alert about one task sitting in one severity tier.

    (user_id, task_id, severity) is the origin key; the unique constraint
    keeps at most one row per key, dismissed or not.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "task_id", "severity", name="uq_notifications_origin"
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64, index=True)
    task_id: int = Field(index=True)
    severity: str = Field(max_length=16)
    urgency: str = Field(max_length=16)
    title: str = Field(max_length=200)
    message: str
    due_date: date
    read: bool = Field(default=False)
    dismissed: bool = Field(default=False, index=True)
    dismissal_reason: str | None = Field(default=None, max_length=16)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def origin_key(self) -> OriginKey:
        return OriginKey(Severity(self.severity), self.task_id)


class NotificationRead(SQLModel):
    """Schema for notification responses"""

    id: int
    task_id: int
    origin_id: str
    severity: Severity
    urgency: Bucket
    title: str
    message: str
    due_date: date
    read: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Notification) -> "NotificationRead":
        return cls(
            id=row.id,
            task_id=row.task_id,
            origin_id=row.origin_key.origin_id,
            severity=Severity(row.severity),
            urgency=Bucket(row.urgency),
            title=row.title,
            message=row.message,
            due_date=row.due_date,
            read=row.read,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class NotificationPreference(SQLModel, table=True):
    """Per-task mute switch set when a user dismisses a task's notifications"""

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "task_id", name="uq_notification_preferences"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64, index=True)
    task_id: int
    muted: bool = Field(default=True)
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class MarkReadRequest(SQLModel):
    id: int | None = None
    all: bool = False
    mark_as_unread: bool = False


class DismissRequest(SQLModel):
    id: int


class TaskNotificationsRequest(SQLModel):
    task_id: int


class SessionCheckRequest(SQLModel):
    """Client-held watermark: the calendar date of its last refresh"""

    last_check: date | None = None


class RefreshResponse(SQLModel):
    message: str
    updates: int
    timestamp: datetime
    throttled: bool = False


class SessionCheckResponse(SQLModel):
    first_session: bool
    updates: int
    watermark: date
    next_refresh_at: datetime


class CountResponse(SQLModel):
    message: str
    count: int

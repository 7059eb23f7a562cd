from datetime import UTC, datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel, UniqueConstraint


class TimeEntryCache(SQLModel, table=True):
    """A Harvest time entry mirrored under the date range it was fetched for."""

    __tablename__ = "time_entries_cache"
    __table_args__ = (
        UniqueConstraint("entry_id", "date_range_start", "date_range_end", name="unique_entry_date_range"),
        Index("idx_date_range", "date_range_start", "date_range_end"),
    )

    id: int | None = Field(default=None, primary_key=True)
    entry_id: int
    spent_date: str = Field(index=True)  # YYYY-MM-DD format
    user_id: int = Field(index=True)
    user_name: str
    project_id: int
    project_name: str
    client_id: int
    client_name: str
    task_id: int
    task_name: str
    notes: str | None = Field(default=None)
    hours: float
    billable: bool = Field(default=False)
    overtime: int = Field(default=0)  # 0 = none, 1 = all hours are overtime
    date_range_start: str
    date_range_end: str
    cached_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)


class Holiday(SQLModel, table=True):
    __tablename__ = "holidays"

    id: int | None = Field(default=None, primary_key=True)
    date: str = Field(unique=True, index=True)  # YYYY-MM-DD format
    name: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class UserVisibility(SQLModel, table=True):
    __tablename__ = "user_visibility"

    id: int | None = Field(default=None, primary_key=True)
    user_email: str = Field(unique=True, index=True)  # Normalized: lower(trim(email))
    is_visible: bool = Field(default=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

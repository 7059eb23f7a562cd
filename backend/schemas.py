from datetime import datetime

from pydantic import BaseModel, field_validator


class NamedRef(BaseModel):
    id: int
    name: str


class HarvestTimeEntry(BaseModel):
    id: int
    spent_date: str  # YYYY-MM-DD format
    user: NamedRef
    project: NamedRef
    client: NamedRef
    task: NamedRef
    notes: str | None = None
    hours: float
    billable: bool = False


class TimeEntryWithOvertime(HarvestTimeEntry):
    overtime: float = 0


class HarvestUser(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class HarvestClient(BaseModel):
    id: int
    name: str


class HarvestProject(BaseModel):
    id: int
    name: str
    client_id: int | None = None


class CacheInfo(BaseModel):
    exists: bool
    cached_at: datetime | None = None
    entry_count: int = 0


class ActionResult(BaseModel):
    success: bool
    error: str | None = None


class HolidayToggleResult(ActionResult):
    is_holiday: bool | None = None


class OvertimeToggleRequest(BaseModel):
    entry_id: int
    date_range_start: str
    date_range_end: str
    overtime: bool


class HolidayCreate(BaseModel):
    date: str
    name: str | None = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        # Holiday keys are compared as strings, so only the canonical form is accepted
        try:
            canonical = datetime.strptime(v, "%Y-%m-%d").date().isoformat()
        except ValueError as e:
            raise ValueError("Date must be in YYYY-MM-DD format") from e
        if canonical != v:
            raise ValueError("Date must be in YYYY-MM-DD format")
        return v


class HolidayResponse(BaseModel):
    date: str
    name: str | None = None
    created_at: datetime
    updated_at: datetime


class VisibilityUpdate(BaseModel):
    email: str
    is_visible: bool


class VisibilityBulkRequest(BaseModel):
    visibilities: list[VisibilityUpdate]


class DayCell(BaseModel):
    date: str
    total_hours: float = 0
    regular_hours: float = 0
    total_overtime: float = 0
    entry_count: int = 0
    holiday: bool = False
    weekend: bool = False
    worked: bool = False
    absent: bool = False
    overtime: bool = False
    background: str
    background_alpha: float = 0
    highlight: str | None = None
    entries: list[TimeEntryWithOvertime] = []


class MonthlyStatsResponse(BaseModel):
    total_hours: float
    total_overtime: float
    regular_hours: float
    working_days: int
    total_working_hours: float
    worked_days: float
    present_percentage: float


class UserRowResponse(BaseModel):
    id: int
    name: str
    email: str
    days: list[DayCell]
    stats: MonthlyStatsResponse


class UserSummary(BaseModel):
    id: int
    name: str
    email: str
    is_visible: bool = True


class MonthSheetResponse(BaseModel):
    month: int
    month_name: str
    year: int
    date_range_start: str
    date_range_end: str
    holidays: list[str]
    cache: CacheInfo
    users: list[UserRowResponse]
    all_users: list[UserSummary]

"""Pydantic contracts shared across backend and api."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.errors import ErrorCode


class FundingEventType(str, Enum):
    """Kind of event appended to a project's funding history."""

    FUNDING = "funding"
    EXPENSE = "expense"


class ReportType(str, Enum):
    """Report selector accepted by the export service."""

    PROJECTS = "projects"
    FUNDING = "funding"
    FILES = "files"
    REVIEWS = "reviews"
    PROGRESS = "progress"
    TEAM = "team"
    DASHBOARD = "dashboard"


class ExportFormat(str, Enum):
    CSV = "csv"
    PDF = "pdf"


DASHBOARD_REPORT_TYPES: tuple[ReportType, ...] = (
    ReportType.PROJECTS,
    ReportType.FUNDING,
    ReportType.PROGRESS,
    ReportType.TEAM,
)


class FundingHistoryEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    amount: int | float
    total_after_update: int | float
    type: str
    updated_at: datetime | None = None
    updated_by: str | None = None
    updated_by_name: str | None = None
    source: str | None = None
    description: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, object]) -> "FundingHistoryEntry":
        return cls(
            id=str(record.get("id") or ""),
            amount=record.get("amount") or 0,
            total_after_update=record.get("totalAfterUpdate") or 0,
            type=str(record.get("type") or ""),
            updated_at=record.get("updatedAt"),
            updated_by=record.get("updatedBy"),
            updated_by_name=record.get("updatedByName"),
            source=record.get("source"),
            description=record.get("description"),
        )


class FundsUpdateResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str
    project_id: str
    available_funds: int | float
    used_funds: int | float


class ProjectBalance(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: str
    available_funds: int | float
    used_funds: int | float


class FundingOpportunity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    funding_name: str | None = None
    expected_funds: int | float | None = None
    external_link: str | None = None
    deadline: datetime | str | None = None
    category: str | None = None
    eligibility: str | None = None
    description: str | None = None
    status: str = "active"


class FundingRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str
    amount: int | float | None = None
    source: str | None = None
    type: str | None = None
    added_by: str | None = None
    updated_at: datetime | str | None = None


class FolderRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str
    folder_name: str | None = None
    file_name: str | None = None
    uploaded_by: str | None = None
    uploaded_at: datetime | str | None = None


class ReviewedProjectRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    researcher_name: str | None = None
    feedback: str | None = None
    review_date: datetime | str | None = None


class OverviewRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str
    description: str | None = None
    status: str | None = None
    created_at: datetime | str | None = None
    updated_at: datetime | str | None = None
    available_funds: int | float = 0
    used_funds: int | float = 0


class ProgressRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str
    overall_progress: int
    total_goals: int
    completed_goals: int
    status: str | None = None
    updated_at: datetime | str | None = None


class TeamRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str
    collaborator_name: str
    role: str
    access_level: str
    permissions: list[str] = Field(default_factory=list)


def _parse_filter_datetime(value: object, *, end_of_day: bool) -> object:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if len(raw) == 10:
            return _parse_filter_datetime(date.fromisoformat(raw), end_of_day=end_of_day)
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        return None
    return value


class ReportFilters(BaseModel):
    """Inclusive date range and project allow-list applied to exports.

    A date-only ``end_date`` covers the whole day.
    """

    model_config = ConfigDict(extra="forbid")

    start_date: datetime | None = None
    end_date: datetime | None = None
    project_ids: list[str] | None = None

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start_date(cls, value: object) -> object:
        return _parse_filter_datetime(value, end_of_day=False)

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, value: object) -> object:
        return _parse_filter_datetime(value, end_of_day=True)

    @field_validator("project_ids")
    @classmethod
    def drop_blank_project_ids(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        cleaned = [item.strip() for item in value if item and item.strip()]
        return cleaned or None


class ExportedFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    filename: str
    media_type: str
    content: bytes


class ExportFailure(BaseModel):
    model_config = ConfigDict(extra="forbid")

    report_type: ReportType
    code: ErrorCode
    message: str

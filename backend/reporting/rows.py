"""Flatten aggregated project data into report rows and apply export filters."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from shared.models import (
    FolderRow,
    FundingEventType,
    FundingRow,
    OverviewRow,
    ProgressRow,
    ReviewedProjectRow,
    TeamRow,
)
from shared.time_utils import parse_timestamp


UNNAMED_PROJECT = "Unnamed Project"
UNKNOWN_NAME = "Unknown"


def project_name(project: dict[str, Any]) -> str:
    return project.get("title") or project.get("name") or UNNAMED_PROJECT


def effective_date(entry: dict[str, Any]) -> datetime | None:
    """Return ``updatedAt`` when present, else the parsed fallback ``date`` string."""
    updated_at = parse_timestamp(entry.get("updatedAt"))
    if updated_at is not None:
        return updated_at
    return parse_timestamp(entry.get("date"))


def filter_history(
    history: list[dict[str, Any]],
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[dict[str, Any]]:
    """Keep entries whose effective date lies in the inclusive range; undated entries drop out."""
    if start_date is None and end_date is None:
        return history
    start = parse_timestamp(start_date)
    end = parse_timestamp(end_date)
    kept = []
    for entry in history:
        entry_date = effective_date(entry)
        if entry_date is None:
            continue
        if start is not None and entry_date < start:
            continue
        if end is not None and entry_date > end:
            continue
        kept.append(entry)
    return kept


def filter_by_date_range(
    items: list[dict[str, Any]],
    start_date: datetime | None,
    end_date: datetime | None,
    date_field: str = "createdAt",
) -> list[dict[str, Any]]:
    """Keep items whose ``date_field`` lies within the inclusive range.

    Items without a usable date are dropped once any bound is set.
    """
    if start_date is None and end_date is None:
        return items
    start = parse_timestamp(start_date)
    end = parse_timestamp(end_date)
    kept = []
    for item in items:
        item_date = parse_timestamp(item.get(date_field))
        if item_date is None:
            continue
        if start is not None and item_date < start:
            continue
        if end is not None and item_date > end:
            continue
        kept.append(item)
    return kept


def filter_by_projects(
    items: list[dict[str, Any]],
    project_ids: Iterable[str] | None,
    id_field: str = "id",
) -> list[dict[str, Any]]:
    if not project_ids:
        return items
    allowed = set(project_ids)
    return [item for item in items if item.get(id_field) in allowed]


def compute_progress(goals: list[dict[str, Any]] | None) -> tuple[int, int, int]:
    """Return (percent, total, completed); percent rounds half up and is 0 without goals."""
    goals = goals or []
    total = len(goals)
    completed = sum(1 for goal in goals if goal.get("completed"))
    if total == 0:
        return 0, 0, 0
    percent = (Decimal(completed) * 100 / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(percent), total, completed


def enabled_permissions(permissions: dict[str, Any] | None) -> list[str]:
    return [key for key, value in (permissions or {}).items() if value]


def build_funding_rows(projects_with_funding: list[dict[str, Any]]) -> list[FundingRow]:
    rows = []
    for project in projects_with_funding:
        name = project_name(project)
        for entry in project.get("fundingHistory") or []:
            is_expense = entry.get("type") == FundingEventType.EXPENSE.value
            rows.append(
                FundingRow(
                    project_name=name,
                    amount=entry.get("amount"),
                    source=entry.get("description") if is_expense else entry.get("source"),
                    type=entry.get("type"),
                    added_by=entry.get("updatedByName") or UNKNOWN_NAME,
                    updated_at=entry.get("updatedAt") or entry.get("date"),
                )
            )
    return rows


def build_folder_rows(projects_with_folders: list[dict[str, Any]]) -> list[FolderRow]:
    rows = []
    for project in projects_with_folders:
        name = project.get("projectName") or project_name(project)
        for folder in project.get("folders") or []:
            files = folder.get("files") or []
            if not files:
                rows.append(FolderRow(project_name=name, folder_name=folder.get("name")))
                continue
            for file in files:
                rows.append(
                    FolderRow(
                        project_name=name,
                        folder_name=folder.get("name"),
                        file_name=file.get("fileName"),
                        uploaded_by=file.get("uploadedBy"),
                        uploaded_at=file.get("uploadedAt"),
                    )
                )
    return rows


def build_reviewed_project_rows(reviewed_projects: list[dict[str, Any]]) -> list[ReviewedProjectRow]:
    return [
        ReviewedProjectRow(
            title=project.get("title"),
            description=project.get("description"),
            researcher_name=project.get("researcherName"),
            feedback=project.get("feedback"),
            review_date=project.get("reviewDate"),
        )
        for project in reviewed_projects
    ]


def build_overview_rows(projects: list[dict[str, Any]]) -> list[OverviewRow]:
    return [
        OverviewRow(
            project_name=project_name(project),
            description=project.get("description"),
            status=project.get("status"),
            created_at=project.get("createdAt"),
            updated_at=project.get("updatedAt"),
            available_funds=project.get("availableFunds") or 0,
            used_funds=project.get("usedFunds") or 0,
        )
        for project in projects
    ]


def build_progress_rows(projects: list[dict[str, Any]]) -> list[ProgressRow]:
    rows = []
    for project in projects:
        percent, total, completed = compute_progress(project.get("goals"))
        rows.append(
            ProgressRow(
                project_name=project_name(project),
                overall_progress=percent,
                total_goals=total,
                completed_goals=completed,
                status=project.get("status"),
                updated_at=project.get("updatedAt"),
            )
        )
    return rows


def build_team_rows(projects: list[dict[str, Any]]) -> list[TeamRow]:
    rows = []
    for project in projects:
        name = project_name(project)
        for collaborator in project.get("collaborators") or []:
            rows.append(
                TeamRow(
                    project_name=name,
                    collaborator_name=collaborator.get("name") or UNKNOWN_NAME,
                    role=collaborator.get("role") or "Collaborator",
                    access_level=collaborator.get("accessLevel") or "Basic",
                    permissions=enabled_permissions(collaborator.get("permissions")),
                )
            )
    return rows

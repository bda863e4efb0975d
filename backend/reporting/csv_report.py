"""CSV generation for the six report row shapes.

Fields are joined with commas and never quoted: free text is sanitized
instead (line breaks and commas become spaces). Every line, header included,
ends with ``\\n``.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime
from typing import Any, Iterable

from backend.reporting.rows import (
    UNKNOWN_NAME,
    build_folder_rows,
    build_funding_rows,
    build_overview_rows,
    build_progress_rows,
    build_reviewed_project_rows,
    build_team_rows,
)
from shared.time_utils import to_iso_z


FUNDING_HEADER = ("Project Name", "Funding Amount", "Source/Description", "Type", "Added By", "Updated At")
FOLDER_HEADER = ("Project Name", "Folder Name", "File Name", "Uploaded By", "Uploaded At")
REVIEWED_PROJECTS_HEADER = ("Project Title", "Project Description", "Researcher Name", "Feedback", "Review Date")
PROJECT_OVERVIEW_HEADER = (
    "Project Name",
    "Description",
    "Status",
    "Created Date",
    "Last Updated",
    "Available Funds",
    "Used Funds",
)
PROGRESS_HEADER = ("Project Name", "Overall Progress", "Total Goals", "Completed Goals", "Status", "Last Updated")
TEAM_HEADER = ("Project Name", "Collaborator Name", "Role", "Access Level", "Permissions")

_LINE_BREAKS = re.compile(r"[\r\n]+")


def sanitize(text: str | None) -> str:
    if text is None:
        return ""
    return _LINE_BREAKS.sub(" ", str(text)).replace(",", " ")


def format_number(value: int | float | None) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_timestamp(value: datetime | date | str | None) -> str:
    """Render temporal values as ISO-8601 UTC; text passes through unchanged."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return to_iso_z(value)
    return str(value)


def _render(header: Iterable[str], lines: Iterable[Iterable[str]]) -> str:
    output = [",".join(header)]
    output.extend(",".join(fields) for fields in lines)
    return "".join(f"{line}\n" for line in output)


def generate_funding_csv(projects_with_funding: list[dict[str, Any]]) -> str:
    rows = build_funding_rows(projects_with_funding)
    return _render(
        FUNDING_HEADER,
        (
            (
                sanitize(row.project_name),
                format_number(row.amount),
                sanitize(row.source),
                sanitize(row.type),
                sanitize(row.added_by or UNKNOWN_NAME),
                format_timestamp(row.updated_at),
            )
            for row in rows
        ),
    )


def generate_folder_csv(projects_with_folders: list[dict[str, Any]]) -> str:
    rows = build_folder_rows(projects_with_folders)
    return _render(
        FOLDER_HEADER,
        (
            (
                sanitize(row.project_name),
                sanitize(row.folder_name),
                sanitize(row.file_name),
                sanitize(row.uploaded_by),
                format_timestamp(row.uploaded_at),
            )
            for row in rows
        ),
    )


def generate_reviewed_projects_csv(reviewed_projects: list[dict[str, Any]]) -> str:
    rows = build_reviewed_project_rows(reviewed_projects)
    return _render(
        REVIEWED_PROJECTS_HEADER,
        (
            (
                sanitize(row.title),
                sanitize(row.description),
                sanitize(row.researcher_name),
                sanitize(row.feedback),
                format_timestamp(row.review_date),
            )
            for row in rows
        ),
    )


def generate_project_overview_csv(projects: list[dict[str, Any]]) -> str:
    rows = build_overview_rows(projects)
    return _render(
        PROJECT_OVERVIEW_HEADER,
        (
            (
                sanitize(row.project_name),
                sanitize(row.description),
                sanitize(row.status),
                format_timestamp(row.created_at),
                format_timestamp(row.updated_at),
                format_number(row.available_funds),
                format_number(row.used_funds),
            )
            for row in rows
        ),
    )


def generate_progress_csv(projects: list[dict[str, Any]]) -> str:
    rows = build_progress_rows(projects)
    return _render(
        PROGRESS_HEADER,
        (
            (
                sanitize(row.project_name),
                f"{row.overall_progress}%",
                str(row.total_goals),
                str(row.completed_goals),
                sanitize(row.status),
                format_timestamp(row.updated_at),
            )
            for row in rows
        ),
    )


def generate_team_csv(projects: list[dict[str, Any]]) -> str:
    rows = build_team_rows(projects)
    return _render(
        TEAM_HEADER,
        (
            (
                sanitize(row.project_name),
                sanitize(row.collaborator_name),
                sanitize(row.role),
                sanitize(row.access_level),
                sanitize("; ".join(row.permissions)),
            )
            for row in rows
        ),
    )


def parse_csv(csv_text: str) -> list[list[str]]:
    """Split CSV text into rows, skipping empty lines."""
    reader = csv.reader(io.StringIO(csv_text.strip()), quoting=csv.QUOTE_NONE)
    return [row for row in reader if any(cell.strip() for cell in row)]

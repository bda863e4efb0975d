"""Export controller: validate a report request, build it and hand the files to delivery."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from backend.reporting.aggregator import ReportAggregator
from backend.reporting.csv_report import (
    generate_folder_csv,
    generate_funding_csv,
    generate_progress_csv,
    generate_project_overview_csv,
    generate_reviewed_projects_csv,
    generate_team_csv,
)
from backend.reporting.delivery import CSV_MEDIA_TYPE, PDF_MEDIA_TYPE, FileDelivery, InMemoryFileDelivery
from backend.reporting.pdf_report import generate_table_pdf
from backend.reporting.rows import filter_by_date_range, filter_by_projects
from backend.repositories.ledger_store import USERS, LedgerStore
from shared.errors import (
    ErrorCode,
    ExportIncompleteError,
    InvalidExportFormatError,
    InvalidInputError,
    InvalidReportTypeError,
    LedgerError,
    NotAuthenticatedError,
    NotAuthorizedError,
    NotFoundError,
    UpstreamFailureError,
)
from shared.models import (
    DASHBOARD_REPORT_TYPES,
    ExportedFile,
    ExportFailure,
    ExportFormat,
    ReportFilters,
    ReportType,
)


logger = logging.getLogger(__name__)

RESEARCHER_ROLE = "researcher"


@dataclass(frozen=True, slots=True)
class _ReportLayout:
    csv_stem: str
    pdf_filename: str
    pdf_title: str


_LAYOUTS: dict[ReportType, _ReportLayout] = {
    ReportType.PROJECTS: _ReportLayout("projects_report", "projects_overview_report.pdf", "Projects Overview Report"),
    ReportType.FUNDING: _ReportLayout("funding_report", "funding_history_report.pdf", "Funding History Report"),
    ReportType.FILES: _ReportLayout("files_report", "folders_files_report.pdf", "Folders and Files Report"),
    ReportType.REVIEWS: _ReportLayout("reviews_report", "reviewed_projects_report.pdf", "Reviewed Projects Report"),
    ReportType.PROGRESS: _ReportLayout("progress_report", "progress_report.pdf", "Progress Report"),
    ReportType.TEAM: _ReportLayout("team_report", "team_overview_report.pdf", "Team Overview Report"),
}


def _parse_report_type(value: ReportType | str | None) -> ReportType:
    try:
        return ReportType(value)
    except ValueError as exc:
        raise InvalidReportTypeError() from exc


def _parse_format(value: ExportFormat | str | None) -> ExportFormat:
    try:
        return ExportFormat(value)
    except ValueError as exc:
        raise InvalidExportFormatError() from exc


def _date_part(value: datetime) -> str:
    return value.date().isoformat()


def csv_filename(report_type: ReportType, filters: ReportFilters) -> str:
    """Build ``<type>_report`` plus an optional date-range suffix."""

    stem = _LAYOUTS[report_type].csv_stem
    start, end = filters.start_date, filters.end_date
    if start is not None and end is not None:
        return f"{stem}_{_date_part(start)}_to_{_date_part(end)}.csv"
    if start is not None:
        return f"{stem}_from_{_date_part(start)}.csv"
    if end is not None:
        return f"{stem}_until_{_date_part(end)}.csv"
    return f"{stem}.csv"


class ExportService:
    def __init__(self, aggregator: ReportAggregator, store: LedgerStore, max_workers: int = 8) -> None:
        self._aggregator = aggregator
        self._store = store
        self._max_workers = max(max_workers, 1)

    def _load_user(self, user_id: str | None) -> dict[str, Any]:
        if not user_id:
            raise NotAuthenticatedError()
        try:
            user = self._store.get_by_id(USERS, user_id)
        except RuntimeError as exc:
            logger.exception("export_user_lookup_failed user_id=%s", user_id)
            raise UpstreamFailureError("Failed to fetch user profile") from exc
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _build_csv(self, user_id: str, report_type: ReportType, filters: ReportFilters) -> str:
        start, end, project_ids = filters.start_date, filters.end_date, filters.project_ids

        if report_type is ReportType.FUNDING:
            funding = self._aggregator.get_project_funding(user_id, start, end)
            return generate_funding_csv(filter_by_projects(funding, project_ids))

        if report_type is ReportType.FILES:
            folders = self._aggregator.get_project_folders_with_files(user_id)
            return generate_folder_csv(filter_by_projects(folders, project_ids, id_field="projectId"))

        if report_type is ReportType.REVIEWS:
            reviews = self._aggregator.get_reviewed_projects(user_id)
            reviews = filter_by_date_range(reviews, start, end, date_field="reviewDate")
            return generate_reviewed_projects_csv(filter_by_projects(reviews, project_ids, id_field="projectId"))

        projects = self._aggregator.get_projects(user_id)
        projects = filter_by_projects(filter_by_date_range(projects, start, end), project_ids)
        if report_type is ReportType.PROJECTS:
            return generate_project_overview_csv(projects)
        if report_type is ReportType.PROGRESS:
            return generate_progress_csv(projects)
        return generate_team_csv(projects)

    def _export_single(
        self,
        user_id: str,
        report_type: ReportType,
        export_format: ExportFormat,
        filters: ReportFilters,
        delivery: FileDelivery,
    ) -> ExportedFile:
        csv_text = self._build_csv(user_id, report_type, filters)
        layout = _LAYOUTS[report_type]
        if export_format is ExportFormat.CSV:
            exported = delivery.save(csv_filename(report_type, filters), csv_text.encode("utf-8"), CSV_MEDIA_TYPE)
        else:
            pdf_bytes = generate_table_pdf(csv_text, title=layout.pdf_title)
            exported = delivery.save(layout.pdf_filename, pdf_bytes, PDF_MEDIA_TYPE)
        logger.info(
            "report_exported user_id=%s report_type=%s format=%s filename=%s",
            user_id,
            report_type.value,
            export_format.value,
            exported.filename,
        )
        return exported

    def _export_composite(
        self,
        user_id: str,
        export_format: ExportFormat,
        filters: ReportFilters,
        delivery: FileDelivery,
    ) -> list[ExportedFile]:
        def _run(report_type: ReportType) -> ExportedFile | ExportFailure:
            try:
                return self._export_single(user_id, report_type, export_format, filters, delivery)
            except LedgerError as exc:
                logger.warning(
                    "dashboard_part_failed user_id=%s report_type=%s code=%s",
                    user_id,
                    report_type.value,
                    exc.code.value,
                )
                return ExportFailure(report_type=report_type, code=exc.code, message=exc.message)
            except Exception:
                logger.exception("dashboard_part_crashed user_id=%s report_type=%s", user_id, report_type.value)
                return ExportFailure(
                    report_type=report_type,
                    code=ErrorCode.UPSTREAM_FAILURE,
                    message="Failed to generate report",
                )

        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(DASHBOARD_REPORT_TYPES))) as executor:
            outcomes = list(executor.map(_run, DASHBOARD_REPORT_TYPES))

        files = [outcome for outcome in outcomes if isinstance(outcome, ExportedFile)]
        failures = [outcome for outcome in outcomes if isinstance(outcome, ExportFailure)]
        if failures:
            failed = ", ".join(failure.report_type.value for failure in failures)
            raise ExportIncompleteError(
                files=files,
                failures=failures,
                message=f"{len(failures)} of {len(outcomes)} dashboard reports failed: {failed}",
            )
        return files

    def export_dashboard(
        self,
        user_id: str | None,
        report_type: ReportType | str | None,
        export_format: ExportFormat | str | None,
        filters: ReportFilters | dict[str, Any] | None = None,
        delivery: FileDelivery | None = None,
    ) -> list[ExportedFile]:
        """Export one report, or the four dashboard reports, in the requested format.

        Report type and format are checked before any store read. For
        ``dashboard`` every part runs even when another fails; the parts that
        succeeded are delivered and an ``ExportIncompleteError`` lists the rest.
        """

        parsed_type = _parse_report_type(report_type)
        parsed_format = _parse_format(export_format)
        if not isinstance(filters, ReportFilters):
            try:
                filters = ReportFilters.model_validate(filters or {})
            except ValidationError as exc:
                raise InvalidInputError("Invalid report filters") from exc
        self._load_user(user_id)
        delivery = delivery or InMemoryFileDelivery()

        if parsed_type is ReportType.DASHBOARD:
            return self._export_composite(user_id, parsed_format, filters, delivery)
        return [self._export_single(user_id, parsed_type, parsed_format, filters, delivery)]

    def export_researcher_csv(
        self,
        user_id: str | None,
        include_funding: bool = False,
        include_folders: bool = False,
        start_date: datetime | None = None,
        delivery: FileDelivery | None = None,
    ) -> list[ExportedFile]:
        """Export the researcher's funding and/or folder listings as CSV."""

        user = self._load_user(user_id)
        if user.get("role") != RESEARCHER_ROLE:
            logger.warning("researcher_export_denied user_id=%s role=%s", user_id, user.get("role"))
            raise NotAuthorizedError("Access denied: Not a researcher")
        delivery = delivery or InMemoryFileDelivery()

        files = []
        if include_funding:
            funding = self._aggregator.get_project_funding(user_id, start_date)
            files.append(
                delivery.save("project_funding.csv", generate_funding_csv(funding).encode("utf-8"), CSV_MEDIA_TYPE)
            )
        if include_folders:
            folders = self._aggregator.get_project_folders_with_files(user_id)
            files.append(
                delivery.save("project_folders.csv", generate_folder_csv(folders).encode("utf-8"), CSV_MEDIA_TYPE)
            )
        logger.info("researcher_export_done user_id=%s files=%s", user_id, len(files))
        return files

    def export_reviewed_projects_csv(
        self,
        user_id: str | None,
        delivery: FileDelivery | None = None,
    ) -> ExportedFile:
        self._load_user(user_id)
        delivery = delivery or InMemoryFileDelivery()
        reviews = self._aggregator.get_reviewed_projects(user_id)
        return delivery.save(
            "reviewed_projects.csv",
            generate_reviewed_projects_csv(reviews).encode("utf-8"),
            CSV_MEDIA_TYPE,
        )


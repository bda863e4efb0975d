"""Join project, funding, folder and review records into report inputs.

Joins run as two-phase fetches: the parent records are read first, then the
child reads fan out on a thread pool and are joined before the next step.
One failed read fails the whole aggregation. Name lookups are memoized in
maps created per call, never shared between calls.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, TypeVar

from backend.repositories.ledger_store import (
    PROJECTS,
    REVIEWS,
    USERS,
    LedgerStore,
    files_path,
    folders_path,
    funding_history_path,
)
from backend.reporting.rows import effective_date, filter_history, project_name
from shared.errors import InvalidInputError, UpstreamFailureError
from shared.time_utils import parse_timestamp, utc_now


logger = logging.getLogger(__name__)

_T = TypeVar("_T")
_R = TypeVar("_R")

_UNKNOWN_USER = "Unknown"
_UNNAMED_USER = "Unnamed User"
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ReportAggregator:
    def __init__(
        self,
        store: LedgerStore,
        max_workers: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._max_workers = max(max_workers, 1)
        self._clock = clock

    def _gather(self, func: Callable[[_T], _R], items: Iterable[_T]) -> list[_R]:
        """Run ``func`` over ``items`` concurrently and wait for all results, in order."""
        work = list(items)
        if not work:
            return []
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(work))) as executor:
            return list(executor.map(func, work))

    @staticmethod
    def _require_user(user_id: str | None, message: str = "User ID is required") -> str:
        if not user_id:
            raise InvalidInputError(message)
        return user_id

    def _fetch_owned_projects(self, user_id: str) -> list[dict[str, Any]]:
        return self._store.query_by_equality(PROJECTS, "userId", user_id)

    def _lookup_user_name(self, user_id: str) -> str:
        user = self._store.get_by_id(USERS, user_id)
        if user is None:
            return _UNKNOWN_USER
        return user.get("fullName") or _UNNAMED_USER

    def get_projects(self, user_id: str | None) -> list[dict[str, Any]]:
        """Return every project owned by the user."""

        owner = self._require_user(user_id)
        try:
            return self._fetch_owned_projects(owner)
        except RuntimeError as exc:
            logger.exception("report_projects_fetch_failed user_id=%s", owner)
            raise UpstreamFailureError("Failed to fetch projects") from exc

    def get_project_funding(
        self,
        user_id: str | None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Return owned projects with their funding history inside the optional date range.

        Projects left without entries after filtering are omitted.
        """

        owner = self._require_user(user_id)
        try:
            projects = self._fetch_owned_projects(owner)
            histories = self._gather(
                lambda project: self._store.list_all(funding_history_path(project["id"])),
                projects,
            )
        except RuntimeError as exc:
            logger.exception("report_funding_fetch_failed user_id=%s", owner)
            raise UpstreamFailureError("Failed to fetch project funding data") from exc

        results = []
        for project, history in zip(projects, histories):
            filtered = filter_history(history, start_date, end_date)
            if not filtered:
                continue
            filtered.sort(key=lambda entry: effective_date(entry) or _EPOCH)
            results.append(
                {
                    "id": project["id"],
                    "name": project_name(project),
                    "fundingHistory": filtered,
                }
            )
        logger.info("report_funding_aggregated user_id=%s projects=%s", owner, len(results))
        return results

    def get_project_folders_with_files(self, user_id: str | None) -> list[dict[str, Any]]:
        """Return owned projects with their folders, files and resolved uploader names."""

        owner = self._require_user(user_id)
        try:
            projects = self._fetch_owned_projects(owner)
            folders_by_project = self._gather(
                lambda project: self._store.list_all(folders_path(project["id"])),
                projects,
            )
            folder_refs = [
                (project["id"], folder)
                for project, folders in zip(projects, folders_by_project)
                for folder in folders
            ]
            files_by_folder = self._gather(
                lambda ref: self._store.list_all(files_path(ref[0], ref[1]["id"])),
                folder_refs,
            )
            uploader_ids = list(
                dict.fromkeys(
                    file["uploadedBy"]
                    for files in files_by_folder
                    for file in files
                    if file.get("uploadedBy")
                )
            )
            uploader_names = dict(zip(uploader_ids, self._gather(self._lookup_user_name, uploader_ids)))
        except RuntimeError as exc:
            logger.exception("report_folders_fetch_failed user_id=%s", owner)
            raise UpstreamFailureError("Failed to fetch folders and files") from exc

        files_by_folder_id = {
            (project_id, folder["id"]): files
            for (project_id, folder), files in zip(folder_refs, files_by_folder)
        }
        results = []
        for project, folders in zip(projects, folders_by_project):
            if not folders:
                continue
            results.append(
                {
                    "projectId": project["id"],
                    "projectName": project_name(project),
                    "folders": [
                        {
                            "id": folder["id"],
                            "name": folder.get("name") or "Unnamed Folder",
                            "type": folder.get("type") or "general",
                            "createdAt": folder.get("createdAt"),
                            "files": [
                                {
                                    "fileId": file["id"],
                                    "fileName": file.get("fileName") or "Unnamed File",
                                    "uploadedBy": uploader_names.get(file.get("uploadedBy"), _UNKNOWN_USER),
                                    "uploadedAt": file.get("uploadedAt"),
                                    "size": file.get("size") or 0,
                                    "type": file.get("type") or "unknown",
                                }
                                for file in files_by_folder_id[(project["id"], folder["id"])]
                            ],
                        }
                        for folder in folders
                    ],
                }
            )
        logger.info(
            "report_folders_aggregated user_id=%s projects=%s uploaders=%s",
            owner,
            len(results),
            len(uploader_names),
        )
        return results

    def get_reviewed_projects(self, user_id: str | None) -> list[dict[str, Any]]:
        """Return projects reviewed by the user, most recent review first.

        Reviews pointing at a missing project are skipped.
        """

        reviewer = self._require_user(user_id, "Reviewer ID is required")
        project_cache: dict[str, dict[str, Any] | None] = {}
        researcher_cache: dict[str, str] = {}
        reviewed_projects = []

        try:
            reviews = self._store.query_by_equality(REVIEWS, "reviewerId", reviewer)
            for review in reviews:
                project_id = review.get("projectId")
                if not project_id:
                    logger.warning("report_review_without_project review_id=%s", review.get("id"))
                    continue

                if project_id not in project_cache:
                    project_cache[project_id] = self._store.get_by_id(PROJECTS, project_id)
                project = project_cache[project_id]
                if project is None:
                    logger.warning(
                        "report_review_project_missing review_id=%s project_id=%s",
                        review.get("id"),
                        project_id,
                    )
                    continue

                researcher_id = project.get("userId")
                researcher_name = _UNKNOWN_USER
                if researcher_id:
                    if researcher_id not in researcher_cache:
                        researcher_cache[researcher_id] = self._lookup_user_name(researcher_id)
                    researcher_name = researcher_cache[researcher_id]

                reviewed_projects.append(
                    {
                        "id": review.get("id"),
                        "projectId": project_id,
                        "title": project.get("title") or "Untitled Project",
                        "description": project.get("description") or "No description provided",
                        "researcherName": researcher_name,
                        "researcherId": researcher_id,
                        "feedback": review.get("feedback") or "",
                        "rating": review.get("rating"),
                        "status": review.get("status") or "reviewed",
                        "reviewDate": parse_timestamp(review.get("updatedAt"))
                        or parse_timestamp(review.get("createdAt"))
                        or self._clock(),
                    }
                )
        except RuntimeError as exc:
            logger.exception("report_reviews_fetch_failed user_id=%s", reviewer)
            raise UpstreamFailureError("Failed to fetch reviewed projects") from exc

        return sorted(
            reviewed_projects,
            key=lambda item: item["reviewDate"],
            reverse=True,
        )

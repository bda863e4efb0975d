"""Tests for report aggregation joins over the ledger store."""

from __future__ import annotations

import pytest

from backend.reporting.aggregator import ReportAggregator
from backend.repositories.ledger_store import PROJECTS, REVIEWS, USERS, files_path, funding_history_path
from shared.errors import InvalidInputError, UpstreamFailureError
from tests.fakes import (
    FIXED_NOW,
    OWNER_ID,
    PROJECT_ID,
    REVIEWER_ID,
    SECOND_PROJECT_ID,
    RecordingLedgerStore,
    seeded_store,
    utc,
)


def test_get_projects_returns_only_owned_projects() -> None:
    aggregator = ReportAggregator(seeded_store())

    projects = aggregator.get_projects(OWNER_ID)

    assert sorted(project["id"] for project in projects) == [PROJECT_ID, SECOND_PROJECT_ID]


def test_get_projects_requires_user_id() -> None:
    aggregator = ReportAggregator(seeded_store())

    with pytest.raises(InvalidInputError):
        aggregator.get_projects(None)


def test_project_funding_filters_by_effective_date_and_omits_empty_projects() -> None:
    store = seeded_store()
    store.put(
        funding_history_path(PROJECT_ID),
        "h-old",
        {"amount": 5, "totalAfterUpdate": 5, "type": "funding", "updatedAt": utc(2024, 12, 1)},
    )
    store.put(
        funding_history_path(PROJECT_ID),
        "h-string-date",
        {"amount": 7, "totalAfterUpdate": 12, "type": "funding", "date": "2025-02-01"},
    )
    store.put(
        funding_history_path(SECOND_PROJECT_ID),
        "h-second",
        {"amount": 1, "totalAfterUpdate": 1, "type": "funding", "updatedAt": utc(2024, 7, 1)},
    )
    aggregator = ReportAggregator(store)

    funding = aggregator.get_project_funding(OWNER_ID, start_date=utc(2025, 1, 1))

    assert [project["id"] for project in funding] == [PROJECT_ID]
    assert funding[0]["name"] == "Coral Study"
    assert [entry["id"] for entry in funding[0]["fundingHistory"]] == ["h1", "h-string-date"]


def test_project_funding_without_start_date_keeps_everything() -> None:
    store = seeded_store()
    store.put(
        funding_history_path(SECOND_PROJECT_ID),
        "h-second",
        {"amount": 1, "totalAfterUpdate": 1, "type": "funding", "updatedAt": utc(2024, 7, 1)},
    )

    funding = ReportAggregator(store).get_project_funding(OWNER_ID)

    assert sorted(project["id"] for project in funding) == [PROJECT_ID, SECOND_PROJECT_ID]


def test_folders_with_files_resolve_each_uploader_once() -> None:
    store = RecordingLedgerStore(inner=seeded_store())
    aggregator = ReportAggregator(store, max_workers=4)

    result = aggregator.get_project_folders_with_files(OWNER_ID)

    assert [project["projectId"] for project in result] == [PROJECT_ID]
    folders = {folder["name"]: folder for folder in result[0]["folders"]}
    assert folders["Empty"]["files"] == []
    assert [file["fileName"] for file in folders["Data"]["files"]] == ["a.csv", "b.csv"]
    assert {file["uploadedBy"] for file in folders["Data"]["files"]} == {"Ada Researcher"}
    assert store.log.count(("get_by_id", USERS)) == 1


def test_folders_with_unknown_uploader_fall_back_to_unknown() -> None:
    store = seeded_store()
    store.put(files_path(PROJECT_ID, "f2"), "file3", {"fileName": "c.txt", "uploadedBy": "ghost"})

    result = ReportAggregator(store).get_project_folders_with_files(OWNER_ID)

    empty_folder = next(folder for folder in result[0]["folders"] if folder["name"] == "Empty")
    assert empty_folder["files"][0]["uploadedBy"] == "Unknown"


def test_folder_fetch_failure_fails_whole_aggregation() -> None:
    store = RecordingLedgerStore(inner=seeded_store(), fail_on={("list_all", files_path(PROJECT_ID, "f1"))})

    with pytest.raises(UpstreamFailureError, match="Failed to fetch folders and files") as error:
        ReportAggregator(store).get_project_folders_with_files(OWNER_ID)

    assert isinstance(error.value.__cause__, RuntimeError)


def test_reviewed_projects_skip_missing_projects_and_sort_newest_first() -> None:
    store = seeded_store()
    store.put(REVIEWS, "r-missing", {"reviewerId": REVIEWER_ID, "projectId": "gone", "updatedAt": utc(2025, 3, 1)})
    store.put(REVIEWS, "r-no-project", {"reviewerId": REVIEWER_ID, "updatedAt": utc(2025, 3, 2)})
    store.put(
        REVIEWS,
        "r-older",
        {"reviewerId": REVIEWER_ID, "projectId": SECOND_PROJECT_ID, "createdAt": utc(2025, 1, 5)},
    )

    reviewed = ReportAggregator(store).get_reviewed_projects(REVIEWER_ID)

    assert [item["id"] for item in reviewed] == ["r1", "r-older"]
    assert reviewed[0]["researcherName"] == "Ada Researcher"
    assert reviewed[0]["feedback"] == "Solid plan"
    assert reviewed[1]["description"] == "No description provided"
    assert reviewed[0]["reviewDate"] == utc(2025, 2, 10)


def test_review_without_timestamps_is_dated_now() -> None:
    store = seeded_store()
    store.put(REVIEWS, "r-undated", {"reviewerId": REVIEWER_ID, "projectId": SECOND_PROJECT_ID})

    reviewed = ReportAggregator(store, clock=lambda: FIXED_NOW).get_reviewed_projects(REVIEWER_ID)

    assert [item["id"] for item in reviewed] == ["r-undated", "r1"]
    assert reviewed[0]["reviewDate"] == FIXED_NOW


def test_reviewed_projects_cache_project_lookups_per_call() -> None:
    inner = seeded_store()
    inner.put(REVIEWS, "r2", {"reviewerId": REVIEWER_ID, "projectId": PROJECT_ID, "updatedAt": utc(2025, 2, 11)})
    store = RecordingLedgerStore(inner=inner)
    aggregator = ReportAggregator(store)

    aggregator.get_reviewed_projects(REVIEWER_ID)
    aggregator.get_reviewed_projects(REVIEWER_ID)

    assert store.log.count(("get_by_id", PROJECTS)) == 2
    assert store.log.count(("get_by_id", USERS)) == 2


def test_reviewed_projects_wrap_store_failures() -> None:
    store = RecordingLedgerStore(inner=seeded_store(), fail_on={("query_by_equality", REVIEWS)})

    with pytest.raises(UpstreamFailureError, match="Failed to fetch reviewed projects"):
        ReportAggregator(store).get_reviewed_projects(REVIEWER_ID)

"""Tests for CSV report row shapes, sanitization and number/date rendering."""

from __future__ import annotations

from datetime import datetime, timezone

from backend.reporting.csv_report import (
    FOLDER_HEADER,
    TEAM_HEADER,
    format_number,
    format_timestamp,
    generate_folder_csv,
    generate_funding_csv,
    generate_progress_csv,
    generate_project_overview_csv,
    generate_reviewed_projects_csv,
    generate_team_csv,
    parse_csv,
    sanitize,
)


def test_funding_csv_matches_expected_lines() -> None:
    csv_text = generate_funding_csv(
        [
            {
                "title": "Project 1",
                "fundingHistory": [
                    {
                        "amount": 1000,
                        "type": "grant",
                        "source": "External Grant",
                        "updatedByName": "John Doe",
                        "updatedAt": datetime(2025, 1, 1, tzinfo=timezone.utc),
                    }
                ],
            }
        ]
    )

    assert csv_text == (
        "Project Name,Funding Amount,Source/Description,Type,Added By,Updated At\n"
        "Project 1,1000,External Grant,grant,John Doe,2025-01-01T00:00:00.000Z\n"
    )


def test_funding_csv_uses_description_for_expenses_and_defaults_added_by() -> None:
    csv_text = generate_funding_csv(
        [
            {
                "name": "Lab",
                "fundingHistory": [
                    {"amount": -25.5, "type": "expense", "description": "Pipettes, tips", "source": "ignored"},
                ],
            }
        ]
    )

    assert csv_text.splitlines()[1] == "Lab,-25.5,Pipettes  tips,expense,Unknown,"


def test_funding_csv_falls_back_to_date_field() -> None:
    csv_text = generate_funding_csv(
        [{"title": "P", "fundingHistory": [{"amount": 1, "type": "funding", "date": "2024-12-31"}]}]
    )

    assert csv_text.splitlines()[1].endswith(",2024-12-31")


def test_progress_csv_rounds_half_up() -> None:
    csv_text = generate_progress_csv(
        [
            {
                "title": "Goals",
                "status": "active",
                "goals": [{"completed": True}, {"completed": True}, {"completed": False}],
            }
        ]
    )

    assert parse_csv(csv_text)[1][:4] == ["Goals", "67%", "3", "2"]


def test_progress_csv_without_goals_is_zero() -> None:
    csv_text = generate_progress_csv([{"title": "Nothing yet", "goals": []}])

    assert parse_csv(csv_text)[1][:4] == ["Nothing yet", "0%", "0", "0"]


def test_team_csv_lists_enabled_permissions_in_order() -> None:
    csv_text = generate_team_csv(
        [
            {
                "title": "Team Project",
                "collaborators": [
                    {
                        "name": "Jane",
                        "permissions": {"canEditProject": True, "canViewFiles": True, "canManageTeam": False},
                    }
                ],
            }
        ]
    )

    lines = csv_text.splitlines()
    assert lines[0] == ",".join(TEAM_HEADER)
    assert lines[1] == "Team Project,Jane,Collaborator,Basic,canEditProject; canViewFiles"


def test_folder_csv_emits_a_row_for_empty_folders() -> None:
    csv_text = generate_folder_csv(
        [
            {
                "projectName": "Coral",
                "folders": [
                    {"name": "Empty", "files": []},
                    {
                        "name": "Data",
                        "files": [
                            {
                                "fileName": "a.csv",
                                "uploadedBy": "Ada",
                                "uploadedAt": datetime(2025, 1, 22, 8, 30, 0, 123456, tzinfo=timezone.utc),
                            }
                        ],
                    },
                ],
            }
        ]
    )

    rows = parse_csv(csv_text)
    assert rows[0] == list(FOLDER_HEADER)
    assert rows[1] == ["Coral", "Empty", "", "", ""]
    assert rows[2] == ["Coral", "Data", "a.csv", "Ada", "2025-01-22T08:30:00.123Z"]


def test_overview_csv_renders_funds_and_dates() -> None:
    csv_text = generate_project_overview_csv(
        [
            {
                "title": "Coral",
                "description": "Line one\r\nline two",
                "status": "active",
                "createdAt": datetime(2025, 1, 10, tzinfo=timezone.utc),
                "availableFunds": 1500.0,
            }
        ]
    )

    assert csv_text.splitlines()[1] == "Coral,Line one line two,active,2025-01-10T00:00:00.000Z,,1500,0"


def test_reviewed_projects_csv_renders_review_date_as_iso() -> None:
    csv_text = generate_reviewed_projects_csv(
        [
            {
                "title": "Coral",
                "description": "Reef",
                "researcherName": "Ada",
                "feedback": "Good, thorough",
                "reviewDate": datetime(2025, 2, 10, tzinfo=timezone.utc),
            }
        ]
    )

    assert csv_text.splitlines()[1] == "Coral,Reef,Ada,Good  thorough,2025-02-10T00:00:00.000Z"


def test_empty_input_yields_header_only() -> None:
    assert generate_team_csv([]) == ",".join(TEAM_HEADER) + "\n"


def test_sanitize_replaces_line_break_runs_and_commas() -> None:
    assert sanitize("a\n\nb,c\rd") == "a b c d"
    assert sanitize(None) == ""


def test_format_number_keeps_integral_values_without_decimals() -> None:
    assert format_number(1000) == "1000"
    assert format_number(1000.0) == "1000"
    assert format_number(12.5) == "12.5"
    assert format_number(None) == ""


def test_format_timestamp_passes_text_through() -> None:
    assert format_timestamp("not a date") == "not a date"
    assert format_timestamp(None) == ""


def test_parse_csv_recovers_header_and_row_count_after_sanitizing() -> None:
    projects = [
        {"title": "A, with comma", "goals": [{"completed": True}], "status": "multi\nline"},
        {"title": "B", "goals": []},
        {"title": "C"},
    ]

    rows = parse_csv(generate_progress_csv(projects))

    assert rows[0] == ["Project Name", "Overall Progress", "Total Goals", "Completed Goals", "Status", "Last Updated"]
    assert len(rows) == 1 + len(projects)
    assert all(len(row) == 6 for row in rows)
    assert rows[1][0] == "A  with comma"

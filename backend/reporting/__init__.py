"""Report aggregation and CSV/PDF rendering for project exports."""

from backend.reporting.aggregator import ReportAggregator
from backend.reporting.csv_report import (
    generate_folder_csv,
    generate_funding_csv,
    generate_progress_csv,
    generate_project_overview_csv,
    generate_reviewed_projects_csv,
    generate_team_csv,
    parse_csv,
)
from backend.reporting.delivery import FileDelivery, InMemoryFileDelivery
from backend.reporting.pdf_report import generate_table_pdf

__all__ = [
    "FileDelivery",
    "InMemoryFileDelivery",
    "ReportAggregator",
    "generate_folder_csv",
    "generate_funding_csv",
    "generate_progress_csv",
    "generate_project_overview_csv",
    "generate_reviewed_projects_csv",
    "generate_table_pdf",
    "generate_team_csv",
    "parse_csv",
]

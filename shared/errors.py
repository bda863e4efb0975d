"""Typed errors raised by ledger, aggregation and export components."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes shared by services and the HTTP layer."""

    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    NO_DATA = "NO_DATA"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    EXPORT_INCOMPLETE = "EXPORT_INCOMPLETE"


class LedgerError(Exception):
    """Base class carrying a stable code and a user-facing message."""

    code: ErrorCode = ErrorCode.UPSTREAM_FAILURE
    default_message = "Unexpected ledger error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticatedError(LedgerError):
    code = ErrorCode.NOT_AUTHENTICATED
    default_message = "User not authenticated"


class NotAuthorizedError(LedgerError):
    code = ErrorCode.NOT_AUTHORIZED
    default_message = "Not authorized to access this project"


class NotFoundError(LedgerError):
    code = ErrorCode.NOT_FOUND
    default_message = "Record not found"


class ProjectNotFoundError(NotFoundError):
    default_message = "Project not found"


class InvalidInputError(LedgerError):
    code = ErrorCode.INVALID_INPUT
    default_message = "Invalid input"


class InvalidAmountError(InvalidInputError):
    default_message = "Invalid funds amount"


class InvalidReportTypeError(InvalidInputError):
    default_message = "Invalid report type"


class InvalidExportFormatError(InvalidInputError):
    default_message = "Invalid export format"


class InsufficientFundsError(LedgerError):
    code = ErrorCode.INSUFFICIENT_FUNDS
    default_message = "Insufficient funds to cover the expense"


class NoDataError(LedgerError):
    code = ErrorCode.NO_DATA
    default_message = "No data available for PDF generation"


class UpstreamFailureError(LedgerError):
    """Raised when the ledger store fails; the message is stable per operation."""

    code = ErrorCode.UPSTREAM_FAILURE


class ExportIncompleteError(LedgerError):
    """Raised when at least one report of a composite export failed.

    Files that were generated are still delivered and listed in ``files``.
    """

    code = ErrorCode.EXPORT_INCOMPLETE
    default_message = "One or more reports failed to export"

    def __init__(self, *, files: list[Any], failures: list[Any], message: str | None = None) -> None:
        super().__init__(message)
        self.files = files
        self.failures = failures


class ReportRenderingError(LedgerError):
    default_message = "Failed to render PDF report"

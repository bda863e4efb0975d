"""FastAPI entrypoint for funding ledger and report export endpoints."""

from __future__ import annotations

import io
import logging
import zipfile
from functools import lru_cache
from typing import Any

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict

from backend.auth.supabase_auth import UnauthorizedError, resolve_user_id
from backend.factory import build_export_service, build_funding_ledger, build_ledger_store
from backend.repositories.ledger_store import LedgerStore
from backend.services.export_service import ExportService
from backend.services.funding_ledger import FundingLedger
from shared import config as _config
from shared.errors import ErrorCode, ExportIncompleteError, InvalidInputError, LedgerError
from shared.models import (
    ExportedFile,
    FundingHistoryEntry,
    FundingOpportunity,
    FundsUpdateResult,
    ProjectBalance,
    ReportFilters,
)


logger = logging.getLogger(__name__)


_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_AUTHENTICATED: 401,
    ErrorCode.NOT_AUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INSUFFICIENT_FUNDS: 409,
    ErrorCode.NO_DATA: 404,
    ErrorCode.UPSTREAM_FAILURE: 502,
    ErrorCode.EXPORT_INCOMPLETE: 502,
}

ZIP_MEDIA_TYPE = "application/zip"


class AddFundsPayload(BaseModel):
    """Funding event posted by the project owner."""

    model_config = ConfigDict(extra="forbid")

    amount: Any
    source: str | None = None


class ExpensePayload(BaseModel):
    """Expense posted by the project owner."""

    model_config = ConfigDict(extra="forbid")

    amount: Any
    description: str | None = None


@lru_cache(maxsize=1)
def get_ledger_store() -> LedgerStore:
    """Create and cache the ledger store once per process."""

    return build_ledger_store()


def get_funding_ledger() -> FundingLedger:
    return build_funding_ledger(get_ledger_store())


def get_export_service() -> ExportService:
    return build_export_service(get_ledger_store())


def _resolve_authenticated_user(authorization: str | None) -> str:
    try:
        return resolve_user_id(authorization)
    except UnauthorizedError as exc:
        raise HTTPException(status_code=401, detail=str(exc) or "Unauthorized") from exc


def _split_project_ids(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    return [item for item in raw.split(",") if item.strip()]


def _file_response(files: list[ExportedFile], archive_stem: str) -> Response:
    if len(files) == 1:
        exported = files[0]
        return Response(
            content=exported.content,
            media_type=exported.media_type,
            headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
        )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for exported in files:
            archive.writestr(exported.filename, exported.content)
    return Response(
        content=buffer.getvalue(),
        media_type=ZIP_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{archive_stem}_export.zip"'},
    )


app = FastAPI(title="Research Funding Ledger API")

ALLOW_ORIGINS = _config.cors_allow_origins()


@app.middleware("http")
async def log_http_requests(request: Request, call_next):
    """Log incoming requests, HTTP status codes and unexpected errors."""

    logger.info("http_request_received method=%s path=%s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "http_request_failed method=%s path=%s",
            request.method,
            request.url.path,
        )
        raise

    logger.info(
        "http_response_sent method=%s path=%s status_code=%s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("cors_allow_origins=%s", ALLOW_ORIGINS)


@app.exception_handler(LedgerError)
async def handle_ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    """Map typed ledger errors to their HTTP status and a stable JSON body."""

    status_code = _STATUS_BY_CODE.get(exc.code, 500)
    content: dict[str, Any] = {"detail": exc.message, "code": exc.code.value}
    if isinstance(exc, ExportIncompleteError):
        content["delivered"] = [exported.filename for exported in exc.files]
        content["failures"] = [failure.model_dump(mode="json") for failure in exc.failures]
    logger.warning(
        "ledger_error method=%s path=%s code=%s status_code=%s",
        request.method,
        request.url.path,
        exc.code.value,
        status_code,
    )
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for unhandled exceptions."""

    logger.exception(
        "unhandled_exception method=%s path=%s exception_type=%s message=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health")
def health() -> dict[str, str]:
    """Healthcheck endpoint."""

    return {"status": "ok"}


@app.get("/funding/opportunities", response_model=list[FundingOpportunity])
def list_funding_opportunities(authorization: str | None = Header(default=None)) -> list[FundingOpportunity]:
    _resolve_authenticated_user(authorization)
    return get_funding_ledger().list_funding_opportunities()


@app.get("/projects/{project_id}/funds", response_model=ProjectBalance)
def get_project_balance(project_id: str, authorization: str | None = Header(default=None)) -> ProjectBalance:
    user_id = _resolve_authenticated_user(authorization)
    return get_funding_ledger().get_project_balance(user_id, project_id)


@app.get("/projects/{project_id}/funding-history", response_model=list[FundingHistoryEntry])
def get_funding_history(
    project_id: str,
    authorization: str | None = Header(default=None),
) -> list[FundingHistoryEntry]:
    user_id = _resolve_authenticated_user(authorization)
    return get_funding_ledger().get_history(user_id, project_id)


@app.post("/projects/{project_id}/funds", response_model=FundsUpdateResult)
def add_funds(
    project_id: str,
    payload: AddFundsPayload,
    authorization: str | None = Header(default=None),
) -> FundsUpdateResult:
    user_id = _resolve_authenticated_user(authorization)
    return get_funding_ledger().add_funds(user_id, project_id, payload.amount, source=payload.source)


@app.post("/projects/{project_id}/expenses", response_model=FundsUpdateResult)
def record_expense(
    project_id: str,
    payload: ExpensePayload,
    authorization: str | None = Header(default=None),
) -> FundsUpdateResult:
    user_id = _resolve_authenticated_user(authorization)
    return get_funding_ledger().record_expense(user_id, project_id, payload.amount, description=payload.description)


@app.get("/reports/export")
def export_report(
    report_type: str,
    format: str = "csv",
    start_date: str | None = None,
    end_date: str | None = None,
    project_ids: str | None = None,
    authorization: str | None = Header(default=None),
) -> Response:
    """Export a report (or the dashboard bundle) as CSV or PDF."""

    user_id = _resolve_authenticated_user(authorization)
    logger.info(
        "report_export_requested user_id=%s report_type=%s format=%s start_date=%s end_date=%s",
        user_id,
        report_type,
        format,
        start_date,
        end_date,
    )
    files = get_export_service().export_dashboard(
        user_id,
        report_type,
        format,
        filters={
            "start_date": start_date,
            "end_date": end_date,
            "project_ids": _split_project_ids(project_ids),
        },
    )
    return _file_response(files, archive_stem=report_type)


@app.get("/reports/researcher")
def export_researcher_report(
    include_funding: bool = True,
    include_folders: bool = True,
    start_date: str | None = None,
    authorization: str | None = Header(default=None),
) -> Response:
    """Export the researcher's funding and folder listings as CSV."""

    user_id = _resolve_authenticated_user(authorization)
    try:
        since = ReportFilters(start_date=start_date).start_date
    except ValueError as exc:
        raise InvalidInputError("Invalid start date") from exc
    if not include_funding and not include_folders:
        raise InvalidInputError("Select at least one listing to export")

    files = get_export_service().export_researcher_csv(
        user_id,
        include_funding=include_funding,
        include_folders=include_folders,
        start_date=since,
    )
    return _file_response(files, archive_stem="researcher")


@app.get("/reports/reviewed-projects")
def export_reviewed_projects(authorization: str | None = Header(default=None)) -> Response:
    user_id = _resolve_authenticated_user(authorization)
    exported = get_export_service().export_reviewed_projects_csv(user_id)
    return _file_response([exported], archive_stem="reviewed_projects")

"""Funding ledger: per-project balances plus an append-only funding history.

Every mutation is a two-step protocol against the ledger store: the project
balance fields are updated first, then the history entry is appended. When
the append fails the previous balance fields are written back before the
failure is reported. Between the two writes a concurrent reader can observe
the new balance without its history entry.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from backend.repositories.ledger_store import (
    FUNDING_OPPORTUNITIES,
    PROJECTS,
    USERS,
    LedgerStore,
    funding_history_path,
)
from shared.errors import (
    InsufficientFundsError,
    InvalidAmountError,
    NotAuthenticatedError,
    NotAuthorizedError,
    ProjectNotFoundError,
    UpstreamFailureError,
)
from shared.models import (
    FundingEventType,
    FundingHistoryEntry,
    FundingOpportunity,
    FundsUpdateResult,
    ProjectBalance,
)
from shared.time_utils import parse_timestamp, utc_now


logger = logging.getLogger(__name__)


_UNKNOWN_USER_NAME = "Unknown User"


def _to_decimal(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def _to_number(value: Decimal) -> int | float:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _validate_amount(amount: Any, message: str) -> Decimal:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise InvalidAmountError(message)
    if isinstance(amount, float) and not math.isfinite(amount):
        raise InvalidAmountError(message)
    if isinstance(amount, Decimal) and not amount.is_finite():
        raise InvalidAmountError(message)
    value = _to_decimal(amount)
    if value < 0:
        raise InvalidAmountError(message)
    return value


def _history_sort_key(entry: FundingHistoryEntry) -> tuple[bool, datetime | None]:
    moment = parse_timestamp(entry.updated_at)
    return moment is None, moment


@dataclass(slots=True)
class FundingLedger:
    store: LedgerStore
    clock: Callable[[], datetime] = utc_now

    def _require_caller(self, caller_id: str | None) -> str:
        if not caller_id:
            raise NotAuthenticatedError()
        return caller_id

    def _load_owned_project(self, caller_id: str, project_id: str, action: str) -> dict[str, Any]:
        try:
            project = self.store.get_by_id(PROJECTS, project_id)
        except RuntimeError as exc:
            logger.exception("funding_project_lookup_failed project_id=%s", project_id)
            raise UpstreamFailureError("Failed to fetch project") from exc

        if project is None:
            raise ProjectNotFoundError()
        if project.get("userId") != caller_id:
            logger.warning(
                "funding_access_denied project_id=%s caller_id=%s action=%s",
                project_id,
                caller_id,
                action,
            )
            raise NotAuthorizedError(f"Not authorized to {action} for this project")
        return project

    def _resolve_user_name(self, user_id: str) -> str:
        try:
            user = self.store.get_by_id(USERS, user_id)
        except RuntimeError as exc:
            logger.exception("funding_user_lookup_failed user_id=%s", user_id)
            raise UpstreamFailureError("Failed to fetch user profile") from exc
        if user is None:
            return _UNKNOWN_USER_NAME
        return user.get("fullName") or _UNKNOWN_USER_NAME

    def _write_event(
        self,
        *,
        project_id: str,
        previous_fields: dict[str, Any],
        balance_fields: dict[str, Any],
        entry: dict[str, Any],
        failure_message: str,
    ) -> None:
        try:
            self.store.update_fields(PROJECTS, project_id, balance_fields)
        except RuntimeError as exc:
            logger.exception("funding_balance_update_failed project_id=%s", project_id)
            raise UpstreamFailureError(failure_message) from exc

        try:
            self.store.insert(funding_history_path(project_id), entry)
        except RuntimeError as exc:
            logger.exception("funding_history_append_failed project_id=%s", project_id)
            try:
                self.store.update_fields(PROJECTS, project_id, previous_fields)
            except RuntimeError:
                logger.exception("funding_balance_restore_failed project_id=%s", project_id)
            raise UpstreamFailureError(failure_message) from exc

    def add_funds(
        self,
        caller_id: str | None,
        project_id: str,
        amount: Any,
        source: str | None = None,
    ) -> FundsUpdateResult:
        """Add funds to a project and log a ``funding`` history entry."""

        caller = self._require_caller(caller_id)
        value = _validate_amount(amount, "Invalid funds amount")
        project = self._load_owned_project(caller, project_id, "update funding")

        current_available = _to_decimal(project.get("availableFunds"))
        updated_available = _to_number(current_available + value)
        updated_by_name = self._resolve_user_name(caller)

        self._write_event(
            project_id=project_id,
            previous_fields={"availableFunds": project.get("availableFunds", 0)},
            balance_fields={"availableFunds": updated_available},
            entry={
                "amount": _to_number(value),
                "totalAfterUpdate": updated_available,
                "type": FundingEventType.FUNDING.value,
                "updatedAt": self.clock(),
                "updatedBy": caller,
                "updatedByName": updated_by_name,
                "source": source,
            },
            failure_message="Failed to update project funds",
        )
        logger.info(
            "funding_added project_id=%s amount=%s available_funds=%s",
            project_id,
            value,
            updated_available,
        )
        return FundsUpdateResult(
            success=True,
            message="Funds updated and history logged",
            project_id=project_id,
            available_funds=updated_available,
            used_funds=_to_number(_to_decimal(project.get("usedFunds"))),
        )

    def record_expense(
        self,
        caller_id: str | None,
        project_id: str,
        amount: Any,
        description: str | None = None,
    ) -> FundsUpdateResult:
        """Spend from available funds and log an ``expense`` history entry."""

        caller = self._require_caller(caller_id)
        value = _validate_amount(amount, "Invalid expense amount")
        project = self._load_owned_project(caller, project_id, "update expenses")

        current_available = _to_decimal(project.get("availableFunds"))
        current_used = _to_decimal(project.get("usedFunds"))
        if value > current_available:
            raise InsufficientFundsError()

        updated_available = _to_number(current_available - value)
        updated_used = _to_number(current_used + value)
        updated_by_name = self._resolve_user_name(caller)

        self._write_event(
            project_id=project_id,
            previous_fields={
                "availableFunds": project.get("availableFunds", 0),
                "usedFunds": project.get("usedFunds", 0),
            },
            balance_fields={"availableFunds": updated_available, "usedFunds": updated_used},
            entry={
                "amount": _to_number(-value),
                "totalAfterUpdate": updated_available,
                "type": FundingEventType.EXPENSE.value,
                "updatedAt": self.clock(),
                "updatedBy": caller,
                "updatedByName": updated_by_name,
                "description": description,
            },
            failure_message="Failed to record project expense",
        )
        logger.info(
            "expense_recorded project_id=%s amount=%s available_funds=%s used_funds=%s",
            project_id,
            value,
            updated_available,
            updated_used,
        )
        return FundsUpdateResult(
            success=True,
            message="Expense updated and history logged",
            project_id=project_id,
            available_funds=updated_available,
            used_funds=updated_used,
        )

    def get_balance(self, caller_id: str | None, project_id: str) -> int | float:
        caller = self._require_caller(caller_id)
        project = self._load_owned_project(caller, project_id, "view funding")
        return _to_number(_to_decimal(project.get("availableFunds")))

    def get_history(self, caller_id: str | None, project_id: str) -> list[FundingHistoryEntry]:
        """Return the project's funding history, oldest first."""

        caller = self._require_caller(caller_id)
        self._load_owned_project(caller, project_id, "view this funding history")
        return self._read_history(project_id)

    def get_used_funds(self, caller_id: str | None, project_id: str) -> int | float:
        """Recompute used funds from the history instead of the cached ``usedFunds`` field."""

        return self._sum_expenses(self.get_history(caller_id, project_id))

    def get_project_balance(self, caller_id: str | None, project_id: str) -> ProjectBalance:
        caller = self._require_caller(caller_id)
        project = self._load_owned_project(caller, project_id, "view funding")
        history = self._read_history(project_id)
        return ProjectBalance(
            project_id=project_id,
            available_funds=_to_number(_to_decimal(project.get("availableFunds"))),
            used_funds=self._sum_expenses(history),
        )

    def list_funding_opportunities(self) -> list[FundingOpportunity]:
        """Return funding opportunities, active ones first, then by nearest deadline."""

        try:
            records = self.store.list_all(FUNDING_OPPORTUNITIES)
        except RuntimeError as exc:
            logger.exception("funding_opportunities_fetch_failed")
            raise UpstreamFailureError("Failed to fetch funding information") from exc

        opportunities = [
            FundingOpportunity.model_validate(
                {**record, "status": record.get("status") or "active"}
            )
            for record in records
        ]

        def _sort_key(item: FundingOpportunity) -> tuple[bool, bool, datetime | None]:
            deadline = parse_timestamp(item.deadline)
            return item.status != "active", deadline is None, deadline

        return sorted(opportunities, key=_sort_key)

    def _read_history(self, project_id: str) -> list[FundingHistoryEntry]:
        try:
            records = self.store.list_all(funding_history_path(project_id))
        except RuntimeError as exc:
            logger.exception("funding_history_fetch_failed project_id=%s", project_id)
            raise UpstreamFailureError("Failed to fetch funding history") from exc
        entries = [FundingHistoryEntry.from_record(record) for record in records]
        return sorted(entries, key=_history_sort_key)

    @staticmethod
    def _sum_expenses(history: list[FundingHistoryEntry]) -> int | float:
        total = sum(
            (abs(_to_decimal(entry.amount)) for entry in history if entry.amount < 0),
            start=Decimal("0"),
        )
        return _to_number(total)

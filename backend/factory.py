"""Composition root for backend services."""

from __future__ import annotations

import logging

from backend.db.supabase_client import SupabaseClient, SupabaseSettings
from backend.reporting.aggregator import ReportAggregator
from backend.repositories.ledger_store import InMemoryLedgerStore, LedgerStore, SupabaseLedgerStore
from backend.services.export_service import ExportService
from backend.services.funding_ledger import FundingLedger
from shared import config


logger = logging.getLogger(__name__)


def build_ledger_store() -> LedgerStore:
    """Build the ledger store adapter.

    Supabase is used when its URL and service role key are configured;
    otherwise an empty in-process store backs the services.
    """

    supabase_url = config.supabase_url()
    supabase_key = config.supabase_service_role_key()
    if supabase_url and supabase_key:
        client = SupabaseClient(
            settings=SupabaseSettings(
                url=supabase_url,
                service_role_key=supabase_key,
                anon_key=config.supabase_anon_key(),
            )
        )
        return SupabaseLedgerStore(client=client)

    logger.warning("ledger_store_in_memory app_env=%s; Supabase is not configured", config.app_env())
    return InMemoryLedgerStore()


def build_funding_ledger(store: LedgerStore) -> FundingLedger:
    return FundingLedger(store=store)


def build_export_service(store: LedgerStore) -> ExportService:
    max_workers = config.export_max_workers()
    aggregator = ReportAggregator(store, max_workers=max_workers)
    return ExportService(aggregator, store, max_workers=max_workers)

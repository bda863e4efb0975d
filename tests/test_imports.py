from backend.factory import build_export_service, build_funding_ledger, build_ledger_store
from backend.repositories.ledger_store import InMemoryLedgerStore
from shared.models import ReportFilters


def test_imports_succeed(monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)

    store = build_ledger_store()
    ledger = build_funding_ledger(store)
    exports = build_export_service(store)

    assert isinstance(store, InMemoryLedgerStore)
    assert ledger.store is store
    assert exports is not None
    assert ReportFilters(project_ids=[" ", "p1 "]).project_ids == ["p1"]

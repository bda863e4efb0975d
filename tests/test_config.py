"""Tests for shared configuration helpers."""

from shared import config


def test_export_max_workers_defaults_to_eight(monkeypatch) -> None:
    monkeypatch.delenv("EXPORT_MAX_WORKERS", raising=False)

    assert config.export_max_workers() == 8


def test_export_max_workers_reads_env(monkeypatch) -> None:
    monkeypatch.setenv("EXPORT_MAX_WORKERS", "3")

    assert config.export_max_workers() == 3


def test_export_max_workers_invalid_value_uses_default(monkeypatch) -> None:
    monkeypatch.setenv("EXPORT_MAX_WORKERS", "many")

    assert config.export_max_workers() == 8


def test_export_max_workers_is_at_least_one(monkeypatch) -> None:
    monkeypatch.setenv("EXPORT_MAX_WORKERS", "0")

    assert config.export_max_workers() == 1


def test_cors_allow_origins_defaults_in_dev(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)

    assert config.cors_allow_origins() == ["http://localhost:5173", "http://127.0.0.1:5173"]


def test_cors_allow_origins_parses_comma_separated_list(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.com, https://b.com")

    assert config.cors_allow_origins() == ["https://a.com", "https://b.com"]


def test_cors_allow_origins_falls_back_to_ui_origin_in_prod(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)
    monkeypatch.setenv("UI_ORIGIN", "https://ui.example.org")

    assert config.cors_allow_origins() == ["https://ui.example.org"]


def test_supabase_settings_are_optional(monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)

    assert config.supabase_url() is None
    assert config.supabase_service_role_key() is None

import pytest

from brand_monitor.config import Settings
from brand_monitor.fallback import EmptyFallback, SyntheticFallback, build_fallback
from brand_monitor.models import parse_registry_date


def test_defaults(monkeypatch):
    for name in ("REGISTRY_RATE_LIMIT_MS", "REGISTRY_FALLBACK", "DEDUPLICATE_ALERTS",
                 "MONITORING_POLL_SECONDS", "SUPABASE_URL", "SUPABASE_KEY"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.rate_limit_delay_ms == 1000
    assert settings.request_timeout_seconds == 10.0
    assert settings.registry_fallback == "empty"
    assert settings.deduplicate_alerts is False
    assert settings.poll_interval_seconds is None
    assert not settings.has_supabase


def test_from_env(monkeypatch):
    monkeypatch.setenv("REGISTRY_RATE_LIMIT_MS", "250")
    monkeypatch.setenv("REGISTRY_FALLBACK", "synthetic")
    monkeypatch.setenv("DEDUPLICATE_ALERTS", "true")
    monkeypatch.setenv("MONITORING_POLL_SECONDS", "300")
    monkeypatch.setenv("MONITORING_ALERTS_TABLE", "alerts")
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "key")

    settings = Settings.from_env()

    assert settings.rate_limit_delay_ms == 250
    assert settings.deduplicate_alerts is True
    assert settings.poll_interval_seconds == 300
    assert settings.alerts_table == "alerts"
    assert settings.has_supabase
    assert isinstance(build_fallback(settings), SyntheticFallback)


def test_empty_fallback_is_default():
    assert isinstance(build_fallback(Settings()), EmptyFallback)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01-15", "2024-01-15T00:00:00+00:00"),
        ("2024-01-15T10:30:00Z", "2024-01-15T10:30:00+00:00"),
        ("20240115", "2024-01-15T00:00:00+00:00"),
        ("not a date", None),
        (None, None),
    ],
)
def test_parse_registry_date(value, expected):
    parsed = parse_registry_date(value)
    assert (parsed.isoformat() if parsed else None) == expected

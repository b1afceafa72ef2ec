import pytest

from shared.engine_settings import EngineSettingsError, load_engine_settings

ENGINE_ENV_VARS = (
    "BUDGET_ENGINE_LEDGER",
    "BUDGET_ENGINE_MAX_CONCURRENCY",
    "BUDGET_ENGINE_TREND_MONTHS",
    "BUDGET_ENGINE_OBSERVATION_DAYS",
    "BUDGET_ENGINE_LEDGER_TIMEOUT_SECONDS",
    "BUDGET_ENGINE_LEDGER_API_BASE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENGINE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_select_sql_ledger() -> None:
    settings = load_engine_settings()

    assert settings.ledger_name == "sql"
    assert settings.max_concurrency == 8
    assert settings.trend_months == 6
    assert settings.observation_days == 30
    assert settings.http_ledger is None


def test_http_ledger_requires_api_base(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER", "http")

    with pytest.raises(EngineSettingsError, match="BUDGET_ENGINE_LEDGER_API_BASE"):
        load_engine_settings()


def test_http_ledger_config_is_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER", " HTTP ")
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER_API_BASE", " https://ledger.internal/api/ ")
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("BUDGET_ENGINE_MAX_CONCURRENCY", "3")

    settings = load_engine_settings()

    assert settings.ledger_name == "http"
    assert settings.max_concurrency == 3
    assert settings.http_ledger is not None
    assert settings.http_ledger.api_base == "https://ledger.internal/api"
    assert settings.http_ledger.timeout_seconds == 2.5


def test_unknown_ledger_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER", "mongo")

    with pytest.raises(EngineSettingsError, match="Unsupported ledger"):
        load_engine_settings()


@pytest.mark.parametrize(
    ("env_key", "raw_value"),
    [
        ("BUDGET_ENGINE_MAX_CONCURRENCY", "0"),
        ("BUDGET_ENGINE_MAX_CONCURRENCY", "many"),
        ("BUDGET_ENGINE_TREND_MONTHS", "-1"),
        ("BUDGET_ENGINE_OBSERVATION_DAYS", "1.5"),
    ],
)
def test_malformed_integers_are_rejected(monkeypatch: pytest.MonkeyPatch, env_key: str, raw_value: str) -> None:
    monkeypatch.setenv(env_key, raw_value)

    with pytest.raises(EngineSettingsError, match=env_key):
        load_engine_settings()


def test_malformed_timeout_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER", "http")
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER_API_BASE", "https://ledger.internal")
    monkeypatch.setenv("BUDGET_ENGINE_LEDGER_TIMEOUT_SECONDS", "soon")

    with pytest.raises(EngineSettingsError, match="numeric"):
        load_engine_settings()


def test_settings_are_immutable() -> None:
    settings = load_engine_settings()

    with pytest.raises(AttributeError):
        settings.max_concurrency = 1  # type: ignore[misc]

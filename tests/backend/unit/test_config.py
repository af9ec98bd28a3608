from pathlib import Path

from sundaycoffee.backend.config import load_settings


def test_load_settings_reads_expected_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SUNDAYCOFFEE_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("SUNDAYCOFFEE_DATABASE_URL", "postgresql://local")
    monkeypatch.setenv("SUNDAYCOFFEE_DEBOUNCE_SECONDS", "5")
    monkeypatch.setenv("SUNDAYCOFFEE_RETRY_SECONDS", "0.25")
    monkeypatch.setenv("SUNDAYCOFFEE_HOST", "localhost")
    monkeypatch.setenv("SUNDAYCOFFEE_PORT", "9000")
    monkeypatch.setenv("SUNDAYCOFFEE_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.cache_dir == tmp_path
    assert settings.database_url == "postgresql://local"
    assert settings.debounce_seconds == 5.0
    assert settings.retry_seconds == 0.25
    assert settings.host == "localhost"
    assert settings.port == 9000
    assert settings.log_level == "DEBUG"


def test_load_settings_applies_defaults(monkeypatch) -> None:
    for name in (
        "SUNDAYCOFFEE_CACHE_DIR",
        "SUNDAYCOFFEE_DATABASE_URL",
        "SUNDAYCOFFEE_DEBOUNCE_SECONDS",
        "SUNDAYCOFFEE_RETRY_SECONDS",
        "SUNDAYCOFFEE_HOST",
        "SUNDAYCOFFEE_PORT",
        "SUNDAYCOFFEE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.cache_dir == Path("~/.sundaycoffee").expanduser()
    assert settings.database_url is None
    assert settings.debounce_seconds == 2.0
    assert settings.retry_seconds == 1.0
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.log_level == "INFO"


def test_empty_database_url_means_local_only(monkeypatch) -> None:
    monkeypatch.setenv("SUNDAYCOFFEE_DATABASE_URL", "")

    assert load_settings().database_url is None

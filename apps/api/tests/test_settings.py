import logging
from pathlib import Path

import pytest

from fms_api.logging_setup import setup_logging
from fms_api.settings import Settings


def test_settings_defaults_when_env_is_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "FMS_STATE_FILE",
        "FMS_ACTIVITY_LOG_FILE",
        "FMS_STEP_GATING",
        "FMS_DIRECTORY_FILE",
        "FMS_DIRECTORY_URL",
        "FMS_DIRECTORY_TIMEOUT_SECONDS",
        "FMS_LOG_LEVEL",
        "FMS_LOG_DIR",
        "FMS_CORS_ALLOW_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.state_file is None
    assert settings.step_gating is False
    assert settings.directory_timeout_seconds == 5.0
    assert settings.log_level == "INFO"
    assert settings.cors_allow_origins == ("null",)


def test_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FMS_STATE_FILE", " /tmp/fms/state.json ")
    monkeypatch.setenv("FMS_STEP_GATING", "yes")
    monkeypatch.setenv("FMS_DIRECTORY_URL", "https://directory.internal")
    monkeypatch.setenv("FMS_DIRECTORY_TIMEOUT_SECONDS", "not-a-number")
    monkeypatch.setenv("FMS_LOG_LEVEL", "debug")
    monkeypatch.setenv("FMS_CORS_ALLOW_ORIGINS", "https://a.test, ,https://b.test")

    settings = Settings.from_env()

    assert settings.state_file == "/tmp/fms/state.json"
    assert settings.step_gating is True
    assert settings.directory_url == "https://directory.internal"
    assert settings.directory_timeout_seconds == 5.0
    assert settings.log_level == "DEBUG"
    assert settings.cors_allow_origins == ("https://a.test", "https://b.test")


def test_setup_logging_writes_debug_records_to_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    previous = list(root.handlers)
    try:
        setup_logging(level="WARNING", log_dir=tmp_path / "logs")
        logging.getLogger("fms_api.test").debug("store restored from snapshot")
        for handler in root.handlers:
            handler.flush()

        content = (tmp_path / "logs" / "fms-api.log").read_text(encoding="utf-8")
        assert "store restored from snapshot" in content
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous:
            root.addHandler(handler)


def test_unknown_log_level_falls_back_to_info(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FMS_LOG_LEVEL", "verbose")

    settings = Settings.from_env()

    assert settings.log_level == "INFO"

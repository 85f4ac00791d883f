"""Tests for settings parsing and structured logging."""

from __future__ import annotations

import json
import logging

import pytest

from config import DEFAULT_SECRET_KEY, Settings
from logging_config import JSONFormatter, get_logger, setup_logging


def test_defaults(monkeypatch):
    for name in ("MONGO_URI", "DB_NAME", "COMPLETION_MAX_ATTEMPTS", "CORS_ORIGINS", "DEV_MODE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    settings = Settings()
    assert settings.DEV_MODE is False
    assert settings.MONGO_URI == "mongodb://localhost:27017"
    assert settings.DB_NAME == "habit_nudge"
    assert settings.COMPLETION_MAX_ATTEMPTS == 3
    assert settings.CORS_ORIGINS == ["*"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("REFERRAL_XP", "50")
    settings = Settings()
    assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]
    assert settings.REFERRAL_XP == 50


def test_default_secret_rejected_without_dev_mode(monkeypatch):
    monkeypatch.delenv("DEV_MODE", raising=False)
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValueError):
        Settings()


def test_dev_mode_allows_default_secret(monkeypatch):
    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    assert Settings().SECRET_KEY == DEFAULT_SECRET_KEY


def test_production_requires_secret(monkeypatch):
    monkeypatch.setenv("DEV_MODE", "false")
    monkeypatch.setenv("SECRET_KEY", DEFAULT_SECRET_KEY)
    with pytest.raises(ValueError):
        Settings()


def test_json_formatter_includes_extra():
    record = logging.LogRecord(
        name="habitnudge.store",
        level=logging.INFO,
        pathname="store.py",
        lineno=42,
        msg="Completed %s",
        args=("habit",),
        exc_info=None,
    )
    record.user_id = "alice"

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["logger"] == "habitnudge.store"
    assert data["message"] == "Completed habit"
    assert data["line"] == 42
    assert data["extra"] == {"user_id": "alice"}


def test_setup_logging_writes_json_file(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    logger = setup_logging(Settings())

    get_logger("test").info("hello")
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "habitnudge.log").read_text(encoding="utf-8").splitlines()
    assert any(json.loads(line)["message"] == "hello" for line in lines)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

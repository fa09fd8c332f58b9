"""Unit tests for structlog configuration."""

import logging

import pytest
import structlog

from infrastructure.logging import configure_logging
from infrastructure.settings import AppSettings


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def _renderer():
    return structlog.get_config()["processors"][-1]


def test_production_renders_json(monkeypatch):
    monkeypatch.setenv("FORCE_COLOR", "1")

    configure_logging(AppSettings(environment="production", _env_file=None))

    assert isinstance(_renderer(), structlog.processors.JSONRenderer)


def test_development_with_force_color_uses_console(monkeypatch):
    monkeypatch.setenv("FORCE_COLOR", "1")

    configure_logging(AppSettings(_env_file=None))

    assert isinstance(_renderer(), structlog.dev.ConsoleRenderer)


def test_development_without_tty_falls_back_to_json(monkeypatch):
    monkeypatch.delenv("FORCE_COLOR", raising=False)
    monkeypatch.setattr("sys.stdout.isatty", lambda: False)

    configure_logging(AppSettings(_env_file=None))

    assert isinstance(_renderer(), structlog.processors.JSONRenderer)


def test_log_level_filters_lower_levels():
    configure_logging(AppSettings(log_level="warning", _env_file=None))

    assert structlog.get_config()["wrapper_class"] is (
        structlog.make_filtering_bound_logger(logging.WARNING)
    )


def test_unknown_log_level_defaults_to_info():
    from infrastructure.logging import _resolve_level

    assert _resolve_level("chatty") == logging.INFO
    assert _resolve_level("debug") == logging.DEBUG

"""Tests for homecal.logging_config."""

import logging
from collections.abc import Generator
from typing import Any

import pytest

from homecal.logging_config import configure_logging, get_logging_status

pytestmark = pytest.mark.unit

_TOUCHED = (
    "",
    "homecal",
    "homecal.api",
    "homecal.calendar",
    "homecal.core",
    "homecal.domain",
    "homecal.feed",
    "homecal.storage",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web_log",
    "asyncio",
)


@pytest.fixture(autouse=True)
def restore_levels() -> Generator[None, Any, None]:
    saved = {name: logging.getLogger(name).level for name in _TOUCHED}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def test_production_levels() -> None:
    configure_logging(debug_mode=False)

    assert logging.getLogger("homecal").level == logging.INFO
    assert logging.getLogger("homecal.feed").level == logging.INFO
    assert logging.getLogger("aiohttp.access").level == logging.WARNING


def test_debug_mode_only_affects_homecal_loggers() -> None:
    configure_logging(debug_mode=True)

    assert logging.getLogger("homecal").level == logging.DEBUG
    assert logging.getLogger("asyncio").level == logging.WARNING


def test_env_debug_forces_debug(monkeypatch) -> None:
    monkeypatch.setenv("HOMECAL_DEBUG", "yes")

    configure_logging(debug_mode=False)

    assert logging.getLogger("homecal").level == logging.DEBUG


def test_force_debug_overrides_env(monkeypatch) -> None:
    monkeypatch.setenv("HOMECAL_DEBUG", "1")

    configure_logging(debug_mode=True, force_debug=False)

    assert logging.getLogger("homecal").level == logging.INFO


def test_env_log_level_sets_root(monkeypatch) -> None:
    monkeypatch.setenv("HOMECAL_LOG_LEVEL", "warning")

    configure_logging()

    assert logging.getLogger().level == logging.WARNING


def test_get_logging_status_reports_level_names() -> None:
    configure_logging(debug_mode=True)

    status = get_logging_status()

    assert status["homecal"] == "DEBUG"
    assert status["aiohttp.access"] == "WARNING"
    assert "root" in status

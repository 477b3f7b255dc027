"""
Shared test fixtures for power monitor tests.

All monitor env vars are cleaned before each test to ensure isolation, and
the working directory is moved to ``tmp_path`` so no ``.env`` file is picked
up by Pydantic BaseSettings.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from powermon.src.config import MonitorSettings, TemplateConfig

# All MonitorSettings environment variable names, used for cleanup.
_ALL_MONITOR_ENV_VARS = (
    "SCREEN_REFRESH_INTERVAL_S",
    "POLL_INTERVAL_S",
    "HISTORY_SIZE",
    "USE_MEDIAN",
    "DISPLAY_MODE",
    "TOGGLE_INTERVAL_S",
    "TICK_RATE",
    "DEVICE_NAMES",
    "TEMPLATE_PATH",
    "HEALTH_PATH",
    "DEBUG",
)


@pytest.fixture(autouse=True)
def _clean_monitor_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all monitor env vars and isolate from .env files before each test."""
    for var in _ALL_MONITOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def settings() -> MonitorSettings:
    """Default settings: 1 s polls, 20 ticks/s, 20 samples of history."""
    return MonitorSettings()


@pytest.fixture()
def small_template() -> TemplateConfig:
    """A 10-cell wide template with the default charge bar levels."""
    return TemplateConfig(width=10, lines=("$name$", "#chargebar#"))


@pytest.fixture()
def make_sampler() -> Callable[..., MagicMock]:
    """Factory of mock DeviceSamplers returning fixed readings."""
    return _make_sampler_mock


def _make_sampler_mock(
    name: str = "LSC",
    *,
    stored: float = 500,
    capacity: float = 1000,
    input: float = 10,
    output: float = 4,
) -> MagicMock:
    """Create a mock DeviceSampler returning fixed readings."""
    sampler = MagicMock()
    sampler.name = name
    sampler.get_stored.return_value = stored
    sampler.get_capacity.return_value = capacity
    sampler.get_input.return_value = input
    sampler.get_output.return_value = output
    sampler.last_sample_ts = None
    return sampler

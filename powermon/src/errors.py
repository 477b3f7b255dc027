"""
Exception taxonomy for the power monitor.

Every error raised by the package derives from :class:`PowerMonitorError`
so the entrypoint can tell package failures apart from programming errors.

- :class:`ConfigurationError` -- bad template or settings, fatal at startup.
- :class:`ExtractionError` -- malformed device status text, skip the tick.
- :class:`ZeroCapacityError` -- device reports zero capacity, guarded by
  the record builder and never propagated to the render loop.
- :class:`NoDevicesFound` -- discovery found nothing to monitor.
- :class:`TemplateError` -- a template could not be rendered for a record.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations


class PowerMonitorError(Exception):
    """Base class for all power monitor errors."""


class ConfigurationError(PowerMonitorError):
    """A template or setting references something that does not exist."""


class ExtractionError(PowerMonitorError):
    """A value could not be extracted from device status text.

    Args:
        message: Human-readable reason.
        line: 1-based status line number the rule pointed at.
    """

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message)
        self.line = line


class ZeroCapacityError(PowerMonitorError):
    """A derived value would divide by a zero capacity."""


class NoDevicesFound(PowerMonitorError):
    """Device discovery yielded no supported energy-storage device."""

    def __init__(self) -> None:
        super().__init__(
            "Can't find any Battery Buffer or Power Sub-Station. "
            "Check your cables and adapters."
        )


class TemplateError(PowerMonitorError):
    """A template line could not be rendered for the current record."""

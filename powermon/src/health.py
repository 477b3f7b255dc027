"""
Health file writer for the power monitor.

Writes a JSON health file at a configurable path with three fields:
- last_render_ts: ISO timestamp of the most recent rendered frame.
- device_count: Number of monitored devices.
- devices: Per-device ISO timestamp of the last successful sample.

The file is rewritten on every state change, providing a simple liveness
signal that a supervisor or monitoring can inspect.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from powermon.src.devices import DeviceSampler


class HealthWriter:
    """Writes monitor health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_render_ts: str | None = None
        self._devices: dict[str, str | None] = {}

    def record_render(self, samplers: Iterable[DeviceSampler]) -> None:
        """Record a rendered frame and the samplers' last sample times."""
        self._last_render_ts = datetime.now(tz=UTC).isoformat()
        self._devices = {
            sampler.name: (
                sampler.last_sample_ts.isoformat() if sampler.last_sample_ts else None
            )
            for sampler in samplers
        }
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_render_ts": self._last_render_ts,
            "device_count": len(self._devices),
            "devices": self._devices,
        }
        self.path.write_text(json.dumps(data))

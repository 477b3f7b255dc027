"""
Power monitor main loop.

Runs one asyncio task per device sampler plus a render loop:
1. **Sampling loops**: each :class:`~powermon.src.devices.DeviceSampler`
   polls its device every ``poll_interval_s`` and pushes rate samples into
   its own histories.
2. **Render loop**: every ``screen_refresh_interval_s`` builds the display
   records from the samplers' current values, renders them through the
   template engine, and draws the frame on the surface.

Both are resilient: an exception in one iteration is logged and does not
crash the loop or affect the others.  Graceful shutdown on SIGTERM/SIGINT
sets a shared asyncio.Event; every loop finishes its current iteration and
the screen is reset to its full resolution and blanked before exiting.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import importlib
import json
import logging
import signal
import sys
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from powermon.src.errors import ConfigurationError, NoDevicesFound, TemplateError
from powermon.src.records import CycleRotation, build_records
from powermon.src.screen import error_block

if TYPE_CHECKING:
    from powermon.src.config import MonitorSettings
    from powermon.src.devices import DeviceSampler
    from powermon.src.discovery import ComponentHost
    from powermon.src.health import HealthWriter
    from powermon.src.screen import ScreenController, Surface
    from powermon.src.template import TemplateEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the power monitor.

    Sets up the root logger with a JSON-formatted handler writing to stderr,
    keeping stdout free for the terminal display.  Records logged with
    ``extra={"device": name}`` carry the device name as its own key.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            device = getattr(record, "device", None)
            if device is not None:
                log_entry["device"] = device
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: MonitorSettings) -> None:
    """Log a config summary at startup."""
    logger.info(
        "Power monitor starting with config: "
        "screen_refresh_interval_s=%s, poll_interval_s=%s, history_size=%s, "
        "use_median=%s, display_mode=%s, toggle_interval_s=%s, tick_rate=%s, "
        "named_devices=%d, template_path=%s, health_path=%s, debug=%s",
        settings.screen_refresh_interval_s,
        settings.poll_interval_s,
        settings.history_size,
        settings.use_median,
        settings.display_mode,
        settings.toggle_interval_s,
        settings.tick_rate,
        len(settings.device_names),
        settings.template_path,
        settings.health_path,
        settings.debug,
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


def _render_once(
    *,
    samplers: Sequence[DeviceSampler],
    engine: TemplateEngine,
    screen: ScreenController,
    settings: MonitorSettings,
    current: int = 0,
    health: HealthWriter | None = None,
) -> bool:
    """Build, render and draw a single frame.

    Catches all exceptions so that the caller's loop is never broken.  A
    template error is drawn on the screen in place of the frame so a broken
    configuration stays visible.

    Returns:
        True if the frame was drawn, False otherwise.
    """
    try:
        records = build_records(
            samplers,
            mode=settings.display_mode,
            tick_rate=settings.tick_rate,
            current=current,
        )
        blocks = engine.render_tick([record.as_dict() for record in records])
        screen.render(blocks)
    except TemplateError as exc:
        logger.error("Template error: %s", exc)
        with contextlib.suppress(Exception):
            screen.render([error_block(f"Template error: {exc}", engine.template)])
        return False
    except Exception:
        logger.error("Render cycle error", exc_info=True)
        return False

    if health is not None:
        try:
            health.record_render(samplers)
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)
    return True


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _render_loop(
    *,
    samplers: Sequence[DeviceSampler],
    engine: TemplateEngine,
    screen: ScreenController,
    settings: MonitorSettings,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run the render loop until shutdown_event is set.

    Executes _render_once, then waits for screen_refresh_interval_s or the
    shutdown event, whichever comes first.  The screen is reset on exit.
    """
    interval = settings.screen_refresh_interval_s
    rotation = CycleRotation(len(samplers), settings.toggle_interval_s, time.monotonic())
    logger.info("Render loop started (interval=%ss)", interval)
    try:
        while not shutdown_event.is_set():
            _render_once(
                samplers=samplers,
                engine=engine,
                screen=screen,
                settings=settings,
                current=rotation.update(time.monotonic()),
                health=health,
            )
            # Use wait with timeout so we can check shutdown between sleeps
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
    finally:
        screen.reset()
        logger.info("Render loop stopped")


async def run_loops(
    *,
    samplers: Sequence[DeviceSampler],
    engine: TemplateEngine,
    screen: ScreenController,
    settings: MonitorSettings,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run every sampling loop and the render loop until shutdown.

    All loops run as independent asyncio tasks via asyncio.gather().  When
    the shutdown_event is set, each finishes its current iteration and
    returns.
    """
    logger.info("Starting %d sampling loop(s) and the render loop", len(samplers))

    tasks = [sampler.start_sampling(shutdown_event) for sampler in samplers]
    await asyncio.gather(
        *tasks,
        _render_loop(
            samplers=samplers,
            engine=engine,
            screen=screen,
            settings=settings,
            shutdown_event=shutdown_event,
            health=health,
        ),
    )
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def load_host(target: str | None) -> ComponentHost:
    """Instantiate the component host named by ``module:factory``.

    Without a target the simulated host is used.

    Raises:
        ConfigurationError: The module or factory cannot be found.
    """
    if not target:
        from powermon.src.simulator import SimulatedHost

        return SimulatedHost()

    module_name, _, attr = target.partition(":")
    if not attr:
        raise ConfigurationError(f"host must be given as 'module:factory', got '{target}'")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"cannot load host '{target}': {exc}") from exc
    return factory()


async def async_main(
    host: ComponentHost,
    *,
    surface: Surface | None = None,
    settings: MonitorSettings | None = None,
) -> None:
    """Async entrypoint: load config, discover devices, run loops.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.

    Raises:
        ConfigurationError: The template or settings are invalid.
        NoDevicesFound: The host has no supported device.
    """
    from powermon.src.config import MonitorSettings
    from powermon.src.discovery import discover_samplers
    from powermon.src.health import HealthWriter
    from powermon.src.screen import AnsiSurface, ScreenController
    from powermon.src.template import TemplateEngine

    if settings is None:
        settings = MonitorSettings()
    log_config_summary(settings)

    template = settings.load_template()
    if surface is None:
        surface = AnsiSurface()
    engine = TemplateEngine(template, color_depth=surface.max_depth())

    samplers = discover_samplers(host, settings)
    screen = ScreenController(
        surface,
        template,
        mode=settings.display_mode,
        device_count=len(samplers),
        debug=settings.debug,
    )
    health = HealthWriter(settings.health_path) if settings.health_path else None

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    await run_loops(
        samplers=samplers,
        engine=engine,
        screen=screen,
        settings=settings,
        shutdown_event=shutdown_event,
        health=health,
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="powermon",
        description="Monitor energy-storage devices on a character-cell display.",
    )
    parser.add_argument(
        "--host",
        metavar="MODULE:FACTORY",
        help="Component host factory (default: built-in simulator)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Synchronous entrypoint for the power monitor.

    Returns:
        Process exit status: 0 on clean shutdown, 1 when no device was
        found, 2 on a configuration error.
    """
    args = build_parser().parse_args(argv)

    from pydantic import ValidationError

    from powermon.src.config import MonitorSettings

    try:
        settings = MonitorSettings()
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    configure_logging(logging.DEBUG if settings.debug else logging.INFO)

    try:
        host = load_host(args.host)
        asyncio.run(async_main(host, settings=settings))
    except NoDevicesFound as exc:
        print(exc)
        return 1
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())

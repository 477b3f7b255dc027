"""
Tests for the main loop orchestration and entrypoint.

Tests verify:
- A single render iteration draws the frame and updates the health file.
- Template errors are drawn on screen and never escape the loop.
- The sampling and render loops stop on the shutdown event and reset
  the screen.
- Host loading and the process exit codes.
- JSON log lines.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from powermon.src.config import DisplayMode, MonitorSettings, TemplateConfig
from powermon.src.discovery import discover_samplers
from powermon.src.errors import ConfigurationError, NoDevicesFound
from powermon.src.health import HealthWriter
from powermon.src.main import (
    _handle_signal,
    _render_once,
    async_main,
    configure_logging,
    load_host,
    main,
    run_loops,
)
from powermon.src.screen import MemorySurface, ScreenController
from powermon.src.simulator import SimulatedHost
from powermon.src.template import TemplateEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _screen(template: TemplateConfig, count: int = 1) -> tuple[MemorySurface, ScreenController]:
    surface = MemorySurface()
    controller = ScreenController(surface, template, mode=DisplayMode.GRID, device_count=count)
    return surface, controller


async def _set_after(event: asyncio.Event, delay: float) -> None:
    await asyncio.sleep(delay)
    event.set()


# ---------------------------------------------------------------------------
# _render_once
# ---------------------------------------------------------------------------


class TestRenderOnce:
    """One frame: records, template, screen, health."""

    def test_draws_frame(self, settings: MonitorSettings, make_sampler) -> None:
        template = TemplateConfig()
        surface, screen = _screen(template)

        ok = _render_once(
            samplers=[make_sampler()],
            engine=TemplateEngine(template),
            screen=screen,
            settings=settings,
        )

        assert ok is True
        assert surface.screen.row_text(0).startswith("LSC: 50.00%  500.00 EU")

    def test_grid_of_devices(self, settings: MonitorSettings, make_sampler) -> None:
        template = TemplateConfig(width=4, lines=("$name$",))
        surface, screen = _screen(template, count=2)

        _render_once(
            samplers=[make_sampler("a"), make_sampler("b")],
            engine=TemplateEngine(template),
            screen=screen,
            settings=settings,
        )

        assert surface.screen.text() == ["a    b   "]

    def test_failing_device_keeps_other_tiles(self, make_sampler) -> None:
        settings = MonitorSettings(display_mode=DisplayMode.GRID)
        template = TemplateConfig(width=7, lines=("$name$",))
        surface, screen = _screen(template, count=2)
        broken = make_sampler("broken")
        broken.get_stored.side_effect = OSError("device detached")

        ok = _render_once(
            samplers=[make_sampler("healthy"), broken],
            engine=TemplateEngine(template),
            screen=screen,
            settings=settings,
        )

        assert ok is True
        assert surface.screen.text() == ["healthy broken "]

    def test_template_error_is_drawn(
        self,
        settings: MonitorSettings,
        make_sampler,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        template = TemplateConfig(width=40, lines=("$missing$",))
        surface, screen = _screen(template)

        with caplog.at_level(logging.ERROR, logger="powermon.src.main"):
            ok = _render_once(
                samplers=[make_sampler()],
                engine=TemplateEngine(template),
                screen=screen,
                settings=settings,
            )

        assert ok is False
        assert surface.screen.row_text(0).startswith("Template error:")
        assert "undefined field 'missing'" in caplog.text

    def test_unexpected_error_is_contained(
        self, settings: MonitorSettings, make_sampler, small_template: TemplateConfig
    ) -> None:
        screen = MagicMock()
        screen.render.side_effect = RuntimeError("display unplugged")

        ok = _render_once(
            samplers=[make_sampler()],
            engine=TemplateEngine(small_template),
            screen=screen,
            settings=settings,
        )

        assert ok is False

    def test_writes_health(
        self,
        settings: MonitorSettings,
        make_sampler,
        small_template: TemplateConfig,
        tmp_path: Path,
    ) -> None:
        health = HealthWriter(tmp_path / "health.json")
        _, screen = _screen(small_template)

        _render_once(
            samplers=[make_sampler()],
            engine=TemplateEngine(small_template),
            screen=screen,
            settings=settings,
            health=health,
        )

        data = json.loads((tmp_path / "health.json").read_text())
        assert data["devices"] == {"LSC": None}

    def test_health_not_written_on_failed_frame(
        self, settings: MonitorSettings, make_sampler
    ) -> None:
        template = TemplateConfig(lines=("$missing$",))
        health = MagicMock()
        _, screen = _screen(template)

        _render_once(
            samplers=[make_sampler()],
            engine=TemplateEngine(template),
            screen=screen,
            settings=settings,
            health=health,
        )

        health.record_render.assert_not_called()


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


class TestRunLoops:
    @pytest.mark.asyncio
    async def test_loops_stop_and_reset_screen(self) -> None:
        settings = MonitorSettings(screen_refresh_interval_s=0.05)
        samplers = discover_samplers(SimulatedHost(), settings)
        template = TemplateConfig()
        surface = MemorySurface((160, 50))
        screen = ScreenController(
            surface, template, mode=settings.display_mode, device_count=len(samplers)
        )
        shutdown_event = asyncio.Event()

        await asyncio.wait_for(
            asyncio.gather(
                run_loops(
                    samplers=samplers,
                    engine=TemplateEngine(template),
                    screen=screen,
                    settings=settings,
                    shutdown_event=shutdown_event,
                ),
                _set_after(shutdown_event, 0.2),
            ),
            timeout=5,
        )

        assert surface.resolution == (160, 50)
        assert all(s.last_sample_ts is not None for s in samplers)

    @pytest.mark.asyncio
    async def test_render_loop_keeps_running_after_errors(
        self, make_sampler, small_template: TemplateConfig
    ) -> None:
        settings = MonitorSettings(screen_refresh_interval_s=0.05)
        screen = MagicMock()
        screen.render.side_effect = RuntimeError("boom")
        sampler = make_sampler()
        sampler.start_sampling.side_effect = lambda event: asyncio.create_task(event.wait())
        shutdown_event = asyncio.Event()

        await asyncio.wait_for(
            asyncio.gather(
                run_loops(
                    samplers=[sampler],
                    engine=TemplateEngine(small_template),
                    screen=screen,
                    settings=settings,
                    shutdown_event=shutdown_event,
                ),
                _set_after(shutdown_event, 0.2),
            ),
            timeout=5,
        )

        assert screen.render.call_count >= 2
        screen.reset.assert_called_once()

    def test_handle_signal_sets_event(self) -> None:
        event = asyncio.Event()
        _handle_signal(event)
        assert event.is_set()


class TestAsyncMain:
    @pytest.mark.asyncio
    async def test_wires_components(self) -> None:
        settings = MonitorSettings()
        surface = MemorySurface()

        with patch("powermon.src.main.run_loops", new_callable=AsyncMock) as mock_run:
            await async_main(SimulatedHost(), surface=surface, settings=settings)

        kwargs = mock_run.await_args.kwargs
        assert len(kwargs["samplers"]) == 5
        assert kwargs["engine"].color_depth == 8
        assert kwargs["health"] is None
        assert surface.resolution == (98, 11)

    @pytest.mark.asyncio
    async def test_health_path_enables_writer(self, tmp_path: Path) -> None:
        settings = MonitorSettings(health_path=str(tmp_path / "health.json"))

        with patch("powermon.src.main.run_loops", new_callable=AsyncMock) as mock_run:
            await async_main(SimulatedHost(), surface=MemorySurface(), settings=settings)

        assert isinstance(mock_run.await_args.kwargs["health"], HealthWriter)

    @pytest.mark.asyncio
    async def test_no_devices(self) -> None:
        host = MagicMock()
        host.list_components.return_value = []

        with pytest.raises(NoDevicesFound):
            await async_main(host, surface=MemorySurface(), settings=MonitorSettings())


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


class TestLoadHost:
    def test_default_is_simulator(self) -> None:
        assert isinstance(load_host(None), SimulatedHost)

    def test_module_factory(self) -> None:
        assert isinstance(load_host("powermon.src.simulator:SimulatedHost"), SimulatedHost)

    @pytest.mark.parametrize(
        "target",
        ["powermon.src.simulator", "no_such_module_xyz:Host", "powermon.src.simulator:Nope"],
    )
    def test_invalid(self, target: str) -> None:
        with pytest.raises(ConfigurationError):
            load_host(target)


class TestMain:
    """Process exit codes."""

    def test_clean_shutdown(self) -> None:
        with (
            patch("powermon.src.main.configure_logging"),
            patch("powermon.src.main.async_main", new_callable=AsyncMock) as mock_main,
        ):
            assert main([]) == 0
        assert isinstance(mock_main.await_args.args[0], SimulatedHost)

    def test_no_devices(self, capsys: pytest.CaptureFixture[str]) -> None:
        with (
            patch("powermon.src.main.configure_logging"),
            patch(
                "powermon.src.main.async_main",
                new_callable=AsyncMock,
                side_effect=NoDevicesFound(),
            ),
        ):
            assert main([]) == 1
        assert "Check your cables and adapters." in capsys.readouterr().out

    def test_invalid_settings(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_S", "0.5")
        with patch("powermon.src.main.configure_logging"):
            assert main([]) == 2
        assert "POLL_INTERVAL_S must be >= 1" in capsys.readouterr().err

    def test_invalid_template(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        path = tmp_path / "template.json"
        path.write_text(json.dumps({"lines": ["$percent:nope$"]}))
        monkeypatch.setenv("TEMPLATE_PATH", str(path))
        with patch("powermon.src.main.configure_logging"):
            assert main([]) == 2

    def test_invalid_host(self) -> None:
        with patch("powermon.src.main.configure_logging"):
            assert main(["--host", "nope"]) == 2


class TestConfigureLogging:
    def test_json_lines(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(logging.DEBUG)
            handler = root.handlers[0]
            record = logging.LogRecord(
                "powermon.test", logging.INFO, __file__, 1, "hello %s", ("x",), None
            )

            entry = json.loads(handler.format(record))

            assert entry["level"] == "INFO"
            assert entry["logger"] == "powermon.test"
            assert entry["msg"] == "hello x"
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_device_key(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging()
            record = logging.LogRecord(
                "powermon.src.devices", logging.WARNING, __file__, 1, "skipped", (), None
            )
            record.device = "LSC"

            entry = json.loads(root.handlers[0].format(record))

            assert entry["device"] == "LSC"
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

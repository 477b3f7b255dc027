"""
Unit tests for the charge-flow bar widget.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import re

import pytest
from powermon.src.config import ChargeBarConfig, ChargeBarLevel, TemplateConfig
from powermon.src.errors import ConfigurationError, TemplateError
from powermon.src.widgets import WIDGETS, ChargeFlowWidget, bg, fg

_ESCAPE = re.compile(r"&&?[^;&]*;")


def _text(markup: str) -> str:
    return _ESCAPE.sub("", markup)


def _record(percent: float, charge: float) -> dict[str, float]:
    return {"percent": percent, "charge": charge}


class TestMarkupHelpers:
    def test_fg_and_bg(self) -> None:
        assert fg(0x009200) == "&0x009200;"
        assert bg(0xFF) == "&&0x0000FF;"


class TestChargeFlowWidget:
    """Bar fill, level colours and arrow animation."""

    def test_charging_arrows_grow_rightwards(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template)

        assert _text(widget.render(_record(50, 6))) == "  >       "
        assert _text(widget.render(_record(50, 6))) == "  >>      "
        assert _text(widget.render(_record(50, 6))) == "  >>>     "

    def test_discharging_arrows_grow_leftwards(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template)

        assert _text(widget.render(_record(50, -6))) == "      <   "
        assert _text(widget.render(_record(50, -6))) == "     <<   "

    def test_idle_has_no_arrows(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template)
        assert _text(widget.render(_record(50, 0))) == " " * 10

    def test_animation_wraps_after_arrow_count(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template)
        ticks = []
        for _ in range(6):
            ticks.append(widget.tick)
            widget.render(_record(50, 1))
        assert ticks == [1, 2, 3, 4, 5, 1]

    def test_fill_colour_and_background_switch(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template)

        markup = widget.render(_record(50, 0))

        assert markup.startswith(fg(0xFFFFFF) + bg(0xFFDB00))
        # Five filled cells, then the bar background.
        assert markup.endswith(" " * 5 + bg(0x0000C0) + " " * 5)

    def test_full_bar_never_switches_background(self, small_template: TemplateConfig) -> None:
        markup = ChargeFlowWidget(small_template).render(_record(100, 0))
        assert bg(0x0000C0) not in markup
        assert markup.startswith(fg(0xFFFFFF) + bg(0x009200))

    def test_empty_bar_switches_immediately(self, small_template: TemplateConfig) -> None:
        markup = ChargeFlowWidget(small_template).render(_record(0, 0))
        assert markup == fg(0xFFFFFF) + bg(0xCC0000) + bg(0x0000C0) + " " * 10

    def test_width_argument(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template)
        assert len(_text(widget.render(_record(50, 0), ["20"]))) == 20

    def test_monochrome(self, small_template: TemplateConfig) -> None:
        widget = ChargeFlowWidget(small_template, color_depth=1)

        markup = widget.render(_record(30, 0))

        assert markup.startswith(bg(0xFFFFFF) + fg(0x000000))
        assert bg(0x000000) + fg(0xFFFFFF) in markup
        assert "0xCC0000" not in markup

    def test_missing_field(self, small_template: TemplateConfig) -> None:
        with pytest.raises(TemplateError, match="needs field"):
            ChargeFlowWidget(small_template).render({"percent": 10})

    def test_non_numeric_field(self, small_template: TemplateConfig) -> None:
        with pytest.raises(TemplateError):
            ChargeFlowWidget(small_template).render({"percent": "full", "charge": 0})


class TestLevels:
    @pytest.mark.parametrize(
        ("percent", "expected"),
        [(100, 0x009200), (80, 0x009200), (79.9, 0xFFDB00), (40, 0xFFDB00), (0, 0xCC0000)],
    )
    def test_default_levels(
        self, small_template: TemplateConfig, percent: float, expected: int
    ) -> None:
        assert ChargeFlowWidget(small_template).level_for(percent).color == expected

    def test_below_every_level_uses_lowest(self) -> None:
        template = TemplateConfig(
            chargebar=ChargeBarConfig(
                levels={
                    "low": ChargeBarLevel(start=10, color=1),
                    "high": ChargeBarLevel(start=60, color=2),
                }
            )
        )
        assert ChargeFlowWidget(template).level_for(5).color == 1


class TestCheckArgs:
    def test_valid(self) -> None:
        ChargeFlowWidget.check_args([])
        ChargeFlowWidget.check_args(["12"])

    @pytest.mark.parametrize("args", [["a"], ["0"], ["1", "2"]])
    def test_invalid(self, args: list[str]) -> None:
        with pytest.raises(ConfigurationError):
            ChargeFlowWidget.check_args(args)


def test_registry_exposes_chargebar() -> None:
    assert WIDGETS["chargebar"] is ChargeFlowWidget

"""
Stateful widgets invoked from ``#widget:args#`` template spans.

A widget returns template markup (text plus ``&color;`` / ``&&color;``
escapes) which the template engine styles like any other text.  Widget
instances keep state between render ticks and are created once per display
slot, so the animation of one device does not affect another.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Protocol

from powermon.src.config import ChargeBarLevel, TemplateConfig
from powermon.src.errors import ConfigurationError, TemplateError

MONOCHROME_DEPTH = 1
"""Colour depth (bits) at which widgets fall back to black and white."""

_BLACK = 0x000000
_WHITE = 0xFFFFFF


def fg(color: int) -> str:
    """Markup switching the foreground colour."""
    return f"&0x{color:06X};"


def bg(color: int) -> str:
    """Markup switching the background colour."""
    return f"&&0x{color:06X};"


class Widget(Protocol):
    """A stateful renderer producing template markup."""

    def render(self, record: Mapping[str, object], args: Sequence[str] = ()) -> str: ...


class ChargeFlowWidget:
    """Charge-level bar with animated flow arrows.

    The filled part of the bar is ``ceil(width * percent / 100)`` cells,
    painted with the colour of the highest charge level whose ``start`` is
    not above the current percent.  Arrows show the direction of the net
    charge: ``>`` growing rightwards from the centre while charging, ``<``
    growing leftwards while discharging, none when idle.  The arrow run grows
    by one cell per render call and wraps after ``arrows`` phases.

    Args:
        template: Template configuration (width, charge bar settings).
        color_depth: Colour depth of the display in bits.

    Template arguments:
        ``#chargebar#`` or ``#chargebar:<width>#`` to override the width.
    """

    def __init__(self, template: TemplateConfig, *, color_depth: int = 8) -> None:
        self._template = template
        self._config = template.chargebar
        self._monochrome = color_depth <= MONOCHROME_DEPTH
        self.tick = 1

    @staticmethod
    def check_args(args: Sequence[str]) -> None:
        """Validate template arguments when the template is loaded."""
        if len(args) > 1:
            raise ConfigurationError(
                f"widget 'chargebar' accepts at most 1 argument, got {len(args)}"
            )
        if args:
            try:
                width = int(args[0])
            except ValueError:
                raise ConfigurationError(
                    f"widget 'chargebar' width must be an integer, got '{args[0]}'"
                ) from None
            if width < 1:
                raise ConfigurationError("widget 'chargebar' width must be >= 1")

    def level_for(self, percent: float) -> ChargeBarLevel:
        """Colour level for *percent*."""
        levels = self._config.levels.values()
        reached = [level for level in levels if level.start <= percent]
        if not reached:
            return min(levels, key=lambda level: level.start)
        return max(reached, key=lambda level: level.start)

    def _arrow(self, charge: float, column: int, center: int) -> str:
        half = math.ceil(self._config.arrows / 2)
        if charge > 0:
            start = center - half
            if start < column <= start + self.tick:
                return ">"
        elif charge < 0:
            start = center + half
            if start - self.tick <= column < start:
                return "<"
        return " "

    def advance(self) -> None:
        """Move the animation to its next phase."""
        if self.tick >= self._config.arrows:
            self.tick = 1
        else:
            self.tick += 1

    def render(self, record: Mapping[str, object], args: Sequence[str] = ()) -> str:
        """Render the bar for *record* and advance the animation."""
        try:
            percent = float(record["percent"])  # type: ignore[arg-type]
            charge = float(record["charge"])  # type: ignore[arg-type]
        except KeyError as exc:
            raise TemplateError(f"widget 'chargebar' needs field {exc}") from None
        except (TypeError, ValueError) as exc:
            raise TemplateError(f"widget 'chargebar': {exc}") from None

        width = int(args[0]) if args else self._template.width
        center = math.ceil(width / 2)
        filled = max(0, min(width, math.ceil(width * percent / 100)))

        if self._monochrome:
            parts = [bg(_WHITE), fg(_BLACK)]
        else:
            parts = [fg(self._config.symbol), bg(self.level_for(percent).color)]

        for column in range(1, width + 1):
            if column == filled + 1:
                if self._monochrome:
                    parts.append(bg(_BLACK) + fg(_WHITE))
                else:
                    parts.append(bg(self._config.background))
            parts.append(self._arrow(charge, column, center))

        self.advance()
        return "".join(parts)


WIDGETS: dict[str, type[ChargeFlowWidget]] = {
    "chargebar": ChargeFlowWidget,
}
"""Widgets available to templates, by name."""

"""
Power monitor configuration.

Two layers, both immutable once constructed:

- :class:`MonitorSettings` -- runtime settings loaded from environment
  variables (or a ``.env`` file) with Pydantic BaseSettings.
- :class:`TemplateConfig` -- display layout, palette, charge bar and the
  line templates.  Defaults reproduce the stock five-line layout; a JSON
  file named by ``TEMPLATE_PATH`` replaces them.

Both are built once at startup and passed to the components that need them.

Template markup::

    $value:formatter,arg1,...$   render a record value through a formatter
    &color;                      switch foreground colour
    &&color;                     switch background colour
    ?condition|true|false?       insert text depending on a condition
    #widget:arg1,...#            insert a widget's output

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Annotated

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings

from powermon.src.errors import ConfigurationError


class DisplayMode(StrEnum):
    """How devices are arranged on the screen."""

    CYCLE = "cycle"
    """Show one device at a time, toggling every ``toggle_interval_s``."""

    GRID = "grid"
    """Show every device in a grid."""

    SUMMARY = "summary"
    """Show a single record summing all devices."""


def _parse_color(value: object) -> object:
    """Accept ``0xRRGGBB`` / decimal strings as well as plain integers."""
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            raise ValueError(f"invalid colour value '{value}'") from None
    return value


Color = Annotated[int, BeforeValidator(_parse_color), Field(ge=0, le=0xFFFFFF)]


# ---------------------------------------------------------------------------
# Template configuration
# ---------------------------------------------------------------------------

DEFAULT_PALETTE: dict[str, int] = {
    "w": 0xFFFFFF,  # white
    "bk": 0x000000,  # black
    "r": 0xCC0000,  # red
    "g": 0x009200,  # green
    "b": 0x0000C0,  # blue
    "y": 0xFFDB00,  # yellow
}

DEFAULT_LINES: tuple[str, ...] = (
    "$name$: $percent:s,%.2f$%  $stored:si,EU$",
    "In: &g;$input:si,EU/t$&w; Out: &r;$output:si,EU/t$",
    "          ?charge>=0|&g;|&r;?$charge:si,EU/t$",
    "#chargebar#",
    "?percent>=99.9|         &g;Fully charged|?"
    "?percent==0|     &r;Completely discharged|?"
    "?(percent<99.9 and charge>0)|Time to full:  &g;$left:t,2$|?"
    "?(percent<99.9 and charge<0)|Time to empty:  &r;$left:t,2$|?"
    "?(percent<99.9 and charge==0)|             Idle|?",
)


class ChargeBarLevel(BaseModel):
    """Colour of the charge bar from ``start`` percent upwards."""

    model_config = ConfigDict(frozen=True)

    start: float = Field(ge=0, le=100)
    color: Color


class ChargeBarConfig(BaseModel):
    """Parameters of the animated charge-flow bar widget.

    Attributes:
        levels: Named colour thresholds; the level with the highest
            ``start`` not above the current percent wins.
        background: Colour of the unfilled part of the bar.
        symbol: Colour of the flow arrows.
        arrows: Length of the arrow animation (number of phases).
    """

    model_config = ConfigDict(frozen=True)

    levels: dict[str, ChargeBarLevel] = Field(
        default_factory=lambda: {
            "green": ChargeBarLevel(start=80, color=DEFAULT_PALETTE["g"]),
            "yellow": ChargeBarLevel(start=40, color=DEFAULT_PALETTE["y"]),
            "red": ChargeBarLevel(start=0, color=DEFAULT_PALETTE["r"]),
        }
    )
    background: Color = DEFAULT_PALETTE["b"]
    symbol: Color = DEFAULT_PALETTE["w"]
    arrows: int = Field(default=5, ge=1)

    @field_validator("levels")
    @classmethod
    def levels_must_not_be_empty(
        cls, v: dict[str, ChargeBarLevel]
    ) -> dict[str, ChargeBarLevel]:
        """At least one colour level is needed to paint the filled part."""
        if not v:
            raise ValueError("chargebar.levels must define at least one level")
        return v


class SiPrefixes(BaseModel):
    """Magnitude symbols used by the ``si`` formatter."""

    model_config = ConfigDict(frozen=True)

    increasing: tuple[str, ...] = ("k", "M", "G", "T", "P", "E", "Z", "Y")
    decreasing: tuple[str, ...] = ("m", "μ", "n", "p", "f", "a", "z", "y")


class TemplateConfig(BaseModel):
    """Screen layout and line templates.

    Attributes:
        column_count: Number of columns in grid mode.
        space: Spacing in cells between grid tiles.
        width: Width of one rendered block in cells.
        background: Default background colour of every line.
        foreground: Default foreground colour of every line.
        chargebar: Charge-flow bar widget parameters.
        palette: Named colours usable in ``&name;`` escapes.
        si_prefixes: Magnitude symbols for the ``si`` formatter.
        lines: Line templates, one per screen row of a block.
    """

    model_config = ConfigDict(frozen=True)

    column_count: int = Field(default=3, ge=1)
    space: int = Field(default=1, ge=0)
    width: int = Field(default=32, ge=1)
    background: Color = DEFAULT_PALETTE["bk"]
    foreground: Color = DEFAULT_PALETTE["w"]
    chargebar: ChargeBarConfig = Field(default_factory=ChargeBarConfig)
    palette: dict[str, Color] = Field(default_factory=lambda: dict(DEFAULT_PALETTE))
    si_prefixes: SiPrefixes = Field(default_factory=SiPrefixes)
    lines: tuple[str, ...] = DEFAULT_LINES

    @property
    def height(self) -> int:
        """Height of one rendered block in cells."""
        return len(self.lines)

    @field_validator("lines")
    @classmethod
    def lines_must_not_be_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """A template without lines renders nothing."""
        if not v:
            raise ValueError("template must define at least one line")
        return v

    @classmethod
    def from_file(cls, path: str | Path) -> TemplateConfig:
        """Load a template from a JSON file.

        Raises:
            ConfigurationError: The file is missing or not a valid template.
        """
        path = Path(path)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"cannot read template file {path}: {exc}") from exc
        except ValidationError as exc:
            raise ConfigurationError(f"invalid template file {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


class MonitorSettings(BaseSettings):
    """Runtime configuration of the power monitor.

    All values are loaded from environment variables; every one has a
    default so the monitor starts without any configuration.

    Attributes:
        screen_refresh_interval_s: Seconds between render ticks (>= 0.05).
        poll_interval_s: Seconds between device samples (>= 1).
        history_size: Number of samples kept per rate history.
        use_median: Reduce rate histories with the median instead of
            the mean.
        display_mode: Device arrangement on screen.
        toggle_interval_s: Seconds between devices in cycle mode.
        tick_rate: Simulation ticks per real-time second, used to turn
            per-poll deltas into per-tick rates and tick-based estimates
            into seconds.
        device_names: Address (or address prefix) to display name.
        template_path: Optional JSON file overriding the default template.
        health_path: Optional JSON health file path.
        debug: Keep the screen resolution untouched and log at DEBUG level.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True}

    screen_refresh_interval_s: float = 0.2
    poll_interval_s: float = 1.0
    history_size: int = 20
    use_median: bool = False
    display_mode: DisplayMode = DisplayMode.GRID
    toggle_interval_s: int = 5
    tick_rate: int = 20
    device_names: dict[str, str] = Field(default_factory=dict)
    template_path: str | None = None
    health_path: str | None = None
    debug: bool = False

    @field_validator("screen_refresh_interval_s")
    @classmethod
    def refresh_interval_must_be_supported(cls, v: float) -> float:
        """Screens cannot be redrawn faster than every 50 ms."""
        if v < 0.05:
            raise ValueError("SCREEN_REFRESH_INTERVAL_S must be >= 0.05")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_at_least_one_second(cls, v: float) -> float:
        """Devices update their averages once per second."""
        if v < 1:
            raise ValueError("POLL_INTERVAL_S must be >= 1")
        return v

    @field_validator("history_size", "toggle_interval_s", "tick_rate")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Sizes and rates must be at least 1."""
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    def load_template(self) -> TemplateConfig:
        """Return the template from ``template_path``, or the default one."""
        if self.template_path:
            return TemplateConfig.from_file(self.template_path)
        return TemplateConfig()

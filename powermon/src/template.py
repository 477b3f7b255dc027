"""
Template engine rendering display records into styled character cells.

Each template line is evaluated against one display record in four passes:

1. ``?condition|true|false?`` -- replaced by one of the two texts depending
   on a :class:`~powermon.src.conditions.Condition`.
2. ``$value$`` / ``$value:formatter,arg,...$`` -- replaced by the record
   value, formatted (default ``s`` with ``%s``).
3. ``#widget#`` / ``#widget:arg,...#`` -- replaced by the output of the
   slot's stateful widget instance.
4. ``&color;`` / ``&&color;`` -- switch the foreground / background colour
   of the following characters; ``color`` is a palette name or a number
   (``0xRRGGBB`` or decimal).  Unknown colours are ignored.

Every condition, formatter and widget referenced by a template is resolved
when the engine is constructed, so configuration mistakes surface at startup
as :class:`~powermon.src.errors.ConfigurationError`.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from powermon.src.conditions import Condition
from powermon.src.config import TemplateConfig
from powermon.src.errors import ConfigurationError, TemplateError
from powermon.src.formatters import BoundFormatter, FormatterRegistry
from powermon.src.widgets import WIDGETS, Widget

logger = logging.getLogger(__name__)

_CONDITION_SPAN = re.compile(r"\?(.*?)\?", re.DOTALL)
_CONDITION_PARTS = re.compile(r"(.*)\|(.*)\|(.*)", re.DOTALL)
_VALUE_SPAN = re.compile(r"\$(.*?)\$")
_WIDGET_SPAN = re.compile(r"#(.*?)#")
_STYLE_ESCAPE = re.compile(r"(&&?)([^;&]*);")

DEFAULT_VALUE_FORMATTER = ("s", ("%s",))


@dataclass(frozen=True, slots=True)
class Cell:
    """One styled character cell."""

    char: str
    fg: int
    bg: int


RenderedLine = list[Cell]
RenderedBlock = list[RenderedLine]


def _split_args(text: str) -> tuple[str, ...]:
    return tuple(arg for arg in text.split(",") if arg)


@dataclass(frozen=True, slots=True)
class _ConditionSpan:
    condition: Condition
    when_true: str
    when_false: str


@dataclass(frozen=True, slots=True)
class _ValueSpan:
    field: str
    formatter: BoundFormatter
    formatter_name: str


@dataclass(frozen=True, slots=True)
class _WidgetSpan:
    name: str
    args: tuple[str, ...]


class TemplateEngine:
    """Render display records through a template.

    Args:
        template: Immutable template configuration.
        formatters: Formatter registry; defaults to the built-in one using
            the template's SI prefix tables.
        color_depth: Colour depth of the target display in bits; passed
            to widgets.

    Raises:
        ConfigurationError: The template references an unknown formatter or
            widget, or contains an invalid condition.
    """

    def __init__(
        self,
        template: TemplateConfig,
        *,
        formatters: FormatterRegistry | None = None,
        color_depth: int = 8,
    ) -> None:
        self.template = template
        self.color_depth = color_depth
        self._formatters = formatters or FormatterRegistry.default(template.si_prefixes)
        self._conditions: dict[str, _ConditionSpan] = {}
        self._values: dict[str, _ValueSpan] = {}
        self._widget_spans: dict[str, _WidgetSpan] = {}
        self._widgets: dict[int, dict[str, Widget]] = {}

        for number, line in enumerate(template.lines, start=1):
            try:
                self._compile_line(line)
            except ConfigurationError as exc:
                raise ConfigurationError(f"template line {number}: {exc}") from exc

    # -- compilation --------------------------------------------------------

    def _compile_line(self, line: str) -> None:
        texts = [_CONDITION_SPAN.sub("", line)]
        for match in _CONDITION_SPAN.finditer(line):
            span = self._compile_condition(match.group(1))
            texts.extend((span.when_true, span.when_false))
        for text in texts:
            for match in _VALUE_SPAN.finditer(text):
                self._compile_value(match.group(1))
            for match in _WIDGET_SPAN.finditer(text):
                self._compile_widget(match.group(1))

    def _compile_condition(self, body: str) -> _ConditionSpan:
        if body in self._conditions:
            return self._conditions[body]
        parts = _CONDITION_PARTS.fullmatch(body)
        if parts is None:
            raise ConfigurationError(
                f"conditional span '?{body}?' must have the form ?condition|true|false?"
            )
        condition, when_true, when_false = parts.groups()
        span = _ConditionSpan(Condition(condition), when_true, when_false)
        self._conditions[body] = span
        return span

    def _compile_value(self, body: str) -> None:
        if body in self._values:
            return
        field, sep, spec = body.partition(":")
        if not field:
            raise ConfigurationError(f"value span '${body}$' has no field name")
        if sep:
            args = _split_args(spec)
            if not args:
                raise ConfigurationError(f"value span '${body}$' has an empty formatter")
            name, fmt_args = args[0], args[1:]
        else:
            name, fmt_args = DEFAULT_VALUE_FORMATTER
        try:
            bound = self._formatters.bind(name, fmt_args)
        except ConfigurationError as exc:
            raise ConfigurationError(f"value span '${body}$': {exc}") from exc
        self._values[body] = _ValueSpan(field, bound, name)

    def _compile_widget(self, body: str) -> None:
        if body in self._widget_spans:
            return
        name, _, spec = body.partition(":")
        widget_type = WIDGETS.get(name)
        if widget_type is None:
            raise ConfigurationError(
                f"unknown widget '{name}' (available: {', '.join(sorted(WIDGETS))})"
            )
        args = _split_args(spec)
        widget_type.check_args(args)
        self._widget_spans[body] = _WidgetSpan(name, args)

    # -- evaluation passes --------------------------------------------------

    def evaluate_conditions(self, line: str, record: Mapping[str, object]) -> str:
        """Pass 1: replace conditional spans."""

        def _replace(match: re.Match[str]) -> str:
            span = self._conditions[match.group(1)]
            return span.when_true if span.condition.evaluate(record) else span.when_false

        return _CONDITION_SPAN.sub(_replace, line)

    def evaluate_values(self, line: str, record: Mapping[str, object]) -> str:
        """Pass 2: replace value spans."""

        def _replace(match: re.Match[str]) -> str:
            span = self._values.get(match.group(1))
            if span is None:
                return match.group(0)
            if span.field not in record:
                raise TemplateError(f"template references undefined field '{span.field}'")
            try:
                return span.formatter(record[span.field])
            except (TypeError, ValueError, OverflowError) as exc:
                raise TemplateError(
                    f"formatter '{span.formatter_name}' failed for field "
                    f"'{span.field}': {exc}"
                ) from exc

        return _VALUE_SPAN.sub(_replace, line)

    def evaluate_widgets(self, line: str, record: Mapping[str, object], slot: int) -> str:
        """Pass 3: replace widget spans using the widgets of *slot*."""
        widgets = self._widgets.setdefault(slot, {})

        def _replace(match: re.Match[str]) -> str:
            span = self._widget_spans.get(match.group(1))
            if span is None:
                # Produced by a value substitution, not part of the template.
                return match.group(0)
            widget = widgets.get(span.name)
            if widget is None:
                widget = WIDGETS[span.name](self.template, color_depth=self.color_depth)
                widgets[span.name] = widget
            return widget.render(record, span.args)

        return _WIDGET_SPAN.sub(_replace, line)

    def resolve_color(self, text: str) -> int | None:
        """Palette name or numeric literal to a colour, ``None`` if neither."""
        if text in self.template.palette:
            return self.template.palette[text]
        try:
            return int(text, 0)
        except ValueError:
            return None

    def apply_styles(self, line: str) -> RenderedLine:
        """Pass 4: turn colour escapes into styled cells."""
        fg = self.template.foreground
        bg = self.template.background
        cells: RenderedLine = []
        pos = 0
        while pos < len(line):
            if line[pos] == "&":
                match = _STYLE_ESCAPE.match(line, pos)
                if match is not None:
                    color = self.resolve_color(match.group(2))
                    if color is not None:
                        if match.group(1) == "&&":
                            bg = color
                        else:
                            fg = color
                    pos = match.end()
                    continue
            cells.append(Cell(line[pos], fg, bg))
            pos += 1
        return cells

    # -- public API ---------------------------------------------------------

    def render_line(self, line: str, record: Mapping[str, object], slot: int = 0) -> RenderedLine:
        """Render one template line for *record*."""
        rendered = self.evaluate_conditions(line, record)
        rendered = self.evaluate_values(rendered, record)
        rendered = self.evaluate_widgets(rendered, record, slot)
        return self.apply_styles(rendered)

    def render(self, record: Mapping[str, object], slot: int = 0) -> RenderedBlock:
        """Render every template line for *record* in display slot *slot*.

        Raises:
            TemplateError: The record lacks a referenced field or a value
                cannot be formatted.
        """
        return [self.render_line(line, record, slot) for line in self.template.lines]

    def render_tick(self, records: Sequence[Mapping[str, object]]) -> list[RenderedBlock]:
        """Render one frame: one block per record, slot = record position."""
        return [self.render(record, slot) for slot, record in enumerate(records)]


def block_text(block: RenderedBlock) -> list[str]:
    """Plain text of a rendered block, one string per line."""
    return ["".join(cell.char for cell in line) for line in block]

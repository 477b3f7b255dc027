"""
Value formatters used by ``$value:formatter,args$`` template spans.

Built-in formatters:

- ``s`` -- printf-style numeric/string format (default ``%.2f``).
- ``si`` -- SI magnitude prefix scaling (``1500`` -> ``1.50 k EU/t``).
- ``t`` -- duration in seconds split into ``d``/``hr``/``min``/``sec``,
  keeping only the most significant non-zero parts.

Formatter names and arguments are bound when a template is loaded through
:meth:`FormatterRegistry.bind`, so an unknown name or a malformed argument is
a :class:`~powermon.src.errors.ConfigurationError` at startup instead of a
failure on the first render tick.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import functools
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from powermon.src.config import SiPrefixes
from powermon.src.errors import ConfigurationError

DEFAULT_FORMAT = "%.2f"

DURATION_UNITS: tuple[tuple[str, int], ...] = (
    ("d", 86400),
    ("hr", 3600),
    ("min", 60),
    ("sec", 1),
)

BoundFormatter = Callable[[object], str]


# ---------------------------------------------------------------------------
# Formatter functions
# ---------------------------------------------------------------------------


def format_fixed(value: object, fmt: str = DEFAULT_FORMAT) -> str:
    """Apply a printf-style format string to *value*."""
    return fmt % (value,)


def format_si(
    value: float,
    unit: str = "",
    fmt: str = DEFAULT_FORMAT,
    *,
    prefixes: SiPrefixes | None = None,
) -> str:
    """Scale *value* to an SI magnitude and prefix the matching symbol.

    The degree is ``floor(log10(|value|) / 3)``, clamped to the depth of
    the symbol tables.  Zero is never scaled.

    Args:
        value: Number to format.
        unit: Unit appended after the prefix (e.g. ``"EU/t"``).
        fmt: printf-style format of the scaled number.
        prefixes: Symbol tables; defaults to the standard k..Y / m..y.

    Returns:
        ``"<scaled> <prefix> <unit>"`` with empty parts left out.
    """
    if prefixes is None:
        prefixes = SiPrefixes()

    prefix = ""
    scaled = value
    if value != 0:
        degree = math.floor(math.log10(abs(value)) / 3)
        degree = max(-len(prefixes.decreasing), min(degree, len(prefixes.increasing)))
        scaled = value * 1000.0**-degree
        if degree > 0:
            prefix = prefixes.increasing[degree - 1]
        elif degree < 0:
            prefix = prefixes.decreasing[-degree - 1]

    return " ".join(part for part in (fmt % (scaled,), prefix, unit) if part)


def format_duration(seconds: float, parts: int = 4) -> str:
    """Render a second count as its most significant non-zero parts.

    ``format_duration(3725, parts=2)`` gives ``"1 hr 2 min"``.  Zero and
    negative durations render as an empty string.
    """
    if seconds < 0:
        return ""
    total = math.floor(seconds)

    rendered: list[str] = []
    for unit, size in DURATION_UNITS:
        if len(rendered) >= parts:
            break
        amount, total = divmod(total, size)
        if amount > 0:
            rendered.append(f"{amount} {unit}")

    return " ".join(rendered)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError(f"expected a positive integer, got {value}")
    return value


def _format_string(raw: str) -> str:
    # Raises TypeError/ValueError for strings that cannot format a number.
    raw % (0.0,)
    return raw


@dataclass(frozen=True, slots=True)
class FormatterSpec:
    """A registered formatter and how to convert its template arguments.

    Attributes:
        name: Name used in templates.
        func: Formatting function taking the value then the arguments.
        arg_types: Converters for each positional template argument; also
            bounds the number of accepted arguments.
    """

    name: str
    func: Callable[..., str]
    arg_types: tuple[Callable[[str], object], ...] = ()


class FormatterRegistry:
    """Named, pluggable value formatters."""

    def __init__(self) -> None:
        self._specs: dict[str, FormatterSpec] = {}

    @classmethod
    def default(cls, prefixes: SiPrefixes | None = None) -> FormatterRegistry:
        """Registry with the built-in ``s``, ``si`` and ``t`` formatters."""
        registry = cls()
        registry.register(FormatterSpec("s", format_fixed, (_format_string,)))
        registry.register(
            FormatterSpec(
                "si",
                functools.partial(format_si, prefixes=prefixes or SiPrefixes()),
                (str, _format_string),
            )
        )
        registry.register(FormatterSpec("t", format_duration, (_positive_int,)))
        return registry

    def register(self, spec: FormatterSpec) -> None:
        """Add or replace a formatter."""
        self._specs[spec.name] = spec

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def names(self) -> list[str]:
        """Registered formatter names, sorted."""
        return sorted(self._specs)

    def bind(self, name: str, args: Sequence[str] = ()) -> BoundFormatter:
        """Resolve *name* and convert *args* once, at template load time.

        Raises:
            ConfigurationError: Unknown formatter, too many arguments, or an
                argument of the wrong shape.
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ConfigurationError(
                f"unknown formatter '{name}' (available: {', '.join(self.names())})"
            )
        if len(args) > len(spec.arg_types):
            raise ConfigurationError(
                f"formatter '{name}' accepts at most {len(spec.arg_types)} "
                f"argument(s), got {len(args)}: {list(args)}"
            )
        converted: list[object] = []
        for convert, raw in zip(spec.arg_types, args):
            try:
                converted.append(convert(raw))
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"invalid argument '{raw}' for formatter '{name}': {exc}"
                ) from exc
        func = spec.func

        def _bound(value: object) -> str:
            return func(value, *converted)

        return _bound

    def format(self, name: str, value: object, *args: str) -> str:
        """Format *value* with the formatter *name* and template *args*."""
        return self.bind(name, args)(value)

"""
Numeric field extraction from multi-line device status text.

Text-parsed devices do not expose their readings as numbers; instead their
sensor interface returns a list of human-readable status lines such as::

    "Stored EU: §a1 275 992 701§r"
    "§a1 199 934§r EU / §e1 232 768§r EU"
    "32 768 EU/t"

A :class:`FieldRule` names the line and a regular expression whose first
group isolates the value.  Every non-digit character of the captured text is
then dropped (digit-group separators, colour codes) and the remainder parsed
as an integer.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from powermon.src.errors import ExtractionError

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Location of one numeric field inside device status text.

    Attributes:
        line: 1-based index of the status line holding the value.
        pattern: Regular expression searched in that line; its first
            capture group is the raw value text.
        description: Free-text description of the field.
    """

    line: int
    pattern: str
    description: str = ""
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.line < 1:
            raise ValueError(f"FieldRule line must be >= 1 (got {self.line})")
        compiled = re.compile(self.pattern)
        if compiled.groups < 1:
            raise ValueError(
                f"FieldRule pattern '{self.pattern}' must contain a capture group"
            )
        # frozen=True requires object.__setattr__
        object.__setattr__(self, "regex", compiled)


def extract_field(lines: Sequence[str], rule: FieldRule) -> int:
    """Extract the numeric value *rule* designates from *lines*.

    Args:
        lines: Status text lines as returned by the device, first line
            at index 0.
        rule: Line number and pattern to apply.

    Returns:
        The parsed integer value.

    Raises:
        ExtractionError: The line does not exist, the pattern does not
            match, or no digits are left after cleaning.
    """
    if rule.line > len(lines):
        raise ExtractionError(
            f"status line {rule.line} out of range ({len(lines)} lines)",
            line=rule.line,
        )

    text = lines[rule.line - 1]
    if not isinstance(text, str):
        raise ExtractionError(
            f"status line {rule.line} is not text ({type(text).__name__})",
            line=rule.line,
        )

    match = rule.regex.search(text)
    if match is None or match.group(1) is None:
        raise ExtractionError(
            f"pattern '{rule.pattern}' did not match status line {rule.line}: {text!r}",
            line=rule.line,
        )

    cleaned = _NON_DIGITS.sub("", match.group(1))
    if not cleaned:
        raise ExtractionError(
            f"no digits in '{match.group(1)}' on status line {rule.line}",
            line=rule.line,
        )
    return int(cleaned)

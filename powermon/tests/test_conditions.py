"""
Unit tests for template condition expressions.

Tests verify:
- Comparisons, boolean operators and arithmetic over record fields.
- The ``~=`` inequality alias.
- Every construct outside the whitelist is rejected at load time, as is
  arithmetic on string literals.
- Arithmetic on text fields fails at render time.
- Missing fields and type errors surface as TemplateError at render time.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from powermon.src.conditions import Condition
from powermon.src.errors import ConfigurationError, TemplateError

RECORD = {"percent": 50.0, "charge": 6.0, "name": "LSC", "left": 4}


class TestEvaluate:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("percent>=99.9", False),
            ("percent<99.9 and charge>0", True),
            ("(percent<99.9 and charge<0)", False),
            ("percent==0 or charge==6", True),
            ("not charge", False),
            ("charge ~= 0", True),
            ("charge != 6", False),
            ("0 < percent < 100", True),
            ("0 < percent < 10", False),
            ("percent % 2 == 0", True),
            ("-charge < 0", True),
            ("percent / 2 + 1 == 26", True),
            ("name == 'LSC'", True),
            ("true", True),
            ("false or left", True),
        ],
    )
    def test_expressions(self, source: str, expected: bool) -> None:
        assert Condition(source).evaluate(RECORD) is expected

    def test_short_circuit_skips_missing_field(self) -> None:
        assert Condition("charge==0 and missing>1").evaluate(RECORD) is False
        assert Condition("charge>0 or missing>1").evaluate(RECORD) is True

    def test_record_field_shadows_literal_name(self) -> None:
        assert Condition("true").evaluate({"true": 0}) is False

    def test_fields(self) -> None:
        condition = Condition("(percent<99.9 and charge>0) or true")
        assert condition.fields == frozenset({"percent", "charge"})


class TestRejected:
    @pytest.mark.parametrize(
        "source",
        [
            "__import__('os')",
            "record.percent",
            "percent[0]",
            "[x for x in percent]",
            "lambda: 1",
            "percent ** 2",
            "percent // 2",
            "percent in (1, 2)",
            "percent is None",
            "None",
            "b'x' == percent",
            "(percent := 1)",
            "percent if charge else 0",
            "{1: 2}",
            "'x' * 1000000000 == name",
            "name == 'ab' + 'c'",
        ],
    )
    def test_unsupported_construct(self, source: str) -> None:
        with pytest.raises(ConfigurationError):
            Condition(source)

    @pytest.mark.parametrize("source", ["", "   ", "percent >", "and"])
    def test_syntax_errors(self, source: str) -> None:
        with pytest.raises(ConfigurationError):
            Condition(source)


class TestRuntimeErrors:
    def test_undefined_field(self) -> None:
        with pytest.raises(TemplateError, match="undefined field 'missing'"):
            Condition("missing > 1").evaluate(RECORD)

    def test_type_error(self) -> None:
        with pytest.raises(TemplateError, match="cannot evaluate"):
            Condition("name < 1").evaluate(RECORD)

    def test_division_by_zero(self) -> None:
        with pytest.raises(TemplateError, match="cannot evaluate"):
            Condition("percent / 0 > 1").evaluate(RECORD)

    @pytest.mark.parametrize("source", ["name * 3 == 'x'", "name + name == 'x'", "3 * name == 'x'"])
    def test_arithmetic_on_text_field(self, source: str) -> None:
        with pytest.raises(TemplateError, match="arithmetic needs numbers"):
            Condition(source).evaluate(RECORD)

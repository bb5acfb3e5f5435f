from __future__ import annotations

import math

import pytest

from app.core.errors import ValidationError
from app.core.validation import (
    EachOneOf,
    EmailFormat,
    FloatRange,
    IntRange,
    OneOf,
    PhoneFormat,
    StrLength,
    ensure_valid,
    validate,
)

RULES = {
    "limit": IntRange(minimum=1, maximum=100, required=True),
    "score": FloatRange(minimum=0.0, maximum=1.0),
    "name": StrLength(minimum=1, maximum=5),
    "kind": OneOf(frozenset({"a", "b"})),
    "kinds": EachOneOf(frozenset({"a", "b"})),
    "email": EmailFormat(),
    "phone": PhoneFormat(),
}


def test_valid_values_pass() -> None:
    result = validate(
        {"limit": 10, "score": 0.5, "name": "Ada", "kind": "a", "kinds": ["a", "b"], "email": "a@b.io"},
        RULES,
    )

    assert result.ok


def test_optional_values_may_be_missing_but_required_ones_may_not() -> None:
    result = validate({}, RULES)

    assert result.errors == [{"field": "limit", "error": "is required"}]


def test_each_rule_reports_its_field() -> None:
    result = validate(
        {
            "limit": True,
            "score": math.nan,
            "name": "  Too long name  ",
            "kind": "c",
            "kinds": "a",
            "email": "missing-at.io",
            "phone": "12",
        },
        RULES,
    )

    assert [item["field"] for item in result.errors] == ["limit", "score", "name", "kind", "kinds", "email", "phone"]


def test_phone_digit_count_is_bounded() -> None:
    assert PhoneFormat().check("+1 (415) 555-0100") is None
    assert PhoneFormat().check("+1 234 567 890 123 456") == "must contain 7 to 15 digits"


def test_ensure_valid_raises_with_details() -> None:
    with pytest.raises(ValidationError) as exc_info:
        ensure_valid({"limit": 0}, RULES, "Invalid query")

    assert exc_info.value.message == "Invalid query: limit must be >= 1"
    assert exc_info.value.details == [{"field": "limit", "error": "must be >= 1"}]

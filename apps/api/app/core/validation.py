from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9 ().\-]{7,24}$")


@dataclass(frozen=True)
class IntRange:
    minimum: int | None = None
    maximum: int | None = None
    required: bool = False

    def check(self, value: Any) -> str | None:
        if isinstance(value, bool) or not isinstance(value, int):
            return "must be an integer"
        if self.minimum is not None and value < self.minimum:
            return f"must be >= {self.minimum}"
        if self.maximum is not None and value > self.maximum:
            return f"must be <= {self.maximum}"
        return None


@dataclass(frozen=True)
class FloatRange:
    minimum: float | None = None
    maximum: float | None = None
    required: bool = False

    def check(self, value: Any) -> str | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "must be a number"
        if not math.isfinite(value):
            return "must be finite"
        if self.minimum is not None and value < self.minimum:
            return f"must be >= {self.minimum}"
        if self.maximum is not None and value > self.maximum:
            return f"must be <= {self.maximum}"
        return None


@dataclass(frozen=True)
class StrLength:
    minimum: int = 0
    maximum: int | None = None
    required: bool = False

    def check(self, value: Any) -> str | None:
        if not isinstance(value, str):
            return "must be a string"
        length = len(value.strip())
        if length < self.minimum:
            return f"must be at least {self.minimum} characters"
        if self.maximum is not None and length > self.maximum:
            return f"must be at most {self.maximum} characters"
        return None


@dataclass(frozen=True)
class OneOf:
    choices: frozenset[str]
    required: bool = False

    def check(self, value: Any) -> str | None:
        if value not in self.choices:
            return f"must be one of {sorted(self.choices)}"
        return None


@dataclass(frozen=True)
class EachOneOf:
    choices: frozenset[str]
    required: bool = False

    def check(self, value: Any) -> str | None:
        if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
            return "must be a list"
        unknown = sorted({str(item) for item in value if item not in self.choices})
        if unknown:
            return f"contains unknown values {unknown}"
        return None


@dataclass(frozen=True)
class EmailFormat:
    required: bool = False

    def check(self, value: Any) -> str | None:
        if not isinstance(value, str) or not _EMAIL_RE.match(value.strip()):
            return "must be a valid email address"
        return None


@dataclass(frozen=True)
class PhoneFormat:
    required: bool = False

    def check(self, value: Any) -> str | None:
        if not isinstance(value, str) or not _PHONE_RE.match(value.strip()):
            return "must be a valid phone number"
        digits = re.sub(r"\D", "", value)
        if not 7 <= len(digits) <= 15:
            return "must contain 7 to 15 digits"
        return None


Rule = IntRange | FloatRange | StrLength | OneOf | EachOneOf | EmailFormat | PhoneFormat


@dataclass
class ValidationResult:
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def validate(values: Mapping[str, Any], rules: Mapping[str, Rule]) -> ValidationResult:
    result = ValidationResult()
    for name, rule in rules.items():
        value = values.get(name)
        if value is None or (isinstance(value, str) and not value.strip() and not isinstance(rule, StrLength)):
            if rule.required:
                result.errors.append({"field": name, "error": "is required"})
            continue
        problem = rule.check(value)
        if problem:
            result.errors.append({"field": name, "error": problem})
    return result


def ensure_valid(values: Mapping[str, Any], rules: Mapping[str, Rule], message: str = "Invalid input") -> None:
    result = validate(values, rules)
    if not result.ok:
        summary = "; ".join(f"{item['field']} {item['error']}" for item in result.errors)
        raise ValidationError(f"{message}: {summary}", details=result.errors)

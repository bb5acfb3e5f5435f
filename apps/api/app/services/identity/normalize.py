from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D+")
_NON_ALPHA = re.compile(r"[^a-z]+")


def normalize_email(value: str | None) -> str | None:
    normalized = (value or "").strip().lower()
    return normalized or None


def normalize_phone(value: str | None) -> str | None:
    digits = _NON_DIGITS.sub("", value or "")
    return digits or None


def email_parts(normalized_email: str | None) -> tuple[str, str]:
    if not normalized_email or "@" not in normalized_email:
        return normalized_email or "", ""
    local, domain = normalized_email.rsplit("@", 1)
    return local, domain


def name_key(first_name: str | None, last_name: str | None, prefix_len: int) -> str:
    source = last_name if (last_name or "").strip() else first_name
    letters = _NON_ALPHA.sub("", (source or "").lower())
    return letters[:prefix_len]


def blocking_key(
    first_name: str | None,
    last_name: str | None,
    normalized_email: str | None,
    prefix_len: int,
) -> str | None:
    key = name_key(first_name, last_name, prefix_len)
    _, domain = email_parts(normalized_email)
    if not key and not domain:
        return None
    return f"{key}|{domain}"


def phone_suffix(normalized_phone: str | None, length: int) -> str:
    if not normalized_phone:
        return ""
    return normalized_phone[-length:]

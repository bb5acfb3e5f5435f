from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RequestContext:
    """Everything a core operation may touch: the tenant, the store session and the clock."""

    owner_id: str
    db: Session
    now: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.now = as_utc(self.now)

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from app.core.config import Settings, get_settings
from app.core.context import as_utc
from app.core.errors import ComputationError, ValidationError
from app.core.types import InteractionType

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class StrengthSnapshot:
    raw: float
    effective: float
    elapsed_days: float | None
    overdue_days: float
    decay: float


def clamp_strength(value: float, settings: Settings | None = None) -> float:
    settings = settings or get_settings()
    if not math.isfinite(value):
        raise ComputationError("Relationship strength is not a finite number")
    return max(settings.strength_min, min(settings.strength_max, value))


def interaction_boost(interaction_type: InteractionType, settings: Settings | None = None) -> float:
    settings = settings or get_settings()
    match interaction_type:
        case InteractionType.MEETING:
            return settings.strength_boost_meeting
        case InteractionType.CALL:
            return settings.strength_boost_call
        case InteractionType.EMAIL:
            return settings.strength_boost_email
        case InteractionType.LINKEDIN | InteractionType.WHATSAPP | InteractionType.OTHER:
            return settings.strength_boost_other


def elapsed_days(last_contact_date: datetime | None, now: datetime) -> float | None:
    if last_contact_date is None:
        return None
    return max(0.0, (as_utc(now) - as_utc(last_contact_date)).total_seconds() / SECONDS_PER_DAY)


def compute_effective_strength(
    raw_strength: float,
    last_contact_date: datetime | None,
    contact_frequency_days: int,
    now: datetime,
    settings: Settings | None = None,
) -> StrengthSnapshot:
    """Decayed strength as a pure function of the stored facts.

    No decay while `elapsed <= frequency`; past that the loss is linear in the number of
    missed cadences: `k * (elapsed - frequency) / frequency`. A contact that was never
    contacted keeps its raw value.
    """
    settings = settings or get_settings()
    if contact_frequency_days < 1:
        raise ValidationError("contact_frequency_days must be >= 1")
    raw = clamp_strength(raw_strength, settings)
    elapsed = elapsed_days(last_contact_date, now)
    if elapsed is None or elapsed <= contact_frequency_days:
        return StrengthSnapshot(raw=raw, effective=raw, elapsed_days=elapsed, overdue_days=0.0, decay=0.0)

    overdue = elapsed - contact_frequency_days
    decay = settings.strength_decay_k * overdue / contact_frequency_days
    effective = clamp_strength(raw - decay, settings)
    return StrengthSnapshot(raw=raw, effective=effective, elapsed_days=elapsed, overdue_days=overdue, decay=decay)


def apply_boost(
    raw_strength: float,
    last_contact_date: datetime | None,
    contact_frequency_days: int,
    boost: float,
    now: datetime,
    settings: Settings | None = None,
) -> float:
    """New raw strength after an interaction at `now`: decayed value plus the boost, clamped."""
    settings = settings or get_settings()
    if not math.isfinite(boost) or boost < 0:
        raise ValidationError("boost must be a non-negative finite number")
    snapshot = compute_effective_strength(raw_strength, last_contact_date, contact_frequency_days, now, settings)
    return clamp_strength(snapshot.effective + boost, settings)


def relationship_label(strength: float) -> str:
    if strength >= 8:
        return "strong"
    if strength >= 5:
        return "moderate"
    if strength >= 3:
        return "weak"
    return "cold"

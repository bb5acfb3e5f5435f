from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import get_settings
from app.core.errors import ComputationError, ValidationError
from app.core.types import InteractionType
from app.services.scoring.priority_score import compute_urgency_score
from app.services.scoring.relationship_score import (
    apply_boost,
    clamp_strength,
    compute_effective_strength,
    interaction_boost,
    relationship_label,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_decay_after_two_missed_cadences_halves_strong_relationship() -> None:
    snapshot = compute_effective_strength(8.0, NOW - timedelta(days=90), 30, NOW)

    assert snapshot.effective == pytest.approx(4.0)
    assert snapshot.overdue_days == pytest.approx(60.0)
    assert snapshot.raw == 8.0


def test_no_decay_within_cadence() -> None:
    snapshot = compute_effective_strength(6.5, NOW - timedelta(days=30), 30, NOW)

    assert snapshot.effective == 6.5
    assert snapshot.decay == 0.0


def test_never_contacted_keeps_raw_strength() -> None:
    snapshot = compute_effective_strength(5.0, None, 30, NOW)

    assert snapshot.effective == 5.0
    assert snapshot.elapsed_days is None


def test_decay_is_idempotent_for_same_inputs() -> None:
    last_contact = NOW - timedelta(days=75)
    first = compute_effective_strength(7.0, last_contact, 30, NOW)
    second = compute_effective_strength(7.0, last_contact, 30, NOW)

    assert first == second


def test_decay_never_drops_below_floor() -> None:
    snapshot = compute_effective_strength(3.0, NOW - timedelta(days=3650), 7, NOW)

    assert snapshot.effective == 1.0


def test_boost_is_clamped_to_ceiling() -> None:
    raw = 9.8
    for _ in range(5):
        raw = apply_boost(raw, NOW - timedelta(days=1), 30, interaction_boost(InteractionType.MEETING), NOW)

    assert raw == 10.0


def test_boost_applies_on_top_of_decayed_value() -> None:
    new_raw = apply_boost(8.0, NOW - timedelta(days=90), 30, 1.5, NOW)

    assert new_raw == pytest.approx(5.5)


def test_strength_stays_in_range_for_any_history() -> None:
    settings = get_settings()
    for raw in (1.0, 4.2, 10.0):
        for days in (0, 10, 31, 200, 5000):
            for frequency in (1, 7, 30, 365):
                value = compute_effective_strength(raw, NOW - timedelta(days=days), frequency, NOW).effective
                assert settings.strength_min <= value <= settings.strength_max
                boosted = apply_boost(raw, NOW - timedelta(days=days), frequency, 1.5, NOW)
                assert settings.strength_min <= boosted <= settings.strength_max


def test_non_finite_strength_is_a_computation_error() -> None:
    with pytest.raises(ComputationError):
        clamp_strength(math.nan)
    with pytest.raises(ComputationError):
        compute_effective_strength(math.inf, NOW - timedelta(days=40), 30, NOW)


def test_non_positive_frequency_is_rejected() -> None:
    with pytest.raises(ValidationError):
        compute_effective_strength(5.0, NOW - timedelta(days=40), 0, NOW)


def test_interaction_weights_follow_settings() -> None:
    assert interaction_boost(InteractionType.MEETING) == 1.5
    assert interaction_boost(InteractionType.CALL) == 1.0
    assert interaction_boost(InteractionType.EMAIL) == 0.5
    assert interaction_boost(InteractionType.WHATSAPP) == 0.25


def test_relationship_labels() -> None:
    assert relationship_label(9.0) == "strong"
    assert relationship_label(5.0) == "moderate"
    assert relationship_label(3.5) == "weak"
    assert relationship_label(1.0) == "cold"


def test_urgency_rises_as_strength_falls() -> None:
    weak, _ = compute_urgency_score(0.8, 2.0, 0.0, 1)
    strong, components = compute_urgency_score(0.8, 9.0, 0.0, 1)

    assert weak > strong
    assert 0.0 <= strong <= 100.0
    assert set(components) == {"severity", "strength", "recency"}


def test_urgency_decreases_with_detection_age() -> None:
    fresh, _ = compute_urgency_score(0.5, 5.0, 0.0, 7)
    stale, _ = compute_urgency_score(0.5, 5.0, 10.0, 7)

    assert fresh > stale

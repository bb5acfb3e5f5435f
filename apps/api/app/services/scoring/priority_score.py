from __future__ import annotations

import math

from app.core.config import Settings, get_settings
from app.core.errors import ComputationError


def compute_urgency_score(
    severity: float,
    effective_strength: float,
    detection_age_days: float,
    window_days: int,
    settings: Settings | None = None,
) -> tuple[float, dict]:
    settings = settings or get_settings()
    if not all(math.isfinite(value) for value in (severity, effective_strength, detection_age_days)):
        raise ComputationError("Urgency inputs must be finite")

    severity_component = max(0.0, min(1.0, severity))
    span = settings.strength_max - settings.strength_min
    weakness = (settings.strength_max - effective_strength) / span if span > 0 else 0.0
    strength_component = max(0.0, min(1.0, weakness))
    recency_component = max(0.0, 1.0 - max(detection_age_days, 0.0) / max(window_days, 1))

    total = 100.0 * (
        settings.urgency_weight_severity * severity_component
        + settings.urgency_weight_strength * strength_component
        + settings.urgency_weight_recency * recency_component
    )
    total = max(0.0, min(100.0, total))
    components = {
        "severity": round(severity_component, 4),
        "strength": round(strength_component, 4),
        "recency": round(recency_component, 4),
    }
    return round(total, 2), components

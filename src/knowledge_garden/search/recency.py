"""Recency decay."""

import math
from datetime import datetime

from knowledge_garden.utils import ensure_timezone_aware

RECENCY_TAU_SECONDS = 30 * 24 * 60 * 60


def recency_score(age_seconds: float | None, tau_seconds: float = RECENCY_TAU_SECONDS) -> float:
    """exp(-age / tau); future timestamps count as age zero, unknown age scores 0."""
    if age_seconds is None:
        return 0.0
    return math.exp(-max(0.0, float(age_seconds)) / tau_seconds)


def age_seconds(reference: datetime, timestamp: datetime | None) -> int | None:
    if timestamp is None:
        return None
    delta = ensure_timezone_aware(reference) - ensure_timezone_aware(timestamp)
    return max(0, int(delta.total_seconds()))

"""Quality tier classification for normalized scores."""

from __future__ import annotations

from typing import Tuple

from .models import Tier

# Inclusive lower bounds, best first.
TIER_THRESHOLDS: Tuple[Tuple[float, Tier], ...] = (
    (75.0, Tier.BEST),
    (50.0, Tier.SECOND),
    (25.0, Tier.THIRD),
)


def classify(normalized: float) -> Tier:
    """Return the tier for a score already within 0-100."""

    for threshold, tier in TIER_THRESHOLDS:
        if normalized >= threshold:
            return tier
    return Tier.BELOW


__all__ = ["TIER_THRESHOLDS", "classify"]

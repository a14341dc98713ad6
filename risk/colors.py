"""Risk score -> marker color mapping.

Scores are drawn on a green (low) to red (high) hue ramp inside the domain of
the active mode. Anything below the active threshold, or without a score for
the active mode, is drawn in a fixed neutral gray.
"""

from __future__ import annotations

import math
from typing import Dict, NamedTuple, Tuple

from .models import HslColor, RiskMode

# Ordinal class ranges delivered by the hazard source.
RISK_DOMAINS: Dict[str, Tuple[float, float]] = {
    "water": (1, 6),
    "wind": (25, 38),
}

NEUTRAL_GRAY = HslColor(0, 0, 60)

HUE_LOW = 120.0  # green
HUE_HIGH = 0.0  # red
SATURATION = 80
LIGHTNESS = 50


class RiskColor(NamedTuple):
    color: HslColor
    below_threshold: bool


def domain_for(mode: RiskMode) -> Tuple[float, float]:
    try:
        return RISK_DOMAINS[mode]
    except KeyError:
        raise ValueError(f"Unknown risk mode: {mode!r}") from None


def _is_missing(score) -> bool:
    if score is None:
        return True
    try:
        return math.isnan(score)
    except TypeError:
        return True


def normalize(score: float, mode: RiskMode) -> float:
    min_val, max_val = domain_for(mode)
    clamped = max(min_val, min(max_val, score))
    span = max_val - min_val
    if span == 0:
        return 0.0
    return (clamped - min_val) / span


def hue_for(score: float, mode: RiskMode) -> float:
    t = normalize(score, mode)
    return HUE_LOW * (1 - t)


def color_for(score: float | None, mode: RiskMode, threshold: float) -> RiskColor:
    """Return the marker color and below-threshold flag for ``score``.

    Total over ``None``/NaN and any real number; never raises for a known mode.
    """
    if _is_missing(score):
        return RiskColor(NEUTRAL_GRAY, True)

    if score < threshold:
        return RiskColor(NEUTRAL_GRAY, True)

    return RiskColor(HslColor(hue_for(score, mode), SATURATION, LIGHTNESS), False)


def legend_stops(mode: RiskMode, steps: int = 5) -> list[tuple[float, HslColor]]:
    """Evenly spaced (score, color) pairs across the domain, for legends."""
    min_val, max_val = domain_for(mode)
    stops = []
    for i in range(steps):
        score = min_val + (max_val - min_val) * i / max(steps - 1, 1)
        stops.append((score, HslColor(hue_for(score, mode), SATURATION, LIGHTNESS)))
    return stops

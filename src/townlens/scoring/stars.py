"""Five-level star ratings from national percentiles."""

import math
from typing import Mapping, Sequence

from townlens.core.types import IndicatorStars

# (minimum percentile, stars), highest band first
STAR_BANDS = ((80, 5), (60, 4), (40, 3), (20, 2), (0, 1))

STAR_LABELS = {
    5: "とても良い",
    4: "良い",
    3: "普通",
    2: "やや低い",
    1: "要注意",
}

NEUTRAL_STARS = 3.0


def percentile_to_stars(percentile: float) -> int:
    clamped = max(0.0, min(100.0, percentile))
    for minimum, stars in STAR_BANDS:
        if clamped >= minimum:
            return stars
    return 1


def composite_stars(
    indicator_stars: Sequence[IndicatorStars],
    weights: Mapping[str, float],
) -> float:
    """Weighted mean of indicator stars, one decimal.

    Indicators missing from ``weights`` count with weight 1. A zero total
    weight gives the neutral 3.0.
    """
    weighted = 0.0
    total = 0.0
    for item in indicator_stars:
        weight = weights.get(item.indicator_id, 1.0)
        weighted += item.stars * weight
        total += weight
    if total == 0:
        return NEUTRAL_STARS
    return round(weighted / total, 1)


def star_text(stars: float) -> str:
    """Rendered stars, e.g. 3.7 -> "★★★★☆"."""
    full = math.floor(max(1.0, min(5.0, stars)) + 0.5)
    return "★" * full + "☆" * (5 - full)


def star_label(stars: int) -> str:
    return STAR_LABELS[stars]

"""Percentile baselines: within the candidate set and against national estimates."""

from typing import Sequence

from townlens.core.types import IndicatorDefinition
from townlens.utils import usage_percentage

NO_BASELINE_PERCENTILE = 50.0

# [p20, p40, p60, p80] of the raw value across roughly 1,700 municipalities
# (2020 census and related statistics). Estimates, ascending.
NATIONAL_BREAKPOINTS: dict[str, tuple[float, float, float, float]] = {
    "population_total": (15_000, 50_000, 120_000, 300_000),
    "kids_ratio": (9.0, 10.5, 12.0, 13.5),
    "condo_price_median": (800, 1_500, 2_500, 4_000),
    "crime_rate": (2.0, 4.0, 6.0, 9.0),
    "elementary_schools_per_capita": (0.5, 1.0, 1.5, 2.5),
    "junior_high_schools_per_capita": (0.25, 0.5, 0.8, 1.2),
    "hospitals_per_capita": (3, 5, 7, 10),
    "clinics_per_capita": (40, 55, 70, 90),
}


def candidate_percentile(
    value: float | None,
    population: Sequence[float],
    definition: IndicatorDefinition,
) -> float | None:
    """Percentile rank of ``value`` among ``population``: (below + equal/2) / n.

    Absent values have no percentile. Lower-is-better indicators are flipped.
    """
    if value is None:
        return None
    below = sum(1 for v in population if v < value)
    equal = sum(1 for v in population if v == value)
    percentile = usage_percentage(below + 0.5 * equal, len(population))
    if not definition.higher_is_better:
        percentile = 100 - percentile
    return round(percentile, 1)


def _raw_national_percentile(value: float, breakpoints: tuple[float, float, float, float]) -> float:
    p20, _, _, p80 = breakpoints

    if value <= p20:
        # Below p20: interpolate from an assumed floor of p20 / 2.
        floor = p20 * 0.5
        span = p20 - floor
        return max(0.0, (value - floor) / span * 20) if span > 0 else 10.0

    if value >= p80:
        # Above p80: interpolate to an assumed ceiling of p80 * 1.5.
        ceiling = p80 * 1.5
        span = ceiling - p80
        return min(100.0, 80 + (value - p80) / span * 20) if span > 0 else 90.0

    for i, (lo, hi) in enumerate(zip(breakpoints, breakpoints[1:])):
        if value <= hi:
            low_pct = 20 * (i + 1)
            return low_pct + (value - lo) / (hi - lo) * 20 if hi > lo else float(low_pct)
    return NO_BASELINE_PERCENTILE


def national_percentile(value: float, indicator_id: str, higher_is_better: bool = True) -> float:
    """Estimated national percentile (0-100) of a raw value.

    Indicators without national breakpoints sit at the median.
    """
    breakpoints = NATIONAL_BREAKPOINTS.get(indicator_id)
    if breakpoints is None:
        return NO_BASELINE_PERCENTILE
    percentile = _raw_national_percentile(value, breakpoints)
    if not higher_is_better:
        percentile = 100 - percentile
    return round(percentile, 1)

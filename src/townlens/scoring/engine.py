"""Scoring engine: raw observations → per-city choice, category and overall scores.

Pure and deterministic. Iteration follows the order of ``definitions`` and
of the municipality codes, so identical inputs give identical outputs
(confidence also depends on the current year).
"""

import logging
from typing import Iterable, Sequence

from townlens.core.types import (
    BaselineScore,
    Category,
    ChoiceScore,
    CityScoreResult,
    IndicatorDefinition,
    IndicatorStars,
    RawObservation,
    WeightPreset,
)
from townlens.scoring.baseline import candidate_percentile, national_percentile
from townlens.scoring.confidence import evaluate_confidence
from townlens.scoring.normalize import normalize_within_candidates
from townlens.scoring.stars import composite_stars, percentile_to_stars
from townlens.utils import usage_percentage

logger = logging.getLogger(__name__)


def _mean(values: Iterable[float]) -> float | None:
    values = list(values)
    return sum(values) / len(values) if values else None


def weighted_overall(
    category_averages: dict[Category, float | None],
    preset: WeightPreset,
) -> float | None:
    """Preset-weighted mean over categories that have a score, one decimal."""
    total = 0.0
    weight_sum = 0.0
    for category, average in category_averages.items():
        weight = preset.weights.get(category, 0.0)
        if average is None or weight <= 0:
            continue
        total += average * weight
        weight_sum += weight
    if weight_sum == 0:
        return None
    return round(total / weight_sum, 1)


def score_cities(
    observations: Sequence[RawObservation],
    definitions: Sequence[IndicatorDefinition],
    preset: WeightPreset,
    municipality_codes: Sequence[str] | None = None,
) -> list[CityScoreResult]:
    """Score each municipality against the others.

    Besides the choice, category and overall scores, every result carries the
    candidate-set percentile per indicator, star ratings against national
    breakpoints, a data-confidence level and notes on missing indicators.

    Args:
        observations: one value (or None) per municipality and indicator id.
        definitions: indicators to score, in display order.
        preset: category weights for the overall score and composite stars.
        municipality_codes: result order; defaults to first appearance in
            ``observations``. Codes with no observations get all-absent scores.
    """
    if municipality_codes is None:
        municipality_codes = list(dict.fromkeys(o.municipality_code for o in observations))

    lookup: dict[tuple[str, str], RawObservation] = {}
    for obs in observations:
        lookup[(obs.municipality_code, obs.indicator_id)] = obs

    def value_of(code: str, indicator_id: str) -> float | None:
        obs = lookup.get((code, indicator_id))
        return obs.value if obs is not None else None

    per_indicator: dict[str, dict[str, float | None]] = {}
    populations: dict[str, list[float]] = {}
    for definition in definitions:
        values = {code: value_of(code, definition.id) for code in municipality_codes}
        per_indicator[definition.id] = normalize_within_candidates(values, definition)
        populations[definition.id] = [v for v in values.values() if v is not None]

    star_weights = {d.id: preset.weights.get(d.category, 0.0) for d in definitions}
    categories = list(dict.fromkeys(d.category for d in definitions))
    results = []
    for code in municipality_codes:
        choice = tuple(
            ChoiceScore(indicator_id=d.id, score=per_indicator[d.id][code])
            for d in definitions
        )
        averages: dict[Category, float | None] = {}
        availability: dict[Category, bool] = {}
        for category in categories:
            scores = [
                c.score for c, d in zip(choice, definitions)
                if d.category is category and c.score is not None
            ]
            averages[category] = _mean(scores)
            availability[category] = bool(scores)

        overall = weighted_overall(averages, preset)
        if overall is None:
            logger.info("No scorable indicators for %s", code, extra={"municipality": code})

        baseline = tuple(
            BaselineScore(
                indicator_id=d.id,
                percentile=candidate_percentile(value_of(code, d.id), populations[d.id], d),
                population_size=len(populations[d.id]),
            )
            for d in definitions
        )
        indicator_stars = []
        for d in definitions:
            value = value_of(code, d.id)
            if value is None:
                continue
            pct = national_percentile(value, d.id, d.higher_is_better)
            indicator_stars.append(IndicatorStars(d.id, percentile_to_stars(pct), pct))
        star_rating = composite_stars(indicator_stars, star_weights) if indicator_stars else None

        total = len(definitions)
        missing = sum(1 for d in definitions if value_of(code, d.id) is None)
        years = [
            lookup[(code, d.id)].data_year for d in definitions
            if value_of(code, d.id) is not None and lookup[(code, d.id)].data_year
        ]
        missing_rate = usage_percentage(missing, total) / 100 if total else 1.0
        confidence = evaluate_confidence(max(years) if years else None, missing_rate)
        notes = (f"{total}指標中{missing}件のデータが欠損",) if missing else ()

        results.append(CityScoreResult(
            municipality_code=code,
            choice=choice,
            category_averages=averages,
            overall=overall,
            data_availability=availability,
            baseline=baseline,
            indicator_stars=tuple(indicator_stars),
            star_rating=star_rating,
            confidence=confidence,
            notes=notes,
        ))
    return results

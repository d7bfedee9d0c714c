"""Scoring and ranking."""

from townlens.scoring.baseline import candidate_percentile, national_percentile
from townlens.scoring.confidence import evaluate_confidence
from townlens.scoring.engine import score_cities
from townlens.scoring.normalize import normalize_within_candidates
from townlens.scoring.ranking import rank_cities
from townlens.scoring.stars import composite_stars, percentile_to_stars, star_text

__all__ = [
    "candidate_percentile",
    "composite_stars",
    "evaluate_confidence",
    "national_percentile",
    "normalize_within_candidates",
    "percentile_to_stars",
    "rank_cities",
    "score_cities",
    "star_text",
]

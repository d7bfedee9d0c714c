"""Min-max normalization within the compared municipalities."""

from typing import Mapping

from townlens.core.types import IndicatorDefinition

SINGLE_CANDIDATE_SCORE = 100.0
FLAT_RANGE_SCORE = 50.0


def normalize_within_candidates(
    values: Mapping[str, float | None],
    definition: IndicatorDefinition,
) -> dict[str, float | None]:
    """Scale each municipality's value to [0, 100] among the candidates.

    Absent values stay absent and do not move the min/max. One present value
    scores 100; identical present values score 50. When lower is better the
    scale is flipped.
    """
    present = [v for v in values.values() if v is not None]
    if not present:
        return {code: None for code in values}

    lo, hi = min(present), max(present)
    span = hi - lo
    scores: dict[str, float | None] = {}
    for code, value in values.items():
        if value is None:
            scores[code] = None
        elif len(present) == 1:
            scores[code] = SINGLE_CANDIDATE_SCORE
        elif span == 0:
            scores[code] = FLAT_RANGE_SCORE
        else:
            scaled = (value - lo) / span * 100
            scores[code] = scaled if definition.higher_is_better else 100 - scaled
    return scores

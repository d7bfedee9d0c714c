"""Ranking: order scored municipalities by overall score."""

from typing import Callable, Mapping, Sequence

from townlens.catalog import readings
from townlens.core.types import CityScoreResult, RankingEntry


def rank_cities(
    results: Sequence[CityScoreResult],
    names: Mapping[str, str] | Callable[[str], str] | None = None,
) -> list[RankingEntry]:
    """Ranks 1..n by overall score descending, ties broken by code ascending.

    Municipalities without an overall score are left out.
    """
    if names is None:
        lookup = readings.display_name
    elif callable(names):
        lookup = names
    else:
        lookup = lambda code: names.get(code, code)  # noqa: E731

    scored = [r for r in results if r.overall is not None]
    scored.sort(key=lambda r: (-r.overall, r.municipality_code))
    return [
        RankingEntry(
            rank=i,
            municipality_code=r.municipality_code,
            city_name=lookup(r.municipality_code),
            overall_score=r.overall,
        )
        for i, r in enumerate(scored, start=1)
    ]

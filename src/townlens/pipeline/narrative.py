"""Japanese report narrative built from scores and ranking.

Rule-based: the top city and its lead over second place, then strengths and
weaknesses per city from choice scores, then notes on missing data.
"""

from typing import Sequence

from townlens.catalog import readings
from townlens.core.types import (
    Category,
    CityScoreResult,
    IndicatorDefinition,
    RankingEntry,
    WeightPreset,
)

STRONG_THRESHOLD = 70.0
WEAK_THRESHOLD = 30.0
CLOSE_GAP = 5.0
LARGE_GAP = 20.0

CATEGORY_LABELS: dict[Category, str] = {
    Category.CHILDCARE: "子育て",
    Category.PRICE: "住宅価格",
    Category.SAFETY: "安全",
    Category.EDUCATION: "教育",
    Category.HEALTHCARE: "医療",
    Category.TRANSPORT: "交通",
}


def _lead_sentence(ranking: Sequence[RankingEntry], preset: WeightPreset) -> list[str]:
    top = ranking[0]
    lines = [f"{preset.label}の総合評価では{top.city_name}が{top.overall_score:.1f}点で1位です。"]
    if len(ranking) < 2:
        return lines
    second = ranking[1]
    gap = top.overall_score - second.overall_score
    if gap <= CLOSE_GAP:
        lines.append(f"2位の{second.city_name}との差は{gap:.1f}点で、ほぼ互角です。")
    elif gap >= LARGE_GAP:
        lines.append(f"2位の{second.city_name}に{gap:.1f}点の大差をつけています。")
    else:
        lines.append(f"2位は{second.city_name}（{second.overall_score:.1f}点）です。")
    return lines


def _city_sentence(entry: RankingEntry, result: CityScoreResult, definitions: Sequence[IndicatorDefinition]) -> str:
    strengths = []
    weaknesses = []
    for definition in definitions:
        score = result.choice_score(definition.id)
        if score is None:
            continue
        if score >= STRONG_THRESHOLD:
            strengths.append(definition.label)
        elif score <= WEAK_THRESHOLD:
            weaknesses.append(definition.label)

    sentence = f"{entry.city_name}（{entry.rank}位・{entry.overall_score:.1f}点）"
    details = []
    if strengths:
        details.append("強み: " + "、".join(strengths))
    if weaknesses:
        details.append("弱み: " + "、".join(weaknesses))
    if not details:
        return sentence + "は各指標とも平均的な水準です。"
    return sentence + " " + " / ".join(details)


def build_narrative(
    results: Sequence[CityScoreResult],
    ranking: Sequence[RankingEntry],
    definitions: Sequence[IndicatorDefinition],
    preset: WeightPreset,
    missing_categories: Sequence[Category] = (),
) -> list[str]:
    if not ranking:
        return ["比較に必要なデータが取得できませんでした。"]

    lines = _lead_sentence(ranking, preset)
    by_code = {r.municipality_code: r for r in results}
    for entry in ranking:
        lines.append(_city_sentence(entry, by_code[entry.municipality_code], definitions))

    ranked = {e.municipality_code for e in ranking}
    for result in results:
        if result.municipality_code not in ranked:
            name = readings.display_name(result.municipality_code)
            lines.append(f"{name}は評価に必要なデータが取得できなかったため、順位から除外しました。")

    for category in missing_categories:
        lines.append(f"{CATEGORY_LABELS[category]}のデータはいずれの自治体でも取得できませんでした。")

    for result in results:
        if result.municipality_code not in ranked:
            continue
        gaps = [
            CATEGORY_LABELS[c] for c, available in result.data_availability.items()
            if not available and c not in missing_categories
        ]
        if gaps:
            name = readings.display_name(result.municipality_code)
            lines.append(f"{name}は{'、'.join(gaps)}のデータが欠けています。")
    return lines

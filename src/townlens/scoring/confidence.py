"""Three-level data confidence from data age, missing rate and sample size.

HIGH: data at most 2 years old, under 10% missing, and at least 30 samples.
MEDIUM: data at most 4 years old and under 30% missing.
LOW: anything else. The reason string names what fell short.
"""

from datetime import date

from townlens.core.types import ConfidenceLevel, ConfidenceResult

MIN_SAMPLE_COUNT = 30


def _years_old(data_year: str | None, current_year: int) -> int | None:
    try:
        return current_year - int(str(data_year)[:4])
    except (TypeError, ValueError):
        return None


def evaluate_confidence(
    data_year: str | None,
    missing_rate: float,
    sample_count: int | None = None,
    current_year: int | None = None,
) -> ConfidenceResult:
    current_year = current_year or date.today().year
    age = _years_old(data_year, current_year)
    year_label = data_year or "不明"
    missing_pct = f"{missing_rate * 100:.0f}%"
    sufficient_sample = sample_count is not None and sample_count >= MIN_SAMPLE_COUNT

    if age is not None and age <= 2 and missing_rate < 0.1 and sufficient_sample:
        return ConfidenceResult(
            ConfidenceLevel.HIGH,
            f"データ年: {year_label}（{age}年前）、欠損率: {missing_pct}、サンプル数: {sample_count}",
        )
    if age is not None and age <= 4 and missing_rate < 0.3:
        return ConfidenceResult(
            ConfidenceLevel.MEDIUM,
            f"データ年: {year_label}（{age}年前）、欠損率: {missing_pct}",
        )

    reasons = []
    if age is None:
        reasons.append("データ年が不明")
    elif age > 4:
        reasons.append(f"データが{age}年前")
    if missing_rate >= 0.3:
        reasons.append(f"欠損率が{missing_pct}")
    if sample_count is not None and not sufficient_sample:
        reasons.append(f"サンプル数が{sample_count}件")
    return ConfidenceResult(
        ConfidenceLevel.LOW,
        "、".join(reasons) or "信頼度評価の条件を満たしません",
    )

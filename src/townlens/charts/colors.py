"""Chart palette."""

from townlens.core.types import Category

SCORE_GREEN = "#10b981"
SCORE_AMBER = "#f59e0b"
SCORE_ROSE = "#f43f5e"

TRACK_GRAY = "#e5e7eb"
GRID_GRAY = "#f3f4f6"
TEXT_DARK = "#374151"
TEXT_MUTED = "#6b7280"

HIGH_SCORE_THRESHOLD = 70.0
MID_SCORE_THRESHOLD = 40.0

CATEGORY_COLORS: dict[Category, str] = {
    Category.CHILDCARE: "#10b981",
    Category.PRICE: "#3b82f6",
    Category.SAFETY: "#8b5cf6",
    Category.EDUCATION: "#f59e0b",
    Category.HEALTHCARE: "#ef4444",
    Category.TRANSPORT: "#06b6d4",
}

# Assigned to municipalities in request order
CITY_COLORS = ("#6366f1", "#ec4899", "#14b8a6", "#f97316", "#84cc16")


def score_color(score: float) -> str:
    if score >= HIGH_SCORE_THRESHOLD:
        return SCORE_GREEN
    if score >= MID_SCORE_THRESHOLD:
        return SCORE_AMBER
    return SCORE_ROSE


def city_color(index: int) -> str:
    return CITY_COLORS[index % len(CITY_COLORS)]

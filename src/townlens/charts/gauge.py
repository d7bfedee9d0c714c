"""Semicircular score gauge SVG."""

import math
from dataclasses import dataclass

from townlens.charts.colors import TEXT_DARK, TEXT_MUTED, TRACK_GRAY, score_color
from townlens.utils import escape_xml

STROKE_WIDTH = 10


@dataclass(frozen=True)
class GaugeArc:
    score: float
    half_circumference: float
    dash_array: str
    dash_offset: float


def clamp_score(score: float) -> float:
    return max(0.0, min(100.0, score))


def calculate_arc(score: float, radius: float) -> GaugeArc:
    """Dash pattern that fills ``score``% of a half circle of ``radius``."""
    clamped = clamp_score(score)
    half = math.pi * radius
    return GaugeArc(
        score=clamped,
        half_circumference=half,
        dash_array=f"{half} {half}",
        dash_offset=half * (1 - clamped / 100),
    )


def render_score_gauge(
    score: float,
    label: str | None = None,
    rank: int | None = None,
    total_cities: int | None = None,
    size: int = 120,
) -> str:
    clamped = clamp_score(score)
    radius = (size - STROKE_WIDTH) / 2
    cx = size / 2
    cy = size / 2
    arc = calculate_arc(clamped, radius)
    color = score_color(clamped)

    extra = (16 if label else 0) + (16 if rank is not None and total_cities is not None else 0)
    height = size / 2 + 24 + extra
    path = f"M {cx - radius:.1f} {cy:.1f} A {radius:.1f} {radius:.1f} 0 0 1 {cx + radius:.1f} {cy:.1f}"

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{height:.0f}" '
        f'viewBox="0 0 {size} {height:.0f}">',
        f'<path d="{path}" fill="none" stroke="{TRACK_GRAY}" stroke-width="{STROKE_WIDTH}" '
        f'stroke-linecap="round"/>',
        f'<path d="{path}" fill="none" stroke="{color}" stroke-width="{STROKE_WIDTH}" '
        f'stroke-linecap="round" stroke-dasharray="{arc.dash_array}" '
        f'stroke-dashoffset="{arc.dash_offset}"/>',
        f'<text x="{cx:.1f}" y="{cy - 4:.1f}" text-anchor="middle" font-size="22" '
        f'font-weight="bold" fill="{TEXT_DARK}">{clamped:.1f}</text>',
    ]
    y = cy + 16
    if label:
        parts.append(
            f'<text x="{cx:.1f}" y="{y:.1f}" text-anchor="middle" font-size="12" '
            f'fill="{TEXT_DARK}">{escape_xml(label)}</text>'
        )
        y += 16
    if rank is not None and total_cities is not None:
        parts.append(
            f'<text x="{cx:.1f}" y="{y:.1f}" text-anchor="middle" font-size="11" '
            f'fill="{TEXT_MUTED}">{rank}位 / {total_cities}都市</text>'
        )
    parts.append("</svg>")
    return "".join(parts)

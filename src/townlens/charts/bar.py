"""Horizontal bar chart SVG."""

from typing import Sequence

from townlens.charts.colors import GRID_GRAY, TEXT_DARK, TEXT_MUTED, TRACK_GRAY
from townlens.core.types import BarChartItem
from townlens.utils import escape_xml

GRID_STEPS = (0.25, 0.5, 0.75, 1.0)


def render_horizontal_bar_chart(
    items: Sequence[BarChartItem],
    show_values: bool = True,
    width: int = 480,
    bar_height: int = 22,
    gap: int = 10,
    label_width: int = 100,
) -> str:
    """One bar per item, scaled to the largest value. Empty input renders ""."""
    if not items:
        return ""

    bar_area = width - label_width - 60
    total_height = len(items) * (bar_height + gap) + 8
    max_value = max(item.value for item in items)

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{total_height}" '
        f'viewBox="0 0 {width} {total_height}">'
    ]

    for step in GRID_STEPS:
        x = label_width + bar_area * step
        parts.append(
            f'<line x1="{x:.1f}" y1="0" x2="{x:.1f}" y2="{total_height - 4}" '
            f'stroke="{GRID_GRAY}" stroke-width="1"/>'
        )

    for i, item in enumerate(items):
        y = i * (bar_height + gap) + 4
        ratio = item.value / max_value if max_value > 0 else 0.0
        bar_width = max(0.0, min(ratio, 1.0)) * bar_area
        text_y = y + bar_height / 2

        parts.append(
            f'<text x="{label_width - 8}" y="{text_y:.1f}" text-anchor="end" '
            f'dominant-baseline="central" font-size="12" fill="{TEXT_DARK}">{escape_xml(item.label)}</text>'
        )
        parts.append(
            f'<rect x="{label_width}" y="{y}" width="{bar_area}" height="{bar_height}" '
            f'rx="4" fill="{TRACK_GRAY}"/>'
        )
        parts.append(
            f'<rect x="{label_width}" y="{y}" width="{bar_width:.1f}" height="{bar_height}" '
            f'rx="4" fill="{item.color}"/>'
        )
        if show_values:
            parts.append(
                f'<text x="{label_width + bar_area + 8}" y="{text_y:.1f}" '
                f'dominant-baseline="central" font-size="12" fill="{TEXT_MUTED}">{item.value:.1f}</text>'
            )

    parts.append("</svg>")
    return "".join(parts)

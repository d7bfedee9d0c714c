"""SVG chart renderers. Pure functions: inputs in, markup out."""

from townlens.charts.bar import render_horizontal_bar_chart
from townlens.charts.colors import score_color
from townlens.charts.gauge import calculate_arc, render_score_gauge

__all__ = ["calculate_arc", "render_horizontal_bar_chart", "render_score_gauge", "score_color"]

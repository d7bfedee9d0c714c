"""Tests for the SVG chart renderers."""

import math

import pytest

from townlens.charts.bar import render_horizontal_bar_chart
from townlens.charts.colors import SCORE_AMBER, SCORE_GREEN, SCORE_ROSE, city_color, score_color
from townlens.charts.gauge import calculate_arc, render_score_gauge
from townlens.core.types import BarChartItem


def _item(label, value, color="#000000"):
    return BarChartItem(label=label, value=value, color=color)


class TestBarChart:
    def test_empty_renders_nothing(self):
        assert render_horizontal_bar_chart([]) == ""

    def test_one_bar_per_item(self):
        svg = render_horizontal_bar_chart([_item("新宿区", 70.0), _item("渋谷区", 35.0)])
        assert svg.startswith("<svg")
        assert svg.endswith("</svg>")
        assert "新宿区" in svg
        assert "渋谷区" in svg
        assert ">70.0<" in svg
        assert ">35.0<" in svg

    def test_bars_proportional_to_largest_value(self):
        # default width 480 - label 100 - 60 = 320px of bar area
        svg = render_horizontal_bar_chart([_item("a", 50.0), _item("b", 100.0)])
        assert 'width="320.0"' in svg
        assert 'width="160.0"' in svg

    def test_labels_escaped(self):
        svg = render_horizontal_bar_chart([_item("A&B <x>", 1.0)])
        assert "A&amp;B &lt;x&gt;" in svg
        assert "<x>" not in svg

    def test_values_hidden(self):
        svg = render_horizontal_bar_chart([_item("a", 12.34), _item("b", 5.0)], show_values=False)
        assert svg.count("<text") == 2
        assert "12.3" not in svg

    def test_value_formatted_one_decimal(self):
        assert ">12.3<" in render_horizontal_bar_chart([_item("a", 12.34)])

    def test_height_grows_with_items(self):
        svg = render_horizontal_bar_chart([_item("a", 1.0)] * 3)
        assert 'height="104"' in svg

    def test_all_zero_values(self):
        svg = render_horizontal_bar_chart([_item("a", 0.0), _item("b", 0.0)])
        assert 'width="0.0"' in svg


class TestGaugeArc:
    def test_half_score(self):
        arc = calculate_arc(50, 50)
        half = math.pi * 50
        assert arc.dash_array == f"{half} {half}"
        assert arc.dash_offset == pytest.approx(half / 2)

    def test_clamped_high(self):
        arc = calculate_arc(150, 40)
        assert arc.score == 100
        assert arc.dash_offset == pytest.approx(0)

    def test_clamped_low(self):
        arc = calculate_arc(-10, 40)
        assert arc.score == 0
        assert arc.dash_offset == pytest.approx(math.pi * 40)


class TestScoreColor:
    @pytest.mark.parametrize("score,color", [
        (100, SCORE_GREEN),
        (70, SCORE_GREEN),
        (69.9, SCORE_AMBER),
        (40, SCORE_AMBER),
        (39.9, SCORE_ROSE),
        (0, SCORE_ROSE),
    ])
    def test_thresholds(self, score, color):
        assert score_color(score) == color

    def test_city_colors_cycle(self):
        assert city_color(0) == city_color(5)


class TestScoreGauge:
    def test_score_text(self):
        assert ">72.5<" in render_score_gauge(72.46)

    def test_clamped_text(self):
        assert ">100.0<" in render_score_gauge(123.4)

    def test_color_follows_score(self):
        assert SCORE_ROSE in render_score_gauge(12.0)
        assert SCORE_GREEN in render_score_gauge(88.0)

    def test_label_and_rank(self):
        svg = render_score_gauge(55.0, label="新宿区 & 周辺", rank=1, total_cities=3)
        assert "新宿区 &amp; 周辺" in svg
        assert "1位 / 3都市" in svg

    def test_rank_needs_total(self):
        assert "位" not in render_score_gauge(55.0, rank=1)

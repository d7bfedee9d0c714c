"""Tests for the townlens CLI."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from townlens.cli import main
from townlens.core.errors import UpstreamError, ValidationError
from townlens.core.types import RawObservation
from townlens.pipeline.report import ReportPipeline


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


def _sample_result():
    estat = AsyncMock()

    async def fetch(dataset, code):
        population = {"13104": 350_000.0, "13113": 230_000.0}[code]
        return [
            RawObservation(code, "total", population),
            RawObservation(code, "kids", population / 10),
        ]

    estat.fetch.side_effect = fetch
    return asyncio.run(ReportPipeline(estat).run(["13104", "13113"], "childcare"))


class TestLookup:
    def test_by_reading(self, capsys):
        assert _exit_code(["lookup", "しんじゅくく"]) == 0
        assert "13104" in capsys.readouterr().out

    def test_unknown(self, capsys):
        assert _exit_code(["lookup", "ふめいし"]) == 1
        assert "No municipality" in capsys.readouterr().out


class TestNearby:
    def test_lists_neighbours(self, capsys):
        assert _exit_code(["nearby", "13104", "--radius", "5"]) == 0
        out = capsys.readouterr().out
        assert "渋谷区" in out
        assert "km" in out

    def test_unknown_code(self):
        assert _exit_code(["nearby", "99999"]) == 1


class TestReport:
    def test_prints_ranking_and_writes_charts(self, capsys, tmp_path):
        result = _sample_result()
        with patch("townlens.pipeline.report.run_pipeline", new=AsyncMock(return_value=result)):
            code = _exit_code(["report", "13104", "13113", "--out", str(tmp_path)])

        assert code == 0
        out = capsys.readouterr().out
        assert "1. 新宿区" in out
        assert "★" in out
        assert "confidence" in out
        assert (tmp_path / "overall.svg").read_text(encoding="utf-8").startswith("<svg")
        assert (tmp_path / "gauge_13104.svg").exists()

    def test_validation_error_exit_code(self, capsys):
        with patch("townlens.pipeline.report.run_pipeline",
                   new=AsyncMock(side_effect=ValidationError("bad codes", hints=["try lookup"]))):
            assert _exit_code(["report", "13104"]) == 2
        err = capsys.readouterr().err
        assert "bad codes" in err
        assert "try lookup" in err

    def test_upstream_error_exit_code(self):
        with patch("townlens.pipeline.report.run_pipeline",
                   new=AsyncMock(side_effect=UpstreamError("down", retryable=True))):
            assert _exit_code(["report", "13104", "13113"]) == 1

    def test_options_forwarded(self):
        result = _sample_result()
        mock_run = AsyncMock(return_value=result)
        with patch("townlens.pipeline.report.run_pipeline", new=mock_run):
            _exit_code(["report", "13104", "13113", "--preset", "safety", "--no-price", "--strict"])

        args, _ = mock_run.call_args
        assert args[0] == ["13104", "13113"]
        assert args[1] == "safety"
        assert args[2].include_price is False
        assert args[2].strict is True

"""Tests for the report pipeline orchestrator."""

import asyncio
from unittest.mock import ANY, AsyncMock, MagicMock, patch

import httpx
import pytest

from townlens.catalog.datasets import INDICATORS, POPULATION
from townlens.core.errors import (
    ConfigurationError,
    PartialDataError,
    SelectorError,
    UpstreamError,
    ValidationError,
)
from townlens.core.types import (
    Category,
    FetchOutcome,
    FetchTask,
    PipelineOptions,
    PipelineState,
    RawObservation,
)
from townlens.pipeline.report import (
    ReportPipeline,
    derive_observations,
    per_capita,
    run_pipeline,
    validate_request,
)
from townlens.retrieval.cache import ResponseCache
from townlens.retrieval.estat import EstatClient
from townlens.retrieval.reinfo import CONDO_TYPE_LABEL, ReinfoClient

CODES = ["13104", "13113", "14101"]

ESTAT_DATA = {
    "population": {
        "13104": {"total": 350_000, "kids": 35_000},
        "13113": {"total": 230_000, "kids": 23_000},
        "14101": {"total": 290_000, "kids": 40_600},
    },
    "crime": {
        "13104": {"crime_total": 7_000},
        "13113": {"crime_total": 4_600},
        "14101": {"crime_total": 2_900},
    },
    "education": {
        "13104": {"elementary_schools": 30, "junior_high_schools": 10},
        "13113": {"elementary_schools": 20, "junior_high_schools": 8},
        "14101": {"elementary_schools": 29, "junior_high_schools": 14},
    },
    "healthcare": {
        "13104": {"hospitals": 35, "clinics": 700},
        "13113": {"hospitals": 23, "clinics": 460},
        "14101": {"hospitals": 29, "clinics": 580},
    },
    "transport": {
        "13104": {"stations": 35},
        "13113": {"stations": 23},
        "14101": {"stations": 14},
    },
}

PRICES = {"13104": 8000.0, "13113": 9000.0, "14101": 4000.0}

FULL_HISTORY = [
    PipelineState.PENDING,
    PipelineState.FETCHING,
    PipelineState.SCORING,
    PipelineState.RANKING,
    PipelineState.RENDERING,
    PipelineState.COMPLETED,
]


def _observations(code, values):
    return [RawObservation(municipality_code=code, indicator_id=k, value=float(v)) for k, v in values.items()]


def _fake_estat(fail=None):
    """EstatClient stand-in. ``fail(dataset, code)`` may return an exception to raise."""
    estat = MagicMock(spec=EstatClient)

    async def fetch(dataset, code):
        if fail is not None:
            exc = fail(dataset, code)
            if exc is not None:
                raise exc
        return _observations(code, ESTAT_DATA[dataset][code])

    estat.fetch = AsyncMock(side_effect=fetch)
    return estat


def _fake_reinfo(fail=None):
    reinfo = MagicMock()

    async def fetch_price(code, year=None):
        if fail is not None and code in fail:
            raise UpstreamError("reinfolib returned HTTP 503", source="reinfolib", retryable=True)
        return [RawObservation(municipality_code=code, indicator_id="median", value=PRICES[code])]

    reinfo.fetch_price = AsyncMock(side_effect=fetch_price)
    return reinfo


class TestValidateRequest:
    @pytest.mark.parametrize("codes", [
        ["13104"],
        ["13101", "13102", "13103", "13104", "13105", "13106"],
        ["13104", "13104"],
        ["13104", "1311"],
        ["13104", "99999"],
        "13104",
    ])
    def test_rejects_bad_codes(self, codes):
        with pytest.raises(ValidationError):
            validate_request(codes, "childcare")

    def test_rejects_unknown_preset(self):
        with pytest.raises(ValidationError, match="Unknown preset"):
            validate_request(["13104", "13113"], "luxury")

    def test_accepts_valid_request(self):
        codes, preset = validate_request([" 13104", "13113"], "price")
        assert codes == ["13104", "13113"]
        assert preset.value == "price"


class TestDeriveObservations:
    def test_per_capita(self):
        assert per_capita(7_000, 350_000, 1_000) == pytest.approx(20.0)
        assert per_capita(7_000, None, 1_000) is None
        assert per_capita(None, 350_000, 1_000) is None
        assert per_capita(7_000, 0, 1_000) is None

    def test_per_capita_needs_population(self):
        crime = next(i for i in INDICATORS if i.id == "crime_rate")
        outcomes = [
            FetchOutcome(
                task=FetchTask("13104", crime.source_dataset),
                observations=_observations("13104", {"crime_total": 7_000}),
            ),
            FetchOutcome(task=FetchTask("13104", POPULATION), error=SelectorError("no data")),
        ]
        [obs] = derive_observations(outcomes, [crime], ["13104"])
        assert obs.value is None

    def test_rate_from_population_total(self):
        crime = next(i for i in INDICATORS if i.id == "crime_rate")
        outcomes = [
            FetchOutcome(task=FetchTask("13104", crime.source_dataset),
                         observations=_observations("13104", {"crime_total": 7_000})),
            FetchOutcome(task=FetchTask("13104", POPULATION),
                         observations=_observations("13104", {"total": 350_000, "kids": 35_000})),
        ]
        [obs] = derive_observations(outcomes, [crime], ["13104"])
        assert obs.value == pytest.approx(20.0)

    def test_data_year_carried_from_measure(self):
        crime = next(i for i in INDICATORS if i.id == "crime_rate")
        outcomes = [
            FetchOutcome(task=FetchTask("13104", crime.source_dataset),
                         observations=[RawObservation("13104", "crime_total", 7_000.0, data_year="2022")]),
            FetchOutcome(task=FetchTask("13104", POPULATION),
                         observations=[RawObservation("13104", "total", 350_000.0, data_year="2020")]),
        ]
        [obs] = derive_observations(outcomes, [crime], ["13104"])
        assert obs.data_year == "2022"


class TestReportPipeline:
    @pytest.mark.asyncio
    async def test_all_providers_succeed(self):
        pipeline = ReportPipeline(_fake_estat(), _fake_reinfo())
        result = await pipeline.run(CODES, "childcare")

        assert result.state is PipelineState.COMPLETED
        assert result.history == FULL_HISTORY
        assert [e.rank for e in result.ranking] == [1, 2, 3]
        scores = [e.overall_score for e in result.ranking]
        assert scores == sorted(scores, reverse=True)
        for r in result.results:
            assert all(r.data_availability.values())
            assert set(r.data_availability) == set(Category)
        assert result.partial_data is None
        assert "overall" in result.charts
        assert {f"gauge:{c}" for c in CODES} <= set(result.charts)
        assert "category:price" in result.charts
        assert result.narrative

    @pytest.mark.asyncio
    async def test_fetch_fan_out(self):
        estat = _fake_estat()
        reinfo = _fake_reinfo()
        await ReportPipeline(estat, reinfo).run(CODES, "childcare")

        # 5 e-Stat datasets and 1 reinfolib dataset per municipality
        assert estat.fetch.await_count == 15
        assert reinfo.fetch_price.await_count == 3

    @pytest.mark.asyncio
    async def test_price_failure_for_one_city(self):
        pipeline = ReportPipeline(_fake_estat(), _fake_reinfo(fail={"13113"}))
        result = await pipeline.run(CODES, "childcare")

        shibuya = result.result_for("13113")
        assert shibuya.data_availability[Category.PRICE] is False
        assert result.result_for("13104").data_availability[Category.PRICE] is True
        assert len(result.ranking) == 3
        assert result.partial_data is None

    @pytest.mark.asyncio
    async def test_one_dataset_unreachable_for_second_city(self):
        def fail(dataset, code):
            if dataset == "crime" and code == "14101":
                return UpstreamError("e-Stat returned HTTP 503", retryable=True)
            return None

        result = await ReportPipeline(_fake_estat(fail=fail), _fake_reinfo()).run(["13104", "14101"], "childcare")

        assert result.state is PipelineState.COMPLETED
        shinjuku = result.result_for("13104")
        assert all(shinjuku.data_availability.values())
        assert shinjuku.overall is not None
        assert all(c.score is not None for c in shinjuku.choice)
        tsurumi = result.result_for("14101")
        assert tsurumi.data_availability[Category.SAFETY] is False
        assert tsurumi.overall is not None
        assert {e.municipality_code for e in result.ranking} == {"13104", "14101"}
        assert result.partial_data is None

    @pytest.mark.asyncio
    async def test_results_carry_stars_and_confidence(self):
        result = await ReportPipeline(_fake_estat(), _fake_reinfo()).run(CODES, "childcare")
        for r in result.results:
            assert 1.0 <= r.star_rating <= 5.0
            assert r.confidence is not None
            assert len(r.baseline) == len(result.definitions)
            assert r.notes == ()

    @pytest.mark.asyncio
    async def test_run_tagged_with_correlation_id(self):
        with patch("townlens.pipeline.report.set_tag") as mock_tag:
            await ReportPipeline(_fake_estat(), _fake_reinfo()).run(CODES, "childcare")
        mock_tag.assert_called_once_with("correlation_id", ANY)

    @pytest.mark.asyncio
    async def test_city_with_no_data_left_out_of_ranking(self):
        def fail(dataset, code):
            if code == "14101":
                return UpstreamError("e-Stat returned HTTP 503", retryable=True)
            return None

        pipeline = ReportPipeline(_fake_estat(fail=fail), _fake_reinfo(fail={"14101"}))
        result = await pipeline.run(CODES, "childcare")

        assert result.state is PipelineState.COMPLETED
        assert [e.municipality_code for e in result.ranking if e.municipality_code == "14101"] == []
        assert len(result.ranking) == 2
        assert result.result_for("14101").overall is None
        assert any("除外" in line for line in result.narrative)

    @pytest.mark.asyncio
    async def test_everything_fails(self):
        pipeline = ReportPipeline(
            _fake_estat(fail=lambda d, c: UpstreamError("down", retryable=True)),
            _fake_reinfo(fail=set(CODES)),
        )
        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.run(CODES, "childcare")

        assert exc_info.value.retryable is True
        assert pipeline.last_run.state is PipelineState.FAILED
        assert pipeline.last_run.history[-1] is PipelineState.FAILED

    @pytest.mark.asyncio
    async def test_validation_happens_before_fetch(self):
        estat = _fake_estat()
        with pytest.raises(ValidationError):
            await ReportPipeline(estat).run(["13104"], "childcare")
        estat.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_catalog_fails_run(self):
        estat = _fake_estat()
        pipeline = ReportPipeline(estat)
        with patch("townlens.pipeline.report.load_catalog", side_effect=ConfigurationError("bad catalog")):
            with pytest.raises(ConfigurationError):
                await pipeline.run(CODES, "childcare")
        assert pipeline.last_run.state is PipelineState.FAILED
        estat.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_category_missing_everywhere(self):
        def fail(dataset, code):
            return SelectorError("no data") if dataset == "transport" else None

        result = await ReportPipeline(_fake_estat(fail=fail), _fake_reinfo()).run(CODES, "safety")

        assert isinstance(result.partial_data, PartialDataError)
        assert result.partial_data.categories == [Category.TRANSPORT]
        assert result.state is PipelineState.COMPLETED
        assert "category:transport" not in result.charts

    @pytest.mark.asyncio
    async def test_strict_raises_partial_data(self):
        def fail(dataset, code):
            return SelectorError("no data") if dataset == "transport" else None

        pipeline = ReportPipeline(_fake_estat(fail=fail), _fake_reinfo())
        with pytest.raises(PartialDataError) as exc_info:
            await pipeline.run(CODES, "safety", PipelineOptions(strict=True))

        assert exc_info.value.categories == [Category.TRANSPORT]
        assert exc_info.value.result.state is PipelineState.COMPLETED

    @pytest.mark.asyncio
    async def test_without_reinfo_client_price_is_missing(self):
        result = await ReportPipeline(_fake_estat()).run(CODES, "price")
        assert result.partial_data.categories == [Category.PRICE]
        assert len(result.ranking) == 3

    @pytest.mark.asyncio
    async def test_options_limit_categories(self):
        estat = _fake_estat()
        options = PipelineOptions(
            include_price=False,
            include_safety=False,
            include_education=False,
            include_healthcare=False,
            include_transport=False,
        )
        result = await ReportPipeline(estat).run(CODES, "childcare", options)

        assert estat.fetch.await_count == 3
        assert set(result.results[0].data_availability) == {Category.CHILDCARE}
        assert result.partial_data is None

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        active = 0
        peak = 0
        estat = MagicMock(spec=EstatClient)

        async def fetch(dataset, code):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _observations(code, ESTAT_DATA[dataset][code])

        estat.fetch = AsyncMock(side_effect=fetch)
        await ReportPipeline(estat, max_concurrency=2).run(CODES, "childcare")
        assert peak == 2

    @pytest.mark.asyncio
    async def test_cancellation_propagates_to_fetches(self):
        started = asyncio.Event()
        cancelled = []
        estat = MagicMock(spec=EstatClient)

        async def fetch(dataset, code):
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append((dataset, code))
                raise

        estat.fetch = AsyncMock(side_effect=fetch)
        task = asyncio.create_task(ReportPipeline(estat, max_concurrency=3).run(CODES, "childcare"))
        await asyncio.wait_for(started.wait(), timeout=1)
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(cancelled) == 3

    @pytest.mark.asyncio
    async def test_deterministic_scores(self):
        first = await ReportPipeline(_fake_estat(), _fake_reinfo()).run(CODES, "childcare")
        second = await ReportPipeline(_fake_estat(), _fake_reinfo()).run(CODES, "childcare")
        assert first.results == second.results
        assert first.ranking == second.ranking


def _population_handler(calls):
    async def handler(request):
        area = request.url.params["cdArea"]
        calls.append(area)
        await asyncio.sleep(0.01)
        values = ESTAT_DATA["population"][area]
        return httpx.Response(200, json={"GET_STATS_DATA": {
            "RESULT": {"STATUS": 0},
            "STATISTICAL_DATA": {"DATA_INF": {"VALUE": [
                {"@area": area, "@cat01": "000", "@time": "2020000000", "$": str(values["total"])},
                {"@area": area, "@cat01": "001", "@time": "2020000000", "$": str(values["kids"])},
            ]}},
        }})
    return handler


class TestSharedCacheAcrossRuns:
    @pytest.mark.asyncio
    async def test_concurrent_runs_share_fetches(self):
        calls = []
        http = httpx.AsyncClient(transport=httpx.MockTransport(_population_handler(calls)))
        estat = EstatClient("app", http=http, cache=ResponseCache(), base_delay=0)
        options = PipelineOptions(
            include_price=False,
            include_safety=False,
            include_education=False,
            include_healthcare=False,
            include_transport=False,
        )
        pipeline = ReportPipeline(estat)

        first, second = await asyncio.gather(
            pipeline.run(["13104", "13113"], "childcare", options),
            pipeline.run(["13104", "13113"], "childcare", options),
        )

        assert sorted(calls) == ["13104", "13113"]
        assert first.ranking == second.ranking


CHILDCARE_ONLY = PipelineOptions(
    include_price=False,
    include_safety=False,
    include_education=False,
    include_healthcare=False,
    include_transport=False,
)


class TestMalformedPayloads:
    @pytest.mark.asyncio
    async def test_estat_shape_becomes_gap(self):
        population = _population_handler([])

        async def handler(request):
            if request.url.params["cdArea"] == "14101":
                return httpx.Response(200, json={"GET_STATS_DATA": ["maintenance"]})
            return await population(request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        estat = EstatClient("app", http=http, cache=ResponseCache(), base_delay=0)

        result = await ReportPipeline(estat).run(["13104", "14101"], "childcare", CHILDCARE_ONLY)

        assert result.state is PipelineState.COMPLETED
        assert result.result_for("13104").data_availability[Category.CHILDCARE] is True
        assert result.result_for("14101").data_availability[Category.CHILDCARE] is False
        assert [e.municipality_code for e in result.ranking] == ["13104"]

    @pytest.mark.asyncio
    async def test_reinfo_records_become_gap(self):
        def handler(request):
            if request.url.params["city"] == "14101":
                return httpx.Response(200, json={"status": "OK", "data": ["oops"]})
            return httpx.Response(200, json={"status": "OK", "data": [
                {"Type": CONDO_TYPE_LABEL, "TradePrice": "60000000"},
            ]})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        reinfo = ReinfoClient("secret", http=http, cache=ResponseCache(), base_delay=0)

        result = await ReportPipeline(_fake_estat(), reinfo).run(["13104", "14101"], "childcare")

        assert result.state is PipelineState.COMPLETED
        assert result.result_for("13104").data_availability[Category.PRICE] is True
        assert result.result_for("14101").data_availability[Category.PRICE] is False
        assert len(result.ranking) == 2


class TestRunPipeline:
    @pytest.mark.asyncio
    async def test_uses_injected_clients(self):
        result = await run_pipeline(CODES, "childcare", estat=_fake_estat(), reinfo=_fake_reinfo())
        assert len(result.ranking) == 3

    @pytest.mark.asyncio
    async def test_validation_before_client_creation(self):
        with patch("townlens.pipeline.report.EstatClient") as mock_client:
            with pytest.raises(ValidationError):
                await run_pipeline(["13104"], "childcare")
        mock_client.assert_not_called()

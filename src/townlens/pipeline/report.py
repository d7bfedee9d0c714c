"""Report pipeline: validate → fetch (fan-out) → score → rank → render.

Fetches for every (municipality, dataset) pair run concurrently under a
semaphore and are joined at a single ``asyncio.gather`` barrier before
scoring starts. Upstream and selector failures are absorbed per fetch and
show up as ``data_availability`` gaps; the run only fails when nothing at
all could be resolved, or when the catalog itself is invalid.
"""

import asyncio
import logging
import re
import time
from typing import Sequence

from townlens.catalog import readings
from townlens.catalog.datasets import (
    POPULATION,
    POPULATION_TOTAL,
    DatasetCatalog,
    load_catalog,
)
from townlens.charts.bar import render_horizontal_bar_chart
from townlens.charts.colors import city_color
from townlens.charts.gauge import render_score_gauge
from townlens.config import settings
from townlens.core.errors import (
    ConfigurationError,
    PartialDataError,
    SelectorError,
    UpstreamError,
    ValidationError,
)
from townlens.core.types import (
    BarChartItem,
    Category,
    ChartInputs,
    CityScoreResult,
    DatasetDefinition,
    FetchOutcome,
    FetchTask,
    GaugeInput,
    IndicatorDefinition,
    PipelineOptions,
    PipelineResult,
    PipelineState,
    Preset,
    Provider,
    RankingEntry,
    RawObservation,
)
from townlens.observability.logging import new_correlation_id
from townlens.observability.tracing import log_metrics, log_params, set_tag, start_run, start_span, trace
from townlens.pipeline.narrative import build_narrative
from townlens.retrieval.estat import EstatClient
from townlens.retrieval.reinfo import ReinfoClient
from townlens.scoring.engine import score_cities
from townlens.scoring.ranking import rank_cities

logger = logging.getLogger(__name__)

MIN_CITIES = 2
MAX_CITIES = 5
_CODE_PATTERN = re.compile(r"^\d{5}$")


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def validate_request(municipality_codes: Sequence[str], preset: Preset | str) -> tuple[list[str], Preset]:
    """Reject bad input before any fetch is issued."""
    if isinstance(municipality_codes, str):
        raise ValidationError("municipality_codes must be a list of codes, not a string")
    codes = [str(c).strip() for c in municipality_codes]

    if not MIN_CITIES <= len(codes) <= MAX_CITIES:
        raise ValidationError(
            f"Compare between {MIN_CITIES} and {MAX_CITIES} municipalities (got {len(codes)})"
        )
    bad = [c for c in codes if not _CODE_PATTERN.match(c)]
    if bad:
        raise ValidationError(f"Municipality codes must be 5 digits: {', '.join(bad)}")
    if len(set(codes)) != len(codes):
        raise ValidationError("Municipality codes must be unique")
    unknown = [c for c in codes if readings.get_by_code(c) is None]
    if unknown:
        raise ValidationError(
            f"Unknown municipality code(s): {', '.join(unknown)}",
            hints=["Use `townlens lookup NAME` to find a code"],
        )

    try:
        preset_name = Preset(preset)
    except ValueError:
        raise ValidationError(
            f"Unknown preset {preset!r}; choose one of {', '.join(p.value for p in Preset)}"
        ) from None
    return codes, preset_name


# ---------------------------------------------------------------------------
# Observation derivation
# ---------------------------------------------------------------------------

def per_capita(value: float | None, population: float | None, factor: float) -> float | None:
    if value is None or population is None or population <= 0:
        return None
    return value / population * factor


def derive_observations(
    outcomes: Sequence[FetchOutcome],
    definitions: Sequence[IndicatorDefinition],
    municipality_codes: Sequence[str],
) -> list[RawObservation]:
    """Turn per-dataset measurements into one observation per (city, indicator)."""
    measurements: dict[tuple[str, str], dict[str, RawObservation]] = {}
    for outcome in outcomes:
        if outcome.observations:
            measurements[(outcome.task.municipality_code, outcome.task.dataset.id)] = {
                o.indicator_id: o for o in outcome.observations
            }

    observations = []
    for code in municipality_codes:
        population = measurements.get((code, POPULATION.id), {}).get(POPULATION_TOTAL)
        for definition in definitions:
            raw = measurements.get((code, definition.source_dataset.id), {}).get(definition.measure)
            raw_value = raw.value if raw is not None else None
            if definition.per_population:
                value = per_capita(
                    raw_value,
                    population.value if population is not None else None,
                    definition.per_population,
                )
            else:
                value = raw_value
            observations.append(RawObservation(
                municipality_code=code,
                indicator_id=definition.id,
                value=value,
                data_year=raw.data_year if raw is not None and value is not None else None,
            ))
    return observations


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

def build_chart_inputs(
    results: Sequence[CityScoreResult],
    ranking: Sequence[RankingEntry],
    municipality_codes: Sequence[str],
) -> ChartInputs:
    colors = {code: city_color(i) for i, code in enumerate(municipality_codes)}
    inputs = ChartInputs()

    for entry in ranking:
        inputs.gauges.append(GaugeInput(
            municipality_code=entry.municipality_code,
            score=entry.overall_score,
            label=entry.city_name,
            rank=entry.rank,
            total_cities=len(ranking),
        ))
        inputs.overall_bars.append(BarChartItem(
            label=entry.city_name,
            value=entry.overall_score,
            color=colors[entry.municipality_code],
        ))

    for category in Category:
        items = []
        for result in results:
            average = result.category_averages.get(category)
            if average is None:
                continue
            items.append(BarChartItem(
                label=readings.display_name(result.municipality_code),
                value=round(average, 1),
                color=colors[result.municipality_code],
            ))
        if items:
            inputs.category_bars[category] = items
    return inputs


def render_charts(inputs: ChartInputs) -> dict[str, str]:
    charts = {"overall": render_horizontal_bar_chart(inputs.overall_bars)}
    for gauge in inputs.gauges:
        charts[f"gauge:{gauge.municipality_code}"] = render_score_gauge(
            gauge.score,
            label=gauge.label,
            rank=gauge.rank,
            total_cities=gauge.total_cities,
        )
    for category, items in inputs.category_bars.items():
        charts[f"category:{category.value}"] = render_horizontal_bar_chart(items)
    return charts


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class PipelineRun:
    """State of one run. ``history`` records every state entered, in order."""

    def __init__(self):
        self.state = PipelineState.PENDING
        self.history = [PipelineState.PENDING]

    def advance(self, state: PipelineState) -> None:
        logger.info("Pipeline %s -> %s", self.state.value, state.value, extra={"step": state.value})
        self.state = state
        self.history.append(state)


class ReportPipeline:
    """Runs comparison reports. Clients are injected; the cache behind them is shared."""

    def __init__(
        self,
        estat: EstatClient,
        reinfo: ReinfoClient | None = None,
        *,
        catalog: DatasetCatalog | None = None,
        max_concurrency: int | None = None,
    ):
        self._estat = estat
        self._reinfo = reinfo
        self._catalog = catalog
        self._max_concurrency = max_concurrency or settings.max_concurrent_fetches
        self.last_run: PipelineRun | None = None

    @trace(name="report_pipeline", span_type="CHAIN")
    async def run(
        self,
        municipality_codes: Sequence[str],
        preset: Preset | str,
        options: PipelineOptions | None = None,
    ) -> PipelineResult:
        """Fetch, score, rank and render a comparison of 2–5 municipalities.

        Raises:
            ValidationError: bad codes or preset (nothing fetched).
            ConfigurationError: the dataset catalog is invalid.
            UpstreamError: no indicator resolved for any municipality.
            PartialDataError: only with ``options.strict``, when a requested
                category has no data anywhere; carries the finished result.
        """
        run = PipelineRun()
        self.last_run = run
        cid = new_correlation_id()
        codes, preset_name = validate_request(municipality_codes, preset)
        options = options or PipelineOptions()

        try:
            catalog = self._catalog if self._catalog is not None else load_catalog()
        except ConfigurationError:
            run.advance(PipelineState.FAILED)
            raise

        weight_preset = catalog.preset(preset_name)
        categories = options.categories()
        definitions = catalog.indicators_for(categories)
        datasets = catalog.datasets_for(definitions)

        with start_run(run_name=f"report-{preset_name.value}-{cid}"):
            set_tag("correlation_id", cid)
            log_params({
                "preset": preset_name.value,
                "municipalities": ",".join(codes),
                "categories": ",".join(c.value for c in categories),
            })
            t0 = time.monotonic()

            run.advance(PipelineState.FETCHING)
            outcomes = await self._fetch_all(codes, datasets)
            observations = derive_observations(outcomes, definitions, codes)
            failures = [o for o in outcomes if not o.ok]

            if not any(o.value is not None for o in observations):
                run.advance(PipelineState.FAILED)
                raise UpstreamError(
                    "No indicator could be resolved for any municipality",
                    retryable=any(isinstance(o.error, UpstreamError) and o.error.retryable for o in failures),
                    hints=[str(o.error) for o in failures[:3]],
                )

            run.advance(PipelineState.SCORING)
            results = score_cities(observations, definitions, weight_preset, codes)

            run.advance(PipelineState.RANKING)
            ranking = rank_cities(results)

            run.advance(PipelineState.RENDERING)
            missing = [c for c in categories if not any(r.data_availability.get(c) for r in results)]
            chart_inputs = build_chart_inputs(results, ranking, codes)
            charts = render_charts(chart_inputs)
            narrative = build_narrative(results, ranking, definitions, weight_preset, missing)

            run.advance(PipelineState.COMPLETED)
            log_metrics({
                "fetch_tasks": len(outcomes),
                "fetch_failures": len(failures),
                "ranked": len(ranking),
                "missing_categories": len(missing),
                "duration_ms": round((time.monotonic() - t0) * 1000),
            })

        result = PipelineResult(
            preset=weight_preset,
            municipality_codes=codes,
            results=results,
            ranking=ranking,
            chart_inputs=chart_inputs,
            charts=charts,
            narrative=narrative,
            observations=observations,
            definitions=definitions,
            state=run.state,
            history=list(run.history),
        )
        if missing:
            logger.warning("No data for categories: %s", ", ".join(c.value for c in missing))
            result.partial_data = PartialDataError(missing, result=result)
            if options.strict:
                raise result.partial_data
        return result

    async def _fetch_all(self, codes: Sequence[str], datasets: Sequence[DatasetDefinition]) -> list[FetchOutcome]:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks = [FetchTask(municipality_code=code, dataset=ds) for code in codes for ds in datasets]
        with start_span(name="fetch_all") as span:
            span.set_inputs({"tasks": len(tasks), "concurrency": self._max_concurrency})
            outcomes = await asyncio.gather(*(self._execute(task, semaphore) for task in tasks))
            span.set_outputs({"failures": sum(1 for o in outcomes if not o.ok)})
        return list(outcomes)

    async def _execute(self, task: FetchTask, semaphore: asyncio.Semaphore) -> FetchOutcome:
        code = task.municipality_code
        dataset = task.dataset
        async with semaphore:
            t0 = time.monotonic()
            try:
                if dataset.provider is Provider.REINFO:
                    if self._reinfo is None:
                        logger.info("No reinfolib client; skipping %s for %s", dataset.id, code)
                        return FetchOutcome(task=task)
                    observations = await self._reinfo.fetch_price(code)
                else:
                    observations = await self._estat.fetch(dataset.id, code)
            except (UpstreamError, SelectorError) as exc:
                logger.warning(
                    "Fetch %s for %s failed: %s", dataset.id, code, exc,
                    extra={"dataset": dataset.id, "municipality": code},
                )
                return FetchOutcome(task=task, error=exc)

        logger.debug(
            "Fetched %s for %s", dataset.id, code,
            extra={"dataset": dataset.id, "municipality": code,
                   "duration_ms": round((time.monotonic() - t0) * 1000)},
        )
        return FetchOutcome(task=task, observations=observations)


async def run_pipeline(
    municipality_codes: Sequence[str],
    preset: Preset | str,
    options: PipelineOptions | None = None,
    *,
    estat: EstatClient | None = None,
    reinfo: ReinfoClient | None = None,
) -> PipelineResult:
    """Run one report. Clients not passed in are created from settings and closed afterwards.

    Without a reinfolib API key the price category is reported as missing.
    """
    validate_request(municipality_codes, preset)
    owned = []
    if estat is None:
        estat = EstatClient()
        owned.append(estat)
    if reinfo is None and settings.reinfolib_api_key:
        reinfo = ReinfoClient()
        owned.append(reinfo)
    try:
        return await ReportPipeline(estat, reinfo).run(municipality_codes, preset, options)
    finally:
        for client in owned:
            await client.aclose()

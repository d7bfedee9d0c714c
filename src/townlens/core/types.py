"""Domain types for the townlens municipality comparison pipeline.

All shared dataclasses and enums live here to prevent circular imports
and establish a single source of truth for the domain model. Every other
module imports from here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

class Category(str, Enum):
    """Scoring categories. Every indicator belongs to exactly one."""

    CHILDCARE = "childcare"
    PRICE = "price"
    SAFETY = "safety"
    EDUCATION = "education"
    HEALTHCARE = "healthcare"
    TRANSPORT = "transport"


class Preset(str, Enum):
    CHILDCARE = "childcare"
    PRICE = "price"
    SAFETY = "safety"


class Provider(str, Enum):
    ESTAT = "estat"
    REINFO = "reinfo"


class TtlClass(str, Enum):
    """How quickly a dataset changes upstream. Durations live in settings."""

    CENSUS = "census"
    ANNUAL = "annual"
    MARKET = "market"


class PipelineState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    SCORING = "scoring"
    RANKING = "ranking"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Catalog types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MunicipalityIdentity:
    """A municipality: 5-digit local-government code, display name, readings."""

    code: str
    display_name: str
    readings: tuple[str, ...]


REINFO_PRICE_MEASURES = ("median", "q25", "q75", "count")


@dataclass(frozen=True)
class DatasetDefinition:
    """A statistics table (or API endpoint) and the codes to pull from it.

    ``selectors`` maps a measure key to the provider-side code: the
    classification code for e-Stat tables, the request parameter for
    reinfolib endpoints.
    """

    id: str
    provider: Provider
    stats_source_id: str
    label: str
    selectors: Mapping[str, str]
    ttl_class: TtlClass
    class_id: str | None = None
    time_code: str | None = None

    @property
    def measures(self) -> tuple[str, ...]:
        if self.provider is Provider.REINFO:
            return REINFO_PRICE_MEASURES
        return tuple(self.selectors)


@dataclass(frozen=True)
class IndicatorDefinition:
    """A scored indicator derived from one measure of one dataset."""

    id: str
    label: str
    unit: str
    category: Category
    higher_is_better: bool
    source_dataset: DatasetDefinition
    measure: str
    per_population: float | None = None
    precision: int = 1


@dataclass(frozen=True)
class WeightPreset:
    """Category weights. A category with weight > 0 is required."""

    name: Preset
    label: str
    weights: Mapping[Category, float]

    @property
    def required_categories(self) -> tuple[Category, ...]:
        return tuple(c for c in Category if self.weights.get(c, 0.0) > 0)


# ---------------------------------------------------------------------------
# Observations and scores
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawObservation:
    """One value for one municipality. ``value=None`` means absent, not zero.

    ``data_year`` is the survey or transaction year the value was read from,
    when the provider reports one. It does not take part in equality.
    """

    municipality_code: str
    indicator_id: str
    value: float | None
    data_year: str | None = field(default=None, compare=False)


@dataclass(frozen=True)
class ChoiceScore:
    indicator_id: str
    score: float | None


@dataclass(frozen=True)
class BaselineScore:
    """Percentile rank of a raw value among the compared municipalities."""

    indicator_id: str
    percentile: float | None
    population_size: int


@dataclass(frozen=True)
class IndicatorStars:
    indicator_id: str
    stars: int
    national_percentile: float


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ConfidenceResult:
    level: ConfidenceLevel
    reason: str


@dataclass(frozen=True)
class CityScoreResult:
    municipality_code: str
    choice: tuple[ChoiceScore, ...]
    category_averages: Mapping[Category, float | None]
    overall: float | None
    data_availability: Mapping[Category, bool]
    baseline: tuple[BaselineScore, ...] = ()
    indicator_stars: tuple[IndicatorStars, ...] = ()
    star_rating: float | None = None
    confidence: ConfidenceResult | None = None
    notes: tuple[str, ...] = ()

    def choice_score(self, indicator_id: str) -> float | None:
        for c in self.choice:
            if c.indicator_id == indicator_id:
                return c.score
        return None


@dataclass(frozen=True)
class RankingEntry:
    rank: int
    municipality_code: str
    city_name: str
    overall_score: float


@dataclass
class CacheEntry:
    key: tuple[str, str]
    value: Any
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Location:
    lat: float
    lng: float


@dataclass(frozen=True)
class NearbyCity:
    municipality_code: str
    city_name: str
    distance_km: float


# ---------------------------------------------------------------------------
# Pipeline types
# ---------------------------------------------------------------------------

@dataclass
class PipelineOptions:
    """Which optional categories to fetch. Childcare is always included."""

    include_price: bool = True
    include_safety: bool = True
    include_education: bool = True
    include_healthcare: bool = True
    include_transport: bool = True
    strict: bool = False

    def categories(self) -> list[Category]:
        flags = {
            Category.PRICE: self.include_price,
            Category.SAFETY: self.include_safety,
            Category.EDUCATION: self.include_education,
            Category.HEALTHCARE: self.include_healthcare,
            Category.TRANSPORT: self.include_transport,
        }
        return [c for c in Category if c is Category.CHILDCARE or flags[c]]


@dataclass(frozen=True)
class FetchTask:
    municipality_code: str
    dataset: DatasetDefinition


@dataclass
class FetchOutcome:
    task: FetchTask
    observations: list[RawObservation] | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BarChartItem:
    label: str
    value: float
    color: str


@dataclass(frozen=True)
class GaugeInput:
    municipality_code: str
    score: float
    label: str | None = None
    rank: int | None = None
    total_cities: int | None = None


@dataclass
class ChartInputs:
    gauges: list[GaugeInput] = field(default_factory=list)
    overall_bars: list[BarChartItem] = field(default_factory=list)
    category_bars: dict[Category, list[BarChartItem]] = field(default_factory=dict)


@dataclass
class PipelineResult:
    """Everything a report needs. Persistence and PDF assembly happen elsewhere."""

    preset: WeightPreset
    municipality_codes: list[str]
    results: list[CityScoreResult]
    ranking: list[RankingEntry]
    chart_inputs: ChartInputs
    charts: dict[str, str]
    narrative: list[str]
    observations: list[RawObservation]
    definitions: list[IndicatorDefinition]
    state: PipelineState = PipelineState.COMPLETED
    history: list[PipelineState] = field(default_factory=list)
    partial_data: Any = None

    def result_for(self, code: str) -> CityScoreResult | None:
        for r in self.results:
            if r.municipality_code == code:
                return r
        return None

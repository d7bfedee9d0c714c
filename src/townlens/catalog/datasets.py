"""Dataset catalog: which tables to fetch, which indicators to derive, how to weight them.

Dataset identifiers and selector codes are static, versioned data. The
catalog is validated once at startup (``load_catalog``); an inconsistent
catalog raises ``ConfigurationError`` listing every problem found.
"""

import functools
import logging
import re
from typing import Iterable, Sequence

from townlens.config import settings
from townlens.core.errors import ConfigurationError, NotFoundError
from townlens.core.types import (
    Category,
    DatasetDefinition,
    IndicatorDefinition,
    Preset,
    Provider,
    TtlClass,
    WeightPreset,
)

logger = logging.getLogger(__name__)

_ESTAT_ID = re.compile(r"^\d{10}$")
_REINFO_ENDPOINT = re.compile(r"^X[A-Z]{2}\d{3}$")


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------

# Per-capita indicators divide by this measure of POPULATION
POPULATION_TOTAL = "total"

POPULATION = DatasetDefinition(
    id="population",
    provider=Provider.ESTAT,
    stats_source_id="0003448299",
    label="国勢調査 人口等基本集計",
    class_id="cat01",
    selectors={POPULATION_TOTAL: "000", "kids": "001"},
    ttl_class=TtlClass.CENSUS,
)

CRIME = DatasetDefinition(
    id="crime",
    provider=Provider.ESTAT,
    stats_source_id="0000020211",
    label="社会・人口統計体系 K 安全",
    class_id="cat01",
    selectors={"crime_total": "K4201"},
    ttl_class=TtlClass.ANNUAL,
)

EDUCATION = DatasetDefinition(
    id="education",
    provider=Provider.ESTAT,
    stats_source_id="0000020205",
    label="社会・人口統計体系 E 教育",
    class_id="cat01",
    selectors={"elementary_schools": "E2101", "junior_high_schools": "E3101"},
    ttl_class=TtlClass.ANNUAL,
)

HEALTHCARE = DatasetDefinition(
    id="healthcare",
    provider=Provider.ESTAT,
    stats_source_id="0000020209",
    label="社会・人口統計体系 I 健康・医療",
    class_id="cat01",
    selectors={"hospitals": "I5101", "clinics": "I5102"},
    ttl_class=TtlClass.ANNUAL,
)

TRANSPORT = DatasetDefinition(
    id="transport",
    provider=Provider.ESTAT,
    stats_source_id="0000020203",
    label="社会・人口統計体系 C 経済基盤",
    class_id="cat01",
    selectors={"stations": "C2208"},
    ttl_class=TtlClass.ANNUAL,
)

REAL_ESTATE = DatasetDefinition(
    id="real_estate",
    provider=Provider.REINFO,
    stats_source_id="XIT001",
    label="不動産取引価格情報",
    selectors={"priceClassification": "01"},
    ttl_class=TtlClass.MARKET,
)

DATASETS: tuple[DatasetDefinition, ...] = (
    POPULATION,
    CRIME,
    EDUCATION,
    HEALTHCARE,
    TRANSPORT,
    REAL_ESTATE,
)


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

INDICATORS: tuple[IndicatorDefinition, ...] = (
    IndicatorDefinition(
        id="population_total",
        label="総人口",
        unit="人",
        category=Category.CHILDCARE,
        higher_is_better=True,
        source_dataset=POPULATION,
        measure=POPULATION_TOTAL,
        precision=0,
    ),
    IndicatorDefinition(
        id="kids_ratio",
        label="0-14歳人口比率",
        unit="%",
        category=Category.CHILDCARE,
        higher_is_better=True,
        source_dataset=POPULATION,
        measure="kids",
        per_population=100,
    ),
    IndicatorDefinition(
        id="condo_price_median",
        label="中古マンション価格（中央値）",
        unit="万円",
        category=Category.PRICE,
        higher_is_better=False,
        source_dataset=REAL_ESTATE,
        measure="median",
        precision=0,
    ),
    IndicatorDefinition(
        id="crime_rate",
        label="刑法犯認知件数（人口千人当たり）",
        unit="件/千人",
        category=Category.SAFETY,
        higher_is_better=False,
        source_dataset=CRIME,
        measure="crime_total",
        per_population=1_000,
        precision=2,
    ),
    IndicatorDefinition(
        id="elementary_schools_per_capita",
        label="小学校数（人口1万人当たり）",
        unit="校/万人",
        category=Category.EDUCATION,
        higher_is_better=True,
        source_dataset=EDUCATION,
        measure="elementary_schools",
        per_population=10_000,
        precision=2,
    ),
    IndicatorDefinition(
        id="junior_high_schools_per_capita",
        label="中学校数（人口1万人当たり）",
        unit="校/万人",
        category=Category.EDUCATION,
        higher_is_better=True,
        source_dataset=EDUCATION,
        measure="junior_high_schools",
        per_population=10_000,
        precision=2,
    ),
    IndicatorDefinition(
        id="hospitals_per_capita",
        label="病院数（人口10万人当たり）",
        unit="施設/10万人",
        category=Category.HEALTHCARE,
        higher_is_better=True,
        source_dataset=HEALTHCARE,
        measure="hospitals",
        per_population=100_000,
        precision=2,
    ),
    IndicatorDefinition(
        id="clinics_per_capita",
        label="一般診療所数（人口10万人当たり）",
        unit="施設/10万人",
        category=Category.HEALTHCARE,
        higher_is_better=True,
        source_dataset=HEALTHCARE,
        measure="clinics",
        per_population=100_000,
        precision=2,
    ),
    IndicatorDefinition(
        id="stations_per_capita",
        label="駅数（人口1万人当たり）",
        unit="駅/万人",
        category=Category.TRANSPORT,
        higher_is_better=True,
        source_dataset=TRANSPORT,
        measure="stations",
        per_population=10_000,
        precision=2,
    ),
)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

PRESETS: tuple[WeightPreset, ...] = (
    WeightPreset(
        name=Preset.CHILDCARE,
        label="子育て重視",
        weights={
            Category.CHILDCARE: 0.35,
            Category.PRICE: 0.2,
            Category.SAFETY: 0.15,
            Category.EDUCATION: 0.2,
            Category.HEALTHCARE: 0.05,
            Category.TRANSPORT: 0.05,
        },
    ),
    WeightPreset(
        name=Preset.PRICE,
        label="価格重視",
        weights={
            Category.CHILDCARE: 0.1,
            Category.PRICE: 0.5,
            Category.SAFETY: 0.1,
            Category.EDUCATION: 0.1,
            Category.HEALTHCARE: 0.1,
            Category.TRANSPORT: 0.1,
        },
    ),
    WeightPreset(
        name=Preset.SAFETY,
        label="安全重視",
        weights={
            Category.CHILDCARE: 0.15,
            Category.PRICE: 0.1,
            Category.SAFETY: 0.35,
            Category.EDUCATION: 0.1,
            Category.HEALTHCARE: 0.2,
            Category.TRANSPORT: 0.1,
        },
    ),
)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def validate_catalog(
    datasets: Sequence[DatasetDefinition],
    indicators: Sequence[IndicatorDefinition],
    presets: Sequence[WeightPreset],
) -> list[str]:
    """Return a list of problems; empty when the catalog is consistent."""
    problems: list[str] = []
    registered: dict[str, DatasetDefinition] = {}

    for ds in datasets:
        if ds.id in registered:
            problems.append(f"dataset {ds.id}: duplicate name")
            continue
        registered[ds.id] = ds
        if ds.provider is Provider.ESTAT:
            if not _ESTAT_ID.match(ds.stats_source_id):
                problems.append(f"dataset {ds.id}: statsDataId {ds.stats_source_id!r} is not 10 digits")
            if not ds.class_id:
                problems.append(f"dataset {ds.id}: e-Stat dataset needs a class_id")
            if not ds.selectors:
                problems.append(f"dataset {ds.id}: no selectors")
        elif not _REINFO_ENDPOINT.match(ds.stats_source_id):
            problems.append(f"dataset {ds.id}: endpoint {ds.stats_source_id!r} is not a reinfolib API id")

    usable: set[Category] = set()
    for ind in indicators:
        source = registered.get(ind.source_dataset.id)
        if source is None or source != ind.source_dataset:
            problems.append(f"indicator {ind.id}: source dataset {ind.source_dataset.id} is not registered")
            continue
        if ind.measure not in source.measures:
            problems.append(f"indicator {ind.id}: dataset {source.id} has no measure {ind.measure!r}")
            continue
        usable.add(ind.category)

    seen_presets: set[Preset] = set()
    for preset in presets:
        if preset.name in seen_presets:
            problems.append(f"preset {preset.name.value}: duplicate")
        seen_presets.add(preset.name)
        if any(not isinstance(c, Category) for c in preset.weights):
            problems.append(f"preset {preset.name.value}: unknown category in weights")
            continue
        if any(w < 0 for w in preset.weights.values()):
            problems.append(f"preset {preset.name.value}: negative weight")
        if sum(preset.weights.values()) <= 0:
            problems.append(f"preset {preset.name.value}: weights sum to zero")
        for category in preset.required_categories:
            if category not in usable:
                problems.append(f"preset {preset.name.value}: no dataset for required category {category.value}")

    for name in Preset:
        if name not in seen_presets:
            problems.append(f"preset {name.value}: not defined")

    return problems


class DatasetCatalog:
    """Validated, read-only view over datasets, indicators and presets."""

    def __init__(
        self,
        datasets: Sequence[DatasetDefinition] = DATASETS,
        indicators: Sequence[IndicatorDefinition] = INDICATORS,
        presets: Sequence[WeightPreset] = PRESETS,
    ):
        problems = validate_catalog(datasets, indicators, presets)
        if problems:
            raise ConfigurationError(
                f"Dataset catalog is invalid ({len(problems)} problem(s))",
                problems=problems,
                hints=problems,
            )
        self._datasets = {ds.id: ds for ds in datasets}
        self._indicators = tuple(indicators)
        self._presets = {p.name: p for p in presets}

    def get(self, name: str) -> DatasetDefinition:
        try:
            return self._datasets[name]
        except KeyError:
            raise NotFoundError(f"Unknown dataset: {name}") from None

    def datasets(self) -> list[DatasetDefinition]:
        return list(self._datasets.values())

    def indicators(self) -> list[IndicatorDefinition]:
        return list(self._indicators)

    def indicators_for(self, categories: Iterable[Category]) -> list[IndicatorDefinition]:
        wanted = set(categories)
        return [ind for ind in self._indicators if ind.category in wanted]

    def datasets_for(self, indicators: Iterable[IndicatorDefinition]) -> list[DatasetDefinition]:
        """Datasets backing the indicators, population first, without duplicates."""
        ids = {ind.source_dataset.id for ind in indicators}
        if any(ind.per_population for ind in indicators):
            ids.add(POPULATION.id)
        return [ds for ds in self._datasets.values() if ds.id in ids]

    def preset(self, name: Preset | str) -> WeightPreset:
        try:
            return self._presets[Preset(name)]
        except (ValueError, KeyError):
            raise NotFoundError(f"Unknown preset: {name}") from None

    def presets(self) -> list[WeightPreset]:
        return list(self._presets.values())


def ttl_seconds(definition: DatasetDefinition) -> float:
    """Cache lifetime for a dataset, from its TTL class."""
    return {
        TtlClass.CENSUS: settings.cache_ttl_census_seconds,
        TtlClass.ANNUAL: settings.cache_ttl_annual_seconds,
        TtlClass.MARKET: settings.cache_ttl_market_seconds,
    }[definition.ttl_class]


@functools.lru_cache(maxsize=1)
def load_catalog() -> DatasetCatalog:
    """Build and validate the built-in catalog once per process."""
    catalog = DatasetCatalog()
    logger.info(
        "Dataset catalog loaded: %d datasets, %d indicators, %d presets",
        len(DATASETS), len(INDICATORS), len(PRESETS),
    )
    return catalog



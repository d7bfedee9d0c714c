"""Core domain types shared across all townlens modules."""

from townlens.core.errors import (
    ConfigurationError,
    NotFoundError,
    PartialDataError,
    SelectorError,
    TownlensError,
    UpstreamError,
    ValidationError,
)
from townlens.core.types import (
    BarChartItem,
    BaselineScore,
    CacheEntry,
    Category,
    ChartInputs,
    ChoiceScore,
    ConfidenceLevel,
    ConfidenceResult,
    CityScoreResult,
    DatasetDefinition,
    FetchOutcome,
    FetchTask,
    GaugeInput,
    IndicatorDefinition,
    IndicatorStars,
    Location,
    MunicipalityIdentity,
    NearbyCity,
    PipelineOptions,
    PipelineResult,
    PipelineState,
    Preset,
    Provider,
    RankingEntry,
    RawObservation,
    TtlClass,
    WeightPreset,
)

__all__ = [
    "BarChartItem",
    "BaselineScore",
    "CacheEntry",
    "Category",
    "ChartInputs",
    "ChoiceScore",
    "ConfidenceLevel",
    "ConfidenceResult",
    "CityScoreResult",
    "ConfigurationError",
    "DatasetDefinition",
    "FetchOutcome",
    "FetchTask",
    "GaugeInput",
    "IndicatorDefinition",
    "IndicatorStars",
    "Location",
    "MunicipalityIdentity",
    "NearbyCity",
    "NotFoundError",
    "PartialDataError",
    "PipelineOptions",
    "PipelineResult",
    "PipelineState",
    "Preset",
    "Provider",
    "RankingEntry",
    "RawObservation",
    "SelectorError",
    "TownlensError",
    "TtlClass",
    "UpstreamError",
    "ValidationError",
    "WeightPreset",
]

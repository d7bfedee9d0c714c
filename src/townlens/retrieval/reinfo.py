"""Real Estate Information Library (reinfolib) client.

Pulls XIT001 transaction records for a municipality and summarizes used-condo
trade prices into median/quartiles. A municipality with no trades yields
``None``: missing price data is a gap in the report, never a failure.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Sequence

import httpx

from townlens.catalog.datasets import REAL_ESTATE, ttl_seconds
from townlens.config import settings
from townlens.core.errors import ConfigurationError, SelectorError, UpstreamError
from townlens.core.types import RawObservation
from townlens.observability.tracing import trace
from townlens.retrieval.cache import ResponseCache, get_shared_cache
from townlens.retrieval.upstream import get_json
from townlens.utils import parse_number

logger = logging.getLogger(__name__)

SOURCE = "reinfolib"
CONDO_TYPE_LABEL = "中古マンション等"
YEN_PER_MAN = 10_000


@dataclass(frozen=True)
class PriceStats:
    median: float
    q25: float
    q75: float
    count: int


def quantile(sorted_values: Sequence[float], q: float) -> float:
    """Linear-interpolated quantile of an ascending, non-empty sequence."""
    pos = (len(sorted_values) - 1) * q
    lo = math.floor(pos)
    hi = math.ceil(pos)
    if lo == hi:
        return sorted_values[lo]
    return sorted_values[lo] + (sorted_values[hi] - sorted_values[lo]) * (pos - lo)


def trade_price_stats(trades: Sequence[dict], property_type: str = CONDO_TYPE_LABEL) -> PriceStats | None:
    prices = []
    for trade in trades:
        if trade.get("Type") != property_type:
            continue
        price = parse_number(trade.get("TradePrice"))
        if price is not None and price > 0:
            prices.append(price)
    if not prices:
        return None
    prices.sort()
    return PriceStats(
        median=quantile(prices, 0.5),
        q25=quantile(prices, 0.25),
        q75=quantile(prices, 0.75),
        count=len(prices),
    )


def to_man_yen(yen: float) -> float:
    """Yen → 万円, rounded half up."""
    return float(math.floor(yen / YEN_PER_MAN + 0.5))


def default_price_year(today: date | None = None) -> int:
    """Last complete calendar year; the current year is still being published."""
    return (today or date.today()).year - 1


class ReinfoClient:
    """Async reinfolib client. Pass ``http`` to share a connection pool."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        cache: ResponseCache | None = None,
        base_url: str | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        deadline: float | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.reinfolib_api_key
        if not self._api_key:
            raise ConfigurationError(
                "reinfolib API key is not set",
                hints=["Set REINFOLIB_API_KEY in the environment or .env"],
            )
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
        self._cache = cache if cache is not None else get_shared_cache()
        self._base_url = (base_url or settings.reinfo_base_url).rstrip("/") + "/"
        self._max_attempts = max_attempts or settings.upstream_max_attempts
        self._base_delay = settings.retry_base_delay_seconds if base_delay is None else base_delay
        self._deadline = deadline or settings.upstream_deadline_seconds

    async def __aenter__(self) -> "ReinfoClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _get(self, endpoint: str, params: dict) -> list[dict]:
        try:
            payload = await get_json(
                self._http,
                self._base_url + endpoint,
                source=SOURCE,
                params=params,
                headers={"Ocp-Apim-Subscription-Key": self._api_key},
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
                deadline=self._deadline,
            )
        except UpstreamError as exc:
            if exc.status_code in (401, 403):
                exc.hints.append("Check REINFOLIB_API_KEY")
            raise

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise SelectorError(f"{endpoint}: response has no data list")
        if not all(isinstance(item, dict) for item in data):
            raise SelectorError(f"{endpoint}: data list holds non-object records")
        return data

    async def fetch_trades(self, municipality_code: str, year: int, quarter: int | None = None) -> list[dict]:
        params = {
            "year": str(year),
            "city": municipality_code,
            **REAL_ESTATE.selectors,
        }
        if quarter is not None:
            params["quarter"] = str(quarter)
        return await self._get(REAL_ESTATE.stats_source_id, params)

    async def fetch_cities(self, prefecture_code: str) -> list[dict]:
        """XIT002 municipality list for a 2-digit prefecture code."""
        return await self._get("XIT002", {"area": prefecture_code})

    @trace(name="reinfo_fetch_price", span_type="RETRIEVER")
    async def fetch_price(self, municipality_code: str, year: int | None = None) -> list[RawObservation] | None:
        """Price observations (万円 quantiles + trade count), or None with no trades."""
        year = year or default_price_year()
        observations = await self._cache.get_or_fetch(
            (f"{REAL_ESTATE.id}:{year}", municipality_code),
            lambda: self._fetch_price_uncached(municipality_code, year),
            ttl=ttl_seconds(REAL_ESTATE),
        )
        return None if observations is None else list(observations)

    async def _fetch_price_uncached(self, municipality_code: str, year: int) -> tuple[RawObservation, ...] | None:
        trades = await self.fetch_trades(municipality_code, year)
        stats = trade_price_stats(trades)
        if stats is None:
            logger.info(
                "No %s trades for %s in %d",
                CONDO_TYPE_LABEL, municipality_code, year,
                extra={"dataset": REAL_ESTATE.id, "municipality": municipality_code},
            )
            return None

        logger.info(
            "reinfolib %s in %d: %d trades, median %.0f yen",
            municipality_code, year, stats.count, stats.median,
            extra={"dataset": REAL_ESTATE.id, "municipality": municipality_code},
        )
        values = {
            "median": to_man_yen(stats.median),
            "q25": to_man_yen(stats.q25),
            "q75": to_man_yen(stats.q75),
            "count": float(stats.count),
        }
        return tuple(
            RawObservation(
                municipality_code=municipality_code, indicator_id=key, value=value, data_year=str(year),
            )
            for key, value in values.items()
        )

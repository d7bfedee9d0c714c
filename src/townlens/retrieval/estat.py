"""e-Stat statistics client.

Fetches ``getStatsData`` for one table and one municipality, walks the
configured selectors, and returns one ``RawObservation`` per selector key.
Responses go through the shared ``ResponseCache`` so repeated report runs
for the same municipality hit e-Stat once per TTL window.
"""

import logging
import time

import httpx

from townlens.catalog.datasets import DatasetCatalog, load_catalog, ttl_seconds
from townlens.config import settings
from townlens.core.errors import ConfigurationError, NotFoundError, SelectorError, UpstreamError
from townlens.core.types import DatasetDefinition, Provider, RawObservation
from townlens.observability.tracing import trace
from townlens.retrieval.cache import ResponseCache, get_shared_cache
from townlens.retrieval.upstream import get_json
from townlens.utils import arrify, parse_number, text_from, to_cd_param_name

logger = logging.getLogger(__name__)

SOURCE = "e-Stat"


def build_params(app_id: str, definition: DatasetDefinition, geography_code: str) -> dict[str, str]:
    params = {
        "appId": app_id,
        "lang": "J",
        "statsDataId": definition.stats_source_id,
        "cdArea": geography_code,
        to_cd_param_name(definition.class_id or "cat01"): ",".join(definition.selectors.values()),
        "metaGetFlg": "N",
        "cntGetFlg": "N",
    }
    if definition.time_code:
        params["cdTime"] = definition.time_code
    return params


def extract_observations(
    payload: dict,
    definition: DatasetDefinition,
    geography_code: str,
) -> list[RawObservation]:
    """Walk GET_STATS_DATA → STATISTICAL_DATA → DATA_INF → VALUE.

    For each selector the record matching the area and classification code
    is used, latest ``@time`` first. A selector with no usable record yields
    an absent observation; no selector matching at all is a SelectorError.
    """
    root = payload.get("GET_STATS_DATA") if isinstance(payload, dict) else None
    if not isinstance(root, dict):
        raise SelectorError(f"{definition.id}: response has no GET_STATS_DATA object")

    result = root.get("RESULT") or {}
    if not isinstance(result, dict):
        raise SelectorError(f"{definition.id}: malformed RESULT in response")
    status = text_from(result.get("STATUS"))
    if status not in ("", "0"):
        message = text_from(result.get("ERROR_MSG"))
        if status == "1":
            raise SelectorError(f"{definition.id}: no data for {geography_code} ({message})")
        raise UpstreamError(f"e-Stat API error {status}: {message}", source=SOURCE, retryable=False)

    try:
        values = arrify(root["STATISTICAL_DATA"]["DATA_INF"]["VALUE"])
    except (KeyError, TypeError) as exc:
        raise SelectorError(f"{definition.id}: response has no DATA_INF.VALUE") from exc

    class_attr = f"@{definition.class_id}"
    observations = []
    matched = 0
    for key, code in definition.selectors.items():
        records = [
            v for v in values
            if isinstance(v, dict)
            and text_from(v.get("@area")) == geography_code
            and text_from(v.get(class_attr)) == code
            and (definition.time_code is None or text_from(v.get("@time")) == definition.time_code)
        ]
        if records:
            matched += 1
        records.sort(key=lambda v: text_from(v.get("@time")), reverse=True)

        value = None
        data_year = None
        for record in records:
            value = parse_number(record.get("$"))
            if value is not None:
                data_year = text_from(record.get("@time"))[:4] or None
                break
        observations.append(RawObservation(
            municipality_code=geography_code, indicator_id=key, value=value, data_year=data_year,
        ))

    if matched == 0:
        raise SelectorError(
            f"{definition.id}: no record for area {geography_code} with {definition.class_id} "
            f"in {sorted(definition.selectors.values())}"
        )
    return observations


class EstatClient:
    """Async e-Stat client. Pass ``http`` to share a connection pool."""

    def __init__(
        self,
        app_id: str | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        catalog: DatasetCatalog | None = None,
        cache: ResponseCache | None = None,
        base_url: str | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        deadline: float | None = None,
    ):
        self._app_id = app_id if app_id is not None else settings.estat_app_id
        if not self._app_id:
            raise ConfigurationError(
                "e-Stat application ID is not set",
                hints=["Set ESTAT_APP_ID in the environment or .env"],
            )
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
        self._catalog = catalog if catalog is not None else load_catalog()
        self._cache = cache if cache is not None else get_shared_cache()
        self._base_url = (base_url or settings.estat_base_url).rstrip("/") + "/"
        self._max_attempts = max_attempts or settings.upstream_max_attempts
        self._base_delay = settings.retry_base_delay_seconds if base_delay is None else base_delay
        self._deadline = deadline or settings.upstream_deadline_seconds

    async def __aenter__(self) -> "EstatClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @trace(name="estat_fetch", span_type="RETRIEVER")
    async def fetch(self, dataset_name: str, geography_code: str) -> list[RawObservation]:
        """Observations for every selector of ``dataset_name`` in one municipality.

        Raises:
            NotFoundError: unknown dataset, or not an e-Stat dataset.
            UpstreamError: network, HTTP or API-status failure.
            SelectorError: the response had no record for any selector.
        """
        definition = self._catalog.get(dataset_name)
        if definition.provider is not Provider.ESTAT:
            raise NotFoundError(f"{dataset_name} is not an e-Stat dataset")

        observations = await self._cache.get_or_fetch(
            (definition.id, geography_code),
            lambda: self._fetch_uncached(definition, geography_code),
            ttl=ttl_seconds(definition),
        )
        return list(observations)

    async def _fetch_uncached(self, definition: DatasetDefinition, geography_code: str) -> tuple[RawObservation, ...]:
        t0 = time.monotonic()
        payload = await get_json(
            self._http,
            self._base_url + "getStatsData",
            source=SOURCE,
            params=build_params(self._app_id, definition, geography_code),
            max_attempts=self._max_attempts,
            base_delay=self._base_delay,
            deadline=self._deadline,
        )
        observations = extract_observations(payload, definition, geography_code)
        logger.info(
            "e-Stat %s for %s: %d/%d values in %.0fms",
            definition.id, geography_code,
            sum(1 for o in observations if o.value is not None), len(observations),
            (time.monotonic() - t0) * 1000,
            extra={"dataset": definition.id, "municipality": geography_code},
        )
        return tuple(observations)

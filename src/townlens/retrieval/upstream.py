"""Upstream GET with a per-call deadline, retry and error classification.

Retryable: timeouts (httpx or our own deadline), transport errors, HTTP 429
and 5xx. Any other 4xx fails immediately. Backoff doubles per attempt.
"""

import asyncio
import logging
from typing import Any

import httpx

from townlens.core.errors import SelectorError, UpstreamError

logger = logging.getLogger(__name__)


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    source: str,
    params: dict | None = None,
    headers: dict | None = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    deadline: float = 30.0,
) -> Any:
    """GET ``url`` and decode JSON, retrying transient failures.

    Raises:
        UpstreamError: after the last attempt, or immediately for non-retryable statuses.
        SelectorError: if the body is not JSON.
    """
    last_error: UpstreamError | None = None
    max_attempts = max(1, max_attempts)

    for attempt in range(max_attempts):
        try:
            resp = await asyncio.wait_for(
                client.get(url, params=params, headers=headers),
                timeout=deadline,
            )
            resp.raise_for_status()
            try:
                return resp.json()
            except ValueError as exc:
                raise SelectorError(f"{source} returned a non-JSON body") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            retryable = is_retryable_status(status)
            last_error = UpstreamError(
                f"{source} returned HTTP {status}",
                source=source,
                retryable=retryable,
                status_code=status,
            )
            if not retryable:
                raise last_error from exc
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            last_error = UpstreamError(f"{source} timed out after {deadline}s", source=source, retryable=True)
            last_error.__cause__ = exc
        except httpx.TransportError as exc:
            last_error = UpstreamError(f"{source} transport error: {exc}", source=source, retryable=True)
            last_error.__cause__ = exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{source} request failed: {exc}", source=source, retryable=False) from exc

        if attempt + 1 < max_attempts:
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                source, attempt + 1, max_attempts, delay, last_error,
                extra={"attempt": attempt + 1},
            )
            await asyncio.sleep(delay)

    logger.error("%s failed after %d attempts: %s", source, max_attempts, last_error)
    raise last_error

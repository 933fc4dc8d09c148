"""Shared JSON HTTP access for providers with status-aware error handling."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cardscout.config import settings
from cardscout.errors import (
    BlockedError,
    PermanentSourceError,
    RateLimitedError,
    TransientFetchError,
)

logger = logging.getLogger(__name__)

# Retryable exceptions (transport errors)
RETRYABLE_EXC = (
    httpx.ReadTimeout,
    httpx.ConnectTimeout,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.PoolTimeout,
)


@dataclass(frozen=True)
class SourcePolicy:
    """Per-provider request policy."""

    name: str
    max_attempts: int = 2
    timeout: float = 10.0
    backoff_base: float = 1.0  # Seconds; 0 disables sleeping between attempts

    @classmethod
    def from_settings(cls, name: str) -> "SourcePolicy":
        return cls(
            name=name,
            max_attempts=max(1, settings.connector_max_attempts),
            timeout=settings.connector_timeout_seconds,
        )

    def backoff(self, attempt: int) -> float:
        if self.backoff_base <= 0:
            return 0.0
        return self.backoff_base * (2 ** (attempt - 1)) + random.random() * self.backoff_base


def default_headers() -> dict[str, str]:
    return {
        "User-Agent": "cardscout/0.1 (+prospect-analyzer)",
        "Accept": "application/json",
    }


async def fetch_json_with_policy(
    client: httpx.AsyncClient,
    url: str,
    policy: SourcePolicy,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    """
    GET a JSON document with retry on transport errors and 5xx.

    Args:
        client: httpx AsyncClient instance
        url: Endpoint URL
        policy: SourcePolicy configuration
        params: Optional query parameters
        headers: Optional additional headers (merged with defaults)

    Returns:
        Decoded JSON payload

    Raises:
        BlockedError: 401/403
        PermanentSourceError: 404
        RateLimitedError: 429 after retries
        TransientFetchError: 5xx, transport errors or undecodable body after retries
    """
    hdrs = default_headers()
    if headers:
        hdrs.update(headers)

    last_exc: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            resp = await client.get(url, params=params, headers=hdrs, timeout=policy.timeout)
            sc = resp.status_code

            if sc in (401, 403):
                raise BlockedError(f"{policy.name}: {sc} for {url}")
            if sc == 404:
                raise PermanentSourceError(f"{policy.name}: 404 for {url}")
            if sc == 429:
                retry_after = resp.headers.get("Retry-After")
                retry_seconds = None
                if retry_after:
                    try:
                        retry_seconds = int(retry_after)
                    except (ValueError, TypeError):
                        pass
                raise RateLimitedError(retry_after=retry_seconds)
            if not 200 <= sc < 300:
                raise TransientFetchError(f"{policy.name}: status {sc} for {url}")

            try:
                return resp.json()
            except ValueError as e:
                raise TransientFetchError(f"{policy.name}: invalid JSON from {url}") from e

        except RateLimitedError as e:
            if attempt >= policy.max_attempts:
                raise
            sleep_s = float(e.retry_after) if e.retry_after is not None else policy.backoff(attempt)
            logger.warning(
                f"{policy.name}: Rate limited (429), retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(sleep_s)
            last_exc = e

        except RETRYABLE_EXC as e:
            if attempt >= policy.max_attempts:
                raise TransientFetchError(
                    f"{policy.name}: Transport error after {policy.max_attempts} attempts: {url}"
                ) from e
            sleep_s = policy.backoff(attempt)
            logger.warning(
                f"{policy.name}: Transport error ({type(e).__name__}), "
                f"retrying in {sleep_s:.1f}s (attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(sleep_s)
            last_exc = e

        except (BlockedError, PermanentSourceError):
            raise

        except TransientFetchError as e:
            if attempt >= policy.max_attempts:
                raise
            sleep_s = policy.backoff(attempt)
            logger.warning(
                f"{policy.name}: Transient error, retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(sleep_s)
            last_exc = e

    raise TransientFetchError(
        f"{policy.name}: failed after {policy.max_attempts} attempts: {url}"
    ) from last_exc

"""Canonical records and base classes for provider and marketplace connectors."""

from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

import httpx
from pydantic import ValidationError

from cardscout import metrics
from cardscout.errors import ConnectorError
from cardscout.ingest.http_client import SourcePolicy, fetch_json_with_policy

logger = logging.getLogger(__name__)

T = TypeVar("T")

GRADE_PATTERN = re.compile(r"\b(PSA|BGS|SGC|CGC)\s*(\d{1,2}(?:\.5)?)\b", re.IGNORECASE)


class ProviderRole(str, Enum):
    """Position of a ranking provider in the fusion weights."""

    PRIMARY = "primary"
    SECONDARY_A = "secondary_a"
    SECONDARY_B = "secondary_b"


@dataclass(frozen=True)
class RankingRecord:
    """One provider's view of a subject, normalized at the connector boundary."""

    provider: str
    subject_id: str
    subject_name: str
    team: str
    rank: int
    level: Optional[str] = None
    performance_index: Optional[float] = None
    age: Optional[int] = None
    position: Optional[str] = None
    eta: Optional[str] = None
    grade: Optional[int] = None
    ceiling: Optional[float] = None
    floor: Optional[float] = None
    risk_tier: Optional[str] = None


@dataclass(frozen=True)
class StatsRecord:
    """Current-season performance statistics for a subject."""

    subject_id: str
    on_base_slugging: float
    strikeout_rate: float
    walk_rate: float
    isolated_power: float
    balls_in_play_rate: float
    run_creation_index: float
    games_played: int


@dataclass(frozen=True)
class MarketListing:
    """A single marketplace listing."""

    title: str
    asking_price: Decimal
    source_url: str
    platform: str
    seller_rating: Optional[float] = None
    condition: Optional[str] = None
    grade: Optional[str] = None


@dataclass
class FetchResult(Generic[T]):
    """Records returned by a connector plus the tally of what went wrong."""

    provider: str
    records: list[T] = field(default_factory=list)
    skipped: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_grade(title: str) -> Optional[str]:
    """Pull a grading-company label such as 'PSA 10' out of a listing title."""
    match = GRADE_PATTERN.search(title or "")
    if not match:
        return None
    return f"{match.group(1).upper()} {match.group(2)}"


class JSONSource(ABC):
    """
    Shared mechanics for connectors backed by a JSON HTTP endpoint.

    Subclasses describe where their rows live in the payload and how to turn
    one row into a canonical record. A missing endpoint means the provider is
    not configured and yields an empty snapshot.
    """

    provider: str = "unknown"
    rows_key: Optional[str] = None

    def __init__(
        self,
        endpoint: str = "",
        client: Optional[httpx.AsyncClient] = None,
        policy: Optional[SourcePolicy] = None,
    ):
        self.endpoint = endpoint
        self.policy = policy or SourcePolicy.from_settings(self.provider)
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.policy.timeout,
                follow_redirects=True,
            )
        return self._http_client

    async def close(self):
        """Close the HTTP client if this connector created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def configured(self) -> bool:
        return bool(self.endpoint)

    def _headers(self) -> dict[str, str]:
        return {}

    def _extract_rows(self, payload: Any) -> list:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and self.rows_key:
            rows = payload.get(self.rows_key) or []
            if isinstance(rows, list):
                return rows
        raise ConnectorError(f"{self.provider}: unexpected payload shape")

    async def _fetch_normalized(
        self,
        parse: Callable[[dict], T],
        params: Optional[dict[str, Any]] = None,
    ) -> FetchResult[T]:
        """Fetch, then normalize row by row. Never raises for provider trouble."""
        if not self.configured:
            logger.debug("Provider %s not configured; returning empty snapshot", self.provider)
            return FetchResult(provider=self.provider)

        start = time.monotonic()
        try:
            client = await self._get_client()
            payload = await fetch_json_with_policy(
                client, self.endpoint, self.policy, params=params, headers=self._headers()
            )
            rows = self._extract_rows(payload)
        except (ConnectorError, httpx.HTTPError) as e:
            duration = time.monotonic() - start
            metrics.record_fetch_error(self.provider, duration)
            logger.warning("Provider %s failed: %s", self.provider, e)
            return FetchResult(provider=self.provider, error=str(e) or type(e).__name__)

        records: list[T] = []
        skipped = 0
        for row in rows:
            if not isinstance(row, dict):
                skipped += 1
                continue
            try:
                records.append(parse(row))
            except (ValidationError, ValueError, TypeError, KeyError, AttributeError) as e:
                skipped += 1
                logger.debug("Skipping malformed %s row: %s", self.provider, e)

        duration = time.monotonic() - start
        metrics.record_fetch_success(self.provider, duration, skipped=skipped)
        if skipped:
            logger.info("Provider %s: %d rows, %d skipped", self.provider, len(records), skipped)
        return FetchResult(provider=self.provider, records=records, skipped=skipped)


class BaseRankingSource(JSONSource):
    """A provider publishing a ranked prospect list."""

    async def fetch(self) -> FetchResult[RankingRecord]:
        """Fetch the provider's current ranking snapshot."""
        return await self._fetch_normalized(self.parse_row)

    @abstractmethod
    def parse_row(self, row: dict) -> RankingRecord:
        """Normalize one provider row into a RankingRecord."""


class BaseStatsSource(JSONSource):
    """A provider of live performance statistics keyed by subject id."""

    async def fetch(self, subject_ids: set[str]) -> dict[str, StatsRecord]:
        """
        Fetch statistics for the given subjects.

        Subjects missing from the result have no live stats. An empty id set
        returns an empty mapping without any I/O.
        """
        result = await self.fetch_result(subject_ids)
        return {record.subject_id: record for record in result.records}

    async def fetch_result(self, subject_ids: set[str]) -> FetchResult[StatsRecord]:
        """Like fetch, but keeps the provider error and skipped-row tally."""
        if not subject_ids:
            return FetchResult(provider=self.provider)
        result = await self._fetch_normalized(self.parse_row, params=self._params(subject_ids))
        result.records = [r for r in result.records if r.subject_id in subject_ids]
        return result

    def _params(self, subject_ids: set[str]) -> dict[str, Any]:
        return {"playerIds": ",".join(sorted(subject_ids))}

    @abstractmethod
    def parse_row(self, row: dict) -> StatsRecord:
        """Normalize one provider row into a StatsRecord."""


class BaseMarketplace(JSONSource):
    """A marketplace searchable by subject name."""

    platform: str = "unknown"

    async def fetch(self, query: str) -> FetchResult[MarketListing]:
        """Search the marketplace for listings matching a subject name."""
        return await self._fetch_normalized(self.parse_row, params=self._params(query))

    def _params(self, query: str) -> dict[str, Any]:
        return {"q": query}

    @abstractmethod
    def parse_row(self, row: dict) -> MarketListing:
        """Normalize one marketplace row into a MarketListing."""

    def _listing(
        self,
        title: str,
        price: Any,
        url: str,
        seller_rating: Optional[float] = None,
        condition: Optional[str] = None,
        grade: Optional[str] = None,
    ) -> MarketListing:
        """Build a listing, rejecting rows without a usable title or positive price."""
        if not title or not str(title).strip():
            raise ValueError("listing without title")
        try:
            asking = Decimal(str(price))
        except InvalidOperation as e:
            raise ValueError(f"unparseable price {price!r}") from e
        if not asking.is_finite() or asking <= 0:
            raise ValueError(f"non-positive price {price!r}")
        asking = asking.quantize(Decimal("0.01"))
        return MarketListing(
            title=str(title).strip(),
            asking_price=asking,
            source_url=url or "",
            platform=self.platform,
            seller_rating=seller_rating,
            condition=condition,
            grade=grade or extract_grade(title),
        )

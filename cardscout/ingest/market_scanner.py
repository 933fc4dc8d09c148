"""Concurrent marketplace scan for one subject and profit evaluation of listings."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from cardscout import metrics
from cardscout.config import settings
from cardscout.detect.opportunity import DealStatus, Opportunity
from cardscout.detect.valuation import FairValueEstimator
from cardscout.ingest.base import BaseMarketplace, FetchResult, MarketListing
from cardscout.logging_config import get_logger

logger = logging.getLogger(__name__)


@dataclass
class SubjectScanResult:
    """Outcome of scanning every marketplace for one subject."""

    subject_name: str
    listings_seen: int = 0
    skipped_records: int = 0
    candidates: list[Opportunity] = field(default_factory=list)
    connector_errors: dict[str, str] = field(default_factory=dict)


class MarketScanner:
    """
    Fans out one search per marketplace and keeps listings that clear both
    profit thresholds.
    """

    def __init__(
        self,
        marketplaces: Sequence[BaseMarketplace],
        estimator: Optional[FairValueEstimator] = None,
        min_profit_pct: Optional[float] = None,
        min_profit_abs: Optional[float] = None,
        connector_timeout: Optional[float] = None,
    ):
        self.marketplaces = list(marketplaces)
        self.estimator = estimator or FairValueEstimator()
        self.min_profit_pct = Decimal(str(
            min_profit_pct if min_profit_pct is not None else settings.deal_min_profit_pct
        ))
        self.min_profit_abs = Decimal(str(
            min_profit_abs if min_profit_abs is not None else settings.deal_min_profit_abs
        ))
        self.connector_timeout = (
            connector_timeout if connector_timeout is not None else settings.connector_timeout_seconds
        )

    async def _fetch_platform(self, marketplace: BaseMarketplace, query: str) -> FetchResult[MarketListing]:
        """Run one connector under its own timeout; expiry or an exception counts as connector failure."""
        start = time.monotonic()
        try:
            return await asyncio.wait_for(marketplace.fetch(query), timeout=self.connector_timeout)
        except asyncio.TimeoutError:
            metrics.record_fetch_error(marketplace.provider, self.connector_timeout)
            logger.warning(
                f"{marketplace.platform}: search for {query!r} timed out after {self.connector_timeout}s"
            )
            return FetchResult(provider=marketplace.provider, error="timeout")
        except Exception as e:
            metrics.record_fetch_error(marketplace.provider, time.monotonic() - start)
            logger.warning(f"{marketplace.platform}: search for {query!r} failed: {e!r}")
            return FetchResult(provider=marketplace.provider, error=str(e) or type(e).__name__)

    async def scan(self, subject_name: str, owner_id: str) -> SubjectScanResult:
        """Search every marketplace for a subject and return qualifying candidates."""
        log = get_logger(__name__, subject=subject_name, owner_id=owner_id)
        result = SubjectScanResult(subject_name=subject_name)

        fetched = await asyncio.gather(
            *(self._fetch_platform(m, subject_name) for m in self.marketplaces)
        )

        for marketplace, platform_result in zip(self.marketplaces, fetched):
            if platform_result.error:
                result.connector_errors[marketplace.platform] = platform_result.error
            result.skipped_records += platform_result.skipped
            for listing in platform_result.records:
                result.listings_seen += 1
                candidate = self.evaluate(listing, subject_name, owner_id)
                if candidate is not None:
                    metrics.deals_found_total.labels(platform=candidate.platform).inc()
                    result.candidates.append(candidate)

        log.info(
            f"Scanned {len(self.marketplaces)} marketplaces for {subject_name}: "
            f"{result.listings_seen} listings, {len(result.candidates)} candidates, "
            f"{len(result.connector_errors)} connector errors"
        )
        return result

    def clears_thresholds(self, profit_amount: Decimal, profit_pct: Decimal | float) -> bool:
        """Both thresholds are strict: a listing exactly at either one is rejected."""
        return (
            Decimal(str(profit_pct)) > self.min_profit_pct
            and Decimal(str(profit_amount)) > self.min_profit_abs
        )

    def evaluate(
        self, listing: MarketListing, subject_name: str, owner_id: str
    ) -> Optional[Opportunity]:
        """Turn a listing into a candidate Opportunity if it is underpriced enough."""
        if listing.asking_price <= 0:
            return None

        estimate = self.estimator.estimate(subject_name, listing.title)
        profit = estimate - listing.asking_price
        profit_pct = profit / listing.asking_price * 100

        if not self.clears_thresholds(profit, profit_pct):
            return None

        return Opportunity(
            owner_id=owner_id,
            subject_name=subject_name,
            card_descriptor=listing.title,
            asking_price=listing.asking_price,
            estimated_value=estimate,
            profit_amount=profit,
            profit_percentage=float(profit_pct),
            platform=listing.platform,
            url=listing.source_url,
            status=DealStatus.PENDING,
        )

"""Deal deduplication against previously recorded opportunities."""

import logging
from decimal import Decimal
from enum import Enum
from typing import Optional

from cardscout import metrics
from cardscout.config import settings
from cardscout.db.store import DealFilter, RecordStore
from cardscout.detect.opportunity import Opportunity
from cardscout.errors import StoreError

logger = logging.getLogger(__name__)


class DedupOutcome(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    # Lost the insert to an equivalent row in the same price bucket
    CONFLICT = "conflict"
    FAILED = "failed"


class DealDeduplicator:
    """
    First-seen-wins recording of candidate deals.

    A candidate is discarded when the same owner already has a deal for the
    same card on the same platform priced within the tolerance window. The
    query and the insert are separate store calls; the deals unique constraint
    on the price bucket closes the race for prices in the same bucket, while
    neighbours across a bucket edge can still both be inserted by concurrent
    scans.
    """

    def __init__(self, store: RecordStore, tolerance: Optional[float] = None):
        self.store = store
        self.tolerance = Decimal(str(
            tolerance if tolerance is not None else settings.dedup_price_tolerance
        ))

    async def find_existing(self, candidate: Opportunity) -> Optional[Opportunity]:
        """Return an existing deal inside the candidate's tolerance window, if any."""
        existing = await self.store.query_deals(
            DealFilter(
                owner_id=candidate.owner_id,
                platform=candidate.platform,
                card_descriptor=candidate.card_descriptor,
                price_min=candidate.asking_price - self.tolerance,
                price_max=candidate.asking_price + self.tolerance,
            )
        )
        return existing[0] if existing else None

    async def record(self, candidate: Opportunity) -> DedupOutcome:
        """Insert the candidate unless an equivalent deal already exists."""
        try:
            if await self.find_existing(candidate) is not None:
                outcome = DedupOutcome.DUPLICATE
            elif await self.store.insert_deal(candidate) is None:
                outcome = DedupOutcome.CONFLICT
            else:
                outcome = DedupOutcome.INSERTED
        except StoreError as e:
            logger.error(
                f"Failed to record deal for {candidate.owner_id} on {candidate.platform}: {e}"
            )
            outcome = DedupOutcome.FAILED

        metrics.record_deal_outcome(candidate.platform, outcome.value)
        if outcome != DedupOutcome.INSERTED:
            logger.debug(
                f"Deal {candidate.card_descriptor!r} at {candidate.asking_price} "
                f"on {candidate.platform}: {outcome.value}"
            )
        return outcome

"""Deal (opportunity) entity created by the market scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class DealStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class Opportunity:
    """An underpriced listing attributed to one owner."""

    owner_id: str
    subject_name: str
    card_descriptor: str
    asking_price: Decimal
    estimated_value: Decimal
    profit_amount: Decimal
    profit_percentage: float
    platform: str
    url: str
    status: DealStatus = DealStatus.PENDING
    discovered_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "subject_name": self.subject_name,
            "card_descriptor": self.card_descriptor,
            "asking_price": float(self.asking_price),
            "estimated_value": float(self.estimated_value),
            "profit_amount": float(self.profit_amount),
            "profit_percentage": round(self.profit_percentage, 2),
            "platform": self.platform,
            "url": self.url,
            "status": self.status.value,
            "discovered_at": self.discovered_at.isoformat(),
        }

"""eBay Buy It Now search (Browse API item summaries)."""

from __future__ import annotations

from typing import Any

from cardscout.config import settings
from cardscout.ingest.base import BaseMarketplace, MarketListing


class eBayMarketplace(BaseMarketplace):
    """
    Searches fixed-price eBay listings.

    Auctions are excluded: their current bid is not an asking price.
    """

    provider = "ebay"
    platform = "eBay"
    rows_key = "itemSummaries"

    def __init__(self, *args, app_token: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.app_token = app_token or settings.ebay_app_token

    def _headers(self) -> dict[str, str]:
        if not self.app_token:
            return {}
        return {
            "Authorization": f"Bearer {self.app_token}",
            "X-EBAY-C-MARKETPLACE-ID": "EBAY_US",
        }

    def _params(self, query: str) -> dict[str, Any]:
        return {
            "q": query,
            "category_ids": "261328",  # Sports Trading Card Singles
            "filter": "buyingOptions:{FIXED_PRICE}",
            "limit": 50,
        }

    def parse_row(self, row: dict) -> MarketListing:
        price = row["price"]["value"]
        feedback = (row.get("seller") or {}).get("feedbackPercentage")
        rating = round(float(feedback) / 20, 2) if feedback is not None else None
        return self._listing(
            title=row.get("title", ""),
            price=price,
            url=row.get("itemWebUrl", ""),
            seller_rating=rating,
            condition=row.get("condition"),
        )

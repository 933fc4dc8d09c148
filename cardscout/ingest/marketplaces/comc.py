"""Check Out My Cards (COMC) search."""

from __future__ import annotations

from cardscout.ingest.base import BaseMarketplace, MarketListing


class COMCMarketplace(BaseMarketplace):
    provider = "comc"
    platform = "COMC"
    rows_key = "results"

    def parse_row(self, row: dict) -> MarketListing:
        rating = row.get("seller_rating")
        return self._listing(
            title=row.get("title", ""),
            price=row["price"],
            url=row.get("url", ""),
            seller_rating=float(rating) if rating is not None else None,
            condition=row.get("condition"),
            grade=row.get("grade"),
        )

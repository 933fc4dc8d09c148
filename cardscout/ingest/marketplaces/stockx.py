"""StockX trading card search."""

from __future__ import annotations

from cardscout.ingest.base import BaseMarketplace, MarketListing

STOCKX_PRODUCT_URL = "https://stockx.com/"


class StockXMarketplace(BaseMarketplace):
    """StockX lists products, not sellers; the asking price is the lowest ask."""

    provider = "stockx"
    platform = "StockX"
    rows_key = "Products"

    def parse_row(self, row: dict) -> MarketListing:
        market = row.get("market") or {}
        url_key = row.get("urlKey") or ""
        return self._listing(
            title=row.get("title", ""),
            price=market["lowestAsk"],
            url=f"{STOCKX_PRODUCT_URL}{url_key}" if url_key else "",
            condition=row.get("condition") or "Graded",
        )

"""Marketplace connectors."""

from cardscout.ingest.marketplaces.comc import COMCMarketplace
from cardscout.ingest.marketplaces.ebay import eBayMarketplace
from cardscout.ingest.marketplaces.stockx import StockXMarketplace

__all__ = [
    "COMCMarketplace",
    "eBayMarketplace",
    "StockXMarketplace",
]

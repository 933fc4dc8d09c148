"""FanGraphs prospect board (primary ranking provider)."""

from __future__ import annotations

from cardscout.ingest.base import BaseRankingSource, RankingRecord
from cardscout.ingest.rankings.payloads import normalize_row


class FanGraphsSource(BaseRankingSource):
    provider = "fangraphs"
    rows_key = "data"

    def parse_row(self, row: dict) -> RankingRecord:
        return normalize_row(self.provider, row)

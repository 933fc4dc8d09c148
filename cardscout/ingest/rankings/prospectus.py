"""Baseball Prospectus rankings with ceiling/floor grades."""

from __future__ import annotations

from cardscout.ingest.base import BaseRankingSource, RankingRecord
from cardscout.ingest.rankings.payloads import normalize_row


class ProspectusSource(BaseRankingSource):
    provider = "baseball_prospectus"
    rows_key = "rankings"

    def parse_row(self, row: dict) -> RankingRecord:
        return normalize_row(self.provider, row)

"""MLB Pipeline prospect rankings."""

from __future__ import annotations

from cardscout.ingest.base import BaseRankingSource, RankingRecord
from cardscout.ingest.rankings.payloads import normalize_row


class MLBPipelineSource(BaseRankingSource):
    provider = "mlb_pipeline"
    rows_key = "prospects"

    def parse_row(self, row: dict) -> RankingRecord:
        return normalize_row(self.provider, row)

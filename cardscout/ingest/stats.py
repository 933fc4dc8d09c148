"""Live minor-league statistics enrichment."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cardscout.ingest.base import BaseStatsSource, StatsRecord


class MiLBStatsRow(BaseModel):
    """Season line as published by the MiLB stats endpoint."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    player_id: int
    ops: float = Field(ge=0)
    k_percent: float = Field(ge=0, le=100)
    bb_percent: float = Field(ge=0, le=100)
    iso: float = Field(ge=0)
    babip: Optional[float] = Field(default=None, ge=0)
    wrc_plus: Optional[float] = None
    games_played: int = Field(default=0, ge=0)

    def to_record(self) -> StatsRecord:
        return StatsRecord(
            subject_id=str(self.player_id),
            on_base_slugging=self.ops,
            strikeout_rate=self.k_percent,
            walk_rate=self.bb_percent,
            isolated_power=self.iso,
            balls_in_play_rate=self.babip or 0.0,
            run_creation_index=self.wrc_plus or 0.0,
            games_played=self.games_played,
        )


class MiLBStatsSource(BaseStatsSource):
    provider = "milb_stats"
    rows_key = "stats"

    def parse_row(self, row: dict) -> StatsRecord:
        return MiLBStatsRow.model_validate(row).to_record()

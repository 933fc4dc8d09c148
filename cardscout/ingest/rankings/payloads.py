"""Provider-specific ranking row shapes.

Each provider publishes its own loosely-typed row. The shapes are modeled as a
tagged union on ``provider`` and converted to the canonical RankingRecord so
that nothing downstream of the connector needs to know which provider a field
came from.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from cardscout.ingest.base import RankingRecord


class _ProviderRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class FanGraphsRow(_ProviderRow):
    """FanGraphs board row (primary provider)."""

    provider: Literal["fangraphs"] = "fangraphs"
    player_id: int = Field(alias="PlayerId")
    player_name: str = Field(alias="PlayerName", min_length=1)
    team: str = Field(alias="Team")
    level: str = Field(alias="Level")
    rank: int = Field(alias="Rank", ge=1)
    wrc_plus: Optional[float] = Field(default=None, alias="wRCPlus")
    age: int = Field(alias="Age", ge=14, le=45)
    position: str = Field(alias="Position")

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper()

    def to_record(self) -> RankingRecord:
        return RankingRecord(
            provider=self.provider,
            subject_id=str(self.player_id),
            subject_name=self.player_name,
            team=self.team,
            rank=self.rank,
            level=self.level,
            performance_index=self.wrc_plus,
            age=self.age,
            position=self.position,
        )


class PipelineRow(_ProviderRow):
    """MLB Pipeline row (secondary provider A)."""

    provider: Literal["mlb_pipeline"] = "mlb_pipeline"
    id: int
    name: str = Field(min_length=1)
    team: str
    position: Optional[str] = None
    rank: int = Field(ge=1)
    eta: Optional[str] = None
    grade: Optional[int] = Field(default=None, ge=20, le=80)

    @field_validator("eta", mode="before")
    @classmethod
    def _eta_as_text(cls, value):
        return None if value is None else str(value)

    def to_record(self) -> RankingRecord:
        return RankingRecord(
            provider=self.provider,
            subject_id=str(self.id),
            subject_name=self.name,
            team=self.team,
            rank=self.rank,
            position=self.position,
            eta=self.eta,
            grade=self.grade,
        )


class ProspectusRow(_ProviderRow):
    """Baseball Prospectus row (secondary provider B), carries ceiling/floor/risk."""

    provider: Literal["baseball_prospectus"] = "baseball_prospectus"
    player_id: int
    name: str = Field(min_length=1)
    team: str
    rank: int = Field(ge=1)
    ceiling: Optional[float] = Field(default=None, ge=0, le=100)
    floor: Optional[float] = Field(default=None, ge=0, le=100)
    risk: Optional[str] = None

    @field_validator("risk")
    @classmethod
    def _normalize_risk(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().capitalize()
        return value if value in ("Low", "Medium", "High") else None

    def to_record(self) -> RankingRecord:
        return RankingRecord(
            provider=self.provider,
            subject_id=str(self.player_id),
            subject_name=self.name,
            team=self.team,
            rank=self.rank,
            ceiling=self.ceiling,
            floor=self.floor,
            risk_tier=self.risk,
        )


ProviderRow = Annotated[
    Union[FanGraphsRow, PipelineRow, ProspectusRow],
    Field(discriminator="provider"),
]

_provider_row_adapter = TypeAdapter(ProviderRow)


def normalize_row(provider: str, row: dict) -> RankingRecord:
    """Validate a raw provider row against its shape and return the canonical record."""
    parsed = _provider_row_adapter.validate_python({**row, "provider": provider})
    return parsed.to_record()

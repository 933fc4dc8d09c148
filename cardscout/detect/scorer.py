"""Composite prospect scoring across disagreeing ranking providers.

The score is a pure function of one subject's gathered inputs:

    composite = 0.40 * performance
              + 0.35 * ranking
              + 0.15 * age_vs_level
              + 0.10 * level_bonus

clamped to [0, 100]. Missing providers are handled by renormalizing their
weights over the providers that did report, never by substituting values.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional

from cardscout import metrics
from cardscout.ingest.base import ProviderRole, RankingRecord, StatsRecord

logger = logging.getLogger(__name__)

# Lowest minor-league rung = 1 ... major league = 5
LEVEL_ORDINALS: dict[str, int] = {
    "A": 1,
    "A+": 2,
    "AA": 3,
    "AAA": 4,
    "MLB": 5,
}

COMPONENT_WEIGHTS = {
    "performance": 0.40,
    "ranking": 0.35,
    "age_vs_level": 0.15,
    "level_bonus": 0.10,
}

RANKING_WEIGHTS: dict[ProviderRole, float] = {
    ProviderRole.PRIMARY: 0.40,
    ProviderRole.SECONDARY_A: 0.35,
    ProviderRole.SECONDARY_B: 0.25,
}

# Primary always carries at least half of the composite rank
COMPOSITE_RANK_WEIGHTS: dict[ProviderRole, float] = {
    ProviderRole.PRIMARY: 0.5,
    ProviderRole.SECONDARY_A: 0.3,
    ProviderRole.SECONDARY_B: 0.2,
}

OPS_FLOOR = 0.600
OPS_SCALE = 200.0
PLATE_DISCIPLINE_SCALE = 2.0
ISO_MULTIPLIER = 500.0
PERFORMANCE_INDEX_FLOOR = 80.0
PERFORMANCE_INDEX_SCALE = 1.25

AGE_BASELINE = 18
AGE_STEP_POINTS = 8
AGE_ADJUSTMENT_LIMIT = 25
LEVEL_BONUS_POINTS = 5

CEILING_HEADROOM = 20
FLOOR_DROP = 25
HIGH_RISK_SPREAD = 40
LOW_RISK_SPREAD = 20

DEFAULT_ETA = "2025"


class RiskTier(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def level_ordinal(level: Optional[str]) -> int:
    """Map a level label to its ordinal; unknown levels count as the lowest rung."""
    if not level:
        return 1
    return LEVEL_ORDINALS.get(level.strip().upper(), 1)


@dataclass(frozen=True)
class ScoringInputs:
    """Everything gathered for one subject before scoring."""

    primary: Optional[RankingRecord]
    secondary: Mapping[ProviderRole, RankingRecord] = field(default_factory=dict)
    stats: Optional[StatsRecord] = None

    def ranks(self) -> dict[ProviderRole, int]:
        ranks: dict[ProviderRole, int] = {}
        if self.primary is not None:
            ranks[ProviderRole.PRIMARY] = self.primary.rank
        for role, record in self.secondary.items():
            if role != ProviderRole.PRIMARY and record is not None:
                ranks[role] = record.rank
        return ranks

    def explicit_band(self) -> Optional[RankingRecord]:
        """The secondary record that carries explicit ceiling/floor, if any."""
        for role in (ProviderRole.SECONDARY_B, ProviderRole.SECONDARY_A):
            record = self.secondary.get(role)
            if record is not None and record.ceiling is not None and record.floor is not None:
                return record
        return None

    def explicit_risk(self) -> Optional[RiskTier]:
        for role in (ProviderRole.SECONDARY_B, ProviderRole.SECONDARY_A):
            record = self.secondary.get(role)
            if record is not None and record.risk_tier:
                try:
                    return RiskTier(record.risk_tier)
                except ValueError:
                    continue
        return None


@dataclass(frozen=True)
class ScoredSubject:
    """Fused evaluation of one subject for one cycle."""

    subject_id: str
    name: str
    team: str
    position: Optional[str]
    level: Optional[str]
    source_rank: int
    composite_score: float
    ceiling_score: float
    floor_score: float
    risk_tier: RiskTier
    composite_rank: int
    age: Optional[int]
    eta: str = DEFAULT_ETA
    ops: float = 0.0
    k_percent: float = 0.0
    bb_percent: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["risk_tier"] = self.risk_tier.value
        return data


class CompositeScorer:
    """Fuses ranking and stats signals into a single 0-100 prospect score."""

    def performance_component(
        self, primary: RankingRecord, stats: Optional[StatsRecord]
    ) -> float:
        """Blend live stats when present, else rescale the provider's performance index."""
        if stats is not None:
            ops_score = clamp((stats.on_base_slugging - OPS_FLOOR) * OPS_SCALE, 0, 100)
            discipline_score = clamp(
                100 - (stats.strikeout_rate - stats.walk_rate) * PLATE_DISCIPLINE_SCALE, 0, 100
            )
            power_score = clamp(stats.isolated_power * ISO_MULTIPLIER, 0, 100)
            return ops_score * 0.5 + discipline_score * 0.3 + power_score * 0.2

        index = primary.performance_index or 0.0
        return clamp((index - PERFORMANCE_INDEX_FLOOR) * PERFORMANCE_INDEX_SCALE, 0, 100)

    def ranking_component(self, ranks: Mapping[ProviderRole, int]) -> float:
        weighted = 0.0
        total_weight = 0.0
        for role, rank in ranks.items():
            weight = RANKING_WEIGHTS[role]
            weighted += max(0, 100 - rank) * weight
            total_weight += weight
        return weighted / total_weight if total_weight else 0.0

    def age_vs_level_component(self, age: Optional[int], level: Optional[str]) -> float:
        """Positive when a subject plays above the level typical for their age."""
        if age is None:
            return 0.0
        expected = max(1, age - AGE_BASELINE)
        actual = level_ordinal(level)
        return clamp((actual - expected) * AGE_STEP_POINTS, -AGE_ADJUSTMENT_LIMIT, AGE_ADJUSTMENT_LIMIT)

    def level_bonus_component(self, level: Optional[str]) -> float:
        return level_ordinal(level) * LEVEL_BONUS_POINTS

    def composite_rank(self, ranks: Mapping[ProviderRole, int]) -> int:
        weighted = 0.0
        total_weight = 0.0
        for role, rank in ranks.items():
            weight = COMPOSITE_RANK_WEIGHTS[role]
            weighted += rank * weight
            total_weight += weight
        return round_half_up(weighted / total_weight)

    def score(self, inputs: ScoringInputs) -> Optional[ScoredSubject]:
        """
        Score one subject.

        Returns None when the subject has no primary ranking record: without it
        there is no level, age or identity to score against.
        """
        primary = inputs.primary
        if primary is None:
            return None

        ranks = inputs.ranks()
        raw = (
            self.performance_component(primary, inputs.stats) * COMPONENT_WEIGHTS["performance"]
            + self.ranking_component(ranks) * COMPONENT_WEIGHTS["ranking"]
            + self.age_vs_level_component(primary.age, primary.level) * COMPONENT_WEIGHTS["age_vs_level"]
            + self.level_bonus_component(primary.level) * COMPONENT_WEIGHTS["level_bonus"]
        )
        composite = round(clamp(raw, 0, 100), 2)

        band = inputs.explicit_band()
        if band is not None:
            ceiling, floor = float(band.ceiling), float(band.floor)
        else:
            ceiling = min(100.0, composite + CEILING_HEADROOM)
            floor = max(0.0, composite - FLOOR_DROP)
        # Provider bands may disagree with our own score; keep floor <= score <= ceiling
        ceiling = round(clamp(max(ceiling, composite), 0, 100), 2)
        floor = round(clamp(min(floor, composite), 0, 100), 2)

        risk = inputs.explicit_risk()
        if risk is None:
            spread = ceiling - floor
            if spread > HIGH_RISK_SPREAD:
                risk = RiskTier.HIGH
            elif spread < LOW_RISK_SPREAD:
                risk = RiskTier.LOW
            else:
                risk = RiskTier.MEDIUM

        pipeline = inputs.secondary.get(ProviderRole.SECONDARY_A)
        stats = inputs.stats
        return ScoredSubject(
            subject_id=primary.subject_id,
            name=primary.subject_name,
            team=primary.team,
            position=primary.position,
            level=primary.level,
            source_rank=primary.rank,
            composite_score=composite,
            ceiling_score=ceiling,
            floor_score=floor,
            risk_tier=risk,
            composite_rank=self.composite_rank(ranks),
            age=primary.age,
            eta=(pipeline.eta if pipeline and pipeline.eta else DEFAULT_ETA),
            ops=stats.on_base_slugging if stats else 0.0,
            k_percent=stats.strikeout_rate if stats else 0.0,
            bb_percent=stats.walk_rate if stats else 0.0,
        )

    def score_all(
        self,
        rankings: Mapping[ProviderRole, Iterable[RankingRecord]],
        stats: Mapping[str, StatsRecord],
    ) -> list[ScoredSubject]:
        """
        Score every subject in the primary provider's snapshot.

        Secondary records are matched by subject id; subjects that cannot be
        scored are left out rather than failing the batch.
        """
        by_role: dict[ProviderRole, dict[str, RankingRecord]] = {}
        for role, records in rankings.items():
            indexed: dict[str, RankingRecord] = {}
            for record in records:
                # First record wins if a provider lists a subject twice
                indexed.setdefault(record.subject_id, record)
            by_role[ProviderRole(role)] = indexed

        primary = by_role.get(ProviderRole.PRIMARY, {})
        scored: list[ScoredSubject] = []
        for subject_id, record in primary.items():
            secondary = {
                role: records[subject_id]
                for role, records in by_role.items()
                if role != ProviderRole.PRIMARY and subject_id in records
            }
            result = self.score(
                ScoringInputs(primary=record, secondary=secondary, stats=stats.get(subject_id))
            )
            if result is None:
                metrics.subjects_unscorable_total.inc()
                continue
            scored.append(result)

        metrics.subjects_scored_total.inc(len(scored))
        logger.info(f"Scored {len(scored)} of {len(primary)} subjects")
        return scored


def rank_top_n(subjects: Iterable[ScoredSubject], n: int) -> list[ScoredSubject]:
    """Order by score descending, then composite rank, then subject id; keep the first n."""
    ordered = sorted(
        subjects,
        key=lambda s: (-s.composite_score, s.composite_rank, s.subject_id),
    )
    return ordered[: max(0, n)]

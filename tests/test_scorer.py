"""Tests for the composite prospect scorer."""

import random

import pytest

from cardscout.detect.scorer import (
    CompositeScorer,
    RiskTier,
    ScoringInputs,
    level_ordinal,
    rank_top_n,
)
from cardscout.ingest.base import ProviderRole, RankingRecord, StatsRecord


def _primary(subject_id="1", rank=3, level="AAA", age=20, performance_index=120.0, name="Prospect"):
    return RankingRecord(
        provider="fangraphs",
        subject_id=subject_id,
        subject_name=name,
        team="BAL",
        rank=rank,
        level=level,
        performance_index=performance_index,
        age=age,
        position="SS",
    )


def _secondary(provider, rank, **kwargs):
    return RankingRecord(provider=provider, subject_id="1", subject_name="Prospect", team="BAL", rank=rank, **kwargs)


def _stats(ops=0.900, k=20.0, bb=10.0, iso=0.200):
    return StatsRecord(
        subject_id="1",
        on_base_slugging=ops,
        strikeout_rate=k,
        walk_rate=bb,
        isolated_power=iso,
        balls_in_play_rate=0.300,
        run_creation_index=120.0,
        games_played=80,
    )


@pytest.fixture
def scorer():
    return CompositeScorer()


def test_primary_only_subject_advanced_for_age(scorer):
    """Rank 3, no secondaries, no stats, age 20 at AAA."""
    result = scorer.score(ScoringInputs(primary=_primary()))

    # performance (120-80)*1.25=50, ranking 97, age (4-2)*8=16, level 4*5=20
    expected = 50 * 0.40 + 97 * 0.35 + 16 * 0.15 + 20 * 0.10
    assert result.composite_score == pytest.approx(expected, abs=1e-2)
    assert result.composite_score == pytest.approx(58.35, abs=1e-2)
    assert result.ceiling_score == pytest.approx(78.35, abs=1e-2)
    assert result.floor_score == pytest.approx(33.35, abs=1e-2)
    assert result.risk_tier == RiskTier.HIGH
    assert result.composite_rank == 3
    assert result.eta == "2025"
    assert result.ops == 0.0


def test_performance_component_blends_live_stats(scorer):
    # ops (0.9-0.6)*200=60, discipline 100-(20-10)*2=80, power 0.2*500=100
    assert scorer.performance_component(_primary(), _stats()) == pytest.approx(74.0)


def test_performance_component_clamps_sub_scores(scorer):
    stats = _stats(ops=0.450, k=80.0, bb=0.0, iso=0.500)
    # ops clamped to 0, discipline clamped to 0, power clamped to 100
    assert scorer.performance_component(_primary(), stats) == pytest.approx(20.0)


def test_performance_index_fallback_clamped(scorer):
    assert scorer.performance_component(_primary(performance_index=60.0), None) == 0.0
    assert scorer.performance_component(_primary(performance_index=200.0), None) == 100.0
    assert scorer.performance_component(_primary(performance_index=None), None) == 0.0


def test_ranking_component_renormalizes_over_reported_providers(scorer):
    all_three = {
        ProviderRole.PRIMARY: 10,
        ProviderRole.SECONDARY_A: 20,
        ProviderRole.SECONDARY_B: 30,
    }
    assert scorer.ranking_component(all_three) == pytest.approx(81.5)

    two = {ProviderRole.PRIMARY: 10, ProviderRole.SECONDARY_A: 20}
    assert scorer.ranking_component(two) == pytest.approx((90 * 0.40 + 80 * 0.35) / 0.75)

    assert scorer.ranking_component({ProviderRole.PRIMARY: 150}) == 0.0


def test_composite_rank_weights_primary_at_least_half(scorer):
    assert scorer.composite_rank({
        ProviderRole.PRIMARY: 10,
        ProviderRole.SECONDARY_A: 20,
        ProviderRole.SECONDARY_B: 30,
    }) == 17
    # (10*0.5 + 20*0.3) / 0.8 = 13.75
    assert scorer.composite_rank({ProviderRole.PRIMARY: 10, ProviderRole.SECONDARY_A: 20}) == 14


def test_age_vs_level_is_bounded(scorer):
    assert scorer.age_vs_level_component(18, "MLB") == 25
    assert scorer.age_vs_level_component(30, "A") == -25
    assert scorer.age_vs_level_component(None, "AA") == 0.0


def test_unknown_level_counts_as_lowest_rung():
    assert level_ordinal("Rookie") == 1
    assert level_ordinal(None) == 1
    assert level_ordinal(" aa ") == 3


def test_explicit_band_and_risk_from_secondary(scorer):
    inputs = ScoringInputs(
        primary=_primary(),
        secondary={
            ProviderRole.SECONDARY_B: _secondary(
                "baseball_prospectus", 4, ceiling=90.0, floor=40.0, risk_tier="Low"
            ),
        },
    )
    result = scorer.score(inputs)
    assert result.ceiling_score == 90.0
    assert result.floor_score == 40.0
    assert result.risk_tier == RiskTier.LOW


def test_explicit_band_is_widened_to_contain_score(scorer):
    inputs = ScoringInputs(
        primary=_primary(),
        secondary={
            ProviderRole.SECONDARY_B: _secondary("baseball_prospectus", 4, ceiling=50.0, floor=45.0),
        },
    )
    result = scorer.score(inputs)
    assert result.floor_score <= result.composite_score <= result.ceiling_score
    assert result.ceiling_score == result.composite_score


def test_eta_taken_from_pipeline(scorer):
    inputs = ScoringInputs(
        primary=_primary(),
        secondary={ProviderRole.SECONDARY_A: _secondary("mlb_pipeline", 5, eta="2026")},
    )
    assert scorer.score(inputs).eta == "2026"


def test_subject_without_primary_is_unscorable(scorer):
    assert scorer.score(ScoringInputs(primary=None)) is None

    scored = scorer.score_all(
        {ProviderRole.SECONDARY_A: [_secondary("mlb_pipeline", 1)]},
        {},
    )
    assert scored == []


def test_scores_are_bounded_for_random_inputs(scorer):
    rng = random.Random(20240601)
    levels = ["A", "A+", "AA", "AAA", "MLB", "Rk", None]
    for _ in range(500):
        secondary = {}
        if rng.random() < 0.6:
            secondary[ProviderRole.SECONDARY_A] = _secondary("mlb_pipeline", rng.randint(1, 300))
        if rng.random() < 0.6:
            ceiling = rng.uniform(0, 100)
            secondary[ProviderRole.SECONDARY_B] = _secondary(
                "baseball_prospectus",
                rng.randint(1, 300),
                ceiling=ceiling,
                floor=rng.uniform(0, ceiling),
            )
        stats = None
        if rng.random() < 0.5:
            stats = _stats(
                ops=rng.uniform(0.3, 1.4),
                k=rng.uniform(0, 60),
                bb=rng.uniform(0, 30),
                iso=rng.uniform(0, 0.5),
            )
        inputs = ScoringInputs(
            primary=_primary(
                rank=rng.randint(1, 500),
                level=rng.choice(levels),
                age=rng.choice([None, *range(16, 32)]),
                performance_index=rng.choice([None, rng.uniform(0, 250)]),
            ),
            secondary=secondary,
            stats=stats,
        )
        result = scorer.score(inputs)
        assert 0 <= result.composite_score <= 100
        assert result.floor_score <= result.composite_score <= result.ceiling_score
        assert 0 <= result.floor_score and result.ceiling_score <= 100


def test_scoring_is_deterministic(scorer):
    inputs = ScoringInputs(
        primary=_primary(),
        secondary={ProviderRole.SECONDARY_A: _secondary("mlb_pipeline", 7, eta="2025")},
        stats=_stats(),
    )
    first = scorer.score(inputs)
    second = CompositeScorer().score(inputs)
    assert first == second
    assert repr(first.to_dict()) == repr(second.to_dict())


def test_score_all_matches_secondaries_by_subject_id(scorer):
    rankings = {
        ProviderRole.PRIMARY: [_primary("1", rank=5), _primary("2", rank=8, name="Other")],
        ProviderRole.SECONDARY_A: [_secondary("mlb_pipeline", 2, eta="2024")],
    }
    scored = {s.subject_id: s for s in scorer.score_all(rankings, {"1": _stats()})}
    assert set(scored) == {"1", "2"}
    assert scored["1"].eta == "2024"
    assert scored["1"].ops == 0.900
    assert scored["2"].eta == "2025"
    assert scored["2"].ops == 0.0


def test_duplicate_primary_rows_keep_first(scorer):
    rankings = {ProviderRole.PRIMARY: [_primary("1", rank=5), _primary("1", rank=50)]}
    scored = scorer.score_all(rankings, {})
    assert len(scored) == 1
    assert scored[0].source_rank == 5


def test_top_n_ties_broken_by_composite_rank_then_id(scorer):
    # Identical inputs apart from id/rank give identical scores only when ranks match
    a = scorer.score(ScoringInputs(primary=_primary("b", rank=10)))
    b = scorer.score(ScoringInputs(primary=_primary("a", rank=10)))
    c = scorer.score(ScoringInputs(primary=_primary("c", rank=2)))
    assert a.composite_score == b.composite_score

    ordered = rank_top_n([a, b, c], 3)
    assert [s.subject_id for s in ordered] == ["c", "a", "b"]
    assert rank_top_n([a, b, c], 1) == [c]
    assert rank_top_n([a, b, c], 0) == []

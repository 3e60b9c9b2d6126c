"""
Trinity context engine: cache order, credential gating, full and fallback analysis.
"""

import pytest

from matchoracle.config import ApiKeys
from matchoracle.trinity.cache import TrinityMetricsCache
from matchoracle.trinity.context import (
    EMERGENCY_REASONING,
    FALLBACK_REASONING,
    NEUTRAL_CONTEXT,
    SimulationContext,
)
from matchoracle.trinity.engine import TrinityContextEngine, context_from_llm
from matchoracle.utils.ids import create_fixture_id
from tests.conftest import FakeLLMFactory, make_match

HOME, AWAY, SEASON, FIXTURE = 50, 42, 2025, 1234
KEYS = ApiKeys(sports_data="sports-key", llm="llm-key")


@pytest.fixture
def cache(clock):
    return TrinityMetricsCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def engine(provider, cache, llm_factory):
    return TrinityContextEngine(provider, cache, llm_factory)


def seed_recent(provider, count_home=3, count_away=1):
    provider.fixtures[HOME] = [make_match(i, HOME, 900 + i, 1, 0, days_ago=i * 4) for i in range(1, count_home + 1)]
    provider.fixtures[AWAY] = [make_match(100 + i, 901, AWAY, 1, 1, days_ago=i * 4) for i in range(1, count_away + 1)]


class TestContextFromLLM:
    def test_maps_per_side_values(self):
        context = context_from_llm({
            "fatigue_home": 20, "fatigue_away": 40, "style_matchup": 1.2,
            "lineup_strength_home": 90, "lineup_strength_away": 80, "reasoning": "ok",
        })
        assert context.fatigue_score == 30
        assert context.lineup_strength == 85
        assert context.style_matchup == 1.2
        assert (context.home_fitness, context.away_fitness) == (80, 60)
        assert (context.home_distraction, context.away_distraction) == (10, 20)

    def test_out_of_range_values_clamped(self):
        context = context_from_llm({"fatigue_home": 400, "fatigue_away": -3, "style_matchup": 9})
        assert context.home_fitness == 0
        assert context.away_fitness == 100
        assert context.style_matchup == 1.5


class TestCredentialGating:
    @pytest.mark.asyncio
    async def test_missing_keys_return_neutral_context(self, engine, llm_factory, cache):
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, ApiKeys())
        assert context.metrics() == NEUTRAL_CONTEXT.metrics()
        assert "Missing API keys" in context.reasoning
        assert llm_factory.prompts == []
        assert cache.get_by_fixture_id(FIXTURE) is None

    @pytest.mark.asyncio
    async def test_one_missing_key_is_enough(self, engine):
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, ApiKeys(sports_data="x", llm="  "))
        assert "Missing API keys" in context.reasoning


class TestFullAnalysis:
    @pytest.mark.asyncio
    async def test_llm_read_is_mapped_and_cached(self, engine, llm_factory, cache, provider):
        seed_recent(provider)
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert context.fatigue_score == 30
        assert context.reasoning.startswith("Home side rested")
        assert llm_factory.keys == ["llm-key"]
        assert llm_factory.closed == 1
        assert cache.get_by_fixture_id(FIXTURE) is not None

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, engine, llm_factory, provider):
        seed_recent(provider)
        first = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        second = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert second.metrics() == first.metrics()
        assert len(llm_factory.prompts) == 1

    @pytest.mark.asyncio
    async def test_team_pair_cache_used_for_other_fixture_ids(self, engine, llm_factory, provider):
        seed_recent(provider)
        await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        await engine.compute_context(FIXTURE + 1, HOME, AWAY, SEASON, KEYS)
        assert len(llm_factory.prompts) == 1

    @pytest.mark.asyncio
    async def test_cache_expiry_triggers_recompute(self, engine, llm_factory, provider, clock):
        seed_recent(provider)
        await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        clock.advance(301)
        await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert len(llm_factory.prompts) == 2

    @pytest.mark.asyncio
    async def test_prompt_carries_team_names(self, engine, llm_factory, provider):
        provider.fixtures_by_id[FIXTURE] = make_match(
            FIXTURE, HOME, AWAY, None, None, status="NS", home_name="Ajax", away_name="PSV"
        )
        await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert "home_team: Ajax" in llm_factory.prompts[0]
        assert "away_team: PSV" in llm_factory.prompts[0]

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_heuristics(self, provider, cache):
        seed_recent(provider, count_home=3, count_away=1)
        engine = TrinityContextEngine(provider, cache, FakeLLMFactory(status="ERROR"))
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert context.reasoning == FALLBACK_REASONING
        # home 3 matches -> 60, away 1 match -> 20
        assert context.fatigue_score == 40
        assert (context.home_fitness, context.away_fitness) == (70, 90)
        assert context.lineup_strength == 85
        assert (context.home_distraction, context.away_distraction) == (15, 15)
        assert cache.get_by_fixture_id(FIXTURE).reasoning == FALLBACK_REASONING

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self, provider, cache):
        engine = TrinityContextEngine(provider, cache, FakeLLMFactory(reply=lambda prompt: "no json here"))
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert context.reasoning == FALLBACK_REASONING

    @pytest.mark.asyncio
    async def test_client_exception_falls_back_to_heuristics(self, provider, cache):
        def garbled(prompt):
            raise ValueError("Expecting value: line 1 column 1 (char 0)")

        llm = FakeLLMFactory(reply=garbled)
        engine = TrinityContextEngine(provider, cache, llm)
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)

        assert context.reasoning == FALLBACK_REASONING
        assert llm.closed == 1
        assert cache.get_by_fixture_id(FIXTURE).reasoning == FALLBACK_REASONING

    @pytest.mark.asyncio
    async def test_provider_outage_still_yields_context(self, engine, provider):
        provider.failing = {"get_fixture_by_id", "get_last_fixtures_for_team", "get_fixture_lineups"}
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert isinstance(context, SimulationContext)
        assert context.fatigue_score == 30


class TestSyntheticFixture:
    @pytest.mark.asyncio
    async def test_no_fixture_runs_light_analysis_under_synthetic_id(self, engine, llm_factory, provider, cache):
        seed_recent(provider)
        context = await engine.compute_context(None, HOME, AWAY, SEASON, KEYS)
        assert context.reasoning == FALLBACK_REASONING
        assert llm_factory.prompts == []
        assert cache.get_by_fixture_id(create_fixture_id(HOME, AWAY)) is not None


class TestNeverRaises:
    @pytest.mark.asyncio
    async def test_fallback_internal_failure_gives_emergency_context(self, engine, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("broken")

        monkeypatch.setattr("matchoracle.trinity.engine._safe", explode)
        context = await engine.analyze_fallback(HOME, AWAY)
        assert context.reasoning == EMERGENCY_REASONING
        assert context.fatigue_score == 50

    @pytest.mark.asyncio
    async def test_unexpected_failure_becomes_neutral(self, engine, cache, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("cache offline")

        monkeypatch.setattr(cache, "get_by_teams_and_season", explode)
        context = await engine.compute_context(FIXTURE, HOME, AWAY, SEASON, KEYS)
        assert context.metrics() == NEUTRAL_CONTEXT.metrics()
        assert "cache offline" in context.reasoning


class TestSimulationContext:
    def test_neutral_has_no_signal(self):
        assert NEUTRAL_CONTEXT.is_neutral
        assert not NEUTRAL_CONTEXT.has_meaningful_data()
        assert not NEUTRAL_CONTEXT.has_high_fatigue()
        assert not NEUTRAL_CONTEXT.has_weak_lineup()

    def test_predicates(self):
        context = SimulationContext(fatigue_score=75, lineup_strength=60, style_matchup=1.2)
        assert context.has_high_fatigue()
        assert context.has_weak_lineup()
        assert context.has_style_advantage()
        assert not context.has_style_disadvantage()
        assert context.has_meaningful_data()

    def test_values_clamped(self):
        context = SimulationContext(home_fitness=140, away_distraction=-5, style_matchup=0.1)
        assert (context.home_fitness, context.away_distraction, context.style_matchup) == (100, 0, 0.5)

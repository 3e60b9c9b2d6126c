"""
LLMGRADE: response parsing, enhancement aggregates and the cached grading service.
"""

import json

import pytest

from matchoracle.config import ApiKeys
from matchoracle.etl.base import InjuryData
from matchoracle.llm.enhancement import (
    ContextFactor,
    ContextFactorType,
    LLMGradeEnhancement,
    OutlierScenario,
    RiskLevel,
    confidence_adjustment_for,
)
from matchoracle.llm.grading import LLMGradeService, parse_enhancement, prompt_hash
from matchoracle.llm.parsing import parse_json_response
from matchoracle.ml.tesseract import TesseractResult
from matchoracle.utils.cache import TTLCache
from tests.conftest import GRADE_REPLY, FakeLLMFactory

KEYS = ApiKeys(sports_data="sports-key", llm="llm-key")
TESSERACT = TesseractResult(0.5, 0.3, 0.2, "1-0")


class TestParseJsonResponse:
    def test_markdown_fence(self):
        assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_chatter_around_object(self):
        assert parse_json_response('Sure! {"a": {"b": "}"}} hope this helps') == {"a": {"b": "}"}}

    def test_newlines_inside_strings(self):
        assert parse_json_response('{"reasoning": "line one\nline two"}') == {"reasoning": "line one line two"}

    @pytest.mark.parametrize("text", ["", "no json", "[1, 2]", "{broken"])
    def test_invalid_returns_none(self, text):
        assert parse_json_response(text) is None


class TestContextFactor:
    def test_default_weight_per_type(self):
        factor = ContextFactor(ContextFactorType.INJURIES, 8, "Key striker out")
        assert factor.weight == 1.5
        assert factor.weighted_score == 12.0
        assert factor.is_high_impact

    @pytest.mark.parametrize(
        "score,description,weight",
        [
            (0, "x", None),
            (11, "x", None),
            (5, " ", None),
            (5, "x", 0),
            (5, "x", float("nan")),
            (5, "x", float("inf")),
        ],
    )
    def test_validation(self, score, description, weight):
        with pytest.raises(ValueError):
            ContextFactor(ContextFactorType.SENTIMENT, score, description, weight)

    def test_lenient_type_parsing(self):
        assert ContextFactorType.parse("form anomaly") == ContextFactorType.FORM_ANOMALY
        assert ContextFactorType.parse("team-morale") == ContextFactorType.TEAM_MORALE
        assert ContextFactorType.parse("ALIENS") is None


class TestOutlierScenario:
    @pytest.mark.parametrize(
        "probability,impact,expected",
        [(70, 8, RiskLevel.HIGH), (50, 5, RiskLevel.MEDIUM), (69, 9, RiskLevel.MEDIUM), (20, 9, RiskLevel.LOW)],
    )
    def test_risk_level(self, probability, impact, expected):
        assert OutlierScenario("x", probability, impact).risk_level == expected


class TestEnhancement:
    def test_context_score_neutral_when_empty(self):
        enhancement = LLMGradeEnhancement()
        assert enhancement.overall_context_score == 5.0
        assert enhancement.overall_risk_level == RiskLevel.LOW

    def test_context_score_clamped_to_ten(self):
        factors = [ContextFactor(ContextFactorType.INJURIES, 10, "crisis")]
        assert LLMGradeEnhancement.build(factors, [], "").overall_context_score == 10.0

    def test_high_impact_factor_raises_risk_to_medium(self):
        factors = [ContextFactor(ContextFactorType.WEATHER, 9, "storm")]
        assert LLMGradeEnhancement.build(factors, [], "").overall_risk_level == RiskLevel.MEDIUM

    def test_scenario_risk_dominates(self):
        scenarios = [OutlierScenario("collapse", 80, 9)]
        assert LLMGradeEnhancement.build([], scenarios, "").overall_risk_level == RiskLevel.HIGH

    def test_confidence_adjustment_buckets(self):
        assert confidence_adjustment_for([]) == 0
        strong = [ContextFactor(ContextFactorType.SENTIMENT, 9, "buzz")]
        weak = [ContextFactor(ContextFactorType.SENTIMENT, 1, "gloom")]
        assert confidence_adjustment_for(strong) == 15
        assert confidence_adjustment_for(weak) == -15

    def test_adjusted_confidence_clamped(self):
        enhancement = LLMGradeEnhancement(confidence_adjustment=15)
        assert enhancement.adjusted_confidence(95) == 100

    def test_rejects_out_of_range_adjustment(self):
        with pytest.raises(ValueError):
            LLMGradeEnhancement(confidence_adjustment=25)


class TestParseEnhancement:
    def test_reference_reply(self):
        enhancement = parse_enhancement(GRADE_REPLY)
        assert [f.type for f in enhancement.context_factors] == [
            ContextFactorType.INJURIES,
            ContextFactorType.TEAM_MORALE,
        ]
        assert len(enhancement.outlier_scenarios) == 1
        assert enhancement.enhanced_reasoning == "Injuries temper the home edge."

    def test_malformed_entries_are_skipped(self):
        payload = {
            "context_factors": [
                {"type": "UNKNOWN", "score": 5, "description": "?"},
                {"type": "INJURIES", "score": 5, "description": ""},
                {"type": "PRESSURE", "score": "7", "description": "Derby"},
                {"type": "INJURIES", "score": 6, "description": "Keeper out", "weight": float("nan")},
                "not a dict",
            ],
            "outlier_scenarios": [{"description": "", "probability": 10, "impact_score": 3}],
        }
        enhancement = parse_enhancement(payload)
        assert len(enhancement.context_factors) == 1
        assert enhancement.context_factors[0].score == 7
        assert enhancement.outlier_scenarios == ()


class TestPromptHash:
    def test_stable_and_sensitive(self):
        base = prompt_hash(1, "2-1", 75, "1-0")
        assert base == prompt_hash(1, "2-1", 75, "1-0")
        assert base != prompt_hash(1, "2-1", 76, "1-0")
        assert base != prompt_hash(1, "2-1", 75, "1-1")
        assert base != prompt_hash(2, "2-1", 75, "1-0")


@pytest.fixture
def service(provider, llm_factory, clock):
    return LLMGradeService(provider, llm_factory, cache=TTLCache(ttl=3600, max_entries=30, clock=clock))


async def grade(service, **overrides):
    kwargs = dict(
        fixture_id=1234,
        prediction="2-1",
        confidence=75,
        tesseract=TESSERACT,
        api_keys=KEYS,
        home_team_id=50,
        away_team_id=42,
        home_name="Ajax",
        away_name="PSV",
    )
    kwargs.update(overrides)
    return await service.grade(**kwargs)


class TestLLMGradeService:
    @pytest.mark.asyncio
    async def test_no_llm_key_returns_none(self, service, llm_factory):
        assert await grade(service, api_keys=ApiKeys(sports_data="x")) is None
        assert llm_factory.prompts == []

    @pytest.mark.asyncio
    async def test_success_is_cached(self, service, llm_factory):
        first = await grade(service)
        second = await grade(service)
        assert first is second
        assert len(llm_factory.prompts) == 1

    @pytest.mark.asyncio
    async def test_changed_prediction_misses_cache(self, service, llm_factory):
        await grade(service)
        await grade(service, confidence=60)
        assert len(llm_factory.prompts) == 2

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, service, llm_factory):
        await grade(service)
        await grade(service, force_refresh=True)
        assert len(llm_factory.prompts) == 2

    @pytest.mark.asyncio
    async def test_injuries_included_for_real_fixtures(self, service, llm_factory, provider):
        provider.injuries[1234] = [InjuryData(team_id=50, player_name="J. Timber", injury_type="Missing Fixture")]
        await grade(service)
        assert "J. Timber" in llm_factory.prompts[0]

    @pytest.mark.asyncio
    async def test_match_intel_reaches_the_prompt(self, service, llm_factory):
        await grade(service, intel={"head_to_head_home_wdl": [2, 1, 0]})
        assert '"head_to_head_home_wdl": [2, 1, 0]' in llm_factory.prompts[0]

    def test_injected_empty_cache_is_kept(self, provider, llm_factory, clock):
        cache = TTLCache(ttl=60, max_entries=3, clock=clock)
        assert LLMGradeService(provider, llm_factory, cache=cache).cache is cache

    @pytest.mark.asyncio
    async def test_synthetic_fixture_skips_injury_lookup(self, service, provider):
        await grade(service, is_real_fixture=False)
        assert provider.calls["get_injuries"] == 0

    @pytest.mark.asyncio
    async def test_injury_lookup_failure_is_tolerated(self, service, provider):
        provider.failing = {"get_injuries"}
        assert await grade(service) is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "factory",
        [
            FakeLLMFactory(status="TIMEOUT"),
            FakeLLMFactory(reply=lambda prompt: "I cannot help with that"),
        ],
    )
    async def test_failures_return_none(self, provider, factory, clock):
        service = LLMGradeService(provider, factory, cache=TTLCache(ttl=60, clock=clock))
        assert await grade(service) is None

    @pytest.mark.asyncio
    async def test_empty_object_is_valid_but_neutral(self, provider, clock):
        service = LLMGradeService(provider, FakeLLMFactory(reply=lambda p: json.dumps({})), cache=TTLCache(ttl=60, clock=clock))
        enhancement = await grade(service)
        assert enhancement.context_factors == ()
        assert enhancement.overall_context_score == 5.0

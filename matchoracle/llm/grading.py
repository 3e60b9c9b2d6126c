"""
LLMGRADE: qualitative context grading.

Optional stage. Returns None (never raises) when there is no LLM key, the
call fails, or the output cannot be parsed. Results are cached per
(fixture, prompt hash) so re-running an unchanged analysis is free.
"""

import hashlib
import json
import logging
import time
from typing import Callable, Optional

from matchoracle.config import ApiKeys
from matchoracle.etl.base import DataProvider, InjuryData
from matchoracle.llm.enhancement import (
    ContextFactor,
    ContextFactorType,
    LLMGradeEnhancement,
    OutlierScenario,
)
from matchoracle.llm.parsing import coerce_int, parse_json_response
from matchoracle.llm.prompts import LLMGRADE_PROMPT_VERSION, build_llmgrade_prompt
from matchoracle.ml.tesseract import TesseractResult
from matchoracle.telemetry import record_cache_lookup, record_llm_request
from matchoracle.utils.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 12 * 60 * 60
DEFAULT_CACHE_MAX_ENTRIES = 30


def prompt_hash(
    fixture_id: int,
    prediction: Optional[str],
    confidence: Optional[int],
    tesseract_score: Optional[str],
) -> str:
    """sha256 over the canonical JSON of everything the prompt depends on."""
    payload = json.dumps(
        {
            "fixture_id": fixture_id,
            "prediction": prediction,
            "confidence": confidence,
            "tesseract": tesseract_score,
            "version": LLMGRADE_PROMPT_VERSION,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _parse_factor(raw) -> Optional[ContextFactor]:
    if not isinstance(raw, dict):
        return None
    factor_type = ContextFactorType.parse(raw.get("type"))
    if factor_type is None:
        return None
    weight = raw.get("weight")
    try:
        return ContextFactor(
            type=factor_type,
            score=coerce_int(raw.get("score"), 5, 1, 10),
            description=str(raw.get("description") or "").strip(),
            weight=float(weight) if weight is not None else None,
        )
    except (TypeError, ValueError) as e:
        logger.debug(f"[LLMGRADE] Skipping malformed factor {raw!r}: {e}")
        return None


def _string_tuple(value) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value if v)


def _parse_scenario(raw) -> Optional[OutlierScenario]:
    if not isinstance(raw, dict):
        return None
    try:
        return OutlierScenario(
            description=str(raw.get("description") or "").strip(),
            probability=coerce_int(raw.get("probability"), 0, 0, 100),
            impact_score=coerce_int(raw.get("impact_score"), 1, 1, 10),
            supporting_factors=_string_tuple(raw.get("supporting_factors")),
            historical_precedents=_string_tuple(raw.get("historical_precedents")),
        )
    except (TypeError, ValueError) as e:
        logger.debug(f"[LLMGRADE] Skipping malformed scenario {raw!r}: {e}")
        return None


def parse_enhancement(payload: dict, generated_at: float = 0.0) -> LLMGradeEnhancement:
    """Build an enhancement from the model's JSON, dropping entries that fail validation."""
    factors = [
        f for f in (_parse_factor(raw) for raw in payload.get("context_factors") or []) if f
    ]
    scenarios = [
        s for s in (_parse_scenario(raw) for raw in payload.get("outlier_scenarios") or []) if s
    ]
    reasoning = str(payload.get("enhanced_reasoning") or "").strip()
    return LLMGradeEnhancement.build(factors, scenarios, reasoning, generated_at=generated_at)


class LLMGradeService:
    def __init__(
        self,
        provider: DataProvider,
        llm_factory: Callable[[str], object],
        cache: Optional[TTLCache] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self.llm_factory = llm_factory
        self.cache = cache if cache is not None else TTLCache(
            ttl=DEFAULT_CACHE_TTL_SECONDS, max_entries=DEFAULT_CACHE_MAX_ENTRIES
        )
        self.clock = clock

    def invalidate_fixture(self, fixture_id: int) -> int:
        return self.cache.invalidate_where(lambda key: key[0] == fixture_id)

    async def grade(
        self,
        fixture_id: int,
        prediction: Optional[str],
        confidence: Optional[int],
        tesseract: Optional[TesseractResult],
        api_keys: ApiKeys,
        home_team_id: int,
        away_team_id: int,
        home_name: str = "Home Team",
        away_name: str = "Away Team",
        league_name: Optional[str] = None,
        is_real_fixture: bool = True,
        force_refresh: bool = False,
        intel: Optional[dict] = None,
    ) -> Optional[LLMGradeEnhancement]:
        if not api_keys.llm:
            logger.info(f"[LLMGRADE] No LLM key, skipping fixture={fixture_id}")
            return None

        if force_refresh:
            dropped = self.invalidate_fixture(fixture_id)
            logger.info(f"[LLMGRADE] Force refresh fixture={fixture_id}, dropped {dropped} cached entries")

        tesseract_score = tesseract.most_likely_score if tesseract else None
        key = (fixture_id, prompt_hash(fixture_id, prediction, confidence, tesseract_score))
        hit, cached = self.cache.get(key)
        record_cache_lookup("llmgrade", hit)
        if hit:
            logger.debug(f"[LLMGRADE] Cache HIT fixture={fixture_id}")
            return cached

        try:
            enhancement = await self._generate(
                fixture_id,
                prediction,
                confidence,
                tesseract_score,
                api_keys.llm,
                home_team_id,
                away_team_id,
                home_name,
                away_name,
                league_name,
                is_real_fixture,
                intel,
            )
        except Exception as e:
            logger.warning(f"[LLMGRADE] Grading failed fixture={fixture_id}: {e}")
            record_llm_request("llmgrade", "EXCEPTION")
            return None

        if enhancement is not None:
            self.cache.set(key, enhancement)
        return enhancement

    async def _generate(
        self,
        fixture_id: int,
        prediction: Optional[str],
        confidence: Optional[int],
        tesseract_score: Optional[str],
        llm_key: str,
        home_team_id: int,
        away_team_id: int,
        home_name: str,
        away_name: str,
        league_name: Optional[str],
        is_real_fixture: bool,
        intel: Optional[dict] = None,
    ) -> Optional[LLMGradeEnhancement]:
        injuries: list[InjuryData] = []
        if is_real_fixture:
            try:
                injuries = await self.provider.get_injuries(fixture_id) or []
            except Exception as e:
                logger.warning(f"[LLMGRADE] Injuries unavailable fixture={fixture_id}: {e}")

        prompt = build_llmgrade_prompt(
            home_name=home_name,
            away_name=away_name,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            oracle_prediction=prediction,
            oracle_confidence=confidence,
            tesseract_score=tesseract_score,
            injuries=injuries,
            league_name=league_name,
            intel=intel,
        )

        client = self.llm_factory(llm_key)
        try:
            result = await client.generate(prompt)
        finally:
            await client.close()

        record_llm_request("llmgrade", result.status)
        if not result.ok:
            logger.warning(f"[LLMGRADE] LLM call failed fixture={fixture_id}: {result.status} {result.error}")
            return None

        payload = parse_json_response(result.text)
        if payload is None:
            record_llm_request("llmgrade", "PARSE_ERROR")
            logger.warning(f"[LLMGRADE] Unparseable output fixture={fixture_id}")
            return None

        enhancement = parse_enhancement(payload, generated_at=self.clock())
        logger.info(
            f"[LLMGRADE] fixture={fixture_id} factors={len(enhancement.context_factors)} "
            f"scenarios={len(enhancement.outlier_scenarios)} "
            f"score={enhancement.overall_context_score} risk={enhancement.overall_risk_level.value}"
        )
        return enhancement

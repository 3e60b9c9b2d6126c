"""
Oracle orchestrator (composition root).

    standings -> power score || Trinity context || match intel
              -> Tesseract -> LLMGRADE -> [bias adjuster] -> ledger (fire-and-forget)

Both public entry points are total: any unexpected failure becomes
OracleAnalysis.error(...) and nothing is raised to the caller.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from matchoracle.analysis import AnalysisStage, OracleAnalysis
from matchoracle.config import ApiKeys, Settings, get_settings
from matchoracle.etl.base import DataProvider
from matchoracle.features.intel import MatchIntel, MatchIntelService
from matchoracle.features.standings import StandingsResolution, StandingsResolver
from matchoracle.ledger.service import PredictionLedger
from matchoracle.llm.enhancement import ContextFactorType
from matchoracle.llm.gemini_client import gemini_client_factory
from matchoracle.llm.grading import LLMGradeService
from matchoracle.ml import power_score
from matchoracle.ml.adjuster import ContextAdjuster, apply_quick_fix
from matchoracle.ml.tesseract import TesseractEngine
from matchoracle.telemetry import observe_analysis_duration, record_stage_degraded
from matchoracle.trinity.cache import TrinityMetricsCache
from matchoracle.trinity.engine import TrinityContextEngine
from matchoracle.utils.cache import TTLCache
from matchoracle.utils.ids import create_fixture_id

logger = logging.getLogger(__name__)

# Power scores are on a 0-200 scale, Tesseract works on 0-100
SIMULATOR_POWER_DIVISOR = 2


class OracleService:
    def __init__(
        self,
        provider: DataProvider,
        llm_factory: Callable[[str], object] = gemini_client_factory,
        credentials: Optional[Callable[[], ApiKeys]] = None,
        ledger: Optional[PredictionLedger] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = settings or get_settings()
        self.provider = provider
        self.credentials = credentials or (lambda: ApiKeys.from_settings(settings))

        self.standings = StandingsResolver(provider)
        self.trinity_cache = TrinityMetricsCache(ttl_seconds=settings.TRINITY_CACHE_TTL_SECONDS, clock=clock)
        self.trinity = TrinityContextEngine(provider, self.trinity_cache, llm_factory)
        self.intel = MatchIntelService(
            provider,
            llm_factory,
            cache=TTLCache(ttl=settings.INTEL_CACHE_TTL_SECONDS, clock=clock),
        )
        self.tesseract = TesseractEngine(max_goals=settings.TESSERACT_MAX_GOALS, rho=settings.TESSERACT_RHO)
        self.llmgrade = LLMGradeService(
            provider,
            llm_factory,
            cache=TTLCache(
                ttl=settings.LLMGRADE_CACHE_TTL_SECONDS,
                max_entries=settings.LLMGRADE_CACHE_MAX_ENTRIES,
                clock=clock,
            ),
        )
        self.adjuster = ContextAdjuster()
        self.ledger = ledger if ledger is not None else PredictionLedger(max_queue_size=settings.LEDGER_QUEUE_MAXSIZE)

    async def get_oracle_analysis(
        self,
        league_id: int,
        season: int,
        home_team_id: int,
        away_team_id: int,
        fixture_id: Optional[int] = None,
        force_refresh: bool = False,
    ) -> OracleAnalysis:
        return await self._run(
            "oracle", league_id, season, home_team_id, away_team_id, fixture_id, force_refresh, adjust=False
        )

    async def get_context_adjusted_oracle_analysis(
        self,
        league_id: int,
        season: int,
        home_team_id: int,
        away_team_id: int,
        fixture_id: Optional[int] = None,
        force_refresh: bool = False,
    ) -> OracleAnalysis:
        return await self._run(
            "context_adjusted", league_id, season, home_team_id, away_team_id, fixture_id, force_refresh, adjust=True
        )

    async def _run(
        self,
        entry: str,
        league_id: int,
        season: int,
        home_team_id: int,
        away_team_id: int,
        fixture_id: Optional[int],
        force_refresh: bool,
        adjust: bool,
    ) -> OracleAnalysis:
        started = time.perf_counter()
        try:
            api_keys = self.credentials()
            analysis, resolution, intel = await self._analyze(
                league_id, season, home_team_id, away_team_id, fixture_id, api_keys, force_refresh
            )
            if adjust:
                await self._adjust(analysis, home_team_id, away_team_id, fixture_id, intel)

            match_name = _match_name(resolution, home_team_id, away_team_id)
            if await self.ledger.submit(analysis, home_team_id, away_team_id, match_name, fixture_id):
                analysis.advance(AnalysisStage.LOGGED)
            return analysis
        except Exception as e:
            logger.exception(f"[ORACLE] {entry} analysis failed {home_team_id} vs {away_team_id}: {e}")
            record_stage_degraded("oracle", "exception")
            return OracleAnalysis.error(str(e))
        finally:
            observe_analysis_duration(entry, (time.perf_counter() - started) * 1000)

    async def _analyze(
        self,
        league_id: int,
        season: int,
        home_team_id: int,
        away_team_id: int,
        fixture_id: Optional[int],
        api_keys: ApiKeys,
        force_refresh: bool,
    ) -> tuple[OracleAnalysis, StandingsResolution, MatchIntel]:
        resolution = await self.standings.resolve(league_id, season, home_team_id, away_team_id)
        home_name = resolution.home.team_name
        away_name = resolution.away.team_name

        # Trinity and the intel fan-out run while the power score is computed
        context_task = asyncio.create_task(
            self.trinity.compute_context(fixture_id, home_team_id, away_team_id, season, api_keys, league_id)
        )
        intel_task = asyncio.create_task(
            self.intel.gather(home_team_id, away_team_id, api_keys, home_name, away_name)
        )
        try:
            power = power_score.calculate(
                resolution.home,
                resolution.away,
                confidence_adjustment=resolution.confidence_adjustment,
            )
        except Exception:
            context_task.cancel()
            intel_task.cancel()
            raise

        analysis = OracleAnalysis(
            home_power_score=power.home_power_score,
            away_power_score=power.away_power_score,
            prediction=power.prediction_seed,
            confidence=power.confidence,
            reasoning=power.reasoning,
            standings_source=resolution.source,
            confidence_adjustment=resolution.confidence_adjustment,
        )
        analysis.advance(AnalysisStage.STANDINGS_RESOLVED)
        if resolution.confidence_adjustment < 1.0:
            logger.warning(
                f"[ORACLE] stage={analysis.stage.value} degraded standings source={resolution.source}"
            )
        analysis.advance(AnalysisStage.POWER_SCORED)

        context, intel = await asyncio.gather(context_task, intel_task)
        analysis.simulation_context = context
        analysis.advance(AnalysisStage.CONTEXT_READY)
        if not context.has_meaningful_data():
            logger.warning(f"[ORACLE] stage={analysis.stage.value} neutral context: {context.reasoning}")

        analysis.tesseract = self.tesseract.simulate_match(
            power.home_power_score / SIMULATOR_POWER_DIVISOR,
            power.away_power_score / SIMULATOR_POWER_DIVISOR,
            context,
        )
        analysis.advance(AnalysisStage.SIMULATED)

        is_real_fixture = fixture_id is not None and fixture_id > 0
        grade = await self.llmgrade.grade(
            fixture_id if is_real_fixture else create_fixture_id(home_team_id, away_team_id),
            prediction=analysis.prediction,
            confidence=analysis.confidence,
            tesseract=analysis.tesseract,
            api_keys=api_keys,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            home_name=home_name or "Home Team",
            away_name=away_name or "Away Team",
            is_real_fixture=is_real_fixture,
            force_refresh=force_refresh,
            intel=intel.to_prompt_dict(),
        )
        if grade is not None:
            analysis.llm_grade_enhancement = grade
            analysis.confidence = grade.adjusted_confidence(analysis.confidence)
            analysis.advance(AnalysisStage.GRADED)
        else:
            analysis.advance(AnalysisStage.UNGRADED)
            logger.info(f"[ORACLE] stage={analysis.stage.value} no LLMGRADE enhancement")

        analysis.reasoning = _compose_reasoning(analysis, intel)
        logger.info(
            f"[ORACLE] {home_team_id} vs {away_team_id}: {analysis.prediction} "
            f"({analysis.confidence}%) power={analysis.home_power_score}/{analysis.away_power_score} "
            f"source={analysis.standings_source} stage={analysis.stage.value}"
        )
        return analysis, resolution, intel

    async def _adjust(
        self,
        analysis: OracleAnalysis,
        home_team_id: int,
        away_team_id: int,
        fixture_id: Optional[int],
        intel: MatchIntel,
    ) -> None:
        grade = analysis.llm_grade_enhancement
        factors = list(grade.context_factors) if grade else []

        adjusted = self.adjuster.adjust(
            home_power=analysis.home_power_score,
            away_power=analysis.away_power_score,
            base_score=analysis.prediction,
            base_confidence=analysis.confidence,
            base_reasoning=analysis.reasoning,
            factors=factors,
            tesseract=analysis.tesseract,
        )

        home_favoured = analysis.power_delta >= 0
        favoured_team = home_team_id if home_favoured else away_team_id
        reported = await self._injured_players(fixture_id, favoured_team)
        injury_factors = sum(1 for f in factors if f.type == ContextFactorType.INJURIES)

        adjusted = apply_quick_fix(
            adjusted,
            power_diff=analysis.power_delta,
            total_injuries=max(reported, injury_factors),
            favoured_form=intel.form_for(home_favoured).category,
        )

        analysis.prediction = adjusted.score
        analysis.confidence = adjusted.confidence
        analysis.reasoning = adjusted.reasoning
        analysis.advance(AnalysisStage.ADJUSTED)

    async def _injured_players(self, fixture_id: Optional[int], team_id: int) -> int:
        if fixture_id is None or fixture_id <= 0:
            return 0
        try:
            injuries = await self.provider.get_injuries(fixture_id)
        except Exception as e:
            logger.warning(f"[ADJUST] Injuries unavailable fixture={fixture_id}: {e}")
            return 0
        return sum(1 for i in injuries or [] if i.team_id == team_id)

    async def aclose(self) -> None:
        await self.ledger.close()
        await self.provider.close()


def _match_name(resolution: StandingsResolution, home_team_id: int, away_team_id: int) -> str:
    home = resolution.home.team_name or f"Team {home_team_id}"
    away = resolution.away.team_name or f"Team {away_team_id}"
    return f"{home} vs {away}"


def _compose_reasoning(analysis: OracleAnalysis, intel: MatchIntel) -> str:
    parts = [analysis.reasoning]
    if analysis.confidence_adjustment < 1.0:
        parts.append(
            f"Standings source: {analysis.standings_source} "
            f"(confidence x{analysis.confidence_adjustment:.2f})."
        )
    if analysis.simulation_context is not None:
        parts.append(f"Trinity: {analysis.simulation_context.reasoning}")
    parts.append(intel.summary())
    if analysis.tesseract is not None:
        parts.append(analysis.tesseract.summary() + ".")
    grade = analysis.llm_grade_enhancement
    if grade is not None:
        parts.append(grade.summary() + ".")
        if grade.enhanced_reasoning:
            parts.append(grade.enhanced_reasoning)
    return " ".join(parts)

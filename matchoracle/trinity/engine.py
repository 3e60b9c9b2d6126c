"""
Trinity context engine.

Produces the SimulationContext for a matchup:

    1. cache by fixture id (real fixtures only)
    2. cache by (home, away, season)
    3. both credentials present?            no  -> neutral, "Missing API keys ..."
    4. real fixture?                        no  -> light heuristic analysis
                                                   under a synthetic fixture id
    5. full LLM analysis                    failed -> light heuristic analysis

Every computed context is written back to the cache before it is returned.
compute_context() never raises: anything unexpected becomes the neutral
context with the error message in its reasoning.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from matchoracle.config import ApiKeys
from matchoracle.etl.base import DataProvider, MatchData
from matchoracle.llm.parsing import coerce_float, coerce_int, parse_json_response
from matchoracle.llm.prompts import build_trinity_prompt
from matchoracle.telemetry import record_llm_request, record_stage_degraded
from matchoracle.trinity.cache import TrinityMetricsCache, TrinityMetricsEntry
from matchoracle.trinity.context import FALLBACK_REASONING, SimulationContext
from matchoracle.utils.ids import create_fixture_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING_KEYS_REASONING = "Missing API keys for Trinity analysis"

FULL_ANALYSIS_MATCHES = 5
FALLBACK_MATCHES = 3
FATIGUE_PER_RECENT_MATCH = 20
FALLBACK_LINEUP_STRENGTH = 85


async def _safe(call: Awaitable[T], default: T, label: str) -> T:
    """Await call, returning default (and logging) on any failure."""
    try:
        result = await call
    except Exception as e:
        logger.warning(f"[TRINITY] {label} unavailable: {e}")
        return default
    return default if result is None else result


def context_from_llm(payload: dict) -> SimulationContext:
    """Map the LLM's per-side read onto a SimulationContext."""
    fatigue_home = coerce_int(payload.get("fatigue_home"), 50, 0, 100)
    fatigue_away = coerce_int(payload.get("fatigue_away"), 50, 0, 100)
    lineup_home = coerce_int(payload.get("lineup_strength_home"), 85, 0, 100)
    lineup_away = coerce_int(payload.get("lineup_strength_away"), 85, 0, 100)
    style = coerce_float(payload.get("style_matchup"), 1.0, 0.5, 1.5)
    reasoning = str(payload.get("reasoning") or "").strip() or "Trinity analysis"

    return SimulationContext(
        fatigue_score=(fatigue_home + fatigue_away) // 2,
        lineup_strength=(lineup_home + lineup_away) // 2,
        style_matchup=style,
        home_fitness=100 - fatigue_home,
        away_fitness=100 - fatigue_away,
        home_distraction=100 - lineup_home,
        away_distraction=100 - lineup_away,
        reasoning=reasoning,
    )


class TrinityContextEngine:
    def __init__(
        self,
        provider: DataProvider,
        cache: TrinityMetricsCache,
        llm_factory: Callable[[str], object],
    ):
        self.provider = provider
        self.cache = cache
        self.llm_factory = llm_factory

    async def compute_context(
        self,
        fixture_id: Optional[int],
        home_team_id: int,
        away_team_id: int,
        season: int,
        api_keys: ApiKeys,
        league_id: Optional[int] = None,
    ) -> SimulationContext:
        try:
            return await self._compute(fixture_id, home_team_id, away_team_id, season, api_keys, league_id)
        except Exception as e:
            logger.exception(f"[TRINITY] Context computation failed: {e}")
            record_stage_degraded("trinity", "exception")
            return SimulationContext.neutral(f"Trinity analysis failed: {e}")

    async def _compute(
        self,
        fixture_id: Optional[int],
        home_team_id: int,
        away_team_id: int,
        season: int,
        api_keys: ApiKeys,
        league_id: Optional[int],
    ) -> SimulationContext:
        has_fixture = fixture_id is not None and fixture_id > 0

        if has_fixture:
            entry = self.cache.get_by_fixture_id(fixture_id)
            if entry is not None:
                return entry.to_context()

        entry = self.cache.get_by_teams_and_season(home_team_id, away_team_id, season)
        if entry is not None:
            return entry.to_context()

        if not api_keys.complete:
            logger.warning(f"[TRINITY] {MISSING_KEYS_REASONING} ({home_team_id} vs {away_team_id})")
            record_stage_degraded("trinity", "missing_keys")
            return SimulationContext.neutral(MISSING_KEYS_REASONING)

        if not has_fixture:
            effective_id = create_fixture_id(home_team_id, away_team_id)
            logger.info(f"[TRINITY] No fixture id, light analysis under synthetic id {effective_id}")
            context = await self.analyze_fallback(home_team_id, away_team_id)
        else:
            effective_id = fixture_id
            context = await self.analyze_full(
                fixture_id, home_team_id, away_team_id, season, api_keys.llm, league_id
            )
            if context is None:
                record_stage_degraded("trinity", "fallback")
                context = await self.analyze_fallback(home_team_id, away_team_id)

        self.cache.cache_metrics(
            TrinityMetricsEntry.from_context(context, effective_id, home_team_id, away_team_id, season)
        )
        return context

    async def analyze_full(
        self,
        fixture_id: int,
        home_team_id: int,
        away_team_id: int,
        season: int,
        llm_api_key: str,
        league_id: Optional[int] = None,
    ) -> Optional[SimulationContext]:
        """LLM read of fatigue / style / lineups. Returns None when the read is unusable."""
        fixture, home_fixtures, away_fixtures, lineups = await asyncio.gather(
            _safe(self.provider.get_fixture_by_id(fixture_id), None, "fixture"),
            _safe(self.provider.get_last_fixtures_for_team(home_team_id, FULL_ANALYSIS_MATCHES), [], "home fixtures"),
            _safe(self.provider.get_last_fixtures_for_team(away_team_id, FULL_ANALYSIS_MATCHES), [], "away fixtures"),
            _safe(self.provider.get_fixture_lineups(fixture_id), None, "lineups"),
        )

        league = league_id or (fixture.league_id if fixture else None)
        home_stats = away_stats = None
        if league:
            home_stats, away_stats = await asyncio.gather(
                _safe(self.provider.get_team_statistics(home_team_id, league, season), None, "home stats"),
                _safe(self.provider.get_team_statistics(away_team_id, league, season), None, "away stats"),
            )

        prompt = build_trinity_prompt(
            home_name=_team_name(fixture, home_team_id, home_fixtures) or "Home Team",
            away_name=_team_name(fixture, away_team_id, away_fixtures) or "Away Team",
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            home_fixtures=home_fixtures,
            away_fixtures=away_fixtures,
            home_stats=home_stats,
            away_stats=away_stats,
            lineups=lineups,
            fixture_date=fixture.date.isoformat() if fixture else None,
        )

        try:
            client = self.llm_factory(llm_api_key)
            try:
                result = await client.generate(prompt)
            finally:
                await client.close()

            record_llm_request("trinity", result.status)
            if not result.ok:
                logger.warning(f"[TRINITY] LLM read failed fixture={fixture_id}: {result.status} {result.error}")
                return None

            payload = parse_json_response(result.text)
            if payload is None:
                record_llm_request("trinity", "PARSE_ERROR")
                logger.warning(f"[TRINITY] Unparseable LLM output for fixture={fixture_id}")
                return None

            context = context_from_llm(payload)
        except Exception as e:
            record_llm_request("trinity", "EXCEPTION")
            logger.warning(f"[TRINITY] LLM read raised for fixture={fixture_id}: {e}")
            return None

        logger.info(
            f"[TRINITY] fixture={fixture_id} fatigue={context.fatigue_score} "
            f"lineup={context.lineup_strength} style={context.style_matchup}"
        )
        return context

    async def analyze_fallback(self, home_team_id: int, away_team_id: int) -> SimulationContext:
        """Heuristic read from fixture congestion only."""
        try:
            home_recent, away_recent = await asyncio.gather(
                _safe(self.provider.get_last_fixtures_for_team(home_team_id, FALLBACK_MATCHES), [], "home fixtures"),
                _safe(self.provider.get_last_fixtures_for_team(away_team_id, FALLBACK_MATCHES), [], "away fixtures"),
            )
            home_fatigue = min(100, len(home_recent[:FALLBACK_MATCHES]) * FATIGUE_PER_RECENT_MATCH)
            away_fatigue = min(100, len(away_recent[:FALLBACK_MATCHES]) * FATIGUE_PER_RECENT_MATCH)

            return SimulationContext(
                fatigue_score=(home_fatigue + away_fatigue) // 2,
                lineup_strength=FALLBACK_LINEUP_STRENGTH,
                style_matchup=1.0,
                home_fitness=100 - home_fatigue // 2,
                away_fitness=100 - away_fatigue // 2,
                home_distraction=100 - FALLBACK_LINEUP_STRENGTH,
                away_distraction=100 - FALLBACK_LINEUP_STRENGTH,
                reasoning=FALLBACK_REASONING,
            )
        except Exception as e:
            logger.warning(f"[TRINITY] Fallback heuristics failed, emergency context: {e}")
            return SimulationContext.emergency()


def _team_name(fixture: Optional[MatchData], team_id: int, recent: list[MatchData]) -> Optional[str]:
    for match in ([fixture] if fixture else []) + list(recent):
        if match.home_team_external_id == team_id and match.home_team_name:
            return match.home_team_name
        if match.away_team_external_id == team_id and match.away_team_name:
            return match.away_team_name
    return None

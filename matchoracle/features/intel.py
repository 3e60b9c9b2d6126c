"""
Match intel fan-out.

Gathers the independent per-request signals concurrently behind one
barrier. A failed branch is replaced by its default; the barrier itself
never fails.

    head_to_head   up to five meetings, from the home side's last ten FT fixtures
    home_form      last five results of the home side
    away_form      last five results of the away side
    deep_stats     average xG / possession / shots on target per side
    sentiment      -1..1 per side from an LLM fitness/distraction read
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from matchoracle.config import ApiKeys
from matchoracle.etl.base import DataProvider, MatchData
from matchoracle.features.form import (
    UNKNOWN_FORM,
    TeamForm,
    calculate_team_form,
    is_poor_form,
    results_from_fixtures,
)
from matchoracle.llm.parsing import coerce_float, parse_json_response
from matchoracle.llm.prompts import build_sentiment_prompt
from matchoracle.telemetry import record_cache_lookup, record_llm_request, record_stage_degraded
from matchoracle.utils.cache import TTLCache

logger = logging.getLogger(__name__)

H2H_LOOKBACK = 10
H2H_MAX = 5
FORM_MATCHES = 5
DEEP_STATS_MATCHES = 5

XG_PER_SHOT_ON_TARGET = 0.3
XG_PER_SHOT_OFF_TARGET = 0.07

DEFAULT_INTEL_TTL_SECONDS = 300.0


@dataclass
class TeamDeepStats:
    avg_xg: float = 0.0
    avg_possession: float = 50.0
    avg_shots_on_target: float = 0.0
    matches: int = 0


@dataclass
class DeepStatsComparison:
    home: TeamDeepStats = field(default_factory=TeamDeepStats)
    away: TeamDeepStats = field(default_factory=TeamDeepStats)

    @property
    def xg_edge(self) -> float:
        """Positive when the home side creates more."""
        return round(self.home.avg_xg - self.away.avg_xg, 2)


@dataclass
class MatchIntel:
    home_team_id: int = 0
    away_team_id: int = 0
    head_to_head: list[MatchData] = field(default_factory=list)
    home_form: TeamForm = field(default_factory=lambda: UNKNOWN_FORM)
    away_form: TeamForm = field(default_factory=lambda: UNKNOWN_FORM)
    deep_stats: DeepStatsComparison = field(default_factory=DeepStatsComparison)
    home_sentiment: float = 0.0
    away_sentiment: float = 0.0
    degraded: list[str] = field(default_factory=list)

    def form_for(self, home_side: bool) -> TeamForm:
        return self.home_form if home_side else self.away_form

    def head_to_head_record(self) -> tuple[int, int, int]:
        """(wins, draws, losses) of the home side in the recorded meetings."""
        results = results_from_fixtures(self.home_team_id, self.head_to_head)
        return results.count("W"), results.count("D"), results.count("L")

    def to_prompt_dict(self) -> dict:
        """Compact view handed to the LLMGRADE prompt."""
        return {
            "head_to_head_home_wdl": list(self.head_to_head_record()),
            "recent_form": {"home": self.home_form.summary, "away": self.away_form.summary},
            "avg_xg": {"home": self.deep_stats.home.avg_xg, "away": self.deep_stats.away.avg_xg},
            "avg_possession": {
                "home": self.deep_stats.home.avg_possession,
                "away": self.deep_stats.away.avg_possession,
            },
            "sentiment": {"home": self.home_sentiment, "away": self.away_sentiment},
            "unavailable": list(self.degraded),
        }

    def summary(self) -> str:
        parts = []
        if self.head_to_head:
            wins, draws, losses = self.head_to_head_record()
            parts.append(f"H2H {wins}W {draws}D {losses}L for the home side")
        parts.append(f"form {self.home_form.description} vs {self.away_form.description}")
        poor = [
            side
            for side, form in (("home", self.home_form), ("away", self.away_form))
            if is_poor_form(form.recent_results)
        ]
        if poor:
            parts.append(f"poor run: {', '.join(poor)}")
        if self.deep_stats.home.matches or self.deep_stats.away.matches:
            parts.append(f"xG {self.deep_stats.home.avg_xg:.2f} vs {self.deep_stats.away.avg_xg:.2f}")
        if self.home_sentiment or self.away_sentiment:
            parts.append(f"sentiment {self.home_sentiment:+.2f} vs {self.away_sentiment:+.2f}")
        return "Intel: " + "; ".join(parts) + "."


def _number(value) -> Optional[float]:
    """'55%' / '1.34' / 7 -> float, None when absent."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%")
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def estimate_xg(side_stats: dict) -> float:
    """Reported expected_goals, else 0.3 per shot on target + 0.07 per shot off target."""
    reported = _number(side_stats.get("expected_goals"))
    if reported is not None:
        return reported
    on_target = _number(side_stats.get("shots_on_goal")) or 0.0
    off_target = _number(side_stats.get("shots_off_goal")) or 0.0
    return XG_PER_SHOT_ON_TARGET * on_target + XG_PER_SHOT_OFF_TARGET * off_target


def _side_for(team_id: int, stats: dict, match: MatchData) -> Optional[dict]:
    for key in ("home", "away"):
        side = stats.get(key) or {}
        if side.get("team_id") == team_id:
            return side
    if match.home_team_external_id == team_id:
        return stats.get("home")
    if match.away_team_external_id == team_id:
        return stats.get("away")
    return None


def sentiment_from_read(fitness: float, distraction: float) -> float:
    """Average of (fitness-50)/50 and (50-distraction)/50, in -1..1."""
    score = ((fitness - 50) / 50 + (50 - distraction) / 50) / 2
    return round(min(max(score, -1.0), 1.0), 3)


class MatchIntelService:
    def __init__(
        self,
        provider: DataProvider,
        llm_factory: Callable[[str], object],
        cache: Optional[TTLCache] = None,
    ):
        self.provider = provider
        self.llm_factory = llm_factory
        self.cache = cache if cache is not None else TTLCache(ttl=DEFAULT_INTEL_TTL_SECONDS)

    async def gather(
        self,
        home_team_id: int,
        away_team_id: int,
        api_keys: ApiKeys,
        home_name: Optional[str] = None,
        away_name: Optional[str] = None,
        league_name: Optional[str] = None,
    ) -> MatchIntel:
        key = (home_team_id, away_team_id)
        hit, cached = self.cache.get(key)
        record_cache_lookup("intel", hit)
        if hit:
            return cached

        branches = {
            "head_to_head": (self.head_to_head(home_team_id, away_team_id), []),
            "home_form": (self.team_form(home_team_id), UNKNOWN_FORM),
            "away_form": (self.team_form(away_team_id), UNKNOWN_FORM),
            "deep_stats": (self.deep_stats(home_team_id, away_team_id), DeepStatsComparison()),
            "home_sentiment": (self.sentiment(home_name or f"Team {home_team_id}", league_name, api_keys), 0.0),
            "away_sentiment": (self.sentiment(away_name or f"Team {away_team_id}", league_name, api_keys), 0.0),
        }
        results = await asyncio.gather(
            *(coro for coro, _ in branches.values()),
            return_exceptions=True,
        )

        values = {}
        degraded = []
        for (name, (_, default)), result in zip(branches.items(), results):
            if isinstance(result, Exception):
                logger.warning(f"[INTEL] {name} failed for {home_team_id} vs {away_team_id}: {result}")
                record_stage_degraded("intel", name)
                degraded.append(name)
                values[name] = default
            else:
                values[name] = result

        intel = MatchIntel(home_team_id=home_team_id, away_team_id=away_team_id, degraded=degraded, **values)
        self.cache.set(key, intel)
        logger.info(
            f"[INTEL] {home_team_id} vs {away_team_id}: h2h={len(intel.head_to_head)} "
            f"form={intel.home_form.description}/{intel.away_form.description} "
            f"xG={intel.deep_stats.home.avg_xg}/{intel.deep_stats.away.avg_xg} "
            f"sentiment={intel.home_sentiment}/{intel.away_sentiment}"
        )
        return intel

    async def head_to_head(self, home_team_id: int, away_team_id: int) -> list[MatchData]:
        fixtures = await self.provider.get_last_fixtures_for_team(home_team_id, H2H_LOOKBACK, status="FT")
        meetings = [m for m in fixtures if m.opponent_of(home_team_id) == away_team_id]
        return meetings[:H2H_MAX]

    async def team_form(self, team_id: int) -> TeamForm:
        fixtures = await self.provider.get_last_fixtures_for_team(team_id, FORM_MATCHES, status="FT")
        return calculate_team_form(results_from_fixtures(team_id, fixtures))

    async def team_deep_stats(self, team_id: int) -> TeamDeepStats:
        fixtures = await self.provider.get_last_fixtures_for_team(team_id, DEEP_STATS_MATCHES, status="FT")
        all_stats = await asyncio.gather(
            *(self.provider.get_fixture_statistics(m.external_id) for m in fixtures),
            return_exceptions=True,
        )

        xg, possession, on_target = [], [], []
        for match, stats in zip(fixtures, all_stats):
            if isinstance(stats, Exception) or not stats:
                continue
            side = _side_for(team_id, stats, match)
            if not side:
                continue
            xg.append(estimate_xg(side))
            pos = _number(side.get("ball_possession"))
            if pos is not None:
                possession.append(pos)
            on_target.append(_number(side.get("shots_on_goal")) or 0.0)

        if not xg:
            return TeamDeepStats()
        return TeamDeepStats(
            avg_xg=round(sum(xg) / len(xg), 2),
            avg_possession=round(sum(possession) / len(possession), 1) if possession else 50.0,
            avg_shots_on_target=round(sum(on_target) / len(on_target), 2),
            matches=len(xg),
        )

    async def deep_stats(self, home_team_id: int, away_team_id: int) -> DeepStatsComparison:
        home, away = await asyncio.gather(
            self.team_deep_stats(home_team_id),
            self.team_deep_stats(away_team_id),
        )
        return DeepStatsComparison(home=home, away=away)

    async def sentiment(self, team_name: str, league_name: Optional[str], api_keys: ApiKeys) -> float:
        if not api_keys.llm:
            return 0.0

        client = self.llm_factory(api_keys.llm)
        try:
            result = await client.generate(build_sentiment_prompt(team_name, league_name))
        finally:
            await client.close()

        record_llm_request("sentiment", result.status)
        if not result.ok:
            return 0.0
        payload = parse_json_response(result.text)
        if payload is None:
            return 0.0
        return sentiment_from_read(
            coerce_float(payload.get("fitness"), 50.0, 0.0, 100.0),
            coerce_float(payload.get("distraction"), 50.0, 0.0, 100.0),
        )

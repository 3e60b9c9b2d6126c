"""
Trinity metrics cache.

Entries are indexed twice: by fixture id (primary) and by
(home team, away team, season) (secondary). Both indices share one TTL
and one clock, so an entry expires from both at the same moment.
Writes are idempotent per identity: last write wins.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from matchoracle.telemetry import record_cache_lookup
from matchoracle.trinity.context import SimulationContext
from matchoracle.utils.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class TrinityMetricsEntry:
    """Cache row. style_matchup is stored ×100 as an int (1.15 -> 115)."""

    fixture_id: int
    home_team_id: int
    away_team_id: int
    season: int
    fatigue_score: int
    lineup_strength: int
    style_matchup: int
    home_fitness: int
    away_fitness: int
    home_distraction: int
    away_distraction: int
    reasoning: Optional[str] = None
    last_updated: float = field(default_factory=time.time, compare=False)

    @classmethod
    def from_context(
        cls,
        context: SimulationContext,
        fixture_id: int,
        home_team_id: int,
        away_team_id: int,
        season: int,
    ) -> "TrinityMetricsEntry":
        return cls(
            fixture_id=fixture_id,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            season=season,
            fatigue_score=context.fatigue_score,
            lineup_strength=context.lineup_strength,
            style_matchup=int(round(context.style_matchup * 100)),
            home_fitness=context.home_fitness,
            away_fitness=context.away_fitness,
            home_distraction=context.home_distraction,
            away_distraction=context.away_distraction,
            reasoning=context.reasoning,
        )

    def to_context(self) -> SimulationContext:
        return SimulationContext(
            fatigue_score=self.fatigue_score,
            lineup_strength=self.lineup_strength,
            style_matchup=self.style_matchup / 100.0,
            home_fitness=self.home_fitness,
            away_fitness=self.away_fitness,
            home_distraction=self.home_distraction,
            away_distraction=self.away_distraction,
            reasoning=self.reasoning or "Cached Trinity metrics",
        )

    @property
    def team_key(self) -> tuple[int, int, int]:
        return (self.home_team_id, self.away_team_id, self.season)

    def to_log_string(self) -> str:
        return (
            f"TrinityMetrics(fixture={self.fixture_id}, fatigue={self.fatigue_score}, "
            f"lineup={self.lineup_strength}, style={self.style_matchup})"
        )


class TrinityMetricsCache:
    """In-memory Trinity metrics store with TTL expiry."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._by_fixture = TTLCache(ttl=ttl_seconds, clock=clock)
        self._by_teams = TTLCache(ttl=ttl_seconds, clock=clock)

    @property
    def ttl_seconds(self) -> float:
        return self._by_fixture.ttl

    def get_by_fixture_id(self, fixture_id: int) -> Optional[TrinityMetricsEntry]:
        hit, entry = self._by_fixture.get(fixture_id)
        record_cache_lookup("trinity", hit)
        if hit:
            logger.debug(f"[TRINITY] Cache HIT fixture={fixture_id}: {entry.to_log_string()}")
            return entry
        return None

    def get_by_teams_and_season(
        self,
        home_team_id: int,
        away_team_id: int,
        season: int,
    ) -> Optional[TrinityMetricsEntry]:
        hit, entry = self._by_teams.get((home_team_id, away_team_id, season))
        record_cache_lookup("trinity", hit)
        if hit:
            logger.debug(
                f"[TRINITY] Cache HIT teams={home_team_id}v{away_team_id} season={season}: "
                f"{entry.to_log_string()}"
            )
            return entry
        return None

    def cache_metrics(self, entry: TrinityMetricsEntry) -> None:
        self._by_fixture.set(entry.fixture_id, entry)
        self._by_teams.set(entry.team_key, entry)
        logger.debug(f"[TRINITY] Cached {entry.to_log_string()}")

    def remove(self, fixture_id: int) -> bool:
        hit, entry = self._by_fixture.get(fixture_id)
        removed = self._by_fixture.invalidate(fixture_id)
        if hit:
            # Only drop the secondary key if it still points at this fixture
            team_hit, team_entry = self._by_teams.get(entry.team_key)
            if team_hit and team_entry.fixture_id == fixture_id:
                self._by_teams.invalidate(entry.team_key)
        return removed

    def clear_all(self) -> None:
        self._by_fixture.clear()
        self._by_teams.clear()

    def stats(self) -> dict:
        fixture_stats = self._by_fixture.stats()
        return {
            "fixtures": fixture_stats["live_entries"],
            "team_pairs": self._by_teams.stats()["live_entries"],
            "expired": fixture_stats["expired_entries"],
            "ttl_seconds": self.ttl_seconds,
        }

"""
Standings resolution with per-team fallback.

Each team is looked up independently through four levels, each one
less trustworthy than the last:

    current-season  -> league table for the requested season       (1.00)
    previous-season -> league table for season - 1                  (0.85)
    derived         -> W/D/L tally over the team's recent fixtures  (0.75)
    default         -> rank 10, 30 pts, GD 0, 20 played             (0.60)

Provider failures count as "team not found" for that level. The resolver
never raises: worst case both teams come back as the default snapshot.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from matchoracle.etl.base import DataProvider, MatchData
from matchoracle.telemetry import record_stage_degraded

logger = logging.getLogger(__name__)

SOURCE_CURRENT = "current-season"
SOURCE_PREVIOUS = "previous-season"
SOURCE_DERIVED = "derived-from-recent-form"
SOURCE_DEFAULT = "default"

# Ordered best -> worst; confidence strictly decreases along the chain
SOURCE_CONFIDENCE = {
    SOURCE_CURRENT: 1.0,
    SOURCE_PREVIOUS: 0.85,
    SOURCE_DERIVED: 0.75,
    SOURCE_DEFAULT: 0.6,
}
SOURCES = tuple(SOURCE_CONFIDENCE)

DEFAULT_RANK = 10
DEFAULT_POINTS = 30
DEFAULT_GOALS_DIFF = 0
DEFAULT_GAMES_PLAYED = 20

RECENT_FIXTURES_FOR_DERIVATION = 10
LEAGUE_SIZE = 20


@dataclass(frozen=True)
class StandingSnapshot:
    """A team's table position for one analysis request."""

    team_id: int
    rank: int
    points: int
    goals_diff: int
    games_played: int
    source: str
    confidence_adjustment: float
    team_name: Optional[str] = None

    @property
    def points_per_game(self) -> float:
        return self.points / max(self.games_played, 1)

    @property
    def goal_diff_per_game(self) -> float:
        return self.goals_diff / max(self.games_played, 1)

    @classmethod
    def default(cls, team_id: int) -> "StandingSnapshot":
        return cls(
            team_id=team_id,
            rank=DEFAULT_RANK,
            points=DEFAULT_POINTS,
            goals_diff=DEFAULT_GOALS_DIFF,
            games_played=DEFAULT_GAMES_PLAYED,
            source=SOURCE_DEFAULT,
            confidence_adjustment=SOURCE_CONFIDENCE[SOURCE_DEFAULT],
        )


@dataclass(frozen=True)
class StandingsResolution:
    """Both snapshots plus the request-level source/confidence pair."""

    home: StandingSnapshot
    away: StandingSnapshot

    @property
    def confidence_adjustment(self) -> float:
        return min(self.home.confidence_adjustment, self.away.confidence_adjustment)

    @property
    def source(self) -> str:
        """The weaker of the two teams' sources."""
        return max(self.home.source, self.away.source, key=SOURCES.index)


def snapshot_from_row(row: dict, source: str) -> StandingSnapshot:
    """Build a snapshot from a provider standings row."""
    return StandingSnapshot(
        team_id=int(row["team_id"]),
        rank=int(row.get("position") or DEFAULT_RANK),
        points=int(row.get("points") or 0),
        goals_diff=int(row.get("goal_diff") or 0),
        games_played=int(row.get("played") or 0),
        source=source,
        confidence_adjustment=SOURCE_CONFIDENCE[source],
        team_name=row.get("team_name"),
    )


def estimate_rank(points_per_game: float, league_size: int = LEAGUE_SIZE) -> int:
    """Map points-per-game onto a table position (3.0 ppg -> 1st, 0 ppg -> last)."""
    ppg = min(max(points_per_game, 0.0), 3.0)
    rank = round(league_size - ppg * (league_size - 1) / 3.0)
    return int(min(max(rank, 1), league_size))


def derive_snapshot(team_id: int, fixtures: list[MatchData]) -> Optional[StandingSnapshot]:
    """
    Approximate a table row from a team's recent results.

    Returns None when none of the fixtures has a usable result for the team.
    """
    won = drawn = lost = 0
    goal_diff = 0
    for match in fixtures:
        result = match.result_for(team_id)
        if result is None:
            continue
        goal_diff += match.goals_for(team_id) - match.goals_against(team_id)
        if result == "W":
            won += 1
        elif result == "D":
            drawn += 1
        else:
            lost += 1

    played = won + drawn + lost
    if played == 0:
        return None

    points = 3 * won + drawn
    return StandingSnapshot(
        team_id=team_id,
        rank=estimate_rank(points / played),
        points=points,
        goals_diff=goal_diff,
        games_played=played,
        source=SOURCE_DERIVED,
        confidence_adjustment=SOURCE_CONFIDENCE[SOURCE_DERIVED],
    )


class StandingsResolver:
    """Resolves both teams' standings through the fallback chain."""

    def __init__(self, provider: DataProvider, recent_fixture_count: int = RECENT_FIXTURES_FOR_DERIVATION):
        self.provider = provider
        self.recent_fixture_count = recent_fixture_count

    async def resolve(
        self,
        league_id: int,
        season: int,
        home_team_id: int,
        away_team_id: int,
    ) -> StandingsResolution:
        try:
            return await self._resolve(league_id, season, home_team_id, away_team_id)
        except Exception as e:
            logger.exception(f"[STANDINGS] Unexpected failure, using defaults: {e}")
            record_stage_degraded("standings", "exception")
            return StandingsResolution(
                home=StandingSnapshot.default(home_team_id),
                away=StandingSnapshot.default(away_team_id),
            )

    async def _resolve(
        self,
        league_id: int,
        season: int,
        home_team_id: int,
        away_team_id: int,
    ) -> StandingsResolution:
        team_ids = (home_team_id, away_team_id)
        found: dict[int, StandingSnapshot] = {}

        for table_season, source in ((season, SOURCE_CURRENT), (season - 1, SOURCE_PREVIOUS)):
            missing = [t for t in team_ids if t not in found]
            if not missing:
                break
            rows = await self._fetch_table(league_id, table_season)
            for team_id in missing:
                row = _find_row(rows, team_id)
                if row is not None:
                    found[team_id] = snapshot_from_row(row, source)

        missing = [t for t in team_ids if t not in found]
        if missing:
            derived = await asyncio.gather(*(self._derive(t) for t in missing))
            for team_id, snapshot in zip(missing, derived):
                if snapshot is None:
                    logger.warning(f"[STANDINGS] team={team_id} unresolved at every level, using default snapshot")
                    record_stage_degraded("standings", "not_found")
                    snapshot = StandingSnapshot.default(team_id)
                found[team_id] = snapshot

        resolution = StandingsResolution(home=found[home_team_id], away=found[away_team_id])
        logger.info(
            f"[STANDINGS] league={league_id} season={season} "
            f"home={home_team_id}:{resolution.home.source}#{resolution.home.rank} "
            f"away={away_team_id}:{resolution.away.source}#{resolution.away.rank} "
            f"adj={resolution.confidence_adjustment:.2f}"
        )
        return resolution

    async def _fetch_table(self, league_id: int, season: int) -> list[dict]:
        try:
            return await self.provider.get_standings(league_id, season) or []
        except Exception as e:
            logger.warning(f"[STANDINGS] Fetch failed league={league_id} season={season}: {e}")
            record_stage_degraded("standings", "exception")
            return []

    async def _derive(self, team_id: int) -> Optional[StandingSnapshot]:
        try:
            fixtures = await self.provider.get_last_fixtures_for_team(
                team_id, self.recent_fixture_count, status="FT"
            )
        except Exception as e:
            logger.warning(f"[STANDINGS] Recent fixtures failed team={team_id}: {e}")
            return None
        snapshot = derive_snapshot(team_id, fixtures or [])
        if snapshot is not None:
            logger.info(
                f"[STANDINGS] team={team_id} derived from {snapshot.games_played} fixtures "
                f"(pts={snapshot.points}, gd={snapshot.goals_diff}, est_rank={snapshot.rank})"
            )
        return snapshot


def _find_row(rows: list[dict], team_id: int) -> Optional[dict]:
    for row in rows:
        if row.get("team_id") == team_id:
            return row
    return None

"""Abstract base class for sports-data providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class ProviderError(RuntimeError):
    """Transport or API-level failure from a sports-data provider."""


@dataclass
class MatchData:
    """Data transfer object for a fixture."""

    external_id: int
    date: datetime
    league_id: int
    season: int
    home_team_external_id: int
    away_team_external_id: int
    home_goals: Optional[int]
    away_goals: Optional[int]
    status: str
    # --- Fields with defaults must come after fields without defaults ---
    home_team_name: Optional[str] = None
    away_team_name: Optional[str] = None
    league_name: Optional[str] = None
    venue_city: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in ("FT", "AET", "PEN")

    def goals_for(self, team_id: int) -> Optional[int]:
        if team_id == self.home_team_external_id:
            return self.home_goals
        if team_id == self.away_team_external_id:
            return self.away_goals
        return None

    def goals_against(self, team_id: int) -> Optional[int]:
        if team_id == self.home_team_external_id:
            return self.away_goals
        if team_id == self.away_team_external_id:
            return self.home_goals
        return None

    def opponent_of(self, team_id: int) -> Optional[int]:
        if team_id == self.home_team_external_id:
            return self.away_team_external_id
        if team_id == self.away_team_external_id:
            return self.home_team_external_id
        return None

    def result_for(self, team_id: int) -> Optional[str]:
        """'W', 'D' or 'L' from team_id's perspective, None if unplayed or unrelated."""
        scored = self.goals_for(team_id)
        conceded = self.goals_against(team_id)
        if scored is None or conceded is None:
            return None
        if scored > conceded:
            return "W"
        if scored == conceded:
            return "D"
        return "L"


@dataclass
class InjuryData:
    """A player reported unavailable for a fixture."""

    team_id: int
    player_name: str
    team_name: Optional[str] = None
    injury_type: Optional[str] = None  # "Missing Fixture", "Questionable"
    reason: Optional[str] = None


class DataProvider(ABC):
    """Abstract base class for football data providers.

    Implementations may return empty lists for seasons they do not cover;
    callers treat that the same as "not found".
    """

    @abstractmethod
    async def get_standings(self, league_id: int, season: int) -> list[dict]:
        """
        Fetch league standings.

        Returns:
            List of rows with position, team_id, team_name, points, played,
            won, drawn, lost, goals_for, goals_against, goal_diff, form.
        """
        pass

    @abstractmethod
    async def get_last_fixtures_for_team(
        self,
        team_id: int,
        count: int,
        status: str = "FT",
    ) -> list[MatchData]:
        """
        Fetch a team's most recent fixtures, newest first.

        Args:
            team_id: The team external ID.
            count: Maximum number of fixtures.
            status: Fixture status filter (e.g. "FT").
        """
        pass

    @abstractmethod
    async def get_fixture_statistics(self, fixture_id: int) -> Optional[dict]:
        """
        Fetch per-team statistics for a fixture.

        Returns:
            {"home": {...}, "away": {...}} keyed by snake_case stat names,
            or None when the provider has no statistics.
        """
        pass

    @abstractmethod
    async def get_fixture_by_id(self, fixture_id: int) -> Optional[MatchData]:
        pass

    @abstractmethod
    async def get_injuries(self, fixture_id: int) -> list[InjuryData]:
        pass

    @abstractmethod
    async def get_team_statistics(
        self,
        team_id: int,
        league_id: int,
        season: int,
    ) -> Optional[dict]:
        """Season aggregates for a team (formations, goals by minute, cards)."""
        pass

    async def get_fixture_lineups(self, fixture_id: int) -> Optional[dict]:
        """Starting XI per side. Providers without lineup coverage return None."""
        return None

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass

"""API-Football data provider implementation.

Thin collaborator: one request per call, no retry or backoff. Failures
surface as ProviderError and the pipeline decides how to degrade.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from matchoracle.config import get_settings
from matchoracle.etl.base import DataProvider, InjuryData, MatchData, ProviderError
from matchoracle.telemetry import record_provider_request

logger = logging.getLogger(__name__)


class APIFootballProvider(DataProvider):
    """API-Football data provider (supports RapidAPI and API-Sports hosts)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        host = host or settings.API_FOOTBALL_HOST
        api_key = api_key if api_key is not None else settings.API_FOOTBALL_KEY

        # Detect if using API-Sports directly or RapidAPI
        if "api-sports.io" in host:
            self.BASE_URL = f"https://{host}"
            headers = {"x-apisports-key": api_key}
        else:
            self.BASE_URL = f"https://{host}/v3"
            headers = {
                "X-RapidAPI-Key": api_key,
                "X-RapidAPI-Host": host,
            }

        self.client = httpx.AsyncClient(
            headers=headers,
            timeout=timeout or settings.API_FOOTBALL_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def _request(self, endpoint: str, params: dict) -> "list | dict":
        """
        GET an endpoint and return its `response` payload (usually an array).

        Raises:
            ProviderError: on transport failure, non-2xx status or an API
                `errors` payload.
        """
        url = f"{self.BASE_URL}/{endpoint}"
        start_time = time.time()
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            latency_ms = (time.time() - start_time) * 1000
            record_provider_request("api_football", endpoint, 0, latency_ms)
            raise ProviderError(f"{endpoint} request failed: {e}") from e

        latency_ms = (time.time() - start_time) * 1000
        record_provider_request("api_football", endpoint, response.status_code, latency_ms)

        if response.status_code >= 400:
            raise ProviderError(f"{endpoint} returned HTTP {response.status_code}")

        data = response.json()
        errors = data.get("errors")
        if errors:
            raise ProviderError(f"{endpoint} API error: {errors}")

        return data.get("response", []) or []

    # ─────────────────────────────────────────────────────────────────
    # Parsers
    # ─────────────────────────────────────────────────────────────────

    def _parse_fixture(self, fixture: dict) -> MatchData:
        """Parse API fixture response into MatchData."""
        fixture_info = fixture.get("fixture", {})
        teams = fixture.get("teams", {})
        goals = fixture.get("goals", {})
        league = fixture.get("league", {})
        venue = fixture_info.get("venue") or {}

        # Parse date - naive UTC
        date_str = fixture_info.get("date", "")
        try:
            match_date = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
            if match_date.tzinfo is not None:
                match_date = match_date.replace(tzinfo=None)
        except ValueError:
            match_date = datetime.now(timezone.utc).replace(tzinfo=None)

        status_info = fixture_info.get("status", {})

        return MatchData(
            external_id=fixture_info.get("id"),
            date=match_date,
            league_id=league.get("id", 0),
            season=league.get("season", match_date.year),
            home_team_external_id=teams.get("home", {}).get("id"),
            away_team_external_id=teams.get("away", {}).get("id"),
            home_goals=goals.get("home"),
            away_goals=goals.get("away"),
            status=status_info.get("short", "NS"),
            home_team_name=teams.get("home", {}).get("name"),
            away_team_name=teams.get("away", {}).get("name"),
            league_name=league.get("name"),
            venue_city=venue.get("city"),
        )

    def _parse_stats(self, statistics: list) -> dict:
        """Parse match statistics.

        API returns stats in order: [home_team, away_team]
        Each item has team info and statistics array.
        """
        stats = {"home": {}, "away": {}}

        for i, team_stats in enumerate(statistics[:2]):
            team_key = "home" if i == 0 else "away"
            stats[team_key]["team_id"] = team_stats.get("team", {}).get("id")

            for stat in team_stats.get("statistics", []):
                stat_type = stat.get("type", "").lower().replace(" ", "_")
                value = stat.get("value")
                if value is not None:
                    stats[team_key][stat_type] = value

        return stats

    def _parse_standing(self, standing: dict) -> dict:
        team = standing.get("team", {})
        totals = standing.get("all", {})
        return {
            "position": standing.get("rank"),
            "team_id": team.get("id"),
            "team_name": team.get("name"),
            "points": standing.get("points", 0),
            "played": totals.get("played", 0),
            "won": totals.get("win", 0),
            "drawn": totals.get("draw", 0),
            "lost": totals.get("lose", 0),
            "goals_for": totals.get("goals", {}).get("for", 0),
            "goals_against": totals.get("goals", {}).get("against", 0),
            "goal_diff": standing.get("goalsDiff", 0),
            "form": standing.get("form", ""),
            "group": standing.get("group"),
        }

    def _select_primary_standings_group(self, standings: list[dict]) -> list[dict]:
        """
        API-Football can return multiple tables for the same league/season
        (groups/stages). Pick one deterministically: most teams, then most
        matches played.
        """
        groups: dict[str, list[dict]] = {}
        for row in standings:
            g = row.get("group")
            if not g:
                continue
            groups.setdefault(str(g), []).append(row)

        if len(groups) <= 1:
            return standings

        def score(item: tuple[str, list[dict]]) -> tuple[int, int]:
            _, rows = item
            total_played = sum(int(r.get("played") or 0) for r in rows)
            return (len(rows), total_played)

        _, best_rows = sorted(groups.items(), key=score, reverse=True)[0]
        return best_rows

    # ─────────────────────────────────────────────────────────────────
    # DataProvider
    # ─────────────────────────────────────────────────────────────────

    async def get_standings(self, league_id: int, season: int) -> list[dict]:
        standings_data = await self._request("standings", {"league": league_id, "season": season})

        results: list[dict] = []
        for league_data in standings_data:
            league_standings = league_data.get("league", {}).get("standings", [])
            # Standings can be nested (for groups) - flatten
            for group in league_standings:
                if isinstance(group, list):
                    results.extend(self._parse_standing(row) for row in group)
                else:
                    results.append(self._parse_standing(group))

        return self._select_primary_standings_group(results)

    async def get_last_fixtures_for_team(
        self,
        team_id: int,
        count: int,
        status: str = "FT",
    ) -> list[MatchData]:
        params = {"team": team_id, "last": count}
        if status:
            params["status"] = status
        fixtures = await self._request("fixtures", params)

        matches = []
        for fixture in fixtures:
            try:
                matches.append(self._parse_fixture(fixture))
            except Exception as e:
                logger.error(f"Error parsing fixture for team {team_id}: {e}")
        matches.sort(key=lambda m: m.date, reverse=True)
        return matches[:count]

    async def get_fixture_statistics(self, fixture_id: int) -> Optional[dict]:
        stats_data = await self._request("fixtures/statistics", {"fixture": fixture_id})
        if not stats_data:
            return None
        return self._parse_stats(stats_data)

    async def get_fixture_by_id(self, fixture_id: int) -> Optional[MatchData]:
        fixtures = await self._request("fixtures", {"id": fixture_id})
        if not fixtures:
            return None
        return self._parse_fixture(fixtures[0])

    async def get_injuries(self, fixture_id: int) -> list[InjuryData]:
        rows = await self._request("injuries", {"fixture": fixture_id})
        injuries = []
        for row in rows:
            team = row.get("team", {})
            player = row.get("player", {})
            if team.get("id") is None or not player.get("name"):
                continue
            injuries.append(InjuryData(
                team_id=team["id"],
                team_name=team.get("name"),
                player_name=player["name"],
                injury_type=player.get("type"),
                reason=player.get("reason"),
            ))
        return injuries

    async def get_team_statistics(
        self,
        team_id: int,
        league_id: int,
        season: int,
    ) -> Optional[dict]:
        # teams/statistics returns an object, not an array
        url_params = {"team": team_id, "league": league_id, "season": season}
        data = await self._request("teams/statistics", url_params)
        if isinstance(data, dict):
            return data or None
        return data[0] if data else None

    async def get_fixture_lineups(self, fixture_id: int) -> Optional[dict]:
        lineups_data = await self._request("fixtures/lineups", {"fixture": fixture_id})
        if not lineups_data:
            return None

        result = {"home": None, "away": None}
        for i, lineup in enumerate(lineups_data[:2]):
            team_info = lineup.get("team", {})
            result["home" if i == 0 else "away"] = {
                "team_id": team_info.get("id"),
                "team_name": team_info.get("name"),
                "formation": lineup.get("formation"),
                "starting_xi": [
                    {
                        "id": p.get("player", {}).get("id"),
                        "name": p.get("player", {}).get("name"),
                        "pos": p.get("player", {}).get("pos"),
                    }
                    for p in lineup.get("startXI", [])
                ],
            }
        return result

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

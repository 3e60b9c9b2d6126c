"""Shared fakes: in-memory sports-data provider, scripted LLM client, manual clock."""

import json
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Optional

import pytest

from matchoracle.etl.base import DataProvider, InjuryData, MatchData, ProviderError
from matchoracle.llm.gemini_client import GeminiResult

BASE_DATE = datetime(2025, 3, 1, 18, 0)


def make_match(
    fixture_id: int,
    home: int,
    away: int,
    home_goals: Optional[int],
    away_goals: Optional[int],
    days_ago: int = 0,
    status: str = "FT",
    league_id: int = 88,
    season: int = 2025,
    home_name: Optional[str] = None,
    away_name: Optional[str] = None,
) -> MatchData:
    return MatchData(
        external_id=fixture_id,
        date=BASE_DATE - timedelta(days=days_ago),
        league_id=league_id,
        season=season,
        home_team_external_id=home,
        away_team_external_id=away,
        home_goals=home_goals,
        away_goals=away_goals,
        status=status,
        home_team_name=home_name,
        away_team_name=away_name,
    )


def standing_row(team_id: int, position: int, points: int, goal_diff: int, played: int, name=None) -> dict:
    return {
        "position": position,
        "team_id": team_id,
        "team_name": name or f"Team {team_id}",
        "points": points,
        "played": played,
        "goal_diff": goal_diff,
    }


class FakeProvider(DataProvider):
    """Dict-backed DataProvider. Methods listed in `failing` raise ProviderError."""

    def __init__(self):
        self.standings: dict[tuple[int, int], list[dict]] = {}
        self.fixtures: dict[int, list[MatchData]] = {}
        self.fixtures_by_id: dict[int, MatchData] = {}
        self.statistics: dict[int, dict] = {}
        self.injuries: dict[int, list[InjuryData]] = {}
        self.team_stats: dict[int, dict] = {}
        self.lineups: dict[int, dict] = {}
        self.failing: set[str] = set()
        self.calls: Counter = Counter()
        self.closed = False

    def _call(self, name: str):
        self.calls[name] += 1
        if name in self.failing:
            raise ProviderError(f"{name} unavailable")

    async def get_standings(self, league_id, season):
        self._call("get_standings")
        return list(self.standings.get((league_id, season), []))

    async def get_last_fixtures_for_team(self, team_id, count, status="FT"):
        self._call("get_last_fixtures_for_team")
        matches = sorted(self.fixtures.get(team_id, []), key=lambda m: m.date, reverse=True)
        if status:
            matches = [m for m in matches if m.status == status]
        return matches[:count]

    async def get_fixture_statistics(self, fixture_id):
        self._call("get_fixture_statistics")
        return self.statistics.get(fixture_id)

    async def get_fixture_by_id(self, fixture_id):
        self._call("get_fixture_by_id")
        return self.fixtures_by_id.get(fixture_id)

    async def get_injuries(self, fixture_id):
        self._call("get_injuries")
        return list(self.injuries.get(fixture_id, []))

    async def get_team_statistics(self, team_id, league_id, season):
        self._call("get_team_statistics")
        return self.team_stats.get(team_id)

    async def get_fixture_lineups(self, fixture_id):
        self._call("get_fixture_lineups")
        return self.lineups.get(fixture_id)

    async def close(self):
        self.closed = True


TRINITY_REPLY = {
    "fatigue_home": 20,
    "fatigue_away": 40,
    "style_matchup": 1.2,
    "lineup_strength_home": 90,
    "lineup_strength_away": 80,
    "reasoning": "Home side rested, away side played midweek.",
}

SENTIMENT_REPLY = {"fitness": 80, "distraction": 20, "reasoning": "Settled squad."}

GRADE_REPLY = {
    "context_factors": [
        {"type": "INJURIES", "score": 7, "description": "Two starting defenders out"},
        {"type": "TEAM_MORALE", "score": 6, "description": "Unbeaten in five"},
    ],
    "outlier_scenarios": [
        {
            "description": "Early red card flips the game",
            "probability": 20,
            "impact_score": 8,
            "supporting_factors": ["Aggressive midfield"],
            "historical_precedents": [],
        }
    ],
    "enhanced_reasoning": "Injuries temper the home edge.",
}


def default_reply(prompt: str) -> str:
    if "fatigue_home" in prompt:
        return json.dumps(TRINITY_REPLY)
    if "context_factors" in prompt:
        return json.dumps(GRADE_REPLY)
    if '"fitness"' in prompt:
        return json.dumps(SENTIMENT_REPLY)
    return "{}"


class FakeLLMClient:
    def __init__(self, factory: "FakeLLMFactory"):
        self.factory = factory

    async def generate(self, prompt: str, **kwargs) -> GeminiResult:
        self.factory.prompts.append(prompt)
        if self.factory.status != "COMPLETED":
            return GeminiResult(status=self.factory.status, text="", exec_ms=1, model_version="fake", error="boom")
        return GeminiResult(
            status="COMPLETED",
            text=self.factory.reply(prompt),
            exec_ms=1,
            model_version="fake",
        )

    async def close(self):
        self.factory.closed += 1


class FakeLLMFactory:
    """Callable LLM factory recording keys, prompts and closes."""

    def __init__(self, reply: Callable[[str], str] = default_reply, status: str = "COMPLETED"):
        self.reply = reply
        self.status = status
        self.keys: list[str] = []
        self.prompts: list[str] = []
        self.closed = 0

    def __call__(self, api_key: str) -> FakeLLMClient:
        self.keys.append(api_key)
        return FakeLLMClient(self)

    def prompts_containing(self, marker: str) -> list[str]:
        return [p for p in self.prompts if marker in p]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def llm_factory():
    return FakeLLMFactory()


@pytest.fixture
def clock():
    return FakeClock()

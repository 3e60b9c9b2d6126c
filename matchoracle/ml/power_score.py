"""
Power score: the deterministic "hard reality" strength proxy.

    power = (100 − 3 × rank) + round(10 × PPG) + round(5 × GD/G) [+ 10 home]

clamped to [0, 200]. PPG and GD/G use each team's own games played
(floored at 1). The home/away power delta seeds the headline scoreline:

    delta < −30  -> 0-3 (90)        delta > +30 -> 3-0 (90)
    delta < −15  -> 1-2 (75)        delta > +15 -> 2-1 (75)
    otherwise    -> 1-1 (60)

The seed confidence is scaled by the standings confidence adjustment.
"""

import math
from dataclasses import dataclass
from typing import Optional

from matchoracle.features.standings import StandingSnapshot

HOME_BONUS = 10
RANK_MULTIPLIER = 3
POINTS_PER_GAME_MULTIPLIER = 10
GOAL_DIFF_PER_GAME_MULTIPLIER = 5
POWER_MIN = 0
POWER_MAX = 200

STRONG_WIN_THRESHOLD = 30
WIN_THRESHOLD = 15


@dataclass(frozen=True)
class PowerScoreResult:
    home_power_score: int
    away_power_score: int
    prediction_seed: str
    confidence: int
    reasoning: str

    @property
    def delta(self) -> int:
        return self.home_power_score - self.away_power_score


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def power_score(
    rank: int,
    points: int,
    goals_diff: int,
    games_played: int,
    is_home: bool,
) -> int:
    """Power score for one team. Non-increasing in rank, non-decreasing in PPG and GD/G."""
    games = max(games_played, 1)
    base = (
        (100 - rank * RANK_MULTIPLIER)
        + _round_half_up(points / games * POINTS_PER_GAME_MULTIPLIER)
        + _round_half_up(goals_diff / games * GOAL_DIFF_PER_GAME_MULTIPLIER)
    )
    if is_home:
        base += HOME_BONUS
    return min(max(base, POWER_MIN), POWER_MAX)


def snapshot_power(snapshot: StandingSnapshot, is_home: bool) -> int:
    return power_score(
        rank=snapshot.rank,
        points=snapshot.points,
        goals_diff=snapshot.goals_diff,
        games_played=snapshot.games_played,
        is_home=is_home,
    )


def rank_difference_explanation(home_rank: int, away_rank: int) -> str:
    difference = away_rank - home_rank
    if difference > 10:
        return "massively higher"
    if difference > 5:
        return "significantly higher"
    if difference > 2:
        return "higher"
    if difference < -10:
        return "massively lower"
    if difference < -5:
        return "significantly lower"
    if difference < -2:
        return "lower"
    return "similar"


def _seed(
    delta: int,
    home_rank: int,
    away_rank: int,
    home_power: int,
    away_power: int,
    home_name: str,
    away_name: str,
) -> tuple[str, int, str]:
    rank_gap = away_rank - home_rank  # positive when home is better ranked

    if delta < -STRONG_WIN_THRESHOLD:
        return (
            "0-3",
            90,
            f"Strong away win. {away_name} (#{away_rank}) is {-rank_gap} ranks higher than "
            f"{home_name} (#{home_rank}) and has significantly better form "
            f"(Power: {away_power} vs {home_power}).",
        )
    if delta < -WIN_THRESHOLD:
        return (
            "1-2",
            75,
            f"Away win. {away_name} (#{away_rank}) is {-rank_gap} ranks higher than "
            f"{home_name} (#{home_rank}) and has better form (Power: {away_power} vs {home_power}).",
        )
    if delta > STRONG_WIN_THRESHOLD:
        return (
            "3-0",
            90,
            f"Strong home win. {home_name} (#{home_rank}) is {rank_gap} ranks higher than "
            f"{away_name} (#{away_rank}) and has significantly better form "
            f"(Power: {home_power} vs {away_power}).",
        )
    if delta > WIN_THRESHOLD:
        return (
            "2-1",
            75,
            f"Home win. {home_name} (#{home_rank}) is {rank_gap} ranks higher than "
            f"{away_name} (#{away_rank}) and has better form (Power: {home_power} vs {away_power}).",
        )
    return (
        "1-1",
        60,
        f"Close game/draw. Teams are closely matched (Power: {home_power} vs {away_power}). "
        f"{home_name} (#{home_rank}) and {away_name} (#{away_rank}) have similar strength.",
    )


def calculate(
    home: StandingSnapshot,
    away: StandingSnapshot,
    confidence_adjustment: float = 1.0,
    home_name: Optional[str] = None,
    away_name: Optional[str] = None,
) -> PowerScoreResult:
    """
    Score both teams and seed the prediction.

    Raises:
        ValueError: if confidence_adjustment is outside [0, 1].
    """
    if not 0.0 <= confidence_adjustment <= 1.0:
        raise ValueError(f"confidence_adjustment must be within [0, 1], got {confidence_adjustment}")

    home_power = snapshot_power(home, is_home=True)
    away_power = snapshot_power(away, is_home=False)

    home_label = home_name or home.team_name or "Home team"
    away_label = away_name or away.team_name or "Away team"
    prediction, base_confidence, reasoning = _seed(
        home_power - away_power,
        home.rank,
        away.rank,
        home_power,
        away_power,
        home_label,
        away_label,
    )
    standing = rank_difference_explanation(home.rank, away.rank)
    if standing != "similar":
        reasoning += f" {home_label} is ranked {standing} than {away_label}."
    confidence = min(max(int(base_confidence * confidence_adjustment), 0), 100)

    return PowerScoreResult(
        home_power_score=home_power,
        away_power_score=away_power,
        prediction_seed=prediction,
        confidence=confidence,
        reasoning=reasoning,
    )

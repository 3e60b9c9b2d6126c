"""
Tesseract: deterministic match simulator.

Turns two (halved) power scores plus a SimulationContext into outcome
probabilities and a most-likely scoreline.

Strength model:
    λ_home = 3.2 × (P_home / 100) × defence(P_away) × context_home
    λ_away = 3.2 × (P_away / 100) × defence(P_home) × context_away

    defence(P) = 1.25 − 0.5 × P / 100      (strong opponents concede less)

Context multipliers (per side unless noted):
    fatigue      1 − fatigue / 200         (shared)
    lineup       0.5 + 0.5 × lineup / 100  (shared)
    fitness      0.75 + 0.25 × fitness / 100
    distraction  1 − distraction / 200
    style        × style_matchup (home), ÷ style_matchup (away)

Score distribution: the full Dixon-Coles corrected Poisson grid
(0..max_goals per side, ρ = −0.15 on the 0-0 / 1-0 / 0-1 / 1-1 cells),
renormalised. No sampling, so identical inputs give identical outputs.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

import numpy as np

from matchoracle.trinity.context import SimulationContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_GOALS = 10
DEFAULT_RHO = -0.15

GOALS_AT_FULL_POWER = 3.2
MIN_LAMBDA = 0.05
POWER_MIN = 0.0
POWER_MAX = 100.0
TOP_SCORES = 3


@dataclass
class TesseractResult:
    home_win_probability: float
    draw_probability: float
    away_win_probability: float
    most_likely_score: str
    expected_home_goals: float = 0.0
    expected_away_goals: float = 0.0
    btts_probability: float = 0.0
    over_2_5_probability: float = 0.0
    top_scores: list[tuple[str, float]] = field(default_factory=list)

    @property
    def total_probability(self) -> float:
        return self.home_win_probability + self.draw_probability + self.away_win_probability

    @property
    def outcome(self) -> str:
        """HOME, DRAW or AWAY: the most probable 1X2 outcome."""
        probs = {
            "HOME": self.home_win_probability,
            "DRAW": self.draw_probability,
            "AWAY": self.away_win_probability,
        }
        return max(probs, key=probs.get)

    def summary(self) -> str:
        return (
            f"Tesseract: {self.home_win_probability:.0%} / {self.draw_probability:.0%} / "
            f"{self.away_win_probability:.0%}, most likely {self.most_likely_score}"
        )

    def to_dict(self) -> dict:
        return asdict(self)


def score_matrix(
    lam_home: float,
    lam_away: float,
    max_goals: int = DEFAULT_MAX_GOALS,
    rho: float = DEFAULT_RHO,
) -> np.ndarray:
    """Dixon-Coles corrected joint score grid, shape (G, G) indexed [home, away], sums to 1."""
    goals = np.arange(max_goals + 1)

    # Log-factorials: log(0!)=0, log(k!)=Σlog(1..k)
    log_fact = np.zeros(max_goals + 1)
    for k in range(1, max_goals + 1):
        log_fact[k] = log_fact[k - 1] + np.log(k)

    lam_h = max(lam_home, 1e-10)
    lam_a = max(lam_away, 1e-10)

    p_h = np.exp(goals * np.log(lam_h) - lam_h - log_fact)
    p_a = np.exp(goals * np.log(lam_a) - lam_a - log_fact)
    joint = np.outer(p_h, p_a)

    # τ(0,0) inflates 0-0, τ(1,0)/τ(0,1) deflate 1-0/0-1, τ(1,1) inflates 1-1
    joint[0, 0] *= max(1 - lam_h * lam_a * rho, 0.0)
    joint[1, 0] *= max(1 + lam_a * rho, 0.0)
    joint[0, 1] *= max(1 + lam_h * rho, 0.0)
    joint[1, 1] *= max(1 - rho, 0.0)

    return joint / joint.sum()


def context_multipliers(context: Optional[SimulationContext]) -> tuple[float, float]:
    """(home, away) goal-rate multipliers from a SimulationContext."""
    if context is None:
        return 1.0, 1.0

    shared = (1 - context.fatigue_score / 200) * (0.5 + 0.5 * context.lineup_strength / 100)
    home = (
        shared
        * (0.75 + 0.25 * context.home_fitness / 100)
        * (1 - context.home_distraction / 200)
        * context.style_matchup
    )
    away = (
        shared
        * (0.75 + 0.25 * context.away_fitness / 100)
        * (1 - context.away_distraction / 200)
        / context.style_matchup
    )
    return home, away


def _defence_factor(opponent_power: float) -> float:
    return 1.25 - 0.5 * opponent_power / 100


def _clamp_power(value: float, side: str) -> float:
    if value < POWER_MIN or value > POWER_MAX:
        logger.warning(f"[TESSERACT] {side} power {value} outside [0, 100], clamping")
    return min(max(float(value), POWER_MIN), POWER_MAX)


class TesseractEngine:
    """Analytic score-grid simulator."""

    def __init__(self, max_goals: int = DEFAULT_MAX_GOALS, rho: float = DEFAULT_RHO):
        self.max_goals = max_goals
        self.rho = rho

    def expected_goals(
        self,
        home_power: float,
        away_power: float,
        context: Optional[SimulationContext] = None,
    ) -> tuple[float, float]:
        home_power = _clamp_power(home_power, "home")
        away_power = _clamp_power(away_power, "away")
        ctx_home, ctx_away = context_multipliers(context)

        lam_home = GOALS_AT_FULL_POWER * home_power / 100 * _defence_factor(away_power) * ctx_home
        lam_away = GOALS_AT_FULL_POWER * away_power / 100 * _defence_factor(home_power) * ctx_away
        return max(lam_home, MIN_LAMBDA), max(lam_away, MIN_LAMBDA)

    def simulate_match(
        self,
        home_power: float,
        away_power: float,
        context: Optional[SimulationContext] = None,
    ) -> TesseractResult:
        lam_home, lam_away = self.expected_goals(home_power, away_power, context)
        joint = score_matrix(lam_home, lam_away, self.max_goals, self.rho)

        goals = np.arange(self.max_goals + 1)
        h_grid, a_grid = np.meshgrid(goals, goals, indexing="ij")

        p_home = float(joint[h_grid > a_grid].sum())
        p_draw = float(joint[h_grid == a_grid].sum())
        p_away = float(joint[h_grid < a_grid].sum())
        total = p_home + p_draw + p_away

        # argmax over the flattened grid; ties resolve to the lowest home score
        flat_order = np.argsort(-joint, axis=None, kind="stable")
        top = []
        for idx in flat_order[:TOP_SCORES]:
            h, a = np.unravel_index(idx, joint.shape)
            top.append((f"{int(h)}-{int(a)}", round(float(joint[h, a]), 4)))

        result = TesseractResult(
            home_win_probability=p_home / total,
            draw_probability=p_draw / total,
            away_win_probability=p_away / total,
            most_likely_score=top[0][0],
            expected_home_goals=round(lam_home, 3),
            expected_away_goals=round(lam_away, 3),
            btts_probability=float(joint[1:, 1:].sum()),
            over_2_5_probability=float(joint[(h_grid + a_grid) > 2].sum()),
            top_scores=top,
        )
        logger.debug(
            f"[TESSERACT] λ=({lam_home:.2f}, {lam_away:.2f}) -> "
            f"{result.home_win_probability:.3f}/{result.draw_probability:.3f}/"
            f"{result.away_win_probability:.3f} {result.most_likely_score}"
        )
        return result

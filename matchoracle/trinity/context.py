"""SimulationContext ("Trinity metrics"): the contextual inputs to Tesseract."""

from dataclasses import asdict, dataclass

STYLE_MIN = 0.5
STYLE_MAX = 1.5

NEUTRAL_REASONING = "Default neutral context"
FALLBACK_REASONING = "Fallback analysis using basic heuristics"
EMERGENCY_REASONING = "Emergency fallback - no data available"

HIGH_FATIGUE_THRESHOLD = 70
WEAK_LINEUP_THRESHOLD = 70
STYLE_ADVANTAGE_THRESHOLD = 1.1
STYLE_DISADVANTAGE_THRESHOLD = 0.9


def _pct(value) -> int:
    return int(min(max(int(round(float(value))), 0), 100))


@dataclass(frozen=True)
class SimulationContext:
    """
    Fatigue / lineup / style read for one fixture.

    Every numeric field is a 0-100 score except style_matchup, a home-side
    ratio in [0.5, 1.5] (1.0 neutral). Out-of-range inputs are clamped.
    """

    fatigue_score: int = 0
    lineup_strength: int = 100
    style_matchup: float = 1.0
    home_fitness: int = 100
    away_fitness: int = 100
    home_distraction: int = 0
    away_distraction: int = 0
    reasoning: str = NEUTRAL_REASONING

    def __post_init__(self):
        for name in (
            "fatigue_score",
            "lineup_strength",
            "home_fitness",
            "away_fitness",
            "home_distraction",
            "away_distraction",
        ):
            object.__setattr__(self, name, _pct(getattr(self, name)))
        style = float(self.style_matchup)
        object.__setattr__(self, "style_matchup", round(min(max(style, STYLE_MIN), STYLE_MAX), 2))

    @classmethod
    def neutral(cls, reasoning: str = NEUTRAL_REASONING) -> "SimulationContext":
        return cls(reasoning=reasoning)

    @classmethod
    def emergency(cls) -> "SimulationContext":
        return cls(
            fatigue_score=50,
            lineup_strength=85,
            style_matchup=1.0,
            home_fitness=75,
            away_fitness=75,
            home_distraction=15,
            away_distraction=15,
            reasoning=EMERGENCY_REASONING,
        )

    def metrics(self) -> tuple:
        """Numeric fields only (reasoning excluded), for value comparisons."""
        return (
            self.fatigue_score,
            self.lineup_strength,
            self.style_matchup,
            self.home_fitness,
            self.away_fitness,
            self.home_distraction,
            self.away_distraction,
        )

    @property
    def is_neutral(self) -> bool:
        return self.metrics() == SimulationContext().metrics()

    def has_high_fatigue(self) -> bool:
        return self.fatigue_score > HIGH_FATIGUE_THRESHOLD

    def has_weak_lineup(self) -> bool:
        return self.lineup_strength < WEAK_LINEUP_THRESHOLD

    def has_style_advantage(self) -> bool:
        return self.style_matchup > STYLE_ADVANTAGE_THRESHOLD

    def has_style_disadvantage(self) -> bool:
        return self.style_matchup < STYLE_DISADVANTAGE_THRESHOLD

    def has_meaningful_data(self) -> bool:
        """True when anything differs from the neutral read."""
        return not self.is_neutral

    def to_dict(self) -> dict:
        return asdict(self)


NEUTRAL_CONTEXT = SimulationContext.neutral()

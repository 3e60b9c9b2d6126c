"""
Prediction ledger records.

PredictionLogRecord validates itself on construction. Any violation is
fatal for that record: LedgerValidationError lists every broken rule and
no field is ever coerced or defaulted to make a record pass.
"""

import re
import time
from dataclasses import asdict, dataclass, field
from typing import Optional

from matchoracle.utils.ids import create_fixture_id

SCORE_PATTERN = re.compile(r"^\d+-\d+$")
PROB_SUM_MIN = 0.90
PROB_SUM_MAX = 1.10
DRAW_LIKELY_THRESHOLD = 0.30


class LedgerValidationError(ValueError):
    """A PredictionLogRecord broke one or more invariants."""

    def __init__(self, violations: list[str], values: Optional[dict] = None):
        self.violations = violations
        self.values = values or {}
        super().__init__("; ".join(violations))


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PredictionLogRecord:
    fixture_id: int
    home_team_id: int
    away_team_id: int
    match_name: str
    predicted_score: str
    home_prob: float
    draw_prob: float
    away_prob: float
    home_fitness: int
    home_distraction: int
    llm_grade_context_score: Optional[float] = None
    llm_grade_risk_level: Optional[str] = None
    actual_score: Optional[str] = None
    outcome_correct: Optional[bool] = None
    exact_score_correct: Optional[bool] = None
    timestamp: int = field(default_factory=_now_ms)

    def __post_init__(self):
        violations = []

        if self.fixture_id is None or self.fixture_id <= 0:
            violations.append(f"fixture_id must be > 0, got {self.fixture_id}")
        if not self.match_name or not self.match_name.strip():
            violations.append("match_name cannot be blank")
        if not isinstance(self.predicted_score, str) or not SCORE_PATTERN.match(self.predicted_score):
            violations.append(f"predicted_score must match H-A, got {self.predicted_score!r}")

        probs = {"home_prob": self.home_prob, "draw_prob": self.draw_prob, "away_prob": self.away_prob}
        for name, value in probs.items():
            if value is None or not 0.0 <= value <= 1.0:
                violations.append(f"{name} must be within [0, 1], got {value}")
        if all(v is not None for v in probs.values()):
            total = sum(probs.values())
            if not PROB_SUM_MIN <= total <= PROB_SUM_MAX:
                violations.append(
                    f"probabilities must sum to within [{PROB_SUM_MIN}, {PROB_SUM_MAX}], got {total:.3f}"
                )

        for name in ("home_fitness", "home_distraction"):
            value = getattr(self, name)
            if value is None or not 0 <= value <= 100:
                violations.append(f"{name} must be within [0, 100], got {value}")

        if self.llm_grade_context_score is not None and not 0.0 <= self.llm_grade_context_score <= 10.0:
            violations.append(
                f"llm_grade_context_score must be within [0, 10], got {self.llm_grade_context_score}"
            )

        if self.timestamp is None or self.timestamp <= 0:
            violations.append(f"timestamp must be > 0, got {self.timestamp}")

        if violations:
            raise LedgerValidationError(violations, values=asdict(self))

    @property
    def home_win_percentage(self) -> int:
        return int(round(self.home_prob * 100))

    @property
    def draw_percentage(self) -> int:
        return int(round(self.draw_prob * 100))

    @property
    def away_win_percentage(self) -> int:
        return int(round(self.away_prob * 100))

    @property
    def is_home_favorite(self) -> bool:
        return self.home_prob > self.away_prob and self.home_prob > self.draw_prob

    @property
    def is_away_favorite(self) -> bool:
        return self.away_prob > self.home_prob and self.away_prob > self.draw_prob

    @property
    def is_draw_likely(self) -> bool:
        return self.draw_prob >= DRAW_LIKELY_THRESHOLD

    def formatted_prediction(self) -> str:
        return (
            f"{self.match_name}: {self.predicted_score} "
            f"({self.home_win_percentage}% / {self.draw_percentage}% / {self.away_win_percentage}%)"
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_analysis(
        cls,
        analysis,
        home_team_id: int,
        away_team_id: int,
        match_name: str,
        fixture_id: Optional[int] = None,
        timestamp: Optional[int] = None,
    ) -> "PredictionLogRecord":
        """
        Build a record from an OracleAnalysis.

        Without a real fixture id the synthetic team-pair id is used. Without
        a Tesseract result the outcome probabilities are split evenly.

        Raises:
            LedgerValidationError: if the analysis yields an invalid record.
        """
        if fixture_id is None or fixture_id <= 0:
            fixture_id = create_fixture_id(home_team_id, away_team_id)

        tesseract = analysis.tesseract
        if tesseract is not None:
            home_prob = tesseract.home_win_probability
            draw_prob = tesseract.draw_probability
            away_prob = tesseract.away_win_probability
        else:
            home_prob = draw_prob = away_prob = 1 / 3

        context = analysis.simulation_context
        grade = analysis.llm_grade_enhancement

        return cls(
            fixture_id=fixture_id,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            match_name=match_name,
            predicted_score=analysis.prediction,
            home_prob=home_prob,
            draw_prob=draw_prob,
            away_prob=away_prob,
            home_fitness=context.home_fitness if context else 100,
            home_distraction=context.home_distraction if context else 0,
            llm_grade_context_score=grade.overall_context_score if grade else None,
            llm_grade_risk_level=grade.overall_risk_level.value if grade else None,
            timestamp=timestamp if timestamp is not None else _now_ms(),
        )


@dataclass(frozen=True)
class LedgerWriteResult:
    ok: bool
    error: Optional[str] = None
    record: Optional[PredictionLogRecord] = None

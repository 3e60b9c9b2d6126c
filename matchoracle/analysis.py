"""OracleAnalysis aggregate and the per-request stage machine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from matchoracle.features.standings import SOURCE_DEFAULT
from matchoracle.llm.enhancement import LLMGradeEnhancement
from matchoracle.ml.tesseract import TesseractResult
from matchoracle.trinity.context import SimulationContext

STRONG_WIN_DELTA = 30
BALANCED_DELTA = 15


class AnalysisStage(str, Enum):
    STARTED = "STARTED"
    STANDINGS_RESOLVED = "STANDINGS_RESOLVED"
    POWER_SCORED = "POWER_SCORED"
    CONTEXT_READY = "CONTEXT_READY"
    SIMULATED = "SIMULATED"
    GRADED = "GRADED"
    UNGRADED = "UNGRADED"
    ADJUSTED = "ADJUSTED"
    LOGGED = "LOGGED"
    FAILED = "FAILED"


@dataclass
class OracleAnalysis:
    home_power_score: int
    away_power_score: int
    prediction: str
    confidence: int
    reasoning: str
    standings_source: str = SOURCE_DEFAULT
    confidence_adjustment: float = 1.0
    tesseract: Optional[TesseractResult] = None
    simulation_context: Optional[SimulationContext] = None
    llm_grade_enhancement: Optional[LLMGradeEnhancement] = None
    stage: AnalysisStage = AnalysisStage.STARTED
    stage_history: list[AnalysisStage] = field(default_factory=list)

    def advance(self, stage: AnalysisStage) -> None:
        self.stage = stage
        self.stage_history.append(stage)

    @property
    def power_delta(self) -> int:
        return self.home_power_score - self.away_power_score

    @property
    def is_strong_home_win(self) -> bool:
        return self.power_delta > STRONG_WIN_DELTA

    @property
    def is_strong_away_win(self) -> bool:
        return self.power_delta < -STRONG_WIN_DELTA

    @property
    def is_balanced(self) -> bool:
        return abs(self.power_delta) <= BALANCED_DELTA

    @property
    def is_error(self) -> bool:
        return self.stage == AnalysisStage.FAILED

    @classmethod
    def error(cls, message: str) -> "OracleAnalysis":
        return cls(
            home_power_score=0,
            away_power_score=0,
            prediction="Error",
            confidence=0,
            reasoning=f"Oracle analysis failed: {message}",
            simulation_context=SimulationContext.neutral(),
            stage=AnalysisStage.FAILED,
            stage_history=[AnalysisStage.FAILED],
        )

    def to_dict(self) -> dict:
        return {
            "home_power_score": self.home_power_score,
            "away_power_score": self.away_power_score,
            "prediction": self.prediction,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "standings_source": self.standings_source,
            "confidence_adjustment": self.confidence_adjustment,
            "tesseract": self.tesseract.to_dict() if self.tesseract else None,
            "simulation_context": self.simulation_context.to_dict() if self.simulation_context else None,
            "llm_grade_enhancement": (
                self.llm_grade_enhancement.to_dict() if self.llm_grade_enhancement else None
            ),
            "stage": self.stage.value,
            "stage_history": [stage.value for stage in self.stage_history],
        }

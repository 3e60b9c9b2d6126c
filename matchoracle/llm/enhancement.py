"""
LLMGRADE value types: context factors, outlier scenarios and the
aggregate enhancement attached to an OracleAnalysis.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ContextFactorType(str, Enum):
    INJURIES = "INJURIES"
    SENTIMENT = "SENTIMENT"
    FORM_ANOMALY = "FORM_ANOMALY"
    TEAM_MORALE = "TEAM_MORALE"
    TACTICAL_CHANGES = "TACTICAL_CHANGES"
    WEATHER = "WEATHER"
    PRESSURE = "PRESSURE"
    HISTORICAL_ANOMALY = "HISTORICAL_ANOMALY"

    @property
    def default_weight(self) -> float:
        return DEFAULT_WEIGHTS[self]

    @classmethod
    def parse(cls, raw) -> Optional["ContextFactorType"]:
        """Lenient lookup ("injuries", "Form anomaly", "FORM-ANOMALY")."""
        if raw is None:
            return None
        key = str(raw).strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            return None


DEFAULT_WEIGHTS = {
    ContextFactorType.INJURIES: 1.5,
    ContextFactorType.TACTICAL_CHANGES: 1.3,
    ContextFactorType.TEAM_MORALE: 1.2,
    ContextFactorType.FORM_ANOMALY: 1.2,
    ContextFactorType.PRESSURE: 1.1,
    ContextFactorType.SENTIMENT: 1.0,
    ContextFactorType.HISTORICAL_ANOMALY: 1.0,
    ContextFactorType.WEATHER: 0.8,
}


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]


def max_risk(*levels: RiskLevel) -> RiskLevel:
    return max(levels, key=lambda level: level.rank, default=RiskLevel.LOW)


@dataclass(frozen=True)
class ContextFactor:
    """One qualitative signal. score: 1 (weak) .. 10 (strong)."""

    type: ContextFactorType
    score: int
    description: str
    weight: Optional[float] = None

    def __post_init__(self):
        if not 1 <= self.score <= 10:
            raise ValueError(f"score must be within 1..10, got {self.score}")
        if not self.description or not self.description.strip():
            raise ValueError("description cannot be blank")
        if self.weight is None:
            object.__setattr__(self, "weight", self.type.default_weight)
        if not math.isfinite(self.weight) or self.weight <= 0:
            raise ValueError(f"weight must be a positive finite number, got {self.weight}")

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight

    @property
    def is_high_impact(self) -> bool:
        return self.score >= 8

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "score": self.score,
            "description": self.description,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class OutlierScenario:
    """An unlikely-but-plausible match script. probability 0..100, impact 1..10."""

    description: str
    probability: int
    impact_score: int
    supporting_factors: tuple[str, ...] = ()
    historical_precedents: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.description or not self.description.strip():
            raise ValueError("description cannot be blank")
        if not 0 <= self.probability <= 100:
            raise ValueError(f"probability must be within 0..100, got {self.probability}")
        if not 1 <= self.impact_score <= 10:
            raise ValueError(f"impact_score must be within 1..10, got {self.impact_score}")

    @property
    def risk_level(self) -> RiskLevel:
        if self.probability >= 70 and self.impact_score >= 8:
            return RiskLevel.HIGH
        if self.probability >= 50 and self.impact_score >= 5:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "probability": self.probability,
            "impact_score": self.impact_score,
            "supporting_factors": list(self.supporting_factors),
            "historical_precedents": list(self.historical_precedents),
            "risk_level": self.risk_level.value,
        }


def confidence_adjustment_for(factors: list[ContextFactor]) -> int:
    """Map the weighted factor average onto a −15..+15 confidence nudge."""
    if not factors:
        return 0
    weighted_average = sum(f.weighted_score for f in factors) / len(factors)
    if weighted_average >= 8.0:
        return 15
    if weighted_average >= 6.5:
        return 10
    if weighted_average >= 5.5:
        return 5
    if weighted_average >= 4.5:
        return 0
    if weighted_average >= 3.5:
        return -5
    if weighted_average >= 2.5:
        return -10
    return -15


@dataclass(frozen=True)
class LLMGradeEnhancement:
    context_factors: tuple[ContextFactor, ...] = ()
    outlier_scenarios: tuple[OutlierScenario, ...] = ()
    enhanced_reasoning: str = ""
    confidence_adjustment: int = 0
    generated_at: float = field(default=0.0, compare=False)

    def __post_init__(self):
        if not -20 <= self.confidence_adjustment <= 20:
            raise ValueError(
                f"confidence_adjustment must be within -20..20, got {self.confidence_adjustment}"
            )

    @classmethod
    def build(
        cls,
        context_factors: list[ContextFactor],
        outlier_scenarios: list[OutlierScenario],
        enhanced_reasoning: str,
        generated_at: float = 0.0,
    ) -> "LLMGradeEnhancement":
        return cls(
            context_factors=tuple(context_factors),
            outlier_scenarios=tuple(outlier_scenarios),
            enhanced_reasoning=enhanced_reasoning,
            confidence_adjustment=confidence_adjustment_for(context_factors),
            generated_at=generated_at,
        )

    @property
    def overall_context_score(self) -> float:
        """Mean weighted factor score on 0..10 (weights can push raw values past 10)."""
        if not self.context_factors:
            return 5.0
        mean = sum(f.weighted_score for f in self.context_factors) / len(self.context_factors)
        return round(min(max(mean, 0.0), 10.0), 2)

    @property
    def has_high_impact_factors(self) -> bool:
        return any(f.is_high_impact for f in self.context_factors)

    @property
    def overall_risk_level(self) -> RiskLevel:
        outlier_risk = max_risk(*(s.risk_level for s in self.outlier_scenarios))
        context_risk = RiskLevel.MEDIUM if self.has_high_impact_factors else RiskLevel.LOW
        return max_risk(outlier_risk, context_risk)

    @property
    def most_impactful_factor(self) -> Optional[ContextFactor]:
        if not self.context_factors:
            return None
        return max(self.context_factors, key=lambda f: f.weighted_score)

    def adjusted_confidence(self, base_confidence: int) -> int:
        return min(max(base_confidence + self.confidence_adjustment, 0), 100)

    def summary(self) -> str:
        parts = [f"LLMGRADE context score {self.overall_context_score:.1f}/10"]
        top = self.most_impactful_factor
        if top is not None:
            parts.append(f"key factor {top.type.value.lower()}")
        high_risk = sum(1 for s in self.outlier_scenarios if s.risk_level == RiskLevel.HIGH)
        if high_risk:
            parts.append(f"{high_risk} high-risk outlier scenario(s)")
        parts.append(f"risk {self.overall_risk_level.value}")
        return ", ".join(parts)

    def to_dict(self) -> dict:
        return {
            "context_factors": [f.to_dict() for f in self.context_factors],
            "outlier_scenarios": [s.to_dict() for s in self.outlier_scenarios],
            "enhanced_reasoning": self.enhanced_reasoning,
            "confidence_adjustment": self.confidence_adjustment,
            "overall_context_score": self.overall_context_score,
            "overall_risk_level": self.overall_risk_level.value,
        }

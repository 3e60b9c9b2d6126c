"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Column, DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PredictionLog(SQLModel, table=True):
    """
    Append-only prediction ledger row.

    One row per analysis attempt. actual_score / outcome_correct /
    exact_score_correct stay NULL until the result is reconciled.
    """

    __tablename__ = "prediction_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    fixture_id: int = Field(index=True, description="API-Football fixture ID or synthetic team-pair ID")
    home_team_id: int = Field(index=True)
    away_team_id: int = Field(index=True)
    match_name: str = Field(max_length=255, description="'Home vs Away'")

    predicted_score: str = Field(max_length=10, description="'H-A'")
    home_prob: float = Field(description="Probability of home win")
    draw_prob: float = Field(description="Probability of draw")
    away_prob: float = Field(description="Probability of away win")

    home_fitness: int = Field(description="Trinity home fitness 0-100")
    home_distraction: int = Field(description="Trinity home distraction 0-100")

    llm_grade_context_score: Optional[float] = Field(default=None, description="0-10")
    llm_grade_risk_level: Optional[str] = Field(default=None, max_length=10, description="LOW/MEDIUM/HIGH")

    # Filled by reconciliation once the match is played
    actual_score: Optional[str] = Field(default=None, max_length=10)
    outcome_correct: Optional[bool] = Field(default=None)
    exact_score_correct: Optional[bool] = Field(default=None)

    timestamp: int = Field(
        sa_column=Column(BigInteger, nullable=False), description="Epoch milliseconds of the analysis"
    )
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )

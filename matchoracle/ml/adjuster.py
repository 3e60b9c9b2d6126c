"""
Bias-corrected adjuster.

The power-score seed over-predicts blow-outs (3-0) when the gap is large.
This post-processor pulls the scoreline back using LLMGRADE context
factors and agreement with Tesseract, then a final quick-fix heuristic
overrides lopsided scores when injuries or poor form argue for a closer
game.

Corrections (each a fraction removed from the favoured side):
    injury    per INJURIES factor: 9-10 -> 0.30, 7-8 -> 0.20, 5-6 -> 0.15,
              3-4 -> 0.10, else 0.05; summed, capped at 0.60
    form      mean TEAM_MORALE / FORM_ANOMALY score: <=2 -> 0.20, <=4 -> 0.15,
              <=6 -> 0.05, else 0
    pressure  max PRESSURE score: >=8 -> 0.10, >=6 -> 0.05, else 0

Alignment with Tesseract: exact score 1.5, same outcome 1.2, else 0.8.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from matchoracle.llm.enhancement import ContextFactor, ContextFactorType
from matchoracle.ml.tesseract import TesseractResult

logger = logging.getLogger(__name__)

SCORE_RE = re.compile(r"^(\d+)-(\d+)$")

MAX_INJURY_CORRECTION = 0.6
FAVOURED_GOALS_FLOOR = 0.7
BLOWOUT_MARGIN = 3
BLOWOUT_SHRINK = 0.85
MAX_GOALS = 5

ALIGNMENT_EXACT = 1.5
ALIGNMENT_SAME_OUTCOME = 1.2
ALIGNMENT_DIFFERENT = 0.8

QUICK_FIX_LARGE_GAP = 40
QUICK_FIX_GAP = 30
POOR_FORM_CATEGORIES = ("poor", "terrible")


@dataclass(frozen=True)
class AdjustedPrediction:
    score: str
    confidence: int
    reasoning: str
    injury_correction: float = 0.0
    form_correction: float = 0.0
    pressure_correction: float = 0.0
    alignment_factor: float = 1.0


def parse_score(score: str) -> tuple[int, int]:
    """'H-A' -> (H, A). Raises ValueError for anything else."""
    match = SCORE_RE.match(score.strip()) if score else None
    if match is None:
        raise ValueError(f"Invalid scoreline: {score!r}")
    return int(match.group(1)), int(match.group(2))


def outcome_of(home_goals: int, away_goals: int) -> str:
    if home_goals > away_goals:
        return "HOME"
    if home_goals < away_goals:
        return "AWAY"
    return "DRAW"


def injury_correction(factors: list[ContextFactor]) -> float:
    total = 0.0
    for factor in factors:
        if factor.type != ContextFactorType.INJURIES:
            continue
        if factor.score >= 9:
            total += 0.30
        elif factor.score >= 7:
            total += 0.20
        elif factor.score >= 5:
            total += 0.15
        elif factor.score >= 3:
            total += 0.10
        else:
            total += 0.05
    return round(min(total, MAX_INJURY_CORRECTION), 2)


def form_correction(factors: list[ContextFactor]) -> float:
    scores = [
        f.score
        for f in factors
        if f.type in (ContextFactorType.TEAM_MORALE, ContextFactorType.FORM_ANOMALY)
    ]
    if not scores:
        return 0.0
    mean = sum(scores) / len(scores)
    if mean <= 2:
        return 0.20
    if mean <= 4:
        return 0.15
    if mean <= 6:
        return 0.05
    return 0.0


def pressure_correction(factors: list[ContextFactor]) -> float:
    scores = [f.score for f in factors if f.type == ContextFactorType.PRESSURE]
    if not scores:
        return 0.0
    strongest = max(scores)
    if strongest >= 8:
        return 0.10
    if strongest >= 6:
        return 0.05
    return 0.0


def alignment_factor(score: str, tesseract: Optional[TesseractResult]) -> float:
    if tesseract is None:
        return 1.0
    if score == tesseract.most_likely_score:
        return ALIGNMENT_EXACT
    try:
        ours = outcome_of(*parse_score(score))
        theirs = outcome_of(*parse_score(tesseract.most_likely_score))
    except ValueError:
        return 1.0
    return ALIGNMENT_SAME_OUTCOME if ours == theirs else ALIGNMENT_DIFFERENT


def adjust_score(base_score: str, power_diff: int, correction: float, alignment: float) -> str:
    home, away = parse_score(base_score)

    if power_diff != 0:
        home_favoured = power_diff > 0
        fav, under = (home, away) if home_favoured else (away, home)

        # Only a winning favourite is pulled back; it never drops below a one-goal lead
        if fav > under:
            fav = int(fav * max(1.0 - correction, FAVOURED_GOALS_FLOOR))
            if fav - under >= BLOWOUT_MARGIN:
                fav = int(fav * BLOWOUT_SHRINK)
            fav = max(fav, under + 1)

        home, away = (fav, under) if home_favoured else (under, fav)

    if alignment < 1.0 and home != away:
        # Tesseract disagrees: pull one goal toward a draw
        if home > away:
            home -= 1
        else:
            away -= 1

    return f"{min(home, MAX_GOALS)}-{min(away, MAX_GOALS)}"


def _reasoning(
    base_reasoning: str,
    base_score: str,
    adjusted_score: str,
    factors: list[ContextFactor],
    tesseract: Optional[TesseractResult],
) -> str:
    parts = [base_reasoning.rstrip()]

    injuries = sum(1 for f in factors if f.type == ContextFactorType.INJURIES)
    if injuries:
        parts.append(f"Context adjustment: {injuries} injury factor(s) considered.")

    form_notes = [
        f.description
        for f in factors
        if f.type in (ContextFactorType.TEAM_MORALE, ContextFactorType.FORM_ANOMALY)
    ]
    if form_notes:
        parts.append(f"Recent form: {', '.join(form_notes)}.")

    if tesseract is not None and adjusted_score != base_score:
        parts.append(f"Tesseract simulation suggested {tesseract.most_likely_score}.")

    if adjusted_score != base_score:
        parts.append(f"Final adjusted prediction: {adjusted_score} (from {base_score}).")
    else:
        parts.append(f"Final adjusted prediction: {adjusted_score}.")
    return " ".join(p for p in parts if p)


class ContextAdjuster:
    """Applies the context corrections and the quick fix to a base prediction."""

    def adjust(
        self,
        home_power: int,
        away_power: int,
        base_score: str,
        base_confidence: int,
        base_reasoning: str,
        factors: list[ContextFactor],
        tesseract: Optional[TesseractResult],
    ) -> AdjustedPrediction:
        injury = injury_correction(factors)
        form = form_correction(factors)
        pressure = pressure_correction(factors)
        alignment = alignment_factor(base_score, tesseract)

        power_diff = home_power - away_power
        score = adjust_score(base_score, power_diff, injury + form + pressure, alignment)

        confidence = base_confidence / 100 * (1 - injury) * (1 - form) * alignment
        confidence = min(max(int(confidence * 100), 0), 100)

        logger.info(
            f"[ADJUST] {base_score} -> {score} (diff={power_diff}, injury={injury}, "
            f"form={form}, pressure={pressure}, alignment={alignment}) "
            f"confidence {base_confidence} -> {confidence}"
        )
        return AdjustedPrediction(
            score=score,
            confidence=confidence,
            reasoning=_reasoning(base_reasoning, base_score, score, factors, tesseract),
            injury_correction=injury,
            form_correction=form,
            pressure_correction=pressure,
            alignment_factor=alignment,
        )


def quick_fix_score(
    score: str,
    power_diff: int,
    total_injuries: int,
    favoured_form: str,
) -> tuple[str, Optional[str]]:
    """
    Override lopsided scores when the context argues for a closer game.

    The favoured side is the one with the higher power; its goals come
    first in the rule table and are mirrored for an away favourite.

    Returns:
        (score, reason). reason is None when no rule fired or the rule
        agrees with the incoming score.
    """
    gap = abs(power_diff)
    form = (favoured_form or "").lower()

    if gap > QUICK_FIX_LARGE_GAP and total_injuries >= 4:
        fixed, reason = (1, 0), f"{total_injuries} injuries on the favoured side with a power gap of {gap}"
    elif gap > QUICK_FIX_LARGE_GAP and total_injuries >= 2:
        fixed, reason = (2, 1), f"{total_injuries} injuries on the favoured side with a power gap of {gap}"
    elif gap > QUICK_FIX_LARGE_GAP and form in POOR_FORM_CATEGORIES:
        fixed, reason = (2, 1), f"{form} recent form of the favoured side with a power gap of {gap}"
    elif gap > QUICK_FIX_GAP and total_injuries >= 4:
        fixed, reason = (1, 0), f"{total_injuries} injuries on the favoured side with a power gap of {gap}"
    else:
        return score, None

    fav, under = fixed
    candidate = f"{fav}-{under}" if power_diff > 0 else f"{under}-{fav}"
    if candidate == score:
        return score, None
    return candidate, reason


def apply_quick_fix(
    adjusted: AdjustedPrediction,
    power_diff: int,
    total_injuries: int,
    favoured_form: str,
) -> AdjustedPrediction:
    fixed, reason = quick_fix_score(adjusted.score, power_diff, total_injuries, favoured_form)
    if reason is None:
        return adjusted

    logger.info(f"[ADJUST] Quick fix {adjusted.score} -> {fixed}: {reason}")
    return AdjustedPrediction(
        score=fixed,
        confidence=adjusted.confidence,
        reasoning=f"{adjusted.reasoning} Quick fix applied: {adjusted.score} -> {fixed} due to {reason}.",
        injury_correction=adjusted.injury_correction,
        form_correction=adjusted.form_correction,
        pressure_correction=adjusted.pressure_correction,
        alignment_factor=adjusted.alignment_factor,
    )

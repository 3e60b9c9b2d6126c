"""
Recent form.

Results are "W" / "D" / "L" strings ordered newest first, as returned by
results_from_fixtures(). Scoring: W=3, D=1, L=0. Shorter histories are
scaled to the full window by points per game.
"""

from dataclasses import dataclass, field

from matchoracle.etl.base import MatchData

RESULT_POINTS = {"W": 3, "D": 1, "L": 0}
FORM_WINDOW = 5
POOR_FORM_WINDOW = 3

# (min score over last five, label, correction factor)
FORM_BANDS = [
    (12, "Excellent", 1.10),
    (9, "Good", 1.05),
    (6, "Average", 1.00),
    (3, "Poor", 0.95),
    (0, "Terrible", 0.90),
]


@dataclass
class TeamForm:
    description: str
    score: int
    factor: float
    recent_results: list[str] = field(default_factory=list)

    @property
    def category(self) -> str:
        """Lower-case label used by the quick-fix heuristic."""
        return self.description.lower()

    @property
    def summary(self) -> str:
        if not self.recent_results:
            return "No recent form data"
        wins = self.recent_results.count("W")
        draws = self.recent_results.count("D")
        losses = self.recent_results.count("L")
        return (
            f"{self.description} form ({wins}W {draws}D {losses}L "
            f"in last {len(self.recent_results)})"
        )


UNKNOWN_FORM = TeamForm(description="Unknown", score=0, factor=1.0)


def results_from_fixtures(team_id: int, fixtures: list[MatchData]) -> list[str]:
    """W/D/L list from team_id's perspective, newest first, skipping unplayed fixtures."""
    ordered = sorted(fixtures, key=lambda m: m.date, reverse=True)
    results = []
    for match in ordered:
        result = match.result_for(team_id)
        if result is not None:
            results.append(result)
    return results


def form_score(results: list[str]) -> int:
    return sum(RESULT_POINTS.get(r, 0) for r in results)


def _band(score: int) -> tuple[int, str, float]:
    for band in FORM_BANDS:
        if score >= band[0]:
            return band
    return FORM_BANDS[-1]


def _scaled_score(results: list[str], window: int) -> int:
    """Points over the window, extrapolated from points per game when fewer results exist."""
    recent = results[:window]
    return round(form_score(recent) * window / len(recent))


def calculate_team_form(results: list[str]) -> TeamForm:
    if not results:
        return UNKNOWN_FORM
    last5 = results[:FORM_WINDOW]
    score = _scaled_score(last5, FORM_WINDOW)
    _, description, factor = _band(score)
    return TeamForm(description=description, score=score, factor=factor, recent_results=last5)


def is_poor_form(results: list[str]) -> bool:
    """At most one point per game over the last three."""
    if not results:
        return False
    return _scaled_score(results, POOR_FORM_WINDOW) <= 3

"""Recent form scoring, bands and the poor-form check."""

from matchoracle.features.form import (
    UNKNOWN_FORM,
    calculate_team_form,
    form_score,
    is_poor_form,
    results_from_fixtures,
)
from tests.conftest import make_match

TEAM = 50


class TestFormBands:
    def test_excellent(self):
        form = calculate_team_form(["W", "W", "W", "W", "D"])
        assert form.score == 13
        assert form.description == "Excellent"
        assert form.category == "excellent"
        assert form.factor == 1.10

    def test_average(self):
        assert calculate_team_form(["W", "D", "D", "D", "L"]).description == "Average"

    def test_terrible(self):
        form = calculate_team_form(["L", "L", "D", "L", "L"])
        assert form.description == "Terrible"
        assert form.category == "terrible"

    def test_only_last_five_count(self):
        form = calculate_team_form(["L"] * 5 + ["W"] * 5)
        assert form.score == 0
        assert form.recent_results == ["L"] * 5

    def test_short_history_scaled_per_game(self):
        single_win = calculate_team_form(["W"])
        assert single_win.score == 15
        assert single_win.category == "excellent"
        # 4 points in 3 games -> round(6.67)
        assert calculate_team_form(["W", "D", "L"]).score == 7
        assert calculate_team_form(["L", "D"]).category == "terrible"

    def test_empty_is_unknown(self):
        assert calculate_team_form([]) is UNKNOWN_FORM
        assert UNKNOWN_FORM.category == "unknown"


class TestHelpers:
    def test_form_score(self):
        assert form_score(["W", "D", "L"]) == 4

    def test_is_poor_form_uses_last_three(self):
        assert is_poor_form(["L", "D", "L", "W", "W"])
        assert not is_poor_form(["W", "D", "L"])
        assert not is_poor_form([])

    def test_is_poor_form_short_history(self):
        assert not is_poor_form(["W"])
        assert is_poor_form(["D"])
        assert is_poor_form(["L", "W"]) is False


class TestResultsFromFixtures:
    def test_newest_first_and_team_perspective(self):
        fixtures = [
            make_match(1, TEAM, 2, 0, 1, days_ago=20),
            make_match(2, 3, TEAM, 0, 2, days_ago=1),
            make_match(3, TEAM, 4, 1, 1, days_ago=10),
            make_match(4, TEAM, 5, None, None, days_ago=0, status="NS"),
        ]
        assert results_from_fixtures(TEAM, fixtures) == ["W", "D", "L"]

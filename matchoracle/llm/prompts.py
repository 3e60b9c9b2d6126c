"""
Prompt builders for the qualitative stages.

Both prompts ask for a single JSON object and pass data as compact JSON
blocks so the model has nothing to paraphrase.
"""

import json
from datetime import date
from typing import Optional

from matchoracle.etl.base import InjuryData, MatchData

# Bump when changing a template (part of the LLMGRADE cache key)
TRINITY_PROMPT_VERSION = "trinity-v3"
LLMGRADE_PROMPT_VERSION = "llmgrade-v2"


def _fixtures_json(team_id: int, fixtures: list[MatchData]) -> str:
    rows = []
    for match in fixtures[:5]:
        rows.append({
            "date": match.date.strftime("%Y-%m-%d"),
            "home": match.home_team_name or match.home_team_external_id,
            "away": match.away_team_name or match.away_team_external_id,
            "score": (
                f"{match.home_goals}-{match.away_goals}"
                if match.home_goals is not None and match.away_goals is not None
                else None
            ),
            "result": match.result_for(team_id),
        })
    return json.dumps(rows, ensure_ascii=False) if rows else "[]"


def _team_stats_json(stats: Optional[dict]) -> str:
    if not stats:
        return "null"
    lineups = stats.get("lineups") or []
    goals_for = (stats.get("goals") or {}).get("for", {}) or {}
    summary = {
        "formations": [
            {"formation": row.get("formation"), "played": row.get("played")}
            for row in lineups[:3]
        ],
        "goals_by_minute": {
            minute: bucket.get("total")
            for minute, bucket in (goals_for.get("minute") or {}).items()
            if isinstance(bucket, dict)
        },
        "clean_sheets": (stats.get("clean_sheet") or {}).get("total"),
        "form": stats.get("form"),
    }
    return json.dumps(summary, ensure_ascii=False)


def _lineup_json(lineup: Optional[dict]) -> str:
    if not lineup:
        return "null"
    return json.dumps(
        {
            "formation": lineup.get("formation"),
            "starting_xi": [p.get("name") for p in lineup.get("starting_xi", [])],
        },
        ensure_ascii=False,
    )


def build_trinity_prompt(
    home_name: str,
    away_name: str,
    home_team_id: int,
    away_team_id: int,
    home_fixtures: list[MatchData],
    away_fixtures: list[MatchData],
    home_stats: Optional[dict],
    away_stats: Optional[dict],
    lineups: Optional[dict],
    fixture_date: Optional[str],
) -> str:
    """Fatigue / style / lineup read for one fixture."""
    lineups = lineups or {}
    return f"""You are a football data analyst. Return ONLY valid JSON, no text before/after.

TASK:
1) fatigue_home, fatigue_away (0-100): rest days between matches, travel, match density.
   0 = fully rested, 100 = exhausted.
2) style_matchup (0.5-1.5) for the HOME side: formation clash, scoring phases vs
   conceding phases, defensive stability. 0.5 = strong disadvantage, 1.0 = neutral,
   1.5 = strong advantage.
3) lineup_strength_home, lineup_strength_away (0-100): missing key players, formation
   stability. 0 = weakest possible XI, 100 = strongest possible XI.
4) reasoning: one or two short, factual sentences.

RULES:
- Use ONLY the data below. If a block is null, assume neutral values for it.
- Concrete numbers, no vague language.

OUTPUT SCHEMA:
{{
  "fatigue_home": <int>,
  "fatigue_away": <int>,
  "style_matchup": <float>,
  "lineup_strength_home": <int>,
  "lineup_strength_away": <int>,
  "reasoning": "<string>"
}}

DATA:
fixture_date: {fixture_date or "unknown"}
home_team: {home_name}
away_team: {away_name}
home.last_matches: {_fixtures_json(home_team_id, home_fixtures)}
away.last_matches: {_fixtures_json(away_team_id, away_fixtures)}
home.season_stats: {_team_stats_json(home_stats)}
away.season_stats: {_team_stats_json(away_stats)}
home.lineup: {_lineup_json(lineups.get("home"))}
away.lineup: {_lineup_json(lineups.get("away"))}"""


def build_sentiment_prompt(team_name: str, league_name: Optional[str]) -> str:
    """Single-team fitness/distraction read used for the sentiment score."""
    return f"""You are a football analyst. Return ONLY valid JSON, no text before/after.

Estimate the current squad condition of {team_name} ({league_name or "unknown league"}).
- fitness (0-100): physical readiness of the first-choice squad.
- distraction (0-100): off-pitch noise (manager pressure, disputes, transfer saga).

OUTPUT SCHEMA:
{{"fitness": <int>, "distraction": <int>, "reasoning": "<string>"}}"""


def _injuries_json(injuries: list[InjuryData], team_id: int) -> str:
    rows = [
        {"player": i.player_name, "type": i.injury_type, "reason": i.reason}
        for i in injuries
        if i.team_id == team_id
    ]
    return json.dumps(rows, ensure_ascii=False) if rows else "[]"


def build_llmgrade_prompt(
    home_name: str,
    away_name: str,
    home_team_id: int,
    away_team_id: int,
    oracle_prediction: Optional[str],
    oracle_confidence: Optional[int],
    tesseract_score: Optional[str],
    injuries: list[InjuryData],
    league_name: Optional[str] = None,
    intel: Optional[dict] = None,
    today: Optional[date] = None,
) -> str:
    """Context-factor and outlier-scenario extraction."""
    today = today or date.today()
    predictions = json.dumps(
        {
            "oracle": oracle_prediction,
            "oracle_confidence": oracle_confidence,
            "tesseract": tesseract_score,
        },
        ensure_ascii=False,
    )
    return f"""You are an elite football analyst specialised in contextual factors.
Return ONLY valid JSON, no text before/after.

GOAL: identify qualitative factors the statistical models miss, and outlier
scenarios that would break their predictions.

RULES:
1) context_factors[].type is one of: INJURIES, SENTIMENT, FORM_ANOMALY, TEAM_MORALE,
   TACTICAL_CHANGES, WEATHER, PRESSURE, HISTORICAL_ANOMALY.
2) score is an integer 1-10 (strength of the factor). weight is optional (> 0).
3) One INJURIES factor per side that has reported absences; name the side.
4) outlier_scenarios[].probability is 0-100, impact_score 1-10.
5) Do not invent injuries beyond the list below.

OUTPUT SCHEMA:
{{
  "context_factors": [
    {{"type": "<TYPE>", "score": <int>, "description": "<string>", "weight": <float|null>}}
  ],
  "outlier_scenarios": [
    {{"description": "<string>", "probability": <int>, "impact_score": <int>,
      "supporting_factors": ["<string>"], "historical_precedents": ["<string>"]}}
  ],
  "enhanced_reasoning": "<2-3 sentences>"
}}

DATA:
today: {today.isoformat()}
match: {home_name} vs {away_name}
league: {league_name or "unknown"}
existing_predictions: {predictions}
injuries.home: {_injuries_json(injuries, home_team_id)}
injuries.away: {_injuries_json(injuries, away_team_id)}
match_intel: {json.dumps(intel or {}, ensure_ascii=False)}"""

"""Deterministic identifiers for matchups without a real fixture id."""

import hashlib

MAX_FIXTURE_ID = 2**31 - 1
TEAM_ID_STRIDE = 100_000


def create_fixture_id(home_team_id: int, away_team_id: int) -> int:
    """
    Positive, order-sensitive synthetic fixture id for a team pair.

    home * 100000 + away while that fits in a signed 32-bit column,
    otherwise a positive value derived from sha256("home-away").
    """
    if 0 < home_team_id and 0 <= away_team_id < TEAM_ID_STRIDE:
        composite = home_team_id * TEAM_ID_STRIDE + away_team_id
        if composite <= MAX_FIXTURE_ID:
            return composite
    digest = hashlib.sha256(f"{home_team_id}-{away_team_id}".encode("utf-8")).hexdigest()
    return int(digest[:15], 16) % MAX_FIXTURE_ID + 1

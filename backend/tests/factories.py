"""
Test-data factories. Each call returns a valid, unsaved entity with a fresh
sportmonks_id; pass keyword overrides to change any field.
"""
from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from backend.models import (
    FantasyTeam,
    League,
    LeagueType,
    Match,
    PerformanceStats,
    Player,
    PlayerPosition,
    PlayerStats,
    Season,
    Team,
    User,
)

_ids = itertools.count(1000)

_FIRST_NAMES = ["Cristiano", "Lionel", "Kylian", "Erling", "Mohamed", "Kevin", "Virgil", "Alisson"]
_LAST_NAMES = ["Ronaldo", "Messi", "Mbappe", "Haaland", "Salah", "De Bruyne", "van Dijk", "Becker"]


def next_sportmonks_id() -> int:
    return next(_ids)


def make_player(**overrides) -> Player:
    n = next_sportmonks_id()
    first = _FIRST_NAMES[n % len(_FIRST_NAMES)]
    last = _LAST_NAMES[n % len(_LAST_NAMES)]
    player = Player(
        sportmonks_id=n,
        name=f"{first} {last}",
        first_name=first,
        last_name=last,
        date_of_birth=date(1995, 6, 15),
        nationality="Portugal",
        position=PlayerPosition.FORWARD.value,
        height=185,
        weight=80,
    )
    return replace(player, **overrides)


def make_team(**overrides) -> Team:
    n = next_sportmonks_id()
    team = Team(
        sportmonks_id=n,
        name=f"Club {n}",
        short_code=f"C{n}",
        founded_year=1900,
        country="England",
        city="London",
        venue="Stadium",
    )
    return replace(team, **overrides)


def make_league(**overrides) -> League:
    n = next_sportmonks_id()
    league = League(
        sportmonks_id=n,
        name=f"League {n}",
        type=LeagueType.DOMESTIC.value,
        short_name="PL",
        country="England",
        tier=1,
    )
    return replace(league, **overrides)


def make_season(league_id: str = "league-1", **overrides) -> Season:
    """Upcoming season starting 30 days from now, 38 gameweeks."""
    start = datetime.now(timezone.utc) + timedelta(days=30)
    season = Season(
        sportmonks_id=next_sportmonks_id(),
        name="2026/2027",
        league_id=league_id,
        start_date=start,
        end_date=start + timedelta(days=280),
        total_gameweeks=38,
    )
    return replace(season, **overrides)


def make_match(season_id: str = "season-1", league_id: str = "league-1", **overrides) -> Match:
    match = Match(
        sportmonks_id=next_sportmonks_id(),
        season_id=season_id,
        league_id=league_id,
        gameweek=1,
        kickoff_time=datetime.now(timezone.utc) + timedelta(days=2),
        home_team_id="home-team",
        away_team_id="away-team",
        venue="Stadium",
    )
    return replace(match, **overrides)


def make_user(**overrides) -> User:
    n = next_sportmonks_id()
    user = User(email=f"user{n}@example.com", username=f"user_{n}", password_hash="x" * 20)
    return replace(user, **overrides)


def make_fantasy_team(user_id: str = "user-1", season_id: str = "season-1", **overrides) -> FantasyTeam:
    return FantasyTeam(name="Dream Team", user_id=user_id, season_id=season_id, **overrides)


def make_player_stats(player_id: str = "player-1", season_id: str = "season-1", **performance) -> PlayerStats:
    return PlayerStats(player_id=player_id, season_id=season_id, performance=PerformanceStats(**performance))

"""
Entity validators.

validate_*(entity) returns every violated rule (empty list = valid).
normalize_*(entity) returns a copy with defaults applied (trimmed strings,
derived display name, uppercased short code, lowercased email).
Nothing here touches storage.
"""
from __future__ import annotations

import re
from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Any, Iterable, TypeVar

from backend.errors import ValidationError
from backend.models import (
    FantasyStats,
    FantasyTeam,
    FantasyTeamStatus,
    League,
    LeagueType,
    Match,
    MatchResult,
    MatchStatus,
    PerformanceStats,
    Player,
    PlayerPosition,
    PlayerStats,
    Season,
    SeasonStatus,
    SubscriptionTier,
    Team,
    TeamScore,
    User,
    UserRole,
    utcnow,
)

T = TypeVar("T")

URL_RE = re.compile(r"^https?://.+")
SHORT_CODE_RE = re.compile(r"^[A-Z0-9]+$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

MIN_PLAYER_AGE = 15
EARLIEST_DATE_OF_BIRTH = date(1950, 1, 1)
HEIGHT_RANGE = (100, 250)
WEIGHT_RANGE = (30, 200)
MIN_FOUNDED_YEAR = 1800
MAX_SQUAD_SIZE = 15
MAX_TOTAL_GAMEWEEKS = 50
MAX_STATS_GAMEWEEK = 38
_MONEY_TOLERANCE = 1e-6


def ensure_valid(errors: list[str]) -> None:
    """Raise ValidationError carrying all messages if any rule failed."""
    if errors:
        raise ValidationError(errors)


def merge_update(entity: T, changes: dict[str, Any], immutable: Iterable[str] = ()) -> T:
    """
    Apply a partial update to a copy of entity. Unknown or immutable fields are
    rejected so the merged result can be re-validated as a full replacement.
    """
    names = {f.name for f in fields(entity)}  # type: ignore[arg-type]
    locked = set(immutable)
    errors = [f"Unknown field: {k}" for k in changes if k not in names]
    errors += [f"Field cannot be updated: {k}" for k in changes if k in locked]
    ensure_valid(errors)
    return replace(entity, **changes)  # type: ignore[type-var]


# ---------- helpers ----------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _strip(value: str | None) -> str | None:
    return value.strip() if isinstance(value, str) else value


def _check_required_text(errors: list[str], value: str | None, required: str, empty: str) -> None:
    if value is None:
        errors.append(required)
    elif not value.strip():
        errors.append(empty)


def _check_max_len(errors: list[str], value: str | None, limit: int, message: str) -> None:
    if value is not None and len(value) > limit:
        errors.append(message)


def _check_url(errors: list[str], value: str | None, message: str) -> None:
    if value and not URL_RE.match(value):
        errors.append(message)


def _check_enum(errors: list[str], value: str | None, enum_cls: type, message: str) -> None:
    if value is not None and value not in {e.value for e in enum_cls}:
        errors.append(message)


def _check_sportmonks_id(errors: list[str], value: Any) -> None:
    if value is None:
        errors.append("SportMonks ID is required")
    elif not _is_int(value) or value <= 0:
        errors.append("SportMonks ID must be positive")


def _check_non_negative(errors: list[str], obj: Any, names: Iterable[str] | None = None) -> None:
    for name in names or [f.name for f in fields(obj)]:
        value = getattr(obj, name)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
            errors.append(f"{name.replace('_', ' ').capitalize()} cannot be negative")


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:  # Feb 29 -> Feb 28
        return day.replace(year=day.year - years, day=28)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------- Player ----------


def normalize_player(player: Player) -> Player:
    p = replace(
        player,
        name=_strip(player.name),
        first_name=_strip(player.first_name),
        last_name=_strip(player.last_name),
        display_name=_strip(player.display_name) or None,
        common_name=_strip(player.common_name),
        nationality=_strip(player.nationality),
        detailed_position=_strip(player.detailed_position),
        image_url=_strip(player.image_url),
    )
    if not p.display_name and p.first_name and p.last_name:
        p.display_name = f"{p.first_name[0]}. {p.last_name}"
    return p


def validate_player(player: Player, today: date | None = None) -> list[str]:
    today = today or date.today()
    errors: list[str] = []
    _check_sportmonks_id(errors, player.sportmonks_id)
    _check_required_text(errors, player.name, "Player name is required", "Name cannot be empty")
    _check_max_len(errors, player.name, 100, "Name cannot exceed 100 characters")
    _check_required_text(errors, player.first_name, "First name is required", "First name cannot be empty")
    _check_max_len(errors, player.first_name, 50, "First name cannot exceed 50 characters")
    _check_required_text(errors, player.last_name, "Last name is required", "Last name cannot be empty")
    _check_max_len(errors, player.last_name, 50, "Last name cannot exceed 50 characters")
    _check_max_len(errors, player.display_name, 50, "Display name cannot exceed 50 characters")
    _check_max_len(errors, player.common_name, 50, "Common name cannot exceed 50 characters")
    _check_max_len(errors, player.nationality, 50, "Nationality cannot exceed 50 characters")
    _check_max_len(errors, player.detailed_position, 30, "Detailed position cannot exceed 30 characters")

    if player.date_of_birth is not None:
        dob = _as_date(player.date_of_birth)
        if dob > _years_before(today, MIN_PLAYER_AGE):
            errors.append("Player must be at least 15 years old")
        elif dob < EARLIEST_DATE_OF_BIRTH:
            errors.append("Date of birth cannot be before 1950-01-01")

    _check_enum(
        errors, player.position, PlayerPosition,
        "Position must be one of: Goalkeeper, Defender, Midfielder, Forward",
    )
    for value, (low, high), label, unit in (
        (player.height, HEIGHT_RANGE, "Height", "cm"),
        (player.weight, WEIGHT_RANGE, "Weight", "kg"),
    ):
        if value is None:
            continue
        if not _is_int(value) or value <= 0:
            errors.append(f"{label} must be a positive integer")
        elif not low <= value <= high:
            errors.append(f"{label} must be between {low}{unit} and {high}{unit}")
    _check_url(errors, player.image_url, "Image URL must be a valid HTTP/HTTPS URL")
    return errors


# ---------- Team ----------


def normalize_team(team: Team) -> Team:
    short_code = _strip(team.short_code)
    return replace(
        team,
        name=_strip(team.name),
        short_code=short_code.upper() if short_code else None,
        logo_url=_strip(team.logo_url),
        country=_strip(team.country),
        city=_strip(team.city),
        venue=_strip(team.venue),
    )


def validate_team(team: Team, today: date | None = None) -> list[str]:
    current_year = (today or date.today()).year
    errors: list[str] = []
    _check_sportmonks_id(errors, team.sportmonks_id)
    _check_required_text(errors, team.name, "Team name is required", "Name cannot be empty")
    _check_max_len(errors, team.name, 100, "Name cannot exceed 100 characters")
    if team.short_code:
        _check_max_len(errors, team.short_code, 10, "Short code cannot exceed 10 characters")
        if not SHORT_CODE_RE.match(team.short_code):
            errors.append("Short code must contain only uppercase letters and numbers")
    _check_url(errors, team.logo_url, "Logo URL must be a valid HTTP/HTTPS URL")
    if team.founded_year is not None:
        if not _is_int(team.founded_year):
            errors.append("Founded year must be an integer")
        elif team.founded_year < MIN_FOUNDED_YEAR:
            errors.append("Founded year must be after 1800")
        elif team.founded_year > current_year:
            errors.append("Founded year cannot be in the future")
    _check_max_len(errors, team.country, 50, "Country cannot exceed 50 characters")
    _check_max_len(errors, team.city, 50, "City cannot exceed 50 characters")
    _check_max_len(errors, team.venue, 100, "Venue cannot exceed 100 characters")
    return errors


# ---------- League ----------


def normalize_league(league: League) -> League:
    return replace(
        league,
        name=_strip(league.name),
        short_name=_strip(league.short_name),
        country=_strip(league.country),
        logo_url=_strip(league.logo_url),
    )


def validate_league(league: League) -> list[str]:
    errors: list[str] = []
    _check_sportmonks_id(errors, league.sportmonks_id)
    _check_required_text(errors, league.name, "League name is required", "Name cannot be empty")
    _check_max_len(errors, league.name, 100, "Name cannot exceed 100 characters")
    _check_max_len(errors, league.short_name, 20, "Short name cannot exceed 20 characters")
    if league.type is None:
        errors.append("League type is required")
    _check_enum(errors, league.type, LeagueType, "Type must be one of: domestic, international, cup, friendly")
    _check_max_len(errors, league.country, 50, "Country cannot exceed 50 characters")
    _check_url(errors, league.logo_url, "Logo URL must be a valid HTTP/HTTPS URL")
    if league.tier is not None:
        if not _is_int(league.tier):
            errors.append("Tier must be an integer")
        elif league.tier < 1:
            errors.append("Tier must be at least 1")
        elif league.tier > 10:
            errors.append("Tier cannot exceed 10")
    return errors


# ---------- Season ----------


def normalize_season(season: Season) -> Season:
    return replace(
        season,
        name=_strip(season.name),
        start_date=as_utc(season.start_date),
        end_date=as_utc(season.end_date),
        transfer_deadline=as_utc(season.transfer_deadline),
    )


def validate_season(season: Season) -> list[str]:
    errors: list[str] = []
    _check_sportmonks_id(errors, season.sportmonks_id)
    _check_required_text(errors, season.name, "Season name is required", "Name cannot be empty")
    _check_max_len(errors, season.name, 100, "Name cannot exceed 100 characters")
    if not season.league_id:
        errors.append("League ID is required")
    if season.start_date is None:
        errors.append("Start date is required")
    if season.end_date is None:
        errors.append("End date is required")
    elif season.start_date is not None and season.end_date <= season.start_date:
        errors.append("End date must be a valid date and after start date")
    total = season.total_gameweeks
    if total is None:
        errors.append("Total gameweeks is required")
    elif not _is_int(total) or total < 1:
        errors.append("Total gameweeks must be at least 1")
    elif total > MAX_TOTAL_GAMEWEEKS:
        errors.append("Total gameweeks cannot exceed 50")
    if not _is_int(season.current_gameweek) or season.current_gameweek < 1:
        errors.append("Current gameweek must be at least 1")
    elif _is_int(total) and season.current_gameweek > total:
        errors.append("Current gameweek cannot exceed total gameweeks")
    _check_enum(
        errors, season.status, SeasonStatus,
        "Status must be one of: upcoming, active, completed, cancelled",
    )
    deadline = season.transfer_deadline
    if deadline is not None and season.start_date is not None and season.end_date is not None:
        if not season.start_date <= deadline <= season.end_date:
            errors.append("Transfer deadline must be within the season dates")
    return errors


# ---------- Match ----------


def validate_team_score(score: TeamScore, side: str) -> list[str]:
    errors: list[str] = []
    if not score.team_id:
        errors.append(f"{side} team ID is required")
    sub: list[str] = []
    _check_non_negative(sub, score, [f.name for f in fields(score) if f.name != "team_id"])
    if score.possession is not None and score.possession > 100:
        sub.append("Possession cannot exceed 100%")
    errors.extend(f"{side}: {e}" for e in sub)
    return errors


def normalize_match(match: Match) -> Match:
    return replace(
        match,
        kickoff_time=as_utc(match.kickoff_time),
        venue=_strip(match.venue),
        referee=_strip(match.referee),
    )


def validate_match(match: Match) -> list[str]:
    errors: list[str] = []
    _check_sportmonks_id(errors, match.sportmonks_id)
    if not match.season_id:
        errors.append("Season ID is required")
    if not match.league_id:
        errors.append("League ID is required")
    if match.gameweek is None:
        errors.append("Gameweek is required")
    elif not _is_int(match.gameweek) or match.gameweek < 1:
        errors.append("Gameweek must be at least 1")
    if match.kickoff_time is None:
        errors.append("Kickoff time is required")
    if not match.home_team_id:
        errors.append("Home team ID is required")
    if not match.away_team_id:
        errors.append("Away team ID is required")
    if match.home_team_id and match.home_team_id == match.away_team_id:
        errors.append("Home and away teams must be different")
    if match.home_score is not None:
        errors.extend(validate_team_score(match.home_score, "Home"))
    if match.away_score is not None:
        errors.extend(validate_team_score(match.away_score, "Away"))
    _check_enum(
        errors, match.status, MatchStatus,
        "Status must be one of: scheduled, live, halftime, finished, postponed, cancelled, suspended",
    )
    _check_enum(errors, match.result, MatchResult, "Result must be one of: home_win, away_win, draw")
    if match.current_minute is not None:
        if match.current_minute < 0:
            errors.append("Current minute cannot be negative")
        elif match.current_minute > 120:
            errors.append("Current minute cannot exceed 120")
    _check_max_len(errors, match.venue, 100, "Venue cannot exceed 100 characters")
    _check_max_len(errors, match.referee, 100, "Referee name cannot exceed 100 characters")
    if match.attendance is not None and match.attendance < 0:
        errors.append("Attendance cannot be negative")
    return errors


# ---------- User ----------


def normalize_user(user: User) -> User:
    email = _strip(user.email)
    return replace(
        user,
        email=email.lower() if email else email,
        subscription_expires_at=as_utc(user.subscription_expires_at),
        username=_strip(user.username),
        first_name=_strip(user.first_name),
        last_name=_strip(user.last_name),
        avatar_url=_strip(user.avatar_url),
        country=_strip(user.country),
        timezone=_strip(user.timezone),
    )


def validate_user(user: User, now: datetime | None = None) -> list[str]:
    now = now or utcnow()
    errors: list[str] = []
    if not user.email:
        errors.append("Email is required")
    else:
        _check_max_len(errors, user.email, 255, "Email cannot exceed 255 characters")
        if not EMAIL_RE.match(user.email):
            errors.append("Please provide a valid email address")
    if not user.username:
        errors.append("Username is required")
    else:
        if len(user.username) < 3:
            errors.append("Username must be at least 3 characters")
        _check_max_len(errors, user.username, 30, "Username cannot exceed 30 characters")
        if not USERNAME_RE.match(user.username):
            errors.append("Username can only contain letters, numbers, underscores, and hyphens")
    if not user.password_hash:
        errors.append("Password hash is required")
    _check_max_len(errors, user.first_name, 50, "First name cannot exceed 50 characters")
    _check_max_len(errors, user.last_name, 50, "Last name cannot exceed 50 characters")
    _check_url(errors, user.avatar_url, "Avatar URL must be a valid HTTP/HTTPS URL")
    _check_enum(errors, user.role, UserRole, "Role must be one of: user, admin, moderator")
    _check_enum(
        errors, user.subscription_tier, SubscriptionTier,
        "Subscription tier must be one of: free, premium, pro",
    )
    if user.subscription_expires_at is not None and user.subscription_expires_at <= now:
        errors.append("Subscription expiry date must be in the future")
    _check_non_negative(errors, user, ["total_points", "seasons_played"])
    _check_max_len(errors, user.country, 50, "Country cannot exceed 50 characters")
    _check_max_len(errors, user.timezone, 50, "Timezone cannot exceed 50 characters")
    return errors


# ---------- FantasyTeam ----------


def normalize_fantasy_team(team: FantasyTeam) -> FantasyTeam:
    return replace(team, name=_strip(team.name), players=list(team.players))


def validate_fantasy_team(team: FantasyTeam) -> list[str]:
    errors: list[str] = []
    if team.name is None:
        errors.append("Team name is required")
    elif len(team.name.strip()) < 3:
        errors.append("Team name must be at least 3 characters")
    else:
        _check_max_len(errors, team.name, 50, "Team name cannot exceed 50 characters")
    if not team.user_id:
        errors.append("User ID is required")
    if not team.season_id:
        errors.append("Season ID is required")
    if len(team.players) > MAX_SQUAD_SIZE:
        errors.append("Cannot have more than 15 players in a squad")
    _check_non_negative(
        errors, team,
        ["budget", "remaining_budget", "total_value", "total_points", "gameweek_points",
         "rank", "free_transfers", "used_transfers", "transfer_cost"],
    )
    _check_enum(errors, team.status, FantasyTeamStatus, "Status must be one of: active, completed, abandoned")

    ids = [p.player_id for p in team.players]
    if len(ids) != len(set(ids)):
        errors.append("Player is already in the squad.")
    for sel in team.players:
        if not sel.player_id:
            errors.append("Player ID is required")
        if sel.purchase_price is None or sel.purchase_price < 0:
            errors.append("Purchase price cannot be negative")
        if sel.current_value is not None and sel.current_value < 0:
            errors.append("Current value cannot be negative")
        if sel.is_captain and sel.is_vice_captain:
            errors.append("A player cannot be both captain and vice-captain")
    if sum(1 for p in team.players if p.is_captain) > 1:
        errors.append("Only one captain is allowed")
    if sum(1 for p in team.players if p.is_vice_captain) > 1:
        errors.append("Only one vice-captain is allowed")

    spent = sum(p.purchase_price or 0 for p in team.players)
    if abs(spent - team.total_value) > _MONEY_TOLERANCE:
        errors.append("Total value must equal the sum of purchase prices")
    if (
        team.remaining_budget is not None
        and abs(team.remaining_budget + team.total_value - team.budget) > _MONEY_TOLERANCE
    ):
        errors.append("Remaining budget must equal budget minus total value")
    return errors


# ---------- PlayerStats ----------


def validate_performance(performance: PerformanceStats) -> list[str]:
    errors: list[str] = []
    for f in fields(performance):
        value = getattr(performance, f.name)
        if not _is_int(value):
            errors.append(f"{f.name.replace('_', ' ').capitalize()} must be an integer")
    _check_non_negative(errors, performance)
    return errors


def validate_fantasy_stats(fantasy: FantasyStats) -> list[str]:
    errors: list[str] = []
    _check_non_negative(errors, fantasy, [f.name for f in fields(fantasy) if f.name != "price_change_total"])
    if fantasy.selected_by_percent > 100:
        errors.append("Selected by percent cannot exceed 100")
    return errors


def validate_player_stats(stats: PlayerStats) -> list[str]:
    errors: list[str] = []
    if not stats.player_id:
        errors.append("Player ID is required")
    if not stats.season_id:
        errors.append("Season ID is required")
    if stats.gameweek is not None:
        if stats.gameweek < 1:
            errors.append("Gameweek must be at least 1")
        elif stats.gameweek > MAX_STATS_GAMEWEEK:
            errors.append("Gameweek cannot exceed 38")
    errors.extend(validate_performance(stats.performance))
    errors.extend(validate_fantasy_stats(stats.fantasy))
    return errors

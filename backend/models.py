"""
Data models for the fantasy soccer backend.
Domain objects only. No persistence or API logic.

Player, Team, League and Season are independent aggregate roots referenced by id.
Match, FantasyTeam and PlayerStats embed value objects (TeamScore, PlayerSelection,
PerformanceStats, FantasyStats) that have no identity of their own.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------- Enums ----------
class PlayerPosition(str, Enum):
    GOALKEEPER = "Goalkeeper"
    DEFENDER = "Defender"
    MIDFIELDER = "Midfielder"
    FORWARD = "Forward"


class LeagueType(str, Enum):
    DOMESTIC = "domestic"
    INTERNATIONAL = "international"
    CUP = "cup"
    FRIENDLY = "friendly"


class SeasonStatus(str, Enum):
    """Season lifecycle: upcoming → active → completed; cancelled from any non-terminal state."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    HALFTIME = "halftime"
    FINISHED = "finished"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class MatchResult(str, Enum):
    HOME_WIN = "home_win"
    AWAY_WIN = "away_win"
    DRAW = "draw"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"


class FantasyTeamStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


# ---------- Player ----------
@dataclass
class Player:
    """
    A real-world footballer, keyed externally by sportmonks_id.
    deleted_at set = soft-deleted (hidden from default queries).
    """
    sportmonks_id: int
    name: str
    first_name: str
    last_name: str
    id: str | None = None
    display_name: str | None = None
    common_name: str | None = None
    date_of_birth: date | None = None
    nationality: str | None = None
    position: str | None = None  # PlayerPosition value
    detailed_position: str | None = None
    height: int | None = None  # cm
    weight: int | None = None  # kg
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def age(self, today: date | None = None) -> int | None:
        if self.date_of_birth is None:
            return None
        today = today or date.today()
        dob = self.date_of_birth
        years = today.year - dob.year
        if (today.month, today.day) < (dob.month, dob.day):
            years -= 1
        return years

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["date_of_birth"] = _iso(self.date_of_birth)
        d["created_at"] = _iso(self.created_at)
        d["updated_at"] = _iso(self.updated_at)
        d["deleted_at"] = _iso(self.deleted_at)
        d["full_name"] = self.full_name
        d["age"] = self.age()
        return d


# ---------- Team ----------
@dataclass
class Team:
    """
    A real-world club. is_active and deleted_at are independent flags:
    soft delete implies inactive, inactive does not imply deleted.
    """
    sportmonks_id: int
    name: str
    id: str | None = None
    short_code: str | None = None
    logo_url: str | None = None
    founded_year: int | None = None
    country: str | None = None
    city: str | None = None
    venue: str | None = None
    league_id: str | None = None  # weak reference, lookup only
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["created_at"] = _iso(self.created_at)
        d["updated_at"] = _iso(self.updated_at)
        d["deleted_at"] = _iso(self.deleted_at)
        return d


# ---------- League ----------
@dataclass
class League:
    sportmonks_id: int
    name: str
    type: str  # LeagueType value
    id: str | None = None
    short_name: str | None = None
    country: str | None = None
    logo_url: str | None = None
    tier: int | None = None
    is_active: bool = True
    has_standings: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["created_at"] = _iso(self.created_at)
        d["updated_at"] = _iso(self.updated_at)
        return d


# ---------- Season ----------
@dataclass
class Season:
    """
    One season of a league. Owns gameweek progression and the transfer window.
    Status: upcoming → active → completed, or cancelled.
    """
    sportmonks_id: int
    name: str
    league_id: str
    start_date: datetime
    end_date: datetime
    total_gameweeks: int
    id: str | None = None
    current_gameweek: int = 1
    status: str = SeasonStatus.UPCOMING.value
    is_fantasy_active: bool = False
    transfer_deadline: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def progress(self) -> int:
        if self.total_gameweeks == 0:
            return 0
        return round(self.current_gameweek / self.total_gameweeks * 100)

    def days_remaining(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        seconds = (self.end_date - now).total_seconds()
        return -int(-seconds // 86400)  # ceil

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for key in ("start_date", "end_date", "transfer_deadline", "created_at", "updated_at"):
            d[key] = _iso(getattr(self, key))
        d["progress"] = self.progress
        return d


# ---------- Match ----------
@dataclass
class TeamScore:
    """One side's score and match statistics. Embedded in Match."""
    team_id: str
    goals: int = 0
    halftime_goals: int | None = None
    shots: int | None = None
    shots_on_target: int | None = None
    corners: int | None = None
    fouls: int | None = None
    yellow_cards: int = 0
    red_cards: int = 0
    possession: float | None = None  # percent, 0-100

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TeamScore:
        return cls(**data)


@dataclass
class Match:
    sportmonks_id: int
    season_id: str
    league_id: str
    gameweek: int
    kickoff_time: datetime
    home_team_id: str
    away_team_id: str
    id: str | None = None
    home_score: TeamScore | None = None
    away_score: TeamScore | None = None
    status: str = MatchStatus.SCHEDULED.value
    result: str | None = None  # MatchResult value
    current_minute: int | None = None
    venue: str | None = None
    referee: str | None = None
    attendance: int | None = None
    is_fantasy_relevant: bool = True
    last_updated: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_goals(self) -> int:
        home = self.home_score.goals if self.home_score else 0
        away = self.away_score.goals if self.away_score else 0
        return home + away

    @property
    def goal_difference(self) -> int:
        home = self.home_score.goals if self.home_score else 0
        away = self.away_score.goals if self.away_score else 0
        return abs(home - away)

    @property
    def is_live(self) -> bool:
        return self.status in (MatchStatus.LIVE.value, MatchStatus.HALFTIME.value)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for key in ("kickoff_time", "last_updated", "created_at", "updated_at"):
            d[key] = _iso(getattr(self, key))
        d["total_goals"] = self.total_goals
        return d


# ---------- User ----------
@dataclass
class User:
    """
    A fantasy app user. password_hash is never serialized.
    """
    email: str
    username: str
    id: str | None = None
    password_hash: str = ""
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    role: str = UserRole.USER.value
    subscription_tier: str = SubscriptionTier.FREE.value
    subscription_expires_at: datetime | None = None
    total_points: int = 0
    seasons_played: int = 0
    country: str | None = None
    timezone: str | None = None
    is_active: bool = True
    email_verified: bool = False
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username

    def is_subscription_active(self, now: datetime | None = None) -> bool:
        if self.subscription_tier == SubscriptionTier.FREE.value:
            return True
        if self.subscription_expires_at is None:
            return False
        return self.subscription_expires_at > (now or utcnow())

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d.pop("password_hash")
        for key in ("subscription_expires_at", "last_login_at", "created_at", "updated_at"):
            d[key] = _iso(getattr(self, key))
        d["full_name"] = self.full_name
        return d


# ---------- FantasyTeam ----------
@dataclass
class PlayerSelection:
    """One player in a fantasy squad. Owned by FantasyTeam; no identity of its own."""
    player_id: str
    purchase_price: float
    is_captain: bool = False
    is_vice_captain: bool = False
    is_starting: bool = True
    current_value: float | None = None
    added_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["added_at"] = self.added_at.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlayerSelection:
        data = dict(data)
        data["added_at"] = datetime.fromisoformat(data["added_at"])
        return cls(**data)


@dataclass
class FantasyTeam:
    """
    A user's fantasy squad for one season. One team per user per season.
    Invariant: remaining_budget + total_value == budget.
    """
    name: str
    user_id: str
    season_id: str
    id: str | None = None
    players: list[PlayerSelection] = field(default_factory=list)
    budget: float = 100.0
    remaining_budget: float | None = None  # defaults to budget - total_value
    total_value: float = 0.0
    total_points: int = 0
    gameweek_points: int = 0
    rank: int = 0
    free_transfers: int = 1
    used_transfers: int = 0
    transfer_cost: float = 0.0
    status: str = FantasyTeamStatus.ACTIVE.value
    is_public: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.remaining_budget is None:
            self.remaining_budget = self.budget - self.total_value

    @property
    def squad_count(self) -> int:
        return len(self.players)

    @property
    def starting_count(self) -> int:
        return sum(1 for p in self.players if p.is_starting)

    @property
    def bench_count(self) -> int:
        return sum(1 for p in self.players if not p.is_starting)

    @property
    def captain(self) -> PlayerSelection | None:
        return next((p for p in self.players if p.is_captain), None)

    @property
    def vice_captain(self) -> PlayerSelection | None:
        return next((p for p in self.players if p.is_vice_captain), None)

    def find_selection(self, player_id: str) -> PlayerSelection | None:
        return next((p for p in self.players if p.player_id == player_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "season_id": self.season_id,
            "players": [p.to_dict() for p in self.players],
            "budget": self.budget,
            "remaining_budget": self.remaining_budget,
            "total_value": self.total_value,
            "total_points": self.total_points,
            "gameweek_points": self.gameweek_points,
            "rank": self.rank,
            "free_transfers": self.free_transfers,
            "used_transfers": self.used_transfers,
            "transfer_cost": self.transfer_cost,
            "status": self.status,
            "is_public": self.is_public,
            "squad_count": self.squad_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ---------- PlayerStats ----------
@dataclass
class PerformanceStats:
    """Raw counting stats for a player in a season. All non-negative."""
    appearances: int = 0
    starts: int = 0
    minutes_played: int = 0
    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    clean_sheets: int = 0
    saves: int = 0
    penalties_saved: int = 0
    penalties_missed: int = 0
    own_goals: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformanceStats:
        return cls(**data)


@dataclass
class FantasyStats:
    """Derived fantasy figures. fantasy_points is always recomputable from PerformanceStats."""
    fantasy_points: float = 0.0
    average_points: float = 0.0
    points_per_minute: float = 0.0
    current_price: float = 4.0
    price_change_total: float = 0.0
    selected_by_percent: float = 0.0
    transfers_in: int = 0
    transfers_out: int = 0
    transfers_in_round: int = 0
    transfers_out_round: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FantasyStats:
        return cls(**data)


@dataclass
class PlayerStats:
    """One record per (player, season)."""
    player_id: str
    season_id: str
    id: str | None = None
    team_id: str | None = None
    gameweek: int | None = None
    performance: PerformanceStats = field(default_factory=PerformanceStats)
    fantasy: FantasyStats = field(default_factory=FantasyStats)
    is_active: bool = True
    last_updated: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def goal_involvement(self) -> int:
        return self.performance.goals + self.performance.assists

    @property
    def disciplinary_points(self) -> int:
        return self.performance.yellow_cards + self.performance.red_cards * 2

    @property
    def price_efficiency(self) -> float:
        if self.fantasy.current_price == 0:
            return 0.0
        return self.fantasy.fantasy_points / self.fantasy.current_price

    @property
    def form(self) -> float:
        if self.performance.appearances == 0:
            return 0.0
        return self.fantasy.fantasy_points / self.performance.appearances

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "season_id": self.season_id,
            "team_id": self.team_id,
            "gameweek": self.gameweek,
            "performance": self.performance.to_dict(),
            "fantasy": self.fantasy.to_dict(),
            "is_active": self.is_active,
            "goal_involvement": self.goal_involvement,
            "disciplinary_points": self.disciplinary_points,
            "price_efficiency": self.price_efficiency,
            "form": self.form,
            "last_updated": _iso(self.last_updated),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

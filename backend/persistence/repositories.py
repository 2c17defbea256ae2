"""
Repository interfaces for fantasy data.
No business logic, only read/write operations.

Reads on soft-deletable tables (players, teams) take explicit query modes:
include_deleted=True returns live and deleted rows, deleted_only=True returns
only deleted rows. The default hides soft-deleted rows.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Generic, Iterable, TypeVar

from backend.errors import UniquenessConflictError
from backend.models import (
    FantasyStats,
    FantasyTeam,
    FantasyTeamStatus,
    League,
    Match,
    MatchStatus,
    PerformanceStats,
    Player,
    PlayerSelection,
    PlayerStats,
    Season,
    SeasonStatus,
    SubscriptionTier,
    Team,
    TeamScore,
    User,
    utcnow,
)

E = TypeVar("E")


def _ts(value: datetime | None) -> str | None:
    """Serialize a datetime as UTC ISO-8601 with fixed precision (sortable as text)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_date(s: str | None) -> date | None:
    return date.fromisoformat(s) if s else None


def _conflict(entity: str, exc: sqlite3.IntegrityError) -> UniquenessConflictError:
    # "UNIQUE constraint failed: players.sportmonks_id"
    message = str(exc)
    key = message.split("failed:", 1)[1].strip() if "failed:" in message else message
    return UniquenessConflictError(entity, key)


# ---------- Base ----------


class _Repository(Generic[E]):
    """Shared CRUD plumbing. Subclasses map one dataclass to one table."""

    table: str = ""
    entity: str = ""
    soft_delete: bool = False

    def _to_row(self, obj: E) -> dict[str, Any]:
        raise NotImplementedError

    def _from_row(self, row: sqlite3.Row) -> E:
        raise NotImplementedError

    def _insert(self, conn: sqlite3.Connection, obj: E, commit: bool = True) -> E:
        now = utcnow()
        obj = replace(  # type: ignore[type-var]
            obj,
            id=getattr(obj, "id", None) or str(uuid.uuid4()),
            created_at=getattr(obj, "created_at", None) or now,
            updated_at=now,
        )
        row = self._to_row(obj)
        cols = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        try:
            conn.execute(f"INSERT INTO {self.table} ({cols}) VALUES ({marks})", tuple(row.values()))
        except sqlite3.IntegrityError as exc:
            if commit:
                conn.rollback()
            raise _conflict(self.entity, exc) from exc
        if commit:
            conn.commit()
        return obj

    def _save(self, conn: sqlite3.Connection, obj: E, commit: bool = True) -> E:
        obj = replace(obj, updated_at=utcnow())  # type: ignore[type-var]
        row = self._to_row(obj)
        obj_id = row.pop("id")
        row.pop("created_at", None)
        assignments = ", ".join(f"{c} = ?" for c in row)
        try:
            conn.execute(
                f"UPDATE {self.table} SET {assignments} WHERE id = ?",
                (*row.values(), obj_id),
            )
        except sqlite3.IntegrityError as exc:
            if commit:
                conn.rollback()
            raise _conflict(self.entity, exc) from exc
        if commit:
            conn.commit()
        return obj

    def _scope(
        self,
        where: list[str],
        include_deleted: bool = False,
        deleted_only: bool = False,
    ) -> list[str]:
        if not self.soft_delete:
            return where
        if deleted_only:
            return where + ["deleted_at IS NOT NULL"]
        if not include_deleted:
            return where + ["deleted_at IS NULL"]
        return where

    def _select(
        self,
        conn: sqlite3.Connection,
        where: Iterable[str] = (),
        params: Iterable[Any] = (),
        order_by: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        include_deleted: bool = False,
        deleted_only: bool = False,
    ) -> list[E]:
        clauses = self._scope(list(where), include_deleted, deleted_only)
        sql = f"SELECT * FROM {self.table}"
        args = list(params)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {order_by or 'created_at'}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            args += [limit, offset]
        return [self._from_row(r) for r in conn.execute(sql, args).fetchall()]

    def _count(
        self,
        conn: sqlite3.Connection,
        where: Iterable[str] = (),
        params: Iterable[Any] = (),
        include_deleted: bool = False,
        deleted_only: bool = False,
    ) -> int:
        clauses = self._scope(list(where), include_deleted, deleted_only)
        sql = f"SELECT COUNT(*) FROM {self.table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return conn.execute(sql, list(params)).fetchone()[0]

    def create(self, conn: sqlite3.Connection, obj: E) -> E:
        return self._insert(conn, obj)

    def create_many(self, conn: sqlite3.Connection, objs: list[E]) -> list[E]:
        """Insert all rows in one transaction; any conflict rolls back the whole batch."""
        created: list[E] = []
        try:
            for obj in objs:
                created.append(self._insert(conn, obj, commit=False))
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
        return created

    def update(self, conn: sqlite3.Connection, obj: E, commit: bool = True) -> E:
        return self._save(conn, obj, commit=commit)

    def get(self, conn: sqlite3.Connection, obj_id: str, include_deleted: bool = False) -> E | None:
        rows = self._select(conn, ["id = ?"], [obj_id], include_deleted=include_deleted)
        return rows[0] if rows else None

    def hard_delete(self, conn: sqlite3.Connection, obj_id: str) -> bool:
        """Physically remove the row. Returns False if nothing was deleted."""
        cur = conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (obj_id,))
        conn.commit()
        return cur.rowcount > 0


class _SoftDeleteRepository(_Repository[E]):
    soft_delete = True

    def soft_delete_row(self, conn: sqlite3.Connection, obj_id: str, deleted_at: datetime) -> None:
        conn.execute(
            f"UPDATE {self.table} SET deleted_at = ?, updated_at = ? WHERE id = ?",
            (_ts(deleted_at), _ts(utcnow()), obj_id),
        )
        conn.commit()

    def find_deleted(self, conn: sqlite3.Connection) -> list[E]:
        return self._select(conn, deleted_only=True, order_by="deleted_at")

    def get_by_sportmonks_id(
        self, conn: sqlite3.Connection, sportmonks_id: int, include_deleted: bool = False
    ) -> E | None:
        rows = self._select(conn, ["sportmonks_id = ?"], [sportmonks_id], include_deleted=include_deleted)
        return rows[0] if rows else None


# ---------- PlayerRepository ----------


class PlayerRepository(_SoftDeleteRepository[Player]):
    """CRUD for players. Soft-deleted rows hidden unless asked for."""

    table = "players"
    entity = "Player"

    def _to_row(self, p: Player) -> dict[str, Any]:
        return {
            "id": p.id,
            "sportmonks_id": p.sportmonks_id,
            "name": p.name,
            "first_name": p.first_name,
            "last_name": p.last_name,
            "display_name": p.display_name,
            "common_name": p.common_name,
            "date_of_birth": p.date_of_birth.isoformat() if p.date_of_birth else None,
            "nationality": p.nationality,
            "position": p.position,
            "detailed_position": p.detailed_position,
            "height": p.height,
            "weight": p.weight,
            "image_url": p.image_url,
            "created_at": _ts(p.created_at),
            "updated_at": _ts(p.updated_at),
            "deleted_at": _ts(p.deleted_at),
        }

    def _from_row(self, r: sqlite3.Row) -> Player:
        return Player(
            id=r["id"],
            sportmonks_id=r["sportmonks_id"],
            name=r["name"],
            first_name=r["first_name"],
            last_name=r["last_name"],
            display_name=r["display_name"],
            common_name=r["common_name"],
            date_of_birth=_parse_date(r["date_of_birth"]),
            nationality=r["nationality"],
            position=r["position"],
            detailed_position=r["detailed_position"],
            height=r["height"],
            weight=r["weight"],
            image_url=r["image_url"],
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
            deleted_at=_parse_datetime(r["deleted_at"]),
        )

    @staticmethod
    def _filters(position: str | None, nationality: str | None) -> tuple[list[str], list[Any]]:
        where, params = [], []
        if position:
            where.append("position = ?")
            params.append(position)
        if nationality:
            where.append("nationality = ?")
            params.append(nationality)
        return where, params

    def find(
        self,
        conn: sqlite3.Connection,
        position: str | None = None,
        nationality: str | None = None,
        include_deleted: bool = False,
        deleted_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Player]:
        where, params = self._filters(position, nationality)
        return self._select(
            conn, where, params, order_by="name, id", limit=limit, offset=offset,
            include_deleted=include_deleted, deleted_only=deleted_only,
        )

    def count(
        self,
        conn: sqlite3.Connection,
        position: str | None = None,
        nationality: str | None = None,
        include_deleted: bool = False,
        deleted_only: bool = False,
    ) -> int:
        where, params = self._filters(position, nationality)
        return self._count(conn, where, params, include_deleted=include_deleted, deleted_only=deleted_only)

    def search_by_name(self, conn: sqlite3.Connection, term: str, limit: int = 50) -> list[Player]:
        like = f"%{term.strip()}%"
        return self._select(
            conn,
            ["(name LIKE ? OR display_name LIKE ? OR common_name LIKE ?)"],
            [like, like, like],
            order_by="name",
            limit=limit,
        )

    def count_by_position(self, conn: sqlite3.Connection) -> dict[str, int]:
        """Live players grouped by position (None for unset)."""
        rows = conn.execute(
            "SELECT position, COUNT(*) AS n FROM players WHERE deleted_at IS NULL GROUP BY position ORDER BY n DESC"
        ).fetchall()
        return {r["position"]: r["n"] for r in rows}

    def positions_for(self, conn: sqlite3.Connection, player_ids: list[str]) -> dict[str, str | None]:
        """Position per player id, including soft-deleted players."""
        if not player_ids:
            return {}
        marks = ", ".join("?" for _ in player_ids)
        rows = conn.execute(
            f"SELECT id, position FROM players WHERE id IN ({marks})", player_ids
        ).fetchall()
        return {r["id"]: r["position"] for r in rows}


# ---------- TeamRepository ----------


class TeamRepository(_SoftDeleteRepository[Team]):
    """CRUD for real-world teams. is_active is a separate visibility axis from deleted_at."""

    table = "teams"
    entity = "Team"

    def _to_row(self, t: Team) -> dict[str, Any]:
        return {
            "id": t.id,
            "sportmonks_id": t.sportmonks_id,
            "name": t.name,
            "short_code": t.short_code,
            "logo_url": t.logo_url,
            "founded_year": t.founded_year,
            "country": t.country,
            "city": t.city,
            "venue": t.venue,
            "league_id": t.league_id,
            "is_active": 1 if t.is_active else 0,
            "created_at": _ts(t.created_at),
            "updated_at": _ts(t.updated_at),
            "deleted_at": _ts(t.deleted_at),
        }

    def _from_row(self, r: sqlite3.Row) -> Team:
        return Team(
            id=r["id"],
            sportmonks_id=r["sportmonks_id"],
            name=r["name"],
            short_code=r["short_code"],
            logo_url=r["logo_url"],
            founded_year=r["founded_year"],
            country=r["country"],
            city=r["city"],
            venue=r["venue"],
            league_id=r["league_id"],
            is_active=bool(r["is_active"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
            deleted_at=_parse_datetime(r["deleted_at"]),
        )

    @staticmethod
    def _filters(
        league_id: str | None, country: str | None, is_active: bool | None
    ) -> tuple[list[str], list[Any]]:
        where: list[str] = []
        params: list[Any] = []
        if league_id:
            where.append("league_id = ?")
            params.append(league_id)
        if country:
            where.append("country = ?")
            params.append(country)
        if is_active is not None:
            where.append("is_active = ?")
            params.append(1 if is_active else 0)
        return where, params

    def find(
        self,
        conn: sqlite3.Connection,
        league_id: str | None = None,
        country: str | None = None,
        is_active: bool | None = None,
        include_deleted: bool = False,
        deleted_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Team]:
        where, params = self._filters(league_id, country, is_active)
        return self._select(
            conn, where, params, order_by="name, id", limit=limit, offset=offset,
            include_deleted=include_deleted, deleted_only=deleted_only,
        )

    def count(
        self,
        conn: sqlite3.Connection,
        league_id: str | None = None,
        country: str | None = None,
        is_active: bool | None = None,
        include_deleted: bool = False,
        deleted_only: bool = False,
    ) -> int:
        where, params = self._filters(league_id, country, is_active)
        return self._count(conn, where, params, include_deleted=include_deleted, deleted_only=deleted_only)

    def find_inactive(self, conn: sqlite3.Connection) -> list[Team]:
        """Deactivated but not deleted."""
        return self.find(conn, is_active=False)

    def search_by_name(self, conn: sqlite3.Connection, term: str, limit: int = 50) -> list[Team]:
        like = f"%{term.strip()}%"
        return self._select(
            conn,
            ["(name LIKE ? OR short_code LIKE ?)", "is_active = 1"],
            [like, like],
            order_by="name",
            limit=limit,
        )

    def set_active(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        is_active: bool,
        clear_deleted: bool = False,
    ) -> None:
        sql = "UPDATE teams SET is_active = ?, updated_at = ?"
        if clear_deleted:
            sql += ", deleted_at = NULL"
        conn.execute(sql + " WHERE id = ?", (1 if is_active else 0, _ts(utcnow()), team_id))
        conn.commit()

    def soft_delete_row(self, conn: sqlite3.Connection, obj_id: str, deleted_at: datetime) -> None:
        """Soft delete also deactivates."""
        conn.execute(
            "UPDATE teams SET deleted_at = ?, is_active = 0, updated_at = ? WHERE id = ?",
            (_ts(deleted_at), _ts(utcnow()), obj_id),
        )
        conn.commit()


# ---------- LeagueRepository ----------


class LeagueRepository(_Repository[League]):
    """CRUD for leagues. No business logic."""

    table = "leagues"
    entity = "League"

    def _to_row(self, lg: League) -> dict[str, Any]:
        return {
            "id": lg.id,
            "sportmonks_id": lg.sportmonks_id,
            "name": lg.name,
            "short_name": lg.short_name,
            "type": lg.type,
            "country": lg.country,
            "logo_url": lg.logo_url,
            "tier": lg.tier,
            "is_active": 1 if lg.is_active else 0,
            "has_standings": 1 if lg.has_standings else 0,
            "created_at": _ts(lg.created_at),
            "updated_at": _ts(lg.updated_at),
        }

    def _from_row(self, r: sqlite3.Row) -> League:
        return League(
            id=r["id"],
            sportmonks_id=r["sportmonks_id"],
            name=r["name"],
            short_name=r["short_name"],
            type=r["type"],
            country=r["country"],
            logo_url=r["logo_url"],
            tier=r["tier"],
            is_active=bool(r["is_active"]),
            has_standings=bool(r["has_standings"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def find(
        self,
        conn: sqlite3.Connection,
        type: str | None = None,
        country: str | None = None,
        tier: int | None = None,
        active_only: bool = True,
    ) -> list[League]:
        where: list[str] = []
        params: list[Any] = []
        if type:
            where.append("type = ?")
            params.append(type)
        if country:
            where.append("country = ?")
            params.append(country)
        if tier is not None:
            where.append("tier = ?")
            params.append(tier)
        if active_only:
            where.append("is_active = 1")
        return self._select(conn, where, params, order_by="tier, name")

    def find_top_tier(self, conn: sqlite3.Connection, country: str | None = None) -> list[League]:
        return self.find(conn, country=country, tier=1)

    def search_by_name(self, conn: sqlite3.Connection, term: str) -> list[League]:
        like = f"%{term.strip()}%"
        return self._select(
            conn, ["(name LIKE ? OR short_name LIKE ?)", "is_active = 1"], [like, like], order_by="name"
        )


# ---------- SeasonRepository ----------


class SeasonRepository(_Repository[Season]):
    """CRUD for seasons. State transitions live in services.season_service."""

    table = "seasons"
    entity = "Season"

    def _to_row(self, s: Season) -> dict[str, Any]:
        return {
            "id": s.id,
            "sportmonks_id": s.sportmonks_id,
            "name": s.name,
            "league_id": s.league_id,
            "start_date": _ts(s.start_date),
            "end_date": _ts(s.end_date),
            "current_gameweek": s.current_gameweek,
            "total_gameweeks": s.total_gameweeks,
            "status": s.status,
            "is_fantasy_active": 1 if s.is_fantasy_active else 0,
            "transfer_deadline": _ts(s.transfer_deadline),
            "created_at": _ts(s.created_at),
            "updated_at": _ts(s.updated_at),
        }

    def _from_row(self, r: sqlite3.Row) -> Season:
        return Season(
            id=r["id"],
            sportmonks_id=r["sportmonks_id"],
            name=r["name"],
            league_id=r["league_id"],
            start_date=_parse_datetime(r["start_date"]),
            end_date=_parse_datetime(r["end_date"]),
            current_gameweek=r["current_gameweek"],
            total_gameweeks=r["total_gameweeks"],
            status=r["status"],
            is_fantasy_active=bool(r["is_fantasy_active"]),
            transfer_deadline=_parse_datetime(r["transfer_deadline"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def find_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[Season]:
        return self._select(conn, ["league_id = ?"], [league_id], order_by="start_date DESC")

    def find_active(self, conn: sqlite3.Connection) -> list[Season]:
        return self._select(conn, ["status = ?"], [SeasonStatus.ACTIVE.value], order_by="start_date")

    def find_current(self, conn: sqlite3.Connection, now: datetime | None = None) -> Season | None:
        at = _ts(now or utcnow())
        rows = self._select(
            conn,
            ["status = ?", "start_date <= ?", "end_date >= ?"],
            [SeasonStatus.ACTIVE.value, at, at],
            order_by="start_date DESC",
            limit=1,
        )
        return rows[0] if rows else None

    def find_fantasy_active(self, conn: sqlite3.Connection) -> list[Season]:
        return self._select(
            conn,
            ["is_fantasy_active = 1", "status IN (?, ?)"],
            [SeasonStatus.UPCOMING.value, SeasonStatus.ACTIVE.value],
            order_by="start_date",
        )

    def find_by_year(self, conn: sqlite3.Connection, year: int) -> list[Season]:
        """Seasons overlapping the calendar year."""
        start = _ts(datetime(year, 1, 1, tzinfo=timezone.utc))
        end = _ts(datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc))
        return self._select(conn, ["start_date <= ?", "end_date >= ?"], [end, start], order_by="start_date")


# ---------- MatchRepository ----------


class MatchRepository(_Repository[Match]):
    """CRUD for matches. TeamScore objects round-trip through JSON columns."""

    table = "matches"
    entity = "Match"

    def _to_row(self, m: Match) -> dict[str, Any]:
        return {
            "id": m.id,
            "sportmonks_id": m.sportmonks_id,
            "season_id": m.season_id,
            "league_id": m.league_id,
            "gameweek": m.gameweek,
            "kickoff_time": _ts(m.kickoff_time),
            "home_team_id": m.home_team_id,
            "away_team_id": m.away_team_id,
            "home_score": json.dumps(m.home_score.to_dict()) if m.home_score else None,
            "away_score": json.dumps(m.away_score.to_dict()) if m.away_score else None,
            "status": m.status,
            "result": m.result,
            "current_minute": m.current_minute,
            "venue": m.venue,
            "referee": m.referee,
            "attendance": m.attendance,
            "is_fantasy_relevant": 1 if m.is_fantasy_relevant else 0,
            "last_updated": _ts(m.last_updated),
            "created_at": _ts(m.created_at),
            "updated_at": _ts(m.updated_at),
        }

    def _from_row(self, r: sqlite3.Row) -> Match:
        return Match(
            id=r["id"],
            sportmonks_id=r["sportmonks_id"],
            season_id=r["season_id"],
            league_id=r["league_id"],
            gameweek=r["gameweek"],
            kickoff_time=_parse_datetime(r["kickoff_time"]),
            home_team_id=r["home_team_id"],
            away_team_id=r["away_team_id"],
            home_score=TeamScore.from_dict(json.loads(r["home_score"])) if r["home_score"] else None,
            away_score=TeamScore.from_dict(json.loads(r["away_score"])) if r["away_score"] else None,
            status=r["status"],
            result=r["result"],
            current_minute=r["current_minute"],
            venue=r["venue"],
            referee=r["referee"],
            attendance=r["attendance"],
            is_fantasy_relevant=bool(r["is_fantasy_relevant"]),
            last_updated=_parse_datetime(r["last_updated"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def find_by_team(self, conn: sqlite3.Connection, team_id: str, season_id: str | None = None) -> list[Match]:
        where = ["(home_team_id = ? OR away_team_id = ?)"]
        params: list[Any] = [team_id, team_id]
        if season_id:
            where.append("season_id = ?")
            params.append(season_id)
        return self._select(conn, where, params, order_by="kickoff_time")

    def find_by_gameweek(self, conn: sqlite3.Connection, season_id: str, gameweek: int) -> list[Match]:
        return self._select(
            conn, ["season_id = ?", "gameweek = ?"], [season_id, gameweek], order_by="kickoff_time"
        )

    def find_upcoming(self, conn: sqlite3.Connection, limit: int = 10, now: datetime | None = None) -> list[Match]:
        return self._select(
            conn,
            ["status = ?", "kickoff_time > ?"],
            [MatchStatus.SCHEDULED.value, _ts(now or utcnow())],
            order_by="kickoff_time",
            limit=limit,
        )

    def find_live(self, conn: sqlite3.Connection) -> list[Match]:
        return self._select(
            conn,
            ["status IN (?, ?)"],
            [MatchStatus.LIVE.value, MatchStatus.HALFTIME.value],
            order_by="kickoff_time",
        )

    def find_recent(self, conn: sqlite3.Connection, limit: int = 10, now: datetime | None = None) -> list[Match]:
        return self._select(
            conn,
            ["status = ?", "kickoff_time < ?"],
            [MatchStatus.FINISHED.value, _ts(now or utcnow())],
            order_by="kickoff_time DESC",
            limit=limit,
        )

    def find_by_date_range(self, conn: sqlite3.Connection, start: datetime, end: datetime) -> list[Match]:
        return self._select(
            conn, ["kickoff_time >= ?", "kickoff_time <= ?"], [_ts(start), _ts(end)], order_by="kickoff_time"
        )


# ---------- UserRepository ----------


class UserRepository(_Repository[User]):
    """CRUD for users. email and username are unique indexes."""

    table = "users"
    entity = "User"

    def _to_row(self, u: User) -> dict[str, Any]:
        return {
            "id": u.id,
            "email": u.email,
            "username": u.username,
            "password_hash": u.password_hash,
            "first_name": u.first_name,
            "last_name": u.last_name,
            "avatar_url": u.avatar_url,
            "role": u.role,
            "subscription_tier": u.subscription_tier,
            "subscription_expires_at": _ts(u.subscription_expires_at),
            "total_points": u.total_points,
            "seasons_played": u.seasons_played,
            "country": u.country,
            "timezone": u.timezone,
            "is_active": 1 if u.is_active else 0,
            "email_verified": 1 if u.email_verified else 0,
            "last_login_at": _ts(u.last_login_at),
            "created_at": _ts(u.created_at),
            "updated_at": _ts(u.updated_at),
        }

    def _from_row(self, r: sqlite3.Row) -> User:
        return User(
            id=r["id"],
            email=r["email"],
            username=r["username"],
            password_hash=r["password_hash"],
            first_name=r["first_name"],
            last_name=r["last_name"],
            avatar_url=r["avatar_url"],
            role=r["role"],
            subscription_tier=r["subscription_tier"],
            subscription_expires_at=_parse_datetime(r["subscription_expires_at"]),
            total_points=r["total_points"],
            seasons_played=r["seasons_played"],
            country=r["country"],
            timezone=r["timezone"],
            is_active=bool(r["is_active"]),
            email_verified=bool(r["email_verified"]),
            last_login_at=_parse_datetime(r["last_login_at"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def get_by_email(self, conn: sqlite3.Connection, email: str) -> User | None:
        rows = self._select(conn, ["email = ?", "is_active = 1"], [email.strip().lower()])
        return rows[0] if rows else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        rows = self._select(conn, ["username = ?", "is_active = 1"], [username])
        return rows[0] if rows else None

    def touch_last_login(self, conn: sqlite3.Connection, user_id: str, when: datetime) -> None:
        conn.execute(
            "UPDATE users SET last_login_at = ?, updated_at = ? WHERE id = ?",
            (_ts(when), _ts(utcnow()), user_id),
        )
        conn.commit()

    def leaderboard(self, conn: sqlite3.Connection, limit: int = 10) -> list[User]:
        return self._select(conn, ["is_active = 1"], order_by="total_points DESC, username", limit=limit)

    def find_active_subscribers(self, conn: sqlite3.Connection, now: datetime | None = None) -> list[User]:
        return self._select(
            conn,
            ["subscription_tier != ?", "subscription_expires_at > ?", "is_active = 1"],
            [SubscriptionTier.FREE.value, _ts(now or utcnow())],
            order_by="subscription_expires_at",
        )


# ---------- FantasyTeamRepository ----------


class FantasyTeamRepository(_Repository[FantasyTeam]):
    """CRUD for fantasy teams. The squad is one JSON document written whole."""

    table = "fantasy_teams"
    entity = "FantasyTeam"

    def _to_row(self, t: FantasyTeam) -> dict[str, Any]:
        return {
            "id": t.id,
            "name": t.name,
            "user_id": t.user_id,
            "season_id": t.season_id,
            "players": json.dumps([p.to_dict() for p in t.players]),
            "budget": t.budget,
            "remaining_budget": t.remaining_budget,
            "total_value": t.total_value,
            "total_points": t.total_points,
            "gameweek_points": t.gameweek_points,
            "rank": t.rank,
            "free_transfers": t.free_transfers,
            "used_transfers": t.used_transfers,
            "transfer_cost": t.transfer_cost,
            "status": t.status,
            "is_public": 1 if t.is_public else 0,
            "created_at": _ts(t.created_at),
            "updated_at": _ts(t.updated_at),
        }

    def _from_row(self, r: sqlite3.Row) -> FantasyTeam:
        return FantasyTeam(
            id=r["id"],
            name=r["name"],
            user_id=r["user_id"],
            season_id=r["season_id"],
            players=[PlayerSelection.from_dict(p) for p in json.loads(r["players"])],
            budget=r["budget"],
            remaining_budget=r["remaining_budget"],
            total_value=r["total_value"],
            total_points=r["total_points"],
            gameweek_points=r["gameweek_points"],
            rank=r["rank"],
            free_transfers=r["free_transfers"],
            used_transfers=r["used_transfers"],
            transfer_cost=r["transfer_cost"],
            status=r["status"],
            is_public=bool(r["is_public"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def get_by_user_and_season(self, conn: sqlite3.Connection, user_id: str, season_id: str) -> FantasyTeam | None:
        rows = self._select(conn, ["user_id = ?", "season_id = ?"], [user_id, season_id])
        return rows[0] if rows else None

    def find_by_user(self, conn: sqlite3.Connection, user_id: str) -> list[FantasyTeam]:
        return self._select(conn, ["user_id = ?"], [user_id])

    def find_by_season(self, conn: sqlite3.Connection, season_id: str) -> list[FantasyTeam]:
        return self._select(
            conn, ["season_id = ?", "status = ?"], [season_id, FantasyTeamStatus.ACTIVE.value]
        )

    def leaderboard(self, conn: sqlite3.Connection, season_id: str, limit: int = 100) -> list[FantasyTeam]:
        return self._select(
            conn,
            ["season_id = ?", "status = ?"],
            [season_id, FantasyTeamStatus.ACTIVE.value],
            order_by="total_points DESC, name",
            limit=limit,
        )


# ---------- PlayerStatsRepository ----------


class PlayerStatsRepository(_Repository[PlayerStats]):
    """CRUD for per-season player stats. One row per (player, season)."""

    table = "player_stats"
    entity = "PlayerStats"

    def _to_row(self, s: PlayerStats) -> dict[str, Any]:
        return {
            "id": s.id,
            "player_id": s.player_id,
            "season_id": s.season_id,
            "team_id": s.team_id,
            "gameweek": s.gameweek,
            "performance": json.dumps(s.performance.to_dict()),
            "fantasy": json.dumps(s.fantasy.to_dict()),
            "is_active": 1 if s.is_active else 0,
            "last_updated": _ts(s.last_updated or utcnow()),
            "created_at": _ts(s.created_at),
            "updated_at": _ts(s.updated_at),
        }

    def _from_row(self, r: sqlite3.Row) -> PlayerStats:
        return PlayerStats(
            id=r["id"],
            player_id=r["player_id"],
            season_id=r["season_id"],
            team_id=r["team_id"],
            gameweek=r["gameweek"],
            performance=PerformanceStats.from_dict(json.loads(r["performance"])),
            fantasy=FantasyStats.from_dict(json.loads(r["fantasy"])),
            is_active=bool(r["is_active"]),
            last_updated=_parse_datetime(r["last_updated"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def get_by_player_and_season(self, conn: sqlite3.Connection, player_id: str, season_id: str) -> PlayerStats | None:
        rows = self._select(conn, ["player_id = ?", "season_id = ?"], [player_id, season_id])
        return rows[0] if rows else None

    def find_by_player(self, conn: sqlite3.Connection, player_id: str, season_id: str | None = None) -> list[PlayerStats]:
        where = ["player_id = ?", "is_active = 1"]
        params: list[Any] = [player_id]
        if season_id:
            where.append("season_id = ?")
            params.append(season_id)
        return self._select(conn, where, params)

    def find_by_season(self, conn: sqlite3.Connection, season_id: str) -> list[PlayerStats]:
        return self._select(conn, ["season_id = ?", "is_active = 1"], [season_id])

    def top_scorers(self, conn: sqlite3.Connection, season_id: str, limit: int = 10) -> list[PlayerStats]:
        return self._select(
            conn,
            ["season_id = ?", "is_active = 1"],
            [season_id],
            order_by="json_extract(performance, '$.goals') DESC, json_extract(performance, '$.assists') DESC",
            limit=limit,
        )

    def top_fantasy_performers(self, conn: sqlite3.Connection, season_id: str, limit: int = 10) -> list[PlayerStats]:
        return self._select(
            conn,
            ["season_id = ?", "is_active = 1"],
            [season_id],
            order_by="json_extract(fantasy, '$.fantasy_points') DESC",
            limit=limit,
        )

    def best_value(self, conn: sqlite3.Connection, season_id: str, limit: int = 10) -> list[PlayerStats]:
        """Highest fantasy points per unit of current price."""
        efficiency = (
            "CASE WHEN json_extract(fantasy, '$.current_price') = 0 THEN 0 "
            "ELSE json_extract(fantasy, '$.fantasy_points') * 1.0 / json_extract(fantasy, '$.current_price') END"
        )
        return self._select(
            conn, ["season_id = ?", "is_active = 1"], [season_id], order_by=f"{efficiency} DESC", limit=limit
        )

"""
League and season service: CRUD, season state machine, gameweek progression.

Season lifecycle: upcoming -> active -> completed, with cancelled reachable from
any non-terminal state. A date-derived transition runs on every save but never
overrides an explicit completed or cancelled status.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Any

from backend.errors import (
    GameweekOverflowError,
    IllegalStateTransitionError,
    NotFoundError,
    OutOfRangeError,
    UniquenessConflictError,
)
from backend.models import League, Season, SeasonStatus, utcnow
from backend.persistence.repositories import LeagueRepository, SeasonRepository
from backend.validators import (
    as_utc,
    ensure_valid,
    merge_update,
    normalize_league,
    normalize_season,
    validate_league,
    validate_season,
)

logger = logging.getLogger(__name__)

# Status fields only change through the transition methods.
_IMMUTABLE_FIELDS = ("id", "status", "is_fantasy_active", "created_at", "updated_at")

# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    SeasonStatus.UPCOMING.value: {SeasonStatus.ACTIVE.value, SeasonStatus.CANCELLED.value},
    SeasonStatus.ACTIVE.value: {SeasonStatus.COMPLETED.value, SeasonStatus.CANCELLED.value},
    SeasonStatus.COMPLETED.value: set(),
    SeasonStatus.CANCELLED.value: set(),
}


def apply_date_transition(season: Season, now: datetime | None = None) -> Season:
    """
    Promote upcoming -> active while now is inside [start_date, end_date];
    complete an active season once end_date has passed. Terminal states are left alone.
    """
    now = now or utcnow()
    if season.status == SeasonStatus.UPCOMING.value and season.start_date <= now <= season.end_date:
        return replace(season, status=SeasonStatus.ACTIVE.value)
    if season.status == SeasonStatus.ACTIVE.value and season.end_date < now:
        return replace(season, status=SeasonStatus.COMPLETED.value, is_fantasy_active=False)
    return season


def _check_transition(season: Season, new_status: str, message: str) -> None:
    if new_status not in _VALID_TRANSITIONS.get(season.status, set()):
        logger.warning(
            "Rejected season %s transition %s -> %s", season.id, season.status, new_status
        )
        raise IllegalStateTransitionError(message)


# ---------- LeagueService ----------


class LeagueService:
    """CRUD and lookups for leagues."""

    def __init__(self) -> None:
        self._league_repo = LeagueRepository()

    def create(self, conn: sqlite3.Connection, league: League) -> League:
        league = normalize_league(league)
        ensure_valid(validate_league(league))
        try:
            created = self._league_repo.create(conn, league)
        except UniquenessConflictError:
            logger.warning("League create rejected: duplicate sportmonks_id=%s", league.sportmonks_id)
            raise
        logger.info("Created league %s (%s)", created.id, created.name)
        return created

    def create_many(self, conn: sqlite3.Connection, leagues: list[League]) -> list[League]:
        prepared = [normalize_league(lg) for lg in leagues]
        ensure_valid([f"[{i}] {e}" for i, lg in enumerate(prepared) for e in validate_league(lg)])
        return self._league_repo.create_many(conn, prepared)

    def get(self, conn: sqlite3.Connection, league_id: str) -> League:
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError("League", league_id)
        return league

    def update(self, conn: sqlite3.Connection, league_id: str, changes: dict[str, Any]) -> League:
        merged = normalize_league(merge_update(self.get(conn, league_id), changes, _IMMUTABLE_FIELDS))
        ensure_valid(validate_league(merged))
        return self._league_repo.update(conn, merged)

    def find(self, conn: sqlite3.Connection, **filters: Any) -> list[League]:
        return self._league_repo.find(conn, **filters)

    def find_top_tier(self, conn: sqlite3.Connection, country: str | None = None) -> list[League]:
        return self._league_repo.find_top_tier(conn, country)

    def search_by_name(self, conn: sqlite3.Connection, term: str) -> list[League]:
        return self._league_repo.search_by_name(conn, term)


# ---------- SeasonService ----------


class SeasonService:
    """
    Domain logic for seasons: status transitions, gameweek sequencing, transfer window.
    Persistence is delegated to repositories. Every write goes through _save,
    which applies the date-derived transition and re-validates.
    """

    def __init__(self) -> None:
        self._season_repo = SeasonRepository()

    def _save(self, conn: sqlite3.Connection, season: Season, now: datetime | None = None) -> Season:
        season = normalize_season(season)
        ensure_valid(validate_season(season))
        before = season.status
        season = apply_date_transition(season, now)
        if season.status != before:
            logger.info("Season %s moved %s -> %s by date", season.id, before, season.status)
            ensure_valid(validate_season(season))
        if season.id is None:
            return self._season_repo.create(conn, season)
        return self._season_repo.update(conn, season)

    def create(self, conn: sqlite3.Connection, season: Season, now: datetime | None = None) -> Season:
        try:
            created = self._save(conn, replace(season, id=None), now)
        except UniquenessConflictError:
            logger.warning("Season create rejected: duplicate sportmonks_id=%s", season.sportmonks_id)
            raise
        logger.info("Created season %s (%s) status=%s", created.id, created.name, created.status)
        return created

    def get(self, conn: sqlite3.Connection, season_id: str) -> Season:
        season = self._season_repo.get(conn, season_id)
        if season is None:
            raise NotFoundError("Season", season_id)
        return season

    def update(
        self, conn: sqlite3.Connection, season_id: str, changes: dict[str, Any], now: datetime | None = None
    ) -> Season:
        merged = merge_update(self.get(conn, season_id), changes, _IMMUTABLE_FIELDS)
        return self._save(conn, merged, now)

    def save(self, conn: sqlite3.Connection, season_id: str, now: datetime | None = None) -> Season:
        """Re-save unchanged; lets the date-derived transition catch up."""
        return self._save(conn, self.get(conn, season_id), now)

    # ---------- Transitions ----------

    def activate_season(self, conn: sqlite3.Connection, season_id: str) -> Season:
        season = self.get(conn, season_id)
        _check_transition(season, SeasonStatus.ACTIVE.value, "Can only activate upcoming seasons")
        season = replace(season, status=SeasonStatus.ACTIVE.value, is_fantasy_active=True)
        logger.info("Activated season %s", season_id)
        return self._save(conn, season)

    def complete_season(self, conn: sqlite3.Connection, season_id: str) -> Season:
        season = self.get(conn, season_id)
        _check_transition(season, SeasonStatus.COMPLETED.value, "Can only complete active seasons")
        season = replace(season, status=SeasonStatus.COMPLETED.value, is_fantasy_active=False)
        logger.info("Completed season %s", season_id)
        return self._save(conn, season)

    def cancel_season(self, conn: sqlite3.Connection, season_id: str) -> Season:
        season = self.get(conn, season_id)
        _check_transition(season, SeasonStatus.CANCELLED.value, "Can only cancel upcoming or active seasons")
        season = replace(season, status=SeasonStatus.CANCELLED.value, is_fantasy_active=False)
        logger.info("Cancelled season %s", season_id)
        return self._save(conn, season)

    def advance_gameweek(self, conn: sqlite3.Connection, season_id: str) -> Season:
        season = self.get(conn, season_id)
        if season.current_gameweek >= season.total_gameweeks:
            logger.warning("Season %s already at final gameweek %d", season_id, season.total_gameweeks)
            raise GameweekOverflowError("Cannot advance beyond total gameweeks")
        season = replace(season, current_gameweek=season.current_gameweek + 1)
        logger.info("Season %s advanced to gameweek %d", season_id, season.current_gameweek)
        return self._save(conn, season)

    def set_transfer_deadline(self, conn: sqlite3.Connection, season_id: str, deadline: datetime) -> Season:
        season = self.get(conn, season_id)
        deadline = as_utc(deadline)
        if not season.start_date <= deadline <= season.end_date:
            raise OutOfRangeError("Transfer deadline must be within season dates")
        return self._save(conn, replace(season, transfer_deadline=deadline))

    # ---------- Queries ----------

    def find_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[Season]:
        return self._season_repo.find_by_league(conn, league_id)

    def find_active(self, conn: sqlite3.Connection) -> list[Season]:
        return self._season_repo.find_active(conn)

    def find_current(self, conn: sqlite3.Connection, now: datetime | None = None) -> Season | None:
        return self._season_repo.find_current(conn, now)

    def find_fantasy_active(self, conn: sqlite3.Connection) -> list[Season]:
        return self._season_repo.find_fantasy_active(conn)

    def find_by_year(self, conn: sqlite3.Connection, year: int) -> list[Season]:
        return self._season_repo.find_by_year(conn, year)

    def transfers_open(self, season: Season, now: datetime | None = None) -> bool:
        """Squad changes allowed: season not terminal and deadline (if any) not passed."""
        if season.status not in (SeasonStatus.UPCOMING.value, SeasonStatus.ACTIVE.value):
            return False
        return season.transfer_deadline is None or (now or utcnow()) <= season.transfer_deadline

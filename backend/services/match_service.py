"""
Match service: CRUD, status state machine, live score updates.

scheduled -> live <-> halftime -> finished; scheduled -> postponed;
live/halftime -> suspended; anything not finished -> cancelled.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Any

from backend.errors import IllegalStateTransitionError, NotFoundError, UniquenessConflictError, ValidationError
from backend.models import Match, MatchResult, MatchStatus, TeamScore, utcnow
from backend.persistence.repositories import MatchRepository
from backend.validators import ensure_valid, merge_update, normalize_match, validate_match

logger = logging.getLogger(__name__)

# Status and result only change through the transition methods and update_score.
_IMMUTABLE_FIELDS = ("id", "status", "result", "created_at", "updated_at")

_LIVE = {MatchStatus.LIVE.value, MatchStatus.HALFTIME.value}


def derive_result(home_goals: int, away_goals: int) -> str:
    if home_goals > away_goals:
        return MatchResult.HOME_WIN.value
    if away_goals > home_goals:
        return MatchResult.AWAY_WIN.value
    return MatchResult.DRAW.value


def _goals(score: TeamScore | None) -> int:
    return score.goals if score else 0


class MatchService:
    """Domain logic for matches. Persistence is delegated to MatchRepository."""

    def __init__(self) -> None:
        self._match_repo = MatchRepository()

    def _save(self, conn: sqlite3.Connection, match: Match) -> Match:
        match = normalize_match(match)
        ensure_valid(validate_match(match))
        if match.id is None:
            return self._match_repo.create(conn, match)
        return self._match_repo.update(conn, match)

    def _transition(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        allowed_from: set[str],
        new_status: str,
        message: str,
        **changes: Any,
    ) -> Match:
        match = self.get(conn, match_id)
        if match.status not in allowed_from:
            logger.warning("Rejected match %s transition %s -> %s", match_id, match.status, new_status)
            raise IllegalStateTransitionError(message)
        match = replace(match, status=new_status, last_updated=utcnow(), **changes)
        logger.info("Match %s is now %s", match_id, new_status)
        return self._save(conn, match)

    # ---------- CRUD ----------

    def create(self, conn: sqlite3.Connection, match: Match) -> Match:
        try:
            created = self._save(conn, replace(match, id=None))
        except UniquenessConflictError:
            logger.warning("Match create rejected: duplicate sportmonks_id=%s", match.sportmonks_id)
            raise
        logger.info("Created match %s gameweek=%d", created.id, created.gameweek)
        return created

    def create_many(self, conn: sqlite3.Connection, matches: list[Match]) -> list[Match]:
        prepared = [normalize_match(replace(m, id=None)) for m in matches]
        ensure_valid([f"[{i}] {e}" for i, m in enumerate(prepared) for e in validate_match(m)])
        return self._match_repo.create_many(conn, prepared)

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        return match

    def update(self, conn: sqlite3.Connection, match_id: str, changes: dict[str, Any]) -> Match:
        return self._save(conn, merge_update(self.get(conn, match_id), changes, _IMMUTABLE_FIELDS))

    # ---------- Status ----------

    def start_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        return self._transition(
            conn, match_id, {MatchStatus.SCHEDULED.value}, MatchStatus.LIVE.value,
            "Can only start scheduled matches", current_minute=0,
        )

    def halftime(self, conn: sqlite3.Connection, match_id: str) -> Match:
        return self._transition(
            conn, match_id, {MatchStatus.LIVE.value}, MatchStatus.HALFTIME.value,
            "Can only go to halftime from a live match", current_minute=45,
        )

    def resume(self, conn: sqlite3.Connection, match_id: str) -> Match:
        return self._transition(
            conn, match_id, {MatchStatus.HALFTIME.value}, MatchStatus.LIVE.value,
            "Can only resume a match at halftime",
        )

    def finish_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self.get(conn, match_id)
        result = derive_result(_goals(match.home_score), _goals(match.away_score))
        return self._transition(
            conn, match_id, _LIVE, MatchStatus.FINISHED.value,
            "Can only finish live matches", current_minute=90, result=result,
        )

    def postpone_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        return self._transition(
            conn, match_id, {MatchStatus.SCHEDULED.value}, MatchStatus.POSTPONED.value,
            "Can only postpone scheduled matches",
        )

    def suspend_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        return self._transition(
            conn, match_id, _LIVE, MatchStatus.SUSPENDED.value, "Can only suspend live matches",
        )

    def cancel_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        allowed = {s.value for s in MatchStatus} - {MatchStatus.FINISHED.value, MatchStatus.CANCELLED.value}
        return self._transition(
            conn, match_id, allowed, MatchStatus.CANCELLED.value, "Cannot cancel a finished match",
        )

    def update_score(self, conn: sqlite3.Connection, match_id: str, home_goals: int, away_goals: int) -> Match:
        """Set both sides' goals, creating TeamScores on first use. Result is kept in step once finished."""
        if home_goals < 0 or away_goals < 0:
            raise ValidationError(["Goals cannot be negative"])
        match = self.get(conn, match_id)
        finished = match.status == MatchStatus.FINISHED.value
        home = replace(match.home_score, goals=home_goals) if match.home_score else TeamScore(
            team_id=match.home_team_id, goals=home_goals
        )
        away = replace(match.away_score, goals=away_goals) if match.away_score else TeamScore(
            team_id=match.away_team_id, goals=away_goals
        )
        match = replace(
            match,
            home_score=home,
            away_score=away,
            result=derive_result(home_goals, away_goals) if finished else match.result,
            last_updated=utcnow(),
        )
        logger.info("Match %s score %d-%d", match_id, home_goals, away_goals)
        return self._save(conn, match)

    # ---------- Queries ----------

    def find_by_team(self, conn: sqlite3.Connection, team_id: str, season_id: str | None = None) -> list[Match]:
        return self._match_repo.find_by_team(conn, team_id, season_id)

    def find_by_gameweek(self, conn: sqlite3.Connection, season_id: str, gameweek: int) -> list[Match]:
        return self._match_repo.find_by_gameweek(conn, season_id, gameweek)

    def find_upcoming(self, conn: sqlite3.Connection, limit: int = 10, now: datetime | None = None) -> list[Match]:
        return self._match_repo.find_upcoming(conn, limit, now)

    def find_live(self, conn: sqlite3.Connection) -> list[Match]:
        return self._match_repo.find_live(conn)

    def find_recent(self, conn: sqlite3.Connection, limit: int = 10, now: datetime | None = None) -> list[Match]:
        return self._match_repo.find_recent(conn, limit, now)

    def find_by_date_range(self, conn: sqlite3.Connection, start: datetime, end: datetime) -> list[Match]:
        return self._match_repo.find_by_date_range(conn, start, end)

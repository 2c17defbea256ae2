"""
Fantasy team service: persisted squad operations, transfer-window gating, leaderboards.

Each squad operation is one read-modify-write inside write_transaction, so
concurrent adds/removes on the same team serialize instead of losing updates.
The in-memory rules live in backend.squad.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from backend import config, squad
from backend.errors import BusinessRuleError, NotFoundError, TransferWindowClosedError, UniquenessConflictError
from backend.models import FantasyStats, FantasyTeam, SeasonStatus, utcnow
from backend.persistence.db import write_transaction
from backend.persistence.repositories import (
    FantasyTeamRepository,
    PlayerRepository,
    PlayerStatsRepository,
    SeasonRepository,
)
from backend.validators import ensure_valid, merge_update, normalize_fantasy_team, validate_fantasy_team

logger = logging.getLogger(__name__)

# Squad contents and money fields only change through the squad operations.
_IMMUTABLE_FIELDS = (
    "id", "user_id", "season_id", "players", "budget", "remaining_budget",
    "total_value", "created_at", "updated_at",
)


class FantasyService:
    """
    Domain logic for fantasy teams. One team per user per season, enforced
    by the (user_id, season_id) unique index.
    """

    def __init__(self) -> None:
        self._team_repo = FantasyTeamRepository()
        self._season_repo = SeasonRepository()
        self._player_repo = PlayerRepository()
        self._stats_repo = PlayerStatsRepository()

    # ---------- CRUD ----------

    def create_team(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        season_id: str,
        name: str,
        budget: float | None = None,
        is_public: bool = False,
    ) -> FantasyTeam:
        budget = config.STARTING_BUDGET if budget is None else budget
        team = normalize_fantasy_team(
            FantasyTeam(name=name, user_id=user_id, season_id=season_id, budget=budget, is_public=is_public)
        )
        ensure_valid(validate_fantasy_team(team))
        try:
            created = self._team_repo.create(conn, team)
        except UniquenessConflictError:
            logger.warning("User %s already has a team for season %s", user_id, season_id)
            raise
        logger.info("Created fantasy team %s for user %s season %s", created.id, user_id, season_id)
        return created

    def get(self, conn: sqlite3.Connection, team_id: str) -> FantasyTeam:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError("FantasyTeam", team_id)
        return team

    def get_for_user(self, conn: sqlite3.Connection, user_id: str, season_id: str) -> FantasyTeam:
        team = self._team_repo.get_by_user_and_season(conn, user_id, season_id)
        if team is None:
            raise NotFoundError("FantasyTeam", f"user={user_id} season={season_id}")
        return team

    def update(self, conn: sqlite3.Connection, team_id: str, changes: dict[str, Any]) -> FantasyTeam:
        """Name, visibility, status and scoring fields. Squad changes go through the squad operations."""
        merged = normalize_fantasy_team(merge_update(self.get(conn, team_id), changes, _IMMUTABLE_FIELDS))
        ensure_valid(validate_fantasy_team(merged))
        return self._team_repo.update(conn, merged)

    def delete(self, conn: sqlite3.Connection, team_id: str) -> None:
        if not self._team_repo.hard_delete(conn, team_id):
            raise NotFoundError("FantasyTeam", team_id)
        logger.info("Deleted fantasy team %s", team_id)

    def find_by_user(self, conn: sqlite3.Connection, user_id: str) -> list[FantasyTeam]:
        return self._team_repo.find_by_user(conn, user_id)

    def find_by_season(self, conn: sqlite3.Connection, season_id: str) -> list[FantasyTeam]:
        return self._team_repo.find_by_season(conn, season_id)

    def leaderboard(self, conn: sqlite3.Connection, season_id: str, limit: int = 100) -> list[FantasyTeam]:
        return self._team_repo.leaderboard(conn, season_id, limit)

    def update_ranks(self, conn: sqlite3.Connection, season_id: str) -> int:
        """Write 1-based leaderboard positions into rank. Returns teams ranked."""
        teams = self._team_repo.leaderboard(conn, season_id, limit=-1)
        with write_transaction(conn):
            for position, team in enumerate(teams, start=1):
                if team.rank != position:
                    self._team_repo.update(conn, replace(team, rank=position), commit=False)
        logger.info("Ranked %d teams in season %s", len(teams), season_id)
        return len(teams)

    # ---------- Squad ----------

    def _check_window(self, conn: sqlite3.Connection, season_id: str, now: datetime | None) -> None:
        season = self._season_repo.get(conn, season_id)
        if season is None:
            raise NotFoundError("Season", season_id)
        if season.status not in (SeasonStatus.UPCOMING.value, SeasonStatus.ACTIVE.value):
            raise TransferWindowClosedError(f"Squad changes are closed: season is {season.status}")
        if season.transfer_deadline is not None and (now or utcnow()) > season.transfer_deadline:
            raise TransferWindowClosedError("Squad changes are closed: transfer deadline has passed")

    def _mutate(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        operation: Callable[[FantasyTeam], Any],
        now: datetime | None = None,
    ) -> FantasyTeam:
        with write_transaction(conn):
            team = self.get(conn, team_id)
            try:
                self._check_window(conn, team.season_id, now)
                operation(team)
            except BusinessRuleError as exc:
                logger.warning("Squad change on team %s rejected: %s", team_id, exc)
                raise
            ensure_valid(validate_fantasy_team(team))
            return self._team_repo.update(conn, team, commit=False)

    def current_price(self, conn: sqlite3.Connection, player_id: str, season_id: str) -> float:
        """Player's listed price for the season, or the default starting price."""
        stats = self._stats_repo.get_by_player_and_season(conn, player_id, season_id)
        return stats.fantasy.current_price if stats else FantasyStats().current_price

    def add_player(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        player_id: str,
        price: float | None = None,
        is_starting: bool = True,
        now: datetime | None = None,
    ) -> FantasyTeam:
        if self._player_repo.get(conn, player_id) is None:
            raise NotFoundError("Player", player_id)

        def operation(team: FantasyTeam) -> None:
            cost = self.current_price(conn, player_id, team.season_id) if price is None else price
            squad.add_player(team, player_id, cost, is_starting=is_starting, now=now)

        team = self._mutate(conn, team_id, operation, now)
        logger.info("Team %s added player %s (remaining %.2f)", team_id, player_id, team.remaining_budget)
        return team

    def remove_player(
        self, conn: sqlite3.Connection, team_id: str, player_id: str, now: datetime | None = None
    ) -> FantasyTeam:
        team = self._mutate(conn, team_id, lambda t: squad.remove_player(t, player_id), now)
        logger.info("Team %s removed player %s (remaining %.2f)", team_id, player_id, team.remaining_budget)
        return team

    def set_captain(
        self, conn: sqlite3.Connection, team_id: str, player_id: str, now: datetime | None = None
    ) -> FantasyTeam:
        return self._mutate(conn, team_id, lambda t: squad.set_captain(t, player_id), now)

    def set_vice_captain(
        self, conn: sqlite3.Connection, team_id: str, player_id: str, now: datetime | None = None
    ) -> FantasyTeam:
        return self._mutate(conn, team_id, lambda t: squad.set_vice_captain(t, player_id), now)

    def check_composition(self, conn: sqlite3.Connection, team_id: str) -> list[str]:
        """Advisory squad-shape report; never blocks a write."""
        team = self.get(conn, team_id)
        positions = self._player_repo.positions_for(conn, [p.player_id for p in team.players])
        return squad.check_squad_composition([positions.get(p.player_id) for p in team.players])

"""
Player stats service. fantasy_points is never written directly: it is
recomputed from the performance snapshot on every create and update.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from typing import Any

from backend.errors import NotFoundError, UniquenessConflictError
from backend.models import FantasyStats, PerformanceStats, PlayerStats, utcnow
from backend.persistence.repositories import PlayerStatsRepository
from backend.scoring import compute_fantasy_stats
from backend.validators import ensure_valid, merge_update, validate_player_stats

logger = logging.getLogger(__name__)


class StatsService:
    def __init__(self) -> None:
        self._stats_repo = PlayerStatsRepository()

    def _prepare(self, stats: PlayerStats) -> PlayerStats:
        ensure_valid(validate_player_stats(stats))
        return replace(
            stats,
            fantasy=compute_fantasy_stats(stats.performance, stats.fantasy),
            last_updated=utcnow(),
        )

    def create(self, conn: sqlite3.Connection, stats: PlayerStats) -> PlayerStats:
        stats = self._prepare(replace(stats, id=None))
        try:
            created = self._stats_repo.create(conn, stats)
        except UniquenessConflictError:
            logger.warning("Stats already exist for player %s season %s", stats.player_id, stats.season_id)
            raise
        logger.info("Created stats %s for player %s", created.id, created.player_id)
        return created

    def get(self, conn: sqlite3.Connection, stats_id: str) -> PlayerStats:
        stats = self._stats_repo.get(conn, stats_id)
        if stats is None:
            raise NotFoundError("PlayerStats", stats_id)
        return stats

    def get_for_player(self, conn: sqlite3.Connection, player_id: str, season_id: str) -> PlayerStats:
        stats = self._stats_repo.get_by_player_and_season(conn, player_id, season_id)
        if stats is None:
            raise NotFoundError("PlayerStats", f"player={player_id} season={season_id}")
        return stats

    def update_performance(self, conn: sqlite3.Connection, stats_id: str, changes: dict[str, Any]) -> PlayerStats:
        """Apply a stat correction and recompute the derived fantasy figures."""
        current = self.get(conn, stats_id)
        performance = merge_update(current.performance, changes)
        updated = self._stats_repo.update(conn, self._prepare(replace(current, performance=performance)))
        logger.info(
            "Stats %s corrected %s -> %.1f points", stats_id, sorted(changes), updated.fantasy.fantasy_points
        )
        return updated

    def update_market(self, conn: sqlite3.Connection, stats_id: str, changes: dict[str, Any]) -> PlayerStats:
        """Price and transfer counters. Point fields are derived and rejected here."""
        current = self.get(conn, stats_id)
        fantasy = merge_update(
            current.fantasy, changes, ("fantasy_points", "average_points", "points_per_minute")
        )
        return self._stats_repo.update(conn, self._prepare(replace(current, fantasy=fantasy)))

    def recompute(self, conn: sqlite3.Connection, stats_id: str) -> PlayerStats:
        return self._stats_repo.update(conn, self._prepare(self.get(conn, stats_id)))

    def find_by_player(self, conn: sqlite3.Connection, player_id: str, season_id: str | None = None) -> list[PlayerStats]:
        return self._stats_repo.find_by_player(conn, player_id, season_id)

    def find_by_season(self, conn: sqlite3.Connection, season_id: str) -> list[PlayerStats]:
        return self._stats_repo.find_by_season(conn, season_id)

    def top_scorers(self, conn: sqlite3.Connection, season_id: str, limit: int = 10) -> list[PlayerStats]:
        return self._stats_repo.top_scorers(conn, season_id, limit)

    def top_fantasy_performers(self, conn: sqlite3.Connection, season_id: str, limit: int = 10) -> list[PlayerStats]:
        return self._stats_repo.top_fantasy_performers(conn, season_id, limit)

    def best_value(self, conn: sqlite3.Connection, season_id: str, limit: int = 10) -> list[PlayerStats]:
        return self._stats_repo.best_value(conn, season_id, limit)


def new_stats(player_id: str, season_id: str, team_id: str | None = None, **performance: int) -> PlayerStats:
    """Convenience constructor used by the API and sync jobs."""
    return PlayerStats(
        player_id=player_id,
        season_id=season_id,
        team_id=team_id,
        performance=PerformanceStats(**performance),
        fantasy=FantasyStats(),
    )

"""
Lifecycle for soft-deletable entities (Player, Team).

Active -> SoftDeleted -> Purged, or Active -> Purged via hard delete.
Every create and update runs normalize + validate on the full entity; partial
updates are merged first so they cannot skip a rule. Uniqueness is decided by
the storage layer's unique indexes.
"""
from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

from backend.errors import NotFoundError, UniquenessConflictError, ValidationError
from backend.models import Player, Team, utcnow
from backend.persistence.repositories import PlayerRepository, TeamRepository
from backend.validators import (
    ensure_valid,
    merge_update,
    normalize_player,
    normalize_team,
    validate_player,
    validate_team,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Lifecycle fields are owned by the service, never by an update payload.
_IMMUTABLE_FIELDS = ("id", "created_at", "updated_at", "deleted_at")


# ---------- Pagination ----------


@dataclass
class Page(Generic[E]):
    items: list[E]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self, serialize: Callable[[E], dict[str, Any]] | None = None) -> dict[str, Any]:
        serialize = serialize or (lambda item: item.to_dict())  # type: ignore[attr-defined]
        return {
            "data": [serialize(item) for item in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def page_window(page: int, limit: int) -> tuple[int, int, int]:
    """Clamp page/limit and return (page, limit, offset)."""
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


# ---------- Shared base ----------


class _LifecycleService(Generic[E]):
    entity_name = ""

    def __init__(self, repo: Any) -> None:
        self._repo = repo

    def _prepare(self, entity: E) -> E:
        raise NotImplementedError

    def _key(self, entity: E) -> str:
        return f"sportmonks_id={getattr(entity, 'sportmonks_id', None)}"

    def create(self, conn: sqlite3.Connection, entity: E) -> E:
        prepared = self._prepare(entity)
        try:
            created = self._repo.create(conn, prepared)
        except UniquenessConflictError:
            logger.warning("%s create rejected: duplicate %s", self.entity_name, self._key(prepared))
            raise
        logger.info("Created %s %s (%s)", self.entity_name, created.id, self._key(created))
        return created

    def create_many(self, conn: sqlite3.Connection, entities: list[E]) -> list[E]:
        """Validate every payload first, then insert all in one transaction."""
        prepared: list[E] = []
        errors: list[str] = []
        for i, entity in enumerate(entities):
            try:
                prepared.append(self._prepare(entity))
            except ValidationError as exc:
                errors.extend(f"[{i}] {e}" for e in exc.errors)
        ensure_valid(errors)
        try:
            created = self._repo.create_many(conn, prepared)
        except UniquenessConflictError as exc:
            logger.warning("%s bulk create rolled back: %s", self.entity_name, exc)
            raise
        logger.info("Bulk created %d %s rows", len(created), self.entity_name)
        return created

    def get(self, conn: sqlite3.Connection, entity_id: str, include_deleted: bool = False) -> E:
        entity = self._repo.get(conn, entity_id, include_deleted=include_deleted)
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    def get_by_sportmonks_id(
        self, conn: sqlite3.Connection, sportmonks_id: int, include_deleted: bool = False
    ) -> E:
        entity = self._repo.get_by_sportmonks_id(conn, sportmonks_id, include_deleted=include_deleted)
        if entity is None:
            raise NotFoundError(self.entity_name, str(sportmonks_id))
        return entity

    def update(self, conn: sqlite3.Connection, entity_id: str, changes: dict[str, Any]) -> E:
        """Merge changes into the live entity and re-validate the result as a whole."""
        current = self.get(conn, entity_id)
        merged = self._prepare(merge_update(current, changes, _IMMUTABLE_FIELDS))
        try:
            updated = self._repo.update(conn, merged)
        except UniquenessConflictError:
            logger.warning("%s %s update rejected: duplicate %s", self.entity_name, entity_id, self._key(merged))
            raise
        logger.info("Updated %s %s fields=%s", self.entity_name, entity_id, sorted(changes))
        return updated

    def delete(self, conn: sqlite3.Connection, entity_id: str, hard: bool = False) -> None:
        """
        Soft delete (default) hides the row from default queries.
        hard=True removes it physically, whether live or already soft-deleted.
        """
        if hard:
            if not self._repo.hard_delete(conn, entity_id):
                raise NotFoundError(self.entity_name, entity_id)
            logger.info("Hard deleted %s %s", self.entity_name, entity_id)
            return
        self.get(conn, entity_id)
        self._repo.soft_delete_row(conn, entity_id, utcnow())
        logger.info("Soft deleted %s %s", self.entity_name, entity_id)

    def find_deleted(self, conn: sqlite3.Connection) -> list[E]:
        return self._repo.find_deleted(conn)


# ---------- PlayerService ----------


class PlayerService(_LifecycleService[Player]):
    """
    Players have no restore path: once soft-deleted they stay deleted until
    purged, and their sportmonks_id stays reserved.
    """

    entity_name = "Player"

    def __init__(self) -> None:
        super().__init__(PlayerRepository())

    def _prepare(self, player: Player) -> Player:
        player = normalize_player(player)
        ensure_valid(validate_player(player))
        return player

    def list(
        self,
        conn: sqlite3.Connection,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        position: str | None = None,
        nationality: str | None = None,
        include_deleted: bool = False,
    ) -> Page[Player]:
        page, limit, offset = page_window(page, limit)
        items = self._repo.find(
            conn, position=position, nationality=nationality,
            include_deleted=include_deleted, limit=limit, offset=offset,
        )
        total = self._repo.count(conn, position=position, nationality=nationality, include_deleted=include_deleted)
        return Page(items, page, limit, total)

    def find(self, conn: sqlite3.Connection, include_deleted: bool = False, **filters: Any) -> list[Player]:
        return self._repo.find(conn, include_deleted=include_deleted, **filters)

    def search_by_name(self, conn: sqlite3.Connection, term: str) -> list[Player]:
        return self._repo.search_by_name(conn, term)

    def count_by_position(self, conn: sqlite3.Connection) -> dict[str, int]:
        return self._repo.count_by_position(conn)


# ---------- TeamService ----------


class TeamService(_LifecycleService[Team]):
    """
    Teams carry two visibility flags. Soft delete also deactivates;
    deactivate alone keeps the team out of league listings but not deleted.
    activate is the restore path: clears deleted_at and sets is_active.
    """

    entity_name = "Team"

    def __init__(self) -> None:
        super().__init__(TeamRepository())

    def _prepare(self, team: Team) -> Team:
        team = normalize_team(team)
        ensure_valid(validate_team(team))
        return team

    def list(
        self,
        conn: sqlite3.Connection,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        league_id: str | None = None,
        country: str | None = None,
        is_active: bool | None = None,
        include_deleted: bool = False,
    ) -> Page[Team]:
        page, limit, offset = page_window(page, limit)
        items = self._repo.find(
            conn, league_id=league_id, country=country, is_active=is_active,
            include_deleted=include_deleted, limit=limit, offset=offset,
        )
        total = self._repo.count(
            conn, league_id=league_id, country=country, is_active=is_active, include_deleted=include_deleted
        )
        return Page(items, page, limit, total)

    def find(self, conn: sqlite3.Connection, include_deleted: bool = False, **filters: Any) -> list[Team]:
        return self._repo.find(conn, include_deleted=include_deleted, **filters)

    def find_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[Team]:
        return self._repo.find(conn, league_id=league_id, is_active=True)

    def find_inactive(self, conn: sqlite3.Connection) -> list[Team]:
        return self._repo.find_inactive(conn)

    def search_by_name(self, conn: sqlite3.Connection, term: str) -> list[Team]:
        return self._repo.search_by_name(conn, term)

    def activate(self, conn: sqlite3.Connection, team_id: str) -> Team:
        self.get(conn, team_id, include_deleted=True)
        self._repo.set_active(conn, team_id, True, clear_deleted=True)
        logger.info("Activated team %s", team_id)
        return self.get(conn, team_id)

    def deactivate(self, conn: sqlite3.Connection, team_id: str) -> Team:
        self.get(conn, team_id)
        self._repo.set_active(conn, team_id, False)
        logger.info("Deactivated team %s", team_id)
        return self.get(conn, team_id)

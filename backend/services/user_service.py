"""
User accounts: registration, login, profile and subscription updates.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Any

from backend.auth import MIN_PASSWORD_LENGTH, hash_password, verify_password
from backend.errors import NotFoundError, UniquenessConflictError, ValidationError
from backend.models import User, utcnow
from backend.persistence.repositories import UserRepository
from backend.validators import ensure_valid, merge_update, normalize_user, validate_user

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = ("id", "password_hash", "last_login_at", "created_at", "updated_at")


class AuthenticationError(ValueError):
    """Unknown user, inactive account or wrong password."""


class UserService:
    def __init__(self) -> None:
        self._user_repo = UserRepository()

    def _prepare(self, user: User, now: datetime | None = None) -> User:
        user = normalize_user(user)
        ensure_valid(validate_user(user, now))
        return user

    def register(
        self,
        conn: sqlite3.Connection,
        email: str,
        username: str,
        password: str,
        **profile: Any,
    ) -> User:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError([f"Password must be at least {MIN_PASSWORD_LENGTH} characters"])
        user = self._prepare(User(email=email, username=username, password_hash=hash_password(password), **profile))
        try:
            created = self._user_repo.create(conn, user)
        except UniquenessConflictError as exc:
            logger.warning("Registration rejected: duplicate %s", exc.key)
            raise
        logger.info("Registered user %s (%s)", created.id, created.username)
        return created

    def authenticate(self, conn: sqlite3.Connection, login: str, password: str) -> User:
        """Login by username or email. Stamps last_login_at on success."""
        user = self._user_repo.get_by_email(conn, login) if "@" in login else self._user_repo.get_by_username(conn, login)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login for %s", login)
            raise AuthenticationError("Invalid username or password")
        return self.update_last_login(conn, user.id)

    def update_last_login(self, conn: sqlite3.Connection, user_id: str) -> User:
        """Touches only last_login_at; does not re-validate the rest of the record."""
        now = utcnow()
        self._user_repo.touch_last_login(conn, user_id, now)
        return self.get(conn, user_id)

    def get(self, conn: sqlite3.Connection, user_id: str) -> User:
        user = self._user_repo.get(conn, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User:
        user = self._user_repo.get_by_username(conn, username)
        if user is None:
            raise NotFoundError("User", username)
        return user

    def update(
        self, conn: sqlite3.Connection, user_id: str, changes: dict[str, Any], now: datetime | None = None
    ) -> User:
        merged = self._prepare(merge_update(self.get(conn, user_id), changes, _IMMUTABLE_FIELDS), now)
        try:
            updated = self._user_repo.update(conn, merged)
        except UniquenessConflictError as exc:
            logger.warning("User %s update rejected: duplicate %s", user_id, exc.key)
            raise
        logger.info("Updated user %s fields=%s", user_id, sorted(changes))
        return updated

    def change_password(self, conn: sqlite3.Connection, user_id: str, old: str, new: str) -> None:
        user = self.get(conn, user_id)
        if not verify_password(old, user.password_hash):
            raise AuthenticationError("Invalid username or password")
        if len(new) < MIN_PASSWORD_LENGTH:
            raise ValidationError([f"Password must be at least {MIN_PASSWORD_LENGTH} characters"])
        self._user_repo.update(conn, replace(user, password_hash=hash_password(new)))
        logger.info("Password changed for user %s", user_id)

    def leaderboard(self, conn: sqlite3.Connection, limit: int = 10) -> list[User]:
        return self._user_repo.leaderboard(conn, limit)

    def find_active_subscribers(self, conn: sqlite3.Connection, now: datetime | None = None) -> list[User]:
        return self._user_repo.find_active_subscribers(conn, now)

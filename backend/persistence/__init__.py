"""
Persistence layer for fantasy data.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db, set_db_path, write_transaction
from .repositories import (
    FantasyTeamRepository,
    LeagueRepository,
    MatchRepository,
    PlayerRepository,
    PlayerStatsRepository,
    SeasonRepository,
    TeamRepository,
    UserRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "write_transaction",
    "FantasyTeamRepository",
    "LeagueRepository",
    "MatchRepository",
    "PlayerRepository",
    "PlayerStatsRepository",
    "SeasonRepository",
    "TeamRepository",
    "UserRepository",
]

"""
Service layer: validation, state machines and squad rules over the repositories.
Services take a connection per call; they never open or close one.
"""
from .fantasy_service import FantasyService
from .lifecycle_service import Page, PlayerService, TeamService
from .match_service import MatchService
from .season_service import LeagueService, SeasonService, apply_date_transition
from .stats_service import StatsService
from .user_service import AuthenticationError, UserService

__all__ = [
    "FantasyService",
    "Page",
    "PlayerService",
    "TeamService",
    "MatchService",
    "LeagueService",
    "SeasonService",
    "apply_date_transition",
    "StatsService",
    "AuthenticationError",
    "UserService",
]

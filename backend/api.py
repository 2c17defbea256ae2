"""
REST API for the fantasy soccer backend.
Thin wrappers around services and persistence.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from datetime import date, datetime
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from backend import config
from backend.auth import MIN_PASSWORD_LENGTH, create_access_token, decode_token
from backend.errors import BusinessRuleError, NotFoundError, UniquenessConflictError, ValidationError
from backend.models import League, Match, Player, Season, Team, TeamScore, UserRole
from backend.persistence import get_connection, init_db
from backend.persistence.db import get_db_path
from backend.services import (
    AuthenticationError,
    FantasyService,
    LeagueService,
    MatchService,
    PlayerService,
    SeasonService,
    StatsService,
    TeamService,
    UserService,
)
from backend.services.stats_service import new_stats

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config.configure_logging()
    init_db(db_path=get_db_path())
    logger.info("API ready, database at %s", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="Fantasy Soccer API",
    description="Players, teams, seasons, matches and fantasy squads",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

players = PlayerService()
teams = TeamService()
leagues = LeagueService()
seasons = SeasonService()
matches = MatchService()
fantasy = FantasyService()
stats = StatsService()
users = UserService()


# ---------- Error mapping ----------


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(UniquenessConflictError)
async def _conflict_error(request: Request, exc: UniquenessConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found_error(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(BusinessRuleError)
async def _business_rule_error(request: Request, exc: BusinessRuleError) -> JSONResponse:
    return JSONResponse(
        status_code=400, content={"detail": str(exc), "error": type(exc).__name__}
    )


@app.exception_handler(AuthenticationError)
async def _authentication_error(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": str(exc)})


# ---------- Auth dependencies ----------

security = HTTPBearer(auto_error=False)


def _get_claims(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> dict[str, Any]:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Login required")
    claims = decode_token(credentials.credentials)
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return claims


def _get_current_user_id(claims: dict[str, Any] = Depends(_get_claims)) -> str:
    return claims["sub"]


def _require_admin(claims: dict[str, Any] = Depends(_get_claims)) -> str:
    if claims.get("role") != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Admin role required")
    return claims["sub"]


def _listing(items: list[Any]) -> dict[str, Any]:
    return {"data": [i.to_dict() for i in items]}


# ---------- Request models ----------


class SignupRequest(BaseModel):
    email: str = Field(..., max_length=255)
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    first_name: str | None = None
    last_name: str | None = None
    country: str | None = None
    timezone: str | None = None


class LoginRequest(BaseModel):
    login: str = Field(..., description="Username or email")
    password: str


class UserUpdateRequest(BaseModel):
    email: str | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    country: str | None = None
    timezone: str | None = None
    subscription_tier: str | None = None
    subscription_expires_at: datetime | None = None


class PlayerRequest(BaseModel):
    sportmonks_id: int
    name: str
    first_name: str
    last_name: str
    display_name: str | None = None
    common_name: str | None = None
    date_of_birth: date | None = None
    nationality: str | None = None
    position: str | None = None
    detailed_position: str | None = None
    height: int | None = None
    weight: int | None = None
    image_url: str | None = None


class PlayerUpdateRequest(BaseModel):
    sportmonks_id: int | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    common_name: str | None = None
    date_of_birth: date | None = None
    nationality: str | None = None
    position: str | None = None
    detailed_position: str | None = None
    height: int | None = None
    weight: int | None = None
    image_url: str | None = None


class TeamRequest(BaseModel):
    sportmonks_id: int
    name: str
    short_code: str | None = None
    logo_url: str | None = None
    founded_year: int | None = None
    country: str | None = None
    city: str | None = None
    venue: str | None = None
    league_id: str | None = None


class TeamUpdateRequest(BaseModel):
    sportmonks_id: int | None = None
    name: str | None = None
    short_code: str | None = None
    logo_url: str | None = None
    founded_year: int | None = None
    country: str | None = None
    city: str | None = None
    venue: str | None = None
    league_id: str | None = None


class LeagueRequest(BaseModel):
    sportmonks_id: int
    name: str
    type: str
    short_name: str | None = None
    country: str | None = None
    logo_url: str | None = None
    tier: int | None = None
    is_active: bool = True
    has_standings: bool = True


class SeasonRequest(BaseModel):
    sportmonks_id: int
    name: str
    league_id: str
    start_date: datetime
    end_date: datetime
    total_gameweeks: int
    current_gameweek: int = 1
    is_fantasy_active: bool = False
    transfer_deadline: datetime | None = None


class TransferDeadlineRequest(BaseModel):
    transfer_deadline: datetime


class MatchRequest(BaseModel):
    sportmonks_id: int
    season_id: str
    league_id: str
    gameweek: int
    kickoff_time: datetime
    home_team_id: str
    away_team_id: str
    venue: str | None = None
    referee: str | None = None
    attendance: int | None = None
    is_fantasy_relevant: bool = True


class ScoreRequest(BaseModel):
    home_goals: int = Field(..., ge=0)
    away_goals: int = Field(..., ge=0)


class FantasyTeamRequest(BaseModel):
    season_id: str
    name: str
    is_public: bool = False


class AddPlayerRequest(BaseModel):
    player_id: str
    price: float | None = Field(None, ge=0, description="Defaults to the player's current price")
    is_starting: bool = True


class SelectPlayerRequest(BaseModel):
    player_id: str


class StatsRequest(BaseModel):
    player_id: str
    season_id: str
    team_id: str | None = None
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


class PerformanceUpdateRequest(BaseModel):
    appearances: int | None = None
    starts: int | None = None
    minutes_played: int | None = None
    goals: int | None = None
    assists: int | None = None
    yellow_cards: int | None = None
    red_cards: int | None = None
    clean_sheets: int | None = None
    saves: int | None = None
    penalties_saved: int | None = None
    penalties_missed: int | None = None
    own_goals: int | None = None


# ---------- Users ----------


@app.post("/signup", status_code=201)
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create account. Passwords hashed, never stored plain."""
    with db_conn() as conn:
        profile = req.model_dump(exclude={"email", "username", "password"}, exclude_none=True)
        user = users.register(conn, req.email, req.username, req.password, **profile)
        token = create_access_token(user.id, role=user.role)
        return {"user": user.to_dict(), "token": token}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    """Returns a JWT bearer token."""
    with db_conn() as conn:
        user = users.authenticate(conn, req.login, req.password)
        token = create_access_token(user.id, role=user.role)
        return {"user_id": user.id, "username": user.username, "token": token}


@app.get("/me")
def get_me(user_id: str = Depends(_get_current_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        return users.get(conn, user_id).to_dict()


@app.patch("/me")
def update_me(req: UserUpdateRequest, user_id: str = Depends(_get_current_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        return users.update(conn, user_id, req.model_dump(exclude_unset=True)).to_dict()


@app.get("/users/leaderboard")
def user_leaderboard(limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    with db_conn() as conn:
        return {
            "data": [
                {"username": u.username, "total_points": u.total_points, "avatar_url": u.avatar_url}
                for u in users.leaderboard(conn, limit)
            ]
        }


# ---------- Players ----------


@app.get("/players")
def list_players(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    position: str | None = None,
    nationality: str | None = None,
    include_deleted: bool = False,
) -> dict[str, Any]:
    with db_conn() as conn:
        return players.list(
            conn, page=page, limit=limit, position=position,
            nationality=nationality, include_deleted=include_deleted,
        ).to_dict()


@app.get("/players/search")
def search_players(q: str = Query(..., min_length=1)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(players.search_by_name(conn, q))


@app.get("/players/deleted")
def list_deleted_players(_: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(players.find_deleted(conn))


@app.get("/players/{player_id}")
def get_player(player_id: str, include_deleted: bool = False) -> dict[str, Any]:
    with db_conn() as conn:
        return players.get(conn, player_id, include_deleted=include_deleted).to_dict()


@app.post("/players", status_code=201)
def create_player(req: PlayerRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return players.create(conn, Player(**req.model_dump())).to_dict()


@app.post("/players/bulk", status_code=201)
def create_players(req: list[PlayerRequest], _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(players.create_many(conn, [Player(**r.model_dump()) for r in req]))


@app.patch("/players/{player_id}")
def update_player(player_id: str, req: PlayerUpdateRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return players.update(conn, player_id, req.model_dump(exclude_unset=True)).to_dict()


@app.delete("/players/{player_id}", status_code=204)
def delete_player(player_id: str, hard: bool = False, _: str = Depends(_require_admin)) -> None:
    with db_conn() as conn:
        players.delete(conn, player_id, hard=hard)


# ---------- Teams ----------


@app.get("/teams")
def list_teams(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    league_id: str | None = None,
    country: str | None = None,
    is_active: bool | None = None,
    include_deleted: bool = False,
) -> dict[str, Any]:
    with db_conn() as conn:
        return teams.list(
            conn, page=page, limit=limit, league_id=league_id, country=country,
            is_active=is_active, include_deleted=include_deleted,
        ).to_dict()


@app.get("/teams/search")
def search_teams(q: str = Query(..., min_length=1)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(teams.search_by_name(conn, q))


@app.get("/teams/inactive")
def list_inactive_teams() -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(teams.find_inactive(conn))


@app.get("/teams/deleted")
def list_deleted_teams(_: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(teams.find_deleted(conn))


@app.get("/teams/{team_id}")
def get_team(team_id: str, include_deleted: bool = False) -> dict[str, Any]:
    with db_conn() as conn:
        return teams.get(conn, team_id, include_deleted=include_deleted).to_dict()


@app.post("/teams", status_code=201)
def create_team(req: TeamRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return teams.create(conn, Team(**req.model_dump())).to_dict()


@app.patch("/teams/{team_id}")
def update_team(team_id: str, req: TeamUpdateRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return teams.update(conn, team_id, req.model_dump(exclude_unset=True)).to_dict()


@app.post("/teams/{team_id}/activate")
def activate_team(team_id: str, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return teams.activate(conn, team_id).to_dict()


@app.post("/teams/{team_id}/deactivate")
def deactivate_team(team_id: str, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return teams.deactivate(conn, team_id).to_dict()


@app.delete("/teams/{team_id}", status_code=204)
def delete_team(team_id: str, hard: bool = False, _: str = Depends(_require_admin)) -> None:
    with db_conn() as conn:
        teams.delete(conn, team_id, hard=hard)


# ---------- Leagues & seasons ----------


@app.get("/leagues")
def list_leagues(
    type: str | None = None, country: str | None = None, tier: int | None = None
) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(leagues.find(conn, type=type, country=country, tier=tier))


@app.post("/leagues", status_code=201)
def create_league(req: LeagueRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return leagues.create(conn, League(**req.model_dump())).to_dict()


@app.get("/leagues/{league_id}")
def get_league(league_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return leagues.get(conn, league_id).to_dict()


@app.get("/leagues/{league_id}/teams")
def list_league_teams(league_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(teams.find_by_league(conn, league_id))


@app.get("/leagues/{league_id}/seasons")
def list_league_seasons(league_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(seasons.find_by_league(conn, league_id))


@app.post("/seasons", status_code=201)
def create_season(req: SeasonRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return seasons.create(conn, Season(**req.model_dump())).to_dict()


@app.get("/seasons/current")
def get_current_season() -> dict[str, Any]:
    with db_conn() as conn:
        season = seasons.find_current(conn)
        if season is None:
            raise HTTPException(status_code=404, detail="No active season")
        return season.to_dict()


@app.get("/seasons/{season_id}")
def get_season(season_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return seasons.get(conn, season_id).to_dict()


_SEASON_ACTIONS = {
    "activate": SeasonService.activate_season,
    "complete": SeasonService.complete_season,
    "cancel": SeasonService.cancel_season,
    "advance-gameweek": SeasonService.advance_gameweek,
}


@app.post("/seasons/{season_id}/{action}")
def season_action(season_id: str, action: str, _: str = Depends(_require_admin)) -> dict[str, Any]:
    handler = _SEASON_ACTIONS.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown season action: {action}")
    with db_conn() as conn:
        return handler(seasons, conn, season_id).to_dict()


@app.put("/seasons/{season_id}/transfer-deadline")
def set_transfer_deadline(
    season_id: str, req: TransferDeadlineRequest, _: str = Depends(_require_admin)
) -> dict[str, Any]:
    with db_conn() as conn:
        return seasons.set_transfer_deadline(conn, season_id, req.transfer_deadline).to_dict()


@app.get("/seasons/{season_id}/leaderboard")
def season_leaderboard(season_id: str, limit: int = Query(default=100, ge=1, le=500)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(fantasy.leaderboard(conn, season_id, limit))


@app.get("/seasons/{season_id}/stats/{board}")
def season_stats(season_id: str, board: str, limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    boards = {
        "top-scorers": stats.top_scorers,
        "top-fantasy": stats.top_fantasy_performers,
        "best-value": stats.best_value,
    }
    if board not in boards:
        raise HTTPException(status_code=404, detail=f"Unknown stats board: {board}")
    with db_conn() as conn:
        return _listing(boards[board](conn, season_id, limit))


# ---------- Matches ----------


@app.get("/matches")
def list_matches(
    season_id: str | None = None,
    gameweek: int | None = Query(default=None, ge=1),
    team_id: str | None = None,
) -> dict[str, Any]:
    with db_conn() as conn:
        if team_id:
            return _listing(matches.find_by_team(conn, team_id, season_id))
        if season_id and gameweek:
            return _listing(matches.find_by_gameweek(conn, season_id, gameweek))
        raise HTTPException(status_code=400, detail="Filter by team_id, or by season_id and gameweek")


@app.get("/matches/live")
def list_live_matches() -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(matches.find_live(conn))


@app.get("/matches/upcoming")
def list_upcoming_matches(limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(matches.find_upcoming(conn, limit))


@app.get("/matches/recent")
def list_recent_matches(limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(matches.find_recent(conn, limit))


@app.post("/matches", status_code=201)
def create_match(req: MatchRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        data = req.model_dump()
        match = Match(
            **data,
            home_score=TeamScore(team_id=req.home_team_id),
            away_score=TeamScore(team_id=req.away_team_id),
        )
        return matches.create(conn, match).to_dict()


@app.get("/matches/{match_id}")
def get_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return matches.get(conn, match_id).to_dict()


_MATCH_ACTIONS = {
    "start": MatchService.start_match,
    "halftime": MatchService.halftime,
    "resume": MatchService.resume,
    "finish": MatchService.finish_match,
    "postpone": MatchService.postpone_match,
    "suspend": MatchService.suspend_match,
    "cancel": MatchService.cancel_match,
}


@app.post("/matches/{match_id}/{action}")
def match_action(match_id: str, action: str, _: str = Depends(_require_admin)) -> dict[str, Any]:
    handler = _MATCH_ACTIONS.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown match action: {action}")
    with db_conn() as conn:
        return handler(matches, conn, match_id).to_dict()


@app.put("/matches/{match_id}/score")
def update_match_score(match_id: str, req: ScoreRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        return matches.update_score(conn, match_id, req.home_goals, req.away_goals).to_dict()


# ---------- Player stats ----------


@app.post("/stats", status_code=201)
def create_stats(req: StatsRequest, _: str = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        performance = req.model_dump(exclude={"player_id", "season_id", "team_id"})
        return stats.create(conn, new_stats(req.player_id, req.season_id, req.team_id, **performance)).to_dict()


@app.get("/stats/{stats_id}")
def get_stats(stats_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return stats.get(conn, stats_id).to_dict()


@app.patch("/stats/{stats_id}/performance")
def update_performance(
    stats_id: str, req: PerformanceUpdateRequest, _: str = Depends(_require_admin)
) -> dict[str, Any]:
    with db_conn() as conn:
        return stats.update_performance(conn, stats_id, req.model_dump(exclude_unset=True)).to_dict()


# ---------- Fantasy teams ----------


def _owned_team(conn: Any, team_id: str, user_id: str) -> None:
    if fantasy.get(conn, team_id).user_id != user_id:
        raise HTTPException(status_code=403, detail="Not your team")


@app.post("/fantasy-teams", status_code=201)
def create_fantasy_team(req: FantasyTeamRequest, user_id: str = Depends(_get_current_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        seasons.get(conn, req.season_id)
        return fantasy.create_team(conn, user_id, req.season_id, req.name, is_public=req.is_public).to_dict()


@app.get("/me/fantasy-teams")
def list_my_fantasy_teams(user_id: str = Depends(_get_current_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        return _listing(fantasy.find_by_user(conn, user_id))


@app.get("/fantasy-teams/{team_id}")
def get_fantasy_team(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return fantasy.get(conn, team_id).to_dict()


@app.get("/fantasy-teams/{team_id}/composition")
def get_composition(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        problems = fantasy.check_composition(conn, team_id)
        return {"valid": not problems, "problems": problems}


@app.post("/fantasy-teams/{team_id}/players")
def add_squad_player(
    team_id: str, req: AddPlayerRequest, user_id: str = Depends(_get_current_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        _owned_team(conn, team_id, user_id)
        return fantasy.add_player(conn, team_id, req.player_id, req.price, req.is_starting).to_dict()


@app.delete("/fantasy-teams/{team_id}/players/{player_id}")
def remove_squad_player(
    team_id: str, player_id: str, user_id: str = Depends(_get_current_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        _owned_team(conn, team_id, user_id)
        return fantasy.remove_player(conn, team_id, player_id).to_dict()


@app.put("/fantasy-teams/{team_id}/captain")
def set_captain(
    team_id: str, req: SelectPlayerRequest, user_id: str = Depends(_get_current_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        _owned_team(conn, team_id, user_id)
        return fantasy.set_captain(conn, team_id, req.player_id).to_dict()


@app.put("/fantasy-teams/{team_id}/vice-captain")
def set_vice_captain(
    team_id: str, req: SelectPlayerRequest, user_id: str = Depends(_get_current_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        _owned_team(conn, team_id, user_id)
        return fantasy.set_vice_captain(conn, team_id, req.player_id).to_dict()

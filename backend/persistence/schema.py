"""
SQLite schema for fantasy soccer entities.
Migration-friendly: each table created with IF NOT EXISTS.

Unique keys live in unique indexes so the database, not application code,
decides which of several concurrent inserts wins. Embedded value objects
(TeamScore, PlayerSelection, PerformanceStats, FantasyStats) are JSON columns.
"""
from __future__ import annotations


def players_schema() -> str:
    """sportmonks_id is unique across live and soft-deleted rows."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        sportmonks_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        display_name TEXT,
        common_name TEXT,
        date_of_birth TEXT,
        nationality TEXT,
        position TEXT,
        detailed_position TEXT,
        height INTEGER,
        weight INTEGER,
        image_url TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        deleted_at TEXT
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_players_sportmonks ON players(sportmonks_id);
    CREATE INDEX IF NOT EXISTS ix_players_position ON players(position);
    CREATE INDEX IF NOT EXISTS ix_players_nationality ON players(nationality);
    CREATE INDEX IF NOT EXISTS ix_players_deleted_at ON players(deleted_at);
    CREATE INDEX IF NOT EXISTS ix_players_name ON players(name);
    """


def teams_schema() -> str:
    """Real-world clubs. is_active and deleted_at are independent flags."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        sportmonks_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        short_code TEXT,
        logo_url TEXT,
        founded_year INTEGER,
        country TEXT,
        city TEXT,
        venue TEXT,
        league_id TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        deleted_at TEXT
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_teams_sportmonks ON teams(sportmonks_id);
    CREATE INDEX IF NOT EXISTS ix_teams_league_active ON teams(league_id, is_active);
    CREATE INDEX IF NOT EXISTS ix_teams_country_league ON teams(country, league_id);
    CREATE INDEX IF NOT EXISTS ix_teams_deleted_at ON teams(deleted_at);
    """


def leagues_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id TEXT PRIMARY KEY,
        sportmonks_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        short_name TEXT,
        type TEXT NOT NULL,
        country TEXT,
        logo_url TEXT,
        tier INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        has_standings INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_leagues_sportmonks ON leagues(sportmonks_id);
    CREATE INDEX IF NOT EXISTS ix_leagues_country_type ON leagues(country, type);
    CREATE INDEX IF NOT EXISTS ix_leagues_tier_country ON leagues(tier, country);
    CREATE INDEX IF NOT EXISTS ix_leagues_active_type ON leagues(is_active, type);
    """


def seasons_schema() -> str:
    """Status: upcoming | active | completed | cancelled."""
    return """
    CREATE TABLE IF NOT EXISTS seasons (
        id TEXT PRIMARY KEY,
        sportmonks_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        league_id TEXT NOT NULL,
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        current_gameweek INTEGER NOT NULL DEFAULT 1,
        total_gameweeks INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'upcoming',
        is_fantasy_active INTEGER NOT NULL DEFAULT 0,
        transfer_deadline TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_seasons_sportmonks ON seasons(sportmonks_id);
    CREATE INDEX IF NOT EXISTS ix_seasons_league_start ON seasons(league_id, start_date);
    CREATE INDEX IF NOT EXISTS ix_seasons_status_fantasy ON seasons(status, is_fantasy_active);
    CREATE INDEX IF NOT EXISTS ix_seasons_dates ON seasons(start_date, end_date);
    """


def matches_schema() -> str:
    """home_score / away_score hold TeamScore JSON."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        sportmonks_id INTEGER NOT NULL,
        season_id TEXT NOT NULL,
        league_id TEXT NOT NULL,
        gameweek INTEGER NOT NULL,
        kickoff_time TEXT NOT NULL,
        home_team_id TEXT NOT NULL,
        away_team_id TEXT NOT NULL,
        home_score TEXT,
        away_score TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        result TEXT,
        current_minute INTEGER,
        venue TEXT,
        referee TEXT,
        attendance INTEGER,
        is_fantasy_relevant INTEGER NOT NULL DEFAULT 1,
        last_updated TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_matches_sportmonks ON matches(sportmonks_id);
    CREATE INDEX IF NOT EXISTS ix_matches_season_gameweek ON matches(season_id, gameweek);
    CREATE INDEX IF NOT EXISTS ix_matches_league_kickoff ON matches(league_id, kickoff_time);
    CREATE INDEX IF NOT EXISTS ix_matches_teams_kickoff ON matches(home_team_id, away_team_id, kickoff_time);
    CREATE INDEX IF NOT EXISTS ix_matches_status_kickoff ON matches(status, kickoff_time);
    """


def users_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        username TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        first_name TEXT,
        last_name TEXT,
        avatar_url TEXT,
        role TEXT NOT NULL DEFAULT 'user',
        subscription_tier TEXT NOT NULL DEFAULT 'free',
        subscription_expires_at TEXT,
        total_points INTEGER NOT NULL DEFAULT 0,
        seasons_played INTEGER NOT NULL DEFAULT 0,
        country TEXT,
        timezone TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        email_verified INTEGER NOT NULL DEFAULT 0,
        last_login_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_users_email ON users(email);
    CREATE UNIQUE INDEX IF NOT EXISTS ux_users_username ON users(username);
    CREATE INDEX IF NOT EXISTS ix_users_role_active ON users(role, is_active);
    CREATE INDEX IF NOT EXISTS ix_users_total_points ON users(total_points);
    """


def fantasy_teams_schema() -> str:
    """One team per user per season. players holds the PlayerSelection list as JSON."""
    return """
    CREATE TABLE IF NOT EXISTS fantasy_teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        user_id TEXT NOT NULL,
        season_id TEXT NOT NULL,
        players TEXT NOT NULL DEFAULT '[]',
        budget REAL NOT NULL,
        remaining_budget REAL NOT NULL,
        total_value REAL NOT NULL DEFAULT 0,
        total_points INTEGER NOT NULL DEFAULT 0,
        gameweek_points INTEGER NOT NULL DEFAULT 0,
        rank INTEGER NOT NULL DEFAULT 0,
        free_transfers INTEGER NOT NULL DEFAULT 1,
        used_transfers INTEGER NOT NULL DEFAULT 0,
        transfer_cost REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'active',
        is_public INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_fantasy_teams_user_season ON fantasy_teams(user_id, season_id);
    CREATE INDEX IF NOT EXISTS ix_fantasy_teams_season_points ON fantasy_teams(season_id, total_points);
    CREATE INDEX IF NOT EXISTS ix_fantasy_teams_public_points ON fantasy_teams(is_public, total_points);
    """


def player_stats_schema() -> str:
    """One row per (player, season). performance / fantasy hold JSON value objects."""
    return """
    CREATE TABLE IF NOT EXISTS player_stats (
        id TEXT PRIMARY KEY,
        player_id TEXT NOT NULL,
        season_id TEXT NOT NULL,
        team_id TEXT,
        gameweek INTEGER,
        performance TEXT NOT NULL,
        fantasy TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        last_updated TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_player_stats_player_season ON player_stats(player_id, season_id);
    CREATE INDEX IF NOT EXISTS ix_player_stats_team_season ON player_stats(team_id, season_id);
    CREATE INDEX IF NOT EXISTS ix_player_stats_season ON player_stats(season_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution."""
    return "\n".join([
        leagues_schema(),
        teams_schema(),
        players_schema(),
        seasons_schema(),
        matches_schema(),
        users_schema(),
        fantasy_teams_schema(),
        player_stats_schema(),
    ])

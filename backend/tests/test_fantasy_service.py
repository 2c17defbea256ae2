"""
Tests for FantasyService: one team per user per season, persisted squad
operations, transfer-window gating, serialization of concurrent changes.
"""
from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from backend.errors import (
    InsufficientBudgetError,
    NotFoundError,
    SquadFullError,
    TransferWindowClosedError,
    UniquenessConflictError,
    ValidationError,
)
from backend.models import FantasyStats, PlayerPosition
from backend.persistence.db import get_connection
from backend.services import FantasyService, PlayerService, SeasonService, StatsService
from factories import make_player, make_player_stats, make_season


@pytest.fixture
def fantasy():
    return FantasyService()


@pytest.fixture
def season(db_conn):
    return SeasonService().create(db_conn, make_season())


@pytest.fixture
def squad_players(db_conn):
    return PlayerService().create_many(db_conn, [make_player() for _ in range(16)])


@pytest.fixture
def team(db_conn, fantasy, season):
    return fantasy.create_team(db_conn, "user-1", season.id, "Dream Team")


# ---------- Teams ----------


def test_create_team_starts_with_full_budget(team):
    assert team.budget == 100.0
    assert team.remaining_budget == 100.0
    assert team.players == []


def test_one_team_per_user_per_season(db_conn, fantasy, season, team):
    with pytest.raises(UniquenessConflictError):
        fantasy.create_team(db_conn, "user-1", season.id, "Second Team")
    other = fantasy.create_team(db_conn, "user-2", season.id, "Rival Team")
    assert other.id != team.id


def test_create_team_validates_name(db_conn, fantasy, season):
    with pytest.raises(ValidationError):
        fantasy.create_team(db_conn, "user-1", season.id, "ab")


def test_update_cannot_touch_squad_or_budget(db_conn, fantasy, team):
    with pytest.raises(ValidationError):
        fantasy.update(db_conn, team.id, {"remaining_budget": 500.0})
    assert fantasy.update(db_conn, team.id, {"name": "Renamed XI"}).name == "Renamed XI"


# ---------- Squad ----------


def test_add_player_uses_listed_price(db_conn, fantasy, season, team, squad_players):
    p = squad_players[0]
    stats = make_player_stats(p.id, season.id)
    stats.fantasy = FantasyStats(current_price=9.5)
    StatsService().create(db_conn, stats)

    updated = fantasy.add_player(db_conn, team.id, p.id)
    assert updated.players[0].purchase_price == 9.5
    assert updated.remaining_budget == pytest.approx(90.5)


def test_add_player_defaults_to_starting_price(db_conn, fantasy, team, squad_players):
    updated = fantasy.add_player(db_conn, team.id, squad_players[0].id)
    assert updated.players[0].purchase_price == 4.0


def test_squad_persists_across_reads(db_conn, fantasy, team, squad_players):
    fantasy.add_player(db_conn, team.id, squad_players[0].id, price=5.0)
    fantasy.add_player(db_conn, team.id, squad_players[1].id, price=7.5)
    fantasy.set_captain(db_conn, team.id, squad_players[1].id)
    fantasy.remove_player(db_conn, team.id, squad_players[0].id)

    stored = fantasy.get(db_conn, team.id)
    assert [p.player_id for p in stored.players] == [squad_players[1].id]
    assert stored.captain.player_id == squad_players[1].id
    assert stored.total_value == pytest.approx(7.5)
    assert stored.remaining_budget + stored.total_value == pytest.approx(stored.budget)


def test_sixteenth_add_rejected_and_squad_unchanged(db_conn, fantasy, team, squad_players):
    for p in squad_players[:15]:
        fantasy.add_player(db_conn, team.id, p.id, price=5.0)
    with pytest.raises(SquadFullError):
        fantasy.add_player(db_conn, team.id, squad_players[15].id, price=5.0)
    stored = fantasy.get(db_conn, team.id)
    assert stored.squad_count == 15
    assert stored.remaining_budget == pytest.approx(25.0)


def test_insufficient_budget(db_conn, fantasy, team, squad_players):
    with pytest.raises(InsufficientBudgetError):
        fantasy.add_player(db_conn, team.id, squad_players[0].id, price=100.5)
    assert fantasy.get(db_conn, team.id).players == []


def test_unknown_or_deleted_player_rejected(db_conn, fantasy, team, squad_players):
    with pytest.raises(NotFoundError):
        fantasy.add_player(db_conn, team.id, "ghost")
    PlayerService().delete(db_conn, squad_players[0].id)
    with pytest.raises(NotFoundError):
        fantasy.add_player(db_conn, team.id, squad_players[0].id)


def test_window_closed_after_season_completes(db_conn, fantasy, season, team, squad_players):
    seasons = SeasonService()
    seasons.activate_season(db_conn, season.id)
    seasons.complete_season(db_conn, season.id)
    with pytest.raises(TransferWindowClosedError):
        fantasy.add_player(db_conn, team.id, squad_players[0].id)


def test_window_closed_after_deadline(db_conn, fantasy, season, team, squad_players):
    deadline = season.start_date + timedelta(days=1)
    SeasonService().set_transfer_deadline(db_conn, season.id, deadline)
    fantasy.add_player(db_conn, team.id, squad_players[0].id, now=deadline)
    with pytest.raises(TransferWindowClosedError):
        fantasy.add_player(db_conn, team.id, squad_players[1].id, now=deadline + timedelta(minutes=1))
    assert fantasy.get(db_conn, team.id).squad_count == 1


def test_concurrent_adds_do_not_lose_updates(db_path, db_conn, fantasy, team, squad_players):
    barrier = threading.Barrier(4)
    errors = []

    def add(player_id):
        conn = get_connection(db_path)
        try:
            barrier.wait()
            fantasy.add_player(conn, team.id, player_id, price=5.0)
        except Exception as exc:  # collected for the assertion below
            errors.append(exc)
        finally:
            conn.close()

    threads = [threading.Thread(target=add, args=(p.id,)) for p in squad_players[:4]]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    stored = fantasy.get(db_conn, team.id)
    assert stored.squad_count == 4
    assert stored.remaining_budget == pytest.approx(80.0)


def test_composition_report(db_conn, fantasy, team):
    players = PlayerService()
    gk = players.create(db_conn, make_player(position=PlayerPosition.GOALKEEPER.value))
    fantasy.add_player(db_conn, team.id, gk.id, price=4.5)
    problems = fantasy.check_composition(db_conn, team.id)
    assert "Squad must have between 11 and 15 players (has 1)" in problems
    assert not any("Goalkeepers" in p for p in problems)


# ---------- Leaderboard ----------


def test_leaderboard_and_ranks(db_conn, fantasy, season):
    a = fantasy.create_team(db_conn, "u-a", season.id, "Alpha")
    b = fantasy.create_team(db_conn, "u-b", season.id, "Bravo")
    c = fantasy.create_team(db_conn, "u-c", season.id, "Charlie")
    fantasy.update(db_conn, a.id, {"total_points": 40})
    fantasy.update(db_conn, b.id, {"total_points": 75})
    fantasy.update(db_conn, c.id, {"total_points": 40})

    assert [t.name for t in fantasy.leaderboard(db_conn, season.id)] == ["Bravo", "Alpha", "Charlie"]
    assert fantasy.update_ranks(db_conn, season.id) == 3
    assert fantasy.get(db_conn, b.id).rank == 1
    assert fantasy.get(db_conn, a.id).rank == 2
    assert fantasy.get(db_conn, c.id).rank == 3


def test_delete_team(db_conn, fantasy, team):
    fantasy.delete(db_conn, team.id)
    with pytest.raises(NotFoundError):
        fantasy.get(db_conn, team.id)

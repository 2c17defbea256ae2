"""
Tests for StatsService: derived fantasy points, corrections, leaderboards.
"""
from __future__ import annotations

import pytest

from backend.errors import NotFoundError, UniquenessConflictError, ValidationError
from backend.services import StatsService
from backend.services.stats_service import new_stats
from factories import make_player_stats


@pytest.fixture
def stats():
    return StatsService()


def test_create_computes_fantasy_points(db_conn, stats):
    created = stats.create(db_conn, make_player_stats("p1", "s1", appearances=1, minutes_played=90, goals=2))
    assert created.fantasy.fantasy_points == 11
    stored = stats.get_for_player(db_conn, "p1", "s1")
    assert stored.fantasy.fantasy_points == 11
    assert stored.performance.goals == 2


def test_supplied_fantasy_points_are_overwritten(db_conn, stats):
    s = make_player_stats("p1", "s1", appearances=1, minutes_played=30)
    s.fantasy.fantasy_points = 99
    assert stats.create(db_conn, s).fantasy.fantasy_points == 2


def test_one_record_per_player_and_season(db_conn, stats):
    stats.create(db_conn, make_player_stats("p1", "s1"))
    with pytest.raises(UniquenessConflictError):
        stats.create(db_conn, make_player_stats("p1", "s1"))
    stats.create(db_conn, make_player_stats("p1", "s2"))
    assert len(stats.find_by_player(db_conn, "p1")) == 2


def test_negative_counts_rejected(db_conn, stats):
    with pytest.raises(ValidationError):
        stats.create(db_conn, make_player_stats("p1", "s1", goals=-1))


def test_correction_recomputes_points(db_conn, stats):
    created = stats.create(db_conn, make_player_stats("p1", "s1", appearances=1, minutes_played=90, goals=2))
    corrected = stats.update_performance(db_conn, created.id, {"goals": 1, "assists": 1})
    assert corrected.fantasy.fantasy_points == 1 + 2 + 4 + 3
    assert stats.get(db_conn, created.id).fantasy.fantasy_points == 10


def test_market_update_keeps_points_derived(db_conn, stats):
    created = stats.create(db_conn, make_player_stats("p1", "s1", appearances=1, minutes_played=90))
    updated = stats.update_market(db_conn, created.id, {"current_price": 6.5, "transfers_in": 100})
    assert updated.fantasy.current_price == 6.5
    assert updated.fantasy.fantasy_points == 3
    with pytest.raises(ValidationError):
        stats.update_market(db_conn, created.id, {"fantasy_points": 50})


def test_missing_stats(db_conn, stats):
    with pytest.raises(NotFoundError):
        stats.get(db_conn, "nope")
    with pytest.raises(NotFoundError):
        stats.get_for_player(db_conn, "p1", "s1")


def test_top_lists(db_conn, stats):
    striker = stats.create(db_conn, new_stats("striker", "s1", appearances=10, minutes_played=900, goals=9))
    keeper = stats.create(db_conn, new_stats("keeper", "s1", appearances=10, minutes_played=900, clean_sheets=6))
    bench = stats.create(db_conn, new_stats("bench", "s1", appearances=2, minutes_played=40, goals=1))
    stats.create(db_conn, new_stats("elsewhere", "s2", goals=30))
    stats.update_market(db_conn, keeper.id, {"current_price": 4.5})
    stats.update_market(db_conn, striker.id, {"current_price": 12.0})

    assert [s.player_id for s in stats.top_scorers(db_conn, "s1")] == ["striker", "bench", "keeper"]
    assert [s.player_id for s in stats.top_fantasy_performers(db_conn, "s1", limit=2)] == ["striker", "keeper"]
    # 48 / 12.0 vs 36 / 4.5
    assert stats.best_value(db_conn, "s1")[0].player_id == "keeper"
    assert {s.id for s in stats.find_by_season(db_conn, "s1")} == {striker.id, keeper.id, bench.id}

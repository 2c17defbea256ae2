"""
Tests for fantasy scoring (flat goal=4 table, floored at zero).
"""
from __future__ import annotations

import pytest

from backend.models import FantasyStats, PerformanceStats
from backend.scoring import (
    APPEARANCE_POINTS,
    ASSIST_POINTS,
    GOAL_POINTS,
    MINUTES_1_TO_59_POINTS,
    MINUTES_60_PLUS_POINTS,
    compute_fantasy_stats,
    compute_points,
)


def test_empty_performance_scores_zero():
    assert compute_points(PerformanceStats()) == 0


def test_forward_with_goal_and_assist():
    perf = PerformanceStats(appearances=1, starts=1, minutes_played=90, goals=1, assists=1)
    expected = APPEARANCE_POINTS + MINUTES_60_PLUS_POINTS + GOAL_POINTS + ASSIST_POINTS
    assert compute_points(perf) == expected == 10


def test_minutes_bonus_thresholds():
    assert compute_points(PerformanceStats(appearances=1, minutes_played=59)) == 1 + MINUTES_1_TO_59_POINTS
    assert compute_points(PerformanceStats(appearances=1, minutes_played=60)) == 1 + MINUTES_60_PLUS_POINTS
    assert compute_points(PerformanceStats(appearances=0, minutes_played=0)) == 0


def test_goalkeeper_saves_score_half_points():
    perf = PerformanceStats(appearances=1, minutes_played=90, clean_sheets=1, saves=5, penalties_saved=1)
    # 1 + 2 + 4 + 2.5 + 5
    assert compute_points(perf) == pytest.approx(14.5)


def test_season_totals_sum_every_term():
    perf = PerformanceStats(
        appearances=30, starts=28, minutes_played=2500, goals=20, assists=10,
        yellow_cards=4, red_cards=1, clean_sheets=8, saves=0,
        penalties_saved=0, penalties_missed=2, own_goals=1,
    )
    # 30 + 80 + 30 + 32 - 4 - 4 - 3 - 2 + 2
    assert compute_points(perf) == 161


def test_penalties_clamped_at_zero():
    perf = PerformanceStats(appearances=1, minutes_played=10, red_cards=2, own_goals=3, penalties_missed=2)
    assert compute_points(perf) == 0


def test_scoring_is_idempotent():
    perf = PerformanceStats(appearances=3, minutes_played=200, goals=2, saves=3, yellow_cards=1)
    first = compute_points(perf)
    assert compute_points(perf) == first
    assert compute_fantasy_stats(perf) == compute_fantasy_stats(perf)


def test_fantasy_stats_derived_figures():
    perf = PerformanceStats(appearances=2, minutes_played=180, goals=2)
    fantasy = compute_fantasy_stats(perf, FantasyStats(current_price=7.5, transfers_in=12))
    assert fantasy.fantasy_points == 2 + 2 + 8
    assert fantasy.average_points == pytest.approx(6.0)
    assert fantasy.points_per_minute == pytest.approx(12 / 180)
    # market fields untouched
    assert fantasy.current_price == 7.5
    assert fantasy.transfers_in == 12


def test_fantasy_stats_zero_denominators():
    fantasy = compute_fantasy_stats(PerformanceStats())
    assert fantasy.average_points == 0
    assert fantasy.points_per_minute == 0


def test_stat_correction_recomputes_from_scratch():
    before = compute_fantasy_stats(PerformanceStats(appearances=1, minutes_played=90, goals=2))
    after = compute_fantasy_stats(PerformanceStats(appearances=1, minutes_played=90, goals=1), before)
    assert before.fantasy_points == 11
    assert after.fantasy_points == 7

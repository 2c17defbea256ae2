"""
Fantasy scoring for football players.
Pure functions over a season's PerformanceStats; no hidden state, safe to re-run
after any stat correction.
"""
from __future__ import annotations

from dataclasses import replace

from backend.models import FantasyStats, PerformanceStats

# ---------- Participation ----------
APPEARANCE_POINTS = 1
MINUTES_60_PLUS_POINTS = 2
MINUTES_1_TO_59_POINTS = 1
FULL_MINUTES_THRESHOLD = 60

# ---------- Attacking ----------
# Flat goal value for every position.
GOAL_POINTS = 4
ASSIST_POINTS = 3

# ---------- Defending & goalkeeping ----------
CLEAN_SHEET_POINTS = 4
SAVE_POINTS = 0.5
PENALTY_SAVED_POINTS = 5

# ---------- Penalties & discipline ----------
PENALTY_MISSED_POINTS = -2
YELLOW_CARD_POINTS = -1
RED_CARD_POINTS = -3
OWN_GOAL_POINTS = -2


def _participation_points(perf: PerformanceStats) -> int:
    """Appearances plus a minutes bonus (60+ or 1-59)."""
    points = perf.appearances * APPEARANCE_POINTS
    if perf.minutes_played >= FULL_MINUTES_THRESHOLD:
        points += MINUTES_60_PLUS_POINTS
    elif perf.minutes_played >= 1:
        points += MINUTES_1_TO_59_POINTS
    return points


def _attacking_points(perf: PerformanceStats) -> int:
    return perf.goals * GOAL_POINTS + perf.assists * ASSIST_POINTS


def _defensive_points(perf: PerformanceStats) -> float:
    return (
        perf.clean_sheets * CLEAN_SHEET_POINTS
        + perf.saves * SAVE_POINTS
        + perf.penalties_saved * PENALTY_SAVED_POINTS
    )


def _negative_points(perf: PerformanceStats) -> int:
    return (
        perf.penalties_missed * PENALTY_MISSED_POINTS
        + perf.yellow_cards * YELLOW_CARD_POINTS
        + perf.red_cards * RED_CARD_POINTS
        + perf.own_goals * OWN_GOAL_POINTS
    )


def compute_points(perf: PerformanceStats) -> float:
    """
    Total fantasy points for a performance snapshot, floored at zero.
    Returns a float (saves score in 0.5 increments).
    """
    total = (
        _participation_points(perf)
        + _attacking_points(perf)
        + _defensive_points(perf)
        + _negative_points(perf)
    )
    return max(0, total)


def compute_fantasy_stats(perf: PerformanceStats, fantasy: FantasyStats | None = None) -> FantasyStats:
    """
    Return a copy of fantasy with fantasy_points, average_points and
    points_per_minute recomputed from perf. Price and transfer counters are kept.
    """
    points = compute_points(perf)
    return replace(
        fantasy or FantasyStats(),
        fantasy_points=points,
        average_points=points / perf.appearances if perf.appearances > 0 else 0,
        points_per_minute=points / perf.minutes_played if perf.minutes_played > 0 else 0,
    )

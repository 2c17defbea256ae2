"""
Tests for LeagueService and SeasonService: state machine, date-derived
transitions, gameweek progression and transfer deadline.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.errors import (
    GameweekOverflowError,
    IllegalStateTransitionError,
    NotFoundError,
    OutOfRangeError,
    UniquenessConflictError,
    ValidationError,
)
from backend.models import LeagueType, SeasonStatus
from backend.services import LeagueService, SeasonService, apply_date_transition
from factories import make_league, make_season


@pytest.fixture
def seasons():
    return SeasonService()


@pytest.fixture
def leagues():
    return LeagueService()


def _started(days_ago: int = 10, length: int = 280, **overrides):
    start = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return make_season(start_date=start, end_date=start + timedelta(days=length), **overrides)


# ---------- Leagues ----------


def test_league_create_and_filters(db_conn, leagues):
    top = leagues.create(db_conn, make_league(tier=1, country="Spain"))
    leagues.create(db_conn, make_league(tier=2, country="Spain"))
    leagues.create(db_conn, make_league(tier=1, country="Italy", type=LeagueType.CUP.value))
    assert [lg.id for lg in leagues.find_top_tier(db_conn, "Spain")] == [top.id]
    assert len(leagues.find(db_conn, country="Spain")) == 2
    assert len(leagues.find(db_conn, type=LeagueType.CUP.value)) == 1


def test_league_duplicate_sportmonks_id(db_conn, leagues):
    leagues.create(db_conn, make_league(sportmonks_id=77))
    with pytest.raises(UniquenessConflictError):
        leagues.create(db_conn, make_league(sportmonks_id=77))


def test_league_update_revalidates(db_conn, leagues):
    lg = leagues.create(db_conn, make_league())
    with pytest.raises(ValidationError):
        leagues.update(db_conn, lg.id, {"tier": 11})
    assert leagues.update(db_conn, lg.id, {"tier": 3}).tier == 3


# ---------- Date-derived transitions ----------


def test_upcoming_season_with_past_start_becomes_active_on_save(db_conn, seasons):
    created = seasons.create(db_conn, _started())
    assert created.status == SeasonStatus.ACTIVE.value
    assert seasons.get(db_conn, created.id).status == "active"


def test_future_season_stays_upcoming(db_conn, seasons):
    assert seasons.create(db_conn, make_season()).status == SeasonStatus.UPCOMING.value


def test_active_season_past_end_completes_on_save(db_conn, seasons):
    created = seasons.create(db_conn, _started(days_ago=10, length=20))
    later = datetime.now(timezone.utc) + timedelta(days=30)
    saved = seasons.save(db_conn, created.id, now=later)
    assert saved.status == SeasonStatus.COMPLETED.value
    assert saved.is_fantasy_active is False


def test_cancelled_season_is_never_reactivated_by_date(db_conn, seasons):
    created = seasons.create(db_conn, make_season())
    seasons.cancel_season(db_conn, created.id)
    inside = created.start_date + timedelta(days=1)
    assert seasons.save(db_conn, created.id, now=inside).status == SeasonStatus.CANCELLED.value


def test_apply_date_transition_leaves_completed_alone():
    s = _started(status=SeasonStatus.COMPLETED.value)
    assert apply_date_transition(s).status == SeasonStatus.COMPLETED.value


def test_naive_dates_are_treated_as_utc(db_conn, seasons):
    start = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=5)
    created = seasons.create(db_conn, make_season(start_date=start, end_date=start + timedelta(days=100)))
    assert created.start_date.tzinfo is not None
    assert created.status == SeasonStatus.UPCOMING.value


# ---------- Explicit transitions ----------


def test_activate_then_complete(db_conn, seasons):
    s = seasons.create(db_conn, make_season())
    active = seasons.activate_season(db_conn, s.id)
    assert active.status == SeasonStatus.ACTIVE.value
    assert active.is_fantasy_active is True
    done = seasons.complete_season(db_conn, s.id)
    assert done.status == SeasonStatus.COMPLETED.value
    assert done.is_fantasy_active is False


def test_activate_requires_upcoming(db_conn, seasons):
    s = seasons.create(db_conn, _started())
    with pytest.raises(IllegalStateTransitionError, match="Can only activate upcoming seasons"):
        seasons.activate_season(db_conn, s.id)


def test_complete_requires_active(db_conn, seasons):
    s = seasons.create(db_conn, make_season())
    with pytest.raises(IllegalStateTransitionError, match="Can only complete active seasons"):
        seasons.complete_season(db_conn, s.id)


def test_cancel_from_terminal_state_rejected(db_conn, seasons):
    s = seasons.create(db_conn, make_season())
    seasons.cancel_season(db_conn, s.id)
    with pytest.raises(IllegalStateTransitionError, match="Can only cancel upcoming or active seasons"):
        seasons.cancel_season(db_conn, s.id)


def test_status_cannot_be_set_through_update(db_conn, seasons):
    s = seasons.create(db_conn, make_season())
    seasons.cancel_season(db_conn, s.id)
    with pytest.raises(ValidationError) as exc:
        seasons.update(db_conn, s.id, {"status": "active", "is_fantasy_active": True})
    assert exc.value.errors == [
        "Field cannot be updated: status",
        "Field cannot be updated: is_fantasy_active",
    ]
    assert seasons.get(db_conn, s.id).status == SeasonStatus.CANCELLED.value


def test_missing_dates_reported_as_validation_errors(db_conn, seasons):
    with pytest.raises(ValidationError) as exc:
        seasons.create(db_conn, make_season(start_date=None, end_date=None))
    assert "Start date is required" in exc.value.errors
    assert "End date is required" in exc.value.errors


def test_missing_season_raises_not_found(db_conn, seasons):
    with pytest.raises(NotFoundError):
        seasons.activate_season(db_conn, "nope")


# ---------- Gameweeks ----------


def test_advance_gameweek_until_last(db_conn, seasons):
    s = seasons.create(db_conn, make_season(total_gameweeks=2))
    assert seasons.advance_gameweek(db_conn, s.id).current_gameweek == 2
    with pytest.raises(GameweekOverflowError, match="Cannot advance beyond total gameweeks"):
        seasons.advance_gameweek(db_conn, s.id)
    assert seasons.get(db_conn, s.id).current_gameweek == 2


# ---------- Transfer deadline ----------


def test_transfer_deadline_inside_season(db_conn, seasons):
    s = seasons.create(db_conn, make_season())
    deadline = s.start_date + timedelta(days=1)
    assert seasons.set_transfer_deadline(db_conn, s.id, deadline).transfer_deadline == deadline


@pytest.mark.parametrize("offset", [timedelta(days=-1), timedelta(days=400)])
def test_transfer_deadline_outside_season_rejected(db_conn, seasons, offset):
    s = seasons.create(db_conn, make_season())
    with pytest.raises(OutOfRangeError, match="Transfer deadline must be within season dates"):
        seasons.set_transfer_deadline(db_conn, s.id, s.start_date + offset)
    assert seasons.get(db_conn, s.id).transfer_deadline is None


def test_transfers_open(seasons):
    s = make_season()
    assert seasons.transfers_open(s) is True
    s.transfer_deadline = s.start_date
    assert seasons.transfers_open(s, now=s.start_date + timedelta(seconds=1)) is False
    s.transfer_deadline = None
    s.status = SeasonStatus.COMPLETED.value
    assert seasons.transfers_open(s) is False


# ---------- Queries ----------


def test_find_current_and_by_league(db_conn, seasons):
    current = seasons.create(db_conn, _started(league_id="pl"))
    seasons.create(db_conn, make_season(league_id="pl"))
    assert seasons.find_current(db_conn).id == current.id
    assert len(seasons.find_by_league(db_conn, "pl")) == 2
    assert [s.id for s in seasons.find_active(db_conn)] == [current.id]

"""
Tests for MatchService: status machine, score updates, result derivation, queries.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.errors import IllegalStateTransitionError, NotFoundError, UniquenessConflictError, ValidationError
from backend.models import MatchResult, MatchStatus
from backend.services import MatchService
from backend.services.match_service import derive_result
from factories import make_match


@pytest.fixture
def matches():
    return MatchService()


def test_derive_result():
    assert derive_result(2, 1) == MatchResult.HOME_WIN.value
    assert derive_result(0, 3) == MatchResult.AWAY_WIN.value
    assert derive_result(1, 1) == MatchResult.DRAW.value


def test_create_and_get(db_conn, matches):
    m = matches.create(db_conn, make_match(venue="  Anfield "))
    stored = matches.get(db_conn, m.id)
    assert stored.status == MatchStatus.SCHEDULED.value
    assert stored.venue == "Anfield"
    assert stored.home_score is None


def test_create_rejects_same_teams(db_conn, matches):
    with pytest.raises(ValidationError):
        matches.create(db_conn, make_match(home_team_id="a", away_team_id="a"))


def test_duplicate_sportmonks_id(db_conn, matches):
    matches.create(db_conn, make_match(sportmonks_id=31))
    with pytest.raises(UniquenessConflictError):
        matches.create(db_conn, make_match(sportmonks_id=31))


def test_full_match_flow(db_conn, matches):
    m = matches.create(db_conn, make_match())
    live = matches.start_match(db_conn, m.id)
    assert live.status == MatchStatus.LIVE.value
    assert live.current_minute == 0

    matches.update_score(db_conn, m.id, 1, 0)
    ht = matches.halftime(db_conn, m.id)
    assert ht.status == MatchStatus.HALFTIME.value
    assert ht.current_minute == 45
    assert ht.result is None

    matches.resume(db_conn, m.id)
    matches.update_score(db_conn, m.id, 1, 2)
    done = matches.finish_match(db_conn, m.id)
    assert done.status == MatchStatus.FINISHED.value
    assert done.current_minute == 90
    assert done.result == MatchResult.AWAY_WIN.value
    assert matches.get(db_conn, m.id).away_score.goals == 2


def test_finish_without_goals_is_a_draw(db_conn, matches):
    m = matches.create(db_conn, make_match())
    matches.start_match(db_conn, m.id)
    assert matches.finish_match(db_conn, m.id).result == MatchResult.DRAW.value


def test_cannot_start_twice(db_conn, matches):
    m = matches.create(db_conn, make_match())
    matches.start_match(db_conn, m.id)
    with pytest.raises(IllegalStateTransitionError, match="Can only start scheduled matches"):
        matches.start_match(db_conn, m.id)


def test_cannot_finish_scheduled_match(db_conn, matches):
    m = matches.create(db_conn, make_match())
    with pytest.raises(IllegalStateTransitionError, match="Can only finish live matches"):
        matches.finish_match(db_conn, m.id)
    assert matches.get(db_conn, m.id).result is None


def test_status_and_result_cannot_be_set_through_update(db_conn, matches):
    m = matches.create(db_conn, make_match())
    with pytest.raises(ValidationError) as exc:
        matches.update(db_conn, m.id, {"status": "finished", "result": "home_win"})
    assert exc.value.errors == ["Field cannot be updated: status", "Field cannot be updated: result"]
    stored = matches.get(db_conn, m.id)
    assert stored.status == MatchStatus.SCHEDULED.value
    assert stored.result is None
    assert matches.update(db_conn, m.id, {"attendance": 52000}).attendance == 52000


def test_postpone_only_scheduled(db_conn, matches):
    m = matches.create(db_conn, make_match())
    assert matches.postpone_match(db_conn, m.id).status == MatchStatus.POSTPONED.value
    other = matches.create(db_conn, make_match())
    matches.start_match(db_conn, other.id)
    with pytest.raises(IllegalStateTransitionError, match="Can only postpone scheduled matches"):
        matches.postpone_match(db_conn, other.id)


def test_suspend_and_cancel(db_conn, matches):
    m = matches.create(db_conn, make_match())
    matches.start_match(db_conn, m.id)
    assert matches.suspend_match(db_conn, m.id).status == MatchStatus.SUSPENDED.value
    assert matches.cancel_match(db_conn, m.id).status == MatchStatus.CANCELLED.value
    with pytest.raises(IllegalStateTransitionError):
        matches.cancel_match(db_conn, m.id)


def test_finished_match_cannot_be_cancelled(db_conn, matches):
    m = matches.create(db_conn, make_match())
    matches.start_match(db_conn, m.id)
    matches.finish_match(db_conn, m.id)
    with pytest.raises(IllegalStateTransitionError, match="Cannot cancel a finished match"):
        matches.cancel_match(db_conn, m.id)


def test_score_correction_after_finish_updates_result(db_conn, matches):
    m = matches.create(db_conn, make_match())
    matches.start_match(db_conn, m.id)
    matches.update_score(db_conn, m.id, 2, 0)
    assert matches.finish_match(db_conn, m.id).result == MatchResult.HOME_WIN.value
    corrected = matches.update_score(db_conn, m.id, 2, 2)
    assert corrected.result == MatchResult.DRAW.value


def test_negative_goals_rejected(db_conn, matches):
    m = matches.create(db_conn, make_match())
    with pytest.raises(ValidationError):
        matches.update_score(db_conn, m.id, -1, 0)


def test_unknown_match(db_conn, matches):
    with pytest.raises(NotFoundError):
        matches.start_match(db_conn, "missing")


def test_queries(db_conn, matches):
    now = datetime.now(timezone.utc)
    soon = matches.create(db_conn, make_match(season_id="s1", gameweek=1, kickoff_time=now + timedelta(hours=1)))
    later = matches.create(db_conn, make_match(season_id="s1", gameweek=2, kickoff_time=now + timedelta(days=7)))
    past = matches.create(
        db_conn,
        make_match(season_id="s1", gameweek=1, kickoff_time=now - timedelta(days=1),
                   home_team_id="away-team", away_team_id="third-team"),
    )
    matches.start_match(db_conn, past.id)
    assert [m.id for m in matches.find_live(db_conn)] == [past.id]
    matches.finish_match(db_conn, past.id)

    assert [m.id for m in matches.find_upcoming(db_conn)] == [soon.id, later.id]
    assert [m.id for m in matches.find_recent(db_conn)] == [past.id]
    assert {m.id for m in matches.find_by_gameweek(db_conn, "s1", 1)} == {soon.id, past.id}
    assert [m.id for m in matches.find_by_team(db_conn, "third-team")] == [past.id]
    assert len(matches.find_by_team(db_conn, "away-team")) == 3
    window = matches.find_by_date_range(db_conn, now, now + timedelta(days=1))
    assert [m.id for m in window] == [soon.id]

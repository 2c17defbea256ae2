"""
API integration tests.
Uses TestClient to avoid starting a server.
Requires: pip install httpx (for TestClient)
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

try:
    from fastapi.testclient import TestClient
    HAS_HTTPX = True
except (ImportError, RuntimeError):
    HAS_HTTPX = False

pytestmark = pytest.mark.skipif(not HAS_HTTPX, reason="httpx required for TestClient")

from backend.api import app
from backend.auth import create_access_token
from factories import next_sportmonks_id


@pytest.fixture(autouse=True)
def isolated_db(db_path):
    """Use a temporary DB for each test."""
    yield db_path


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token('admin-1', role='admin')}"}


def _player_payload(**overrides):
    payload = {
        "sportmonks_id": next_sportmonks_id(),
        "name": "Mohamed Salah",
        "first_name": "Mohamed",
        "last_name": "Salah",
        "date_of_birth": "1992-06-15",
        "nationality": "Egypt",
        "position": "Forward",
        "height": 175,
        "weight": 71,
    }
    payload.update(overrides)
    return payload


def _signup(client, username="fan_one"):
    resp = client.post(
        "/signup",
        json={"email": f"{username}@example.com", "username": username, "password": "s3cret-pass"},
    )
    assert resp.status_code == 201
    body = resp.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}


def _create_season(client, admin_headers):
    start = datetime.now(timezone.utc) + timedelta(days=30)
    resp = client.post(
        "/seasons",
        json={
            "sportmonks_id": next_sportmonks_id(),
            "name": "2026/2027",
            "league_id": "league-1",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=280)).isoformat(),
            "total_gameweeks": 38,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201
    return resp.json()


# ---------- Players ----------


def test_list_players_pagination_shape(client, admin_headers):
    for _ in range(3):
        assert client.post("/players", json=_player_payload(), headers=admin_headers).status_code == 201
    resp = client.get("/players?page=1&limit=2")
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["data"]) == 2
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}


def test_create_player_requires_admin(client):
    assert client.post("/players", json=_player_payload()).status_code == 401
    _, headers = _signup(client)
    assert client.post("/players", json=_player_payload(), headers=headers).status_code == 403


def test_invalid_player_returns_422_with_errors(client, admin_headers):
    resp = client.post("/players", json=_player_payload(height=300), headers=admin_headers)
    assert resp.status_code == 422
    assert resp.json()["errors"] == ["Height must be between 100cm and 250cm"]


def test_duplicate_player_returns_409(client, admin_headers):
    payload = _player_payload()
    assert client.post("/players", json=payload, headers=admin_headers).status_code == 201
    assert client.post("/players", json=payload, headers=admin_headers).status_code == 409


def test_soft_delete_then_get_returns_404(client, admin_headers):
    player = client.post("/players", json=_player_payload(), headers=admin_headers).json()
    assert client.delete(f"/players/{player['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/players/{player['id']}").status_code == 404
    resp = client.get(f"/players/{player['id']}?include_deleted=true")
    assert resp.status_code == 200
    assert resp.json()["deleted_at"] is not None
    deleted = client.get("/players/deleted", headers=admin_headers).json()["data"]
    assert [p["id"] for p in deleted] == [player["id"]]


def test_patch_player_revalidates(client, admin_headers):
    player = client.post("/players", json=_player_payload(), headers=admin_headers).json()
    resp = client.patch(f"/players/{player['id']}", json={"weight": 5}, headers=admin_headers)
    assert resp.status_code == 422
    resp = client.patch(f"/players/{player['id']}", json={"weight": 73}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["weight"] == 73


# ---------- Seasons & matches ----------


def test_season_transition_errors_return_400(client, admin_headers):
    season = _create_season(client, admin_headers)
    resp = client.post(f"/seasons/{season['id']}/complete", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json() == {
        "detail": "Can only complete active seasons",
        "error": "IllegalStateTransitionError",
    }
    resp = client.post(f"/seasons/{season['id']}/activate", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "active"


def test_match_lifecycle_over_http(client, admin_headers):
    resp = client.post(
        "/matches",
        json={
            "sportmonks_id": next_sportmonks_id(),
            "season_id": "season-1",
            "league_id": "league-1",
            "gameweek": 1,
            "kickoff_time": (datetime.now(timezone.utc) + timedelta(hours=2)).isoformat(),
            "home_team_id": "home",
            "away_team_id": "away",
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201
    match_id = resp.json()["id"]
    assert client.post(f"/matches/{match_id}/start", headers=admin_headers).status_code == 200
    assert client.put(
        f"/matches/{match_id}/score", json={"home_goals": 3, "away_goals": 1}, headers=admin_headers
    ).status_code == 200
    assert [m["id"] for m in client.get("/matches/live").json()["data"]] == [match_id]
    done = client.post(f"/matches/{match_id}/finish", headers=admin_headers).json()
    assert done["status"] == "finished"
    assert done["result"] == "home_win"
    assert client.get("/matches?season_id=season-1&gameweek=1").json()["data"][0]["id"] == match_id
    assert client.get("/matches").status_code == 400


# ---------- Users ----------


def test_signup_login_and_me(client):
    user, headers = _signup(client)
    assert "password_hash" not in user
    resp = client.post("/login", json={"login": "fan_one", "password": "s3cret-pass"})
    assert resp.status_code == 200
    assert resp.json()["user_id"] == user["id"]
    assert client.get("/me", headers=headers).json()["username"] == "fan_one"


def test_login_wrong_password_returns_401(client):
    _signup(client)
    resp = client.post("/login", json={"login": "fan_one", "password": "nope-nope"})
    assert resp.status_code == 401


def test_duplicate_signup_returns_409(client):
    _signup(client)
    resp = client.post(
        "/signup", json={"email": "fan_one@example.com", "username": "fan_two", "password": "s3cret-pass"}
    )
    assert resp.status_code == 409


def test_me_requires_token(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


# ---------- Fantasy ----------


def test_fantasy_squad_flow(client, admin_headers):
    season = _create_season(client, admin_headers)
    player_ids = [
        client.post("/players", json=_player_payload(), headers=admin_headers).json()["id"] for _ in range(2)
    ]
    _, headers = _signup(client)

    resp = client.post("/fantasy-teams", json={"season_id": season["id"], "name": "Kop Kings"}, headers=headers)
    assert resp.status_code == 201
    team_id = resp.json()["id"]
    again = client.post("/fantasy-teams", json={"season_id": season["id"], "name": "Kop Kings II"}, headers=headers)
    assert again.status_code == 409

    resp = client.post(
        f"/fantasy-teams/{team_id}/players", json={"player_id": player_ids[0], "price": 7.5}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["remaining_budget"] == pytest.approx(92.5)

    resp = client.post(f"/fantasy-teams/{team_id}/players", json={"player_id": player_ids[0]}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "DuplicatePlayerError"

    resp = client.put(f"/fantasy-teams/{team_id}/captain", json={"player_id": player_ids[0]}, headers=headers)
    assert resp.json()["players"][0]["is_captain"] is True

    resp = client.delete(f"/fantasy-teams/{team_id}/players/{player_ids[0]}", headers=headers)
    assert resp.json()["remaining_budget"] == pytest.approx(100.0)

    composition = client.get(f"/fantasy-teams/{team_id}/composition").json()
    assert composition["valid"] is False


def test_fantasy_team_owned_by_someone_else(client, admin_headers):
    season = _create_season(client, admin_headers)
    player_id = client.post("/players", json=_player_payload(), headers=admin_headers).json()["id"]
    _, owner = _signup(client, "owner")
    _, intruder = _signup(client, "intruder")
    team_id = client.post(
        "/fantasy-teams", json={"season_id": season["id"], "name": "Owned XI"}, headers=owner
    ).json()["id"]
    resp = client.post(f"/fantasy-teams/{team_id}/players", json={"player_id": player_id}, headers=intruder)
    assert resp.status_code == 403


def test_fantasy_team_for_unknown_season_returns_404(client):
    _, headers = _signup(client)
    resp = client.post("/fantasy-teams", json={"season_id": "nope", "name": "Ghost XI"}, headers=headers)
    assert resp.status_code == 404

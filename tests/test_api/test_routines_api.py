"""
Tests for the HTTP surface: routines, completions, quota, current user
"""
import pytest
from fastapi.testclient import TestClient

from streakbook.main import app
from streakbook.api.deps import get_db, get_current_user
from streakbook.infrastructure.db.models import Profile


@pytest.fixture
def client(db_session, sample_user):
    """Client logged in as sample_user, sharing the test session"""
    def _db():
        yield db_session

    def _user():
        return db_session.query(Profile).filter(Profile.id == sample_user.id).one()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user] = _user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(db_session):
    def _db():
        yield db_session

    app.dependency_overrides[get_db] = _db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, **overrides):
    body = {"name": "Stretch", "icon": "yoga", "color": "#22AA88", "category": "health"}
    body.update(overrides)
    return client.post("/api/v1/routines", json=body)


def test_health(anonymous_client):
    response = anonymous_client.get("/health")
    assert response.status_code == 200
    assert response.text == "ok"


def test_requires_session(anonymous_client):
    response = anonymous_client.get("/api/v1/routines")
    assert response.status_code == 401


def test_create_and_list_routines(client):
    response = _create(client)
    assert response.status_code == 201
    data = response.json()
    assert data["schedule_days"] == [1, 2, 3, 4, 5, 6, 7]
    assert data["current_streak"] == 0

    listing = client.get("/api/v1/routines").json()
    assert [r["id"] for r in listing] == [data["id"]]


def test_validation_error_shape(client):
    response = _create(client, color="red")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALID_001"
    assert "color" in error["message"]


def test_complete_undo_cycle(client):
    routine_id = _create(client).json()["id"]

    for d in ("2026-07-01", "2026-07-02", "2026-07-03"):
        response = client.post(f"/api/v1/routines/{routine_id}/complete", json={"completion_date": d})
        assert response.status_code == 200
    assert response.json()["streak"] == 3
    assert response.json()["is_new_record"] is True

    again = client.post(f"/api/v1/routines/{routine_id}/complete", json={"completion_date": "2026-07-03"})
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "BIZ_004"

    undo = client.delete(f"/api/v1/routines/{routine_id}/complete/2026-07-02")
    assert undo.status_code == 200
    assert undo.json()["streak"] == 1
    assert undo.json()["longest_streak"] == 3

    missing = client.delete(f"/api/v1/routines/{routine_id}/complete/2026-07-02")
    assert missing.status_code == 404

    detail = client.get(f"/api/v1/routines/{routine_id}").json()
    assert [c["completion_date"] for c in detail["completions"]] == ["2026-07-03", "2026-07-01"]
    assert detail["total_completions"] == 2


def test_patch_and_delete(client):
    routine_id = _create(client).json()["id"]

    patched = client.patch(f"/api/v1/routines/{routine_id}", json={"name": "Long stretch", "status": "archived"})
    assert patched.status_code == 200
    assert patched.json()["status"] == "archived"

    assert client.delete(f"/api/v1/routines/{routine_id}").json() == {"status": "deleted"}
    assert client.get(f"/api/v1/routines/{routine_id}").status_code == 404


def test_quota_status(client):
    response = client.get("/api/v1/quota/ai_conversations")
    assert response.status_code == 200
    data = response.json()
    assert data["tier"] == "free"
    assert data["period"] == "daily"
    assert data["limit"] == 3
    assert data["remaining"] == 3

    assert client.get("/api/v1/quota/unknown").status_code == 400


def test_routine_limit(client):
    _create(client)
    data = client.get("/api/v1/quota/routines/limit").json()
    assert data == {"current": 1, "limit": 5, "can_create": True, "is_pro": False}


def test_me_reports_stored_rollups(client):
    routine_id = _create(client).json()["id"]
    client.post(f"/api/v1/routines/{routine_id}/complete", json={"completion_date": "2026-07-01"})
    client.post(f"/api/v1/routines/{routine_id}/complete", json={"completion_date": "2026-07-02"})

    me = client.get("/api/v1/users/me").json()
    assert me["email"] == "anna@example.com"
    assert me["tier"] == "free"
    assert me["stats"] == {
        "total_routines": 1, "current_streak": 2, "longest_streak": 2, "total_completions": 2,
    }

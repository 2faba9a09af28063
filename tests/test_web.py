"""Tests for the JSON API — app factory, lifecycle routes, and error mapping."""

import pytest

from worktimer.config import WorkTimerConfig
from worktimer.store import SessionStore
from worktimer.web.app import create_app


def _make_config(db_path, default_scope="project:web"):
    """Create a WorkTimerConfig pointing at the given db_path."""
    return WorkTimerConfig(
        db_path=db_path,
        default_scope=default_scope,
        port=8788,
        log_level="WARNING",
    )


@pytest.fixture
def client(tmp_db):
    """Flask test client backed by an empty database."""
    app = create_app(_make_config(tmp_db))
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


def _start(client, feature_id="feature/api", **extra):
    resp = client.post("/api/sessions", json={"feature_id": feature_id, **extra})
    assert resp.status_code == 201
    return resp.get_json()["session"]


# ===========================================================================
# App factory
# ===========================================================================


class TestAppFactory:
    def test_create_app_returns_flask(self, tmp_db):
        app = create_app(_make_config(tmp_db))
        assert app.__class__.__name__ == "Flask"

    def test_config_values_set(self, tmp_db):
        app = create_app(_make_config(tmp_db, default_scope="project:x"))
        assert app.config["DB_PATH"] == tmp_db
        assert app.config["DEFAULT_SCOPE"] == "project:x"


# ===========================================================================
# Lifecycle routes
# ===========================================================================


class TestLifecycle:
    def test_create_uses_default_scope(self, client):
        session = _start(client, description="Via API", work_type="feature")
        assert session["status"] == "active"
        assert session["scope"] == "project:web"
        assert session["description"] == "Via API"
        assert session["completed_at"] is None

    def test_create_requires_feature_id(self, client):
        resp = client.post("/api/sessions", json={"description": "no id"})
        assert resp.status_code == 400
        assert "feature_id" in resp.get_json()["error"]

    def test_create_rejects_non_string_fields(self, client):
        resp = client.post("/api/sessions", json={"feature_id": ["a"]})
        assert resp.status_code == 400
        assert "feature_id" in resp.get_json()["error"]
        resp = client.post("/api/sessions", json={"feature_id": "f", "work_type": 5})
        assert resp.status_code == 400
        assert client.get("/api/sessions").get_json()["sessions"] == []

    def test_complete_rejects_badly_typed_metrics(self, client):
        history = _start(client, "done", work_type="feature")
        client.post(
            f"/api/sessions/{history['id']}/complete", json={"metrics": {"complexity_rating": 3}}
        )
        session = _start(client, "pending")

        resp = client.post(
            f"/api/sessions/{session['id']}/complete",
            json={"metrics": {"complexity_rating": "high"}},
        )
        assert resp.status_code == 400
        assert "complexity_rating" in resp.get_json()["error"]
        assert client.get(f"/api/sessions/{session['id']}").get_json()["session"]["status"] == "active"

        resp = client.get("/api/estimate?complexity=3")
        assert resp.status_code == 200
        assert resp.get_json()["sample_count"] == 1

    def test_complete_rejects_non_string_notes(self, client):
        session = _start(client)
        resp = client.post(f"/api/sessions/{session['id']}/complete", json={"notes": 12})
        assert resp.status_code == 400

    def test_pause_resume_complete(self, client):
        session = _start(client, work_type="feature")
        sid = session["id"]

        resp = client.post(f"/api/sessions/{sid}/pause", json={"reason": "break"})
        assert resp.status_code == 200
        assert resp.get_json()["session"]["status"] == "paused"

        resp = client.post(f"/api/sessions/{sid}/resume")
        assert resp.status_code == 200
        assert resp.get_json()["session"]["status"] == "active"

        resp = client.post(
            f"/api/sessions/{sid}/complete",
            json={"satisfaction": 4, "notes": "ok", "metrics": {"complexity_rating": 2}},
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["session"]["status"] == "completed"
        assert data["session"]["satisfaction"] == 4
        assert "comparison" in data

        detail = client.get(f"/api/sessions/{sid}").get_json()
        assert [s["sequence"] for s in detail["segments"]] == [0, 1]
        assert detail["segments"][0]["pause_reason"] == "break"
        assert detail["metrics"][-1]["complexity_rating"] == 2
        assert detail["metrics"][-1]["work_type"] == "feature"
        assert detail["duration_seconds"] == sum(
            s["duration_seconds"] for s in detail["segments"]
        )

    def test_unknown_pause_reason(self, client):
        sid = _start(client)["id"]
        resp = client.post(f"/api/sessions/{sid}/pause", json={"reason": "lunch"})
        assert resp.status_code == 400

    def test_invalid_transition_is_409(self, client):
        sid = _start(client)["id"]
        resp = client.post(f"/api/sessions/{sid}/resume")
        assert resp.status_code == 409
        assert resp.get_json()["status"] == "active"

    def test_double_complete_is_409(self, client):
        sid = _start(client)["id"]
        assert client.post(f"/api/sessions/{sid}/complete").status_code == 200
        resp = client.post(f"/api/sessions/{sid}/complete")
        assert resp.status_code == 409

    def test_unknown_session_is_404(self, client):
        assert client.get("/api/sessions/nope").status_code == 404
        assert client.post("/api/sessions/nope/pause").status_code == 404
        assert client.post("/api/sessions/nope/resume").status_code == 404
        assert client.post("/api/sessions/nope/complete").status_code == 404


# ===========================================================================
# Queries
# ===========================================================================


class TestQueries:
    def test_list_filters_by_scope(self, client):
        _start(client, "f1", scope="project:a")
        _start(client, "f2", scope="project:b")

        resp = client.get("/api/sessions?scope=project:a")
        assert resp.status_code == 200
        assert [s["feature_id"] for s in resp.get_json()["sessions"]] == ["f1"]
        assert len(client.get("/api/sessions").get_json()["sessions"]) == 2

    def test_list_rejects_unknown_status(self, client):
        assert client.get("/api/sessions?status=archived").status_code == 400

    def test_list_rejects_bad_limit(self, client):
        assert client.get("/api/sessions?limit=many").status_code == 400

    def test_list_rejects_negative_limit(self, client):
        resp = client.get("/api/sessions?limit=-1")
        assert resp.status_code == 400
        assert "limit" in resp.get_json()["error"]

    def test_list_zero_limit_is_empty(self, client):
        _start(client, "f1")
        resp = client.get("/api/sessions?limit=0")
        assert resp.status_code == 200
        assert resp.get_json()["sessions"] == []


    def test_estimate_empty(self, client):
        resp = client.get("/api/estimate?work_type=feature")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["confidence"] == "low"
        assert data["sample_count"] == 0
        assert "new territory" in data["message"]
        assert data["similar_sessions"] == []

    def test_estimate_with_history(self, client, tmp_db):
        store = SessionStore(tmp_db)
        for complexity in range(1, 6):
            s = store.create_session(f"c{complexity}", "Seeded", "project:web", work_type="feature")
            store.complete_session(s.id, metrics={"complexity_rating": complexity})

        data = client.get("/api/estimate?work_type=feature&complexity=3").get_json()
        assert data["sample_count"] == 3
        assert len(data["similar_sessions"]) == 3
        assert set(data["similar_sessions"][0]) == {"feature_id", "description", "duration_seconds"}

    def test_estimate_bad_complexity(self, client):
        assert client.get("/api/estimate?complexity=high").status_code == 400

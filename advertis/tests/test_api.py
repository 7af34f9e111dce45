"""Integration tests for the FastAPI endpoints.

Uses TestClient against an in-memory database and a canned content generator.
"""
from __future__ import annotations

import copy

import pytest
from fastapi.testclient import TestClient

from advertis.store import StrategyStore


class CannedGenerator:
    def __init__(self, contents):
        self.contents = contents

    async def generate(self, stage, context):
        return copy.deepcopy(self.contents[stage])

    async def fill_variables(self, request):
        return {v.id: f"Generated {v.label}" for v in request.variables}


@pytest.fixture()
def client(session_factory, full_contents, monkeypatch, tmp_path):
    """FastAPI TestClient using the in-memory database."""
    monkeypatch.setenv("ADVERTIS_DB_PATH", str(tmp_path / "advertis.db"))
    from advertis.app import app, db_session, get_generator, get_store

    # Async so request sessions live on the event loop thread, next to the
    # background recomputations sharing the single in-memory connection
    async def override_db_session():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[db_session] = override_db_session
    app.dependency_overrides[get_store] = lambda: StrategyStore(session_factory)
    app.dependency_overrides[get_generator] = lambda: CannedGenerator(full_contents)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()


def _create(c, **overrides) -> dict:
    body = {"user_id": "user-1", "brand_name": "Slow Bakery", "sector": "Food", **overrides}
    resp = c.post("/api/strategies", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestStrategyEndpoints:
    def test_create_and_get(self, client):
        created = _create(client, interview_data={"A0": "Slow Bakery"})
        assert [p["type"] for p in created["pillars"]] == list("ADVERTIS")
        assert all(p["status"] == "idle" and p["content"] is None for p in created["pillars"])

        resp = client.get(f"/api/strategies/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["interview_data"] == {"A0": "Slow Bakery"}

    def test_blank_brand_is_rejected(self, client):
        resp = client.post("/api/strategies", json={"user_id": "user-1", "brand_name": "  "})
        assert resp.status_code == 422

    def test_unknown_parent(self, client):
        resp = client.post("/api/strategies", json={"user_id": "u", "brand_name": "Sub", "parent_id": 42})
        assert resp.status_code == 404

    def test_get_unknown(self, client):
        assert client.get("/api/strategies/999").status_code == 404

    def test_update_interview_merges_and_rescores(self, client):
        sid = _create(client, interview_data={"A0": "Slow Bakery"})["id"]
        resp = client.put(f"/api/strategies/{sid}/interview", json={"interview_data": {"A1": "Sage"}})
        assert resp.status_code == 200
        assert resp.json()["interview_data"] == {"A0": "Slow Bakery", "A1": "Sage"}

        history = client.get(f"/api/strategies/{sid}/scores/history").json()
        assert [h["trigger"] for h in history] == ["fiche_review"]

    def test_diff(self, client):
        sid = _create(client, interview_data={"A0": "x", "A1": " ", "Z9": "old"})["id"]
        resp = client.get(f"/api/strategies/{sid}/diff")
        assert resp.status_code == 200
        data = resp.json()
        assert data["filled_ids"] == ["A0"]
        assert data["empty_ids"] == ["A1"]
        assert data["obsolete_ids"] == ["Z9"]
        assert data["total_schema_vars"] == 26
        assert len(data["missing_ids"]) == 24
        assert data["ids_to_fill"][-1] == "A1"

    def test_diff_unknown(self, client):
        assert client.get("/api/strategies/999/diff").status_code == 404

    def test_empty_cockpit(self, client):
        sid = _create(client)["id"]
        resp = client.get(f"/api/strategies/{sid}/cockpit")
        assert resp.status_code == 200
        assert resp.json() == {"strategy_id": sid, "budget_tiers": [], "widgets": {}}

    def test_versions_unknown_pillar(self, client):
        assert client.get("/api/pillars/999/versions").status_code == 404


class TestScoringEndpoints:
    def test_manual_recalculation(self, client):
        sid = _create(client)["id"]
        resp = client.post(f"/api/strategies/{sid}/scores", params={"trigger": "manual"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["coherence_score"] == 0
        assert data["risk_score"] is None
        assert data["bmf_score"] is None
        assert set(data["coherence_breakdown"]) == {
            "pillar_completion", "variable_coverage", "content_quality",
            "cross_pillar_alignment", "audit_integration", "total",
        }

        history = client.get(f"/api/strategies/{sid}/scores/history").json()
        assert len(history) == 1
        assert history[0]["trigger"] == "manual"
        assert history[0]["risk_score"] is None

    def test_default_trigger_is_manual(self, client):
        sid = _create(client)["id"]
        client.post(f"/api/strategies/{sid}/scores")
        assert client.get(f"/api/strategies/{sid}/scores/history").json()[0]["trigger"] == "manual"

    def test_invalid_trigger(self, client):
        sid = _create(client)["id"]
        assert client.post(f"/api/strategies/{sid}/scores", params={"trigger": "whim"}).status_code == 422

    def test_unknown_strategy(self, client):
        assert client.post("/api/strategies/999/scores").status_code == 404
        assert client.get("/api/strategies/999/scores/history").status_code == 404


class TestUpgradeEndpoint:
    def test_upgrade(self, client):
        sid = _create(client)["id"]
        resp = client.post(f"/api/strategies/{sid}/upgrade", headers={"X-Actor-Id": "user-1"})
        assert resp.status_code == 200, resp.text
        report = resp.json()
        assert report["strategy_id"] == sid
        assert report["pillars_regenerated"] == list("ADVERTIS")
        assert report["errors"] == []
        assert len(report["variables_added"]) == 26
        assert report["interview_after"] == {"filled": 26, "total": 26}

        strategy = client.get(f"/api/strategies/{sid}").json()
        assert strategy["phase"] == "complete"
        assert {p["version"] for p in strategy["pillars"]} == {2}

    def test_second_upgrade_snapshots_previous_content(self, client):
        sid = _create(client)["id"]
        headers = {"X-Actor-Id": "user-1"}
        client.post(f"/api/strategies/{sid}/upgrade", headers=headers)
        second = client.post(f"/api/strategies/{sid}/upgrade", headers=headers).json()
        assert second["variables_added"] == []
        assert second["variables_updated"] == []

        pillar_id = client.get(f"/api/strategies/{sid}").json()["pillars"][0]["id"]
        versions = client.get(f"/api/pillars/{pillar_id}/versions").json()
        assert [v["version"] for v in versions] == [2]
        assert versions[0]["created_by"] == "user-1"

    def test_missing_actor_header(self, client):
        sid = _create(client)["id"]
        assert client.post(f"/api/strategies/{sid}/upgrade").status_code == 422

    def test_other_users_strategy(self, client):
        sid = _create(client)["id"]
        resp = client.post(f"/api/strategies/{sid}/upgrade", headers={"X-Actor-Id": "intruder"})
        assert resp.status_code == 403

    def test_unknown_strategy(self, client):
        resp = client.post("/api/strategies/999/upgrade", headers={"X-Actor-Id": "user-1"})
        assert resp.status_code == 404


def test_schema_catalog(client):
    resp = client.get("/api/schema")
    assert resp.status_code == 200
    data = resp.json()
    assert len(data) == 26
    assert data[0]["id"] == "A0"
    assert data[0]["pillar_type"] == "A"
    assert {v["pillar_type"] for v in data} == {"A", "D", "V", "E"}

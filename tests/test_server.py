import pytest
from fastapi.testclient import TestClient

import server
from conftest import FakeAugmenter, ListStore
from listing_review import database


@pytest.fixture
def client(tmp_path, monkeypatch, rules, sections):
    monkeypatch.setattr(database, "DB_PATH", tmp_path / "server.db")
    server.app.dependency_overrides[server.get_store] = lambda: ListStore(rules, sections)
    server.app.dependency_overrides[server.get_augmenter] = lambda: None
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


def test_config(client):
    resp = client.get("/api/config")
    assert resp.status_code == 200
    body = resp.json()
    assert {"llm_available", "llm_model", "ai_timeout_seconds"} <= set(body)


class TestAnalyze:
    def test_structured_fields(self, client):
        resp = client.post("/api/analyze", json={
            "title": "Nike replica sneakers",
            "description": "Replica of a classic",
            "tags": ["shoes", "sneakers"],
            "price": 25,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["totalIssues"] == 2
        assert body["complianceStatus"] == "fail"
        assert body["riskAssessment"]["overall"] == "high"
        assert [s["fieldName"] for s in body["sectionHealth"]] == ["title", "description", "tags", "price"]
        assert body["metadata"]["rules_loaded"] == 4

    def test_raw_text(self, client):
        resp = client.post("/api/analyze", json={"text": "Hand-knitted wool scarf"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["complianceScore"] == 100
        assert body["recommendations"][0]["priority"] == "success"

    def test_empty_listing_is_400(self, client):
        resp = client.post("/api/analyze", json={"title": "  ", "text": ""})
        assert resp.status_code == 400

    def test_store_failure_is_503(self, client):
        server.app.dependency_overrides[server.get_store] = lambda: ListStore(error=OSError("gone"))
        resp = client.post("/api/analyze", json={"title": "Nike shoes"})
        assert resp.status_code == 503

    def test_ai_suggestions_surface(self, client):
        augmenter = FakeAugmenter(payload={"status": "warning", "flaggedTerms": [], "suggestions": ["Add materials"]})
        server.app.dependency_overrides[server.get_augmenter] = lambda: augmenter
        resp = client.post("/api/analyze", json={"title": "Wool scarf"})
        assert resp.json()["aiSuggestions"] == ["Add materials"]

    def test_use_ai_false_skips_augmenter(self, client):
        augmenter = FakeAugmenter(payload={"status": "pass"})
        server.app.dependency_overrides[server.get_augmenter] = lambda: augmenter
        resp = client.post("/api/analyze", json={"title": "Wool scarf", "use_ai": False})
        assert resp.status_code == 200
        assert augmenter.calls == []


def test_stream_ends_with_complete_event(client):
    resp = client.post("/api/analyze/stream", json={"title": "Nike shoes"})
    assert resp.status_code == 200
    events = [line for line in resp.text.splitlines() if line.startswith("data: ")]
    assert '"type": "complete"' in events[-1]


class TestJobs:
    def test_enqueue_and_progress(self, client):
        resp = client.post("/api/jobs", json={"sections": [
            {"title": "Trademarks", "content": "No brand names."},
            {"title": "Trademarks", "content": "No brand names."},
        ]})
        assert resp.status_code == 200
        assert resp.json()["queued"] == 1
        progress = client.get("/api/jobs").json()
        assert progress["progress"]["pending"] == 1
        assert progress["jobs"][0]["title"] == "Trademarks"

    def test_enqueue_requires_sections(self, client):
        assert client.post("/api/jobs", json={"sections": []}).status_code == 400

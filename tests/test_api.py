"""Tests for the HTTP API using FastAPI's TestClient."""

import gzip
import json

import pytest
from fastapi.testclient import TestClient

from playledger.api.app import app
from playledger.api.state import AppState, get_state
from playledger.core.errors import DurabilityError, TransientSourceError
from playledger.core.snapshot import decode_store
from tests.conftest import make_item

ITEMS = [
    make_item("2024-03-01T10:00:00Z"),
    make_item("2024-03-01T10:02:30Z"),
    make_item("2024-03-01T10:07:30Z"),
]


@pytest.fixture
def client(service):
    app.dependency_overrides[get_state] = lambda: AppState(service)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _authorize(client, actor="alice"):
    resp = client.post(f"/api/auth/{actor}", json={"client_id": "client-id", "client_secret": "client-secret"})
    assert resp.status_code == 200
    return resp.json()["auth_url"].split("state=")[1]


@pytest.fixture
def authorized_client(client, fetcher):
    state = _authorize(client)
    resp = client.get("/auth/callback", params={"code": "abc", "state": state})
    assert resp.status_code == 200
    fetcher.items = ITEMS
    return client


def test_ready(client):
    resp = client.get("/-/ready")
    assert resp.status_code == 200
    assert resp.json() == "ok"


class TestUpdate:
    def test_update(self, authorized_client):
        resp = authorized_client.post("/api/update/alice")
        assert resp.status_code == 200
        assert resp.json() == {"added": 3, "tracks_added": 1, "plays": 3, "tracks": 1}

    def test_update_without_authorization(self, client):
        resp = client.post("/api/update/alice")
        assert resp.status_code == 401
        assert "not authorized" in resp.json()["detail"]

    def test_update_source_failure(self, authorized_client, fetcher):
        fetcher.error = TransientSourceError("get recently played: 503")
        resp = authorized_client.post("/api/update/alice")
        assert resp.status_code == 502

    def test_invalid_actor(self, client):
        resp = client.post("/api/update/.hidden")
        assert resp.status_code == 400


class TestReport:
    def test_playbacks(self, authorized_client):
        authorized_client.post("/api/update/alice")
        resp = authorized_client.get("/api/report/alice/playbacks", params={"from": "2024-03-01T00:00:00Z"})

        assert resp.status_code == 200
        body = resp.json()
        assert [p["start_time"] for p in body["playbacks"]] == [
            "2024-03-01T10:07:30Z",
            "2024-03-01T10:02:30Z",
            "2024-03-01T10:00:00Z",
        ]
        assert [p["playback_seconds"] for p in body["playbacks"]] == [200.0, 200.0, 150.0]
        assert body["total_seconds"] == 550.0
        assert body["playbacks"][0]["artists"] == [{"id": "eno", "name": "Brian Eno"}]

    def test_no_from_means_no_lower_bound(self, authorized_client):
        authorized_client.post("/api/update/alice")
        resp = authorized_client.get("/api/report/alice/playbacks")
        assert len(resp.json()["playbacks"]) == 3

    def test_configured_window_excludes_old_plays(self, authorized_client, monkeypatch):
        monkeypatch.setattr("playledger.api.routes.report.REPORT_WINDOW_HOURS", 720)
        authorized_client.post("/api/update/alice")
        resp = authorized_client.get("/api/report/alice/playbacks")
        assert resp.json()["playbacks"] == []

    def test_artists_and_tracks(self, authorized_client):
        authorized_client.post("/api/update/alice")
        params = {"from": "2024-03-01T00:00:00Z", "to": "2024-03-02T00:00:00Z", "sort": "time"}

        artists = authorized_client.get("/api/report/alice/artists", params=params).json()
        tracks = authorized_client.get("/api/report/alice/tracks", params=params).json()

        assert artists["sort"] == "time"
        assert [(a["name"], a["plays"], a["track_count"]) for a in artists["artists"]] == [("Brian Eno", 3, 1)]
        assert [(t["name"], t["seconds"]) for t in tracks["tracks"]] == [("An Ending", 550.0)]

    def test_bad_time(self, client):
        resp = client.get("/api/report/alice/playbacks", params={"from": "yesterday"})
        assert resp.status_code == 400

    def test_bad_sort(self, client):
        resp = client.get("/api/report/alice/artists", params={"sort": "loudness"})
        assert resp.status_code == 422


class TestExport:
    def test_download(self, authorized_client):
        authorized_client.post("/api/update/alice")
        resp = authorized_client.get("/api/export/alice")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/gzip"
        assert 'filename="alice.json.gz"' in resp.headers["content-disposition"]
        assert len(decode_store(resp.content).playbacks) == 3

    def test_publish_to_key(self, authorized_client, blobs):
        authorized_client.post("/api/update/alice")
        resp = authorized_client.post("/api/export/alice", json={"key": "backups/alice.json.gz"})

        assert resp.status_code == 200
        assert resp.json()["ok"] is True
        with blobs.open_read("exports/backups/alice.json.gz") as handle:
            data = json.loads(gzip.decompress(handle.read()))
        assert len(data["playbacks"]) == 3

    def test_publish_cannot_target_another_actors_snapshot(self, authorized_client, blobs):
        resp = authorized_client.post("/api/export/alice", json={"key": "bob.json.gz"})
        assert resp.status_code == 200
        assert not blobs.exists("bob.json.gz")
        assert blobs.exists("exports/bob.json.gz")

        resp = authorized_client.post("/api/export/alice", json={"key": "../bob.json.gz"})
        assert resp.status_code == 400
        assert not blobs.exists("bob.json.gz")

    def test_publish_own_snapshot(self, authorized_client, blobs):
        resp = authorized_client.post("/api/export/alice")
        assert resp.status_code == 200
        assert blobs.exists("alice.json.gz")

    def test_durability_failure(self, authorized_client, service, monkeypatch):
        def broken(*args, **kwargs):
            raise DurabilityError("write alice.json.gz: disk full")

        monkeypatch.setattr(service, "persist", broken)
        resp = authorized_client.post("/api/export/alice")
        assert resp.status_code == 503


class TestAuth:
    def test_authorize_returns_url(self, client):
        resp = client.post("/api/auth/alice", json={"client_id": "client-id", "client_secret": "client-secret"})
        assert resp.status_code == 200
        assert "client_id=client-id" in resp.json()["auth_url"]

    def test_authorize_without_credentials(self, client):
        resp = client.post("/api/auth/alice")
        assert resp.status_code == 401

    def test_authorize_redirect_uses_stored_credentials(self, client):
        _authorize(client)
        resp = client.get("/api/auth/alice", follow_redirects=False)
        assert resp.status_code == 307
        assert "client_id=client-id" in resp.headers["location"]

    def test_callback_with_unknown_state(self, client):
        _authorize(client)
        resp = client.get("/auth/callback", params={"code": "abc", "state": "forged"})
        assert resp.status_code == 401

    def test_callback_missing_code(self, client):
        resp = client.get("/auth/callback", params={"state": "x"})
        assert resp.status_code == 400

    def test_callback_error_is_escaped(self, client):
        resp = client.get("/auth/callback", params={"error": "<script>"})
        assert resp.status_code == 400
        assert "<script>" not in resp.text
        assert "&lt;script&gt;" in resp.text

    def test_callback_persists_token(self, authorized_client, blobs):
        assert blobs.exists("alice.json.gz")

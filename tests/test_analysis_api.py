import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

import api.dependencies as dependencies
from api.app import create_app
from api.dependencies import reset_dependencies
from scribe.analysis import RedisChannelTransport


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("ANALYSIS_TRANSPORT", "memory")
    reset_dependencies()
    yield TestClient(create_app())
    reset_dependencies()


def _publish(client, workspace_id, event, data=None):
    resp = client.post(f"/workspaces/{workspace_id}/analysis/events", json={"event": event, "data": data})
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_progress_round_trip(client):
    resp = client.get("/workspaces/ws-1/analysis")
    assert resp.status_code == 200
    body = resp.json()
    assert body["workspaceId"] == "ws-1"
    assert body["visible"] is False
    assert body["connected"] is True
    assert body["state"]["isAnalyzing"] is False

    published = _publish(client, "ws-1", "stage-update", {"stage": "fileUpload", "status": "in_progress"})
    assert published["channel"] == "workspace_ws-1"

    body = client.get("/workspaces/ws-1/analysis").json()
    assert body["state"]["isAnalyzing"] is True
    assert body["state"]["currentStep"] == "Uploading File"
    assert body["visible"] is True


def test_dismiss_and_reset(client):
    client.get("/workspaces/ws-1/analysis")
    _publish(client, "ws-1", "run-error", {"message": "timeout"})

    body = client.post("/workspaces/ws-1/analysis/dismiss").json()
    assert body["visible"] is False
    assert body["state"]["errors"] == ["timeout"]
    assert body["notice"] == {"level": "error", "message": "timeout"}

    body = client.post("/workspaces/ws-1/analysis/reset").json()
    assert body["state"]["errors"] == []
    assert body["visible"] is False
    assert body["notice"] is None


def test_workspaces_are_tracked_independently(client):
    client.get("/workspaces/ws-1/analysis")
    _publish(client, "ws-1", "artifact-ready", {"kind": "studyGuide", "payload": {"id": "sg"}})

    body = client.get("/workspaces/ws-2/analysis").json()
    assert body["state"]["completedArtifacts"] == {}

    # Watching ws-2 leaves ws-1 subscribed.
    _publish(client, "ws-1", "run-error", {"message": "late"})
    _publish(client, "ws-2", "stage-update", {"stage": "fileUpload", "status": "in_progress"})

    first = client.get("/workspaces/ws-1/analysis").json()
    assert first["state"]["completedArtifacts"] == {"studyGuide": {"id": "sg"}}
    assert first["state"]["errors"] == ["late"]
    assert first["state"]["isAnalyzing"] is False

    second = client.get("/workspaces/ws-2/analysis").json()
    assert second["state"]["errors"] == []
    assert second["state"]["completedArtifacts"] == {}
    assert second["state"]["isAnalyzing"] is True


def test_blank_event_name_is_rejected(client):
    resp = client.post("/workspaces/ws-1/analysis/events", json={"event": " "})
    assert resp.status_code == 400


class _UnreadablePubSub:
    def subscribe(self, *names):
        pass

    def unsubscribe(self, *names):
        pass

    def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        raise RedisConnectionError("connection reset")

    def close(self):
        pass


class _UnreadableRedis:
    def pubsub(self, ignore_subscribe_messages=False):
        return _UnreadablePubSub()


class _UnreadableTransport(RedisChannelTransport):
    def __init__(self, redis_url):
        super().__init__(redis_url, client=_UnreadableRedis())


def test_lost_redis_connection_is_service_unavailable(client, monkeypatch):
    monkeypatch.setenv("ANALYSIS_TRANSPORT", "redis")
    monkeypatch.setattr(dependencies, "RedisChannelTransport", _UnreadableTransport)
    reset_dependencies()

    resp = client.get("/workspaces/ws-1/analysis")
    assert resp.status_code == 503
    assert "connection reset" in resp.json()["detail"]

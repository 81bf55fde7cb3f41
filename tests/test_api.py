from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi.testclient import TestClient

from yield_tracker.api import CACHE_CONTROL, app, get_settings
from yield_tracker.config import TrackerSettings

SNAPSHOTS_URL = "https://example.supabase.co/storage/v1/object/public/yield-tracker/snapshots.json"


@pytest.fixture
def client():
    settings = TrackerSettings(snapshots_url=SNAPSHOTS_URL)
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def blob(snapshot_set):
    """Patch the snapshot download to return the fixture document"""
    with patch("yield_tracker.api.requests.get") as mock_get:
        response = MagicMock()
        response.ok = True
        response.status_code = 200
        response.json.return_value = snapshot_set
        mock_get.return_value = response
        yield mock_get


def test_health(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_summary(client, blob):
    response = client.get("/snapshots")

    assert response.status_code == 200
    body = response.json()
    assert body["lastUpdate"] == 1_700_000_000_000
    assert body["tokens"]["syrupUSDC"]["snapshotCount"] == 2
    assert body["tokens"]["syrupUSDC"]["latest"]["price"] == 1.1001
    assert "history" not in body["tokens"]["syrupUSDC"]
    assert response.headers["cache-control"] == CACHE_CONTROL


def test_fetch_is_cache_busted(client, blob):
    client.get("/snapshots")

    args, kwargs = blob.call_args
    assert args[0] == SNAPSHOTS_URL
    assert "t" in kwargs["params"]


def test_single_token(client, blob):
    response = client.get("/snapshots", params={"token": "syrupUSDC"})

    assert response.status_code == 200
    body = response.json()
    assert body["token"] == "syrupUSDC"
    assert body["latest"]["apr_1h"] == 79.6
    assert body["latest"]["apr_30d"] is None
    assert len(body["history"]) == 2
    assert response.headers["cache-control"] == CACHE_CONTROL


def test_unknown_token_is_404(client, blob):
    response = client.get("/snapshots", params={"token": "nope"})

    assert response.status_code == 404
    assert response.json() == {"error": "Token not found: nope", "available": ["syrupUSDC"]}


def test_upstream_error_status_is_500(client, blob):
    blob.return_value.ok = False
    blob.return_value.status_code = 503

    response = client.get("/snapshots")

    assert response.status_code == 500
    assert "503" in response.json()["error"]


def test_upstream_unreachable_is_500(client, blob):
    blob.side_effect = requests.ConnectionError("connection refused")

    response = client.get("/snapshots", params={"token": "syrupUSDC"})

    assert response.status_code == 500
    assert "connection refused" in response.json()["error"]


def test_missing_url_is_500():
    app.dependency_overrides[get_settings] = lambda: TrackerSettings()
    try:
        response = TestClient(app).get("/snapshots")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert "snapshots_url" in response.json()["error"]


@pytest.mark.parametrize(
    "tokens",
    [
        {"syrupUSDC": ["not", "a", "series"]},
        {"syrupUSDC": {"symbol": "syrupUSDC", "snapshots": [{"price": 1.1}]}},
    ],
)
@pytest.mark.parametrize("params", [{}, {"token": "syrupUSDC"}])
def test_malformed_series_is_json_500(client, blob, tokens, params):
    blob.return_value.json.return_value = {"lastUpdate": 1_700_000_000_000, "tokens": tokens}

    response = client.get("/snapshots", params=params)

    assert response.status_code == 500
    assert "error" in response.json()

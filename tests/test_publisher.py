import json
from unittest.mock import MagicMock, patch

import pytest

from yield_tracker.config import TrackerSettings
from yield_tracker.exceptions import PublishError
from yield_tracker.publisher import SupabasePublisher, build_publisher

PUBLISH_SETTINGS = {
    "supabase_url": "https://example.supabase.co",
    "supabase_key": "service-key",
    "bucket": "yield-tracker",
    "object_key": "snapshots.json",
}


@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock = MagicMock()
    mock.storage.from_.return_value.upload.return_value = None
    return mock


def test_publish_uploads_with_upsert(mock_supabase, snapshot_set):
    publisher = build_publisher(TrackerSettings(publish=PUBLISH_SETTINGS))

    with patch("yield_tracker.publisher.create_client", return_value=mock_supabase) as mock_create:
        url = publisher.publish(snapshot_set)

    mock_create.assert_called_once_with("https://example.supabase.co", "service-key")
    mock_supabase.storage.from_.assert_called_once_with("yield-tracker")
    kwargs = mock_supabase.storage.from_.return_value.upload.call_args.kwargs
    assert kwargs["path"] == "snapshots.json"
    assert kwargs["file_options"]["upsert"] == "true"
    assert json.loads(kwargs["file"].decode("utf-8")) == snapshot_set
    assert url == "https://example.supabase.co/storage/v1/object/public/yield-tracker/snapshots.json"


def test_publish_error_is_wrapped(mock_supabase, snapshot_set):
    mock_supabase.storage.from_.return_value.upload.side_effect = Exception("Bucket not found")
    publisher = SupabasePublisher("https://example.supabase.co", "key", "missing")

    with patch("yield_tracker.publisher.create_client", return_value=mock_supabase):
        with pytest.raises(PublishError) as exc_info:
            publisher.publish(snapshot_set)

    assert "Bucket not found" in str(exc_info.value)


@pytest.mark.parametrize("missing", ["supabase_url", "supabase_key", "bucket"])
def test_build_publisher_without_credentials(missing):
    publish = dict(PUBLISH_SETTINGS)
    publish[missing] = None

    assert build_publisher(TrackerSettings(publish=publish)) is None


def test_public_url():
    settings = TrackerSettings(publish=PUBLISH_SETTINGS)

    assert build_publisher(settings).public_url.endswith("/yield-tracker/snapshots.json")

import logging
from typing import Optional

from supabase import Client, create_client

from yield_tracker.config import TrackerSettings
from yield_tracker.exceptions import PublishError
from yield_tracker.models import SnapshotSet
from yield_tracker.store import serialize

logger = logging.getLogger(__name__)


class SupabasePublisher:
    """Uploads the snapshot set to a public Supabase Storage bucket"""

    def __init__(self, url: str, key: str, bucket: str, object_key: str = "snapshots.json"):
        self.url = url
        self.key = key
        self.bucket = bucket
        self.object_key = object_key
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        if self._client is None:
            logger.info("Connecting to Supabase...")
            self._client = create_client(self.url, self.key)
        return self._client

    @property
    def public_url(self) -> str:
        return f"{self.url.rstrip('/')}/storage/v1/object/public/{self.bucket}/{self.object_key}"

    def publish(self, snapshot_set: SnapshotSet) -> str:
        """
        Overwrite the published object with the current snapshot set.

        Returns:
            str: Public URL of the object.

        Raises:
            PublishError: if the upload fails.
        """
        payload = serialize(snapshot_set).encode("utf-8")
        try:
            self.client.storage.from_(self.bucket).upload(
                path=self.object_key,
                file=payload,
                file_options={
                    "content-type": "application/json",
                    "cache-control": "60",
                    "upsert": "true",
                },
            )
        except Exception as e:
            raise PublishError(f"Failed to upload {self.object_key} to bucket {self.bucket}: {e}")

        logger.info(f"Published {len(payload)} bytes to {self.public_url}")
        return self.public_url


def build_publisher(settings: TrackerSettings) -> Optional[SupabasePublisher]:
    """Publisher from settings, or None when credentials are not configured."""
    publish = settings.publish
    url = publish.get("supabase_url")
    key = publish.get("supabase_key")
    bucket = publish.get("bucket")
    if not all([url, key, bucket]):
        logger.warning("Publish credentials not configured, skipping upload")
        return None
    return SupabasePublisher(url, key, bucket, publish.get("object_key", "snapshots.json"))

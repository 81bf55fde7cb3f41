import json
import logging
import os
import tempfile
from typing import Any

from yield_tracker.config import DEFAULT_RETENTION_CAP
from yield_tracker.exceptions import SnapshotStoreError
from yield_tracker.models import Snapshot, SnapshotSet, TokenDescriptor, TokenSeries, empty_snapshot_set

logger = logging.getLogger(__name__)


def append_snapshot(
    snapshot_set: SnapshotSet,
    token: TokenDescriptor,
    snapshot: Snapshot,
    retention_cap: int = DEFAULT_RETENTION_CAP,
) -> TokenSeries:
    """
    Append a snapshot to the token's series, creating the series on first use.

    Oldest entries are evicted once the series exceeds retention_cap.
    """
    tokens = snapshot_set["tokens"]
    series = tokens.get(token.id)
    if series is None:
        series = {**token.series_metadata(), "snapshots": []}
        tokens[token.id] = series
        logger.info(f"Created series for {token.id}")

    snapshots = series["snapshots"]
    if snapshots and snapshot["timestamp"] < snapshots[-1]["timestamp"]:
        raise ValueError(
            f"Snapshot for {token.id} at {snapshot['timestamp']} is older than "
            f"the latest one ({snapshots[-1]['timestamp']})"
        )
    snapshots.append(snapshot)

    overflow = len(snapshots) - retention_cap
    if overflow > 0:
        del snapshots[:overflow]
        logger.debug(f"Evicted {overflow} snapshots from {token.id}")
    return series


def serialize(snapshot_set: SnapshotSet) -> str:
    return json.dumps(snapshot_set, indent=2)


def parse_snapshot_set(raw: Any) -> SnapshotSet:
    """Validate the top-level shape of a persisted snapshot set."""
    if not isinstance(raw, dict) or not isinstance(raw.get("tokens", {}), dict):
        raise SnapshotStoreError("Snapshot set must be an object with a `tokens` mapping")
    return {"lastUpdate": raw.get("lastUpdate"), "tokens": raw.get("tokens") or {}}


class SnapshotStore:
    """JSON file holding the full snapshot set"""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> SnapshotSet:
        if not os.path.exists(self.path):
            logger.info(f"No snapshot file at {self.path}, starting empty")
            return empty_snapshot_set()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotStoreError(f"Failed to read snapshots from {self.path}: {e}")
        return parse_snapshot_set(raw)

    def save(self, snapshot_set: SnapshotSet) -> None:
        """Write atomically: temp file in the same directory, then replace."""
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(serialize(snapshot_set))
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise SnapshotStoreError(f"Failed to write snapshots to {self.path}: {e}")
        logger.info(f"Saved snapshots to {self.path}")

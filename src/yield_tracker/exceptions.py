from typing import Iterable, List


class YieldTrackerError(Exception):
    """Base error for the yield tracker."""


class ConfigError(YieldTrackerError):
    """Invalid or unreadable configuration."""


class SnapshotStoreError(YieldTrackerError):
    """Persisted snapshot set could not be read or written."""


class PublishError(YieldTrackerError):
    """Upload of the snapshot set to the shared store failed."""


class TokenNotFoundError(YieldTrackerError):
    """Requested token id is not present in the snapshot set."""

    def __init__(self, token_id: str, available: Iterable[str]):
        self.token_id = token_id
        self.available: List[str] = list(available)
        super().__init__(f"Token not found: {token_id}")

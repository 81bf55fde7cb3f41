import pytest

from yield_tracker.config import TrackerSettings
from yield_tracker.store import SnapshotStore

from .factories import TokenFactory


@pytest.fixture
def settings(tmp_path):
    """Settings writing into a temporary data directory"""
    return TrackerSettings(data_dir=str(tmp_path / "data"))


@pytest.fixture
def store(settings):
    return SnapshotStore(settings.snapshots_path)


@pytest.fixture
def tokens():
    """Two resolvable vaults and one placeholder"""
    return [
        TokenFactory.create("syrupUSDC"),
        TokenFactory.create(
            "sUSDe",
            address="0x9D39A5DE30e57443BfF2A8307A4256c8797A3497",
            decimals=18,
        ),
        TokenFactory.create("wstETH", type="chainlink", address="TBD", oracleAddress="TBD"),
    ]


@pytest.fixture
def snapshot_set():
    """Persisted document with one token and a short history"""
    return {
        "lastUpdate": 1_700_000_000_000,
        "tokens": {
            "syrupUSDC": {
                "symbol": "syrupUSDC",
                "name": "Maple Syrup USDC",
                "chain": "ethereum",
                "protocol": "maple",
                "snapshots": [
                    {"timestamp": 1_699_996_400_000, "price": 1.10},
                    {
                        "timestamp": 1_700_000_000_000,
                        "price": 1.1001,
                        "apr_1h": 79.6,
                        "apr_24h": None,
                        "apr_7d": None,
                        "data_hours": 1.0,
                    },
                ],
            },
        },
    }

from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, TypedDict

from yield_tracker.exceptions import ConfigError

UNRESOLVED_ADDRESS = "TBD"

# {timestamp, price, apr_<label>..., data_hours}; APR keys depend on the horizon table
Snapshot = Dict[str, Any]


class TokenSeries(TypedDict):
    symbol: str
    name: str
    chain: str
    protocol: str
    snapshots: List[Snapshot]


class SnapshotSet(TypedDict):
    lastUpdate: Optional[int]
    tokens: Dict[str, TokenSeries]


class ValuationMethod(str, Enum):
    ERC4626 = "erc4626"
    FIXED = "fixed"
    CHAINLINK = "chainlink"
    PYTH = "pyth"


class TokenDescriptor(NamedTuple):
    """Static description of one tracked token."""

    id: str
    symbol: str
    name: str
    chain: str
    protocol: str
    type: str
    address: Optional[str] = None
    decimals: int = 18
    underlying_decimals: Optional[int] = None
    oracle_address: Optional[str] = None
    pyth_price_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenDescriptor":
        """Build a descriptor from a config entry (camelCase keys, as in tokens.json)."""
        if not isinstance(data, dict):
            raise ConfigError(f"Token entry must be a mapping, got {data!r}")
        token_id = data.get("id")
        if not token_id:
            raise ConfigError(f"Token entry without id: {data!r}")
        if not data.get("type"):
            raise ConfigError(f"Token {token_id} has no valuation type")

        try:
            decimals = int(data.get("decimals", 18))
            underlying = data.get("underlyingDecimals")
            underlying = int(underlying) if underlying is not None else None
        except (TypeError, ValueError):
            raise ConfigError(f"Token {token_id} has invalid decimals")

        return cls(
            id=str(token_id),
            symbol=str(data.get("symbol", token_id)),
            name=str(data.get("name", token_id)),
            chain=str(data.get("chain", "ethereum")).lower(),
            protocol=str(data.get("protocol", "")),
            type=str(data["type"]).lower(),
            address=data.get("address"),
            decimals=decimals,
            underlying_decimals=underlying,
            oracle_address=data.get("oracleAddress"),
            pyth_price_id=data.get("pythPriceId"),
        )

    @property
    def has_address(self) -> bool:
        return bool(self.address) and self.address != UNRESOLVED_ADDRESS

    @property
    def is_resolved(self) -> bool:
        """False while the method-specific parameters are still placeholders."""
        if self.type == ValuationMethod.FIXED.value:
            return True
        if self.type == ValuationMethod.PYTH.value:
            return bool(self.pyth_price_id)
        if self.type == ValuationMethod.CHAINLINK.value:
            oracle = self.oracle_address
            return (bool(oracle) and oracle != UNRESOLVED_ADDRESS) or self.has_address
        return self.has_address

    def series_metadata(self) -> Dict[str, str]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "chain": self.chain,
            "protocol": self.protocol,
        }


def empty_snapshot_set() -> SnapshotSet:
    return {"lastUpdate": None, "tokens": {}}

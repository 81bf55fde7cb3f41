import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from web3 import Web3
from web3.contract import Contract

from yield_tracker.config import TrackerSettings
from yield_tracker.models import TokenDescriptor, ValuationMethod

logger = logging.getLogger(__name__)
ABI_DIR = Path(__file__).parent / "abi"


def load_abi(contract_name: str) -> list:
    """Load ABI from the bundled abi directory"""
    with open(ABI_DIR / f"{contract_name}.json") as f:
        return json.load(f)


class ChainConnections:
    """Lazily created Web3 clients, one per chain"""

    def __init__(self, rpc_urls: Dict[str, str], timeout: float = 30.0):
        self.rpc_urls = {chain.lower(): url for chain, url in rpc_urls.items()}
        self.timeout = timeout
        self._clients: Dict[str, Web3] = {}

    def get(self, chain: str) -> Web3:
        chain = chain.lower()
        if chain not in self._clients:
            url = self.rpc_urls.get(chain)
            if not url:
                raise ConnectionError(f"No RPC URL configured for chain: {chain}")
            self._clients[chain] = Web3(
                Web3.HTTPProvider(url, request_kwargs={"timeout": self.timeout})
            )
            logger.debug(f"Created Web3 client for {chain}")
        return self._clients[chain]

    def contract(self, chain: str, address: str, abi_name: str) -> Contract:
        w3 = self.get(chain)
        if not Web3.is_checksum_address(address):
            address = Web3.to_checksum_address(address)
        return w3.eth.contract(address=address, abi=load_abi(abi_name))


class BasePriceSource:
    """Base class for one valuation method. fetch() may raise; the adapter catches."""

    method: ValuationMethod

    def __init__(self, connections: ChainConnections, settings: TrackerSettings):
        self.connections = connections
        self.settings = settings

    def fetch(self, token: TokenDescriptor) -> Optional[float]:
        raise NotImplementedError


class ERC4626PriceSource(BasePriceSource):
    """Underlying assets per one vault share"""

    method = ValuationMethod.ERC4626

    def fetch(self, token: TokenDescriptor) -> Optional[float]:
        vault = self.connections.contract(token.chain, token.address, "ERC4626")
        one_share = 10 ** token.decimals
        assets = vault.functions.convertToAssets(one_share).call()
        underlying_decimals = (
            token.underlying_decimals
            if token.underlying_decimals is not None
            else token.decimals
        )
        return assets / 10 ** underlying_decimals


class FixedPriceSource(BasePriceSource):
    """Constant reference value, for tokens tracked only for relative drift"""

    method = ValuationMethod.FIXED

    def fetch(self, token: TokenDescriptor) -> Optional[float]:
        return 1.0


class ChainlinkPriceSource(BasePriceSource):
    """Latest round answer of a Chainlink-style aggregator"""

    method = ValuationMethod.CHAINLINK

    def fetch(self, token: TokenDescriptor) -> Optional[float]:
        oracle_address = token.oracle_address
        if not oracle_address or oracle_address == "TBD":
            oracle_address = token.address
        oracle = self.connections.contract(token.chain, oracle_address, "ChainlinkAggregator")
        decimals = oracle.functions.decimals().call()
        round_data = oracle.functions.latestRoundData().call()
        answer = round_data[1]
        if answer <= 0:
            logger.warning(f"{token.symbol}: oracle returned non-positive answer {answer}")
            return None
        return answer / 10 ** decimals


class PythPriceSource(BasePriceSource):
    """Latest price from the Pyth Hermes service"""

    method = ValuationMethod.PYTH

    def fetch(self, token: TokenDescriptor) -> Optional[float]:
        response: requests.Response = requests.get(
            f"{self.settings.pyth_url}/v2/updates/price/latest",
            params={"ids[]": token.pyth_price_id, "parsed": "true"},
            timeout=self.settings.http_timeout,
        )
        response.raise_for_status()
        parsed = response.json().get("parsed") or []
        if not parsed:
            logger.warning(f"{token.symbol}: no parsed price for feed {token.pyth_price_id}")
            return None
        price: Dict[str, Any] = parsed[0]["price"]
        return int(price["price"]) * 10 ** int(price["expo"])


PRICE_SOURCES = {
    ValuationMethod.ERC4626.value: ERC4626PriceSource,
    ValuationMethod.FIXED.value: FixedPriceSource,
    ValuationMethod.CHAINLINK.value: ChainlinkPriceSource,
    ValuationMethod.PYTH.value: PythPriceSource,
}


class PriceSourceAdapter:
    """
    Dispatches a token to the source registered for its valuation method.

    fetch_price() never raises: failures are logged and reported as None,
    so one token cannot abort the cycle for the others.
    """

    def __init__(
        self,
        settings: TrackerSettings,
        connections: Optional[ChainConnections] = None,
        sources: Optional[Dict[str, BasePriceSource]] = None,
    ):
        self.settings = settings
        self.connections = connections or ChainConnections(
            settings.rpc_urls, settings.rpc_timeout
        )
        if sources is None:
            sources = {
                method: source_cls(self.connections, settings)
                for method, source_cls in PRICE_SOURCES.items()
            }
        self.sources = sources

    def fetch_price(self, token: TokenDescriptor) -> Optional[float]:
        if not token.is_resolved:
            logger.info(f"{token.symbol}: no address configured, skipping")
            return None

        source = self.sources.get(token.type)
        if source is None:
            logger.warning(f"{token.symbol}: unsupported valuation type '{token.type}'")
            return None

        try:
            price = source.fetch(token)
            if price is None:
                return None
            price = float(price)
        except Exception as e:
            logger.error(f"{token.symbol}: failed to fetch price: {e}")
            return None

        if not math.isfinite(price):
            logger.warning(f"{token.symbol}: non-finite price {price}, ignoring")
            return None
        return price

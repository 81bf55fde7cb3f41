"""
Configuration management for the yield tracker.

Includes:
- Loading configuration from a YAML file with ${ENV_VAR} substitution
- Overriding settings through environment variables
- Parsing the token descriptor list
- A typed settings view consumed by the indexer, store and API
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import dotenv
import yaml

from yield_tracker.exceptions import ConfigError
from yield_tracker.models import TokenDescriptor

logger = logging.getLogger(__name__)

DEFAULT_HORIZONS: Dict[str, float] = {
    "1h": 1,
    "3h": 3,
    "6h": 6,
    "12h": 12,
    "24h": 24,
    "3d": 72,
    "7d": 168,
    "14d": 336,
    "30d": 720,
}

# 90 days of hourly snapshots
DEFAULT_RETENTION_CAP = 2160
DEFAULT_COVERAGE_FLOOR = 0.8

DEFAULT_RPC_URLS: Dict[str, str] = {
    "ethereum": "https://eth.llamarpc.com",
    "arbitrum": "https://arb1.arbitrum.io/rpc",
}

RPC_ENV_VARS: Dict[str, str] = {
    "ethereum": "ETH_RPC_URL",
    "arbitrum": "ARB_RPC_URL",
    "base": "BASE_RPC_URL",
    "optimism": "OPTIMISM_RPC_URL",
    "polygon": "POLYGON_RPC_URL",
}


def _substitute_env(value: Any) -> Any:
    """Replace ${VAR} strings with environment values, recursively."""
    if isinstance(value, dict):
        return {k: _substitute_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env(v) for v in value]
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value.strip("${}")
        env_value = os.getenv(env_var)
        if env_value is None:
            logger.warning(f"Environment variable {env_var} not found")
        return env_value
    return value


class ConfigManager:
    """
    Service configuration holder.

    Loads settings from a YAML file and lets environment variables
    take priority over file values.
    """

    ENV_MAPPING = {
        "YIELD_TRACKER_DATA_DIR": "data_dir",
        "YIELD_TRACKER_RETENTION_CAP": "retention_cap",
        "YIELD_TRACKER_COVERAGE_FLOOR": "coverage_floor",
        "YIELD_TRACKER_RPC_TIMEOUT": "rpc_timeout",
        "YIELD_TRACKER_HTTP_TIMEOUT": "http_timeout",
        "YIELD_TRACKER_SNAPSHOTS_URL": "snapshots_url",
        "YIELD_TRACKER_LOG_LEVEL": "log_level",
        "YIELD_TRACKER_LOG_DIR": "log_dir",
        "YIELD_TRACKER_CONSOLE_LOGS": "console_logs",
    }

    FLOAT_KEYS = ["coverage_floor", "rpc_timeout", "http_timeout"]
    INT_KEYS = ["retention_cap"]
    BOOL_KEYS = ["console_logs"]

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path (Optional[str]): Path to the YAML file. When None,
                CONFIG_PATH is used, then ./config.yaml.
        """
        dotenv.load_dotenv()
        self.config_path = config_path or os.getenv("CONFIG_PATH") or "config.yaml"
        self.config: Dict[str, Any] = {}

        self._load_config_from_file()
        self._load_from_env()

        logger.info(f"Configuration loaded from {self.config_path}")

    def _load_config_from_file(self) -> None:
        """Load the YAML file. A missing file leaves an empty configuration."""
        try:
            with open(self.config_path, "r") as config_file:
                raw = yaml.safe_load(config_file) or {}
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {self.config_path}")
            self.config = {}
            return
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing configuration file {self.config_path}: {e}")

        if not isinstance(raw, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")
        self.config = _substitute_env(raw)
        logger.debug(f"Loaded configuration from {self.config_path}")

    def _load_from_env(self) -> None:
        """Override file values from environment variables."""
        for env_var, config_key in self.ENV_MAPPING.items():
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]

            if config_key in self.FLOAT_KEYS:
                try:
                    self.config[config_key] = float(value)
                except ValueError:
                    logger.error(f"Invalid float value for {env_var}: {value}")
                    continue
            elif config_key in self.INT_KEYS:
                try:
                    self.config[config_key] = int(value)
                except ValueError:
                    logger.error(f"Invalid integer value for {env_var}: {value}")
                    continue
            elif config_key in self.BOOL_KEYS:
                self.config[config_key] = value.lower() in ["true", "1", "yes", "y", "on"]
            else:
                self.config[config_key] = value

            logger.debug(f"Overriding {config_key} from environment variable {env_var}")

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.config[key] = value
        logger.debug(f"Set configuration {key} to {value}")

    def get_all(self) -> Dict[str, Any]:
        """Return a shallow copy of the whole configuration."""
        return self.config.copy()


class TrackerSettings:
    """Typed settings for the snapshot cycle, the store and the API."""

    def __init__(
        self,
        data_dir: str = "data",
        snapshots_file: str = "snapshots.json",
        retention_cap: int = DEFAULT_RETENTION_CAP,
        coverage_floor: float = DEFAULT_COVERAGE_FLOOR,
        horizons: Optional[Dict[str, float]] = None,
        rpc_urls: Optional[Dict[str, str]] = None,
        rpc_timeout: float = 30.0,
        http_timeout: float = 15.0,
        pyth_url: str = "https://hermes.pyth.network",
        snapshots_url: Optional[str] = None,
        publish: Optional[Dict[str, Any]] = None,
        log_level: str = "INFO",
        log_dir: Optional[str] = None,
        log_file: Optional[str] = None,
        console_logs: bool = True,
        log_format: Optional[str] = None,
    ):
        if retention_cap < 1:
            raise ConfigError(f"retention_cap must be positive, got {retention_cap}")
        if not 0 < coverage_floor <= 1:
            raise ConfigError(f"coverage_floor must be in (0, 1], got {coverage_floor}")

        self.data_dir = data_dir
        self.snapshots_file = snapshots_file
        self.retention_cap = retention_cap
        self.coverage_floor = coverage_floor
        self.horizons = dict(horizons) if horizons else dict(DEFAULT_HORIZONS)
        self.rpc_urls = dict(rpc_urls) if rpc_urls else {}
        self.rpc_timeout = rpc_timeout
        self.http_timeout = http_timeout
        self.pyth_url = pyth_url.rstrip("/")
        self.snapshots_url = snapshots_url
        self.publish = dict(publish) if publish else {}
        self.log_level = log_level
        self.log_dir = log_dir
        self.log_file = log_file
        self.console_logs = console_logs
        self.log_format = log_format

    @property
    def snapshots_path(self) -> str:
        return os.path.join(self.data_dir, self.snapshots_file)

    @classmethod
    def from_config(cls, config: ConfigManager) -> "TrackerSettings":
        """Build settings from a loaded ConfigManager."""
        horizons = config.get("horizons")
        if horizons is not None:
            if not isinstance(horizons, dict) or not horizons:
                raise ConfigError("horizons must be a non-empty mapping of label -> hours")
            try:
                horizons = {str(label): float(hours) for label, hours in horizons.items()}
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid horizon table: {horizons}")

        publish = config.get("publish") or {}
        snapshots_url = config.get("snapshots_url") or _public_object_url(publish)

        try:
            return cls(
                data_dir=config.get("data_dir", "data"),
                snapshots_file=config.get("snapshots_file", "snapshots.json"),
                retention_cap=int(config.get("retention_cap", DEFAULT_RETENTION_CAP)),
                coverage_floor=float(config.get("coverage_floor", DEFAULT_COVERAGE_FLOOR)),
                horizons=horizons,
                rpc_urls=get_rpc_urls(config),
                rpc_timeout=float(config.get("rpc_timeout", 30.0)),
                http_timeout=float(config.get("http_timeout", 15.0)),
                pyth_url=config.get("pyth_url", "https://hermes.pyth.network"),
                snapshots_url=snapshots_url,
                publish=publish,
                log_level=config.get("log_level", "INFO"),
                log_dir=config.get("log_dir"),
                log_file=config.get("log_file"),
                console_logs=bool(config.get("console_logs", True)),
                log_format=config.get("log_format"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid tracker settings: {e}")


def _public_object_url(publish: Dict[str, Any]) -> Optional[str]:
    """Public URL of the published document, when enough is configured."""
    url = publish.get("supabase_url")
    bucket = publish.get("bucket")
    if not url or not bucket:
        return None
    object_key = publish.get("object_key", "snapshots.json")
    return f"{url.rstrip('/')}/storage/v1/object/public/{bucket}/{object_key}"


def get_rpc_urls(config: ConfigManager) -> Dict[str, str]:
    """
    Resolve chain -> RPC URL.

    Priority: environment variable, then the `rpc` section of the file,
    then the public defaults.
    """
    rpc_urls = dict(DEFAULT_RPC_URLS)
    for chain, url in (config.get("rpc") or {}).items():
        if url:
            rpc_urls[chain.lower()] = url
    for chain, env_var in RPC_ENV_VARS.items():
        if os.getenv(env_var):
            rpc_urls[chain] = os.environ[env_var]
    return rpc_urls


def load_tokens(config: ConfigManager) -> List[TokenDescriptor]:
    """
    Parse the configured token list.

    Tokens are read from the `tokens` section, or from `tokens_file`
    (YAML or JSON with a top-level `tokens` list) when set.

    Raises:
        ConfigError: when the list is missing or an entry is invalid.
    """
    raw_tokens = config.get("tokens")
    tokens_file = config.get("tokens_file")

    if tokens_file:
        try:
            with open(tokens_file, "r") as f:
                if tokens_file.endswith(".json"):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read tokens file {tokens_file}: {e}")
        raw_tokens = (data or {}).get("tokens")

    if not isinstance(raw_tokens, list):
        raise ConfigError("No token list configured (expected a `tokens` list)")

    descriptors: List[TokenDescriptor] = []
    seen = set()
    for entry in raw_tokens:
        descriptor = TokenDescriptor.from_dict(entry)
        if descriptor.id in seen:
            raise ConfigError(f"Duplicate token id: {descriptor.id}")
        seen.add(descriptor.id)
        descriptors.append(descriptor)

    logger.info(f"Loaded {len(descriptors)} token descriptors")
    return descriptors

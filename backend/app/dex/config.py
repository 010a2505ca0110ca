"""Settings and pool metadata loading."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .models import PoolConfig

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"Environment variable {name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Environment variable {name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from ``DEX_*`` environment variables."""

    ws_url: str = ""
    pools_file: str = ""
    seed_timeout: float = 10.0
    lookback_blocks: int = 0
    max_reconnect_attempts: int = 5
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0

    @classmethod
    def from_env(cls) -> Settings:
        settings = cls(
            ws_url=os.environ.get("DEX_WS_URL", "").strip(),
            pools_file=os.environ.get("DEX_POOLS_FILE", "").strip(),
            seed_timeout=_env_float("DEX_SEED_TIMEOUT", cls.seed_timeout),
            lookback_blocks=_env_int("DEX_LOOKBACK_BLOCKS", cls.lookback_blocks),
            max_reconnect_attempts=_env_int("DEX_MAX_RECONNECT_ATTEMPTS", cls.max_reconnect_attempts),
            reconnect_base_delay=_env_float("DEX_RECONNECT_BASE_DELAY", cls.reconnect_base_delay),
            reconnect_max_delay=_env_float("DEX_RECONNECT_MAX_DELAY", cls.reconnect_max_delay),
        )
        if settings.seed_timeout <= 0:
            raise ConfigError("DEX_SEED_TIMEOUT must be positive")
        if settings.lookback_blocks < 0:
            raise ConfigError("DEX_LOOKBACK_BLOCKS must not be negative")
        if settings.max_reconnect_attempts < 0:
            raise ConfigError("DEX_MAX_RECONNECT_ATTEMPTS must not be negative")
        if settings.reconnect_base_delay < 0 or settings.reconnect_max_delay < settings.reconnect_base_delay:
            raise ConfigError("Reconnect delays must satisfy 0 <= base <= max")
        return settings


def _pool_from_entry(entry: Any, address: str | None = None) -> PoolConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"Pool entry must be an object, got {type(entry).__name__}")
    try:
        return PoolConfig(
            address=address or entry["address"],
            token0=entry["token0"],
            token1=entry["token1"],
            decimals0=entry["decimals0"],
            decimals1=entry["decimals1"],
            protocol=entry["type"],
        )
    except KeyError as e:
        raise ConfigError(f"Pool entry {address or entry.get('address', '?')} is missing field {e}") from None


def parse_pools(document: Any) -> list[PoolConfig]:
    """Build PoolConfigs from a parsed pool document.

    Accepts ``{"pools": {"<address>": {...}}}``, ``{"pools": [{...}]}`` or a
    bare list of pool objects carrying an ``address`` field.
    """
    if isinstance(document, dict):
        if "pools" not in document:
            raise ConfigError("Pool document has no 'pools' key")
        document = document["pools"]

    if isinstance(document, dict):
        pools = [_pool_from_entry(entry, address) for address, entry in document.items()]
    elif isinstance(document, list):
        pools = [_pool_from_entry(entry) for entry in document]
    else:
        raise ConfigError("Pool document must be a list or mapping of pools")

    seen: set[str] = set()
    for pool in pools:
        if pool.address in seen:
            raise ConfigError(f"Duplicate pool address {pool.address}")
        seen.add(pool.address)
    return pools


def load_pools(path: str | Path) -> list[PoolConfig]:
    """Read and validate a JSON pool metadata file."""
    try:
        document = json.loads(Path(path).read_text())
    except OSError as e:
        raise ConfigError(f"Cannot read pool file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Pool file {path} is not valid JSON: {e}") from e
    pools = parse_pools(document)
    logger.info("Loaded %d pools from %s", len(pools), path)
    return pools

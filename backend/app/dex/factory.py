"""Factories for event sources and the subscription manager."""

from __future__ import annotations

import logging

from .cache import PriceCache
from .config import Settings, load_pools
from .interface import EventSource
from .models import PoolConfig
from .seed_pools import DEFAULT_POOLS
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)


def resolve_pools(settings: Settings | None = None) -> list[PoolConfig]:
    """Pools from DEX_POOLS_FILE, or the built-in default set."""
    settings = settings or Settings.from_env()
    if settings.pools_file:
        return load_pools(settings.pools_file)
    logger.info("No pool file configured; using %d default pools", len(DEFAULT_POOLS))
    return list(DEFAULT_POOLS)


def create_event_source(pools: list[PoolConfig], settings: Settings | None = None) -> EventSource:
    """Create the appropriate event source based on environment variables.

    - DEX_WS_URL set and non-empty -> Web3EventSource (live chain data)
    - Otherwise -> SimulatedEventSource (GBM simulation)

    Returns an unconnected source. Caller must await source.connect().
    """
    settings = settings or Settings.from_env()

    if settings.ws_url:
        from .web3_source import Web3EventSource

        logger.info("Event source: Web3 WebSocket (live data)")
        return Web3EventSource(ws_url=settings.ws_url, lookback_blocks=settings.lookback_blocks)
    else:
        from .simulator import SimulatedEventSource

        logger.info("Event source: GBM simulator")
        return SimulatedEventSource(pools=pools)


def create_subscription_manager(
    source: EventSource,
    price_cache: PriceCache,
    settings: Settings | None = None,
) -> SubscriptionManager:
    settings = settings or Settings.from_env()
    return SubscriptionManager(
        source=source,
        price_cache=price_cache,
        seed_timeout=settings.seed_timeout,
        max_reconnect_attempts=settings.max_reconnect_attempts,
        reconnect_base_delay=settings.reconnect_base_delay,
        reconnect_max_delay=settings.reconnect_max_delay,
    )

"""DEX price ingestion and best-price aggregation.

Public API:
    PoolConfig            - Static pool metadata
    PriceRecord           - One pool's price for one pair direction
    BestPriceRecord       - Best pool for a pair direction
    PriceCache            - Thread-safe directional cache + best-price aggregator
    EventSource           - Abstract interface for log providers
    SubscriptionManager   - Per-pool tasks feeding the cache
    create_event_source   - Factory that selects Web3 or the simulator
    create_price_router   - FastAPI router factory for the read surface
"""

from .api import create_price_router
from .cache import PriceCache
from .factory import create_event_source, create_subscription_manager, resolve_pools
from .interface import EventSource, Subscription
from .models import BestPriceRecord, PoolConfig, PriceRecord, Protocol
from .subscriptions import PoolState, SubscriptionManager

__all__ = [
    "BestPriceRecord",
    "EventSource",
    "PoolConfig",
    "PoolState",
    "PriceCache",
    "PriceRecord",
    "Protocol",
    "Subscription",
    "SubscriptionManager",
    "create_event_source",
    "create_price_router",
    "create_subscription_manager",
    "resolve_pools",
]

"""Exception hierarchy for the DEX price feed.

Per-event errors (DecodeError, InvalidPriceError) are dropped by the caller
and never reach the cache. Per-pool errors (SubscriptionError,
SubscribeEstablishError) are handled by the subscription manager.
ConfigError is raised only during startup.
"""

from __future__ import annotations

from typing import Any


class DexFeedError(Exception):
    """Base exception for the DEX price feed."""


class ConfigError(DexFeedError):
    """Malformed pool metadata, bad settings, or an unreachable event source."""


class DecodeError(DexFeedError):
    """A log payload could not be decoded into a trade event."""

    def __init__(self, pool_address: str, protocol: Any, reason: str) -> None:
        self.pool_address = pool_address
        self.protocol = protocol
        self.reason = reason
        protocol_name = getattr(protocol, "value", protocol)
        super().__init__(f"[{protocol_name} {pool_address}] cannot decode event: {reason}")


class InvalidPriceError(DexFeedError):
    """A computed price is zero, negative, or not finite."""

    def __init__(self, price: Any, pool_address: str | None = None) -> None:
        self.price = price
        self.pool_address = pool_address
        where = f" from pool {pool_address}" if pool_address else ""
        super().__init__(f"Invalid price {price!r}{where}: must be positive and finite")


class SubscriptionError(DexFeedError):
    """Transport-level error reported on a live subscription."""

    def __init__(self, pool_address: str, reason: str) -> None:
        self.pool_address = pool_address
        self.reason = reason
        super().__init__(f"Subscription error for {pool_address}: {reason}")


class SubscribeEstablishError(DexFeedError):
    """A subscription could not be created at all."""

    def __init__(self, pool_address: str, reason: str) -> None:
        self.pool_address = pool_address
        self.reason = reason
        super().__init__(f"Cannot subscribe to {pool_address}: {reason}")

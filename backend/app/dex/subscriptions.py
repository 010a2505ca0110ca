"""Per-pool subscription tasks feeding the price cache."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum

from .cache import PriceCache
from .decoders import decode_quote, get_decoder
from .errors import DecodeError, InvalidPriceError, SubscribeEstablishError, SubscriptionError
from .interface import EventSource, Subscription
from .models import LogEvent, PoolConfig, PriceRecord

logger = logging.getLogger(__name__)


class PoolState(str, Enum):
    STARTING = "starting"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class PoolStatus:
    """Mutable per-pool bookkeeping. Only the pool's own task writes to it."""

    pool: PoolConfig
    state: PoolState = PoolState.STARTING
    events_applied: int = 0
    events_dropped: int = 0
    reconnects: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            **self.pool.to_dict(),
            "state": self.state.value,
            "events_applied": self.events_applied,
            "events_dropped": self.events_dropped,
            "reconnects": self.reconnects,
            "last_error": self.last_error,
        }


class SubscriptionManager:
    """Owns one asyncio task per pool and drives decoded prices into a PriceCache.

    Per pool:
        STARTING -> seed from the most recent log -> subscribe -> SUBSCRIBED
        SUBSCRIBED -> (SubscriptionError) -> RECONNECTING -> re-seed -> SUBSCRIBED
        STARTING/RECONNECTING -> (cannot subscribe) -> FAILED

    A FAILED pool is excluded for the lifetime of the manager and its records
    are removed from the cache; every other pool keeps running.
    """

    def __init__(
        self,
        source: EventSource,
        price_cache: PriceCache,
        seed_timeout: float = 10.0,
        max_reconnect_attempts: int = 5,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
    ) -> None:
        self._source = source
        self._cache = price_cache
        self._seed_timeout = seed_timeout
        self._max_attempts = max_reconnect_attempts
        self._base_delay = reconnect_base_delay
        self._max_delay = reconnect_max_delay
        self._status: dict[str, PoolStatus] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._subscriptions: dict[str, Subscription] = {}  # Live channel per pool

    async def start(self, pools: list[PoolConfig]) -> None:
        """Seed and subscribe every pool concurrently, then spawn the consumer tasks.

        Returns once every pool is either SUBSCRIBED or FAILED.
        """
        for pool in pools:
            self._status[pool.address] = PoolStatus(pool=pool)

        subscriptions = await asyncio.gather(*(self._open(pool) for pool in pools))

        for pool, subscription in zip(pools, subscriptions):
            if subscription is None:
                continue
            self._subscriptions[pool.address] = subscription
            self._tasks[pool.address] = asyncio.create_task(
                self._run_pool(pool, subscription), name=f"pool-{pool.address}"
            )

        failed = [a for a, s in self._status.items() if s.state is PoolState.FAILED]
        logger.info(
            "Subscription manager started: %d/%d pools subscribed",
            len(self._tasks),
            len(pools),
        )
        if failed:
            logger.warning("Pools excluded from coverage: %s", ", ".join(failed))

    async def stop(self) -> None:
        """Cancel every pool task and close every channel. Safe to call multiple times."""
        addresses = list(self._tasks)
        tasks = list(self._tasks.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for address, result in zip(addresses, results):
            if isinstance(result, Exception):
                logger.error("Pool task for %s crashed", address, exc_info=result)
        self._tasks.clear()

        # A task cancelled before its first step never reaches its finally block
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            await subscription.close()
        for status in self._status.values():
            if status.state is not PoolState.FAILED:
                status.state = PoolState.STOPPED
        logger.info("Subscription manager stopped")

    def get_states(self) -> dict[str, PoolState]:
        return {address: s.state for address, s in self._status.items()}

    def get_status(self) -> list[PoolStatus]:
        return list(self._status.values())

    def process_log(self, pool: PoolConfig, log: LogEvent) -> tuple[PriceRecord, PriceRecord] | None:
        """Decode, normalize and cache one log. Synchronous; no I/O.

        Per-event failures are logged and the event dropped with the cache
        untouched. Returns the (forward, reverse) records when applied.
        """
        status = self._status.get(pool.address)
        try:
            quote = decode_quote(log, pool)
        except (DecodeError, InvalidPriceError) as e:
            if status is not None:
                status.events_dropped += 1
            logger.warning(
                "Dropping %s event from %s (%s_%s, block %d): %s",
                pool.protocol.value,
                pool.address,
                pool.token0,
                pool.token1,
                log.block_number,
                e,
            )
            return None

        forward, reverse = self._cache.apply(pool, quote)
        if status is not None:
            status.events_applied += 1
        logger.debug(
            "%s %s price update: %s/%s log=%s (block %d)",
            pool.protocol.value,
            pool.address,
            pool.token0,
            pool.token1,
            forward.log_price,
            log.block_number,
        )
        return forward, reverse

    # --- Internal ---

    async def _open(self, pool: PoolConfig) -> Subscription | None:
        """Seed then subscribe. Returns None when the pool ends up FAILED."""
        status = self._status[pool.address]
        topic = get_decoder(pool.protocol).topic
        await self._seed(pool, topic)
        try:
            subscription = await self._source.subscribe(pool.address, topic)
        except SubscribeEstablishError as e:
            self._fail(pool, str(e))
            return None
        status.state = PoolState.SUBSCRIBED
        logger.info("Subscribed to %s pool %s (%s_%s)", pool.protocol.value, pool.address, pool.token0, pool.token1)
        return subscription

    async def _seed(self, pool: PoolConfig, topic: bytes) -> None:
        """Apply the most recent log, if the source returns one within seed_timeout."""
        try:
            logs = await asyncio.wait_for(
                self._source.filter_recent_events(pool.address, topic),
                timeout=self._seed_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Seed query for %s timed out after %.1fs; waiting for live events",
                pool.address,
                self._seed_timeout,
            )
            return
        except Exception as e:
            # Seeding is best effort; the live subscription still covers the pool.
            logger.warning("Seed query for %s failed: %s", pool.address, e)
            return
        if logs:
            self.process_log(pool, logs[-1])

    async def _run_pool(self, pool: PoolConfig, subscription: Subscription) -> None:
        """Consume one pool's channel until cancelled or the pool fails."""
        status = self._status[pool.address]
        try:
            while True:
                try:
                    log = await subscription.next()
                except SubscriptionError as e:
                    status.last_error = e.reason
                    logger.warning("%s", e)
                    await subscription.close()
                    replacement = await self._reconnect(pool)
                    if replacement is None:
                        return
                    subscription = replacement
                    continue
                self.process_log(pool, log)
        finally:
            await subscription.close()

    async def _reconnect(self, pool: PoolConfig) -> Subscription | None:
        """Resubscribe with bounded exponential backoff, then re-seed."""
        status = self._status[pool.address]
        status.state = PoolState.RECONNECTING
        topic = get_decoder(pool.protocol).topic

        for attempt in range(self._max_attempts):
            delay = self.backoff_delay(attempt)
            logger.info(
                "Reconnecting %s in %.2fs (attempt %d/%d)",
                pool.address,
                delay,
                attempt + 1,
                self._max_attempts,
            )
            await asyncio.sleep(delay)
            try:
                subscription = await self._source.subscribe(pool.address, topic)
            except SubscribeEstablishError as e:
                status.last_error = e.reason
                logger.warning("Reconnect attempt %d for %s failed: %s", attempt + 1, pool.address, e.reason)
                continue
            status.reconnects += 1
            self._subscriptions[pool.address] = subscription
            await self._seed(pool, topic)
            status.state = PoolState.SUBSCRIBED
            logger.info("Resubscribed to %s", pool.address)
            return subscription

        logger.error("Giving up on %s after %d reconnect attempts", pool.address, self._max_attempts)
        self._fail(pool, status.last_error or "reconnect attempts exhausted")
        return None

    def backoff_delay(self, attempt: int) -> float:
        """base * 2**attempt capped at max_delay, plus up to 10% jitter."""
        delay = min(self._base_delay * (2**attempt), self._max_delay)
        return delay + random.uniform(0, delay * 0.1)

    def _fail(self, pool: PoolConfig, reason: str) -> None:
        status = self._status[pool.address]
        status.state = PoolState.FAILED
        status.last_error = reason
        self._subscriptions.pop(pool.address, None)
        removed = self._cache.remove_pool(pool.address)
        logger.warning(
            "Pool %s (%s_%s) excluded from coverage: %s (%d cached records removed)",
            pool.address,
            pool.token0,
            pool.token1,
            reason,
            removed,
        )

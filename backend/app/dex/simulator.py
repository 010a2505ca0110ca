"""GBM-driven simulated event source emitting ABI-encoded pool logs."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from fractions import Fraction
from math import isqrt

import numpy as np
from eth_abi import encode as abi_encode

from .decoders import Q96, get_decoder
from .errors import SubscribeEstablishError
from .interface import EventSource, Subscription
from .models import LogEvent, PoolConfig, Protocol
from .normalizer import adjust_decimals
from .seed_pools import (
    DEFAULT_CORR,
    DEFAULT_PARAMS,
    POOL_PARAMS,
    SAME_PAIR_CORR,
    SEED_PRICES,
    SHARED_TOKEN_CORR,
)

logger = logging.getLogger(__name__)

_ZERO_WORD = bytes(32)


def _address_topic(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def _random_address() -> str:
    return "0x" + random.randbytes(20).hex()


def build_uniswap_log(
    pool: PoolConfig,
    price: float | Fraction,
    block_number: int = 0,
    log_index: int = 0,
) -> LogEvent:
    """Encode a Uniswap V3 Swap log whose sqrtPriceX96 decodes to ``price``."""
    raw = adjust_decimals(Fraction(price), pool.decimals1 - pool.decimals0)
    sqrt_price_x96 = isqrt(raw.numerator * Q96 * Q96 // raw.denominator)
    tick = math.floor(math.log(float(raw)) / math.log(1.0001)) if raw > 0 else 0
    amount0 = random.randint(1, 10**6) * 10**pool.decimals0 // 100
    amount1 = -int(amount0 * raw)
    if random.random() < 0.5:
        amount0, amount1 = -amount0, -amount1
    data = abi_encode(
        ["int256", "int256", "uint160", "uint128", "int24"],
        [amount0, amount1, sqrt_price_x96, random.randint(10**15, 10**20), tick],
    )
    topics = (
        get_decoder(Protocol.UNISWAP_V3).topic,
        _address_topic(_random_address()),
        _address_topic(_random_address()),
    )
    return LogEvent(
        address=pool.address,
        topics=topics,
        data=data,
        block_number=block_number,
        log_index=log_index,
    )


def build_curve_log(
    pool: PoolConfig,
    price: float | Fraction,
    block_number: int = 0,
    log_index: int = 0,
    sold_id: int | None = None,
) -> LogEvent:
    """Encode a Curve TokenExchange log whose amounts decode to ``price``."""
    amount1 = random.randint(1, 10**6) * 10**pool.decimals1 // 100
    amount0 = round(adjust_decimals(Fraction(price) * amount1, pool.decimals0 - pool.decimals1))
    if sold_id is None:
        sold_id = random.choice([0, 1])
    if sold_id == 0:
        values = [0, amount0, 1, amount1]
    else:
        values = [1, amount1, 0, amount0]
    data = abi_encode(["int128", "uint256", "int128", "uint256"], values)
    topics = (get_decoder(Protocol.CURVE).topic, _address_topic(_random_address()))
    return LogEvent(
        address=pool.address,
        topics=topics,
        data=data,
        block_number=block_number,
        log_index=log_index,
    )


_BUILDERS = {
    Protocol.UNISWAP_V3: build_uniswap_log,
    Protocol.CURVE: build_curve_log,
}


class GBMSimulator:
    """Geometric Brownian Motion over pool prices, correlated by shared tokens.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Pools quoting the same pair are strongly correlated, so their prices stay
    close; occasional pool-local shocks open a gap between venues.
    """

    # 12s blocks expressed as a fraction of a (24/7) year
    SECONDS_PER_YEAR = 365 * 24 * 3600
    DEFAULT_DT = 12 / SECONDS_PER_YEAR  # ~3.8e-7

    def __init__(
        self,
        pools: list[PoolConfig],
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability

        self._pools: list[PoolConfig] = list(pools)
        self._prices: dict[str, float] = {}
        self._params: dict[str, dict[str, float]] = {}
        self._cholesky: np.ndarray | None = None

        for pool in self._pools:
            self._prices[pool.address] = SEED_PRICES.get(pool.address, random.uniform(0.5, 2.0))
            self._params[pool.address] = POOL_PARAMS.get(pool.address, dict(DEFAULT_PARAMS))
        self._rebuild_cholesky()

    def step(self) -> dict[str, float]:
        """Advance every pool by one time step. Returns {pool_address: new_price}."""
        n = len(self._pools)
        if n == 0:
            return {}

        z = np.random.standard_normal(n)
        if self._cholesky is not None:
            z = self._cholesky @ z

        result: dict[str, float] = {}
        for i, pool in enumerate(self._pools):
            params = self._params[pool.address]
            mu = params["mu"]
            sigma = params["sigma"]

            drift = (mu - 0.5 * sigma**2) * self._dt
            diffusion = sigma * math.sqrt(self._dt) * z[i]
            self._prices[pool.address] *= math.exp(drift + diffusion)

            # Pool-local dislocation (a large trade on one venue only)
            if random.random() < self._event_prob:
                shock = random.uniform(0.002, 0.01) * random.choice([-1, 1])
                self._prices[pool.address] *= 1 + shock
                logger.debug("Simulated dislocation on %s: %+.2f%%", pool.address, shock * 100)

            result[pool.address] = self._prices[pool.address]
        return result

    def get_price(self, pool_address: str) -> float | None:
        return self._prices.get(pool_address)

    @property
    def pools(self) -> list[PoolConfig]:
        return list(self._pools)

    def _rebuild_cholesky(self) -> None:
        n = len(self._pools)
        if n <= 1:
            self._cholesky = None
            return

        corr = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                rho = self._pairwise_correlation(self._pools[i], self._pools[j])
                corr[i, j] = rho
                corr[j, i] = rho

        try:
            self._cholesky = np.linalg.cholesky(corr)
        except np.linalg.LinAlgError:
            logger.warning("Pool correlation matrix is not positive definite; using independent moves")
            self._cholesky = None

    @staticmethod
    def _pairwise_correlation(a: PoolConfig, b: PoolConfig) -> float:
        tokens_a = {a.token0, a.token1}
        tokens_b = {b.token0, b.token1}
        shared = len(tokens_a & tokens_b)
        if shared == 2:
            return SAME_PAIR_CORR
        if shared == 1:
            return SHARED_TOKEN_CORR
        return DEFAULT_CORR


class SimulatedEventSource(EventSource):
    """EventSource backed by the GBM simulator.

    Every ``update_interval`` seconds each pool emits one encoded trade log to
    its subscribers. ``error_probability`` injects transport errors into live
    subscriptions; addresses in ``unavailable`` refuse to subscribe.
    """

    def __init__(
        self,
        pools: list[PoolConfig],
        update_interval: float = 0.5,
        event_probability: float = 0.001,
        error_probability: float = 0.0,
        unavailable: set[str] | None = None,
    ) -> None:
        self._pools = {pool.address: pool for pool in pools}
        self._interval = update_interval
        self._event_prob = event_probability
        self._error_prob = error_probability
        self._unavailable = {a.lower() for a in unavailable or ()}
        self._sim: GBMSimulator | None = None
        self._task: asyncio.Task | None = None
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._latest: dict[str, LogEvent] = {}
        self._block = 0

    async def connect(self) -> None:
        if self._task is not None:
            return
        self._sim = GBMSimulator(list(self._pools.values()), event_probability=self._event_prob)
        self._block = random.randint(18_000_000, 19_000_000)
        for address, pool in self._pools.items():
            price = self._sim.get_price(address)
            if price is not None:
                self._latest[address] = _BUILDERS[pool.protocol](pool, price, self._block)
        self._task = asyncio.create_task(self._run_loop(), name="event-simulator")
        logger.info("Event simulator started with %d pools", len(self._pools))

    async def filter_recent_events(self, pool_address: str, topic: bytes) -> list[LogEvent]:
        log = self._latest.get(pool_address.lower())
        if log is None or log.topics[0] != topic:
            return []
        return [log]

    async def subscribe(self, pool_address: str, topic: bytes) -> Subscription:
        address = pool_address.lower()
        if address in self._unavailable:
            raise SubscribeEstablishError(address, "pool unavailable in simulation")
        pool = self._pools.get(address)
        if pool is None:
            raise SubscribeEstablishError(address, "unknown pool")
        if get_decoder(pool.protocol).topic != topic:
            raise SubscribeEstablishError(address, "topic does not match the pool protocol")
        subscription = Subscription(address, topic, on_close=self._detach)
        self._subscriptions.setdefault(address, []).append(subscription)
        return subscription

    async def close(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                await subscription.close()
        logger.info("Event simulator stopped")

    def mark_unavailable(self, pool_address: str) -> None:
        self._unavailable.add(pool_address.lower())

    def mark_available(self, pool_address: str) -> None:
        self._unavailable.discard(pool_address.lower())

    async def _detach(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.pool_address, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)

    async def _run_loop(self) -> None:
        """Core loop: step the simulation, emit one log per pool, sleep."""
        while True:
            try:
                self._emit(self._sim.step() if self._sim else {})
            except Exception:
                logger.exception("Simulator step failed")
            await asyncio.sleep(self._interval)

    def _emit(self, prices: dict[str, float]) -> None:
        self._block += 1
        for index, (address, price) in enumerate(prices.items()):
            pool = self._pools[address]
            log = _BUILDERS[pool.protocol](pool, price, self._block, index)
            self._latest[address] = log
            for subscription in list(self._subscriptions.get(address, ())):
                if random.random() < self._error_prob:
                    subscription.put_error("simulated transport error")
                subscription.put_event(log)

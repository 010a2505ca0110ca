"""Fixtures for DEX price feed tests."""

import asyncio

import pytest

from app.dex.errors import SubscribeEstablishError
from app.dex.interface import EventSource, Subscription
from app.dex.models import LogEvent, PoolConfig, Protocol

USDC_WETH_A = "0x" + "aa" * 20
USDC_WETH_B = "0x" + "ab" * 20
USDC_DAI_CURVE = "0x" + "cc" * 20


class FakeEventSource(EventSource):
    """In-memory EventSource with scripted seeding and subscribe failures."""

    def __init__(self) -> None:
        self.recent: dict[str, list[LogEvent]] = {}
        self.refuse: set[str] = set()  # Always fail to subscribe
        self.refuse_times: dict[str, int] = {}  # Fail the next N subscribe calls
        self.seed_delay = 0.0
        self.seed_error: Exception | None = None
        self.subscribe_calls: dict[str, int] = {}
        self.seed_calls: dict[str, int] = {}
        self.subscriptions: dict[str, list[Subscription]] = {}

    async def connect(self) -> None:
        pass

    async def filter_recent_events(self, pool_address: str, topic: bytes) -> list[LogEvent]:
        self.seed_calls[pool_address] = self.seed_calls.get(pool_address, 0) + 1
        if self.seed_delay:
            await asyncio.sleep(self.seed_delay)
        if self.seed_error is not None:
            raise self.seed_error
        return list(self.recent.get(pool_address, []))

    async def subscribe(self, pool_address: str, topic: bytes) -> Subscription:
        self.subscribe_calls[pool_address] = self.subscribe_calls.get(pool_address, 0) + 1
        if pool_address in self.refuse:
            raise SubscribeEstablishError(pool_address, "refused")
        if self.refuse_times.get(pool_address, 0) > 0:
            self.refuse_times[pool_address] -= 1
            raise SubscribeEstablishError(pool_address, "temporarily refused")
        subscription = Subscription(pool_address, topic)
        self.subscriptions.setdefault(pool_address, []).append(subscription)
        return subscription

    async def close(self) -> None:
        pass

    def latest(self, pool_address: str) -> Subscription:
        return self.subscriptions[pool_address][-1]


@pytest.fixture
def usdc_weth_pool() -> PoolConfig:
    return PoolConfig(USDC_WETH_A, "USDC", "WETH", 6, 18, Protocol.UNISWAP_V3)


@pytest.fixture
def usdc_weth_pool_b() -> PoolConfig:
    return PoolConfig(USDC_WETH_B, "USDC", "WETH", 6, 18, Protocol.UNISWAP_V3)


@pytest.fixture
def usdc_dai_curve() -> PoolConfig:
    return PoolConfig(USDC_DAI_CURVE, "USDC", "DAI", 6, 18, Protocol.CURVE)


@pytest.fixture
def fake_source() -> FakeEventSource:
    return FakeEventSource()

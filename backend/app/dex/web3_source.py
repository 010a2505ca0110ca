"""Live event source over an Ethereum JSON-RPC WebSocket (web3.py)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3, WebSocketProvider

from .errors import ConfigError, SubscribeEstablishError
from .interface import EventSource, Subscription
from .models import LogEvent

logger = logging.getLogger(__name__)


def to_log_event(raw: Any) -> LogEvent:
    """Convert a web3 log (dict or AttributeDict) into a LogEvent."""
    tx_hash = raw.get("transactionHash")
    return LogEvent(
        address=str(raw["address"]).lower(),
        topics=tuple(bytes(HexBytes(t)) for t in raw["topics"]),
        data=bytes(HexBytes(raw["data"])),
        block_number=int(raw.get("blockNumber") or 0),
        log_index=int(raw.get("logIndex") or 0),
        transaction_hash="0x" + bytes(HexBytes(tx_hash)).hex() if tx_hash else "",
    )


class Web3EventSource(EventSource):
    """EventSource backed by ``eth_subscribe("logs")`` on one WebSocket.

    A single reader task drains the socket and routes each notification to
    its Subscription by subscription id. If the reader fails, every open
    subscription receives a SubscriptionError; the socket is re-opened on
    the next ``subscribe()`` call.
    """

    def __init__(self, ws_url: str, lookback_blocks: int = 0) -> None:
        self._ws_url = ws_url
        self._lookback = lookback_blocks
        self._w3: AsyncWeb3 | None = None
        self._reader: asyncio.Task | None = None
        self._by_id: dict[str, Subscription] = {}
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        try:
            await self._ensure_connected()
        except Exception as e:
            raise ConfigError(f"Cannot reach event source at {self._ws_url}: {e}") from e
        logger.info("Connected to %s", self._ws_url)

    async def filter_recent_events(self, pool_address: str, topic: bytes) -> list[LogEvent]:
        await self._ensure_connected()
        latest = await self._w3.eth.block_number
        logs = await self._w3.eth.get_logs(
            {
                "address": Web3.to_checksum_address(pool_address),
                "topics": ["0x" + topic.hex()],
                "fromBlock": max(0, latest - self._lookback),
                "toBlock": latest,
            }
        )
        events = [to_log_event(log) for log in logs]
        events.sort(key=lambda e: e.position)
        return events

    async def subscribe(self, pool_address: str, topic: bytes) -> Subscription:
        try:
            await self._ensure_connected()
            sub_id = await self._w3.eth.subscribe(
                "logs",
                {"address": Web3.to_checksum_address(pool_address), "topics": ["0x" + topic.hex()]},
            )
        except Exception as e:
            raise SubscribeEstablishError(pool_address, str(e)) from e

        subscription = Subscription(pool_address, topic, on_close=self._unsubscribe)
        subscription.id = str(sub_id)
        self._by_id[subscription.id] = subscription
        logger.debug("eth_subscribe %s -> %s", pool_address, subscription.id)
        return subscription

    async def close(self) -> None:
        if self._reader and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        self._reader = None
        self._by_id.clear()
        if self._w3 is not None:
            await self._w3.provider.disconnect()
            self._w3 = None
            logger.info("Disconnected from %s", self._ws_url)

    # --- Internal ---

    async def _ensure_connected(self) -> None:
        """Open the socket and start the reader if either is missing."""
        async with self._connect_lock:
            if self._w3 is not None and self._reader is not None and not self._reader.done():
                return
            if self._w3 is not None:
                await self._w3.provider.disconnect()
            w3 = AsyncWeb3(WebSocketProvider(self._ws_url))
            await w3.provider.connect()
            self._w3 = w3
            self._reader = asyncio.create_task(self._read_loop(w3), name="web3-log-reader")

    async def _read_loop(self, w3: AsyncWeb3) -> None:
        try:
            async for message in w3.socket.process_subscriptions():
                sub_id = str(message.get("subscription"))
                subscription = self._by_id.get(sub_id)
                if subscription is None:
                    logger.debug("Dropping notification for unknown subscription %s", sub_id)
                    continue
                try:
                    subscription.put_event(to_log_event(message["result"]))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Malformed log notification for %s: %s", subscription.pool_address, e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("WebSocket reader failed: %s", e)
            self._broadcast_error(e)
        else:
            self._broadcast_error("subscription stream closed")

    def _broadcast_error(self, reason: str | BaseException) -> None:
        """Server-side subscriptions die with the socket; notify and forget them."""
        subscriptions = list(self._by_id.values())
        self._by_id.clear()
        for subscription in subscriptions:
            subscription.put_error(reason)

    async def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription.id is None or self._by_id.pop(subscription.id, None) is None:
            return
        if self._w3 is None:
            return
        try:
            await self._w3.eth.unsubscribe(subscription.id)
        except Exception as e:
            logger.warning("eth_unsubscribe %s failed: %s", subscription.id, e)

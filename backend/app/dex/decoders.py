"""Per-protocol log decoders.

Each decoder turns a raw contract log into a typed trade event and then into
the pool's forward price, decimal-adjusted to human units. Adding a protocol
means adding a ProtocolDecoder subclass and registering it in DECODERS.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from fractions import Fraction
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from .errors import ConfigError, DecodeError, InvalidPriceError
from .models import CurveExchange, LogEvent, PoolConfig, Protocol, Quote, UniswapSwap
from .normalizer import adjust_decimals, normalize

Q96 = 2**96


def event_topic(signature: str) -> bytes:
    """topic0 for an event signature such as ``Transfer(address,address,uint256)``."""
    return bytes(Web3.keccak(text=signature))


def _topic_address(topic: bytes) -> str:
    return "0x" + bytes(topic)[-20:].hex()


class ProtocolDecoder(ABC):
    """Decodes one protocol family's trade event."""

    protocol: Protocol
    event_signature: str
    data_types: tuple[str, ...]

    def __init__(self) -> None:
        self.topic = event_topic(self.event_signature)

    @property
    def topic_hex(self) -> str:
        return "0x" + self.topic.hex()

    def decode(self, log: LogEvent, pool: PoolConfig) -> Fraction:
        """Raw log -> decimal-adjusted forward price."""
        return self.forward_price(self.parse(log, pool), pool)

    def parse(self, log: LogEvent, pool: PoolConfig) -> Any:
        """Raw log -> typed event. Raises DecodeError on any malformed payload."""
        if not log.topics or bytes(log.topics[0]) != self.topic:
            raise DecodeError(pool.address, self.protocol, "unexpected event topic")
        try:
            values = abi_decode(list(self.data_types), bytes(log.data))
        except (DecodingError, TypeError, ValueError) as e:
            raise DecodeError(pool.address, self.protocol, f"bad data section: {e}") from e
        return self._build(values, log, pool)

    @abstractmethod
    def _build(self, values: tuple, log: LogEvent, pool: PoolConfig) -> Any:
        """Assemble the typed event from the decoded data fields."""

    @abstractmethod
    def forward_price(self, event: Any, pool: PoolConfig) -> Fraction:
        """Typed event -> price of token0 in units of token1 (human units)."""


class UniswapV3Decoder(ProtocolDecoder):
    """Uniswap V3 ``Swap``: price from the post-swap ``sqrtPriceX96``.

    price = (sqrtPriceX96 / 2**96)**2 * 10**(decimals0 - decimals1)
    """

    protocol = Protocol.UNISWAP_V3
    event_signature = "Swap(address,address,int256,int256,uint160,uint128,int24)"
    data_types = ("int256", "int256", "uint160", "uint128", "int24")

    def _build(self, values: tuple, log: LogEvent, pool: PoolConfig) -> UniswapSwap:
        amount0, amount1, sqrt_price_x96, liquidity, tick = values
        return UniswapSwap(
            amount0=amount0,
            amount1=amount1,
            sqrt_price_x96=sqrt_price_x96,
            liquidity=liquidity,
            tick=tick,
        )

    def forward_price(self, event: UniswapSwap, pool: PoolConfig) -> Fraction:
        raw = Fraction(event.sqrt_price_x96 * event.sqrt_price_x96, Q96 * Q96)
        return adjust_decimals(raw, pool.decimals0 - pool.decimals1)


class CurveDecoder(ProtocolDecoder):
    """Curve ``TokenExchange``: price from the exchanged amounts.

    Amounts are oriented by coin index so the ratio is always the token0
    amount over the token1 amount, then scaled by 10**(decimals1 - decimals0).

    The result is token0 per token1, the opposite unit of the Uniswap quote,
    so a Curve and a Uniswap pool sharing a pair key quote inverse units.
    """

    protocol = Protocol.CURVE
    event_signature = "TokenExchange(address,int128,uint256,int128,uint256)"
    data_types = ("int128", "uint256", "int128", "uint256")

    def _build(self, values: tuple, log: LogEvent, pool: PoolConfig) -> CurveExchange:
        sold_id, tokens_sold, bought_id, tokens_bought = values
        if {sold_id, bought_id} != {0, 1}:
            raise DecodeError(
                pool.address,
                self.protocol,
                f"exchange between coins {sold_id}->{bought_id} is not the configured pair",
            )
        buyer = _topic_address(log.topics[1]) if len(log.topics) > 1 else ""
        return CurveExchange(
            buyer=buyer,
            sold_id=sold_id,
            tokens_sold=tokens_sold,
            bought_id=bought_id,
            tokens_bought=tokens_bought,
        )

    def forward_price(self, event: CurveExchange, pool: PoolConfig) -> Fraction:
        if event.sold_id == 0:
            amount0, amount1 = event.tokens_sold, event.tokens_bought
        else:
            amount0, amount1 = event.tokens_bought, event.tokens_sold
        if amount1 == 0:
            raise InvalidPriceError(f"{amount0}/0", pool.address)
        raw = Fraction(amount0, amount1)
        return adjust_decimals(raw, pool.decimals1 - pool.decimals0)


DECODERS: dict[Protocol, ProtocolDecoder] = {
    Protocol.UNISWAP_V3: UniswapV3Decoder(),
    Protocol.CURVE: CurveDecoder(),
}


def get_decoder(protocol: Protocol | str) -> ProtocolDecoder:
    try:
        return DECODERS[Protocol(protocol)]
    except (KeyError, ValueError):
        raise ConfigError(f"No decoder registered for protocol {protocol!r}") from None


def decode_quote(log: LogEvent, pool: PoolConfig) -> Quote:
    """Full per-event pipeline short of the cache write: decode then normalize."""
    price = get_decoder(pool.protocol).decode(log, pool)
    return normalize(price, pool.address)

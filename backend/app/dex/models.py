"""Data models for DEX price ingestion."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from enum import Enum
from fractions import Fraction

from .errors import ConfigError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# uint256 cannot hold 10**78, so no real token declares more decimals than this
MAX_DECIMALS = 77


class Protocol(str, Enum):
    """Supported pool families. Values match the ``type`` field of pool configs."""

    UNISWAP_V3 = "uniswap"
    CURVE = "curve"


def pair_key(token_a: str, token_b: str) -> str:
    """Key for "price of token_a in units of token_b"."""
    return f"{token_a}_{token_b}"


def normalize_address(address: str) -> str:
    """Lowercase a 0x-prefixed 20-byte hex address. Raises ConfigError if malformed."""
    if not isinstance(address, str) or not _ADDRESS_RE.match(address.strip()):
        raise ConfigError(f"Invalid pool address: {address!r}")
    return address.strip().lower()


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Static metadata for one pool. Identity is the (lowercased) address."""

    address: str
    token0: str
    token1: str
    decimals0: int
    decimals1: int
    protocol: Protocol

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", normalize_address(self.address))
        try:
            object.__setattr__(self, "protocol", Protocol(self.protocol))
        except ValueError:
            raise ConfigError(f"Unknown protocol {self.protocol!r} for pool {self.address}") from None
        if not self.token0 or not self.token1:
            raise ConfigError(f"Pool {self.address} is missing a token symbol")
        if self.token0 == self.token1:
            raise ConfigError(f"Pool {self.address} trades {self.token0} against itself")
        for name in ("decimals0", "decimals1"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_DECIMALS:
                raise ConfigError(f"Pool {self.address}: {name} must be an int in 0..{MAX_DECIMALS}, got {value!r}")

    @property
    def forward_key(self) -> str:
        return pair_key(self.token0, self.token1)

    @property
    def reverse_key(self) -> str:
        return pair_key(self.token1, self.token0)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "token0": self.token0,
            "token1": self.token1,
            "decimals0": self.decimals0,
            "decimals1": self.decimals1,
            "type": self.protocol.value,
        }


@dataclass(frozen=True, slots=True)
class LogEvent:
    """A raw contract log as delivered by an event source."""

    address: str
    topics: tuple[bytes, ...]
    data: bytes
    block_number: int = 0
    log_index: int = 0
    transaction_hash: str = ""

    @property
    def position(self) -> tuple[int, int]:
        """Chain ordering key."""
        return (self.block_number, self.log_index)


@dataclass(frozen=True, slots=True)
class UniswapSwap:
    """Decoded Uniswap V3 ``Swap`` event."""

    amount0: int
    amount1: int
    sqrt_price_x96: int
    liquidity: int
    tick: int


@dataclass(frozen=True, slots=True)
class CurveExchange:
    """Decoded Curve ``TokenExchange`` event."""

    buyer: str
    sold_id: int
    tokens_sold: int
    bought_id: int
    tokens_bought: int


@dataclass(frozen=True, slots=True)
class Quote:
    """Forward price and its exact inverse, each with its natural log."""

    price: Fraction
    log_price: Decimal
    reverse_price: Fraction
    reverse_log_price: Decimal


def _render(value: Fraction, digits: int = 40) -> str:
    """Render an exact rational as a decimal string with ``digits`` significant digits."""
    with localcontext() as ctx:
        ctx.prec = digits
        return str(Decimal(value.numerator) / Decimal(value.denominator))


@dataclass(frozen=True, slots=True)
class PriceRecord:
    """Latest price contributed by one pool for one pair key.

    Replaced wholesale on every event from the pool; never mutated.
    """

    protocol: Protocol
    pool_address: str
    price: Fraction
    log_price: Decimal
    observed_at: float = field(default_factory=time.time)  # Unix seconds

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "protocol": self.protocol.value,
            "pool_address": self.pool_address,
            "price": _render(self.price),
            "log_price": str(self.log_price),
            "observed_at": self.observed_at,
        }


@dataclass(frozen=True, slots=True)
class BestPriceRecord:
    """The pool currently offering the highest log price for a pair key."""

    pair_key: str
    record: PriceRecord
    updated_at: float  # Unix seconds; changes only when the best pool changes

    @property
    def pool_address(self) -> str:
        return self.record.pool_address

    def to_dict(self) -> dict:
        return {
            "pair": self.pair_key,
            "best": self.record.to_dict(),
            "updated_at": self.updated_at,
        }

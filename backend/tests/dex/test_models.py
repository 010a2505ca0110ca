"""Tests for DEX data models."""

from decimal import Decimal
from fractions import Fraction

import pytest

from app.dex.errors import ConfigError
from app.dex.models import BestPriceRecord, PoolConfig, PriceRecord, Protocol, pair_key


class TestPoolConfig:
    """Validation and derived keys of PoolConfig."""

    def test_address_is_lowercased(self):
        """Pool identity is the lowercased address."""
        pool = PoolConfig("0x" + "AB" * 20, "USDC", "WETH", 6, 18, Protocol.UNISWAP_V3)
        assert pool.address == "0x" + "ab" * 20

    def test_protocol_from_string(self):
        """The config "type" string maps onto the Protocol enum."""
        pool = PoolConfig("0x" + "11" * 20, "DAI", "USDC", 18, 6, "curve")
        assert pool.protocol is Protocol.CURVE

    def test_pair_keys(self):
        """Forward and reverse keys follow token0/token1 order."""
        pool = PoolConfig("0x" + "11" * 20, "USDC", "WETH", 6, 18, Protocol.UNISWAP_V3)
        assert pool.forward_key == "USDC_WETH"
        assert pool.reverse_key == "WETH_USDC"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"address": "0x1234"},
            {"address": "not-an-address"},
            {"token0": ""},
            {"token1": "USDC"},
            {"decimals0": -1},
            {"decimals1": 78},
            {"decimals0": "6"},
            {"decimals1": True},
            {"protocol": "balancer"},
        ],
    )
    def test_invalid_config_raises(self, kwargs):
        """Malformed pool metadata is a ConfigError."""
        fields = {
            "address": "0x" + "11" * 20,
            "token0": "USDC",
            "token1": "WETH",
            "decimals0": 6,
            "decimals1": 18,
            "protocol": Protocol.UNISWAP_V3,
        }
        fields.update(kwargs)
        with pytest.raises(ConfigError):
            PoolConfig(**fields)

    def test_to_dict_uses_config_type_name(self):
        pool = PoolConfig("0x" + "11" * 20, "DAI", "USDC", 18, 6, Protocol.CURVE)
        assert pool.to_dict()["type"] == "curve"

    def test_immutability(self):
        pool = PoolConfig("0x" + "11" * 20, "DAI", "USDC", 18, 6, Protocol.CURVE)
        with pytest.raises(AttributeError):
            pool.token0 = "USDT"


class TestPriceRecords:
    """Serialization of price records."""

    def test_pair_key(self):
        assert pair_key("USDC", "WETH") == "USDC_WETH"

    def test_price_record_to_dict(self):
        """Prices serialize as exact decimal strings."""
        record = PriceRecord(
            protocol=Protocol.UNISWAP_V3,
            pool_address="0x" + "aa" * 20,
            price=Fraction(1, 4),
            log_price=Decimal("-1.386294361119890618834464242"),
            observed_at=1234567890.0,
        )
        result = record.to_dict()
        assert result["protocol"] == "uniswap"
        assert result["price"] == "0.25"
        assert result["log_price"] == "-1.386294361119890618834464242"
        assert result["observed_at"] == 1234567890.0

    def test_tiny_price_keeps_precision(self):
        """Ratios far below float's comfortable range render exactly."""
        record = PriceRecord(
            protocol=Protocol.CURVE,
            pool_address="0x" + "aa" * 20,
            price=Fraction(1, 10**12),
            log_price=Decimal(0),
        )
        assert Decimal(record.to_dict()["price"]) == Decimal("1E-12")

    def test_best_price_record_to_dict(self):
        """The best record nests the winning pool's record."""
        record = PriceRecord(
            protocol=Protocol.CURVE,
            pool_address="0x" + "cc" * 20,
            price=Fraction(1),
            log_price=Decimal(0),
            observed_at=1.0,
        )
        best = BestPriceRecord(pair_key="USDC_DAI", record=record, updated_at=2.0)
        assert best.pool_address == "0x" + "cc" * 20
        assert best.to_dict() == {"pair": "USDC_DAI", "best": record.to_dict(), "updated_at": 2.0}

    def test_record_immutability(self):
        record = PriceRecord(
            protocol=Protocol.CURVE,
            pool_address="0x" + "cc" * 20,
            price=Fraction(1),
            log_price=Decimal(0),
        )
        with pytest.raises(AttributeError):
            record.price = Fraction(2)

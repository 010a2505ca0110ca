"""Tests for event source and manager factories."""

import json
import os
from unittest.mock import patch

from app.dex.cache import PriceCache
from app.dex.config import Settings
from app.dex.factory import create_event_source, create_subscription_manager, resolve_pools
from app.dex.seed_pools import DEFAULT_POOLS
from app.dex.simulator import SimulatedEventSource
from app.dex.web3_source import Web3EventSource


class TestFactory:
    """Tests for create_event_source and friends."""

    def test_creates_simulator_when_no_ws_url(self):
        """Simulator is created when DEX_WS_URL is not set."""
        with patch.dict(os.environ, {}, clear=True):
            source = create_event_source(DEFAULT_POOLS)
        assert isinstance(source, SimulatedEventSource)

    def test_creates_simulator_when_ws_url_whitespace(self):
        """A whitespace-only DEX_WS_URL counts as unset."""
        with patch.dict(os.environ, {"DEX_WS_URL": "   "}, clear=True):
            source = create_event_source(DEFAULT_POOLS)
        assert isinstance(source, SimulatedEventSource)

    def test_creates_web3_source_when_ws_url_set(self):
        """Web3 source is created when DEX_WS_URL is set."""
        with patch.dict(os.environ, {"DEX_WS_URL": "wss://node.example/ws", "DEX_LOOKBACK_BLOCKS": "25"}, clear=True):
            source = create_event_source(DEFAULT_POOLS)
        assert isinstance(source, Web3EventSource)
        assert source._ws_url == "wss://node.example/ws"
        assert source._lookback == 25

    def test_explicit_settings_override_env(self):
        """Explicit Settings take precedence over the environment."""
        with patch.dict(os.environ, {"DEX_WS_URL": "wss://node.example/ws"}, clear=True):
            source = create_event_source(DEFAULT_POOLS, Settings())
        assert isinstance(source, SimulatedEventSource)

    def test_manager_receives_settings(self):
        """The manager is built with the configured timeouts and backoff."""
        cache = PriceCache()
        settings = Settings(seed_timeout=2.5, max_reconnect_attempts=9, reconnect_base_delay=0.5, reconnect_max_delay=4.0)
        manager = create_subscription_manager(create_event_source(DEFAULT_POOLS, settings), cache, settings)
        assert manager._cache is cache
        assert manager._seed_timeout == 2.5
        assert manager._max_attempts == 9
        assert manager._base_delay == 0.5
        assert manager._max_delay == 4.0

    def test_default_pools_without_file(self):
        """Without DEX_POOLS_FILE the built-in pools are used."""
        with patch.dict(os.environ, {}, clear=True):
            pools = resolve_pools()
        assert pools == DEFAULT_POOLS
        assert pools is not DEFAULT_POOLS

    def test_pools_from_file(self, tmp_path):
        """DEX_POOLS_FILE selects the pool metadata file."""
        path = tmp_path / "pools.json"
        path.write_text(
            json.dumps(
                {
                    "pools": {
                        "0x" + "12" * 20: {
                            "token0": "USDC",
                            "token1": "WETH",
                            "decimals0": 6,
                            "decimals1": 18,
                            "type": "uniswap",
                        }
                    }
                }
            )
        )
        with patch.dict(os.environ, {"DEX_POOLS_FILE": str(path)}, clear=True):
            pools = resolve_pools()
        assert [p.address for p in pools] == ["0x" + "12" * 20]

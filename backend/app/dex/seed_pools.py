"""Default pool set and per-pool parameters for the event simulator."""

from .models import PoolConfig, Protocol

# Ethereum mainnet pools used when no pool file is configured
DEFAULT_POOLS: list[PoolConfig] = [
    PoolConfig("0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640", "USDC", "WETH", 6, 18, Protocol.UNISWAP_V3),  # 0.05%
    PoolConfig("0x8ad599c3A0ff1De082011EFDDc58f1908eb6e6D8", "USDC", "WETH", 6, 18, Protocol.UNISWAP_V3),  # 0.3%
    PoolConfig("0xCBCdF9626bC03E24f779434178A73a0B4bad62eD", "WBTC", "WETH", 8, 18, Protocol.UNISWAP_V3),  # 0.3%
    PoolConfig("0x5777d92f208679DB4b9778590Fa3CAB3aC9e2168", "DAI", "USDC", 18, 6, Protocol.UNISWAP_V3),  # 0.01%
    PoolConfig("0x3416cF6C708Da44DB2624D63ea0AAef7113527C6", "USDC", "USDT", 6, 6, Protocol.UNISWAP_V3),  # 0.01%
    # 3pool coins 0/1; quotes DAI per USDC, the inverse unit of the Uniswap DAI/USDC pool
    PoolConfig("0xbEbc44782C7dB0a1A60Cb6fe97d0b483032FF1C7", "DAI", "USDC", 18, 6, Protocol.CURVE),
]

# Starting forward prices (token1 per token0 as decoded for each pool)
SEED_PRICES: dict[str, float] = {
    "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640": 1 / 3000.0,
    "0x8ad599c3a0ff1de082011efddc58f1908eb6e6d8": 1 / 3000.0,
    "0xcbcdf9626bc03e24f779434178a73a0b4bad62ed": 20.0,
    "0x5777d92f208679db4b9778590fa3cab3ac9e2168": 1.0,
    "0x3416cf6c708da44db2624d63ea0aaef7113527c6": 1.0,
    "0xbebc44782c7db0a1a60cb6fe97d0b483032ff1c7": 1.0,
}

# Per-pool GBM parameters
# sigma: annualized volatility of the pool price
# mu: annualized drift
POOL_PARAMS: dict[str, dict[str, float]] = {
    "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640": {"sigma": 0.60, "mu": 0.0},
    "0x8ad599c3a0ff1de082011efddc58f1908eb6e6d8": {"sigma": 0.60, "mu": 0.0},
    "0xcbcdf9626bc03e24f779434178a73a0b4bad62ed": {"sigma": 0.35, "mu": 0.0},
    "0x5777d92f208679db4b9778590fa3cab3ac9e2168": {"sigma": 0.01, "mu": 0.0},  # Stable pair
    "0x3416cf6c708da44db2624d63ea0aaef7113527c6": {"sigma": 0.01, "mu": 0.0},  # Stable pair
    "0xbebc44782c7db0a1a60cb6fe97d0b483032ff1c7": {"sigma": 0.01, "mu": 0.0},  # Stable pair
}

# Default parameters for pools not listed above
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.50, "mu": 0.0}

# Correlation coefficients
SAME_PAIR_CORR = 0.95  # Venues quoting the same pair track each other closely
SHARED_TOKEN_CORR = 0.4  # Pairs with one token in common
DEFAULT_CORR = 0.1  # Unrelated pairs

"""HTTP read surface: best prices, per-pool prices, pool states, SSE stream."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from .cache import PriceCache
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)


def create_price_router(
    price_cache: PriceCache,
    manager: SubscriptionManager | None = None,
) -> APIRouter:
    """Create the price router with a reference to the price cache.

    This factory pattern lets us inject the PriceCache without globals.
    """
    router = APIRouter(prefix="/api", tags=["prices"])

    @router.get("/prices/{token_a}/{token_b}")
    async def get_best_price(token_a: str, token_b: str) -> dict:
        """Best price of token_a in units of token_b across all pools."""
        best = price_cache.get_best_price(token_a, token_b)
        if best is None:
            raise HTTPException(status_code=404, detail=f"No price observed for {token_a}_{token_b}")
        return best.to_dict()

    @router.get("/prices/{token_a}/{token_b}/pools")
    async def get_pool_prices(token_a: str, token_b: str) -> list[dict]:
        """Every pool's latest price for the pair, best first."""
        return [record.to_dict() for record in price_cache.get_pool_prices(token_a, token_b)]

    @router.get("/pools")
    async def get_pools() -> list[dict]:
        """Subscription state and counters for each configured pool."""
        if manager is None:
            return []
        return [status.to_dict() for status in manager.get_status()]

    @router.get("/stream/prices")
    async def stream_prices(request: Request) -> StreamingResponse:
        """SSE endpoint for live best-price updates.

        Sends every pair's best record whenever the cache changes:

            data: {"USDC_WETH": {"pair": "USDC_WETH", "best": {...}, ...}, ...}
        """
        return StreamingResponse(
            _generate_events(price_cache, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    return router


async def _generate_events(
    price_cache: PriceCache,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Yield SSE-formatted best-price events until the client disconnects."""
    yield "retry: 1000\n\n"

    last_version = -1
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            current_version = price_cache.version
            if current_version != last_version:
                last_version = current_version
                best = price_cache.get_all_best()
                if best:
                    payload = json.dumps({key: record.to_dict() for key, record in best.items()})
                    yield f"data: {payload}\n\n"

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)

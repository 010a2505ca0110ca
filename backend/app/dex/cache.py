"""Thread-safe directional price cache and best-price aggregator."""

from __future__ import annotations

import time
from threading import Lock

from .models import BestPriceRecord, PoolConfig, PriceRecord, Quote, pair_key


class PriceCache:
    """In-memory store of per-pool prices and the best price per pair key.

    For every pair key ("A_B" = price of A in units of B) the cache keeps one
    PriceRecord per pool and the BestPriceRecord with the highest log price.
    The best record is recomputed from the full bucket on every write, so a
    pool that degrades or disappears hands the top spot to the next pool.

    Writers: one subscription task per pool.
    Readers: HTTP/SSE endpoints and the external arbitrage consumer.

    A single lock covers both structures: a bucket write and its best-price
    recomputation are one critical section.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, list[PriceRecord]] = {}
        self._best: dict[str, BestPriceRecord] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every write

    # --- Writes ---

    def update(self, key: str, record: PriceRecord) -> BestPriceRecord:
        """Replace ``record.pool_address``'s entry in ``key``'s bucket and recompute best."""
        with self._lock:
            best = self._update_locked(key, record, time.time())
            self._version += 1
            return best

    def apply(
        self,
        pool: PoolConfig,
        quote: Quote,
        observed_at: float | None = None,
    ) -> tuple[PriceRecord, PriceRecord]:
        """Write both directions of one pool event. Returns (forward, reverse) records."""
        ts = observed_at or time.time()
        forward = PriceRecord(
            protocol=pool.protocol,
            pool_address=pool.address,
            price=quote.price,
            log_price=quote.log_price,
            observed_at=ts,
        )
        reverse = PriceRecord(
            protocol=pool.protocol,
            pool_address=pool.address,
            price=quote.reverse_price,
            log_price=quote.reverse_log_price,
            observed_at=ts,
        )
        with self._lock:
            now = time.time()
            self._update_locked(pool.forward_key, forward, now)
            self._update_locked(pool.reverse_key, reverse, now)
            self._version += 1
        return forward, reverse

    def remove_pool(self, pool_address: str) -> int:
        """Drop every record contributed by a pool. Returns the number removed."""
        address = pool_address.lower()
        removed = 0
        with self._lock:
            now = time.time()
            for key in list(self._buckets):
                bucket = self._buckets[key]
                kept = [r for r in bucket if r.pool_address != address]
                if len(kept) == len(bucket):
                    continue
                removed += len(bucket) - len(kept)
                self._buckets[key] = kept
                self._recompute_locked(key, now)
            if removed:
                self._version += 1
        return removed

    # --- Reads ---

    def get_best_price(self, token_a: str, token_b: str) -> BestPriceRecord | None:
        """Best price of token_a in units of token_b, or None if never observed."""
        with self._lock:
            return self._best.get(pair_key(token_a, token_b))

    def get_best_quote(
        self, token_a: str, token_b: str
    ) -> tuple[BestPriceRecord | None, BestPriceRecord | None]:
        """Best forward (A_B) and best reverse (B_A) records, read under one lock."""
        with self._lock:
            return (
                self._best.get(pair_key(token_a, token_b)),
                self._best.get(pair_key(token_b, token_a)),
            )

    def get_pool_prices(self, token_a: str, token_b: str) -> list[PriceRecord]:
        """Snapshot of every pool's price for A_B, best first. Returns a copy."""
        with self._lock:
            bucket = list(self._buckets.get(pair_key(token_a, token_b), ()))
        bucket.sort(key=lambda r: r.pool_address)
        bucket.sort(key=lambda r: r.log_price, reverse=True)
        return bucket

    def get_all_best(self) -> dict[str, BestPriceRecord]:
        """Snapshot of all best records. Returns a shallow copy."""
        with self._lock:
            return dict(self._best)

    def pair_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._buckets)

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def __len__(self) -> int:
        """Number of pair keys with at least one record."""
        with self._lock:
            return len(self._best)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._best

    # --- Internal (caller holds the lock) ---

    def _update_locked(self, key: str, record: PriceRecord, now: float) -> BestPriceRecord | None:
        bucket = self._buckets.setdefault(key, [])
        for i, existing in enumerate(bucket):
            if existing.pool_address == record.pool_address:
                del bucket[i]
                break
        bucket.append(record)
        return self._recompute_locked(key, now)

    def _recompute_locked(self, key: str, now: float) -> BestPriceRecord | None:
        """Full scan of the bucket. Ties keep the incumbent, else the lowest address."""
        bucket = self._buckets.get(key)
        if not bucket:
            self._buckets.pop(key, None)
            self._best.pop(key, None)
            return None

        top = max(r.log_price for r in bucket)
        leaders = [r for r in bucket if r.log_price == top]
        incumbent = self._best.get(key)

        chosen = None
        if incumbent is not None:
            chosen = next((r for r in leaders if r.pool_address == incumbent.pool_address), None)
        if chosen is None:
            chosen = min(leaders, key=lambda r: r.pool_address)

        if incumbent is not None and incumbent.pool_address == chosen.pool_address:
            updated_at = incumbent.updated_at
        else:
            updated_at = now
        best = BestPriceRecord(pair_key=key, record=chosen, updated_at=updated_at)
        self._best[key] = best
        return best

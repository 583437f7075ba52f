"""
Read-through TTL cache: in-process layer in front of an optional durable layer.

The cache is an optimization only. Durable-layer failures and slow durable
calls are logged and treated as misses; nothing here raises to the caller.
Expired entries are dropped lazily on read (no background sweep).
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from wastewins.core.storage import ensure_schema, get_cache_entry, put_cache_entry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl_s: float

    def is_valid(self, now: float) -> bool:
        return (now - self.stored_at) < self.ttl_s


# ──────────────────────────────────────────────────────────────
# Durable layers
# ──────────────────────────────────────────────────────────────

class DurableLayer(ABC):
    """Blocking key/value store; called from a worker thread."""

    @abstractmethod
    def read(self, key: str) -> Optional[CacheEntry]:
        ...

    @abstractmethod
    def write(self, entry: CacheEntry) -> None:
        ...

    def close(self) -> None:
        pass


class SqliteDurableLayer(DurableLayer):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        # sqlite3 connections are not safe for concurrent use across threads
        self._lock = threading.Lock()
        ensure_schema(conn)

    def read(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            row = get_cache_entry(self.conn, key)
        if row is None:
            return None
        value, stored_at, ttl_s = row
        return CacheEntry(key=key, value=value, stored_at=stored_at, ttl_s=ttl_s)

    def write(self, entry: CacheEntry) -> None:
        with self._lock:
            put_cache_entry(
                self.conn,
                cache_key=entry.key,
                stored_at=entry.stored_at,
                ttl_s=entry.ttl_s,
                value=entry.value,
            )

    def close(self) -> None:
        with self._lock:
            self.conn.close()


# ──────────────────────────────────────────────────────────────
# Cache
# ──────────────────────────────────────────────────────────────

class TTLCache:
    def __init__(
        self,
        *,
        durable: DurableLayer | None = None,
        durable_timeout_s: float = 0.05,
        max_entries: int = 20000,
        clock: Callable[[], float] = time.time,
    ):
        self._durable = durable
        self._durable_timeout_s = float(durable_timeout_s)
        self._max_entries = max(1, int(max_entries))
        self._clock = clock

        self._mem: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.stats: Dict[str, int] = {"memory_hits": 0, "durable_hits": 0, "misses": 0}
        self._durable_stalled = 0

    # ──────────────────────────────────────────────────────────
    # Memory layer
    # ──────────────────────────────────────────────────────────

    def _mem_get(self, key: str, now: float) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._mem.get(key)
            if entry is None:
                return None
            if not entry.is_valid(now):
                del self._mem[key]
                return None
            self._mem.move_to_end(key)
            return entry

    def _mem_put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._mem[entry.key] = entry
            self._mem.move_to_end(entry.key)
            while len(self._mem) > self._max_entries:
                self._mem.popitem(last=False)

    # ──────────────────────────────────────────────────────────
    # Durable layer
    # ──────────────────────────────────────────────────────────

    async def _durable_call(self, op: str, fn: Callable[..., Any], *args: Any) -> Any:
        # A timed-out call keeps running in its worker thread. Skip the
        # durable layer until it returns so stalled calls cannot pile up.
        with self._lock:
            stalled = self._durable_stalled
        if stalled:
            logger.debug("cache_durable_skipped op=%s stalled=%d", op, stalled)
            return None

        state = {"done": False, "timed_out": False}

        def run() -> Any:
            try:
                return fn(*args)
            finally:
                with self._lock:
                    state["done"] = True
                    if state["timed_out"]:
                        self._durable_stalled -= 1

        try:
            return await asyncio.wait_for(asyncio.to_thread(run), timeout=self._durable_timeout_s)
        except asyncio.TimeoutError:
            with self._lock:
                if not state["done"]:
                    state["timed_out"] = True
                    self._durable_stalled += 1
            logger.warning("cache_durable_timeout op=%s timeout_s=%.3f", op, self._durable_timeout_s)
        except Exception as e:
            logger.warning("cache_durable_failed op=%s err=%r", op, e)
        return None

    def _bump(self, stat: str) -> None:
        with self._lock:
            self.stats[stat] += 1

    # ──────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────

    async def get(self, key: str) -> Tuple[Any, bool]:
        entry = self._mem_get(key, self._clock())
        if entry is not None:
            self._bump("memory_hits")
            return entry.value, True

        if self._durable is not None:
            entry = await self._durable_call("read", self._durable.read, key)
            if entry is not None and entry.is_valid(self._clock()):
                # Promote with the original stored_at so the TTL is not extended
                self._mem_put(entry)
                self._bump("durable_hits")
                return entry.value, True

        self._bump("misses")
        logger.debug("cache_miss key=%s", key)
        return None, False

    async def set(self, key: str, value: Any, ttl_s: float) -> None:
        if ttl_s <= 0:
            return
        entry = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl_s=float(ttl_s))
        self._mem_put(entry)
        if self._durable is not None:
            await self._durable_call("write", self._durable.write, entry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._mem)

    def close(self) -> None:
        if self._durable is not None:
            try:
                self._durable.close()
            except Exception as e:
                logger.warning("cache_durable_close_failed err=%r", e)

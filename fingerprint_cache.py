"""
fingerprint_cache.py — in-process cache of finished analyses, keyed by a
fingerprint of the normalized ingredient text.

Two labels that read the same after case/whitespace normalization share one
entry, so a repeated scan never pays for a second LLM call.

Retention is bounded both ways:
  • size — least-recently-used entries are evicted past max_entries
  • age  — entries older than ttl_secs are treated as absent and dropped

All access goes through one asyncio.Lock, so concurrent requests never see a
half-written entry. Stored values are frozen dataclasses; a hit hands back a
copy with cached=True and leaves the stored value untouched.
"""
from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import logging
import re
import time
from collections import OrderedDict
from typing import Any, Optional

import config

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_ingredients(text: str) -> str:
    """Lower-case and collapse every whitespace run to one space."""
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()


def fingerprint(text: str) -> str:
    """SHA-256 hex digest of the normalized text — stable across restarts."""
    return hashlib.sha256(normalize_ingredients(text).encode("utf-8")).hexdigest()


class FingerprintCache:

    def __init__(
        self,
        max_entries: Optional[int] = None,
        ttl_secs: Optional[float] = None,
    ) -> None:
        self.max_entries = max(1, int(max_entries if max_entries is not None else config.CACHE_MAX_ENTRIES))
        self.ttl_secs    = float(ttl_secs if ttl_secs is not None else config.CACHE_TTL_SECS)
        self._store: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock   = asyncio.Lock()
        self._open   = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def open(self) -> "FingerprintCache":
        self._store.clear()
        self._open = True
        logger.info(
            "Fingerprint cache opened (max_entries=%d, ttl=%ss)",
            self.max_entries, self.ttl_secs,
        )
        return self

    async def close(self) -> None:
        async with self._lock:
            dropped = len(self._store)
            self._store.clear()
            self._open = False
        logger.info("Fingerprint cache closed (%d entries released)", dropped)

    @property
    def is_open(self) -> bool:
        return self._open

    async def __aenter__(self) -> "FingerprintCache":
        return self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Access ────────────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[Any]:
        """
        Return a copy of the stored result with cached=True, or None.
        Timing fields are returned exactly as recorded on the original run.
        """
        async with self._lock:
            if not self._open:
                return None
            entry = self._store.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at > self.ttl_secs:
                del self._store[key]
                logger.debug("Cache entry %s… expired", key[:12])
                return None
            self._store.move_to_end(key)
        return dataclasses.replace(value, cached=True)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            if not self._open:
                logger.debug("Cache closed — dropping set for %s…", key[:12])
                return
            self._store[key] = (time.monotonic(), value)
            self._store.move_to_end(key)
            while len(self._store) > self.max_entries:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("Cache full — evicted %s…", evicted[:12])

    def __len__(self) -> int:
        return len(self._store)

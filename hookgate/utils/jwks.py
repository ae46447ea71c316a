"""
JWKS key resolution for RS256 webhook tokens.
Keys are fetched over HTTPS with httpx and cached for a short window.
Callers bound the fetch with their own timeout (asyncio.wait_for) - a
cancelled fetch leaves the cache untouched.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

import httpx
import jwt

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 5.0
# Minimum gap between refetches triggered by unknown kids
DEFAULT_MIN_REFETCH_SECONDS = 30.0


class JwksKeyResolver:
    """Resolves RSA verification keys by `kid` from a JWKS endpoint."""

    def __init__(
        self,
        jwks_url: str,
        cache_seconds: int = 300,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_refetch_seconds: float = DEFAULT_MIN_REFETCH_SECONDS,
    ):
        self.jwks_url = jwks_url
        self.cache_seconds = cache_seconds
        self.min_refetch_seconds = min_refetch_seconds
        self._clock = clock
        self._transport = transport
        self._keys: dict[Optional[str], Any] = {}
        self._fetched_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _cache_fresh(self) -> bool:
        if self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.cache_seconds

    def _needs_fetch(self, kid: Optional[str]) -> bool:
        if not self._cache_fresh():
            return True
        if kid in self._keys:
            return False
        return self._clock() - self._fetched_at >= self.min_refetch_seconds

    async def _fetch(self) -> dict[Optional[str], Any]:
        async with httpx.AsyncClient(
            timeout=DEFAULT_FETCH_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.get(self.jwks_url)
            response.raise_for_status()
            data = response.json()

        keys: dict[Optional[str], Any] = {}
        for jwk in jwt.PyJWKSet.from_dict(data).keys:
            if jwk.public_key_use not in (None, "sig"):
                continue
            keys[jwk.key_id] = jwk.key
        return keys

    async def get_signing_key(self, kid: Optional[str]) -> Optional[Any]:
        """
        Return the key for `kid`. A cache miss refetches (key rotation), but no
        more than once per `min_refetch_seconds`; concurrent misses share one fetch.
        Returns None if no matching key exists.
        """
        if self._needs_fetch(kid):
            async with self._lock:
                # Another caller may have refreshed while we waited
                if self._needs_fetch(kid):
                    self._keys = await self._fetch()
                    self._fetched_at = self._clock()
                    logger.info("Fetched %d signing keys from JWKS endpoint", len(self._keys))

        if kid in self._keys:
            return self._keys[kid]
        # Tokens without a kid are accepted only against a single-key set
        if kid is None and len(self._keys) == 1:
            return next(iter(self._keys.values()))
        return None

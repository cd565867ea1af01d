"""
Read-through schedule cache.

Holds procedure lookups and provider booking windows between availability
checks. It is passed explicitly to the services that use it and invalidated
explicitly after every booking commit.

Uses Redis when available and degrades to an in-process dictionary when it
is not. Cache failures never fail a check: the loader is called instead.

Each provider has a generation counter that `invalidate()` bumps. A window
loaded while the generation changed is returned but not stored, so a load
racing an invalidation cannot put pre-commit rows back into the cache.
"""

import json
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from agenda.config import settings
from agenda.core.scheduling.models import Booking, Procedure

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "schedule:"

BookingLoader = Callable[[], Awaitable[list[Booking]]]
ProcedureLoader = Callable[[list[str]], Awaitable[dict[str, Procedure]]]


class ScheduleCache:
    """
    Read-through cache for booking windows and procedures.

    Keys (with namespace):
    - agenda:v1:schedule:bookings:{provider_id}:{start}:{end} -> bookings (JSON)
    - agenda:v1:schedule:index:{provider_id} -> set of window keys
    - agenda:v1:schedule:generation:{provider_id} -> invalidation counter
    - agenda:v1:schedule:procedure:{procedure_id} -> procedure (JSON)
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        ttl: Optional[int] = None,
        key_prefix: Optional[str] = None,
    ):
        self.redis = redis_client
        self.ttl = ttl if ttl is not None else settings.schedule_cache_ttl
        if key_prefix is None:
            key_prefix = settings.cache_key_prefix
        self.prefix = f"{key_prefix}{CACHE_NAMESPACE}"
        self._memory: dict[str, tuple[float, str]] = {}
        self._memory_index: dict[str, set[str]] = {}
        self._generations: dict[str, int] = {}

    def _window_key(self, provider_id: str, start: datetime, end: datetime) -> str:
        return f"{self.prefix}bookings:{provider_id}:{start.isoformat()}:{end.isoformat()}"

    def _index_key(self, provider_id: str) -> str:
        return f"{self.prefix}index:{provider_id}"

    def _generation_key(self, provider_id: str) -> str:
        return f"{self.prefix}generation:{provider_id}"

    def _procedure_key(self, procedure_id: str) -> str:
        return f"{self.prefix}procedure:{procedure_id}"

    # === Raw storage ===

    async def _get(self, key: str) -> Optional[str]:
        if self.redis is not None:
            try:
                return await self.redis.get(key)
            except RedisError as e:
                logger.warning(f"Schedule cache read failed for {key}: {e}")
                return None

        entry = self._memory.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at < time.monotonic():
            self._memory.pop(key, None)
            return None
        return payload

    async def _set(self, key: str, payload: str, index_key: Optional[str] = None) -> None:
        if self.ttl <= 0:
            return

        if self.redis is not None:
            try:
                await self.redis.setex(key, self.ttl, payload)
                if index_key:
                    await self.redis.sadd(index_key, key)
                    await self.redis.expire(index_key, self.ttl)
            except RedisError as e:
                logger.warning(f"Schedule cache write failed for {key}: {e}")
            return

        now = time.monotonic()
        self._purge_expired(now)
        self._memory[key] = (now + self.ttl, payload)
        if index_key:
            self._memory_index.setdefault(index_key, set()).add(key)

    def _purge_expired(self, now: float) -> None:
        expired = {key for key, (expires_at, _) in self._memory.items() if expires_at < now}
        if not expired:
            return
        for key in expired:
            del self._memory[key]
        for index_key in list(self._memory_index):
            keys = self._memory_index[index_key] - expired
            if keys:
                self._memory_index[index_key] = keys
            else:
                del self._memory_index[index_key]

    async def _generation(self, provider_id: str) -> Optional[int]:
        """Current invalidation counter, or None when it cannot be read."""
        if self.redis is None:
            return self._generations.get(provider_id, 0)

        try:
            value = await self.redis.get(self._generation_key(provider_id))
        except RedisError as e:
            logger.warning(f"Schedule cache generation read failed for {provider_id}: {e}")
            return None
        return int(value) if value else 0

    # === Bookings ===

    async def get_bookings(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
        loader: BookingLoader,
    ) -> list[Booking]:
        """Bookings for a provider window, loading them on a miss.

        Errors raised by the loader propagate unchanged.
        """
        key = self._window_key(provider_id, window_start, window_end)
        cached = await self._get(key)
        if cached is not None:
            return [Booking.from_dict(item) for item in json.loads(cached)]

        generation = await self._generation(provider_id)
        bookings = await loader()

        if generation is None or await self._generation(provider_id) != generation:
            logger.debug(f"Schedule for {provider_id} invalidated during load, not caching")
            return bookings

        await self._set(
            key,
            json.dumps([b.to_dict() for b in bookings]),
            index_key=self._index_key(provider_id),
        )
        return bookings

    async def invalidate(self, provider_id: str) -> None:
        """Drop every cached booking window of a provider."""
        index_key = self._index_key(provider_id)

        if self.redis is not None:
            try:
                await self.redis.incr(self._generation_key(provider_id))
                keys = await self.redis.smembers(index_key)
                if keys:
                    await self.redis.delete(*keys)
                await self.redis.delete(index_key)
            except RedisError as e:
                logger.error(f"Failed to invalidate schedule cache for {provider_id}: {e}")
            return

        self._generations[provider_id] = self._generations.get(provider_id, 0) + 1
        for key in self._memory_index.pop(index_key, set()):
            self._memory.pop(key, None)

    # === Procedures ===

    async def get_procedures(
        self,
        procedure_ids: Iterable[str],
        loader: ProcedureLoader,
    ) -> dict[str, Procedure]:
        """Procedures by id, fetching only the ones not cached."""
        found: dict[str, Procedure] = {}
        missing: list[str] = []

        for procedure_id in procedure_ids:
            cached = await self._get(self._procedure_key(procedure_id))
            if cached is None:
                missing.append(procedure_id)
            else:
                found[procedure_id] = Procedure.from_dict(json.loads(cached))

        if missing:
            loaded = await loader(missing)
            for procedure_id, procedure in loaded.items():
                found[procedure_id] = procedure
                await self._set(self._procedure_key(procedure_id), json.dumps(procedure.to_dict()))

        return found

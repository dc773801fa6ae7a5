"""
Settings cache for the moderation pipeline.

Short-TTL read-through cache mapping (kind, guild_id) to typed settings. A
store that is missing, slow or failing yields the built-in defaults so that
moderation never breaks the message pipeline. Entries are not invalidated on
write: dashboard changes become visible once the TTL elapses.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from core.moderation.models import ModerationSettings, RaidSettings

logger = logging.getLogger(__name__)

SETTINGS_TYPES = {
    'moderation': ModerationSettings,
    'raid': RaidSettings,
}

DEFAULT_TTL_MS = {
    'moderation': 15000,
    'raid': 12000,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class SettingsCache:
    """Read-through TTL cache in front of a pluggable settings store"""

    def __init__(self, store=None, ttl_ms: Optional[Dict[str, int]] = None,
                 defaults: Optional[Dict[str, Dict[str, Any]]] = None,
                 fetch_timeout: float = 5, clock: Callable[[], int] = _now_ms):
        self.store = store
        self.ttl_ms = dict(DEFAULT_TTL_MS)
        if ttl_ms:
            self.ttl_ms.update(ttl_ms)
        self.defaults = defaults or {}
        self.fetch_timeout = fetch_timeout
        self.clock = clock

        self._cache: Dict[Tuple[str, int], Dict[str, Any]] = {}  # (kind, guild_id) -> {data, expires_at}
        self._stats = {'hits': 0, 'misses': 0, 'fallbacks': 0}

    async def get(self, kind: str, guild_id: int):
        """Returns cached settings, refreshing from the store on miss or expiry"""
        if kind not in SETTINGS_TYPES:
            raise KeyError(f"Unknown settings kind: {kind}")

        key = (kind, guild_id)
        now = self.clock()
        entry = self._cache.get(key)
        if entry and now < entry['expires_at']:
            self._stats['hits'] += 1
            return entry['data']

        self._stats['misses'] += 1
        settings = await self._load(kind, guild_id)
        self._cache[key] = {'data': settings, 'expires_at': now + self.ttl_ms[kind]}
        return settings

    async def get_moderation(self, guild_id: int) -> ModerationSettings:
        return await self.get('moderation', guild_id)

    async def get_raid(self, guild_id: int) -> RaidSettings:
        return await self.get('raid', guild_id)

    async def _load(self, kind: str, guild_id: int):
        settings_type = SETTINGS_TYPES[kind]
        defaults = self.defaults.get(kind)

        if self.store is None:
            self._stats['fallbacks'] += 1
            return settings_type.from_dict(None, defaults)

        try:
            data = await asyncio.wait_for(self._fetch(kind, guild_id), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Settings fetch timed out for {kind}:{guild_id} - using defaults")
            self._stats['fallbacks'] += 1
            return settings_type.from_dict(None, defaults)
        except Exception as e:
            logger.warning(f"Settings fetch failed for {kind}:{guild_id} - using defaults: {e}")
            self._stats['fallbacks'] += 1
            return settings_type.from_dict(None, defaults)

        try:
            return settings_type.from_dict(data, defaults)
        except Exception as e:
            logger.warning(f"Malformed {kind} settings for {guild_id} - using defaults: {e}")
            self._stats['fallbacks'] += 1
            return settings_type.from_dict(None, defaults)

    async def _fetch(self, kind: str, guild_id: int):
        fetch = self.store.fetch
        if inspect.iscoroutinefunction(fetch):
            return await fetch(kind, guild_id)
        # Blocking clients (supabase) run off the event loop
        return await asyncio.to_thread(fetch, kind, guild_id)

    def get_cache_stats(self) -> dict:
        """Get cache statistics"""
        now = self.clock()
        live = sum(1 for entry in self._cache.values() if now < entry['expires_at'])
        return {
            'total_entries': len(self._cache),
            'live_entries': live,
            **self._stats
        }

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from .models import ModerationSettings, SpamResult

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SpamRateLimiter:
    """Per-user sliding-window message rate tracker"""

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self.clock = clock
        self._buckets: Dict[Tuple[int, int], List[int]] = {}  # (guild_id, user_id) -> timestamps
        self._windows: Dict[Tuple[int, int], int] = {}  # window each bucket was last recorded under

    def record_and_check(self, settings: ModerationSettings, guild_id: int, user_id: int,
                         now: Optional[int] = None) -> SpamResult:
        """Records one message and reports whether the user crossed the threshold.

        Tripping clears the bucket so the following messages start a fresh window
        instead of re-tripping immediately. The window is per user across all
        channels of the guild.
        """
        if not settings.enabled or not settings.spam_enabled:
            return SpamResult(False)

        if now is None:
            now = self.clock()

        key = (guild_id, user_id)
        cutoff = now - settings.spam_window_ms
        recent = [t for t in self._buckets.get(key, []) if t >= cutoff]
        recent.append(now)
        self._windows[key] = settings.spam_window_ms

        if len(recent) < settings.spam_max_msgs:
            self._buckets[key] = recent
            return SpamResult(False, len(recent))

        self._buckets[key] = []
        logger.info(f"Spam threshold reached by user {user_id} in guild {guild_id} ({len(recent)} msgs)")
        return SpamResult(True, len(recent))

    def bucket_size(self, guild_id: int, user_id: int) -> int:
        return len(self._buckets.get((guild_id, user_id), []))

    def reset(self, guild_id: int, user_id: Optional[int] = None):
        """Clears one user's bucket, or every bucket in the guild"""
        if user_id is not None:
            self._buckets.pop((guild_id, user_id), None)
            self._windows.pop((guild_id, user_id), None)
            return
        for key in [k for k in self._buckets if k[0] == guild_id]:
            del self._buckets[key]
            self._windows.pop(key, None)

    def prune_idle(self, max_window_ms: int, now: Optional[int] = None) -> int:
        """Drops buckets whose newest entry is older than their window.

        A bucket is kept for at least max_window_ms, or longer when its guild
        uses a longer spam window.
        """
        if now is None:
            now = self.clock()
        stale = []
        for key, stamps in self._buckets.items():
            horizon = max(max_window_ms, self._windows.get(key, 0))
            if not stamps or stamps[-1] < now - horizon:
                stale.append(key)
        for key in stale:
            del self._buckets[key]
            self._windows.pop(key, None)
        if stale:
            logger.debug(f"Pruned {len(stale)} idle spam buckets")
        return len(stale)

"""
Raid (mass-join) detection with a timed, self-expiring lockdown.

Per guild the detector is either idle or holds a ``DefenseState``. Crossing the
join threshold inside the window activates slowmode on every manageable text
channel and schedules a single rollback job for ``duration + grace``. The job
re-checks the state before rolling back, and holds a cancellable handle so a
manual override can end the lockdown early.
"""

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .models import DefenseState, JoinEvent, RaidSettings
from .scheduler import ModerationScheduler

logger = logging.getLogger(__name__)

ROLLBACK_GRACE_MS = 2000


def _now_ms() -> int:
    return int(time.time() * 1000)


class RaidDetector:
    """Sliding-window join tracker driving the Idle -> Active -> Idle lockdown"""

    def __init__(self, actions, audit_logger, scheduler: ModerationScheduler = None,
                 clock: Callable[[], int] = _now_ms, grace_ms: int = ROLLBACK_GRACE_MS,
                 extend_on_sustained: bool = False):
        self.actions = actions
        self.audit_logger = audit_logger
        self.scheduler = scheduler or ModerationScheduler()
        self.clock = clock
        self.grace_ms = grace_ms
        self.extend_on_sustained = extend_on_sustained

        self._join_buckets: Dict[int, List[int]] = {}  # guild_id -> join timestamps
        self._defense_state: Dict[int, DefenseState] = {}

    async def observe_join(self, settings: RaidSettings, event: JoinEvent, now: Optional[int] = None) -> str:
        """Feeds one join into the detector and returns the resulting transition"""
        if not settings.enabled:
            return 'ignored'

        guild_id = event.guild_id
        if now is None:
            now = self.clock()

        cutoff = now - settings.join_window_ms
        recent = [t for t in self._join_buckets.get(guild_id, []) if t >= cutoff]
        recent.append(now)
        self._join_buckets[guild_id] = recent

        state = self._defense_state.get(guild_id)
        if state and now < state.active_until:
            if self.extend_on_sustained and len(recent) >= settings.join_threshold:
                self._extend(guild_id, state, settings, now)
                return 'extended'
            return 'active'

        if len(recent) < settings.join_threshold:
            return 'idle'

        await self._activate(guild_id, event.guild_name, settings, now, len(recent))
        return 'activated'

    async def _activate(self, guild_id: int, guild_name: str, settings: RaidSettings, now: int, join_count: int):
        state = DefenseState(
            activated_at=now,
            active_until=now + settings.defense_duration_ms,
            join_count=join_count,
            slowmode_seconds=settings.slowmode_seconds,
            log_channel_id=settings.log_channel_id,
            guild_name=guild_name or '',
        )
        # Stored before any await so joins arriving meanwhile see the lockdown
        self._defense_state[guild_id] = state
        state.job_id = self._schedule_rollback(guild_id, settings.defense_duration_ms)

        logger.warning(f"🚨 Raid defense activated in guild {guild_id}: {join_count} joins in {settings.join_window_ms}ms")

        if settings.slowmode_seconds > 0:
            await self.actions.set_slowmode_all_text(guild_id, settings.slowmode_seconds)

        await self.audit_logger.log_action(
            guild_id, 'raid_activated',
            f"🚨 Anti-raid ACTIVATED in **{guild_name or guild_id}**: {join_count} joins in "
            f"{settings.join_window_ms}ms. Duration: {round(settings.defense_duration_ms / 1000)}s.",
            channel_id=settings.log_channel_id,
            details={'join_count': join_count, 'active_until': state.active_until}
        )

    def _extend(self, guild_id: int, state: DefenseState, settings: RaidSettings, now: int):
        state.active_until = now + settings.defense_duration_ms
        state.join_count = max(state.join_count, len(self._join_buckets.get(guild_id, [])))
        state.job_id = self._schedule_rollback(guild_id, settings.defense_duration_ms)
        logger.info(f"Raid defense extended in guild {guild_id} until {state.active_until}")

    def _schedule_rollback(self, guild_id: int, duration_ms: int) -> str:
        job_id = f"raid_rollback_{guild_id}"

        async def _fire():
            await self.deactivate_if_expired(guild_id)

        return self.scheduler.schedule(
            job_id, (duration_ms + self.grace_ms) / 1000, _fire,
            job_type='raid_rollback', guild_id=guild_id
        )

    async def deactivate_if_expired(self, guild_id: int, now: Optional[int] = None) -> bool:
        """Rolls back the lockdown if it is still present and its time is up"""
        state = self._defense_state.get(guild_id)
        if state is None:
            return False

        if now is None:
            now = self.clock()
        if now < state.active_until:
            # Fired early (clock skew); try again at the recorded expiry
            remaining = state.active_until - now
            state.job_id = self.scheduler.schedule(
                f"raid_rollback_{guild_id}", (remaining + self.grace_ms) / 1000,
                lambda: self.deactivate_if_expired(guild_id),
                job_type='raid_rollback', guild_id=guild_id
            )
            return False

        await self._rollback(guild_id, state, 'expired')
        return True

    async def deactivate(self, guild_id: int, reason: str = 'manual') -> bool:
        """Ends an active lockdown immediately, cancelling its pending rollback job"""
        state = self._defense_state.get(guild_id)
        if state is None:
            return False

        if state.job_id:
            self.scheduler.cancel_job(state.job_id)
        await self._rollback(guild_id, state, reason)
        return True

    async def _rollback(self, guild_id: int, state: DefenseState, reason: str):
        # Removed first so a concurrent rollback finds nothing to do
        if self._defense_state.pop(guild_id, None) is None:
            return

        if state.slowmode_seconds > 0:
            await self.actions.set_slowmode_all_text(guild_id, 0)

        logger.info(f"✅ Raid defense deactivated in guild {guild_id} ({reason})")
        await self.audit_logger.log_action(
            guild_id, 'raid_deactivated',
            f"✅ Anti-raid DEACTIVATED in **{state.guild_name or guild_id}** ({reason})",
            channel_id=state.log_channel_id,
            details={'reason': reason}
        )

    def get_state(self, guild_id: int) -> Optional[DefenseState]:
        """Snapshot of the guild's active defense, safe to read from other threads"""
        state = self._defense_state.get(guild_id)
        return replace(state) if state is not None else None

    def active_guilds(self) -> List[int]:
        return list(self._defense_state)

    def join_count(self, guild_id: int) -> int:
        return len(self._join_buckets.get(guild_id, []))

    def cancel_all(self) -> int:
        """Cancels pending rollback jobs; state is left for inspection"""
        cancelled = 0
        for state in self._defense_state.values():
            if state.job_id and self.scheduler.cancel_job(state.job_id):
                cancelled += 1
        return cancelled

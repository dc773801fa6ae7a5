import logging
from typing import Any, Dict, Optional

from .content_filter import ContentFilter
from .models import FilterDecision, JoinEvent, MessageEvent, SpamResult
from .raid import RaidDetector
from .spam import SpamRateLimiter

logger = logging.getLogger(__name__)

PURGE_COUNT = 10


class ModerationCoordinator:
    """Runs the content filter and spam limiter on messages, and the raid detector on joins.

    Each step is isolated: an exception is logged with the failing module's
    name and never escapes to the caller.
    """

    def __init__(self, settings_cache, actions, audit_logger,
                 content_filter: ContentFilter = None, spam_limiter: SpamRateLimiter = None,
                 raid_detector: RaidDetector = None, bot_user_id: Optional[int] = None):
        self.settings_cache = settings_cache
        self.actions = actions
        self.audit_logger = audit_logger
        self.content_filter = content_filter or ContentFilter()
        self.spam_limiter = spam_limiter or SpamRateLimiter()
        self.raid_detector = raid_detector or RaidDetector(actions, audit_logger)
        self.bot_user_id = bot_user_id

    async def handle_message(self, event: MessageEvent) -> Dict[str, Any]:
        """Primary message hook: filter first, then count towards spam if the message survived"""
        outcome: Dict[str, Any] = {'filter': None, 'spam': None}

        if event.guild_id is None or event.author_is_bot:
            return outcome
        if self.bot_user_id is not None and event.author_id == self.bot_user_id:
            return outcome

        try:
            settings = await self.settings_cache.get_moderation(event.guild_id)
        except Exception as e:
            logger.error(f"[protection] Failed to load settings for guild {event.guild_id}: {e}", exc_info=True)
            return outcome

        try:
            decision = self.content_filter.evaluate(
                settings, event.content, event.author_role_ids, event.channel_id,
                author_can_manage_messages=event.author_can_manage_messages
            )
            outcome['filter'] = decision
            if decision.deleted:
                await self._apply_filter_deletion(event, decision, settings)
        except Exception as e:
            logger.error(f"[protection] Error filtering message {event.message_id}: {e}", exc_info=True)

        if outcome['filter'] is not None and outcome['filter'].deleted:
            return outcome

        try:
            # Exempt and privileged authors are never spam-counted
            if event.author_can_manage_messages or self.content_filter.is_exempt(
                settings, event.author_role_ids, event.channel_id
            ):
                return outcome

            result = self.spam_limiter.record_and_check(settings, event.guild_id, event.author_id)
            outcome['spam'] = result
            if result.tripped:
                await self._apply_spam_trip(event, result, settings)
        except Exception as e:
            logger.error(f"[spam] Error rate-limiting user {event.author_id}: {e}", exc_info=True)

        return outcome

    async def _apply_filter_deletion(self, event: MessageEvent, decision: FilterDecision, settings):
        deleted = await self.actions.delete_message(event.channel_id, event.message_id)
        label = 'invites' if decision.reason == 'invite' else 'links'
        await self.audit_logger.log_action(
            event.guild_id, f"filter_{decision.reason}",
            f"Filter {label}: deleted message from {event.author_tag} ({event.author_id}) in <#{event.channel_id}>",
            channel_id=settings.log_channel_id,
            details={'message_id': event.message_id, 'deleted': deleted}
        )

    async def _apply_spam_trip(self, event: MessageEvent, result: SpamResult, settings):
        muted = await self.actions.timeout_member(
            event.guild_id, event.author_id, settings.spam_timeout_ms, 'Anti-spam'
        )
        purged = await self.actions.bulk_delete_recent(event.channel_id, PURGE_COUNT)
        await self.audit_logger.log_action(
            event.guild_id, 'spam',
            f"Anti-spam: {event.author_tag} ({event.author_id}) in <#{event.channel_id}>",
            channel_id=settings.log_channel_id,
            details={'count': result.count, 'muted': muted, 'purged': purged}
        )

    async def handle_member_join(self, event: JoinEvent) -> Optional[str]:
        """Feeds a join into the raid detector; returns the detector's transition"""
        if event.guild_id is None or event.is_bot:
            return None

        try:
            settings = await self.settings_cache.get_raid(event.guild_id)
            return await self.raid_detector.observe_join(settings, event)
        except Exception as e:
            logger.error(f"[raid] Error processing join of {event.user_id} in guild {event.guild_id}: {e}", exc_info=True)
            return None

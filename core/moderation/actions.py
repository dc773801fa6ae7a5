import asyncio
import logging
from datetime import timedelta
from typing import Optional

import discord

logger = logging.getLogger(__name__)

PLATFORM_ERRORS = (discord.Forbidden, discord.NotFound, discord.HTTPException, asyncio.TimeoutError)


class ModerationActions:
    """Best-effort Discord operations used by the moderation pipeline.

    Every call is bounded by ``timeout`` seconds and never raises for platform
    failures; the boolean result says whether Discord accepted the request.
    """

    def __init__(self, bot, timeout: float = 10):
        self.bot = bot
        self.timeout = timeout

    async def _call(self, coro, description: str) -> bool:
        try:
            await asyncio.wait_for(coro, timeout=self.timeout)
            return True
        except PLATFORM_ERRORS as e:
            logger.debug(f"{description} failed: {e!r}")
            return False

    def _get_channel(self, channel_id: Optional[int]):
        if not channel_id:
            return None
        return self.bot.get_channel(int(channel_id))

    async def delete_message(self, channel_id: int, message_id: int) -> bool:
        """Deletes a single message"""
        channel = self._get_channel(channel_id)
        if channel is None:
            return False
        message = channel.get_partial_message(message_id)
        return await self._call(message.delete(), f"Delete message {message_id}")

    async def bulk_delete_recent(self, channel_id: int, count: int = 10) -> bool:
        """Deletes the most recent messages in a channel (skips those older than 14 days)"""
        channel = self._get_channel(channel_id)
        if channel is None or not hasattr(channel, 'purge'):
            return False
        return await self._call(
            channel.purge(limit=count, bulk=True, reason='Anti-spam'),
            f"Bulk delete in channel {channel_id}"
        )

    async def timeout_member(self, guild_id: int, user_id: int, duration_ms: int, reason: str) -> bool:
        """Applies a Discord timeout if the bot outranks the member"""
        if duration_ms <= 0:
            return False

        guild = self.bot.get_guild(int(guild_id))
        if guild is None:
            return False

        member = guild.get_member(int(user_id))
        if member is None:
            return False

        if not self._is_moderatable(guild, member):
            logger.debug(f"Member {user_id} in guild {guild_id} is not moderatable - skipping timeout")
            return False

        return await self._call(
            member.timeout(timedelta(milliseconds=duration_ms), reason=reason),
            f"Timeout member {user_id}"
        )

    def _is_moderatable(self, guild, member) -> bool:
        me = guild.me
        if me is None or member.id == guild.owner_id:
            return False
        if member.guild_permissions.administrator:
            return False
        if not me.guild_permissions.moderate_members:
            return False
        return member.top_role < me.top_role

    async def set_channel_slowmode(self, channel_id: int, seconds: int) -> bool:
        channel = self._get_channel(channel_id)
        if channel is None:
            return False
        return await self._call(
            channel.edit(slowmode_delay=seconds, reason='Anti-raid'),
            f"Set slowmode {seconds}s on channel {channel_id}"
        )

    async def set_slowmode_all_text(self, guild_id: int, seconds: int) -> int:
        """Applies slowmode to every text channel the bot can manage.

        Channels without Manage Channels permission are skipped. Returns the
        number of channels updated.
        """
        guild = self.bot.get_guild(int(guild_id))
        if guild is None or guild.me is None:
            return 0

        updated = 0
        for channel in guild.text_channels:
            if not channel.permissions_for(guild.me).manage_channels:
                continue
            if await self._call(
                channel.edit(slowmode_delay=seconds, reason='Anti-raid'),
                f"Set slowmode {seconds}s on channel {channel.id}"
            ):
                updated += 1

        logger.info(f"Slowmode {seconds}s applied to {updated}/{len(guild.text_channels)} channels in guild {guild_id}")
        return updated

    async def send_to_channel(self, channel_id: Optional[int], content: str) -> bool:
        """Sends a plain text line to a channel (used for audit logs)"""
        channel = self._get_channel(channel_id)
        if channel is None:
            try:
                channel = await asyncio.wait_for(self.bot.fetch_channel(int(channel_id)), timeout=self.timeout) if channel_id else None
            except (*PLATFORM_ERRORS, discord.InvalidData) as e:
                logger.debug(f"Fetch channel {channel_id} failed: {e!r}")
                return False
        if channel is None or not hasattr(channel, 'send'):
            return False
        return await self._call(
            channel.send(content, allowed_mentions=discord.AllowedMentions.none()),
            f"Send to channel {channel_id}"
        )

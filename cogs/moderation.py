import asyncio
import discord
from discord import app_commands
from discord.ext import commands
import logging
from datetime import datetime, timezone
from core.permissions import admin_only_interaction
from core.moderation.models import MessageEvent, JoinEvent, role_ids

logger = logging.getLogger(__name__)


def _error_embed(description: str) -> discord.Embed:
    return discord.Embed(title="❌ Error", description=description, color=discord.Color.red())


class Moderation(commands.Cog):
    """Link/invite filter, anti-spam and raid defense"""

    def __init__(self, bot, coordinator, raid_detector, protection_manager):
        self.bot = bot
        self.coordinator = coordinator
        self.raid_detector = raid_detector
        self.protection_manager = protection_manager

        logger.info("Moderation cog initialized")

    def cog_unload(self):
        cancelled = self.raid_detector.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending raid rollback job(s)")

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Translate the message into a platform-neutral event and hand it to the coordinator"""
        if not message.guild:
            return

        author = message.author
        can_manage = False
        if isinstance(author, discord.Member):
            can_manage = message.channel.permissions_for(author).manage_messages

        event = MessageEvent(
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            message_id=message.id,
            author_id=author.id,
            content=message.content or '',
            author_tag=str(author),
            author_is_bot=author.bot,
            author_role_ids=role_ids(getattr(author, 'roles', [])),
            author_can_manage_messages=can_manage,
        )
        await self.coordinator.handle_message(event)

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        event = JoinEvent(
            guild_id=member.guild.id if member.guild else None,
            user_id=member.id,
            guild_name=member.guild.name if member.guild else '',
            user_tag=str(member),
            is_bot=member.bot,
        )
        await self.coordinator.handle_member_join(event)

    @app_commands.command(name="raid_status", description="Show whether raid defense is active")
    @admin_only_interaction()
    async def command_raid_status(self, interaction: discord.Interaction):
        """Report the current raid defense state for this server"""
        state = self.raid_detector.get_state(interaction.guild.id)

        if state is None:
            embed = discord.Embed(
                title="🛡️ Raid Defense",
                description="Idle. No lockdown is active.",
                color=discord.Color.green()
            )
            embed.add_field(
                name="Recent Joins",
                value=str(self.raid_detector.join_count(interaction.guild.id)),
                inline=True
            )
        else:
            until = datetime.fromtimestamp(state.active_until / 1000, tz=timezone.utc)
            embed = discord.Embed(
                title="🚨 Raid Defense Active",
                description=f"Lockdown ends <t:{int(until.timestamp())}:R>",
                color=discord.Color.orange()
            )
            embed.add_field(name="Joins", value=str(state.join_count), inline=True)
            embed.add_field(name="Slowmode", value=f"{state.slowmode_seconds}s", inline=True)

        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="raid_end", description="End an active raid lockdown now")
    @admin_only_interaction()
    async def command_raid_end(self, interaction: discord.Interaction):
        """Manual override: roll back slowmode and cancel the pending job"""
        await interaction.response.defer(ephemeral=True)
        try:
            ended = await self.raid_detector.deactivate(interaction.guild.id, reason=f"manual by {interaction.user}")

            if ended:
                embed = discord.Embed(
                    title="✅ Raid Defense Ended",
                    description="Slowmode has been reset on all text channels",
                    color=discord.Color.green()
                )
            else:
                embed = _error_embed("Raid defense is not active")

            await interaction.followup.send(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error ending raid defense: {e}")
            await interaction.followup.send(embed=_error_embed("An error occurred while ending raid defense"), ephemeral=True)

    @app_commands.command(name="whitelist_add", description="Add a domain to the link whitelist")
    @admin_only_interaction()
    async def command_whitelist_add(self, interaction: discord.Interaction, domain: str):
        """Slash command to add a whitelisted domain"""
        try:
            success, result = await asyncio.to_thread(
                self.protection_manager.add_whitelist_domain, interaction.guild.id, domain
            )

            if success:
                embed = discord.Embed(
                    title="✅ Domain Whitelisted",
                    description=f"Added `{result}` to the link whitelist",
                    color=discord.Color.green()
                )
                embed.set_footer(text="Subdomains are included. Changes apply within a few seconds.")
            else:
                embed = _error_embed(result or "Failed to add domain to whitelist")

            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error adding whitelist domain: {e}")
            await interaction.response.send_message(embed=_error_embed("An error occurred while adding the domain"), ephemeral=True)

    @app_commands.command(name="whitelist_remove", description="Remove a domain from the link whitelist")
    @admin_only_interaction()
    async def command_whitelist_remove(self, interaction: discord.Interaction, domain: str):
        """Slash command to remove a whitelisted domain"""
        try:
            success, result = await asyncio.to_thread(
                self.protection_manager.remove_whitelist_domain, interaction.guild.id, domain
            )

            if success:
                embed = discord.Embed(
                    title="✅ Domain Removed",
                    description=f"Removed `{result}` from the link whitelist",
                    color=discord.Color.green()
                )
            else:
                embed = _error_embed(result or f"Domain '{domain}' not found in whitelist")

            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error removing whitelist domain: {e}")
            await interaction.response.send_message(embed=_error_embed("An error occurred while removing the domain"), ephemeral=True)


async def setup(bot):
    """Setup the moderation cog from the components attached by run_bot"""
    cog = Moderation(bot, bot.moderation_coordinator, bot.raid_detector, bot.protection_manager)
    await bot.add_cog(cog)
    logger.info("Moderation cog loaded")

"""
Permission checking utilities for the bot
"""

import discord


def is_admin_interaction(interaction) -> bool:
    """Check if user has admin permissions in this guild (for interactions)"""
    if not interaction.guild:
        return False

    permissions = getattr(interaction.user, 'guild_permissions', None)
    if permissions is None:
        return False

    return permissions.administrator or permissions.manage_guild


def admin_only_interaction():
    """Decorator for admin-only slash commands"""
    async def predicate(interaction):
        if not is_admin_interaction(interaction):
            await interaction.response.send_message("❌ You need administrator permissions to use this command!", ephemeral=True)
            return False
        return True
    return discord.app_commands.check(predicate)

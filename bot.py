import asyncio
import logging
import discord
from discord.ext import commands, tasks

from config import config
from core.cache_manager import SettingsCache
from core.data_manager import create_settings_store
from core.shared_state import state
from core.moderation import (
    ContentFilter,
    ModerationActions,
    ModerationCoordinator,
    ModerationHealthChecker,
    ModerationLogger,
    ModerationScheduler,
    ProtectionManager,
    RaidDetector,
    SpamRateLimiter,
)

# Setup logging first
logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def create_bot():
    """Create and configure the Discord bot"""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.messages = True
    intents.message_content = True

    bot = commands.Bot(
        command_prefix=commands.when_mentioned,
        intents=intents,
        help_command=None,
        allowed_mentions=discord.AllowedMentions.none()
    )
    return bot


def build_moderation(bot, app_config=config):
    """Wire the settings store, cache and moderation components and attach them to the bot"""
    store = create_settings_store(app_config)
    defaults = {'moderation': app_config.get_moderation_defaults()}

    settings_cache = SettingsCache(
        store,
        ttl_ms={
            'moderation': app_config.moderation_cache_ttl_ms,
            'raid': app_config.raid_cache_ttl_ms,
        },
        defaults=defaults,
        fetch_timeout=app_config.platform_timeout_seconds,
    )
    actions = ModerationActions(bot, timeout=app_config.platform_timeout_seconds)
    audit_logger = ModerationLogger(actions, default_channel_id=app_config.log_channel_id)
    scheduler = ModerationScheduler()
    spam_limiter = SpamRateLimiter()
    raid_detector = RaidDetector(
        actions, audit_logger, scheduler,
        extend_on_sustained=app_config.raid_extend_on_sustained
    )
    coordinator = ModerationCoordinator(
        settings_cache, actions, audit_logger,
        content_filter=ContentFilter(),
        spam_limiter=spam_limiter,
        raid_detector=raid_detector,
    )
    protection_manager = ProtectionManager(store, defaults=defaults)
    health_checker = ModerationHealthChecker(settings_cache, store, scheduler, raid_detector, audit_logger)

    bot.settings_store = store
    bot.settings_cache = settings_cache
    bot.spam_limiter = spam_limiter
    bot.raid_detector = raid_detector
    bot.moderation_coordinator = coordinator
    bot.protection_manager = protection_manager
    bot.moderation_logger = audit_logger
    bot.health_checker = health_checker

    state.set_moderation(store, protection_manager, raid_detector, audit_logger, health_checker)
    return bot


async def run_bot():
    """Async function to run the bot (called by start.py)"""
    bot = None
    try:
        logger.info("=" * 50)
        logger.info("Moderation Bot Starting...")
        logger.info("=" * 50)

        config.validate()

        bot = create_bot()
        build_moderation(bot)
        # Import backend functions (delayed to avoid circular import)
        from backend import set_bot_instance
        set_bot_instance(bot, asyncio.get_running_loop())

        # Load cogs
        logger.info("Loading cogs...")
        try:
            await bot.load_extension('cogs.moderation')
            logger.info("✓ Moderation cog loaded")
        except Exception as e:
            logger.error(f"✗ Failed to load moderation cog: {e}")

        @bot.event
        async def on_ready():
            logger.info(f"Bot logged in as {bot.user.name} (ID: {bot.user.id})")
            logger.info(f"Connected to {len(bot.guilds)} guild(s)")
            bot.moderation_coordinator.bot_user_id = bot.user.id

            await bot.change_presence(
                activity=discord.Activity(
                    type=discord.ActivityType.watching,
                    name=f"{len(bot.guilds)} servers"
                )
            )

            try:
                synced = await bot.tree.sync()
                logger.info(f"✓ Synced {len(synced)} slash commands")
            except Exception as e:
                logger.error(f"✗ Failed to sync slash commands: {e}")

            logger.info("=" * 50)
            logger.info("Bot is ready and online!")
            logger.info(f"Admin API: http://{config.host}:{config.port}")
            logger.info("=" * 50)

        @bot.event
        async def on_guild_remove(guild):
            logger.info(f"Removed from guild: {guild.name} (ID: {guild.id})")
            bot.spam_limiter.reset(guild.id)
            await bot.raid_detector.deactivate(guild.id, reason='left guild')

        @tasks.loop(minutes=5)
        async def prune_spam_buckets():
            """Drop per-user spam buckets that have gone quiet"""
            try:
                pruned = bot.spam_limiter.prune_idle(max(config.spam_window_ms, 60000))
                if pruned:
                    logger.info(f"Spam bucket cleanup removed {pruned} idle entries")
            except Exception as e:
                logger.error(f"Error during spam bucket cleanup: {e}")

        @prune_spam_buckets.before_loop
        async def before_prune_spam_buckets():
            await bot.wait_until_ready()

        prune_spam_buckets.start()

        @tasks.loop(minutes=1)
        async def raid_rollback_watchdog():
            """Roll back lockdowns whose scheduled job went missing"""
            for guild_id in bot.raid_detector.active_guilds():
                try:
                    await bot.raid_detector.deactivate_if_expired(guild_id)
                except Exception as e:
                    logger.error(f"[raid] Watchdog rollback failed for guild {guild_id}: {e}")

        @raid_rollback_watchdog.before_loop
        async def before_raid_rollback_watchdog():
            await bot.wait_until_ready()

        raid_rollback_watchdog.start()

        @bot.tree.error
        async def on_app_command_error(interaction: discord.Interaction, error):
            """Global slash command error handler"""
            if isinstance(error, discord.app_commands.CheckFailure):
                return

            logger.error(f"Unexpected error in command {interaction.command}: {error}", exc_info=error)
            message = "❌ An error occurred while executing this command."
            try:
                if interaction.response.is_done():
                    await interaction.followup.send(message, ephemeral=True)
                else:
                    await interaction.response.send_message(message, ephemeral=True)
            except discord.HTTPException as e:
                logger.debug(f"Could not report command error: {e}")

        logger.info("Connecting to Discord...")
        await bot.start(config.discord_token)

    except KeyboardInterrupt:
        logger.info("Bot shutdown requested")
    except Exception as e:
        logger.error(f"Fatal error in run_bot: {e}", exc_info=True)
    finally:
        if bot is not None:
            if getattr(bot, 'raid_detector', None) is not None:
                bot.raid_detector.cancel_all()
            await bot.close()


if __name__ == "__main__":
    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        logger.info("Shutdown complete")

"""
Configuration management for the moderation bot
Centralized configuration with environment variable loading
"""

import os
import logging
from typing import Dict, Any

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    """Parse an integer env var, falling back to default on absent/invalid values"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Centralized configuration management"""

    def __init__(self):
        # Load .env only for local development
        if os.getenv('ENVIRONMENT') != 'production':
            from dotenv import load_dotenv
            load_dotenv()

        self._load_environment()

    def _load_environment(self):
        """Load all environment variables"""

        # Discord Configuration
        self.discord_token = os.getenv('DISCORD_TOKEN')
        self.log_channel_id = _env_int('LOG_CHANNEL_ID', 0) or None

        # Settings store
        self.supabase_url = os.getenv('SUPABASE_URL')
        self.supabase_service_role_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY')

        # Built-in moderation defaults (used when a guild has no settings document)
        self.spam_max_msgs = _env_int('SPAM_MAX_MSGS', 6)
        self.spam_window_ms = _env_int('SPAM_WINDOW_MS', 7000)
        self.spam_timeout_ms = _env_int('SPAM_TIMEOUT_MS', 60000)
        self.block_links = _env_int('BLOCK_LINKS', 1) == 1
        self.block_invites = _env_int('BLOCK_INVITES', 1) == 1

        # Cache and timeouts
        self.moderation_cache_ttl_ms = _env_int('MODERATION_CACHE_TTL_MS', 15000)
        self.raid_cache_ttl_ms = _env_int('RAID_CACHE_TTL_MS', 12000)
        self.platform_timeout_seconds = _env_int('PLATFORM_TIMEOUT_SECONDS', 10)

        # Raid defense behaviour for bursts during an active lockdown
        self.raid_extend_on_sustained = _env_bool('RAID_EXTEND_ON_SUSTAINED', False)

        # Server Configuration
        self.port = _env_int('PORT', 5000)
        self.host = os.getenv('HOST', '0.0.0.0')
        self.environment = os.getenv('ENVIRONMENT', 'development')
        self.debug = self.environment == 'development'

        # Dashboard authentication
        self.dashboard_username = os.getenv('DASHBOARD_USERNAME', 'admin')
        self.dashboard_password = os.getenv('DASHBOARD_PASSWORD', 'admin123')
        self.jwt_secret_key = os.getenv('JWT_SECRET_KEY', 'dev-secret-key-change-me')

        # CORS Configuration
        self.allowed_origins = self._parse_allowed_origins()

        # Logging
        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()

    def _parse_allowed_origins(self) -> list:
        """Parse allowed CORS origins from environment"""
        origins_env = os.getenv('ALLOWED_ORIGINS', '')

        if origins_env:
            origins = [origin.strip() for origin in origins_env.split(',') if origin.strip()]
            if origins:
                return origins

        return [
            'http://localhost:3000',
            'http://localhost:5000',
            'http://127.0.0.1:3000',
            'http://127.0.0.1:5000',
        ]

    def validate(self):
        """Validate configuration required to start the bot"""
        required_vars = {
            'DISCORD_TOKEN': self.discord_token,
        }

        missing = [name for name, value in required_vars.items() if not value]
        if missing:
            error_msg = f"Missing required environment variables: {', '.join(missing)}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        if not self.has_settings_store():
            logger.warning("⚠️ SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY not set - using in-memory settings")

        if self.is_production() and self.dashboard_password == 'admin123':
            logger.warning("⚠️ DASHBOARD_PASSWORD is the default value in production")

        logger.info("✅ Configuration validation passed")

    def has_settings_store(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def get_moderation_defaults(self) -> Dict[str, Any]:
        """Built-in moderation settings document"""
        return {
            'enabled': True,
            'blockLinks': self.block_links,
            'blockInvites': self.block_invites,
            'spamEnabled': True,
            'spamWindowMs': self.spam_window_ms,
            'spamMaxMsgs': self.spam_max_msgs,
            'spamTimeoutMs': self.spam_timeout_ms,
            'whitelistDomains': [],
            'exemptRoleIds': [],
            'exemptChannelIds': [],
            'logChannelId': self.log_channel_id,
        }

    def get_flask_config(self) -> Dict[str, Any]:
        """Get Flask configuration"""
        return {
            'host': self.host,
            'port': self.port,
            'debug': self.debug,
            'secret_key': self.jwt_secret_key,
            'cors_origins': self.allowed_origins,
        }

    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == 'production'


# Global configuration instance
config = Config()

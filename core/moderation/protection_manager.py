import logging
from typing import Any, Dict, Optional, Tuple

from .models import ModerationSettings, RaidSettings, normalize_domain

logger = logging.getLogger(__name__)

SETTINGS_TYPES = {
    'moderation': ModerationSettings,
    'raid': RaidSettings,
}

BOOL_FIELDS = {
    'moderation': ('enabled', 'blockLinks', 'blockInvites', 'spamEnabled'),
    'raid': ('enabled', 'lockLinks'),
}
INT_FIELDS = {
    'moderation': {'spamWindowMs': 1, 'spamMaxMsgs': 1, 'spamTimeoutMs': 0},
    'raid': {'joinWindowMs': 1, 'joinThreshold': 1, 'defenseDurationMs': 1, 'slowmodeSeconds': 0},
}
LIST_FIELDS = {
    'moderation': ('whitelistDomains', 'exemptRoleIds', 'exemptChannelIds'),
    'raid': (),
}


class SettingsValidationError(ValueError):
    """Raised when a settings patch contains a value that cannot be coerced"""


class ProtectionManager:
    """Reads and writes moderation/raid settings documents for the dashboard and slash commands.

    Writes go straight to the store; the bot observes them once its cached copy expires.
    """

    def __init__(self, store, defaults: Optional[Dict[str, Dict[str, Any]]] = None):
        self.store = store
        self.defaults = defaults or {}

    def load_settings(self, kind: str, guild_id: int) -> Dict[str, Any]:
        """Returns the effective (coerced) settings document for a guild"""
        settings_type = self._settings_type(kind)
        try:
            data = self.store.fetch(kind, guild_id) if self.store is not None else None
        except Exception as e:
            logger.error(f"Failed to load {kind} settings for guild {guild_id}: {e}")
            data = None
        return settings_type.from_dict(data, self.defaults.get(kind)).to_dict()

    def save_settings(self, kind: str, guild_id: int, patch: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        """Merges patch into the stored document and persists the coerced result"""
        settings_type = self._settings_type(kind)
        if not isinstance(patch, dict):
            raise SettingsValidationError('Settings payload must be an object')

        self._validate_patch(kind, patch)

        current = self.load_settings(kind, guild_id)
        current.update({k: v for k, v in patch.items() if k in current})
        document = settings_type.from_dict(current, self.defaults.get(kind)).to_dict()

        if self.store is None:
            return False, document

        success = self.store.save(kind, guild_id, document)
        if success:
            logger.info(f"Updated {kind} settings for guild {guild_id}")
        return success, document

    def add_whitelist_domain(self, guild_id: int, domain: str) -> Tuple[bool, str]:
        """Adds a domain to the link whitelist; subdomains are covered automatically"""
        normalized = normalize_domain(domain)
        if not normalized:
            return False, 'Invalid domain'

        settings = self.load_settings('moderation', guild_id)
        whitelist = settings['whitelistDomains']
        if normalized in whitelist:
            return False, 'Domain already whitelisted'

        success, _ = self.save_settings('moderation', guild_id, {'whitelistDomains': whitelist + [normalized]})
        return success, normalized

    def remove_whitelist_domain(self, guild_id: int, domain: str) -> Tuple[bool, str]:
        """Removes domain from whitelist"""
        normalized = normalize_domain(domain)
        settings = self.load_settings('moderation', guild_id)
        whitelist = settings['whitelistDomains']
        if not normalized or normalized not in whitelist:
            return False, 'Domain not in whitelist'

        whitelist = [d for d in whitelist if d != normalized]
        success, _ = self.save_settings('moderation', guild_id, {'whitelistDomains': whitelist})
        return success, normalized

    def _settings_type(self, kind: str):
        if kind not in SETTINGS_TYPES:
            raise SettingsValidationError(f"Unknown settings kind: {kind}")
        return SETTINGS_TYPES[kind]

    def _validate_patch(self, kind: str, patch: Dict[str, Any]):
        for key in BOOL_FIELDS[kind]:
            if key in patch and not isinstance(patch[key], bool):
                raise SettingsValidationError(f"{key} must be a boolean")

        for key, minimum in INT_FIELDS[kind].items():
            if key not in patch:
                continue
            value = patch[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
                raise SettingsValidationError(f"{key} must be a number >= {minimum}")

        for key in LIST_FIELDS[kind]:
            if key in patch and not isinstance(patch[key], list):
                raise SettingsValidationError(f"{key} must be a list")

        if 'logChannelId' in patch and patch['logChannelId'] not in (None, ''):
            if not str(patch['logChannelId']).strip().isdigit():
                raise SettingsValidationError('logChannelId must be a channel id')

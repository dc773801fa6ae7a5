"""
Data types shared by the moderation pipeline.

Settings documents are stored by the dashboard with camelCase keys
(``spamWindowMs``, ``whitelistDomains`` ...). ``from_dict`` coerces them into
typed settings, replacing anything absent or malformed with a default.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

# Discord rejects rate limits above six hours
MAX_SLOWMODE_SECONDS = 21600

DEFAULT_MODERATION_SETTINGS = {
    'enabled': True,
    'blockLinks': True,
    'blockInvites': True,
    'spamEnabled': True,
    'spamWindowMs': 7000,
    'spamMaxMsgs': 6,
    'spamTimeoutMs': 60000,
    'whitelistDomains': [],
    'exemptRoleIds': [],
    'exemptChannelIds': [],
    'logChannelId': None,
}

DEFAULT_RAID_SETTINGS = {
    'enabled': False,
    'joinWindowMs': 15000,
    'joinThreshold': 8,
    'defenseDurationMs': 300000,
    'slowmodeSeconds': 10,
    'lockLinks': True,
    'logChannelId': None,
}


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off', ''):
            return False
    return default


def _coerce_int(value: Any, default: int, minimum: int = 1) -> int:
    """Return value as int if it is a number >= minimum, otherwise default"""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return default
    if number < minimum:
        return default
    return number


def _coerce_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _coerce_ids(values: Any, default: Iterable[int] = ()) -> Set[int]:
    if values is None:
        return set()
    if isinstance(values, bool):
        return set(default)
    if isinstance(values, (str, int)):
        values = [values]
    elif not isinstance(values, (list, tuple, set)):
        return set(default)
    ids = set()
    for value in values:
        coerced = _coerce_id(value)
        if coerced is not None:
            ids.add(coerced)
    return ids


def normalize_domain(entry: Any) -> Optional[str]:
    """Reduce a whitelist entry like ``https://*.Example.com/`` to ``example.com``"""
    if not isinstance(entry, str):
        return None
    domain = entry.strip().lower()
    for prefix in ('https://', 'http://'):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    domain = domain.split('/', 1)[0]
    if domain.startswith('*.'):
        domain = domain[2:]
    domain = domain.lstrip('.').rstrip('.')
    return domain or None


def _coerce_domains(values: Any, default: Iterable[str] = ()) -> Set[str]:
    if values is None:
        return set()
    if isinstance(values, str):
        values = values.split(',')
    elif not isinstance(values, (list, tuple, set)):
        return set(default)
    domains = set()
    for value in values:
        domain = normalize_domain(value)
        if domain:
            domains.add(domain)
    return domains


@dataclass
class ModerationSettings:
    """Per-guild content filter and anti-spam configuration"""

    enabled: bool = True
    block_links: bool = True
    block_invites: bool = True
    spam_enabled: bool = True
    spam_window_ms: int = 7000
    spam_max_msgs: int = 6
    spam_timeout_ms: int = 60000
    whitelist_domains: Set[str] = field(default_factory=set)
    exempt_role_ids: Set[int] = field(default_factory=set)
    exempt_channel_ids: Set[int] = field(default_factory=set)
    log_channel_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], defaults: Optional[Dict[str, Any]] = None) -> 'ModerationSettings':
        base = dict(DEFAULT_MODERATION_SETTINGS)
        if defaults:
            base.update({k: v for k, v in defaults.items() if v is not None})
        fallback = cls._from_trusted(base)
        data = data if isinstance(data, dict) else {}

        return cls(
            enabled=_coerce_bool(data.get('enabled'), fallback.enabled),
            block_links=_coerce_bool(data.get('blockLinks'), fallback.block_links),
            block_invites=_coerce_bool(data.get('blockInvites'), fallback.block_invites),
            spam_enabled=_coerce_bool(data.get('spamEnabled'), fallback.spam_enabled),
            spam_window_ms=_coerce_int(data.get('spamWindowMs'), fallback.spam_window_ms),
            spam_max_msgs=_coerce_int(data.get('spamMaxMsgs'), fallback.spam_max_msgs),
            spam_timeout_ms=_coerce_int(data.get('spamTimeoutMs'), fallback.spam_timeout_ms, minimum=0),
            whitelist_domains=_coerce_domains(data['whitelistDomains'], fallback.whitelist_domains) if 'whitelistDomains' in data else set(fallback.whitelist_domains),
            exempt_role_ids=_coerce_ids(data['exemptRoleIds'], fallback.exempt_role_ids) if 'exemptRoleIds' in data else set(fallback.exempt_role_ids),
            exempt_channel_ids=_coerce_ids(data['exemptChannelIds'], fallback.exempt_channel_ids) if 'exemptChannelIds' in data else set(fallback.exempt_channel_ids),
            log_channel_id=_coerce_id(data.get('logChannelId')) or fallback.log_channel_id,
        )

    @classmethod
    def _from_trusted(cls, base: Dict[str, Any]) -> 'ModerationSettings':
        hardcoded = DEFAULT_MODERATION_SETTINGS
        return cls(
            enabled=_coerce_bool(base.get('enabled'), hardcoded['enabled']),
            block_links=_coerce_bool(base.get('blockLinks'), hardcoded['blockLinks']),
            block_invites=_coerce_bool(base.get('blockInvites'), hardcoded['blockInvites']),
            spam_enabled=_coerce_bool(base.get('spamEnabled'), hardcoded['spamEnabled']),
            spam_window_ms=_coerce_int(base.get('spamWindowMs'), hardcoded['spamWindowMs']),
            spam_max_msgs=_coerce_int(base.get('spamMaxMsgs'), hardcoded['spamMaxMsgs']),
            spam_timeout_ms=_coerce_int(base.get('spamTimeoutMs'), hardcoded['spamTimeoutMs'], minimum=0),
            whitelist_domains=_coerce_domains(base.get('whitelistDomains')),
            exempt_role_ids=_coerce_ids(base.get('exemptRoleIds')),
            exempt_channel_ids=_coerce_ids(base.get('exemptChannelIds')),
            log_channel_id=_coerce_id(base.get('logChannelId')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'blockLinks': self.block_links,
            'blockInvites': self.block_invites,
            'spamEnabled': self.spam_enabled,
            'spamWindowMs': self.spam_window_ms,
            'spamMaxMsgs': self.spam_max_msgs,
            'spamTimeoutMs': self.spam_timeout_ms,
            'whitelistDomains': sorted(self.whitelist_domains),
            'exemptRoleIds': [str(i) for i in sorted(self.exempt_role_ids)],
            'exemptChannelIds': [str(i) for i in sorted(self.exempt_channel_ids)],
            'logChannelId': str(self.log_channel_id) if self.log_channel_id else None,
        }


@dataclass
class RaidSettings:
    """Per-guild mass-join defense configuration. Opt-in."""

    enabled: bool = False
    join_window_ms: int = 15000
    join_threshold: int = 8
    defense_duration_ms: int = 300000
    slowmode_seconds: int = 10
    # Persisted for the dashboard; nothing consumes it during a lockdown
    lock_links: bool = True
    log_channel_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], defaults: Optional[Dict[str, Any]] = None) -> 'RaidSettings':
        base = dict(DEFAULT_RAID_SETTINGS)
        if defaults:
            base.update({k: v for k, v in defaults.items() if v is not None})
        data = data if isinstance(data, dict) else {}

        def pick(key):
            return data.get(key, base.get(key))

        hardcoded = DEFAULT_RAID_SETTINGS
        slowmode = _coerce_int(pick('slowmodeSeconds'), hardcoded['slowmodeSeconds'], minimum=0)
        return cls(
            enabled=_coerce_bool(pick('enabled'), hardcoded['enabled']),
            join_window_ms=_coerce_int(pick('joinWindowMs'), hardcoded['joinWindowMs']),
            join_threshold=_coerce_int(pick('joinThreshold'), hardcoded['joinThreshold']),
            defense_duration_ms=_coerce_int(pick('defenseDurationMs'), hardcoded['defenseDurationMs']),
            slowmode_seconds=min(slowmode, MAX_SLOWMODE_SECONDS),
            lock_links=_coerce_bool(pick('lockLinks'), hardcoded['lockLinks']),
            log_channel_id=_coerce_id(pick('logChannelId')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'joinWindowMs': self.join_window_ms,
            'joinThreshold': self.join_threshold,
            'defenseDurationMs': self.defense_duration_ms,
            'slowmodeSeconds': self.slowmode_seconds,
            'lockLinks': self.lock_links,
            'logChannelId': str(self.log_channel_id) if self.log_channel_id else None,
        }


@dataclass(frozen=True)
class FilterDecision:
    action: str = 'pass'
    reason: Optional[str] = None

    @property
    def deleted(self) -> bool:
        return self.action == 'delete'


@dataclass(frozen=True)
class SpamResult:
    tripped: bool
    count: int = 0


@dataclass
class DefenseState:
    """An active raid lockdown for one guild"""

    activated_at: int
    active_until: int
    join_count: int
    slowmode_seconds: int = 0
    log_channel_id: Optional[int] = None
    guild_name: str = ''
    job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'active': True,
            'activatedAt': self.activated_at,
            'activeUntil': self.active_until,
            'joinCount': self.join_count,
            'slowmodeSeconds': self.slowmode_seconds,
        }


@dataclass(frozen=True)
class MessageEvent:
    """Platform-neutral view of a message-created event"""

    guild_id: Optional[int]
    channel_id: int
    message_id: int
    author_id: int
    content: str = ''
    author_tag: str = ''
    author_is_bot: bool = False
    author_role_ids: List[int] = field(default_factory=list)
    author_can_manage_messages: bool = False


@dataclass(frozen=True)
class JoinEvent:
    """Platform-neutral view of a member-joined event"""

    guild_id: Optional[int]
    user_id: int
    guild_name: str = ''
    user_tag: str = ''
    is_bot: bool = False


def role_ids(roles: Iterable[Any]) -> List[int]:
    """Collect ids from discord role objects (or plain ids)"""
    ids = []
    for role in roles or []:
        role_id = getattr(role, 'id', role)
        coerced = _coerce_id(role_id)
        if coerced is not None:
            ids.append(coerced)
    return ids

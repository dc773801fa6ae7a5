"""
Moderation system for Discord bot
Provides link/invite filtering, anti-spam rate limiting and raid (mass-join) defense.
"""

from .models import (
    ModerationSettings,
    RaidSettings,
    FilterDecision,
    SpamResult,
    DefenseState,
    MessageEvent,
    JoinEvent,
)
from .content_filter import ContentFilter
from .spam import SpamRateLimiter
from .raid import RaidDetector
from .coordinator import ModerationCoordinator
from .actions import ModerationActions
from .scheduler import ModerationScheduler
from .logger import ModerationLogger
from .health import ModerationHealthChecker
from .protection_manager import ProtectionManager, SettingsValidationError

__all__ = [
    'ModerationSettings',
    'RaidSettings',
    'FilterDecision',
    'SpamResult',
    'DefenseState',
    'MessageEvent',
    'JoinEvent',
    'ContentFilter',
    'SpamRateLimiter',
    'RaidDetector',
    'ModerationCoordinator',
    'ModerationActions',
    'ModerationScheduler',
    'ModerationLogger',
    'ModerationHealthChecker',
    'ProtectionManager',
    'SettingsValidationError',
]

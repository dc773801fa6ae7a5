"""Shared state between bot and backend - avoids circular imports"""


class SharedState:
    def __init__(self):
        self.bot = None
        self.loop = None
        self.store = None
        self.protection_manager = None
        self.raid_detector = None
        self.audit_logger = None
        self.health_checker = None

    def set_bot(self, bot, loop=None):
        self.bot = bot
        self.loop = loop

    def set_moderation(self, store, protection_manager, raid_detector, audit_logger, health_checker):
        self.store = store
        self.protection_manager = protection_manager
        self.raid_detector = raid_detector
        self.audit_logger = audit_logger
        self.health_checker = health_checker

    def is_bot_ready(self) -> bool:
        return self.bot is not None and self.bot.is_ready()


# Global instance
state = SharedState()

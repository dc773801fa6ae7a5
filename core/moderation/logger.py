import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class ModerationLogger:
    """Handles logging and auditing of automated moderation actions"""

    def __init__(self, actions, default_channel_id: Optional[int] = None, max_entries: int = 1000):
        self.actions = actions
        self.default_channel_id = default_channel_id
        self.max_entries = max_entries
        self._audit_log = []  # In-memory ring of recent entries for the dashboard

    async def log_action(self, guild_id: int, action: str, content: str,
                         channel_id: Optional[int] = None, details: Optional[Dict] = None) -> Dict:
        """Records one audit entry and posts its line to the log channel"""
        now = datetime.now(timezone.utc)
        audit_entry = {
            'id': f"audit_{guild_id}_{int(now.timestamp() * 1000)}_{len(self._audit_log)}",
            'guild_id': guild_id,
            'action': action,
            'content': content,
            'details': details or {},
            'timestamp': now.isoformat(),
        }

        self._audit_log.append(audit_entry)
        if len(self._audit_log) > self.max_entries:
            self._audit_log = self._audit_log[-self.max_entries:]

        target = channel_id or self.default_channel_id
        if target:
            sent = await self.actions.send_to_channel(target, content)
            audit_entry['delivered'] = sent
        else:
            audit_entry['delivered'] = False

        logger.info(f"[{action}] guild={guild_id} {content}")
        return audit_entry

    def get_audit_logs(self, guild_id: int, action: str = None, limit: int = 50) -> List[Dict]:
        """Retrieves audit logs with optional filtering, newest first"""
        logs = [log for log in reversed(self._audit_log) if log['guild_id'] == guild_id]

        if action:
            logs = [log for log in logs if log['action'] == action]

        return logs[:limit]

    def count(self) -> int:
        return len(self._audit_log)

# Settings store for per-guild moderation documents (Supabase, with an in-memory fallback)

import copy
import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import create_client, Client

logger = logging.getLogger(__name__)

SETTINGS_TABLE = 'guild_settings'


class DataManager:
    """Supabase-based settings store with retry and degraded-mode handling"""

    def __init__(self, supabase_url: str = None, supabase_key: str = None):
        self.supabase_url = supabase_url or os.getenv('SUPABASE_URL')
        self.supabase_service_key = supabase_key or os.getenv('SUPABASE_SERVICE_ROLE_KEY')

        if not all([self.supabase_url, self.supabase_service_key]):
            raise ValueError("Missing Supabase environment variables")

        # Connection configuration
        self.max_retries = int(os.getenv('DB_MAX_RETRIES', '3'))
        self.retry_delay = float(os.getenv('DB_RETRY_DELAY', '0.5'))  # Base retry delay

        self.admin_client: Client = self._create_supabase_client(self.supabase_url, self.supabase_service_key)

        # Connection health monitoring
        self._connection_healthy = True
        self._consecutive_failures = 0
        self._degraded_mode = False

        self._performance_stats = {
            'loads': 0,
            'saves': 0,
            'db_connection_errors': 0,
            'db_retry_attempts': 0,
            'start_time': time.time()
        }

        logger.info("✅ DataManager initialized with Supabase client")

    def _create_supabase_client(self, url: str, key: str) -> Client:
        """Create Supabase client"""
        try:
            return create_client(url, key)
        except Exception as e:
            logger.error(f"Failed to create Supabase client: {e}")
            raise

    def _execute_with_retry(self, operation, operation_name, *args, **kwargs):
        """Execute operation with retry logic (synchronous)"""
        for attempt in range(1, self.max_retries + 1):
            try:
                result = operation(*args, **kwargs)
                self._record_success()
                return result
            except Exception as e:
                self._performance_stats['db_connection_errors'] += 1
                if attempt == self.max_retries:
                    logger.error(f"❌ Operation {operation_name} failed after {self.max_retries} attempts: {e}")
                    self._record_failure()
                    raise

                self._performance_stats['db_retry_attempts'] += 1
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(f"⚠️  Operation {operation_name} failed (attempt {attempt}/{self.max_retries}): {e}. Retrying in {delay:.2f}s")
                time.sleep(delay)

    def _record_success(self):
        self._consecutive_failures = 0
        self._connection_healthy = True
        if self._degraded_mode:
            self._degraded_mode = False
            logger.info("✅ Leaving degraded mode - settings store reachable again")

    def _record_failure(self):
        self._consecutive_failures += 1
        self._connection_healthy = False
        if not self._degraded_mode:
            self._degraded_mode = True
            logger.error("🚨 ENTERING DEGRADED MODE - settings store operations failing")

    def fetch(self, kind: str, guild_id: int) -> Optional[Dict[str, Any]]:
        """Returns the stored settings document, or None when the guild has none"""
        self._performance_stats['loads'] += 1

        def _load_operation():
            return self.admin_client.table(SETTINGS_TABLE) \
                .select('data') \
                .eq('guild_id', str(guild_id)) \
                .eq('kind', kind) \
                .limit(1) \
                .execute()

        result = self._execute_with_retry(_load_operation, f"fetch_{kind}")
        if not result.data:
            return None
        data = result.data[0].get('data')
        return data if isinstance(data, dict) else None

    def save(self, kind: str, guild_id: int, data: Dict[str, Any]) -> bool:
        """Upserts a settings document. Returns False if the store rejected it."""
        self._performance_stats['saves'] += 1
        row = {
            'guild_id': str(guild_id),
            'kind': kind,
            'data': data,
            'updated_at': datetime.now(timezone.utc).isoformat()
        }

        def _save_operation():
            return self.admin_client.table(SETTINGS_TABLE) \
                .upsert(row, on_conflict='guild_id,kind') \
                .execute()

        try:
            self._execute_with_retry(_save_operation, f"save_{kind}")
            return True
        except Exception as e:
            logger.error(f"Failed to save {kind} settings for guild {guild_id}: {e}")
            return False

    def get_connection_status(self) -> Dict[str, Any]:
        """Get detailed connection status information"""
        return {
            'backend': 'supabase',
            'healthy': self._connection_healthy,
            'degraded_mode': self._degraded_mode,
            'consecutive_failures': self._consecutive_failures,
            'loads': self._performance_stats['loads'],
            'saves': self._performance_stats['saves'],
            'uptime_seconds': time.time() - self._performance_stats['start_time']
        }


class MemorySettingsStore:
    """Dict-backed settings store for local runs and tests"""

    def __init__(self, initial: Optional[Dict] = None):
        self._data: Dict[tuple, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        for (kind, guild_id), document in (initial or {}).items():
            self._data[(kind, int(guild_id))] = copy.deepcopy(document)

    def fetch(self, kind: str, guild_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._data.get((kind, int(guild_id)))
            return copy.deepcopy(document) if document is not None else None

    def save(self, kind: str, guild_id: int, data: Dict[str, Any]) -> bool:
        with self._lock:
            self._data[(kind, int(guild_id))] = copy.deepcopy(data)
        return True

    def get_connection_status(self) -> Dict[str, Any]:
        with self._lock:
            documents = len(self._data)
        return {'backend': 'memory', 'healthy': True, 'degraded_mode': False, 'documents': documents}


def create_settings_store(app_config):
    """Picks Supabase when configured, otherwise the in-memory store"""
    if app_config.has_settings_store():
        try:
            return DataManager(app_config.supabase_url, app_config.supabase_service_role_key)
        except Exception as e:
            logger.error(f"Supabase unavailable, falling back to in-memory settings: {e}")
    return MemorySettingsStore()

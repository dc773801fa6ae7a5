import logging
import time
from typing import Dict

from .raid import RaidDetector
from .scheduler import ModerationScheduler
from .logger import ModerationLogger

logger = logging.getLogger(__name__)


class ModerationHealthChecker:
    """Health monitoring for moderation subsystem"""

    def __init__(self, settings_cache, store, scheduler: ModerationScheduler,
                 raid_detector: RaidDetector, audit_logger: ModerationLogger):
        self.settings_cache = settings_cache
        self.store = store
        self.scheduler = scheduler
        self.raid_detector = raid_detector
        self.audit_logger = audit_logger
        self._last_check = 0

    def moderation_health_check(self) -> Dict:
        """Verifies scheduler, settings store and cache state"""
        current_time = time.time()

        health_report = {
            'timestamp': current_time,
            'component': 'moderation',
            'status': 'healthy',
            'checks': {},
            'issues': []
        }

        # Settings store
        if self.store is None:
            health_report['checks']['settings_store'] = 'absent'
        else:
            try:
                status = self.store.get_connection_status()
                health_report['checks']['settings_store'] = status
                if status.get('degraded_mode'):
                    health_report['issues'].append("Settings store in degraded mode - using defaults")
            except Exception as e:
                health_report['checks']['settings_store'] = 'error'
                health_report['issues'].append(f"Settings store error: {e}")

        # Scheduler
        try:
            scheduled_jobs = self.scheduler.get_scheduled_jobs()
            health_report['checks']['scheduler'] = 'ok'
            health_report['checks']['scheduled_jobs_count'] = len(scheduled_jobs)

            overdue_jobs = self.scheduler.get_overdue_jobs()
            if overdue_jobs:
                health_report['issues'].append(f"Overdue jobs: {len(overdue_jobs)}")
                health_report['checks']['overdue_jobs'] = overdue_jobs
        except Exception as e:
            health_report['checks']['scheduler'] = 'error'
            health_report['issues'].append(f"Scheduler error: {e}")

        health_report['checks']['active_raid_defenses'] = len(self.raid_detector.active_guilds())
        health_report['checks']['cache'] = self.settings_cache.get_cache_stats()
        health_report['checks']['audit_logs_count'] = self.audit_logger.count()

        health_report['status'] = 'degraded' if health_report['issues'] else 'healthy'
        health_report['performance'] = {
            'check_duration': time.time() - current_time,
            'last_check_age': current_time - self._last_check if self._last_check else None
        }

        self._last_check = current_time

        logger.debug(f"Moderation health check completed: {health_report['status']}")
        return health_report

"""
Tests for the per-user sliding-window spam limiter
"""

import pytest

from core.moderation.models import ModerationSettings
from core.moderation.spam import SpamRateLimiter


class TestSpamRateLimiter:

    @pytest.fixture
    def limiter(self):
        return SpamRateLimiter(clock=lambda: 0)

    @pytest.fixture
    def settings(self):
        return ModerationSettings.from_dict({'spamMaxMsgs': 6, 'spamWindowMs': 7000})

    def test_trips_on_sixth_message_in_window(self, limiter, settings):
        results = [limiter.record_and_check(settings, 1, 10, now=t) for t in (0, 1000, 2000, 3000, 4000, 5000)]

        assert [r.tripped for r in results] == [False] * 5 + [True]
        assert results[-1].count == 6

    def test_bucket_resets_after_trip(self, limiter, settings):
        for t in (0, 1000, 2000, 3000, 4000, 5000):
            limiter.record_and_check(settings, 1, 10, now=t)

        result = limiter.record_and_check(settings, 1, 10, now=5100)

        assert not result.tripped
        assert result.count == 1
        assert limiter.bucket_size(1, 10) == 1

    def test_old_messages_leave_the_window(self, limiter, settings):
        for t in (0, 1000, 2000, 3000, 4000):
            limiter.record_and_check(settings, 1, 10, now=t)

        # t=0 and t=1000 are older than 7000ms at t=9000
        result = limiter.record_and_check(settings, 1, 10, now=9000)

        assert not result.tripped
        assert result.count == 4

    def test_window_boundary_is_inclusive(self, limiter, settings):
        for t in (0, 1000, 2000, 3000, 4000):
            limiter.record_and_check(settings, 1, 10, now=t)

        assert limiter.record_and_check(settings, 1, 10, now=7000).tripped

    def test_users_tracked_separately(self, limiter, settings):
        for t in range(5):
            limiter.record_and_check(settings, 1, 10, now=t)

        assert not limiter.record_and_check(settings, 1, 11, now=6).tripped
        assert limiter.record_and_check(settings, 1, 10, now=6).tripped

    def test_guilds_tracked_separately(self, limiter, settings):
        for t in range(5):
            limiter.record_and_check(settings, 1, 10, now=t)

        assert not limiter.record_and_check(settings, 2, 10, now=6).tripped

    def test_spam_disabled(self, limiter):
        settings = ModerationSettings.from_dict({'spamEnabled': False, 'spamMaxMsgs': 1})

        assert not limiter.record_and_check(settings, 1, 10, now=0).tripped
        assert limiter.bucket_size(1, 10) == 0

    def test_threshold_of_one(self, limiter):
        settings = ModerationSettings.from_dict({'spamMaxMsgs': 1})

        assert limiter.record_and_check(settings, 1, 10, now=0).tripped

    def test_uses_injected_clock(self, settings):
        now = {'value': 0}
        limiter = SpamRateLimiter(clock=lambda: now['value'])

        for t in range(6):
            now['value'] = t * 100
            result = limiter.record_and_check(settings, 1, 10)

        assert result.tripped

    def test_reset_user_and_guild(self, limiter, settings):
        limiter.record_and_check(settings, 1, 10, now=0)
        limiter.record_and_check(settings, 1, 11, now=0)
        limiter.record_and_check(settings, 2, 10, now=0)

        limiter.reset(1, 10)
        assert limiter.bucket_size(1, 10) == 0
        assert limiter.bucket_size(1, 11) == 1

        limiter.reset(1)
        assert limiter.bucket_size(1, 11) == 0
        assert limiter.bucket_size(2, 10) == 1

    def test_prune_idle(self, limiter, settings):
        limiter.record_and_check(settings, 1, 10, now=0)
        limiter.record_and_check(settings, 1, 11, now=50000)

        assert limiter.prune_idle(60000, now=70000) == 1
        assert limiter.bucket_size(1, 10) == 0
        assert limiter.bucket_size(1, 11) == 1

    def test_prune_keeps_buckets_inside_a_longer_guild_window(self, limiter):
        settings = ModerationSettings.from_dict({'spamMaxMsgs': 3, 'spamWindowMs': 120000})
        limiter.record_and_check(settings, 1, 10, now=0)
        limiter.record_and_check(settings, 1, 10, now=10000)

        assert limiter.prune_idle(60000, now=75000) == 0

        result = limiter.record_and_check(settings, 1, 10, now=80000)
        assert result.tripped is True
        assert result.count == 3

    def test_prune_drops_long_window_bucket_once_expired(self, limiter):
        settings = ModerationSettings.from_dict({'spamWindowMs': 120000})
        limiter.record_and_check(settings, 1, 10, now=0)

        assert limiter.prune_idle(60000, now=120001) == 1
        assert limiter.bucket_size(1, 10) == 0

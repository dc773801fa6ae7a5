"""
Tests for settings coercion
"""

from core.moderation.models import (
    MAX_SLOWMODE_SECONDS,
    DefenseState,
    ModerationSettings,
    RaidSettings,
    normalize_domain,
    role_ids,
)


class TestModerationSettings:

    def test_defaults(self):
        settings = ModerationSettings.from_dict(None)

        assert settings.enabled is True
        assert settings.block_links is True
        assert settings.block_invites is True
        assert settings.spam_window_ms == 7000
        assert settings.spam_max_msgs == 6
        assert settings.spam_timeout_ms == 60000
        assert settings.whitelist_domains == set()

    def test_invalid_numbers_fall_back(self):
        settings = ModerationSettings.from_dict({'spamMaxMsgs': 0, 'spamWindowMs': 'soon', 'spamTimeoutMs': -1})

        assert settings.spam_max_msgs == 6
        assert settings.spam_window_ms == 7000
        assert settings.spam_timeout_ms == 60000

    def test_numeric_strings_accepted(self):
        settings = ModerationSettings.from_dict({'spamMaxMsgs': '4', 'spamWindowMs': 5000.0})

        assert settings.spam_max_msgs == 4
        assert settings.spam_window_ms == 5000

    def test_boolean_coercion(self):
        settings = ModerationSettings.from_dict({'blockLinks': 0, 'blockInvites': 'false', 'spamEnabled': 'maybe'})

        assert settings.block_links is False
        assert settings.block_invites is False
        assert settings.spam_enabled is True

    def test_whitelist_normalized(self):
        settings = ModerationSettings.from_dict({
            'whitelistDomains': ['https://GitHub.com/', '*.youtube.com', '', None, 42]
        })

        assert settings.whitelist_domains == {'github.com', 'youtube.com'}

    def test_comma_separated_whitelist(self):
        settings = ModerationSettings.from_dict({'whitelistDomains': 'a.com, b.org'})

        assert settings.whitelist_domains == {'a.com', 'b.org'}

    def test_ids_coerced(self):
        settings = ModerationSettings.from_dict({
            'exemptRoleIds': ['1', 2, 'x', -5],
            'exemptChannelIds': '3',
            'logChannelId': '900',
        })

        assert settings.exempt_role_ids == {1, 2}
        assert settings.exempt_channel_ids == {3}
        assert settings.log_channel_id == 900

    def test_non_list_collections_fall_back(self):
        defaults = {'whitelistDomains': ['github.com'], 'exemptRoleIds': [7]}

        settings = ModerationSettings.from_dict(
            {'whitelistDomains': 5, 'exemptRoleIds': 1.5, 'exemptChannelIds': True},
            defaults,
        )

        assert settings.whitelist_domains == {'github.com'}
        assert settings.exempt_role_ids == {7}
        assert settings.exempt_channel_ids == set()

    def test_boolean_whitelist_falls_back(self):
        settings = ModerationSettings.from_dict({'whitelistDomains': True})

        assert settings.whitelist_domains == set()

    def test_injected_defaults(self):
        settings = ModerationSettings.from_dict({}, {'blockLinks': False, 'spamMaxMsgs': 10, 'logChannelId': None})

        assert settings.block_links is False
        assert settings.spam_max_msgs == 10

    def test_document_overrides_defaults(self):
        settings = ModerationSettings.from_dict({'spamMaxMsgs': 3}, {'spamMaxMsgs': 10, 'logChannelId': 77})

        assert settings.spam_max_msgs == 3
        assert settings.log_channel_id == 77

    def test_to_dict(self):
        document = ModerationSettings.from_dict({
            'whitelistDomains': ['b.com', 'a.com'],
            'exemptRoleIds': [5],
            'logChannelId': 9,
        }).to_dict()

        assert document['whitelistDomains'] == ['a.com', 'b.com']
        assert document['exemptRoleIds'] == ['5']
        assert document['logChannelId'] == '9'
        assert ModerationSettings.from_dict(document).to_dict() == document


class TestRaidSettings:

    def test_defaults(self):
        settings = RaidSettings.from_dict(None)

        assert settings.enabled is False
        assert settings.join_window_ms == 15000
        assert settings.join_threshold == 8
        assert settings.defense_duration_ms == 300000
        assert settings.slowmode_seconds == 10
        assert settings.lock_links is True

    def test_slowmode_clamped(self):
        assert RaidSettings.from_dict({'slowmodeSeconds': 99999}).slowmode_seconds == MAX_SLOWMODE_SECONDS

    def test_zero_slowmode_allowed(self):
        assert RaidSettings.from_dict({'slowmodeSeconds': 0}).slowmode_seconds == 0

    def test_invalid_threshold_falls_back(self):
        assert RaidSettings.from_dict({'joinThreshold': 0}).join_threshold == 8

    def test_to_dict(self):
        document = RaidSettings.from_dict({'enabled': True, 'logChannelId': '12'}).to_dict()

        assert document['enabled'] is True
        assert document['logChannelId'] == '12'


class TestHelpers:

    def test_normalize_domain(self):
        assert normalize_domain('  HTTP://www.Example.com/path ') == 'www.example.com'
        assert normalize_domain('.example.com.') == 'example.com'
        assert normalize_domain('') is None
        assert normalize_domain(None) is None

    def test_role_ids(self):
        class Role:
            def __init__(self, role_id):
                self.id = role_id

        assert role_ids([Role(1), Role(2), 3]) == [1, 2, 3]
        assert role_ids(None) == []

    def test_defense_state_to_dict(self):
        state = DefenseState(activated_at=1, active_until=2, join_count=8, slowmode_seconds=10)

        assert state.to_dict() == {
            'active': True,
            'activatedAt': 1,
            'activeUntil': 2,
            'joinCount': 8,
            'slowmodeSeconds': 10,
        }

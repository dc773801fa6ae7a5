import re
import logging
from typing import Iterable, List, Optional, Set
from urllib.parse import urlparse

from .models import FilterDecision, ModerationSettings, normalize_domain

logger = logging.getLogger(__name__)

INVITE_PATTERN = re.compile(
    r'(?:discord\.gg/|discord(?:app)?\.com/invite/)\S+',
    re.IGNORECASE
)
URL_PATTERN = re.compile(r'(?:https?://|www\.)\S+', re.IGNORECASE)

PASS = FilterDecision('pass')


class ContentFilter:
    """Classifies message text as pass/delete for invite and link protection"""

    def evaluate(self, settings: ModerationSettings, text: Optional[str],
                 author_role_ids: Iterable[int], channel_id: int,
                 author_can_manage_messages: bool = False) -> FilterDecision:
        """Decide whether a message should be deleted. Has no side effects."""
        if not settings.enabled:
            return PASS

        if self.is_exempt(settings, author_role_ids, channel_id):
            return PASS

        # Users who can manage messages bypass filtering
        if author_can_manage_messages:
            return PASS

        content = text or ''

        # Invites take priority over the generic link filter
        if settings.block_invites and INVITE_PATTERN.search(content):
            return FilterDecision('delete', 'invite')

        if settings.block_links and URL_PATTERN.search(content):
            hostnames = self.extract_hostnames(content)
            if hostnames and all(self._check_whitelist(host, settings.whitelist_domains) for host in hostnames):
                return PASS
            return FilterDecision('delete', 'link')

        return PASS

    def is_exempt(self, settings: ModerationSettings, author_role_ids: Iterable[int], channel_id: int) -> bool:
        """Determines if a message author or channel is exempt"""
        if channel_id in settings.exempt_channel_ids:
            return True
        return any(role_id in settings.exempt_role_ids for role_id in author_role_ids or [])

    def extract_hostnames(self, text: str) -> List[str]:
        """Extracts the hostname of every URL in the text"""
        hostnames = []
        for match in URL_PATTERN.findall(text or ''):
            domain = self._extract_domain(match)
            if domain:
                hostnames.append(domain)
        return hostnames

    def _extract_domain(self, url: str) -> Optional[str]:
        """Extract domain from URL"""
        url = url.rstrip(').,!?>\'"*_~`|')
        if not re.match(r'https?://', url, re.IGNORECASE):
            url = f"http://{url}"
        try:
            hostname = urlparse(url).hostname
        except ValueError:
            return None
        return normalize_domain(hostname) if hostname else None

    def _check_whitelist(self, domain: str, whitelist: Set[str]) -> bool:
        """Check if domain equals a whitelisted entry or is a subdomain of one"""
        for allowed in whitelist:
            if domain == allowed or domain.endswith('.' + allowed):
                return True
        return False

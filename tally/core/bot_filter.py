"""
Bot filtering on the User-Agent header

Classification uses the uap-core signature database shipped with
ua-parser, through the user_agents wrapper.
"""
import logging
from typing import Callable, Optional, Tuple

import user_agents

from tally.core.errors import BotSignatureError

logger = logging.getLogger(__name__)

SPIDER_DEVICE_FAMILY = "Spider"
BOT_UA_FAMILY = "Bot"

# Parsed once at startup so a broken signature database fails fast
_PROBE_USER_AGENT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class BotFilter:
    """
    Classify user agents as human or automated

    Unknown, empty and unparseable user agents count as human.
    """

    def __init__(self, parse: Optional[Callable[[str], object]] = None):
        """
        Initialize the filter and load the signature database

        Args:
            parse: User-agent parser (default: user_agents.parse)

        Raises:
            BotSignatureError: If the signature database cannot be loaded
        """
        self._parse = parse or user_agents.parse

        try:
            device_family, ua_family = self.classify(_PROBE_USER_AGENT)
        except Exception as e:
            raise BotSignatureError(f"Failed to load user-agent signatures: {e}") from e

        logger.debug(f"Bot signatures loaded (sample: {device_family}/{ua_family})")

    def classify(self, user_agent: str) -> Tuple[str, str]:
        """
        Match a user agent against the signature database

        Args:
            user_agent: Raw User-Agent header

        Returns:
            (device family, user-agent family)
        """
        parsed = self._parse(user_agent or "")
        return parsed.device.family, parsed.browser.family

    def is_bot(self, user_agent: str) -> bool:
        """
        Check whether a user agent belongs to a spider or bot

        Args:
            user_agent: Raw User-Agent header

        Returns:
            True for spiders and bots, False otherwise
        """
        if not user_agent:
            return False

        try:
            device_family, ua_family = self.classify(user_agent)
        except Exception as e:
            logger.debug(f"Unparseable user agent {user_agent!r}, counting as human: {e}")
            return False

        return device_family == SPIDER_DEVICE_FAMILY or ua_family == BOT_UA_FAMILY

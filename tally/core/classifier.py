"""
Derive aggregation dimensions from a raw beacon
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from tally.core.errors import MalformedURLError
from tally.models.events import DIRECT_REFERRER


def _host(netloc: str) -> str:
    """Host and port of a netloc, without credentials"""
    return netloc.rpartition("@")[2]


@dataclass(frozen=True)
class Classification:
    """Dimension values of one pageview"""

    domain: str
    path: str
    referrer_domain: str
    country: Optional[str] = None


class EventClassifier:
    """
    Turn (url, referrer, country) into domain, path and referrer domain

    Rules:
    - Missing path becomes "/"
    - Missing referrer, or a referrer on the visited domain, becomes "Direct / None"
    - A referrer that cannot be parsed is kept verbatim
    - The country hint is passed through untouched
    """

    def classify(
        self,
        raw_url: str,
        referrer: Optional[str] = None,
        country_hint: Optional[str] = None,
    ) -> Classification:
        """
        Classify a pageview

        Args:
            raw_url: Visited URL
            referrer: Referer header or client-reported referrer
            country_hint: Country code from the edge proxy

        Returns:
            Classification

        Raises:
            MalformedURLError: If raw_url cannot be parsed or has no host
        """
        domain, path = self.parse_url(raw_url)
        return Classification(
            domain=domain,
            path=path,
            referrer_domain=self.referrer_domain(referrer, domain),
            country=country_hint or None,
        )

    @staticmethod
    def parse_url(raw_url: str):
        """Split a visited URL into (domain, path)"""
        try:
            parsed = urlsplit(raw_url)
            domain = _host(parsed.netloc)
        except ValueError as e:
            raise MalformedURLError(raw_url, str(e)) from e

        if not domain:
            raise MalformedURLError(raw_url, "missing host")

        return domain, parsed.path or "/"

    @staticmethod
    def referrer_domain(referrer: Optional[str], domain: str) -> str:
        """
        Source of a visit

        Args:
            referrer: Referrer URL, if any
            domain: Domain of the visited page

        Returns:
            Referrer host, the raw referrer, or "Direct / None"
        """
        if not referrer:
            return DIRECT_REFERRER

        try:
            source = _host(urlsplit(referrer).netloc) or referrer
        except ValueError:
            source = referrer

        if source == domain:
            return DIRECT_REFERRER
        return source

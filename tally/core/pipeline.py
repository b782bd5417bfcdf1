"""
Pageview ingestion pipeline
Filters bots, classifies beacons and updates the aggregation tables
"""
from datetime import date
from typing import Callable, Optional
import logging

from tally.core.bot_filter import BotFilter
from tally.core.classifier import EventClassifier
from tally.core.errors import MissingURLError, StorageError
from tally.core.fingerprint import FingerprintHasher, resolve_client_ip
from tally.core.storage import AggregationStore
from tally.models.events import DimensionKey, IngestResult, IngestStatus, PageviewEvent, Table
from tally.utils.time_windows import DayBucketer

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """
    Process pageviews into the pages, countries and sources tables

    The pages write is the primary signal and its failure fails the
    beacon. Country and source writes are best-effort: failures are
    logged and reported in the result but the beacon is still accepted.
    """

    def __init__(
        self,
        store: AggregationStore,
        bot_filter: BotFilter,
        classifier: Optional[EventClassifier] = None,
        hasher: Optional[FingerprintHasher] = None,
        today: Callable[[], date] = DayBucketer.utc_today,
    ):
        """
        Initialize ingestion pipeline

        Args:
            store: Aggregation store
            bot_filter: Loaded bot filter
            classifier: Dimension classifier
            hasher: Fingerprint hasher
            today: Clock returning the current UTC day
        """
        self.store = store
        self.bot_filter = bot_filter
        self.classifier = classifier or EventClassifier()
        self.hasher = hasher or FingerprintHasher()
        self.today = today

    def ingest(self, event: PageviewEvent) -> IngestResult:
        """
        Ingest a single pageview

        Args:
            event: Beacon to ingest

        Returns:
            IngestResult with the tables written

        Raises:
            MissingURLError: If the beacon has no URL
            MalformedURLError: If the URL cannot be parsed
            StorageError: If the pages write fails
        """
        if not event.url:
            raise MissingURLError()

        if self.bot_filter.is_bot(event.user_agent):
            logger.debug(
                f"Ignored non-human pageview: url={event.url} user_agent={event.user_agent!r}"
            )
            return IngestResult(status=IngestStatus.ACCEPTED, discarded=True)

        # Server clock, so clients cannot backdate visits
        day = self.today()

        client_ip = resolve_client_ip(event.client_ip, event.proxy_ip_hint)
        fingerprint = self.hasher.fingerprint(client_ip, day)

        classification = self.classifier.classify(
            event.url, event.referrer, event.country_hint
        )
        domain = classification.domain

        result = IngestResult(status=IngestStatus.ACCEPTED)

        try:
            self.store.merge_upsert(
                Table.PAGES,
                DimensionKey(domain=domain, dimension_value=classification.path, day=day),
                fingerprint,
            )
        except StorageError as e:
            logger.error(f"Failed to track pageview: url={event.url} error={e}", exc_info=True)
            raise
        result.recorded.append(Table.PAGES)

        if classification.country:
            self._record_secondary(
                result, Table.COUNTRIES, domain, classification.country, day, fingerprint
            )

        self._record_secondary(
            result, Table.SOURCES, domain, classification.referrer_domain, day, fingerprint
        )

        logger.debug(
            f"Pageview tracked: domain={domain} path={classification.path} "
            f"source={classification.referrer_domain} country={classification.country}"
        )
        return result

    def _record_secondary(
        self,
        result: IngestResult,
        table: Table,
        domain: str,
        value: str,
        day: date,
        fingerprint: bytes,
    ) -> None:
        """
        Best-effort write to a secondary table

        Failures are logged and noted on the result, never raised.
        """
        try:
            self.store.merge_upsert(
                table, DimensionKey(domain=domain, dimension_value=value, day=day), fingerprint
            )
            result.recorded.append(table)
        except StorageError as e:
            logger.error(f"Failed to track {table.value}: domain={domain} value={value} error={e}")
            result.failed.append(table)

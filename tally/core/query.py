"""
Read back daily visitor statistics from the aggregation store
"""
from collections import OrderedDict
from datetime import date
from typing import Callable, List, Optional
import logging

from tally.core.errors import QueryError, StorageError
from tally.core.storage import AggregationStore
from tally.models.events import StatRow, Table
from tally.utils.time_windows import DayBucketer

logger = logging.getLogger(__name__)


class QueryService:
    """
    Daily statistics over a date window

    Per-value mode returns one row per (dimension value, day). Aggregate
    mode, pages only, merges the estimators of every path of a day before
    counting so a visitor who saw several pages counts once.
    """

    def __init__(
        self,
        store: AggregationStore,
        window_days: int = 30,
        max_window_days: int = 366,
        today: Callable[[], date] = DayBucketer.utc_today,
    ):
        self.store = store
        self.window_days = window_days
        self.max_window_days = max_window_days
        self.today = today

    def resolve_window(self, start_day: Optional[date] = None, end_day: Optional[date] = None) -> tuple:
        """
        Fill in missing window bounds

        end_day defaults to today, start_day to window_days before end_day.
        """
        if end_day is None:
            end_day = self.today()
        if start_day is None:
            start_day, _ = DayBucketer.window(end_day, self.window_days)
        return start_day, end_day

    def query(
        self,
        table: Table,
        domain: str,
        start_day: Optional[date] = None,
        end_day: Optional[date] = None,
        aggregate: bool = False,
    ) -> List[StatRow]:
        """
        Visitors per day

        Args:
            table: Table to read
            domain: Site domain
            start_day: First day included (default: window_days before end_day)
            end_day: Last day included (default: today)
            aggregate: Merge all paths of a day into one row (pages only)

        Returns:
            Rows ordered by day descending, then visitors descending

        Raises:
            ValueError: If aggregate is requested on a table other than pages,
                or the window is wider than max_window_days
            QueryError: If the store fails
        """
        if aggregate and table != Table.PAGES:
            raise ValueError(f"Aggregate mode is only supported for {Table.PAGES.value}")

        start_day, end_day = self.resolve_window(start_day, end_day)
        span = DayBucketer.span_days(start_day, end_day)
        if span == 0:
            return []
        if span > self.max_window_days:
            raise ValueError(
                f"Window of {span} days exceeds the maximum of {self.max_window_days}"
            )

        try:
            rows = self.store.read_range(table, domain, start_day, end_day)
        except StorageError as e:
            logger.error(f"Failed to query stats: table={table.value} domain={domain} error={e}")
            raise QueryError(f"Failed to fetch stats for {domain}") from e

        if aggregate:
            return self._aggregate(rows)

        stats = [
            StatRow(dimension_value=key.dimension_value, day=key.day, visitors=hll.cardinality())
            for key, hll in rows
        ]
        stats.sort(key=lambda s: (-s.day.toordinal(), -s.visitors, s.dimension_value))
        return stats

    def _aggregate(self, rows) -> List[StatRow]:
        """Merge estimators per day, then count"""
        by_day = OrderedDict()
        for key, hll in rows:
            by_day.setdefault(key.day, []).append(hll)

        stats = [
            StatRow(day=day, visitors=self.store.merge_estimators(hlls).cardinality())
            for day, hlls in by_day.items()
        ]
        stats.sort(key=lambda s: s.day, reverse=True)
        return stats

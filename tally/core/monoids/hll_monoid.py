"""
HyperLogLog Monoid implementation

Enables composable cardinality estimation across:
- Paths (merge every page of a domain into one daily visitor count)
- Days (merge daily estimators into a longer window)
- Stores (merge partial results read from different backends)
"""
from typing import Iterable

from algesnake.abstract import Monoid

from tally.core.sketches.hyperloglog import HyperLogLog


class HLLMonoid(Monoid[HyperLogLog]):
    """
    Monoid for HyperLogLog sketches

    Example usage:
        monoid = HLLMonoid(precision=12)

        home = monoid.zero()
        home.add(b"visitor-1")
        home.add(b"visitor-2")

        pricing = monoid.zero()
        pricing.add(b"visitor-2")  # same visitor, different page

        site = monoid.plus(home, pricing)
        print(site.cardinality())  # ~2 (deduplicates visitor-2)
    """

    def __init__(self, precision: int = 12):
        """
        Initialize HLLMonoid

        Args:
            precision: HyperLogLog precision (4-16)
        """
        self.precision = precision

    def zero(self) -> HyperLogLog:
        """
        Identity element: empty HyperLogLog

        Returns:
            Empty HLL with specified precision
        """
        return HyperLogLog.empty(self.precision)

    def plus(self, a: HyperLogLog, b: HyperLogLog) -> HyperLogLog:
        """
        Combine two HyperLogLogs

        Args:
            a: First HLL
            b: Second HLL

        Returns:
            Merged HLL (union of both)

        Raises:
            ValueError: If HLLs have different precision
        """
        return a.merge(b)

    def sum(self, items: Iterable[HyperLogLog]) -> HyperLogLog:
        """Fold items into a single HLL, starting from zero()"""
        result = self.zero()
        for item in items:
            result = self.plus(result, item)
        return result

    def merge_paths(self, hlls: Iterable[HyperLogLog]) -> HyperLogLog:
        """
        Merge per-path HLLs into a domain-wide estimator

        Visitors who viewed several paths are counted once, which summing
        per-path cardinalities would not do.
        """
        return self.sum(hlls)

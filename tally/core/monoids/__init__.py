"""
Monoid implementations for probabilistic data structures

Inspired by Twitter Algebird
"""
from tally.core.monoids.hll_monoid import HLLMonoid

__all__ = [
    'HLLMonoid',
]

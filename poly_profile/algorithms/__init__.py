"""
Algorithm implementations for poly-profile.
"""

from poly_profile.algorithms.accumulator import BinAccumulator, ErrorMode
from poly_profile.algorithms.aggregator import GLOBAL_STAT_NAMES, ProfileAggregator

__all__ = [
    "BinAccumulator",
    "ErrorMode",
    "ProfileAggregator",
    "GLOBAL_STAT_NAMES",
]

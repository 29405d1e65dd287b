"""
poly-profile - Polygon-Binned Profile Aggregation

poly-profile accumulates streaming weighted samples of a scalar over an
arbitrary partition of the plane into polygonal bins, keeping a running mean
and error per bin, and merges partial results filled by independent workers.
"""

__version__ = "0.1.0"

# Import main classes to make them available at the top level
from poly_profile.algorithms.accumulator import BinAccumulator, ErrorMode
from poly_profile.algorithms.aggregator import GLOBAL_STAT_NAMES, ProfileAggregator
from poly_profile.core.base import StreamSummary
from poly_profile.core.regions import (
    Domain,
    OverflowRegion,
    RegionLookup,
    classify_overflow,
)

__all__ = [
    # Core base classes
    "StreamSummary",
    "Domain",
    "OverflowRegion",
    "RegionLookup",
    "classify_overflow",
    # Algorithm implementations
    "BinAccumulator",
    "ErrorMode",
    "ProfileAggregator",
    "GLOBAL_STAT_NAMES",
]

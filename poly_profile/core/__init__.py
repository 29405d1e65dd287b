"""
Core functionality for poly-profile.
"""

from poly_profile.core.base import Serializable, StreamSummary
from poly_profile.core.regions import (
    NUM_OVERFLOW,
    Domain,
    OverflowRegion,
    RegionLookup,
    classify_overflow,
    overflow_index,
)

__all__ = [
    # Base classes
    "StreamSummary",
    "Serializable",
    # Domain and overflow classification
    "Domain",
    "OverflowRegion",
    "RegionLookup",
    "NUM_OVERFLOW",
    "classify_overflow",
    "overflow_index",
]

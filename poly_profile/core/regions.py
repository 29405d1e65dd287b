"""
Domain extents and overflow-region classification.

Samples are classified against the rectangular extents of the aggregator's
domain into a 3x3 grid of overflow regions. Region numbers are negative so
they never collide with the 1-based numbers of interior bins:

             x < xmin   inside   x > xmax
    y > ymax     -1       -2        -3
    inside       -4       -5        -6
    y < ymin     -7       -8        -9

The centre cell (-5) is the domain itself. Geometry alone never classifies a
sample there; the aggregator uses it for in-domain samples that no interior
bin claims.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Protocol

NUM_OVERFLOW = 9


class OverflowRegion(IntEnum):
    """External numbers of the overflow regions surrounding the domain."""

    TOP_LEFT = -1
    TOP = -2
    TOP_RIGHT = -3
    LEFT = -4
    INSIDE = -5
    RIGHT = -6
    BOTTOM_LEFT = -7
    BOTTOM = -8
    BOTTOM_RIGHT = -9


class RegionLookup(Protocol):
    """
    Spatial-partition capability consumed by the aggregator.

    Given a point, return the 1-based numbers of the bins containing it.
    A partition normally yields at most one bin; an empty result means the
    point falls in a gap between polygons. Implementations must be
    deterministic and free of side effects.
    """

    def __call__(self, x: float, y: float) -> Iterable[int]:
        ...


@dataclass(frozen=True)
class Domain:
    """
    Rectangular extents of the aggregator's nominal domain.

    Attributes:
        xmin: Lower edge in x (inclusive).
        xmax: Upper edge in x (inclusive).
        ymin: Lower edge in y (inclusive).
        ymax: Upper edge in y (inclusive).
    """

    xmin: float
    xmax: float
    ymin: float
    ymax: float

    def __post_init__(self) -> None:
        if not self.xmin < self.xmax:
            raise ValueError(
                f"xmin must be less than xmax (got {self.xmin}, {self.xmax})"
            )
        if not self.ymin < self.ymax:
            raise ValueError(
                f"ymin must be less than ymax (got {self.ymin}, {self.ymax})"
            )

    def contains(self, x: float, y: float) -> bool:
        """Return True if (x, y) lies within the domain, edges included."""
        return self.xmin <= x <= self.xmax and self.ymin <= y <= self.ymax


def classify_overflow(domain: Domain, x: float, y: float) -> int:
    """
    Classify a point against the domain extents.

    Args:
        domain: The domain to classify against.
        x: The x coordinate.
        y: The y coordinate.

    Returns:
        0 if the point lies within the domain, otherwise the (negative)
        number of the overflow region it falls into.
    """
    if y > domain.ymax:
        row = 0
    elif y >= domain.ymin:
        row = 1
    else:
        row = 2

    if x < domain.xmin:
        col = 0
    elif x <= domain.xmax:
        col = 1
    else:
        col = 2

    if row == 1 and col == 1:
        return 0
    return -(3 * row + col + 1)


def overflow_index(region: int) -> int:
    """
    Map an overflow region number (-1..-9) to its storage index (0..8).

    Raises:
        ValueError: If region is not an overflow region number.
    """
    if not -NUM_OVERFLOW <= region <= -1:
        raise ValueError(f"Not an overflow region: {region}")
    return -region - 1

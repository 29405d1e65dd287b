"""
Polygon-binned profile aggregator.

A ProfileAggregator partitions the plane into arbitrary polygonal bins and
keeps, for each bin, a running weighted mean and error of a measured value.
Samples arrive as (x, y, value, weight). The owning bin is found through an
external region lookup; the aggregator itself never tests polygon
containment.

Alongside the interior bins it keeps nine overflow accumulators arranged as a
3x3 grid around the rectangular domain (see ``poly_profile.core.regions``)
and nine whole-domain moment sums over every sample ever filled.

Independently filled aggregators with the same partition can be combined
with ``merge``, which is how sharded work (one aggregator per worker) is
brought back together.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from poly_profile.algorithms.accumulator import BinAccumulator, ErrorMode
from poly_profile.core.base import StreamSummary
from poly_profile.core.regions import (
    NUM_OVERFLOW,
    Domain,
    OverflowRegion,
    RegionLookup,
    classify_overflow,
    overflow_index,
)

logger = logging.getLogger(__name__)

# Order of the values returned by get_global_stats()
GLOBAL_STAT_NAMES = (
    "sumw",
    "sumw2",
    "sumwx",
    "sumwx2",
    "sumwy",
    "sumwy2",
    "sumwxy",
    "sumwz",
    "sumwz2",
)

Sample = Tuple[float, float, float]


class ProfileAggregator(StreamSummary[Sample, float]):
    """
    Two-dimensional profile over polygonal bins.

    Bins are registered with ``add_bin``/``add_bins`` before the first fill and
    are numbered 1..N in registration order. Overflow regions are numbered
    -1..-9. Every per-bin accessor accepts either kind of number and returns
    0.0 for numbers with no storage behind them.

    Fill is not thread safe. Fill separate aggregators per worker and merge
    them afterwards.
    """

    def __init__(
        self,
        xmin: float,
        xmax: float,
        ymin: float,
        ymax: float,
        lookup: Optional[RegionLookup] = None,
        error_mode: Union[ErrorMode, str] = ErrorMode.SPREAD,
    ):
        """
        Initialize an empty aggregator over the given domain.

        Args:
            xmin: Lower edge of the domain in x.
            xmax: Upper edge of the domain in x.
            ymin: Lower edge of the domain in y.
            ymax: Upper edge of the domain in y.
            lookup: Callable mapping (x, y) to the numbers of the bins that
                    contain the point. Required to fill once bins exist.
            error_mode: Error mode given to every interior bin.

        Raises:
            ValueError: If the domain extents are empty or inverted.
        """
        super().__init__()

        self._domain = Domain(xmin, xmax, ymin, ymax)
        self._lookup = lookup
        self._error_mode = ErrorMode.coerce(error_mode)

        self._bins: List[BinAccumulator] = []
        self._overflow: List[BinAccumulator] = [
            BinAccumulator(bin_number=-(i + 1)) for i in range(NUM_OVERFLOW)
        ]

        self._entries = 0
        self._reset_global_sums()

        # Set by the first fill or merge; the partition is fixed from then on
        self._partition_frozen = False

    def _reset_global_sums(self) -> None:
        self._tsumw = 0.0
        self._tsumw2 = 0.0
        self._tsumwx = 0.0
        self._tsumwx2 = 0.0
        self._tsumwy = 0.0
        self._tsumwy2 = 0.0
        self._tsumwxy = 0.0
        self._tsumwz = 0.0
        self._tsumwz2 = 0.0

    def add_bin(self) -> int:
        """
        Register a new interior bin.

        Returns:
            The 1-based number of the new bin.

        Raises:
            RuntimeError: If samples have already been filled or merged in.
                          Resetting does not lift this.
        """
        if self._partition_frozen:
            raise RuntimeError("Cannot register bins after filling has started")

        bin_number = len(self._bins) + 1
        self._bins.append(
            BinAccumulator(bin_number=bin_number, error_mode=self._error_mode)
        )
        return bin_number

    def add_bins(self, count: int) -> List[int]:
        """
        Register several interior bins at once.

        Args:
            count: How many bins to add.

        Returns:
            The numbers of the new bins, in order.

        Raises:
            ValueError: If count is negative.
        """
        if count < 0:
            raise ValueError("Bin count must be non-negative")
        return [self.add_bin() for _ in range(count)]

    def fill(  # type: ignore[override]
        self, x: float, y: float, value: float, weight: float = 1.0
    ) -> int:
        """
        Add a weighted sample at (x, y).

        The sample always updates the global sums. Outside the domain it also
        goes into the matching overflow region. Every interior bin reported
        by the lookup is filled and has its display value set to its new
        average. An in-domain sample claimed by no bin is kept in the
        centre overflow region.

        Args:
            x: The x coordinate.
            y: The y coordinate.
            value: The measured quantity.
            weight: The sample weight (default 1).

        Returns:
            0 if (x, y) lies within the domain, otherwise the overflow
            region number (-1..-9).

        Raises:
            RuntimeError: If bins are registered but no lookup is set.
            ValueError: If the lookup reports a bin number that does not exist.
        """
        if self._bins and self._lookup is None:
            raise RuntimeError("No region lookup configured for this aggregator")

        region = classify_overflow(self._domain, x, y)
        matched = self._resolve_interior(x, y)

        super().fill((x, y, value))
        self._partition_frozen = True

        if region != 0:
            spill: Optional[BinAccumulator] = self._overflow[overflow_index(region)]
        elif not matched:
            spill = self._overflow[overflow_index(OverflowRegion.INSIDE)]
        else:
            spill = None
        if spill is not None:
            spill.fill(value, weight)
            spill.update()

        self._tsumw += weight
        self._tsumw2 += weight * weight
        self._tsumwx += weight * x
        self._tsumwx2 += weight * x * x
        self._tsumwy += weight * y
        self._tsumwy2 += weight * y * y
        self._tsumwxy += weight * x * y
        self._tsumwz += weight * value
        self._tsumwz2 += weight * value * value

        for acc in matched:
            self._entries += 1
            acc.fill(value, weight)
            acc.update()
            acc.content = acc.average

        return region

    def _resolve_interior(self, x: float, y: float) -> List[BinAccumulator]:
        if not self._bins:
            return []

        matched = []
        for bin_number in self._lookup(x, y):  # type: ignore[misc]
            if not 1 <= bin_number <= len(self._bins):
                raise ValueError(
                    f"Region lookup returned unknown bin {bin_number} for "
                    f"({x}, {y}); {len(self._bins)} bins are registered"
                )
            matched.append(self._bins[bin_number - 1])
        return matched

    def _resolve_bin(self, bin_number: int) -> Optional[BinAccumulator]:
        if bin_number > len(self._bins) or bin_number == 0:
            return None
        if bin_number < -NUM_OVERFLOW:
            return None
        if bin_number < 0:
            return self._overflow[-bin_number - 1]
        return self._bins[bin_number - 1]

    def get_bin_entries(self, bin_number: int) -> float:
        """Σw of a bin or overflow region (0.0 if there is none)."""
        acc = self._resolve_bin(bin_number)
        return acc.entries if acc is not None else 0.0

    def get_bin_effective_entries(self, bin_number: int) -> float:
        """(Σw)² / Σw² of a bin or overflow region (0.0 if there is none)."""
        acc = self._resolve_bin(bin_number)
        return acc.effective_entries if acc is not None else 0.0

    def get_bin_entries_w2(self, bin_number: int) -> float:
        """Σw² of a bin or overflow region (0.0 if there is none)."""
        acc = self._resolve_bin(bin_number)
        return acc.entries_w2 if acc is not None else 0.0

    def get_bin_entries_vw(self, bin_number: int) -> float:
        """Σw·v of a bin or overflow region (0.0 if there is none)."""
        acc = self._resolve_bin(bin_number)
        return acc.entries_vw if acc is not None else 0.0

    def get_bin_entries_wv2(self, bin_number: int) -> float:
        """Σw·v² of a bin or overflow region (0.0 if there is none)."""
        acc = self._resolve_bin(bin_number)
        return acc.entries_wv2 if acc is not None else 0.0

    def get_bin_error(self, bin_number: int) -> float:
        """Error of a bin or overflow region as of its last update."""
        acc = self._resolve_bin(bin_number)
        return acc.error if acc is not None else 0.0

    def get_bin_average(self, bin_number: int) -> float:
        """Average of a bin or overflow region as of its last update."""
        acc = self._resolve_bin(bin_number)
        return acc.average if acc is not None else 0.0

    def get_bin_content(self, bin_number: int) -> float:
        """Display value of a bin or overflow region."""
        acc = self._resolve_bin(bin_number)
        return acc.content if acc is not None else 0.0

    def query(self, bin_number: int) -> float:  # type: ignore[override]
        """
        Query the display value of a bin.

        This is a convenience method that calls get_bin_content.
        """
        return self.get_bin_content(bin_number)

    def bin(self, bin_number: int) -> BinAccumulator:
        """
        Get the accumulator behind a bin or overflow region number.

        Raises:
            IndexError: If no bin or overflow region has that number.
        """
        acc = self._resolve_bin(bin_number)
        if acc is None:
            raise IndexError(f"No bin numbered {bin_number}")
        return acc

    def overflow_bin(self, region: int) -> BinAccumulator:
        """Get the accumulator of an overflow region (-1..-9)."""
        return self._overflow[overflow_index(region)]

    def merge(self, aggregators: Sequence["ProfileAggregator"]) -> bool:  # type: ignore[override]
        """
        Merge independently filled aggregators into this one.

        All sources must share this aggregator's partition. Bins are matched
        by position only: bin i of every source must describe the same
        region as bin i here. That is not checked.

        Args:
            aggregators: The aggregators to merge from.

        Returns:
            True on success. False if the list is empty or the bin counts
            differ, in which case this aggregator is left untouched.

        Raises:
            TypeError: If a source is not a ProfileAggregator.
        """
        if not aggregators:
            logger.error("Merge failed: no aggregators to merge")
            return False

        for other in aggregators:
            self._check_same_type(other)

        bin_counts = {len(other._bins) for other in aggregators}
        bin_counts.add(len(self._bins))
        if len(bin_counts) != 1:
            logger.error(
                "Merge failed: bin counts of aggregators differ (%s)",
                sorted(bin_counts),
            )
            return False

        self._partition_frozen = True

        for other in aggregators:
            self._entries += other._entries
            self._items_processed += other._items_processed

            self._tsumw += other._tsumw
            self._tsumw2 += other._tsumw2
            self._tsumwx += other._tsumwx
            self._tsumwx2 += other._tsumwx2
            self._tsumwy += other._tsumwy
            self._tsumwy2 += other._tsumwy2
            self._tsumwxy += other._tsumwxy
            self._tsumwz += other._tsumwz
            self._tsumwz2 += other._tsumwz2

            for dst, src in zip(self._overflow, other._overflow):
                dst.merge(src)

        for acc in self._overflow:
            acc.update()

        for i, dst in enumerate(self._bins):
            for other in aggregators:
                dst.merge(other._bins[i])
            dst.update()

        self.set_display_to_average()

        logger.debug(
            "Merged %d aggregators over %d bins", len(aggregators), len(self._bins)
        )
        return True

    def set_display_to_average(self) -> None:
        """Update every interior bin and display its average."""
        for acc in self._bins:
            acc.update()
            acc.content = acc.average

    def set_display_to_error(self) -> None:
        """Update every interior bin and display its error."""
        for acc in self._bins:
            acc.update()
            acc.content = acc.error

    def set_error_mode(
        self, mode: Union[ErrorMode, str], include_overflow: bool = False
    ) -> None:
        """
        Set the error mode of the aggregator and of its interior bins.

        Every affected bin is updated at once, so errors reflect the new
        mode immediately.

        Args:
            mode: The new error mode.
            include_overflow: Also apply the mode to the overflow regions,
                              which otherwise keep their current mode.
        """
        self._error_mode = ErrorMode.coerce(mode)

        for acc in self._bins:
            acc.error_mode = self._error_mode
            acc.update()

        if include_overflow:
            for acc in self._overflow:
                acc.error_mode = self._error_mode
                acc.update()

    def reset(self, include_overflow: bool = False) -> None:
        """
        Clear the statistics of the aggregator, keeping its partition.

        Interior bins lose their stats and display values, and the global
        sums, entries and sample count go back to zero. Overflow regions
        keep their statistics unless include_overflow is set.

        Args:
            include_overflow: Also clear the overflow regions.
        """
        for acc in self._bins:
            acc.clear_content()
            acc.clear_stats()

        if include_overflow:
            for acc in self._overflow:
                acc.clear()

        super().clear()
        self._entries = 0
        self._reset_global_sums()

        logger.debug("Reset aggregator with %d bins", len(self._bins))

    def clear(self) -> None:
        """Reset the aggregator to a freshly constructed state, partition kept."""
        self.reset(include_overflow=True)

    def get_global_stats(self) -> Tuple[float, ...]:
        """
        Get the whole-domain moment sums.

        Returns:
            (Σw, Σw², Σwx, Σwx², Σwy, Σwy², Σwxy, Σwz, Σwz²), in that order.
        """
        return (
            self._tsumw,
            self._tsumw2,
            self._tsumwx,
            self._tsumwx2,
            self._tsumwy,
            self._tsumwy2,
            self._tsumwxy,
            self._tsumwz,
            self._tsumwz2,
        )

    def _axis_sums(self, axis: int) -> Tuple[float, float]:
        if axis == 1:
            return self._tsumwx, self._tsumwx2
        if axis == 2:
            return self._tsumwy, self._tsumwy2
        if axis == 3:
            return self._tsumwz, self._tsumwz2
        raise ValueError(f"Axis must be 1 (x), 2 (y) or 3 (value), got {axis}")

    def get_mean(self, axis: int = 1) -> float:
        """
        Weighted mean over every filled sample.

        Args:
            axis: 1 for x, 2 for y, 3 for the measured value.
        """
        sumw_axis, _ = self._axis_sums(axis)
        if self._tsumw == 0:
            return 0.0
        return sumw_axis / self._tsumw

    def get_std_dev(self, axis: int = 1) -> float:
        """
        Weighted standard deviation over every filled sample.

        Args:
            axis: 1 for x, 2 for y, 3 for the measured value.
        """
        sumw_axis, sumw_axis2 = self._axis_sums(axis)
        if self._tsumw == 0:
            return 0.0
        mean = sumw_axis / self._tsumw
        return math.sqrt(max(sumw_axis2 / self._tsumw - mean * mean, 0.0))

    def get_overflow_content(self, region: int) -> float:
        """Σw collected by an overflow region (-1..-9)."""
        return self.overflow_bin(region).entries

    def overflow_grid(self) -> List[List[float]]:
        """Overflow contents as three rows (top to bottom) of three columns."""
        contents = [acc.entries for acc in self._overflow]
        return [contents[row * 3 : row * 3 + 3] for row in range(3)]

    def format_overflow_regions(self) -> str:
        """
        Render the overflow contents as a tab separated 3x3 grid plus total.

        The text is also logged at INFO level.
        """
        grid = self.overflow_grid()
        lines = ["\t".join(f"{cont:g}" for cont in row) for row in grid]
        lines.append(f"Total: {sum(sum(row) for row in grid):g}")
        text = "\n".join(lines)
        logger.info("Overflow regions:\n%s", text)
        return text

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def lookup(self) -> Optional[RegionLookup]:
        return self._lookup

    @property
    def error_mode(self) -> ErrorMode:
        return self._error_mode

    @property
    def entries(self) -> int:
        """Number of sample-to-bin assignments made by fill (or merged in)."""
        return self._entries

    @property
    def num_bins(self) -> int:
        return len(self._bins)

    @property
    def bins(self) -> Tuple[BinAccumulator, ...]:
        return tuple(self._bins)

    @property
    def overflow(self) -> Tuple[BinAccumulator, ...]:
        return tuple(self._overflow)

    def __len__(self) -> int:
        return len(self._bins)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the aggregator to a dictionary for serialization.

        The region lookup is not part of the snapshot.

        Returns:
            A dictionary representation of the aggregator.
        """
        data = self._base_dict()
        data.update(
            {
                "domain": [
                    self._domain.xmin,
                    self._domain.xmax,
                    self._domain.ymin,
                    self._domain.ymax,
                ],
                "error_mode": self._error_mode.value,
                "entries": self._entries,
                "partition_frozen": self._partition_frozen,
                "global_stats": list(self.get_global_stats()),
                "bins": [acc.to_dict() for acc in self._bins],
                "overflow": [acc.to_dict() for acc in self._overflow],
            }
        )
        return data

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], lookup: Optional[RegionLookup] = None, **kwargs: Any
    ) -> "ProfileAggregator":
        """
        Create an aggregator from a dictionary representation.

        Args:
            data: The dictionary containing the aggregator state.
            lookup: Region lookup for the restored aggregator.

        Returns:
            A new ProfileAggregator initialized with the given state.
        """
        xmin, xmax, ymin, ymax = data["domain"]
        agg = cls(
            xmin,
            xmax,
            ymin,
            ymax,
            lookup=lookup,
            error_mode=data.get("error_mode", ErrorMode.SPREAD.value),
        )

        agg._bins = [BinAccumulator.from_dict(b) for b in data.get("bins", [])]

        overflow = data.get("overflow")
        if overflow is not None:
            if len(overflow) != NUM_OVERFLOW:
                raise ValueError(
                    f"Expected {NUM_OVERFLOW} overflow regions, got {len(overflow)}"
                )
            agg._overflow = [BinAccumulator.from_dict(o) for o in overflow]

        (
            agg._tsumw,
            agg._tsumw2,
            agg._tsumwx,
            agg._tsumwx2,
            agg._tsumwy,
            agg._tsumwy2,
            agg._tsumwxy,
            agg._tsumwz,
            agg._tsumwz2,
        ) = data["global_stats"]

        agg._entries = data.get("entries", 0)
        agg._items_processed = data.get("items_processed", 0)
        agg._partition_frozen = data.get(
            "partition_frozen", agg._items_processed > 0
        )

        return agg

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the aggregator.

        Returns:
            A dictionary with the partition size, entry counts, global sums
            and overflow totals.
        """
        stats = super().get_stats()
        stats.update(
            {
                "num_bins": len(self._bins),
                "entries": self._entries,
                "error_mode": self._error_mode.value,
                "overflow_entries": sum(acc.entries for acc in self._overflow),
            }
        )
        stats.update(zip(GLOBAL_STAT_NAMES, self.get_global_stats()))
        return stats

"""
Per-region weighted profile accumulator.

A BinAccumulator keeps the four weighted moment sums of the samples routed
to one spatial region and derives a running weighted mean and an error
estimate from them on demand. Derived values are only recomputed by an
explicit ``update()`` so that a batch of fills pays for one recomputation.
"""

import math
from enum import Enum
from typing import Any, Dict, Tuple, Union

from poly_profile.core.base import StreamSummary


class ErrorMode(Enum):
    """How a bin derives its error from the accumulated moments."""

    SPREAD = "spread"  # standard deviation of the values
    MEAN_ERROR = "mean"  # standard error of the weighted mean

    @classmethod
    def coerce(cls, mode: Union["ErrorMode", str]) -> "ErrorMode":
        """Accept a member or its string value."""
        if isinstance(mode, cls):
            return mode
        return cls(mode)


class BinAccumulator(StreamSummary[float, Tuple[float, float]]):
    """
    Weighted moment accumulator for one bin of a profile.

    Tracks Σw, Σw·v, Σw² and Σw·v² together with the raw number of fills.
    The mean is Σw·v / Σw; the error is the weighted spread of the values or,
    in MEAN_ERROR mode, that spread divided by the square root of the
    effective number of entries (Σw)² / Σw².
    """

    def __init__(
        self,
        bin_number: int = 0,
        error_mode: Union[ErrorMode, str] = ErrorMode.SPREAD,
    ):
        """
        Initialize an empty accumulator.

        Args:
            bin_number: External number of the bin (1-based for interior
                        bins, negative for overflow regions).
            error_mode: How the error is derived by ``update()``.
        """
        super().__init__()

        self._bin_number = bin_number
        self._error_mode = ErrorMode.coerce(error_mode)

        # Moment sums
        self._sumw = 0.0
        self._sumvw = 0.0
        self._sumw2 = 0.0
        self._sumwv2 = 0.0

        # Derived values, refreshed by update()
        self._average = 0.0
        self._error = 0.0

        # Display value and redraw flag
        self._content = 0.0
        self._changed = False

    def fill(self, value: float, weight: float = 1.0) -> None:  # type: ignore[override]
        """
        Add a weighted sample.

        No validation is done on value or weight. Derived values are not
        recomputed; call ``update()`` once the batch is done.

        Args:
            value: The measured quantity.
            weight: The sample weight (default 1).
        """
        super().fill(value)

        self._sumw += weight
        self._sumvw += value * weight
        self._sumw2 += weight * weight
        self._sumwv2 += weight * value * value

    def update(self) -> None:
        """Recompute the average, then the error, and mark the bin as changed."""
        self._update_average()
        self._update_error()
        self._changed = True

    def _update_average(self) -> None:
        # Keep the last computed average when there is no weight.
        if self._sumw != 0:
            self._average = self._sumvw / self._sumw

    def _update_error(self) -> None:
        spread = 0.0
        if self._sumw != 0:
            variance = self._sumwv2 / self._sumw - self._average * self._average
            spread = math.sqrt(max(variance, 0.0))

        if self._error_mode is ErrorMode.SPREAD:
            self._error = spread
        else:
            neff = self.effective_entries
            self._error = spread / math.sqrt(neff) if neff > 0 else 0.0

    def query(self) -> Tuple[float, float]:  # type: ignore[override]
        """
        Get the derived values as of the last ``update()``.

        Returns:
            A tuple of (average, error).
        """
        return self._average, self._error

    def merge(self, other: "BinAccumulator") -> "BinAccumulator":
        """
        Add the moment sums of another accumulator into this one.

        The entry count and the derived values are left alone; call
        ``update()`` afterwards. The caller guarantees that other holds
        independent samples of the same region.

        Args:
            other: Another BinAccumulator.

        Returns:
            This accumulator.

        Raises:
            TypeError: If other is not a BinAccumulator.
        """
        self._check_same_type(other)

        self._sumw += other._sumw
        self._sumvw += other._sumvw
        self._sumw2 += other._sumw2
        self._sumwv2 += other._sumwv2

        return self

    def clear_stats(self) -> None:
        """Zero the moment sums, the derived values and the entry count."""
        super().clear()
        self._sumw = 0.0
        self._sumvw = 0.0
        self._sumw2 = 0.0
        self._sumwv2 = 0.0
        self._average = 0.0
        self._error = 0.0

    def clear_content(self) -> None:
        """Zero the display value."""
        self.content = 0.0

    def clear(self) -> None:
        """Reset the accumulator to its initial empty state."""
        self.clear_stats()
        self.clear_content()

    @property
    def bin_number(self) -> int:
        return self._bin_number

    @property
    def error_mode(self) -> ErrorMode:
        return self._error_mode

    @error_mode.setter
    def error_mode(self, mode: Union[ErrorMode, str]) -> None:
        self._error_mode = ErrorMode.coerce(mode)

    @property
    def sum_weight(self) -> float:
        return self._sumw

    @property
    def sum_weighted_value(self) -> float:
        return self._sumvw

    @property
    def sum_weight_squared(self) -> float:
        return self._sumw2

    @property
    def sum_weighted_value_squared(self) -> float:
        return self._sumwv2

    # Histogram-style aliases for the moment sums
    entries = sum_weight
    entries_vw = sum_weighted_value
    entries_w2 = sum_weight_squared
    entries_wv2 = sum_weighted_value_squared

    @property
    def effective_entries(self) -> float:
        """(Σw)² / Σw², or 0 when nothing has been filled."""
        if self._sumw2 == 0:
            return 0.0
        return self._sumw * self._sumw / self._sumw2

    @property
    def entry_count(self) -> int:
        """Raw number of fills routed to this bin."""
        return self._items_processed

    @property
    def average(self) -> float:
        return self._average

    @property
    def error(self) -> float:
        return self._error

    @property
    def content(self) -> float:
        """The externally visible display value (average or error)."""
        return self._content

    @content.setter
    def content(self, value: float) -> None:
        self._content = value
        self._changed = True

    @property
    def changed(self) -> bool:
        return self._changed

    @changed.setter
    def changed(self, flag: bool) -> None:
        self._changed = flag

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the accumulator to a dictionary for serialization.

        Returns:
            A dictionary representation of the accumulator.
        """
        data = self._base_dict()
        data.update(
            {
                "bin_number": self._bin_number,
                "error_mode": self._error_mode.value,
                "sumw": self._sumw,
                "sumvw": self._sumvw,
                "sumw2": self._sumw2,
                "sumwv2": self._sumwv2,
                "average": self._average,
                "error": self._error,
                "content": self._content,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs: Any) -> "BinAccumulator":
        """
        Create an accumulator from a dictionary representation.

        Args:
            data: The dictionary containing the accumulator state.

        Returns:
            A new BinAccumulator initialized with the given state.
        """
        acc = cls(
            bin_number=data.get("bin_number", 0),
            error_mode=data.get("error_mode", ErrorMode.SPREAD.value),
        )

        acc._sumw = data["sumw"]
        acc._sumvw = data["sumvw"]
        acc._sumw2 = data["sumw2"]
        acc._sumwv2 = data["sumwv2"]
        acc._average = data.get("average", 0.0)
        acc._error = data.get("error", 0.0)
        acc._content = data.get("content", 0.0)
        acc._items_processed = data.get("items_processed", 0)

        return acc

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the accumulator.

        Returns:
            A dictionary with the moment sums and derived values.
        """
        stats = super().get_stats()
        stats.update(
            {
                "bin_number": self._bin_number,
                "error_mode": self._error_mode.value,
                "entries": self._sumw,
                "effective_entries": self.effective_entries,
                "average": self._average,
                "error": self._error,
            }
        )
        return stats

    def __repr__(self) -> str:
        return (
            f"BinAccumulator(bin_number={self._bin_number}, "
            f"entries={self._sumw}, average={self._average}, error={self._error})"
        )

"""
Base classes and interfaces for poly-profile summaries.

This module defines the abstract base class that every accumulating summary
in the library derives from, so that per-bin accumulators and whole
aggregators share the same filling, merging and snapshot interface.
"""

import abc
import json
from typing import Any, Dict, Generic, Protocol, TypeVar, Union

T = TypeVar("T")  # Type for the samples being processed
R = TypeVar("R")  # Type for the result of queries


class Serializable(Protocol):
    """Protocol defining methods for serialization and deserialization."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert the object to a dictionary representation."""
        ...

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Serializable":
        """Create an object from its dictionary representation."""
        ...


class StreamSummary(Generic[T, R], abc.ABC):
    """
    Abstract base class for all accumulating summaries.

    Subclasses accept samples through ``fill``, expose results through
    ``query``, combine independently filled partial summaries through
    ``merge`` and snapshot their state with ``to_dict``/``from_dict`` so a
    summary filled in one process can be merged in another.
    """

    def __init__(self) -> None:
        self._items_processed = 0

    @abc.abstractmethod
    def fill(self, item: T, *args: Any, **kwargs: Any) -> Any:
        """
        Add a sample to the summary.

        Derived classes call ``super().fill(item)`` to keep the sample count.

        Args:
            item: The new sample to process.
        """
        self._items_processed += 1

    @abc.abstractmethod
    def query(self, *args: Any, **kwargs: Any) -> R:
        """
        Query the current state of the summary.

        The parameters and return value depend on the specific summary.
        """
        pass

    @abc.abstractmethod
    def merge(self, other: Any) -> Any:
        """
        Merge independently filled summaries into this one, in place.

        Args:
            other: The summary (or summaries) to merge from.

        Raises:
            TypeError: If a source is not of the same type.
        """
        pass

    def _check_same_type(self, other: "StreamSummary[T, R]") -> None:
        """
        Helper method to check if another summary is of the same type.

        Args:
            other: Another stream summary to check.

        Raises:
            TypeError: If other is not of the same type.
        """
        if not isinstance(other, self.__class__):
            raise TypeError(f"Cannot merge with {other.__class__.__name__}")

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the summary to a dictionary for serialization.

        Returns:
            A dictionary representation of the summary.
        """
        pass

    def _base_dict(self) -> Dict[str, Any]:
        """
        Create a dictionary with base attributes common to all summaries.

        Returns:
            A dictionary with base attributes.
        """
        return {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
        }

    @classmethod
    @abc.abstractmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs: Any) -> "StreamSummary[T, R]":
        """
        Create a summary from a dictionary representation.

        Args:
            data: The dictionary containing the summary state.
            **kwargs: Collaborators that are not part of the snapshot.

        Returns:
            A new stream summary initialized with the given state.
        """
        pass

    def serialize(self, format: str = "json") -> Union[str, bytes]:
        """
        Snapshot the summary for shipping to another process.

        A shard filled in a worker is serialized there, sent back as text
        or bytes, restored with ``deserialize`` and merged. Both formats carry
        the same JSON payload; "binary" is that payload UTF-8 encoded, for
        transports that want bytes.

        Args:
            format: "json" for a str, "binary" for bytes.

        Raises:
            ValueError: If the format is not supported.
        """
        payload = json.dumps(self.to_dict())
        if format == "json":
            return payload
        if format == "binary":
            return payload.encode("utf-8")
        raise ValueError(f"Unsupported serialization format: {format}")

    @classmethod
    def deserialize(
        cls, data: Union[str, bytes], format: str = "json", **kwargs: Any
    ) -> "StreamSummary[T, R]":
        """
        Restore a summary snapshot produced by ``serialize``.

        Collaborators that never travel with a snapshot, such as an
        aggregator's region lookup, are handed in through kwargs.

        Args:
            data: The snapshot, as str or bytes.
            format: The format it was written in ("json" or "binary").
            **kwargs: Passed through to ``from_dict``.

        Raises:
            ValueError: If the format is not supported.
        """
        if format not in ("json", "binary"):
            raise ValueError(f"Unsupported serialization format: {format}")
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return cls.from_dict(json.loads(data), **kwargs)

    def clear(self) -> None:
        """
        Reset the summary to its initial empty state.

        Derived classes must override this method to clear their own state
        and call super().clear() so the sample count is reset too.
        """
        self._items_processed = 0

    def get_stats(self) -> Dict[str, Any]:
        """
        Get detailed statistics about the current state of the summary.

        Derived classes should override this method to include their specific
        statistics while calling super().get_stats() to include base metrics.

        Returns:
            A dictionary containing various statistics about the summary state.
        """
        return {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
        }

    @property
    def items_processed(self) -> int:
        """Get the total number of samples filled into this summary."""
        return self._items_processed

"""Frequency → key classification.

A :class:`KeyMappingTable` holds an ordered set of disjoint, closed
frequency intervals, each associated with a friendly key name (the same
names :class:`~pitchkeys.key_sender.KeySender` understands).  The table
is validated once on construction and is immutable afterwards, so it
can be shared between the audio callback and the worker thread without
locking.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from .constants import DEFAULT_KEY_TABLE
from .errors import ConfigError


@dataclass(frozen=True)
class KeyInterval:
    """Closed frequency interval ``[low, high]`` mapped to ``key``."""

    low: float
    high: float
    key: str

    def contains(self, frequency: float) -> bool:
        return self.low <= frequency <= self.high

    def __str__(self) -> str:
        return f"[{self.low:g}, {self.high:g}] Hz → {self.key}"


class KeyMappingTable:
    """Immutable, validated collection of non-overlapping key intervals.

    Intervals are sorted by their lower bound.  Two neighbouring
    intervals overlap when the upper one starts at or below the end of
    the lower one; because both ends are inclusive, sharing a boundary
    frequency counts as overlap and is rejected.  Gaps are allowed and
    classify as "no key".

    Raises:
        ConfigError: if any interval is malformed or two intervals
            overlap.
    """

    __slots__ = ("_intervals", "_lows")

    def __init__(self, intervals: Iterable[KeyInterval]) -> None:
        checked = [self._check_interval(iv) for iv in intervals]
        checked.sort(key=lambda iv: (iv.low, iv.high))
        for prev, cur in zip(checked, checked[1:]):
            if cur.low <= prev.high:
                raise ConfigError(f"overlapping key intervals: {prev} and {cur}")
        self._intervals: tuple[KeyInterval, ...] = tuple(checked)
        self._lows: tuple[float, ...] = tuple(iv.low for iv in checked)

    @staticmethod
    def _check_interval(interval: KeyInterval) -> KeyInterval:
        for bound in (interval.low, interval.high):
            if isinstance(bound, bool) or not isinstance(bound, (int, float)):
                raise ConfigError(f"interval bounds must be numbers: {interval!r}")
        low = float(interval.low)
        high = float(interval.high)
        if not (math.isfinite(low) and math.isfinite(high)):
            raise ConfigError(f"interval bounds must be finite: {interval!r}")
        if low <= 0.0:
            raise ConfigError(f"interval bounds must be positive: {interval!r}")
        if low > high:
            raise ConfigError(f"interval lower bound exceeds upper bound: {interval!r}")
        key = interval.key
        if not isinstance(key, str) or not key.strip():
            raise ConfigError(f"interval needs a non-empty key name: {interval!r}")
        return KeyInterval(low, high, key.strip().lower())

    # ------------------------------------------------------------------
    @classmethod
    def from_pairs(
        cls, rows: Iterable[Sequence[object]]
    ) -> "KeyMappingTable":
        """Build a table from ``(low, high, key)`` triples."""
        intervals = []
        for row in rows:
            if len(row) != 3:
                raise ConfigError(f"expected (low, high, key), got {row!r}")
            low, high, key = row
            intervals.append(KeyInterval(low, high, key))  # type: ignore[arg-type]
        return cls(intervals)

    @classmethod
    def from_config(cls, rows: Iterable[Mapping[str, object]]) -> "KeyMappingTable":
        """Build a table from ``{"low": …, "high": …, "key": …}`` objects."""
        intervals = []
        for row in rows:
            if not isinstance(row, Mapping):
                raise ConfigError(f"key entry must be an object, got {row!r}")
            missing = {"low", "high", "key"} - set(row)
            extra = set(row) - {"low", "high", "key"}
            if missing or extra:
                raise ConfigError(
                    f"key entry {dict(row)!r} must have exactly low, high and key"
                )
            intervals.append(KeyInterval(row["low"], row["high"], row["key"]))  # type: ignore[arg-type]
        return cls(intervals)

    @classmethod
    def default(cls) -> "KeyMappingTable":
        return cls.from_pairs(DEFAULT_KEY_TABLE)

    # ------------------------------------------------------------------
    def classify(self, frequency: float) -> Optional[str]:
        """Return the key whose interval contains ``frequency``, or ``None``.

        Deterministic and side-effect free: the result depends only on
        ``frequency`` and the table.  Non-finite and non-positive values
        never match.
        """
        if not math.isfinite(frequency) or frequency <= 0.0:
            return None
        idx = bisect_right(self._lows, frequency) - 1
        if idx < 0:
            return None
        interval = self._intervals[idx]
        return interval.key if frequency <= interval.high else None

    @property
    def intervals(self) -> tuple[KeyInterval, ...]:
        return self._intervals

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(iv.key for iv in self._intervals)

    def __iter__(self) -> Iterator[KeyInterval]:
        return iter(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def __repr__(self) -> str:
        return f"KeyMappingTable({list(self._intervals)!r})"


def classify(frequency: float, table: KeyMappingTable) -> Optional[str]:
    """Functional form of :meth:`KeyMappingTable.classify`."""
    return table.classify(frequency)


__all__ = ["KeyInterval", "KeyMappingTable", "classify"]

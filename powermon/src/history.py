"""
Fixed-capacity rolling statistic over numeric samples.

Each :class:`~powermon.src.devices.DeviceSampler` owns two of these, one for
the input rate and one for the output rate.  Once the window is full the
oldest sample is discarded on every push.

Reductions skip entries that are not real numbers instead of failing, so a
sensor that momentarily returns ``None`` or a string only shrinks the window
the reduction is computed over.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterator
from numbers import Real


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


class RollingStatistic:
    """Sliding window of the ``size`` most recent samples.

    Args:
        size: Maximum number of retained samples (history length).
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("RollingStatistic size must be >= 1")
        self._samples: deque[object] = deque(maxlen=size)

    @property
    def size(self) -> int:
        """Configured capacity of the window."""
        return self._samples.maxlen or 0

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[object]:
        return iter(list(self._samples))

    def push(self, value: object) -> None:
        """Append a sample, evicting the oldest one when the window is full."""
        self._samples.append(value)

    def _numeric(self) -> list[float]:
        # Copy first so a concurrent push cannot mutate during iteration.
        return [float(v) for v in list(self._samples) if _is_number(v)]

    def average(self) -> float:
        """Arithmetic mean of the retained numeric samples, or 0 if none."""
        values = self._numeric()
        if not values:
            return 0.0
        return math.fsum(values) / len(values)

    def median(self) -> float:
        """Median of the retained numeric samples, or 0 if none.

        For an even number of samples this is the mean of the two central
        values of the sorted window.
        """
        values = sorted(self._numeric())
        count = len(values)
        if count == 0:
            return 0.0
        mid = count // 2
        if count % 2 == 0:
            return (values[mid - 1] + values[mid]) / 2
        return values[mid]

    def reduce(self, *, use_median: bool = False) -> float:
        """Return :meth:`median` or :meth:`average` depending on *use_median*."""
        return self.median() if use_median else self.average()

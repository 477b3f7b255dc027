"""
Display records -- the flat values a template is rendered against.

A :class:`DisplayRecord` is computed fresh on every render tick from the
current readings of one sampler (cycle and grid modes) or of all samplers
summed together (summary mode).  Derived values:

- ``percent`` = stored / capacity * 100
- ``charge`` = input - output (EU/t, positive while charging)
- ``left`` = seconds until full (charging) or empty (discharging), 0 idle

A device reporting zero capacity yields ``percent = 0``, ``charge = 0`` and
``left = 0`` instead of a division error.  A device whose readings cannot be
taken renders as an all-zero record under its own name; the other devices
are unaffected.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass

from powermon.src.config import DisplayMode
from powermon.src.devices import DeviceSampler
from powermon.src.errors import ZeroCapacityError

logger = logging.getLogger(__name__)

SUMMARY_NAME = "Summary"


@dataclass(frozen=True, slots=True)
class DeviceReading:
    """Raw readings of one sampler (or the sum of several) at one instant."""

    name: str
    stored: float
    capacity: float
    input: float
    output: float

    @classmethod
    def from_sampler(cls, sampler: DeviceSampler) -> DeviceReading:
        return cls(
            name=sampler.name,
            stored=sampler.get_stored(),
            capacity=sampler.get_capacity(),
            input=sampler.get_input(),
            output=sampler.get_output(),
        )


@dataclass(frozen=True, slots=True)
class DisplayRecord:
    """Values available to templates for one display slot.

    Attributes:
        name: Device name, or ``"Summary"``.
        stored: Current stored energy (EU).
        capacity: Maximum storable energy (EU).
        input: Input rate (EU/t).
        output: Output rate (EU/t).
        percent: Charge level in percent.
        charge: Net charge rate (EU/t).
        left: Seconds until full or empty, 0 when idle.
        current_num: 1-based number of the device shown in cycle mode.
        total_num: Number of monitored devices.
    """

    name: str
    stored: float
    capacity: float
    input: float
    output: float
    percent: float
    charge: float
    left: int
    current_num: int = 1
    total_num: int = 1

    def as_dict(self) -> dict[str, object]:
        """Field name to value, as consumed by the template engine."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


def percent_of(stored: float, capacity: float) -> float:
    """Charge level in percent.

    Raises:
        ZeroCapacityError: *capacity* is zero (or negative).
    """
    if capacity <= 0:
        raise ZeroCapacityError(f"capacity is {capacity}")
    return stored / capacity * 100


def seconds_left(stored: float, capacity: float, charge: float, tick_rate: int) -> int:
    """Seconds until the storage is full (charging) or empty (discharging).

    Raises:
        ZeroCapacityError: *capacity* is zero (or negative).
    """
    if capacity <= 0:
        raise ZeroCapacityError(f"capacity is {capacity}")
    if charge > 0:
        ticks = (capacity - stored) / charge
    elif charge < 0:
        ticks = stored / -charge
    else:
        ticks = 0
    return math.floor(ticks / tick_rate)


def build_record(
    reading: DeviceReading,
    *,
    tick_rate: int,
    current_num: int = 1,
    total_num: int = 1,
) -> DisplayRecord:
    """Derive a :class:`DisplayRecord` from raw readings."""
    charge = reading.input - reading.output
    try:
        percent = percent_of(reading.stored, reading.capacity)
        left = seconds_left(reading.stored, reading.capacity, charge, tick_rate)
    except ZeroCapacityError:
        logger.debug("Zero capacity reported for %s, showing 0%%", reading.name)
        percent = 0.0
        charge = 0.0
        left = 0
    return DisplayRecord(
        name=reading.name,
        stored=reading.stored,
        capacity=reading.capacity,
        input=reading.input,
        output=reading.output,
        percent=percent,
        charge=charge,
        left=left,
        current_num=current_num,
        total_num=total_num,
    )


def read_sampler(sampler: DeviceSampler) -> DeviceReading:
    """Current readings of *sampler*, or an all-zero reading if any getter fails."""
    try:
        return DeviceReading.from_sampler(sampler)
    except Exception:
        logger.warning(
            "Failed to read %s, showing zeros",
            sampler.name,
            exc_info=True,
            extra={"device": sampler.name},
        )
        return DeviceReading(name=sampler.name, stored=0, capacity=0, input=0, output=0)


def summarize(readings: Sequence[DeviceReading]) -> DeviceReading:
    """Sum the readings of all devices into one."""
    return DeviceReading(
        name=SUMMARY_NAME,
        stored=sum(r.stored for r in readings),
        capacity=sum(r.capacity for r in readings),
        input=sum(r.input for r in readings),
        output=sum(r.output for r in readings),
    )


def build_records(
    samplers: Sequence[DeviceSampler],
    *,
    mode: DisplayMode,
    tick_rate: int,
    current: int = 0,
) -> list[DisplayRecord]:
    """Build the records of one render tick.

    Args:
        samplers: All monitored devices.
        mode: Display mode deciding how samplers map to records.
        tick_rate: Ticks per second, for the time-left estimate.
        current: 0-based index of the device shown in cycle mode.

    Returns:
        One record in cycle and summary modes, one per sampler in grid mode.
    """
    total = len(samplers)
    if total == 0:
        return []

    if mode is DisplayMode.SUMMARY:
        reading = summarize([read_sampler(s) for s in samplers])
        return [build_record(reading, tick_rate=tick_rate, total_num=total)]

    if mode is DisplayMode.CYCLE:
        sampler = samplers[current % total]
        return [
            build_record(
                read_sampler(sampler),
                tick_rate=tick_rate,
                current_num=current % total + 1,
                total_num=total,
            )
        ]

    return [
        build_record(
            read_sampler(sampler),
            tick_rate=tick_rate,
            current_num=index + 1,
            total_num=total,
        )
        for index, sampler in enumerate(samplers)
    ]


class CycleRotation:
    """Index of the device shown in cycle mode, advancing on an interval.

    Args:
        count: Number of devices.
        interval_s: Seconds each device stays on screen.
        now: Monotonic start time.
    """

    def __init__(self, count: int, interval_s: float, now: float) -> None:
        self.count = count
        self.interval_s = interval_s
        self.current = 0
        self._last_toggle = now

    def update(self, now: float) -> int:
        """Advance if the interval elapsed and return the current index."""
        if self.count > 1 and now - self._last_toggle > self.interval_s:
            self.current = (self.current + 1) % self.count
            self._last_toggle = now
        return self.current

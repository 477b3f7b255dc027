"""
Device samplers -- one adapter per supported energy-storage device kind.

Every sampler normalizes its device's raw telemetry into the same surface:
``get_stored()``, ``get_capacity()``, ``get_input()`` and ``get_output()``,
where the two rates are a reduction (mean or median) over a
:class:`~powermon.src.history.RollingStatistic`.  Each sampler also runs its
own periodic sampling loop that pushes fresh rate samples into those
histories and caches the stored/capacity readings.  Rendering
only ever reads those caches, so it never touches the device; sampling
itself runs in a worker thread to keep blocking sensor calls off the event
loop.

The set of variants is closed; :data:`SAMPLER_TYPES` maps every
:class:`DeviceKind` to its implementation and :func:`create_sampler` is the
only constructor used by discovery:

- ``GENERIC`` -- reads instantaneous input/output rates directly.
- ``LESU`` -- generic counter whose reported capacity is doubled by the
  device, so it is halved here.
- ``LAPOTRONIC`` / ``BATTERY_BUFFER`` -- all four values are parsed from the
  status text; the layouts differ only in line numbers.
- ``SUBSTATION`` -- status text exposes running totals; rates are derived
  from the difference between two polls.
- ``MFSU`` -- only the stored energy is known; the direction and size of
  its change between polls becomes the input or output rate.

A malformed status text on one tick is logged and the tick skipped; the
sampling loop never terminates until the shutdown event is set.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar, Protocol

from powermon.src.errors import ExtractionError
from powermon.src.extractor import FieldRule, extract_field
from powermon.src.history import RollingStatistic

if TYPE_CHECKING:
    from powermon.src.config import MonitorSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Device kinds and the raw sensor interface
# ---------------------------------------------------------------------------


class DeviceKind(StrEnum):
    """Closed set of supported device variants."""

    GENERIC = "generic"
    LESU = "lesu"
    LAPOTRONIC = "lapotronic"
    BATTERY_BUFFER = "battery_buffer"
    SUBSTATION = "substation"
    MFSU = "mfsu"


class SensorProxy(Protocol):
    """Raw sensor interface of one device, as provided by the host.

    Not every device implements every method: counter devices answer the
    ``get_eu_*`` getters, text-parsed devices answer
    :meth:`get_sensor_information`, and MFSU-style storages answer
    :meth:`get_stored` / :meth:`get_capacity`.
    """

    def get_sensor_information(self) -> Sequence[str]: ...

    def get_eu_stored(self) -> float: ...

    def get_eu_max_stored(self) -> float: ...

    def get_eu_input_average(self) -> float: ...

    def get_eu_output_average(self) -> float: ...

    def get_stored(self) -> float: ...

    def get_capacity(self) -> float: ...


# ---------------------------------------------------------------------------
# Status text layouts
# ---------------------------------------------------------------------------

# "§a1 199 934§r EU / §e1 232 768§r EU"
_STORED_OF_PAIR = r"§.(.+)§.+/.+$"
_CAPACITY_OF_PAIR = r"^.+/.+§.(.+)§.+$"
# "32 768 EU/t"
_RATE = r"^(.+)\sEU/t$"
# "Stored EU: §a1 275 992 701§r"
_COLOURED = r"^.+§.(.+)§.+$"


@dataclass(frozen=True, slots=True)
class TextLayout:
    """Where a text-parsed device prints its stored/capacity/input/output."""

    stored: FieldRule
    capacity: FieldRule
    input: FieldRule
    output: FieldRule


LAPOTRONIC_LAYOUT = TextLayout(
    stored=FieldRule(2, _STORED_OF_PAIR, "Stored EU"),
    capacity=FieldRule(3, _CAPACITY_OF_PAIR, "Maximum EU"),
    input=FieldRule(7, _RATE, "Average input EU/t"),
    output=FieldRule(8, _RATE, "Average output EU/t"),
)

BATTERY_BUFFER_LAYOUT = TextLayout(
    stored=FieldRule(3, _STORED_OF_PAIR, "Stored EU"),
    capacity=FieldRule(3, _CAPACITY_OF_PAIR, "Maximum EU"),
    input=FieldRule(5, _RATE, "Average input EU/t"),
    output=FieldRule(7, _RATE, "Average output EU/t"),
)


@dataclass(frozen=True, slots=True)
class TotalsLayout:
    """Status text layout of a device that reports running totals."""

    stored: FieldRule
    capacity: FieldRule
    total_input: FieldRule
    total_output: FieldRule
    total_costs: FieldRule


SUBSTATION_LAYOUT = TotalsLayout(
    stored=FieldRule(3, _COLOURED, "Stored EU"),
    capacity=FieldRule(4, _COLOURED, "Capacity EU"),
    total_input=FieldRule(12, _COLOURED, "Total input EU"),
    total_output=FieldRule(13, _COLOURED, "Total output EU"),
    total_costs=FieldRule(14, _COLOURED, "Total costs EU"),
)


# ---------------------------------------------------------------------------
# Base sampler
# ---------------------------------------------------------------------------


class DeviceSampler:
    """Common surface and sampling loop shared by all device variants.

    Args:
        proxy: Raw sensor interface of the device.
        name: Display name of the device.
        settings: Immutable monitor settings (history size, poll interval,
            statistic mode, rate constant).
    """

    kind: ClassVar[DeviceKind]
    name_prefix: ClassVar[str]

    def __init__(
        self,
        proxy: SensorProxy,
        *,
        name: str,
        settings: MonitorSettings,
    ) -> None:
        self.name = name or "Unknown"
        self.proxy = proxy
        self._poll_interval_s = settings.poll_interval_s
        self._use_median = settings.use_median
        self._tick_rate = settings.tick_rate
        self.input_history = RollingStatistic(settings.history_size)
        self.output_history = RollingStatistic(settings.history_size)
        self.last_sample_ts: datetime | None = None
        self.consecutive_failures: int = 0
        self._stored: float = 0.0
        self._capacity: float = 0.0

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    # -- readings -----------------------------------------------------------

    def get_stored(self) -> float:
        """Stored energy as of the last successful sample."""
        return self._stored

    def get_capacity(self) -> float:
        """Capacity as of the last successful sample."""
        return self._capacity

    def get_input(self) -> float:
        """Configured reduction over the input rate history."""
        return self.input_history.reduce(use_median=self._use_median)

    def get_output(self) -> float:
        """Configured reduction over the output rate history."""
        return self.output_history.reduce(use_median=self._use_median)

    # -- sampling -----------------------------------------------------------

    def sample_once(self) -> None:
        """Read the device once, push into the histories and refresh the
        cached stored/capacity readings.

        Raises:
            ExtractionError: The device status text was malformed.
        """
        raise NotImplementedError

    def _per_tick(self, delta: float) -> float:
        """Convert a per-poll delta into a per-tick rate (EU/t)."""
        return delta / (self._poll_interval_s * self._tick_rate)

    def poll(self) -> bool:
        """Execute one sampling tick, containing every error.

        Returns:
            True if the tick succeeded, False if it was skipped.
        """
        try:
            self.sample_once()
        except ExtractionError as exc:
            self.consecutive_failures += 1
            logger.warning(
                "Skipping sample for %s: %s (consecutive failures: %d)",
                self.name,
                exc,
                self.consecutive_failures,
                extra={"device": self.name},
            )
            return False
        except Exception:
            self.consecutive_failures += 1
            logger.error(
                "Sampling error for %s", self.name, exc_info=True, extra={"device": self.name}
            )
            return False

        self.consecutive_failures = 0
        self.last_sample_ts = datetime.now(tz=UTC)
        return True

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run the sampling loop until *shutdown_event* is set."""
        logger.info(
            "Sampling loop started for %s (%s, interval=%ss)",
            self.name,
            self.kind,
            self._poll_interval_s,
        )
        while not shutdown_event.is_set():
            # Sensor calls block; keep them off the event loop.
            await asyncio.to_thread(self.poll)
            # Use wait with timeout so we can check shutdown between sleeps
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=self._poll_interval_s,
                )
        logger.info("Sampling loop stopped for %s", self.name)

    def start_sampling(self, shutdown_event: asyncio.Event) -> asyncio.Task[None]:
        """Schedule :meth:`run` as an independent task on the running loop."""
        return asyncio.create_task(
            self.run(shutdown_event),
            name=f"sampler:{self.name}",
        )


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class GenericCounterSampler(DeviceSampler):
    """Device exposing its stored energy and average rates as numbers."""

    kind = DeviceKind.GENERIC
    name_prefix = "GT"

    def sample_once(self) -> None:
        current_input = self.proxy.get_eu_input_average()
        current_output = self.proxy.get_eu_output_average()
        stored = self.proxy.get_eu_stored()
        capacity = self.proxy.get_eu_max_stored()

        self._stored = stored
        self._capacity = capacity
        self.input_history.push(current_input)
        self.output_history.push(current_output)


class LesuSampler(GenericCounterSampler):
    """L.E.S.U. multiblock; the controller reports twice its real capacity."""

    kind = DeviceKind.LESU
    name_prefix = "L.E.S.U."

    def get_capacity(self) -> float:
        return super().get_capacity() / 2


class TextParsedSampler(DeviceSampler):
    """Device whose readings are all parsed from its status text.

    Stored and capacity are refreshed together with the rates on every tick
    and served from that snapshot.
    """

    layout: ClassVar[TextLayout]

    def sample_once(self) -> None:
        lines = self.proxy.get_sensor_information()
        # Extract everything before touching state so a bad line skips the tick.
        stored = extract_field(lines, self.layout.stored)
        capacity = extract_field(lines, self.layout.capacity)
        current_input = extract_field(lines, self.layout.input)
        current_output = extract_field(lines, self.layout.output)

        self._stored = stored
        self._capacity = capacity
        self.input_history.push(current_input)
        self.output_history.push(current_output)


class LapotronicSampler(TextParsedSampler):
    """Lapotronic supercapacitor multiblock."""

    kind = DeviceKind.LAPOTRONIC
    name_prefix = "Lapotronic"
    layout = LAPOTRONIC_LAYOUT


class BatteryBufferSampler(TextParsedSampler):
    """Single-block battery buffer."""

    kind = DeviceKind.BATTERY_BUFFER
    name_prefix = "BBuffer"
    layout = BATTERY_BUFFER_LAYOUT


class SubstationSampler(DeviceSampler):
    """Power substation reporting cumulative input/output/cost totals.

    The output rate includes the substation's running costs.  The first tick
    only records the baseline.
    """

    kind = DeviceKind.SUBSTATION
    name_prefix = "PSS"
    layout: ClassVar[TotalsLayout] = SUBSTATION_LAYOUT

    def __init__(
        self,
        proxy: SensorProxy,
        *,
        name: str,
        settings: MonitorSettings,
    ) -> None:
        super().__init__(proxy, name=name, settings=settings)
        self._last_total_input: float | None = None
        self._last_total_output: float | None = None

    def sample_once(self) -> None:
        lines = self.proxy.get_sensor_information()
        stored = extract_field(lines, self.layout.stored)
        capacity = extract_field(lines, self.layout.capacity)
        total_input = extract_field(lines, self.layout.total_input)
        total_output = extract_field(lines, self.layout.total_output) + extract_field(
            lines, self.layout.total_costs
        )
        self.observe_totals(total_input, total_output)
        self._stored = stored
        self._capacity = capacity

    def observe_totals(self, total_input: float, total_output: float) -> None:
        """Derive rates from new running totals and push them.

        Args:
            total_input: Cumulative energy received.
            total_output: Cumulative energy delivered plus cumulative costs.
        """
        if self._last_total_input is not None and self._last_total_output is not None:
            self.input_history.push(self._per_tick(total_input - self._last_total_input))
            self.output_history.push(
                self._per_tick(total_output - self._last_total_output)
            )
        else:
            logger.debug("Recorded baseline totals for %s", self.name)

        self._last_total_input = total_input
        self._last_total_output = total_output


class MfsuSampler(DeviceSampler):
    """Storage block exposing only its stored energy.

    A rise in stored energy since the previous tick is pushed as input, a
    drop as output; the other history receives zero.  The first tick only
    records the baseline.
    """

    kind = DeviceKind.MFSU
    name_prefix = "MFSU"

    def __init__(
        self,
        proxy: SensorProxy,
        *,
        name: str,
        settings: MonitorSettings,
    ) -> None:
        super().__init__(proxy, name=name, settings=settings)
        self._last_stored: float | None = None

    def sample_once(self) -> None:
        stored = self.proxy.get_stored()
        capacity = self.proxy.get_capacity()
        self.observe_stored(stored)
        self._stored = stored
        self._capacity = capacity

    def observe_stored(self, current: float) -> None:
        """Push the change since the previous reading as input or output."""
        last = self._last_stored
        if last is not None:
            if current > last:
                self.input_history.push(self._per_tick(current - last))
                self.output_history.push(0)
            elif current < last:
                self.input_history.push(0)
                self.output_history.push(self._per_tick(last - current))
            else:
                self.input_history.push(0)
                self.output_history.push(0)
        self._last_stored = current


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

SAMPLER_TYPES: dict[DeviceKind, type[DeviceSampler]] = {
    cls.kind: cls
    for cls in (
        GenericCounterSampler,
        LesuSampler,
        LapotronicSampler,
        BatteryBufferSampler,
        SubstationSampler,
        MfsuSampler,
    )
}
"""Maps every :class:`DeviceKind` to its sampler implementation."""


def create_sampler(
    kind: DeviceKind,
    proxy: SensorProxy,
    *,
    name: str,
    settings: MonitorSettings,
) -> DeviceSampler:
    """Build the sampler variant for *kind*."""
    return SAMPLER_TYPES[kind](proxy, name=name, settings=settings)

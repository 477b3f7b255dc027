"""
Simulated component host for demo runs and integration tests.

Provides one device of every supported kind, each backed by a small storage
model that charges or discharges as time passes.  The status text of the
text-parsed devices follows the real devices' line layouts, including colour
codes and digit-group separators.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

TICKS_PER_SECOND = 20


def _grouped(value: float) -> str:
    """``1234567`` -> ``"1 234 567"``."""
    return f"{int(value):,}".replace(",", " ")


@dataclass
class SimulatedStorage:
    """Storage model integrated over wall-clock (or injected) time.

    Attributes:
        stored: Current stored energy.
        capacity: Maximum stored energy.
        input_rate: Input per tick.
        output_rate: Mean output per tick; the actual output swings around
            it with a slow sine.
        clock: Source of the current time in seconds.
    """

    stored: float
    capacity: float
    input_rate: float
    output_rate: float
    clock: Callable[[], float] = time.monotonic
    total_input: float = 0.0
    total_output: float = 0.0
    _started: float = field(init=False)
    _updated: float = field(init=False)

    def __post_init__(self) -> None:
        self._started = self._updated = self.clock()

    @property
    def current_output(self) -> float:
        return self.output_rate * (1 + math.sin((self._updated - self._started) / 10))

    def update(self) -> None:
        """Integrate the flows since the previous update."""
        now = self.clock()
        elapsed = now - self._updated
        if elapsed <= 0:
            return
        self._updated = now
        ticks = elapsed * TICKS_PER_SECOND
        output = self.current_output
        self.stored = max(0.0, min(self.capacity, self.stored + (self.input_rate - output) * ticks))
        self.total_input += self.input_rate * ticks
        self.total_output += output * ticks


class SimulatedProxy:
    """Sensor proxy of one simulated device.

    Args:
        component_type: Host component type the proxy belongs to.
        headline: First status line (used for ``gt_machine`` classification).
        storage: Storage model behind the device.
        layout: Which status text to produce: ``"buffer"``, ``"lapotronic"``,
            ``"substation"`` or ``"plain"``.
        capacity_factor: Multiplier applied to the reported capacity.
    """

    def __init__(
        self,
        component_type: str,
        headline: str,
        storage: SimulatedStorage,
        *,
        layout: str = "plain",
        capacity_factor: float = 1.0,
    ) -> None:
        self.component_type = component_type
        self.headline = headline
        self.storage = storage
        self.layout = layout
        self.capacity_factor = capacity_factor

    def get_sensor_information(self) -> list[str]:
        s = self.storage
        s.update()
        pair = f"§a{_grouped(s.stored)}§r EU / §e{_grouped(s.capacity)}§r EU"
        if self.layout == "buffer":
            return [
                self.headline,
                "Tier: EV",
                pair,
                "Average input:",
                f"{_grouped(s.input_rate)} EU/t",
                "Average output:",
                f"{_grouped(s.current_output)} EU/t",
            ]
        if self.layout == "lapotronic":
            return [
                self.headline,
                pair,
                pair,
                "Used Capacitors: §a4§r",
                "Total Capacitors: §a4§r",
                "Passive Loss: §c0§r EU/t",
                f"{_grouped(s.input_rate)} EU/t",
                f"{_grouped(s.current_output)} EU/t",
            ]
        if self.layout == "substation":
            return [
                self.headline,
                "Status: §aOK§r",
                f"Stored EU: §a{_grouped(s.stored)}§r",
                f"Capacity: §e{_grouped(s.capacity)}§r",
                "Capacitors: §a12§r",
                "Passive Loss: §c0§r EU/t",
                "",
                "",
                "",
                "",
                "",
                f"Total Input: §9{_grouped(s.total_input)}§r EU",
                f"Total Output: §c{_grouped(s.total_output)}§r EU",
                "Total Costs: §e0§r EU",
            ]
        return [self.headline]

    def get_eu_stored(self) -> float:
        self.storage.update()
        return self.storage.stored

    def get_eu_max_stored(self) -> float:
        return self.storage.capacity * self.capacity_factor

    def get_eu_input_average(self) -> float:
        self.storage.update()
        return self.storage.input_rate

    def get_eu_output_average(self) -> float:
        self.storage.update()
        return self.storage.current_output

    def get_stored(self) -> float:
        self.storage.update()
        return self.storage.stored

    def get_capacity(self) -> float:
        return self.storage.capacity


class SimulatedHost:
    """Component host exposing one simulated device of every kind.

    Args:
        clock: Time source shared by all simulated storages.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._proxies: dict[str, SimulatedProxy] = {
            "cee19723-4a5e-4003-bf64-cb10ec2bb4ee": SimulatedProxy(
                "gt_batterybuffer",
                "Battery Buffer",
                SimulatedStorage(1_199_934, 1_232_768, 512, 480, clock),
                layout="buffer",
            ),
            "5f1c0a77-90d2-4c1e-8d3b-0c8a1b2f6e10": SimulatedProxy(
                "gt_machine",
                "Operational Data:",
                SimulatedStorage(40_000_000, 160_000_000, 8192, 8000, clock),
                layout="lapotronic",
            ),
            "a93d7e42-1b6f-4f0e-9c2d-6e5a4b3c2d1f": SimulatedProxy(
                "gt_machine",
                "Power substation",
                SimulatedStorage(1_275_992_701, 2_000_000_000, 32_768, 30_000, clock),
                layout="substation",
            ),
            "0b7e2d19-3c4a-4b5d-8e6f-7a8b9c0d1e2f": SimulatedProxy(
                "gt_machine",
                "Progress: 100%",
                SimulatedStorage(5_000_000, 10_000_000, 128, 160, clock),
                capacity_factor=2.0,
            ),
            "e4f5a6b7-c8d9-4e0f-a1b2-c3d4e5f6a7b8": SimulatedProxy(
                "mfsu",
                "MFSU",
                SimulatedStorage(20_000_000, 40_000_000, 2048, 2048, clock),
            ),
            "77777777-0000-0000-0000-000000000000": SimulatedProxy(
                "screen",
                "Screen",
                SimulatedStorage(0, 0, 0, 0, clock),
            ),
        }

    def list_components(self) -> Iterable[tuple[str, str]]:
        for address, proxy in self._proxies.items():
            yield address, proxy.component_type

    def proxy(self, address: str) -> SimulatedProxy:
        return self._proxies[address]

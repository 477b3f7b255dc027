"""
Device discovery: classify host components and build their samplers.

The host enumerates ``(address, component_type)`` pairs and hands out a raw
sensor proxy per address.  Component types map to sampler variants:

=====================  ==============================================
Component type         Variant
=====================  ==============================================
``gt_machine``         by first status line: ``substation`` ->
                       SUBSTATION, ``Progress`` -> LESU,
                       ``Operational Data`` -> LAPOTRONIC
``gt_batterybuffer``   BATTERY_BUFFER
``mfsu``               MFSU
=====================  ==============================================

Anything else is not an energy storage and is ignored.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Protocol

from powermon.src.devices import (
    SAMPLER_TYPES,
    DeviceKind,
    DeviceSampler,
    SensorProxy,
    create_sampler,
)
from powermon.src.errors import NoDevicesFound

if TYPE_CHECKING:
    from powermon.src.config import MonitorSettings

logger = logging.getLogger(__name__)

_MACHINE_MARKERS: tuple[tuple[str, DeviceKind], ...] = (
    ("substation", DeviceKind.SUBSTATION),
    ("Progress", DeviceKind.LESU),
    ("Operational Data", DeviceKind.LAPOTRONIC),
)
"""First-status-line markers of ``gt_machine`` multiblocks, checked in order."""

_COMPONENT_KINDS: dict[str, DeviceKind] = {
    "gt_batterybuffer": DeviceKind.BATTERY_BUFFER,
    "mfsu": DeviceKind.MFSU,
}


class ComponentHost(Protocol):
    """Host-provided device enumeration."""

    def list_components(self) -> Iterable[tuple[str, str]]:
        """Yield ``(address, component_type)`` pairs."""
        ...

    def proxy(self, address: str) -> SensorProxy:
        """Return the raw sensor interface of *address*."""
        ...


def classify(component_type: str, proxy: SensorProxy) -> DeviceKind | None:
    """Map a component to its sampler variant, ``None`` if unsupported."""
    kind = _COMPONENT_KINDS.get(component_type)
    if kind is not None:
        return kind
    if component_type != "gt_machine":
        return None

    info = proxy.get_sensor_information()
    if not info:
        return None
    headline = info[0]
    for marker, machine_kind in _MACHINE_MARKERS:
        if marker in headline:
            return machine_kind
    return None


def resolve_name(address: str, prefix: str, names: Mapping[str, str]) -> str:
    """Configured name for *address*, or ``<prefix>@<first 4 chars>``.

    A configured key matches when the address starts with it, so a full
    address or just its first few characters can be used.
    """
    for key, name in names.items():
        if key and address.startswith(key):
            return name
    return f"{prefix}@{address[:4]}"


def discover_samplers(host: ComponentHost, settings: MonitorSettings) -> list[DeviceSampler]:
    """Build a sampler for every supported component of *host*.

    Raises:
        NoDevicesFound: No supported energy-storage component was found.
    """
    samplers: list[DeviceSampler] = []
    for address, component_type in host.list_components():
        proxy = host.proxy(address)
        try:
            kind = classify(component_type, proxy)
        except Exception:
            logger.warning(
                "Could not classify component %s (%s), skipping",
                address,
                component_type,
                exc_info=True,
            )
            continue
        if kind is None:
            logger.debug("Ignoring component %s (%s)", address, component_type)
            continue

        name = resolve_name(address, SAMPLER_TYPES[kind].name_prefix, settings.device_names)
        samplers.append(create_sampler(kind, proxy, name=name, settings=settings))
        logger.info("Found %s device %s at %s", kind, name, address)

    if not samplers:
        raise NoDevicesFound()
    return samplers

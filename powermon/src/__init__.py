"""
Power monitor package for energy-storage devices.

Polls battery buffers, multiblock storages and power substations through
their sensor interface, keeps rolling input/output statistics per device,
and renders the telemetry to a character-cell display using a small
templating language.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

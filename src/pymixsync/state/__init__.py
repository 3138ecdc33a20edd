"""State/store layer.

This package is the single source of truth for hardware-mirrored mixer
state. Telemetry from the mixer and commands from clients are both
merged here; the broadcast layer reads snapshots from it.
"""

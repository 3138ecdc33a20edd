"""Ingestion layer.

Adapters that receive telemetry from the mixer client and merge it into
the state store.
"""

__all__: list[str] = []

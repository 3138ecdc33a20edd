"""Authoritative in-memory mixer state.

This is the only component allowed to hold channel and aux-bus records.
Hardware telemetry and user commands both mutate it; everything handed
out is an immutable model, so callers never share state with the store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from pymixsync._constants import aux_bus_label, channel_label
from pymixsync.models.mixer import AppState, AuxBusState, BusRef, BusType, ChannelState, ConnectionStatus

_logger = logging.getLogger(__name__)

# Fields a channel update may carry. Identity fields are never patched.
_PATCHABLE_FIELDS: frozenset[str] = frozenset(
    {"name", "fader", "fader_db", "meter_pre", "meter_post_fader", "muted", "solo"}
)

_TICK = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _Meter:
    __slots__ = ("pre", "post_fader")

    def __init__(self) -> None:
        self.pre: float | None = None
        self.post_fader: float | None = None


class StateStore:
    """In-memory store for mirrored mixer state.

    Channels are indexed ``bus_type -> bus -> channel id``: the same
    physical channel has an independent record on master, gain and every
    aux bus. The channel and aux-bus universes are fixed at construction;
    updates to unknown keys return ``None`` and never create entries.

    Meter levels live in a separate map keyed by channel id only and are
    merged into channel records when a snapshot is built, so high-rate
    meter traffic never rewrites channel records.
    """

    def __init__(
        self,
        host: str,
        channel_ids: Iterable[int],
        aux_bus_ids: Iterable[int],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._clock = clock
        self._host = host
        self._connection_status = ConnectionStatus.DISCONNECTED
        self._channel_ids: tuple[int, ...] = tuple(channel_ids)
        self._aux_bus_ids: tuple[int, ...] = tuple(aux_bus_ids)
        self._channels: dict[BusType, dict[int, dict[int, ChannelState]]] = {bus_type: {} for bus_type in BusType}
        self._aux_buses: dict[int, AuxBusState] = {}
        self._meters: dict[int, _Meter] = {}

        now = self._clock()
        self._channels[BusType.MASTER][0] = self._blank_channels(BusType.MASTER, 0, now)
        self._channels[BusType.GAIN][0] = self._blank_channels(BusType.GAIN, 0, now)
        for bus_id in self._aux_bus_ids:
            self._aux_buses[bus_id] = AuxBusState(id=bus_id, name=aux_bus_label(bus_id), last_updated_at=now)
            self._channels[BusType.AUX][bus_id] = self._blank_channels(BusType.AUX, bus_id, now)

    def _blank_channels(self, bus_type: BusType, bus: int, now: datetime) -> dict[int, ChannelState]:
        return {
            channel_id: ChannelState(
                id=channel_id,
                label=channel_label(channel_id),
                bus_type=bus_type,
                bus=bus,
                fader=0.0,
                last_updated_at=now,
            )
            for channel_id in self._channel_ids
        }

    def _stamp(self, previous: datetime) -> datetime:
        # Update timestamps strictly increase per record, even when the
        # clock has not advanced since the previous write.
        now = self._clock()
        if now <= previous:
            return previous + _TICK
        return now

    # ------------------------------------------------------------------
    # Process-wide fields
    # ------------------------------------------------------------------

    @property
    def host(self) -> str:
        return self._host

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    @property
    def channel_ids(self) -> tuple[int, ...]:
        return self._channel_ids

    @property
    def aux_bus_ids(self) -> tuple[int, ...]:
        return self._aux_bus_ids

    def set_host(self, host: str) -> None:
        self._host = host

    def set_connection_status(self, status: ConnectionStatus) -> None:
        if status != self._connection_status:
            _logger.debug("Connection status %s -> %s", self._connection_status, status)
        self._connection_status = ConnectionStatus(status)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_state(self, bus_type: BusType = BusType.MASTER, bus: int = 0) -> AppState:
        """Composite snapshot for one bus view.

        Aux buses are sorted by id, channels are restricted to the
        requested bus and sorted by channel id. An unknown bus yields an
        empty channel list.
        """
        bus_type = BusType(bus_type)
        records = self._channels[bus_type].get(bus, {})
        return AppState(
            host=self._host,
            connection_status=self._connection_status,
            bus=BusRef(type=bus_type, id=bus),
            aux_buses=[self._aux_buses[bus_id] for bus_id in sorted(self._aux_buses)],
            channels=[self._with_meter(records[channel_id]) for channel_id in sorted(records)],
        )

    def _with_meter(self, channel: ChannelState) -> ChannelState:
        meter = self._meters.get(channel.id)
        if meter is None:
            return channel
        overlay: dict[str, Any] = {}
        if meter.pre is not None:
            overlay["meter_pre"] = meter.pre
        if meter.post_fader is not None:
            overlay["meter_post_fader"] = meter.post_fader
        if not overlay:
            return channel
        return channel.model_copy(update=overlay)

    def get_channel(self, bus_type: BusType, bus: int, channel_id: int) -> ChannelState | None:
        """Stored record for one channel (meters not merged)."""
        return self._channels[BusType(bus_type)].get(bus, {}).get(channel_id)

    def get_aux_bus(self, bus_id: int) -> AuxBusState | None:
        return self._aux_buses.get(bus_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_channel(
        self,
        bus_type: BusType,
        bus: int,
        channel_id: int,
        **patch: Any,
    ) -> ChannelState | None:
        """Merge *patch* into one channel record.

        Returns the new record, or ``None`` when ``(bus_type, bus, id)``
        is outside the configured universe. Unknown patch keys raise
        :class:`TypeError`.
        """
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot patch channel fields: {sorted(unknown)}")

        records = self._channels[BusType(bus_type)].get(bus)
        if records is None:
            return None
        existing = records.get(channel_id)
        if existing is None:
            return None

        update = dict(patch)
        update["last_updated_at"] = self._stamp(existing.last_updated_at)
        updated = existing.model_copy(update=update)
        records[channel_id] = updated
        return updated

    def update_aux_bus(self, bus_id: int, name: str) -> AuxBusState | None:
        """Rename an aux bus; ``None`` when the bus is not configured."""
        existing = self._aux_buses.get(bus_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"name": name, "last_updated_at": self._stamp(existing.last_updated_at)})
        self._aux_buses[bus_id] = updated
        return updated

    def set_meter(self, channel_id: int, *, pre: float | None = None, post_fader: float | None = None) -> None:
        """Merge meter levels for a channel; ``None`` leaves a level unchanged."""
        meter = self._meters.get(channel_id)
        if meter is None:
            meter = _Meter()
            self._meters[channel_id] = meter
        if pre is not None:
            meter.pre = pre
        if post_fader is not None:
            meter.post_fader = post_fader

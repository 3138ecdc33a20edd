"""Mixer telemetry coordination.

Owns:
- the structural interface of the hardware client (``MixerClient``)
- translating mixer updates into state-store mutations and broadcasts
- the full resync performed whenever the hardware link (re)connects
- coalescing bursts of channel updates into one broadcast per channel
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Protocol

from pymixsync.broadcast import ClientRegistry
from pymixsync.models.messages import (
    AuxMessage,
    ChannelMessage,
    MeterData,
    MeterMessage,
    StateMessage,
    StatusData,
    StatusMessage,
)
from pymixsync.models.mixer import BusType, ChannelState, ConnectionStatus
from pymixsync.state.events import AuxUpdate, ChannelUpdate, ConnectionUpdate, MeterUpdate, MixerUpdate
from pymixsync.state.store import StateStore

_logger = logging.getLogger(__name__)

_ChannelKey = tuple[BusType, int, int]


class MixerClient(Protocol):
    """Hardware protocol client consumed by the server.

    Implementations speak the mixer's wire protocol, handle reconnects
    and report everything they observe as :data:`MixerUpdate` events.
    """

    def on_update(self, handler: Callable[[MixerUpdate], None]) -> Callable[[], None]:
        """Subscribe to telemetry; returns an unsubscribe callable."""
        ...

    def is_connected(self) -> bool: ...

    def set_host(self, host: str) -> None: ...

    def set_fader(self, bus_type: BusType, bus: int, channel_id: int, value: float) -> None: ...

    def set_mute(self, bus_type: BusType, bus: int, channel_id: int, muted: bool) -> None: ...

    def set_solo(self, channel_id: int, solo: bool) -> None: ...

    async def get_fader_db(self, bus_type: BusType, bus: int, channel_id: int) -> float | None: ...

    async def get_gain_db(self, channel_id: int) -> float | None: ...

    async def get_aux_bus_names(self, bus_ids: Sequence[int]) -> Sequence[AuxUpdate]: ...

    async def get_channel_state(
        self, bus_type: BusType, bus: int, channel_ids: Sequence[int]
    ) -> Sequence[ChannelUpdate]: ...


class MixerCoordinator:
    """Applies mixer telemetry to the state store and notifies clients.

    Updates handed to :meth:`dispatch` are processed strictly one at a
    time, in arrival order, by a single worker task. Each update's store
    mutation is followed by its broadcast before the next update starts,
    so clients observe changes in commit order.
    """

    def __init__(
        self,
        *,
        state: StateStore,
        registry: ClientRegistry,
        mixer: MixerClient,
    ) -> None:
        self._state = state
        self._registry = registry
        self._mixer = mixer
        self._queue: asyncio.Queue[MixerUpdate] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._pending_channels: dict[_ChannelKey, ChannelState] = {}
        self._flush_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        flush_task = self._flush_task
        if flush_task is not None:
            flush_task.cancel()
            try:
                await flush_task
            except asyncio.CancelledError:
                pass
        await self.flush()

    def dispatch(self, update: MixerUpdate) -> None:
        """Queue an update from the hardware client (callback-safe)."""
        self._queue.put_nowait(update)

    async def join(self) -> None:
        """Wait until every dispatched update has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                await self.handle_update(update)
            except Exception:
                _logger.warning("Failed to apply mixer update %s", update.type, exc_info=True)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Update handling
    # ------------------------------------------------------------------

    async def handle_update(self, update: MixerUpdate) -> None:
        if isinstance(update, ConnectionUpdate):
            await self._handle_connection(update)
        elif isinstance(update, MeterUpdate):
            await self._handle_meter(update)
        elif isinstance(update, AuxUpdate):
            await self._handle_aux(update)
        elif isinstance(update, ChannelUpdate):
            self._handle_channel(update)

    async def _handle_connection(self, update: ConnectionUpdate) -> None:
        self._state.set_connection_status(update.status)
        await self._registry.broadcast(StatusMessage(data=StatusData(connection_status=update.status)))
        if update.status == ConnectionStatus.CONNECTED:
            await self.resync()

    async def _handle_meter(self, update: MeterUpdate) -> None:
        self._state.set_meter(update.id, pre=update.meter_pre, post_fader=update.meter_post_fader)
        await self._registry.broadcast(
            MeterMessage(
                data=MeterData(id=update.id, meter_pre=update.meter_pre, meter_post_fader=update.meter_post_fader)
            )
        )

    async def _handle_aux(self, update: AuxUpdate) -> None:
        updated = self._state.update_aux_bus(update.id, update.name)
        if updated is not None:
            await self._registry.broadcast(AuxMessage(data=updated))

    def _handle_channel(self, update: ChannelUpdate) -> None:
        updated = self._state.update_channel(update.bus_type, update.bus, update.id, **update.patch())
        if updated is not None:
            self.queue_channel_broadcast(updated)
        if update.bus_type == BusType.MASTER and update.name:
            for channel in self._propagate_name(update.id, update.name):
                self.queue_channel_broadcast(channel)

    def _propagate_name(self, channel_id: int, name: str) -> list[ChannelState]:
        # Names are a property of the physical strip; the mixer only
        # reports them on the master bus.
        targets: list[tuple[BusType, int]] = [(BusType.GAIN, 0)]
        targets.extend((BusType.AUX, bus_id) for bus_id in self._state.aux_bus_ids)
        updated: list[ChannelState] = []
        for bus_type, bus in targets:
            channel = self._state.update_channel(bus_type, bus, channel_id, name=name)
            if channel is not None:
                updated.append(channel)
        return updated

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    async def resync(self) -> None:
        """Pull the full mixer state after a (re)connect and broadcast it."""
        channel_ids = list(self._state.channel_ids)
        aux_bus_ids = list(self._state.aux_bus_ids)
        try:
            for aux in await self._mixer.get_aux_bus_names(aux_bus_ids):
                self._state.update_aux_bus(aux.id, aux.name)

            for record in await self._mixer.get_channel_state(BusType.MASTER, 0, channel_ids):
                self._state.update_channel(BusType.MASTER, 0, record.id, **_snapshot_patch(record, solo=True))
                if record.name:
                    self._propagate_name(record.id, record.name)

            for record in await self._mixer.get_channel_state(BusType.GAIN, 0, channel_ids):
                self._state.update_channel(BusType.GAIN, 0, record.id, **_snapshot_patch(record, muted=False))

            for bus_id in aux_bus_ids:
                for record in await self._mixer.get_channel_state(BusType.AUX, bus_id, channel_ids):
                    self._state.update_channel(BusType.AUX, bus_id, record.id, **_snapshot_patch(record))
        except Exception:
            _logger.warning("Mixer resync failed; keeping previous state", exc_info=True)
            return

        _logger.info("Resynced %d channels across %d aux buses", len(channel_ids), len(aux_bus_ids))
        await self._registry.broadcast(StateMessage(data=self._state.get_state(BusType.MASTER, 0)))

    # ------------------------------------------------------------------
    # Coalesced channel broadcasts
    # ------------------------------------------------------------------

    def queue_channel_broadcast(self, channel: ChannelState) -> None:
        """Schedule a ``channel`` message; the latest record per channel wins."""
        self._pending_channels[(channel.bus_type, channel.bus, channel.id)] = channel
        if self._flush_task is None:
            self._flush_task = asyncio.get_running_loop().create_task(self._flush_soon())

    async def _flush_soon(self) -> None:
        await asyncio.sleep(0)
        await self.flush()

    async def flush(self) -> None:
        """Broadcast every queued channel update now."""
        self._flush_task = None
        updates = list(self._pending_channels.values())
        self._pending_channels.clear()
        for channel in updates:
            await self._registry.broadcast(ChannelMessage(data=channel))

    @property
    def pending_channels(self) -> Iterable[ChannelState]:
        return tuple(self._pending_channels.values())


def _snapshot_patch(record: ChannelUpdate, *, muted: bool = True, solo: bool = False) -> dict[str, object]:
    patch = record.patch()
    if not muted:
        patch.pop("muted", None)
    if not solo:
        patch.pop("solo", None)
    return patch

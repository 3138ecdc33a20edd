"""Mixer state models: channels, aux buses and the composite snapshot."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field

from pymixsync.models._base import MixSyncBaseModel


class BusType(enum.StrEnum):
    """Signal path a channel's fader/mute state belongs to."""

    MASTER = "master"
    AUX = "aux"
    GAIN = "gain"


class ConnectionStatus(enum.StrEnum):
    """Hardware link state as reported by the mixer client."""

    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class ChannelState(MixSyncBaseModel):
    """One channel strip on one bus.

    The same physical channel appears once per bus context (master, gain
    and every aux bus), each with independent fader and mute state.
    """

    id: int
    label: str
    name: str | None = None
    bus_type: BusType
    bus: int = 0
    fader: float = 0.0
    fader_db: float | None = None
    meter_pre: float | None = None
    meter_post_fader: float | None = None
    muted: bool | None = None
    solo: bool | None = None
    last_updated_at: datetime


class AuxBusState(MixSyncBaseModel):
    """Display state of an aux bus."""

    id: int
    name: str
    last_updated_at: datetime


class BusRef(MixSyncBaseModel):
    """The bus a snapshot was taken for."""

    type: BusType
    id: int = 0


class AppState(MixSyncBaseModel):
    """Point-in-time composite snapshot sent to clients."""

    host: str
    connection_status: ConnectionStatus
    bus: BusRef
    aux_buses: list[AuxBusState] = Field(default_factory=list)
    channels: list[ChannelState] = Field(default_factory=list)

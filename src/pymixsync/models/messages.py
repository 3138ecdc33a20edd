"""Notification messages pushed to connected clients.

Every message serializes as ``{"type": <kind>, "data": {...}}``.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field

from pymixsync.models._base import MixSyncBaseModel
from pymixsync.models.mixer import AppState, AuxBusState, ChannelState, ConnectionStatus


class MeterData(MixSyncBaseModel):
    id: int
    meter_pre: float | None = None
    meter_post_fader: float | None = None


class StatusData(MixSyncBaseModel):
    connection_status: ConnectionStatus


class StateMessage(MixSyncBaseModel):
    """Full snapshot; sent on connect and after resyncs."""

    type: Literal["state"] = "state"
    data: AppState


class ChannelMessage(MixSyncBaseModel):
    type: Literal["channel"] = "channel"
    data: ChannelState


class MeterMessage(MixSyncBaseModel):
    """Meter-only update. High frequency, deliberately small."""

    type: Literal["meter"] = "meter"
    data: MeterData


class AuxMessage(MixSyncBaseModel):
    type: Literal["aux"] = "aux"
    data: AuxBusState


class StatusMessage(MixSyncBaseModel):
    type: Literal["status"] = "status"
    data: StatusData


WsMessage = Annotated[
    StateMessage | ChannelMessage | MeterMessage | AuxMessage | StatusMessage,
    Field(discriminator="type"),
]

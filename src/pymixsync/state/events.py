"""Normalized mixer telemetry updates.

The hardware client converts whatever it receives from the mixer into
these events. Only :class:`pymixsync.ingestion.mixer.MixerCoordinator`
applies them to the state store.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pymixsync.models.mixer import BusType, ConnectionStatus


class _MixerEvent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class ChannelUpdate(_MixerEvent):
    """Partial channel update; fields left as ``None`` are not touched."""

    type: Literal["channel"] = "channel"
    id: int
    bus_type: BusType = Field(alias="busType")
    bus: int = 0
    fader: float | None = None
    fader_db: float | None = Field(default=None, alias="faderDb")
    muted: bool | None = None
    solo: bool | None = None
    name: str | None = None

    def patch(self) -> dict[str, Any]:
        """Fields this update actually carries."""
        return self.model_dump(include={"fader", "fader_db", "muted", "solo", "name"}, exclude_none=True)


class MeterUpdate(_MixerEvent):
    type: Literal["meter"] = "meter"
    id: int
    meter_pre: float | None = Field(default=None, alias="meterPre")
    meter_post_fader: float | None = Field(default=None, alias="meterPostFader")


class AuxUpdate(_MixerEvent):
    type: Literal["aux"] = "aux"
    id: int
    name: str

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()


class ConnectionUpdate(_MixerEvent):
    type: Literal["connection"] = "connection"
    status: ConnectionStatus


MixerUpdate = Annotated[
    ChannelUpdate | MeterUpdate | AuxUpdate | ConnectionUpdate,
    Field(discriminator="type"),
]

"""Data models for mixer state, layout documents and client messages."""

from pymixsync.models._base import MixSyncBaseModel
from pymixsync.models.layout import (
    DEFAULT_SECTION_MODE,
    ChannelRef,
    GlobalGroup,
    GlobalSettings,
    GroupRef,
    GroupSettings,
    GroupType,
    LayoutDocument,
    LayoutSection,
    MixOrderItem,
    SectionMode,
    ViewSettings,
    ViewSettingsMap,
)
from pymixsync.models.messages import (
    AuxMessage,
    ChannelMessage,
    MeterData,
    MeterMessage,
    StateMessage,
    StatusData,
    StatusMessage,
    WsMessage,
)
from pymixsync.models.mixer import (
    AppState,
    AuxBusState,
    BusRef,
    BusType,
    ChannelState,
    ConnectionStatus,
)

__all__ = [
    "DEFAULT_SECTION_MODE",
    "AppState",
    "AuxBusState",
    "AuxMessage",
    "BusRef",
    "BusType",
    "ChannelMessage",
    "ChannelRef",
    "ChannelState",
    "ConnectionStatus",
    "GlobalGroup",
    "GlobalSettings",
    "GroupRef",
    "GroupSettings",
    "GroupType",
    "LayoutDocument",
    "LayoutSection",
    "MeterData",
    "MeterMessage",
    "MixOrderItem",
    "MixSyncBaseModel",
    "SectionMode",
    "StateMessage",
    "StatusData",
    "StatusMessage",
    "ViewSettings",
    "ViewSettingsMap",
    "WsMessage",
]

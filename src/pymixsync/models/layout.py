"""Layout document models.

These describe the *normalized* shape of the persisted layout file. The
file itself is an external boundary and is never validated directly into
these models; :mod:`pymixsync.layout.normalize` coerces raw JSON into
them instead.
"""

from __future__ import annotations

import enum
from typing import Annotated, Literal

from pydantic import Field

from pymixsync._constants import (
    LAYOUT_VERSION,
    SECTION_ENABLED_DEFAULT,
    SETTINGS_ENABLED_DEFAULT,
)
from pymixsync.models._base import MixSyncBaseModel


class SectionMode(enum.StrEnum):
    """How a section's summed level treats channels at -inf."""

    DEFAULT = "default"
    IGNORE_INF = "ignore-inf"
    IGNORE_INF_SENDS = "ignore-inf-sends"


DEFAULT_SECTION_MODE = SectionMode.IGNORE_INF


class GroupType(enum.StrEnum):
    LOCAL = "local"
    GLOBAL = "global"


class LayoutSection(MixSyncBaseModel):
    """Named, ordered subset of channels for one aux bus."""

    id: str
    name: str
    channel_ids: list[int] = Field(default_factory=list)
    offset_db: float = 0.0
    mode: SectionMode = DEFAULT_SECTION_MODE
    enabled: bool = SECTION_ENABLED_DEFAULT


class GlobalGroup(MixSyncBaseModel):
    """Named channel grouping shared by every bus."""

    id: str
    name: str
    channel_ids: list[int] = Field(default_factory=list)


class GroupSettings(MixSyncBaseModel):
    """Offset/mode/enabled triple attached to a bus or a global group."""

    offset_db: float = 0.0
    mode: SectionMode = DEFAULT_SECTION_MODE
    enabled: bool = SETTINGS_ENABLED_DEFAULT


class GroupRef(MixSyncBaseModel):
    kind: Literal["group"] = "group"
    group_type: GroupType
    id: str


class ChannelRef(MixSyncBaseModel):
    kind: Literal["channel"] = "channel"
    id: int


MixOrderItem = Annotated[GroupRef | ChannelRef, Field(discriminator="kind")]


class ViewSettings(MixSyncBaseModel):
    """Per-bus view preferences."""

    offset_db: float = 0.0
    simple_controls: bool = False
    mix_order: list[MixOrderItem] = Field(default_factory=list)


class GlobalSettings(MixSyncBaseModel):
    master: dict[str, GroupSettings] = Field(default_factory=dict)
    gain: dict[str, GroupSettings] = Field(default_factory=dict)
    aux: dict[str, dict[str, GroupSettings]] = Field(default_factory=dict)


class ViewSettingsMap(MixSyncBaseModel):
    master: ViewSettings = Field(default_factory=ViewSettings)
    gain: ViewSettings = Field(default_factory=ViewSettings)
    aux: dict[str, ViewSettings] = Field(default_factory=dict)


class LayoutDocument(MixSyncBaseModel):
    """The whole persisted layout configuration."""

    version: int = LAYOUT_VERSION
    aux: dict[str, list[LayoutSection]] = Field(default_factory=dict)
    global_groups: list[GlobalGroup] = Field(default_factory=list)
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    view_settings: ViewSettingsMap = Field(default_factory=ViewSettingsMap)

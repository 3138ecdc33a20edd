"""Pydantic request models for the HTTP surface.

These models provide a consistent "validate → normalize → execute" flow.
They only check shape; semantic cleanup (universe filtering, dedupe,
defaults) is the layout normalizer's job.
"""

from __future__ import annotations

import math
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from pymixsync.models.layout import GroupType, SectionMode

_Number = StrictInt | StrictFloat
_NonEmpty = Annotated[str, Field(min_length=1)]


class _Request(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class FaderRequest(_Request):
    value: _Number

    @field_validator("value")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("value must be finite")
        return value

    @property
    def clamped(self) -> float:
        """Value clamped to the normalized fader range."""
        return min(1.0, max(0.0, float(self.value)))


class MuteRequest(_Request):
    muted: StrictBool


class SoloRequest(_Request):
    solo: StrictBool


class ConnectRequest(_Request):
    host: _NonEmpty


class SectionPayload(_Request):
    id: _NonEmpty
    name: _NonEmpty
    channel_ids: list[StrictInt]
    offset_db: _Number | None = None
    mode: SectionMode | None = None
    enabled: StrictBool | None = None


class GlobalGroupPayload(_Request):
    id: _NonEmpty
    name: _NonEmpty
    channel_ids: list[StrictInt]


class GroupSettingsPayload(_Request):
    offset_db: _Number | None = None
    mode: SectionMode | None = None
    enabled: StrictBool | None = None


class GroupRefPayload(_Request):
    kind: Literal["group"]
    group_type: GroupType
    id: _NonEmpty


class ChannelRefPayload(_Request):
    kind: Literal["channel"]
    id: StrictInt


class ViewSettingsPayload(_Request):
    offset_db: _Number | None = None
    simple_controls: StrictBool | None = None
    mix_order: list[Annotated[GroupRefPayload | ChannelRefPayload, Field(discriminator="kind")]] | None = None


class LayoutUpdateRequest(_Request):
    """Partial layout update; every present part is applied."""

    sections: list[SectionPayload] | None = None
    global_groups: list[GlobalGroupPayload] | None = None
    global_settings: dict[str, GroupSettingsPayload] | None = None
    view_settings: ViewSettingsPayload | None = None

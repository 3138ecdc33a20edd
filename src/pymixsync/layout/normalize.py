"""Normalization helpers for the layout document.

The layout file is hand-editable and may predate the current channel
universe, and client payloads are only shape-checked. Everything passing
through the layout store is therefore rebuilt here: malformed values are
coerced to defaults, never rejected.

Inputs are raw JSON structures (camelCase keys) or pydantic models; the
outputs are always fresh normalized models.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from pymixsync._constants import (
    FAVORITES_ID,
    FAVORITES_NAME,
    OTHERS_ID,
    OTHERS_NAME,
    SECTION_ENABLED_DEFAULT,
    SETTINGS_ENABLED_DEFAULT,
)
from pymixsync.models.layout import (
    DEFAULT_SECTION_MODE,
    ChannelRef,
    GlobalGroup,
    GroupRef,
    GroupSettings,
    GroupType,
    LayoutSection,
    MixOrderItem,
    SectionMode,
    ViewSettings,
)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, Mapping):
        return value
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _get(data: Mapping[str, Any], camel: str, snake: str | None = None) -> Any:
    if camel in data:
        return data[camel]
    if snake is not None:
        return data.get(snake)
    return None


def finite_or_zero(value: Any) -> float:
    """Finite number, or ``0.0`` for anything else (booleans included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return float(value)


def coerce_mode(value: Any) -> SectionMode:
    # "default" is kept as its own mode; only unknown values fall back.
    try:
        return SectionMode(value)
    except ValueError:
        return DEFAULT_SECTION_MODE


def coerce_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def as_channel_id(value: Any) -> int | None:
    """Integer channel id, or ``None`` for non-integers and booleans."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def filter_channel_ids(values: Any, allowed: set[int] | frozenset[int]) -> list[int]:
    """Keep ids from the universe, first occurrence only, input order kept."""
    result: list[int] = []
    seen: set[int] = set()
    for raw in _as_list(values):
        channel_id = as_channel_id(raw)
        if channel_id is None or channel_id not in allowed or channel_id in seen:
            continue
        seen.add(channel_id)
        result.append(channel_id)
    return result


# ----------------------------------------------------------------------
# Sections
# ----------------------------------------------------------------------


def _default_section(section_id: str, name: str) -> dict[str, Any]:
    return {
        "id": section_id,
        "name": name,
        "channel_ids": [],
        "offset_db": 0.0,
        "mode": DEFAULT_SECTION_MODE,
        "enabled": SECTION_ENABLED_DEFAULT,
    }


def normalize_sections(sections: Any, channel_ids: Iterable[int]) -> list[LayoutSection]:
    """Normalize the section list of one aux bus.

    The result always starts with the ``favorites`` section and ends with
    the ``others`` section. ``others`` receives every universe channel not
    pinned to favorites: channels it already listed keep their order and
    newly unclaimed ones are appended in universe order. Channels may
    still appear in several user sections; only in-section duplicates are
    dropped. The function is idempotent.
    """
    universe = list(channel_ids)
    allowed = frozenset(universe)

    by_id: dict[str, dict[str, Any]] = {}
    order: list[str] = []
    for raw in _as_list(sections):
        item = _as_mapping(raw)
        section_id = _non_empty_str(item.get("id"))
        if section_id is None or section_id in by_id:
            continue
        if section_id == FAVORITES_ID:
            name = FAVORITES_NAME
        else:
            name = _non_empty_str(item.get("name")) or section_id
        by_id[section_id] = {
            "id": section_id,
            "name": name,
            "channel_ids": filter_channel_ids(_get(item, "channelIds", "channel_ids"), allowed),
            "offset_db": finite_or_zero(_get(item, "offsetDb", "offset_db")),
            "mode": coerce_mode(item.get("mode")),
            "enabled": coerce_bool(item.get("enabled"), SECTION_ENABLED_DEFAULT),
        }
        order.append(section_id)

    favorites = by_id.get(FAVORITES_ID) or _default_section(FAVORITES_ID, FAVORITES_NAME)
    others = by_id.get(OTHERS_ID) or _default_section(OTHERS_ID, OTHERS_NAME)

    pinned = set(favorites["channel_ids"])
    next_others = [channel_id for channel_id in others["channel_ids"] if channel_id not in pinned]
    claimed = pinned | set(next_others)
    next_others.extend(channel_id for channel_id in universe if channel_id not in claimed)
    others["channel_ids"] = next_others

    middle = [by_id[section_id] for section_id in order if section_id not in (FAVORITES_ID, OTHERS_ID)]
    return [LayoutSection(**data) for data in (favorites, *middle, others)]


# ----------------------------------------------------------------------
# Global groups and settings
# ----------------------------------------------------------------------


def normalize_global_groups(groups: Any, channel_ids: Iterable[int]) -> list[GlobalGroup]:
    """Drop id-less/duplicate groups and clean every channel list."""
    allowed = frozenset(channel_ids)
    result: dict[str, GlobalGroup] = {}
    for raw in _as_list(groups):
        item = _as_mapping(raw)
        group_id = _non_empty_str(item.get("id"))
        if group_id is None or group_id in result:
            continue
        result[group_id] = GlobalGroup(
            id=group_id,
            name=_non_empty_str(item.get("name")) or group_id,
            channel_ids=filter_channel_ids(_get(item, "channelIds", "channel_ids"), allowed),
        )
    return list(result.values())


def normalize_group_settings(value: Any) -> GroupSettings:
    item = _as_mapping(value)
    return GroupSettings(
        offset_db=finite_or_zero(_get(item, "offsetDb", "offset_db")),
        mode=coerce_mode(item.get("mode")),
        enabled=coerce_bool(item.get("enabled"), SETTINGS_ENABLED_DEFAULT),
    )


def normalize_settings(settings: Any) -> dict[str, GroupSettings]:
    """Normalize a ``{group id: settings}`` map.

    Unlike sections, settings default to ``enabled=False``.
    """
    return {
        key: normalize_group_settings(value)
        for key, value in _as_mapping(settings).items()
        if isinstance(key, str) and key
    }


# ----------------------------------------------------------------------
# View settings
# ----------------------------------------------------------------------


def normalize_mix_order(items: Any) -> list[MixOrderItem]:
    """Keep well-formed group/channel references, first occurrence wins."""
    result: list[MixOrderItem] = []
    seen: set[tuple[str, str, str | int]] = set()
    for raw in _as_list(items):
        item = _as_mapping(raw)
        kind = item.get("kind")
        if kind == "group":
            group_id = _non_empty_str(item.get("id"))
            group_type = _get(item, "groupType", "group_type")
            if group_id is None or group_type not in (GroupType.LOCAL, GroupType.GLOBAL):
                continue
            key: tuple[str, str, str | int] = ("group", str(group_type), group_id)
            if key not in seen:
                seen.add(key)
                result.append(GroupRef(group_type=GroupType(group_type), id=group_id))
        elif kind == "channel":
            channel_id = as_channel_id(item.get("id"))
            if channel_id is None:
                continue
            key = ("channel", "", channel_id)
            if key not in seen:
                seen.add(key)
                result.append(ChannelRef(id=channel_id))
    return result


def normalize_view_settings(settings: Any) -> ViewSettings:
    item = _as_mapping(settings)
    return ViewSettings(
        offset_db=finite_or_zero(_get(item, "offsetDb", "offset_db")),
        simple_controls=coerce_bool(_get(item, "simpleControls", "simple_controls"), False),
        mix_order=normalize_mix_order(_get(item, "mixOrder", "mix_order")),
    )

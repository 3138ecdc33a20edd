"""Persisted layout configuration.

The layout document holds per-aux-bus sections, global groups, group
settings and view settings. It is loaded once at startup, replaced slot
by slot through the setters, and written out whole after every change.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import logging
import os
import re
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pymixsync._constants import LAYOUT_VERSION
from pymixsync.exceptions import LayoutPersistenceError
from pymixsync.layout.normalize import (
    normalize_global_groups,
    normalize_sections,
    normalize_settings,
    normalize_view_settings,
)
from pymixsync.models.layout import (
    GlobalGroup,
    GlobalSettings,
    GroupSettings,
    LayoutDocument,
    LayoutSection,
    ViewSettings,
    ViewSettingsMap,
)
from pymixsync.models.mixer import BusType

_logger = logging.getLogger(__name__)

_HOST_CLEANUP = re.compile(r"[^a-z0-9]+")


def sanitize_host(host: str | None) -> str:
    """Filesystem-safe slug for a mixer host (``192.168.1.5`` -> ``192-168-1-5``)."""
    normalized = (host or "").strip().lower()
    if not normalized:
        return "unknown"
    cleaned = _HOST_CLEANUP.sub("-", normalized).strip("-")
    return cleaned or "unknown"


def layout_path_for_host(data_dir: Path, host: str | None) -> Path:
    """Per-mixer layout file inside *data_dir*."""
    return Path(data_dir) / f"layout.{sanitize_host(host)}.json"


def _default_data() -> dict[str, Any]:
    return {
        "version": LAYOUT_VERSION,
        "aux": {},
        "globalGroups": [],
        "globalSettings": {"master": {}, "gain": {}, "aux": {}},
        "viewSettings": {
            "master": {"offsetDb": 0, "simpleControls": False},
            "gain": {"offsetDb": 0, "simpleControls": False},
            "aux": {},
        },
    }


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _read_json(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LayoutPersistenceError(f"Cannot read layout file: {exc}", path=str(path)) from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LayoutPersistenceError(f"Layout file is not valid JSON: {exc}", path=str(path)) from exc


def _write_json_atomic(path: Path, payload: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise LayoutPersistenceError(f"Cannot write layout file: {exc}", path=str(path)) from exc


class LayoutStore:
    """Durable, self-healing store for layout configuration.

    Parameters
    ----------
    path : Path
        Primary layout file. Created on the first write.
    channel_ids : Iterable[int]
        Channel universe every channel list is filtered against.
    aux_bus_ids : Iterable[int]
        Aux buses that may carry sections and settings. Writes targeting
        any other aux bus are ignored.
    fallback_path : Path, optional
        Seed document used when the primary file is missing or corrupt.
        When adopted it is written back to *path*.
    """

    def __init__(
        self,
        path: Path | str,
        channel_ids: Iterable[int],
        aux_bus_ids: Iterable[int],
        fallback_path: Path | str | None = None,
    ) -> None:
        self._path = Path(path)
        self._fallback_path = Path(fallback_path) if fallback_path is not None else None
        self._channel_ids: tuple[int, ...] = tuple(channel_ids)
        self._aux_bus_ids: frozenset[int] = frozenset(aux_bus_ids)
        self._data: dict[str, Any] = _default_data()
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Load the primary file, else the fallback, else defaults.

        Never raises. A fallback that is adopted is persisted to the
        primary path so a broken primary converges to a good document.
        """
        if await self._try_adopt(self._path):
            _logger.debug("Layout loaded from %s", self._path)
            return

        if self._fallback_path is not None and await self._try_adopt(self._fallback_path):
            _logger.info("Layout seeded from fallback %s", self._fallback_path)
            try:
                await self.save()
            except LayoutPersistenceError:
                _logger.warning("Could not persist fallback layout to %s", self._path, exc_info=True)
            return

        _logger.info("No usable layout file; using defaults")
        self._data = _default_data()

    async def _try_adopt(self, path: Path) -> bool:
        loop = asyncio.get_running_loop()
        try:
            parsed = await loop.run_in_executor(None, _read_json, path)
        except LayoutPersistenceError as exc:
            if isinstance(exc.__cause__, FileNotFoundError):
                _logger.debug("Layout file %s does not exist", path)
            else:
                _logger.warning("Ignoring unreadable layout file %s: %s", path, exc)
            return False
        return self._adopt(parsed, path)

    def _adopt(self, parsed: Any, path: Path) -> bool:
        if not isinstance(parsed, Mapping) or not isinstance(parsed.get("aux"), Mapping):
            _logger.warning("Ignoring layout file %s: missing 'aux' object", path)
            return False
        defaults = _default_data()
        global_settings = parsed.get("globalSettings")
        view_settings = parsed.get("viewSettings")
        global_groups = parsed.get("globalGroups")
        self._data = {
            "version": LAYOUT_VERSION,
            "aux": copy.deepcopy(dict(parsed["aux"])),
            "globalGroups": copy.deepcopy(global_groups) if isinstance(global_groups, list) else [],
            "globalSettings": (
                copy.deepcopy(dict(global_settings))
                if isinstance(global_settings, Mapping)
                else defaults["globalSettings"]
            ),
            "viewSettings": (
                copy.deepcopy(dict(view_settings)) if isinstance(view_settings, Mapping) else defaults["viewSettings"]
            ),
        }
        return True

    async def save(self) -> None:
        """Write the whole document to the primary path.

        Writes are serialized: each one snapshots the document when it
        starts and replaces the file atomically, so the file always holds
        a complete document and the last write carries the latest state.

        Raises
        ------
        LayoutPersistenceError
            If the file cannot be written.
        """
        async with self._write_lock:
            payload = json.dumps(self._data, indent=2)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _write_json_atomic, self._path, payload)
            _logger.debug("Layout written to %s (%d bytes)", self._path, len(payload))

    def _is_aux_target(self, bus_id: int | None) -> bool:
        return bus_id is not None and bus_id in self._aux_bus_ids

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_aux_layout(self, bus_id: int) -> list[LayoutSection]:
        """Normalized sections for an aux bus (defaults for unknown buses)."""
        if not self._is_aux_target(bus_id):
            return normalize_sections([], self._channel_ids)
        existing = _mapping(self._data.get("aux")).get(str(bus_id), [])
        return normalize_sections(existing, self._channel_ids)

    def get_global_groups(self) -> list[GlobalGroup]:
        return normalize_global_groups(self._data.get("globalGroups"), self._channel_ids)

    def get_global_settings(self, bus_type: BusType | str, bus_id: int | None = None) -> dict[str, GroupSettings]:
        stored = _mapping(self._data.get("globalSettings"))
        if BusType(bus_type) == BusType.AUX:
            if not self._is_aux_target(bus_id):
                return {}
            return normalize_settings(_mapping(stored.get("aux")).get(str(bus_id)))
        return normalize_settings(stored.get(str(BusType(bus_type))))

    def get_view_settings(self, bus_type: BusType | str, bus_id: int | None = None) -> ViewSettings:
        stored = _mapping(self._data.get("viewSettings"))
        if BusType(bus_type) == BusType.AUX:
            if not self._is_aux_target(bus_id):
                return normalize_view_settings(None)
            return normalize_view_settings(_mapping(stored.get("aux")).get(str(bus_id)))
        return normalize_view_settings(stored.get(str(BusType(bus_type))))

    @property
    def document(self) -> LayoutDocument:
        """Normalized copy of the whole document."""
        stored_aux = _mapping(self._data.get("aux"))
        stored_settings = _mapping(_mapping(self._data.get("globalSettings")).get("aux"))
        stored_views = _mapping(_mapping(self._data.get("viewSettings")).get("aux"))
        bus_ids = sorted(self._aux_bus_ids)
        return LayoutDocument(
            aux={str(bus_id): self.get_aux_layout(bus_id) for bus_id in bus_ids if str(bus_id) in stored_aux},
            global_groups=self.get_global_groups(),
            global_settings=GlobalSettings(
                master=self.get_global_settings(BusType.MASTER),
                gain=self.get_global_settings(BusType.GAIN),
                aux={
                    str(bus_id): self.get_global_settings(BusType.AUX, bus_id)
                    for bus_id in bus_ids
                    if str(bus_id) in stored_settings
                },
            ),
            view_settings=ViewSettingsMap(
                master=self.get_view_settings(BusType.MASTER),
                gain=self.get_view_settings(BusType.GAIN),
                aux={
                    str(bus_id): self.get_view_settings(BusType.AUX, bus_id)
                    for bus_id in bus_ids
                    if str(bus_id) in stored_views
                },
            ),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _slot(self, key: str) -> dict[str, Any]:
        value = self._data.get(key)
        if not isinstance(value, dict):
            value = _default_data()[key]
            self._data[key] = value
        return value

    def _aux_slot(self, key: str) -> dict[str, Any]:
        parent = self._slot(key)
        value = parent.get("aux")
        if not isinstance(value, dict):
            value = {}
            parent["aux"] = value
        return value

    async def set_aux_layout(self, bus_id: int, sections: Any) -> None:
        if not self._is_aux_target(bus_id):
            _logger.debug("Ignoring layout for unknown aux bus %s", bus_id)
            return
        normalized = normalize_sections(sections, self._channel_ids)
        self._slot("aux")[str(bus_id)] = [section.model_dump(mode="json", by_alias=True) for section in normalized]
        await self.save()

    async def set_global_groups(self, groups: Any) -> None:
        normalized = normalize_global_groups(groups, self._channel_ids)
        self._data["globalGroups"] = [group.model_dump(mode="json", by_alias=True) for group in normalized]
        await self.save()

    async def set_global_settings(self, bus_type: BusType | str, settings: Any, bus_id: int | None = None) -> None:
        dumped = {
            key: value.model_dump(mode="json", by_alias=True) for key, value in normalize_settings(settings).items()
        }
        if BusType(bus_type) == BusType.AUX:
            if not self._is_aux_target(bus_id):
                _logger.debug("Ignoring settings for unknown aux bus %s", bus_id)
                return
            self._aux_slot("globalSettings")[str(bus_id)] = dumped
        else:
            self._slot("globalSettings")[str(BusType(bus_type))] = dumped
        await self.save()

    async def set_view_settings(self, bus_type: BusType | str, settings: Any, bus_id: int | None = None) -> None:
        dumped = normalize_view_settings(settings).model_dump(mode="json", by_alias=True)
        if BusType(bus_type) == BusType.AUX:
            if not self._is_aux_target(bus_id):
                _logger.debug("Ignoring view settings for unknown aux bus %s", bus_id)
                return
            self._aux_slot("viewSettings")[str(bus_id)] = dumped
        else:
            self._slot("viewSettings")[str(BusType(bus_type))] = dumped
        await self.save()

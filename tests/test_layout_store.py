from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from pymixsync.layout.store import LayoutStore, layout_path_for_host, sanitize_host
from pymixsync.models.layout import SectionMode
from pymixsync.models.mixer import BusType

UNIVERSE = [1, 2, 3]
AUX_BUSES = [1, 2]


def _store(tmp_path: Path, *, fallback: bool = False) -> LayoutStore:
    return LayoutStore(
        tmp_path / "layout.mixer.json",
        UNIVERSE,
        AUX_BUSES,
        fallback_path=tmp_path / "layout.json" if fallback else None,
    )


def _write(path: Path, data: object) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


def test_sanitize_host() -> None:
    assert sanitize_host("192.168.1.5") == "192-168-1-5"
    assert sanitize_host(" Mixer.Local:80 ") == "mixer-local-80"
    assert sanitize_host("") == "unknown"
    assert sanitize_host(None) == "unknown"
    assert sanitize_host("...") == "unknown"
    assert layout_path_for_host(Path("data"), "10.0.0.1") == Path("data/layout.10-0-0-1.json")


@pytest.mark.asyncio
async def test_missing_files_use_defaults_without_writing(tmp_path: Path) -> None:
    store = _store(tmp_path, fallback=True)
    await store.load()

    sections = store.get_aux_layout(1)
    assert [section.id for section in sections] == ["favorites", "others"]
    assert sections[1].channel_ids == [1, 2, 3]
    assert store.get_global_groups() == []
    assert store.get_global_settings(BusType.MASTER) == {}
    assert store.get_view_settings(BusType.GAIN).simple_controls is False
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_load_primary_file(tmp_path: Path) -> None:
    _write(
        tmp_path / "layout.mixer.json",
        {
            "version": 2,
            "aux": {"1": [{"id": "favorites", "channelIds": [3]}]},
            "globalGroups": [{"id": "band", "name": "Band", "channelIds": [1, 2]}],
            "globalSettings": {"master": {"band": {"enabled": True}}},
            "viewSettings": {"master": {"offsetDb": -3}},
        },
    )
    store = _store(tmp_path)
    await store.load()

    assert store.get_aux_layout(1)[0].channel_ids == [3]
    assert store.get_aux_layout(1)[-1].channel_ids == [1, 2]
    assert store.get_global_groups()[0].channel_ids == [1, 2]
    assert store.get_global_settings(BusType.MASTER)["band"].enabled is True
    assert store.get_global_settings(BusType.GAIN) == {}
    assert store.get_view_settings(BusType.MASTER).offset_db == -3.0


@pytest.mark.asyncio
async def test_corrupt_primary_adopts_fallback_and_repairs_primary(tmp_path: Path) -> None:
    (tmp_path / "layout.mixer.json").write_text("{not json", encoding="utf-8")
    _write(tmp_path / "layout.json", {"aux": {"2": [{"id": "favorites", "channelIds": [1]}]}})

    store = _store(tmp_path, fallback=True)
    await store.load()

    assert store.get_aux_layout(2)[0].channel_ids == [1]
    repaired = json.loads((tmp_path / "layout.mixer.json").read_text(encoding="utf-8"))
    assert repaired["version"] == 2
    assert repaired["aux"]["2"][0]["channelIds"] == [1]


@pytest.mark.asyncio
async def test_primary_without_aux_object_is_ignored(tmp_path: Path) -> None:
    _write(tmp_path / "layout.mixer.json", {"aux": []})
    store = _store(tmp_path)
    await store.load()

    assert store.get_aux_layout(1)[-1].channel_ids == [1, 2, 3]


@pytest.mark.asyncio
async def test_set_aux_layout_example(tmp_path: Path) -> None:
    store = LayoutStore(tmp_path / "layout.json", UNIVERSE, [1])
    await store.set_aux_layout(1, [{"id": "favorites", "name": "x", "channelIds": [2]}])

    sections = store.get_aux_layout(1)
    assert sections[0].channel_ids == [2]
    assert sections[0].name == "My Channels"
    assert sections[-1].channel_ids == [1, 3]


@pytest.mark.asyncio
async def test_unknown_aux_bus_is_noop_without_write(tmp_path: Path) -> None:
    store = _store(tmp_path)
    await store.set_aux_layout(9, [{"id": "favorites", "channelIds": [2]}])
    await store.set_global_settings(BusType.AUX, {"band": {"enabled": True}}, 9)
    await store.set_view_settings(BusType.AUX, {"offsetDb": 3}, 9)

    assert not store.path.exists()
    assert store.get_global_settings(BusType.AUX, 9) == {}
    assert store.get_view_settings(BusType.AUX, 9).offset_db == 0.0


@pytest.mark.asyncio
async def test_write_then_load_round_trips(tmp_path: Path) -> None:
    store = _store(tmp_path)
    await store.set_aux_layout(2, [{"id": "drums", "name": "Drums", "channelIds": [3, 1], "mode": "default"}])
    await store.set_global_groups([{"id": "band", "name": "Band", "channelIds": [2, 2]}])
    await store.set_global_settings(BusType.GAIN, {"band": {"offsetDb": 1.5}})
    await store.set_global_settings(BusType.AUX, {"drums": {"enabled": True}}, 2)
    await store.set_view_settings(
        BusType.AUX, {"simpleControls": True, "mixOrder": [{"kind": "channel", "id": 3}]}, 2
    )

    reloaded = _store(tmp_path)
    await reloaded.load()

    assert reloaded.document == store.document
    assert reloaded.get_aux_layout(2)[1].mode == SectionMode.DEFAULT
    assert reloaded.get_global_groups()[0].channel_ids == [2]
    assert reloaded.get_global_settings(BusType.GAIN)["band"].enabled is False
    assert reloaded.get_global_settings(BusType.AUX, 2)["drums"].enabled is True
    assert reloaded.get_view_settings(BusType.AUX, 2).simple_controls is True


@pytest.mark.asyncio
async def test_concurrent_saves_leave_complete_document(tmp_path: Path) -> None:
    store = _store(tmp_path)
    await asyncio.gather(
        store.set_aux_layout(1, [{"id": "a", "name": "A", "channelIds": [1]}]),
        store.set_aux_layout(2, [{"id": "b", "name": "B", "channelIds": [2]}]),
        store.set_global_groups([{"id": "g", "name": "G", "channelIds": [3]}]),
    )

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert set(on_disk["aux"]) == {"1", "2"}
    assert on_disk["globalGroups"][0]["id"] == "g"
    assert list(tmp_path.glob("*.tmp")) == []


@pytest.mark.asyncio
async def test_document_only_lists_stored_aux_buses(tmp_path: Path) -> None:
    store = _store(tmp_path)
    await store.set_view_settings(BusType.AUX, {"offsetDb": 2}, 1)

    document = store.document
    assert document.aux == {}
    assert set(document.view_settings.aux) == {"1"}
    assert document.to_wire()["viewSettings"]["aux"]["1"]["offsetDb"] == 2.0

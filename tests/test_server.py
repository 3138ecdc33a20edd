from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
from aiohttp import test_utils

from pymixsync.config import MixSyncConfig
from pymixsync.models.mixer import BusType
from pymixsync.server import SERVICES_KEY, create_app, parse_bus
from pymixsync.state.events import AuxUpdate, ChannelUpdate, MixerUpdate


@dataclass
class FakeMixer:
    connected: bool = False
    fader_db: float | None = -2.5
    host: str | None = None
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    handlers: list[Callable[[MixerUpdate], None]] = field(default_factory=list)

    def on_update(self, handler: Callable[[MixerUpdate], None]) -> Callable[[], None]:
        self.handlers.append(handler)
        return lambda: self.handlers.remove(handler)

    def is_connected(self) -> bool:
        return self.connected

    def set_host(self, host: str) -> None:
        self.host = host

    def set_fader(self, bus_type: BusType, bus: int, channel_id: int, value: float) -> None:
        self.calls.append(("fader", bus_type, bus, channel_id, value))

    def set_mute(self, bus_type: BusType, bus: int, channel_id: int, muted: bool) -> None:
        self.calls.append(("mute", bus_type, bus, channel_id, muted))

    def set_solo(self, channel_id: int, solo: bool) -> None:
        self.calls.append(("solo", channel_id, solo))

    async def get_fader_db(self, bus_type: BusType, bus: int, channel_id: int) -> float | None:
        return self.fader_db

    async def get_gain_db(self, channel_id: int) -> float | None:
        return self.fader_db

    async def get_aux_bus_names(self, bus_ids: Sequence[int]) -> Sequence[AuxUpdate]:
        return []

    async def get_channel_state(
        self, bus_type: BusType, bus: int, channel_ids: Sequence[int]
    ) -> Sequence[ChannelUpdate]:
        return []


def _config(tmp_path: Path) -> MixSyncConfig:
    return MixSyncConfig(host="10.0.0.9", channel_ids=(1, 2, 3), aux_bus_ids=(1, 2), data_dir=tmp_path)


async def _client(tmp_path: Path, mixer: FakeMixer) -> test_utils.TestClient:
    client = test_utils.TestClient(test_utils.TestServer(create_app(_config(tmp_path), mixer)))
    await client.start_server()
    return client


def test_parse_bus_fallbacks() -> None:
    aux_ids = (1, 2)
    assert parse_bus({}, aux_ids) == (BusType.MASTER, 0)
    assert parse_bus({"bus": "bogus", "busId": "2"}, aux_ids) == (BusType.MASTER, 0)
    assert parse_bus({"bus": "gain", "busId": "2"}, aux_ids) == (BusType.GAIN, 0)
    assert parse_bus({"bus": "aux", "busId": "2"}, aux_ids) == (BusType.AUX, 2)
    assert parse_bus({"bus": "aux", "busId": "7"}, aux_ids) == (BusType.AUX, 1)
    assert parse_bus({"bus": "aux", "busId": "x"}, aux_ids) == (BusType.AUX, 1)


@pytest.mark.asyncio
async def test_get_state_for_bus(tmp_path: Path) -> None:
    mixer = FakeMixer()
    client = await _client(tmp_path, mixer)
    try:
        resp = await client.get("/api/state", params={"bus": "aux", "busId": "2"})
        assert resp.status == 200
        body = await resp.json()
    finally:
        await client.close()

    assert body["host"] == "10.0.0.9"
    assert body["bus"] == {"type": "aux", "id": 2}
    assert [channel["id"] for channel in body["channels"]] == [1, 2, 3]
    assert {channel["bus"] for channel in body["channels"]} == {2}
    assert mixer.handlers == []


@pytest.mark.asyncio
async def test_layout_round_trip(tmp_path: Path) -> None:
    client = await _client(tmp_path, FakeMixer())
    try:
        resp = await client.put(
            "/api/layout",
            params={"bus": "aux", "busId": "1"},
            json={
                "sections": [{"id": "favorites", "name": "Mine", "channelIds": [2]}],
                "globalSettings": {"band": {"enabled": True}},
                "viewSettings": {"offsetDb": -4, "mixOrder": [{"kind": "channel", "id": 3}]},
            },
        )
        assert resp.status == 204

        resp = await client.get("/api/layout", params={"bus": "aux", "busId": "1"})
        body = await resp.json()
        master = await (await client.get("/api/layout")).json()
    finally:
        await client.close()

    assert [section["id"] for section in body["sections"]] == ["favorites", "others"]
    assert body["sections"][0]["channelIds"] == [2]
    assert body["sections"][1]["channelIds"] == [1, 3]
    assert body["globalSettings"]["band"]["enabled"] is True
    assert body["viewSettings"]["offsetDb"] == -4.0
    assert body["viewSettings"]["mixOrder"] == [{"kind": "channel", "id": 3}]
    assert "sections" not in master
    assert master["globalSettings"] == {}

    on_disk = json.loads((tmp_path / "layout.10-0-0-9.json").read_text(encoding="utf-8"))
    assert on_disk["aux"]["1"][0]["channelIds"] == [2]


@pytest.mark.asyncio
async def test_invalid_layout_payload_is_rejected(tmp_path: Path) -> None:
    client = await _client(tmp_path, FakeMixer())
    try:
        resp = await client.put("/api/layout", json={"globalGroups": [{"id": "g"}]})
        assert resp.status == 400
        assert await resp.json() == {"error": "Invalid layout payload"}
    finally:
        await client.close()

    assert not (tmp_path / "layout.10-0-0-9.json").exists()


@pytest.mark.asyncio
async def test_commands_require_connected_mixer(tmp_path: Path) -> None:
    mixer = FakeMixer(connected=False)
    client = await _client(tmp_path, mixer)
    try:
        resp = await client.post("/api/channels/1/fader", json={"value": 0.5})
        assert resp.status == 503
        assert "error" in await resp.json()

        resp = await client.post("/api/channels/99/fader", json={"value": 0.5})
        assert resp.status == 400
        assert await resp.json() == {"error": "Invalid channel id"}

        resp = await client.post("/api/channels/1/fader", json={"value": "loud"})
        assert resp.status == 400
        assert await resp.json() == {"error": "Invalid fader payload"}
    finally:
        await client.close()

    assert mixer.calls == []


@pytest.mark.asyncio
async def test_fader_is_clamped_and_refreshes_db(tmp_path: Path) -> None:
    mixer = FakeMixer(connected=True)
    client = await _client(tmp_path, mixer)
    try:
        resp = await client.post("/api/channels/2/fader", params={"bus": "aux", "busId": "2"}, json={"value": 1.5})
        assert resp.status == 204
        resp = await client.post("/api/channels/3/gain", json={"value": -1})
        assert resp.status == 204
        state = client.app[SERVICES_KEY].state
        aux = state.get_channel(BusType.AUX, 2, 2)
        gain = state.get_channel(BusType.GAIN, 0, 3)
    finally:
        await client.close()

    assert mixer.calls == [("fader", BusType.AUX, 2, 2, 1.0), ("fader", BusType.GAIN, 0, 3, 0.0)]
    assert aux is not None and aux.fader == 1.0 and aux.fader_db == -2.5
    assert gain is not None and gain.fader == 0.0


@pytest.mark.asyncio
async def test_mute_and_solo_bus_restrictions(tmp_path: Path) -> None:
    mixer = FakeMixer(connected=True)
    client = await _client(tmp_path, mixer)
    try:
        resp = await client.post("/api/channels/1/mute", params={"bus": "gain"}, json={"muted": True})
        assert resp.status == 400
        resp = await client.post("/api/channels/1/solo", params={"bus": "aux", "busId": "1"}, json={"solo": True})
        assert resp.status == 400
        resp = await client.post("/api/channels/1/mute", json={"muted": "yes"})
        assert resp.status == 400

        resp = await client.post("/api/channels/1/mute", params={"bus": "aux", "busId": "1"}, json={"muted": True})
        assert resp.status == 204
        resp = await client.post("/api/channels/1/solo", json={"solo": True})
        assert resp.status == 204
    finally:
        await client.close()

    assert mixer.calls == [("mute", BusType.AUX, 1, 1, True), ("solo", 1, True)]


@pytest.mark.asyncio
async def test_websocket_gets_snapshot_then_updates(tmp_path: Path) -> None:
    mixer = FakeMixer(connected=True)
    client = await _client(tmp_path, mixer)
    try:
        ws = await client.ws_connect("/ws")
        snapshot = await ws.receive_json(timeout=5)
        assert snapshot["type"] == "state"
        assert snapshot["data"]["bus"] == {"type": "master", "id": 0}

        resp = await client.post("/api/channels/2/mute", json={"muted": True})
        assert resp.status == 204
        update = await ws.receive_json(timeout=5)
        await ws.close()
    finally:
        await client.close()

    assert update["type"] == "channel"
    assert update["data"]["id"] == 2
    assert update["data"]["muted"] is True


@pytest.mark.asyncio
async def test_connect_switches_host_and_layout(tmp_path: Path) -> None:
    mixer = FakeMixer()
    (tmp_path / "layout.json").write_text(
        json.dumps({"aux": {"2": [{"id": "favorites", "channelIds": [3]}]}}), encoding="utf-8"
    )
    client = await _client(tmp_path, mixer)
    try:
        resp = await client.post("/api/connect", json={"host": " Mixer.Local "})
        assert resp.status == 204
        services = client.app[SERVICES_KEY]
        host = services.state.host
        layout_path = services.layout.path
        favorites = services.layout.get_aux_layout(2)[0].channel_ids

        resp = await client.post("/api/connect", json={"host": ""})
        assert resp.status == 400
    finally:
        await client.close()

    assert host == "Mixer.Local"
    assert mixer.host == "Mixer.Local"
    assert layout_path == tmp_path / "layout.mixer-local.json"
    assert layout_path.exists()
    assert favorites == [3]

"""aiohttp application exposing the query/command surface and ``/ws``."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from aiohttp import WSMsgType, web
from pydantic import BaseModel, ValidationError

from pymixsync._constants import DEFAULT_HOST_LABEL
from pymixsync.broadcast import ClientRegistry
from pymixsync.config import MixSyncConfig
from pymixsync.exceptions import MixerNotConnectedError
from pymixsync.ingestion.mixer import MixerClient, MixerCoordinator
from pymixsync.layout.store import LayoutStore, layout_path_for_host
from pymixsync.models.messages import StateMessage
from pymixsync.models.mixer import BusType
from pymixsync.models.requests import (
    ConnectRequest,
    FaderRequest,
    LayoutUpdateRequest,
    MuteRequest,
    SoloRequest,
)
from pymixsync.state.store import StateStore

_logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseModel)


@dataclass
class Services:
    """Everything the request handlers share.

    ``layout`` is replaced when the operator points the server at a
    different mixer, since each mixer has its own layout file.
    """

    config: MixSyncConfig
    mixer: MixerClient
    state: StateStore
    layout: LayoutStore
    registry: ClientRegistry
    coordinator: MixerCoordinator
    unsubscribe: Callable[[], None] | None = field(default=None, repr=False)


SERVICES_KEY = web.AppKey("services", Services)


def create_layout_store(config: MixSyncConfig, host: str | None) -> LayoutStore:
    """Layout store for *host*, seeded from the shared legacy file."""
    return LayoutStore(
        layout_path_for_host(config.data_dir, host),
        config.channel_ids,
        config.aux_bus_ids,
        fallback_path=config.legacy_layout_path,
    )


# ----------------------------------------------------------------------
# Request parsing helpers
# ----------------------------------------------------------------------


def _error(exc_cls: type[web.HTTPException], message: str) -> web.HTTPException:
    return exc_cls(text=json.dumps({"error": message}), content_type="application/json")


def parse_bus(query: Mapping[str, str], aux_bus_ids: tuple[int, ...]) -> tuple[BusType, int]:
    """Resolve ``?bus=&busId=`` to a bus view.

    Unknown bus types fall back to master; master and gain always use
    bus 0; an aux bus outside the configured universe falls back to 1.
    """
    try:
        bus_type = BusType(query.get("bus", BusType.MASTER))
    except ValueError:
        return BusType.MASTER, 0
    if bus_type != BusType.AUX:
        return bus_type, 0
    try:
        bus_id = int(query.get("busId", "1"))
    except ValueError:
        return bus_type, 1
    if bus_id not in aux_bus_ids:
        return bus_type, 1
    return bus_type, bus_id


def _channel_id(request: web.Request, services: Services) -> int:
    try:
        channel_id = int(request.match_info["id"])
    except ValueError:
        channel_id = 0
    if channel_id not in services.config.channel_ids:
        raise _error(web.HTTPBadRequest, "Invalid channel id")
    return channel_id


async def _parse_body(request: web.Request, model: type[TModel], message: str) -> TModel:
    try:
        body = await request.json()
        return model.model_validate(body)
    except (json.JSONDecodeError, ValidationError) as exc:
        _logger.debug("Rejected %s body: %s", request.path, exc)
        raise _error(web.HTTPBadRequest, message) from exc


def _require_connected(mixer: MixerClient) -> None:
    if not mixer.is_connected():
        raise MixerNotConnectedError("Mixer is not connected")


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    try:
        return await handler(request)
    except MixerNotConnectedError as exc:
        return web.json_response({"error": str(exc)}, status=503)


# ----------------------------------------------------------------------
# Query handlers
# ----------------------------------------------------------------------


async def get_state(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    bus_type, bus = parse_bus(request.query, services.config.aux_bus_ids)
    return web.json_response(services.state.get_state(bus_type, bus).to_wire())


async def get_layout(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    layout = services.layout
    bus_type, bus = parse_bus(request.query, services.config.aux_bus_ids)
    body: dict[str, Any] = {}
    if bus_type == BusType.AUX:
        body["sections"] = [section.to_wire() for section in layout.get_aux_layout(bus)]
    body["globalGroups"] = [group.to_wire() for group in layout.get_global_groups()]
    body["globalSettings"] = {
        key: value.to_wire() for key, value in layout.get_global_settings(bus_type, bus).items()
    }
    body["viewSettings"] = layout.get_view_settings(bus_type, bus).to_wire()
    return web.json_response(body)


# ----------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------


async def put_layout(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    layout = services.layout
    bus_type, bus = parse_bus(request.query, services.config.aux_bus_ids)
    payload = await _parse_body(request, LayoutUpdateRequest, "Invalid layout payload")

    if payload.sections is not None and bus_type == BusType.AUX:
        await layout.set_aux_layout(bus, payload.sections)
    if payload.global_groups is not None:
        await layout.set_global_groups(payload.global_groups)
    if payload.global_settings is not None:
        await layout.set_global_settings(bus_type, payload.global_settings, bus)
    if payload.view_settings is not None:
        await layout.set_view_settings(bus_type, payload.view_settings, bus)
    return web.Response(status=204)


async def post_connect(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    payload = await _parse_body(request, ConnectRequest, "Invalid host payload")
    host = payload.host

    services.state.set_host(host)
    services.mixer.set_host(host)
    layout = create_layout_store(services.config, host)
    await layout.load()
    services.layout = layout
    _logger.info("Switched mixer host to %s (layout %s)", host, layout.path)

    await services.registry.broadcast(StateMessage(data=services.state.get_state()))
    return web.Response(status=204)


async def _set_fader(services: Services, bus_type: BusType, bus: int, channel_id: int, value: float) -> None:
    mixer = services.mixer
    mixer.set_fader(bus_type, bus, channel_id, value)
    services.state.update_channel(bus_type, bus, channel_id, fader=value)
    if bus_type == BusType.GAIN:
        fader_db = await mixer.get_gain_db(channel_id)
    else:
        fader_db = await mixer.get_fader_db(bus_type, bus, channel_id)
    if fader_db is not None:
        services.state.update_channel(bus_type, bus, channel_id, fader_db=fader_db)
    updated = services.state.get_channel(bus_type, bus, channel_id)
    if updated is not None:
        services.coordinator.queue_channel_broadcast(updated)


async def post_fader(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    channel_id = _channel_id(request, services)
    bus_type, bus = parse_bus(request.query, services.config.aux_bus_ids)
    payload = await _parse_body(request, FaderRequest, "Invalid fader payload")
    _require_connected(services.mixer)

    await _set_fader(services, bus_type, bus, channel_id, payload.clamped)
    return web.Response(status=204)


async def post_gain(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    channel_id = _channel_id(request, services)
    payload = await _parse_body(request, FaderRequest, "Invalid gain payload")
    _require_connected(services.mixer)

    await _set_fader(services, BusType.GAIN, 0, channel_id, payload.clamped)
    return web.Response(status=204)


async def post_mute(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    channel_id = _channel_id(request, services)
    bus_type, bus = parse_bus(request.query, services.config.aux_bus_ids)
    if bus_type == BusType.GAIN:
        raise _error(web.HTTPBadRequest, "Mute not supported for gain view")
    payload = await _parse_body(request, MuteRequest, "Invalid mute payload")
    _require_connected(services.mixer)

    services.mixer.set_mute(bus_type, bus, channel_id, payload.muted)
    updated = services.state.update_channel(bus_type, bus, channel_id, muted=payload.muted)
    if updated is not None:
        services.coordinator.queue_channel_broadcast(updated)
    return web.Response(status=204)


async def post_solo(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    channel_id = _channel_id(request, services)
    bus_type, _bus = parse_bus(request.query, services.config.aux_bus_ids)
    if bus_type != BusType.MASTER:
        raise _error(web.HTTPBadRequest, "Solo only supported for main mix")
    payload = await _parse_body(request, SoloRequest, "Invalid solo payload")
    _require_connected(services.mixer)

    services.mixer.set_solo(channel_id, payload.solo)
    updated = services.state.update_channel(BusType.MASTER, 0, channel_id, solo=payload.solo)
    if updated is not None:
        services.coordinator.queue_channel_broadcast(updated)
    return web.Response(status=204)


# ----------------------------------------------------------------------
# WebSocket
# ----------------------------------------------------------------------


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    services = request.app[SERVICES_KEY]
    ws = web.WebSocketResponse(heartbeat=20)
    await ws.prepare(request)

    try:
        await services.registry.connect(ws, services.state.get_state())
        # Clients only listen; commands go through the HTTP routes.
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                _logger.debug("WebSocket closed with error: %s", ws.exception())
                break
    finally:
        services.registry.remove(ws)
    return ws


# ----------------------------------------------------------------------
# Application lifecycle
# ----------------------------------------------------------------------


async def _on_startup(app: web.Application) -> None:
    services = app[SERVICES_KEY]
    await services.layout.load()
    services.coordinator.start()
    services.unsubscribe = services.mixer.on_update(services.coordinator.dispatch)


async def _on_shutdown(app: web.Application) -> None:
    services = app[SERVICES_KEY]
    if services.unsubscribe is not None:
        services.unsubscribe()
        services.unsubscribe = None
    # Pending channel broadcasts go out before the sockets close.
    await services.coordinator.stop()
    await services.registry.close()


def create_app(
    config: MixSyncConfig,
    mixer: MixerClient,
    *,
    state: StateStore | None = None,
    layout: LayoutStore | None = None,
    registry: ClientRegistry | None = None,
) -> web.Application:
    """Build the application around a mixer client.

    The layout is loaded on startup; stores may be injected for tests.
    """
    if state is None:
        state = StateStore(config.host or DEFAULT_HOST_LABEL, config.channel_ids, config.aux_bus_ids)
    if layout is None:
        layout = create_layout_store(config, config.host)
    if registry is None:
        registry = ClientRegistry()
    coordinator = MixerCoordinator(state=state, registry=registry, mixer=mixer)

    app = web.Application(middlewares=[error_middleware])
    app[SERVICES_KEY] = Services(
        config=config,
        mixer=mixer,
        state=state,
        layout=layout,
        registry=registry,
        coordinator=coordinator,
    )
    app.add_routes(
        [
            web.get("/api/state", get_state),
            web.get("/api/layout", get_layout),
            web.put("/api/layout", put_layout),
            web.post("/api/connect", post_connect),
            web.post("/api/channels/{id}/fader", post_fader),
            web.post("/api/channels/{id}/gain", post_gain),
            web.post("/api/channels/{id}/mute", post_mute),
            web.post("/api/channels/{id}/solo", post_solo),
            web.get("/ws", websocket_handler),
        ]
    )
    app.on_startup.append(_on_startup)
    app.on_shutdown.append(_on_shutdown)
    return app


def run(config: MixSyncConfig, mixer: MixerClient) -> None:
    """Serve the application until interrupted."""
    web.run_app(create_app(config, mixer), host=config.listen_host, port=config.port)

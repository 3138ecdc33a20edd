"""Server configuration for pymixsync."""

from __future__ import annotations

import dataclasses
import os
import re
from pathlib import Path
from typing import Any

from pymixsync._constants import (
    DEFAULT_AUX_BUS_IDS,
    DEFAULT_CHANNEL_IDS,
    DEFAULT_PORT,
    LEGACY_LAYOUT_FILENAME,
    MAX_AUX_BUS,
    MAX_CHANNEL,
)
from pymixsync.exceptions import MixSyncConfigError

_RANGE_PATTERN = re.compile(r"^(\d+)-(\d+)$")
_SINGLE_PATTERN = re.compile(r"^\d+$")


def parse_id_list(
    value: str | None,
    *,
    maximum: int,
    default: tuple[int, ...],
    kind: str = "Channel",
) -> tuple[int, ...]:
    """Parse a comma-separated list of ids and inclusive ranges.

    ``"1-4, 8,12"`` yields ``(1, 2, 3, 4, 8, 12)``. Ranges may be given in
    either direction. The result is sorted and deduplicated; an empty or
    blank input yields *default*.

    Raises :class:`MixSyncConfigError` for ids outside ``1..maximum`` or
    for parts that are neither a number nor a range.
    """
    if value is None or not value.strip():
        return default

    ids: set[int] = set()
    for part in (chunk.strip() for chunk in value.split(",")):
        if not part:
            continue

        if _SINGLE_PATTERN.match(part):
            number = int(part)
            if not 1 <= number <= maximum:
                raise MixSyncConfigError(f"{kind} {number} out of range (1-{maximum}).")
            ids.add(number)
            continue

        match = _RANGE_PATTERN.match(part)
        if match is None:
            raise MixSyncConfigError(f'Invalid {kind.lower()} range: "{part}".')
        start, end = int(match.group(1)), int(match.group(2))
        if not (1 <= start <= maximum and 1 <= end <= maximum):
            raise MixSyncConfigError(f'Invalid {kind.lower()} range: "{part}".')
        low, high = (start, end) if start <= end else (end, start)
        ids.update(range(low, high + 1))

    if not ids:
        return default
    return tuple(sorted(ids))


def parse_channel_list(value: str | None) -> tuple[int, ...]:
    """Parse ``UI24R_CHANNELS`` (defaults to channels 1-24)."""
    return parse_id_list(value, maximum=MAX_CHANNEL, default=DEFAULT_CHANNEL_IDS)


def parse_aux_bus_list(value: str | None) -> tuple[int, ...]:
    """Parse ``MIXSYNC_AUX_BUSES`` (defaults to aux buses 1-10)."""
    return parse_id_list(value, maximum=MAX_AUX_BUS, default=DEFAULT_AUX_BUS_IDS, kind="Aux bus")


def _clean_host(value: str | None) -> str | None:
    if value is None:
        return None
    host = value.strip()
    return host or None


@dataclasses.dataclass(frozen=True)
class MixSyncConfig:
    """Server configuration.

    Parameters
    ----------
    host : str or None
        Mixer address (IP or hostname, optionally with port). ``None``
        until the operator configures one.
    channel_ids : tuple[int, ...]
        Channel universe mirrored from the mixer. Fixed for the process
        lifetime.
    aux_bus_ids : tuple[int, ...]
        Aux bus universe. Fixed for the process lifetime.
    data_dir : Path
        Directory holding the persisted layout files.
    listen_host : str
        Interface the HTTP server binds to.
    port : int
        HTTP server port.
    """

    host: str | None = None
    channel_ids: tuple[int, ...] = DEFAULT_CHANNEL_IDS
    aux_bus_ids: tuple[int, ...] = DEFAULT_AUX_BUS_IDS
    data_dir: Path = dataclasses.field(default_factory=lambda: Path("data"))
    listen_host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    @property
    def legacy_layout_path(self) -> Path:
        """Shared layout file used to seed per-host layouts."""
        return self.data_dir / LEGACY_LAYOUT_FILENAME

    @classmethod
    def from_env(cls, **overrides: Any) -> MixSyncConfig:
        """Create configuration from environment variables.

        Reads ``UI24R_HOST``, ``UI24R_CHANNELS``, ``MIXSYNC_AUX_BUSES``,
        ``MIXSYNC_DATA_DIR``, ``MIXSYNC_LISTEN_HOST`` and ``PORT``.
        Explicit keyword arguments override environment values.

        Raises
        ------
        MixSyncConfigError
            If a channel/bus list or the port is malformed.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {
            "host": _clean_host(env.get("UI24R_HOST")),
            "channel_ids": parse_channel_list(env.get("UI24R_CHANNELS")),
            "aux_bus_ids": parse_aux_bus_list(env.get("MIXSYNC_AUX_BUSES")),
        }

        data_dir = env.get("MIXSYNC_DATA_DIR")
        if data_dir is not None and data_dir.strip():
            config_kwargs["data_dir"] = Path(data_dir.strip())

        listen_host = env.get("MIXSYNC_LISTEN_HOST")
        if listen_host is not None and listen_host.strip():
            config_kwargs["listen_host"] = listen_host.strip()

        port_env = env.get("PORT")
        if port_env is not None and "port" not in overrides:
            try:
                config_kwargs["port"] = int(port_env)
            except ValueError as exc:
                raise MixSyncConfigError(f"Invalid PORT: {port_env!r}") from exc

        config_kwargs.update(overrides)
        return cls(**config_kwargs)

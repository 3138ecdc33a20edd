"""pymixsync - Mirror a digital mixer's state to browser clients."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pymixsync")
except PackageNotFoundError:
    __version__ = "0+local"
from pymixsync.broadcast import ClientRegistry
from pymixsync.config import MixSyncConfig
from pymixsync.exceptions import (
    LayoutPersistenceError,
    MixerNotConnectedError,
    MixSyncConfigError,
    MixSyncError,
)
from pymixsync.ingestion.mixer import MixerClient, MixerCoordinator
from pymixsync.layout.store import LayoutStore
from pymixsync.models import (
    AppState,
    AuxBusState,
    BusType,
    ChannelState,
    ConnectionStatus,
    LayoutDocument,
    LayoutSection,
)
from pymixsync.server import create_app
from pymixsync.state.store import StateStore

__all__ = [
    "__version__",
    "AppState",
    "AuxBusState",
    "BusType",
    "ChannelState",
    "ClientRegistry",
    "ConnectionStatus",
    "LayoutDocument",
    "LayoutPersistenceError",
    "LayoutSection",
    "LayoutStore",
    "MixSyncConfig",
    "MixSyncConfigError",
    "MixSyncError",
    "MixerClient",
    "MixerCoordinator",
    "MixerNotConnectedError",
    "StateStore",
    "create_app",
]

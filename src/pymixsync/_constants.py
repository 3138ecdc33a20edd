"""Internal constants shared across the library."""

MAX_CHANNEL = 24
DEFAULT_CHANNEL_IDS: tuple[int, ...] = tuple(range(1, MAX_CHANNEL + 1))

MAX_AUX_BUS = 10
DEFAULT_AUX_BUS_IDS: tuple[int, ...] = tuple(range(1, MAX_AUX_BUS + 1))

DEFAULT_HOST_LABEL = "Not configured"
DEFAULT_PORT = 3001

# ------------------------------------------------------------------
# Layout document
# ------------------------------------------------------------------

LAYOUT_VERSION = 2
LEGACY_LAYOUT_FILENAME = "layout.json"

FAVORITES_ID = "favorites"
FAVORITES_NAME = "My Channels"
OTHERS_ID = "others"
OTHERS_NAME = "Other"

# Sections are visible unless told otherwise; group settings stay off
# until a client switches them on. Keep these two defaults separate.
SECTION_ENABLED_DEFAULT = True
SETTINGS_ENABLED_DEFAULT = False


def channel_label(channel_id: int) -> str:
    """Display label for a channel strip (``CH 3``)."""
    return f"CH {channel_id}"


def aux_bus_label(bus_id: int) -> str:
    """Default display name for an aux bus (``AUX 2``)."""
    return f"AUX {bus_id}"

"""Layout persistence and normalization."""

from pymixsync.layout.normalize import (
    normalize_global_groups,
    normalize_sections,
    normalize_settings,
    normalize_view_settings,
)
from pymixsync.layout.store import LayoutStore, layout_path_for_host, sanitize_host

__all__ = [
    "LayoutStore",
    "layout_path_for_host",
    "normalize_global_groups",
    "normalize_sections",
    "normalize_settings",
    "normalize_view_settings",
    "sanitize_host",
]

"""Custom exception hierarchy for pymixsync."""

from __future__ import annotations


class MixSyncError(Exception):
    """Base exception for all pymixsync errors."""


class MixSyncConfigError(MixSyncError):
    """Invalid or missing configuration."""


class LayoutPersistenceError(MixSyncError):
    """A layout file could not be read, parsed, or written."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class MixerNotConnectedError(MixSyncError):
    """A command targeted the mixer while the hardware link was down."""

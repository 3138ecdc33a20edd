"""Base model shared by every pymixsync model.

Every model inherits from :class:`MixSyncBaseModel` which provides:

* ``alias_generator=to_camel`` so Python fields stay snake_case while the
  layout file, HTTP bodies and WebSocket messages use camelCase keys.
* ``populate_by_name=True`` so internal callers can construct models
  with snake_case keyword arguments.
* Frozen instances: stores hand out models freely without sharing
  mutable state with callers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class MixSyncBaseModel(BaseModel):
    """Base for pymixsync data models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

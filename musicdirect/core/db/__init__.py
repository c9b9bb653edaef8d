"""
Internal DB subpackage for MusicDirect.

Splits persistence into focused units (models, schema/migrations, and query
groups) while keeping `StoreDb` as the single public interface that the rest
of the codebase imports.

External code should import `StoreDb` from `musicdirect.core.store`.
"""

from __future__ import annotations

# Models / DTOs
from .models import PlaylistEntry, RoomRow, SettingsRow

# Schema / migrations
from .schema import ensure_schema, migrate

__all__ = [
    # models
    "PlaylistEntry",
    "RoomRow",
    "SettingsRow",
    # schema
    "ensure_schema",
    "migrate",
]

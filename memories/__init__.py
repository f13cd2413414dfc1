"""Memory calendar feature package (public API, viewer and admin editor)."""

from .routes import (
    create_memories_admin_blueprint,
    memories_api_blueprint,
    memories_viewer_blueprint,
)

__all__ = [
    "create_memories_admin_blueprint",
    "memories_api_blueprint",
    "memories_viewer_blueprint",
]

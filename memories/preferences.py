"""Recently used editor colours, persisted through an injected storage backend."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from flask import current_app
from sqlalchemy import select

from extensions import db
from memories.models import EditorPreference
from memories.rendering import clean_style_value

RECENT_COLOR_CATEGORIES = ("text", "background")
MAX_RECENT_COLORS = 8
RECENT_COLORS_KEY = "recent_colors:{category}"

# Formatting field -> recent colour category it feeds.
COLOR_FIELD_CATEGORIES = {"color": "text", "backgroundColor": "background"}


class PreferenceStorage(Protocol):
    """Read/write interface for editor preference lists."""

    def read(self, key: str) -> List[str]:
        ...

    def write(self, key: str, values: Sequence[str]) -> None:
        ...


class InMemoryPreferenceStorage:
    """Process-local storage, handy for tests and single-shot scripts."""

    def __init__(self, initial: Optional[Dict[str, List[str]]] = None):
        self._values: Dict[str, List[str]] = {
            key: list(values) for key, values in (initial or {}).items()
        }

    def read(self, key: str) -> List[str]:
        return list(self._values.get(key, []))

    def write(self, key: str, values: Sequence[str]) -> None:
        self._values[key] = list(values)


class SqlPreferenceStorage:
    """Stores each preference list as JSON text in the editor_preferences table."""

    def read(self, key: str) -> List[str]:
        row = db.session.execute(
            select(EditorPreference).where(EditorPreference.key == key)
        ).scalar_one_or_none()
        if row is None:
            return []
        try:
            values = json.loads(row.value or "[]")
        except ValueError as exc:
            current_app.logger.warning("Ignoring unreadable preference %s: %s", key, exc)
            return []
        if not isinstance(values, list):
            return []
        return [value for value in values if isinstance(value, str)]

    def write(self, key: str, values: Sequence[str]) -> None:
        row = db.session.execute(
            select(EditorPreference).where(EditorPreference.key == key)
        ).scalar_one_or_none()
        if row is None:
            row = EditorPreference(key=key)
            db.session.add(row)
        row.value = json.dumps(list(values))
        try:
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            current_app.logger.error("Preference write failed for %s: %s", key, exc)
            raise


class RecentColors:
    """Most-recent-first colour history per category, capped and de-duplicated."""

    def __init__(self, storage: PreferenceStorage, limit: int = MAX_RECENT_COLORS):
        self.storage = storage
        self.limit = limit

    def get(self, category: str) -> List[str]:
        return self.storage.read(self._key(category))[: self.limit]

    def add(self, category: str, color: str) -> List[str]:
        key = self._key(category)
        cleaned = clean_style_value("color", color)
        if not cleaned:
            raise ValueError(f"Unsupported colour value: {color!r}.")
        recent = [value for value in self.storage.read(key) if value != cleaned]
        updated = [cleaned, *recent][: self.limit]
        self.storage.write(key, updated)
        return updated

    def remember_formatting(self, formatting: Mapping[str, Any]) -> None:
        """Push any colour fields of saved formatting onto their recent lists."""
        for field_name, category in COLOR_FIELD_CATEGORIES.items():
            value = formatting.get(field_name)
            if value:
                self.add(category, value)

    @staticmethod
    def _key(category: str) -> str:
        if category not in RECENT_COLOR_CATEGORIES:
            raise ValueError(
                f"Colour category must be one of: {', '.join(RECENT_COLOR_CATEGORIES)}."
            )
        return RECENT_COLORS_KEY.format(category=category)

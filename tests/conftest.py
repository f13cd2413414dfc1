from __future__ import annotations

import json
from datetime import date
from typing import Iterator, Optional

import pytest

from app import create_app
from extensions import db
from memories.models import Memory, MemoryBlock

PAST = date(2000, 1, 1)
FUTURE = date(3000, 1, 1)
ADMIN_PASSWORD = "letmein"


@pytest.fixture
def app(tmp_path):
    """App bound to a throwaway SQLite file so every test starts empty."""
    db_path = tmp_path / "memories-test.db"
    application = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "MEMORIES_TOTAL_DAYS": 25,
            "MEMORIES_TIMEZONE": "UTC",
            "ADMIN_PASSWORD": ADMIN_PASSWORD,
        }
    )
    yield application
    with application.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def app_ctx(app) -> Iterator[None]:
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    test_client = app.test_client()
    response = test_client.post("/admin/login", data={"password": ADMIN_PASSWORD})
    assert response.status_code == 302
    return test_client


@pytest.fixture
def make_memory(app):
    """Insert a memory row directly; block formatting may be a dict or raw text."""

    def _make(
        day: int,
        release_date: date = PAST,
        blocks: Optional[list] = None,
        display_settings=None,
    ) -> int:
        with app.app_context():
            if isinstance(display_settings, dict):
                display_settings = json.dumps(display_settings)
            memory = Memory(
                day_number=day,
                release_date=release_date,
                display_settings=display_settings,
            )
            for index, block in enumerate(blocks or []):
                formatting = block.get("formatting")
                if isinstance(formatting, dict):
                    formatting = json.dumps(formatting)
                memory.blocks.append(
                    MemoryBlock(
                        block_type=block.get("block_type"),
                        content=block.get("content", ""),
                        formatting=formatting,
                        sort_order=block.get("sort_order", index),
                    )
                )
            db.session.add(memory)
            db.session.commit()
            return memory.id

    return _make

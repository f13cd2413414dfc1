"""HTTP-level tests for GET /api/memories and GET /api/memories/<day>."""

from __future__ import annotations

from datetime import date

import pytest

import memories.routes as routes_mod
from tests.conftest import FUTURE, PAST


def test_locked_day_returns_403_without_content(client, make_memory):
    make_memory(5, release_date=FUTURE, blocks=[{"block_type": "title", "content": "Surprise!"}])
    response = client.get("/api/memories/5")
    assert response.status_code == 403
    assert response.get_json() == {"error": "Memory not yet unlocked"}
    assert b"Surprise" not in response.data


def test_preview_returns_locked_day(client, make_memory):
    make_memory(
        5,
        release_date=FUTURE,
        display_settings={"titleFontSize": "4rem"},
        blocks=[{"block_type": "title", "content": "Surprise!", "formatting": {"color": "#000"}}],
    )
    response = client.get("/api/memories/5?preview=true")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["day_number"] == 5
    assert payload["release_date"] == "3000-01-01"
    assert payload["display_settings"] == {"titleFontSize": "4rem"}
    assert payload["blocks"][0]["content"] == "Surprise!"
    assert payload["blocks"][0]["formatting"] == {"color": "#000"}


def test_preview_flag_must_be_literal_true(client, make_memory):
    make_memory(5, release_date=FUTURE)
    assert client.get("/api/memories/5?preview=1").status_code == 403
    assert client.get("/api/memories/5?preview=TRUE").status_code == 403


def test_released_day_returns_content(client, make_memory):
    make_memory(
        1,
        release_date=PAST,
        blocks=[
            {"block_type": "paragraph", "content": "b", "sort_order": 2},
            {"block_type": "title", "content": "a", "sort_order": 1},
        ],
    )
    response = client.get("/api/memories/1")
    assert response.status_code == 200
    blocks = response.get_json()["blocks"]
    assert [block["content"] for block in blocks] == ["a", "b"]
    assert all(isinstance(block["id"], str) for block in blocks)


def test_unknown_day_returns_404(client):
    response = client.get("/api/memories/999")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Memory not found"}


def test_empty_memory_returns_empty_block_list(client, make_memory):
    make_memory(3, release_date=PAST)
    response = client.get("/api/memories/3")
    assert response.status_code == 200
    assert response.get_json()["blocks"] == []


@pytest.mark.parametrize("day", ["tomorrow", "-1", "1.5"])
def test_non_numeric_or_negative_day_is_not_found(client, day):
    response = client.get(f"/api/memories/{day}")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Memory not found"}


def test_unexpected_failure_hides_the_cause(client, monkeypatch):
    def explode(day, preview=False):
        raise RuntimeError("password=hunter2 connection refused")

    monkeypatch.setattr(routes_mod, "get_memory", explode)
    response = client.get("/api/memories/1")
    assert response.status_code == 500
    assert response.get_json() == {"error": "An unexpected error occurred"}
    assert b"hunter2" not in response.data


def test_calendar_listing_has_no_content(client, make_memory, monkeypatch):
    make_memory(1, release_date=date(2025, 12, 1), blocks=[{"block_type": "title", "content": "hidden"}])
    monkeypatch.setattr("memories.service.calendar_today", lambda: date(2025, 11, 30))
    response = client.get("/api/memories")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["total_days"] == 25
    assert payload["days"][0]["exists"] is True
    assert payload["days"][0]["is_unlocked"] is False
    assert b"hidden" not in response.data

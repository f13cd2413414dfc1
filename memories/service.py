"""Load, gate and edit calendar memories stored in the relational database."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser
from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.orm import joinedload

from extensions import db
from memories.editor import normalize_block, normalize_display_settings
from memories.models import Memory, MemoryBlock

DEFAULT_TOTAL_DAYS = 25
DEFAULT_TIMEZONE = "UTC"
MOVE_DIRECTIONS = ("up", "down")

logger = logging.getLogger(__name__)


class MemoryLookupError(Exception):
    """Base for lookups that end in a caller-visible message and HTTP status."""

    message = "Memory lookup failed"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class MemoryNotFoundError(MemoryLookupError):
    message = "Memory not found"
    status_code = 404


class MemoryLockedError(MemoryLookupError):
    message = "Memory not yet unlocked"
    status_code = 403


class BlockNotFoundError(MemoryLookupError):
    message = "Block not found"
    status_code = 404


class DuplicateMemoryError(MemoryLookupError):
    message = "A memory already exists for that day"
    status_code = 409


class MemorySaveError(RuntimeError):
    """Raised when a write could not be committed; the session is rolled back."""


@dataclass
class BlockView:
    id: str
    block_type: str
    content: str
    formatting: Dict[str, Any] = field(default_factory=dict)
    sort_order: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "block_type": self.block_type,
            "content": self.content,
            "formatting": self.formatting,
            "sort_order": self.sort_order,
        }


@dataclass
class MemoryPage:
    """A memory with parsed settings and its blocks in display order."""

    day_number: int
    release_date: date
    display_settings: Dict[str, Any] = field(default_factory=dict)
    blocks: List[BlockView] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "day_number": self.day_number,
            "release_date": self.release_date.isoformat(),
            "display_settings": self.display_settings,
            "blocks": [block.to_dict() for block in self.blocks],
        }


def get_memory(day: int, preview: bool = False, today: Optional[date] = None) -> MemoryPage:
    """Return the assembled page for ``day``; locked days raise unless ``preview`` is set."""
    memory = _load_memory_with_blocks(day)
    if memory is None:
        raise MemoryNotFoundError()

    if not preview:
        reference = today if today is not None else calendar_today()
        if not is_released(memory.release_date, reference):
            raise MemoryLockedError()

    return _build_page(memory)


def is_released(release_date: Any, today: Any) -> bool:
    """Compare calendar days only: a memory opens on its release date, not before."""
    return coerce_date(release_date) <= coerce_date(today)


def calendar_today() -> date:
    """Today's date in the configured calendar timezone (UTC by default)."""
    tz_name = DEFAULT_TIMEZONE
    if has_app_context():
        tz_name = current_app.config.get("MEMORIES_TIMEZONE") or DEFAULT_TIMEZONE
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        _log_warning("Unknown MEMORIES_TIMEZONE %r; falling back to UTC.", tz_name)
        tz = timezone.utc
    return datetime.now(tz).date()


def total_days() -> int:
    if not has_app_context():
        return DEFAULT_TOTAL_DAYS
    try:
        return max(1, int(current_app.config.get("MEMORIES_TOTAL_DAYS", DEFAULT_TOTAL_DAYS)))
    except (TypeError, ValueError):
        return DEFAULT_TOTAL_DAYS


def list_calendar(today: Optional[date] = None) -> List[dict]:
    """One entry per calendar day with its release date and lock state, never content."""
    reference = today if today is not None else calendar_today()
    rows = db.session.execute(select(Memory.day_number, Memory.release_date)).all()
    release_by_day = {day_number: release_date for day_number, release_date in rows}

    entries: List[dict] = []
    for day in range(1, total_days() + 1):
        release_date = release_by_day.get(day)
        exists = release_date is not None
        entries.append(
            {
                "day_number": day,
                "release_date": coerce_date(release_date).isoformat() if exists else None,
                "exists": exists,
                "is_unlocked": exists and is_released(release_date, reference),
            }
        )
    return entries


def parse_json_mapping(raw: Any, context: str) -> Dict[str, Any]:
    """Decode a JSON object column; anything unusable degrades to an empty mapping."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as exc:
        _log_warning("Could not parse %s JSON (%s); raw value: %r", context, exc, raw)
        return {}
    if not isinstance(value, dict):
        _log_warning("Ignoring %s JSON that is not an object: %r", context, raw)
        return {}
    return value


def dump_json_mapping(value: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not value:
        return None
    return json.dumps(dict(value), sort_keys=True)


# ----- Editor writes -----


def get_memory_record(day: int) -> Memory:
    """Fetch the ORM row for editing, ignoring the release gate."""
    memory = _load_memory_with_blocks(day)
    if memory is None:
        raise MemoryNotFoundError()
    return memory


def list_memory_records() -> List[Memory]:
    return list(db.session.execute(select(Memory).order_by(Memory.day_number.asc())).scalars())


def create_memory(
    day_number: int,
    release_date: Any,
    display_settings: Optional[Mapping[str, Any]] = None,
    blocks: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Memory:
    """Insert a memory and its blocks in one commit."""
    existing = db.session.execute(
        select(Memory.id).where(Memory.day_number == day_number)
    ).first()
    if existing:
        raise DuplicateMemoryError()
    memory = Memory(
        day_number=day_number,
        release_date=coerce_date(release_date),
        display_settings=dump_json_mapping(display_settings),
    )
    _set_blocks(memory, blocks or [])
    db.session.add(memory)
    _commit_or_raise(f"creating memory for day {day_number}")
    return memory


def update_memory(
    day: int,
    release_date: Any = None,
    display_settings: Optional[Mapping[str, Any]] = None,
    blocks: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Memory:
    """Update the memory row; a non-None ``blocks`` replaces the block list in the same commit."""
    memory = get_memory_record(day)
    if release_date is not None:
        memory.release_date = coerce_date(release_date)
    if display_settings is not None:
        memory.display_settings = dump_json_mapping(display_settings)
    if blocks is not None:
        _set_blocks(memory, blocks)
    _commit_or_raise(f"updating memory for day {day}")
    return memory


def delete_memory(day: int) -> None:
    memory = get_memory_record(day)
    db.session.delete(memory)
    _commit_or_raise(f"deleting memory for day {day}")


def replace_blocks(day: int, blocks: Iterable[Mapping[str, Any]]) -> List[MemoryBlock]:
    """Swap the whole block list for ``blocks``; sort order follows list position."""
    memory = get_memory_record(day)
    _set_blocks(memory, blocks)
    _commit_or_raise(f"replacing blocks for day {day}")
    return list(memory.blocks)


def add_block(day: int, payload: Mapping[str, Any]) -> MemoryBlock:
    memory = get_memory_record(day)
    next_order = max((block.sort_order for block in memory.blocks), default=-1) + 1
    block = _new_block(payload, sort_order=next_order)
    memory.blocks.append(block)
    _commit_or_raise(f"adding a block to day {day}")
    return block


def update_block(block_id: int, payload: Mapping[str, Any]) -> MemoryBlock:
    """Apply the keys present in ``payload`` (block_type, content, formatting)."""
    block = get_block(block_id)
    if "block_type" in payload:
        block.block_type = payload["block_type"]
    if "content" in payload:
        block.content = payload["content"] or ""
    if "formatting" in payload:
        block.formatting = dump_json_mapping(payload["formatting"])
    _commit_or_raise(f"updating block {block_id}")
    return block


def delete_block(block_id: int) -> None:
    block = get_block(block_id)
    db.session.delete(block)
    _commit_or_raise(f"deleting block {block_id}")


def move_block(block_id: int, direction: str) -> List[MemoryBlock]:
    """Swap a block with its neighbour; moving past either end is a no-op."""
    if direction not in MOVE_DIRECTIONS:
        raise ValueError(f"Direction must be one of: {', '.join(MOVE_DIRECTIONS)}.")
    block = get_block(block_id)
    siblings = sorted(block.memory.blocks, key=lambda item: (item.sort_order, item.id))
    index = siblings.index(block)
    target = index - 1 if direction == "up" else index + 1
    if 0 <= target < len(siblings):
        siblings[index], siblings[target] = siblings[target], siblings[index]
        # Renumber so ties in sort_order cannot survive a move.
        for position, sibling in enumerate(siblings):
            sibling.sort_order = position
        _commit_or_raise(f"moving block {block_id} {direction}")
    return siblings


def import_memories(entries: Iterable[Mapping[str, Any]]) -> int:
    """Create or overwrite memories from seed entries; returns how many were written."""
    written = 0
    for entry in entries:
        try:
            day_number = int(entry["day_number"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Seed entry is missing a numeric day_number: {entry!r}") from exc
        if not 1 <= day_number <= total_days():
            raise ValueError(f"Day {day_number} is outside 1..{total_days()}.")
        release_date = coerce_date(entry.get("release_date"))

        settings, errors = normalize_display_settings(entry.get("display_settings"))
        blocks = []
        for raw_block in entry.get("blocks") or []:
            payload, block_errors = normalize_block(raw_block)
            errors.extend(block_errors)
            blocks.append(payload)
        if errors:
            raise ValueError(f"Day {day_number}: " + "; ".join(errors))

        memory = db.session.execute(
            select(Memory).where(Memory.day_number == day_number)
        ).scalar_one_or_none()
        if memory is None:
            memory = Memory(day_number=day_number)
            db.session.add(memory)
        memory.release_date = release_date
        memory.display_settings = dump_json_mapping(settings)
        _set_blocks(memory, blocks)
        written += 1

    _commit_or_raise("importing memories")
    return written


# ----- Internal helpers -----


def _load_memory_with_blocks(day: int) -> Optional[Memory]:
    # One round trip: the outer join pulls the blocks in sort order with the parent row.
    statement = (
        select(Memory)
        .options(joinedload(Memory.blocks))
        .where(Memory.day_number == day)
    )
    return db.session.execute(statement).unique().scalar_one_or_none()


def _build_page(memory: Memory) -> MemoryPage:
    blocks = [
        BlockView(
            id=str(block.id) if block.id is not None else _generate_block_id(),
            block_type=block.block_type,
            content=block.content or "",
            formatting=parse_json_mapping(block.formatting, f"formatting for block {block.id}"),
            sort_order=block.sort_order or 0,
        )
        for block in memory.blocks
        if block.block_type
    ]
    return MemoryPage(
        day_number=memory.day_number,
        release_date=coerce_date(memory.release_date),
        display_settings=parse_json_mapping(
            memory.display_settings, f"display settings for day {memory.day_number}"
        ),
        blocks=blocks,
    )


def _set_blocks(memory: Memory, blocks: Iterable[Mapping[str, Any]]) -> None:
    memory.blocks.clear()
    for index, payload in enumerate(blocks):
        memory.blocks.append(_new_block(payload, sort_order=index))


def _new_block(payload: Mapping[str, Any], sort_order: int) -> MemoryBlock:
    return MemoryBlock(
        block_type=payload.get("block_type"),
        content=payload.get("content") or "",
        formatting=dump_json_mapping(payload.get("formatting")),
        sort_order=sort_order,
    )


def get_block(block_id: int) -> MemoryBlock:
    block = db.session.get(MemoryBlock, block_id)
    if block is None:
        raise BlockNotFoundError()
    return block


def _generate_block_id() -> str:
    return uuid.uuid4().hex[:9]


def coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date_parser.isoparse(value.strip()).date()
        except ValueError as exc:
            raise ValueError(f"Invalid date: {value!r}") from exc
    raise ValueError(f"Invalid date: {value!r}")


def _commit_or_raise(context_message: str) -> None:
    try:
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        _log_error("Memories error while %s: %s", context_message, exc)
        raise MemorySaveError(f"Could not save changes while {context_message}.") from exc


def _log_warning(message: str, *args: Any) -> None:
    if has_app_context():
        current_app.logger.warning(message, *args)
    else:
        logger.warning(message, *args)


def _log_error(message: str, *args: Any) -> None:
    if has_app_context():
        current_app.logger.error(message, *args)
    else:
        logger.error(message, *args)

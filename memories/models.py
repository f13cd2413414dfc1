"""Database models for the memory calendar; JSON columns are stored as text."""

from __future__ import annotations

from sqlalchemy import func

from extensions import db


class MemoryBlock(db.Model):
    """One ordered content unit (title, paragraph, media, quote, highlight) of a memory."""

    __tablename__ = "memory_blocks"

    id = db.Column(db.Integer, primary_key=True)
    memory_id = db.Column(
        db.Integer,
        db.ForeignKey("memories.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    block_type = db.Column(db.String(20), nullable=True)
    content = db.Column(db.Text, nullable=False, default="")
    formatting = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    memory = db.relationship("Memory", back_populates="blocks")

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<MemoryBlock id={self.id} type={self.block_type!r} order={self.sort_order}>"


class Memory(db.Model):
    """One calendar day's page, hidden from viewers until its release date."""

    __tablename__ = "memories"

    id = db.Column(db.Integer, primary_key=True)
    day_number = db.Column(db.Integer, unique=True, nullable=False)
    release_date = db.Column(db.Date, nullable=False)
    display_settings = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    blocks = db.relationship(
        MemoryBlock,
        back_populates="memory",
        order_by=[MemoryBlock.sort_order.asc(), MemoryBlock.id.asc()],
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<Memory day={self.day_number} release={self.release_date}>"


class EditorPreference(db.Model):
    """Operator preference persisted outside the browser (e.g. recently used colours)."""

    __tablename__ = "editor_preferences"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=False, default="[]")
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

"""Book content rows shared by persistence and the template codec."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

ChapterNumbering = Literal["per-book", "per-part"]
CardScope = Literal["book", "part", "chapter"]


@dataclass(frozen=True)
class Book:
    """A manuscript owned by exactly one user."""

    book_id: str
    owner_id: str
    title: str
    description: str | None
    chapter_numbering: str | None
    created_at_utc: str
    updated_at_utc: str


@dataclass(frozen=True)
class Part:
    part_id: str
    book_id: str
    title: str
    sort_order: int
    notes: str | None = None


@dataclass(frozen=True)
class Chapter:
    """A chapter, optionally grouped under a part, with its outline fields."""

    chapter_id: str
    book_id: str
    title: str
    sort_order: int
    part_id: str | None = None
    content: str = ""
    outline: str | None = None
    outline_pov: str | None = None
    outline_purpose: str | None = None
    outline_estimate: int | None = None
    outline_goal: str | None = None
    outline_conflict: str | None = None
    outline_stakes: str | None = None
    custom_outline_fields: dict[str, Any] | None = None
    word_count: int = 0
    last_edited: str | None = None


@dataclass(frozen=True)
class Theme:
    """A row of the theme-by-chapter presence grid."""

    theme_id: str
    book_id: str
    name: str
    color: str
    row_order: int
    kind: str | None = None
    source: str | None = None
    mode: str | None = None
    source_ref_id: str | None = None
    description: str | None = None
    ai_guide: str | None = None
    is_hidden: bool = False
    thread_label: str | None = None


@dataclass(frozen=True)
class Tag:
    tag_id: str
    book_id: str
    name: str
    color: str


@dataclass(frozen=True)
class TagLink:
    """Attachment of a tag to any entity of the same book."""

    tag_link_id: str
    book_id: str
    tag_id: str
    entity_type: str
    entity_id: str


@dataclass(frozen=True)
class Character:
    character_id: str
    book_id: str
    name: str
    color: str
    role: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class CorkboardBoard:
    board_id: str
    book_id: str
    name: str
    sort_order: int
    description: str | None = None


@dataclass(frozen=True)
class CorkboardCard:
    """An index card ordered inside its lane by `lane_rank`."""

    card_id: str
    book_id: str
    title: str
    lane_rank: str
    scope: str = "book"
    board_id: str | None = None
    chapter_id: str | None = None
    part_id: str | None = None
    summary: str | None = None
    notes: str | None = None
    status: str | None = None
    color: str | None = None
    word_estimate: int | None = None
    x: float | None = None
    y: float | None = None

    def lane_key(self) -> LaneKey:
        return LaneKey(
            board_id=self.board_id,
            scope=self.scope,
            part_id=self.part_id,
            chapter_id=self.chapter_id,
        )


@dataclass(frozen=True)
class LaneKey:
    """Cards sharing board, scope, part and chapter form one ordered lane."""

    board_id: str | None
    scope: str = "book"
    part_id: str | None = None
    chapter_id: str | None = None


@dataclass(frozen=True)
class GridCell:
    """Presence of one theme in one chapter."""

    cell_id: str
    book_id: str
    chapter_id: str
    theme_id: str
    presence: bool = False
    intensity: int = 0
    note: str | None = None
    thread_role: str | None = None


@dataclass(frozen=True)
class TagSeed:
    """Tag values for bulk creation."""

    name: str
    color: str


@dataclass(frozen=True)
class CharacterSeed:
    """Character values for bulk creation."""

    name: str
    color: str
    role: str | None = None
    notes: str | None = None


@dataclass
class BookContentCounts:
    """Row counts of every child table for one book."""

    parts: int = 0
    chapters: int = 0
    themes: int = 0
    tags: int = 0
    tag_links: int = 0
    characters: int = 0
    boards: int = 0
    cards: int = 0
    grid_cells: int = 0

    def total(self) -> int:
        return (
            self.parts
            + self.chapters
            + self.themes
            + self.tags
            + self.tag_links
            + self.characters
            + self.boards
            + self.cards
            + self.grid_cells
        )

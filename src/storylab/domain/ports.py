"""Persistence ports consumed by the template codec."""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any, Literal, Protocol

from storylab.domain.models import (
    Book,
    Chapter,
    Character,
    CharacterSeed,
    CorkboardBoard,
    CorkboardCard,
    GridCell,
    Part,
    Tag,
    TagSeed,
    Theme,
)

BookEntity = Literal[
    "grid_cells",
    "corkboard_cards",
    "corkboard_boards",
    "tag_links",
    "tags",
    "characters",
    "chapters",
    "parts",
    "themes",
]

# Children are removed before the rows they reference.
BOOK_CONTENT_DELETE_ORDER: tuple[BookEntity, ...] = (
    "grid_cells",
    "corkboard_cards",
    "corkboard_boards",
    "tag_links",
    "tags",
    "characters",
    "chapters",
    "parts",
    "themes",
)


class BookUnitOfWork(Protocol):
    """Reads and writes scoped to one open transaction."""

    def get_book(self, book_id: str) -> Book | None:
        ...

    def list_parts(self, book_id: str) -> list[Part]:
        ...

    def list_chapters(self, book_id: str) -> list[Chapter]:
        ...

    def list_themes(self, book_id: str) -> list[Theme]:
        ...

    def list_tags(self, book_id: str) -> list[Tag]:
        ...

    def list_characters(self, book_id: str) -> list[Character]:
        ...

    def list_boards(self, book_id: str) -> list[CorkboardBoard]:
        ...

    def list_cards(self, book_id: str) -> list[CorkboardCard]:
        ...

    def list_grid_cells(self, book_id: str) -> list[GridCell]:
        ...

    def delete_for_book(self, entity: BookEntity, book_id: str) -> int:
        ...

    def update_book_description(self, *, book_id: str, description: str | None) -> None:
        ...

    def create_part(
        self, *, book_id: str, title: str, sort_order: int, notes: str | None = None
    ) -> str:
        ...

    def create_chapter(
        self,
        *,
        book_id: str,
        title: str,
        sort_order: int,
        part_id: str | None = None,
        content: str = "",
        outline: str | None = None,
        outline_pov: str | None = None,
        outline_purpose: str | None = None,
        outline_estimate: int | None = None,
        outline_goal: str | None = None,
        outline_conflict: str | None = None,
        outline_stakes: str | None = None,
        custom_outline_fields: dict[str, Any] | None = None,
        word_count: int = 0,
        last_edited: str | None = None,
    ) -> str:
        ...

    def create_theme(
        self,
        *,
        book_id: str,
        name: str,
        color: str,
        row_order: int,
        kind: str | None = None,
        source: str | None = None,
        mode: str | None = None,
        source_ref_id: str | None = None,
        description: str | None = None,
        ai_guide: str | None = None,
        is_hidden: bool = False,
        thread_label: str | None = None,
    ) -> str:
        ...

    def create_tags(self, *, book_id: str, tags: Sequence[TagSeed]) -> int:
        ...

    def create_characters(self, *, book_id: str, characters: Sequence[CharacterSeed]) -> int:
        ...

    def create_board(
        self, *, book_id: str, name: str, sort_order: int, description: str | None = None
    ) -> str:
        ...

    def create_card(
        self,
        *,
        book_id: str,
        title: str,
        lane_rank: str,
        scope: str = "book",
        board_id: str | None = None,
        chapter_id: str | None = None,
        part_id: str | None = None,
        summary: str | None = None,
        notes: str | None = None,
        status: str | None = None,
        color: str | None = None,
        word_estimate: int | None = None,
        x: float | None = None,
        y: float | None = None,
    ) -> str:
        ...

    def create_grid_cell(
        self,
        *,
        book_id: str,
        chapter_id: str,
        theme_id: str,
        presence: bool = False,
        intensity: int = 0,
        note: str | None = None,
        thread_role: str | None = None,
    ) -> str:
        ...


class BookStore(Protocol):
    """Opens all-or-nothing transactions over book content."""

    def transaction(self, *, read_only: bool = False) -> AbstractContextManager[BookUnitOfWork]:
        ...

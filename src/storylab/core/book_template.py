"""Portable book template documents with index-based cross references.

A template mirrors one book's full content tree. Entities never carry
database ids: a chapter points at its part through `partIndex`, a card at its
board, chapter and part through `boardIndex`, `chapterIndex` and `partIndex`,
and a grid cell at its chapter and theme through `chapterIndex` and
`themeIndex`. Each index is a position in the corresponding top-level array,
so a template can be loaded into any database without id collisions.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

TEMPLATE_COLLECTIONS: Final[tuple[str, ...]] = (
    "parts",
    "chapters",
    "themes",
    "characters",
    "tags",
    "boards",
    "cards",
    "gridCells",
)

# SQLite stores INTEGER as a signed 64-bit value.
SQLITE_INT_MIN: Final[int] = -(2**63)
SQLITE_INT_MAX: Final[int] = 2**63 - 1

StoredInt = Annotated[int, Field(ge=SQLITE_INT_MIN, le=SQLITE_INT_MAX)]


class BookTemplateError(RuntimeError):
    """Raised when a template cannot be exported or imported."""


class InvalidTemplateError(BookTemplateError):
    """Raised when a template document fails structural validation."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Invalid template: {path}: {message}")
        self.path = path
        self.message = message


class BookNotFoundError(BookTemplateError):
    """Raised when the referenced book does not exist."""

    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class BookAccessError(BookTemplateError):
    """Raised when the caller does not own the target book."""

    def __init__(self, book_id: str, user_id: str) -> None:
        super().__init__(f"Unauthorized: book {book_id} does not belong to user {user_id}")
        self.book_id = book_id
        self.user_id = user_id


class TemplateModel(BaseModel):
    """Base config: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class BookSection(TemplateModel):
    title: str
    description: str | None = None
    chapter_numbering: str | None = None


class PartTemplate(TemplateModel):
    title: str
    sort_order: StoredInt | None = None
    notes: str | None = None


class ChapterTemplate(TemplateModel):
    title: str
    content: str | None = None
    outline: str | None = None
    outline_pov: str | None = Field(default=None, alias="outlinePOV")
    outline_purpose: str | None = None
    outline_estimate: StoredInt | None = None
    outline_goal: str | None = None
    outline_conflict: str | None = None
    outline_stakes: str | None = None
    custom_outline_fields: dict[str, Any] | None = None
    sort_order: StoredInt | None = None
    word_count: StoredInt | None = None
    last_edited: str | None = None
    part_index: StoredInt | None = None


class ThemeTemplate(TemplateModel):
    name: str
    color: str
    kind: str | None = None
    source: str | None = None
    mode: str | None = None
    source_ref_id: str | None = None
    description: str | None = None
    ai_guide: str | None = None
    row_order: StoredInt | None = None
    is_hidden: bool | None = None
    thread_label: str | None = None


class TagTemplate(TemplateModel):
    name: str
    color: str | None = None


class CharacterTemplate(TemplateModel):
    name: str
    color: str
    role: str | None = None
    notes: str | None = None


class BoardTemplate(TemplateModel):
    name: str
    description: str | None = None
    sort_order: StoredInt | None = None


class CardTemplate(TemplateModel):
    title: str
    summary: str | None = None
    notes: str | None = None
    status: str | None = None
    color: str | None = None
    lane_rank: str | None = None
    word_estimate: StoredInt | None = None
    x: float | None = None
    y: float | None = None
    scope: str | None = None
    board_index: StoredInt | None = None
    chapter_index: StoredInt | None = None
    part_index: StoredInt | None = None


class GridCellTemplate(TemplateModel):
    """Theme presence in a chapter; both indexes must resolve on import."""

    chapter_index: StoredInt | None = None
    theme_index: StoredInt | None = None
    presence: bool | None = None
    intensity: StoredInt | None = None
    note: str | None = None
    thread_role: str | None = None


class BookTemplate(TemplateModel):
    """Self-contained snapshot of one book's content."""

    book: BookSection
    parts: list[PartTemplate] = Field(default_factory=list)
    chapters: list[ChapterTemplate] = Field(default_factory=list)
    themes: list[ThemeTemplate] = Field(default_factory=list)
    tags: list[TagTemplate] = Field(default_factory=list)
    characters: list[CharacterTemplate] = Field(default_factory=list)
    boards: list[BoardTemplate] = Field(default_factory=list)
    cards: list[CardTemplate] = Field(default_factory=list)
    grid_cells: list[GridCellTemplate] = Field(default_factory=list)

    def describes_book_description(self) -> bool:
        """True when the document carries `book.description`, even as null."""
        return "description" in self.book.model_fields_set


def validate_book_template(raw: object) -> BookTemplate:
    """Check document structure, then parse every record.

    Raises `InvalidTemplateError` naming the first offending field path.
    """
    if isinstance(raw, BookTemplate):
        return raw
    if not isinstance(raw, dict):
        raise InvalidTemplateError("template", "must be an object")
    book = raw.get("book")
    if not isinstance(book, dict):
        raise InvalidTemplateError("book", "missing 'book' object")
    if not isinstance(book.get("title"), str):
        raise InvalidTemplateError("book.title", "must be a string")
    for collection in TEMPLATE_COLLECTIONS:
        if collection in raw and not isinstance(raw[collection], list):
            raise InvalidTemplateError(collection, "must be an array")

    try:
        return BookTemplate.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        path = ".".join(str(part) for part in first["loc"]) or "template"
        raise InvalidTemplateError(path, str(first["msg"])) from exc


def dump_book_template(template: BookTemplate) -> dict[str, Any]:
    """Return the JSON-ready wire form of a template."""
    return template.model_dump(mode="json", by_alias=True)


def template_filename(title: str) -> str:
    """Download filename derived from a book title."""
    cleaned = re.sub(r"[^a-zA-Z0-9\s-]", "", title).strip()
    cleaned = re.sub(r"\s+", "_", cleaned)
    return f"{cleaned or 'book'}-template.json"

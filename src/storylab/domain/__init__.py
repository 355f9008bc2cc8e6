"""Domain rows and persistence ports for book content."""

from storylab.domain.models import (
    Book,
    BookContentCounts,
    Chapter,
    Character,
    CharacterSeed,
    CorkboardBoard,
    CorkboardCard,
    GridCell,
    LaneKey,
    Part,
    Tag,
    TagLink,
    TagSeed,
    Theme,
)
from storylab.domain.ports import BOOK_CONTENT_DELETE_ORDER, BookEntity, BookStore, BookUnitOfWork

__all__ = [
    "BOOK_CONTENT_DELETE_ORDER",
    "Book",
    "BookContentCounts",
    "BookEntity",
    "BookStore",
    "BookUnitOfWork",
    "Chapter",
    "Character",
    "CharacterSeed",
    "CorkboardBoard",
    "CorkboardCard",
    "GridCell",
    "LaneKey",
    "Part",
    "Tag",
    "TagLink",
    "TagSeed",
    "Theme",
]

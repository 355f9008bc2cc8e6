from __future__ import annotations

from typing import Any

import pytest

from storylab.core.book_template import (
    BookTemplate,
    InvalidTemplateError,
    dump_book_template,
    template_filename,
    validate_book_template,
)


def _document() -> dict[str, Any]:
    return {
        "book": {
            "title": "Salt Roads",
            "description": "Trade novel",
            "chapterNumbering": "per-book",
        },
        "parts": [{"title": "Departure", "sortOrder": 0}],
        "chapters": [
            {
                "title": "Harbor",
                "content": "The ships left.",
                "outlinePOV": "Mara",
                "customOutlineFields": {"weather": "fog"},
                "wordCount": 3,
                "partIndex": 0,
            }
        ],
        "themes": [{"name": "Greed", "color": "#ff0000", "isHidden": False}],
        "gridCells": [{"chapterIndex": 0, "themeIndex": 0, "presence": True, "intensity": 2}],
        "unknownTopLevel": {"ignored": True},
    }


def test_validate_parses_camel_case_document() -> None:
    template = validate_book_template(_document())

    assert template.book.title == "Salt Roads"
    assert template.book.chapter_numbering == "per-book"
    assert template.chapters[0].outline_pov == "Mara"
    assert template.chapters[0].part_index == 0
    assert template.chapters[0].custom_outline_fields == {"weather": "fog"}
    assert template.grid_cells[0].theme_index == 0
    assert template.tags == []
    assert template.cards == []


def test_validate_returns_parsed_template_unchanged() -> None:
    template = validate_book_template(_document())
    assert validate_book_template(template) is template


@pytest.mark.parametrize(
    ("raw", "path"),
    [
        ([], "template"),
        ("book", "template"),
        ({}, "book"),
        ({"book": "Salt Roads"}, "book"),
        ({"book": {}}, "book.title"),
        ({"book": {"title": 12}}, "book.title"),
        ({"book": {"title": "T"}, "chapters": {}}, "chapters"),
        ({"book": {"title": "T"}, "gridCells": "none"}, "gridCells"),
        ({"book": {"title": "T"}, "tags": None}, "tags"),
    ],
)
def test_validate_reports_failing_path(raw: object, path: str) -> None:
    with pytest.raises(InvalidTemplateError) as exc_info:
        validate_book_template(raw)
    assert exc_info.value.path == path


def test_validate_reports_nested_record_path() -> None:
    raw = {"book": {"title": "T"}, "chapters": [{"title": "One"}, {"content": "no title"}]}
    with pytest.raises(InvalidTemplateError) as exc_info:
        validate_book_template(raw)
    assert exc_info.value.path == "chapters.1.title"


@pytest.mark.parametrize(
    ("raw", "path"),
    [
        (
            {"book": {"title": "T"}, "chapters": [{"title": "A", "wordCount": 2**63}]},
            "chapters.0.wordCount",
        ),
        (
            {"book": {"title": "T"}, "cards": [{"title": "A", "boardIndex": -(2**63) - 1}]},
            "cards.0.boardIndex",
        ),
    ],
)
def test_validate_rejects_integers_outside_sqlite_range(raw: object, path: str) -> None:
    with pytest.raises(InvalidTemplateError) as exc_info:
        validate_book_template(raw)
    assert exc_info.value.path == path


def test_validate_accepts_integer_range_limits() -> None:
    raw = {"book": {"title": "T"}, "parts": [{"title": "P", "sortOrder": 2**63 - 1}]}
    assert validate_book_template(raw).parts[0].sort_order == 2**63 - 1


def test_description_presence_is_tracked_even_when_null() -> None:
    with_null = validate_book_template({"book": {"title": "T", "description": None}})
    without = validate_book_template({"book": {"title": "T"}})

    assert with_null.describes_book_description()
    assert not without.describes_book_description()


def test_dump_uses_wire_field_names() -> None:
    dumped = dump_book_template(validate_book_template(_document()))

    assert set(dumped) == {
        "book",
        "parts",
        "chapters",
        "themes",
        "tags",
        "characters",
        "boards",
        "cards",
        "gridCells",
    }
    assert dumped["book"]["chapterNumbering"] == "per-book"
    assert dumped["chapters"][0]["outlinePOV"] == "Mara"
    assert dumped["chapters"][0]["partIndex"] == 0
    assert dumped["gridCells"][0]["chapterIndex"] == 0
    assert dump_book_template(BookTemplate.model_validate(dumped)) == dumped


@pytest.mark.parametrize(
    ("title", "filename"),
    [
        ("Salt Roads", "Salt_Roads-template.json"),
        ("  Storm / Harbor: Part 2!  ", "Storm_Harbor_Part_2-template.json"),
        ("???", "book-template.json"),
    ],
)
def test_template_filename_sanitizes_title(title: str, filename: str) -> None:
    assert template_filename(title) == filename

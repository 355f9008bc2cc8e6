from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from storylab.adapters.sqlite_book_store import SQLiteBookStore, SQLiteBookUnitOfWork
from storylab.core.book_template import (
    BookAccessError,
    BookNotFoundError,
    InvalidTemplateError,
    dump_book_template,
)
from storylab.core.template_codec import (
    DEFAULT_TAG_COLOR,
    export_book_template,
    import_book_template,
)
from storylab.domain.models import Book, CharacterSeed, TagSeed


def _store(tmp_path: Path) -> SQLiteBookStore:
    return SQLiteBookStore(db_path=tmp_path / "books.db")


def _owner(store: SQLiteBookStore, email: str = "alice@example.com") -> str:
    user = store.create_user(email=email, display_name="Alice", password_hash="hash")
    assert user is not None
    return user.user_id


def _seed_book(store: SQLiteBookStore, owner_id: str, title: str = "Salt Roads") -> Book:
    """Two parts, three chapters (one unassigned), two themes, full grid, one board."""
    book = store.create_book(
        owner_id=owner_id,
        title=title,
        description="A trade novel",
        chapter_numbering="per-book",
    )
    with store.transaction() as unit:
        part_a = unit.create_part(book_id=book.book_id, title="Departure", sort_order=0)
        part_b = unit.create_part(
            book_id=book.book_id, title="Return", sort_order=1, notes="Short part"
        )
        chapter_ids = [
            unit.create_chapter(
                book_id=book.book_id,
                title="Harbor",
                sort_order=0,
                part_id=part_a,
                content="The ships left at dawn.",
                outline_pov="Mara",
                custom_outline_fields={"weather": "fog"},
                word_count=5,
                last_edited="2024-05-01T10:00:00+00:00",
            ),
            unit.create_chapter(
                book_id=book.book_id, title="Open Sea", sort_order=1, part_id=part_b
            ),
            unit.create_chapter(book_id=book.book_id, title="Interlude", sort_order=2),
        ]
        theme_ids = [
            unit.create_theme(book_id=book.book_id, name="Greed", color="#ff0000", row_order=0),
            unit.create_theme(
                book_id=book.book_id,
                name="Home",
                color="#00ff00",
                row_order=1,
                is_hidden=True,
                thread_label="homecoming",
            ),
        ]
        for chapter_id in chapter_ids:
            for intensity, theme_id in enumerate(theme_ids, start=1):
                unit.create_grid_cell(
                    book_id=book.book_id,
                    chapter_id=chapter_id,
                    theme_id=theme_id,
                    presence=True,
                    intensity=intensity,
                )
        unit.create_tags(
            book_id=book.book_id,
            tags=[TagSeed(name="draft", color="#111111"), TagSeed(name="revise", color="#222222")],
        )
        unit.create_characters(
            book_id=book.book_id,
            characters=[CharacterSeed(name="Mara", color="#333333", role="captain")],
        )
        board_id = unit.create_board(book_id=book.book_id, name="Plot", sort_order=0)
        unit.create_card(
            book_id=book.book_id,
            title="Storm hits",
            lane_rank="B",
            board_id=board_id,
            chapter_id=chapter_ids[1],
        )
        unit.create_card(
            book_id=book.book_id,
            title="Arrival",
            lane_rank="U",
            scope="part",
            board_id=board_id,
            part_id=part_b,
            x=10.5,
            y=-2.0,
        )
    return book


def _part_title_by_id(unit: SQLiteBookUnitOfWork, book_id: str) -> dict[str, str]:
    return {part.part_id: part.title for part in unit.list_parts(book_id)}


def test_export_rewrites_ids_as_indexes(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = _seed_book(store, owner_id)

    template = export_book_template(store, book.book_id)

    assert template.book.title == "Salt Roads"
    assert template.book.description == "A trade novel"
    assert [part.title for part in template.parts] == ["Departure", "Return"]
    assert [chapter.part_index for chapter in template.chapters] == [0, 1, None]
    assert template.chapters[0].outline_pov == "Mara"
    assert template.chapters[0].custom_outline_fields == {"weather": "fog"}
    assert len(template.grid_cells) == 6
    assert {(cell.chapter_index, cell.theme_index) for cell in template.grid_cells} == {
        (chapter, theme) for chapter in range(3) for theme in range(2)
    }
    assert [card.title for card in template.cards] == ["Storm hits", "Arrival"]
    assert template.cards[0].board_index == 0
    assert template.cards[0].chapter_index == 1
    assert template.cards[1].part_index == 1
    assert [tag.name for tag in template.tags] == ["draft", "revise"]
    dumped = dump_book_template(template)
    assert "bookId" not in dumped["book"]
    assert all("chapterId" not in cell for cell in dumped["gridCells"])


def test_export_missing_book_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(BookNotFoundError):
        export_book_template(_store(tmp_path), "missing-book")


def test_round_trip_drops_dangling_grid_cell_and_reexports_equal(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    source = _seed_book(store, owner_id)
    document = dump_book_template(export_book_template(store, source.book_id))

    with_dangling = {
        **document,
        "gridCells": [*document["gridCells"], {"chapterIndex": 7, "themeIndex": 0}],
    }
    target = store.create_book(
        owner_id=owner_id, title="Salt Roads", chapter_numbering="per-book"
    )
    summary = import_book_template(store, target.book_id, owner_id, with_dangling)

    assert summary.parts == 2
    assert summary.chapters == 3
    assert summary.themes == 2
    assert summary.grid_cells == 6
    assert summary.dropped_grid_cells == 1
    assert summary.description_updated
    counts = store.count_content(book_id=target.book_id)
    assert (counts.parts, counts.chapters, counts.grid_cells) == (2, 3, 6)

    reexported = dump_book_template(export_book_template(store, target.book_id))
    assert reexported == document


def test_concrete_part_reference_scenario(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = store.create_book(owner_id=owner_id, title="Scenario")
    document = {
        "book": {"title": "Ignored title"},
        "parts": [{"title": "A"}, {"title": "B"}],
        "chapters": [{"title": "Ch1", "partIndex": 0}, {"title": "Ch2", "partIndex": None}],
    }

    import_book_template(store, book.book_id, owner_id, document)

    with store.transaction(read_only=True) as unit:
        titles = _part_title_by_id(unit, book.book_id)
        chapters = {chapter.title: chapter for chapter in unit.list_chapters(book.book_id)}
        reloaded = unit.get_book(book.book_id)
    assert chapters["Ch1"].part_id is not None
    assert titles[chapters["Ch1"].part_id] == "A"
    assert chapters["Ch2"].part_id is None
    assert reloaded is not None
    assert reloaded.title == "Scenario"


def test_second_import_fully_replaces_first(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = _seed_book(store, owner_id)
    with store.transaction() as unit:
        tag = unit.list_tags(book.book_id)[0]
        unit.create_tag_link(
            book_id=book.book_id, tag_id=tag.tag_id, entity_type="chapter", entity_id="x"
        )
    assert store.count_content(book_id=book.book_id).tag_links == 1

    first = {
        "book": {"title": "T"},
        "parts": [{"title": "P1"}, {"title": "P2"}, {"title": "P3"}],
        "chapters": [{"title": "C1"}],
        "tags": [{"name": "t1"}],
    }
    second = {"book": {"title": "T"}, "themes": [{"name": "Only", "color": "#000000"}]}

    import_book_template(store, book.book_id, owner_id, first)
    after_first = store.count_content(book_id=book.book_id)
    assert (after_first.parts, after_first.chapters, after_first.tags) == (3, 1, 1)
    assert after_first.tag_links == 0
    assert after_first.cards == 0

    import_book_template(store, book.book_id, owner_id, second)
    after_second = store.count_content(book_id=book.book_id)
    assert after_second.total() == 1
    assert after_second.themes == 1


def test_import_twice_with_same_document_is_equivalent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    source = _seed_book(store, owner_id)
    document = dump_book_template(export_book_template(store, source.book_id))

    import_book_template(store, source.book_id, owner_id, document)
    first_counts = store.count_content(book_id=source.book_id)
    import_book_template(store, source.book_id, owner_id, document)

    assert store.count_content(book_id=source.book_id) == first_counts
    assert dump_book_template(export_book_template(store, source.book_id)) == document


def test_import_by_non_owner_is_rejected_without_changes(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    intruder_id = _owner(store, email="mallory@example.com")
    book = _seed_book(store, owner_id)
    before = store.count_content(book_id=book.book_id)

    with pytest.raises(BookAccessError):
        import_book_template(store, book.book_id, intruder_id, {"book": {"title": "Wipe"}})

    assert store.count_content(book_id=book.book_id) == before


def test_import_missing_book_raises_not_found(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    with pytest.raises(BookNotFoundError):
        import_book_template(store, "missing-book", owner_id, {"book": {"title": "T"}})


def test_invalid_document_fails_before_any_mutation(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = _seed_book(store, owner_id)
    before = store.count_content(book_id=book.book_id)

    with pytest.raises(InvalidTemplateError) as exc_info:
        import_book_template(store, book.book_id, owner_id, {"book": {"title": "T"}, "cards": {}})

    assert exc_info.value.path == "cards"
    assert store.count_content(book_id=book.book_id) == before


def test_card_references_that_do_not_resolve_become_null(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = store.create_book(owner_id=owner_id, title="Cards")
    document: dict[str, Any] = {
        "book": {"title": "Cards"},
        "boards": [{"name": "Plot"}],
        "chapters": [{"title": "One"}],
        "cards": [
            {"title": "Kept", "boardIndex": 0, "chapterIndex": 4, "partIndex": -1},
            {"title": "Defaults"},
        ],
    }

    summary = import_book_template(store, book.book_id, owner_id, document)

    with store.transaction(read_only=True) as unit:
        cards = {card.title: card for card in unit.list_cards(book.book_id)}
        board = unit.list_boards(book.book_id)[0]
    assert summary.cards == 2
    assert cards["Kept"].board_id == board.board_id
    assert cards["Kept"].chapter_id is None
    assert cards["Kept"].part_id is None
    assert cards["Defaults"].scope == "book"
    assert cards["Defaults"].lane_rank == "U"
    assert cards["Defaults"].board_id is None


def test_grid_cells_with_either_reference_unresolved_are_dropped(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = store.create_book(owner_id=owner_id, title="Grid")
    document = {
        "book": {"title": "Grid"},
        "chapters": [{"title": "One"}],
        "themes": [{"name": "Greed", "color": "#ff0000"}],
        "gridCells": [
            {"chapterIndex": 0, "themeIndex": 0},
            {"chapterIndex": 0, "themeIndex": 3},
            {"chapterIndex": None, "themeIndex": 0},
            {"themeIndex": 0},
        ],
    }

    with caplog.at_level(logging.DEBUG, logger="storylab.core.template_codec"):
        summary = import_book_template(store, book.book_id, owner_id, document)

    assert summary.grid_cells == 1
    assert summary.dropped_grid_cells == 3
    assert "template.import.grid_cell_dropped" in caplog.text
    with store.transaction(read_only=True) as unit:
        cells = unit.list_grid_cells(book.book_id)
    assert len(cells) == 1
    assert cells[0].presence is False
    assert cells[0].intensity == 0


def test_import_applies_documented_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = store.create_book(owner_id=owner_id, title="Defaults")
    document = {
        "book": {"title": "Defaults"},
        "parts": [{"title": "P0"}, {"title": "P1", "sortOrder": 9}],
        "chapters": [{"title": "C0", "content": None}],
        "themes": [{"name": "T0", "color": "#000000"}],
        "tags": [{"name": "plain"}],
    }

    import_book_template(store, book.book_id, owner_id, document)

    with store.transaction(read_only=True) as unit:
        parts = unit.list_parts(book.book_id)
        chapter = unit.list_chapters(book.book_id)[0]
        theme = unit.list_themes(book.book_id)[0]
        tag = unit.list_tags(book.book_id)[0]
    assert [(part.title, part.sort_order) for part in parts] == [("P0", 0), ("P1", 9)]
    assert chapter.content == ""
    assert chapter.word_count == 0
    assert chapter.sort_order == 0
    assert theme.is_hidden is False
    assert theme.row_order == 0
    assert tag.color == DEFAULT_TAG_COLOR


def test_description_overwritten_only_when_present_and_title_kept(tmp_path: Path) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = store.create_book(owner_id=owner_id, title="Keep Me", description="Original")

    untouched = import_book_template(store, book.book_id, owner_id, {"book": {"title": "New"}})
    after_missing = store.get_book(book_id=book.book_id)
    cleared = import_book_template(
        store, book.book_id, owner_id, {"book": {"title": "New", "description": None}}
    )
    after_null = store.get_book(book_id=book.book_id)
    import_book_template(
        store, book.book_id, owner_id, {"book": {"title": "New", "description": "Replaced"}}
    )
    after_value = store.get_book(book_id=book.book_id)

    assert not untouched.description_updated
    assert cleared.description_updated
    assert after_missing is not None and after_missing.description == "Original"
    assert after_null is not None and after_null.description is None
    assert after_value is not None and after_value.description == "Replaced"
    assert after_value.title == "Keep Me"


def test_failure_mid_import_rolls_back_everything(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = _store(tmp_path)
    owner_id = _owner(store)
    book = _seed_book(store, owner_id)
    before = store.count_content(book_id=book.book_id)
    document = dump_book_template(export_book_template(store, book.book_id))
    document["book"]["description"] = "Should not land"

    def fail_theme(self: SQLiteBookUnitOfWork, **_: Any) -> str:
        raise RuntimeError("disk full")

    monkeypatch.setattr(SQLiteBookUnitOfWork, "create_theme", fail_theme)
    with pytest.raises(RuntimeError, match="disk full"):
        import_book_template(store, book.book_id, owner_id, document)

    assert store.count_content(book_id=book.book_id) == before
    reloaded = store.get_book(book_id=book.book_id)
    assert reloaded is not None
    assert reloaded.description == "A trade novel"

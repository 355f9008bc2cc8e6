"""Export a book into a template document and import one back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TypeVar

from storylab.core.book_template import (
    BoardTemplate,
    BookAccessError,
    BookNotFoundError,
    BookSection,
    BookTemplate,
    CardTemplate,
    ChapterTemplate,
    CharacterTemplate,
    GridCellTemplate,
    PartTemplate,
    TagTemplate,
    ThemeTemplate,
    validate_book_template,
)
from storylab.core.lexorank import initial_rank
from storylab.domain.models import CharacterSeed, TagSeed
from storylab.domain.ports import BOOK_CONTENT_DELETE_ORDER, BookStore

DEFAULT_TAG_COLOR = "#94a3b8"
DEFAULT_CARD_SCOPE = "book"

logger = logging.getLogger(__name__)

_K = TypeVar("_K")
_V = TypeVar("_V")


@dataclass(frozen=True)
class TemplateImportSummary:
    """Rows created by one import."""

    book_id: str
    parts: int
    chapters: int
    themes: int
    tags: int
    characters: int
    boards: int
    cards: int
    grid_cells: int
    dropped_grid_cells: int
    description_updated: bool


def export_book_template(store: BookStore, book_id: str) -> BookTemplate:
    """Snapshot a book's content with cross references rewritten as indexes."""
    with store.transaction(read_only=True) as unit:
        book = unit.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        parts = unit.list_parts(book_id)
        chapters = unit.list_chapters(book_id)
        themes = unit.list_themes(book_id)
        tags = unit.list_tags(book_id)
        characters = unit.list_characters(book_id)
        boards = unit.list_boards(book_id)
        cards = unit.list_cards(book_id)
        grid_cells = unit.list_grid_cells(book_id)

    part_index_by_id: dict[str, int] = {}
    part_templates: list[PartTemplate] = []
    for index, part in enumerate(parts):
        part_index_by_id[part.part_id] = index
        part_templates.append(
            PartTemplate(title=part.title, sort_order=part.sort_order, notes=part.notes)
        )

    chapter_index_by_id: dict[str, int] = {}
    chapter_templates: list[ChapterTemplate] = []
    for index, chapter in enumerate(chapters):
        chapter_index_by_id[chapter.chapter_id] = index
        chapter_templates.append(
            ChapterTemplate(
                title=chapter.title,
                content=chapter.content,
                outline=chapter.outline,
                outline_pov=chapter.outline_pov,
                outline_purpose=chapter.outline_purpose,
                outline_estimate=chapter.outline_estimate,
                outline_goal=chapter.outline_goal,
                outline_conflict=chapter.outline_conflict,
                outline_stakes=chapter.outline_stakes,
                custom_outline_fields=chapter.custom_outline_fields,
                sort_order=chapter.sort_order,
                word_count=chapter.word_count,
                last_edited=chapter.last_edited,
                part_index=_lookup(part_index_by_id, chapter.part_id),
            )
        )

    theme_index_by_id: dict[str, int] = {}
    theme_templates: list[ThemeTemplate] = []
    for index, theme in enumerate(themes):
        theme_index_by_id[theme.theme_id] = index
        theme_templates.append(
            ThemeTemplate(
                name=theme.name,
                color=theme.color,
                kind=theme.kind,
                source=theme.source,
                mode=theme.mode,
                source_ref_id=theme.source_ref_id,
                description=theme.description,
                ai_guide=theme.ai_guide,
                row_order=theme.row_order,
                is_hidden=theme.is_hidden,
                thread_label=theme.thread_label,
            )
        )

    board_index_by_id: dict[str, int] = {}
    board_templates: list[BoardTemplate] = []
    for index, board in enumerate(boards):
        board_index_by_id[board.board_id] = index
        board_templates.append(
            BoardTemplate(
                name=board.name,
                description=board.description,
                sort_order=board.sort_order,
            )
        )

    card_templates = [
        CardTemplate(
            title=card.title,
            summary=card.summary,
            notes=card.notes,
            status=card.status,
            color=card.color,
            lane_rank=card.lane_rank,
            word_estimate=card.word_estimate,
            x=card.x,
            y=card.y,
            scope=card.scope,
            board_index=_lookup(board_index_by_id, card.board_id),
            chapter_index=_lookup(chapter_index_by_id, card.chapter_id),
            part_index=_lookup(part_index_by_id, card.part_id),
        )
        for card in cards
    ]

    grid_cell_templates: list[GridCellTemplate] = []
    for cell in grid_cells:
        chapter_index = chapter_index_by_id.get(cell.chapter_id)
        theme_index = theme_index_by_id.get(cell.theme_id)
        if chapter_index is None or theme_index is None:
            continue
        grid_cell_templates.append(
            GridCellTemplate(
                chapter_index=chapter_index,
                theme_index=theme_index,
                presence=cell.presence,
                intensity=cell.intensity,
                note=cell.note,
                thread_role=cell.thread_role,
            )
        )

    template = BookTemplate(
        book=BookSection(
            title=book.title,
            description=book.description,
            chapter_numbering=book.chapter_numbering,
        ),
        parts=part_templates,
        chapters=chapter_templates,
        themes=theme_templates,
        tags=[TagTemplate(name=tag.name, color=tag.color) for tag in tags],
        characters=[
            CharacterTemplate(
                name=character.name,
                color=character.color,
                role=character.role,
                notes=character.notes,
            )
            for character in characters
        ],
        boards=board_templates,
        cards=card_templates,
        grid_cells=grid_cell_templates,
    )
    logger.info(
        "template.export book_id=%s parts=%s chapters=%s themes=%s boards=%s cards=%s "
        "grid_cells=%s",
        book_id,
        len(part_templates),
        len(chapter_templates),
        len(theme_templates),
        len(board_templates),
        len(card_templates),
        len(grid_cell_templates),
    )
    return template


def import_book_template(
    store: BookStore,
    book_id: str,
    user_id: str,
    template_input: object,
) -> TemplateImportSummary:
    """Replace a book's content with a template's content.

    This is a full replace, never a merge: every child table of the book is
    cleared before the document is written, inside one transaction. The book's
    title is left untouched; its description is overwritten whenever the
    document carries `book.description`, including an explicit null.
    """
    template = validate_book_template(template_input)

    with store.transaction() as unit:
        book = unit.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        if book.owner_id != user_id:
            raise BookAccessError(book_id, user_id)

        for entity in BOOK_CONTENT_DELETE_ORDER:
            unit.delete_for_book(entity, book_id)

        part_id_by_index: dict[int, str] = {}
        for index, part in enumerate(template.parts):
            part_id_by_index[index] = unit.create_part(
                book_id=book_id,
                title=part.title,
                sort_order=_or_default(part.sort_order, index),
                notes=part.notes,
            )

        chapter_id_by_index: dict[int, str] = {}
        for index, chapter in enumerate(template.chapters):
            chapter_id_by_index[index] = unit.create_chapter(
                book_id=book_id,
                title=chapter.title,
                sort_order=_or_default(chapter.sort_order, index),
                part_id=_lookup(part_id_by_index, chapter.part_index),
                content=chapter.content or "",
                outline=chapter.outline,
                outline_pov=chapter.outline_pov,
                outline_purpose=chapter.outline_purpose,
                outline_estimate=chapter.outline_estimate,
                outline_goal=chapter.outline_goal,
                outline_conflict=chapter.outline_conflict,
                outline_stakes=chapter.outline_stakes,
                custom_outline_fields=chapter.custom_outline_fields,
                word_count=_or_default(chapter.word_count, 0),
                last_edited=chapter.last_edited,
            )

        theme_id_by_index: dict[int, str] = {}
        for index, theme in enumerate(template.themes):
            theme_id_by_index[index] = unit.create_theme(
                book_id=book_id,
                name=theme.name,
                color=theme.color,
                row_order=_or_default(theme.row_order, index),
                kind=theme.kind,
                source=theme.source,
                mode=theme.mode,
                source_ref_id=theme.source_ref_id,
                description=theme.description,
                ai_guide=theme.ai_guide,
                is_hidden=bool(theme.is_hidden),
                thread_label=theme.thread_label,
            )

        tag_count = 0
        if template.tags:
            tag_count = unit.create_tags(
                book_id=book_id,
                tags=[
                    TagSeed(name=tag.name, color=tag.color or DEFAULT_TAG_COLOR)
                    for tag in template.tags
                ],
            )
        character_count = 0
        if template.characters:
            character_count = unit.create_characters(
                book_id=book_id,
                characters=[
                    CharacterSeed(
                        name=character.name,
                        color=character.color,
                        role=character.role,
                        notes=character.notes,
                    )
                    for character in template.characters
                ],
            )

        board_id_by_index: dict[int, str] = {}
        for index, board in enumerate(template.boards):
            board_id_by_index[index] = unit.create_board(
                book_id=book_id,
                name=board.name,
                sort_order=_or_default(board.sort_order, index),
                description=board.description,
            )

        # Unresolved card references become null; the card itself is kept.
        for card in template.cards:
            unit.create_card(
                book_id=book_id,
                title=card.title,
                lane_rank=card.lane_rank or initial_rank(),
                scope=card.scope or DEFAULT_CARD_SCOPE,
                board_id=_lookup(board_id_by_index, card.board_index),
                chapter_id=_lookup(chapter_id_by_index, card.chapter_index),
                part_id=_lookup(part_id_by_index, card.part_index),
                summary=card.summary,
                notes=card.notes,
                status=card.status,
                color=card.color,
                word_estimate=card.word_estimate,
                x=card.x,
                y=card.y,
            )

        # A grid cell is meaningless without both coordinates, so it is dropped.
        created_cells = 0
        dropped_cells = 0
        for position, cell in enumerate(template.grid_cells):
            chapter_id = _lookup(chapter_id_by_index, cell.chapter_index)
            theme_id = _lookup(theme_id_by_index, cell.theme_index)
            if chapter_id is None or theme_id is None:
                dropped_cells += 1
                logger.debug(
                    "template.import.grid_cell_dropped book_id=%s position=%s "
                    "chapter_index=%s theme_index=%s",
                    book_id,
                    position,
                    cell.chapter_index,
                    cell.theme_index,
                )
                continue
            unit.create_grid_cell(
                book_id=book_id,
                chapter_id=chapter_id,
                theme_id=theme_id,
                presence=bool(cell.presence),
                intensity=_or_default(cell.intensity, 0),
                note=cell.note,
                thread_role=cell.thread_role,
            )
            created_cells += 1

        description_updated = template.describes_book_description()
        if description_updated:
            unit.update_book_description(
                book_id=book_id, description=template.book.description
            )

    summary = TemplateImportSummary(
        book_id=book_id,
        parts=len(part_id_by_index),
        chapters=len(chapter_id_by_index),
        themes=len(theme_id_by_index),
        tags=tag_count,
        characters=character_count,
        boards=len(board_id_by_index),
        cards=len(template.cards),
        grid_cells=created_cells,
        dropped_grid_cells=dropped_cells,
        description_updated=description_updated,
    )
    logger.info(
        "template.import book_id=%s user_id=%s parts=%s chapters=%s themes=%s cards=%s "
        "grid_cells=%s dropped_grid_cells=%s",
        book_id,
        user_id,
        summary.parts,
        summary.chapters,
        summary.themes,
        summary.cards,
        summary.grid_cells,
        summary.dropped_grid_cells,
    )
    return summary


def _lookup(mapping: dict[_K, _V], key: _K | None) -> _V | None:
    if key is None:
        return None
    return mapping.get(key)


def _or_default(value: int | None, default: int) -> int:
    return default if value is None else value

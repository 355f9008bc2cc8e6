"""SQLite-backed persistence for users, tokens, books, and book content."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

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
from storylab.domain.ports import BOOK_CONTENT_DELETE_ORDER, BookEntity

DEFAULT_DB_PATH = Path("work/local/storylab.db")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        display_name TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'writer',
        created_at_utc TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS access_tokens (
        token_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(user_id),
        token_value TEXT NOT NULL UNIQUE,
        expires_at_utc TEXT NOT NULL,
        created_at_utc TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS books (
        book_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL REFERENCES users(user_id),
        title TEXT NOT NULL,
        description TEXT,
        chapter_numbering TEXT,
        created_at_utc TEXT NOT NULL,
        updated_at_utc TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS parts (
        part_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        sort_order INTEGER NOT NULL DEFAULT 0,
        notes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        chapter_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        part_id TEXT REFERENCES parts(part_id) ON DELETE SET NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL DEFAULT '',
        outline TEXT,
        outline_pov TEXT,
        outline_purpose TEXT,
        outline_estimate INTEGER,
        outline_goal TEXT,
        outline_conflict TEXT,
        outline_stakes TEXT,
        custom_outline_fields_json TEXT,
        sort_order INTEGER NOT NULL DEFAULT 0,
        word_count INTEGER NOT NULL DEFAULT 0,
        last_edited TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS themes (
        theme_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        color TEXT NOT NULL,
        kind TEXT,
        source TEXT,
        mode TEXT,
        source_ref_id TEXT,
        description TEXT,
        ai_guide TEXT,
        row_order INTEGER NOT NULL DEFAULT 0,
        is_hidden INTEGER NOT NULL DEFAULT 0,
        thread_label TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tags (
        tag_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        color TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tag_links (
        tag_link_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        tag_id TEXT NOT NULL REFERENCES tags(tag_id) ON DELETE CASCADE,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS characters (
        character_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        color TEXT NOT NULL,
        role TEXT,
        notes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS corkboard_boards (
        board_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        sort_order INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS corkboard_cards (
        card_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        board_id TEXT REFERENCES corkboard_boards(board_id) ON DELETE SET NULL,
        chapter_id TEXT REFERENCES chapters(chapter_id) ON DELETE SET NULL,
        part_id TEXT REFERENCES parts(part_id) ON DELETE SET NULL,
        title TEXT NOT NULL,
        summary TEXT,
        notes TEXT,
        status TEXT,
        color TEXT,
        lane_rank TEXT NOT NULL,
        word_estimate INTEGER,
        x REAL,
        y REAL,
        scope TEXT NOT NULL DEFAULT 'book'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS grid_cells (
        cell_id TEXT PRIMARY KEY,
        book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
        chapter_id TEXT NOT NULL REFERENCES chapters(chapter_id) ON DELETE CASCADE,
        theme_id TEXT NOT NULL REFERENCES themes(theme_id) ON DELETE CASCADE,
        presence INTEGER NOT NULL DEFAULT 0,
        intensity INTEGER NOT NULL DEFAULT 0,
        note TEXT,
        thread_role TEXT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_books_owner_updated
    ON books(owner_id, updated_at_utc DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_tokens_user
    ON access_tokens(user_id, expires_at_utc DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_cards_lane
    ON corkboard_cards(book_id, board_id, scope, lane_rank)
    """,
)

_CONTENT_TABLES: tuple[BookEntity, ...] = BOOK_CONTENT_DELETE_ORDER


@dataclass(frozen=True)
class StoredUser:
    """Stored user account data."""

    user_id: str
    email: str
    display_name: str
    password_hash: str
    role: str
    created_at_utc: str


@dataclass(frozen=True)
class StoredToken:
    """Stored bearer-token session."""

    token_id: str
    user_id: str
    token_value: str
    expires_at_utc: str
    created_at_utc: str


def _new_id() -> str:
    return uuid4().hex


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SQLiteBookUnitOfWork:
    """Book content reads and writes bound to one open SQLite transaction."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self._connection.execute(sql, tuple(params))

    def create_book(
        self,
        *,
        owner_id: str,
        title: str,
        description: str | None = None,
        chapter_numbering: str | None = None,
    ) -> str:
        now = _utc_now_iso()
        book_id = _new_id()
        self.execute(
            """
            INSERT INTO books (book_id, owner_id, title, description, chapter_numbering,
                               created_at_utc, updated_at_utc)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (book_id, owner_id, title, description, chapter_numbering, now, now),
        )
        return book_id

    def get_book(self, book_id: str) -> Book | None:
        row = self.execute("SELECT * FROM books WHERE book_id = ?", (book_id,)).fetchone()
        if row is None:
            return None
        return _book_from_row(row)

    def list_books(self, *, owner_id: str, limit: int = 100) -> list[Book]:
        rows = self.execute(
            """
            SELECT * FROM books
            WHERE owner_id = ?
            ORDER BY updated_at_utc DESC
            LIMIT ?
            """,
            (owner_id, limit),
        ).fetchall()
        return [_book_from_row(row) for row in rows]

    def update_book_description(self, *, book_id: str, description: str | None) -> None:
        self.execute(
            "UPDATE books SET description = ?, updated_at_utc = ? WHERE book_id = ?",
            (description, _utc_now_iso(), book_id),
        )

    def list_parts(self, book_id: str) -> list[Part]:
        rows = self.execute(
            "SELECT * FROM parts WHERE book_id = ? ORDER BY sort_order, rowid", (book_id,)
        ).fetchall()
        return [
            Part(
                part_id=str(row["part_id"]),
                book_id=str(row["book_id"]),
                title=str(row["title"]),
                sort_order=int(row["sort_order"]),
                notes=row["notes"],
            )
            for row in rows
        ]

    def list_chapters(self, book_id: str) -> list[Chapter]:
        rows = self.execute(
            "SELECT * FROM chapters WHERE book_id = ? ORDER BY sort_order, rowid", (book_id,)
        ).fetchall()
        return [_chapter_from_row(row) for row in rows]

    def list_themes(self, book_id: str) -> list[Theme]:
        rows = self.execute(
            "SELECT * FROM themes WHERE book_id = ? ORDER BY row_order, name, rowid", (book_id,)
        ).fetchall()
        return [_theme_from_row(row) for row in rows]

    def list_tags(self, book_id: str) -> list[Tag]:
        rows = self.execute(
            "SELECT * FROM tags WHERE book_id = ? ORDER BY name, rowid", (book_id,)
        ).fetchall()
        return [
            Tag(
                tag_id=str(row["tag_id"]),
                book_id=str(row["book_id"]),
                name=str(row["name"]),
                color=str(row["color"]),
            )
            for row in rows
        ]

    def list_tag_links(self, book_id: str) -> list[TagLink]:
        rows = self.execute(
            "SELECT * FROM tag_links WHERE book_id = ? ORDER BY rowid", (book_id,)
        ).fetchall()
        return [
            TagLink(
                tag_link_id=str(row["tag_link_id"]),
                book_id=str(row["book_id"]),
                tag_id=str(row["tag_id"]),
                entity_type=str(row["entity_type"]),
                entity_id=str(row["entity_id"]),
            )
            for row in rows
        ]

    def list_characters(self, book_id: str) -> list[Character]:
        rows = self.execute(
            "SELECT * FROM characters WHERE book_id = ? ORDER BY name, rowid", (book_id,)
        ).fetchall()
        return [
            Character(
                character_id=str(row["character_id"]),
                book_id=str(row["book_id"]),
                name=str(row["name"]),
                color=str(row["color"]),
                role=row["role"],
                notes=row["notes"],
            )
            for row in rows
        ]

    def list_boards(self, book_id: str) -> list[CorkboardBoard]:
        rows = self.execute(
            "SELECT * FROM corkboard_boards WHERE book_id = ? ORDER BY sort_order, rowid",
            (book_id,),
        ).fetchall()
        return [
            CorkboardBoard(
                board_id=str(row["board_id"]),
                book_id=str(row["book_id"]),
                name=str(row["name"]),
                sort_order=int(row["sort_order"]),
                description=row["description"],
            )
            for row in rows
        ]

    def list_cards(self, book_id: str) -> list[CorkboardCard]:
        rows = self.execute(
            "SELECT * FROM corkboard_cards WHERE book_id = ? ORDER BY lane_rank, rowid",
            (book_id,),
        ).fetchall()
        return [_card_from_row(row) for row in rows]

    def list_lane_cards(self, book_id: str, lane: LaneKey) -> list[CorkboardCard]:
        rows = self.execute(
            """
            SELECT * FROM corkboard_cards
            WHERE book_id = ? AND board_id IS ? AND scope = ? AND part_id IS ? AND chapter_id IS ?
            ORDER BY lane_rank, rowid
            """,
            (book_id, lane.board_id, lane.scope, lane.part_id, lane.chapter_id),
        ).fetchall()
        return [_card_from_row(row) for row in rows]

    def get_card(self, *, book_id: str, card_id: str) -> CorkboardCard | None:
        row = self.execute(
            "SELECT * FROM corkboard_cards WHERE book_id = ? AND card_id = ?",
            (book_id, card_id),
        ).fetchone()
        if row is None:
            return None
        return _card_from_row(row)

    def move_card(self, *, card_id: str, lane: LaneKey, lane_rank: str) -> None:
        self.execute(
            """
            UPDATE corkboard_cards
            SET board_id = ?, scope = ?, part_id = ?, chapter_id = ?, lane_rank = ?
            WHERE card_id = ?
            """,
            (lane.board_id, lane.scope, lane.part_id, lane.chapter_id, lane_rank, card_id),
        )

    def update_card_ranks(self, ranks_by_card_id: Mapping[str, str]) -> None:
        self._connection.executemany(
            "UPDATE corkboard_cards SET lane_rank = ? WHERE card_id = ?",
            [(rank, card_id) for card_id, rank in ranks_by_card_id.items()],
        )

    def list_grid_cells(self, book_id: str) -> list[GridCell]:
        rows = self.execute(
            "SELECT * FROM grid_cells WHERE book_id = ? ORDER BY rowid", (book_id,)
        ).fetchall()
        return [
            GridCell(
                cell_id=str(row["cell_id"]),
                book_id=str(row["book_id"]),
                chapter_id=str(row["chapter_id"]),
                theme_id=str(row["theme_id"]),
                presence=bool(row["presence"]),
                intensity=int(row["intensity"]),
                note=row["note"],
                thread_role=row["thread_role"],
            )
            for row in rows
        ]

    def has_row(self, entity: BookEntity, *, book_id: str, row_id: str) -> bool:
        """Return True when a row of `entity` with `row_id` belongs to the book."""
        table, id_column = _table_and_id(entity)
        row = self.execute(
            f"SELECT 1 FROM {table} WHERE book_id = ? AND {id_column} = ?",
            (book_id, row_id),
        ).fetchone()
        return row is not None

    def count_content(self, book_id: str) -> BookContentCounts:
        counts = {
            entity: int(
                self.execute(
                    f"SELECT COUNT(*) FROM {_table_and_id(entity)[0]} WHERE book_id = ?",
                    (book_id,),
                ).fetchone()[0]
            )
            for entity in _CONTENT_TABLES
        }
        return BookContentCounts(
            parts=counts["parts"],
            chapters=counts["chapters"],
            themes=counts["themes"],
            tags=counts["tags"],
            tag_links=counts["tag_links"],
            characters=counts["characters"],
            boards=counts["corkboard_boards"],
            cards=counts["corkboard_cards"],
            grid_cells=counts["grid_cells"],
        )

    def delete_for_book(self, entity: BookEntity, book_id: str) -> int:
        table, _ = _table_and_id(entity)
        cursor = self.execute(f"DELETE FROM {table} WHERE book_id = ?", (book_id,))
        return cursor.rowcount

    def create_part(
        self, *, book_id: str, title: str, sort_order: int, notes: str | None = None
    ) -> str:
        part_id = _new_id()
        self.execute(
            "INSERT INTO parts (part_id, book_id, title, sort_order, notes) VALUES (?, ?, ?, ?, ?)",
            (part_id, book_id, title, sort_order, notes),
        )
        return part_id

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
        chapter_id = _new_id()
        custom_json = (
            json.dumps(custom_outline_fields, ensure_ascii=False, sort_keys=True)
            if custom_outline_fields is not None
            else None
        )
        self.execute(
            """
            INSERT INTO chapters (
                chapter_id, book_id, part_id, title, content, outline, outline_pov,
                outline_purpose, outline_estimate, outline_goal, outline_conflict,
                outline_stakes, custom_outline_fields_json, sort_order, word_count, last_edited
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chapter_id,
                book_id,
                part_id,
                title,
                content,
                outline,
                outline_pov,
                outline_purpose,
                outline_estimate,
                outline_goal,
                outline_conflict,
                outline_stakes,
                custom_json,
                sort_order,
                word_count,
                last_edited,
            ),
        )
        return chapter_id

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
        theme_id = _new_id()
        self.execute(
            """
            INSERT INTO themes (
                theme_id, book_id, name, color, kind, source, mode, source_ref_id,
                description, ai_guide, row_order, is_hidden, thread_label
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                theme_id,
                book_id,
                name,
                color,
                kind,
                source,
                mode,
                source_ref_id,
                description,
                ai_guide,
                row_order,
                int(is_hidden),
                thread_label,
            ),
        )
        return theme_id

    def create_tags(self, *, book_id: str, tags: Sequence[TagSeed]) -> int:
        self._connection.executemany(
            "INSERT INTO tags (tag_id, book_id, name, color) VALUES (?, ?, ?, ?)",
            [(_new_id(), book_id, tag.name, tag.color) for tag in tags],
        )
        return len(tags)

    def create_tag_link(
        self, *, book_id: str, tag_id: str, entity_type: str, entity_id: str
    ) -> str:
        tag_link_id = _new_id()
        self.execute(
            """
            INSERT INTO tag_links (tag_link_id, book_id, tag_id, entity_type, entity_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            (tag_link_id, book_id, tag_id, entity_type, entity_id),
        )
        return tag_link_id

    def create_characters(self, *, book_id: str, characters: Sequence[CharacterSeed]) -> int:
        self._connection.executemany(
            """
            INSERT INTO characters (character_id, book_id, name, color, role, notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    _new_id(),
                    book_id,
                    character.name,
                    character.color,
                    character.role,
                    character.notes,
                )
                for character in characters
            ],
        )
        return len(characters)

    def create_board(
        self, *, book_id: str, name: str, sort_order: int, description: str | None = None
    ) -> str:
        board_id = _new_id()
        self.execute(
            """
            INSERT INTO corkboard_boards (board_id, book_id, name, description, sort_order)
            VALUES (?, ?, ?, ?, ?)
            """,
            (board_id, book_id, name, description, sort_order),
        )
        return board_id

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
        card_id = _new_id()
        self.execute(
            """
            INSERT INTO corkboard_cards (
                card_id, book_id, board_id, chapter_id, part_id, title, summary, notes,
                status, color, lane_rank, word_estimate, x, y, scope
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                card_id,
                book_id,
                board_id,
                chapter_id,
                part_id,
                title,
                summary,
                notes,
                status,
                color,
                lane_rank,
                word_estimate,
                x,
                y,
                scope,
            ),
        )
        return card_id

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
        cell_id = _new_id()
        self.execute(
            """
            INSERT INTO grid_cells (
                cell_id, book_id, chapter_id, theme_id, presence, intensity, note, thread_role
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (cell_id, book_id, chapter_id, theme_id, int(presence), intensity, note, thread_role),
        )
        return cell_id


class SQLiteBookStore:
    """Persist and query StoryLab records from one SQLite database."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly by `transaction`.
        connection = sqlite3.connect(str(self._db_path), isolation_level=None)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _initialize_schema(self) -> None:
        with self.transaction() as unit:
            for statement in _SCHEMA:
                unit.execute(statement)

    @contextmanager
    def transaction(self, *, read_only: bool = False) -> Iterator[SQLiteBookUnitOfWork]:
        """Run a block inside one all-or-nothing transaction.

        Read-only transactions see one consistent snapshot. Any exception rolls
        the transaction back and is re-raised unchanged.
        """
        connection = self._connect()
        try:
            connection.execute("BEGIN" if read_only else "BEGIN IMMEDIATE")
            try:
                yield SQLiteBookUnitOfWork(connection)
            except BaseException:
                connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")
        finally:
            connection.close()

    def create_user(
        self, *, email: str, display_name: str, password_hash: str, role: str = "writer"
    ) -> StoredUser | None:
        """Create a user record; return None when email is already taken."""
        now = _utc_now_iso()
        user_id = _new_id()
        try:
            with self.transaction() as unit:
                unit.execute(
                    """
                    INSERT INTO users (user_id, email, display_name, password_hash, role, created_at_utc)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, email.lower(), display_name, password_hash, role, now),
                )
        except sqlite3.IntegrityError:
            return None
        return self.get_user_by_id(user_id=user_id)

    def get_user_by_email(self, *, email: str) -> StoredUser | None:
        """Load one user by normalized email."""
        with self.transaction(read_only=True) as unit:
            row = unit.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
        if row is None:
            return None
        return _user_from_row(row)

    def get_user_by_id(self, *, user_id: str) -> StoredUser | None:
        """Load one user by id."""
        with self.transaction(read_only=True) as unit:
            row = unit.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return _user_from_row(row)

    def create_token(self, *, user_id: str, token_value: str, expires_at_utc: str) -> StoredToken:
        """Create and store a bearer token."""
        token_id = _new_id()
        now = _utc_now_iso()
        with self.transaction() as unit:
            unit.execute(
                """
                INSERT INTO access_tokens (token_id, user_id, token_value, expires_at_utc, created_at_utc)
                VALUES (?, ?, ?, ?, ?)
                """,
                (token_id, user_id, token_value, expires_at_utc, now),
            )
        return StoredToken(
            token_id=token_id,
            user_id=user_id,
            token_value=token_value,
            expires_at_utc=expires_at_utc,
            created_at_utc=now,
        )

    def get_user_by_token(self, *, token_value: str, now_utc: str) -> StoredUser | None:
        """Resolve a bearer token into a user if it is still valid."""
        with self.transaction(read_only=True) as unit:
            row = unit.execute(
                """
                SELECT u.*
                FROM access_tokens t
                JOIN users u ON u.user_id = t.user_id
                WHERE t.token_value = ? AND t.expires_at_utc > ?
                """,
                (token_value, now_utc),
            ).fetchone()
        if row is None:
            return None
        return _user_from_row(row)

    def create_book(
        self,
        *,
        owner_id: str,
        title: str,
        description: str | None = None,
        chapter_numbering: str | None = None,
    ) -> Book:
        """Create and persist one empty book."""
        with self.transaction() as unit:
            book_id = unit.create_book(
                owner_id=owner_id,
                title=title,
                description=description,
                chapter_numbering=chapter_numbering,
            )
            book = unit.get_book(book_id)
        if book is None:
            raise RuntimeError("Created book could not be loaded.")
        return book

    def get_book(self, *, book_id: str) -> Book | None:
        """Load one book by id."""
        with self.transaction(read_only=True) as unit:
            return unit.get_book(book_id)

    def list_books(self, *, owner_id: str, limit: int = 100) -> list[Book]:
        """Return recently updated books for one owner."""
        with self.transaction(read_only=True) as unit:
            return unit.list_books(owner_id=owner_id, limit=limit)

    def count_content(self, *, book_id: str) -> BookContentCounts:
        """Count every child row of one book."""
        with self.transaction(read_only=True) as unit:
            return unit.count_content(book_id)


def _table_and_id(entity: BookEntity) -> tuple[str, str]:
    if entity not in _CONTENT_TABLES:
        raise ValueError(f"Unknown book entity: {entity!r}")
    return entity, _ID_COLUMNS[entity]


_ID_COLUMNS: dict[str, str] = {
    "grid_cells": "cell_id",
    "corkboard_cards": "card_id",
    "corkboard_boards": "board_id",
    "tag_links": "tag_link_id",
    "tags": "tag_id",
    "characters": "character_id",
    "chapters": "chapter_id",
    "parts": "part_id",
    "themes": "theme_id",
}


def _user_from_row(row: sqlite3.Row) -> StoredUser:
    return StoredUser(
        user_id=str(row["user_id"]),
        email=str(row["email"]),
        display_name=str(row["display_name"]),
        password_hash=str(row["password_hash"]),
        role=str(row["role"]),
        created_at_utc=str(row["created_at_utc"]),
    )


def _book_from_row(row: sqlite3.Row) -> Book:
    return Book(
        book_id=str(row["book_id"]),
        owner_id=str(row["owner_id"]),
        title=str(row["title"]),
        description=row["description"],
        chapter_numbering=row["chapter_numbering"],
        created_at_utc=str(row["created_at_utc"]),
        updated_at_utc=str(row["updated_at_utc"]),
    )


def _chapter_from_row(row: sqlite3.Row) -> Chapter:
    custom_json = row["custom_outline_fields_json"]
    return Chapter(
        chapter_id=str(row["chapter_id"]),
        book_id=str(row["book_id"]),
        title=str(row["title"]),
        sort_order=int(row["sort_order"]),
        part_id=row["part_id"],
        content=str(row["content"]),
        outline=row["outline"],
        outline_pov=row["outline_pov"],
        outline_purpose=row["outline_purpose"],
        outline_estimate=row["outline_estimate"],
        outline_goal=row["outline_goal"],
        outline_conflict=row["outline_conflict"],
        outline_stakes=row["outline_stakes"],
        custom_outline_fields=json.loads(custom_json) if custom_json is not None else None,
        word_count=int(row["word_count"]),
        last_edited=row["last_edited"],
    )


def _theme_from_row(row: sqlite3.Row) -> Theme:
    return Theme(
        theme_id=str(row["theme_id"]),
        book_id=str(row["book_id"]),
        name=str(row["name"]),
        color=str(row["color"]),
        row_order=int(row["row_order"]),
        kind=row["kind"],
        source=row["source"],
        mode=row["mode"],
        source_ref_id=row["source_ref_id"],
        description=row["description"],
        ai_guide=row["ai_guide"],
        is_hidden=bool(row["is_hidden"]),
        thread_label=row["thread_label"],
    )


def _card_from_row(row: sqlite3.Row) -> CorkboardCard:
    return CorkboardCard(
        card_id=str(row["card_id"]),
        book_id=str(row["book_id"]),
        title=str(row["title"]),
        lane_rank=str(row["lane_rank"]),
        scope=str(row["scope"]),
        board_id=row["board_id"],
        chapter_id=row["chapter_id"],
        part_id=row["part_id"],
        summary=row["summary"],
        notes=row["notes"],
        status=row["status"],
        color=row["color"],
        word_estimate=row["word_estimate"],
        x=row["x"],
        y=row["y"],
    )

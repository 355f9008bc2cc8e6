"""FastAPI local-preview application for book planning workflows."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Literal

from fastapi import Body, Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from storylab.adapters.observability import int_env
from storylab.adapters.sqlite_book_store import (
    DEFAULT_DB_PATH,
    SQLiteBookStore,
    SQLiteBookUnitOfWork,
    StoredUser,
)
from storylab.api.contracts import (
    AuthLoginRequest,
    AuthRegisterRequest,
    AuthTokenResponse,
    BoardCreateRequest,
    BoardResponse,
    BookCreateRequest,
    BookResponse,
    CardCreateRequest,
    CardMoveRequest,
    CardMoveResponse,
    CardResponse,
    ChapterCreateRequest,
    ChapterResponse,
    CharacterCreateRequest,
    CharacterResponse,
    GridCellCreateRequest,
    GridCellResponse,
    LaneRebalanceRequest,
    LaneResponse,
    LaneSelector,
    PartCreateRequest,
    PartResponse,
    TagCreateRequest,
    TagLinkCreateRequest,
    TagLinkResponse,
    TagResponse,
    TemplateImportResponse,
    ThemeCreateRequest,
    ThemeResponse,
    UserResponse,
)
from storylab.core.book_template import (
    BookAccessError,
    BookNotFoundError,
    InvalidTemplateError,
    dump_book_template,
    template_filename,
)
from storylab.core.corkboard_ordering import append_rank, plan_lane_move
from storylab.core.lexorank import rebalance
from storylab.core.template_codec import (
    DEFAULT_TAG_COLOR,
    export_book_template,
    import_book_template,
)
from storylab.domain.models import (
    Book,
    Chapter,
    CharacterSeed,
    CorkboardCard,
    LaneKey,
    TagSeed,
)
from storylab.domain.ports import BookEntity

PBKDF2_ITERATIONS = 310_000

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Simple health payload used by probes."""

    status: Literal["ok"] = "ok"
    service: str = "storylab"


class ApiRootResponse(BaseModel):
    """Describes currently available API capabilities and runtime mode."""

    name: str = "storylab"
    stage: Literal["local-preview"] = "local-preview"
    persistence: Literal["sqlite"] = "sqlite"
    auth: Literal["bearer-token"] = "bearer-token"
    endpoints: list[str] = Field(
        default_factory=lambda: [
            "/healthz",
            "/api/v1",
            "/api/v1/auth/register",
            "/api/v1/auth/login",
            "/api/v1/me",
            "/api/v1/books",
            "/api/v1/books/{book_id}",
            "/api/v1/books/{book_id}/parts",
            "/api/v1/books/{book_id}/chapters",
            "/api/v1/books/{book_id}/themes",
            "/api/v1/books/{book_id}/tags",
            "/api/v1/books/{book_id}/tags/{tag_id}/links",
            "/api/v1/books/{book_id}/characters",
            "/api/v1/books/{book_id}/grid",
            "/api/v1/books/{book_id}/corkboard/boards",
            "/api/v1/books/{book_id}/corkboard/cards",
            "/api/v1/books/{book_id}/corkboard/cards/{card_id}/move",
            "/api/v1/books/{book_id}/corkboard/lanes/rebalance",
            "/api/v1/books/{book_id}/template",
        ]
    )


def _resolve_db_path(db_path: Path | None) -> Path:
    """Resolve DB path from explicit arg, env var, then default path."""
    if db_path is not None:
        return db_path
    env_value = os.environ.get("STORYLAB_DB_PATH", "").strip()
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def _cors_origins() -> list[str]:
    raw = os.environ.get("STORYLAB_CORS_ORIGINS", "").strip()
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = password_hash.split("$", maxsplit=3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    recomputed = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt_hex),
        int(iterations),
    )
    return hmac.compare_digest(recomputed.hex(), digest_hex)


def _user_response(user: StoredUser) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        created_at_utc=user.created_at_utc,
    )


def _book_response(book: Book) -> BookResponse:
    return BookResponse(
        book_id=book.book_id,
        owner_id=book.owner_id,
        title=book.title,
        description=book.description,
        chapter_numbering=book.chapter_numbering,
        created_at_utc=book.created_at_utc,
        updated_at_utc=book.updated_at_utc,
    )


def _chapter_response(chapter: Chapter) -> ChapterResponse:
    return ChapterResponse(
        chapter_id=chapter.chapter_id,
        part_id=chapter.part_id,
        title=chapter.title,
        sort_order=chapter.sort_order,
        word_count=chapter.word_count,
        outline=chapter.outline,
        last_edited=chapter.last_edited,
    )


def _card_response(card: CorkboardCard) -> CardResponse:
    return CardResponse(
        card_id=card.card_id,
        board_id=card.board_id,
        scope=card.scope,
        part_id=card.part_id,
        chapter_id=card.chapter_id,
        title=card.title,
        summary=card.summary,
        status=card.status,
        color=card.color,
        lane_rank=card.lane_rank,
        word_estimate=card.word_estimate,
        x=card.x,
        y=card.y,
    )


def _lane_key(selector: LaneSelector) -> LaneKey:
    return LaneKey(
        board_id=selector.board_id,
        scope=selector.scope,
        part_id=selector.part_id,
        chapter_id=selector.chapter_id,
    )


def _word_count(text: str) -> int:
    return len(text.split())


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create the API application."""
    effective_db_path = _resolve_db_path(db_path)
    store = SQLiteBookStore(db_path=effective_db_path)
    token_ttl_hours = int_env("STORYLAB_TOKEN_TTL_HOURS", 24, minimum=1, maximum=24 * 30)
    bearer = HTTPBearer(auto_error=False)

    app = FastAPI(
        title="storylab API",
        version="0.1.0",
        description=(
            "Local preview API for book planning: chapters, themes, corkboard lanes, "
            "and portable book templates."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "system", "description": "Service health and runtime metadata."},
            {"name": "api", "description": "API discovery and root-level capability listing."},
            {"name": "auth", "description": "Registration, login, and profile lookups."},
            {"name": "books", "description": "Book CRUD and ownership-scoped reads."},
            {"name": "content", "description": "Parts, chapters, themes, tags, and characters."},
            {"name": "corkboard", "description": "Boards, cards, and lane ordering."},
            {"name": "templates", "description": "Book template export and import."},
        ],
        swagger_ui_parameters={
            "displayRequestDuration": True,
            "defaultModelsExpandDepth": -1,
        },
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(
        "api.start db_path=%s token_ttl_hours=%s",
        effective_db_path,
        token_ttl_hours,
    )

    def owned_book_or_404(*, book_id: str, user: StoredUser) -> Book:
        book = store.get_book(book_id=book_id)
        if book is None or book.owner_id != user.user_id:
            raise HTTPException(status_code=404, detail="Book not found")
        return book

    def require_row(
        unit: SQLiteBookUnitOfWork,
        entity: BookEntity,
        *,
        book_id: str,
        row_id: str | None,
        detail: str,
    ) -> None:
        if row_id is not None and not unit.has_row(entity, book_id=book_id, row_id=row_id):
            raise HTTPException(status_code=422, detail=detail)

    def require_lane_rows(
        unit: SQLiteBookUnitOfWork, *, book_id: str, selector: LaneSelector
    ) -> None:
        require_row(
            unit,
            "corkboard_boards",
            book_id=book_id,
            row_id=selector.board_id,
            detail="Board not found in book",
        )
        require_row(
            unit, "parts", book_id=book_id, row_id=selector.part_id, detail="Part not found in book"
        )
        require_row(
            unit,
            "chapters",
            book_id=book_id,
            row_id=selector.chapter_id,
            detail="Chapter not found in book",
        )

    def current_user(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    ) -> StoredUser:
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing bearer token",
            )
        user = store.get_user_by_token(
            token_value=credentials.credentials, now_utc=_utc_now().isoformat()
        )
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
            )
        return user

    @app.get("/healthz", response_model=HealthResponse, tags=["system"])
    def healthz() -> HealthResponse:
        return HealthResponse()

    @app.get("/api/v1", response_model=ApiRootResponse, tags=["api"])
    def api_v1_root() -> ApiRootResponse:
        return ApiRootResponse()

    @app.post("/api/v1/auth/register", response_model=UserResponse, tags=["auth"], status_code=201)
    def register(payload: AuthRegisterRequest) -> UserResponse:
        created = store.create_user(
            email=payload.email,
            display_name=payload.display_name.strip(),
            password_hash=_hash_password(payload.password.get_secret_value()),
        )
        if created is None:
            raise HTTPException(status_code=409, detail="Email already registered")
        return _user_response(created)

    @app.post("/api/v1/auth/login", response_model=AuthTokenResponse, tags=["auth"])
    def login(payload: AuthLoginRequest) -> AuthTokenResponse:
        user = store.get_user_by_email(email=payload.email)
        if user is None or not _verify_password(
            payload.password.get_secret_value(), user.password_hash
        ):
            raise HTTPException(status_code=401, detail="Invalid credentials")
        expires_at = _utc_now() + timedelta(hours=token_ttl_hours)
        token_value = secrets.token_urlsafe(32)
        token = store.create_token(
            user_id=user.user_id,
            token_value=token_value,
            expires_at_utc=expires_at.isoformat(),
        )
        return AuthTokenResponse(
            access_token=token.token_value, expires_at_utc=token.expires_at_utc
        )

    @app.get("/api/v1/me", response_model=UserResponse, tags=["auth"])
    def me(user: StoredUser = Depends(current_user)) -> UserResponse:
        return _user_response(user)

    @app.get("/api/v1/books", response_model=list[BookResponse], tags=["books"])
    def list_books(
        limit: int = Query(default=100, ge=1, le=500),
        user: StoredUser = Depends(current_user),
    ) -> list[BookResponse]:
        return [
            _book_response(book) for book in store.list_books(owner_id=user.user_id, limit=limit)
        ]

    @app.post("/api/v1/books", response_model=BookResponse, tags=["books"], status_code=201)
    def create_book(
        payload: BookCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> BookResponse:
        book = store.create_book(
            owner_id=user.user_id,
            title=payload.title,
            description=payload.description,
            chapter_numbering=payload.chapter_numbering,
        )
        return _book_response(book)

    @app.get("/api/v1/books/{book_id}", response_model=BookResponse, tags=["books"])
    def get_book(book_id: str, user: StoredUser = Depends(current_user)) -> BookResponse:
        return _book_response(owned_book_or_404(book_id=book_id, user=user))

    @app.get(
        "/api/v1/books/{book_id}/parts", response_model=list[PartResponse], tags=["content"]
    )
    def list_parts(book_id: str, user: StoredUser = Depends(current_user)) -> list[PartResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            parts = unit.list_parts(book_id)
        return [
            PartResponse(
                part_id=part.part_id,
                title=part.title,
                sort_order=part.sort_order,
                notes=part.notes,
            )
            for part in parts
        ]

    @app.post(
        "/api/v1/books/{book_id}/parts",
        response_model=PartResponse,
        tags=["content"],
        status_code=201,
    )
    def create_part(
        book_id: str,
        payload: PartCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> PartResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            sort_order = payload.sort_order
            if sort_order is None:
                sort_order = len(unit.list_parts(book_id))
            part_id = unit.create_part(
                book_id=book_id, title=payload.title, sort_order=sort_order, notes=payload.notes
            )
        return PartResponse(
            part_id=part_id, title=payload.title, sort_order=sort_order, notes=payload.notes
        )

    @app.get(
        "/api/v1/books/{book_id}/chapters",
        response_model=list[ChapterResponse],
        tags=["content"],
    )
    def list_chapters(
        book_id: str, user: StoredUser = Depends(current_user)
    ) -> list[ChapterResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            chapters = unit.list_chapters(book_id)
        return [_chapter_response(chapter) for chapter in chapters]

    @app.post(
        "/api/v1/books/{book_id}/chapters",
        response_model=ChapterResponse,
        tags=["content"],
        status_code=201,
    )
    def create_chapter(
        book_id: str,
        payload: ChapterCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> ChapterResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            require_row(
                unit,
                "parts",
                book_id=book_id,
                row_id=payload.part_id,
                detail="Part not found in book",
            )
            sort_order = payload.sort_order
            if sort_order is None:
                sort_order = len(unit.list_chapters(book_id))
            chapter_id = unit.create_chapter(
                book_id=book_id,
                title=payload.title,
                sort_order=sort_order,
                part_id=payload.part_id,
                content=payload.content,
                outline=payload.outline,
                outline_pov=payload.outline_pov,
                outline_purpose=payload.outline_purpose,
                outline_estimate=payload.outline_estimate,
                outline_goal=payload.outline_goal,
                outline_conflict=payload.outline_conflict,
                outline_stakes=payload.outline_stakes,
                custom_outline_fields=payload.custom_outline_fields,
                word_count=_word_count(payload.content),
                last_edited=_utc_now().isoformat(),
            )
            chapter = next(
                chapter
                for chapter in unit.list_chapters(book_id)
                if chapter.chapter_id == chapter_id
            )
        return _chapter_response(chapter)

    @app.get(
        "/api/v1/books/{book_id}/themes", response_model=list[ThemeResponse], tags=["content"]
    )
    def list_themes(book_id: str, user: StoredUser = Depends(current_user)) -> list[ThemeResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            themes = unit.list_themes(book_id)
        return [
            ThemeResponse(
                theme_id=theme.theme_id,
                name=theme.name,
                color=theme.color,
                row_order=theme.row_order,
                kind=theme.kind,
                description=theme.description,
                is_hidden=theme.is_hidden,
                thread_label=theme.thread_label,
            )
            for theme in themes
        ]

    @app.post(
        "/api/v1/books/{book_id}/themes",
        response_model=ThemeResponse,
        tags=["content"],
        status_code=201,
    )
    def create_theme(
        book_id: str,
        payload: ThemeCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> ThemeResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            row_order = payload.row_order
            if row_order is None:
                row_order = len(unit.list_themes(book_id))
            theme_id = unit.create_theme(
                book_id=book_id,
                name=payload.name,
                color=payload.color,
                row_order=row_order,
                kind=payload.kind,
                description=payload.description,
                is_hidden=payload.is_hidden,
                thread_label=payload.thread_label,
            )
        return ThemeResponse(
            theme_id=theme_id,
            name=payload.name,
            color=payload.color,
            row_order=row_order,
            kind=payload.kind,
            description=payload.description,
            is_hidden=payload.is_hidden,
            thread_label=payload.thread_label,
        )

    @app.get("/api/v1/books/{book_id}/tags", response_model=list[TagResponse], tags=["content"])
    def list_tags(book_id: str, user: StoredUser = Depends(current_user)) -> list[TagResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            tags = unit.list_tags(book_id)
        return [TagResponse(tag_id=tag.tag_id, name=tag.name, color=tag.color) for tag in tags]

    @app.post(
        "/api/v1/books/{book_id}/tags",
        response_model=TagResponse,
        tags=["content"],
        status_code=201,
    )
    def create_tag(
        book_id: str,
        payload: TagCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> TagResponse:
        owned_book_or_404(book_id=book_id, user=user)
        color = payload.color or DEFAULT_TAG_COLOR
        with store.transaction() as unit:
            if any(tag.name == payload.name for tag in unit.list_tags(book_id)):
                raise HTTPException(status_code=409, detail="Tag already exists")
            unit.create_tags(book_id=book_id, tags=[TagSeed(name=payload.name, color=color)])
            created = next(tag for tag in unit.list_tags(book_id) if tag.name == payload.name)
        return TagResponse(tag_id=created.tag_id, name=created.name, color=created.color)

    @app.get(
        "/api/v1/books/{book_id}/tags/{tag_id}/links",
        response_model=list[TagLinkResponse],
        tags=["content"],
    )
    def list_tag_links(
        book_id: str, tag_id: str, user: StoredUser = Depends(current_user)
    ) -> list[TagLinkResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            if not unit.has_row("tags", book_id=book_id, row_id=tag_id):
                raise HTTPException(status_code=404, detail="Tag not found")
            links = [link for link in unit.list_tag_links(book_id) if link.tag_id == tag_id]
        return [
            TagLinkResponse(
                tag_link_id=link.tag_link_id,
                tag_id=link.tag_id,
                entity_type=link.entity_type,
                entity_id=link.entity_id,
            )
            for link in links
        ]

    @app.post(
        "/api/v1/books/{book_id}/tags/{tag_id}/links",
        response_model=TagLinkResponse,
        tags=["content"],
        status_code=201,
    )
    def link_tag(
        book_id: str,
        tag_id: str,
        payload: TagLinkCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> TagLinkResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            if not unit.has_row("tags", book_id=book_id, row_id=tag_id):
                raise HTTPException(status_code=404, detail="Tag not found")
            tag_link_id = unit.create_tag_link(
                book_id=book_id,
                tag_id=tag_id,
                entity_type=payload.entity_type,
                entity_id=payload.entity_id,
            )
        return TagLinkResponse(
            tag_link_id=tag_link_id,
            tag_id=tag_id,
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
        )

    @app.get(
        "/api/v1/books/{book_id}/characters",
        response_model=list[CharacterResponse],
        tags=["content"],
    )
    def list_characters(
        book_id: str, user: StoredUser = Depends(current_user)
    ) -> list[CharacterResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            characters = unit.list_characters(book_id)
        return [
            CharacterResponse(
                character_id=character.character_id,
                name=character.name,
                color=character.color,
                role=character.role,
                notes=character.notes,
            )
            for character in characters
        ]

    @app.post(
        "/api/v1/books/{book_id}/characters",
        response_model=CharacterResponse,
        tags=["content"],
        status_code=201,
    )
    def create_character(
        book_id: str,
        payload: CharacterCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> CharacterResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            if any(character.name == payload.name for character in unit.list_characters(book_id)):
                raise HTTPException(status_code=409, detail="Character already exists")
            unit.create_characters(
                book_id=book_id,
                characters=[
                    CharacterSeed(
                        name=payload.name,
                        color=payload.color,
                        role=payload.role,
                        notes=payload.notes,
                    )
                ],
            )
            created = next(
                character
                for character in unit.list_characters(book_id)
                if character.name == payload.name
            )
        return CharacterResponse(
            character_id=created.character_id,
            name=created.name,
            color=created.color,
            role=created.role,
            notes=created.notes,
        )

    @app.get(
        "/api/v1/books/{book_id}/grid", response_model=list[GridCellResponse], tags=["content"]
    )
    def list_grid(book_id: str, user: StoredUser = Depends(current_user)) -> list[GridCellResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            cells = unit.list_grid_cells(book_id)
        return [
            GridCellResponse(
                cell_id=cell.cell_id,
                chapter_id=cell.chapter_id,
                theme_id=cell.theme_id,
                presence=cell.presence,
                intensity=cell.intensity,
                note=cell.note,
                thread_role=cell.thread_role,
            )
            for cell in cells
        ]

    @app.post(
        "/api/v1/books/{book_id}/grid",
        response_model=GridCellResponse,
        tags=["content"],
        status_code=201,
    )
    def create_grid_cell(
        book_id: str,
        payload: GridCellCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> GridCellResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            require_row(
                unit,
                "chapters",
                book_id=book_id,
                row_id=payload.chapter_id,
                detail="Chapter not found in book",
            )
            require_row(
                unit,
                "themes",
                book_id=book_id,
                row_id=payload.theme_id,
                detail="Theme not found in book",
            )
            cell_id = unit.create_grid_cell(
                book_id=book_id,
                chapter_id=payload.chapter_id,
                theme_id=payload.theme_id,
                presence=payload.presence,
                intensity=payload.intensity,
                note=payload.note,
                thread_role=payload.thread_role,
            )
        return GridCellResponse(cell_id=cell_id, **payload.model_dump())

    @app.get(
        "/api/v1/books/{book_id}/corkboard/boards",
        response_model=list[BoardResponse],
        tags=["corkboard"],
    )
    def list_boards(book_id: str, user: StoredUser = Depends(current_user)) -> list[BoardResponse]:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction(read_only=True) as unit:
            boards = unit.list_boards(book_id)
        return [
            BoardResponse(
                board_id=board.board_id,
                name=board.name,
                description=board.description,
                sort_order=board.sort_order,
            )
            for board in boards
        ]

    @app.post(
        "/api/v1/books/{book_id}/corkboard/boards",
        response_model=BoardResponse,
        tags=["corkboard"],
        status_code=201,
    )
    def create_board(
        book_id: str,
        payload: BoardCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> BoardResponse:
        owned_book_or_404(book_id=book_id, user=user)
        with store.transaction() as unit:
            sort_order = payload.sort_order
            if sort_order is None:
                sort_order = len(unit.list_boards(book_id))
            board_id = unit.create_board(
                book_id=book_id,
                name=payload.name,
                sort_order=sort_order,
                description=payload.description,
            )
        return BoardResponse(
            board_id=board_id,
            name=payload.name,
            description=payload.description,
            sort_order=sort_order,
        )

    @app.get(
        "/api/v1/books/{book_id}/corkboard/cards",
        response_model=LaneResponse,
        tags=["corkboard"],
    )
    def list_lane_cards(
        book_id: str,
        board_id: str | None = Query(default=None),
        scope: Literal["book", "part", "chapter"] = Query(default="book"),
        part_id: str | None = Query(default=None),
        chapter_id: str | None = Query(default=None),
        user: StoredUser = Depends(current_user),
    ) -> LaneResponse:
        owned_book_or_404(book_id=book_id, user=user)
        lane = LaneKey(board_id=board_id, scope=scope, part_id=part_id, chapter_id=chapter_id)
        with store.transaction(read_only=True) as unit:
            cards = unit.list_lane_cards(book_id, lane)
        return LaneResponse(cards=[_card_response(card) for card in cards])

    @app.post(
        "/api/v1/books/{book_id}/corkboard/cards",
        response_model=CardResponse,
        tags=["corkboard"],
        status_code=201,
    )
    def create_card(
        book_id: str,
        payload: CardCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> CardResponse:
        owned_book_or_404(book_id=book_id, user=user)
        lane = _lane_key(payload)
        with store.transaction() as unit:
            require_lane_rows(unit, book_id=book_id, selector=payload)
            lane_rank = payload.lane_rank
            if lane_rank is None:
                lane_rank = append_rank(
                    [card.lane_rank for card in unit.list_lane_cards(book_id, lane)]
                )
            card_id = unit.create_card(
                book_id=book_id,
                title=payload.title,
                lane_rank=lane_rank,
                scope=lane.scope,
                board_id=lane.board_id,
                chapter_id=lane.chapter_id,
                part_id=lane.part_id,
                summary=payload.summary,
                notes=payload.notes,
                status=payload.status,
                color=payload.color,
                word_estimate=payload.word_estimate,
                x=payload.x,
                y=payload.y,
            )
            card = unit.get_card(book_id=book_id, card_id=card_id)
        if card is None:
            raise HTTPException(status_code=500, detail="Created card could not be loaded")
        return _card_response(card)

    @app.post(
        "/api/v1/books/{book_id}/corkboard/cards/{card_id}/move",
        response_model=CardMoveResponse,
        tags=["corkboard"],
    )
    def move_card(
        book_id: str,
        card_id: str,
        payload: CardMoveRequest,
        user: StoredUser = Depends(current_user),
    ) -> CardMoveResponse:
        owned_book_or_404(book_id=book_id, user=user)
        lane = _lane_key(payload)
        with store.transaction() as unit:
            if unit.get_card(book_id=book_id, card_id=card_id) is None:
                raise HTTPException(status_code=404, detail="Card not found")
            require_lane_rows(unit, book_id=book_id, selector=payload)
            siblings = [
                card for card in unit.list_lane_cards(book_id, lane) if card.card_id != card_id
            ]
            plan = plan_lane_move([card.lane_rank for card in siblings], payload.index)
            if plan.rebalanced_ranks is not None:
                unit.update_card_ranks(
                    {
                        card.card_id: rank
                        for card, rank in zip(siblings, plan.rebalanced_ranks, strict=True)
                    }
                )
            unit.move_card(card_id=card_id, lane=lane, lane_rank=plan.rank)
            moved = unit.get_card(book_id=book_id, card_id=card_id)
        if moved is None:
            raise HTTPException(status_code=404, detail="Card not found")
        logger.info(
            "corkboard.card_moved book_id=%s card_id=%s index=%s rank=%s rebalanced=%s",
            book_id,
            card_id,
            payload.index,
            plan.rank,
            plan.requires_rebalance,
        )
        return CardMoveResponse(card=_card_response(moved), lane_rebalanced=plan.requires_rebalance)

    @app.post(
        "/api/v1/books/{book_id}/corkboard/lanes/rebalance",
        response_model=LaneResponse,
        tags=["corkboard"],
    )
    def rebalance_lane(
        book_id: str,
        payload: LaneRebalanceRequest,
        user: StoredUser = Depends(current_user),
    ) -> LaneResponse:
        owned_book_or_404(book_id=book_id, user=user)
        lane = _lane_key(payload)
        with store.transaction() as unit:
            cards = unit.list_lane_cards(book_id, lane)
            ranks = rebalance(len(cards))
            unit.update_card_ranks(
                {card.card_id: rank for card, rank in zip(cards, ranks, strict=True)}
            )
            cards = unit.list_lane_cards(book_id, lane)
        logger.info("corkboard.lane_rebalanced book_id=%s cards=%s", book_id, len(cards))
        return LaneResponse(cards=[_card_response(card) for card in cards])

    @app.get("/api/v1/books/{book_id}/template", tags=["templates"])
    def export_template(book_id: str, user: StoredUser = Depends(current_user)) -> JSONResponse:
        book = owned_book_or_404(book_id=book_id, user=user)
        try:
            template = export_book_template(store, book_id)
        except BookNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Book not found") from exc
        filename = template_filename(book.title)
        return JSONResponse(
            content=dump_book_template(template),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post(
        "/api/v1/books/{book_id}/template",
        response_model=TemplateImportResponse,
        tags=["templates"],
    )
    def import_template(
        book_id: str,
        payload: Any = Body(...),
        user: StoredUser = Depends(current_user),
    ) -> TemplateImportResponse:
        try:
            summary = import_book_template(store, book_id, user.user_id, payload)
        except InvalidTemplateError as exc:
            raise HTTPException(
                status_code=400,
                detail={"path": exc.path, "message": exc.message},
            ) from exc
        except BookNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Book not found") from exc
        except BookAccessError as exc:
            logger.warning(
                "template.import_denied book_id=%s user_id=%s", book_id, user.user_id
            )
            raise HTTPException(status_code=403, detail="Book belongs to another user") from exc
        return TemplateImportResponse(
            book_id=summary.book_id,
            parts=summary.parts,
            chapters=summary.chapters,
            themes=summary.themes,
            tags=summary.tags,
            characters=summary.characters,
            boards=summary.boards,
            cards=summary.cards,
            grid_cells=summary.grid_cells,
            dropped_grid_cells=summary.dropped_grid_cells,
            description_updated=summary.description_updated,
        )

    return app


app = create_app()

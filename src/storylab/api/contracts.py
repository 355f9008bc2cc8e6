"""Typed contracts shared by API handlers and Python interfaces."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from storylab.core.book_template import SQLITE_INT_MAX, BookTemplate, validate_book_template
from storylab.core.lexorank import is_valid_rank

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{3,8}$")

CardScopeName = Literal["book", "part", "chapter"]
ChapterNumberingName = Literal["per-book", "per-part"]


class ContractModel(BaseModel):
    """Base model config used by all API contracts."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _validate_color(value: str | None) -> str | None:
    if value is not None and not COLOR_PATTERN.match(value):
        raise ValueError("Color must be a hex value such as #94a3b8.")
    return value


class AuthRegisterRequest(ContractModel):
    """Register a user account for local/dev book editing."""

    email: str = Field(min_length=5, max_length=320)
    password: SecretStr = Field(min_length=8, max_length=200)
    display_name: str = Field(min_length=1, max_length=120)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError("Email must be a valid address.")
        return normalized

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: SecretStr) -> SecretStr:
        raw = value.get_secret_value()
        if raw.strip() != raw:
            raise ValueError("Password must not start or end with whitespace.")
        if not any(char.isalpha() for char in raw) or not any(char.isdigit() for char in raw):
            raise ValueError("Password must include at least one letter and one number.")
        return value


class AuthLoginRequest(ContractModel):
    """Authenticate and request an access token."""

    email: str = Field(min_length=5, max_length=320)
    password: SecretStr = Field(min_length=8, max_length=200)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError("Email must be a valid address.")
        return normalized


class AuthTokenResponse(ContractModel):
    """Bearer token payload used by web and Python clients."""

    access_token: str
    token_type: str = Field(default="bearer", pattern=r"^bearer$")
    expires_at_utc: str


class UserResponse(ContractModel):
    """Public user profile returned from authenticated endpoints."""

    user_id: str
    email: str
    display_name: str
    role: str
    created_at_utc: str


class BookCreateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    chapter_numbering: ChapterNumberingName | None = None


class BookResponse(ContractModel):
    book_id: str
    owner_id: str
    title: str
    description: str | None
    chapter_numbering: str | None
    created_at_utc: str
    updated_at_utc: str


class PartCreateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    sort_order: int | None = Field(default=None, ge=0, le=SQLITE_INT_MAX)
    notes: str | None = None


class PartResponse(ContractModel):
    part_id: str
    title: str
    sort_order: int
    notes: str | None


class ChapterCreateRequest(ContractModel):
    """Create a chapter, optionally inside a part of the same book."""

    title: str = Field(min_length=1, max_length=300)
    part_id: str | None = None
    sort_order: int | None = Field(default=None, ge=0, le=SQLITE_INT_MAX)
    content: str = ""
    outline: str | None = None
    outline_pov: str | None = None
    outline_purpose: str | None = None
    outline_estimate: int | None = Field(default=None, ge=0, le=SQLITE_INT_MAX)
    outline_goal: str | None = None
    outline_conflict: str | None = None
    outline_stakes: str | None = None
    custom_outline_fields: dict[str, Any] | None = None


class ChapterResponse(ContractModel):
    chapter_id: str
    part_id: str | None
    title: str
    sort_order: int
    word_count: int
    outline: str | None
    last_edited: str | None


class ThemeCreateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=200)
    color: str
    row_order: int | None = Field(default=None, ge=0, le=SQLITE_INT_MAX)
    kind: str | None = None
    description: str | None = None
    is_hidden: bool = False
    thread_label: str | None = None

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        _validate_color(value)
        return value


class ThemeResponse(ContractModel):
    theme_id: str
    name: str
    color: str
    row_order: int
    kind: str | None
    description: str | None
    is_hidden: bool
    thread_label: str | None


class TagCreateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=120)
    color: str | None = None

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str | None) -> str | None:
        return _validate_color(value)


class TagResponse(ContractModel):
    tag_id: str
    name: str
    color: str


class TagLinkCreateRequest(ContractModel):
    entity_type: Literal["chapter", "part", "character", "theme", "card"]
    entity_id: str = Field(min_length=1)


class TagLinkResponse(ContractModel):
    tag_link_id: str
    tag_id: str
    entity_type: str
    entity_id: str


class CharacterCreateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=200)
    color: str
    role: str | None = None
    notes: str | None = None

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        _validate_color(value)
        return value


class CharacterResponse(ContractModel):
    character_id: str
    name: str
    color: str
    role: str | None
    notes: str | None


class GridCellCreateRequest(ContractModel):
    """Mark how strongly a theme is present in a chapter."""

    chapter_id: str = Field(min_length=1)
    theme_id: str = Field(min_length=1)
    presence: bool = True
    intensity: int = Field(default=0, ge=0, le=10)
    note: str | None = None
    thread_role: str | None = None


class GridCellResponse(ContractModel):
    cell_id: str
    chapter_id: str
    theme_id: str
    presence: bool
    intensity: int
    note: str | None
    thread_role: str | None


class BoardCreateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    sort_order: int | None = Field(default=None, ge=0, le=SQLITE_INT_MAX)


class BoardResponse(ContractModel):
    board_id: str
    name: str
    description: str | None
    sort_order: int


class LaneSelector(ContractModel):
    """Identifies one corkboard lane: board plus scope plus owning part/chapter."""

    board_id: str | None = None
    scope: CardScopeName = "book"
    part_id: str | None = None
    chapter_id: str | None = None

    @model_validator(mode="after")
    def _require_scope_owner(self) -> LaneSelector:
        if self.scope == "part" and self.part_id is None:
            raise ValueError("Part lanes require part_id.")
        if self.scope == "chapter" and self.chapter_id is None:
            raise ValueError("Chapter lanes require chapter_id.")
        return self


class CardCreateRequest(LaneSelector):
    """Create a card; without `lane_rank` it is appended to its lane."""

    title: str = Field(min_length=1, max_length=300)
    summary: str | None = None
    notes: str | None = None
    status: str | None = None
    color: str | None = None
    lane_rank: str | None = Field(default=None, min_length=1, max_length=200)
    word_estimate: int | None = Field(default=None, ge=0, le=SQLITE_INT_MAX)
    x: float | None = None
    y: float | None = None

    @field_validator("lane_rank")
    @classmethod
    def _check_lane_rank(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_rank(value):
            raise ValueError("lane_rank must use characters '0' through 'z' and not end with '0'.")
        return value


class CardMoveRequest(LaneSelector):
    """Move a card to position `index` of the target lane."""

    index: int = Field(ge=0)


class LaneRebalanceRequest(LaneSelector):
    pass


class CardResponse(ContractModel):
    card_id: str
    board_id: str | None
    scope: str
    part_id: str | None
    chapter_id: str | None
    title: str
    summary: str | None
    status: str | None
    color: str | None
    lane_rank: str
    word_estimate: int | None
    x: float | None
    y: float | None


class CardMoveResponse(ContractModel):
    card: CardResponse
    lane_rebalanced: bool


class LaneResponse(ContractModel):
    cards: list[CardResponse]


class TemplateImportResponse(ContractModel):
    """Counts of rows created by a template import."""

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


def save_template_json(path: Path, template: BookTemplate) -> None:
    """Persist a template as readable camelCase JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(template.model_dump_json(by_alias=True, indent=2) + "\n", encoding="utf-8")


def load_template_json(path: Path) -> BookTemplate:
    """Load and validate a template document from disk."""
    return validate_book_template(json.loads(path.read_text(encoding="utf-8")))



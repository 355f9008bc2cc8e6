"""Python-first interface for template files and API interactions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from storylab.api.contracts import (
    BookCreateRequest,
    BookResponse,
    CardCreateRequest,
    CardMoveRequest,
    CardMoveResponse,
    CardResponse,
    TemplateImportResponse,
    load_template_json,
    save_template_json,
)
from storylab.core.book_template import BookTemplate, dump_book_template, validate_book_template


@dataclass(frozen=True)
class AuthSession:
    """Authenticated client session."""

    access_token: str
    api_base_url: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class StoryLabClient:
    """Tiny typed API client for Python users."""

    def __init__(self, api_base_url: str = "http://127.0.0.1:8000") -> None:
        """Initialize client with an API base URL."""
        self._api_base_url = api_base_url.rstrip("/")

    @property
    def api_base_url(self) -> str:
        """Return normalized API base URL."""
        return self._api_base_url

    def register(self, *, email: str, password: str, display_name: str) -> None:
        """Create an account for local/dev bearer-token authentication."""
        response = httpx.post(
            f"{self._api_base_url}/api/v1/auth/register",
            json={
                "email": email,
                "password": password,
                "display_name": display_name,
            },
            timeout=30.0,
        )
        response.raise_for_status()

    def login(self, *, email: str, password: str) -> AuthSession:
        """Authenticate and return a reusable auth session."""
        response = httpx.post(
            f"{self._api_base_url}/api/v1/auth/login",
            json={"email": email, "password": password},
            timeout=30.0,
        )
        response.raise_for_status()
        payload = response.json()
        token = str(payload["access_token"])
        return AuthSession(access_token=token, api_base_url=self._api_base_url)

    def create_book(
        self,
        *,
        session: AuthSession,
        title: str,
        description: str | None = None,
    ) -> BookResponse:
        """Create an empty book owned by the session user."""
        request = BookCreateRequest(title=title, description=description)
        response = httpx.post(
            f"{session.api_base_url}/api/v1/books",
            json=request.model_dump(mode="json", exclude_none=True),
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return BookResponse.model_validate(response.json())

    def create_card(
        self,
        *,
        session: AuthSession,
        book_id: str,
        title: str,
        board_id: str | None = None,
        **fields: Any,
    ) -> CardResponse:
        """Append a card to a corkboard lane."""
        request = CardCreateRequest(title=title, board_id=board_id, **fields)
        response = httpx.post(
            f"{session.api_base_url}/api/v1/books/{book_id}/corkboard/cards",
            json=request.model_dump(mode="json", exclude_none=True),
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return CardResponse.model_validate(response.json())

    def move_card(
        self,
        *,
        session: AuthSession,
        book_id: str,
        card_id: str,
        index: int,
        board_id: str | None = None,
    ) -> CardMoveResponse:
        """Move a card to position `index` of a board's book-scope lane."""
        request = CardMoveRequest(index=index, board_id=board_id)
        response = httpx.post(
            f"{session.api_base_url}/api/v1/books/{book_id}/corkboard/cards/{card_id}/move",
            json=request.model_dump(mode="json", exclude_none=True),
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return CardMoveResponse.model_validate(response.json())

    def export_template(self, *, session: AuthSession, book_id: str) -> BookTemplate:
        """Download a book as a template document."""
        response = httpx.get(
            f"{session.api_base_url}/api/v1/books/{book_id}/template",
            headers=session.headers,
            timeout=60.0,
        )
        response.raise_for_status()
        return validate_book_template(response.json())

    def import_template(
        self,
        *,
        session: AuthSession,
        book_id: str,
        template: BookTemplate,
    ) -> TemplateImportResponse:
        """Replace a book's content with a template document."""
        response = httpx.post(
            f"{session.api_base_url}/api/v1/books/{book_id}/template",
            json=dump_book_template(template),
            headers=session.headers,
            timeout=60.0,
        )
        response.raise_for_status()
        return TemplateImportResponse.model_validate(response.json())


__all__ = [
    "AuthSession",
    "BookTemplate",
    "StoryLabClient",
    "load_template_json",
    "save_template_json",
]

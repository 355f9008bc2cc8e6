"""Public API surface for HTTP serving and Python-first interfaces."""

from storylab.api.app import create_app
from storylab.api.contracts import load_template_json, save_template_json
from storylab.api.python_interface import AuthSession, StoryLabClient
from storylab.core.book_template import BookTemplate

__all__ = [
    "AuthSession",
    "BookTemplate",
    "StoryLabClient",
    "create_app",
    "load_template_json",
    "save_template_json",
]

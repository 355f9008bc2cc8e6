"""CLI entrypoint for serving the storylab HTTP API."""

from __future__ import annotations

import argparse
import os

import uvicorn

from storylab.adapters.observability import configure_runtime_logging
from storylab.adapters.sqlite_book_store import DEFAULT_DB_PATH


def build_arg_parser() -> argparse.ArgumentParser:
    """Create CLI args for the local API server process."""
    parser = argparse.ArgumentParser(description="Serve storylab API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument(
        "--db-path",
        default="",
        help=f"SQLite path for local book persistence (default: {DEFAULT_DB_PATH}).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags and start uvicorn with the app factory path."""
    configure_runtime_logging()
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    db_path = str(parsed.db_path).strip()
    if db_path:
        os.environ["STORYLAB_DB_PATH"] = db_path
    uvicorn.run(
        "storylab.api.app:app",
        host=str(parsed.host),
        port=int(parsed.port),
        reload=bool(parsed.reload),
    )


if __name__ == "__main__":
    main()

"""CLI for exporting, importing, and validating book template JSON."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from storylab.adapters.observability import configure_runtime_logging
from storylab.adapters.sqlite_book_store import DEFAULT_DB_PATH, SQLiteBookStore
from storylab.api.contracts import load_template_json, save_template_json
from storylab.core.book_template import (
    BookTemplateError,
    InvalidTemplateError,
    template_filename,
)
from storylab.core.template_codec import export_book_template, import_book_template


def build_arg_parser() -> argparse.ArgumentParser:
    """Define subcommands for template workflows against a local database."""
    parser = argparse.ArgumentParser(description="Export, import, and validate book templates.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export_parser = subparsers.add_parser("export", help="Write one book as template JSON.")
    export_parser.add_argument("--db-path", default=str(DEFAULT_DB_PATH))
    export_parser.add_argument("--book-id", required=True)
    export_parser.add_argument(
        "--output",
        default="",
        help="Output path. Defaults to <title>-template.json in the working directory.",
    )

    import_parser = subparsers.add_parser(
        "import", help="Replace one book's content with template JSON."
    )
    import_parser.add_argument("--db-path", default=str(DEFAULT_DB_PATH))
    import_parser.add_argument("--book-id", required=True)
    import_parser.add_argument("--user-id", required=True, help="Owner of the target book.")
    import_parser.add_argument("--input", required=True)

    validate_parser = subparsers.add_parser(
        "validate", help="Check template JSON and optionally rewrite it normalized."
    )
    validate_parser.add_argument("--input", required=True)
    validate_parser.add_argument("--output", default="")
    return parser


def _export(parsed: argparse.Namespace) -> None:
    store = SQLiteBookStore(db_path=Path(str(parsed.db_path)))
    template = export_book_template(store, str(parsed.book_id))
    output = str(parsed.output).strip()
    output_path = Path(output) if output else Path(template_filename(template.book.title))
    save_template_json(output_path, template)
    print(f"Exported book {parsed.book_id}: {output_path}")
    print(
        f"Chapters: {len(template.chapters)}  Themes: {len(template.themes)}  "
        f"Cards: {len(template.cards)}  Grid cells: {len(template.grid_cells)}"
    )


def _not_json(input_path: Path, exc: json.JSONDecodeError) -> SystemExit:
    return SystemExit(f"Template is not valid JSON: {input_path}: {exc}")


def _import(parsed: argparse.Namespace) -> None:
    input_path = Path(str(parsed.input))
    try:
        raw = json.loads(input_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise _not_json(input_path, exc) from exc
    store = SQLiteBookStore(db_path=Path(str(parsed.db_path)))
    summary = import_book_template(store, str(parsed.book_id), str(parsed.user_id), raw)
    print(f"Imported template into book {summary.book_id}")
    print(
        f"Parts: {summary.parts}  Chapters: {summary.chapters}  Themes: {summary.themes}  "
        f"Tags: {summary.tags}  Characters: {summary.characters}"
    )
    print(
        f"Boards: {summary.boards}  Cards: {summary.cards}  Grid cells: {summary.grid_cells}  "
        f"Dropped grid cells: {summary.dropped_grid_cells}"
    )


def _validate(parsed: argparse.Namespace) -> None:
    input_path = Path(str(parsed.input))
    try:
        template = load_template_json(input_path)
    except json.JSONDecodeError as exc:
        raise _not_json(input_path, exc) from exc
    print(f"Validated template: {input_path}")
    output = str(parsed.output).strip()
    if output:
        save_template_json(Path(output), template)
        print(f"Wrote normalized JSON: {output}")


def main(argv: list[str] | None = None) -> None:
    """Dispatch one template subcommand."""
    configure_runtime_logging()
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    handlers = {"export": _export, "import": _import, "validate": _validate}
    try:
        handlers[str(parsed.command)](parsed)
    except InvalidTemplateError as exc:
        raise SystemExit(f"Invalid template at {exc.path}: {exc.message}") from exc
    except BookTemplateError as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    main()

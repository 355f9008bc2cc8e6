from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from storylab.adapters.sqlite_book_store import DEFAULT_DB_PATH, SQLiteBookStore
from storylab.cli import api as api_cli
from storylab.cli import template as template_cli


@pytest.fixture(autouse=True)
def _quiet_runtime_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("storylab.cli.api.configure_runtime_logging", lambda: None)
    monkeypatch.setattr("storylab.cli.template.configure_runtime_logging", lambda: None)


def _seeded_store(tmp_path: Path) -> tuple[SQLiteBookStore, str, str]:
    store = SQLiteBookStore(db_path=tmp_path / "books.db")
    user = store.create_user(email="alice@example.com", display_name="Alice", password_hash="h")
    assert user is not None
    book = store.create_book(owner_id=user.user_id, title="Salt Roads")
    with store.transaction() as unit:
        part_id = unit.create_part(book_id=book.book_id, title="Departure", sort_order=0)
        unit.create_chapter(book_id=book.book_id, title="Harbor", sort_order=0, part_id=part_id)
    return store, user.user_id, book.book_id


def test_api_cli_calls_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def fake_run(app: str, host: str, port: int, reload: bool) -> None:
        calls.append({"app": app, "host": host, "port": port, "reload": reload})

    monkeypatch.setattr("storylab.cli.api.uvicorn.run", fake_run)
    api_cli.main(["--host", "0.0.0.0", "--port", "9000", "--reload"])

    assert calls == [
        {
            "app": "storylab.api.app:app",
            "host": "0.0.0.0",
            "port": 9000,
            "reload": True,
        }
    ]


def test_api_cli_sets_db_path_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STORYLAB_DB_PATH", raising=False)
    monkeypatch.setattr("storylab.cli.api.uvicorn.run", lambda *args, **kwargs: None)
    api_cli.main(["--db-path", "work/local/custom.db"])
    assert os.environ["STORYLAB_DB_PATH"] == "work/local/custom.db"


def test_template_cli_export_then_import(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    store, user_id, book_id = _seeded_store(tmp_path)
    output = tmp_path / "out" / "salt.json"

    template_cli.main(
        ["export", "--db-path", str(store.db_path), "--book-id", book_id, "--output", str(output)]
    )
    document = json.loads(output.read_text(encoding="utf-8"))
    assert document["chapters"][0]["partIndex"] == 0

    target = store.create_book(owner_id=user_id, title="Copy")
    template_cli.main(
        [
            "import",
            "--db-path",
            str(store.db_path),
            "--book-id",
            target.book_id,
            "--user-id",
            user_id,
            "--input",
            str(output),
        ]
    )

    captured = capsys.readouterr().out
    assert f"Exported book {book_id}" in captured
    assert f"Imported template into book {target.book_id}" in captured
    assert "Dropped grid cells: 0" in captured
    counts = store.count_content(book_id=target.book_id)
    assert (counts.parts, counts.chapters) == (1, 1)


def test_template_cli_export_defaults_to_title_filename(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store, _, book_id = _seeded_store(tmp_path)
    monkeypatch.chdir(tmp_path)
    template_cli.main(["export", "--db-path", str(store.db_path), "--book-id", book_id])
    assert (tmp_path / "Salt_Roads-template.json").exists()


def test_template_cli_import_rejects_non_owner(tmp_path: Path) -> None:
    store, _, book_id = _seeded_store(tmp_path)
    source = tmp_path / "template.json"
    source.write_text(json.dumps({"book": {"title": "T"}}), encoding="utf-8")

    with pytest.raises(SystemExit, match="Unauthorized"):
        template_cli.main(
            [
                "import",
                "--db-path",
                str(store.db_path),
                "--book-id",
                book_id,
                "--user-id",
                "someone-else",
                "--input",
                str(source),
            ]
        )
    assert store.count_content(book_id=book_id).chapters == 1


def test_template_cli_validate_reports_path_and_normalizes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text(json.dumps({"book": {"title": "T"}, "cards": "x"}), encoding="utf-8")
    with pytest.raises(SystemExit, match="Invalid template at cards"):
        template_cli.main(["validate", "--input", str(broken)])

    valid = tmp_path / "valid.json"
    normalized = tmp_path / "normalized.json"
    valid.write_text(json.dumps({"book": {"title": "T"}, "extra": 1}), encoding="utf-8")
    template_cli.main(["validate", "--input", str(valid), "--output", str(normalized)])

    assert "Validated template" in capsys.readouterr().out
    rewritten = json.loads(normalized.read_text(encoding="utf-8"))
    assert "extra" not in rewritten
    assert rewritten["gridCells"] == []


def test_template_cli_import_rejects_malformed_json(tmp_path: Path) -> None:
    store, user_id, book_id = _seeded_store(tmp_path)
    source = tmp_path / "template.json"
    source.write_text("{not json", encoding="utf-8")
    with pytest.raises(SystemExit, match="not valid JSON"):
        template_cli.main(
            [
                "import",
                "--db-path",
                str(store.db_path),
                "--book-id",
                book_id,
                "--user-id",
                user_id,
                "--input",
                str(source),
            ]
        )


def test_template_cli_validate_rejects_malformed_json(tmp_path: Path) -> None:
    source = tmp_path / "template.json"
    source.write_text('{"book": ', encoding="utf-8")
    with pytest.raises(SystemExit, match="not valid JSON"):
        template_cli.main(["validate", "--input", str(source)])


def test_template_cli_defaults_to_shared_db_path() -> None:
    parser = template_cli.build_arg_parser()
    exported = parser.parse_args(["export", "--book-id", "book-1"])
    imported = parser.parse_args(
        ["import", "--book-id", "book-1", "--user-id", "user-1", "--input", "t.json"]
    )
    assert exported.db_path == str(DEFAULT_DB_PATH)
    assert imported.db_path == str(DEFAULT_DB_PATH)

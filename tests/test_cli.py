"""CLI parser and command behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from declgraph.cli import _build_parser, main
from tests._fixtures.project_builder import ProjectBuilder

CONFIG = """
analyzer: regex
entries:
  - "src/**/*.ts"
cache:
  backend: memory
"""


def _configured(project: ProjectBuilder) -> Path:
    project.write(
        {
            ".declgraph.yml": CONFIG,
            "src/a.ts": "import './b';\nexport const A = gql.query('A');\n",
            "src/b.ts": "const Hidden = gql.model('Hidden');\n",
        }
    )
    return project.path()


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "build"])
    assert args.verbose is True
    assert args.command == "build"
    assert args.path == "."


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["inspect", "some/dir", "--verbose", "--json"])
    assert args.verbose is True
    assert args.command == "inspect"
    assert args.path == "some/dir"
    assert args.json is True


def test_cli_serve_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(["serve", "--port", "9001"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 9001


def test_build_command_prints_summary(project: ProjectBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    root = _configured(project)

    main(["build", str(root)])

    out = capsys.readouterr().out
    assert out.startswith("Built 2 files, 1 edges, 2 definitions, 1 issues")


def test_inspect_json_lists_definitions_and_issues(
    project: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    root = _configured(project)

    main(["inspect", str(root), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["session"]["snapshot_count"] == 2
    assert sorted(item["kind"] for item in payload["definitions"]) == ["model", "operation"]
    assert [issue["code"] for issue in payload["issues"]] == ["NON_EXPORTED_DEFINITION"]


def test_clear_cache_removes_json_records(project: ProjectBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    project.write({".declgraph.yml": "cache:\n  dir: .cache/custom\n"})
    cache_dir = project.path() / ".cache" / "custom"
    (cache_dir / "discovery").mkdir(parents=True)
    (cache_dir / "discovery" / "record.json").write_text("{}", encoding="utf-8")

    main(["clear-cache", str(project.path())])

    assert not cache_dir.exists()
    assert "Cleared cache" in capsys.readouterr().out


def test_builder_errors_exit_with_status_one(project: ProjectBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    project.write({".declgraph.yml": "analyzer: regex\nentries: ['missing/*.ts']\n"})

    with pytest.raises(SystemExit) as excinfo:
        main(["build", str(project.path())])

    assert excinfo.value.code == 1
    assert "ENTRY_NOT_FOUND" in capsys.readouterr().err

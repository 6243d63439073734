"""CLI entrypoints for declgraph commands."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

from .config import create_cache_factory, load_config
from .errors import BuilderError
from .logging import configure_logging
from .session import BuilderSession, BuilderSessionState


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Project root or path to .declgraph.yml (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="declgraph",
        description="Discover declarations and maintain an incremental dependency graph.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print warnings and errors from the engine.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Run a full discovery and evaluation pass.")
    _add_verbose_option(build_parser, suppress_default=True)
    _add_path_argument(build_parser)

    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Build and print the discovered definitions and issues.",
    )
    _add_verbose_option(inspect_parser, suppress_default=True)
    _add_path_argument(inspect_parser)
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON instead of text.",
    )

    clear_parser = subparsers.add_parser("clear-cache", help="Delete every cached discovery record.")
    _add_verbose_option(clear_parser, suppress_default=True)
    _add_path_argument(clear_parser)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service backed by one session.")
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_path_argument(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for declgraph commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=bool(args.quiet))

    try:
        if args.command == "build":
            session = BuilderSession.from_config(load_config(Path(args.path)))
            state = session.build_initial()
            snapshot = session.get_snapshot()
            print(
                f"Built {snapshot.snapshot_count} files, {snapshot.edge_count} edges, "
                f"{len(state.definitions)} definitions, {snapshot.evaluation_issue_count} issues "
                f"(cache: {snapshot.cache_hits} hits, {snapshot.cache_misses} misses)"
            )
        elif args.command == "inspect":
            session = BuilderSession.from_config(load_config(Path(args.path)))
            state = session.build_initial()
            if args.json:
                print(json.dumps(_state_payload(session, state), indent=2, sort_keys=True))
            else:
                _print_state(state)
        elif args.command == "clear-cache":
            config = load_config(Path(args.path))
            create_cache_factory(config).clear_all()
            print(f"Cleared cache at {config.cache_dir}" if config.cache.backend == "json" else "Cache cleared")
        elif args.command == "serve":  # pragma: no cover - integration path
            from .service import run_service

            run_service(args.path, host=args.host, port=args.port)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except BuilderError as exc:
        parser.exit(1, f"{exc.format()}\n")


def _state_payload(session: BuilderSession, state: BuilderSessionState) -> Dict[str, Any]:
    return {
        "session": asdict(session.get_snapshot()),
        "definitions": [
            {
                "canonical_id": definition.canonical_id,
                "kind": definition.kind,
                "export_name": definition.export_name,
            }
            for definition in state.definitions.values()
        ],
        "issues": [
            {
                "code": issue.code,
                "severity": issue.severity,
                "message": issue.message,
                "canonical_id": issue.canonical_id,
            }
            for issue in state.issues
        ],
        "diagnostics": [
            {"code": diagnostic.code, "severity": diagnostic.severity, "message": diagnostic.message}
            for diagnostic in state.diagnostics
        ],
    }


def _print_state(state: BuilderSessionState) -> None:
    for definition in sorted(state.definitions.values(), key=lambda item: item.canonical_id):
        print(f"{definition.kind:<10} {_relativize(definition.canonical_id)}")
    for issue in state.issues:
        print(f"[{issue.severity}] {issue.code}: {issue.message}")
    for diagnostic in state.diagnostics:
        print(f"[{diagnostic.severity}] {diagnostic.code}: {diagnostic.message}")


def _relativize(value: str) -> str:
    cwd = Path.cwd().as_posix().rstrip("/") + "/"
    return value[len(cwd) :] if value.startswith(cwd) else value


if __name__ == "__main__":
    main(sys.argv[1:])

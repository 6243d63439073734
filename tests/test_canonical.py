"""Tests for canonical id construction and scope tracking."""

from __future__ import annotations

import pytest

from declgraph.canonical import CanonicalPathTracker, create_canonical_id, split_canonical_id
from declgraph.errors import CanonicalPathInvalid


def test_create_and_split_canonical_id() -> None:
    canonical = create_canonical_id("/repo/src/a.ts", "query")

    assert canonical == "/repo/src/a.ts::query"
    assert split_canonical_id(canonical) == ("/repo/src/a.ts", "query")


@pytest.mark.parametrize(
    ("file_path", "ast_path"),
    [("src/a.ts", "query"), ("/repo/a.ts", "")],
)
def test_create_canonical_id_rejects_invalid_input(file_path: str, ast_path: str) -> None:
    with pytest.raises(CanonicalPathInvalid):
        create_canonical_id(file_path, ast_path)


def test_split_requires_separator() -> None:
    with pytest.raises(CanonicalPathInvalid):
        split_canonical_id("/repo/a.ts")


def test_module_level_binding_is_top_level() -> None:
    tracker = CanonicalPathTracker("/repo/a.ts")
    handle = tracker.enter_scope("UserQuery", "variable")

    registered = tracker.register_definition()
    tracker.exit_scope(handle)

    assert registered.ast_path == "UserQuery"
    assert registered.is_top_level
    assert registered.root_binding == "UserQuery"
    assert tracker.resolve_canonical_id(registered.ast_path) == "/repo/a.ts::UserQuery"


def test_object_property_stays_top_level() -> None:
    tracker = CanonicalPathTracker("/repo/a.ts")
    outer = tracker.enter_scope("queries", "variable")
    inner = tracker.enter_scope("user", "property")

    registered = tracker.register_definition()

    tracker.exit_scope(inner)
    tracker.exit_scope(outer)
    assert registered.ast_path == "queries.user"
    assert registered.is_top_level


def test_function_scope_is_not_top_level() -> None:
    tracker = CanonicalPathTracker("/repo/a.ts")
    fn = tracker.enter_scope("load", "function")
    var = tracker.enter_scope("query", "variable")

    registered = tracker.register_definition()

    tracker.exit_scope(var)
    tracker.exit_scope(fn)
    assert registered.ast_path == "load.query"
    assert not registered.is_top_level
    assert registered.root_binding is None


def test_anonymous_scopes_are_numbered() -> None:
    tracker = CanonicalPathTracker("/repo/a.ts")
    first = tracker.enter_anonymous_scope()
    assert tracker.register_definition().ast_path == "arrow#0"
    tracker.exit_scope(first)

    second = tracker.enter_anonymous_scope()
    assert tracker.register_definition().ast_path == "arrow#1"
    tracker.exit_scope(second)


def test_duplicate_paths_get_suffixes() -> None:
    tracker = CanonicalPathTracker("/repo/a.ts")
    paths = []
    for _ in range(3):
        handle = tracker.enter_scope("query", "variable")
        paths.append(tracker.register_definition().ast_path)
        tracker.exit_scope(handle)

    assert paths == ["query", "query$1", "query$2"]


def test_exit_scope_out_of_order_raises() -> None:
    tracker = CanonicalPathTracker("/repo/a.ts")
    outer = tracker.enter_scope("a", "function")
    tracker.enter_scope("b", "function")

    with pytest.raises(RuntimeError):
        tracker.exit_scope(outer)
    assert tracker.current_depth() == 2

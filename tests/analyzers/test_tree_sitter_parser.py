"""Tests for the tree-sitter declaration parser."""

from __future__ import annotations

import textwrap

import pytest

from declgraph.analyzers.base import ParserInput
from declgraph.analyzers.tree_sitter import TREE_SITTER_AVAILABLE, TreeSitterParser
from declgraph.models import ModuleAnalysis, ModuleExport, ModuleImport

FILE = "/repo/src/queries.ts"

requires_tree_sitter = pytest.mark.skipif(
    not TREE_SITTER_AVAILABLE, reason="tree-sitter-typescript not installed"
)


def _parse(source: str, file_path: str = FILE) -> ModuleAnalysis:
    parser = TreeSitterParser()
    return parser.parse_module(ParserInput(file_path, textwrap.dedent(source).lstrip("\n")))


def test_disabled_parser_reports_parse_failure() -> None:
    parser = TreeSitterParser(enabled=False)

    analysis = parser.parse_module(ParserInput(FILE, "export const a = gql.query('A');"))

    assert analysis.definitions == ()
    assert [diagnostic.code for diagnostic in analysis.diagnostics] == ["PARSE_FAILED"]


@requires_tree_sitter
def test_imports_and_exports() -> None:
    analysis = _parse(
        """
        import './setup';
        import Default, { a as b } from './a';
        import * as ns from './ns';
        import type { T } from './types';
        export { x as y } from './x';
        export * from './all';
        export function helper() {}
        """
    )

    assert analysis.imports == (
        ModuleImport("./setup", "", "", "side-effect"),
        ModuleImport("./a", "default", "Default", "default"),
        ModuleImport("./a", "a", "b", "named"),
        ModuleImport("./ns", "*", "ns", "namespace"),
        ModuleImport("./types", "T", "T", "named", True),
    )
    assert analysis.exports == (
        ModuleExport("reexport", "y", "x", "./x"),
        ModuleExport("reexport", "*", "*", "./all"),
        ModuleExport("named", "helper", "helper", None),
    )


@requires_tree_sitter
def test_definitions_get_scoped_canonical_ids() -> None:
    analysis = _parse(
        """
        export const UserQuery = gql.query('User', (q) => q.field('id'));
        const queries = {
          list: gql.query('List'),
        };
        export { queries };
        function load() {
          const inner = gql.query('Inner');
          return inner;
        }
        """
    )

    by_path = {definition.ast_path: definition for definition in analysis.definitions}
    assert set(by_path) == {"UserQuery", "queries.list", "load.inner"}

    assert by_path["UserQuery"].canonical_id == f"{FILE}::UserQuery"
    assert by_path["UserQuery"].export_binding == "UserQuery"
    assert by_path["queries.list"].is_top_level
    assert by_path["queries.list"].export_binding == "queries"
    assert not by_path["load.inner"].is_top_level
    assert not by_path["load.inner"].is_exported

    codes = [diagnostic.code for diagnostic in analysis.diagnostics]
    assert codes == ["NON_TOP_LEVEL_DEFINITION"]


@requires_tree_sitter
def test_arrow_function_binding_is_not_top_level() -> None:
    analysis = _parse(
        """
        export const build = () => gql.query('Built');
        """
    )

    (definition,) = analysis.definitions
    assert definition.ast_path == "build"
    assert not definition.is_top_level


@requires_tree_sitter
def test_default_export_definition() -> None:
    analysis = _parse("export default gql.mutation('Save');\n")

    (definition,) = analysis.definitions
    assert definition.ast_path == "default"
    assert definition.export_binding == "default"


@requires_tree_sitter
def test_syntax_errors_are_reported_with_location() -> None:
    analysis = _parse("export const = gql.query(;\n")

    syntax = [diagnostic for diagnostic in analysis.diagnostics if diagnostic.code == "SYNTAX_ERROR"]
    assert len(syntax) == 1
    assert syntax[0].loc is not None


@requires_tree_sitter
def test_tsx_files_use_the_tsx_grammar() -> None:
    analysis = _parse(
        """
        export const View = () => <div>hello</div>;
        export const Q = gql.query('Q');
        """,
        file_path="/repo/src/view.tsx",
    )

    assert [definition.ast_path for definition in analysis.definitions] == ["Q"]
    assert not any(diagnostic.code == "SYNTAX_ERROR" for diagnostic in analysis.diagnostics)

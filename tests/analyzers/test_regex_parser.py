"""Tests for the regex declaration parser."""

from __future__ import annotations

import textwrap

from declgraph.analyzers import RegexParser
from declgraph.analyzers.base import ParserInput
from declgraph.models import ModuleAnalysis, ModuleExport, ModuleImport

FILE = "/repo/src/queries.ts"


def _parse(source: str, parser: RegexParser | None = None) -> ModuleAnalysis:
    parser = parser or RegexParser()
    return parser.parse_module(ParserInput(FILE, textwrap.dedent(source).lstrip("\n")))


def test_collects_imports_in_source_order() -> None:
    analysis = _parse(
        """
        import './polyfill';
        import React, { useState as state, type Props } from 'react';
        import * as helpers from "./helpers";
        import type { User } from './types';
        """
    )

    assert analysis.imports == (
        ModuleImport("./polyfill", "", "", "side-effect"),
        ModuleImport("react", "default", "React", "default"),
        ModuleImport("react", "useState", "state", "named"),
        ModuleImport("react", "Props", "Props", "named", True),
        ModuleImport("./helpers", "*", "helpers", "namespace"),
        ModuleImport("./types", "User", "User", "named", True),
    )


def test_collects_exports_and_reexports() -> None:
    analysis = _parse(
        """
        export * from './all';
        export * as ns from './ns';
        export { a, b as c } from './ab';
        export interface Shape {}
        const local = 1;
        export { local as renamed };
        """
    )

    assert analysis.exports == (
        ModuleExport("reexport", "*", "*", "./all"),
        ModuleExport("reexport", "ns", "*", "./ns"),
        ModuleExport("reexport", "a", "a", "./ab"),
        ModuleExport("reexport", "c", "b", "./ab"),
        ModuleExport("named", "Shape", "Shape", None, True),
        ModuleExport("named", "renamed", "local", None),
    )


def test_extracts_gql_definitions() -> None:
    analysis = _parse(
        """
        import { gql } from './schema';

        export const UserQuery = gql.query('User', (q) => q.field('id'));
        const Hidden = gql.fragment('Hidden', () => ({ nested: call() }));
        export { Hidden as HiddenFragment };
        const other = helper.query('Nope');
        """
    )

    assert [definition.ast_path for definition in analysis.definitions] == ["UserQuery", "Hidden"]
    user, hidden = analysis.definitions
    assert user.canonical_id == f"{FILE}::UserQuery"
    assert user.is_top_level and user.is_exported
    assert user.export_binding == "UserQuery"
    assert user.expression == "gql.query('User', (q) => q.field('id'))"
    assert user.loc is not None and user.loc.start.line == 3
    assert hidden.export_binding == "HiddenFragment"
    assert hidden.expression.endswith("({ nested: call() }))")
    assert analysis.diagnostics == ()


def test_unexported_definition_is_reported_as_not_exported() -> None:
    analysis = _parse("const Draft = gql.query('Draft');\n")

    (draft,) = analysis.definitions
    assert draft.is_top_level
    assert not draft.is_exported
    assert draft.export_binding is None


def test_default_export_definition() -> None:
    analysis = _parse("export default gql.mutation('Save');\n")

    (definition,) = analysis.definitions
    assert definition.ast_path == "default"
    assert definition.export_binding == "default"
    assert ModuleExport("named", "default", None, None) in analysis.exports


def test_custom_identifiers_and_comments() -> None:
    parser = RegexParser(gql_identifiers=("graphql",))
    analysis = _parse(
        """
        // const Ignored = graphql.query('commented');
        /* export const AlsoIgnored = graphql.query('block'); */
        export const Real = graphql.query('real');
        export const NotMine = gql.query('other');
        """,
        parser,
    )

    assert [definition.ast_path for definition in analysis.definitions] == ["Real"]


def test_unterminated_call_produces_diagnostic() -> None:
    analysis = _parse("export const Broken = gql.query('Broken', (q) => q.field(\n")

    assert analysis.definitions == ()
    (diagnostic,) = analysis.diagnostics
    assert diagnostic.code == "PARSE_FAILED"
    assert diagnostic.severity == "error"


def test_signature_depends_on_content_only() -> None:
    parser = RegexParser()
    first = parser.parse_module(ParserInput("/a.ts", "export const x = 1;"))
    second = parser.parse_module(ParserInput("/b.ts", "export const x = 1;"))

    assert first.signature == second.signature
    assert parser.analyzer_version == "regex@1"

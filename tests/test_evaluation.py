"""Tests for module evaluation."""

from __future__ import annotations

from typing import Dict, Tuple

from declgraph.evaluation import (
    DeclarationEvaluator,
    EvaluationContext,
    ModuleEvaluationResult,
    ModuleEvaluator,
    cycle_diagnostics,
    evaluate_all,
)
from declgraph.models import (
    DiscoveredDependency,
    DiscoverySnapshot,
    ModuleAnalysis,
    ModuleDefinition,
    SourceLocation,
    SourcePosition,
)


def _definition(key: str, ast_path: str, expression: str, exported: bool = True, line: int = 1) -> ModuleDefinition:
    return ModuleDefinition(
        canonical_id=f"{key}::{ast_path}",  # type: ignore[arg-type]
        ast_path=ast_path,
        is_top_level=True,
        is_exported=exported,
        expression=expression,
        export_binding=ast_path if exported else None,
        loc=SourceLocation(SourcePosition(line, 1), SourcePosition(line, 10)),
    )


def _snapshot(
    key: str,
    definitions: Tuple[ModuleDefinition, ...] = (),
    dependencies: Tuple[DiscoveredDependency, ...] = (),
) -> DiscoverySnapshot:
    return DiscoverySnapshot(
        file_path=key,
        normalized_key=key,
        analyzer_id="regex",
        signature="sig",
        created_at_ms=0,
        analysis=ModuleAnalysis(file_path=key, signature="sig", definitions=definitions),
        dependencies=dependencies,
    )


class ExplodingEvaluator(ModuleEvaluator):
    evaluator_id = "exploding"

    def evaluate_module(self, snapshot: DiscoverySnapshot, context: EvaluationContext) -> ModuleEvaluationResult:
        raise KeyError("nope")


def test_classify_by_gql_method() -> None:
    evaluator = DeclarationEvaluator()

    assert evaluator.classify("gql.model('User', {})") == "model"
    assert evaluator.classify("gql.querySlice(() => {})") == "slice"
    assert evaluator.classify("gql . mutation('Save')") == "operation"
    assert evaluator.classify("gql.somethingElse()") == "helper"
    assert evaluator.classify("other.query()") == "helper"


def test_evaluate_module_reports_non_exported_and_unresolved() -> None:
    snapshot = _snapshot(
        "/repo/a.ts",
        definitions=(
            _definition("/repo/a.ts", "Public", "gql.query('P')"),
            _definition("/repo/a.ts", "Private", "gql.model('M')", exported=False),
        ),
        dependencies=(
            DiscoveredDependency("./gone", None, False),
            DiscoveredDependency("react", None, True),
        ),
    )
    context = EvaluationContext.from_snapshots({"/repo/a.ts": snapshot})

    result = DeclarationEvaluator().evaluate_module(snapshot, context)

    assert [definition.kind for definition in result.definitions] == ["operation", "model"]
    assert result.definitions[0].export_name == "Public"
    codes = [issue.code for issue in result.issues]
    assert codes == ["UNRESOLVED_IMPORT", "NON_EXPORTED_DEFINITION"]
    assert all(issue.severity == "warning" for issue in result.issues)


def test_import_hook_failure_becomes_issue() -> None:
    snapshot = _snapshot("/repo/a.ts")
    calls = []

    def _import(path: str) -> None:
        calls.append(path)
        raise ImportError("cannot load")

    context = EvaluationContext.from_snapshots({"/repo/a.ts": snapshot}, import_module=_import)

    result = DeclarationEvaluator().evaluate_module(snapshot, context)

    assert calls == ["/repo/a.ts"]
    assert [issue.code for issue in result.issues] == ["MODULE_IMPORT_FAILED"]
    assert result.issues[0].severity == "error"


def test_duplicate_canonical_ids_name_both_locations() -> None:
    first = _snapshot("/repo/a.ts", (_definition("/repo/a.ts", "Q", "gql.query('Q')", line=2),))
    second = _snapshot("/repo/b.ts", (_definition("/repo/a.ts", "Q", "gql.query('Q')", line=7),))
    snapshots: Dict[str, DiscoverySnapshot] = {"/repo/a.ts": first, "/repo/b.ts": second}

    outcome = evaluate_all(
        snapshots,
        ["/repo/a.ts", "/repo/b.ts"],
        DeclarationEvaluator(),
        EvaluationContext.from_snapshots(snapshots),
    )

    assert outcome.definitions["/repo/a.ts::Q"].file_path == "/repo/a.ts"  # type: ignore[index]
    (duplicate,) = outcome.results["/repo/b.ts"].issues
    assert duplicate.code == "DUPLICATE_CANONICAL_ID"
    assert "/repo/a.ts:2:1" in duplicate.message
    assert "/repo/b.ts:7:1" in duplicate.message
    assert outcome.issue_count == 1


def test_known_definitions_seed_uniqueness() -> None:
    snapshot = _snapshot("/repo/b.ts", (_definition("/repo/a.ts", "Q", "gql.query('Q')"),))
    seeded = evaluate_all(
        {"/repo/a.ts": _snapshot("/repo/a.ts", (_definition("/repo/a.ts", "Q", "gql.query('Q')"),))},
        ["/repo/a.ts"],
        DeclarationEvaluator(),
        EvaluationContext.from_snapshots({}),
    )

    outcome = evaluate_all(
        {"/repo/b.ts": snapshot},
        ["/repo/b.ts"],
        DeclarationEvaluator(),
        EvaluationContext.from_snapshots({"/repo/b.ts": snapshot}),
        known_definitions=seeded.definitions,
    )

    assert [issue.code for issue in outcome.results["/repo/b.ts"].issues] == ["DUPLICATE_CANONICAL_ID"]


def test_evaluator_crash_is_contained() -> None:
    snapshot = _snapshot("/repo/a.ts")

    outcome = evaluate_all(
        {"/repo/a.ts": snapshot},
        ["/repo/a.ts", "/repo/missing.ts"],
        ExplodingEvaluator(),
        EvaluationContext.from_snapshots({"/repo/a.ts": snapshot}),
    )

    assert list(outcome.results) == ["/repo/a.ts"]
    (issue,) = outcome.results["/repo/a.ts"].issues
    assert issue.code == "EVALUATION_FAILED"
    assert "KeyError" in issue.message


def test_cycle_diagnostics() -> None:
    (diagnostic,) = cycle_diagnostics([("/a", "/b")])

    assert diagnostic.code == "CIRCULAR_DEPENDENCY"
    assert diagnostic.severity == "warning"
    assert "/a, /b" in diagnostic.message

"""Module evaluation: classify discovered definitions and check id uniqueness."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Tuple

from .canonical import CanonicalId
from .discovery.resolver import resolve_specifier_in
from .logging import get_logger
from .models import DiscoverySnapshot, ModuleDiagnostic, Severity, SourceLocation
from .utils import normalize_path

_LOGGER = get_logger("evaluation")

DefinitionKind = Literal["model", "slice", "operation", "helper"]

_KIND_BY_METHOD: Dict[str, DefinitionKind] = {
    "model": "model",
    "querySlice": "slice",
    "slice": "slice",
    "query": "operation",
    "mutation": "operation",
    "subscription": "operation",
    "operation": "operation",
}

_CALLEE = re.compile(r"\s*([A-Za-z_$][\w$]*)\s*\.\s*([A-Za-z_$][\w$]*)")

ImportModuleHook = Callable[[str], Any]


@dataclass(frozen=True)
class ModuleEvaluationIssue:
    code: str
    message: str
    severity: Severity
    file_path: Optional[str] = None
    canonical_id: Optional[CanonicalId] = None
    loc: Optional[SourceLocation] = None


@dataclass(frozen=True)
class ModuleEvaluationDefinition:
    canonical_id: CanonicalId
    kind: DefinitionKind
    file_path: str
    ast_path: str
    export_name: Optional[str] = None
    loc: Optional[SourceLocation] = None


@dataclass(frozen=True)
class ModuleEvaluationResult:
    file_path: str
    definitions: Tuple[ModuleEvaluationDefinition, ...] = ()
    issues: Tuple[ModuleEvaluationIssue, ...] = ()


@dataclass
class EvaluationContext:
    """Lookups available to evaluators.

    ``import_module`` is an optional hook supplied by the caller to load a
    module for dynamic evaluation; its failures become issues.
    """

    get_snapshot: Callable[[str], Optional[DiscoverySnapshot]]
    resolve: Callable[[str, str], Optional[str]]
    import_module: Optional[ImportModuleHook] = None

    @classmethod
    def from_snapshots(
        cls,
        snapshots: Mapping[str, DiscoverySnapshot],
        import_module: Optional[ImportModuleHook] = None,
    ) -> "EvaluationContext":
        def _get_snapshot(path: str) -> Optional[DiscoverySnapshot]:
            return snapshots.get(normalize_path(path))

        def _resolve(specifier: str, from_path: str) -> Optional[str]:
            return resolve_specifier_in(snapshots.keys(), from_path, specifier)

        return cls(get_snapshot=_get_snapshot, resolve=_resolve, import_module=import_module)


class ModuleEvaluator(ABC):
    """Contract for evaluators run over snapshots in dependency order."""

    evaluator_id = "default"

    @abstractmethod
    def evaluate_module(self, snapshot: DiscoverySnapshot, context: EvaluationContext) -> ModuleEvaluationResult:
        """Evaluate one snapshot. Problems should be returned as issues."""


class DeclarationEvaluator(ModuleEvaluator):
    """Buckets each definition by the ``gql`` method it calls."""

    evaluator_id = "declarations"

    def __init__(self, gql_identifiers: Sequence[str] = ("gql",)) -> None:
        self.gql_identifiers = tuple(gql_identifiers)

    def classify(self, expression: str) -> DefinitionKind:
        match = _CALLEE.match(expression)
        if match is None or match.group(1) not in self.gql_identifiers:
            return "helper"
        return _KIND_BY_METHOD.get(match.group(2), "helper")

    def evaluate_module(self, snapshot: DiscoverySnapshot, context: EvaluationContext) -> ModuleEvaluationResult:
        issues: List[ModuleEvaluationIssue] = []
        definitions: List[ModuleEvaluationDefinition] = []
        file_path = snapshot.file_path

        if context.import_module is not None:
            try:
                context.import_module(file_path)
            except Exception as exc:
                issues.append(
                    ModuleEvaluationIssue(
                        code="MODULE_IMPORT_FAILED",
                        message=f"Failed to import {file_path}: {exc}",
                        severity="error",
                        file_path=file_path,
                    )
                )

        for dependency in snapshot.dependencies:
            if dependency.is_external or dependency.resolved_path is not None:
                continue
            if context.resolve(dependency.specifier, file_path) is None:
                issues.append(
                    ModuleEvaluationIssue(
                        code="UNRESOLVED_IMPORT",
                        message=f"Cannot resolve {dependency.specifier!r} from {file_path}",
                        severity="warning",
                        file_path=file_path,
                    )
                )

        for definition in snapshot.definitions:
            if not definition.is_exported:
                issues.append(
                    ModuleEvaluationIssue(
                        code="NON_EXPORTED_DEFINITION",
                        message=f"{definition.ast_path} is not exported and cannot be referenced",
                        severity="warning",
                        file_path=file_path,
                        canonical_id=definition.canonical_id,
                        loc=definition.loc,
                    )
                )
            definitions.append(
                ModuleEvaluationDefinition(
                    canonical_id=definition.canonical_id,
                    kind=self.classify(definition.expression),
                    file_path=file_path,
                    ast_path=definition.ast_path,
                    export_name=definition.export_binding,
                    loc=definition.loc,
                )
            )

        return ModuleEvaluationResult(file_path=file_path, definitions=tuple(definitions), issues=tuple(issues))


@dataclass
class EvaluationOutcome:
    results: Dict[str, ModuleEvaluationResult] = field(default_factory=dict)
    definitions: Dict[CanonicalId, ModuleEvaluationDefinition] = field(default_factory=dict)

    @property
    def issue_count(self) -> int:
        return sum(len(result.issues) for result in self.results.values())


def describe_location(file_path: str, loc: Optional[SourceLocation]) -> str:
    if loc is None:
        return file_path
    return f"{file_path}:{loc.start.line}:{loc.start.column}"


def evaluate_all(
    snapshots: Mapping[str, DiscoverySnapshot],
    order: Sequence[str],
    evaluator: ModuleEvaluator,
    context: EvaluationContext,
    *,
    known_definitions: Optional[Mapping[CanonicalId, ModuleEvaluationDefinition]] = None,
) -> EvaluationOutcome:
    """Evaluate ``order`` one file at a time.

    ``known_definitions`` seeds the uniqueness check with definitions kept
    from an earlier evaluation. The first definition of a canonical id wins
    the index; later ones are reported as ``DUPLICATE_CANONICAL_ID`` errors.
    """
    outcome = EvaluationOutcome(definitions=dict(known_definitions or {}))
    for key in order:
        snapshot = snapshots.get(key)
        if snapshot is None:
            continue
        result = _evaluate_guarded(evaluator, snapshot, context)
        duplicates: List[ModuleEvaluationIssue] = []
        for definition in result.definitions:
            existing = outcome.definitions.get(definition.canonical_id)
            if existing is None:
                outcome.definitions[definition.canonical_id] = definition
                continue
            first = describe_location(existing.file_path, existing.loc)
            second = describe_location(definition.file_path, definition.loc)
            duplicates.append(
                ModuleEvaluationIssue(
                    code="DUPLICATE_CANONICAL_ID",
                    message=f"Duplicate canonical id {definition.canonical_id}: first defined at {first}, again at {second}",
                    severity="error",
                    file_path=definition.file_path,
                    canonical_id=definition.canonical_id,
                    loc=definition.loc,
                )
            )
        if duplicates:
            result = replace(result, issues=result.issues + tuple(duplicates))
        outcome.results[key] = result
    return outcome


def _evaluate_guarded(
    evaluator: ModuleEvaluator, snapshot: DiscoverySnapshot, context: EvaluationContext
) -> ModuleEvaluationResult:
    try:
        return evaluator.evaluate_module(snapshot, context)
    except Exception as exc:
        _LOGGER.warning("Evaluator %s failed on %s: %s", evaluator.evaluator_id, snapshot.file_path, exc)
        return ModuleEvaluationResult(
            file_path=snapshot.file_path,
            issues=(
                ModuleEvaluationIssue(
                    code="EVALUATION_FAILED",
                    message=f"{type(exc).__name__}: {exc}",
                    severity="error",
                    file_path=snapshot.file_path,
                ),
            ),
        )


def cycle_diagnostics(cycles: Sequence[Tuple[str, ...]]) -> List[ModuleDiagnostic]:
    """One warning per strongly connected component."""
    return [
        ModuleDiagnostic(
            code="CIRCULAR_DEPENDENCY",
            message="Circular dependency between " + ", ".join(members),
            severity="warning",
        )
        for members in cycles
    ]


__all__ = [
    "DeclarationEvaluator",
    "DefinitionKind",
    "EvaluationContext",
    "EvaluationOutcome",
    "ImportModuleHook",
    "ModuleEvaluationDefinition",
    "ModuleEvaluationIssue",
    "ModuleEvaluationResult",
    "ModuleEvaluator",
    "cycle_diagnostics",
    "evaluate_all",
]

"""Builder session: initial builds and incremental updates over the graph."""

from __future__ import annotations

import os
import threading
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Literal, Mapping, Optional, Sequence, Set, Tuple

from .analyzers import get_parser
from .analyzers.base import DeclarationParser
from .canonical import CanonicalId
from .config import DeclGraphConfig, create_cache_factory
from .discovery import CancellationToken, Discoverer, resolve_module_specifier
from .errors import EntryNotFoundError, SchemaMismatchError
from .evaluation import (
    DeclarationEvaluator,
    EvaluationContext,
    ImportModuleHook,
    ModuleEvaluationDefinition,
    ModuleEvaluationIssue,
    ModuleEvaluationResult,
    ModuleEvaluator,
    cycle_diagnostics,
    evaluate_all,
)
from .fingerprint import FingerprintTracker
from .graph import DependencyGraph
from .logging import get_logger
from .models import DiscoverySnapshot, ModuleDiagnostic
from .stores import DISCOVERY_CACHE_VERSION, CacheFactory, DiscoveryCache
from .utils import PathLike, normalize_path

_LOGGER = get_logger("session")

BuildMode = Literal["initial", "incremental", "noop", "fallback"]


def _normalize_all(paths: Iterable[PathLike]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(normalize_path(path) for path in paths))


@dataclass(frozen=True)
class BuilderChangeSet:
    """Files added, modified or removed since the previous build."""

    added: Tuple[str, ...] = ()
    modified: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "added", _normalize_all(self.added))
        object.__setattr__(self, "modified", _normalize_all(self.modified))
        object.__setattr__(self, "removed", _normalize_all(self.removed))

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)


@dataclass(frozen=True)
class BuilderSessionState:
    generation: int
    entrypoints: Tuple[str, ...]
    snapshots: Mapping[str, DiscoverySnapshot]
    graph: DependencyGraph
    evaluation: Mapping[str, ModuleEvaluationResult]
    definitions: Mapping[CanonicalId, ModuleEvaluationDefinition]
    diagnostics: Tuple[ModuleDiagnostic, ...]
    schema_hash: Optional[str]
    analyzer_version: str

    @property
    def issues(self) -> List[ModuleEvaluationIssue]:
        return [issue for result in self.evaluation.values() for issue in result.issues]

    @property
    def evaluation_issue_count(self) -> int:
        return sum(len(result.issues) for result in self.evaluation.values())


@dataclass(frozen=True)
class BuildResult:
    """Summary of the latest state transition."""

    mode: BuildMode
    affected: FrozenSet[str] = frozenset()
    removed: FrozenSet[str] = frozenset()
    pruned: FrozenSet[str] = frozenset()
    cache_hits: int = 0
    cache_misses: int = 0
    cache_skips: int = 0


@dataclass(frozen=True)
class SessionSnapshot:
    generation: int
    snapshot_count: int
    edge_count: int
    evaluation_issue_count: int
    diagnostic_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_skips: int = 0
    entrypoints: Tuple[str, ...] = field(default_factory=tuple)


class BuilderSession:
    """Owns discovery, the dependency graph and evaluation across builds.

    ``build_initial`` walks everything; ``update`` applies a changeset and
    re-evaluates only the files that transitively depend on what changed.
    Calls are serialised, so one session can back a long-running service.
    """

    def __init__(
        self,
        *,
        parser: DeclarationParser,
        cache_factory: CacheFactory,
        entrypoints: Sequence[str] = (),
        evaluator: Optional[ModuleEvaluator] = None,
        schema_hash: Optional[str] = None,
        analyzer_version: Optional[str] = None,
        exclude: Sequence[str] = (),
        cwd: Optional[PathLike] = None,
        max_workers: int = 1,
        import_module: Optional[ImportModuleHook] = None,
        strict: bool = False,
        fingerprints: Optional[FingerprintTracker] = None,
    ) -> None:
        self.parser = parser
        self.evaluator = evaluator if evaluator is not None else DeclarationEvaluator(parser.gql_identifiers)
        self.cache_factory = cache_factory
        self.schema_hash = schema_hash
        self.analyzer_version = analyzer_version or parser.analyzer_version
        self.exclude = tuple(exclude)
        self.cwd = cwd
        self.max_workers = max_workers
        self.strict = strict
        self._import_module = import_module
        self._fingerprints = fingerprints if fingerprints is not None else FingerprintTracker()
        self._entrypoints: Tuple[str, ...] = tuple(entrypoints)
        self._state: Optional[BuilderSessionState] = None
        self._last_result: Optional[BuildResult] = None
        self._lock = threading.RLock()
        self._configure_discovery()

    @classmethod
    def from_config(cls, config: DeclGraphConfig, **overrides: object) -> "BuilderSession":
        options: Dict[str, object] = {
            "parser": get_parser(config.analyzer, gql_identifiers=config.gql_identifiers),
            "cache_factory": create_cache_factory(config),
            "entrypoints": tuple(config.entries),
            "schema_hash": config.schema_hash,
            "exclude": tuple(config.exclude),
            "cwd": config.root,
            "max_workers": config.discovery.max_workers,
        }
        options.update(overrides)
        return cls(**options)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Public API

    @property
    def state(self) -> Optional[BuilderSessionState]:
        return self._state

    @property
    def last_result(self) -> Optional[BuildResult]:
        return self._last_result

    @property
    def entrypoints(self) -> Tuple[str, ...]:
        return self._entrypoints

    @property
    def cache(self) -> DiscoveryCache:
        return self._cache

    def build_initial(
        self,
        entry_paths: Optional[Sequence[str]] = None,
        *,
        token: Optional[CancellationToken] = None,
    ) -> BuilderSessionState:
        """Discover, graph and evaluate everything reachable from the entries."""
        with self._lock:
            if entry_paths is not None:
                self._entrypoints = tuple(entry_paths)
            return self._full_build("initial", token)

    def update(
        self,
        changeset: BuilderChangeSet,
        *,
        schema_hash: Optional[str] = None,
        analyzer_version: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> BuilderSessionState:
        """Apply ``changeset`` to the current state.

        Falls back to a full build when there is no previous state or when the
        schema hash or analyzer version no longer match it.
        """
        with self._lock:
            if schema_hash is not None:
                self.schema_hash = schema_hash
            if analyzer_version is not None and analyzer_version != self.analyzer_version:
                self.analyzer_version = analyzer_version
                self._configure_discovery()

            previous = self._state
            if previous is None:
                return self._full_build("initial", token)

            mismatch = self._version_mismatch(previous)
            if mismatch is not None:
                field_name, expected, actual = mismatch
                if self.strict:
                    raise SchemaMismatchError(field_name, expected, actual)
                _LOGGER.info("%s changed (%s -> %s); running a full build", field_name, expected, actual)
                return self._full_build("fallback", token)

            if changeset.is_empty():
                self._last_result = BuildResult(mode="noop")
                return previous

            return self._incremental(previous, changeset, token)

    def update_entrypoints(
        self,
        to_add: Sequence[str] = (),
        to_remove: Sequence[str] = (),
    ) -> Optional[BuilderSessionState]:
        """Change the entry list; rebuilds incrementally when a state exists."""
        with self._lock:
            removing = set(to_remove)
            entries = [entry for entry in self._entrypoints if entry not in removing]
            entries.extend(entry for entry in to_add if entry not in entries)
            self._entrypoints = tuple(entries)
            if self._state is None:
                return None
            return self._incremental(self._state, BuilderChangeSet(), None)

    def get_snapshot(self) -> SessionSnapshot:
        """Read-only counters describing the current state."""
        state = self._state
        result = self._last_result
        if state is None:
            return SessionSnapshot(
                generation=0,
                snapshot_count=0,
                edge_count=0,
                evaluation_issue_count=0,
                entrypoints=self._entrypoints,
            )
        return SessionSnapshot(
            generation=state.generation,
            snapshot_count=len(state.snapshots),
            edge_count=state.graph.edge_count,
            evaluation_issue_count=state.evaluation_issue_count,
            diagnostic_count=len(state.diagnostics),
            cache_hits=result.cache_hits if result else 0,
            cache_misses=result.cache_misses if result else 0,
            cache_skips=result.cache_skips if result else 0,
            entrypoints=state.entrypoints,
        )

    # ------------------------------------------------------------------
    # Builds

    def _configure_discovery(self) -> None:
        # The analyzer version is part of the cache format so entries written
        # by another parser build are never served.
        self._cache = DiscoveryCache(
            self.cache_factory,
            self.parser.analyzer_id,
            self.evaluator.evaluator_id,
            version=f"{DISCOVERY_CACHE_VERSION}+{self.analyzer_version}",
        )
        self._discoverer = Discoverer(
            self.parser,
            self._cache,
            fingerprints=self._fingerprints,
            max_workers=self.max_workers,
            exclude=self.exclude,
            cwd=self.cwd,
        )

    def _version_mismatch(self, previous: BuilderSessionState) -> Optional[Tuple[str, Optional[str], Optional[str]]]:
        if previous.schema_hash != self.schema_hash:
            return "schema_hash", previous.schema_hash, self.schema_hash
        if previous.analyzer_version != self.analyzer_version:
            return "analyzer_version", previous.analyzer_version, self.analyzer_version
        return None

    def _full_build(self, mode: BuildMode, token: Optional[CancellationToken]) -> BuilderSessionState:
        if not self._entrypoints:
            raise EntryNotFoundError((), "No entry paths configured")
        result = self._discoverer.discover(self._entrypoints, token=token)
        snapshots = result.by_key()
        graph = DependencyGraph.build(snapshots.values())
        order, cycles = graph.topological_order()
        outcome = evaluate_all(snapshots, order, self.evaluator, self._context(snapshots))
        state = self._commit(snapshots, graph, outcome.results, outcome.definitions, cycles)
        self._last_result = BuildResult(
            mode=mode,
            affected=frozenset(order),
            cache_hits=result.cache_hits,
            cache_misses=result.cache_misses,
            cache_skips=result.cache_skips,
        )
        return state

    def _incremental(
        self,
        previous: BuilderSessionState,
        changeset: BuilderChangeSet,
        token: Optional[CancellationToken],
    ) -> BuilderSessionState:
        removed = set(changeset.removed)
        changed = (set(changeset.added) | set(changeset.modified)) - removed

        for key in removed:
            self._cache.delete(key)
            self._fingerprints.invalidate(key)
        for key in changed:
            self._fingerprints.invalidate(key)

        base = {key: snapshot for key, snapshot in previous.snapshots.items() if key not in removed}
        rescan = set(changed)
        for key in removed:
            rescan.update(dependent for dependent in previous.graph.dependents_of(key) if dependent in base)
        if changeset.added:
            rescan.update(self._resolution_changed(base))

        result = self._discoverer.discover(
            self._entrypoints,
            invalidated=rescan,
            known=set(base) - rescan,
            roots=sorted(key for key in rescan if os.path.isfile(key)),
            token=token,
        )
        refreshed = result.by_key()

        vanished = {key for key in rescan if key in base and key not in refreshed}
        for key in vanished:
            self._cache.delete(key)
            base.pop(key, None)

        snapshots: Dict[str, DiscoverySnapshot] = {**base, **refreshed}
        reachable = self._reachable(result.entries, snapshots)
        pruned = {key for key in snapshots if key not in reachable}
        for key in pruned:
            snapshots.pop(key)
        snapshots = {key: snapshots[key] for key in sorted(snapshots)}
        graph = DependencyGraph.build(snapshots.values())

        reshaped = {
            key
            for key, snapshot in refreshed.items()
            if key not in previous.snapshots
            or previous.snapshots[key].signature != snapshot.signature
            or previous.snapshots[key].dependencies != snapshot.dependencies
        }
        affected = previous.graph.affected_by(changed | removed | vanished | pruned)
        affected |= graph.affected_by(changed | reshaped)
        affected &= set(snapshots)

        kept = {
            key: evaluation
            for key, evaluation in previous.evaluation.items()
            if key in snapshots and key not in affected
        }
        known_definitions = {
            canonical_id: definition
            for canonical_id, definition in previous.definitions.items()
            if definition.file_path in kept
        }
        order, cycles = graph.topological_order()
        evaluation_order = [key for key in order if key in affected]
        outcome = evaluate_all(
            snapshots,
            evaluation_order,
            self.evaluator,
            self._context(snapshots),
            known_definitions=known_definitions,
        )
        evaluation: Dict[str, ModuleEvaluationResult] = {}
        for key in snapshots:
            if key in outcome.results:
                evaluation[key] = outcome.results[key]
            elif key in kept:
                evaluation[key] = kept[key]

        state = self._commit(snapshots, graph, evaluation, outcome.definitions, cycles)
        self._last_result = BuildResult(
            mode="incremental",
            affected=frozenset(evaluation_order),
            removed=frozenset(removed | vanished),
            pruned=frozenset(pruned),
            cache_hits=result.cache_hits,
            cache_misses=result.cache_misses,
            cache_skips=result.cache_skips,
        )
        _LOGGER.info(
            "Incremental update: %d changed, %d removed, %d re-evaluated",
            len(changed),
            len(removed | vanished),
            len(evaluation_order),
        )
        return state

    # ------------------------------------------------------------------
    # Helpers

    def _commit(
        self,
        snapshots: Mapping[str, DiscoverySnapshot],
        graph: DependencyGraph,
        evaluation: Mapping[str, ModuleEvaluationResult],
        definitions: Mapping[CanonicalId, ModuleEvaluationDefinition],
        cycles: Sequence[Tuple[str, ...]],
    ) -> BuilderSessionState:
        for members in cycles:
            _LOGGER.warning("Circular dependency between %s", ", ".join(members))
        generation = self._state.generation + 1 if self._state is not None else 1
        state = BuilderSessionState(
            generation=generation,
            entrypoints=self._entrypoints,
            snapshots=MappingProxyType(dict(snapshots)),
            graph=graph,
            evaluation=MappingProxyType(dict(evaluation)),
            definitions=MappingProxyType(dict(definitions)),
            diagnostics=tuple(cycle_diagnostics(cycles)),
            schema_hash=self.schema_hash,
            analyzer_version=self.analyzer_version,
        )
        self._state = state
        return state

    def _context(self, snapshots: Mapping[str, DiscoverySnapshot]) -> EvaluationContext:
        return EvaluationContext.from_snapshots(snapshots, import_module=self._import_module)

    @staticmethod
    def _resolution_changed(snapshots: Mapping[str, DiscoverySnapshot]) -> Set[str]:
        """Files whose relative imports now resolve to a different file, or newly resolve."""
        found: Set[str] = set()
        for key, snapshot in snapshots.items():
            for dependency in snapshot.dependencies:
                if dependency.is_external:
                    continue
                if resolve_module_specifier(key, dependency.specifier) != dependency.resolved_path:
                    found.add(key)
                    break
        return found

    @staticmethod
    def _reachable(entries: Sequence[str], snapshots: Mapping[str, DiscoverySnapshot]) -> Set[str]:
        seen: Set[str] = set()
        queue = deque(key for key in entries if key in snapshots)
        while queue:
            key = queue.popleft()
            if key in seen:
                continue
            seen.add(key)
            queue.extend(
                dependency
                for dependency in snapshots[key].local_dependency_paths()
                if dependency in snapshots and dependency not in seen
            )
        return seen


__all__ = [
    "BuildResult",
    "BuilderChangeSet",
    "BuilderSession",
    "BuilderSessionState",
    "SessionSnapshot",
]

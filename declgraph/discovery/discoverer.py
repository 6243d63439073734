"""Import-graph walk producing cached discovery snapshots."""

from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Collection, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..analyzers.base import DeclarationParser, ParserInput
from ..errors import DiscoveryCancelled
from ..fingerprint import FingerprintTracker
from ..logging import get_logger
from ..models import DiscoveredDependency, DiscoverySnapshot, ModuleAnalysis, ModuleDiagnostic
from ..stores.discovery_cache import DiscoveryCache
from ..utils import PathLike, normalize_path, now_ms
from .entry_paths import resolve_entry_paths
from .resolver import build_dependencies

_LOGGER = get_logger("discovery")

_POLL_INTERVAL = 0.05

_HIT = "hit"
_MISS = "miss"
_SKIP = "skip"


class CancellationToken:
    """Caller-owned flag checked between files; an optional monotonic deadline."""

    def __init__(self, deadline: Optional[float] = None) -> None:
        self.deadline = deadline
        self._event = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def raise_if_cancelled(self, visited: int = 0) -> None:
        if not self.cancelled:
            return
        reason = "deadline exceeded" if not self._event.is_set() else "cancelled by caller"
        raise DiscoveryCancelled(f"Discovery stopped: {reason}", visited=visited)


@dataclass(frozen=True)
class DiscoveryResult:
    snapshots: Tuple[DiscoverySnapshot, ...]
    cache_hits: int
    cache_misses: int
    cache_skips: int = 0
    entries: Tuple[str, ...] = ()

    def by_key(self) -> Dict[str, DiscoverySnapshot]:
        return {snapshot.normalized_key: snapshot for snapshot in self.snapshots}


class _Tally:
    def __init__(self) -> None:
        self.snapshots: Dict[str, DiscoverySnapshot] = {}
        self.counts = {_HIT: 0, _MISS: 0, _SKIP: 0}

    def add(self, snapshot: DiscoverySnapshot, outcome: str) -> None:
        self.snapshots[snapshot.normalized_key] = snapshot
        self.counts[outcome] += 1

    def result(self) -> DiscoveryResult:
        ordered = tuple(self.snapshots[key] for key in sorted(self.snapshots))
        return DiscoveryResult(
            snapshots=ordered,
            cache_hits=self.counts[_HIT],
            cache_misses=self.counts[_MISS],
            cache_skips=self.counts[_SKIP],
        )


class Discoverer:
    """Fingerprints, parses and caches every file reachable from the entries.

    Files listed in ``invalidated`` bypass the cache. Files listed in
    ``known`` are treated as already visited: neither processed nor
    traversed. Only entry resolution and filesystem or cache I/O failures are
    fatal; parser problems end up as diagnostics on the file's snapshot.
    """

    def __init__(
        self,
        parser: DeclarationParser,
        cache: DiscoveryCache,
        *,
        fingerprints: Optional[FingerprintTracker] = None,
        max_workers: int = 1,
        exclude: Sequence[str] = (),
        cwd: Optional[PathLike] = None,
    ) -> None:
        self.parser = parser
        self.cache = cache
        self.fingerprints = fingerprints if fingerprints is not None else FingerprintTracker()
        self.max_workers = max(1, int(max_workers))
        self.exclude = tuple(exclude)
        self.cwd = cwd

    def discover(
        self,
        entry_paths: Sequence[str],
        *,
        invalidated: Iterable[PathLike] = (),
        known: Iterable[str] = (),
        roots: Iterable[PathLike] = (),
        token: Optional[CancellationToken] = None,
    ) -> DiscoveryResult:
        """Walk from ``entry_paths`` plus any extra absolute ``roots``."""
        entries = resolve_entry_paths(entry_paths, self.exclude, cwd=self.cwd)
        invalidated_keys = {normalize_path(path) for path in invalidated}
        visited: Set[str] = {normalize_path(path) for path in known}
        seeds = list(entries)
        seeds.extend(key for key in (normalize_path(root) for root in roots) if key not in entries)

        if self.max_workers > 1:
            tally = self._discover_parallel(seeds, invalidated_keys, visited, token)
        else:
            tally = self._discover_sequential(seeds, invalidated_keys, visited, token)

        result = replace(tally.result(), entries=tuple(entries))
        _LOGGER.info(
            "Discovered %d files (%d cache hits, %d misses, %d skipped)",
            len(result.snapshots),
            result.cache_hits,
            result.cache_misses,
            result.cache_skips,
        )
        return result

    # ------------------------------------------------------------------
    # Walk strategies

    def _discover_sequential(
        self,
        entries: List[str],
        invalidated: Collection[str],
        visited: Set[str],
        token: Optional[CancellationToken],
    ) -> _Tally:
        tally = _Tally()
        stack = list(reversed(entries))
        while stack:
            if token is not None:
                token.raise_if_cancelled(len(tally.snapshots))
            key = normalize_path(stack.pop())
            if key in visited:
                continue
            visited.add(key)
            processed = self._process(key, invalidated)
            if processed is None:
                continue
            snapshot, outcome = processed
            tally.add(snapshot, outcome)
            for dependency in reversed(snapshot.local_dependency_paths()):
                if dependency not in visited:
                    stack.append(dependency)
        return tally

    def _discover_parallel(
        self,
        entries: List[str],
        invalidated: Collection[str],
        visited: Set[str],
        token: Optional[CancellationToken],
    ) -> _Tally:
        tally = _Tally()
        lock = threading.Lock()
        pending: Dict[Future, str] = {}

        def _claim(key: str) -> bool:
            with lock:
                if key in visited:
                    return False
                visited.add(key)
                return True

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:

            def _schedule(path: str) -> None:
                key = normalize_path(path)
                if _claim(key):
                    pending[executor.submit(self._process, key, invalidated)] = key

            try:
                for entry in entries:
                    _schedule(entry)
                while pending:
                    if token is not None:
                        token.raise_if_cancelled(len(tally.snapshots))
                    timeout = _POLL_INTERVAL if token is not None else None
                    done, _ = wait(list(pending), timeout=timeout, return_when=FIRST_COMPLETED)
                    for future in done:
                        pending.pop(future)
                        processed = future.result()
                        if processed is None:
                            continue
                        snapshot, outcome = processed
                        tally.add(snapshot, outcome)
                        for dependency in snapshot.local_dependency_paths():
                            _schedule(dependency)
            except BaseException:
                for future in pending:
                    future.cancel()
                raise
        return tally

    # ------------------------------------------------------------------
    # Per-file work

    def _process(self, key: str, invalidated: Collection[str]) -> Optional[Tuple[DiscoverySnapshot, str]]:
        path = Path(key)
        if not path.is_file():
            _LOGGER.debug("Skipping missing file %s", key)
            return None

        if key in invalidated:
            self.fingerprints.invalidate(key)
            outcome = _SKIP
        else:
            outcome = _MISS

        raw: Optional[bytes] = None
        fingerprint = self.fingerprints.current(key) if outcome == _MISS else None
        if fingerprint is None:
            fingerprint, raw = self.fingerprints.read(key)

        if outcome == _MISS:
            cached = self.cache.load(key, fingerprint.content_hash)
            if cached is not None:
                dependencies = self._resolve_dependencies(key, cached.analysis)
                if dependencies != cached.dependencies:
                    # Same content, different neighbours on disk.
                    cached = replace(cached, dependencies=dependencies, created_at_ms=now_ms())
                    self.cache.store(cached)
                return cached, _HIT

        if raw is None:
            # The signature and the parsed source must come from the same read.
            fingerprint, raw = self.fingerprints.read(key)
        analysis = self._analyze(key, raw, fingerprint.content_hash)
        snapshot = DiscoverySnapshot(
            file_path=key,
            normalized_key=key,
            analyzer_id=self.parser.analyzer_id,
            signature=fingerprint.content_hash,
            created_at_ms=now_ms(),
            analysis=analysis,
            dependencies=self._resolve_dependencies(key, analysis),
            diagnostics=analysis.diagnostics,
            imports=analysis.imports,
            exports=analysis.exports,
        )
        self.cache.store(snapshot)
        self._notify(snapshot)
        return snapshot, outcome

    def _analyze(self, key: str, raw: bytes, content_hash: str) -> ModuleAnalysis:
        try:
            source = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            return ModuleAnalysis(
                file_path=key,
                signature=content_hash,
                diagnostics=(ModuleDiagnostic(code="READ_FAILED", message=f"File is not valid UTF-8: {exc}"),),
            )

        previous = self.cache.peek(key)
        try:
            return self.parser.parse_module(ParserInput(file_path=key, source=source, previous_snapshot=previous))
        except Exception as exc:
            _LOGGER.warning("Parser %s failed on %s: %s", self.parser.analyzer_id, key, exc)
            return ModuleAnalysis(
                file_path=key,
                signature=content_hash,
                diagnostics=(
                    ModuleDiagnostic(code="PARSER_CRASHED", message=f"{type(exc).__name__}: {exc}"),
                ),
            )

    def _resolve_dependencies(self, key: str, analysis: ModuleAnalysis) -> Tuple[DiscoveredDependency, ...]:
        try:
            specifiers = self.parser.resolve_relative_dependencies(analysis)
        except Exception as exc:
            _LOGGER.warning("Parser %s could not list dependencies of %s: %s", self.parser.analyzer_id, key, exc)
            specifiers = None
        return build_dependencies(key, analysis, specifiers)

    def _notify(self, snapshot: DiscoverySnapshot) -> None:
        try:
            self.parser.on_snapshot_created(snapshot)
        except Exception:
            _LOGGER.exception("on_snapshot_created hook failed for %s", snapshot.normalized_key)


__all__ = ["CancellationToken", "Discoverer", "DiscoveryResult"]

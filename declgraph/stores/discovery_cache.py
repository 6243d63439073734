"""Snapshot cache used by the discoverer."""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

from ..models import DiscoverySnapshot
from ..utils import PathLike, normalize_path
from .base import CacheFactory, CacheStore

# Bump whenever the shape of DiscoverySnapshot (or anything it nests) changes.
DISCOVERY_CACHE_VERSION = "discovery-snapshot:1"


class DiscoveryCache:
    """Stores one snapshot per normalized file path.

    The namespace pairs the analyzer with the evaluator so caches produced by
    different parsers never mix on the same storage root.
    """

    def __init__(
        self,
        factory: CacheFactory,
        analyzer_id: str,
        evaluator_id: str = "default",
        version: str = DISCOVERY_CACHE_VERSION,
    ) -> None:
        self.analyzer_id = analyzer_id
        self.evaluator_id = evaluator_id
        self.version = version
        self._store: CacheStore[DiscoverySnapshot] = factory.create_store(
            ("discovery", analyzer_id, evaluator_id), DiscoverySnapshot, version
        )

    def load(self, file_path: PathLike, signature: str) -> Optional[DiscoverySnapshot]:
        """Return the cached snapshot when its signature matches."""
        snapshot = self._store.load(normalize_path(file_path))
        if snapshot is None or snapshot.signature != signature:
            return None
        return snapshot

    def peek(self, file_path: PathLike) -> Optional[DiscoverySnapshot]:
        return self._store.load(normalize_path(file_path))

    def store(self, snapshot: DiscoverySnapshot) -> None:
        self._store.store(snapshot.normalized_key, snapshot)

    def delete(self, file_path: PathLike) -> None:
        self._store.delete(normalize_path(file_path))

    def entries(self) -> Iterator[Tuple[str, DiscoverySnapshot]]:
        return self._store.entries()

    def clear(self) -> None:
        self._store.clear()

    def size(self) -> int:
        return self._store.size()


__all__ = ["DISCOVERY_CACHE_VERSION", "DiscoveryCache"]

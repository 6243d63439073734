"""Tests for the discovery snapshot cache."""

from __future__ import annotations

from pathlib import Path

from declgraph.analyzers import RegexParser
from declgraph.analyzers.base import ParserInput
from declgraph.models import DiscoveredDependency, DiscoverySnapshot
from declgraph.stores import DiscoveryCache, JsonCacheFactory, MemoryCacheFactory


def _snapshot(path: str, source: str) -> DiscoverySnapshot:
    analysis = RegexParser().parse_module(ParserInput(path, source))
    return DiscoverySnapshot(
        file_path=path,
        normalized_key=path,
        analyzer_id="regex",
        signature=analysis.signature,
        created_at_ms=123,
        analysis=analysis,
        dependencies=(DiscoveredDependency("./b", "/repo/b.ts", False), DiscoveredDependency("react", None, True)),
        diagnostics=analysis.diagnostics,
        imports=analysis.imports,
        exports=analysis.exports,
    )


SOURCE = "import { b } from './b';\nimport React from 'react';\nexport const Q = gql.query('Q', () => b);\n"


def test_snapshot_survives_durable_round_trip(tmp_path: Path) -> None:
    snapshot = _snapshot("/repo/a.ts", SOURCE)
    DiscoveryCache(JsonCacheFactory(tmp_path), "regex").store(snapshot)

    loaded = DiscoveryCache(JsonCacheFactory(tmp_path), "regex").load("/repo/a.ts", snapshot.signature)

    assert loaded == snapshot
    assert loaded is not None
    assert loaded.definitions[0].loc == snapshot.definitions[0].loc
    assert isinstance(loaded.dependencies, tuple)


def test_signature_mismatch_is_a_miss_but_peek_still_sees_it() -> None:
    cache = DiscoveryCache(MemoryCacheFactory(), "regex")
    snapshot = _snapshot("/repo/a.ts", SOURCE)
    cache.store(snapshot)

    assert cache.load("/repo/a.ts", "other-signature") is None
    assert cache.peek("/repo/a.ts") == snapshot


def test_analyzers_do_not_share_entries() -> None:
    factory = MemoryCacheFactory()
    snapshot = _snapshot("/repo/a.ts", SOURCE)
    DiscoveryCache(factory, "regex").store(snapshot)

    assert DiscoveryCache(factory, "tree-sitter").peek("/repo/a.ts") is None
    assert DiscoveryCache(factory, "regex", evaluator_id="declarations").peek("/repo/a.ts") is None


def test_version_bump_invalidates_entries() -> None:
    factory = MemoryCacheFactory()
    snapshot = _snapshot("/repo/a.ts", SOURCE)
    DiscoveryCache(factory, "regex").store(snapshot)

    bumped = DiscoveryCache(factory, "regex", version="discovery-snapshot:2")

    assert bumped.load("/repo/a.ts", snapshot.signature) is None
    assert bumped.size() == 0


def test_entries_delete_and_clear() -> None:
    cache = DiscoveryCache(MemoryCacheFactory(), "regex")
    cache.store(_snapshot("/repo/a.ts", SOURCE))
    cache.store(_snapshot("/repo/c.ts", "export const c = 1;\n"))

    assert sorted(key for key, _ in cache.entries()) == ["/repo/a.ts", "/repo/c.ts"]

    cache.delete("/repo/a.ts")
    assert cache.size() == 1

    cache.clear()
    assert cache.size() == 0

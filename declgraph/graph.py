"""File-level dependency graph derived from discovery snapshots."""

from __future__ import annotations

from collections import deque
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .models import DiscoverySnapshot


class DependencyGraph:
    """Forward (file to dependencies) and reverse adjacency over normalized keys.

    Both maps are produced together from the same edge list and never patched
    afterwards. Edges may point at files that have no snapshot.
    """

    def __init__(self, files: Iterable[str], edges: Mapping[str, Iterable[str]]) -> None:
        self._files: FrozenSet[str] = frozenset(files)
        forward: Dict[str, Set[str]] = {key: set() for key in self._files}
        reverse: Dict[str, Set[str]] = {key: set() for key in self._files}
        for source, targets in edges.items():
            forward.setdefault(source, set())
            reverse.setdefault(source, set())
            for target in targets:
                if target == source:
                    continue
                forward[source].add(target)
                forward.setdefault(target, set())
                reverse.setdefault(target, set()).add(source)
        self._forward = {key: frozenset(values) for key, values in forward.items()}
        self._reverse = {key: frozenset(values) for key, values in reverse.items()}

    @classmethod
    def build(cls, snapshots: Iterable[DiscoverySnapshot]) -> "DependencyGraph":
        files: List[str] = []
        edges: Dict[str, Tuple[str, ...]] = {}
        for snapshot in snapshots:
            files.append(snapshot.normalized_key)
            edges[snapshot.normalized_key] = snapshot.local_dependency_paths()
        return cls(files, edges)

    @classmethod
    def empty(cls) -> "DependencyGraph":
        return cls((), {})

    @property
    def forward(self) -> Mapping[str, FrozenSet[str]]:
        return MappingProxyType(self._forward)

    @property
    def reverse(self) -> Mapping[str, FrozenSet[str]]:
        return MappingProxyType(self._reverse)

    @property
    def files(self) -> FrozenSet[str]:
        """Keys that came from a snapshot."""
        return self._files

    @property
    def nodes(self) -> FrozenSet[str]:
        return frozenset(self._forward)

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._forward.values())

    def dependencies_of(self, key: str) -> FrozenSet[str]:
        return self._forward.get(key, frozenset())

    def dependents_of(self, key: str) -> FrozenSet[str]:
        return self._reverse.get(key, frozenset())

    def affected_by(self, changed: Iterable[str]) -> Set[str]:
        """Changed files plus everything that transitively depends on them."""
        affected: Set[str] = set()
        queue = deque(changed)
        while queue:
            key = queue.popleft()
            if key in affected:
                continue
            affected.add(key)
            queue.extend(dependent for dependent in self.dependents_of(key) if dependent not in affected)
        return affected

    def topological_order(
        self, keys: Optional[Iterable[str]] = None
    ) -> Tuple[List[str], List[Tuple[str, ...]]]:
        """Dependency-first ordering of ``keys`` (default: every snapshot file).

        Returns ``(order, cycles)``. Members of a strongly connected component
        are emitted together in lexical order; each component with more than
        one member is reported once in ``cycles``.
        """
        scope = set(self._files if keys is None else keys)
        order: List[str] = []
        cycles: List[Tuple[str, ...]] = []
        for component in self._strongly_connected(scope):
            members = tuple(sorted(component))
            order.extend(members)
            if len(members) > 1:
                cycles.append(members)
        return order, cycles

    def without(self, keys: Iterable[str]) -> "DependencyGraph":
        """Graph with ``keys`` removed as both sources and targets."""
        dropped = set(keys)
        edges = {
            source: [target for target in targets if target not in dropped]
            for source, targets in self._forward.items()
            if source not in dropped and source in self._files
        }
        return DependencyGraph((key for key in self._files if key not in dropped), edges)

    def _strongly_connected(self, scope: Set[str]) -> List[List[str]]:
        # Iterative Tarjan; components come out dependencies first.
        index: Dict[str, int] = {}
        lowlink: Dict[str, int] = {}
        on_stack: Set[str] = set()
        stack: List[str] = []
        components: List[List[str]] = []
        counter = 0

        for root in sorted(scope):
            if root in index:
                continue
            work = [(root, iter(sorted(self.dependencies_of(root) & scope)))]
            index[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            while work:
                node, neighbours = work[-1]
                advanced = False
                for neighbour in neighbours:
                    if neighbour not in index:
                        index[neighbour] = lowlink[neighbour] = counter
                        counter += 1
                        stack.append(neighbour)
                        on_stack.add(neighbour)
                        work.append((neighbour, iter(sorted(self.dependencies_of(neighbour) & scope))))
                        advanced = True
                        break
                    if neighbour in on_stack:
                        lowlink[node] = min(lowlink[node], index[neighbour])
                if advanced:
                    continue
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index[node]:
                    component: List[str] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    components.append(component)
        return components


__all__ = ["DependencyGraph"]

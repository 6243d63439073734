"""Module specifier resolution against the filesystem."""

from __future__ import annotations

import os
from typing import Callable, Collection, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import DiscoveredDependency, ModuleAnalysis
from ..utils import normalize_path

# Probed in order when a specifier carries no known extension.
MODULE_EXTENSION_CANDIDATES: Tuple[str, ...] = (
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    "/index.ts",
    "/index.tsx",
    "/index.js",
    "/index.jsx",
)

_EXPLICIT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mts", ".cts", ".mjs", ".cjs")


def is_relative_specifier(specifier: str) -> bool:
    return (
        specifier in {".", ".."}
        or specifier.startswith("./")
        or specifier.startswith("../")
        or specifier.startswith("/")
    )


def _candidates(base: str) -> Iterable[str]:
    if base.endswith(_EXPLICIT_EXTENSIONS):
        yield base
        return
    for suffix in MODULE_EXTENSION_CANDIDATES:
        yield f"{base}{suffix}"


def resolve_module_specifier(
    from_path: str,
    specifier: str,
    exists: Callable[[str], bool] = os.path.isfile,
) -> Optional[str]:
    """Resolve a relative ``specifier`` imported by ``from_path``.

    Returns ``None`` for bare specifiers and for relative ones that match no
    candidate.
    """
    if not is_relative_specifier(specifier):
        return None
    if specifier.startswith("/"):
        base = normalize_path(specifier)
    else:
        base = normalize_path(os.path.join(os.path.dirname(from_path), specifier))
    for candidate in _candidates(base):
        if exists(candidate):
            return candidate
    return None


def resolve_specifier_in(known_keys: Collection[str], from_path: str, specifier: str) -> Optional[str]:
    """Resolve against already discovered files first, then the filesystem."""
    resolved = resolve_module_specifier(from_path, specifier, exists=known_keys.__contains__)
    if resolved is not None:
        return resolved
    return resolve_module_specifier(from_path, specifier)


def dependency_specifiers(analysis: ModuleAnalysis) -> List[str]:
    """Import and re-export sources in source order, without duplicates."""
    seen: Dict[str, None] = {}
    for module_import in analysis.imports:
        if module_import.source:
            seen.setdefault(module_import.source, None)
    for module_export in analysis.exports:
        if module_export.source:
            seen.setdefault(module_export.source, None)
    return list(seen)


def build_dependencies(
    file_path: str,
    analysis: ModuleAnalysis,
    specifiers: Optional[Sequence[str]] = None,
) -> Tuple[DiscoveredDependency, ...]:
    if specifiers is None:
        specifiers = dependency_specifiers(analysis)
    dependencies: List[DiscoveredDependency] = []
    seen = set()
    for specifier in specifiers:
        if specifier in seen:
            continue
        seen.add(specifier)
        if not is_relative_specifier(specifier):
            dependencies.append(DiscoveredDependency(specifier=specifier, resolved_path=None, is_external=True))
            continue
        dependencies.append(
            DiscoveredDependency(
                specifier=specifier,
                resolved_path=resolve_module_specifier(file_path, specifier),
                is_external=False,
            )
        )
    return tuple(dependencies)


__all__ = [
    "MODULE_EXTENSION_CANDIDATES",
    "build_dependencies",
    "dependency_specifiers",
    "is_relative_specifier",
    "resolve_module_specifier",
    "resolve_specifier_in",
]

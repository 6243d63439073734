"""Core data models shared across declgraph components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from .canonical import CanonicalId

ImportKind = Literal["named", "namespace", "default", "side-effect"]
ExportKind = Literal["named", "reexport"]
Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class SourcePosition:
    """1-based line and column."""

    line: int
    column: int


@dataclass(frozen=True)
class SourceLocation:
    start: SourcePosition
    end: SourcePosition


@dataclass(frozen=True)
class ModuleImport:
    """Single imported binding (or side-effect import) of a module."""

    source: str
    imported: str
    local: str
    kind: ImportKind
    is_type_only: bool = False


@dataclass(frozen=True)
class ModuleExport:
    """Exported binding; re-exports carry the module they forward from."""

    kind: ExportKind
    exported: str
    local: Optional[str] = None
    source: Optional[str] = None
    is_type_only: bool = False


@dataclass(frozen=True)
class ModuleDiagnostic:
    """File-local problem attached to an analysis or snapshot."""

    code: str
    message: str
    severity: Severity = "error"
    loc: Optional[SourceLocation] = None


@dataclass(frozen=True)
class ModuleDefinition:
    """Declaration of interest found by a parser."""

    canonical_id: CanonicalId
    ast_path: str
    is_top_level: bool
    is_exported: bool
    expression: str
    export_binding: Optional[str] = None
    loc: Optional[SourceLocation] = None


@dataclass(frozen=True)
class ModuleAnalysis:
    """Structured facts a declaration parser extracts from one file."""

    file_path: str
    signature: str
    definitions: Tuple[ModuleDefinition, ...] = ()
    imports: Tuple[ModuleImport, ...] = ()
    exports: Tuple[ModuleExport, ...] = ()
    diagnostics: Tuple[ModuleDiagnostic, ...] = ()


@dataclass(frozen=True)
class FileFingerprint:
    """Content signature of a file at the time it was read."""

    path: str
    size_bytes: int
    mtime_ms: int
    content_hash: str
    mtime_ns: int = 0

    def matches_stat(self, size_bytes: int, mtime_ns: int) -> bool:
        return self.size_bytes == size_bytes and self.mtime_ns == mtime_ns


@dataclass(frozen=True)
class DiscoveredDependency:
    """Import specifier and where it resolved on disk.

    ``resolved_path`` is ``None`` for external (bare) specifiers and for local
    specifiers that did not resolve to an existing file.
    """

    specifier: str
    resolved_path: Optional[str]
    is_external: bool


@dataclass(frozen=True)
class DiscoverySnapshot:
    """Immutable per-file discovery record."""

    file_path: str
    normalized_key: str
    analyzer_id: str
    signature: str
    created_at_ms: int
    analysis: ModuleAnalysis
    dependencies: Tuple[DiscoveredDependency, ...] = ()
    diagnostics: Tuple[ModuleDiagnostic, ...] = ()
    imports: Tuple[ModuleImport, ...] = ()
    exports: Tuple[ModuleExport, ...] = ()

    @property
    def definitions(self) -> Tuple[ModuleDefinition, ...]:
        return self.analysis.definitions

    def local_dependency_paths(self) -> Tuple[str, ...]:
        """Resolved paths of non-external dependencies, in import order."""
        seen = []
        for dependency in self.dependencies:
            path = dependency.resolved_path
            if dependency.is_external or path is None or path in seen:
                continue
            seen.append(path)
        return tuple(seen)

    def unresolved_specifiers(self) -> Tuple[str, ...]:
        return tuple(
            dependency.specifier
            for dependency in self.dependencies
            if not dependency.is_external and dependency.resolved_path is None
        )


__all__ = [
    "CanonicalId",
    "DiscoveredDependency",
    "DiscoverySnapshot",
    "ExportKind",
    "FileFingerprint",
    "ImportKind",
    "ModuleAnalysis",
    "ModuleDefinition",
    "ModuleDiagnostic",
    "ModuleExport",
    "ModuleImport",
    "Severity",
    "SourceLocation",
    "SourcePosition",
]

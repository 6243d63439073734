"""Canonical identifiers for discovered declarations.

A canonical id has the form ``{absolute file path}::{ast path}``. The AST
path is the dotted chain of scopes (functions, classes, methods, variables,
object properties) enclosing a definition, so two bindings with the same
local name in different scopes never collide.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Literal, NewType, Optional, Set, Tuple

from .errors import CanonicalPathInvalid
from .utils import normalize_path

CanonicalId = NewType("CanonicalId", str)

CANONICAL_ID_SEPARATOR = "::"

ScopeKind = Literal["function", "class", "variable", "property", "method", "expression", "default"]

_BINDING_KINDS = frozenset({"variable", "default"})
_STATIC_KINDS = frozenset({"variable", "property"})


def create_canonical_id(file_path: str, ast_path: str) -> CanonicalId:
    """Build the canonical id for ``ast_path`` declared in ``file_path``."""
    if not os.path.isabs(file_path):
        raise CanonicalPathInvalid(file_path, "canonical ids require an absolute path")
    if not ast_path:
        raise CanonicalPathInvalid(file_path, "empty AST path")
    return CanonicalId(f"{normalize_path(file_path)}{CANONICAL_ID_SEPARATOR}{ast_path}")


def split_canonical_id(canonical_id: str) -> Tuple[str, str]:
    """Return ``(file_path, ast_path)`` for a canonical id."""
    file_path, separator, ast_path = canonical_id.rpartition(CANONICAL_ID_SEPARATOR)
    if not separator or not file_path or not ast_path:
        raise CanonicalPathInvalid(canonical_id, "missing '::' separator")
    return file_path, ast_path


@dataclass(frozen=True)
class ScopeFrame:
    segment: str
    kind: ScopeKind
    occurrence: int


@dataclass(frozen=True)
class ScopeHandle:
    depth: int


@dataclass(frozen=True)
class RegisteredDefinition:
    ast_path: str
    is_top_level: bool
    root_binding: Optional[str]


class CanonicalPathTracker:
    """Tracks the scope stack during a single-file AST traversal.

    Parsers call :meth:`enter_scope` / :meth:`exit_scope` as they descend and
    :meth:`register_definition` whenever they find a declaration of interest.
    Duplicate AST paths inside one file are disambiguated with ``$N``
    suffixes.
    """

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self._stack: List[ScopeFrame] = []
        self._occurrences: Dict[str, int] = {}
        self._used_paths: Set[str] = set()
        self._anonymous = 0

    def enter_scope(self, segment: str, kind: ScopeKind) -> ScopeHandle:
        key = f"{kind}:{segment}"
        occurrence = self._occurrences.get(key, 0)
        self._occurrences[key] = occurrence + 1
        self._stack.append(ScopeFrame(segment=segment, kind=kind, occurrence=occurrence))
        return ScopeHandle(depth=len(self._stack) - 1)

    def enter_anonymous_scope(self, prefix: str = "arrow") -> ScopeHandle:
        segment = f"{prefix}#{self._anonymous}"
        self._anonymous += 1
        return self.enter_scope(segment, "expression")

    def exit_scope(self, handle: ScopeHandle) -> None:
        if handle.depth != len(self._stack) - 1:
            raise RuntimeError(
                f"Invalid scope exit: expected depth {len(self._stack) - 1}, got {handle.depth}"
            )
        self._stack.pop()

    def current_depth(self) -> int:
        return len(self._stack)

    def register_definition(self) -> RegisteredDefinition:
        base = ".".join(frame.segment for frame in self._stack) or "anonymous"
        ast_path = self._ensure_unique(base)
        root = self._stack[0] if self._stack else None
        root_binding = root.segment if root is not None and root.kind in _BINDING_KINDS else None
        # Object properties of a module-level binding still count as top level.
        is_top_level = root_binding is not None and all(
            frame.kind in _STATIC_KINDS for frame in self._stack[1:]
        )
        return RegisteredDefinition(ast_path=ast_path, is_top_level=is_top_level, root_binding=root_binding)

    def resolve_canonical_id(self, ast_path: str) -> CanonicalId:
        return create_canonical_id(self.file_path, ast_path)

    def _ensure_unique(self, base: str) -> str:
        path = base
        suffix = 0
        while path in self._used_paths:
            suffix += 1
            path = f"{base}${suffix}"
        self._used_paths.add(path)
        return path


__all__ = [
    "CANONICAL_ID_SEPARATOR",
    "CanonicalId",
    "CanonicalPathTracker",
    "RegisteredDefinition",
    "ScopeHandle",
    "create_canonical_id",
    "split_canonical_id",
]

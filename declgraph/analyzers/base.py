"""Base classes for declaration parser plugins."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..models import DiscoverySnapshot, ModuleAnalysis, SourceLocation, SourcePosition

DEFAULT_GQL_IDENTIFIERS: Tuple[str, ...] = ("gql",)


@dataclass(frozen=True)
class ParserInput:
    file_path: str
    source: str
    previous_snapshot: Optional[DiscoverySnapshot] = None


class DeclarationParser(ABC):
    """Contract for parsers that turn module source into a ModuleAnalysis.

    ``parse_module`` should report problems through ``ModuleAnalysis.diagnostics``
    rather than raising; the discoverer still guards the call.
    """

    analyzer_id = ""
    cache_version = "1"
    supported_extensions: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")

    def __init__(self, gql_identifiers: Sequence[str] = DEFAULT_GQL_IDENTIFIERS) -> None:
        self.gql_identifiers = tuple(gql_identifiers) or DEFAULT_GQL_IDENTIFIERS

    @property
    def analyzer_version(self) -> str:
        return f"{self.analyzer_id}@{self.cache_version}"

    @abstractmethod
    def parse_module(self, parser_input: ParserInput) -> ModuleAnalysis:
        """Extract imports, exports, definitions and diagnostics."""

    def create_source_hash(self, source: str) -> str:
        return hashlib.sha256(source.encode("utf-8")).hexdigest()

    def resolve_relative_dependencies(self, analysis: ModuleAnalysis) -> Optional[List[str]]:
        """Return the specifiers to follow, or ``None`` to use imports and re-exports."""
        return None

    def on_snapshot_created(self, snapshot: DiscoverySnapshot) -> None:
        """Called after the discoverer builds a fresh snapshot."""
        return None

    def supports(self, file_path: str) -> bool:
        return file_path.lower().endswith(self.supported_extensions)


def location_from_offsets(source: str, start: int, end: int) -> SourceLocation:
    """Build a 1-based location from character offsets into ``source``."""

    def _position(offset: int) -> SourcePosition:
        line = source.count("\n", 0, offset) + 1
        line_start = source.rfind("\n", 0, offset) + 1
        return SourcePosition(line=line, column=offset - line_start + 1)

    return SourceLocation(start=_position(start), end=_position(end))


__all__ = [
    "DEFAULT_GQL_IDENTIFIERS",
    "DeclarationParser",
    "ParserInput",
    "location_from_offsets",
]

"""Declaration parser implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable, List, Sequence

from ..errors import UnsupportedAnalyzerError
from .base import DEFAULT_GQL_IDENTIFIERS, DeclarationParser, ParserInput
from .regex import RegexParser
from .tree_sitter import TREE_SITTER_AVAILABLE, TreeSitterParser

_ENTRY_POINT_GROUP = "declgraph.parsers"

_BUILTIN_FACTORIES: Dict[str, Callable[..., DeclarationParser]] = {
    "tree-sitter": TreeSitterParser,
    "regex": RegexParser,
}


def available_parsers() -> List[str]:
    """Names accepted by :func:`get_parser`."""
    names = list(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        if entry.name not in names:
            names.append(entry.name)
    return names


def get_parser(
    name: str, *, gql_identifiers: Sequence[str] = DEFAULT_GQL_IDENTIFIERS
) -> DeclarationParser:
    """Instantiate the parser registered under ``name``."""
    key = name.lower()
    factory = _BUILTIN_FACTORIES.get(key)
    if factory is not None:
        if key == "tree-sitter" and not TREE_SITTER_AVAILABLE:
            raise UnsupportedAnalyzerError(
                name,
                "The tree-sitter parser requires `tree-sitter` and `tree-sitter-typescript`.",
            )
        return factory(gql_identifiers=gql_identifiers)

    for entry in _iter_entry_points():
        if entry.name.lower() != key:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - defensive guard
            raise UnsupportedAnalyzerError(name, f"Failed to load parser entry point '{name}': {exc}") from exc
        return _coerce_parser(name, loaded, gql_identifiers)

    raise UnsupportedAnalyzerError(name)


def _coerce_parser(name: str, obj: object, gql_identifiers: Sequence[str]) -> DeclarationParser:
    if isinstance(obj, DeclarationParser):
        return obj
    if isinstance(obj, type) and issubclass(obj, DeclarationParser):
        return obj(gql_identifiers=gql_identifiers)
    if callable(obj):
        instance = obj(gql_identifiers=gql_identifiers)
        if isinstance(instance, DeclarationParser):
            return instance
    raise UnsupportedAnalyzerError(
        name, f"Parser entry point '{name}' must be a DeclarationParser subclass or factory"
    )


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "DeclarationParser",
    "ParserInput",
    "RegexParser",
    "TREE_SITTER_AVAILABLE",
    "TreeSitterParser",
    "available_parsers",
    "get_parser",
]

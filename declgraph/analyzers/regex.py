"""Lightweight declaration parser built on regular expressions.

Only module-level statements are recognised: definitions must start at the
beginning of a line. It is meant for quick scans and for environments
without tree-sitter grammars.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from ..canonical import CanonicalPathTracker
from ..models import ModuleAnalysis, ModuleDefinition, ModuleDiagnostic, ModuleExport, ModuleImport
from .base import DeclarationParser, ParserInput, location_from_offsets

_IDENT = r"[A-Za-z_$][\w$]*"
_IDENT_RE = re.compile(_IDENT)

_COMMENT = re.compile(r"/\*.*?\*/|^[ \t]*//[^\n]*", re.S | re.M)

_IMPORT_FROM = re.compile(
    r"^[ \t]*import\s+(?P<type>type\s+)?(?P<clause>[\w$*{}\s,]+?)\s*from\s*"
    r"(?P<quote>['\"])(?P<source>[^'\"]+)(?P=quote)",
    re.M,
)
_IMPORT_SIDE_EFFECT = re.compile(r"^[ \t]*import\s*(?P<quote>['\"])(?P<source>[^'\"]+)(?P=quote)", re.M)
_EXPORT_FROM = re.compile(
    r"^[ \t]*export\s+(?P<type>type\s+)?(?P<clause>\*(?:\s+as\s+" + _IDENT + r")?|\{[^}]*\})\s*from\s*"
    r"(?P<quote>['\"])(?P<source>[^'\"]+)(?P=quote)",
    re.M,
)
_EXPORT_LIST = re.compile(r"^[ \t]*export\s+(?P<type>type\s+)?\{(?P<names>[^}]*)\}(?!\s*from\b)", re.M)
_EXPORT_DECL = re.compile(
    r"^[ \t]*export\s+(?:declare\s+)?(?:async\s+)?"
    r"(?P<keyword>const|let|var|function\*?|class|interface|type|enum)\s+(?P<name>" + _IDENT + r")",
    re.M,
)
_EXPORT_DEFAULT = re.compile(r"^[ \t]*export\s+default\b", re.M)
_DEFINITION = re.compile(
    r"^(?P<export>export\s+)?(?:const|let|var)\s+(?P<name>" + _IDENT + r")\s*(?::[^=\n]+)?=\s*"
    r"(?P<callee>(?P<ident>" + _IDENT + r")\.(?P<method>" + _IDENT + r"))\s*(?:<[^(\n]*>)?\s*\(",
    re.M,
)
_DEFAULT_DEFINITION = re.compile(
    r"^export\s+default\s+(?P<callee>(?P<ident>" + _IDENT + r")\.(?P<method>" + _IDENT + r"))\s*\(",
    re.M,
)


def _blank_comments(source: str) -> str:
    return _COMMENT.sub(lambda match: re.sub(r"[^\n]", " ", match.group(0)), source)


def _call_end(source: str, open_index: int) -> Optional[int]:
    """Offset just past the parenthesis closing the one at ``open_index``."""
    depth = 0
    quote: Optional[str] = None
    index = open_index
    while index < len(source):
        char = source[index]
        if quote is not None:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "'\"`":
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return None


def _split_specifiers(text: str) -> List[Tuple[str, str, bool]]:
    """Parse ``a, b as c, type d`` into ``(name, alias, is_type_only)`` triples."""
    specifiers: List[Tuple[str, str, bool]] = []
    for raw in text.split(","):
        spec = raw.strip()
        if not spec:
            continue
        type_only = False
        if spec.startswith("type "):
            type_only = True
            spec = spec[5:].strip()
        parts = re.split(r"\s+as\s+", spec, maxsplit=1)
        name = parts[0].strip()
        alias = parts[1].strip() if len(parts) > 1 else name
        specifiers.append((name, alias, type_only))
    return specifiers


def _parse_import_clause(clause: str, source: str, type_only: bool) -> List[ModuleImport]:
    imports: List[ModuleImport] = []
    named = ""
    brace = re.search(r"\{([^}]*)\}", clause)
    if brace:
        named = brace.group(1)
        clause = clause[: brace.start()] + clause[brace.end() :]
    for part in clause.split(","):
        part = part.strip()
        if not part:
            continue
        namespace = re.fullmatch(r"\*\s+as\s+(" + _IDENT + r")", part)
        if namespace:
            imports.append(ModuleImport(source, "*", namespace.group(1), "namespace", type_only))
        elif _IDENT_RE.fullmatch(part):
            imports.append(ModuleImport(source, "default", part, "default", type_only))
    for name, alias, spec_type_only in _split_specifiers(named):
        imports.append(ModuleImport(source, name, alias, "named", type_only or spec_type_only))
    return imports


class RegexParser(DeclarationParser):
    """Scans module-level imports, exports and ``gql.<method>(...)`` bindings."""

    analyzer_id = "regex"
    cache_version = "1"

    def parse_module(self, parser_input: ParserInput) -> ModuleAnalysis:
        source = parser_input.source
        scan = _blank_comments(source)

        imports = self._collect_imports(scan)
        exports, exported_locals = self._collect_exports(scan)
        definitions, diagnostics = self._collect_definitions(
            parser_input.file_path, source, scan, exported_locals
        )

        return ModuleAnalysis(
            file_path=parser_input.file_path,
            signature=self.create_source_hash(source),
            definitions=tuple(definitions),
            imports=tuple(imports),
            exports=tuple(exports),
            diagnostics=tuple(diagnostics),
        )

    def _collect_imports(self, scan: str) -> List[ModuleImport]:
        found: List[Tuple[int, List[ModuleImport]]] = []
        for match in _IMPORT_FROM.finditer(scan):
            parsed = _parse_import_clause(match.group("clause"), match.group("source"), bool(match.group("type")))
            found.append((match.start(), parsed))
        for match in _IMPORT_SIDE_EFFECT.finditer(scan):
            source = match.group("source")
            found.append((match.start(), [ModuleImport(source, "", "", "side-effect")]))
        found.sort(key=lambda item: item[0])
        return [item for _, batch in found for item in batch]

    def _collect_exports(self, scan: str) -> Tuple[List[ModuleExport], Dict[str, str]]:
        found: List[Tuple[int, ModuleExport]] = []
        exported_locals: Dict[str, str] = {}

        for match in _EXPORT_FROM.finditer(scan):
            source = match.group("source")
            clause = match.group("clause")
            type_only = bool(match.group("type"))
            if clause.startswith("*"):
                alias = re.search(r"as\s+(" + _IDENT + r")", clause)
                exported = alias.group(1) if alias else "*"
                found.append((match.start(), ModuleExport("reexport", exported, "*", source, type_only)))
                continue
            for name, alias, spec_type_only in _split_specifiers(clause.strip("{}")):
                found.append(
                    (match.start(), ModuleExport("reexport", alias, name, source, type_only or spec_type_only))
                )

        for match in _EXPORT_LIST.finditer(scan):
            type_only = bool(match.group("type"))
            for name, alias, spec_type_only in _split_specifiers(match.group("names")):
                exported_locals.setdefault(name, alias)
                found.append((match.start(), ModuleExport("named", alias, name, None, type_only or spec_type_only)))

        for match in _EXPORT_DECL.finditer(scan):
            name = match.group("name")
            type_only = match.group("keyword") in {"interface", "type"}
            exported_locals.setdefault(name, name)
            found.append((match.start(), ModuleExport("named", name, name, None, type_only)))

        for match in _EXPORT_DEFAULT.finditer(scan):
            found.append((match.start(), ModuleExport("named", "default", None, None)))

        found.sort(key=lambda item: item[0])
        return [export for _, export in found], exported_locals

    def _collect_definitions(
        self,
        file_path: str,
        source: str,
        scan: str,
        exported_locals: Dict[str, str],
    ) -> Tuple[List[ModuleDefinition], List[ModuleDiagnostic]]:
        tracker = CanonicalPathTracker(file_path)
        definitions: List[ModuleDefinition] = []
        diagnostics: List[ModuleDiagnostic] = []

        matches = [(match, False) for match in _DEFINITION.finditer(scan)]
        matches.extend((match, True) for match in _DEFAULT_DEFINITION.finditer(scan))
        matches.sort(key=lambda item: item[0].start())

        for match, is_default in matches:
            if match.group("ident") not in self.gql_identifiers:
                continue
            start = match.start("callee")
            end = _call_end(scan, match.end() - 1)
            if end is None:
                diagnostics.append(
                    ModuleDiagnostic(
                        code="PARSE_FAILED",
                        message=f"Unterminated call to {match.group('callee')}",
                        loc=location_from_offsets(source, start, len(source)),
                    )
                )
                continue

            if is_default:
                handle = tracker.enter_scope("default", "default")
                export_binding: Optional[str] = "default"
            else:
                name = match.group("name")
                handle = tracker.enter_scope(name, "variable")
                export_binding = name if match.group("export") else exported_locals.get(name)
            registered = tracker.register_definition()
            tracker.exit_scope(handle)

            definitions.append(
                ModuleDefinition(
                    canonical_id=tracker.resolve_canonical_id(registered.ast_path),
                    ast_path=registered.ast_path,
                    is_top_level=registered.is_top_level,
                    is_exported=export_binding is not None,
                    expression=source[start:end],
                    export_binding=export_binding,
                    loc=location_from_offsets(source, start, end),
                )
            )
        return definitions, diagnostics


__all__ = ["RegexParser"]

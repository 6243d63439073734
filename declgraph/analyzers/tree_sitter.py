"""Tree-sitter powered declaration parser for TypeScript and TSX modules."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..canonical import CanonicalPathTracker, ScopeHandle
from ..models import (
    ModuleAnalysis,
    ModuleDefinition,
    ModuleDiagnostic,
    ModuleExport,
    ModuleImport,
    SourceLocation,
    SourcePosition,
)
from .base import DEFAULT_GQL_IDENTIFIERS, DeclarationParser, ParserInput

try:  # pragma: no cover - optional dependency
    import tree_sitter_typescript
    from tree_sitter import Language, Parser

    TREE_SITTER_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    tree_sitter_typescript = None  # type: ignore[assignment]
    Language = None  # type: ignore[assignment]
    Parser = None  # type: ignore[assignment]
    TREE_SITTER_AVAILABLE = False


_ANONYMOUS_FUNCTIONS = {"arrow_function", "function_expression", "function", "generator_function"}
_NAMED_BINDING_PARENTS = {"variable_declarator", "pair", "public_field_definition"}
_FUNCTION_DECLARATIONS = {"function_declaration", "generator_function_declaration"}
_CLASS_DECLARATIONS = {"class_declaration", "abstract_class_declaration", "class"}


def _grammar_for(file_path: str) -> str:
    lower = file_path.lower()
    if lower.endswith((".tsx", ".jsx")):
        return "tsx"
    return "typescript"


def _node_text(node, source_bytes: bytes) -> str:  # type: ignore[no-untyped-def]
    return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def _string_value(node, source_bytes: bytes) -> str:  # type: ignore[no-untyped-def]
    return _node_text(node, source_bytes).strip("'\"`")


def _location(node) -> SourceLocation:  # type: ignore[no-untyped-def]
    start_row, start_column = node.start_point
    end_row, end_column = node.end_point
    return SourceLocation(
        start=SourcePosition(line=start_row + 1, column=start_column + 1),
        end=SourcePosition(line=end_row + 1, column=end_column + 1),
    )


def _has_keyword(node, keyword: str) -> bool:  # type: ignore[no-untyped-def]
    return any(child.type == keyword for child in node.children)


class _ExportIndex:
    """Local binding name to exported name, gathered before the definition walk."""

    def __init__(self) -> None:
        self.bindings: Dict[str, str] = {}

    def add(self, local: str, exported: str) -> None:
        self.bindings.setdefault(local, exported)

    def lookup(self, local: Optional[str]) -> Optional[str]:
        if local is None:
            return None
        return self.bindings.get(local)


class TreeSitterParser(DeclarationParser):
    """Extracts imports, exports and ``gql.<method>(...)`` definitions."""

    analyzer_id = "tree-sitter"
    cache_version = "1"

    def __init__(
        self,
        gql_identifiers: Sequence[str] = DEFAULT_GQL_IDENTIFIERS,
        enabled: Optional[bool] = None,
    ) -> None:
        super().__init__(gql_identifiers)
        self.enabled = TREE_SITTER_AVAILABLE if enabled is None else enabled
        self._languages: Dict[str, Language] = {}
        self._local = threading.local()

    def parse_module(self, parser_input: ParserInput) -> ModuleAnalysis:
        source = parser_input.source
        signature = self.create_source_hash(source)
        parser = self._get_parser(_grammar_for(parser_input.file_path)) if self.enabled else None
        if parser is None:
            return ModuleAnalysis(
                file_path=parser_input.file_path,
                signature=signature,
                diagnostics=(
                    ModuleDiagnostic(code="PARSE_FAILED", message="tree-sitter grammars are not available"),
                ),
            )

        source_bytes = source.encode("utf-8")
        tree = parser.parse(source_bytes)
        root = tree.root_node

        diagnostics: List[ModuleDiagnostic] = []
        if root.has_error:
            diagnostics.append(self._syntax_error(root, source_bytes))

        imports = list(self._collect_imports(root, source_bytes))
        exports, export_index = self._collect_exports(root, source_bytes)

        tracker = CanonicalPathTracker(parser_input.file_path)
        definitions: List[ModuleDefinition] = []
        self._walk(root, source_bytes, tracker, export_index, definitions, diagnostics)

        return ModuleAnalysis(
            file_path=parser_input.file_path,
            signature=signature,
            definitions=tuple(definitions),
            imports=tuple(imports),
            exports=tuple(exports),
            diagnostics=tuple(diagnostics),
        )

    def _get_parser(self, grammar: str) -> Optional[Parser]:
        if not TREE_SITTER_AVAILABLE:
            return None
        # Parser objects are not safe to share between discovery workers.
        parsers: Dict[str, Parser] = getattr(self._local, "parsers", None) or {}
        self._local.parsers = parsers
        parser = parsers.get(grammar)
        if parser is not None:
            return parser
        language = self._languages.get(grammar)
        if language is None:
            if grammar == "tsx":
                language = Language(tree_sitter_typescript.language_tsx())
            else:
                language = Language(tree_sitter_typescript.language_typescript())
            self._languages[grammar] = language
        parser = Parser(language)
        parsers[grammar] = parser
        return parser

    # ------------------------------------------------------------------
    # Imports and exports

    def _collect_imports(self, root, source_bytes: bytes) -> Iterable[ModuleImport]:  # type: ignore[no-untyped-def]
        for statement in root.named_children:
            if statement.type != "import_statement":
                continue
            source_node = statement.child_by_field_name("source")
            if source_node is None:
                continue
            source = _string_value(source_node, source_bytes)
            type_only = _has_keyword(statement, "type")
            clause = next((child for child in statement.named_children if child.type == "import_clause"), None)
            if clause is None:
                yield ModuleImport(source, "", "", "side-effect")
                continue
            for child in clause.named_children:
                if child.type == "identifier":
                    yield ModuleImport(source, "default", _node_text(child, source_bytes), "default", type_only)
                elif child.type == "namespace_import":
                    name = next((n for n in child.named_children if n.type == "identifier"), None)
                    if name is not None:
                        yield ModuleImport(source, "*", _node_text(name, source_bytes), "namespace", type_only)
                elif child.type == "named_imports":
                    for specifier in child.named_children:
                        if specifier.type != "import_specifier":
                            continue
                        name_node = specifier.child_by_field_name("name")
                        alias_node = specifier.child_by_field_name("alias")
                        if name_node is None:
                            continue
                        imported = _string_value(name_node, source_bytes)
                        local = _node_text(alias_node, source_bytes) if alias_node else imported
                        yield ModuleImport(
                            source,
                            imported,
                            local,
                            "named",
                            type_only or _has_keyword(specifier, "type"),
                        )

    def _collect_exports(self, root, source_bytes: bytes) -> Tuple[List[ModuleExport], _ExportIndex]:  # type: ignore[no-untyped-def]
        exports: List[ModuleExport] = []
        index = _ExportIndex()
        for statement in root.named_children:
            if statement.type != "export_statement":
                continue
            type_only = _has_keyword(statement, "type")
            source_node = statement.child_by_field_name("source")
            source = _string_value(source_node, source_bytes) if source_node is not None else None
            declaration = statement.child_by_field_name("declaration")
            clause = next((child for child in statement.named_children if child.type == "export_clause"), None)

            if source is not None and clause is None:
                namespace = next((c for c in statement.named_children if c.type == "namespace_export"), None)
                alias = None
                if namespace is not None:
                    alias_node = next((c for c in namespace.named_children if c.type in {"identifier", "string"}), None)
                    alias = _string_value(alias_node, source_bytes) if alias_node else None
                exports.append(ModuleExport("reexport", alias or "*", "*", source, type_only))
            elif clause is not None:
                for specifier in clause.named_children:
                    if specifier.type != "export_specifier":
                        continue
                    name_node = specifier.child_by_field_name("name")
                    alias_node = specifier.child_by_field_name("alias")
                    if name_node is None:
                        continue
                    local = _string_value(name_node, source_bytes)
                    exported = _string_value(alias_node, source_bytes) if alias_node else local
                    spec_type_only = type_only or _has_keyword(specifier, "type")
                    if source is not None:
                        exports.append(ModuleExport("reexport", exported, local, source, spec_type_only))
                    else:
                        index.add(local, exported)
                        exports.append(ModuleExport("named", exported, local, None, spec_type_only))
            elif _has_keyword(statement, "default"):
                local = None
                if declaration is not None:
                    local = next((name for name, _ in self._declared_names(declaration, source_bytes)), None)
                index.add(local or "default", "default")
                exports.append(ModuleExport("named", "default", local, None))
            elif declaration is not None:
                for name, is_type in self._declared_names(declaration, source_bytes):
                    index.add(name, name)
                    exports.append(ModuleExport("named", name, name, None, is_type))
        return exports, index

    def _declared_names(self, declaration, source_bytes: bytes) -> Iterable[Tuple[str, bool]]:  # type: ignore[no-untyped-def]
        if declaration.type in {"lexical_declaration", "variable_declaration"}:
            for declarator in declaration.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name_node = declarator.child_by_field_name("name")
                if name_node is not None and name_node.type == "identifier":
                    yield _node_text(name_node, source_bytes), False
            return
        name_node = declaration.child_by_field_name("name")
        if name_node is not None:
            is_type = declaration.type in {"interface_declaration", "type_alias_declaration"}
            yield _node_text(name_node, source_bytes), is_type

    # ------------------------------------------------------------------
    # Definitions

    def _walk(
        self,
        node,  # type: ignore[no-untyped-def]
        source_bytes: bytes,
        tracker: CanonicalPathTracker,
        exports: _ExportIndex,
        definitions: List[ModuleDefinition],
        diagnostics: List[ModuleDiagnostic],
    ) -> None:
        if node.type == "call_expression" and self._is_gql_call(node, source_bytes):
            self._record_definition(node, source_bytes, tracker, exports, definitions, diagnostics)
            return

        handle = self._enter(node, source_bytes, tracker)
        for child in node.named_children:
            self._walk(child, source_bytes, tracker, exports, definitions, diagnostics)
        if handle is not None:
            tracker.exit_scope(handle)

    def _enter(self, node, source_bytes: bytes, tracker: CanonicalPathTracker) -> Optional[ScopeHandle]:  # type: ignore[no-untyped-def]
        kind = node.type
        if kind in _FUNCTION_DECLARATIONS or kind in _CLASS_DECLARATIONS or kind == "method_definition":
            name_node = node.child_by_field_name("name")
            if name_node is None:
                return tracker.enter_anonymous_scope("class" if kind in _CLASS_DECLARATIONS else "arrow")
            if kind == "method_definition":
                scope = "method"
            elif kind in _CLASS_DECLARATIONS:
                scope = "class"
            else:
                scope = "function"
            return tracker.enter_scope(_string_value(name_node, source_bytes), scope)
        if kind == "variable_declarator":
            name_node = node.child_by_field_name("name")
            if name_node is None:
                return None
            scope = "function" if self._binds_function(node) else "variable"
            return tracker.enter_scope(_node_text(name_node, source_bytes), scope)
        if kind == "pair":
            key_node = node.child_by_field_name("key")
            if key_node is None:
                return None
            scope = "method" if self._binds_function(node) else "property"
            return tracker.enter_scope(_string_value(key_node, source_bytes), scope)
        if kind in _ANONYMOUS_FUNCTIONS:
            parent = node.parent
            if parent is not None and parent.type in _NAMED_BINDING_PARENTS:
                return None
            return tracker.enter_anonymous_scope()
        if kind == "export_statement" and node.child_by_field_name("value") is not None:
            return tracker.enter_scope("default", "default")
        return None

    @staticmethod
    def _binds_function(node) -> bool:  # type: ignore[no-untyped-def]
        value = node.child_by_field_name("value")
        return value is not None and value.type in _ANONYMOUS_FUNCTIONS

    def _is_gql_call(self, node, source_bytes: bytes) -> bool:  # type: ignore[no-untyped-def]
        callee = node.child_by_field_name("function")
        if callee is None or callee.type != "member_expression":
            return False
        target = callee.child_by_field_name("object")
        if target is None or target.type != "identifier":
            return False
        return _node_text(target, source_bytes) in self.gql_identifiers

    def _record_definition(
        self,
        node,  # type: ignore[no-untyped-def]
        source_bytes: bytes,
        tracker: CanonicalPathTracker,
        exports: _ExportIndex,
        definitions: List[ModuleDefinition],
        diagnostics: List[ModuleDiagnostic],
    ) -> None:
        registered = tracker.register_definition()
        export_binding = exports.lookup(registered.root_binding) if registered.is_top_level else None
        loc = _location(node)
        if not registered.is_top_level:
            diagnostics.append(
                ModuleDiagnostic(
                    code="NON_TOP_LEVEL_DEFINITION",
                    message=f"Definition at {registered.ast_path} is not bound to a module-level export",
                    severity="warning",
                    loc=loc,
                )
            )
        definitions.append(
            ModuleDefinition(
                canonical_id=tracker.resolve_canonical_id(registered.ast_path),
                ast_path=registered.ast_path,
                is_top_level=registered.is_top_level,
                is_exported=export_binding is not None,
                expression=_node_text(node, source_bytes),
                export_binding=export_binding,
                loc=loc,
            )
        )

    def _syntax_error(self, root, source_bytes: bytes) -> ModuleDiagnostic:  # type: ignore[no-untyped-def]
        offender = self._first_error(root)
        if offender is None:
            return ModuleDiagnostic(code="SYNTAX_ERROR", message="Source contains syntax errors")
        if offender.is_missing:
            message = f"Missing {offender.type}"
        else:
            snippet = _node_text(offender, source_bytes).strip().splitlines()
            message = f"Unexpected {snippet[0][:40]!r}" if snippet else "Unexpected token"
        return ModuleDiagnostic(code="SYNTAX_ERROR", message=message, loc=_location(offender))

    def _first_error(self, node):  # type: ignore[no-untyped-def]
        if node.type == "ERROR" or node.is_missing:
            return node
        for child in node.children:
            if child.has_error or child.is_missing:
                found = self._first_error(child)
                if found is not None:
                    return found
        return None


__all__ = ["TREE_SITTER_AVAILABLE", "TreeSitterParser"]

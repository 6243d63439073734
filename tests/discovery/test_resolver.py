"""Tests for module specifier resolution."""

from __future__ import annotations

from declgraph.discovery.resolver import (
    build_dependencies,
    dependency_specifiers,
    is_relative_specifier,
    resolve_module_specifier,
    resolve_specifier_in,
)
from declgraph.models import DiscoveredDependency, ModuleAnalysis, ModuleExport, ModuleImport
from tests._fixtures.project_builder import ProjectBuilder


def test_relative_specifier_detection() -> None:
    assert is_relative_specifier("./a")
    assert is_relative_specifier("../a")
    assert is_relative_specifier(".")
    assert is_relative_specifier("/abs/a")
    assert not is_relative_specifier("react")
    assert not is_relative_specifier("@scope/pkg")


def test_extension_and_index_probing() -> None:
    existing = {"/repo/src/b.tsx", "/repo/src/lib/index.ts", "/repo/src/c.js"}

    def exists(path: str) -> bool:
        return path in existing

    assert resolve_module_specifier("/repo/src/a.ts", "./b", exists) == "/repo/src/b.tsx"
    assert resolve_module_specifier("/repo/src/a.ts", "./lib", exists) == "/repo/src/lib/index.ts"
    assert resolve_module_specifier("/repo/src/nested/a.ts", "../c.js", exists) == "/repo/src/c.js"
    assert resolve_module_specifier("/repo/src/a.ts", "./c.ts", exists) is None
    assert resolve_module_specifier("/repo/src/a.ts", "react", exists) is None


def test_known_keys_take_precedence(project: ProjectBuilder) -> None:
    project.write({"src/b.ts": ""})
    from_path = project.key("src/a.ts")

    assert resolve_specifier_in({project.key("src/c.tsx")}, from_path, "./c") == project.key("src/c.tsx")
    assert resolve_specifier_in(set(), from_path, "./b") == project.key("src/b.ts")


def test_dependency_specifiers_merge_imports_and_reexports() -> None:
    analysis = ModuleAnalysis(
        file_path="/repo/a.ts",
        signature="sig",
        imports=(
            ModuleImport("./b", "b", "b", "named"),
            ModuleImport("react", "default", "React", "default"),
            ModuleImport("./b", "c", "c", "named"),
        ),
        exports=(ModuleExport("reexport", "*", "*", "./d"), ModuleExport("named", "x", "x")),
    )

    assert dependency_specifiers(analysis) == ["./b", "react", "./d"]


def test_build_dependencies_marks_externals_and_unresolved(project: ProjectBuilder) -> None:
    project.write({"src/b.ts": ""})
    file_path = project.key("src/a.ts")
    analysis = ModuleAnalysis(file_path=file_path, signature="sig")

    dependencies = build_dependencies(file_path, analysis, ["./b", "react", "./missing", "./b"])

    assert dependencies == (
        DiscoveredDependency("./b", project.key("src/b.ts"), False),
        DiscoveredDependency("react", None, True),
        DiscoveredDependency("./missing", None, False),
    )

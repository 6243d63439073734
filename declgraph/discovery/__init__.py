"""File discovery: entry resolution, specifier resolution and the import walk."""

from .discoverer import CancellationToken, Discoverer, DiscoveryResult
from .entry_paths import resolve_entry_paths
from .resolver import (
    MODULE_EXTENSION_CANDIDATES,
    build_dependencies,
    is_relative_specifier,
    resolve_module_specifier,
    resolve_specifier_in,
)

__all__ = [
    "CancellationToken",
    "Discoverer",
    "DiscoveryResult",
    "MODULE_EXTENSION_CANDIDATES",
    "build_dependencies",
    "is_relative_specifier",
    "resolve_entry_paths",
    "resolve_module_specifier",
    "resolve_specifier_in",
]

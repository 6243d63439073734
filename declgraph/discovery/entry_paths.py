"""Entry path and glob resolution."""

from __future__ import annotations

import glob
import os
import posixpath
from fnmatch import fnmatchcase
from typing import Dict, List, Optional, Sequence

from ..errors import EntryNotFoundError
from ..logging import get_logger
from ..utils import PathLike, normalize_path

_LOGGER = get_logger("discovery.entries")


def _absolute_pattern(pattern: str, base: str) -> str:
    pattern = pattern.replace("\\", "/")
    if not os.path.isabs(pattern):
        pattern = f"{base.rstrip('/')}/{pattern}"
    return posixpath.normpath(pattern)


def _is_excluded(path: str, patterns: Sequence[str]) -> bool:
    return any(fnmatchcase(path, pattern) for pattern in patterns)


def resolve_entry_paths(
    entries: Sequence[str],
    exclude: Sequence[str] = (),
    *,
    cwd: Optional[PathLike] = None,
) -> List[str]:
    """Expand entry paths and globs into normalized absolute file paths.

    Existing files are used verbatim and bypass ``exclude``. Anything else is
    a glob (``**`` recurses) evaluated against ``cwd``; entries starting with
    ``!`` remove matches. Raises :class:`EntryNotFoundError` only when no
    entry resolved at all.
    """
    base = normalize_path(cwd if cwd is not None else os.getcwd())
    negations = [_absolute_pattern(entry[1:], base) for entry in entries if entry.startswith("!")]
    excluded = [_absolute_pattern(pattern, base) for pattern in exclude] + negations

    resolved: Dict[str, None] = {}
    unmatched: List[str] = []
    for entry in entries:
        if not entry or entry.startswith("!"):
            continue
        candidate = entry if os.path.isabs(entry) else os.path.join(base, entry)
        if os.path.isfile(candidate):
            resolved.setdefault(normalize_path(candidate), None)
            continue
        matches = sorted(
            normalize_path(match)
            for match in glob.glob(_absolute_pattern(entry, base), recursive=True)
            if os.path.isfile(match)
        )
        matches = [match for match in matches if not _is_excluded(match, excluded)]
        if not matches:
            unmatched.append(entry)
            continue
        for match in matches:
            resolved.setdefault(match, None)

    if not resolved:
        raise EntryNotFoundError(unmatched or [entry for entry in entries if entry])
    if unmatched:
        _LOGGER.warning("Entry patterns matched no files: %s", ", ".join(unmatched))
    return list(resolved)


__all__ = ["resolve_entry_paths"]

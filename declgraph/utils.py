"""Path and clock helpers shared across declgraph components."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]", Path]


def normalize_path(value: PathLike) -> str:
    """Return an absolute, normalised path with POSIX separators."""
    absolute = os.path.abspath(os.fspath(value))
    return os.path.normpath(absolute).replace("\\", "/")


def now_ms() -> int:
    """Milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


__all__ = ["PathLike", "normalize_path", "now_ms"]

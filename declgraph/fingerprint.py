"""File fingerprinting."""

from __future__ import annotations

import hashlib
import os
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from .errors import FingerprintError
from .logging import get_logger
from .models import FileFingerprint
from .utils import PathLike, normalize_path

_LOGGER = get_logger("fingerprint")

_CHUNK_SIZE = 1024 * 1024


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _stat(path: str) -> os.stat_result:
    try:
        return os.stat(path)
    except OSError as exc:
        raise FingerprintError(
            path, f"Cannot stat {path}: {exc.strerror or exc}", errno=exc.errno, cause=exc
        ) from exc


def _read_error(path: str, exc: OSError) -> FingerprintError:
    return FingerprintError(path, f"Cannot read {path}: {exc.strerror or exc}", errno=exc.errno, cause=exc)


def _fingerprint(path: str, stat: os.stat_result, content_hash: str) -> FileFingerprint:
    return FileFingerprint(
        path=path,
        size_bytes=stat.st_size,
        mtime_ms=stat.st_mtime_ns // 1_000_000,
        content_hash=content_hash,
        mtime_ns=stat.st_mtime_ns,
    )


def compute_fingerprint(path: PathLike) -> FileFingerprint:
    """Stat and hash ``path``.

    Raises :class:`FingerprintError` when the file cannot be stat'd or read.
    """
    normalized = normalize_path(path)
    stat = _stat(normalized)
    try:
        content_hash = _hash_file(Path(normalized))
    except OSError as exc:
        raise _read_error(normalized, exc) from exc
    return _fingerprint(normalized, stat, content_hash)


def read_fingerprinted(path: PathLike) -> Tuple[FileFingerprint, bytes]:
    """Stat and read ``path`` once, returning its fingerprint and the bytes hashed."""
    normalized = normalize_path(path)
    stat = _stat(normalized)
    try:
        raw = Path(normalized).read_bytes()
    except OSError as exc:
        raise _read_error(normalized, exc) from exc
    return _fingerprint(normalized, stat, hashlib.sha256(raw).hexdigest()), raw


class FingerprintTracker:
    """Memoises fingerprints, re-hashing only when size or mtime moved.

    Instances are created by whoever owns a discovery session and passed
    down explicitly.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, FileFingerprint] = {}
        self._lock = threading.Lock()

    def get(self, path: PathLike) -> FileFingerprint:
        current = self.current(path)
        if current is not None:
            return current
        return self._remember(compute_fingerprint(path))

    def current(self, path: PathLike) -> Optional[FileFingerprint]:
        """Return the memo for ``path`` when its size and mtime still match."""
        normalized = normalize_path(path)
        stat = _stat(normalized)
        with self._lock:
            cached = self._entries.get(normalized)
        if cached is not None and cached.matches_stat(stat.st_size, stat.st_mtime_ns):
            return cached
        return None

    def read(self, path: PathLike) -> Tuple[FileFingerprint, bytes]:
        """Read ``path`` once and refresh the memo from the bytes read."""
        fingerprint, raw = read_fingerprinted(path)
        return self._remember(fingerprint), raw

    def _remember(self, fingerprint: FileFingerprint) -> FileFingerprint:
        with self._lock:
            previous = self._entries.get(fingerprint.path)
            self._entries[fingerprint.path] = fingerprint
        if previous is not None and previous.content_hash != fingerprint.content_hash:
            _LOGGER.debug("Fingerprint refreshed for %s", fingerprint.path)
        return fingerprint

    def peek(self, path: PathLike) -> Optional[FileFingerprint]:
        with self._lock:
            return self._entries.get(normalize_path(path))

    def invalidate(self, path: PathLike) -> None:
        with self._lock:
            self._entries.pop(normalize_path(path), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["FingerprintTracker", "compute_fingerprint", "read_fingerprinted"]

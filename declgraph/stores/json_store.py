"""Durable cache backend writing one JSON record per key."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Sequence

from ..errors import CacheStorageError
from .base import CacheFactory, CacheStore, namespace_parts

_SUFFIX = ".json"


class JsonCacheStore(CacheStore[Any]):
    """Stores envelopes as ``<directory>/<sha1(key)>.json``."""

    def __init__(self, directory: Path, namespace: Sequence[str], schema: Any, version: str) -> None:
        super().__init__(namespace, schema, version)
        self.directory = directory

    def _record_path(self, record_id: str) -> Path:
        return self.directory / f"{record_id}{_SUFFIX}"

    def _read_record(self, record_id: str) -> Optional[str]:
        path = self._record_path(record_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheStorageError(
                f"Failed to read cache record: {exc}", cache_path=str(path), cause=exc
            ) from exc
        # Undecodable bytes surface as an unreadable record and are pruned.
        return data.decode("utf-8", errors="replace")

    def _write_record(self, record_id: str, payload: str) -> None:
        path = self._record_path(record_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{record_id}.", suffix=".tmp", dir=self.directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(temp_name, path)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except OSError as exc:
            raise CacheStorageError(
                f"Failed to write cache record: {exc}", cache_path=str(path), cause=exc
            ) from exc

    def _delete_record(self, record_id: str) -> None:
        path = self._record_path(record_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise CacheStorageError(
                f"Failed to delete cache record: {exc}", cache_path=str(path), cause=exc
            ) from exc

    def _list_records(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            entry.name[: -len(_SUFFIX)]
            for entry in os.scandir(self.directory)
            if entry.is_file() and entry.name.endswith(_SUFFIX) and not entry.name.startswith(".")
        )


class JsonCacheFactory(CacheFactory):
    """Durable backend rooted at ``root_dir``."""

    def __init__(self, root_dir: Path | str, prefix: Sequence[str] = ()) -> None:
        self.root_dir = Path(root_dir)
        self.prefix = tuple(prefix)

    def create_store(self, namespace: Sequence[str], schema: Any, version: str) -> JsonCacheStore:
        parts = namespace_parts(self.prefix, namespace)
        return JsonCacheStore(self.root_dir.joinpath(*parts), parts, schema, version)

    def clear_all(self) -> None:
        target = self.root_dir.joinpath(*namespace_parts((), self.prefix)) if self.prefix else self.root_dir
        if not target.exists():
            return
        try:
            shutil.rmtree(target)
        except OSError as exc:
            raise CacheStorageError(
                f"Failed to clear cache directory: {exc}", cache_path=str(target), cause=exc
            ) from exc


__all__ = ["JsonCacheFactory", "JsonCacheStore"]

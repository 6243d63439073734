"""In-process cache backend."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Sequence

from .base import CacheFactory, CacheStore, namespace_parts


class MemoryCacheStore(CacheStore[Any]):
    def __init__(
        self,
        records: Dict[str, str],
        lock: threading.Lock,
        namespace: Sequence[str],
        schema: Any,
        version: str,
    ) -> None:
        super().__init__(namespace, schema, version)
        self._records = records
        self._lock = lock

    def _read_record(self, record_id: str) -> Optional[str]:
        with self._lock:
            return self._records.get(record_id)

    def _write_record(self, record_id: str, payload: str) -> None:
        with self._lock:
            self._records[record_id] = payload

    def _delete_record(self, record_id: str) -> None:
        with self._lock:
            self._records.pop(record_id, None)

    def _list_records(self) -> List[str]:
        with self._lock:
            return list(self._records)


class MemoryCacheFactory(CacheFactory):
    """Volatile backend; each factory owns its own record space.

    Records are kept as serialised envelopes so that loads validate exactly
    as the durable backend does.
    """

    def __init__(self, prefix: Sequence[str] = ()) -> None:
        self.prefix = tuple(prefix)
        self._namespaces: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def create_store(self, namespace: Sequence[str], schema: Any, version: str) -> MemoryCacheStore:
        parts = namespace_parts(self.prefix, namespace)
        bucket_key = "/".join(parts)
        with self._lock:
            records = self._namespaces.setdefault(bucket_key, {})
        return MemoryCacheStore(records, self._lock, parts, schema, version)

    def clear_all(self) -> None:
        with self._lock:
            for records in self._namespaces.values():
                records.clear()


__all__ = ["MemoryCacheFactory", "MemoryCacheStore"]

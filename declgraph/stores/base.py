"""Versioned, namespaced key/value cache contract shared by all backends."""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod
from typing import Any, Generic, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..logging import get_logger

_LOGGER = get_logger("stores")

V = TypeVar("V")


class CacheEnvelope(BaseModel, Generic[V]):
    """Wrapper persisted around every cached value."""

    key: str
    version: str
    value: V


def hash_key(key: str) -> str:
    """Bounded record name for ``key``."""
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


def sanitize_segment(segment: str) -> str:
    cleaned = segment.replace("/", "_").replace("\\", "_").strip()
    return cleaned or "_"


def namespace_parts(prefix: Sequence[str], namespace: Sequence[str]) -> Tuple[str, ...]:
    return tuple(sanitize_segment(part) for part in (*prefix, *namespace))


class CacheStore(ABC, Generic[V]):
    """Key to versioned value store.

    Backends only move opaque record text around; envelope encoding and
    validation live here so every backend behaves the same way. Records that
    fail to decode, fail validation, or carry another version are deleted the
    first time they are read.
    """

    def __init__(self, namespace: Sequence[str], schema: Any, version: str) -> None:
        self.namespace = tuple(namespace)
        self.version = version
        self._envelope: Type[CacheEnvelope[Any]] = CacheEnvelope[schema]  # type: ignore[valid-type]

    # ------------------------------------------------------------------
    # Public contract

    def load(self, key: str) -> Optional[V]:
        record_id = hash_key(key)
        raw = self._read_record(record_id)
        if raw is None:
            return None
        envelope = self._decode(record_id, raw)
        if envelope is None:
            return None
        if envelope.key != key:
            self._discard(record_id, "key mismatch")
            return None
        return envelope.value

    def store(self, key: str, value: V) -> None:
        envelope = self._envelope(key=key, version=self.version, value=value)
        self._write_record(hash_key(key), envelope.model_dump_json())

    def delete(self, key: str) -> None:
        self._delete_record(hash_key(key))

    def clear(self) -> None:
        for record_id in self._list_records():
            self._delete_record(record_id)

    def size(self) -> int:
        return sum(1 for _ in self.entries())

    def entries(self) -> Iterator[Tuple[str, V]]:
        """Yield ``(key, value)`` pairs for the records present at call time."""
        record_ids = self._list_records()

        def _iterate() -> Iterator[Tuple[str, V]]:
            for record_id in record_ids:
                raw = self._read_record(record_id)
                if raw is None:
                    continue
                envelope = self._decode(record_id, raw)
                if envelope is None:
                    continue
                yield envelope.key, envelope.value

        return _iterate()

    # ------------------------------------------------------------------
    # Backend hooks

    @abstractmethod
    def _read_record(self, record_id: str) -> Optional[str]:
        """Return the stored text for ``record_id`` or ``None`` when missing."""

    @abstractmethod
    def _write_record(self, record_id: str, payload: str) -> None:
        """Persist ``payload``, replacing any existing record."""

    @abstractmethod
    def _delete_record(self, record_id: str) -> None:
        """Remove ``record_id``; missing records are ignored."""

    @abstractmethod
    def _list_records(self) -> List[str]:
        """Return the ids of every record currently stored."""

    # ------------------------------------------------------------------
    # Internal helpers

    def _decode(self, record_id: str, raw: str) -> Optional[CacheEnvelope[Any]]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self._discard(record_id, "unreadable record")
            return None
        if not isinstance(data, dict):
            self._discard(record_id, "record is not an object")
            return None
        if data.get("version") != self.version:
            self._discard(record_id, f"version {data.get('version')!r} != {self.version!r}")
            return None
        try:
            return self._envelope.model_validate(data)
        except ValidationError as exc:
            self._discard(record_id, f"validation failed ({exc.error_count()} errors)")
            return None

    def _discard(self, record_id: str, reason: str) -> None:
        _LOGGER.debug("Dropping cache record %s in %s: %s", record_id, "/".join(self.namespace), reason)
        self._delete_record(record_id)


class CacheFactory(ABC):
    """Creates namespaced stores over one physical storage root."""

    @abstractmethod
    def create_store(self, namespace: Sequence[str], schema: Any, version: str) -> CacheStore[Any]:
        """Return a store isolated under ``namespace`` holding ``schema`` values."""

    @abstractmethod
    def clear_all(self) -> None:
        """Remove every record written through this factory."""


__all__ = [
    "CacheEnvelope",
    "CacheFactory",
    "CacheStore",
    "hash_key",
    "namespace_parts",
    "sanitize_segment",
]

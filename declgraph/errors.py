"""Error taxonomy for discovery, caching and session operations.

Only failures that make a requested operation ill-defined are raised. File
local problems (parse failures, duplicate canonical ids, evaluation errors)
are reported as diagnostics or evaluation issues instead.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence


class BuilderError(RuntimeError):
    """Base class for fatal builder failures."""

    code = "BUILDER_ERROR"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def details(self) -> Dict[str, str]:
        """Context lines rendered beneath the message."""
        return {}

    def format(self) -> str:
        return format_builder_error(self)


class ConfigError(BuilderError):
    """Raised when the configuration file cannot be parsed."""

    code = "CONFIG_INVALID"

    def __init__(self, message: str, *, path: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.path = path

    def details(self) -> Dict[str, str]:
        return {"Path": self.path} if self.path else {}


class DiscoveryError(BuilderError):
    """Fatal failure of a discovery call."""

    code = "DISCOVERY_FAILED"


class EntryNotFoundError(DiscoveryError):
    """No entry path or glob resolved to a file."""

    code = "ENTRY_NOT_FOUND"

    def __init__(self, patterns: Sequence[str], message: str | None = None) -> None:
        self.patterns = tuple(patterns)
        joined = ", ".join(self.patterns)
        super().__init__(message or f"No entry files matched {joined}")
        self.entry = joined

    def details(self) -> Dict[str, str]:
        return {"Entry": self.entry}


class DiscoveryIOError(DiscoveryError):
    """Filesystem access failed while walking the import graph."""

    code = "DISCOVERY_IO_ERROR"

    def __init__(
        self,
        path: str,
        message: str,
        *,
        errno: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.path = path
        self.errno = errno

    def details(self) -> Dict[str, str]:
        lines = {"Path": self.path}
        if self.errno is not None:
            lines["Errno"] = str(self.errno)
        return lines


class FingerprintError(DiscoveryIOError):
    """A file could not be stat'd or read for fingerprinting."""

    code = "FINGERPRINT_FAILED"


class CacheStorageError(DiscoveryError):
    """The cache backend could not persist or remove a record."""

    code = "CACHE_IO_ERROR"

    def __init__(self, message: str, *, cache_path: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.cache_path = cache_path

    def details(self) -> Dict[str, str]:
        return {"Cache path": self.cache_path} if self.cache_path else {}


class UnsupportedAnalyzerError(BuilderError):
    """The requested declaration parser is unknown or unavailable."""

    code = "UNSUPPORTED_ANALYZER"

    def __init__(self, analyzer: str, message: str | None = None) -> None:
        super().__init__(message or f"Unsupported analyzer: {analyzer}")
        self.analyzer = analyzer

    def details(self) -> Dict[str, str]:
        return {"Analyzer": self.analyzer}


class CanonicalPathInvalid(BuilderError):
    """A canonical id was requested for a path that is not absolute."""

    code = "CANONICAL_PATH_INVALID"

    def __init__(self, path: str, reason: str | None = None) -> None:
        suffix = f" ({reason})" if reason else ""
        super().__init__(f"Invalid canonical path: {path}{suffix}")
        self.path = path
        self.reason = reason

    def details(self) -> Dict[str, str]:
        lines = {"Path": self.path}
        if self.reason:
            lines["Reason"] = self.reason
        return lines


class SchemaMismatchError(BuilderError):
    """Incremental update refused because the schema or analyzer changed."""

    code = "SCHEMA_MISMATCH"

    def __init__(self, field: str, expected: str | None, actual: str | None) -> None:
        super().__init__(f"{field} changed since the last build; a full rebuild is required")
        self.field = field
        self.expected = expected
        self.actual = actual

    def details(self) -> Dict[str, str]:
        return {"Expected": str(self.expected), "Actual": str(self.actual)}


class DiscoveryCancelled(BuilderError):
    """Discovery stopped because the caller cancelled it or its deadline passed.

    Deliberately not a :class:`DiscoveryError` so callers can tell an abort
    from a failure.
    """

    code = "DISCOVERY_CANCELLED"

    def __init__(self, message: str = "Discovery was cancelled", *, visited: int = 0) -> None:
        super().__init__(message)
        self.visited = visited

    def details(self) -> Dict[str, str]:
        return {"Files visited": str(self.visited)}


def format_builder_error(error: BuilderError) -> str:
    """Render a builder error for console output."""
    lines = [f"Error [{error.code}]: {error.message}"]
    for label, value in error.details().items():
        lines.append(f"  {label}: {value}")
    cause: Optional[BaseException] = error.cause
    if cause is not None:
        lines.append(f"  Caused by: {cause}")
    return "\n".join(lines)


__all__ = [
    "BuilderError",
    "CacheStorageError",
    "CanonicalPathInvalid",
    "ConfigError",
    "DiscoveryCancelled",
    "DiscoveryError",
    "DiscoveryIOError",
    "EntryNotFoundError",
    "FingerprintError",
    "SchemaMismatchError",
    "UnsupportedAnalyzerError",
    "format_builder_error",
]

"""Incremental declaration discovery, caching and dependency graphs."""

from .canonical import CanonicalId, create_canonical_id
from .errors import BuilderError, DiscoveryCancelled, DiscoveryError, EntryNotFoundError
from .graph import DependencyGraph
from .session import BuilderChangeSet, BuilderSession, BuilderSessionState, SessionSnapshot

__version__ = "0.1.0"

__all__ = [
    "BuilderChangeSet",
    "BuilderError",
    "BuilderSession",
    "BuilderSessionState",
    "CanonicalId",
    "DependencyGraph",
    "DiscoveryCancelled",
    "DiscoveryError",
    "EntryNotFoundError",
    "SessionSnapshot",
    "create_canonical_id",
]

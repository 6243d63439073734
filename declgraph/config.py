"""Configuration loading for declgraph (.declgraph.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError
from .stores import CacheFactory, JsonCacheFactory, MemoryCacheFactory

CONFIG_FILENAME = ".declgraph.yml"
DEFAULT_CACHE_DIR = ".cache/declgraph"

_CACHE_BACKENDS = {"json", "memory"}


@dataclass
class CacheConfig:
    """Cache backend selection."""

    backend: str = "json"
    dir: Optional[Path] = None


@dataclass
class DiscoveryConfig:
    max_workers: int = 1


@dataclass
class DeclGraphConfig:
    """Represents the settings defined in .declgraph.yml."""

    root: Path
    entries: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    analyzer: str = "tree-sitter"
    gql_identifiers: List[str] = field(default_factory=lambda: ["gql"])
    cache: CacheConfig = field(default_factory=CacheConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    schema_hash: Optional[str] = None

    @property
    def cache_dir(self) -> Path:
        return self.cache.dir if self.cache.dir is not None else self.root / DEFAULT_CACHE_DIR


def load_config(config_path: Path) -> DeclGraphConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return DeclGraphConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root", path=str(config_file))

    config = DeclGraphConfig(root=root)
    config.entries = _as_str_list(data.get("entries"))
    config.exclude = _as_str_list(data.get("exclude"))
    config.analyzer = _as_str(data.get("analyzer")) or config.analyzer
    config.gql_identifiers = _as_str_list(data.get("gql_identifiers")) or config.gql_identifiers
    config.schema_hash = _as_str(data.get("schema_hash"))

    cache_data = _as_dict(data.get("cache"))
    if cache_data:
        backend = (_as_str(cache_data.get("backend")) or "json").lower()
        if backend not in _CACHE_BACKENDS:
            raise ConfigError(
                f"Unknown cache backend '{backend}' (expected one of: {', '.join(sorted(_CACHE_BACKENDS))})",
                path=str(config_file),
            )
        cache_dir = _as_str(cache_data.get("dir"))
        config.cache = CacheConfig(backend=backend, dir=root / cache_dir if cache_dir else None)

    discovery_data = _as_dict(data.get("discovery"))
    if discovery_data:
        max_workers = _as_int(discovery_data.get("max_workers"))
        if max_workers is not None and max_workers < 1:
            raise ConfigError("discovery.max_workers must be at least 1", path=str(config_file))
        config.discovery = DiscoveryConfig(max_workers=max_workers or 1)

    return config


def create_cache_factory(config: DeclGraphConfig) -> CacheFactory:
    """Instantiate the cache backend selected by ``config``."""
    if config.cache.backend == "memory":
        return MemoryCacheFactory()
    return JsonCacheFactory(config.cache_dir)


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.suffix not in {".yml", ".yaml"}:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}", path=str(path), cause=exc) from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "CacheConfig",
    "ConfigError",
    "DeclGraphConfig",
    "DiscoveryConfig",
    "create_cache_factory",
    "load_config",
]

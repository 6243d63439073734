"""FastAPI application keeping one builder session alive between requests."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import load_config
from ..errors import BuilderError, EntryNotFoundError
from ..logging import get_logger
from ..session import BuilderChangeSet, BuilderSession, SessionSnapshot

_LOGGER = get_logger("service")

T = TypeVar("T")


class BuildRequest(BaseModel):
    entries: Optional[List[str]] = None


class UpdateRequest(BaseModel):
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    schema_hash: Optional[str] = None


class SnapshotResponse(BaseModel):
    generation: int
    snapshot_count: int
    edge_count: int
    evaluation_issue_count: int
    diagnostic_count: int
    cache_hits: int
    cache_misses: int
    cache_skips: int
    entrypoints: List[str]

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "SnapshotResponse":
        return cls(
            generation=snapshot.generation,
            snapshot_count=snapshot.snapshot_count,
            edge_count=snapshot.edge_count,
            evaluation_issue_count=snapshot.evaluation_issue_count,
            diagnostic_count=snapshot.diagnostic_count,
            cache_hits=snapshot.cache_hits,
            cache_misses=snapshot.cache_misses,
            cache_skips=snapshot.cache_skips,
            entrypoints=list(snapshot.entrypoints),
        )


class UpdateResponse(BaseModel):
    mode: str
    affected: List[str]
    removed: List[str]
    snapshot: SnapshotResponse


class HealthResponse(BaseModel):
    status: str


def create_app(session_factory: Callable[[], BuilderSession]) -> FastAPI:
    """Create the FastAPI application exposing builder session operations."""

    app = FastAPI(title="declgraph service", version="0.1.0")
    session_lock = threading.Lock()

    def get_session() -> BuilderSession:
        # One session per app so incremental state survives between requests.
        with session_lock:
            session = getattr(app.state, "session", None)
            if session is None:
                session = session_factory()
                app.state.session = session
            return session

    async def _run(func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/build", response_model=SnapshotResponse)
    async def build(
        payload: BuildRequest,
        session: BuilderSession = Depends(get_session),
    ) -> SnapshotResponse:
        def _build() -> SessionSnapshot:
            session.build_initial(payload.entries)
            return session.get_snapshot()

        return SnapshotResponse.from_snapshot(await _run(_build))

    @app.post("/update", response_model=UpdateResponse)
    async def update(
        payload: UpdateRequest,
        session: BuilderSession = Depends(get_session),
    ) -> UpdateResponse:
        changeset = BuilderChangeSet(
            added=tuple(payload.added),
            modified=tuple(payload.modified),
            removed=tuple(payload.removed),
        )

        def _update() -> UpdateResponse:
            session.update(changeset, schema_hash=payload.schema_hash)
            result = session.last_result
            return UpdateResponse(
                mode=result.mode if result else "noop",
                affected=sorted(result.affected) if result else [],
                removed=sorted(result.removed) if result else [],
                snapshot=SnapshotResponse.from_snapshot(session.get_snapshot()),
            )

        return await _run(_update)

    @app.get("/snapshot", response_model=SnapshotResponse)
    async def snapshot(session: BuilderSession = Depends(get_session)) -> SnapshotResponse:
        return SnapshotResponse.from_snapshot(session.get_snapshot())

    @app.exception_handler(EntryNotFoundError)
    async def entry_not_found_handler(_: Request, exc: EntryNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"code": exc.code, "detail": exc.message})

    @app.exception_handler(BuilderError)
    async def builder_error_handler(_: Request, exc: BuilderError) -> JSONResponse:
        _LOGGER.warning("Request failed: %s", exc.message)
        return JSONResponse(status_code=400, content={"code": exc.code, "detail": exc.message})

    return app


def run_service(
    path: Path | str = ".", host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    config = load_config(Path(path))

    def _factory() -> BuilderSession:
        return BuilderSession.from_config(config)

    uvicorn.run(create_app(_factory), host=host, port=port)


__all__ = ["create_app", "run_service"]

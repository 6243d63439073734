from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from declgraph.logging import reset_logging
from tests._fixtures.project_builder import ProjectBuilder


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    # CLI tests install handlers and stop propagation; undo that for caplog users.
    yield
    reset_logging()

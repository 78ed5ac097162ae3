"""
Shared fixtures.

Puts ``src/`` on the path when ``campus_kart`` is not installed. The fixtures
reset structlog between tests and build a default ``settings`` object.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
import structlog


def _ensure_src_on_path() -> None:
    try:
        import campus_kart  # noqa: F401
        return
    except ModuleNotFoundError:
        pass

    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    sys.path.insert(0, str(src_dir))


_ensure_src_on_path()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep one test's logging configuration from leaking into the next."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings(mocker):
    from campus_kart.config import Settings

    mocker.patch.dict(
        os.environ,
        {
            "OPENAI_API_KEY": "test_api_key",
            "SUGGEST_MODEL": "suggest-model",
        },
        clear=True,
    )
    return Settings()

"""Shared test fixtures for pytest.

ENVIRONMENT is forced to "test" before any application import so settings
never read a developer's .env file.
"""

import json
import os
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient


os.environ["ENVIRONMENT"] = "test"
os.environ.pop("MISTRAL_API_KEY", None)

from core.config import get_settings
from main import app


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    """Settings are lru-cached; tests that patch env vars need a fresh copy."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def sse_body(*fragments: str, done: bool = True) -> bytes:
    """Render delta fragments as a server-sent event body."""
    events = [
        "data: " + json.dumps(
            {"choices": [{"delta": {"content": fragment}}]}, ensure_ascii=False
        )
        for fragment in fragments
    ]
    if done:
        events.append("data: [DONE]")
    return ("\n\n".join(events) + "\n\n").encode("utf-8")


@pytest.fixture
def make_sse_body() -> Callable[..., bytes]:
    return sse_body

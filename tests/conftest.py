"""
Pytest configuration and shared fixtures for test isolation.
"""
import asyncio
import shutil
from typing import List, Optional, Tuple

import pytest

from alchemy.store import Concept


class StubGenerator:
    """Deterministic generator that records every call."""

    def __init__(self, reply: Optional[Concept] = None, delay: float = 0.0):
        self.reply = reply or Concept(name="steam", glyph="💨")
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []

    async def generate(self, first: Concept, second: Concept) -> Concept:
        self.calls.append((first.name, second.name))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.reply


class FailingGenerator:
    """Generator that always raises."""

    def __init__(self, exc: Exception = None):
        self.exc = exc or RuntimeError("generator unavailable")
        self.calls = 0

    async def generate(self, first: Concept, second: Concept) -> Concept:
        self.calls += 1
        raise self.exc


# Reset global state between tests
@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset live sessions and config around each test to ensure isolation."""
    from alchemy.config import Config
    from alchemy.server import alchemy_sessions
    alchemy_sessions.clear()

    # Restore in place; modules hold a reference to the Config class
    snapshot = Config.to_dict()

    yield

    Config.from_dict(snapshot, apply_env_overrides=False)
    alchemy_sessions.clear()


@pytest.fixture
def temp_memory_dir(tmp_path):
    """Provide a temporary memory directory for tests."""
    memory_dir = tmp_path / "test_memory"
    memory_dir.mkdir(exist_ok=True)

    from alchemy.config import Config
    original_dir = Config.storage.MEMORY_DIR
    Config.storage.MEMORY_DIR = str(memory_dir)

    yield memory_dir

    Config.storage.MEMORY_DIR = original_dir
    from alchemy.server import alchemy_sessions
    for session in alchemy_sessions.values():
        session.close()
    alchemy_sessions.clear()
    if memory_dir.exists():
        shutil.rmtree(memory_dir)


@pytest.fixture
def stub_generator():
    return StubGenerator()


@pytest.fixture
def failing_generator():
    return FailingGenerator()


@pytest.fixture
def sandbox(stub_generator):
    """Isolated in-memory sandbox wired to the stub generator."""
    from alchemy.api import Alchemy
    return Alchemy.init(generator=stub_generator, seed=7)


@pytest.fixture
def test_client(temp_memory_dir, stub_generator):
    """Provide a TestClient whose sessions use the stub generator and a temp dir."""
    from fastapi.testclient import TestClient
    from alchemy.server import app, alchemy_sessions, get_generator

    alchemy_sessions.clear()
    app.dependency_overrides[get_generator] = lambda: stub_generator

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()
    for session in alchemy_sessions.values():
        session.close()
    alchemy_sessions.clear()

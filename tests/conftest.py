"""Pytest configuration and shared fixtures.

Fixtures here build content stores and configs with the sample topic data so
every test module works against the same "Television" argument:

    1  Television is harmful to children.          (root claim)
    ├─ 2  ...less time reading        ├─ 4, 5
    ├─ 3  ...more aggressive          └─ 6        (rebuttal 20 targets 3)
    └─ 7  ...disrupts sleep           └─ 8
"""

from __future__ import annotations

from pathlib import Path

import pytest

from config.settings import DialogueConfig
from dialogue_engine.exceptions import StoreUnavailableError
from stores.base_store import (
    ClaimRecord,
    ContentStore,
    JustificationNode,
    JustificationRecord,
    RebuttalCreateRequest,
    RebuttalRecord,
    RebuttalSink,
    TopicRecord,
)
from stores.memory_store import InMemoryContentStore

SEED_FILE = Path(__file__).resolve().parent.parent / "data" / "sample_topics.yaml"


class RecordingSink(RebuttalSink):
    """Rebuttal sink that remembers every request before delegating."""

    def __init__(self, delegate: RebuttalSink):
        self.delegate = delegate
        self.requests: list[RebuttalCreateRequest] = []

    async def create_rebuttal(self, request: RebuttalCreateRequest) -> RebuttalRecord:
        self.requests.append(request)
        return await self.delegate.create_rebuttal(request)


class FlakyStore(ContentStore, RebuttalSink):
    """Wraps a store and fails the named calls a set number of times."""

    def __init__(self, delegate: InMemoryContentStore, failures: dict[str, int]):
        self.delegate = delegate
        self.failures = dict(failures)
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            raise StoreUnavailableError(f"{name} is unavailable")

    @property
    def store_name(self) -> str:
        return "flaky"

    async def fetch_topics(self) -> list[TopicRecord]:
        self._maybe_fail("fetch_topics")
        return await self.delegate.fetch_topics()

    async def fetch_root_claim(self, topic: str) -> ClaimRecord:
        self._maybe_fail("fetch_root_claim")
        return await self.delegate.fetch_root_claim(topic)

    async def fetch_justifications(self, argument_id: int) -> list[JustificationRecord]:
        self._maybe_fail("fetch_justifications")
        return await self.delegate.fetch_justifications(argument_id)

    async def resolve_argument_id(self, claim_id: int) -> int:
        self._maybe_fail("resolve_argument_id")
        return await self.delegate.resolve_argument_id(claim_id)

    async def fetch_justification_tree(self, topic: str) -> JustificationNode:
        self._maybe_fail("fetch_justification_tree")
        return await self.delegate.fetch_justification_tree(topic)

    async def fetch_rebuttals(self, target_id: int) -> list[RebuttalRecord]:
        self._maybe_fail("fetch_rebuttals")
        return await self.delegate.fetch_rebuttals(target_id)

    async def create_rebuttal(self, request: RebuttalCreateRequest) -> RebuttalRecord:
        self._maybe_fail("create_rebuttal")
        return await self.delegate.create_rebuttal(request)


# =============================================================================
# SHARED FIXTURES - Available to all test modules
# =============================================================================


@pytest.fixture
def seed_file() -> Path:
    """Path to the bundled sample topics."""
    return SEED_FILE


@pytest.fixture
def memory_store(seed_file: Path) -> InMemoryContentStore:
    """Fresh in-memory store seeded with the sample topics."""
    return InMemoryContentStore.from_yaml(seed_file)


@pytest.fixture
def recording_sink(memory_store: InMemoryContentStore) -> RecordingSink:
    return RecordingSink(memory_store)


@pytest.fixture
def dialogue_config() -> DialogueConfig:
    """Default limits with the turn timer disabled."""
    return DialogueConfig(turn_seconds=0)


# =============================================================================
# PYTEST CONFIGURATION HOOKS
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

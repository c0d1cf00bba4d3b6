"""Shared fixtures for the Bank Statement API tests."""

import pytest

from statement_api.core.job_store import InMemoryJobStore
from statement_api.core.settings import Settings
from statement_api.workers.cleanup import CleanupScheduler
from statement_api.workers.pipeline import StatementPipeline
from tests.fakes import FakeAgent, FakeAnalyzer, FakeClock, FakeStorage, make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryJobStore:
    return InMemoryJobStore(clock=clock)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def pipeline(
    store: InMemoryJobStore, storage: FakeStorage, analyzer: FakeAnalyzer, agent: FakeAgent, settings: Settings
) -> StatementPipeline:
    return StatementPipeline(store, storage, analyzer, agent, settings)


@pytest.fixture
def cleanup(store: InMemoryJobStore, storage: FakeStorage, settings: Settings, clock: FakeClock) -> CleanupScheduler:
    return CleanupScheduler(store, storage, settings, clock=clock)

"""Shared pytest fixtures for the data-layer test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.providers.remote.memory_remote_store import MemoryRemoteStore
from src.providers.storage.memory_kv_store import MemoryKeyValueStore
from src.services.cache_service import CacheService
from src.services.listener_registry import ListenerRegistry
from tests.helpers import FakeClock, ManualTimerFactory


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def cache(kv_store: MemoryKeyValueStore, clock: FakeClock) -> CacheService:
    return CacheService(kv_store, namespace_prefix="cacheNS_", clock=clock)


@pytest.fixture
def registry(timers: ManualTimerFactory) -> ListenerRegistry:
    return ListenerRegistry(idle_timeout=300, timer_factory=timers)


@pytest.fixture
def remote() -> MemoryRemoteStore:
    return MemoryRemoteStore()

#!/usr/bin/env python3
"""
Global pytest configuration and fixtures.

This module provides:
- Custom marker registration
- Isolated working directories for settings and cache files
- Common fixtures wiring a reconciler to in-memory collaborators
"""

import os
import random
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from todo_sync.core.config import SettingsStore
from todo_sync.core.models import SyncSettings
from todo_sync.core.paths import reset_path_manager
from todo_sync.sync.delta_cache import DeltaCache
from todo_sync.sync.reconciler import Reconciler
from todo_sync.sync.registry import IdentityRegistry
from tests.e2e.fake_todo_gateway import FakeTodoGateway, MemoryHost


def pytest_configure(config):
    """Configure pytest environment."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")
    config.addinivalue_line("markers", "e2e: end-to-end tests against the fake gateway")


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path) -> Generator[Path, None, None]:
    """Point the working directory at a temp dir so no test touches ~/.todo-sync."""
    home = tmp_path / "todo-sync-home"
    monkeypatch.setenv("TODO_SYNC_HOME", str(home))
    reset_path_manager()
    yield home
    reset_path_manager()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(default_list_name="Tasks", default_list_id="list-default", vault_name="notes")


@pytest.fixture
def store(settings) -> SettingsStore:
    """In-memory settings store; ``save_count`` records persistence calls."""
    return SettingsStore(settings=settings, path=None)


@pytest.fixture
def registry(store) -> IdentityRegistry:
    return IdentityRegistry(store, rng=random.Random(7))


@pytest.fixture
def gateway() -> FakeTodoGateway:
    fake = FakeTodoGateway(page_size=2)
    fake.add_list("Tasks", list_id="list-default")
    return fake


@pytest.fixture
def cache(temp_dir, gateway, settings) -> DeltaCache:
    return DeltaCache(str(temp_dir / "tasks-delta.json"), gateway=gateway, settings=settings)


@pytest.fixture
def host() -> MemoryHost:
    return MemoryHost()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def reconciler(store, registry, cache, gateway, host, notices) -> Reconciler:
    return Reconciler(store, registry, cache, gateway, host, notify=notices.append)

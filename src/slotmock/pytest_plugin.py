"""slotmock.pytest_plugin -- pytest fixtures for method mocking.

Enable with ``pytest_plugins = ["slotmock.pytest_plugin"]`` in a conftest.
"""

from __future__ import annotations

import pytest

from slotmock.main import create_session
from slotmock.runtime.module_manager import ModuleManager


@pytest.fixture
def module_manager():
    """A ModuleManager whose virtual modules are unloaded after the test."""
    manager = ModuleManager()
    yield manager
    manager.cleanup()


@pytest.fixture
def slot_mock(module_manager):
    """A MockSession watching ``module_manager``; closed after the test."""
    session = create_session(module_manager=module_manager, watch_loads=True)
    yield session
    session.close()

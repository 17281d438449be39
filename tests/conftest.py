"""
Shared pytest fixtures for mimicry tests.
"""
import os
import uuid

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope='session')
def qt_app(qapp):
    """Qt application shared with pytest-qt so qtbot and timers use one loop."""
    yield qapp
    # Don't quit - causes issues with pytest


@pytest.fixture
def identifiers():
    """Fresh IdentifierService so ids are predictable per test."""
    from mimicry.events import IdentifierService
    return IdentifierService()


@pytest.fixture
def deferred():
    """DeferredQueue scheduler drained explicitly by the test."""
    from mimicry.threading import DeferredQueue
    queue = DeferredQueue()
    yield queue
    queue.clear()


@pytest.fixture
def make_emitter(identifiers, deferred):
    """Factory for emitters sharing one id service and one deferred queue."""
    from mimicry.events import EventEmitter

    def _make(**kwargs):
        kwargs.setdefault('identifiers', identifiers)
        kwargs.setdefault('scheduler', deferred)
        return EventEmitter(**kwargs)

    return _make


@pytest.fixture
def emitter(make_emitter):
    """Create EventEmitter instance for testing."""
    system = make_emitter()
    yield system
    system.unlisten()
    system.reset_events()


@pytest.fixture
def settings_manager():
    """Create SettingsManager instance for testing."""
    from mimicry.settings import SettingsManager
    manager = SettingsManager(organization="MimicryTest",
                              application=f"EmitterTest_{uuid.uuid4().hex[:8]}")
    yield manager
    # Clear test settings
    manager.clear()

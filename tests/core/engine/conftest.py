"""Shared fixtures for engine tests."""

import pytest

from branchdeck.core.events import (
    CONTEXT_CHANGED,
    ENGINE_STARTED,
    ENGINE_STOPPED,
    OPERATION_COMPLETED,
    OPERATION_DISCARDED,
    OPERATION_DISPATCHED,
)


@pytest.fixture
async def started_engine(engine):
    """Engine that has run startup and finished its initial listing."""
    await engine.startup()
    await engine.wait_idle()
    yield engine
    await engine.shutdown()


@pytest.fixture
def captured_events(event_bus):
    """Record every engine event emitted on the shared bus."""
    events = []

    async def capture(event):
        events.append(event)

    for name in (
        ENGINE_STARTED,
        ENGINE_STOPPED,
        OPERATION_DISPATCHED,
        OPERATION_COMPLETED,
        OPERATION_DISCARDED,
        CONTEXT_CHANGED,
    ):
        event_bus.subscribe(name, capture)
    return events

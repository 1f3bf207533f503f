import pytest

from assistant.session import ConversationBusyError, SessionRegistry
from conftest import ManualClock


def _registry(clock: ManualClock, ttl: float = 60) -> SessionRegistry:
    return SessionRegistry(fuzzy_company_match=True, idle_ttl=ttl, clock=clock)


def test_idle_session_evicted():
    clock = ManualClock()
    registry = _registry(clock)
    old = registry.create()
    clock.advance(60)
    registry.create()
    assert registry.get(old.session_id) is None
    assert len(registry) == 1


def test_access_keeps_session_alive():
    clock = ManualClock()
    registry = _registry(clock)
    session = registry.create()
    for _ in range(3):
        clock.advance(59)
        assert registry.get(session.session_id) is session


def test_streaming_session_not_evicted():
    clock = ManualClock()
    registry = _registry(clock)
    session = registry.create()
    session.acquire()
    clock.advance(600)
    assert registry.get(session.session_id) is session

    # finishing the reply counts as activity
    session.release()
    clock.advance(59)
    assert registry.get(session.session_id) is session


def test_single_flight_guard():
    registry = _registry(ManualClock())
    session = registry.create()
    session.acquire()
    with pytest.raises(ConversationBusyError):
        session.acquire()
    assert session.request_stop() is True
    session.release()
    assert not session.stop_requested
    assert session.request_stop() is False


def test_delete_requests_stop():
    registry = _registry(ManualClock())
    session = registry.create()
    session.acquire()
    assert registry.delete(session.session_id) is True
    assert session.stop_requested
    assert registry.delete(session.session_id) is False

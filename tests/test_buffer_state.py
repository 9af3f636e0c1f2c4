import pytest

from skorbot.services.buffer_state import (
    BufferEvent,
    BufferState,
    InvalidTransitionError,
    can_transition,
    transition,
)


class TestValidTransitions:
    def test_idle_enqueue_starts_buffering(self):
        assert transition(BufferState.IDLE, BufferEvent.ENQUEUE) == BufferState.BUFFERING

    def test_buffering_enqueue_stays_buffering(self):
        assert transition(BufferState.BUFFERING, BufferEvent.ENQUEUE) == BufferState.BUFFERING

    def test_expire_returns_to_idle(self):
        assert transition(BufferState.BUFFERING, BufferEvent.EXPIRE) == BufferState.IDLE

    def test_teardown_from_any_state(self):
        assert transition(BufferState.BUFFERING, BufferEvent.TEARDOWN) == BufferState.IDLE
        assert transition(BufferState.IDLE, BufferEvent.TEARDOWN) == BufferState.IDLE


class TestInvalidTransitions:
    def test_idle_cannot_expire(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(BufferState.IDLE, BufferEvent.EXPIRE)
        assert exc_info.value.from_state == BufferState.IDLE
        assert exc_info.value.event == BufferEvent.EXPIRE


class TestCanTransition:
    def test_valid_returns_true(self):
        assert can_transition(BufferState.IDLE, BufferEvent.ENQUEUE) is True

    def test_invalid_returns_false(self):
        assert can_transition(BufferState.IDLE, BufferEvent.EXPIRE) is False

from enum import Enum


class BufferState(str, Enum):
    IDLE = "idle"
    BUFFERING = "buffering"


class BufferEvent(str, Enum):
    ENQUEUE = "enqueue"
    EXPIRE = "expire"
    TEARDOWN = "teardown"


VALID_TRANSITIONS = {
    (BufferState.IDLE, BufferEvent.ENQUEUE): BufferState.BUFFERING,
    (BufferState.BUFFERING, BufferEvent.ENQUEUE): BufferState.BUFFERING,
    (BufferState.BUFFERING, BufferEvent.EXPIRE): BufferState.IDLE,
    (BufferState.BUFFERING, BufferEvent.TEARDOWN): BufferState.IDLE,
    (BufferState.IDLE, BufferEvent.TEARDOWN): BufferState.IDLE,
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: BufferState, event: BufferEvent):
        self.from_state = from_state
        self.event = event
        super().__init__(f"Invalid buffer transition: {from_state.value} --{event.value}-->")


def can_transition(from_state: BufferState, event: BufferEvent) -> bool:
    """Check if the event is allowed in this state."""
    return (from_state, event) in VALID_TRANSITIONS


def transition(from_state: BufferState, event: BufferEvent) -> BufferState:
    """Next state for an event. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, event):
        raise InvalidTransitionError(from_state, event)
    return VALID_TRANSITIONS[(from_state, event)]

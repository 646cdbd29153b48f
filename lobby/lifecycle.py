from __future__ import annotations

from statemachine import State, StateMachine


NOT_STARTED = "not_started"
STARTED = "started"


class SessionLifecycle(StateMachine):
    """The `started` flag of a session as a two-state machine.

    - not_started <-> started, driven only by the owner's start/end operations.
    - both events are accepted from either state, so repeating one is a no-op.
    - there is no final state.
    """

    not_started = State(NOT_STARTED, value=NOT_STARTED, initial=True)
    started = State(STARTED, value=STARTED)

    begin = not_started.to(started) | started.to.itself()
    finish = started.to(not_started) | not_started.to.itself()

    @classmethod
    def from_flag(cls, started: bool) -> "SessionLifecycle":
        return cls(start_value=STARTED if started else NOT_STARTED)

    @property
    def started_flag(self) -> bool:
        return self.current_state_value == STARTED

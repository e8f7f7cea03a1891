from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PollState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    DONE = "done"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


ALLOWED_TRANSITIONS: dict[PollState, set[PollState]] = {
    PollState.PENDING: {PollState.POLLING, PollState.STOPPED},
    PollState.POLLING: {PollState.DONE, PollState.TIMED_OUT, PollState.STOPPED},
    PollState.DONE: set(),
    PollState.TIMED_OUT: set(),
    PollState.STOPPED: set(),
}

TERMINAL_STATES: frozenset[PollState] = frozenset(
    {PollState.DONE, PollState.TIMED_OUT, PollState.STOPPED}
)


class IllegalTransitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class PollSnapshot:
    """Where a session's poll loop currently stands."""

    state: PollState
    session_id: str
    polls_count: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_json(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "session_id": self.session_id,
            "polls_count": self.polls_count,
        }


def transition(
    *, current: PollSnapshot, to: PollState, polls_count: int | None = None
) -> PollSnapshot:
    allowed = ALLOWED_TRANSITIONS.get(current.state, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.state.value} -> {to.value}")
    return PollSnapshot(
        state=to,
        session_id=current.session_id,
        polls_count=current.polls_count if polls_count is None else polls_count,
    )

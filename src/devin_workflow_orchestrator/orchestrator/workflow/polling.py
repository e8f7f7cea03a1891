"""Wait for a Devin session to finish.

Devin has no completion callback, only a status endpoint, so each step polls it.
The primary completion signal is application level: the step prompt asks the agent
to post the standalone message "sleep" once it is done. The vendor `status` /
`status_enum` fields are only a fallback, they are not reliable on their own.

The first wait is longer than the following ones because a session never finishes
meaningful work within a few seconds.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import requests

from devin_workflow_orchestrator.orchestrator.config import PollingConfig
from devin_workflow_orchestrator.orchestrator.devin.client import (
    DevinApiError,
    SessionDetails,
    is_session_completed,
)

from .state_machine import PollSnapshot, PollState, transition

logger = logging.getLogger(__name__)

SLEEP_TOKEN = "sleep"


class SessionReader(Protocol):
    def get_session(self, session_id: str) -> SessionDetails: ...


class CancellationToken:
    """Cooperative stop signal shared between a caller and a running workflow."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True as soon as cancellation is requested."""

        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


@dataclass(frozen=True, slots=True)
class PollResult:
    """Terminal outcome of a poll loop."""

    state: PollState
    polls_count: int
    session: SessionDetails | None = None
    # The second-to-last message; with the "sleep" token last, that is the
    # agent's final answer. Empty when the session has a single message.
    result_message: str | None = None
    last_error: str | None = None

    @property
    def completed(self) -> bool:
        return self.state is PollState.DONE

    @property
    def timeout(self) -> bool:
        return self.state is PollState.TIMED_OUT

    @property
    def stopped(self) -> bool:
        return self.state is PollState.STOPPED

    @property
    def ended_by_sleep_token(self) -> bool:
        return (
            self.completed
            and self.session is not None
            and self.session.message_text(-1) == SLEEP_TOKEN
        )


def is_transient_poll_error(exc: BaseException) -> bool:
    """Remote and transport failures are retried; anything else is a bug or bad config."""

    return isinstance(exc, (DevinApiError, requests.RequestException))


def poll_session_until_done(
    client: SessionReader,
    session_id: str,
    config: PollingConfig,
    *,
    max_polls: int | None = None,
    cancel: CancellationToken | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """Poll a session until it signals completion, times out or is stopped.

    Every read attempt counts as a poll, whether it succeeded or raised a transient
    error. Reaching `max_polls` (defaults to `config.max_polls`) or the optional
    overall `config.timeout_seconds` ends the loop in TIMED_OUT. Neither outcome
    raises.

    Raises:
        DevinAuthError: no API key configured; retrying cannot help.
    """

    limit = config.max_polls if max_polls is None else max_polls
    if limit <= 0:
        raise ValueError("max_polls must be > 0")

    token = cancel or CancellationToken()
    started = clock()
    snapshot = PollSnapshot(state=PollState.PENDING, session_id=session_id)
    last_session: SessionDetails | None = None
    last_error: str | None = None

    if token.cancelled:
        snapshot = transition(current=snapshot, to=PollState.STOPPED)
        return PollResult(state=snapshot.state, polls_count=0)

    snapshot = transition(current=snapshot, to=PollState.POLLING)
    poll_count = 0

    while poll_count < limit:
        if token.cancelled:
            snapshot = transition(current=snapshot, to=PollState.STOPPED, polls_count=poll_count)
            logger.info("Polling stopped", extra=snapshot.to_json())
            return PollResult(
                state=snapshot.state,
                polls_count=poll_count,
                session=last_session,
                last_error=last_error,
            )

        try:
            session = client.get_session(session_id)
        except Exception as exc:
            if not is_transient_poll_error(exc):
                raise
            last_error = str(exc)
            logger.warning(
                "Polling error; will retry",
                extra={"session_id": session_id, "poll": poll_count + 1, "error": last_error},
            )
        else:
            last_session = session
            done, message = _completion_signal(session)
            if done:
                snapshot = transition(
                    current=snapshot, to=PollState.DONE, polls_count=poll_count + 1
                )
                logger.info(
                    "Session done",
                    extra={**snapshot.to_json(), "status": session.status},
                )
                return PollResult(
                    state=snapshot.state,
                    polls_count=snapshot.polls_count,
                    session=session,
                    result_message=message,
                )

        poll_count += 1
        if poll_count >= limit:
            break

        if config.timeout_seconds and (clock() - started) >= config.timeout_seconds:
            logger.warning(
                "Timed out waiting for session",
                extra={"session_id": session_id, "timeout_seconds": config.timeout_seconds},
            )
            break

        interval = config.interval_after(poll_count)
        logger.debug(
            "Session not done yet",
            extra={
                "session_id": session_id,
                "poll": poll_count,
                "max_polls": limit,
                "interval_seconds": interval,
                "status": last_session.status if last_session else None,
            },
        )
        token.wait(interval)

    snapshot = transition(current=snapshot, to=PollState.TIMED_OUT, polls_count=poll_count)
    logger.warning("Polling ceiling reached", extra=snapshot.to_json())
    return PollResult(
        state=snapshot.state,
        polls_count=poll_count,
        session=last_session,
        last_error=last_error,
    )


def _completion_signal(session: SessionDetails) -> tuple[bool, str | None]:
    if session.message_count == 0:
        return False, None

    result = session.message_text(-2)
    if session.message_text(-1) == SLEEP_TOKEN:
        return True, result
    if is_session_completed(session.status, session.status_enum):
        return True, result
    return False, None

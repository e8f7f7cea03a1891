"""Execute parsed workflow steps sequentially, one Devin session per step.

Each step may depend on the output of the previous one, so steps never overlap.
Between steps the orchestrator carries:
- the previous step's handoff result (only when that step declared a handoff)
- the previous step's main result
- the inherited repository
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict

from devin_workflow_orchestrator.orchestrator.config import ConfigurationError, PollingConfig
from devin_workflow_orchestrator.orchestrator.devin.client import (
    CreatedSession,
    DevinApiError,
    SessionDetails,
    is_failed_status,
    session_url,
)

from .parser import WorkflowStep
from .polling import CancellationToken, PollResult, poll_session_until_done
from .prompt import RepoInheritance, build_step_prompt, expand_repo_url

logger = logging.getLogger(__name__)

TIMEOUT_RESULT = "Step timed out waiting for session completion"
TIMEOUT_STATUS = "timeout"
STOPPED_RESULT = "Workflow execution was stopped by user"
STOPPED_STATUS = "stopped"

StepOutcome = Literal["completed", "failed", "timeout", "stopped"]


class AgentClient(Protocol):
    def create_session(
        self, prompt: str, playbook_id: str | None = None, title: str | None = None
    ) -> CreatedSession: ...

    def get_session(self, session_id: str) -> SessionDetails: ...


class WorkflowStepResult(BaseModel):
    """Ledger entry for one executed step."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    success: bool
    outcome: StepOutcome
    session_id: str
    session_url: str
    main_result: str | None
    handoff_instruction: str | None = None
    handoff_result: str | None = None
    relied_on_previous: bool = False
    repo: str | None = None
    execution_time_ms: int
    main_execution_time_ms: int
    total_elapsed_time_ms: int
    polls_count: int
    completed_at: str
    session_status: str | None
    error: str | None = None


class SessionCreationError(Exception):
    """A step's session could not be created; the workflow cannot continue."""

    def __init__(self, step_number: int, reason: str, results: list[WorkflowStepResult]) -> None:
        super().__init__(f"Step {step_number}: {reason}")
        self.step_number = step_number
        self.results = results


def format_duration(milliseconds: float) -> str:
    total_seconds = int(milliseconds // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    if minutes == 0:
        return f"{seconds}s"
    if seconds == 0:
        return f"{minutes}m"
    return f"{minutes}m {seconds}s"


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


class WorkflowOrchestrator:
    """Runs steps against Devin and produces the results ledger."""

    def __init__(
        self,
        *,
        client: AgentClient,
        repo_base_url: str,
        polling: PollingConfig,
        echo: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not repo_base_url or not repo_base_url.strip():
            raise ConfigurationError(
                "ADO_URL environment variable is required. "
                "Set it to your Azure DevOps base URL, e.g. 'dev.azure.com/org/project/_git/'."
            )
        self._client = client
        self._repo_base_url = repo_base_url.strip()
        self._polling = polling
        self._echo = echo
        self._clock = clock

    @property
    def polling(self) -> PollingConfig:
        return self._polling

    def _say(self, message: str) -> None:
        if self._echo is not None:
            self._echo(message)

    def _elapsed_ms(self, since: float) -> int:
        return int((self._clock() - since) * 1000)

    def execute_workflow(
        self,
        steps: list[WorkflowStep],
        *,
        cancel: CancellationToken | None = None,
    ) -> list[WorkflowStepResult]:
        """Run all steps in order.

        A failed or timed-out step does not stop the workflow; the next step runs
        without previous-step context. A stop request ends the workflow after the
        current step.

        Raises:
            SessionCreationError: a session could not be created.
        """

        results: list[WorkflowStepResult] = []
        previous_handoff: str | None = None
        previous_result: str | None = None
        repos = RepoInheritance()
        workflow_started = self._clock()

        logger.info("Workflow started", extra={"step_count": len(steps)})
        self._say(f"Starting workflow execution with {len(steps)} steps")

        for step in steps:
            if cancel is not None and cancel.cancelled:
                logger.info("Workflow stopped before step", extra={"step": step.step_number})
                self._say(f"Workflow stopped before step {step.step_number}")
                break

            step_started = self._clock()
            self._say(
                f"Executing step {step.step_number}/{len(steps)} "
                f"(Total elapsed: {format_duration(self._elapsed_ms(workflow_started))})"
            )

            repo = repos.resolve(step)
            try:
                result = self.execute_step(
                    step,
                    repo=repo,
                    previous_handoff=previous_handoff,
                    previous_result=previous_result,
                    step_started=step_started,
                    workflow_started=workflow_started,
                    cancel=cancel,
                )
            except SessionCreationError as exc:
                exc.results = list(results)
                raise
            results.append(result)

            if result.success:
                previous_handoff = result.handoff_result
                if result.main_result:
                    previous_result = result.main_result
            else:
                previous_handoff = None
                previous_result = None

            status = "completed" if result.success else f"ended ({result.outcome})"
            self._say(
                f"Step {step.step_number} {status}; "
                f"step duration: {format_duration(result.execution_time_ms)}, "
                f"total elapsed: {format_duration(result.total_elapsed_time_ms)}"
            )
            if result.outcome == "stopped":
                break

        total_ms = self._elapsed_ms(workflow_started)
        logger.info(
            "Workflow finished",
            extra={"steps_run": len(results), "total_execution_time_ms": total_ms},
        )
        self._say(f"Workflow completed in {format_duration(total_ms)}")
        return results

    def execute_step(
        self,
        step: WorkflowStep,
        *,
        repo: str | None = None,
        previous_handoff: str | None = None,
        previous_result: str | None = None,
        step_started: float | None = None,
        workflow_started: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> WorkflowStepResult:
        """Create a session for `step`, wait for it and record the outcome."""

        now = self._clock()
        step_started = now if step_started is None else step_started
        workflow_started = step_started if workflow_started is None else workflow_started

        previous_data = previous_handoff or previous_result
        relied = step.rely_previous_step and bool(previous_data)
        repo_url = expand_repo_url(repo, self._repo_base_url) if repo else None

        prompt = build_step_prompt(step, repo_url=repo_url, previous_data=previous_data)
        if step.title:
            title = f"Step {step.step_number}: {step.title}"
        else:
            title = f"Workflow Step {step.step_number}"
        logger.debug(
            "Step prompt built",
            extra={"step": step.step_number, "repo": repo_url, "prompt_length": len(prompt)},
        )

        try:
            created = self._client.create_session(prompt, step.playbook, title)
        except Exception as exc:
            logger.exception("Session creation failed", extra={"step": step.step_number})
            if isinstance(exc, DevinApiError):
                reason = str(exc)
            else:
                reason = f"Failed to create session: {exc}"
            raise SessionCreationError(step.step_number, reason, []) from exc

        session_created = self._clock()
        self._say(
            f"Created session {session_url(created.session_id)} for step {step.step_number} "
            f"(Total elapsed: {format_duration((session_created - workflow_started) * 1000)})"
        )

        poll = poll_session_until_done(
            self._client, created.session_id, self._polling, cancel=cancel, clock=self._clock
        )
        main_done = self._clock()
        main_execution_ms = int((main_done - session_created) * 1000)
        self._say(
            f"   Session finished waiting ({poll.state.value}, polls: {poll.polls_count}, "
            f"execution: {format_duration(main_execution_ms)})"
        )

        outcome, main_result, session_status, error = _classify(poll)
        success = outcome == "completed"
        handoff_result = main_result if success and step.handoff and main_result else None

        step_ended = self._clock()
        result = WorkflowStepResult(
            step_number=step.step_number,
            success=success,
            outcome=outcome,
            session_id=created.session_id,
            session_url=session_url(created.session_id),
            main_result=main_result,
            handoff_instruction=step.handoff,
            handoff_result=handoff_result,
            relied_on_previous=relied,
            repo=repo_url,
            execution_time_ms=int((step_ended - step_started) * 1000),
            main_execution_time_ms=main_execution_ms,
            total_elapsed_time_ms=int((step_ended - workflow_started) * 1000),
            polls_count=poll.polls_count,
            completed_at=_utc_iso_now(),
            session_status=session_status,
            error=error,
        )
        logger.info(
            "Step finished",
            extra={
                "step": step.step_number,
                "session_id": created.session_id,
                "outcome": outcome,
                "polls_count": poll.polls_count,
            },
        )
        return result


def _classify(poll: PollResult) -> tuple[StepOutcome, str | None, str | None, str | None]:
    """Map a poll outcome to (outcome, main_result, session_status, error)."""

    if poll.timeout:
        detail = f"Session did not complete within {poll.polls_count} polls"
        if poll.last_error:
            detail += f" (last error: {poll.last_error})"
        return "timeout", TIMEOUT_RESULT, TIMEOUT_STATUS, detail

    if poll.stopped:
        return "stopped", STOPPED_RESULT, STOPPED_STATUS, STOPPED_RESULT

    session = poll.session
    status = session.status if session is not None else None
    if (
        session is not None
        and not poll.ended_by_sleep_token
        and is_failed_status(session.status, session.status_enum)
    ):
        return "failed", poll.result_message, status, f"Session ended with status '{status}'"
    return "completed", poll.result_message, status, None

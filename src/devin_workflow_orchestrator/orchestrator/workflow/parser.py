"""Parse markdown workflow documents into ordered steps.

A workflow document looks like::

    ## Overview
    Free text.

    ## Step 1: Requirements Analysis
    - Playbook: requirements
    - Prompt: Analyse the backlog item
    - Handoff: List the acceptance criteria
    - Repo: my-repo

    ## Step 2: Implementation
    - RelyPreviousStep: yes
    - Prompt: Implement the acceptance criteria

Steps are numbered by their order in the document, never by the number written in
the heading. The legacy `## Step N ##` heading form is accepted when no step uses
the titled form.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, ConfigDict

from devin_workflow_orchestrator.orchestrator.devin.client import (
    PLAYBOOK_PREFIX,
    normalize_playbook_id,
)

logger = logging.getLogger(__name__)

REPO_NONE = "none"

_STEP_HEADING = re.compile(r"^## Step (\d+): ?(.+)$", re.MULTILINE)
_LEGACY_STEP_HEADING = re.compile(r"^## Step (\d+) ##.*$", re.MULTILINE)
_PARAM_LINE = re.compile(r"^- (\w+):[ \t]*(.*)$", re.MULTILINE)
_OVERVIEW = re.compile(r"^## Overview[ \t]*\n(.*?)(?=^## |\Z)", re.MULTILINE | re.DOTALL)

_TRUE_VALUES = {"yes", "true", "1"}


class WorkflowParseError(ValueError):
    """Raised when a step cannot be parsed; aborts the whole document."""

    def __init__(self, step_number: int, reason: str) -> None:
        super().__init__(f"Step {step_number}: {reason}")
        self.step_number = step_number


class WorkflowStep(BaseModel):
    """One `## Step N: Title` section."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    title: str | None = None
    playbook: str | None = None
    prompt: str
    handoff: str | None = None
    # None: inherit (or nothing); "none": explicit break of inheritance; else a repo.
    repo: str | None = None
    rely_previous_step: bool = False
    raw_content: str = ""

    @property
    def repo_is_none(self) -> bool:
        return self.repo is not None and self.repo.strip().lower() == REPO_NONE


class ParsedWorkflow(BaseModel):
    model_config = ConfigDict(frozen=True)

    overview: str = ""
    steps: list[WorkflowStep]


class StepValidation(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]


class StepSummary(BaseModel):
    step_number: int
    has_playbook: bool
    has_handoff: bool
    has_repo: bool
    relies_on_previous: bool
    prompt_length: int


class WorkflowSummary(BaseModel):
    total_steps: int
    steps_with_playbooks: int
    steps_with_handoffs: int
    steps_with_repos: int
    steps_relying_on_previous: int
    steps: list[StepSummary]


def parse_workflow(markdown: str) -> ParsedWorkflow:
    """Parse a workflow document.

    Raises:
        WorkflowParseError: if any step lacks a prompt.
    """

    sections = _split_into_sections(markdown)
    steps = [_parse_step(heading, body, index) for index, (heading, body) in enumerate(sections, 1)]
    logger.debug("Workflow parsed", extra={"step_count": len(steps)})
    return ParsedWorkflow(overview=_extract_overview(markdown), steps=steps)


def _extract_overview(markdown: str) -> str:
    match = _OVERVIEW.search(markdown)
    return match.group(1).strip() if match else ""


def _split_into_sections(markdown: str) -> list[tuple[re.Match[str], str]]:
    matches = list(_STEP_HEADING.finditer(markdown))
    if not matches:
        matches = list(_LEGACY_STEP_HEADING.finditer(markdown))

    sections: list[tuple[re.Match[str], str]] = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(markdown)
        sections.append((match, markdown[match.end() : end].strip()))
    return sections


def _parse_step(heading: re.Match[str], body: str, step_number: int) -> WorkflowStep:
    title = heading.group(2).strip() if heading.re is _STEP_HEADING else None

    fields: dict[str, object] = {}
    for param in _PARAM_LINE.finditer(body):
        key = param.group(1).strip().lower()
        value = param.group(2).strip()

        if key == "playbook":
            fields["playbook"] = normalize_playbook_id(value)
        elif key == "prompt":
            fields["prompt"] = value
        elif key == "handoff":
            fields["handoff"] = _normalize_handoff(value)
        elif key == "repo":
            fields["repo"] = _normalize_repo(value)
        elif key in {"relypreviousstep", "rely_previous_step"}:
            fields["rely_previous_step"] = _parse_bool(value)
        # Unknown keys are ignored so documents can carry extra metadata.

    if not fields.get("prompt"):
        raise WorkflowParseError(step_number, "Prompt is required")

    rely = fields.pop("rely_previous_step", None)
    return WorkflowStep(
        step_number=step_number,
        title=title,
        rely_previous_step=step_number > 1 if rely is None else bool(rely),
        raw_content=body,
        **fields,
    )


def _normalize_handoff(value: str) -> str | None:
    if not value.strip() or value.strip().lower() in {"<none>", "null"}:
        return None
    return value


def _normalize_repo(value: str) -> str | None:
    stripped = value.strip()
    if not stripped or stripped.lower() == "null":
        return None
    if stripped.lower() == REPO_NONE:
        return REPO_NONE
    return value


def _parse_bool(value: str) -> bool | None:
    """Parse a yes/no flag. An empty value means "not supplied"."""

    if not value.strip():
        return None
    return value.strip().lower() in _TRUE_VALUES


def validate_steps(steps: list[WorkflowStep]) -> StepValidation:
    """Check a parsed step list. Errors block execution, warnings do not."""

    errors: list[str] = []
    warnings: list[str] = []

    for index, step in enumerate(steps):
        n = step.step_number
        if not step.prompt:
            errors.append(f"Step {n}: Missing required prompt")

        if index == 0 and step.rely_previous_step:
            errors.append(f"Step {n}: Cannot rely on previous step as it's the first step")

        if step.playbook and not step.playbook.startswith(PLAYBOOK_PREFIX):
            errors.append(f"Step {n}: Playbook ID should start with '{PLAYBOOK_PREFIX}'")

        if step.handoff is not None and not step.handoff.strip():
            warnings.append(f"Step {n}: Empty handoff instruction")

        if not step.handoff and step.rely_previous_step:
            warnings.append(f"Step {n}: Relies on previous step but has no handoff instruction")

    return StepValidation(valid=not errors, errors=errors, warnings=warnings)


def summarize_steps(steps: list[WorkflowStep]) -> WorkflowSummary:
    return WorkflowSummary(
        total_steps=len(steps),
        steps_with_playbooks=sum(1 for s in steps if s.playbook),
        steps_with_handoffs=sum(1 for s in steps if s.handoff),
        steps_with_repos=sum(1 for s in steps if s.repo),
        steps_relying_on_previous=sum(1 for s in steps if s.rely_previous_step),
        steps=[
            StepSummary(
                step_number=s.step_number,
                has_playbook=bool(s.playbook),
                has_handoff=bool(s.handoff),
                has_repo=bool(s.repo),
                relies_on_previous=s.rely_previous_step,
                prompt_length=len(s.prompt),
            )
            for s in steps
        ],
    )

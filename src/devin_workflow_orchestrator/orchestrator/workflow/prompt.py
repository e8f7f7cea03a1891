"""Build the initial instruction sent to each step's Devin session.

Section order is fixed:

    ## Expected Output and Requirements   (+ completion instruction)
    ------
    [- Repo: <url>]
    ## Tasks                               (+ previous-step context)
    ------
    <step prompt>
    ------
"""

from __future__ import annotations

from dataclasses import dataclass

from devin_workflow_orchestrator.orchestrator.config import ConfigurationError

from .parser import WorkflowStep
from .polling import SLEEP_TOKEN

SECTION_SEPARATOR = "------"
EXPECTED_OUTPUT_HEADING = "## Expected Output and Requirements"
STARTING_POINT_HEADING = "## Starting Point"
TASKS_HEADING = "## Tasks"
KNOWN_REPO_HOST = "dev.azure.com"

GENERIC_HANDOFF_CHECKLIST = (
    "\n- Brief of the achieved result that includes:\n"
    "\n  - Summary of completed tasks"
    "\n  - Key outcomes and Expected Output and Requirements"
    "\n  - Any important findings or decisions made"
    "\n  - Next steps or recommendations"
    "\n  - Technical details or artifacts created"
)

COMPLETION_INSTRUCTION = (
    f'- Lastly, when all of tasks has been executed, type exactly the word "{SLEEP_TOKEN}" '
    "(without quotes) to indicate completion.It must be a standalone message."
)


def expand_repo_url(repo: str, base_url: str) -> str:
    """Expand a short repository name against `base_url`; full URLs pass through."""

    if "://" in repo or repo.startswith(KNOWN_REPO_HOST):
        return repo
    if not base_url.strip():
        raise ConfigurationError("ADO_URL is required to expand repository names")
    base = base_url if base_url.endswith("/") else f"{base_url}/"
    return f"{base}{repo}"


@dataclass
class RepoInheritance:
    """Carries the last concrete repo forward to steps that do not declare one.

    - a concrete repo is used by its step and becomes the inherited value
    - no repo adopts the inherited value (steps after the first)
    - "none" gives its step no repo and clears the inherited value
    """

    inherited: str | None = None

    def resolve(self, step: WorkflowStep) -> str | None:
        if step.step_number == 1:
            if step.repo and not step.repo_is_none:
                self.inherited = step.repo
                return step.repo
            return None

        if step.repo is None:
            return self.inherited
        if step.repo_is_none:
            self.inherited = None
            return None
        self.inherited = step.repo
        return step.repo


def build_expected_output_section(step: WorkflowStep) -> str:
    section = (
        f"{EXPECTED_OUTPUT_HEADING}"
        "\n- Execute the tasks on the provided Tasks section systematically in the specified order"
    )
    if step.handoff:
        section += f"\n- Brief the achieved result that includes: \n {step.handoff}\n"
    else:
        section += GENERIC_HANDOFF_CHECKLIST
    return section


def build_tasks_section(repo_url: str | None, previous_data: str | None) -> str:
    section = TASKS_HEADING
    if repo_url:
        section = f"- Repo: {repo_url}\n\n{section}"
    if previous_data:
        context = previous_data.replace(EXPECTED_OUTPUT_HEADING, STARTING_POINT_HEADING, 1)
        section += (
            "\n- Review and acknowledge the provided context from the previous step:"
            f"\n\n{context}"
        )
    return section


def build_step_prompt(
    step: WorkflowStep,
    *,
    repo_url: str | None = None,
    previous_data: str | None = None,
) -> str:
    """Assemble the full session prompt.

    `previous_data` is embedded only when the step relies on the previous step.
    """

    context = previous_data if step.rely_previous_step else None
    return "\n\n".join(
        [
            f"{build_expected_output_section(step)}\n{COMPLETION_INSTRUCTION}",
            SECTION_SEPARATOR,
            build_tasks_section(repo_url, context),
            SECTION_SEPARATOR,
            step.prompt,
            SECTION_SEPARATOR,
        ]
    )

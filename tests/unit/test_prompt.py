"""Unit tests for step prompt assembly and repository resolution."""

from __future__ import annotations

import pytest

from devin_workflow_orchestrator.orchestrator.config import ConfigurationError
from devin_workflow_orchestrator.orchestrator.workflow.parser import WorkflowStep
from devin_workflow_orchestrator.orchestrator.workflow.prompt import (
    COMPLETION_INSTRUCTION,
    EXPECTED_OUTPUT_HEADING,
    GENERIC_HANDOFF_CHECKLIST,
    SECTION_SEPARATOR,
    STARTING_POINT_HEADING,
    TASKS_HEADING,
    RepoInheritance,
    build_step_prompt,
    build_tasks_section,
    expand_repo_url,
)


def _step(number: int = 1, **kwargs: object) -> WorkflowStep:
    return WorkflowStep(step_number=number, prompt=kwargs.pop("prompt", "Write the code"), **kwargs)


def test_prompt_sections_are_in_fixed_order() -> None:
    prompt = build_step_prompt(_step(), repo_url="dev.azure.com/acme/p/_git/app")

    expected_at = prompt.index(EXPECTED_OUTPUT_HEADING)
    completion_at = prompt.index(COMPLETION_INSTRUCTION)
    repo_at = prompt.index("- Repo: dev.azure.com/acme/p/_git/app")
    tasks_at = prompt.index(TASKS_HEADING)
    body_at = prompt.index("Write the code")

    assert expected_at < completion_at < repo_at < tasks_at < body_at
    assert prompt.count(SECTION_SEPARATOR) == 3
    assert prompt.endswith(SECTION_SEPARATOR)


def test_completion_instruction_text_is_exact() -> None:
    prompt = build_step_prompt(_step())

    assert (
        '- Lastly, when all of tasks has been executed, type exactly the word "sleep" '
        "(without quotes) to indicate completion.It must be a standalone message."
    ) in prompt


def test_prompt_uses_declared_handoff_instruction() -> None:
    prompt = build_step_prompt(_step(handoff="List the changed files"))

    assert "List the changed files" in prompt
    assert GENERIC_HANDOFF_CHECKLIST not in prompt


def test_prompt_uses_generic_checklist_without_handoff() -> None:
    prompt = build_step_prompt(_step())
    assert GENERIC_HANDOFF_CHECKLIST in prompt


def test_prompt_without_repo_has_no_repo_line() -> None:
    assert "- Repo:" not in build_step_prompt(_step())


def test_previous_data_is_embedded_only_when_step_relies_on_it() -> None:
    relying = build_step_prompt(_step(2, rely_previous_step=True), previous_data="Result A")
    independent = build_step_prompt(_step(2, rely_previous_step=False), previous_data="Result A")

    assert "Result A" in relying
    assert "provided context from the previous step" in relying
    assert "Result A" not in independent


def test_tasks_section_rewrites_first_expected_output_heading_only() -> None:
    previous = f"{EXPECTED_OUTPUT_HEADING}\n- done\n{EXPECTED_OUTPUT_HEADING}"

    section = build_tasks_section(None, previous)

    assert section.startswith(TASKS_HEADING)
    assert f"{STARTING_POINT_HEADING}\n- done\n{EXPECTED_OUTPUT_HEADING}" in section


def test_expand_repo_url_joins_short_names() -> None:
    assert expand_repo_url("app", "dev.azure.com/acme/p/_git/") == "dev.azure.com/acme/p/_git/app"
    assert expand_repo_url("app", "dev.azure.com/acme/p/_git") == "dev.azure.com/acme/p/_git/app"


def test_expand_repo_url_keeps_full_urls() -> None:
    assert expand_repo_url("https://git.example.com/app", "") == "https://git.example.com/app"
    assert expand_repo_url("dev.azure.com/other/_git/x", "") == "dev.azure.com/other/_git/x"


def test_expand_repo_url_requires_base_url_for_short_names() -> None:
    with pytest.raises(ConfigurationError):
        expand_repo_url("app", "  ")


def test_repo_inheritance_follows_declarations() -> None:
    steps = [
        _step(1, repo="A"),
        _step(2, repo=None),
        _step(3, repo="none"),
        _step(4, repo=None),
    ]
    inheritance = RepoInheritance()

    assert [inheritance.resolve(s) for s in steps] == ["A", "A", None, None]


def test_repo_inheritance_switches_to_new_repo() -> None:
    steps = [_step(1, repo="A"), _step(2, repo="B"), _step(3)]
    inheritance = RepoInheritance()

    assert [inheritance.resolve(s) for s in steps] == ["A", "B", "B"]


def test_first_step_with_none_repo_has_no_repo() -> None:
    inheritance = RepoInheritance()
    assert inheritance.resolve(_step(1, repo="none")) is None
    assert inheritance.resolve(_step(2)) is None

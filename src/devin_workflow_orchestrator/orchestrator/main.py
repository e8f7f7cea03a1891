"""CLI entrypoint for the workflow orchestrator."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from devin_workflow_orchestrator import __version__
from devin_workflow_orchestrator.orchestrator.config import WorkflowRunOptions, WorkflowSettings
from devin_workflow_orchestrator.orchestrator.devin.client import (
    DevinApiError,
    DevinAuthError,
    DevinClient,
)
from devin_workflow_orchestrator.orchestrator.logging import configure_logging
from devin_workflow_orchestrator.orchestrator.workflow.runner import (
    start_workflow,
    validate_workflow,
)

logger = logging.getLogger(__name__)


def _read_workflow(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devin-workflow",
        description="Run markdown-defined multi-step workflows against the Devin API",
    )
    parser.add_argument(
        "--version", action="version", version=f"devin-workflow-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser(
        "validate", help="Parse and validate a workflow without calling Devin"
    )
    validate.add_argument("workflow", help="Path to the workflow markdown file ('-' for stdin)")
    validate.add_argument(
        "--json", action="store_true", help="Print the full validation report as JSON"
    )

    run = subparsers.add_parser("run", help="Execute a workflow step by step")
    run.add_argument("workflow", help="Path to the workflow markdown file ('-' for stdin)")
    run.add_argument(
        "--mock",
        action="store_true",
        default=None,
        help="Use the mock Devin API (see DEVIN_MOCK_API_URL)",
    )
    run.add_argument("--mock-api-url", default=None, help="Mock Devin API base URL")
    run.add_argument(
        "--poll-seconds",
        type=float,
        default=None,
        help="Polling interval in seconds (default: DEVIN_POLLING_INTERVAL or 10)",
    )
    run.add_argument(
        "--first-poll-seconds",
        type=float,
        default=None,
        help="Wait before the second status read in seconds (default: 90)",
    )
    run.add_argument(
        "--max-polls",
        type=int,
        default=None,
        help="Maximum number of status reads per step (default: 9999)",
    )
    run.add_argument(
        "--timeout-seconds",
        type=float,
        default=None,
        help="Overall polling ceiling per step in seconds (0 means no ceiling)",
    )
    run.add_argument("--quiet", action="store_true", help="Do not narrate progress")
    run.add_argument(
        "--output",
        default=None,
        help="Write the execution summary as JSON to this path",
    )

    create_session = subparsers.add_parser("create-session", help="Create a Devin session")
    create_session.add_argument("--prompt", required=True, help="Session prompt")
    create_session.add_argument("--playbook", default=None, help="Optional playbook ID")
    create_session.add_argument("--title", default=None, help="Optional session title")

    get_session = subparsers.add_parser("get-session", help="Show a Devin session's status")
    get_session.add_argument("--session-id", required=True, help="Session ID")

    chat_session = subparsers.add_parser(
        "chat-session", help="Send a message to an existing Devin session"
    )
    chat_session.add_argument("--session-id", required=True, help="Session ID")
    chat_session.add_argument("--message", required=True, help="Message to send")

    return parser


def _build_client(settings: WorkflowSettings) -> DevinClient:
    base_url = settings.mock_api_url if settings.mock_mode else settings.devin_api_base_url
    return DevinClient(
        api_key=settings.devin_api_key,
        base_url=base_url,
        knowledge_ids=settings.parsed_knowledge_ids(),
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "validate":
            report = validate_workflow(_read_workflow(args.workflow))
            if args.json:
                _print_json(report.model_dump(mode="json"))
            else:
                state = "valid" if report.valid else "invalid"
                print(f"Workflow is {state}: {len(report.steps)} step(s)")
                for error in report.errors:
                    print(f"  error: {error}")
                for warning in report.warnings:
                    print(f"  warning: {warning}")
            return 0 if report.valid else 2

        if args.command == "run":
            try:
                options = WorkflowRunOptions.from_settings(
                    settings,
                    mock_mode=args.mock,
                    mock_api_url=args.mock_api_url,
                    polling_interval=args.poll_seconds,
                    first_polling_interval=args.first_poll_seconds,
                    max_polls=args.max_polls,
                    timeout=args.timeout_seconds,
                    verbose=not args.quiet,
                )
            except ValidationError as e:
                print(f"Invalid run options: {e}", file=sys.stderr)
                return 2

            summary = start_workflow(_read_workflow(args.workflow), options)
            if args.output:
                out = Path(args.output)
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(
                    json.dumps(summary.model_dump(mode="json"), indent=2, ensure_ascii=False)
                    + "\n",
                    encoding="utf-8",
                )
                print(f"Execution summary written to {out}")

            # Exit codes are designed to be CI-friendly.
            if summary.success:
                return 0
            if summary.error is not None:
                print(f"Workflow failed: {summary.error}", file=sys.stderr)
                return 2
            return 4

        if args.command == "create-session":
            client = _build_client(settings)
            try:
                created = client.create_session(args.prompt, args.playbook, args.title)
                print(f"Created session {created.session_id}: {created.url}")
                return 0
            finally:
                client.close()

        if args.command == "get-session":
            client = _build_client(settings)
            try:
                summary = client.get_session_summary(args.session_id)
                print(
                    f"Session {summary.session_id}: status={summary.status} "
                    f"completed={summary.is_completed}"
                )
                if summary.last_message:
                    print(f"Last message: {summary.last_message}")
                return 0
            finally:
                client.close()

        if args.command == "chat-session":
            client = _build_client(settings)
            try:
                client.chat_session(args.session_id, args.message)
                print(f"Message sent to session {args.session_id}")
                return 0
            finally:
                client.close()

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except DevinAuthError as e:
        print(str(e), file=sys.stderr)
        return 2

    except DevinApiError as e:
        logger.warning(str(e), extra={"status_code": e.status_code})
        print(str(e), file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

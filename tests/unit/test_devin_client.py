"""Unit tests for the Devin REST client (HTTP layer mocked)."""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
import requests

from devin_workflow_orchestrator.orchestrator.devin.client import (
    DevinApiError,
    DevinAuthError,
    DevinClient,
    is_failed_status,
    is_session_completed,
    normalize_playbook_id,
    session_url,
)
from devin_workflow_orchestrator.orchestrator.workflow import parser


def _response(payload: Any = None, *, status_code: int = 200, text: str = "") -> Mock:
    resp = Mock(spec=requests.Response)
    resp.ok = status_code < 400
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = payload
    return resp


def _http() -> Mock:
    http = Mock(spec=requests.Session)
    http.headers = {}
    return http


def test_create_session_posts_prompt_and_prefixed_playbook() -> None:
    http = _http()
    http.post.return_value = _response({"session_id": "devin-abc", "status": "running"})
    client = DevinClient(
        api_key="key", base_url="https://api.example.com/v1/", knowledge_ids=["k1"], session=http
    )

    created = client.create_session("Do it", "review", "Step 1: Review")

    assert created.session_id == "devin-abc"
    assert created.status == "running"
    assert created.url == "https://app.devin.ai/sessions/abc"

    args, kwargs = http.post.call_args
    assert args == ("https://api.example.com/v1/sessions",)
    assert kwargs["json"] == {
        "prompt": "Do it",
        "idempotent": False,
        "knowledge_ids": ["k1"],
        "playbook_id": "playbook-review",
        "title": "Step 1: Review",
    }
    assert kwargs["headers"] == {"Authorization": "Bearer key"}


def test_create_session_omits_none_playbook() -> None:
    http = _http()
    http.post.return_value = _response({"session_id": "devin-abc", "status": "running"})
    client = DevinClient(api_key="key", session=http)

    client.create_session("Do it", "<none>")

    _, kwargs = http.post.call_args
    assert "playbook_id" not in kwargs["json"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("review", "playbook-review"),
        (" playbook-review ", "playbook-review"),
        ("<none>", None),
        ("", None),
    ],
)
def test_normalize_playbook_id(raw, expected) -> None:
    assert normalize_playbook_id(raw) == expected


def test_parser_shares_the_client_playbook_normalizer() -> None:
    assert parser.normalize_playbook_id is normalize_playbook_id


def test_create_session_requires_api_key() -> None:
    http = _http()
    client = DevinClient(api_key="", session=http)

    with pytest.raises(DevinAuthError):
        client.create_session("Do it")
    http.post.assert_not_called()


def test_create_session_raises_on_http_error() -> None:
    http = _http()
    http.post.return_value = _response(status_code=500, text="boom")
    client = DevinClient(api_key="key", session=http)

    with pytest.raises(DevinApiError) as excinfo:
        client.create_session("Do it")

    assert excinfo.value.status_code == 500
    assert str(excinfo.value) == "Failed to create session: HTTP 500: boom"


def test_get_session_parses_messages() -> None:
    http = _http()
    http.get.return_value = _response(
        {
            "session_id": "devin-abc",
            "status": "running",
            "status_enum": "working",
            "messages": [
                {"type": "user_message", "message": "Do it"},
                {"type": "devin_message", "message": "Result"},
                "not-a-dict",
                {"type": "devin_message", "message": "sleep"},
            ],
        }
    )
    client = DevinClient(api_key="key", base_url="https://api.example.com/v1", session=http)

    session = client.get_session("devin-abc")

    assert http.get.call_args.args == ("https://api.example.com/v1/session/devin-abc",)
    assert session.message_count == 3
    assert session.message_text(-1) == "sleep"
    assert session.message_text(-2) == "Result"
    assert session.message_text(10) == ""
    assert session.last_devin_message == "sleep"


def test_chat_session_wraps_plain_text() -> None:
    http = _http()
    http.post.return_value = _response({})
    client = DevinClient(api_key="key", base_url="https://api.example.com/v1", session=http)

    result = client.chat_session("devin-abc", "Please continue")

    assert result.success is True
    assert http.post.call_args.args == ("https://api.example.com/v1/sessions/devin-abc/messages",)
    assert http.post.call_args.kwargs["json"] == {"message": "Please continue"}


def test_session_summary_reports_completion() -> None:
    http = _http()
    http.get.return_value = _response(
        {"status": "finished", "messages": [{"type": "devin_message", "message": "Done"}]}
    )
    client = DevinClient(api_key="key", session=http)

    summary = client.get_session_summary("devin-abc")

    assert summary.session_id == "devin-abc"
    assert summary.is_completed is True
    assert summary.has_devin_messages is True
    assert summary.last_message == "Done"


@pytest.mark.parametrize(
    ("status", "status_enum", "expected"),
    [
        ("completed", None, True),
        ("Finished", None, True),
        ("running", "finished", False),
        ("unknown", "blocked", True),
        ("unknown", None, False),
        (None, None, False),
    ],
)
def test_is_session_completed(status, status_enum, expected) -> None:
    assert is_session_completed(status, status_enum) is expected


def test_is_failed_status() -> None:
    assert is_failed_status("error", None) is True
    assert is_failed_status("completed", "cancelled") is True
    assert is_failed_status("completed", None) is False


def test_session_url_strips_api_prefix() -> None:
    assert session_url("devin-123") == "https://app.devin.ai/sessions/123"
    assert session_url("123") == "https://app.devin.ai/sessions/123"

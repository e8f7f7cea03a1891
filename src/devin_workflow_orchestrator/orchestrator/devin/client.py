"""Devin API client wrapper.

This keeps Devin HTTP calls out of the orchestrator and makes tests easy: the
orchestrator only depends on `create_session`, `get_session` and `chat_session`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

logger = logging.getLogger(__name__)

PLAYBOOK_PREFIX = "playbook-"
SESSION_WEB_URL = "https://app.devin.ai/sessions"

COMPLETED_STATES: frozenset[str] = frozenset(
    {
        "completed",
        "finished",
        "done",
        "success",
        "failed",
        "error",
        "cancelled",
        "blocked",
        "complete",
        "terminated",
        "stopped",
    }
)
RUNNING_STATES: frozenset[str] = frozenset(
    {"running", "in_progress", "processing", "active", "pending", "started"}
)
# Terminal states that mean the remote agent gave up rather than finished.
FAILED_STATES: frozenset[str] = frozenset({"failed", "error", "cancelled", "terminated"})


class DevinAuthError(Exception):
    """Raised when a call is attempted without a configured API key."""


class DevinApiError(Exception):
    """Raised when the Devin API answers with a non-2xx status."""

    def __init__(self, *, operation: str, status_code: int, body: str) -> None:
        super().__init__(f"Failed to {operation}: HTTP {status_code}: {body}")
        self.operation = operation
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True, slots=True)
class CreatedSession:
    """Minimal session metadata returned when a session is created."""

    session_id: str
    status: str | None
    title: str | None
    created_at: str | None
    playbook_id: str | None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        return session_url(self.session_id)


@dataclass(frozen=True, slots=True)
class SessionDetails:
    """A snapshot of a session, as returned by the status endpoint."""

    session_id: str
    status: str | None
    status_enum: str | None
    title: str | None
    created_at: str | None
    updated_at: str | None
    playbook_id: str | None
    messages: list[dict[str, Any]]
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def devin_messages(self) -> list[dict[str, Any]]:
        return [m for m in self.messages if m.get("type") == "devin_message"]

    @property
    def last_devin_message(self) -> str | None:
        devin = self.devin_messages
        if not devin:
            return None
        value = devin[-1].get("message")
        return value if isinstance(value, str) else None

    def message_text(self, index: int) -> str:
        """Text of the message at `index` (negative indexes allowed), or ''."""

        try:
            value = self.messages[index].get("message")
        except IndexError:
            return ""
        return value if isinstance(value, str) else ""


@dataclass(frozen=True, slots=True)
class ChatResult:
    session_id: str
    message_sent: bool
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.message_sent


@dataclass(frozen=True, slots=True)
class SessionSummary:
    session_id: str
    status: str | None
    title: str | None
    has_devin_messages: bool
    last_message: str | None
    is_completed: bool
    created_at: str | None
    updated_at: str | None


def session_url(session_id: str) -> str:
    """Web URL of a session (the API prefixes ids with 'devin-', the UI does not)."""

    plain_id = session_id.removeprefix("devin-")
    return f"{SESSION_WEB_URL}/{plain_id}"


def normalize_playbook_id(value: str) -> str | None:
    """Add the `playbook-` prefix when missing; blank or `<none>` means no playbook."""

    value = value.strip()
    if not value or value.lower() == "<none>":
        return None
    if value.startswith(PLAYBOOK_PREFIX):
        return value
    return f"{PLAYBOOK_PREFIX}{value}"


def is_session_completed(status: object, status_enum: object) -> bool:
    """Classify vendor status fields.

    `status` wins over `status_enum`. Unknown tokens are treated as still running.
    """

    for value in (status, status_enum):
        if not isinstance(value, str):
            continue
        token = value.lower()
        if token in COMPLETED_STATES:
            return True
        if token in RUNNING_STATES:
            return False
    return False


def is_failed_status(status: object, status_enum: object) -> bool:
    for value in (status, status_enum):
        if isinstance(value, str) and value.lower() in FAILED_STATES:
            return True
    return False


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None


class DevinClient:
    """Small wrapper around the Devin REST API for the operations we need."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.devin.ai/v1",
        knowledge_ids: list[str] | None = None,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._base_url = base_url.rstrip("/")
        self._knowledge_ids = list(knowledge_ids or [])
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "devin-workflow-orchestrator"})

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._session.close()

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise DevinAuthError("DEVIN_API_KEY is required. Please set the API key first.")
        return self._api_key

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._require_api_key()}"}

    def _json_or_raise(self, resp: requests.Response, *, operation: str) -> dict[str, Any]:
        if not resp.ok:
            raise DevinApiError(operation=operation, status_code=resp.status_code, body=resp.text)
        data = resp.json()
        return data if isinstance(data, dict) else {}

    def create_session(
        self,
        prompt: str,
        playbook_id: str | None = None,
        title: str | None = None,
    ) -> CreatedSession:
        headers = self._headers()
        if not prompt.strip():
            raise ValueError("prompt is required")

        payload: dict[str, Any] = {
            "prompt": prompt,
            "idempotent": False,
            "knowledge_ids": self._knowledge_ids,
        }
        playbook = normalize_playbook_id(playbook_id) if playbook_id else None
        if playbook:
            payload["playbook_id"] = playbook
        if title:
            payload["title"] = title

        resp = self._session.post(
            f"{self._base_url}/sessions", json=payload, headers=headers, timeout=self._timeout
        )
        data = self._json_or_raise(resp, operation="create session")

        session_id = data.get("session_id")
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValueError("Unexpected create session response: missing session_id")

        logger.info(
            "Devin session created",
            extra={"session_id": session_id, "playbook_id": payload.get("playbook_id")},
        )
        return CreatedSession(
            session_id=session_id,
            status=_str_or_none(data.get("status")),
            title=_str_or_none(data.get("title")),
            created_at=_str_or_none(data.get("created_at")),
            playbook_id=_str_or_none(data.get("playbook_id")),
            raw_response=data,
        )

    def get_session(self, session_id: str) -> SessionDetails:
        headers = self._headers()
        resp = self._session.get(
            f"{self._base_url}/session/{session_id}", headers=headers, timeout=self._timeout
        )
        data = self._json_or_raise(resp, operation=f"get session {session_id}")

        raw_messages = data.get("messages")
        messages = (
            [m for m in raw_messages if isinstance(m, dict)]
            if isinstance(raw_messages, list)
            else []
        )
        return SessionDetails(
            session_id=_str_or_none(data.get("session_id")) or session_id,
            status=_str_or_none(data.get("status")),
            status_enum=_str_or_none(data.get("status_enum")),
            title=_str_or_none(data.get("title")),
            created_at=_str_or_none(data.get("created_at")),
            updated_at=_str_or_none(data.get("updated_at")),
            playbook_id=_str_or_none(data.get("playbook_id")),
            messages=messages,
            raw_response=data,
        )

    def chat_session(self, session_id: str, message: str | dict[str, Any]) -> ChatResult:
        headers = self._headers()
        payload = {"message": message} if isinstance(message, str) else message
        resp = self._session.post(
            f"{self._base_url}/sessions/{session_id}/messages",
            json=payload,
            headers=headers,
            timeout=self._timeout,
        )
        data = self._json_or_raise(resp, operation=f"send message to session {session_id}")
        logger.info("Message sent to Devin session", extra={"session_id": session_id})
        return ChatResult(session_id=session_id, message_sent=True, raw_response=data)

    @staticmethod
    def is_session_completed(status: object, status_enum: object) -> bool:
        return is_session_completed(status, status_enum)

    def get_session_summary(self, session_id: str) -> SessionSummary:
        session = self.get_session(session_id)
        return SessionSummary(
            session_id=session.session_id,
            status=session.status,
            title=session.title,
            has_devin_messages=bool(session.devin_messages),
            last_message=session.last_devin_message,
            is_completed=is_session_completed(session.status, session.status_enum),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    def test_connection(self) -> CreatedSession:
        """Create a throwaway session to prove the key and base URL work."""

        return self.create_session(
            "Test connection to Devin API", playbook_id=None, title="API Connection Test"
        )

"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest

from devin_workflow_orchestrator.orchestrator.config import PollingConfig
from devin_workflow_orchestrator.orchestrator.devin.client import (
    CreatedSession,
    DevinClient,
    SessionDetails,
)

SETTINGS_ENV_VARS = (
    "DEVIN_API_KEY",
    "DEVIN_API_BASE_URL",
    "DEVIN_KNOWLEDGE_IDS",
    "ADO_URL",
    "DEVIN_POLLING_INTERVAL",
    "DEVIN_FIRST_POLLING_INTERVAL",
    "DEVIN_MAX_POLLS",
    "DEVIN_TIMEOUT",
    "DEVIN_MOCK_MODE",
    "DEVIN_MOCK_API_URL",
    "LOG_LEVEL",
    "ORCHESTRATOR_CORS_ORIGINS",
)

SessionFactory = Callable[..., SessionDetails]


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate settings from the developer's environment and `.env` file."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fast_polling() -> PollingConfig:
    """Polling without any waiting."""
    return PollingConfig(
        polling_interval_seconds=0,
        first_polling_interval_seconds=0,
        max_polls=5,
    )


@pytest.fixture
def make_session() -> SessionFactory:
    """Build `SessionDetails` from plain message texts."""

    def _make(
        session_id: str = "devin-1",
        *,
        status: str | None = "running",
        status_enum: str | None = None,
        messages: list[str] | None = None,
    ) -> SessionDetails:
        return SessionDetails(
            session_id=session_id,
            status=status,
            status_enum=status_enum,
            title=None,
            created_at=None,
            updated_at=None,
            playbook_id=None,
            messages=[{"type": "devin_message", "message": m} for m in messages or []],
        )

    return _make


@pytest.fixture
def mock_devin() -> Mock:
    """A `DevinClient` double whose sessions are ids `devin-1`, `devin-2`, ... in order."""
    client = Mock(spec=DevinClient)
    counter = {"n": 0}

    def _create(prompt: str, playbook_id: str | None = None, title: str | None = None) -> Any:
        counter["n"] += 1
        return CreatedSession(
            session_id=f"devin-{counter['n']}",
            status="running",
            title=title,
            created_at=None,
            playbook_id=playbook_id,
        )

    client.create_session.side_effect = _create
    return client

"""Configuration for the workflow orchestrator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Nothing is required at load time. The credential and the repository base URL are
checked when a workflow actually runs, so `validate` works without either.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DEVIN_API_BASE_URL = "https://api.devin.ai/v1"
DEFAULT_MOCK_API_URL = "http://localhost:3001/v1"


class ConfigurationError(ValueError):
    """Raised when a required setting is missing or empty."""


class WorkflowSettings(BaseSettings):
    """Settings for the workflow orchestrator.

    Environment variables:
    - DEVIN_API_KEY
    - ADO_URL                       (required to run workflows)
    - DEVIN_API_BASE_URL            (optional)
    - DEVIN_KNOWLEDGE_IDS           (optional, comma-separated)
    - DEVIN_POLLING_INTERVAL        (optional, seconds)
    - DEVIN_FIRST_POLLING_INTERVAL  (optional, seconds)
    - DEVIN_MAX_POLLS               (optional)
    - DEVIN_TIMEOUT                 (optional, seconds; 0 disables the overall ceiling)
    - DEVIN_MOCK_MODE / DEVIN_MOCK_API_URL (optional)
    - LOG_LEVEL                     (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `WorkflowSettings(_env_file=path_to_env)`.
    """

    devin_api_key: str = Field(
        default="",
        validation_alias="DEVIN_API_KEY",
        description="Devin API key used for bearer authentication",
    )
    devin_api_base_url: str = Field(
        default=DEFAULT_DEVIN_API_BASE_URL,
        validation_alias="DEVIN_API_BASE_URL",
        description="Devin API base URL",
    )
    devin_knowledge_ids: str = Field(
        default="",
        validation_alias="DEVIN_KNOWLEDGE_IDS",
        description="Comma-separated knowledge IDs attached to every created session",
    )

    repo_base_url: str = Field(
        default="",
        validation_alias="ADO_URL",
        description=(
            "Base URL used to expand short repository names, "
            "e.g. 'dev.azure.com/org/project/_git/'"
        ),
    )

    polling_interval_seconds: float = Field(
        default=10.0,
        ge=0,
        validation_alias="DEVIN_POLLING_INTERVAL",
        description="Interval between session status reads after the first retry",
    )
    first_polling_interval_seconds: float = Field(
        default=90.0,
        ge=0,
        validation_alias="DEVIN_FIRST_POLLING_INTERVAL",
        description="Interval before the second status read of a session",
    )
    max_polls: int = Field(
        default=9999,
        gt=0,
        validation_alias="DEVIN_MAX_POLLS",
        description="Maximum number of status reads per session",
    )
    timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        validation_alias="DEVIN_TIMEOUT",
        description="Overall polling ceiling per session in seconds (0 means no ceiling)",
    )

    mock_mode: bool = Field(
        default=False,
        validation_alias="DEVIN_MOCK_MODE",
        description="Talk to a local mock Devin API instead of the real service",
    )
    mock_api_url: str = Field(
        default=DEFAULT_MOCK_API_URL,
        validation_alias="DEVIN_MOCK_API_URL",
        description="Base URL of the mock Devin API",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    def parsed_knowledge_ids(self) -> list[str]:
        return [k.strip() for k in self.devin_knowledge_ids.split(",") if k.strip()]


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Immutable polling parameters handed to the orchestrator and the poll loop."""

    polling_interval_seconds: float = 10.0
    first_polling_interval_seconds: float = 90.0
    max_polls: int = 9999
    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.max_polls <= 0:
            raise ValueError("max_polls must be > 0")
        if self.polling_interval_seconds < 0 or self.first_polling_interval_seconds < 0:
            raise ValueError("polling intervals must be >= 0")
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0")

    def interval_after(self, poll_count: int) -> float:
        """Seconds to wait after `poll_count` unsuccessful reads."""

        if poll_count == 1:
            return self.first_polling_interval_seconds
        return self.polling_interval_seconds


class WorkflowRunOptions(BaseModel):
    """Effective settings for one workflow run.

    Built from :class:`WorkflowSettings` so that callers (CLI flags, REST payloads)
    only override what they care about.
    """

    api_key: str = ""
    api_base_url: str = DEFAULT_DEVIN_API_BASE_URL
    knowledge_ids: list[str] = Field(default_factory=list)
    repo_base_url: str = ""

    polling_interval: float = Field(default=10.0, ge=0)
    first_polling_interval: float = Field(default=90.0, ge=0)
    max_polls: int = Field(default=9999, gt=0)
    timeout: float = Field(default=0.0, ge=0)

    verbose: bool = True
    mock_mode: bool = False
    mock_api_url: str = DEFAULT_MOCK_API_URL

    @classmethod
    def from_settings(cls, settings: WorkflowSettings, **overrides: object) -> WorkflowRunOptions:
        base: dict[str, object] = {
            "api_key": settings.devin_api_key,
            "api_base_url": settings.devin_api_base_url,
            "knowledge_ids": settings.parsed_knowledge_ids(),
            "repo_base_url": settings.repo_base_url,
            "polling_interval": settings.polling_interval_seconds,
            "first_polling_interval": settings.first_polling_interval_seconds,
            "max_polls": settings.max_polls,
            "timeout": settings.timeout_seconds,
            "mock_mode": settings.mock_mode,
            "mock_api_url": settings.mock_api_url,
        }
        base.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(base)

    @property
    def effective_base_url(self) -> str:
        return self.mock_api_url if self.mock_mode else self.api_base_url

    def polling_config(self) -> PollingConfig:
        return PollingConfig(
            polling_interval_seconds=self.polling_interval,
            first_polling_interval_seconds=self.first_polling_interval,
            max_polls=self.max_polls,
            timeout_seconds=self.timeout,
        )

    def echo_config(self) -> dict[str, object]:
        """Effective settings echoed back in execution summaries (no secrets)."""

        return {
            "mock_mode": self.mock_mode,
            "polling_interval": self.polling_interval,
            "first_polling_interval": self.first_polling_interval,
            "max_polls": self.max_polls,
            "timeout": self.timeout,
        }

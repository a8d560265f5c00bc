"""
Configuration for the DeployGate upload action.

Two layers, both read from the environment with pydantic-settings:

- ActionInputs: the raw action inputs. The runner exposes every input as an
  `INPUT_<NAME>` environment variable (action.yml wires them explicitly for
  the composite action). Values stay plain strings here; sanitising and
  validation happen in stage_1_validate_inputs.
- ActionSettings: tunables (endpoints, retry policy, timeouts) under the
  `DEPLOYGATE_` prefix, with defaults that match the hosted DeployGate service.
"""

from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ActionInputs(BaseSettings):
    """Raw, unvalidated action inputs exactly as the runner passes them."""

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        extra="ignore",
        case_sensitive=False,
    )

    api_token: str = ""
    owner_name: str = ""
    file_path: str = ""
    message: str = ""
    distribution_key: str = ""
    distribution_name: str = ""
    release_note: str = ""
    disable_notify: str = "false"
    enable_pr_comment: str = "true"
    github_token: str = ""


class ActionSettings(BaseSettings):
    """Tunables of the upload pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYGATE_",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    api_base_url: str = Field(
        default="https://deploygate.com",
        min_length=8,
        description="Base URL of the DeployGate service (no trailing slash).",
    )
    user_agent: str = Field(
        default="DeployGate-Upload-GitHub-Action/v1",
        min_length=1,
        description="User-Agent sent with every upload request.",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Upload attempts before giving up. 1 disables retries.",
    )
    backoff_base_ms: int = Field(
        default=5000,
        ge=0,
        description="Wait before retry k is 2^k * backoff_base_ms.",
    )
    connect_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="TCP connect timeout per attempt.",
    )
    read_timeout_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Read timeout per attempt. Large binaries take minutes to register.",
    )
    max_redirects: int = Field(default=5, ge=0, le=30)
    qr_code_endpoint: str = Field(
        default="https://api.qrserver.com/v1/create-qr-code/",
        description="QR image generator; the distribution URL is passed as `data`.",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        validation_alias=AliasChoices("DEPLOYGATE_GITHUB_API_URL", "GITHUB_API_URL"),
        description="GitHub REST API root (GHES runners set GITHUB_API_URL).",
    )
    comment_timeout_seconds: float = Field(default=30.0, gt=0)

    @property
    def upload_timeout(self) -> tuple[float, float]:
        """(connect, read) timeout tuple for requests."""
        return (self.connect_timeout_seconds, self.read_timeout_seconds)

    def upload_url(self, owner_name: str) -> str:
        """Upload endpoint; the owner name is one percent-encoded path segment."""
        return f"{self.api_base_url.rstrip('/')}/api/users/{quote(owner_name, safe='')}/apps"

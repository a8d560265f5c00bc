"""
Data model for the DeployGate upload pipeline (Pydantic v2).

    UploadRequest      validated, immutable inputs for one upload (Stage 1 output)
    UploadResults      the `results` record returned by the DeployGate API
    UploadOutcome      success (results) or terminal failure (error) of Stage 2
    PullRequestContext where the status comment goes (Stage 4 input)

UploadResults is deliberately open: the known fields are typed, but any field
the API adds later is kept as a pydantic "extra" and re-emitted by
`model_dump()`, so the `results` step output never drops data.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr, SecretStr, ValidationError
from pydantic.config import ConfigDict

from deploygate_action.errors import UploadError


SUPPORTED_EXTENSIONS = (".ipa", ".apk", ".aab")


class UploadRequest(BaseModel):
    """Validated inputs for one upload. Built only by stage_1_validate_inputs."""

    model_config = ConfigDict(frozen=True)

    api_token: SecretStr = Field(..., description="DeployGate API token (Bearer).")
    owner_name: str = Field(..., min_length=1, description="User or organization name.")
    file_path: Path = Field(..., description="Absolute path to the app binary.")
    file_size: int = Field(..., gt=0, description="Binary size in bytes.")
    message: Optional[str] = None
    distribution_key: Optional[str] = None
    distribution_name: Optional[str] = None
    release_note: Optional[str] = None
    disable_notify: bool = False
    enable_pr_comment: bool = True
    github_token: Optional[SecretStr] = None

    @property
    def file_extension(self) -> str:
        return self.file_path.suffix.lower()

    @property
    def file_size_mb(self) -> float:
        return self.file_size / (1024 * 1024)

    def form_fields(self) -> dict[str, str]:
        """Multipart text fields: optional ones only when set, disable_notify always."""
        fields: dict[str, str] = {}
        if self.message:
            fields["message"] = self.message
        if self.distribution_key:
            fields["distribution_key"] = self.distribution_key
        if self.distribution_name:
            fields["distribution_name"] = self.distribution_name
        if self.release_note:
            fields["release_note"] = self.release_note
        fields["disable_notify"] = "true" if self.disable_notify else "false"
        return fields


class UploaderUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None


class DistributionInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None


class UploadResults(BaseModel):
    """
    The `results` object of a successful upload response.

    Every field is optional because the API omits some of them depending on
    the platform (e.g. `target_sdk_version` is null for iOS builds).
    """

    model_config = ConfigDict(extra="allow")

    package_name: Optional[str] = None
    os_name: Optional[str] = None
    name: Optional[str] = None
    version_code: Optional[Union[int, str]] = None
    version_name: Optional[Union[int, str]] = None
    sdk_version: Optional[int] = None
    raw_sdk_version: Optional[str] = None
    target_sdk_version: Optional[int] = None
    signature: Optional[str] = None
    message: Optional[str] = None
    file: Optional[str] = None
    icon: Optional[str] = None
    revision: Optional[int] = None
    path: Optional[str] = None
    user: Optional[UploaderUser] = None
    distribution: Optional[DistributionInfo] = None

    # Known fields whose value had an unexpected type, kept verbatim.
    _unparsed: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_response(cls, raw: dict[str, Any]) -> "UploadResults":
        """
        Build the record from an accepted upload without ever rejecting it.

        A known field whose value does not fit its type (e.g. a numeric
        `raw_sdk_version`) is left unset on the model and re-emitted unchanged
        by `to_output()`.
        """
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            invalid = {err["loc"][0] for err in e.errors() if err["loc"]}

        results = cls.model_validate({k: v for k, v in raw.items() if k not in invalid})
        results._unparsed = {k: v for k, v in raw.items() if k in invalid}
        return results

    @property
    def unparsed_fields(self) -> list[str]:
        return sorted(self._unparsed)

    @property
    def distribution_url(self) -> Optional[str]:
        if self.distribution is None:
            return None
        return self.distribution.url or None

    def to_output(self) -> dict[str, Any]:
        """Plain dict for the step output, including unknown and unparsed fields."""
        output = self.model_dump(mode="json")
        output.update(self._unparsed)
        return output


@dataclass(frozen=True)
class UploadOutcome:
    """
    Terminal result of Stage 2.

    Exactly one of `results`/`error` describes the outcome: `error` is set on
    failure, otherwise the upload succeeded (`results` may still be None if
    the server returned no results object).
    """

    results: Optional[UploadResults] = None
    error: Optional[UploadError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def http_status(self) -> Optional[int]:
        return self.error.http_status if self.error else None


class PullRequestContext(BaseModel):
    """Repository and pull request the current workflow run belongs to."""

    model_config = ConfigDict(frozen=True)

    repository: str = Field(default="", description="'owner/name' of the repository.")
    pr_number: Optional[int] = Field(default=None, description="Pull request number, if any.")

    @property
    def has_thread(self) -> bool:
        return bool(self.repository) and self.pr_number is not None

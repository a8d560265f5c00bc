"""
Error taxonomy for the DeployGate upload pipeline.

    DeployGateActionError
      ValidationError          bad or missing input, raised before any network call
        MissingInputError
        BinaryNotFoundError
        NotAFileError
        EmptyFileError
      UploadError              one failed upload attempt (all kinds are retryable)
        TransportError
        HttpError
        ApplicationError
      CommentStoreError        PR comment list/create/update failed (never fatal)
"""

from typing import Optional


class DeployGateActionError(Exception):
    """Base class for every error raised by this package."""


# ---------------------------------------------------------------------------
# INPUT VALIDATION
# ---------------------------------------------------------------------------


class ValidationError(DeployGateActionError):
    """An action input is missing or invalid. Fatal, no upload is attempted."""


class MissingInputError(ValidationError):
    def __init__(self, input_name: str):
        self.input_name = input_name
        super().__init__(f"Input '{input_name}' is required and cannot be empty")


class BinaryNotFoundError(ValidationError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")


class NotAFileError(ValidationError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Not a file: {path}")


class EmptyFileError(ValidationError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File is empty: {path}")


# ---------------------------------------------------------------------------
# UPLOAD
# ---------------------------------------------------------------------------


class UploadError(DeployGateActionError):
    """
    A single upload attempt failed.

    `kind` is a stable classification used in logs and outputs:
    'transport', 'http' or 'application'.
    """

    kind = "upload"

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.http_status = http_status
        self.cause = cause
        super().__init__(message)

    def describe(self) -> str:
        """One-line diagnostic: kind, status (when known) and message."""
        if self.http_status is not None:
            return f"[{self.kind}] HTTP {self.http_status}: {self.message}"
        return f"[{self.kind}] {self.message}"


class TransportError(UploadError):
    """Connection refused, DNS failure, timeout, or an unparseable response body."""

    kind = "transport"


class HttpError(UploadError):
    """The server answered with a status code >= 400."""

    kind = "http"


class ApplicationError(UploadError):
    """The server answered with `"error": true`, whatever the status code."""

    kind = "application"


# ---------------------------------------------------------------------------
# PR COMMENTS
# ---------------------------------------------------------------------------


class CommentStoreError(DeployGateActionError):
    def __init__(self, message: str, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)

"""
Stage 1: Validate Inputs - DeployGate Upload

PURPOSE:
    This is the first stage of the 4-stage upload pipeline. It takes the raw
    action inputs (plain strings, exactly as the runner passes them) and turns
    them into a validated, immutable UploadRequest.

    This stage is the gatekeeper: if any required input is missing or the
    binary is not a usable file, we raise a ValidationError here and never
    open a connection to DeployGate.

CALLED BY:
    upload_pipeline_main.py - passes the ActionInputs read from the environment.

DEPENDS ON:
    - The local filesystem (existence, type and size of the binary)
    - workflow_commands.mask_value (registering secrets with the runner)

DESIGN DECISIONS:
    - Every free-text input is stripped of C0/C1 control characters
      (U+0000-U+001F, U+007F-U+009F). The values end up in HTTP form fields and
      log lines, and a stray CR/LF there can forge headers or workflow commands.
      Newlines in release notes are removed as well.
    - The API token and the GitHub token are also trimmed of surrounding
      whitespace. The owner name is otherwise kept exactly as given.
    - The API token and the owner name are masked BEFORE anything else is
      logged, so no later log line can leak them.
    - The file extension is advisory only. DeployGate decides what it accepts;
      we warn on anything other than .ipa/.apk/.aab and carry on.
    - Boolean inputs are exact, case-insensitive matches. `disable_notify` is
      on only for "true"; `enable_pr_comment` is off only for "false".

RETURNS:
    An UploadRequest. Raises a ValidationError subclass on bad input.
"""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from pydantic import SecretStr

from deploygate_action.errors import (
    BinaryNotFoundError,
    EmptyFileError,
    MissingInputError,
    NotAFileError,
)
from deploygate_action.models import SUPPORTED_EXTENSIONS, UploadRequest
from deploygate_action.settings import ActionInputs
from deploygate_action.workflow_commands import mask_value


logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")

# Longest message prefix we echo to the log; the rest is summarised.
_MESSAGE_PREVIEW_CHARS = 100


def validate_inputs(raw: ActionInputs) -> UploadRequest:
    """
    Sanitise and validate the raw action inputs.

    This is the ONLY public function in this file. It never touches the
    network; all failures are raised before Stage 2 runs.

    Args:
        raw: The ActionInputs read from the INPUT_* environment variables.

    Returns:
        A frozen UploadRequest with every field validated.

    Raises:
        MissingInputError: api_token, owner_name or file_path is empty.
        BinaryNotFoundError: file_path does not exist.
        NotAFileError: file_path exists but is not a regular file.
        EmptyFileError: file_path is a zero-byte file.
    """

    # -----------------------------------------------------------------------
    # STEP 1: Required credentials, masked before anything is logged
    # -----------------------------------------------------------------------

    api_token = sanitize_input(raw.api_token).strip()
    if not api_token:
        raise MissingInputError("api_token")
    mask_value(api_token)

    owner_name = sanitize_input(raw.owner_name)
    if not owner_name:
        raise MissingInputError("owner_name")
    mask_value(owner_name)

    github_token = sanitize_input(raw.github_token).strip()
    mask_value(github_token)

    # -----------------------------------------------------------------------
    # STEP 2: The binary itself
    # -----------------------------------------------------------------------

    file_path = _resolve_binary_path(raw.file_path)
    file_size = file_path.stat().st_size
    if file_size == 0:
        raise EmptyFileError(str(file_path))

    extension = file_path.suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        logger.warning(
            f"File extension '{extension}' might not be supported. "
            "Expected .ipa, .apk, or .aab"
        )

    # -----------------------------------------------------------------------
    # STEP 3: Optional fields and flags
    # -----------------------------------------------------------------------

    enable_pr_comment = parse_enable_flag(raw.enable_pr_comment)

    request = UploadRequest(
        api_token=SecretStr(api_token),
        owner_name=owner_name,
        file_path=file_path,
        file_size=file_size,
        message=_optional(raw.message),
        distribution_key=_optional(raw.distribution_key),
        distribution_name=_optional(raw.distribution_name),
        release_note=_optional(raw.release_note),
        disable_notify=parse_true_flag(raw.disable_notify),
        enable_pr_comment=enable_pr_comment,
        github_token=SecretStr(github_token) if github_token else None,
    )

    _log_request(request)
    return request


def sanitize_input(value: Optional[str]) -> str:
    """Remove C0/C1 control characters; everything else is kept byte for byte."""
    if not value:
        return ""
    return _CONTROL_CHARS.sub("", value)


def parse_true_flag(value: Optional[str]) -> bool:
    """True only for a case-insensitive "true"."""
    return sanitize_input(value).lower() == "true"


def parse_enable_flag(value: Optional[str]) -> bool:
    """False only for a case-insensitive "false"; empty and anything else enable."""
    return sanitize_input(value).lower() != "false"


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _optional(value: Optional[str]) -> Optional[str]:
    cleaned = sanitize_input(value)
    return cleaned if cleaned else None


def _resolve_binary_path(raw_path: Optional[str]) -> Path:
    """Resolve the input path to an absolute path of an existing regular file."""
    if not raw_path or not raw_path.strip():
        raise MissingInputError("file_path")

    resolved = Path(os.path.abspath(os.path.expanduser(raw_path)))
    if not resolved.exists():
        raise BinaryNotFoundError(str(resolved))
    if not resolved.is_file():
        raise NotAFileError(str(resolved))
    return resolved


def _log_request(request: UploadRequest):
    """
    Log the validated parameters.

    Free text is summarised (preview or length) rather than echoed, release
    notes in particular can be long and contain commit messages.
    """
    logger.info(f"File path: {request.file_path}")
    logger.info(f"File size: {request.file_size_mb:.2f} MB")
    logger.info(f"File type: {request.file_extension}")

    if request.message:
        preview = request.message[:_MESSAGE_PREVIEW_CHARS]
        if len(request.message) > _MESSAGE_PREVIEW_CHARS:
            preview += f"... ({len(request.message)} characters)"
        logger.info(f"Message: {preview}")
    if request.distribution_key:
        logger.info(f"Distribution key: {request.distribution_key}")
    if request.distribution_name:
        logger.info(f"Distribution name: {request.distribution_name}")
    if request.release_note:
        logger.info(f"Release note length: {len(request.release_note)} characters")
    logger.info(f"Disable notify: {str(request.disable_notify).lower()}")
    logger.info(f"PR comment: {'enabled' if request.enable_pr_comment else 'disabled'}")

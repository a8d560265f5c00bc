"""
Stage 2: Upload Binary - DeployGate Upload

PURPOSE:
    POST the app binary to the DeployGate Upload API and interpret the answer.
    A failed attempt is retried with exponential backoff; after the last
    attempt the last error becomes the terminal outcome.

        POST {api_base_url}/api/users/{owner_name}/apps
        Authorization: Bearer {api_token}
        multipart/form-data:
            file               the binary (re-opened from disk for every attempt)
            message            only when set
            distribution_key   only when set
            distribution_name  only when set
            release_note       only when set
            disable_notify     "true" / "false", always sent

    Response body: {"error": bool, "message": str?, "results": {...}?}

CALLED BY:
    upload_pipeline_main.py - passes the UploadRequest from Stage 1.

EXTERNAL APIS USED:
    - DeployGate Upload API (https://docs.deploygate.com/reference/upload)

DESIGN DECISIONS:
    - Three failure kinds, all retryable:
        HttpError         status >= 400 (message from the body when present)
        ApplicationError  body says "error": true, even on HTTP 200
        TransportError    connection/DNS/timeout/redirect loop, or a body that
                          is not the JSON object we expect
    - Retry bookkeeping is a frozen RetryState with pure transition functions
      (initial_state -> record_failure/record_success). The loop below only
      rebinds the state; tests drive the transitions directly.
    - Wait before retry k (k counted from 1) is 2^k * backoff_base_ms, so the
      defaults give 10s then 20s. `sleep` is injectable for tests.
    - A body with "error": false is an accepted upload: the binary is now a
      revision on DeployGate. Odd `results` content from then on is logged,
      never retried.
    - One requests.Session is reused for all attempts (keep-alive) and caps
      redirects at `max_redirects`. The multipart body is streamed from disk by
      requests_toolbelt.MultipartEncoder, so binary size is not bounded by
      memory. The read timeout defaults to 30 minutes because DeployGate
      processes the binary before it answers.
    - A KeyboardInterrupt/SystemExit (job cancelled or timed out) is never
      caught here, it aborts the in-flight request or the backoff sleep.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

import requests
from requests_toolbelt import MultipartEncoder

from deploygate_action.errors import (
    ApplicationError,
    HttpError,
    TransportError,
    UploadError,
)
from deploygate_action.models import UploadOutcome, UploadRequest, UploadResults
from deploygate_action.settings import ActionSettings


logger = logging.getLogger(__name__)


def upload_binary(
    request: UploadRequest,
    settings: ActionSettings,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> UploadOutcome:
    """
    Upload the binary, retrying failed attempts with exponential backoff.

    This is the ONLY public pipeline function in this file. It never raises
    for upload failures; the terminal error is returned inside the outcome.

    Args:
        request: Validated UploadRequest from Stage 1.
        settings: Endpoint, retry and timeout settings.
        session: Optional requests.Session (tests pass a fake). When omitted a
                 session is created here and closed before returning.
        sleep: Called with the backoff in seconds between attempts.

    Returns:
        UploadOutcome with `results` on success, or `error` set to the last
        UploadError after `settings.max_attempts` failed attempts.
    """

    owns_session = session is None
    if session is None:
        session = build_session(settings)

    state = initial_state(settings.max_attempts)
    logger.info("Sending request to DeployGate API...")

    try:
        while True:
            try:
                results = _attempt_upload(session, request, settings)
            except UploadError as e:
                state = record_failure(state, e)
                if not should_retry(state):
                    break
                wait = backoff_seconds(state.attempt, settings.backoff_base_ms)
                logger.warning(
                    f"Upload failed ({e.describe()}), retrying in {wait:g} seconds... "
                    f"(Attempt {state.attempt}/{state.max_attempts})"
                )
                sleep(wait)
                continue

            state = record_success(state)
            logger.info("Upload successful!")
            return UploadOutcome(results=results, attempts=state.attempt)
    finally:
        if owns_session:
            session.close()

    return UploadOutcome(error=state.last_error, attempts=state.attempt)


def build_session(settings: ActionSettings) -> requests.Session:
    """Session shared by all attempts of one upload."""
    session = requests.Session()
    session.max_redirects = settings.max_redirects
    session.headers.update({"User-Agent": settings.user_agent})
    return session


# ---------------------------------------------------------------------------
# RETRY STATE MACHINE
# ---------------------------------------------------------------------------
#   Attempting(n) --failure, n+1 < max--> Attempting(n+1)
#   Attempting(n) --failure, n+1 = max--> Exhausted   (terminal, last_error set)
#   Attempting(n) --success-------------> Success     (terminal)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryState:
    max_attempts: int
    attempt: int = 0
    last_error: Optional[UploadError] = None
    terminal: bool = False

    @property
    def exhausted(self) -> bool:
        return self.terminal and self.last_error is not None and self.attempt >= self.max_attempts


def initial_state(max_attempts: int) -> RetryState:
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    return RetryState(max_attempts=max_attempts)


def record_failure(state: RetryState, error: UploadError) -> RetryState:
    if state.terminal:
        raise ValueError("retry state is already terminal")
    attempt = state.attempt + 1
    return replace(state, attempt=attempt, last_error=error, terminal=attempt >= state.max_attempts)


def record_success(state: RetryState) -> RetryState:
    if state.terminal:
        raise ValueError("retry state is already terminal")
    return replace(state, attempt=state.attempt + 1, last_error=None, terminal=True)


def should_retry(state: RetryState) -> bool:
    return not state.terminal


def backoff_seconds(failed_attempts: int, base_ms: int = 5000) -> float:
    """Wait after the k-th failed attempt: 2^k * base_ms, in seconds."""
    return (2 ** failed_attempts) * base_ms / 1000


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _attempt_upload(
    session: requests.Session,
    request: UploadRequest,
    settings: ActionSettings,
) -> Optional[UploadResults]:
    """One full POST. The file is opened fresh so a retry never sees a half-read stream."""
    url = settings.upload_url(request.owner_name)

    try:
        with open(request.file_path, "rb") as binary:
            fields = dict(request.form_fields())
            fields["file"] = (request.file_path.name, binary, "application/octet-stream")
            encoder = MultipartEncoder(fields=fields)
            headers = {
                "Authorization": f"Bearer {request.api_token.get_secret_value()}",
                "User-Agent": settings.user_agent,
                "Content-Type": encoder.content_type,
            }
            response = session.post(
                url,
                headers=headers,
                data=encoder,
                timeout=settings.upload_timeout,
                allow_redirects=True,
            )
    except requests.RequestException as e:
        raise TransportError(f"{type(e).__name__}: {e}", cause=e) from e
    except OSError as e:
        raise TransportError(f"Could not read {request.file_path.name}: {e}", cause=e) from e

    return _interpret_response(response)


def _interpret_response(response: requests.Response) -> Optional[UploadResults]:
    status = response.status_code
    payload = _parse_body(response)

    if status >= 400:
        server_message = payload.get("message") if isinstance(payload, dict) else None
        raise HttpError(
            f"HTTP Error: {status} - {server_message or 'Unknown error'}",
            http_status=status,
        )

    if not isinstance(payload, dict):
        raise TransportError(
            f"Malformed response body (HTTP {status}): expected a JSON object",
            http_status=status,
        )

    if payload.get("error"):
        raise ApplicationError(payload.get("message") or "Upload failed", http_status=status)

    # From here on the binary is registered; nothing below may fail the attempt.
    results = payload.get("results")
    if results is None:
        logger.warning("DeployGate accepted the upload but returned no results")
        return None
    if not isinstance(results, dict):
        logger.warning("DeployGate accepted the upload but the results are not a JSON object")
        return None

    parsed = UploadResults.from_response(results)
    if parsed.unparsed_fields:
        logger.warning(
            f"Unexpected value types in results ({', '.join(parsed.unparsed_fields)}), "
            "passing them through unchanged"
        )
    return parsed


def _parse_body(response: requests.Response):
    try:
        return response.json()
    except ValueError:
        return None

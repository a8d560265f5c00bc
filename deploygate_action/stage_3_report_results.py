"""
Stage 3: Report Results - DeployGate Upload

PURPOSE:
    Turn the UploadOutcome from Stage 2 into step outputs and log lines.

    ON SUCCESS:
      1. Log a short summary (app name, package, OS, version, revision)
      2. Mask the download URL, it is a bearer link to the binary
      3. Write the `results` output (full JSON record, unknown fields included)
         plus the convenience outputs `revision`, `download_url` and
         `distribution_url` when the record has them

    ON FAILURE:
      1. Log the terminal error as an error annotation (kind, HTTP status,
         server message) and its cause at debug level
      2. Write no `results` output

    This stage never raises; the returned dict tells the orchestrator which
    exit status to use.

CALLED BY:
    upload_pipeline_main.py - passes the UploadOutcome from Stage 2.
"""

import json
import logging
import traceback

from deploygate_action.models import UploadOutcome, UploadResults
from deploygate_action.workflow_commands import mask_value, set_output


logger = logging.getLogger(__name__)


def report_results(outcome: UploadOutcome) -> dict:
    """
    Publish the outcome of the upload.

    Args:
        outcome: Terminal UploadOutcome from Stage 2.

    Returns:
        dict with keys:
            - 'success' (bool): Whether the upload succeeded
            - 'outputs' (dict[str, str]): Step outputs that were written
            - 'failure_reason' (str or None): Error line shown for a failed run
    """

    if not outcome.ok:
        reason = _report_failure(outcome)
        return {"success": False, "outputs": {}, "failure_reason": reason}

    outputs = {}
    results = outcome.results
    if results is None:
        logger.warning("No results returned by DeployGate; the `results` output is not set")
        return {"success": True, "outputs": outputs, "failure_reason": None}

    _log_summary(results)

    outputs["results"] = serialize_results(results)
    if results.revision is not None:
        outputs["revision"] = str(results.revision)
    if results.file:
        outputs["download_url"] = results.file
    if results.distribution_url:
        outputs["distribution_url"] = results.distribution_url

    for name, value in outputs.items():
        set_output(name, value)

    return {"success": True, "outputs": outputs, "failure_reason": None}


def serialize_results(results: UploadResults) -> str:
    """JSON text of the `results` output."""
    return json.dumps(results.to_output(), ensure_ascii=False)


def parse_results(text: str) -> UploadResults:
    """Inverse of serialize_results, for consumers of the `results` output."""
    return UploadResults.from_response(json.loads(text))


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _log_summary(results: UploadResults):
    if results.name:
        logger.info(f"App name: {results.name}")
    if results.package_name:
        logger.info(f"Package name: {results.package_name}")
    if results.os_name:
        logger.info(f"OS: {results.os_name}")
    if results.version_name is not None or results.version_code is not None:
        logger.info(f"Version: {results.version_name} ({results.version_code})")
    if results.revision is not None:
        logger.info(f"Revision: {results.revision}")

    if results.file:
        mask_value(results.file)
        logger.info("Download URL is available in the outputs")
    if results.distribution_url:
        logger.info(f"Distribution page: {results.distribution_url}")


def _report_failure(outcome: UploadOutcome) -> str:
    error = outcome.error
    reason = f"Error: {error.message}"

    logger.error(reason)
    logger.error(
        f"Upload failed after {outcome.attempts} attempt(s): {error.describe()}"
    )

    cause = error.cause or error
    trace = "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))
    logger.debug(f"Error Stack: {trace}")
    return reason

"""
Upload Pipeline Main - DeployGate Upload

PURPOSE:
    Entry point of the action. Runs the four stages in order and maps the
    result to the step's exit status:

        1. validate_inputs       ValidationError -> exit 1, nothing uploaded
        2. upload_binary         retries internally, returns an UploadOutcome
        3. report_results        outputs on success, error annotation on failure
        4. reconcile_pr_comment  best effort, never changes the exit status

    Exit status 0 means the binary is on DeployGate; 1 means it is not.

CALLED BY:
    `python -m deploygate_action` (action.yml) or the `deploygate-upload`
    console script.
"""

import logging
import os
import time
import traceback
from typing import Callable, Optional

import pydantic
import requests

from deploygate_action.errors import ValidationError
from deploygate_action.models import PullRequestContext
from deploygate_action.settings import ActionInputs, ActionSettings
from deploygate_action.stage_1_validate_inputs import validate_inputs
from deploygate_action.stage_2_upload_binary import upload_binary
from deploygate_action.stage_3_report_results import report_results
from deploygate_action.stage_4_reconcile_pr_comment import (
    CommentStore,
    load_pull_request_context,
    reconcile_pr_comment,
)
from deploygate_action.workflow_commands import configure_logging


logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def run_pipeline(
    inputs: Optional[ActionInputs] = None,
    settings: Optional[ActionSettings] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    context: Optional[PullRequestContext] = None,
    store: Optional[CommentStore] = None,
) -> int:
    """
    Run all stages once and return the process exit status.

    Every collaborator can be injected; left out, they come from the
    environment (inputs, settings, PR context) or are created on demand
    (HTTP session, GitHub comment store).
    """
    inputs = inputs if inputs is not None else ActionInputs()
    settings = settings if settings is not None else ActionSettings()

    # Stage 1
    try:
        request = validate_inputs(inputs)
    except ValidationError as e:
        logger.error(f"Error: {e}")
        return EXIT_FAILURE

    # Stage 2
    outcome = upload_binary(request, settings, session=session, sleep=sleep)

    # Stage 3
    report = report_results(outcome)
    if not report["success"]:
        return EXIT_FAILURE

    # Stage 4
    if context is None:
        context = load_pull_request_context()
    github_token = request.github_token.get_secret_value() if request.github_token else None
    reconcile_pr_comment(
        outcome,
        enable_comment=request.enable_pr_comment,
        context=context,
        settings=settings,
        github_token=github_token,
        store=store,
    )
    return EXIT_SUCCESS


def main() -> int:
    """Process entry point: configure logging, run, never leak a traceback."""
    debug = os.environ.get("RUNNER_DEBUG") == "1"
    configure_logging(logging.DEBUG if debug else logging.INFO)

    try:
        return run_pipeline()
    except pydantic.ValidationError as e:
        logger.error(f"Invalid configuration: {e.error_count()} setting(s) rejected")
        logger.debug(str(e))
        return EXIT_FAILURE
    except Exception as e:
        logger.error(f"An unexpected error occurred: {type(e).__name__}: {e}")
        logger.debug(traceback.format_exc())
        return EXIT_FAILURE

"""
Stage 4: Reconcile PR Comment - DeployGate Upload

PURPOSE:
    Keep exactly one DeployGate status comment on the pull request that
    triggered this run. Every generated body starts with a hidden marker;
    on each run we:

      1. List the comments of the pull request
      2. Find the first one whose body contains the marker
      3. FOUND     -> update that comment in place (same id, same position)
         NOT FOUND -> create a new comment

    Reruns and new pushes to the same PR therefore refresh one comment
    instead of piling up a new one per build.

    Skipped (logged, not an error) when the feature is disabled, when the
    run was not triggered by a pull request, when the upload failed, or when
    no GitHub token is available.

CALLED BY:
    upload_pipeline_main.py - after Stage 3 reported a successful upload.

DEPENDS ON:
    - GitHub REST API (via requests library) for issue comments
    - The GITHUB_TOKEN passed as the `github_token` input
    - The workflow event payload at $GITHUB_EVENT_PATH (PR number)

DESIGN DECISIONS:
    - Commenting is best effort. Any error while commenting, including a
      malformed GitHub API answer, is logged as a warning; the upload already
      succeeded and that status is what the run reports.
    - Find-then-act is not atomic. Two runs on the same PR at the same moment
      can both miss the marker and both create a comment. The issue comments
      API has no idempotency key, so this is accepted: the next run updates
      the first marked comment and leaves the duplicate untouched.
    - The body is a pure function of the results (no timestamps), so an
      update with unchanged results rewrites identical text.
"""

import json
import logging
import os
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

import requests

from deploygate_action.errors import CommentStoreError
from deploygate_action.models import PullRequestContext, UploadOutcome, UploadResults
from deploygate_action.settings import ActionSettings


logger = logging.getLogger(__name__)

COMMENT_MARKER = "<!-- deploygate-upload-github-action -->"
COMMENT_HEADING = "### DeployGate Upload"
QR_CODE_SIZE = "150x150"


def reconcile_pr_comment(
    outcome: UploadOutcome,
    enable_comment: bool,
    context: PullRequestContext,
    settings: ActionSettings,
    github_token: Optional[str] = None,
    store: Optional["CommentStore"] = None,
) -> dict:
    """
    Create or update the DeployGate status comment on the triggering PR.

    This is the ONLY public pipeline function in this file. It never raises
    for comment-store failures.

    Args:
        outcome: UploadOutcome from Stage 2 (only successful outcomes comment).
        enable_comment: The parsed `enable_pr_comment` input.
        context: Repository and PR number of this run.
        settings: Provides the DeployGate and QR endpoints and the GitHub API URL.
        github_token: Token for the GitHub API (ignored when `store` is given).
        store: Optional CommentStore (tests pass a fake).

    Returns:
        dict with keys:
            - 'action' (str): 'created', 'updated', 'skipped' or 'failed'
            - 'comment_id' (int or None): The comment that now holds the status
            - 'reason' (str or None): Why nothing was written, if so
    """

    skip_reason = _skip_reason(outcome, enable_comment, context, github_token, store)
    if skip_reason:
        logger.info(f"Skipping PR comment: {skip_reason}")
        return {"action": "skipped", "comment_id": None, "reason": skip_reason}

    if store is None:
        store = GitHubCommentStore(
            repository=context.repository,
            token=github_token,
            api_url=settings.github_api_url,
            timeout=settings.comment_timeout_seconds,
        )

    try:
        body = build_comment_body(outcome.results, settings)
        existing_id = find_marked_comment(store.list_comments(context.pr_number))
        if existing_id is not None:
            store.update_comment(existing_id, body)
            logger.info(f"Updated DeployGate comment on PR #{context.pr_number} ({existing_id})")
            return {"action": "updated", "comment_id": existing_id, "reason": None}

        new_id = store.create_comment(context.pr_number, body)
        logger.info(f"Created DeployGate comment on PR #{context.pr_number} ({new_id})")
        return {"action": "created", "comment_id": new_id, "reason": None}
    except (CommentStoreError, requests.RequestException) as e:
        logger.warning(f"Failed to post PR comment: {e}")
        return {"action": "failed", "comment_id": None, "reason": str(e)}
    except Exception as e:
        logger.warning(f"Failed to post PR comment: {type(e).__name__}: {e}")
        return {"action": "failed", "comment_id": None, "reason": f"{type(e).__name__}: {e}"}


def find_marked_comment(comments: list) -> Optional[int]:
    """Id of the first comment whose body contains the marker, or None."""
    for comment in comments:
        if COMMENT_MARKER in (comment.get("body") or ""):
            return comment.get("id")
    return None


def build_comment_body(results: UploadResults, settings: ActionSettings) -> str:
    """
    Render the status comment.

    The Distribution and QR Code rows appear only when the results carry a
    distribution page URL.
    """
    revision = results.revision if results.revision is not None else "-"
    detail_url = _detail_page_url(results, settings)

    lines = [
        COMMENT_MARKER,
        COMMENT_HEADING,
        "",
        "| Item | Value |",
        "|------|-------|",
        f"| Revision | {revision} |",
        f"| Detail | [Open in DeployGate]({detail_url}) |",
    ]

    distribution_url = results.distribution_url
    if distribution_url:
        lines.append(f"| Distribution | [{distribution_url}]({distribution_url}) |")
        lines.append(f"| QR Code | ![QR code]({qr_code_url(distribution_url, settings)}) |")

    app_label = _app_label(results)
    if app_label:
        lines.append("")
        lines.append(f"<sub>{app_label}</sub>")

    return "\n".join(lines)


def qr_code_url(distribution_url: str, settings: ActionSettings) -> str:
    """QR image URL with the distribution URL percent-encoded in `data`."""
    query = urlencode({"size": QR_CODE_SIZE, "data": distribution_url}, quote_via=quote, safe="")
    return f"{settings.qr_code_endpoint}?{query}"


def load_pull_request_context(
    event_path: Optional[str] = None,
    repository: Optional[str] = None,
) -> PullRequestContext:
    """
    Read the repository and PR number of the current run from the runner.

    `pull_request` / `pull_request_target` events carry `pull_request.number`;
    an `issue_comment` on a PR carries `issue.number` plus `issue.pull_request`.
    Anything else (push, tag, workflow_dispatch) has no thread.
    """
    event_path = event_path if event_path is not None else os.environ.get("GITHUB_EVENT_PATH")
    repository = repository if repository is not None else os.environ.get("GITHUB_REPOSITORY", "")

    event = {}
    if event_path:
        try:
            with open(event_path, "r", encoding="utf-8") as f:
                event = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read the workflow event payload: {e}")
            event = {}

    pr_number = None
    pull_request = event.get("pull_request") if isinstance(event, dict) else None
    issue = event.get("issue") if isinstance(event, dict) else None
    if isinstance(pull_request, dict) and pull_request.get("number") is not None:
        pr_number = pull_request["number"]
    elif isinstance(issue, dict) and issue.get("pull_request") and issue.get("number") is not None:
        pr_number = issue["number"]

    return PullRequestContext(repository=repository or "", pr_number=pr_number)


# ---------------------------------------------------------------------------
# COMMENT STORE
# ---------------------------------------------------------------------------
# The reconciler only needs list/create/update. GitHubCommentStore implements
# them on the issue comments API (a PR is an issue for commenting purposes).
# ---------------------------------------------------------------------------


class CommentStore(Protocol):
    def list_comments(self, pr_number: int) -> list: ...

    def create_comment(self, pr_number: int, body: str) -> int: ...

    def update_comment(self, comment_id: int, body: str) -> None: ...


class GitHubCommentStore:
    """
    Thin wrapper around the GitHub REST API issue comments endpoints.

    Needs a token with `pull-requests: write` (or `issues: write`).
    """

    def __init__(
        self,
        repository: str,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.repository = repository
        self.base_url = f"{api_url.rstrip('/')}/repos/{repository}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def list_comments(self, pr_number: int) -> list:
        """All comments of the PR as [{'id': ..., 'body': ...}], following pagination."""
        url = f"{self.base_url}/issues/{pr_number}/comments"
        params = {"per_page": 100}
        comments = []
        while url:
            resp = self.session.get(url, headers=self.headers, params=params, timeout=self.timeout)
            self._raise_for_status(resp, "list comments")
            page = self._json(resp, "list comments")
            if not isinstance(page, list) or not all(isinstance(c, dict) for c in page):
                raise CommentStoreError(
                    "GitHub API list comments returned an unexpected body (expected a list of comments)",
                    http_status=resp.status_code,
                )
            comments.extend({"id": c.get("id"), "body": c.get("body") or ""} for c in page)
            url = resp.links.get("next", {}).get("url")
            params = None
        return comments

    def create_comment(self, pr_number: int, body: str) -> int:
        url = f"{self.base_url}/issues/{pr_number}/comments"
        resp = self.session.post(url, headers=self.headers, json={"body": body}, timeout=self.timeout)
        self._raise_for_status(resp, "create comment")
        created = self._json(resp, "create comment")
        if not isinstance(created, dict) or created.get("id") is None:
            raise CommentStoreError(
                "GitHub API create comment returned no comment id",
                http_status=resp.status_code,
            )
        return created["id"]

    def update_comment(self, comment_id: int, body: str) -> None:
        url = f"{self.base_url}/issues/comments/{comment_id}"
        resp = self.session.patch(url, headers=self.headers, json={"body": body}, timeout=self.timeout)
        self._raise_for_status(resp, "update comment")

    @staticmethod
    def _json(resp: requests.Response, operation: str):
        try:
            return resp.json()
        except ValueError as e:
            raise CommentStoreError(
                f"GitHub API {operation} returned invalid JSON: {e}",
                http_status=resp.status_code,
            ) from e

    @staticmethod
    def _raise_for_status(resp: requests.Response, operation: str):
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                detail = payload.get("message") or ""
            else:
                detail = (resp.text or "")[:200]
            raise CommentStoreError(
                f"GitHub API {operation} failed: HTTP {resp.status_code} {detail}".rstrip(),
                http_status=resp.status_code,
            )


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _skip_reason(
    outcome: UploadOutcome,
    enable_comment: bool,
    context: PullRequestContext,
    github_token: Optional[str],
    store: Optional[CommentStore],
) -> Optional[str]:
    if not enable_comment:
        return "enable_pr_comment is false"
    if not context.has_thread:
        return "this run was not triggered by a pull request"
    if not outcome.ok or outcome.results is None:
        return "no successful upload results to report"
    if store is None and not github_token:
        return "github_token is empty"
    return None


def _detail_page_url(results: UploadResults, settings: ActionSettings) -> str:
    base = settings.api_base_url.rstrip("/")
    if not results.path:
        return base
    url = f"{base}/{results.path.lstrip('/')}"
    if results.revision is not None:
        url = f"{url}/binaries/{results.revision}"
    return url


def _app_label(results: UploadResults) -> str:
    parts = []
    if results.name:
        parts.append(results.name)
    if results.version_name is not None:
        version = str(results.version_name)
        if results.version_code is not None:
            version += f" ({results.version_code})"
        parts.append(version)
    return " ".join(parts)

import logging
from pathlib import Path

import pytest
import requests

from deploygate_action.settings import ActionInputs, ActionSettings


class FakeResponse:
    """Just enough of requests.Response for the pipeline."""

    def __init__(self, status_code=200, payload=None, text=None, links=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ""
        self.links = links or {}

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeUploadSession:
    """
    Replays queued responses for session.post. A queued exception instance is
    raised instead of returned. Every call records the form fields, the
    uploaded bytes and the encoded multipart body.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def post(self, url, headers=None, data=None, timeout=None, allow_redirects=True):
        fields = dict(data.fields)
        name, stream, content_type = fields.pop("file")
        body = data.to_string()
        stream.seek(0)
        self.calls.append(
            {
                "url": url,
                "headers": dict(headers or {}),
                "data": fields,
                "file_name": name,
                "file_bytes": stream.read(),
                "content_type": content_type,
                "body": body,
                "timeout": timeout,
            }
        )
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True


class FakeCommentStore:
    def __init__(self, comments=None, fail_on=None):
        self.comments = [dict(c) for c in (comments or [])]
        self.fail_on = fail_on
        self.list_calls = 0
        self.created = []
        self.updated = []

    def _maybe_fail(self, operation):
        if self.fail_on == operation:
            raise requests.ConnectionError(f"{operation} failed")

    def list_comments(self, pr_number):
        self.list_calls += 1
        self._maybe_fail("list")
        return list(self.comments)

    def create_comment(self, pr_number, body):
        self._maybe_fail("create")
        new_id = 1000 + len(self.created)
        self.created.append((pr_number, body))
        self.comments.append({"id": new_id, "body": body})
        return new_id

    def update_comment(self, comment_id, body):
        self._maybe_fail("update")
        self.updated.append((comment_id, body))


def success_payload(**overrides):
    results = {
        "package_name": "com.acme.app",
        "os_name": "Android",
        "name": "Acme",
        "version_code": "42",
        "version_name": "1.4.0",
        "sdk_version": 24,
        "raw_sdk_version": "24",
        "target_sdk_version": 34,
        "signature": "abc123",
        "message": "build from CI",
        "file": "https://deploygate.com/api/download/secret-token",
        "icon": "https://deploygate.com/icon.png",
        "revision": 5,
        "path": "/users/acme/platforms/android/apps/com.acme.app",
        "user": {"name": "acme"},
    }
    results.update(overrides)
    return {"error": False, "results": results}


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    for name in ("GITHUB_OUTPUT", "GITHUB_EVENT_PATH", "GITHUB_REPOSITORY", "GITHUB_API_URL", "RUNNER_DEBUG"):
        monkeypatch.delenv(name, raising=False)

    package_logger = logging.getLogger("deploygate_action")
    saved = (list(package_logger.handlers), package_logger.propagate, package_logger.level)
    yield
    package_logger.handlers[:] = saved[0]
    package_logger.propagate = saved[1]
    package_logger.setLevel(saved[2])


@pytest.fixture
def output_file(monkeypatch, tmp_path) -> Path:
    path = tmp_path / "github_output"
    path.write_text("")
    monkeypatch.setenv("GITHUB_OUTPUT", str(path))
    return path


@pytest.fixture
def apk_file(tmp_path) -> Path:
    path = tmp_path / "app-release.apk"
    path.write_bytes(b"PK\x03\x04" + b"\x00" * 2048)
    return path


@pytest.fixture
def raw_inputs(apk_file):
    def _make(**overrides):
        values = {
            "api_token": "dg-secret-token",
            "owner_name": "acme",
            "file_path": str(apk_file),
        }
        values.update(overrides)
        return ActionInputs(**values)

    return _make


@pytest.fixture
def settings():
    return ActionSettings(api_base_url="https://deploygate.example", github_api_url="https://api.github.example")


def read_outputs(path: Path) -> dict:
    """Parse the `name<<DELIM ... DELIM` blocks of a GITHUB_OUTPUT file."""
    outputs = {}
    lines = path.read_text(encoding="utf-8").split("\n")
    i = 0
    while i < len(lines):
        line = lines[i]
        if "<<" in line:
            name, delimiter = line.split("<<", 1)
            value_lines = []
            i += 1
            while lines[i] != delimiter:
                value_lines.append(lines[i])
                i += 1
            outputs[name] = "\n".join(value_lines)
        i += 1
    return outputs

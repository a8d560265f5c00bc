import json
import logging

from conftest import read_outputs, success_payload
from deploygate_action.errors import HttpError, TransportError
from deploygate_action.models import UploadOutcome, UploadResults
from deploygate_action.stage_3_report_results import parse_results, report_results, serialize_results


def _results(**overrides) -> UploadResults:
    return UploadResults.model_validate(success_payload(**overrides)["results"])


def test_success_writes_results_output(output_file) -> None:
    report = report_results(UploadOutcome(results=_results(), attempts=1))

    assert report["success"] is True
    assert report["failure_reason"] is None

    outputs = read_outputs(output_file)
    results = json.loads(outputs["results"])
    assert results["revision"] == 5
    assert results["package_name"] == "com.acme.app"
    assert results["user"] == {"name": "acme"}
    assert outputs["revision"] == "5"
    assert outputs["download_url"] == "https://deploygate.com/api/download/secret-token"
    assert "distribution_url" not in outputs


def test_distribution_url_output_when_present(output_file) -> None:
    results = _results(distribution={"url": "https://deploygate.com/distributions/abc"})

    report_results(UploadOutcome(results=results, attempts=1))

    assert read_outputs(output_file)["distribution_url"] == "https://deploygate.com/distributions/abc"


def test_download_url_is_masked_not_logged(output_file, caplog, capsys) -> None:
    with caplog.at_level(logging.INFO):
        report_results(UploadOutcome(results=_results(), attempts=1))

    out = capsys.readouterr().out
    assert "::add-mask::https://deploygate.com/api/download/secret-token" in out
    messages = [r.getMessage() for r in caplog.records]
    assert "Download URL is available in the outputs" in messages
    assert all("secret-token" not in m for m in messages)


def test_summary_lines(output_file, caplog) -> None:
    with caplog.at_level(logging.INFO):
        report_results(UploadOutcome(results=_results(), attempts=1))

    messages = [r.getMessage() for r in caplog.records]
    assert "App name: Acme" in messages
    assert "Package name: com.acme.app" in messages
    assert "OS: Android" in messages
    assert "Version: 1.4.0 (42)" in messages


def test_failure_reports_reason_and_writes_nothing(output_file, caplog) -> None:
    error = HttpError("HTTP Error: 401 - bad token", http_status=401)

    with caplog.at_level(logging.INFO):
        report = report_results(UploadOutcome(error=error, attempts=3))

    assert report == {"success": False, "outputs": {}, "failure_reason": "Error: HTTP Error: 401 - bad token"}
    assert output_file.read_text() == ""
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert "Error: HTTP Error: 401 - bad token" in errors
    assert any("after 3 attempt(s)" in m and "[http] HTTP 401" in m for m in errors)


def test_failure_trace_is_logged_at_debug(output_file, caplog) -> None:
    try:
        raise ConnectionRefusedError("refused")
    except ConnectionRefusedError as cause:
        error = TransportError("ConnectionError: refused", cause=cause)

    with caplog.at_level(logging.DEBUG):
        report_results(UploadOutcome(error=error, attempts=1))

    debug = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
    assert any("Error Stack:" in m and "ConnectionRefusedError" in m for m in debug)


def test_success_without_results_sets_no_output(output_file) -> None:
    report = report_results(UploadOutcome(results=None, attempts=1))

    assert report["success"] is True
    assert report["outputs"] == {}
    assert output_file.read_text() == ""


def test_without_output_file_still_succeeds() -> None:
    report = report_results(UploadOutcome(results=_results(), attempts=1))

    assert report["success"] is True
    assert "results" in report["outputs"]


def test_serialized_output_keeps_unknown_fields() -> None:
    results = _results(md5="abc", installs={"count": 3}, user={"name": "acme", "profile_icon": "x.png"})

    parsed = parse_results(serialize_results(results))

    assert parsed.model_extra["md5"] == "abc"
    assert parsed.model_extra["installs"] == {"count": 3}
    assert parsed.user.model_extra["profile_icon"] == "x.png"
    assert parsed.to_output() == results.to_output()


def test_multiline_output_cannot_inject_extra_outputs(output_file) -> None:
    results = _results(message="line one\nrevision=999")

    report_results(UploadOutcome(results=results, attempts=1))

    outputs = read_outputs(output_file)
    assert outputs["revision"] == "5"
    assert json.loads(outputs["results"])["message"] == "line one\nrevision=999"


def test_mistyped_fields_reach_the_output_unchanged(output_file) -> None:
    results = UploadResults.from_response(success_payload(raw_sdk_version=33, user="acme")["results"])

    report = report_results(UploadOutcome(results=results, attempts=1))

    assert report["success"] is True
    emitted = json.loads(read_outputs(output_file)["results"])
    assert emitted["raw_sdk_version"] == 33
    assert emitted["user"] == "acme"
    assert parse_results(serialize_results(results)).to_output() == results.to_output()

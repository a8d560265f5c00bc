import pytest
from pydantic import ValidationError

from deploygate_action.settings import ActionInputs, ActionSettings


def test_defaults_match_hosted_service() -> None:
    settings = ActionSettings()

    assert settings.upload_url("acme") == "https://deploygate.com/api/users/acme/apps"
    assert settings.max_attempts == 3
    assert settings.backoff_base_ms == 5000
    assert settings.max_redirects == 5
    assert settings.upload_timeout == (30.0, 1800.0)
    assert settings.github_api_url == "https://api.github.com"


@pytest.mark.parametrize(
    "owner, expected",
    [
        ("acme/../admin", "acme%2F..%2Fadmin"),
        ("acme?x=1#frag", "acme%3Fx%3D1%23frag"),
        (" acme team", "%20acme%20team"),
    ],
)
def test_upload_url_encodes_owner_as_one_segment(owner, expected) -> None:
    settings = ActionSettings(api_base_url="https://deploygate.example/")

    assert settings.upload_url(owner) == f"https://deploygate.example/api/users/{expected}/apps"


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("DEPLOYGATE_MAX_ATTEMPTS", "1")
    monkeypatch.setenv("DEPLOYGATE_API_BASE_URL", "https://dg.internal/")
    monkeypatch.setenv("GITHUB_API_URL", "https://ghe.example/api/v3")

    settings = ActionSettings()

    assert settings.max_attempts == 1
    assert settings.upload_url("team") == "https://dg.internal/api/users/team/apps"
    assert settings.github_api_url == "https://ghe.example/api/v3"


@pytest.mark.parametrize("value", ["0", "11", "three"])
def test_out_of_range_attempts_are_rejected(monkeypatch, value) -> None:
    monkeypatch.setenv("DEPLOYGATE_MAX_ATTEMPTS", value)

    with pytest.raises(ValidationError):
        ActionSettings()


def test_inputs_come_from_runner_input_variables(monkeypatch) -> None:
    monkeypatch.setenv("INPUT_API_TOKEN", "tok")
    monkeypatch.setenv("INPUT_OWNER_NAME", "acme")
    monkeypatch.setenv("INPUT_RELEASE_NOTE", "multi\nline")

    inputs = ActionInputs()

    assert inputs.api_token == "tok"
    assert inputs.owner_name == "acme"
    assert inputs.release_note == "multi\nline"
    assert inputs.disable_notify == "false"
    assert inputs.enable_pr_comment == "true"
    assert inputs.message == ""

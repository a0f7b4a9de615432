from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from converge.config import (
    ConfigValidationError,
    EngineSettings,
    RetrySettings,
    TimeoutSettings,
    load_settings,
)


def write_config(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "converge.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    settings = load_settings(env={})

    assert settings == EngineSettings()
    assert settings.owner == "converge"
    assert settings.handlers == []


def test_loads_default_file_from_working_directory(tmp_path, monkeypatch):
    write_config(tmp_path, "owner: team-a\ntimeouts:\n  operation: 120\n  wait: 60\n")
    monkeypatch.chdir(tmp_path)

    settings = load_settings(env={})

    assert settings.owner == "team-a"
    assert settings.timeouts.operation == 120
    assert settings.timeouts.wait == 60


def test_explicit_missing_path_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yaml", env={})


def test_environment_overrides_file(tmp_path):
    path = write_config(tmp_path, "owner: team-a\naws:\n  region: eu-west-1\n")

    settings = load_settings(
        path,
        env={"CONVERGE_OWNER": "team-b", "CONVERGE_AWS_PROFILE": "staging", "CONVERGE_LOG_LEVEL": "debug"},
    )

    assert settings.owner == "team-b"
    assert settings.aws.region == "eu-west-1"
    assert settings.aws.profile == "staging"
    assert settings.log_level == "debug"


def test_environment_creates_missing_sections(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    settings = load_settings(env={"CONVERGE_AWS_REGION": "ap-southeast-2"})

    assert settings.aws.region == "ap-southeast-2"


def test_invalid_yaml_is_reported(tmp_path):
    path = write_config(tmp_path, "owner: [unclosed\n")

    with pytest.raises(ConfigValidationError, match="Failed to parse YAML"):
        load_settings(path, env={})


def test_non_mapping_document_is_rejected(tmp_path):
    path = write_config(tmp_path, "- just\n- a list\n")

    with pytest.raises(ConfigValidationError):
        load_settings(path, env={})


def test_validation_errors_carry_locations(tmp_path):
    path = write_config(tmp_path, "log_level: chatty\nretry:\n  max_retries: 50\n")

    with pytest.raises(ConfigValidationError) as excinfo:
        load_settings(path, env={})

    locations = [error["loc"] for error in excinfo.value.errors]
    assert ["log_level"] in locations
    assert ["retry", "max_retries"] in locations
    assert "retry -> max_retries" in str(excinfo.value)


def test_wait_cannot_exceed_operation_timeout():
    with pytest.raises(ValidationError):
        TimeoutSettings(operation=10, wait=20)


def test_base_delay_cannot_exceed_max_delay():
    with pytest.raises(ValidationError):
        RetrySettings(base_delay=10, max_delay=1)


@pytest.mark.parametrize("owner", ["", " padded", "x" * 129])
def test_owner_must_be_tag_safe(owner):
    with pytest.raises(ValidationError):
        EngineSettings(owner=owner)


def test_duplicate_handler_types_rejected():
    with pytest.raises(ValidationError):
        EngineSettings(handlers=["null_resource", "null_resource"])

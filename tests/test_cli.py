from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from converge.cli.main import cli


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("converge.cli.main.setup_logging", lambda *args, **kwargs: None)
    return CliRunner()


def write_json(path: Path, value) -> str:
    path.write_text(json.dumps(value), encoding="utf-8")
    return str(path)


def test_types_lists_builtin_handlers(runner):
    result = runner.invoke(cli, ["types"], obj={})

    assert result.exit_code == 0
    assert "null_resource" in result.output


def test_plan_json_for_untracked_resource(runner, tmp_path):
    desired = write_json(tmp_path / "desired.json", {"triggers": {"v": "1"}})

    result = runner.invoke(cli, ["plan", "null_resource", "--desired", desired, "--format", "json"], obj={})

    assert result.exit_code == 0
    plan = json.loads(result.stdout)
    assert plan["action"] == "create"
    assert plan["prior_state_hash"] is None


def test_apply_writes_state_then_plans_noop(runner, tmp_path):
    desired = write_json(tmp_path / "desired.json", {"triggers": {"v": "1"}})
    state_path = tmp_path / "state.json"

    applied = runner.invoke(cli, ["apply", "null_resource", "--desired", desired, "--out", str(state_path)], obj={})
    assert applied.exit_code == 0
    assert json.loads(state_path.read_text())["id"].startswith("null-")

    planned = runner.invoke(
        cli,
        ["plan", "null_resource", "--desired", desired, "--prior", str(state_path), "--format", "json"],
        obj={},
    )
    assert planned.exit_code == 0
    assert json.loads(planned.stdout)["action"] == "noop"


def test_plan_with_prevent_destroy_fails(runner, tmp_path):
    prior = write_json(tmp_path / "state.json", {"id": "null-1", "triggers": {}})

    result = runner.invoke(cli, ["plan", "null_resource", "--prior", prior, "--prevent-destroy"], obj={})

    assert result.exit_code == 1


def test_apply_without_inputs_fails(runner):
    result = runner.invoke(cli, ["apply", "null_resource"], obj={})

    assert result.exit_code == 1


def test_missing_config_file_fails(runner):
    result = runner.invoke(cli, ["--config", "absent.yaml", "types"], obj={})

    assert result.exit_code == 1


def test_invalid_config_file_fails(runner, tmp_path):
    (tmp_path / "converge.yaml").write_text("log_level: chatty\n", encoding="utf-8")

    result = runner.invoke(cli, ["types"], obj={})

    assert result.exit_code == 1

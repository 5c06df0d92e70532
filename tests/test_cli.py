"""Tests for the deployhook CLI."""

import json
import os

import pytest
import yaml
from click.testing import CliRunner

from deployhook.cli import main

posix_only = pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, workdir):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "auth_token": "t",
        "logs_dir": str(tmp_path / "logs"),
        "apps": {
            "shop": {
                "production": {
                    "path": str(workdir),
                    "steps": [
                        {"name": "Say hi", "command": "echo hi"},
                        {"name": "Done", "command": "echo done"},
                    ],
                },
                "broken": {
                    "path": str(workdir),
                    "steps": [{"command": "echo A"}, {"command": "exit 1"}, {"command": "echo B"}],
                },
            },
        },
    }))
    return path


def test_init_command_creates_files(runner, tmp_path, monkeypatch):
    home = tmp_path / "custom_home"
    monkeypatch.setenv("DEPLOYHOOK_HOME", str(home))

    result = runner.invoke(main, ["init"])

    assert result.exit_code == 0
    assert "Initialized deployhook config" in result.output
    assert (home / "config.yaml").exists()
    assert "DEPLOYHOOK_AUTH_TOKEN=" in (home / ".env").read_text()

    cfg = yaml.safe_load((home / "config.yaml").read_text())
    assert "example" in cfg["apps"]


def test_init_does_not_overwrite_without_force(runner, tmp_path, monkeypatch):
    home = tmp_path / "custom_home"
    monkeypatch.setenv("DEPLOYHOOK_HOME", str(home))
    home.mkdir(parents=True)
    (home / "config.yaml").write_text("existing: true")

    result = runner.invoke(main, ["init"])

    assert result.exit_code == 1
    assert "Config already exists" in result.output
    assert (home / "config.yaml").read_text() == "existing: true"


def test_init_force_overwrites(runner, tmp_path, monkeypatch):
    home = tmp_path / "custom_home"
    monkeypatch.setenv("DEPLOYHOOK_HOME", str(home))
    home.mkdir(parents=True)
    (home / "config.yaml").write_text("existing: true")

    result = runner.invoke(main, ["init", "--force"])

    assert result.exit_code == 0
    assert "apps" in yaml.safe_load((home / "config.yaml").read_text())


def test_missing_config(runner, tmp_path):
    result = runner.invoke(main, ["--config", str(tmp_path / "nope.yaml"), "apps"])
    assert result.exit_code == 1
    assert "Config not loaded" in result.output


def test_apps_lists_definitions(runner, config_file):
    result = runner.invoke(main, ["--config", str(config_file), "apps"])
    assert result.exit_code == 0
    assert "shop" in result.output


@posix_only
class TestDeployCommand:

    def test_successful_deploy(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "deploy", "shop", "production"])

        assert result.exit_code == 0, result.output
        assert "Say hi" in result.output
        assert "completed" in result.output

    def test_failed_deploy_exits_non_zero(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "deploy", "shop", "broken"])

        assert result.exit_code == 1
        assert "failed" in result.output
        assert "Step 3" not in result.output

    def test_unknown_app(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "deploy", "ghost", "production"])

        assert result.exit_code == 1
        assert "App not found: ghost" in result.output
        assert "Available: shop" in result.output

    def test_logs_and_show(self, runner, config_file):
        runner.invoke(main, ["--config", str(config_file), "deploy", "shop", "production"])

        logs = runner.invoke(main, ["--config", str(config_file), "logs", "--json"])
        assert logs.exit_code == 0
        payload = json.loads(logs.output)
        assert payload["total"] == 1
        deploy_id = payload["logs"][0]["deploy_id"]

        shown = runner.invoke(main, ["--config", str(config_file), "show", deploy_id])
        assert shown.exit_code == 0
        assert deploy_id in shown.output
        assert "echo hi" in shown.output


def test_logs_invalid_date(runner, config_file):
    result = runner.invoke(main, ["--config", str(config_file), "logs", "--date", "yesterday"])
    assert result.exit_code == 1
    assert "Invalid date" in result.output


def test_show_unknown_id(runner, config_file):
    result = runner.invoke(main, ["--config", str(config_file), "show", "shop-production-1"])
    assert result.exit_code == 1
    assert "Log not found" in result.output

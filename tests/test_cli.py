"""
Tests for CLI commands — plan, build, verify, render, config check, history, doctor.
"""

import json
import textwrap
from pathlib import Path

from click.testing import CliRunner

from provisioner.main import cli


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "least-privilege" in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPlanCommand:
    def test_plan(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "plan"])
        assert result.exit_code == 0
        assert "test-app" in result.output
        assert "toolchain-purge" in result.output
        assert "pip-dev" not in result.output

    def test_plan_dev(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "plan", "--dev"])
        assert result.exit_code == 0
        assert "pip-dev" in result.output

    def test_plan_json(self, make_project):
        config = make_project()
        result = CliRunner().invoke(
            cli, ["--config", str(config), "plan", "--build-arg", "DEV=true", "--json"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dev"] is True
        assert data["plan"]["stages"][-1]["id"] == "downgrade"
        assert "flake8>=7.0" in data["resolution"]["python_install"]
        assert data["resolution"]["python_dev"] == ["flake8>=7.0", "pytest"]

    def test_plan_bad_build_arg(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "plan", "--build-arg", "DEV"])
        assert result.exit_code == 2

    def test_plan_missing_config(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["plan"])
        assert result.exit_code == 2
        assert "No provision.yml" in result.output


class TestBuildCommand:
    def test_mock_build(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "build", "--mock"])
        assert result.exit_code == 0
        assert "[mock]" in result.output
        assert "published" in result.output
        assert (config.parent / "provision.lock.json").is_file()

    def test_mock_build_json(self, make_project):
        config = make_project()
        result = CliRunner().invoke(
            cli, ["--config", str(config), "build", "--mock", "--dev", "--json"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["status"] == "ok"
        assert data["artifact"]["dev"] is True
        assert "flake8" in data["artifact"]["python_packages"]

    def test_dry_run(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "build", "--dry-run"])
        assert result.exit_code == 0
        assert "[dry-run]" in result.output
        assert not (config.parent / "provision.lock.json").exists()

    def test_cached(self, make_project):
        config = make_project()
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(config), "build", "--mock"])
        result = runner.invoke(cli, ["--config", str(config), "build", "--mock", "--cached"])
        assert result.exit_code == 0
        assert "up to date" in result.output

    def test_invalid_config_exit_code(self, make_project):
        config = make_project(runtime=None)
        result = CliRunner().invoke(cli, ["--config", str(config), "build", "--mock"])
        assert result.exit_code == 2
        assert "❌" in result.output

    def test_stage_failure_exit_code(self, make_project):
        config = make_project()
        (config.parent / "app" / "manage.py").unlink()
        (config.parent / "app").rmdir()
        result = CliRunner().invoke(cli, ["--config", str(config), "build", "--dry-run"])
        assert result.exit_code == 1
        assert "copy-app" in result.output


class TestVerifyCommand:
    def test_after_build(self, make_project):
        config = make_project()
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(config), "build", "--mock"])
        result = runner.invoke(cli, ["--config", str(config), "verify"])
        assert result.exit_code == 0
        assert "verified" in result.output

    def test_nothing_published(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "verify", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["ok"] is False


class TestRenderCommand:
    def test_stdout(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "render", "dockerfile"])
        assert result.exit_code == 0
        assert result.output.startswith("FROM python:3.12-alpine")
        assert "USER app-user" in result.output

    def test_skips_missing_dev_requirements(self, make_project):
        config = make_project(dev=None)
        result = CliRunner().invoke(cli, ["--config", str(config), "render", "dockerfile"])
        assert result.exit_code == 0
        assert "COPY ./requirements.txt" in result.output
        assert "requirements.dev.txt" not in result.output

    def test_output_file(self, make_project, tmp_path: Path):
        config = make_project()
        target = tmp_path / "Dockerfile"
        runner = CliRunner()
        result = runner.invoke(
            cli, ["--config", str(config), "render", "dockerfile", "-o", str(target)],
        )
        assert result.exit_code == 0
        assert target.read_text().startswith("FROM ")

        again = runner.invoke(
            cli, ["--config", str(config), "render", "dockerfile", "-o", str(target)],
        )
        assert again.exit_code == 1
        assert "--force" in again.output


class TestConfigCheckCommand:
    def test_valid(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check"])
        assert result.exit_code == 0
        assert "valid" in result.output.lower()

    def test_valid_json(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["recipe"] == "test-app"
        assert data["dev_packages"] == 2

    def test_warnings(self, make_project):
        config = make_project(
            recipe=textwrap.dedent("""\
                name: warn-app
                app:
                  source: ./missing
                system:
                  runtime: [libpq]
                  build_only: [libpq, gcc]
            """),
            dev=None,
        )
        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check", "--json"])
        data = json.loads(result.output)
        assert data["valid"] is True
        assert len(data["warnings"]) == 3

    def test_invalid(self, make_project):
        config = make_project(recipe="name: bad\nidentity:\n  name: root\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check"])
        assert result.exit_code == 1
        assert "errors" in result.output


class TestHistoryCommand:
    def test_empty(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "history"])
        assert result.exit_code == 0
        assert "No builds" in result.output

    def test_after_builds(self, make_project):
        config = make_project()
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(config), "build", "--mock"])
        runner.invoke(cli, ["--config", str(config), "build", "--mock", "--dev"])
        result = runner.invoke(cli, ["--config", str(config), "history", "--json"])
        assert result.exit_code == 0
        entries = json.loads(result.output)
        assert len(entries) == 2
        assert entries[0]["dev"] is True


class TestDoctorCommand:
    def test_json(self, make_project):
        config = make_project()
        result = CliRunner().invoke(cli, ["--config", str(config), "doctor", "--json"])
        data = json.loads(result.output)
        assert set(data) == {"shell", "filesystem", "pip", "identity", "apk"}
        assert data["filesystem"]["available"] is True

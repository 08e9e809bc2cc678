"""Tests for the command line interface."""

import os
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from conftest import FakeProvider

from nic import cli as cli_module
from nic import engine
from nic.bootstrap import InstallResult, NonFatalStep, argocd_release
from nic.cli import cli, write_private
from nic.engine import DeployResult, Registries
from nic.errors import DestroyError
from nic.plan import Plan, PlanAction, PlannedChange


@pytest.fixture(autouse=True)
def keep_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Leave the test runner's logging configuration alone."""
    monkeypatch.setattr(cli_module, "setup_logging", lambda **_: None)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump({"project_name": "demo", "provider": "fake"}), encoding="utf-8"
    )
    return path


def _invoke(runner: CliRunner, registries: Registries, *args: str, **kwargs):
    return runner.invoke(cli, list(args), obj={"registries_factory": lambda: registries}, **kwargs)


class TestValidate:
    """Tests for nic validate."""

    def test_valid(self, runner: CliRunner, registries: Registries, config_file: Path) -> None:
        """Test that a valid file prints its summary."""
        result = _invoke(runner, registries, "validate", "-f", str(config_file))

        assert result.exit_code == 0
        assert f"Configuration valid: {config_file}" in result.output
        assert "cluster_name: demo-cluster" in result.output

    def test_invalid(
        self,
        runner: CliRunner,
        registries: Registries,
        fake_provider: FakeProvider,
        config_file: Path,
    ) -> None:
        """Test that provider validation errors exit non-zero."""
        fake_provider.invalid = ["fake.region: is required"]

        result = _invoke(runner, registries, "validate", "-f", str(config_file))

        assert result.exit_code == 1
        assert "Configuration invalid" in result.output
        assert "fake.region: is required" in result.output

    def test_malformed_file(
        self, runner: CliRunner, registries: Registries, tmp_path: Path
    ) -> None:
        """Test that schema errors are reported with their location."""
        path = tmp_path / "bad.yaml"
        path.write_text("project_name: Demo_Project\nprovider: fake\n", encoding="utf-8")

        result = _invoke(runner, registries, "validate", "-f", str(path))

        assert result.exit_code == 1
        assert "project_name" in result.output


class TestLifecycleCommands:
    """Tests for deploy, destroy and kubeconfig."""

    def test_deploy(
        self,
        runner: CliRunner,
        registries: Registries,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that deploy prints the summary, warnings and manual records."""

        async def fake_deploy(config, ctx, registries, dry_run=False):
            install = InstallResult(
                release=argocd_release(),
                steps=[NonFatalStep(name="git-repository", ok=False, error="token unset")],
            )
            return DeployResult(
                summary={"provider": "fake"},
                install=install,
                manual_records=["demo.example.com A 203.0.113.42"],
            )

        monkeypatch.setattr(engine, "deploy", fake_deploy)

        result = _invoke(runner, registries, "deploy", "-f", str(config_file))

        assert result.exit_code == 0
        assert "Platform demo deployed" in result.output
        assert "git-repository not configured: token unset" in result.output
        assert "demo.example.com A 203.0.113.42" in result.output

    def test_deploy_dry_run(
        self,
        runner: CliRunner,
        registries: Registries,
        fake_provider: FakeProvider,
        config_file: Path,
    ) -> None:
        """Test that --dry-run plans through the provider and changes nothing."""
        result = _invoke(runner, registries, "deploy", "-f", str(config_file), "--dry-run")

        assert result.exit_code == 0
        assert fake_provider.calls == ["validate", "plan"]
        assert "Dry run for platform demo" in result.output
        assert "0 change(s) planned. No changes were made" in result.output
        assert "deployed" not in result.output

    def test_deploy_dry_run_blocked(
        self,
        runner: CliRunner,
        registries: Registries,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a plan with a blocked resource lists it and exits non-zero."""
        plan = Plan()
        plan.create("node_pool", "gpu")
        plan.changes.append(
            PlannedChange("network", "demo-vnet", PlanAction.BLOCKED, fields=("address_space",))
        )

        async def fake_deploy(config, ctx, registries, dry_run=False):
            assert dry_run
            return DeployResult(summary={"provider": "fake"}, plan=plan)

        monkeypatch.setattr(engine, "deploy", fake_deploy)

        result = _invoke(runner, registries, "deploy", "-f", str(config_file), "--dry-run")

        assert result.exit_code == 1
        assert "create node_pool gpu" in result.output
        assert "blocked network demo-vnet (address_space)" in result.output
        assert "1 change(s) planned" in result.output

    def test_destroy_auto_approve(
        self,
        runner: CliRunner,
        registries: Registries,
        fake_provider: FakeProvider,
        config_file: Path,
    ) -> None:
        """Test that --force reaches the provider."""
        result = _invoke(
            runner, registries, "destroy", "-f", str(config_file), "--force", "--auto-approve"
        )

        assert result.exit_code == 0
        assert fake_provider.calls[-1] == "destroy force=True"
        assert "Platform demo destroyed" in result.output

    def test_destroy_declined(
        self,
        runner: CliRunner,
        registries: Registries,
        fake_provider: FakeProvider,
        config_file: Path,
    ) -> None:
        """Test that declining the prompt aborts without calls."""
        result = _invoke(runner, registries, "destroy", "-f", str(config_file), input="n\n")

        assert result.exit_code == 1
        assert fake_provider.calls == []

    def test_destroy_failure_exit_code(
        self,
        runner: CliRunner,
        registries: Registries,
        fake_provider: FakeProvider,
        config_file: Path,
    ) -> None:
        """Test that a failed destroy exits 1."""
        fake_provider.destroy_error = DestroyError([])

        result = _invoke(runner, registries, "destroy", "-f", str(config_file), "--auto-approve")

        assert result.exit_code == 1

    def test_kubeconfig_to_file(
        self,
        runner: CliRunner,
        registries: Registries,
        fake_provider: FakeProvider,
        config_file: Path,
        tmp_path: Path,
    ) -> None:
        """Test that -o writes a private file."""
        output = tmp_path / "kubeconfig"

        result = _invoke(
            runner, registries, "kubeconfig", "-f", str(config_file), "-o", str(output)
        )

        assert result.exit_code == 0
        assert output.read_bytes() == fake_provider.kubeconfig
        assert output.stat().st_mode & 0o777 == 0o600

    def test_invalid_runtime_settings(
        self,
        runner: CliRunner,
        registries: Registries,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that bad NIC_ environment settings fail before any work."""
        monkeypatch.setenv("NIC_ORPHAN_SWEEP_PASSES", "50")

        result = _invoke(runner, registries, "kubeconfig", "-f", str(config_file))

        assert result.exit_code == 1
        assert "Invalid runtime configuration" in result.output


def test_version(runner: CliRunner, registries: Registries) -> None:
    """Test that version lists the bound backends."""
    result = _invoke(runner, registries, "version")

    assert result.exit_code == 0
    assert "nic 0.1.0" in result.output
    assert "providers: fake" in result.output
    assert "dns providers: fake-dns" in result.output


class TestWritePrivate:
    """Tests for write_private."""

    def test_created_private(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the file is opened with owner-only permissions."""
        modes = []
        real_open = os.open

        def spy(path, flags, mode=0o777):
            modes.append(mode)
            return real_open(path, flags, mode)

        monkeypatch.setattr(os, "open", spy)
        target = tmp_path / "kubeconfig"

        write_private(target, b"apiVersion: v1\n")

        assert modes == [0o600]
        assert target.read_bytes() == b"apiVersion: v1\n"
        assert target.stat().st_mode & 0o777 == 0o600

    def test_existing_file_tightened(self, tmp_path: Path) -> None:
        """Test that an existing readable file is truncated and made private."""
        target = tmp_path / "kubeconfig"
        target.write_bytes(b"old credentials that are longer")
        target.chmod(0o644)

        write_private(target, b"new")

        assert target.read_bytes() == b"new"
        assert target.stat().st_mode & 0o777 == 0o600

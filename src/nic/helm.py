"""Thin wrapper around the helm binary."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import HelmError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HelmRelease:
    """A chart release to install or upgrade."""

    name: str
    chart: str
    version: str
    repo_url: str
    namespace: str
    values: dict[str, Any] = field(default_factory=dict)


def run_command(
    cmd: list[str],
    *,
    env: dict[str, str] | None = None,
    timeout: int,
) -> subprocess.CompletedProcess[str]:
    """Run a command and capture its output.

    Raises:
        HelmError: If the binary is missing, times out or exits non-zero.
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            env=full_env,
            timeout=timeout,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise HelmError(f"Command not found: {cmd[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise HelmError(f"Command timed out after {timeout}s: {' '.join(cmd[:3])}") from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise HelmError(f"Command failed with exit code {result.returncode}: {detail}")
    return result


def upgrade_install_command(
    binary: str, release: HelmRelease, kubeconfig: Path, values_file: Path, timeout: int
) -> list[str]:
    return [
        binary,
        "upgrade",
        "--install",
        release.name,
        release.chart,
        "--repo",
        release.repo_url,
        "--version",
        release.version,
        "--namespace",
        release.namespace,
        "--kubeconfig",
        str(kubeconfig),
        "--values",
        str(values_file),
        "--timeout",
        f"{timeout}s",
        "--wait=false",
    ]


def upgrade_install(
    kubeconfig: bytes, release: HelmRelease, binary: str = "helm", timeout: int = 600
) -> None:
    """Install or upgrade a release against the cluster the kubeconfig points at.

    The kubeconfig and values are written to a private temporary directory
    that is removed afterwards.
    """
    with tempfile.TemporaryDirectory(prefix="nic-helm-") as tmp:
        kubeconfig_file = Path(tmp) / "kubeconfig"
        kubeconfig_file.write_bytes(kubeconfig)
        kubeconfig_file.chmod(0o600)
        values_file = Path(tmp) / "values.yaml"
        values_file.write_text(yaml.safe_dump(release.values), encoding="utf-8")

        cmd = upgrade_install_command(binary, release, kubeconfig_file, values_file, timeout)
        logger.info(
            "Running helm upgrade --install",
            extra={
                "release": release.name,
                "chart": release.chart,
                "version": release.version,
                "namespace": release.namespace,
            },
        )
        # Allow a margin over helm's own timeout before killing it
        run_command(cmd, timeout=timeout + 60)

"""Argo CD bootstrap.

Installs the GitOps controller on a freshly reconciled cluster:

1. Wait for a ready node
2. Ensure the namespace
3. helm upgrade --install the argo-cd chart
4. Wait for the core workloads
5. Best-effort post-install configuration (OCI repository access, Git
   repository credentials, the foundational AppProject and the root
   app-of-apps); failures become warnings
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client
from kubernetes.client import CoreV1Api
from kubernetes.client.exceptions import ApiException

from .errors import NicError, UpstreamAPIError
from .gitops import (
    APPLICATION_PLURAL,
    APPPROJECT_PLURAL,
    apply_custom_object,
    project_manifest,
    root_application_manifest,
)
from .helm import HelmRelease, upgrade_install
from .kube import KubeClients, clients_from_kubeconfig, wait_for_nodes, wait_for_workloads
from .models import GitRepositoryConfig, PlatformConfig
from .status import RunContext, StatusLevel

logger = logging.getLogger(__name__)

ARGOCD_NAMESPACE = "argocd"
ARGOCD_RELEASE = "argocd"
ARGOCD_CHART = "argo-cd"
# Chart 9.4.1 installs Argo CD v3.3.0
ARGOCD_CHART_VERSION = "9.4.1"
ARGOCD_REPO_URL = "https://argoproj.github.io/argo-helm"
# TLS terminates at the gateway
ARGOCD_VALUES: dict[str, Any] = {"configs": {"params": {"server.insecure": True}}}

ARGOCD_DEPLOYMENTS = ("argocd-server", "argocd-repo-server")
ARGOCD_STATEFULSETS = ("argocd-application-controller",)

REPOSITORY_SECRET_LABEL = "argocd.argoproj.io/secret-type"
OCI_SECRET_NAME = "docker-oci-repo"
GIT_SECRET_NAME = "gitops-repo-creds"

ROOT_APPLICATION_STEP = "root-application"

HelmInstaller = Callable[[bytes, HelmRelease, str, int], None]


def argocd_release() -> HelmRelease:
    return HelmRelease(
        name=ARGOCD_RELEASE,
        chart=ARGOCD_CHART,
        version=ARGOCD_CHART_VERSION,
        repo_url=ARGOCD_REPO_URL,
        namespace=ARGOCD_NAMESPACE,
        values=ARGOCD_VALUES,
    )


@dataclass(frozen=True)
class NonFatalStep:
    """Outcome of a best-effort step. A failure here never aborts the install."""

    name: str
    ok: bool
    error: str = ""


@dataclass
class InstallResult:
    release: HelmRelease
    steps: list[NonFatalStep] = field(default_factory=list)

    @property
    def warnings(self) -> list[NonFatalStep]:
        return [s for s in self.steps if not s.ok]

    def succeeded(self, name: str) -> bool:
        return any(s.name == name and s.ok for s in self.steps)


# =============================================================================
# Kubernetes objects
# =============================================================================


def ensure_namespace(core: CoreV1Api, name: str) -> bool:
    """Create the namespace if absent. Returns True when it was created."""
    try:
        core.read_namespace(name)
        return False
    except ApiException as e:
        if e.status != 404:
            raise UpstreamAPIError("kubernetes", f"read namespace {name}", e) from e
    try:
        core.create_namespace(client.V1Namespace(metadata=client.V1ObjectMeta(name=name)))
    except ApiException as e:
        raise UpstreamAPIError("kubernetes", f"create namespace {name}", e) from e
    logger.info("Created namespace", extra={"namespace": name})
    return True


def apply_secret(
    core: CoreV1Api,
    namespace: str,
    name: str,
    string_data: dict[str, str],
    labels: dict[str, str] | None = None,
) -> None:
    """Create the secret or replace it when it exists."""
    body = client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
        type="Opaque",
        string_data=string_data,
    )
    try:
        core.read_namespaced_secret(name, namespace)
        exists = True
    except ApiException as e:
        if e.status != 404:
            raise UpstreamAPIError("kubernetes", f"read secret {name}", e) from e
        exists = False
    try:
        if exists:
            core.replace_namespaced_secret(name, namespace, body)
        else:
            core.create_namespaced_secret(namespace, body)
    except ApiException as e:
        raise UpstreamAPIError("kubernetes", f"apply secret {name}", e) from e


def oci_repository_data() -> dict[str, str]:
    return {
        "name": "docker-oci",
        "type": "helm",
        "url": "oci://docker.io",
        "enableOCI": "true",
    }


def git_repository_data(repo: GitRepositoryConfig) -> dict[str, str]:
    """Repository secret data, SSH key preferred over token.

    Raises:
        ValueError: If the referenced environment variable is empty.
    """
    data = {"name": "gitops-repo", "type": "git", "url": repo.url}
    auth = repo.effective_argocd_auth()
    if auth.auth_type == "ssh":
        data["sshPrivateKey"] = auth.ssh_key()
    else:
        # Token auth uses the fixed username git
        data["username"] = "git"
        data["password"] = auth.token()
    return data


def _apply_argo_object(kube: KubeClients, plural: str, manifest: dict[str, Any]) -> None:
    if kube.custom is None:
        raise NicError("custom objects API unavailable")
    apply_custom_object(kube.custom, plural, manifest)


async def _non_fatal(
    name: str, ctx: RunContext, func: Callable[..., None], *args: Any
) -> NonFatalStep:
    try:
        await asyncio.to_thread(func, *args)
    except (NicError, ValueError) as e:
        logger.warning("Post-install step failed", extra={"step": name, "error": str(e)})
        ctx.status(
            StatusLevel.WARNING,
            f"{name} failed; configure it manually",
            "argocd",
            name,
            error=str(e),
        )
        return NonFatalStep(name=name, ok=False, error=str(e))
    ctx.status(StatusLevel.SUCCESS, f"{name} configured", "argocd", name)
    return NonFatalStep(name=name, ok=True)


# =============================================================================
# Install
# =============================================================================


async def install_argocd(
    kubeconfig: bytes,
    config: PlatformConfig,
    ctx: RunContext,
    kube: KubeClients | None = None,
    helm_install: HelmInstaller = upgrade_install,
) -> InstallResult:
    """Install Argo CD and wire repository access.

    Args:
        kubeconfig: Cluster credentials from the provider.
        kube: Prebuilt API clients; built from kubeconfig when omitted.
        helm_install: Release installer, the helm binary wrapper by default.

    Raises:
        PollError: If the cluster or Argo CD never becomes ready.
        HelmError: If the chart cannot be installed.
    """
    release = argocd_release()
    ctx.status(
        StatusLevel.INFO,
        "Installing Argo CD on cluster",
        "argocd",
        "install",
        cluster_name=config.project_name,
    )
    kube = kube or clients_from_kubeconfig(kubeconfig)

    await wait_for_nodes(kube, ctx)
    await asyncio.to_thread(ensure_namespace, kube.core, release.namespace)

    ctx.status(StatusLevel.PROGRESS, "Installing Argo CD chart", "argocd", "install")
    await asyncio.to_thread(
        helm_install,
        kubeconfig,
        release,
        ctx.runtime.helm_binary,
        ctx.runtime.helm_timeout_seconds,
    )

    await wait_for_workloads(
        kube, release.namespace, ARGOCD_DEPLOYMENTS, ctx, statefulsets=ARGOCD_STATEFULSETS
    )

    result = InstallResult(release=release)
    result.steps.append(
        await _non_fatal(
            "oci-repository",
            ctx,
            apply_secret,
            kube.core,
            release.namespace,
            OCI_SECRET_NAME,
            oci_repository_data(),
            {REPOSITORY_SECRET_LABEL: "repository"},
        )
    )
    if config.git_repository is not None:
        repo = config.git_repository

        def apply_git_secret() -> None:
            apply_secret(
                kube.core,
                release.namespace,
                GIT_SECRET_NAME,
                git_repository_data(repo),
                {REPOSITORY_SECRET_LABEL: "repository"},
            )

        result.steps.append(await _non_fatal("git-repository", ctx, apply_git_secret))

    result.steps.append(
        await _non_fatal(
            "argocd-project",
            ctx,
            _apply_argo_object,
            kube,
            APPPROJECT_PLURAL,
            project_manifest(release.namespace),
        )
    )
    if config.git_repository is not None:
        result.steps.append(
            await _non_fatal(
                ROOT_APPLICATION_STEP,
                ctx,
                _apply_argo_object,
                kube,
                APPLICATION_PLURAL,
                root_application_manifest(release.namespace, config.git_repository),
            )
        )

    ctx.status(
        StatusLevel.SUCCESS,
        "Argo CD installed successfully",
        "argocd",
        "install",
        version=release.version,
        namespace=release.namespace,
        warnings=len(result.warnings),
    )
    return result

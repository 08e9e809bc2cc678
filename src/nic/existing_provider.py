"""Provider for a cluster provisioned elsewhere.

No cloud resources are managed; the kubeconfig is cut down from a local
file to the configured context.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .errors import ClusterNotFoundError, ConfigValidationError
from .models import PlatformConfig
from .plan import Plan
from .provider import Provider
from .status import RunContext

logger = logging.getLogger(__name__)

PROVIDER_NAME = "existing"
DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"


def kubeconfig_path(config: PlatformConfig) -> Path:
    if config.existing and config.existing.kubeconfig_path:
        return Path(config.existing.kubeconfig_path).expanduser()
    env = os.environ.get("KUBECONFIG", "")
    if env:
        # Only the first entry of a merged KUBECONFIG list is read
        return Path(env.split(os.pathsep)[0]).expanduser()
    return DEFAULT_KUBECONFIG


def _named(entries: list[dict[str, Any]] | None, name: str) -> dict[str, Any] | None:
    for entry in entries or ():
        if entry.get("name") == name:
            return entry
    return None


def extract_context(document: dict[str, Any], context_name: str) -> dict[str, Any]:
    """Reduce a kubeconfig to one context with its cluster and user.

    Raises:
        ClusterNotFoundError: If the context or what it references is missing.
    """
    context = _named(document.get("contexts"), context_name)
    if context is None:
        raise ClusterNotFoundError(f"context '{context_name}' not found in kubeconfig")
    details = context.get("context") or {}
    cluster = _named(document.get("clusters"), details.get("cluster", ""))
    if cluster is None:
        raise ClusterNotFoundError(
            f"cluster '{details.get('cluster')}' of context '{context_name}' not found"
        )
    user = _named(document.get("users"), details.get("user", ""))

    return {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": context_name,
        "contexts": [context],
        "clusters": [cluster],
        "users": [user] if user else [],
    }


class ExistingClusterProvider(Provider):
    """Deploy onto a cluster reachable through a local kubeconfig context."""

    name = PROVIDER_NAME

    def validate(self, config: PlatformConfig) -> None:
        if config.existing is None or not config.existing.kube_context:
            raise ConfigValidationError(
                ["existing.kube_context: is required"], provider=self.name
            )

    async def reconcile(self, config: PlatformConfig, ctx: RunContext) -> None:
        logger.info(
            "Using existing cluster, nothing to provision",
            extra={"project": config.project_name},
        )

    async def plan(self, config: PlatformConfig, ctx: RunContext) -> Plan:
        self.validate(config)
        plan = Plan()
        plan.unchanged("cluster", config.existing.kube_context, detail="existing, not managed")
        plan.report(ctx)
        return plan

    async def destroy(self, config: PlatformConfig, ctx: RunContext, force: bool = False) -> None:
        logger.info(
            "Using existing cluster, nothing to destroy",
            extra={"project": config.project_name},
        )

    async def get_kubeconfig(self, config: PlatformConfig, ctx: RunContext) -> bytes:
        self.validate(config)
        path = kubeconfig_path(config)
        if not path.exists():
            raise ClusterNotFoundError(f"kubeconfig not found: {path}")
        document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(document, dict):
            raise ClusterNotFoundError(f"kubeconfig is not a mapping: {path}")
        reduced = extract_context(document, config.existing.kube_context)
        return yaml.safe_dump(reduced, sort_keys=False).encode("utf-8")

    def summary(self, config: PlatformConfig) -> dict[str, Any]:
        existing = config.existing
        return {
            "provider": self.name,
            "kube_context": existing.kube_context if existing else "",
            "kubeconfig": str(kubeconfig_path(config)),
        }

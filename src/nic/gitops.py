"""Argo CD objects for the foundational GitOps layer.

After the chart is installed, an AppProject scopes the foundational
applications and a root application syncs every child application from
the configured Git repository.
"""

from __future__ import annotations

import logging
from typing import Any

from kubernetes.client import CustomObjectsApi
from kubernetes.client.exceptions import ApiException

from .errors import UpstreamAPIError
from .models import GitRepositoryConfig

logger = logging.getLogger(__name__)

ARGOPROJ_GROUP = "argoproj.io"
ARGOPROJ_VERSION = "v1alpha1"
APPPROJECT_PLURAL = "appprojects"
APPLICATION_PLURAL = "applications"

PROJECT_NAME = "foundational"
ROOT_APPLICATION_NAME = "nebari-root"
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"

LABELS = {
    "app.kubernetes.io/part-of": "nebari-foundational",
    "app.kubernetes.io/managed-by": "nebari-infrastructure-core",
}


def project_manifest(namespace: str) -> dict[str, Any]:
    return {
        "apiVersion": f"{ARGOPROJ_GROUP}/{ARGOPROJ_VERSION}",
        "kind": "AppProject",
        "metadata": {"name": PROJECT_NAME, "namespace": namespace, "labels": dict(LABELS)},
        "spec": {
            "description": "Nebari foundational services",
            "sourceRepos": ["*"],
            "destinations": [{"server": IN_CLUSTER_SERVER, "namespace": "*"}],
            "clusterResourceWhitelist": [{"group": "*", "kind": "*"}],
        },
    }


def root_application_manifest(namespace: str, repo: GitRepositoryConfig) -> dict[str, Any]:
    """App-of-apps reading the apps directory under the repository path."""
    path = f"{repo.path.strip('/')}/apps" if repo.path.strip("/") else "apps"
    return {
        "apiVersion": f"{ARGOPROJ_GROUP}/{ARGOPROJ_VERSION}",
        "kind": "Application",
        "metadata": {
            "name": ROOT_APPLICATION_NAME,
            "namespace": namespace,
            "labels": dict(LABELS),
            "finalizers": ["resources-finalizer.argocd.argoproj.io"],
        },
        "spec": {
            "project": PROJECT_NAME,
            "source": {
                "repoURL": repo.url,
                "targetRevision": repo.branch,
                "path": path,
                "directory": {"recurse": False, "include": "*.yaml", "exclude": "root.yaml"},
            },
            "destination": {"server": IN_CLUSTER_SERVER, "namespace": namespace},
            "syncPolicy": {
                "automated": {"prune": True, "selfHeal": True, "allowEmpty": False},
                "syncOptions": ["CreateNamespace=true"],
                "retry": {
                    "limit": 5,
                    "backoff": {"duration": "5s", "factor": 2, "maxDuration": "3m"},
                },
            },
        },
    }


def apply_custom_object(custom: CustomObjectsApi, plural: str, manifest: dict[str, Any]) -> str:
    """Create the Argo CD object, or replace it at its current resourceVersion.

    Returns:
        "created" or "updated".
    """
    metadata = manifest["metadata"]
    name, namespace = metadata["name"], metadata["namespace"]
    args = (ARGOPROJ_GROUP, ARGOPROJ_VERSION, namespace, plural)
    try:
        existing = custom.get_namespaced_custom_object(*args, name)
    except ApiException as e:
        if e.status != 404:
            raise UpstreamAPIError("kubernetes", f"read {plural} {name}", e) from e
        existing = None

    try:
        if existing is None:
            custom.create_namespaced_custom_object(*args, manifest)
            action = "created"
        else:
            metadata["resourceVersion"] = existing["metadata"]["resourceVersion"]
            custom.replace_namespaced_custom_object(*args, name, manifest)
            action = "updated"
    except ApiException as e:
        raise UpstreamAPIError("kubernetes", f"apply {plural} {name}", e) from e
    logger.info("Applied Argo CD object", extra={"object": f"{plural}/{name}", "action": action})
    return action

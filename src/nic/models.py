"""Pydantic models for the platform configuration file.

These models provide:
1. Type-safe YAML parsing
2. Structural validation at the boundary (fail fast, fail loudly)
3. A typed settings subtree per known provider, with unknown top-level
   keys kept in a residual bag for forward compatibility
"""

from __future__ import annotations

import ipaddress
import os
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_GIT_BRANCH = "main"
DEFAULT_NODE_MIN_COUNT = 1
DEFAULT_NODE_MAX_COUNT = 3

PROJECT_NAME_PATTERN = r"^[a-z][a-z0-9-]{1,30}[a-z0-9]$"

TaintEffect = Literal["NoSchedule", "NoExecute", "PreferNoSchedule"]


# =============================================================================
# Git / GitOps
# =============================================================================


class GitAuthConfig(BaseModel):
    """Names of environment variables holding Git credentials."""

    model_config = {"extra": "ignore"}

    ssh_key_env: str | None = None
    token_env: str | None = None

    @model_validator(mode="after")
    def exactly_one_method(self) -> GitAuthConfig:
        if not self.ssh_key_env and not self.token_env:
            raise ValueError("ssh_key_env or token_env is required")
        if self.ssh_key_env and self.token_env:
            raise ValueError("only one of ssh_key_env or token_env should be set, not both")
        return self

    @property
    def auth_type(self) -> str:
        return "ssh" if self.ssh_key_env else "token"

    def ssh_key(self) -> str:
        return _read_env(self.ssh_key_env, "ssh_key_env")

    def token(self) -> str:
        return _read_env(self.token_env, "token_env")


def _read_env(name: str | None, setting: str) -> str:
    if not name:
        raise ValueError(f"{setting} not configured")
    value = os.environ.get(name, "")
    if not value:
        raise ValueError(f"environment variable {name} is not set or empty")
    return value


class GitRepositoryConfig(BaseModel):
    """GitOps repository that Argo CD pulls applications from."""

    model_config = {"extra": "ignore"}

    url: Annotated[str, Field(min_length=1)]
    branch: str = DEFAULT_GIT_BRANCH
    path: str = ""
    auth: GitAuthConfig
    # Separate read credentials for Argo CD; falls back to auth
    argocd_auth: GitAuthConfig | None = None

    def effective_argocd_auth(self) -> GitAuthConfig:
        return self.argocd_auth or self.auth


# =============================================================================
# DNS
# =============================================================================


class DNSConfig(BaseModel):
    """DNS backend settings."""

    model_config = {"extra": "ignore"}

    provider: Annotated[str, Field(min_length=1)]
    zone_name: Annotated[str, Field(min_length=1)]

    @field_validator("zone_name")
    @classmethod
    def normalize_zone(cls, v: str) -> str:
        return v.strip().rstrip(".").lower()


# =============================================================================
# Azure
# =============================================================================


class TaintConfig(BaseModel):
    """Kubernetes taint applied to every node of a pool."""

    model_config = {"extra": "ignore"}

    key: str = ""
    value: str = ""
    effect: TaintEffect = "NoSchedule"

    def render(self) -> str:
        """Render in the key=value:Effect form used by AKS."""
        if self.value:
            return f"{self.key}={self.value}:{self.effect}"
        return f"{self.key}:{self.effect}"


class NodeGroupConfig(BaseModel):
    """AKS agent pool definition."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    vm_size: str = Field("", alias="instance")
    min_count: Annotated[int, Field(ge=0)] = DEFAULT_NODE_MIN_COUNT
    max_count: Annotated[int, Field(ge=0)] = DEFAULT_NODE_MAX_COUNT
    spot: bool = False
    system: bool = False
    labels: dict[str, str] = Field(default_factory=dict)
    taints: list[TaintConfig] = Field(default_factory=list)


class StorageConfig(BaseModel):
    """Shared filesystem backed by an Azure Files share."""

    model_config = {"extra": "ignore"}

    enabled: bool = False
    sku: str = "Premium_LRS"
    kind: str = "FileStorage"
    quota_gib: Annotated[int, Field(ge=100, le=102400)] = 100
    infrastructure_encryption: bool = False


class AzureConfig(BaseModel):
    """Azure provider settings."""

    model_config = {"extra": "ignore"}

    region: str = ""
    subscription_id: str | None = None
    resource_group_name: str | None = None
    kubernetes_version: str = ""
    vnet_cidr: str = "10.10.0.0/16"
    subnets: dict[str, str] = Field(default_factory=dict)
    node_groups: dict[str, NodeGroupConfig] = Field(default_factory=dict)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    authorized_ip_ranges: list[str] = Field(default_factory=list)
    private_cluster_enabled: bool = False
    disk_encryption_set_id: str | None = None
    network_plugin: Literal["azure", "kubenet", "none"] = "azure"
    azure_policy_enabled: bool = False
    workload_identity_enabled: bool = False
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("region")
    @classmethod
    def normalize_region(cls, v: str) -> str:
        return v.strip().lower().replace(" ", "")

    def effective_subnets(self) -> dict[str, str]:
        """Subnets to create; defaults to a single nodes subnet on the first half of the range."""
        if self.subnets:
            return dict(self.subnets)
        network = ipaddress.ip_network(self.vnet_cidr, strict=False)
        first_half = next(network.subnets(prefixlen_diff=1))
        return {"nodes": str(first_half)}

    def system_pool_name(self) -> str | None:
        """The pool flagged system, else the first declared one."""
        for name, group in self.node_groups.items():
            if group.system:
                return name
        return next(iter(self.node_groups), None)


# =============================================================================
# Existing cluster
# =============================================================================


class ExistingClusterConfig(BaseModel):
    """Settings for running against a cluster this tool does not provision."""

    model_config = {"extra": "ignore"}

    kube_context: str = ""
    kubeconfig_path: str | None = None


# =============================================================================
# Root
# =============================================================================


class PlatformConfig(BaseModel):
    """Root of the platform configuration file.

    ``provider`` is an open string resolved through the provider registry.
    Unknown top-level keys are preserved in ``extra``.
    """

    model_config = {"extra": "allow"}

    project_name: Annotated[str, Field(pattern=PROJECT_NAME_PATTERN)]
    provider: Annotated[str, Field(min_length=1)]
    domain: str | None = None
    dns: DNSConfig | None = None
    git_repository: GitRepositoryConfig | None = None
    azure: AzureConfig | None = None
    existing: ExistingClusterConfig | None = None

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip().rstrip(".").lower() or None

    @model_validator(mode="after")
    def dns_needs_domain(self) -> PlatformConfig:
        if self.dns is not None and not self.domain:
            raise ValueError("domain is required when dns is configured")
        return self

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

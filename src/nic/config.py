"""Runtime configuration with validation.

Tuning knobs for waits, teardown sweeps and the helm wrapper are read from
the environment and validated at construction time, independently of the
platform configuration file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when runtime configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_POLL_INTERVAL_SECONDS = 10.0
MIN_POLL_INTERVAL_SECONDS = 0.1
MAX_POLL_INTERVAL_SECONDS = 300.0

DEFAULT_CLUSTER_READY_TIMEOUT_SECONDS = 1800.0
MAX_CLUSTER_READY_TIMEOUT_SECONDS = 7200.0

# Orphan sweep: passes of tag-filtered discovery after the primary destroy sequence
DEFAULT_ORPHAN_SWEEP_PASSES = 3
MIN_ORPHAN_SWEEP_PASSES = 1
MAX_ORPHAN_SWEEP_PASSES = 10
DEFAULT_ORPHAN_SWEEP_INTERVAL_SECONDS = 30.0

DEFAULT_HELM_TIMEOUT_SECONDS = 600
DEFAULT_HELM_BINARY = "helm"

# Covers Argo CD syncing the gateway after the root application is applied
DEFAULT_LOAD_BALANCER_TIMEOUT_SECONDS = 600.0


@dataclass(frozen=True)
class RuntimeConfig:
    """Engine tuning loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-run.
    """

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    cluster_ready_timeout_seconds: float = DEFAULT_CLUSTER_READY_TIMEOUT_SECONDS
    orphan_sweep_passes: int = DEFAULT_ORPHAN_SWEEP_PASSES
    orphan_sweep_interval_seconds: float = DEFAULT_ORPHAN_SWEEP_INTERVAL_SECONDS
    helm_timeout_seconds: int = DEFAULT_HELM_TIMEOUT_SECONDS
    helm_binary: str = DEFAULT_HELM_BINARY
    load_balancer_timeout_seconds: float = DEFAULT_LOAD_BALANCER_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not (
            MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"NIC_POLL_INTERVAL_SECONDS must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS}"
            )

        if not (0 < self.cluster_ready_timeout_seconds <= MAX_CLUSTER_READY_TIMEOUT_SECONDS):
            errors.append(
                "NIC_CLUSTER_READY_TIMEOUT_SECONDS must be positive and at most "
                f"{MAX_CLUSTER_READY_TIMEOUT_SECONDS}"
            )

        if not (MIN_ORPHAN_SWEEP_PASSES <= self.orphan_sweep_passes <= MAX_ORPHAN_SWEEP_PASSES):
            errors.append(
                f"NIC_ORPHAN_SWEEP_PASSES must be between {MIN_ORPHAN_SWEEP_PASSES} "
                f"and {MAX_ORPHAN_SWEEP_PASSES}"
            )

        if self.orphan_sweep_interval_seconds < 0:
            errors.append("NIC_ORPHAN_SWEEP_INTERVAL_SECONDS cannot be negative")

        if self.helm_timeout_seconds < 1:
            errors.append("NIC_HELM_TIMEOUT_SECONDS must be at least 1")

        if not self.helm_binary:
            errors.append("NIC_HELM_BINARY cannot be empty")

        if self.load_balancer_timeout_seconds <= 0:
            errors.append("NIC_LOAD_BALANCER_TIMEOUT_SECONDS must be positive")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> RuntimeConfig:
        """Load runtime configuration from environment variables.

        Environment Variables:
            NIC_POLL_INTERVAL_SECONDS: Readiness poll interval (default: 10)
            NIC_CLUSTER_READY_TIMEOUT_SECONDS: Control plane wait (default: 1800)
            NIC_ORPHAN_SWEEP_PASSES: Post-destroy sweep passes (default: 3)
            NIC_ORPHAN_SWEEP_INTERVAL_SECONDS: Delay between sweep passes (default: 30)
            NIC_HELM_TIMEOUT_SECONDS: Timeout for one helm invocation (default: 600)
            NIC_HELM_BINARY: Helm executable name or path (default: helm)
            NIC_LOAD_BALANCER_TIMEOUT_SECONDS: Gateway endpoint wait once the root
                application is applied (default: 600)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        return cls(
            poll_interval_seconds=get_float(
                "NIC_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS
            ),
            cluster_ready_timeout_seconds=get_float(
                "NIC_CLUSTER_READY_TIMEOUT_SECONDS", DEFAULT_CLUSTER_READY_TIMEOUT_SECONDS
            ),
            orphan_sweep_passes=get_int("NIC_ORPHAN_SWEEP_PASSES", DEFAULT_ORPHAN_SWEEP_PASSES),
            orphan_sweep_interval_seconds=get_float(
                "NIC_ORPHAN_SWEEP_INTERVAL_SECONDS", DEFAULT_ORPHAN_SWEEP_INTERVAL_SECONDS
            ),
            helm_timeout_seconds=get_int("NIC_HELM_TIMEOUT_SECONDS", DEFAULT_HELM_TIMEOUT_SECONDS),
            helm_binary=os.environ.get("NIC_HELM_BINARY", DEFAULT_HELM_BINARY),
            load_balancer_timeout_seconds=get_float(
                "NIC_LOAD_BALANCER_TIMEOUT_SECONDS", DEFAULT_LOAD_BALANCER_TIMEOUT_SECONDS
            ),
        )

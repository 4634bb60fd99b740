"""Configuration management with validation.

Invalid configurations are rejected at load time with a single error listing
every problem, so the operator never starts half-configured.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import InvalidConfigError


class ConfigurationError(InvalidConfigError):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_RECONCILE_INTERVAL_SECONDS = 300
MIN_RECONCILE_INTERVAL_SECONDS = 30
MAX_RECONCILE_INTERVAL_SECONDS = 3600

DEFAULT_PASS_TIMEOUT_SECONDS = 120
MIN_PASS_TIMEOUT_SECONDS = 5

# botocore retry policy for every AWS client
AWS_MAX_ATTEMPTS = 5

# Cluster object files are small; anything larger is rejected unread
MAX_CLUSTER_FILE_SIZE_BYTES = 256 * 1024

# Input validation patterns
VALID_INSTALLATION_PATTERN = r"^[a-z][a-z0-9-]{0,62}$"
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov)?-[a-z]+-\d$"
VALID_ROLE_ARN_PATTERN = r"^arn:aws[a-z-]*:iam::\d{12}:role/[\w+=,.@/-]+$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    installation: str
    region: str

    # Paths
    clusters_dir: Path = field(default_factory=lambda: Path("/clusters"))

    # Accounts. None means the operator's own identity is used.
    control_plane_role_arn: str | None = None
    default_tenant_role_arn: str | None = None

    # Resource toggles
    route53_enabled: bool = True
    ebs_volume_deletion_enabled: bool = True

    # Timing
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS
    pass_timeout_seconds: int = DEFAULT_PASS_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.installation:
            errors.append("INSTALLATION_NAME is required")
        elif not re.match(VALID_INSTALLATION_PATTERN, self.installation):
            errors.append(
                f"INSTALLATION_NAME must match pattern {VALID_INSTALLATION_PATTERN}: "
                f"{self.installation}"
            )

        if not self.region:
            errors.append("AWS_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"AWS_REGION must be a valid AWS region: {self.region}")

        for env_name, arn in (
            ("CONTROL_PLANE_ROLE_ARN", self.control_plane_role_arn),
            ("DEFAULT_TENANT_ROLE_ARN", self.default_tenant_role_arn),
        ):
            if arn and not re.match(VALID_ROLE_ARN_PATTERN, arn):
                errors.append(f"{env_name} must be an IAM role ARN: {arn}")

        if self.route53_enabled and not self.default_tenant_role_arn:
            errors.append("DEFAULT_TENANT_ROLE_ARN is required when ROUTE53_ENABLED is true")

        # Timing validation
        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        if self.pass_timeout_seconds < MIN_PASS_TIMEOUT_SECONDS:
            errors.append(f"PASS_TIMEOUT must be at least {MIN_PASS_TIMEOUT_SECONDS} seconds")
        elif self.pass_timeout_seconds > self.reconcile_interval_seconds:
            errors.append("PASS_TIMEOUT cannot exceed RECONCILE_INTERVAL")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            INSTALLATION_NAME: Name of the control plane installation
            AWS_REGION: Region of the control plane and tenant clusters
            CLUSTERS_DIR: Directory of cluster object YAML files (default: /clusters)
            CONTROL_PLANE_ROLE_ARN: Role assumed for the control plane account
            DEFAULT_TENANT_ROLE_ARN: Role of the default tenant account that
                owns the intermediate DNS zone
            ROUTE53_ENABLED: Reconcile DNS delegation (default: true)
            EBS_VOLUME_DELETION_ENABLED: Delete tenant volumes on cluster
                deletion (default: true)
            RECONCILE_INTERVAL: Seconds between passes (default: 300)
            PASS_TIMEOUT: Deadline of a single pass in seconds (default: 120)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            installation=os.environ.get("INSTALLATION_NAME", ""),
            region=os.environ.get("AWS_REGION", ""),
            clusters_dir=Path(os.environ.get("CLUSTERS_DIR", "/clusters")),
            control_plane_role_arn=os.environ.get("CONTROL_PLANE_ROLE_ARN") or None,
            default_tenant_role_arn=os.environ.get("DEFAULT_TENANT_ROLE_ARN") or None,
            route53_enabled=get_bool("ROUTE53_ENABLED", True),
            ebs_volume_deletion_enabled=get_bool("EBS_VOLUME_DELETION_ENABLED", True),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
            pass_timeout_seconds=get_int("PASS_TIMEOUT", DEFAULT_PASS_TIMEOUT_SECONDS),
        )

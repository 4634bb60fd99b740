"""Credential resolution for the accounts a pass talks to.

The operator authenticates with its workload identity (IRSA, instance
profile) and reaches every account by assuming a role. Static access keys
are never accepted.

ACCOUNTS:
- control plane: hosts the installation; optional role, own identity otherwise
- tenant cluster: per cluster, role declared on the cluster object
- default tenant: owns the shared intermediate DNS zone
"""

from __future__ import annotations

import logging
import os

from . import key
from .config import Config
from .errors import InvalidConfigError, NotFoundError
from .models import AWSConfig

logger = logging.getLogger(__name__)

# Environment variables that indicate long-lived credentials
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
)


class StaticCredentialsError(InvalidConfigError):
    """Raised when static AWS credentials are found in the environment.

    Fatal: the operator must not start.
    """

    pass


def enforce_no_static_credentials() -> None:
    """Refuse to run with access keys in the environment.

    Raises:
        StaticCredentialsError: If any credential environment variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Static credentials detected",
                extra={"security_event": "credential_detected", "env_var": env_var},
            )
            raise StaticCredentialsError(
                f"{env_var} is set. The operator only runs with a workload identity; "
                f"remove static credentials from its environment."
            )

    logger.info("No static credentials in environment", extra={"security_event": "verified"})


class CredentialResolver:
    """Resolves which role to assume for each account of a pass."""

    def __init__(self, config: Config) -> None:
        self._config = config

    @property
    def region(self) -> str:
        return self._config.region

    def control_plane_role_arn(self) -> str | None:
        return self._config.control_plane_role_arn

    def has_default_role(self) -> bool:
        return bool(self._config.default_tenant_role_arn)

    def default_role_arn(self) -> str:
        """Role of the default tenant account.

        Raises:
            InvalidConfigError: If no default tenant role is configured.
        """
        if not self._config.default_tenant_role_arn:
            raise InvalidConfigError("default tenant role ARN is not configured")
        return self._config.default_tenant_role_arn

    def tenant_role_arn(self, cluster: AWSConfig) -> str:
        """Role of the cluster's own account.

        Raises:
            NotFoundError: If the cluster object does not reference one yet.
        """
        arn = key.tenant_role_arn(cluster)
        if not arn:
            raise NotFoundError(f"cluster {key.cluster_id(cluster)!r} has no account role ARN")
        return arn

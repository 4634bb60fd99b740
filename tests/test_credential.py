"""Tests for credential handling."""

import os
from unittest.mock import patch

import pytest

from aws_operator.credential import (
    FORBIDDEN_CREDENTIAL_ENV_VARS,
    CredentialResolver,
    StaticCredentialsError,
    enforce_no_static_credentials,
)
from aws_operator.errors import InvalidConfigError, is_cancel_pass

from aws_mock.fixtures import DEFAULT_TENANT_ROLE_ARN, TENANT_ROLE_ARN, make_cluster, make_config


class TestEnforceNoStaticCredentials:
    """Tests for the static credential check."""

    def test_clean_environment(self) -> None:
        """Test that a workload identity environment passes."""
        with patch.dict(os.environ, {"AWS_ROLE_ARN": "arn:aws:iam::111111111111:role/op"}, clear=True):
            enforce_no_static_credentials()

    @pytest.mark.parametrize("env_var", FORBIDDEN_CREDENTIAL_ENV_VARS)
    def test_static_credentials_rejected(self, env_var: str) -> None:
        """Test that any access key variable is fatal."""
        with patch.dict(os.environ, {env_var: "AKIAEXAMPLE"}, clear=True):
            with pytest.raises(StaticCredentialsError) as exc_info:
                enforce_no_static_credentials()

        assert env_var in str(exc_info.value)

    def test_empty_value_ignored(self) -> None:
        """Test that an empty variable does not count as a credential."""
        with patch.dict(os.environ, {"AWS_ACCESS_KEY_ID": ""}, clear=True):
            enforce_no_static_credentials()


class TestCredentialResolver:
    """Tests for role resolution."""

    def test_roles(self) -> None:
        """Test resolution of all three accounts."""
        resolver = CredentialResolver(make_config())

        assert resolver.region == "eu-central-1"
        assert resolver.control_plane_role_arn() is None
        assert resolver.has_default_role() is True
        assert resolver.default_role_arn() == DEFAULT_TENANT_ROLE_ARN
        assert resolver.tenant_role_arn(make_cluster()) == TENANT_ROLE_ARN

    def test_missing_tenant_role_cancels_pass(self) -> None:
        """Test that a cluster without a role is not ready yet."""
        resolver = CredentialResolver(make_config())

        with pytest.raises(Exception) as exc_info:
            resolver.tenant_role_arn(make_cluster(role_arn=None))

        assert is_cancel_pass(exc_info.value)

    def test_missing_default_role(self) -> None:
        """Test that asking for an unconfigured default role is a config error."""
        resolver = CredentialResolver(make_config(route53_enabled=False, default_tenant_role_arn=None))

        assert resolver.has_default_role() is False
        with pytest.raises(InvalidConfigError):
            resolver.default_role_arn()

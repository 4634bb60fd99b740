"""Tests for account resolution."""

from __future__ import annotations

import pytest

from aws_operator import context as keys
from aws_operator.awsclient import AWSClientResource
from aws_operator.context import PassContext
from aws_operator.credential import CredentialResolver
from aws_operator.errors import NotFoundError

from aws_mock import MockAWSContext
from aws_mock.fixtures import (
    CONTROL_PLANE_ACCOUNT_ID,
    DEFAULT_TENANT_ACCOUNT_ID,
    TENANT_ACCOUNT_ID,
    make_cluster,
    make_config,
)


class TestAWSClientResource:
    """Tests for AWSClientResource."""

    @pytest.mark.asyncio
    async def test_resolves_all_accounts(self, aws: MockAWSContext) -> None:
        """Test that clients and account IDs land in the context."""
        ctx = PassContext("c1")
        resource = AWSClientResource(CredentialResolver(make_config()))

        with ctx.producing(resource.name):
            await resource.ensure_created(ctx, make_cluster())

        assert ctx.require(keys.KEY_CONTROL_PLANE_ACCOUNT_ID) == CONTROL_PLANE_ACCOUNT_ID
        assert ctx.require(keys.KEY_TENANT_CLUSTER_ACCOUNT_ID) == TENANT_ACCOUNT_ID
        assert ctx.require(keys.KEY_DEFAULT_TENANT_ACCOUNT_ID) == DEFAULT_TENANT_ACCOUNT_ID
        for key in (
            keys.KEY_CONTROL_PLANE_CLIENTS,
            keys.KEY_TENANT_CLUSTER_CLIENTS,
            keys.KEY_DEFAULT_TENANT_CLIENTS,
        ):
            assert ctx.owner(key) == "awsclient"

    @pytest.mark.asyncio
    async def test_tenant_clients_use_cluster_region(self, aws: MockAWSContext) -> None:
        """Test that a cluster in another region gets clients for that region."""
        ctx = PassContext("c1")
        resource = AWSClientResource(CredentialResolver(make_config()))

        await resource.ensure_created(ctx, make_cluster(region="us-west-2"))

        assert ctx.require(keys.KEY_TENANT_CLUSTER_CLIENTS).region == "us-west-2"
        assert ctx.require(keys.KEY_CONTROL_PLANE_CLIENTS).region == "eu-central-1"
        assert ctx.require(keys.KEY_DEFAULT_TENANT_CLIENTS).region == "eu-central-1"

    @pytest.mark.asyncio
    async def test_delete_path_resolves_too(self, aws: MockAWSContext) -> None:
        """Test that teardown gets the same handles."""
        ctx = PassContext("c1")
        resource = AWSClientResource(CredentialResolver(make_config()))

        await resource.ensure_deleted(ctx, make_cluster(deleted=True))

        assert ctx.require(keys.KEY_TENANT_CLUSTER_ACCOUNT_ID) == TENANT_ACCOUNT_ID

    @pytest.mark.asyncio
    async def test_no_default_role_skips_default_account(self, aws: MockAWSContext) -> None:
        """Test that the default tenant account is optional."""
        ctx = PassContext("c1")
        config = make_config(route53_enabled=False, default_tenant_role_arn=None)
        resource = AWSClientResource(CredentialResolver(config))

        await resource.ensure_created(ctx, make_cluster())

        assert keys.KEY_DEFAULT_TENANT_CLIENTS not in ctx
        assert keys.KEY_TENANT_CLUSTER_CLIENTS in ctx

    @pytest.mark.asyncio
    async def test_missing_tenant_role_is_not_found(self, aws: MockAWSContext) -> None:
        """Test that a cluster without an account role cancels the pass."""
        ctx = PassContext("c1")
        resource = AWSClientResource(CredentialResolver(make_config()))

        with pytest.raises(NotFoundError):
            await resource.ensure_created(ctx, make_cluster(role_arn=None))

    @pytest.mark.asyncio
    async def test_idempotent_within_pass(self, aws: MockAWSContext) -> None:
        """Test that resolved accounts are not resolved again."""
        ctx = PassContext("c1")
        resource = AWSClientResource(CredentialResolver(make_config()))

        await resource.ensure_created(ctx, make_cluster())
        calls = len(aws.state.all_calls())
        await resource.ensure_created(ctx, make_cluster())

        assert len(aws.state.all_calls()) == calls

    @pytest.mark.asyncio
    async def test_custom_client_factory(self) -> None:
        """Test that the client factory is injectable."""
        requested: list[tuple[str, str | None]] = []

        class FakeSTS:
            async def get_caller_identity(self) -> dict[str, str]:
                return {"Account": "444444444444"}

        class FakeClients:
            sts = FakeSTS()

        async def factory(region: str, role_arn: str | None) -> FakeClients:
            requested.append((region, role_arn))
            return FakeClients()

        config = make_config(route53_enabled=False, default_tenant_role_arn=None)
        resource = AWSClientResource(CredentialResolver(config), client_factory=factory)
        ctx = PassContext("c1")

        await resource.ensure_created(ctx, make_cluster())

        assert requested == [
            ("eu-central-1", None),
            ("eu-central-1", make_cluster().spec.aws.account_role_arn),
        ]
        assert ctx.require(keys.KEY_TENANT_CLUSTER_ACCOUNT_ID) == "444444444444"

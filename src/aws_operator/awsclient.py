"""Account resolution resource.

Runs first in every pass. Builds the per-account client handles and
resolves the account IDs every later network-calling resource needs, and
puts both into the working context.

Tenant cluster clients use the region of the cluster object; control plane
and default tenant clients use the operator's region.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from . import context as keys
from . import key
from .clients import AWSClients, new_clients
from .context import PassContext
from .credential import CredentialResolver
from .models import AWSConfig
from .resource import Resource

NAME = "awsclient"

ClientFactory = Callable[[str, str | None], Awaitable[AWSClients]]


class AWSClientResource(Resource):
    """Resolves client handles and account IDs for a pass."""

    def __init__(
        self,
        resolver: CredentialResolver,
        client_factory: ClientFactory = new_clients,
    ) -> None:
        self._resolver = resolver
        self._new_clients = client_factory

    @property
    def name(self) -> str:
        return NAME

    async def ensure_created(self, ctx: PassContext, cluster: AWSConfig) -> None:
        await self._resolve(ctx, cluster)

    async def ensure_deleted(self, ctx: PassContext, cluster: AWSConfig) -> None:
        # Teardown needs the same handles as build-up
        await self._resolve(ctx, cluster)

    async def _resolve(self, ctx: PassContext, cluster: AWSConfig) -> None:
        region = self._resolver.region

        await self._ensure_account(
            ctx,
            keys.KEY_CONTROL_PLANE_CLIENTS,
            keys.KEY_CONTROL_PLANE_ACCOUNT_ID,
            region,
            self._resolver.control_plane_role_arn(),
        )
        await self._ensure_account(
            ctx,
            keys.KEY_TENANT_CLUSTER_CLIENTS,
            keys.KEY_TENANT_CLUSTER_ACCOUNT_ID,
            key.region(cluster),
            self._resolver.tenant_role_arn(cluster),
        )
        if self._resolver.has_default_role():
            await self._ensure_account(
                ctx,
                keys.KEY_DEFAULT_TENANT_CLIENTS,
                keys.KEY_DEFAULT_TENANT_ACCOUNT_ID,
                region,
                self._resolver.default_role_arn(),
            )

    async def _ensure_account(
        self,
        ctx: PassContext,
        clients_key: str,
        account_key: str,
        region: str,
        role_arn: str | None,
    ) -> None:
        if clients_key in ctx and account_key in ctx:
            return

        self._log(ctx, "resolving account", clients_key=clients_key, role_arn=role_arn)

        clients = await self._new_clients(region, role_arn)
        identity = await clients.sts.get_caller_identity()

        ctx.set(clients_key, clients)
        ctx.set(account_key, identity["Account"])

        self._log(ctx, "resolved account", clients_key=clients_key, account_id=identity["Account"])

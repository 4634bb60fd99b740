"""Control plane initializer CloudFormation stack.

The stack lives in the control plane account and holds what must exist
before the tenant cluster's own stacks can be created, currently the IAM
role the tenant account assumes to accept VPC peering.

LIFECYCLE:
- create: stack is created with termination protection enabled; protection
  is re-enabled if someone turned it off
- delete: protection is disabled, then deletion is requested; a stack that
  is already gone or busy cancels the resource for this pass

Deletion is asynchronous on the AWS side. The delete pass only requests it;
later passes see the stack as absent once CloudFormation finishes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from . import context as keys
from . import key
from .clients import AWSClients
from .context import PassContext
from .errors import InvalidConfigError, is_not_found, is_operation_in_progress
from .models import AWSConfig
from .resource import CRUDResource

NAME = "cpi"

CAPABILITY_NAMED_IAM = "CAPABILITY_NAMED_IAM"

TAG_INSTALLATION = "aws-operator/installation"
TAG_CLUSTER = "aws-operator/cluster"

IN_PROGRESS_SUFFIX = "_IN_PROGRESS"

TEMPLATE_FORMAT_VERSION = "2010-09-09"


@dataclass(frozen=True)
class StackState:
    """Stack as described by CloudFormation."""

    name: str
    stack_id: str
    status: str
    termination_protection: bool

    @property
    def in_progress(self) -> bool:
        return self.status.endswith(IN_PROGRESS_SUFFIX)


@dataclass(frozen=True)
class StackSpec:
    """Stack the cluster object asks for."""

    name: str
    template_body: str
    tags: dict[str, str] = field(default_factory=dict)
    termination_protection: bool = True


def render_template(cluster: AWSConfig, tenant_account_id: str) -> str:
    """Render the initializer template as deterministic JSON."""
    template = {
        "AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION,
        "Description": f"Control plane initializer for tenant cluster {key.cluster_id(cluster)}",
        "Resources": {
            "PeerAccessRole": {
                "Type": "AWS::IAM::Role",
                "Properties": {
                    "RoleName": key.peer_access_role_name(cluster),
                    "AssumeRolePolicyDocument": {
                        "Version": "2012-10-17",
                        "Statement": [
                            {
                                "Effect": "Allow",
                                "Principal": {"AWS": f"arn:aws:iam::{tenant_account_id}:root"},
                                "Action": "sts:AssumeRole",
                            }
                        ],
                    },
                    "Policies": [
                        {
                            "PolicyName": f"{key.cluster_id(cluster)}-vpc-peer-access",
                            "PolicyDocument": {
                                "Version": "2012-10-17",
                                "Statement": [
                                    {
                                        "Effect": "Allow",
                                        "Action": [
                                            "ec2:AcceptVpcPeeringConnection",
                                            "ec2:DescribeVpcPeeringConnections",
                                        ],
                                        "Resource": "*",
                                    }
                                ],
                            },
                        }
                    ],
                },
            }
        },
        "Outputs": {
            "PeerAccessRoleARN": {"Value": {"Fn::GetAtt": ["PeerAccessRole", "Arn"]}},
        },
    }
    return json.dumps(template, sort_keys=True, separators=(",", ":"))


class CPIResource(CRUDResource):
    """Manages the control plane initializer stack of a tenant cluster."""

    def __init__(self, installation: str) -> None:
        if not installation:
            raise InvalidConfigError("installation name must not be empty")
        self._installation = installation

    @property
    def name(self) -> str:
        return NAME

    async def get_current_state(self, ctx: PassContext, cluster: AWSConfig) -> StackState | None:
        clients: AWSClients = ctx.require(keys.KEY_CONTROL_PLANE_CLIENTS)
        stack_name = key.main_host_pre_stack_name(cluster)

        self._log(ctx, "finding the tenant cluster's control plane initializer CF stack")
        try:
            stack = await clients.cloudformation.describe_stack(stack_name)
        except Exception as e:
            if not is_not_found(e):
                raise
            self._log(ctx, "did not find the tenant cluster's control plane initializer CF stack")
            return None

        state = StackState(
            name=stack_name,
            stack_id=stack["StackId"],
            status=stack["StackStatus"],
            termination_protection=bool(stack.get("EnableTerminationProtection", False)),
        )

        self._log(
            ctx,
            "found the tenant cluster's control plane initializer CF stack",
            status=state.status,
        )
        return state

    async def get_desired_state(self, ctx: PassContext, cluster: AWSConfig) -> StackSpec:
        tenant_account_id = ctx.require(keys.KEY_TENANT_CLUSTER_ACCOUNT_ID)

        return StackSpec(
            name=key.main_host_pre_stack_name(cluster),
            template_body=render_template(cluster, tenant_account_id),
            tags={
                TAG_INSTALLATION: self._installation,
                TAG_CLUSTER: key.cluster_id(cluster),
            },
        )

    def new_create_change(
        self,
        ctx: PassContext,
        cluster: AWSConfig,
        current: StackState | None,
        desired: StackSpec,
    ) -> StackSpec | None:
        if current is not None:
            return None
        return desired

    def new_update_change(
        self,
        ctx: PassContext,
        cluster: AWSConfig,
        current: StackState | None,
        desired: StackSpec,
    ) -> bool | None:
        if current is None or current.in_progress:
            return None
        if current.termination_protection == desired.termination_protection:
            return None
        return desired.termination_protection

    def new_delete_change(
        self, ctx: PassContext, cluster: AWSConfig, current: StackState | None
    ) -> str:
        """Name the stack to delete.

        The name derives from the cluster alone, so the live state may be
        None; absence is reported later by the protection update.
        """
        return key.main_host_pre_stack_name(cluster)

    async def apply_create_change(
        self, ctx: PassContext, cluster: AWSConfig, change: StackSpec
    ) -> None:
        clients: AWSClients = ctx.require(keys.KEY_CONTROL_PLANE_CLIENTS)

        self._log(ctx, "requesting the creation of the tenant cluster's control plane initializer CF stack")
        stack_id = await clients.cloudformation.create_stack(
            stack_name=change.name,
            template_body=change.template_body,
            tags=change.tags,
            capabilities=[CAPABILITY_NAMED_IAM],
            termination_protection=change.termination_protection,
        )
        self._log(
            ctx,
            "requested the creation of the tenant cluster's control plane initializer CF stack",
            stack_id=stack_id,
        )

    async def apply_update_change(self, ctx: PassContext, cluster: AWSConfig, change: bool) -> None:
        clients: AWSClients = ctx.require(keys.KEY_CONTROL_PLANE_CLIENTS)

        self._log(ctx, "enabling the termination protection of the tenant cluster's control plane initializer CF stack")
        await clients.cloudformation.update_termination_protection(
            key.main_host_pre_stack_name(cluster), change
        )
        self._log(ctx, "enabled the termination protection of the tenant cluster's control plane initializer CF stack")

    async def ensure_deleted(self, ctx: PassContext, cluster: AWSConfig) -> None:
        """Disable protection and request deletion.

        The stack is not described first; the protection update reports a
        missing or busy stack, which cancels the resource for this pass.
        """
        change = self.new_delete_change(ctx, cluster, None)
        await self.apply_delete_change(ctx, cluster, change)

    async def apply_delete_change(self, ctx: PassContext, cluster: AWSConfig, change: str) -> None:
        clients: AWSClients = ctx.require(keys.KEY_CONTROL_PLANE_CLIENTS)
        stack_name = change

        self._log(ctx, "disabling the termination protection of the tenant cluster's control plane initializer CF stack")
        try:
            await clients.cloudformation.update_termination_protection(stack_name, False)
        except Exception as e:
            if is_operation_in_progress(e):
                self._log(ctx, "the tenant cluster's control plane initializer CF stack is being updated or deleted")
                self._cancel_resource(ctx, str(e))
                return
            if is_not_found(e):
                self._log(ctx, "the tenant cluster's control plane initializer CF stack does not exist")
                self._cancel_resource(ctx, str(e))
                return
            raise
        self._log(ctx, "disabled the termination protection of the tenant cluster's control plane initializer CF stack")

        self._log(ctx, "requesting the deletion of the tenant cluster's control plane initializer CF stack")
        await clients.cloudformation.delete_stack(stack_name)
        self._log(ctx, "requested the deletion of the tenant cluster's control plane initializer CF stack")

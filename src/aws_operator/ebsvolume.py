"""EBS volumes left behind by a tenant cluster.

Persistent volumes are provisioned by the tenant cluster's own storage
driver and tagged as owned by the cluster. The operator never creates them;
on cluster deletion it removes them so the tenant account is not billed for
orphaned storage.
"""

from __future__ import annotations

from dataclasses import dataclass

from . import context as keys
from . import key
from .clients import AWSClients
from .context import PassContext
from .errors import is_not_found, is_operation_in_progress
from .models import AWSConfig
from .resource import CRUDResource

NAME = "ebsvolume"

# Tag value the storage driver sets on volumes it owns
OWNED_TAG_VALUE = "owned"

VOLUME_STATE_IN_USE = "in-use"
VOLUME_STATES_GONE = frozenset({"deleting", "deleted"})


@dataclass(frozen=True)
class Volume:
    volume_id: str
    state: str
    instance_ids: tuple[str, ...] = ()

    @property
    def attached(self) -> bool:
        return bool(self.instance_ids) or self.state == VOLUME_STATE_IN_USE


class EBSVolumeResource(CRUDResource):
    """Deletes the cluster's owned volumes when the cluster is deleted."""

    def __init__(self, deletion_enabled: bool = True) -> None:
        self._deletion_enabled = deletion_enabled

    @property
    def name(self) -> str:
        return NAME

    async def ensure_deleted(self, ctx: PassContext, cluster: AWSConfig) -> None:
        if not self._deletion_enabled:
            self._cancel_resource(ctx, "ebs volume deletion disabled")
            return
        await super().ensure_deleted(ctx, cluster)

    async def get_current_state(self, ctx: PassContext, cluster: AWSConfig) -> list[Volume]:
        clients: AWSClients = ctx.require(keys.KEY_TENANT_CLUSTER_CLIENTS)
        tag_key = key.cluster_tag_key(cluster)

        self._log(ctx, "finding the tenant cluster's ebs volumes", tag=tag_key)
        described = await clients.ec2.describe_volumes(
            [{"Name": f"tag:{tag_key}", "Values": [OWNED_TAG_VALUE]}]
        )

        volumes = [
            Volume(
                volume_id=v["VolumeId"],
                state=v.get("State", ""),
                instance_ids=tuple(a["InstanceId"] for a in v.get("Attachments", [])),
            )
            for v in described
            if v.get("State", "") not in VOLUME_STATES_GONE
        ]

        self._log(ctx, "found the tenant cluster's ebs volumes", count=len(volumes))
        return volumes

    async def get_desired_state(self, ctx: PassContext, cluster: AWSConfig) -> list[Volume]:
        return []

    def new_create_change(
        self, ctx: PassContext, cluster: AWSConfig, current: list[Volume], desired: list[Volume]
    ) -> None:
        # Volumes are never created by the operator
        return None

    async def apply_create_change(self, ctx: PassContext, cluster: AWSConfig, change: object) -> None:
        return None

    def new_delete_change(
        self, ctx: PassContext, cluster: AWSConfig, current: list[Volume]
    ) -> list[Volume] | None:
        return current or None

    async def apply_delete_change(
        self, ctx: PassContext, cluster: AWSConfig, change: list[Volume]
    ) -> None:
        clients: AWSClients = ctx.require(keys.KEY_TENANT_CLUSTER_CLIENTS)

        for volume in change:
            if not volume.attached:
                continue
            self._log(ctx, "detaching ebs volume", volume_id=volume.volume_id)
            try:
                await clients.ec2.detach_volume(volume.volume_id, force=True)
            except Exception as e:
                if not (is_not_found(e) or is_operation_in_progress(e)):
                    raise
                self._log(ctx, "ebs volume already detached or detaching", volume_id=volume.volume_id)
                continue
            self._log(ctx, "detached ebs volume", volume_id=volume.volume_id)

        for volume in change:
            self._log(ctx, "deleting ebs volume", volume_id=volume.volume_id)
            try:
                await clients.ec2.delete_volume(volume.volume_id)
            except Exception as e:
                if is_not_found(e):
                    self._log(ctx, "ebs volume already deleted", volume_id=volume.volume_id)
                    continue
                if is_operation_in_progress(e):
                    # Still detaching; the next delete pass picks it up
                    self._log(ctx, "ebs volume still in use", volume_id=volume.volume_id)
                    continue
                raise
            self._log(ctx, "deleted ebs volume", volume_id=volume.volume_id)

"""DNS delegation between the intermediate zone and a cluster's final zone.

Two independently owned hosted zones are involved:

    k8s.example.io          intermediate zone, default tenant account, shared
    c1.k8s.example.io       final zone, tenant cluster account, per cluster

This resource keeps an NS record for the final zone inside the intermediate
zone, pointing at the final zone's own name servers:

    k8s.example.io (default tenant account)
    └── NS c1.k8s.example.io -> ns-1.example.com, ns-2.example.com

Both zones are created elsewhere. Until both exist the resource cancels
itself for the pass; it never creates or deletes zones.

STATES:
- current: intermediate zone ID and the delegation record found in it
- desired: the final zone's NS values with the fixed delegation TTL

The delegation TTL is policy, not derived from the final zone's own NS
record: the delegation is a separate record owned by another zone. On
deletion the TTL and values are read back from the live delegation record,
which is the only well-formed removal request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from . import context as keys
from . import key
from .clients import AWSClients, Route53Client
from .context import PassContext
from .errors import ExecutionError, InvalidConfigError, NotFoundError, is_not_found
from .models import AWSConfig
from .resource import CRUDResource

NAME = "bridgezone"

# TTL of the delegation record written into the intermediate zone
DELEGATION_TTL = 900

HOSTED_ZONE_ID_PREFIX = "/hostedzone/"
RECORD_TYPE_NS = "NS"


def normalize_name(name: str) -> str:
    """Strip the trailing root label separator Route 53 adds to names."""
    return name.rstrip(".").lower()


def normalize_zone_id(zone_id: str) -> str:
    return zone_id.removeprefix(HOSTED_ZONE_ID_PREFIX)


class ChangeAction(str, Enum):
    UPSERT = "UPSERT"
    DELETE = "DELETE"


@dataclass(frozen=True)
class NSRecord:
    """NS record set."""

    name: str
    ttl: int
    values: tuple[str, ...]

    def matches(self, other: NSRecord) -> bool:
        """Compare on the managed dimensions: name, TTL and name servers."""
        return (
            normalize_name(self.name) == normalize_name(other.name)
            and self.ttl == other.ttl
            and sorted(normalize_name(v) for v in self.values)
            == sorted(normalize_name(v) for v in other.values)
        )

    def to_aws(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Type": RECORD_TYPE_NS,
            "TTL": self.ttl,
            "ResourceRecords": [{"Value": v} for v in self.values],
        }


@dataclass(frozen=True)
class DelegationState:
    """Delegation as found in the intermediate zone."""

    intermediate_zone_id: str
    record: NSRecord | None


@dataclass(frozen=True)
class DelegationChange:
    action: ChangeAction
    zone_id: str
    record: NSRecord

    def to_aws(self) -> dict[str, Any]:
        return {"Action": self.action.value, "ResourceRecordSet": self.record.to_aws()}


async def find_hosted_zone_id(route53: Route53Client, name: str) -> str:
    """Find the ID of the hosted zone with exactly the given name.

    Route 53 lists zones in lexicographic order starting at the queried
    name, so children of the zone come back too. For ``k8s.example.io``:

        k8s.example.io.          <- wanted
        0tz6i.k8s.example.io.
        9cvgo.k8s.example.io.

    Only an exact match (ignoring the trailing dot) is accepted.

    Raises:
        NotFoundError: If no zone has exactly this name.
    """
    wanted = normalize_name(name)
    for zone in await route53.list_hosted_zones_by_name(name):
        if normalize_name(zone["Name"]) == wanted:
            return normalize_zone_id(zone["Id"])

    raise NotFoundError(f"hosted zone {name!r} not found")


async def get_ns_record(route53: Route53Client, zone_id: str, name: str) -> NSRecord:
    """Read the NS record set of a name from a zone.

    Raises:
        NotFoundError: If the zone has no NS record set for the name.
        ExecutionError: If the listing is ambiguous.
    """
    record_sets = await route53.list_resource_record_sets(zone_id, name, RECORD_TYPE_NS)

    if not record_sets:
        raise NotFoundError(f"NS record {name!r} not found in hosted zone {zone_id!r}")
    if len(record_sets) != 1:
        raise ExecutionError(
            f"expected single NS record {name!r} in hosted zone {zone_id!r}, "
            f"found {len(record_sets)}"
        )

    record_set = record_sets[0]

    # The listing starts at the name; the next record is returned if it is absent
    if (
        normalize_name(record_set["Name"]) != normalize_name(name)
        or record_set.get("Type") != RECORD_TYPE_NS
    ):
        raise NotFoundError(f"NS record {name!r} not found in hosted zone {zone_id!r}")

    return NSRecord(
        name=normalize_name(record_set["Name"]),
        ttl=int(record_set["TTL"]),
        values=tuple(r["Value"] for r in record_set.get("ResourceRecords", [])),
    )


class BridgeZoneResource(CRUDResource):
    """Ensures the final zone is delegated from the intermediate zone."""

    def __init__(self, route53_enabled: bool = True, delegation_ttl: int = DELEGATION_TTL) -> None:
        if delegation_ttl <= 0:
            raise InvalidConfigError(f"delegation TTL must be positive, got {delegation_ttl}")

        self._route53_enabled = route53_enabled
        self._delegation_ttl = delegation_ttl

    @property
    def name(self) -> str:
        return NAME

    async def ensure_created(self, ctx: PassContext, cluster: AWSConfig) -> None:
        if not self._route53_enabled:
            self._cancel_resource(ctx, "route53 disabled")
            return
        await super().ensure_created(ctx, cluster)

    async def ensure_deleted(self, ctx: PassContext, cluster: AWSConfig) -> None:
        if not self._route53_enabled:
            self._cancel_resource(ctx, "route53 disabled")
            return
        await super().ensure_deleted(ctx, cluster)

    async def get_current_state(self, ctx: PassContext, cluster: AWSConfig) -> DelegationState:
        clients: AWSClients = ctx.require(keys.KEY_DEFAULT_TENANT_CLIENTS)
        intermediate_zone = key.intermediate_zone_name(cluster)
        final_zone = key.final_zone_name(cluster)

        self._log(ctx, "getting intermediate zone ID", zone=intermediate_zone)
        try:
            zone_id = await find_hosted_zone_id(clients.route53, intermediate_zone)
        except NotFoundError:
            self._log(ctx, "intermediate zone not found", zone=intermediate_zone)
            raise
        self._log(ctx, "got intermediate zone ID", zone=intermediate_zone, zone_id=zone_id)

        self._log(ctx, "getting final zone delegation from intermediate zone")
        try:
            record = await get_ns_record(clients.route53, zone_id, final_zone)
        except Exception as e:
            if not is_not_found(e):
                raise
            self._log(ctx, "final zone delegation not found in intermediate zone")
            return DelegationState(intermediate_zone_id=zone_id, record=None)
        self._log(ctx, "got final zone delegation from intermediate zone", ttl=record.ttl)

        return DelegationState(intermediate_zone_id=zone_id, record=record)

    async def get_desired_state(self, ctx: PassContext, cluster: AWSConfig) -> NSRecord:
        clients: AWSClients = ctx.require(keys.KEY_TENANT_CLUSTER_CLIENTS)
        final_zone = key.final_zone_name(cluster)

        self._log(ctx, "getting final zone ID", zone=final_zone)
        try:
            zone_id = await find_hosted_zone_id(clients.route53, final_zone)
        except NotFoundError:
            self._log(ctx, "final zone not found", zone=final_zone)
            raise
        self._log(ctx, "got final zone ID", zone=final_zone, zone_id=zone_id)

        self._log(ctx, "getting final zone name servers")
        try:
            own_record = await get_ns_record(clients.route53, zone_id, final_zone)
        except NotFoundError as e:
            # Both zones exist; a zone without its apex NS record is broken
            raise ExecutionError(
                f"final zone {final_zone!r} has no NS record set: {e}"
            ) from e
        self._log(ctx, "got final zone name servers", count=len(own_record.values))

        return NSRecord(name=final_zone, ttl=self._delegation_ttl, values=own_record.values)

    def new_create_change(
        self,
        ctx: PassContext,
        cluster: AWSConfig,
        current: DelegationState,
        desired: NSRecord,
    ) -> DelegationChange | None:
        if current.record is not None:
            return None
        return DelegationChange(ChangeAction.UPSERT, current.intermediate_zone_id, desired)

    def new_update_change(
        self,
        ctx: PassContext,
        cluster: AWSConfig,
        current: DelegationState,
        desired: NSRecord,
    ) -> DelegationChange | None:
        if current.record is None or current.record.matches(desired):
            return None
        return DelegationChange(ChangeAction.UPSERT, current.intermediate_zone_id, desired)

    def new_delete_change(
        self, ctx: PassContext, cluster: AWSConfig, current: DelegationState
    ) -> DelegationChange | None:
        if current.record is None:
            return None
        # Delete exactly what exists, with its own TTL
        return DelegationChange(ChangeAction.DELETE, current.intermediate_zone_id, current.record)

    async def apply_create_change(
        self, ctx: PassContext, cluster: AWSConfig, change: DelegationChange
    ) -> None:
        self._log(ctx, "ensuring final zone delegation from intermediate zone")
        await self._change(ctx, change)
        self._log(ctx, "ensured final zone delegation from intermediate zone")

    async def apply_update_change(
        self, ctx: PassContext, cluster: AWSConfig, change: DelegationChange
    ) -> None:
        self._log(ctx, "updating final zone delegation in intermediate zone")
        await self._change(ctx, change)
        self._log(ctx, "updated final zone delegation in intermediate zone")

    async def apply_delete_change(
        self, ctx: PassContext, cluster: AWSConfig, change: DelegationChange
    ) -> None:
        self._log(ctx, "ensuring deletion of final zone delegation from intermediate zone")
        await self._change(ctx, change)
        self._log(ctx, "ensured deletion of final zone delegation from intermediate zone")

    async def _change(self, ctx: PassContext, change: DelegationChange) -> None:
        clients: AWSClients = ctx.require(keys.KEY_DEFAULT_TENANT_CLIENTS)
        await clients.route53.change_resource_record_sets(change.zone_id, [change.to_aws()])

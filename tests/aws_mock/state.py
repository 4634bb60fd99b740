"""In-memory AWS account state.

Holds hosted zones, CloudFormation stacks and EBS volumes per account, a log
of every API call made against an account, and one-shot error injection.
"""

from __future__ import annotations

import copy
import itertools
import threading
from dataclasses import dataclass, field
from typing import Any

from botocore.exceptions import ClientError

DEFAULT_NAME_SERVERS = ("ns-1.example.com", "ns-2.example.com")
SOA_VALUE = "ns-1.example.com. hostmaster.example.com. 1 7200 900 1209600 86400"

_ids = itertools.count(1)

MUTATING_OPERATIONS = frozenset(
    {
        "change_resource_record_sets",
        "create_stack",
        "update_termination_protection",
        "delete_stack",
        "detach_volume",
        "delete_volume",
    }
)


def client_error(code: str, message: str, operation: str) -> ClientError:
    """Build a botocore ClientError the way the SDK raises it."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def fqdn(name: str) -> str:
    """Route 53 returns names with a trailing dot."""
    return name if name.endswith(".") else f"{name}."


def dns_sort_key(name: str) -> tuple[str, ...]:
    """Route 53 orders names by reversed labels."""
    return tuple(reversed(fqdn(name).rstrip(".").lower().split(".")))


@dataclass
class MockHostedZone:
    zone_id: str
    name: str
    # (fqdn, type) -> ResourceRecordSet
    records: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)

    @property
    def api_id(self) -> str:
        return f"/hostedzone/{self.zone_id}"


@dataclass
class MockStack:
    name: str
    stack_id: str
    status: str
    template_body: str
    termination_protection: bool
    tags: dict[str, str] = field(default_factory=dict)
    capabilities: list[str] = field(default_factory=list)


@dataclass
class MockVolume:
    volume_id: str
    state: str = "available"
    tags: dict[str, str] = field(default_factory=dict)
    instance_ids: list[str] = field(default_factory=list)


@dataclass
class MockCall:
    service: str
    operation: str
    params: dict[str, Any]


class MockAccount:
    """One AWS account.

    Thread-safe: calls arrive from the event loop's default executor.
    """

    def __init__(self, account_id: str, role_arn: str | None = None) -> None:
        self.account_id = account_id
        self.role_arn = role_arn
        self.hosted_zones: dict[str, MockHostedZone] = {}
        self.stacks: dict[str, MockStack] = {}
        self.volumes: dict[str, MockVolume] = {}
        self.calls: list[MockCall] = []
        self._errors: dict[str, list[ClientError]] = {}
        self._lock = threading.Lock()

    # -- seeding ---------------------------------------------------------

    def add_hosted_zone(
        self,
        name: str,
        name_servers: tuple[str, ...] = DEFAULT_NAME_SERVERS,
        ns_ttl: int = 172800,
        zone_id: str | None = None,
    ) -> MockHostedZone:
        """Create a zone with its apex SOA and NS records, like CreateHostedZone does."""
        zone = MockHostedZone(zone_id=zone_id or f"Z{next(_ids)}", name=fqdn(name))
        zone.records[(zone.name, "SOA")] = {
            "Name": zone.name,
            "Type": "SOA",
            "TTL": 900,
            "ResourceRecords": [{"Value": SOA_VALUE}],
        }
        zone.records[(zone.name, "NS")] = {
            "Name": zone.name,
            "Type": "NS",
            "TTL": ns_ttl,
            "ResourceRecords": [{"Value": ns} for ns in name_servers],
        }
        self.hosted_zones[zone.zone_id] = zone
        return zone

    def put_record(self, zone: MockHostedZone, name: str, rtype: str, ttl: int, values: list[str]) -> None:
        zone.records[(fqdn(name), rtype)] = {
            "Name": fqdn(name),
            "Type": rtype,
            "TTL": ttl,
            "ResourceRecords": [{"Value": v} for v in values],
        }

    def add_stack(
        self,
        name: str,
        status: str = "CREATE_COMPLETE",
        termination_protection: bool = True,
        template_body: str = "{}",
    ) -> MockStack:
        stack = MockStack(
            name=name,
            stack_id=f"arn:aws:cloudformation:eu-central-1:{self.account_id}:stack/{name}/{next(_ids)}",
            status=status,
            template_body=template_body,
            termination_protection=termination_protection,
        )
        self.stacks[name] = stack
        return stack

    def add_volume(
        self,
        tags: dict[str, str],
        instance_ids: list[str] | None = None,
        state: str | None = None,
    ) -> MockVolume:
        volume = MockVolume(
            volume_id=f"vol-{next(_ids):08x}",
            state=state or ("in-use" if instance_ids else "available"),
            tags=dict(tags),
            instance_ids=list(instance_ids or []),
        )
        self.volumes[volume.volume_id] = volume
        return volume

    def find_zone(self, name: str) -> MockHostedZone | None:
        for zone in self.hosted_zones.values():
            if zone.name == fqdn(name):
                return zone
        return None

    # -- error injection and call log ------------------------------------

    def inject_error(self, operation: str, code: str, message: str = "", times: int = 1) -> None:
        """Make the next ``times`` calls of an operation fail."""
        self._errors.setdefault(operation, []).extend(
            client_error(code, message or code, operation) for _ in range(times)
        )

    def record(self, service: str, operation: str, params: dict[str, Any]) -> None:
        with self._lock:
            self.calls.append(MockCall(service, operation, copy.deepcopy(params)))
            pending = self._errors.get(operation)
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error

    def calls_of(self, operation: str) -> list[MockCall]:
        return [c for c in self.calls if c.operation == operation]

    def mutating_calls(self) -> list[MockCall]:
        """Calls that change cloud resources; reads and role assumption are excluded."""
        return [c for c in self.calls if c.operation in MUTATING_OPERATIONS]

    @property
    def lock(self) -> threading.Lock:
        return self._lock


class MockAWSState:
    """Accounts reachable through the mocked SDK.

    The operator's own identity maps to the account registered with
    ``role_arn=None``; every other account is reached by assuming its role.
    """

    def __init__(self) -> None:
        self._accounts: dict[str | None, MockAccount] = {}
        self._sessions: dict[str, str] = {}
        self.denied_roles: set[str] = set()

    def add_account(self, account_id: str, role_arn: str | None = None) -> MockAccount:
        account = MockAccount(account_id, role_arn)
        self._accounts[role_arn] = account
        return account

    def account(self, role_arn: str | None = None) -> MockAccount:
        return self._accounts[role_arn]

    def has_role(self, role_arn: str) -> bool:
        return role_arn in self._accounts and role_arn not in self.denied_roles

    def issue_credentials(self, role_arn: str) -> dict[str, Any]:
        access_key = f"ASIAMOCK{next(_ids):08d}"
        self._sessions[access_key] = role_arn
        return {
            "AccessKeyId": access_key,
            "SecretAccessKey": "mock-secret",
            "SessionToken": "mock-token",
        }

    def account_for_key(self, access_key: str | None) -> MockAccount:
        if access_key is None:
            return self._accounts[None]
        return self._accounts[self._sessions[access_key]]

    def all_calls(self) -> list[MockCall]:
        return [c for a in self._accounts.values() for c in a.calls]

    def all_mutating_calls(self) -> list[MockCall]:
        return [c for a in self._accounts.values() for c in a.mutating_calls()]

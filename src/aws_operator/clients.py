"""Async capability wrappers over boto3 service clients.

Every call runs the synchronous boto3 method in the default executor and is
awaited, so a pass deadline or shutdown abandons outstanding requests
promptly instead of hanging the pass.

ERROR CLASSIFICATION:
botocore ``ClientError``s are mapped onto the error taxonomy here, at the
transport boundary, so resources decide control flow with predicates only.
AWS reports some conditions only through message text (CloudFormation in
particular); that text is inspected here and nowhere else. Errors that do
not map onto a kind get a note with the operation name and propagate as-is.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from .config import AWS_MAX_ATTEMPTS
from .errors import (
    AlreadyExistsError,
    NotFoundError,
    OperationInProgressError,
    OperatorError,
)

logger = logging.getLogger(__name__)

ROLE_SESSION_NAME = "aws-operator"

# Route 53 returns at most this many zones per ListHostedZonesByName page
HOSTED_ZONE_PAGE_SIZE = "100"

_IN_PROGRESS_STATE = re.compile(r"\b[A-Z_]+_IN_PROGRESS\b")


def _error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


def _error_message(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Message", "")


class _ServiceClient:
    """Shared call path for the service wrappers."""

    service = ""

    def __init__(self, client: Any) -> None:
        self._client = client

    @property
    def raw(self) -> Any:
        """Underlying boto3 client."""
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(method, **kwargs))
        except ClientError as e:
            classified = self._classify(e)
            if classified is not None:
                raise classified(f"{self.service} {operation}: {_error_message(e)}") from e
            e.add_note(f"{self.service} {operation} failed ({_error_code(e)})")
            raise

    def _classify(self, err: ClientError) -> type[OperatorError] | None:
        return None


class Route53Client(_ServiceClient):
    service = "route53"

    async def list_hosted_zones_by_name(self, dns_name: str) -> list[dict[str, Any]]:
        """List hosted zones starting at a name, in lexicographic order."""
        out = await self._call(
            "list_hosted_zones_by_name", DNSName=dns_name, MaxItems=HOSTED_ZONE_PAGE_SIZE
        )
        return out.get("HostedZones", [])

    async def list_resource_record_sets(
        self,
        zone_id: str,
        start_name: str,
        start_type: str,
        max_items: int = 1,
    ) -> list[dict[str, Any]]:
        out = await self._call(
            "list_resource_record_sets",
            HostedZoneId=zone_id,
            StartRecordName=start_name,
            StartRecordType=start_type,
            MaxItems=str(max_items),
        )
        return out.get("ResourceRecordSets", [])

    async def change_resource_record_sets(
        self, zone_id: str, changes: list[dict[str, Any]]
    ) -> dict[str, Any]:
        out = await self._call(
            "change_resource_record_sets",
            HostedZoneId=zone_id,
            ChangeBatch={"Changes": changes},
        )
        return out.get("ChangeInfo", {})

    def _classify(self, err: ClientError) -> type[OperatorError] | None:
        code = _error_code(err)
        message = _error_message(err).lower()
        if code in ("NoSuchHostedZone", "HostedZoneNotFound"):
            return NotFoundError
        if code == "PriorRequestNotComplete":
            return OperationInProgressError
        if code == "InvalidChangeBatch":
            if "not found" in message:
                return NotFoundError
            if "already exists" in message:
                return AlreadyExistsError
        return None


class CloudFormationClient(_ServiceClient):
    service = "cloudformation"

    async def describe_stack(self, stack_name: str) -> dict[str, Any]:
        """Describe a single stack.

        Raises:
            NotFoundError: If the stack does not exist.
        """
        out = await self._call("describe_stacks", StackName=stack_name)
        stacks = out.get("Stacks", [])
        if not stacks:
            raise NotFoundError(f"cloudformation stack {stack_name!r} does not exist")
        return stacks[0]

    async def create_stack(
        self,
        stack_name: str,
        template_body: str,
        parameters: dict[str, str] | None = None,
        tags: dict[str, str] | None = None,
        capabilities: list[str] | None = None,
        termination_protection: bool = True,
    ) -> str:
        out = await self._call(
            "create_stack",
            StackName=stack_name,
            TemplateBody=template_body,
            Parameters=[
                {"ParameterKey": k, "ParameterValue": v} for k, v in (parameters or {}).items()
            ],
            Tags=[{"Key": k, "Value": v} for k, v in (tags or {}).items()],
            Capabilities=capabilities or [],
            EnableTerminationProtection=termination_protection,
        )
        return out.get("StackId", "")

    async def update_termination_protection(self, stack_name: str, enabled: bool) -> None:
        await self._call(
            "update_termination_protection",
            StackName=stack_name,
            EnableTerminationProtection=enabled,
        )

    async def delete_stack(self, stack_name: str) -> None:
        await self._call("delete_stack", StackName=stack_name)

    def _classify(self, err: ClientError) -> type[OperatorError] | None:
        code = _error_code(err)
        message = _error_message(err)
        if code == "AlreadyExistsException":
            return AlreadyExistsError
        if code == "ValidationError":
            if "does not exist" in message:
                return NotFoundError
            if _IN_PROGRESS_STATE.search(message):
                return OperationInProgressError
        return None


class EC2Client(_ServiceClient):
    service = "ec2"

    async def describe_volumes(self, filters: list[dict[str, Any]]) -> list[dict[str, Any]]:
        volumes: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"Filters": filters}
        while True:
            out = await self._call("describe_volumes", **kwargs)
            volumes.extend(out.get("Volumes", []))
            token = out.get("NextToken")
            if not token:
                return volumes
            kwargs["NextToken"] = token

    async def detach_volume(self, volume_id: str, force: bool = False) -> None:
        await self._call("detach_volume", VolumeId=volume_id, Force=force)

    async def delete_volume(self, volume_id: str) -> None:
        await self._call("delete_volume", VolumeId=volume_id)

    def _classify(self, err: ClientError) -> type[OperatorError] | None:
        code = _error_code(err)
        if code in ("InvalidVolume.NotFound", "InvalidAttachment.NotFound"):
            return NotFoundError
        if code in ("VolumeInUse", "IncorrectState"):
            return OperationInProgressError
        return None


class STSClient(_ServiceClient):
    service = "sts"

    async def get_caller_identity(self) -> dict[str, Any]:
        return await self._call("get_caller_identity")

    async def assume_role(self, role_arn: str, session_name: str) -> dict[str, Any]:
        """Return temporary credentials of the role."""
        out = await self._call("assume_role", RoleArn=role_arn, RoleSessionName=session_name)
        return out["Credentials"]


@dataclass(frozen=True)
class AWSClients:
    """Service clients scoped to one AWS account."""

    region: str
    role_arn: str | None
    route53: Route53Client
    cloudformation: CloudFormationClient
    ec2: EC2Client
    sts: STSClient


def _boto_config() -> BotoConfig:
    return BotoConfig(retries={"max_attempts": AWS_MAX_ATTEMPTS, "mode": "standard"})


def _session_clients(session: Any, region: str, role_arn: str | None) -> AWSClients:
    config = _boto_config()
    return AWSClients(
        region=region,
        role_arn=role_arn,
        route53=Route53Client(session.client("route53", config=config)),
        cloudformation=CloudFormationClient(session.client("cloudformation", config=config)),
        ec2=EC2Client(session.client("ec2", config=config)),
        sts=STSClient(session.client("sts", config=config)),
    )


async def new_clients(region: str, role_arn: str | None = None) -> AWSClients:
    """Build clients for an account.

    Args:
        region: AWS region of the clients.
        role_arn: Role to assume. None uses the operator's own identity.

    Returns:
        Clients backed by temporary credentials of the assumed role.
    """
    # Session and client construction read files and load service models
    loop = asyncio.get_running_loop()
    if role_arn is None:
        return await loop.run_in_executor(
            None, functools.partial(_build_clients, region, None)
        )

    sts = await loop.run_in_executor(None, functools.partial(_build_sts, region))
    credentials = await sts.assume_role(role_arn, ROLE_SESSION_NAME)

    logger.debug("Assumed role", extra={"role_arn": role_arn, "region": region})

    return await loop.run_in_executor(
        None, functools.partial(_build_clients, region, role_arn, credentials)
    )


def _build_sts(region: str) -> STSClient:
    session = boto3.Session(region_name=region)
    return STSClient(session.client("sts", config=_boto_config()))


def _build_clients(
    region: str, role_arn: str | None, credentials: dict[str, Any] | None = None
) -> AWSClients:
    if credentials is None:
        session = boto3.Session(region_name=region)
    else:
        session = boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=region,
        )
    return _session_clients(session, region, role_arn)

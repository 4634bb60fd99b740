"""Cluster objects and account layout shared by the tests."""

from __future__ import annotations

from typing import Any

from aws_operator.awsclient import AWSClientResource
from aws_operator.config import Config
from aws_operator.context import PassContext
from aws_operator.credential import CredentialResolver
from aws_operator.models import AWSConfig

CONTROL_PLANE_ACCOUNT_ID = "111111111111"
TENANT_ACCOUNT_ID = "222222222222"
DEFAULT_TENANT_ACCOUNT_ID = "333333333333"

TENANT_ROLE_ARN = f"arn:aws:iam::{TENANT_ACCOUNT_ID}:role/tenant-operator"
DEFAULT_TENANT_ROLE_ARN = f"arn:aws:iam::{DEFAULT_TENANT_ACCOUNT_ID}:role/dns-operator"

CLUSTER_ID = "c1"
BASE_DOMAIN = "example.io"
INTERMEDIATE_ZONE = "k8s.example.io"
FINAL_ZONE = "c1.k8s.example.io"
STACK_NAME = "cluster-c1-host-setup"


def cluster_data(
    cluster_id: str = CLUSTER_ID,
    domain: str = BASE_DOMAIN,
    role_arn: str | None = TENANT_ROLE_ARN,
    deleted: bool = False,
    region: str = "eu-central-1",
) -> dict[str, Any]:
    """Raw cluster object as it appears in a YAML file."""
    metadata: dict[str, Any] = {"name": cluster_id}
    if deleted:
        metadata["deletionTimestamp"] = "2026-01-01T00:00:00Z"

    aws: dict[str, Any] = {
        "region": region,
        "workers": [{"instanceType": "m5.xlarge"}, {"instanceType": "m5.xlarge"}],
    }
    if role_arn is not None:
        aws["accountRoleARN"] = role_arn

    return {
        "apiVersion": "aws-operator/v1",
        "kind": "AWSConfig",
        "metadata": metadata,
        "spec": {
            "cluster": {
                "id": cluster_id,
                "dns": {"domain": domain},
                "scaling": {"min": 2, "max": 4},
            },
            "aws": aws,
        },
    }


def make_cluster(**kwargs: Any) -> AWSConfig:
    return AWSConfig.model_validate(cluster_data(**kwargs))


def make_config(**overrides: Any) -> Config:
    values: dict[str, Any] = {
        "installation": "test",
        "region": "eu-central-1",
        "default_tenant_role_arn": DEFAULT_TENANT_ROLE_ARN,
    }
    values.update(overrides)
    return Config(**values)


async def resolved_context(cluster: AWSConfig, config: Config | None = None) -> PassContext:
    """Working context after account resolution, as later resources see it."""
    ctx = PassContext(cluster.spec.cluster.id)
    resource = AWSClientResource(CredentialResolver(config or make_config()))
    with ctx.producing(resource.name):
        await resource.ensure_created(ctx, cluster)
    return ctx

"""Accessors over the cluster object.

Resources read the cluster object only through these helpers so naming
conventions for zones and stacks live in one place.
"""

from __future__ import annotations

from .models import AWSConfig

# Label of the shared zone that sits between the base domain and cluster zones
INTERMEDIATE_ZONE_LABEL = "k8s"

# Tag marking volumes created by the tenant cluster's storage provisioner
CLUSTER_TAG_PREFIX = "kubernetes.io/cluster/"


def cluster_id(cluster: AWSConfig) -> str:
    return cluster.spec.cluster.id


def base_domain(cluster: AWSConfig) -> str:
    return cluster.spec.cluster.dns.domain


def intermediate_zone_name(cluster: AWSConfig) -> str:
    """Shared zone, e.g. ``k8s.example.io``."""
    return f"{INTERMEDIATE_ZONE_LABEL}.{base_domain(cluster)}"


def final_zone_name(cluster: AWSConfig) -> str:
    """Per-cluster zone, e.g. ``c1.k8s.example.io``."""
    return f"{cluster_id(cluster)}.{intermediate_zone_name(cluster)}"


def main_host_pre_stack_name(cluster: AWSConfig) -> str:
    """Control plane initializer stack created before the cluster's main stacks."""
    return f"cluster-{cluster_id(cluster)}-host-setup"


def peer_access_role_name(cluster: AWSConfig) -> str:
    return f"{cluster_id(cluster)}-vpc-peer-access"


def cluster_tag_key(cluster: AWSConfig) -> str:
    return f"{CLUSTER_TAG_PREFIX}{cluster_id(cluster)}"


def region(cluster: AWSConfig) -> str:
    return cluster.spec.aws.region


def tenant_role_arn(cluster: AWSConfig) -> str | None:
    return cluster.spec.aws.account_role_arn


def worker_count(cluster: AWSConfig) -> int:
    return len(cluster.spec.aws.workers)


def is_deleted(cluster: AWSConfig) -> bool:
    """Check if the outer runtime marked the object for deletion."""
    return cluster.metadata.deletion_timestamp is not None

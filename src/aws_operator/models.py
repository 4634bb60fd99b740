"""Pydantic models for the tenant cluster object.

The cluster object is owned by the outer runtime and is read-only for every
resource. Resources never touch these models directly; they go through the
accessors in ``key.py``.

EXAMPLE OBJECT:
```yaml
apiVersion: aws-operator/v1
kind: AWSConfig
metadata:
  name: c1
spec:
  cluster:
    id: c1
    dns:
      domain: example.io
    scaling:
      min: 3
      max: 5
  aws:
    region: eu-central-1
    accountRoleARN: arn:aws:iam::123456789012:role/tenant-operator
    workers:
      - instanceType: m5.xlarge
```
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, field_validator, model_validator

API_VERSION = "aws-operator/v1"
KIND = "AWSConfig"

# Cluster IDs end up in DNS labels and CloudFormation stack names
CLUSTER_ID_PATTERN = r"^[a-z0-9]{1,20}$"


class ObjectMetadata(BaseModel):
    """Subset of object metadata the operator cares about."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1)]
    namespace: str = "default"
    deletion_timestamp: datetime | None = Field(None, alias="deletionTimestamp")
    labels: dict[str, str] = Field(default_factory=dict)


class DNSConfig(BaseModel):
    """Cluster DNS configuration."""

    model_config = {"extra": "ignore"}

    domain: Annotated[str, Field(min_length=1)]

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        v = v.strip().rstrip(".").lower()
        if not v or " " in v:
            raise ValueError("domain must be a DNS name")
        return v


class ScalingConfig(BaseModel):
    """Worker autoscaling bounds."""

    model_config = {"extra": "ignore"}

    min: Annotated[int, Field(ge=0)] = 0
    max: Annotated[int, Field(ge=0)] = 0

    @model_validator(mode="after")
    def validate_bounds(self) -> ScalingConfig:
        if self.max < self.min:
            raise ValueError("scaling.max must not be lower than scaling.min")
        return self


class ClusterConfig(BaseModel):
    """Provider independent cluster settings."""

    model_config = {"extra": "ignore"}

    id: Annotated[str, Field(pattern=CLUSTER_ID_PATTERN)]
    dns: DNSConfig
    scaling: ScalingConfig = Field(default_factory=ScalingConfig)


class WorkerConfig(BaseModel):
    """A single worker node definition."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    instance_type: str = Field("m5.xlarge", alias="instanceType")


class AWSSpec(BaseModel):
    """AWS specific cluster settings."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    region: Annotated[str, Field(min_length=1)]
    # Role in the tenant account assumed for every tenant-scoped call
    account_role_arn: str | None = Field(None, alias="accountRoleARN")
    workers: list[WorkerConfig] = Field(default_factory=list)


class AWSConfigSpec(BaseModel):
    model_config = {"extra": "ignore"}

    cluster: ClusterConfig
    aws: AWSSpec


class AWSConfig(BaseModel):
    """Tenant cluster custom object."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    api_version: str = Field(API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMetadata
    spec: AWSConfigSpec

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v != KIND:
            raise ValueError(f"kind must be {KIND}")
        return v

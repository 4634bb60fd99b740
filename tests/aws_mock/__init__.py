"""AWS API mock for integration testing.

In-memory Route 53, CloudFormation, EC2 and STS behind a patched
``boto3.Session``, so the real client wrappers, error classification and
resources run end to end without AWS connectivity.

Usage:
    from aws_mock import MockAWSContext

    with MockAWSContext() as aws:
        tenant = aws.add_account("222222222222", TENANT_ROLE)
        ...
"""

from .clients import (
    MockCloudFormationClient,
    MockEC2Client,
    MockRoute53Client,
    MockSession,
    MockSTSClient,
)
from .context import MockAWSContext, mock_aws_context
from .state import MockAccount, MockAWSState, MockCall, client_error

__all__ = [
    "MockAccount",
    "MockAWSContext",
    "MockAWSState",
    "MockCall",
    "MockCloudFormationClient",
    "MockEC2Client",
    "MockRoute53Client",
    "MockSTSClient",
    "MockSession",
    "client_error",
    "mock_aws_context",
]

"""Pytest configuration and fixtures."""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for aws_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from aws_mock import MockAWSContext  # noqa: E402
from aws_mock.fixtures import (  # noqa: E402
    CONTROL_PLANE_ACCOUNT_ID,
    DEFAULT_TENANT_ACCOUNT_ID,
    DEFAULT_TENANT_ROLE_ARN,
    TENANT_ACCOUNT_ID,
    TENANT_ROLE_ARN,
)


@pytest.fixture
def aws() -> Iterator[MockAWSContext]:
    """Mocked AWS with control plane, tenant and default tenant accounts."""
    with MockAWSContext(CONTROL_PLANE_ACCOUNT_ID) as ctx:
        ctx.add_account(TENANT_ACCOUNT_ID, TENANT_ROLE_ARN)
        ctx.add_account(DEFAULT_TENANT_ACCOUNT_ID, DEFAULT_TENANT_ROLE_ARN)
        yield ctx

"""Resource set executor.

Runs an ordered list of resources against one cluster object per pass:

    create pass:  A -> B -> C
    delete pass:  C -> B -> A   (dependents go before their dependencies)

Resources run strictly sequentially; later resources read working context
entries set by earlier ones, so the order is part of correctness.

PASS OUTCOME:
- every resource returned               -> success
- a resource raised a cancel-pass error -> success, remaining resources
                                           skipped until the next pass
- a resource raised anything else       -> the error propagates to the
                                           outer runtime for backoff
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from . import key
from .context import PassContext
from .errors import InvalidConfigError, is_cancel_pass
from .models import AWSConfig
from .resource import EVENT_CANCEL_PASS, Resource, validate_name

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Direction of a pass."""

    CREATE = "create"
    DELETE = "delete"


@dataclass
class PassResult:
    """Outcome of a pass that did not fail."""

    operation: Operation
    completed: list[str] = field(default_factory=list)
    canceled_by: str | None = None

    @property
    def canceled(self) -> bool:
        return self.canceled_by is not None


class ResourceSet:
    """Ordered, immutable list of resources."""

    def __init__(self, resources: Sequence[Resource]) -> None:
        """Initialize the set.

        Raises:
            InvalidConfigError: If the set is empty or names are not unique.
        """
        if not resources:
            raise InvalidConfigError("resource set must not be empty")

        names: set[str] = set()
        for resource in resources:
            name = validate_name(resource.name)
            if name in names:
                raise InvalidConfigError(f"duplicate resource name {name!r}")
            names.add(name)

        self._resources: tuple[Resource, ...] = tuple(resources)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self._resources]

    async def ensure_created(
        self,
        ctx: PassContext,
        cluster: AWSConfig,
        timeout: float | None = None,
    ) -> PassResult:
        """Run a create pass in declared order."""
        return await self._run(Operation.CREATE, self._resources, ctx, cluster, timeout)

    async def ensure_deleted(
        self,
        ctx: PassContext,
        cluster: AWSConfig,
        timeout: float | None = None,
    ) -> PassResult:
        """Run a delete pass in reverse declared order."""
        return await self._run(
            Operation.DELETE, tuple(reversed(self._resources)), ctx, cluster, timeout
        )

    async def _run(
        self,
        operation: Operation,
        resources: tuple[Resource, ...],
        ctx: PassContext,
        cluster: AWSConfig,
        timeout: float | None,
    ) -> PassResult:
        result = PassResult(operation=operation)
        cluster_id = key.cluster_id(cluster)

        # Deadline expiry cancels the running resource and raises TimeoutError
        async with asyncio.timeout(timeout):
            for resource in resources:
                logger.debug(
                    "ensuring resource",
                    extra={
                        "resource": resource.name,
                        "cluster_id": cluster_id,
                        "operation": operation.value,
                    },
                )

                try:
                    with ctx.producing(resource.name):
                        if operation is Operation.CREATE:
                            await resource.ensure_created(ctx, cluster)
                        else:
                            await resource.ensure_deleted(ctx, cluster)
                except Exception as e:
                    if is_cancel_pass(e):
                        logger.info(
                            "canceling reconciliation",
                            extra={
                                "resource": resource.name,
                                "cluster_id": cluster_id,
                                "operation": operation.value,
                                "event": EVENT_CANCEL_PASS,
                                "reason": str(e),
                            },
                        )
                        result.canceled_by = resource.name
                        return result

                    e.add_note(f"resource {resource.name!r} failed during {operation.value} pass")
                    raise

                result.completed.append(resource.name)

                logger.debug(
                    "ensured resource",
                    extra={
                        "resource": resource.name,
                        "cluster_id": cluster_id,
                        "operation": operation.value,
                    },
                )

        return result

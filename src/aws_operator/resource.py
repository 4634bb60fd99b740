"""Resource contract and the CRUD resource adapter.

A resource converges one aspect of a tenant cluster (a DNS delegation, a
CloudFormation stack, ...) toward the cluster object. The executor calls
only ``name``, ``ensure_created`` and ``ensure_deleted``.

CONTRACT:
- Both convergence operations are idempotent. Calling them again with the
  same cluster object must detect "already converged" and issue no
  mutating calls.
- Resources are constructed once at process start and reused for every
  pass and every cluster object. Per-pass data goes into the PassContext,
  never onto the instance.
- A resource disabled by configuration returns immediately.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from .concurrency import join_first_error
from .context import PassContext
from .errors import ExecutionError, InvalidConfigError, is_cancel_pass
from .models import AWSConfig

logger = logging.getLogger(__name__)

# Structured log event names for cancellation decisions
EVENT_CANCEL_RESOURCE = "cancel_resource"
EVENT_CANCEL_PASS = "cancel_pass"


class Resource(ABC):
    """Unit of reconciliation."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable, non-empty name used in logs."""

    @abstractmethod
    async def ensure_created(self, ctx: PassContext, cluster: AWSConfig) -> None:
        """Converge toward the cluster object's desired state."""

    @abstractmethod
    async def ensure_deleted(self, ctx: PassContext, cluster: AWSConfig) -> None:
        """Converge toward absence."""

    def _log(self, ctx: PassContext, message: str, level: int = logging.DEBUG, **fields: Any) -> None:
        logger.log(
            level,
            message,
            extra={"resource": self.name, "cluster_id": ctx.cluster_id, **fields},
        )

    def _cancel_resource(self, ctx: PassContext, reason: str) -> None:
        """Log the decision to stop this resource's work for the pass."""
        self._log(
            ctx,
            "canceling resource",
            level=logging.INFO,
            event=EVENT_CANCEL_RESOURCE,
            reason=reason,
        )


def validate_name(name: str) -> str:
    """Raise InvalidConfigError for empty resource names."""
    if not name or not name.strip():
        raise InvalidConfigError("resource name must not be empty")
    return name


class CRUDResource(Resource):
    """Resource decomposed into read, diff and apply steps.

    Subclasses implement the hooks; the adapter drives them:

        ensure_created:
            current, desired = (read concurrently)
            create = new_create_change(current, desired) -> apply if not None
            update = new_update_change(current, desired) -> apply if not None

        ensure_deleted:
            current = get_current_state()
            delete = new_delete_change(current) -> apply if not None

    Diff hooks are pure: they never call cloud APIs and return None when
    current state already matches on every dimension the resource manages.
    Apply hooks are never called with None.

    NotFound/OperationInProgress while reading state means the precondition
    for this resource's work is not met yet; the adapter cancels the
    resource for this pass. The same kinds raised while applying mean
    something this resource relies on vanished and surface as
    ExecutionError.
    """

    @abstractmethod
    async def get_current_state(self, ctx: PassContext, cluster: AWSConfig) -> Any:
        """Read the live state of the managed object."""

    @abstractmethod
    async def get_desired_state(self, ctx: PassContext, cluster: AWSConfig) -> Any:
        """Compute the state the cluster object asks for."""

    @abstractmethod
    def new_create_change(
        self, ctx: PassContext, cluster: AWSConfig, current: Any, desired: Any
    ) -> Any:
        """Return what must be created, or None."""

    @abstractmethod
    async def apply_create_change(self, ctx: PassContext, cluster: AWSConfig, change: Any) -> None:
        pass

    def new_update_change(
        self, ctx: PassContext, cluster: AWSConfig, current: Any, desired: Any
    ) -> Any:
        """Return what must be updated in place, or None."""
        return None

    async def apply_update_change(self, ctx: PassContext, cluster: AWSConfig, change: Any) -> None:
        raise NotImplementedError(f"{self.name} does not support updates")

    @abstractmethod
    def new_delete_change(self, ctx: PassContext, cluster: AWSConfig, current: Any) -> Any:
        """Return what must be deleted, or None."""

    @abstractmethod
    async def apply_delete_change(self, ctx: PassContext, cluster: AWSConfig, change: Any) -> None:
        pass

    async def ensure_created(self, ctx: PassContext, cluster: AWSConfig) -> None:
        try:
            current, desired = await join_first_error(
                self.get_current_state(ctx, cluster),
                self.get_desired_state(ctx, cluster),
            )
        except Exception as e:
            if is_cancel_pass(e):
                self._cancel_resource(ctx, str(e))
                return
            raise

        create_change = self.new_create_change(ctx, cluster, current, desired)
        if create_change is None:
            self._log(ctx, "no create change")
        else:
            self._log(ctx, "applying create change")
            await self._apply_change(self.apply_create_change, ctx, cluster, create_change)
            self._log(ctx, "applied create change")

        update_change = self.new_update_change(ctx, cluster, current, desired)
        if update_change is None:
            self._log(ctx, "no update change")
        else:
            self._log(ctx, "applying update change")
            await self._apply_change(self.apply_update_change, ctx, cluster, update_change)
            self._log(ctx, "applied update change")

    async def ensure_deleted(self, ctx: PassContext, cluster: AWSConfig) -> None:
        try:
            current = await self.get_current_state(ctx, cluster)
        except Exception as e:
            if is_cancel_pass(e):
                self._cancel_resource(ctx, str(e))
                return
            raise

        delete_change = self.new_delete_change(ctx, cluster, current)
        if delete_change is None:
            self._log(ctx, "no delete change")
            return

        self._log(ctx, "applying delete change")
        await self._apply_change(self.apply_delete_change, ctx, cluster, delete_change)
        self._log(ctx, "applied delete change")

    async def _apply_change(self, apply: Any, ctx: PassContext, cluster: AWSConfig, change: Any) -> None:
        try:
            await apply(ctx, cluster, change)
        except Exception as e:
            if is_cancel_pass(e):
                raise ExecutionError(f"{self.name}: applying change failed: {e}") from e
            raise

"""Controller loop driving resource set passes over cluster objects.

Each interval:
1. Load cluster objects from the clusters directory
2. Run one pass per object, concurrently, each with its own PassContext
3. Objects carrying a deletion timestamp get a delete pass, others a create pass
4. Wait for the next interval or shutdown

Nothing is cached across passes: every pass re-reads the cloud state it needs.

CIRCUIT BREAKER:
A cluster whose passes fail MAX_CONSECUTIVE_FAILURES times in a row is
skipped for CIRCUIT_BREAKER_RESET_SECONDS. Canceled passes count as success;
they are the normal way of waiting for preconditions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from . import key
from .config import Config
from .context import PassContext
from .loader import ClusterLoadError, load_clusters
from .models import AWSConfig
from .resource_set import Operation, PassResult, ResourceSet

logger = logging.getLogger(__name__)

# Circuit breaker constants
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300  # 5 minutes

ClusterLoader = Callable[[Path], list[AWSConfig]]


@dataclass
class ReconcileResult:
    """Result of a single pass over one cluster object."""

    cluster_id: str
    operation: Operation
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    completed: list[str] = field(default_factory=list)
    canceled_by: str | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the pass succeeded."""
        return self.error is None


@dataclass
class _Breaker:
    consecutive_failures: int = 0
    open_until: datetime | None = None


class Controller:
    """Runs the resource set against every cluster object on an interval."""

    def __init__(
        self,
        config: Config,
        resource_set: ResourceSet,
        setup: ResourceSet | None = None,
        loader: ClusterLoader = load_clusters,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Validated operator configuration.
            resource_set: Resources converged for every cluster object.
            setup: Resources run in create direction ahead of every pass,
                including delete passes, e.g. client and account resolution
                the teardown resources depend on.
            loader: Reads cluster objects from the clusters directory.
        """
        self._config = config
        self._resource_set = resource_set
        self._setup = setup
        self._load = loader
        self._shutdown_event = asyncio.Event()
        self._breakers: dict[str, _Breaker] = {}

    @property
    def config(self) -> Config:
        return self._config

    async def run(self) -> None:
        """Run reconciliation cycles until shutdown."""
        logger.info(
            "Starting controller",
            extra={
                "installation": self._config.installation,
                "region": self._config.region,
                "clusters_dir": str(self._config.clusters_dir),
                "resources": (self._setup.names if self._setup else []) + self._resource_set.names,
                "interval_seconds": self._config.reconcile_interval_seconds,
            },
        )

        while not self._shutdown_event.is_set():
            try:
                clusters = self._load(self._config.clusters_dir)
            except ClusterLoadError as e:
                logger.error("Failed to load cluster objects", extra={"error": str(e)})
                clusters = []

            await self.reconcile_all(clusters)

            # Wait for next cycle or shutdown
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._config.reconcile_interval_seconds,
                )
            except TimeoutError:
                pass

        logger.info("Controller shutdown complete")

    def shutdown(self) -> None:
        """Signal the controller to stop."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    async def reconcile_all(self, clusters: list[AWSConfig]) -> list[ReconcileResult]:
        """Run one pass per cluster object, skipping clusters with an open circuit."""
        # Failure history of cluster objects that are gone is dropped
        live = {key.cluster_id(c) for c in clusters}
        for cluster_id in [c for c in self._breakers if c not in live]:
            del self._breakers[cluster_id]

        runnable = [c for c in clusters if not self._circuit_open(key.cluster_id(c))]
        results = await asyncio.gather(*(self.reconcile(c) for c in runnable))
        for result in results:
            self._record(result)
        return list(results)

    async def reconcile(self, cluster: AWSConfig) -> ReconcileResult:
        """Run a single pass with a fresh working context.

        Errors are captured on the result; only cancellation propagates.
        """
        cluster_id = key.cluster_id(cluster)
        operation = Operation.DELETE if key.is_deleted(cluster) else Operation.CREATE
        result = ReconcileResult(cluster_id=cluster_id, operation=operation)
        ctx = PassContext(cluster_id)
        timeout = self._config.pass_timeout_seconds

        try:
            async with asyncio.timeout(timeout):
                pass_result = await self._run_pass(ctx, cluster, operation)
            result.completed = pass_result.completed
            result.canceled_by = pass_result.canceled_by
        except TimeoutError as e:
            e.add_note(f"pass exceeded {timeout}s")
            result.error = e
        except Exception as e:
            result.error = e
        finally:
            result.end_time = datetime.now(UTC)

        self._log_result(result)
        return result

    async def _run_pass(
        self, ctx: PassContext, cluster: AWSConfig, operation: Operation
    ) -> PassResult:
        completed: list[str] = []
        if self._setup is not None:
            setup_result = await self._setup.ensure_created(ctx, cluster)
            if setup_result.canceled:
                return PassResult(operation, setup_result.completed, setup_result.canceled_by)
            completed = setup_result.completed

        if operation is Operation.DELETE:
            pass_result = await self._resource_set.ensure_deleted(ctx, cluster)
        else:
            pass_result = await self._resource_set.ensure_created(ctx, cluster)

        pass_result.completed = completed + pass_result.completed
        return pass_result

    def _circuit_open(self, cluster_id: str) -> bool:
        breaker = self._breakers.get(cluster_id)
        if breaker is None or breaker.open_until is None:
            return False

        now = datetime.now(UTC)
        if now < breaker.open_until:
            logger.warning(
                "Circuit breaker open, skipping cluster",
                extra={
                    "cluster_id": cluster_id,
                    "remaining_seconds": (breaker.open_until - now).total_seconds(),
                    "consecutive_failures": breaker.consecutive_failures,
                },
            )
            return True

        logger.info("Circuit breaker reset, resuming cluster", extra={"cluster_id": cluster_id})
        breaker.open_until = None
        breaker.consecutive_failures = 0
        return False

    def _record(self, result: ReconcileResult) -> None:
        breaker = self._breakers.setdefault(result.cluster_id, _Breaker())

        if result.success:
            breaker.consecutive_failures = 0
            return

        breaker.consecutive_failures += 1
        if breaker.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            breaker.open_until = datetime.now(UTC) + timedelta(seconds=CIRCUIT_BREAKER_RESET_SECONDS)
            logger.error(
                "Circuit breaker opened after consecutive failures",
                extra={
                    "cluster_id": result.cluster_id,
                    "consecutive_failures": breaker.consecutive_failures,
                    "reset_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
                },
            )

    def _log_result(self, result: ReconcileResult) -> None:
        """Log pass result with structured data."""
        extra: dict[str, Any] = {
            "cluster_id": result.cluster_id,
            "operation": result.operation.value,
            "duration_seconds": result.duration_seconds,
            "completed": result.completed,
        }

        if result.error is not None:
            extra["error"] = str(result.error) or type(result.error).__name__
            extra["error_type"] = type(result.error).__name__
            logger.error("Reconciliation failed", extra=extra)
        elif result.canceled_by is not None:
            extra["canceled_by"] = result.canceled_by
            logger.info("Reconciliation canceled", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)

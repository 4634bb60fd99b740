"""Per-pass working context.

A PassContext is created by the executor at the start of a pass, lent to
every resource call of that pass and discarded afterwards. It carries facts
discovered by earlier resources (client handles, account IDs, resource IDs)
to later ones. Nothing in it survives across passes or cluster objects.

OWNERSHIP:
Keys are write-once per producer. The executor marks the running resource as
the current producer; a resource may overwrite its own keys but never a key
another resource originated. Reads are unrestricted.

No locking: resources of one pass run strictly sequentially.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .errors import AlreadyExistsError, NotFoundError

# Client handles per account, produced by the awsclient resource
KEY_CONTROL_PLANE_CLIENTS = "clients.controlPlane"
KEY_TENANT_CLUSTER_CLIENTS = "clients.tenantCluster"
KEY_DEFAULT_TENANT_CLIENTS = "clients.defaultTenant"

# Account IDs, produced by the awsclient resource
KEY_CONTROL_PLANE_ACCOUNT_ID = "status.controlPlane.awsAccountID"
KEY_TENANT_CLUSTER_ACCOUNT_ID = "status.tenantCluster.awsAccountID"
KEY_DEFAULT_TENANT_ACCOUNT_ID = "status.defaultTenant.awsAccountID"

# Producer used when nothing is running under the executor (tests, CLI)
ANONYMOUS_PRODUCER = ""


class PassContext:
    """Mutable scratch structure scoped to one reconciliation pass."""

    def __init__(self, cluster_id: str) -> None:
        self._cluster_id = cluster_id
        self._values: dict[str, Any] = {}
        self._owners: dict[str, str] = {}
        self._producer = ANONYMOUS_PRODUCER

    @property
    def cluster_id(self) -> str:
        return self._cluster_id

    @property
    def producer(self) -> str:
        """Name of the resource currently running in this pass."""
        return self._producer

    @contextmanager
    def producing(self, name: str) -> Iterator[None]:
        """Attribute writes inside the block to the given resource."""
        previous = self._producer
        self._producer = name
        try:
            yield
        finally:
            self._producer = previous

    def get(self, key: str) -> tuple[Any, bool]:
        """Look up a key.

        Returns:
            Tuple of (value, found). Value is None when not found.
        """
        if key in self._values:
            return self._values[key], True
        return None, False

    def require(self, key: str) -> Any:
        """Look up a key that an earlier resource must have set.

        Raises:
            NotFoundError: If the key is not set yet. Missing upstream facts
                mean the precondition for the caller's work is not met.
        """
        value, found = self.get(key)
        if not found:
            raise NotFoundError(f"working context key {key!r} is not set")
        return value

    def set(self, key: str, value: Any) -> None:
        """Store a value on behalf of the current producer.

        Raises:
            AlreadyExistsError: If another producer originated the key.
        """
        owner = self._owners.get(key)
        if owner is not None and owner != self._producer:
            raise AlreadyExistsError(
                f"working context key {key!r} is owned by {owner or 'anonymous'!r}, "
                f"not {self._producer or 'anonymous'!r}"
            )
        self._owners[key] = self._producer
        self._values[key] = value

    def owner(self, key: str) -> str | None:
        return self._owners.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def keys(self) -> list[str]:
        return list(self._values)

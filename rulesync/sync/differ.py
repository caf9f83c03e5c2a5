"""Remote state differ — find namespaces the remote holds but no longer wants.

Stale namespaces come from documents that stopped matching a selector,
were deleted from the pool, or were renamed. The differ keeps no history:
every diff re-reads the remote inventory.
"""

from __future__ import annotations

import logging
from typing import Iterable

from rulesync.transport.base import RuleStoreTransport

logger = logging.getLogger(__name__)


class RemoteStateDiffer:
    """Compares a desired namespace set against a tenant's remote inventory."""

    def __init__(self, transport: RuleStoreTransport):
        self.transport = transport

    def inventory_namespaces(self) -> set[str]:
        """Namespaces currently held remotely, one entry per namespace.

        Raises:
            RemoteCallError: If the inventory cannot be listed.
        """
        return {entry.namespace for entry in self.transport.list_inventory()}

    def diff(self, desired: Iterable[str], remote: set[str] | None = None) -> set[str]:
        """Return the remote namespaces absent from ``desired``.

        Args:
            desired: Namespace keys the tenant should hold.
            remote: Inventory already listed in this pass; fetched when None.
        """
        if remote is None:
            remote = self.inventory_namespaces()
        stale = remote - set(desired)
        logger.debug(
            "Tenant %s: %d remote namespace(s), %d stale",
            self.transport.tenant_id,
            len(remote),
            len(stale),
        )
        return stale

"""Transport contract between the sync engine and the remote ruler.

A transport is bound to one tenant on one endpoint. The engine asks it
what rule namespaces exist, to replace a namespace's rule groups, and to
delete a namespace. The same connection also loads or deletes the tenant's
Alertmanager configuration. Every write must be idempotent; the engine
relies on that to retry by re-running whole passes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping, NamedTuple


class InventoryEntry(NamedTuple):
    """One rule group the remote ruler currently holds for the tenant."""

    namespace: str
    group: str


class RuleStoreTransport(ABC):
    """Abstract connection to a tenant's rule namespaces and Alertmanager."""

    def __init__(self, tenant_id: str, address: str):
        self.tenant_id = tenant_id
        self.address = address.rstrip("/")

    @abstractmethod
    def list_inventory(self) -> list[InventoryEntry]:
        """List every (namespace, group) pair held remotely for the tenant."""

    @abstractmethod
    def submit_groups(self, namespace: str, payload: bytes) -> None:
        """Create or replace all rule groups of a namespace."""

    @abstractmethod
    def delete_namespace(self, namespace: str) -> None:
        """Delete a namespace and all its groups. Absent namespaces are not an error."""

    @abstractmethod
    def load_alertmanager_config(self, config: str, templates: Mapping[str, str]) -> None:
        """Create or replace the tenant's Alertmanager configuration and templates."""

    @abstractmethod
    def delete_alertmanager_config(self) -> None:
        """Delete the tenant's Alertmanager configuration. Absence is not an error."""

    def close(self) -> None:
        """Release any resources held by the transport."""

    def __enter__(self) -> RuleStoreTransport:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

"""Sync executor — drive the remote store to the desired namespace set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from rulesync.exceptions import RemoteCallError, RuleSyncError
from rulesync.models.tenant import AlertmanagerSpec
from rulesync.transport.base import RuleStoreTransport

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Namespaces touched by one executor run."""

    applied: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    alertmanager: bool = False


class SyncExecutor:
    """Submits and deletes namespaces through a transport.

    Calls are issued one by one; the first failure stops the run and
    propagates. Already-applied namespaces are not rolled back; the next
    pass re-submits everything, which is safe because both operations are
    idempotent.
    """

    def __init__(self, transport: RuleStoreTransport):
        self.transport = transport

    def apply(
        self,
        desired: Mapping[str, bytes],
        to_delete: Iterable[str] = (),
        alertmanager: AlertmanagerSpec | None = None,
    ) -> SyncReport:
        """Create or replace every desired namespace, then delete ``to_delete``.

        An Alertmanager configuration, when given, is loaded last.

        Raises:
            RemoteCallError: On the first failed call.
        """
        report = SyncReport()

        for namespace in sorted(desired):
            self._call("submit", namespace, self.transport.submit_groups, namespace, desired[namespace])
            report.applied.append(namespace)

        report.deleted = self.delete_all(to_delete)

        if alertmanager is not None:
            self.load_alertmanager(alertmanager)
            report.alertmanager = True
        return report

    def delete_all(self, namespaces: Iterable[str]) -> list[str]:
        """Delete each namespace; return them in the order they were deleted."""
        deleted = []
        for namespace in sorted(namespaces):
            self._call("delete", namespace, self.transport.delete_namespace, namespace)
            deleted.append(namespace)
        return deleted

    def load_alertmanager(self, alertmanager: AlertmanagerSpec) -> None:
        self._alertmanager_call(
            "load",
            self.transport.load_alertmanager_config,
            alertmanager.config,
            alertmanager.templates,
        )

    def delete_alertmanager(self) -> None:
        self._alertmanager_call("delete", self.transport.delete_alertmanager_config)

    def _call(self, operation: str, namespace: str, func, *args) -> None:
        logger.info("Tenant %s: %s namespace %s", self.transport.tenant_id, operation, namespace)
        try:
            func(*args)
        except RemoteCallError as e:
            if not e.namespace:
                e.namespace = namespace
            if not e.operation:
                e.operation = operation
            if e.tenant_id is None:
                e.tenant_id = self.transport.tenant_id
            raise
        except RuleSyncError as e:
            raise RemoteCallError(
                f"{operation} namespace '{namespace}' failed: {e.message}",
                namespace=namespace,
                operation=operation,
                tenant_id=self.transport.tenant_id,
            ) from e

    def _alertmanager_call(self, action: str, func, *args) -> None:
        operation = f"alertmanager-{action}"
        logger.info("Tenant %s: %s Alertmanager configuration", self.transport.tenant_id, action)
        try:
            func(*args)
        except RemoteCallError as e:
            if not e.operation:
                e.operation = operation
            if e.tenant_id is None:
                e.tenant_id = self.transport.tenant_id
            raise
        except RuleSyncError as e:
            raise RemoteCallError(
                f"{action} Alertmanager configuration failed: {e.message}",
                operation=operation,
                tenant_id=self.transport.tenant_id,
            ) from e

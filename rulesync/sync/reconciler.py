"""Tenant reconciler — one sync or deletion pass per tenant.

A sync pass runs collect → transform → pack → diff → apply, then loads the
tenant's Alertmanager configuration if it declares one. A deletion pass
removes every namespace the tenant holds remotely and its Alertmanager
configuration. Either way the
outcome is recorded as ``Synced`` or ``Failed(reason)``; a failed pass is
retried by the next trigger. Lifecycle::

    ACTIVE ──deletion requested──▶ DELETING ──remote cleared──▶ REMOVED
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable

from rulesync.auth.credentials import SecretStore, resolve_credentials
from rulesync.exceptions import ConfigurationError, RuleSyncError
from rulesync.models.tenant import AlertmanagerSpec, TenantSpec, TenantState, TenantSyncResult
from rulesync.sources.pool import DocumentSource
from rulesync.sync.alertmanager import verify as verify_alertmanager
from rulesync.sync.collector import collect
from rulesync.sync.differ import RemoteStateDiffer
from rulesync.sync.executor import SyncExecutor
from rulesync.sync.packer import pack
from rulesync.sync.status import StatusStore
from rulesync.sync.transformer import transform
from rulesync.transport.base import RuleStoreTransport
from rulesync.transport.factory import TransportFactory

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """What a sync pass would do for one tenant."""

    desired: dict[str, bytes] = field(default_factory=dict)
    to_delete: set[str] = field(default_factory=set)
    remote: set[str] = field(default_factory=set)
    alertmanager: AlertmanagerSpec | None = None

    @property
    def created(self) -> list[str]:
        return sorted(k for k in self.desired if k not in self.remote)

    @property
    def replaced(self) -> list[str]:
        return sorted(k for k in self.desired if k in self.remote)

    @property
    def deleted(self) -> list[str]:
        return sorted(self.to_delete)


class TenantReconciler:
    """Reconciles tenants against the remote rule store.

    Parameters
    ----------
    source : DocumentSource
        Pool of rule documents selectors draw from.
    transport_factory : TransportFactory
        Builds a transport for a tenant from its resolved credentials.
    secrets : SecretStore | None
        Where secret-referenced credentials are read from.
    status : StatusStore | None
        Sink for pass results; an in-memory store when *None*.
    """

    def __init__(
        self,
        source: DocumentSource,
        transport_factory: TransportFactory,
        secrets: SecretStore | None = None,
        status: StatusStore | None = None,
    ):
        self.source = source
        self.transport_factory = transport_factory
        self.secrets = secrets
        self.status = status if status is not None else StatusStore()

    def reconcile(self, tenant: TenantSpec) -> TenantSyncResult:
        """Run the pass the tenant's lifecycle calls for."""
        if tenant.deletion_requested:
            return self.delete(tenant)
        return self.sync(tenant)

    def sync(self, tenant: TenantSpec) -> TenantSyncResult:
        """Make the tenant's remote namespaces match its selected documents."""
        logger.info("Syncing tenant %s", tenant.id)
        try:
            with self._open_transport(tenant) as transport:
                plan = self.plan(tenant, transport)
                report = SyncExecutor(transport).apply(
                    plan.desired, plan.to_delete, plan.alertmanager
                )
        except RuleSyncError as e:
            logger.error("Tenant %s sync failed: %s", tenant.id, e)
            result = TenantSyncResult.failed(tenant.id, str(e))
        else:
            result = TenantSyncResult.synced(
                tenant.id, report.applied, report.deleted, alertmanager=report.alertmanager
            )
            logger.info("Tenant %s synced: %s", tenant.id, result.summary())

        self.status.report(tenant.id, result)
        return result

    def delete(self, tenant: TenantSpec) -> TenantSyncResult:
        """Remove every namespace the tenant holds remotely.

        A declared Alertmanager configuration is deleted as well. On success the tenant's status record is dropped and the returned
        state is ``REMOVED``. On failure the tenant stays ``DELETING``.
        """
        logger.info("Deleting all rules of tenant %s", tenant.id)
        try:
            with self._open_transport(tenant) as transport:
                namespaces = RemoteStateDiffer(transport).inventory_namespaces()
                executor = SyncExecutor(transport)
                deleted = executor.delete_all(namespaces)
                if tenant.alertmanager is not None:
                    executor.delete_alertmanager()
        except RuleSyncError as e:
            logger.error("Tenant %s deletion failed: %s", tenant.id, e)
            result = TenantSyncResult.failed(tenant.id, str(e), state=TenantState.DELETING)
            self.status.report(tenant.id, result)
            return result

        self.status.remove(tenant.id)
        logger.info("Tenant %s removed (%d namespace(s) deleted)", tenant.id, len(deleted))
        return TenantSyncResult.synced(
            tenant.id,
            deleted=deleted,
            state=TenantState.REMOVED,
            alertmanager=tenant.alertmanager is not None,
        )

    def plan(self, tenant: TenantSpec, transport: RuleStoreTransport) -> SyncPlan:
        """Compute the desired namespaces and the stale ones, writing nothing.

        The remote store is only queried once the desired state is fully
        built, so a collection or serialization failure never touches it.
        """
        documents = collect(tenant.selectors, self.source)
        documents = transform(documents, tenant.overrides, tenant.external_labels)
        desired = pack(documents)
        if tenant.alertmanager is not None:
            verify_alertmanager(tenant.alertmanager)

        differ = RemoteStateDiffer(transport)
        remote = differ.inventory_namespaces()
        return SyncPlan(
            desired=desired,
            to_delete=differ.diff(desired, remote),
            remote=remote,
            alertmanager=tenant.alertmanager,
        )

    def render(self, tenant: TenantSpec) -> dict[str, bytes]:
        """Packed submissions for the tenant, without contacting the remote store."""
        documents = collect(tenant.selectors, self.source)
        return pack(transform(documents, tenant.overrides, tenant.external_labels))

    def reconcile_all(
        self, tenants: Iterable[TenantSpec], max_workers: int = 4
    ) -> list[TenantSyncResult]:
        """Reconcile several tenants concurrently.

        Results come back in input order. One tenant failing, even with an
        unexpected exception, never stops the others.

        Raises:
            ConfigurationError: If two tenants share an id.
        """
        tenants = list(tenants)
        ids = [t.id for t in tenants]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigurationError(f"duplicate tenant id(s): {', '.join(duplicates)}")
        if not tenants:
            return []

        results: dict[str, TenantSyncResult] = {}
        with ThreadPoolExecutor(max_workers=min(max_workers, len(tenants))) as executor:
            future_to_tenant = {executor.submit(self.reconcile, t): t for t in tenants}

            for future in as_completed(future_to_tenant):
                tenant = future_to_tenant[future]
                try:
                    results[tenant.id] = future.result()
                except Exception as e:
                    logger.exception("Unexpected error reconciling tenant %s", tenant.id)
                    state = TenantState.DELETING if tenant.deletion_requested else TenantState.ACTIVE
                    result = TenantSyncResult.failed(tenant.id, f"unexpected error: {e}", state=state)
                    self.status.report(tenant.id, result)
                    results[tenant.id] = result

        return [results[t.id] for t in tenants]

    def _open_transport(self, tenant: TenantSpec) -> RuleStoreTransport:
        credentials = resolve_credentials(tenant.auth, self.secrets)
        return self.transport_factory(tenant, credentials)

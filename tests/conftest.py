"""Shared fakes: an in-memory ruler that hands out per-tenant transports."""

import pytest

from rulesync.exceptions import RemoteCallError
from rulesync.sync.packer import unpack
from rulesync.transport.base import InventoryEntry, RuleStoreTransport


class FakeTransport(RuleStoreTransport):
    """Transport backed by a FakeRuler's in-memory namespaces."""

    def __init__(self, ruler, tenant_id, address="http://ruler.test"):
        super().__init__(tenant_id, address)
        self.ruler = ruler
        self.closed = False

    def list_inventory(self):
        self.ruler.record(self.tenant_id, "list")
        entries = []
        for namespace, payload in sorted(self.ruler.store(self.tenant_id).items()):
            for group in unpack(payload):
                entries.append(InventoryEntry(namespace, group.name))
        return entries

    def submit_groups(self, namespace, payload):
        self.ruler.record(self.tenant_id, "submit", namespace)
        self.ruler.store(self.tenant_id)[namespace] = payload

    def delete_namespace(self, namespace):
        self.ruler.record(self.tenant_id, "delete", namespace)
        self.ruler.store(self.tenant_id).pop(namespace, None)

    def load_alertmanager_config(self, config, templates):
        self.ruler.record(self.tenant_id, "alertmanager-load")
        self.ruler.alertmanager[self.tenant_id] = (config, dict(templates))

    def delete_alertmanager_config(self):
        self.ruler.record(self.tenant_id, "alertmanager-delete")
        self.ruler.alertmanager.pop(self.tenant_id, None)

    def close(self):
        self.closed = True


class FakeRuler:
    """Multi-tenant rule store and Alertmanager; ``factory`` plugs into TenantReconciler."""

    def __init__(self):
        self.tenants = {}
        self.alertmanager = {}
        self.calls = []
        self.failures = set()
        self.credentials = {}
        self.transports = []

    def store(self, tenant_id):
        return self.tenants.setdefault(tenant_id, {})

    def namespaces(self, tenant_id):
        return set(self.store(tenant_id))

    def fail(self, operation, namespace=""):
        """Make every matching call raise RemoteCallError."""
        self.failures.add((operation, namespace))

    def record(self, tenant_id, operation, namespace=""):
        self.calls.append((tenant_id, operation, namespace))
        if (operation, namespace) in self.failures or (operation, "") in self.failures:
            raise RemoteCallError(f"ruler rejected {operation}", status_code=500)

    def factory(self, tenant, credentials):
        self.credentials[tenant.id] = credentials
        transport = FakeTransport(self, tenant.id, tenant.url)
        self.transports.append(transport)
        return transport


@pytest.fixture
def ruler():
    return FakeRuler()

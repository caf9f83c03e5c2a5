"""Tests for the remote state differ."""

from rulesync.sync.differ import RemoteStateDiffer
from rulesync.transport.base import InventoryEntry, RuleStoreTransport


class _InventoryTransport(RuleStoreTransport):
    def __init__(self, entries):
        super().__init__("tenant-a", "http://ruler.test")
        self.entries = entries
        self.list_calls = 0

    def list_inventory(self):
        self.list_calls += 1
        return list(self.entries)

    def submit_groups(self, namespace, payload):
        raise AssertionError("differ must not write")

    def delete_namespace(self, namespace):
        raise AssertionError("differ must not write")

    def load_alertmanager_config(self, config, templates):
        raise AssertionError("differ must not write")

    def delete_alertmanager_config(self):
        raise AssertionError("differ must not write")


def _entries(*pairs):
    return [InventoryEntry(ns, group) for ns, group in pairs]


def test_diff_returns_remote_namespaces_not_desired():
    transport = _InventoryTransport(_entries(("a", "g1"), ("b", "g1"), ("c", "g1")))
    assert RemoteStateDiffer(transport).diff({"a", "d"}) == {"b", "c"}


def test_inventory_is_deduplicated_by_namespace():
    transport = _InventoryTransport(_entries(("a", "g1"), ("a", "g2"), ("b", "g1")))
    assert RemoteStateDiffer(transport).inventory_namespaces() == {"a", "b"}


def test_diff_is_order_independent():
    forward = _InventoryTransport(_entries(("a", "g"), ("b", "g"), ("c", "g")))
    backward = _InventoryTransport(list(reversed(forward.entries)))
    assert RemoteStateDiffer(forward).diff(["c", "a"]) == RemoteStateDiffer(backward).diff(["a", "c"])


def test_diff_empty_remote():
    assert RemoteStateDiffer(_InventoryTransport([])).diff({"a"}) == set()


def test_diff_nothing_desired_returns_everything():
    transport = _InventoryTransport(_entries(("a", "g"), ("b", "g")))
    assert RemoteStateDiffer(transport).diff(set()) == {"a", "b"}


def test_one_inventory_call_per_diff():
    transport = _InventoryTransport(_entries(("a", "g")))
    differ = RemoteStateDiffer(transport)
    differ.diff({"a"})
    differ.diff({"b"})
    assert transport.list_calls == 2


def test_diff_reuses_listed_inventory():
    transport = _InventoryTransport(_entries(("a", "g")))
    assert RemoteStateDiffer(transport).diff({"b"}, remote={"a", "c"}) == {"a", "c"}
    assert transport.list_calls == 0

"""Tests for the sync executor."""

import pytest

from rulesync.exceptions import RemoteCallError, SerializationError
from rulesync.models.tenant import AlertmanagerSpec
from rulesync.sync.executor import SyncExecutor


def _transport(ruler):
    return ruler.factory(_Tenant(), None)


class _Tenant:
    id = "tenant-a"
    url = "http://ruler.test"


PAYLOAD = b"groups:\n- name: g\n  rules:\n  - alert: A\n    expr: vector(1)\n"


def test_apply_submits_then_deletes(ruler):
    ruler.store("tenant-a")["stale"] = PAYLOAD
    report = SyncExecutor(_transport(ruler)).apply({"b": PAYLOAD, "a": PAYLOAD}, {"stale"})

    assert report.applied == ["a", "b"]
    assert report.deleted == ["stale"]
    assert ruler.namespaces("tenant-a") == {"a", "b"}
    assert [c[1:] for c in ruler.calls] == [("submit", "a"), ("submit", "b"), ("delete", "stale")]


def test_apply_nothing(ruler):
    report = SyncExecutor(_transport(ruler)).apply({}, set())
    assert report.applied == [] and report.deleted == []
    assert ruler.calls == []


def test_first_failure_stops_the_pass(ruler):
    ruler.fail("submit", "b")
    executor = SyncExecutor(_transport(ruler))

    with pytest.raises(RemoteCallError) as excinfo:
        executor.apply({"a": PAYLOAD, "b": PAYLOAD, "c": PAYLOAD}, {"old"})

    assert excinfo.value.namespace == "b"
    assert excinfo.value.operation == "submit"
    assert excinfo.value.tenant_id == "tenant-a"
    # "a" stays applied, "c" and the deletion never ran
    assert ruler.namespaces("tenant-a") == {"a"}
    assert [c[1:] for c in ruler.calls] == [("submit", "a"), ("submit", "b")]


def test_delete_failure_names_namespace(ruler):
    ruler.fail("delete", "old")
    with pytest.raises(RemoteCallError) as excinfo:
        SyncExecutor(_transport(ruler)).delete_all(["old"])
    assert excinfo.value.namespace == "old"
    assert excinfo.value.operation == "delete"


def test_delete_all_is_sorted(ruler):
    deleted = SyncExecutor(_transport(ruler)).delete_all({"c", "a", "b"})
    assert deleted == ["a", "b", "c"]


def test_other_errors_are_wrapped(ruler):
    transport = _transport(ruler)

    def reject(namespace, payload):
        raise SerializationError("payload is not a rule file")

    transport.submit_groups = reject
    with pytest.raises(RemoteCallError, match="submit namespace 'a' failed") as excinfo:
        SyncExecutor(transport).apply({"a": b"nonsense"})
    assert isinstance(excinfo.value.__cause__, SerializationError)


# --- Alertmanager ---

AM_CONFIG = "route: {receiver: team}\nreceivers: [{name: team}]\n"


def test_alertmanager_is_loaded_after_rules(ruler):
    alertmanager = AlertmanagerSpec(config=AM_CONFIG, templates={"team.tmpl": "{{ define \"x\" }}{{ end }}"})
    report = SyncExecutor(_transport(ruler)).apply({"a": PAYLOAD}, (), alertmanager)

    assert report.alertmanager
    assert [c[1] for c in ruler.calls] == ["submit", "alertmanager-load"]
    assert ruler.alertmanager["tenant-a"] == (AM_CONFIG, {"team.tmpl": "{{ define \"x\" }}{{ end }}"})


def test_no_alertmanager_means_no_call(ruler):
    report = SyncExecutor(_transport(ruler)).apply({"a": PAYLOAD})
    assert not report.alertmanager
    assert "alertmanager-load" not in [c[1] for c in ruler.calls]


def test_alertmanager_failure_is_tagged(ruler):
    ruler.fail("alertmanager-load")
    with pytest.raises(RemoteCallError) as excinfo:
        SyncExecutor(_transport(ruler)).load_alertmanager(AlertmanagerSpec(config=AM_CONFIG))
    assert excinfo.value.tenant_id == "tenant-a"
    assert excinfo.value.namespace == ""


def test_alertmanager_delete(ruler):
    ruler.alertmanager["tenant-a"] = (AM_CONFIG, {})
    SyncExecutor(_transport(ruler)).delete_alertmanager()
    assert "tenant-a" not in ruler.alertmanager


def test_alertmanager_other_errors_are_wrapped(ruler):
    transport = _transport(ruler)

    def reject():
        raise SerializationError("config refused")

    transport.delete_alertmanager_config = reject
    with pytest.raises(RemoteCallError, match="delete Alertmanager configuration failed") as excinfo:
        SyncExecutor(transport).delete_alertmanager()
    assert excinfo.value.operation == "alertmanager-delete"

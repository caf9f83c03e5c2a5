"""Tests for the HTTP ruler transport, against an in-process fake ruler API."""

import base64
from urllib.parse import unquote

import httpx
import pytest
import yaml

from rulesync.auth.credentials import Credentials
from rulesync.exceptions import RemoteCallError, SerializationError
from rulesync.transport.http_api import (
    DEFAULT_ALERTMANAGER_PATH,
    DEFAULT_API_PATH,
    HttpRulerTransport,
    split_groups,
)

TWO_GROUPS = b"""\
groups:
- name: first
  rules:
  - alert: A
    expr: vector(1)
- name: second
  interval: 1m
  rules:
  - record: r
    expr: vector(2)
"""

ONE_GROUP = b"""\
groups:
- name: second
  rules:
  - record: r
    expr: vector(3)
"""


class FakeRulerAPI:
    """Minimal ruler config API keeping ``{namespace: [group, ...]}`` in memory.

    Also serves the Alertmanager config API, keeping the last loaded body.
    """

    def __init__(self, prefix=DEFAULT_API_PATH):
        self.prefix = prefix
        self.namespaces = {}
        self.alertmanager = None
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.decode().split("?")[0]
        if path == DEFAULT_ALERTMANAGER_PATH:
            return self._alertmanager(request)
        if not path.startswith(self.prefix):
            return httpx.Response(404, text="unknown path")
        parts = [unquote(p) for p in path[len(self.prefix):].split("/") if p]

        if request.method == "GET" and not parts:
            if not self.namespaces:
                return httpx.Response(404, text="no rule groups found")
            return httpx.Response(200, text=yaml.safe_dump(self.namespaces))

        namespace = parts[0]
        if request.method == "GET":
            if namespace not in self.namespaces:
                return httpx.Response(404, text="no rule groups found")
            return httpx.Response(200, text=yaml.safe_dump({namespace: self.namespaces[namespace]}))

        if request.method == "POST":
            group = yaml.safe_load(request.content)
            groups = [g for g in self.namespaces.get(namespace, []) if g["name"] != group["name"]]
            self.namespaces[namespace] = groups + [group]
            return httpx.Response(202, json={"status": "success"})

        if request.method == "DELETE" and len(parts) == 2:
            groups = self.namespaces.get(namespace, [])
            remaining = [g for g in groups if g["name"] != parts[1]]
            if len(remaining) == len(groups):
                return httpx.Response(404, text="group does not exist")
            if remaining:
                self.namespaces[namespace] = remaining
            else:
                del self.namespaces[namespace]
            return httpx.Response(202, json={"status": "success"})

        if request.method == "DELETE":
            if self.namespaces.pop(namespace, None) is None:
                return httpx.Response(404, text="namespace does not exist")
            return httpx.Response(202, json={"status": "success"})

        return httpx.Response(405)

    def _alertmanager(self, request):
        if request.method == "POST":
            self.alertmanager = yaml.safe_load(request.content)
            return httpx.Response(201)
        if request.method == "DELETE":
            if self.alertmanager is None:
                return httpx.Response(404, text="alertmanager configuration not found")
            self.alertmanager = None
            return httpx.Response(200)
        return httpx.Response(405)


def _transport(api, credentials=None, address="http://ruler.test", **kwargs):
    return HttpRulerTransport(
        "tenant-a",
        address,
        credentials=credentials,
        transport=httpx.MockTransport(api),
        **kwargs,
    )


# --- Inventory ---


def test_inventory_empty_on_404():
    with _transport(FakeRulerAPI()) as transport:
        assert transport.list_inventory() == []


def test_inventory_lists_every_group():
    api = FakeRulerAPI()
    api.namespaces = {"b": [{"name": "g1"}], "a": [{"name": "g1"}, {"name": "g2"}]}
    with _transport(api) as transport:
        entries = transport.list_inventory()
    assert [(e.namespace, e.group) for e in entries] == [("a", "g1"), ("a", "g2"), ("b", "g1")]


# --- Submission ---


def test_submit_posts_each_group():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.submit_groups("monitoring_node", TWO_GROUPS)

    assert [g["name"] for g in api.namespaces["monitoring_node"]] == ["first", "second"]
    posts = [r for r in api.requests if r.method == "POST"]
    assert len(posts) == 2
    assert posts[0].headers["Content-Type"] == "application/yaml"
    assert yaml.safe_load(posts[1].content) == {
        "name": "second",
        "interval": "1m",
        "rules": [{"record": "r", "expr": "vector(2)"}],
    }


def test_submit_replaces_the_namespace():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.submit_groups("ns", TWO_GROUPS)
        transport.submit_groups("ns", ONE_GROUP)

    assert api.namespaces["ns"] == [
        {"name": "second", "rules": [{"record": "r", "expr": "vector(3)"}]}
    ]


def test_submit_empty_payload_clears_namespace():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.submit_groups("ns", TWO_GROUPS)
        transport.submit_groups("ns", b"groups: []\n")
    assert "ns" not in api.namespaces


def test_submit_is_idempotent():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.submit_groups("ns", TWO_GROUPS)
        snapshot = yaml.safe_dump(api.namespaces)
        transport.submit_groups("ns", TWO_GROUPS)
    assert yaml.safe_dump(api.namespaces) == snapshot


def test_submit_rejects_invalid_payload_before_any_request():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        with pytest.raises(SerializationError):
            transport.submit_groups("ns", b"groups: {not: a list}\n")
    assert api.requests == []


def test_namespace_is_path_escaped():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.submit_groups("team a/rules", ONE_GROUP)
    assert "team%20a%2Frules" in str(api.requests[0].url)


# --- Deletion ---


def test_delete_namespace():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.submit_groups("ns", TWO_GROUPS)
        transport.delete_namespace("ns")
    assert api.namespaces == {}


def test_delete_missing_namespace_is_not_an_error():
    with _transport(FakeRulerAPI()) as transport:
        transport.delete_namespace("never-existed")


# --- Errors ---


def test_server_error_raises_remote_call_error():
    def failing(request):
        return httpx.Response(500, text="internal error")

    with _transport(failing) as transport:
        with pytest.raises(RemoteCallError) as excinfo:
            transport.delete_namespace("ns")

    error = excinfo.value
    assert error.status_code == 500
    assert error.namespace == "ns"
    assert error.operation == "delete"
    assert "internal error" in error.message


def test_connection_error_raises_remote_call_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    with _transport(unreachable) as transport:
        with pytest.raises(RemoteCallError, match="connection refused"):
            transport.list_inventory()


def test_garbage_inventory_raises_remote_call_error():
    def garbage(request):
        return httpx.Response(200, text="- not\n- a mapping\n")

    with _transport(garbage) as transport:
        with pytest.raises(RemoteCallError, match="expected a mapping"):
            transport.list_inventory()


# --- Headers and auth ---


def test_tenant_header_and_bearer_token():
    api = FakeRulerAPI()
    with _transport(api, Credentials(token="t0ken")) as transport:
        transport.list_inventory()
    request = api.requests[0]
    assert request.headers["X-Scope-OrgID"] == "tenant-a"
    assert request.headers["Authorization"] == "Bearer t0ken"


def test_basic_auth():
    api = FakeRulerAPI()
    with _transport(api, Credentials(username="user", key="k3y")) as transport:
        transport.list_inventory()
    expected = base64.b64encode(b"user:k3y").decode()
    assert api.requests[0].headers["Authorization"] == f"Basic {expected}"


def test_anonymous_sends_no_authorization():
    api = FakeRulerAPI()
    with _transport(api) as transport:
        transport.list_inventory()
    assert "Authorization" not in api.requests[0].headers


def test_address_path_prefix_is_kept():
    api = FakeRulerAPI(prefix="/mimir" + DEFAULT_API_PATH)
    with _transport(api, address="http://gateway.test/mimir/") as transport:
        transport.submit_groups("ns", ONE_GROUP)
    assert "ns" in api.namespaces


def test_custom_api_path():
    api = FakeRulerAPI(prefix="/api/v1/rules")
    with _transport(api, api_path="api/v1/rules/") as transport:
        transport.submit_groups("ns", ONE_GROUP)
    assert "ns" in api.namespaces


# --- Payload splitting ---


def test_split_groups_keeps_order():
    names = [name for name, _ in split_groups(TWO_GROUPS)]
    assert names == ["first", "second"]


# --- Alertmanager ---

AM_CONFIG = "route:\n  receiver: team\nreceivers:\n  - name: team\n"


def test_load_alertmanager_posts_config_and_templates():
    api = FakeRulerAPI()
    with _transport(api, Credentials(token="t0ken")) as transport:
        transport.load_alertmanager_config(AM_CONFIG, {"team.tmpl": '{{ define "t" }}x{{ end }}'})

    assert api.alertmanager == {
        "template_files": {"team.tmpl": '{{ define "t" }}x{{ end }}'},
        "alertmanager_config": AM_CONFIG,
    }
    request = api.requests[0]
    assert request.method == "POST"
    assert request.headers["X-Scope-OrgID"] == "tenant-a"
    assert request.headers["Content-Type"] == "application/yaml"


def test_delete_alertmanager():
    api = FakeRulerAPI()
    api.alertmanager = {"alertmanager_config": AM_CONFIG, "template_files": {}}
    with _transport(api) as transport:
        transport.delete_alertmanager_config()
        # Already gone: still not an error
        transport.delete_alertmanager_config()
    assert api.alertmanager is None


def test_alertmanager_rejection_raises_remote_call_error():
    def rejecting(request):
        return httpx.Response(400, text="error validating Alertmanager config")

    with _transport(rejecting) as transport:
        with pytest.raises(RemoteCallError, match="returned 400") as excinfo:
            transport.load_alertmanager_config(AM_CONFIG, {})
    assert excinfo.value.operation == "alertmanager-load"


def test_custom_alertmanager_path():
    seen = []

    def api(request):
        seen.append(request.url.path)
        return httpx.Response(201)

    with _transport(api, alertmanager_path="mimir/api/v1/alerts") as transport:
        transport.load_alertmanager_config(AM_CONFIG, {})
    assert seen == ["/mimir/api/v1/alerts"]

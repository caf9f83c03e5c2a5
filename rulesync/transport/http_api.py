"""HTTP transport — talk to the ruler configuration API directly.

Endpoints used (relative to the configured API path)::

    GET    {api}                      all namespaces and groups (YAML)
    GET    {api}/{namespace}          groups of one namespace (YAML)
    POST   {api}/{namespace}          create or replace one group (YAML body)
    DELETE {api}/{namespace}/{group}  delete one group
    DELETE {api}/{namespace}          delete a namespace

The Alertmanager configuration lives under its own path::

    POST   {alertmanager}             create or replace config and templates (YAML body)
    DELETE {alertmanager}             delete the config

The tenant is selected with the ``X-Scope-OrgID`` header.
"""

from __future__ import annotations

import logging
from typing import Mapping
from urllib.parse import quote

import httpx
import yaml

from rulesync.auth.credentials import Credentials
from rulesync.exceptions import RemoteCallError
from rulesync.sync.alertmanager import encode as encode_alertmanager
from rulesync.sync.packer import unpack
from rulesync.transport.base import InventoryEntry, RuleStoreTransport

logger = logging.getLogger(__name__)

DEFAULT_API_PATH = "/prometheus/config/v1/rules"
DEFAULT_ALERTMANAGER_PATH = "/api/v1/alerts"
TENANT_HEADER = "X-Scope-OrgID"
YAML_CONTENT_TYPE = "application/yaml"


class HttpRulerTransport(RuleStoreTransport):
    """Ruler config API client for one tenant.

    Parameters
    ----------
    tenant_id : str
        Tenant the calls are scoped to.
    address : str
        Base URL of the ruler, e.g. ``https://mimir.example.com``.
    credentials : Credentials | None
        Bearer token or user/key pair; anonymous when *None*.
    api_path : str
        Path of the rules config API under ``address``.
    alertmanager_path : str
        Path of the Alertmanager config API under ``address``.
    timeout : float
        Per-request timeout in seconds.
    transport : httpx.BaseTransport | None
        Custom httpx transport (used for testing).
    """

    def __init__(
        self,
        tenant_id: str,
        address: str,
        credentials: Credentials | None = None,
        api_path: str = DEFAULT_API_PATH,
        alertmanager_path: str = DEFAULT_ALERTMANAGER_PATH,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(tenant_id, address)
        self.api_path = "/" + api_path.strip("/")
        self.alertmanager_path = "/" + alertmanager_path.strip("/")

        credentials = credentials or Credentials()
        headers = {TENANT_HEADER: tenant_id}
        auth = None
        if credentials.token:
            headers["Authorization"] = f"Bearer {credentials.token}"
        elif credentials.key:
            auth = httpx.BasicAuth(credentials.username, credentials.key)

        self._client = httpx.Client(
            base_url=self.address,
            headers=headers,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    # -- contract ------------------------------------------------------------

    def list_inventory(self) -> list[InventoryEntry]:
        response = self._request("GET", self.api_path, operation="list", allow_missing=True)
        if response is None:
            return []

        rule_set = _load_rule_set(response, operation="list")
        entries = []
        for namespace in sorted(rule_set):
            for group in rule_set[namespace] or []:
                entries.append(InventoryEntry(namespace=namespace, group=_group_name(group)))
        return entries

    def submit_groups(self, namespace: str, payload: bytes) -> None:
        groups = split_groups(payload)
        path = self._namespace_path(namespace)

        for name, body in groups:
            logger.info("Submitting rule group %s/%s for tenant %s", namespace, name, self.tenant_id)
            self._request(
                "POST",
                path,
                namespace=namespace,
                operation="submit",
                content=body,
                headers={"Content-Type": YAML_CONTENT_TYPE},
            )

        # Replace semantics: drop groups the namespace no longer declares
        wanted = {name for name, _ in groups}
        for stale in self._namespace_groups(namespace):
            if stale not in wanted:
                logger.info("Deleting stale rule group %s/%s", namespace, stale)
                self._request(
                    "DELETE",
                    f"{path}/{quote(stale, safe='')}",
                    namespace=namespace,
                    operation="delete-group",
                    allow_missing=True,
                )

    def delete_namespace(self, namespace: str) -> None:
        logger.info("Deleting rule namespace %s for tenant %s", namespace, self.tenant_id)
        self._request(
            "DELETE",
            self._namespace_path(namespace),
            namespace=namespace,
            operation="delete",
            allow_missing=True,
        )

    def load_alertmanager_config(self, config: str, templates: Mapping[str, str]) -> None:
        logger.info("Loading Alertmanager configuration for tenant %s", self.tenant_id)
        self._request(
            "POST",
            self.alertmanager_path,
            operation="alertmanager-load",
            content=encode_alertmanager(config, templates),
            headers={"Content-Type": YAML_CONTENT_TYPE},
        )

    def delete_alertmanager_config(self) -> None:
        logger.info("Deleting Alertmanager configuration for tenant %s", self.tenant_id)
        self._request(
            "DELETE", self.alertmanager_path, operation="alertmanager-delete", allow_missing=True
        )

    def close(self) -> None:
        self._client.close()

    # -- helpers -------------------------------------------------------------

    def _namespace_path(self, namespace: str) -> str:
        return f"{self.api_path}/{quote(namespace, safe='')}"

    def _namespace_groups(self, namespace: str) -> list[str]:
        response = self._request(
            "GET",
            self._namespace_path(namespace),
            namespace=namespace,
            operation="get",
            allow_missing=True,
        )
        if response is None:
            return []
        rule_set = _load_rule_set(response, operation="get", namespace=namespace)
        return [_group_name(g) for g in rule_set.get(namespace) or []]

    def _request(
        self,
        method: str,
        path: str,
        namespace: str = "",
        operation: str = "",
        allow_missing: bool = False,
        **kwargs,
    ) -> httpx.Response | None:
        """Send a request; return None for an allowed 404, raise on any other failure."""
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteCallError(
                f"{method} {path} failed: {e}",
                namespace=namespace,
                operation=operation,
                tenant_id=self.tenant_id,
            ) from e

        if allow_missing and response.status_code == 404:
            return None

        if response.is_error:
            raise RemoteCallError(
                f"{method} {path} returned {response.status_code}: {response.text.strip()[:500]}",
                namespace=namespace,
                operation=operation,
                status_code=response.status_code,
                tenant_id=self.tenant_id,
            )
        return response


def _load_rule_set(response: httpx.Response, operation: str, namespace: str = "") -> dict:
    try:
        data = yaml.safe_load(response.text) or {}
    except yaml.YAMLError as e:
        raise RemoteCallError(
            f"unable to parse ruler response: {e}", namespace=namespace, operation=operation
        ) from e
    if not isinstance(data, dict):
        raise RemoteCallError(
            "unexpected ruler response: expected a mapping of namespaces",
            namespace=namespace,
            operation=operation,
        )
    return data


def _group_name(group) -> str:
    return str(group.get("name", "")) if isinstance(group, dict) else str(group)


def split_groups(payload: bytes) -> list[tuple[str, bytes]]:
    """Split a namespace payload into one YAML body per group, in order."""
    unpack(payload)  # validates the payload shape
    data = yaml.safe_load(payload) or {}
    return [
        (str(group["name"]), yaml.safe_dump(group, sort_keys=False, allow_unicode=True).encode("utf-8"))
        for group in data.get("groups") or []
    ]

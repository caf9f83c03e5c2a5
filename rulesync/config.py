"""Configuration — process settings from the environment, tenants from YAML.

A tenants file holds either a ``tenants:`` list::

    tenants:
      - id: team-a
        url: https://mimir.example.com
        auth:
          tokenSecretRef: {name: team-a-ruler}
        rules:
          selectors:
            - matchLabels: {team: a}
            - "catalog in (kubernetes,node)"
        overrides:
          KubePodCrashLooping: {disable: true}
          HighErrorRate: {for: 15m}
        externalLabels: {tenant: team-a}
        alertmanager:
          config: |
            route: {receiver: team-a}
            receivers: [{name: team-a}]

or ``kind: MimirRules`` manifests carrying the same fields under ``spec``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from rulesync.exceptions import ConfigurationError, SelectorError, SerializationError
from rulesync.models.rules import Override
from rulesync.models.tenant import AlertmanagerSpec, AuthConfig, SecretRef, TenantSpec
from rulesync.sources.selectors import LabelSelector

TRANSPORT_HTTP = "http"
TRANSPORT_MIMIRTOOL = "mimirtool"
TRANSPORTS = (TRANSPORT_HTTP, TRANSPORT_MIMIRTOOL)

TENANT_MANIFEST_KIND = "MimirRules"


@dataclass
class Settings:
    """Process-wide settings."""

    transport: str = TRANSPORT_HTTP
    api_path: str = "/prometheus/config/v1/rules"
    alertmanager_api_path: str = "/api/v1/alerts"
    http_timeout: float = 30.0
    mimirtool_path: str = "mimirtool"
    mimirtool_timeout: int = 120
    rules_location: str = ""  # Directory or Git URL of the rule pool
    secrets_dir: str = ""
    status_file: str = ".rulesync/status.json"
    resync_interval: int = 300
    max_workers: int = 4
    log_level: str = "INFO"

    def __post_init__(self):
        if self.transport not in TRANSPORTS:
            raise ConfigurationError(
                f"invalid transport '{self.transport}', expected one of {', '.join(TRANSPORTS)}"
            )
        if self.resync_interval <= 0:
            raise ConfigurationError("resync interval must be positive")
        if self.max_workers <= 0:
            raise ConfigurationError("max workers must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            transport=env.get("RULESYNC_TRANSPORT", defaults.transport).lower(),
            api_path=env.get("RULESYNC_API_PATH", defaults.api_path),
            alertmanager_api_path=env.get(
                "RULESYNC_ALERTMANAGER_API_PATH", defaults.alertmanager_api_path
            ),
            http_timeout=_number(env, "RULESYNC_HTTP_TIMEOUT", defaults.http_timeout, float),
            mimirtool_path=env.get("RULESYNC_MIMIRTOOL_PATH", defaults.mimirtool_path),
            mimirtool_timeout=_number(env, "RULESYNC_MIMIRTOOL_TIMEOUT", defaults.mimirtool_timeout, int),
            rules_location=env.get("RULESYNC_RULES", defaults.rules_location),
            secrets_dir=env.get("RULESYNC_SECRETS_DIR", defaults.secrets_dir),
            status_file=env.get("RULESYNC_STATUS_FILE", defaults.status_file),
            resync_interval=_number(env, "RULESYNC_RESYNC_INTERVAL", defaults.resync_interval, int),
            max_workers=_number(env, "RULESYNC_MAX_WORKERS", defaults.max_workers, int),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
        )


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


# ── Tenants ──────────────────────────────────────────────────────────


def load_tenants(path: str | Path) -> list[TenantSpec]:
    """Load tenant definitions from a YAML file.

    Raises:
        ConfigurationError: If the file is unreadable or a tenant is invalid.
        SelectorError: If a tenant declares a malformed selector.
    """
    try:
        with open(path) as f:
            raw_documents = list(yaml.safe_load_all(f))
    except OSError as e:
        raise ConfigurationError(f"Failed to read tenants file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse tenants file {path}: {e}") from e

    tenants: list[TenantSpec] = []
    for data in raw_documents:
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: each YAML document must be a mapping")

        if data.get("kind") == TENANT_MANIFEST_KIND:
            tenants.append(_tenant_from_manifest(data))
        elif "tenants" in data:
            for tenant_data in data.get("tenants") or []:
                tenants.append(parse_tenant(tenant_data))
        else:
            raise ConfigurationError(
                f"{path}: expected a 'tenants' list or a {TENANT_MANIFEST_KIND} manifest"
            )

    seen: set[str] = set()
    for tenant in tenants:
        if tenant.id in seen:
            raise ConfigurationError(f"tenant '{tenant.id}' is defined more than once")
        seen.add(tenant.id)

    return tenants


def parse_tenant(data: dict, name: str = "", namespace: str = "") -> TenantSpec:
    """Build a TenantSpec from a tenant mapping."""
    if not isinstance(data, dict):
        raise ConfigurationError("tenant definition must be a mapping")

    tenant_id = str(data.get("id") or "")
    if not tenant_id:
        raise ConfigurationError(f"tenant {name or '(unnamed)'} has no 'id'")
    url = str(data.get("url") or "")
    if not url:
        raise ConfigurationError(f"tenant '{tenant_id}' has no 'url'", tenant_id=tenant_id)

    rules = data.get("rules") or {}
    if not isinstance(rules, dict):
        raise ConfigurationError(f"tenant '{tenant_id}': 'rules' must be a mapping", tenant_id=tenant_id)
    raw_selectors = rules.get("selectors") or []
    if isinstance(raw_selectors, (str, dict)):
        raw_selectors = [raw_selectors]

    try:
        selectors = [LabelSelector.coerce(s) for s in raw_selectors]
    except SelectorError as e:
        raise SelectorError(f"tenant '{tenant_id}': {e.message}", tenant_id=tenant_id) from e

    overrides_data = data.get("overrides") or {}
    if not isinstance(overrides_data, dict):
        raise ConfigurationError(
            f"tenant '{tenant_id}': 'overrides' must be a mapping", tenant_id=tenant_id
        )
    overrides = {}
    for rule_name, override_data in overrides_data.items():
        try:
            overrides[str(rule_name)] = Override.from_dict(override_data)
        except SerializationError as e:
            raise ConfigurationError(
                f"tenant '{tenant_id}': override '{rule_name}': {e.message}", tenant_id=tenant_id
            ) from e
    try:
        external_labels = _labels(data.get("externalLabels"))
    except SerializationError as e:
        raise ConfigurationError(f"tenant '{tenant_id}': {e.message}", tenant_id=tenant_id) from e

    deletion_requested = data.get("deletionRequested")
    if deletion_requested is None:
        deletion_requested = False
    if not isinstance(deletion_requested, bool):
        raise ConfigurationError(
            f"tenant '{tenant_id}': 'deletionRequested' must be true or false, "
            f"got {deletion_requested!r}",
            tenant_id=tenant_id,
        )

    return TenantSpec(
        id=tenant_id,
        url=url,
        selectors=selectors,
        overrides=overrides,
        external_labels=external_labels,
        auth=_auth(data.get("auth"), tenant_id),
        alertmanager=_alertmanager(data.get("alertmanager"), tenant_id),
        deletion_requested=deletion_requested,
        name=name,
        namespace=namespace,
    )


def _tenant_from_manifest(data: dict) -> TenantSpec:
    metadata = data.get("metadata") or {}
    spec = dict(data.get("spec") or {})
    if metadata.get("deletionTimestamp"):
        spec["deletionRequested"] = True
    return parse_tenant(
        spec,
        name=str(metadata.get("name") or ""),
        namespace=str(metadata.get("namespace") or ""),
    )


def _auth(data: dict | None, tenant_id: str) -> AuthConfig | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(f"tenant '{tenant_id}': 'auth' must be a mapping", tenant_id=tenant_id)
    return AuthConfig(
        user=str(data.get("user") or ""),
        key=str(data.get("key") or ""),
        key_secret_ref=_secret_ref(data.get("keySecretRef"), tenant_id),
        token=str(data.get("token") or ""),
        token_secret_ref=_secret_ref(data.get("tokenSecretRef"), tenant_id),
    )


def _alertmanager(data: dict | None, tenant_id: str) -> AlertmanagerSpec | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"tenant '{tenant_id}': 'alertmanager' must be a mapping", tenant_id=tenant_id
        )

    config = data.get("config")
    if isinstance(config, dict):
        config = yaml.safe_dump(config, sort_keys=False)
    if not isinstance(config, str) or not config.strip():
        raise ConfigurationError(
            f"tenant '{tenant_id}': 'alertmanager.config' must be a non-empty string or mapping",
            tenant_id=tenant_id,
        )

    templates = data.get("templates") or {}
    if not isinstance(templates, dict) or not all(isinstance(v, str) for v in templates.values()):
        raise ConfigurationError(
            f"tenant '{tenant_id}': 'alertmanager.templates' must map names to template text",
            tenant_id=tenant_id,
        )
    return AlertmanagerSpec(config=config, templates={str(k): v for k, v in templates.items()})


def _secret_ref(data: dict | None, tenant_id: str) -> SecretRef | None:
    if data is None:
        return None
    if not isinstance(data, dict) or not data.get("name"):
        raise ConfigurationError(
            f"tenant '{tenant_id}': secret references need a 'name'", tenant_id=tenant_id
        )
    return SecretRef(name=str(data["name"]))


def _labels(data) -> dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SerializationError("'externalLabels' must be a mapping")
    return {str(k): str(v) for k, v in data.items()}

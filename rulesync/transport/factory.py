"""Pick and build the transport for a tenant from settings."""

from __future__ import annotations

from typing import Callable

from rulesync.auth.credentials import Credentials
from rulesync.config import TRANSPORT_HTTP, TRANSPORT_MIMIRTOOL, Settings
from rulesync.exceptions import ConfigurationError
from rulesync.models.tenant import TenantSpec
from rulesync.transport.base import RuleStoreTransport
from rulesync.transport.http_api import HttpRulerTransport
from rulesync.transport.mimirtool import MimirtoolTransport

TransportFactory = Callable[[TenantSpec, Credentials], RuleStoreTransport]


def create_transport(
    settings: Settings, tenant: TenantSpec, credentials: Credentials
) -> RuleStoreTransport:
    if settings.transport == TRANSPORT_HTTP:
        return HttpRulerTransport(
            tenant.id,
            tenant.url,
            credentials=credentials,
            api_path=settings.api_path,
            alertmanager_path=settings.alertmanager_api_path,
            timeout=settings.http_timeout,
        )
    if settings.transport == TRANSPORT_MIMIRTOOL:
        return MimirtoolTransport(
            tenant.id,
            tenant.url,
            credentials=credentials,
            binary=settings.mimirtool_path,
            timeout=settings.mimirtool_timeout,
        )
    raise ConfigurationError(f"unknown transport '{settings.transport}'")


def transport_factory(settings: Settings) -> TransportFactory:
    """Bind settings into a factory the reconciler can call per pass."""

    def factory(tenant: TenantSpec, credentials: Credentials) -> RuleStoreTransport:
        return create_transport(settings, tenant, credentials)

    return factory

"""Tenant models — what one tenant wants synced, and how the last pass went."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from rulesync.models.rules import Override
from rulesync.sources.selectors import LabelSelector


class TenantState(Enum):
    """Lifecycle of a tenant as seen by the reconciler."""

    ACTIVE = "active"  # Exists, not being removed
    DELETING = "deleting"  # Deletion requested, remote cleanup pending
    REMOVED = "removed"  # Remote cleanup done, lifecycle marker dropped


class SyncStatus(Enum):
    SYNCED = "Synced"
    FAILED = "Failed"


@dataclass
class SecretRef:
    """Reference to a named secret holding a credential."""

    name: str


@dataclass
class AuthConfig:
    """Authentication settings for the remote ruler endpoint.

    Either a user/API key pair or a bearer token; each value may be given
    inline or through a secret reference. A token always wins.
    """

    user: str = ""
    key: str = ""
    key_secret_ref: SecretRef | None = None
    token: str = ""
    token_secret_ref: SecretRef | None = None


@dataclass
class AlertmanagerSpec:
    """Alertmanager configuration managed for a tenant.

    ``config`` is the alertmanager.yml text; ``templates`` maps template
    file names to their contents.
    """

    config: str
    templates: dict[str, str] = field(default_factory=dict)


@dataclass
class TenantSpec:
    """Desired state for one tenant of the remote ruler."""

    id: str
    url: str
    selectors: list[LabelSelector] = field(default_factory=list)
    overrides: dict[str, Override] = field(default_factory=dict)
    external_labels: dict[str, str] = field(default_factory=dict)
    auth: AuthConfig | None = None
    alertmanager: AlertmanagerSpec | None = None  # None: not managed
    deletion_requested: bool = False

    # Identity of the declaring manifest, if any
    name: str = ""
    namespace: str = ""


@dataclass
class TenantSyncResult:
    """Outcome of one reconciliation pass for a tenant."""

    tenant_id: str
    status: SyncStatus
    reason: str = ""
    state: TenantState = TenantState.ACTIVE
    applied: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    alertmanager: bool = False  # Alertmanager configuration loaded or deleted
    finished_at: str = ""

    def __post_init__(self):
        if not self.finished_at:
            self.finished_at = datetime.now(timezone.utc).isoformat()

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.SYNCED

    @classmethod
    def synced(
        cls,
        tenant_id: str,
        applied: list[str] | None = None,
        deleted: list[str] | None = None,
        state: TenantState = TenantState.ACTIVE,
        alertmanager: bool = False,
    ) -> TenantSyncResult:
        return cls(
            tenant_id=tenant_id,
            status=SyncStatus.SYNCED,
            state=state,
            applied=sorted(applied or []),
            deleted=sorted(deleted or []),
            alertmanager=alertmanager,
        )

    @classmethod
    def failed(
        cls, tenant_id: str, reason: str, state: TenantState = TenantState.ACTIVE
    ) -> TenantSyncResult:
        return cls(tenant_id=tenant_id, status=SyncStatus.FAILED, reason=reason, state=state)

    def summary(self) -> str:
        if not self.ok:
            return f"{self.tenant_id}: {self.status.value} ({self.reason})"
        alertmanager = ", alertmanager" if self.alertmanager else ""
        return (
            f"{self.tenant_id}: {self.status.value} "
            f"[{len(self.applied)} applied, {len(self.deleted)} deleted{alertmanager}]"
        )

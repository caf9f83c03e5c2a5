"""Status store — last reconciliation result per tenant.

Stores results as JSON in a local file, or in memory when no path is
given. Writes are serialized so concurrent tenant passes can report
safely.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path

from rulesync.exceptions import ConfigurationError
from rulesync.models.tenant import SyncStatus, TenantState, TenantSyncResult


class StatusStore:
    """File-backed record of each tenant's last sync outcome."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._index: dict[str, dict] = self._load_index()

    def report(self, tenant_id: str, result: TenantSyncResult) -> None:
        """Record ``result`` as the latest outcome for ``tenant_id``."""
        with self._lock:
            self._index[tenant_id] = _result_to_dict(result)
            self._save_index()

    def get(self, tenant_id: str) -> TenantSyncResult | None:
        with self._lock:
            data = self._index.get(tenant_id)
        return _dict_to_result(data) if data else None

    def list_all(self) -> list[TenantSyncResult]:
        """All recorded results, ordered by tenant id."""
        with self._lock:
            items = sorted(self._index.items())
        return [_dict_to_result(data) for _, data in items]

    def remove(self, tenant_id: str) -> bool:
        """Drop a tenant's record. Returns False if there was none."""
        with self._lock:
            if tenant_id not in self._index:
                return False
            del self._index[tenant_id]
            self._save_index()
        return True

    def _load_index(self) -> dict[str, dict]:
        if not (self.path and self.path.exists()):
            return {}
        try:
            with open(self.path) as f:
                index = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to read status file {self.path}: {e}") from e
        if not isinstance(index, dict):
            raise ConfigurationError(f"Status file {self.path} does not hold a JSON object")
        return index

    def _save_index(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self._index, f, indent=2)


def _result_to_dict(result: TenantSyncResult) -> dict:
    return {
        "tenant_id": result.tenant_id,
        "status": result.status.value,
        "reason": result.reason,
        "state": result.state.value,
        "applied": result.applied,
        "deleted": result.deleted,
        "alertmanager": result.alertmanager,
        "finished_at": result.finished_at,
    }


def _dict_to_result(data: dict) -> TenantSyncResult:
    return TenantSyncResult(
        tenant_id=data["tenant_id"],
        status=SyncStatus(data["status"]),
        reason=data.get("reason", ""),
        state=TenantState(data.get("state", TenantState.ACTIVE.value)),
        applied=data.get("applied", []),
        deleted=data.get("deleted", []),
        alertmanager=data.get("alertmanager", False),
        finished_at=data.get("finished_at", ""),
    )

"""mimirtool transport — drive the ruler through the ``mimirtool`` CLI.

Rule calls shell out to ``mimirtool rules ...`` and Alertmanager calls to
``mimirtool alertmanager ...``. Payloads are written to a temporary
directory that is removed after the call, whatever its outcome. Deleting a
namespace syncs an empty rule file for it. An Alertmanager configuration is
verified before it is loaded.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Mapping

from rulesync.auth.credentials import Credentials
from rulesync.exceptions import RemoteCallError
from rulesync.transport.base import InventoryEntry, RuleStoreTransport

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "mimirtool"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class MimirtoolTransport(RuleStoreTransport):
    """Rule store access through the mimirtool CLI for one tenant."""

    def __init__(
        self,
        tenant_id: str,
        address: str,
        credentials: Credentials | None = None,
        binary: str = DEFAULT_BINARY,
        timeout: int = 120,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """Initialize the transport.

        Args:
            tenant_id: Tenant the calls are scoped to.
            address: Ruler address passed as ``--address``.
            credentials: Token or user/key pair; anonymous when None.
            binary: mimirtool executable name or path.
            timeout: Seconds before a single CLI call is abandoned.
            runner: Function with the ``subprocess.run`` signature.
        """
        super().__init__(tenant_id, address)
        self.credentials = credentials or Credentials()
        self.binary = binary
        self.timeout = timeout
        self._runner = runner

    def list_inventory(self) -> list[InventoryEntry]:
        stdout = self._call(
            ["rules", "list", *self._target_args(), "--format=json", "--disable-color"],
            operation="list",
        )
        if not stdout.strip():
            return []

        try:
            elements = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise RemoteCallError(
                f"unable to parse {self.binary} output: {e}",
                operation="list",
                tenant_id=self.tenant_id,
            ) from e

        return [
            InventoryEntry(namespace=str(e.get("namespace", "")), group=str(e.get("rulegroup", "")))
            for e in elements or []
        ]

    def submit_groups(self, namespace: str, payload: bytes) -> None:
        self._sync(namespace, payload, operation="submit")

    def delete_namespace(self, namespace: str) -> None:
        self._sync(namespace, b"", operation="delete")

    def load_alertmanager_config(self, config: str, templates: Mapping[str, str]) -> None:
        with tempfile.TemporaryDirectory(prefix=f"rulesync_{_safe_name(self.tenant_id)}_am_") as tmp:
            config_file = Path(tmp) / f"amc_{_safe_name(self.tenant_id)}.yaml"
            config_file.write_text(config)
            template_dir = Path(tmp) / "templates"
            template_dir.mkdir()
            template_files = []
            for name in sorted(templates):
                template_file = template_dir / name
                template_file.write_text(templates[name])
                template_files.append(str(template_file))

            self._call(
                ["alertmanager", "verify", str(config_file), *template_files],
                operation="alertmanager-verify",
                remote=False,
            )
            self._call(
                ["alertmanager", "load", *self._target_args(), str(config_file), *template_files],
                operation="alertmanager-load",
            )

    def delete_alertmanager_config(self) -> None:
        self._call(
            ["alertmanager", "delete", *self._target_args()], operation="alertmanager-delete"
        )

    # -- helpers -------------------------------------------------------------

    def _sync(self, namespace: str, payload: bytes, operation: str) -> None:
        with tempfile.TemporaryDirectory(prefix=f"rulesync_{_safe_name(self.tenant_id)}_") as tmp:
            rule_file = Path(tmp) / f"{_safe_name(namespace)}.yaml"
            rule_file.write_bytes(payload)

            stdout = self._call(
                [
                    "rules",
                    "sync",
                    *self._target_args(),
                    f"--namespaces={namespace}",
                    str(rule_file),
                ],
                namespace=namespace,
                operation=operation,
            )
        logger.info("%s returned: %s", self.binary, stdout.strip())

    def _target_args(self) -> list[str]:
        return [f"--address={self.address}", f"--id={self.tenant_id}"]

    def _auth_args(self) -> list[str]:
        if self.credentials.token:  # Token has precedence over anything else
            return ["--auth-token", self.credentials.token]
        if self.credentials.key:
            return ["--user", self.credentials.username, "--key", self.credentials.key]
        return []

    def _call(
        self, args: list[str], namespace: str = "", operation: str = "", remote: bool = True
    ) -> str:
        # Log before appending auth flags so secrets never reach the logs
        logger.info("Running CLI: %s %s", self.binary, " ".join(args))
        command = [self.binary, *args, *(self._auth_args() if remote else [])]

        try:
            proc = self._runner(command, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise RemoteCallError(
                f"{self.binary} timed out after {self.timeout}s",
                namespace=namespace,
                operation=operation,
                tenant_id=self.tenant_id,
            ) from None
        except OSError as e:
            raise RemoteCallError(
                f"failed to run {self.binary}: {e}",
                namespace=namespace,
                operation=operation,
                tenant_id=self.tenant_id,
            ) from e

        if proc.returncode != 0:
            raise RemoteCallError(
                f"failed to call {self.binary} cli: exit status {proc.returncode} - "
                f"{(proc.stderr or '').strip()}",
                namespace=namespace,
                operation=operation,
                tenant_id=self.tenant_id,
            )
        return proc.stdout or ""


def _safe_name(value: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", value) or "_"

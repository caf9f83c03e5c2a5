"""Credential resolution — turn tenant auth settings into usable credentials.

Precedence is a fixed decision table, first match wins:

1. inline token
2. token from a secret
3. inline key (with user)
4. key from a secret (with user)
5. anonymous
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from rulesync.exceptions import CredentialError
from rulesync.models.tenant import AuthConfig

TOKEN_SECRET_KEY = "token"
API_KEY_SECRET_KEY = "key"


@dataclass
class Credentials:
    """Resolved credentials: a bearer token or a user/key pair (or neither)."""

    username: str = ""
    key: str = ""
    token: str = ""

    @property
    def anonymous(self) -> bool:
        return not self.token and not self.key

    def __repr__(self) -> str:
        kind = "token" if self.token else "basic" if self.key else "anonymous"
        return f"Credentials({kind}, username={self.username!r})"


class SecretStore(ABC):
    """Source of secret values, addressed by secret name and key."""

    @abstractmethod
    def get(self, name: str, key: str) -> str:
        """Return a secret value.

        Raises:
            CredentialError: If the secret or key does not exist.
        """


class DirectorySecretStore(SecretStore):
    """Reads secrets laid out as ``<root>/<name>/<key>`` files.

    This is the layout Kubernetes uses when mounting secrets as volumes.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def get(self, name: str, key: str) -> str:
        secret_dir = self.root / name
        if not secret_dir.is_dir():
            raise CredentialError(f"failed to retrieve secret '{name}' from {self.root}")

        path = secret_dir / key
        try:
            return path.read_text().rstrip("\n")
        except FileNotFoundError:
            raise CredentialError(f"couldn't find key '{key}' in secret '{name}'") from None
        except OSError as e:
            raise CredentialError(f"failed to read key '{key}' in secret '{name}': {e}") from e


class MappingSecretStore(SecretStore):
    """Serves secrets from an in-memory ``{name: {key: value}}`` mapping."""

    def __init__(self, secrets: dict[str, dict[str, str]] | None = None):
        self.secrets = secrets or {}

    def get(self, name: str, key: str) -> str:
        if name not in self.secrets:
            raise CredentialError(f"failed to retrieve secret '{name}'")
        if key not in self.secrets[name]:
            raise CredentialError(f"couldn't find key '{key}' in secret '{name}'")
        return self.secrets[name][key]


def resolve_credentials(auth: AuthConfig | None, secrets: SecretStore | None = None) -> Credentials:
    """Resolve auth settings into credentials following the precedence table.

    Raises:
        CredentialError: If the winning option references a secret that
            cannot be read.
    """
    if auth is None:
        return Credentials()

    if auth.token:
        return Credentials(token=auth.token)

    if auth.token_secret_ref is not None:
        token = _secret(secrets, auth.token_secret_ref.name, TOKEN_SECRET_KEY)
        if token:  # an empty token secret falls through to the key scheme
            return Credentials(token=token)

    if auth.key:
        return Credentials(username=auth.user, key=auth.key)

    if auth.key_secret_ref is not None:
        key = _secret(secrets, auth.key_secret_ref.name, API_KEY_SECRET_KEY)
        return Credentials(username=auth.user, key=key)

    return Credentials()


def _secret(secrets: SecretStore | None, name: str, key: str) -> str:
    if secrets is None:
        raise CredentialError(f"secret '{name}' is referenced but no secret store is configured")
    return secrets.get(name, key)

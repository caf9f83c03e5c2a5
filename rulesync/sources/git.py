"""Git-backed document source — read rule manifests from a repository."""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, Repo

from rulesync.exceptions import PoolAccessError
from rulesync.models.rules import RuleDocument
from rulesync.sources.pool import DirectoryDocumentSource, DocumentSource
from rulesync.sources.selectors import LabelSelector

logger = logging.getLogger(__name__)

GIT_URL_PREFIXES = ("http://", "https://", "git@", "git://", "ssh://")


def is_git_url(location: str) -> bool:
    return location.startswith(GIT_URL_PREFIXES)


class GitDocumentSource(DocumentSource):
    """Serves rule documents from a Git repository.

    A local repository is read in place. A URL is shallow-cloned into a
    temporary directory on first use; ``close()`` removes the clone. Use as
    a context manager so temporary clones are cleaned up::

        with GitDocumentSource(url, subdir="rules") as source:
            reconciler = TenantReconciler(source, ...)
    """

    def __init__(self, location: str, subdir: str = "", branch: str = ""):
        self.location = location
        self.subdir = subdir
        self.branch = branch
        self._local_path: Path | None = None
        self._is_temp_clone = False
        self._lock = threading.Lock()

    @property
    def local_path(self) -> Path:
        """Filesystem path to the repo root (cloning it first if needed)."""
        with self._lock:
            if self._local_path is None:
                self._local_path = self._resolve()
            return self._local_path

    def list_by_selector(self, selector: LabelSelector) -> list[RuleDocument]:
        return DirectoryDocumentSource(self.local_path / self.subdir).list_by_selector(selector)

    def close(self) -> None:
        """Remove the temporary clone directory, if applicable."""
        with self._lock:
            if self._is_temp_clone and self._local_path and self._local_path.exists():
                shutil.rmtree(self._local_path, ignore_errors=True)
            self._local_path = None
            self._is_temp_clone = False

    def _resolve(self) -> Path:
        path = Path(self.location)

        if path.is_dir():
            try:
                Repo(path)
            except InvalidGitRepositoryError:
                raise PoolAccessError(f"Directory exists but is not a Git repo: {self.location}")
            return path

        if is_git_url(self.location):
            return self._clone()

        raise PoolAccessError(f"Not a valid repo path or URL: {self.location}")

    def _clone(self) -> Path:
        clone_dir = Path(tempfile.mkdtemp(prefix="rulesync_"))
        kwargs = {"depth": 1}
        if self.branch:
            kwargs["branch"] = self.branch

        logger.info("Cloning rule repository %s", self.location)
        try:
            Repo.clone_from(self.location, clone_dir, **kwargs)
        except GitCommandError as e:
            shutil.rmtree(clone_dir, ignore_errors=True)
            raise PoolAccessError(f"Failed to clone {self.location}: {e}") from e

        self._is_temp_clone = True
        return clone_dir


def open_document_source(location: str) -> DocumentSource:
    """Return the document source for a directory path or Git URL."""
    if is_git_url(location):
        return GitDocumentSource(location)
    return DirectoryDocumentSource(location)

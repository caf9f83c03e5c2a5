"""Document sources — the pool of PrometheusRule documents selectors draw from."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

import yaml

from rulesync.exceptions import PoolAccessError
from rulesync.models.rules import RULE_DOCUMENT_KIND, RuleDocument, manifest_labels
from rulesync.sources.selectors import LabelSelector

logger = logging.getLogger(__name__)

# Directories to always skip
SKIP_DIRS = {".git", "__pycache__", "node_modules", ".venv", "venv", ".tox", ".rulesync"}

MANIFEST_SUFFIXES = {".yaml", ".yml"}


class DocumentSource(ABC):
    """A pool of rule documents that can be queried by label selector."""

    @abstractmethod
    def list_by_selector(self, selector: LabelSelector) -> list[RuleDocument]:
        """Return every document whose labels match the selector.

        Raises:
            PoolAccessError: If the pool cannot be read.
        """

    def close(self) -> None:
        """Release any resources held by the source."""

    def __enter__(self) -> DocumentSource:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class InMemoryDocumentSource(DocumentSource):
    """Serves a fixed list of documents."""

    def __init__(self, documents: Iterable[RuleDocument] = ()):
        self.documents = list(documents)

    def list_by_selector(self, selector: LabelSelector) -> list[RuleDocument]:
        return [d for d in self.documents if selector.matches(d.labels)]


class DirectoryDocumentSource(DocumentSource):
    """Reads PrometheusRule manifests from a directory tree.

    Every ``*.yaml`` / ``*.yml`` file is scanned, multi-document files
    included. Documents of any other kind are ignored. The tree is re-read
    on every query so each reconciliation pass sees the current files.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def list_by_selector(self, selector: LabelSelector) -> list[RuleDocument]:
        """Return the matching documents.

        Only manifests whose labels match are fully parsed, so a malformed
        document fails just the selectors that pick it.
        """
        matched = self._load(selector)
        logger.debug("Selector '%s' matched %d document(s) in %s", selector, len(matched), self.root)
        return matched

    def load_all(self) -> list[RuleDocument]:
        """Load every rule document in the tree."""
        return self._load(None)

    def _load(self, selector: LabelSelector | None) -> list[RuleDocument]:
        if not self.root.is_dir():
            raise PoolAccessError(f"Rule directory does not exist: {self.root}")

        documents = []
        for path in scan_manifest_files(self.root):
            documents.extend(load_manifest_file(path, selector))
        return documents


def scan_manifest_files(root: Path) -> list[Path]:
    """Recursively find manifest files, skipping tooling directories."""
    try:
        files = [
            item
            for item in root.rglob("*")
            if item.is_file() and _should_include(item.relative_to(root))
        ]
    except OSError as e:
        raise PoolAccessError(f"Failed to scan {root}: {e}") from e
    return sorted(files)


def load_manifest_file(path: Path, selector: LabelSelector | None = None) -> list[RuleDocument]:
    """Parse the PrometheusRule documents in one YAML file.

    With a selector, manifests whose labels do not match are skipped
    before parsing.
    """
    try:
        with open(path) as f:
            raw_documents = list(yaml.safe_load_all(f))
    except OSError as e:
        raise PoolAccessError(f"Failed to read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise PoolAccessError(f"Failed to parse {path}: {e}") from e

    documents = []
    for data in raw_documents:
        if not isinstance(data, dict) or data.get("kind") != RULE_DOCUMENT_KIND:
            continue
        if selector is not None and not selector.matches(manifest_labels(data)):
            continue
        documents.append(RuleDocument.from_manifest(data, source_path=str(path)))
    return documents


def _should_include(path: Path) -> bool:
    for part in path.parts:
        if part in SKIP_DIRS:
            return False
    return path.suffix in MANIFEST_SUFFIXES

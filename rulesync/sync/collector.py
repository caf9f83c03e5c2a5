"""Selector collector — resolve label selectors into a deduplicated document set."""

from __future__ import annotations

import logging
from typing import Iterable

from rulesync.models.rules import RuleDocument
from rulesync.sources.pool import DocumentSource
from rulesync.sources.selectors import LabelSelector

logger = logging.getLogger(__name__)


def collect(
    selectors: Iterable[LabelSelector | str | dict],
    source: DocumentSource,
) -> list[RuleDocument]:
    """Union the documents matched by each selector.

    A document matched by several selectors appears once, keyed by
    (namespace, name); first-seen order is kept. No selectors means no
    documents. Any selector or pool error aborts the whole collection.

    Raises:
        SelectorError: If a selector is malformed.
        PoolAccessError: If the pool cannot be read.
    """
    documents: dict[tuple[str, str], RuleDocument] = {}

    for raw in selectors:
        selector = LabelSelector.coerce(raw)
        for document in source.list_by_selector(selector):
            documents.setdefault(document.key, document)

    logger.debug("Collected %d rule document(s)", len(documents))
    return list(documents.values())

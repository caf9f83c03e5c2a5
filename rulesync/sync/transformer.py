"""Rule transformer — apply tenant overrides and external labels.

The transformer works on deep copies: source documents may be shared
between tenants and must never see another tenant's overrides.
"""

from __future__ import annotations

import copy
import logging
from typing import Iterable, Mapping

from rulesync.models.rules import Override, Rule, RuleDocument, RuleGroup

logger = logging.getLogger(__name__)


def transform(
    documents: Iterable[RuleDocument],
    overrides: Mapping[str, Override] | None = None,
    external_labels: Mapping[str, str] | None = None,
) -> list[RuleDocument]:
    """Return transformed copies of the documents.

    Per rule, in order:
    1. A disabling override removes the rule; a group emptied this way is
       removed from its document.
    2. Any other override replaces only the fields it sets.
    3. External labels are set on every surviving rule, overwriting
       same-named keys and leaving all other labels alone.

    Never fails: overrides for rules that do not exist are ignored.
    """
    overrides = overrides or {}
    external_labels = dict(external_labels or {})

    result = []
    for document in documents:
        doc = copy.deepcopy(document)
        groups = []
        for group in doc.groups:
            transformed = _transform_group(group, overrides, external_labels, doc)
            if transformed is not None:
                groups.append(transformed)
        doc.groups = groups
        result.append(doc)
    return result


def _transform_group(
    group: RuleGroup,
    overrides: Mapping[str, Override],
    external_labels: dict[str, str],
    document: RuleDocument,
) -> RuleGroup | None:
    """Transform one group in place, or return None if it was emptied."""
    rules: list[Rule] = []
    removed = 0

    for rule in group.rules:
        override = overrides.get(rule.name)

        if override is not None and override.disable:
            removed += 1
            logger.debug(
                "Disabled rule %s in %s/%s", rule.name, document.qualified_name, group.name
            )
            continue

        if override is not None:
            apply_override(rule, override)

        if external_labels:
            apply_external_labels(rule, external_labels)

        rules.append(rule)

    # A group emptied by removal is invalid to the ruler, drop it
    if removed and not rules:
        logger.debug("Removed emptied group %s from %s", group.name, document.qualified_name)
        return None

    group.rules = rules
    return group


def apply_override(rule: Rule, override: Override) -> None:
    """Replace the rule fields the override sets. Mappings are replaced whole."""
    if override.labels:
        rule.labels = dict(override.labels)
    if override.annotations:
        rule.annotations = dict(override.annotations)
    if override.expr:
        rule.expr = override.expr
    if override.for_duration:
        rule.for_duration = override.for_duration


def apply_external_labels(rule: Rule, external_labels: Mapping[str, str]) -> None:
    if rule.labels is None:
        rule.labels = {}
    rule.labels.update(external_labels)

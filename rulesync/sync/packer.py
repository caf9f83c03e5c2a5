"""Rule packer — serialize documents into canonical rule-group submissions.

The ruler only understands the Prometheus rule file format, so everything
else a source document carries (metadata, provenance, status) is dropped
here. Only these fields are ever emitted::

    groups:
      - name, interval?, limit?
        rules:
          - alert | record, expr, for?, keep_firing_for?, labels?, annotations?
"""

from __future__ import annotations

from typing import Iterable

import yaml

from rulesync.exceptions import SerializationError
from rulesync.models.rules import Rule, RuleDocument, RuleGroup


def namespace_key(document: RuleDocument) -> str:
    """Remote namespace identifier for a document: ``<namespace>_<name>``."""
    return f"{document.namespace}_{document.name}"


def pack(documents: Iterable[RuleDocument]) -> dict[str, bytes]:
    """Serialize each document into its canonical submission, keyed by namespace.

    Raises:
        SerializationError: If any document is malformed, or two documents
            map to the same namespace. Nothing is returned in that case.
    """
    packed: dict[str, bytes] = {}
    owners: dict[str, str] = {}

    for document in documents:
        key = namespace_key(document)
        if key in packed:
            raise SerializationError(
                f"namespace '{key}' is also produced by {owners[key]}",
                document=document.qualified_name,
            )
        packed[key] = serialize_document(document)
        owners[key] = document.qualified_name

    return packed


def serialize_document(document: RuleDocument) -> bytes:
    identity = document.qualified_name
    seen_groups: set[str] = set()
    groups = []

    for group in document.groups:
        if not group.name:
            raise SerializationError("rule group without a name", document=identity)
        if group.name in seen_groups:
            raise SerializationError(f"duplicate rule group '{group.name}'", document=identity)
        seen_groups.add(group.name)
        groups.append(_group_to_dict(group, identity))

    try:
        text = yaml.safe_dump({"groups": groups}, sort_keys=False, allow_unicode=True)
    except yaml.YAMLError as e:
        raise SerializationError(f"failed to serialize: {e}", document=identity) from e
    return text.encode("utf-8")


def unpack(payload: bytes | str) -> list[RuleGroup]:
    """Parse a canonical submission back into rule groups."""
    try:
        data = yaml.safe_load(payload) or {}
    except yaml.YAMLError as e:
        raise SerializationError(f"invalid rule group payload: {e}") from e
    if not isinstance(data, dict):
        raise SerializationError("rule group payload must be a mapping")

    groups = data.get("groups") or []
    if not isinstance(groups, list):
        raise SerializationError("'groups' must be a list")
    return [RuleGroup.from_dict(g) for g in groups]


def _group_to_dict(group: RuleGroup, identity: str) -> dict:
    if not group.rules:
        raise SerializationError(f"rule group '{group.name}' has no rules", document=identity)

    data: dict = {"name": group.name}
    if group.interval:
        data["interval"] = group.interval
    if group.limit:
        data["limit"] = group.limit
    data["rules"] = [_rule_to_dict(rule, group.name, identity) for rule in group.rules]
    return data


def _rule_to_dict(rule: Rule, group_name: str, identity: str) -> dict:
    where = f"group '{group_name}'"

    if rule.alert and rule.record:
        raise SerializationError(
            f"rule in {where} sets both alert '{rule.alert}' and record '{rule.record}'",
            document=identity,
        )
    if not rule.alert and not rule.record:
        raise SerializationError(f"rule in {where} has neither alert nor record", document=identity)
    if not rule.expr:
        raise SerializationError(f"rule '{rule.name}' in {where} has no expr", document=identity)
    if rule.record and (rule.for_duration or rule.keep_firing_for):
        raise SerializationError(
            f"recording rule '{rule.record}' in {where} cannot set 'for' or 'keep_firing_for'",
            document=identity,
        )

    data: dict = {"alert": rule.alert} if rule.alert else {"record": rule.record}
    data["expr"] = rule.expr
    if rule.for_duration:
        data["for"] = rule.for_duration
    if rule.keep_firing_for:
        data["keep_firing_for"] = rule.keep_firing_for
    if rule.labels:
        data["labels"] = dict(rule.labels)
    if rule.annotations:
        data["annotations"] = dict(rule.annotations)
    return data

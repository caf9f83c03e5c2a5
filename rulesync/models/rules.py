"""Rule document models.

Mirrors the PrometheusRule resource closely enough to select, transform and
re-emit it: a document holds ordered rule groups, a group holds ordered rules,
and a rule is either an alerting rule or a recording rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rulesync.exceptions import SerializationError

RULE_DOCUMENT_KIND = "PrometheusRule"
DEFAULT_NAMESPACE = "default"


@dataclass
class Rule:
    """A single alerting or recording rule."""

    expr: str
    alert: str = ""
    record: str = ""
    for_duration: str | None = None  # alert rules only
    keep_firing_for: str | None = None  # alert rules only
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None

    @property
    def name(self) -> str:
        """Identity used by overrides: the alert name, else the record name."""
        return self.alert or self.record

    @property
    def is_alert(self) -> bool:
        return bool(self.alert)

    @classmethod
    def from_dict(cls, data: dict, document: str = "") -> Rule:
        if not isinstance(data, dict):
            raise SerializationError(
                f"rule must be a mapping, got {type(data).__name__}", document=document
            )
        return cls(
            alert=_scalar(data.get("alert"), "alert", document),
            record=_scalar(data.get("record"), "record", document),
            expr=_scalar(data.get("expr"), "expr", document),
            for_duration=_scalar(data.get("for"), "for", document) or None,
            keep_firing_for=_scalar(data.get("keep_firing_for"), "keep_firing_for", document)
            or None,
            labels=_string_map(data.get("labels"), "labels", document),
            annotations=_string_map(data.get("annotations"), "annotations", document),
        )


@dataclass
class RuleGroup:
    """An ordered list of rules evaluated together at a fixed interval."""

    name: str
    rules: list[Rule] = field(default_factory=list)
    interval: str | None = None
    limit: int | None = None

    @classmethod
    def from_dict(cls, data: dict, document: str = "") -> RuleGroup:
        if not isinstance(data, dict):
            raise SerializationError(
                f"rule group must be a mapping, got {type(data).__name__}", document=document
            )
        rules = data.get("rules") or []
        if not isinstance(rules, list):
            raise SerializationError("'rules' must be a list", document=document)

        limit = data.get("limit")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int)):
            raise SerializationError(f"group limit must be an integer, got {limit!r}", document=document)

        return cls(
            name=_scalar(data.get("name"), "name", document),
            interval=_scalar(data.get("interval"), "interval", document) or None,
            limit=limit,
            rules=[Rule.from_dict(r, document) for r in rules],
        )


@dataclass
class RuleDocument:
    """One source unit of rules: a PrometheusRule manifest."""

    namespace: str
    name: str
    groups: list[RuleGroup] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)  # provenance, never emitted
    source_path: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_manifest(cls, data: dict, source_path: str = "") -> RuleDocument:
        """Build a document from a parsed PrometheusRule manifest."""
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise SerializationError("'metadata' must be a mapping", document=source_path)

        name = str(metadata.get("name") or "")
        if not name:
            raise SerializationError("manifest has no metadata.name", document=source_path)
        namespace = str(metadata.get("namespace") or DEFAULT_NAMESPACE)
        identity = f"{namespace}/{name}"

        spec = data.get("spec") or {}
        if not isinstance(spec, dict):
            raise SerializationError("'spec' must be a mapping", document=identity)
        groups = spec.get("groups") or []
        if not isinstance(groups, list):
            raise SerializationError("'spec.groups' must be a list", document=identity)

        return cls(
            namespace=namespace,
            name=name,
            groups=[RuleGroup.from_dict(g, identity) for g in groups],
            labels=_string_map(metadata.get("labels"), "metadata.labels", identity) or {},
            metadata={k: v for k, v in metadata.items() if k not in ("name", "namespace", "labels")},
            source_path=source_path,
        )


@dataclass
class Override:
    """Tenant-level customization of one rule, looked up by rule name."""

    disable: bool = False
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    expr: str = ""
    for_duration: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> Override:
        data = data or {}
        if not isinstance(data, dict):
            raise SerializationError(f"override must be a mapping, got {type(data).__name__}")
        return cls(
            disable=_flag(data.get("disable"), "disable"),
            labels=_string_map(data.get("labels"), "labels"),
            annotations=_string_map(data.get("annotations"), "annotations"),
            expr=str(data.get("expr") or ""),
            for_duration=str(data.get("for") or ""),
        )


def manifest_labels(data: dict) -> dict[str, str]:
    """Read the labels of a raw manifest without building the document.

    A malformed label block reads as no labels; the full parse reports it.
    """
    metadata = data.get("metadata")
    labels = metadata.get("labels") if isinstance(metadata, dict) else None
    if not isinstance(labels, dict):
        return {}
    return {
        str(k): _scalar(v, str(k)) for k, v in labels.items() if not isinstance(v, (dict, list))
    }


def _flag(value, field_name: str) -> bool:
    """Accept only a YAML boolean; quoted strings like "false" are rejected."""
    if value is None:
        return False
    if not isinstance(value, bool):
        raise SerializationError(f"'{field_name}' must be true or false, got {value!r}")
    return value


def _scalar(value, field_name: str, document: str = "") -> str:
    """Return a scalar YAML value as a string ("" for missing values)."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise SerializationError(
            f"'{field_name}' must be a scalar, got {type(value).__name__}", document=document
        )
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _string_map(value, field_name: str, document: str = "") -> dict[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise SerializationError(f"'{field_name}' must be a mapping", document=document)
    return {str(k): _scalar(v, f"{field_name}.{k}", document) for k, v in value.items()}

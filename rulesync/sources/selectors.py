"""Label selectors — Kubernetes-style label queries over rule documents.

A selector is a conjunction of requirements. It can be written either as a
mapping (``matchLabels`` / ``matchExpressions``) or as a selector string::

    app=foo,tier!=cache,env in (prod,staging),!legacy
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from rulesync.exceptions import SelectorError

_NAME = r"[A-Za-z0-9](?:[-A-Za-z0-9_.]{0,61}[A-Za-z0-9])?"
_PREFIX = r"[a-z0-9](?:[-a-z0-9]*[a-z0-9])?(?:\.[a-z0-9](?:[-a-z0-9]*[a-z0-9])?)*"

LABEL_KEY_RE = re.compile(rf"^(?:{_PREFIX}/)?{_NAME}$")
LABEL_VALUE_RE = re.compile(rf"^(?:{_NAME})?$")

_KEY = r"[A-Za-z0-9][-A-Za-z0-9_./]*"
_NOT_EXISTS_RE = re.compile(rf"^!\s*({_KEY})$")
_SET_RE = re.compile(rf"^({_KEY})\s+(in|notin)\s*\((.*)\)$")
_EQUALITY_RE = re.compile(rf"^({_KEY})\s*(==|!=|=)\s*(\S*)$")
_EXISTS_RE = re.compile(rf"^({_KEY})$")


class Operator(Enum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


@dataclass(frozen=True)
class Requirement:
    """A single key/operator/values condition."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: dict[str, str]) -> bool:
        if self.operator == Operator.EXISTS:
            return self.key in labels
        if self.operator == Operator.DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator == Operator.IN:
            return self.key in labels and labels[self.key] in self.values
        # NotIn also matches when the key is absent
        return labels.get(self.key) not in self.values

    def __str__(self) -> str:
        if self.operator == Operator.EXISTS:
            return self.key
        if self.operator == Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        op = "in" if self.operator == Operator.IN else "notin"
        return f"{self.key} {op} ({','.join(self.values)})"


@dataclass(frozen=True)
class LabelSelector:
    """A conjunction of label requirements. No requirements matches everything."""

    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    def matches(self, labels: dict[str, str] | None) -> bool:
        labels = labels or {}
        return all(r.matches(labels) for r in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)

    @classmethod
    def from_dict(cls, data: dict) -> LabelSelector:
        """Build a selector from a ``matchLabels`` / ``matchExpressions`` mapping."""
        if not isinstance(data, dict):
            raise SelectorError(f"label selector must be a mapping, got {type(data).__name__}")

        unknown = set(data) - {"matchLabels", "matchExpressions"}
        if unknown:
            raise SelectorError(f"unknown label selector field(s): {', '.join(sorted(unknown))}")

        requirements: list[Requirement] = []

        match_labels = data.get("matchLabels") or {}
        if not isinstance(match_labels, dict):
            raise SelectorError("'matchLabels' must be a mapping")
        for key, value in match_labels.items():
            requirements.append(_requirement(str(key), Operator.IN, [value]))

        expressions = data.get("matchExpressions") or []
        if not isinstance(expressions, list):
            raise SelectorError("'matchExpressions' must be a list")
        for expression in expressions:
            if not isinstance(expression, dict):
                raise SelectorError("each match expression must be a mapping")
            try:
                operator = Operator(expression.get("operator"))
            except ValueError:
                raise SelectorError(
                    f"invalid operator {expression.get('operator')!r} for key "
                    f"{expression.get('key')!r}"
                ) from None
            values = expression.get("values") or []
            if not isinstance(values, list):
                raise SelectorError(f"'values' for key {expression.get('key')!r} must be a list")
            requirements.append(_requirement(str(expression.get("key") or ""), operator, values))

        return cls(requirements=tuple(requirements))

    @classmethod
    def parse(cls, text: str) -> LabelSelector:
        """Parse a selector string such as ``app=foo,env in (prod,staging)``."""
        requirements: list[Requirement] = []
        for part in _split_top_level(text):
            part = part.strip()
            if not part:
                raise SelectorError(f"empty requirement in selector {text!r}")
            requirements.append(_parse_requirement(part, text))
        return cls(requirements=tuple(requirements))

    @classmethod
    def coerce(cls, value: LabelSelector | str | dict) -> LabelSelector:
        if isinstance(value, LabelSelector):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, dict):
            return cls.from_dict(value)
        raise SelectorError(f"cannot build a label selector from {type(value).__name__}")


def _parse_requirement(part: str, text: str) -> Requirement:
    m = _NOT_EXISTS_RE.match(part)
    if m:
        return _requirement(m.group(1), Operator.DOES_NOT_EXIST, [])

    m = _SET_RE.match(part)
    if m:
        operator = Operator.IN if m.group(2) == "in" else Operator.NOT_IN
        values = [v.strip() for v in m.group(3).split(",") if v.strip()]
        if not values:
            raise SelectorError(f"empty value set in requirement {part!r}")
        return _requirement(m.group(1), operator, values)

    m = _EQUALITY_RE.match(part)
    if m:
        operator = Operator.NOT_IN if m.group(2) == "!=" else Operator.IN
        return _requirement(m.group(1), operator, [m.group(3)])

    m = _EXISTS_RE.match(part)
    if m:
        return _requirement(m.group(1), Operator.EXISTS, [])

    raise SelectorError(f"invalid requirement {part!r} in selector {text!r}")


def _requirement(key: str, operator: Operator, values: list) -> Requirement:
    if not LABEL_KEY_RE.match(key) or len(key.rsplit("/", 1)[-1]) > 63:
        raise SelectorError(f"invalid label key {key!r}")

    str_values = [str(v) if v is not None else "" for v in values]
    if operator in (Operator.IN, Operator.NOT_IN):
        if not str_values:
            raise SelectorError(f"operator {operator.value} on {key!r} requires at least one value")
        for value in str_values:
            if not LABEL_VALUE_RE.match(value):
                raise SelectorError(f"invalid label value {value!r} for key {key!r}")
    elif str_values:
        raise SelectorError(f"operator {operator.value} on {key!r} does not take values")

    return Requirement(key=key, operator=operator, values=tuple(str_values))


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not inside parentheses."""
    if not text.strip():
        return []
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorError(f"unbalanced parentheses in selector {text!r}")
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise SelectorError(f"unbalanced parentheses in selector {text!r}")
    parts.append("".join(current))
    return parts

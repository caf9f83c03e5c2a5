"""Tests for label selector parsing and matching."""

import pytest

from rulesync.exceptions import SelectorError
from rulesync.sources.selectors import LabelSelector, Operator


# --- Parsing ---


def test_parse_equality_and_set_requirements():
    selector = LabelSelector.parse("app=foo,tier!=cache,env in (prod, staging),!legacy,owner")
    ops = [(r.key, r.operator) for r in selector.requirements]
    assert ops == [
        ("app", Operator.IN),
        ("tier", Operator.NOT_IN),
        ("env", Operator.IN),
        ("legacy", Operator.DOES_NOT_EXIST),
        ("owner", Operator.EXISTS),
    ]
    assert selector.requirements[2].values == ("prod", "staging")


def test_parse_double_equals_and_notin():
    selector = LabelSelector.parse("app==foo,env notin (dev)")
    assert selector.requirements[0].operator == Operator.IN
    assert selector.requirements[1].operator == Operator.NOT_IN
    assert selector.requirements[1].values == ("dev",)


def test_parse_prefixed_key():
    selector = LabelSelector.parse("app.kubernetes.io/name=node-exporter")
    assert selector.matches({"app.kubernetes.io/name": "node-exporter"})


def test_parse_empty_string_matches_everything():
    selector = LabelSelector.parse("")
    assert selector.requirements == ()
    assert selector.matches({})
    assert selector.matches({"any": "thing"})


def test_str_round_trips():
    text = "app in (foo),env notin (dev),owner,!legacy"
    assert str(LabelSelector.parse(text)) == text


@pytest.mark.parametrize(
    "text",
    [
        "env in ()",
        "app=foo,,env=prod",
        "env in (prod",
        "env in prod)",
        "a b c",
        "-bad=value",
        "app=foo bar",
    ],
)
def test_parse_invalid_selectors(text):
    with pytest.raises(SelectorError):
        LabelSelector.parse(text)


# --- Mapping form ---


def test_from_dict_match_labels_and_expressions():
    selector = LabelSelector.from_dict(
        {
            "matchLabels": {"catalog": "kubernetes"},
            "matchExpressions": [
                {"key": "severity", "operator": "In", "values": ["critical", "warning"]},
                {"key": "deprecated", "operator": "DoesNotExist"},
            ],
        }
    )
    assert selector.matches({"catalog": "kubernetes", "severity": "critical"})
    assert not selector.matches({"catalog": "kubernetes", "severity": "info"})
    assert not selector.matches({"catalog": "kubernetes", "severity": "critical", "deprecated": "y"})
    assert not selector.matches({"severity": "critical"})


def test_from_dict_empty_mapping_matches_everything():
    assert LabelSelector.from_dict({}).matches({"a": "b"})


def test_from_dict_rejects_unknown_operator():
    with pytest.raises(SelectorError, match="invalid operator"):
        LabelSelector.from_dict({"matchExpressions": [{"key": "a", "operator": "Gt", "values": ["1"]}]})


def test_from_dict_in_requires_values():
    with pytest.raises(SelectorError, match="requires at least one value"):
        LabelSelector.from_dict({"matchExpressions": [{"key": "a", "operator": "In"}]})


def test_from_dict_exists_forbids_values():
    with pytest.raises(SelectorError, match="does not take values"):
        LabelSelector.from_dict({"matchExpressions": [{"key": "a", "operator": "Exists", "values": ["x"]}]})


def test_from_dict_rejects_unknown_fields():
    with pytest.raises(SelectorError, match="unknown label selector field"):
        LabelSelector.from_dict({"matchLabel": {"a": "b"}})


def test_from_dict_rejects_invalid_label_value():
    with pytest.raises(SelectorError, match="invalid label value"):
        LabelSelector.from_dict({"matchLabels": {"a": "not valid!"}})


# --- Matching ---


def test_not_in_matches_missing_key():
    selector = LabelSelector.parse("env!=dev")
    assert selector.matches({})
    assert selector.matches({"env": "prod"})
    assert not selector.matches({"env": "dev"})


def test_in_does_not_match_missing_key():
    assert not LabelSelector.parse("env=prod").matches({})


def test_matches_none_labels():
    assert LabelSelector.parse("!legacy").matches(None)


# --- Coercion ---


def test_coerce_accepts_all_forms():
    parsed = LabelSelector.parse("a=b")
    assert LabelSelector.coerce(parsed) is parsed
    assert LabelSelector.coerce("a=b") == parsed
    assert LabelSelector.coerce({"matchLabels": {"a": "b"}}) == parsed


def test_coerce_rejects_other_types():
    with pytest.raises(SelectorError):
        LabelSelector.coerce(42)

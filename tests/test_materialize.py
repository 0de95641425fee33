from __future__ import annotations

import copy
import json

import pytest

from policies.materialize import (
    MANAGED_BY_LABEL,
    SOURCE_LABEL,
    MissingField,
    SelectorError,
    label_value,
    materialize,
    policy_key,
)
from policies.selectors import InvalidOperator

TEMPLATE = {
    "apiVersion": "projectcalico.org/v3",
    "kind": "NetworkPolicy",
    "metadata": {"labels": {"team": "net"}},
    "spec": {
        "order": 100,
        "types": ["Egress"],
        "egress": [{"action": "Allow", "protocol": "UDP", "destination": {"ports": [53]}}],
    },
}


def _netpol(ns: str = "default", name: str = "web", selector=None) -> dict:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {"namespace": ns, "name": name},
        "spec": {"podSelector": {"matchLabels": {"app": "email"}} if selector is None else selector},
    }


def test_materialize_sets_selector_and_identity() -> None:
    policy = materialize(_netpol("mail", "email-only"), TEMPLATE)

    assert policy["spec"]["selector"] == "app == 'email'"
    assert policy["spec"]["order"] == 100
    assert policy["kind"] == "NetworkPolicy"
    assert policy_key(policy) == ("mail", "email-only")
    assert policy["metadata"]["labels"] == {
        "team": "net",
        MANAGED_BY_LABEL: "controller",
        SOURCE_LABEL: "email-only",
    }


def test_materialize_creates_spec_when_template_has_none() -> None:
    policy = materialize(_netpol(selector={}), {"apiVersion": "projectcalico.org/v3", "kind": "NetworkPolicy"})
    assert policy["spec"] == {"selector": ""}


def test_materialize_is_idempotent() -> None:
    first = materialize(_netpol(), TEMPLATE)
    second = materialize(_netpol(), TEMPLATE)
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


def test_template_is_never_shared() -> None:
    pristine = copy.deepcopy(TEMPLATE)
    first = materialize(_netpol(name="a"), TEMPLATE)
    second = materialize(_netpol(name="b"), TEMPLATE)

    first["spec"]["egress"][0]["action"] = "Deny"
    first["metadata"]["labels"]["team"] = "other"
    first["spec"]["types"].append("Ingress")

    assert TEMPLATE == pristine
    assert second["spec"]["egress"][0]["action"] == "Allow"
    assert second["metadata"]["labels"]["team"] == "net"


@pytest.mark.parametrize(
    "upstream",
    [
        {"metadata": {"namespace": "default", "name": "web"}},
        {"metadata": {"namespace": "default", "name": "web"}, "spec": "nope"},
        {"metadata": {"namespace": "default", "name": "web"}, "spec": {}},
        {"metadata": {"namespace": "default", "name": "web"}, "spec": {"podSelector": ["app"]}},
        {"metadata": {"name": "web"}, "spec": {"podSelector": {}}},
    ],
)
def test_missing_field(upstream: dict) -> None:
    with pytest.raises(MissingField):
        materialize(upstream, TEMPLATE)


def test_selector_error_wraps_translation_error() -> None:
    bad = {"matchExpressions": [{"key": "app", "operator": "Foo", "values": ["x"]}]}
    with pytest.raises(SelectorError) as exc:
        materialize(_netpol(selector=bad), TEMPLATE)
    assert isinstance(exc.value.error, InvalidOperator)
    assert isinstance(exc.value.__cause__, InvalidOperator)


def test_label_value_is_a_valid_label() -> None:
    assert label_value("web") == "web"
    assert label_value("-web-") == "web"
    long = "x" * 100
    v = label_value(long)
    assert len(v) <= 63
    assert v.startswith("x") and v[-7] == "-"

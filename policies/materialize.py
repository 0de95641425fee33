# policies/materialize.py
from __future__ import annotations

import hashlib
import re
from typing import Any, Dict, Tuple

from policies.document import deep_clone, get_path, set_path, PathError
from policies.selectors import TranslationError, translate

MANAGED_BY_LABEL = "calico-auto-policy/managed-by"
SOURCE_LABEL = "calico-auto-policy/source"

PolicyKey = Tuple[str, str]  # (namespace, name)


class MaterializeError(ValueError):
    pass


class MissingField(MaterializeError):
    pass


class SelectorError(MaterializeError):
    def __init__(self, error: TranslationError):
        super().__init__(f"invalid podSelector: {error}")
        self.error = error


def label_value(val: str) -> str:
    # Labels: alphanumerics, '-', '_', '.', start/end alphanumeric, max 63 chars
    v = re.sub(r"[^A-Za-z0-9-_.]", "-", val)
    v = re.sub(r"^[^A-Za-z0-9]+", "", v)
    v = re.sub(r"[^A-Za-z0-9]+$", "", v)
    if len(v) > 63:
        h = hashlib.sha1(val.encode()).hexdigest()[:6]
        v = re.sub(r"[^A-Za-z0-9]+$", "", v[:(63 - 7)]) + "-" + h
    return v or "value"


def policy_key(doc: Dict[str, Any]) -> PolicyKey:
    meta = (doc or {}).get("metadata", {}) or {}
    return (meta.get("namespace", ""), meta.get("name", ""))


def pod_selector(upstream: Dict[str, Any]) -> Dict[str, Any]:
    spec = upstream.get("spec")
    if spec is None:
        raise MissingField("Invalid Kubernetes NetworkPolicy: no spec")
    if not isinstance(spec, dict):
        raise MissingField("Invalid Kubernetes NetworkPolicy: invalid spec")
    selector = spec.get("podSelector")
    if selector is None:
        raise MissingField("Invalid Kubernetes NetworkPolicy: no podSelector")
    if not isinstance(selector, dict):
        raise MissingField("Invalid Kubernetes NetworkPolicy: invalid podSelector")
    return selector


def materialize(upstream: Dict[str, Any], template: Dict[str, Any]) -> Dict[str, Any]:
    """Build the Calico policy mirroring `upstream` from a copy of `template`.

    The template is shared by every event and is never modified; the
    returned document is a fresh tree owned by the caller.
    """
    namespace, name = policy_key(upstream)
    if not namespace or not name:
        raise MissingField("Invalid Kubernetes NetworkPolicy: no metadata.namespace/metadata.name")

    try:
        selector = translate(pod_selector(upstream))
    except TranslationError as e:
        raise SelectorError(e) from e

    policy = deep_clone(template)
    try:
        set_path(policy, ("spec", "selector"), selector)
        set_path(policy, ("metadata", "name"), name)
        set_path(policy, ("metadata", "namespace"), namespace)
        labels = get_path(policy, ("metadata", "labels")) or {}
    except PathError as e:
        # The template is validated at load; a non-mapping spec/metadata is a bug there.
        raise TypeError(f"policy template has a non-mapping at {e}") from e
    labels[MANAGED_BY_LABEL] = "controller"
    labels[SOURCE_LABEL] = label_value(name)
    set_path(policy, ("metadata", "labels"), labels)
    return policy

# reconcile.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError

from policies.materialize import MaterializeError, PolicyKey, materialize, policy_key


class PolicyState(enum.Enum):
    ABSENT = "Absent"
    PRESENT = "Present"


@dataclass
class ReconcileResult:
    key: PolicyKey
    action: str  # "apply" | "delete" | "skip"
    ok: bool
    error: Optional[str] = None


def _describe(e: Exception) -> str:
    if isinstance(e, ApiException):
        return f"API error {e.status} {e.reason}".rstrip()
    return str(e) or type(e).__name__


class Controller:
    """Mirrors each Kubernetes NetworkPolicy as a Calico NetworkPolicy.

    Every add/update (including resync re-deliveries) rebuilds the whole
    Calico policy from the template and submits it; nothing is read back or
    compared first. Errors end the event: the next resync re-drives it.
    """

    def __init__(self, downstream, template: Dict[str, Any]):
        self.downstream = downstream
        self.template = template
        self._states: Dict[PolicyKey, PolicyState] = {}

    def state(self, key: PolicyKey) -> PolicyState:
        return self._states.get(key, PolicyState.ABSENT)

    def known(self) -> List[PolicyKey]:
        return sorted(k for k, s in self._states.items() if s is PolicyState.PRESENT)

    def on_add(self, policy: dict) -> ReconcileResult:
        ns, name = policy_key(policy)
        print(f"[controller] new NetworkPolicy: {ns}/{name}")
        return self._apply(policy)

    def on_update(self, old: Optional[dict], policy: dict) -> ReconcileResult:
        ns, name = policy_key(policy)
        print(f"[controller] updated/resynced NetworkPolicy: {ns}/{name}")
        return self._apply(policy)

    def on_delete(self, policy: dict) -> ReconcileResult:
        key = policy_key(policy)
        ns, name = key
        print(f"[controller] deleted NetworkPolicy: {ns}/{name}")
        try:
            existed = self.downstream.delete(ns, name)
        except (ApiException, HTTPError) as e:
            print(f"[controller] delete {ns}/{name} failed: {_describe(e)}")
            return ReconcileResult(key, "delete", ok=False, error=_describe(e))

        if not existed:
            print(f"[controller] Calico policy {ns}/{name} already absent")
        self._states.pop(key, None)
        return ReconcileResult(key, "delete", ok=True)

    def _apply(self, policy: dict) -> ReconcileResult:
        key = policy_key(policy)
        ns, name = key
        try:
            body = materialize(policy, self.template)
        except MaterializeError as e:
            print(f"[controller] skipping {ns}/{name}: {e}")
            return ReconcileResult(key, "skip", ok=False, error=str(e))

        try:
            outcome = self.downstream.apply(ns, body)
        except (ApiException, HTTPError) as e:
            print(f"[controller] apply {ns}/{name} failed: {_describe(e)}")
            return ReconcileResult(key, "apply", ok=False, error=_describe(e))

        print(f"[controller] Calico policy {ns}/{name} {outcome} selector={body['spec']['selector']!r}")
        self._states[key] = PolicyState.PRESENT
        return ReconcileResult(key, "apply", ok=True)

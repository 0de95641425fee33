#!/usr/bin/env python3
"""Plan-only runner: prints the Calico selector the controller would write for
every NetworkPolicy in the cluster, which ones it would skip, and which
controller-managed Calico policies no longer have a NetworkPolicy behind them.

Usage:
  python3 tools/plan.py

Notes:
- Uses KUBECONFIG / in-cluster config the same way as app.py.
- Does not create/update/delete any objects.
- Orphans are only reported: the controller deletes on NetworkPolicy delete
  events, so an orphan means a delete was missed while it was down.
"""

from __future__ import annotations

import sys
from pathlib import Path

from kubernetes import client
from kubernetes.config.config_exception import ConfigException

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import ConfigError, load_settings  # noqa: E402
from informer.stream import to_dict  # noqa: E402
from k8s import CalicoClient, api_client, load_kube  # noqa: E402
from policies.materialize import MANAGED_BY_LABEL, MaterializeError, policy_key, pod_selector  # noqa: E402
from policies.selectors import TranslationError, translate  # noqa: E402


def plan_lines(policies):
    """Yield (ok, line) for each NetworkPolicy dict, sorted by namespace/name."""
    for pol in sorted(policies, key=policy_key):
        ns, name = policy_key(pol)
        try:
            selector = translate(pod_selector(pol))
        except (MaterializeError, TranslationError) as e:
            yield False, f"  ! {ns}/{name}: {e}"
            continue
        yield True, f"  + {ns}/{name}: selector={selector!r}"


def orphan_lines(calico_policies, network_policies):
    """Managed Calico policies whose (namespace, name) has no NetworkPolicy."""
    upstream = {policy_key(p) for p in network_policies}
    for pol in sorted(calico_policies, key=policy_key):
        labels = (pol.get("metadata", {}) or {}).get("labels", {}) or {}
        if labels.get(MANAGED_BY_LABEL) != "controller":
            continue
        if policy_key(pol) in upstream:
            continue
        ns, name = policy_key(pol)
        yield f"  - {ns}/{name}: no NetworkPolicy"


def main() -> int:
    try:
        settings = load_settings()
        print(f"[plan] using {load_kube(settings.kubeconfig)}")
    except (ConfigError, ConfigException) as e:
        print(f"[plan] Can't load config: {e}", file=sys.stderr)
        return 1

    api = api_client()
    networking = client.NetworkingV1Api(api)
    calico = CalicoClient(
        client.CustomObjectsApi(api),
        group=settings.calico_group,
        version=settings.calico_version,
        plural=settings.calico_plural,
        timeout=settings.request_timeout_seconds,
    )
    items = [to_dict(p) for p in networking.list_network_policy_for_all_namespaces().items]

    lines = list(plan_lines(items))
    orphans = list(orphan_lines(calico.list(), items))
    skipped = sum(1 for ok, _ in lines if not ok)
    print(f"[plan] apply={len(lines) - skipped} skip={skipped} orphaned={len(orphans)}")
    for _, line in lines:
        print(line)
    for line in orphans:
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

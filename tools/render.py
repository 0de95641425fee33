#!/usr/bin/env python3
"""tools/render.py

Render the Calico NetworkPolicy the controller would create for a Kubernetes
NetworkPolicy, without talking to the cluster.

Usage examples:
  CALICO_AUTO_POLICY_TEMPLATE=./policy.yaml python3 tools/render.py netpol.yaml

  # Or from stdin:
  kubectl get networkpolicy web -o yaml | python3 tools/render.py -

Notes:
- Multi-document input renders one Calico policy per document.
- Exit code 2 if any document can't be translated.
"""

from __future__ import annotations

import os
import sys

import yaml

# Allow executing from tools/ without installing as a package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config import ConfigError, load_settings, load_template  # noqa: E402
from policies.materialize import MaterializeError, materialize, policy_key  # noqa: E402


def render(docs, template, out) -> int:
    rc = 0
    for doc in docs:
        if not doc:
            continue
        try:
            policy = materialize(doc, template)
        except MaterializeError as e:
            ns, name = policy_key(doc)
            print(f"[render] {ns}/{name}: {e}", file=sys.stderr)
            rc = 2
            continue
        yaml.safe_dump(policy, out, sort_keys=False)
        out.write("---\n")
    return rc


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    path = argv[0] if argv else "-"

    try:
        template = load_template(load_settings().template_path)
    except ConfigError as e:
        print(f"[render] {e}", file=sys.stderr)
        return 1

    try:
        if path == "-":
            docs = list(yaml.safe_load_all(sys.stdin))
        else:
            with open(path, "r") as f:
                docs = list(yaml.safe_load_all(f))
    except (OSError, yaml.YAMLError) as e:
        print(f"[render] can't read {path}: {e}", file=sys.stderr)
        return 1

    try:
        return render(docs, template, sys.stdout)
    except BrokenPipeError:
        # Common when piping to `head`; exit cleanly
        return 0


if __name__ == "__main__":
    raise SystemExit(main())

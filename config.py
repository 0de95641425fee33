# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

from policies.document import UnsupportedValue, check_tree

DEFAULT_TEMPLATE_PATH = "/etc/calico-auto-policy/policy.yaml"


class ConfigError(Exception):
    """Startup configuration is missing or invalid; the process can't run."""


@dataclass(frozen=True)
class Settings:
    kubeconfig: Optional[str] = None
    template_path: str = DEFAULT_TEMPLATE_PATH
    calico_group: str = "projectcalico.org"
    calico_version: str = "v3"
    calico_plural: str = "networkpolicies"
    resync_seconds: int = 300
    request_timeout_seconds: int = 10
    watch_timeout_seconds: int = 60


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        kubeconfig=env.get("KUBECONFIG") or None,
        template_path=env.get("CALICO_AUTO_POLICY_TEMPLATE") or DEFAULT_TEMPLATE_PATH,
        calico_group=env.get("CALICO_API_GROUP", "projectcalico.org"),
        calico_version=env.get("CALICO_API_VERSION", "v3"),
        calico_plural=env.get("CALICO_API_PLURAL", "networkpolicies"),
        resync_seconds=_env_int(env, "RESYNC_SECONDS", 300),
        request_timeout_seconds=_env_int(env, "REQUEST_TIMEOUT_SECONDS", 10),
        watch_timeout_seconds=_env_int(env, "WATCH_TIMEOUT_SECONDS", 60),
    )


def load_template(path: str) -> Dict[str, Any]:
    """
    Read the Calico policy template once at startup.
    Everything wrong with it is a ConfigError: the controller must not start
    with a template it can't copy.
    """
    try:
        with open(path, "r") as f:
            template = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Can't open policy template YAML: {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Can't parse policy template YAML: {path}: {e}") from e

    if not isinstance(template, dict):
        raise ConfigError(f"Policy template {path} must be a mapping")
    try:
        check_tree(template)
    except UnsupportedValue as e:
        raise ConfigError(f"Policy template {path}: {e}") from e

    # None is fine (materialize fills it in); any other non-mapping is not.
    for field in ("spec", "metadata"):
        if template.get(field) is not None and not isinstance(template[field], dict):
            raise ConfigError(f"Policy template {path}: {field} must be a mapping")
    labels = (template.get("metadata") or {}).get("labels")
    if labels is not None and not isinstance(labels, dict):
        raise ConfigError(f"Policy template {path}: metadata.labels must be a mapping")
    return template

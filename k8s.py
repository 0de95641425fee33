# k8s.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException

USER_AGENT = "calico-auto-policy"


def is_not_found(e: ApiException) -> bool:
    return e.status == 404


def is_conflict(e: ApiException) -> bool:
    return e.status == 409


def load_kube(kubeconfig: Optional[str] = None) -> str:
    """Load cluster credentials; raises ConfigException if none work."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return f"kubeconfig {kubeconfig}"
    try:
        config.load_incluster_config()
        return "in-cluster config"
    except ConfigException:
        config.load_kube_config()
        return "kubeconfig (local)"


def api_client() -> client.ApiClient:
    api = client.ApiClient()
    api.user_agent = USER_AGENT
    return api


# ─────────────────────────────────────────────
# Calico API wrapper
# ─────────────────────────────────────────────
class CalicoClient:
    def __init__(
        self,
        api: client.CustomObjectsApi,
        group: str = "projectcalico.org",
        version: str = "v3",
        plural: str = "networkpolicies",
        timeout: float = 10,
    ):
        self.api = api
        self.group = group
        self.version = version
        self.plural = plural
        self.timeout = timeout

    def _resource(self) -> Dict[str, str]:
        return {"group": self.group, "version": self.version, "plural": self.plural}

    def list(self, namespace: Optional[str] = None) -> List[dict]:
        if namespace:
            res = self.api.list_namespaced_custom_object(
                namespace=namespace, _request_timeout=self.timeout, **self._resource()
            )
        else:
            res = self.api.list_cluster_custom_object(
                _request_timeout=self.timeout, **self._resource()
            )
        return res.get("items", [])

    def apply(self, namespace: str, body: Dict[str, Any]) -> str:
        """Create the policy, replacing it if it already exists.

        Returns "created" or "replaced". A conflict on the replace itself
        (someone else wrote in between) propagates.
        """
        try:
            self.api.create_namespaced_custom_object(
                namespace=namespace, body=body, _request_timeout=self.timeout, **self._resource()
            )
            return "created"
        except ApiException as e:
            if not is_conflict(e):
                raise

        name = body["metadata"]["name"]
        current = self.api.get_namespaced_custom_object(
            namespace=namespace, name=name, _request_timeout=self.timeout, **self._resource()
        )
        version = ((current or {}).get("metadata", {}) or {}).get("resourceVersion")
        if version:
            body["metadata"]["resourceVersion"] = version
        self.api.replace_namespaced_custom_object(
            namespace=namespace, name=name, body=body, _request_timeout=self.timeout, **self._resource()
        )
        return "replaced"

    def delete(self, namespace: str, name: str) -> bool:
        """Delete the policy; False if it was already gone."""
        try:
            self.api.delete_namespaced_custom_object(
                namespace=namespace, name=name, _request_timeout=self.timeout, **self._resource()
            )
        except ApiException as e:
            if is_not_found(e):
                return False
            raise
        return True

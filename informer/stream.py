# informer/stream.py
from __future__ import annotations

import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple

from kubernetes import client, watch

_serializer = client.ApiClient()


def to_dict(obj: Any) -> Dict[str, Any]:
    """Typed model -> API-shaped dict (camelCase keys, unset fields dropped)."""
    if isinstance(obj, dict):
        return obj
    return _serializer.sanitize_for_serialization(obj)


def object_key(obj: Dict[str, Any]) -> Tuple[str, str]:
    meta = (obj or {}).get("metadata", {}) or {}
    return (meta.get("namespace", ""), meta.get("name", ""))


class NetworkPolicyStream:
    """List/watch NetworkPolicies in all namespaces."""

    def __init__(self, networking: client.NetworkingV1Api):
        self.networking = networking
        # Reentrant: stop() runs from a signal handler that may interrupt watch() on this thread.
        self._lock = threading.RLock()
        self._watcher: Optional[watch.Watch] = None

    def list(self) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        res = self.networking.list_network_policy_for_all_namespaces()
        version = getattr(getattr(res, "metadata", None), "resource_version", None)
        return [to_dict(p) for p in (res.items or [])], version

    def watch(self, resource_version: Optional[str], timeout_seconds: int) -> Iterator[Dict[str, Any]]:
        watcher = watch.Watch()
        with self._lock:
            self._watcher = watcher
        try:
            for event in watcher.stream(
                self.networking.list_network_policy_for_all_namespaces,
                resource_version=resource_version,
                timeout_seconds=timeout_seconds,
                allow_watch_bookmarks=True,
            ):
                obj = event.get("object")
                # ERROR events never get here: Watch raises ApiException for them.
                yield {"type": str(event.get("type", "")), "object": to_dict(obj)}
        finally:
            watcher.stop()
            with self._lock:
                if self._watcher is watcher:
                    self._watcher = None

    def stop(self) -> None:
        with self._lock:
            watcher = self._watcher
        if watcher is not None:
            watcher.stop()

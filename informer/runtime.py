# informer/runtime.py
from __future__ import annotations

import random
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError

from informer.stream import object_key

Key = Tuple[str, str]

MAX_BACKOFF_SECONDS = 30.0


class WatchDenied(Exception):
    """The API server refused to let us list/watch NetworkPolicies (401/403)."""


class Informer:
    """
    List-then-watch loop over NetworkPolicies that calls
    handler.on_add / on_update / on_delete, one event at a time.

    Keeps the last seen object per (namespace, name) so that it can:
      - re-deliver every object as an update every `resync_seconds`
      - turn a re-list (after 410 Gone) into updates and deletes
    """

    def __init__(
        self,
        stream,
        handler,
        resync_seconds: float = 300,
        watch_timeout_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stream = stream
        self.handler = handler
        self.resync_seconds = resync_seconds
        self.watch_timeout_seconds = watch_timeout_seconds
        self.clock = clock
        self.cache: Dict[Key, Dict[str, Any]] = {}
        self.resource_version: Optional[str] = None
        self._next_resync = 0.0
        self._stop = threading.Event()

    # ── event delivery ──────────────────────────
    def _added(self, obj: Dict[str, Any]) -> None:
        self.cache[object_key(obj)] = obj
        self.handler.on_add(obj)

    def _modified(self, obj: Dict[str, Any]) -> None:
        key = object_key(obj)
        old = self.cache.get(key)
        self.cache[key] = obj
        if old is None:
            self.handler.on_add(obj)
        else:
            self.handler.on_update(old, obj)

    def _deleted(self, obj: Dict[str, Any]) -> None:
        self.cache.pop(object_key(obj), None)
        self.handler.on_delete(obj)

    def dispatch(self, event: Dict[str, Any]) -> None:
        kind = event.get("type")
        obj = event.get("object")

        version = ((obj or {}).get("metadata", {}) or {}).get("resourceVersion")
        if version:
            self.resource_version = version

        if kind == "ADDED":
            self._added(obj)
        elif kind == "MODIFIED":
            self._modified(obj)
        elif kind == "DELETED":
            self._deleted(obj)
        # BOOKMARK only moves resource_version

    # ── list / resync ───────────────────────────
    def relist(self) -> None:
        items, version = self.stream.list()
        listed = {object_key(o): o for o in items}

        for key in sorted(set(self.cache) - set(listed)):
            self._deleted(self.cache[key])
        for key in sorted(listed):
            self._modified(listed[key])

        self.resource_version = version
        self._next_resync = self.clock() + self.resync_seconds

    def resync(self) -> None:
        print(f"[informer] resync of {len(self.cache)} NetworkPolicies")
        for key in sorted(self.cache):
            if self._stop.is_set():
                return
            obj = self.cache[key]
            self.handler.on_update(obj, obj)
        self._next_resync = self.clock() + self.resync_seconds

    def _resync_if_due(self) -> None:
        if self.resync_seconds > 0 and self.clock() >= self._next_resync:
            self.resync()

    def _watch_timeout(self) -> int:
        if self.resync_seconds <= 0:
            return self.watch_timeout_seconds
        remaining = self._next_resync - self.clock()
        return int(max(1, min(self.watch_timeout_seconds, remaining)))

    # ── main loop ───────────────────────────────
    def request_stop(self) -> None:
        self._stop.set()
        self.stream.stop()

    def _wait_backoff(self, stop_event: threading.Event, backoff: float) -> float:
        stop_event.wait(timeout=backoff * (0.5 + random.random()))
        return min(backoff * 2, MAX_BACKOFF_SECONDS)

    def _should_stop(self, stop_event: threading.Event) -> bool:
        return stop_event.is_set() or self._stop.is_set()

    def _initial_list(self, stop_event: threading.Event) -> bool:
        backoff = 1.0
        while not self._should_stop(stop_event):
            try:
                self.relist()
                print(f"[informer] watching NetworkPolicies from resourceVersion {self.resource_version}")
                return True
            except ApiException as e:
                if e.status in (401, 403):
                    raise WatchDenied(f"list NetworkPolicies denied ({e.status}); check RBAC") from e
                print(f"[informer] initial list failed: {e.status} {e.reason}")
            except HTTPError as e:
                print(f"[informer] initial list failed: {e}")
            backoff = self._wait_backoff(stop_event, backoff)
        return False

    def run(self, stop_event: threading.Event) -> None:
        """Run until stop_event is set. Raises WatchDenied on 401/403."""
        if not self._initial_list(stop_event):
            return

        backoff = 1.0
        while not self._should_stop(stop_event):
            try:
                self._resync_if_due()
                for event in self.stream.watch(self.resource_version, self._watch_timeout()):
                    if self._should_stop(stop_event):
                        break
                    self.dispatch(event)
                    self._resync_if_due()
                backoff = 1.0
            except ApiException as e:
                if e.status == 410:
                    self._relist_after_gone()
                    continue
                if e.status in (401, 403):
                    raise WatchDenied(f"watch NetworkPolicies denied ({e.status}); check RBAC") from e
                print(f"[informer] watch error: {e.status} {e.reason}")
                backoff = self._wait_backoff(stop_event, backoff)
            except HTTPError as e:
                print(f"[informer] watch connection error: {e}")
                backoff = self._wait_backoff(stop_event, backoff)

        print("[informer] watch stopped")

    def _relist_after_gone(self) -> None:
        print("[informer] resourceVersion expired, re-listing")
        try:
            self.relist()
        except ApiException as e:
            if e.status in (401, 403):
                raise WatchDenied(f"list NetworkPolicies denied ({e.status}); check RBAC") from e
            print(f"[informer] re-list failed: {e.status} {e.reason}")
            self.resource_version = None
        except HTTPError as e:
            print(f"[informer] re-list failed: {e}")
            self.resource_version = None


# app.py
from __future__ import annotations

import signal
import sys
import threading

from kubernetes import client
from kubernetes.config.config_exception import ConfigException

from config import ConfigError, load_settings, load_template
from informer.runtime import Informer, WatchDenied
from informer.stream import NetworkPolicyStream
from k8s import CalicoClient, api_client, load_kube
from reconcile import Controller


def main() -> int:
    try:
        settings = load_settings()
        template = load_template(settings.template_path)
        source = load_kube(settings.kubeconfig)
    except ConfigError as e:
        print(f"[controller] {e}", file=sys.stderr)
        return 1
    except (ConfigException, OSError) as e:
        print(f"[controller] Can't load config: {e}", file=sys.stderr)
        return 1
    print(f"[controller] using {source}")
    print(f"[controller] policy template {settings.template_path}")

    api = api_client()
    calico = CalicoClient(
        client.CustomObjectsApi(api),
        group=settings.calico_group,
        version=settings.calico_version,
        plural=settings.calico_plural,
        timeout=settings.request_timeout_seconds,
    )
    controller = Controller(calico, template)
    informer = Informer(
        NetworkPolicyStream(client.NetworkingV1Api(api)),
        controller,
        resync_seconds=settings.resync_seconds,
        watch_timeout_seconds=settings.watch_timeout_seconds,
    )

    stop_event = threading.Event()

    def _on_signal(signum, frame):
        print(f"[controller] Exiting on signal: {signal.Signals(signum).name}")
        stop_event.set()
        informer.request_stop()
        # Interrupt a blocking watch read; every event is a single idempotent call.
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        informer.run(stop_event)
    except KeyboardInterrupt:
        pass
    except WatchDenied as e:
        print(f"[controller] Can't setup informer: {e}", file=sys.stderr)
        return 1

    print("[controller] shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

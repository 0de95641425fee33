from __future__ import annotations

import pytest
from kubernetes.client import ApiException

from k8s import CalicoClient, load_kube

RESOURCE = {"group": "projectcalico.org", "version": "v3", "plural": "networkpolicies"}


class FakeCustomObjects:
    def __init__(self, existing=None, create_status=None, replace_status=None, delete_status=None):
        self.existing = existing or {}
        self.create_status = create_status
        self.replace_status = replace_status
        self.delete_status = delete_status
        self.calls: list = []

    def create_namespaced_custom_object(self, **kw):
        self.calls.append(("create", kw))
        if self.create_status:
            raise ApiException(status=self.create_status, reason="nope")
        return kw["body"]

    def get_namespaced_custom_object(self, **kw):
        self.calls.append(("get", kw))
        return self.existing

    def replace_namespaced_custom_object(self, **kw):
        self.calls.append(("replace", kw))
        if self.replace_status:
            raise ApiException(status=self.replace_status, reason="nope")
        return kw["body"]

    def delete_namespaced_custom_object(self, **kw):
        self.calls.append(("delete", kw))
        if self.delete_status:
            raise ApiException(status=self.delete_status, reason="nope")
        return {}

    def list_namespaced_custom_object(self, **kw):
        self.calls.append(("list", kw))
        return {"items": [{"metadata": {"name": "a"}}]}

    def list_cluster_custom_object(self, **kw):
        self.calls.append(("list-all", kw))
        return {"items": []}


def _body(name: str = "web") -> dict:
    return {"metadata": {"name": name, "namespace": "mail"}, "spec": {"selector": ""}}


def test_apply_creates() -> None:
    api = FakeCustomObjects()
    calico = CalicoClient(api, timeout=7)

    assert calico.apply("mail", _body()) == "created"

    (op, kw), = api.calls
    assert op == "create"
    assert kw["namespace"] == "mail"
    assert kw["_request_timeout"] == 7
    assert {k: kw[k] for k in RESOURCE} == RESOURCE


def test_apply_replaces_on_conflict_with_current_version() -> None:
    api = FakeCustomObjects(existing={"metadata": {"name": "web", "resourceVersion": "42"}}, create_status=409)
    calico = CalicoClient(api)

    assert calico.apply("mail", _body()) == "replaced"

    assert [op for op, _ in api.calls] == ["create", "get", "replace"]
    replace = api.calls[-1][1]
    assert replace["name"] == "web"
    assert replace["body"]["metadata"]["resourceVersion"] == "42"


def test_apply_propagates_other_errors() -> None:
    calico = CalicoClient(FakeCustomObjects(create_status=403))
    with pytest.raises(ApiException):
        calico.apply("mail", _body())


def test_apply_propagates_lost_replace_race() -> None:
    api = FakeCustomObjects(existing={"metadata": {"resourceVersion": "1"}}, create_status=409, replace_status=409)
    with pytest.raises(ApiException) as exc:
        CalicoClient(api).apply("mail", _body())
    assert exc.value.status == 409


def test_delete_not_found_is_not_an_error() -> None:
    assert CalicoClient(FakeCustomObjects()).delete("mail", "web") is True
    assert CalicoClient(FakeCustomObjects(delete_status=404)).delete("mail", "web") is False
    with pytest.raises(ApiException):
        CalicoClient(FakeCustomObjects(delete_status=500)).delete("mail", "web")


def test_list() -> None:
    api = FakeCustomObjects()
    calico = CalicoClient(api)
    assert calico.list("mail") == [{"metadata": {"name": "a"}}]
    assert calico.list() == []
    assert [op for op, _ in api.calls] == ["list", "list-all"]


def test_load_kube_prefers_explicit_kubeconfig(monkeypatch) -> None:
    seen = {}
    monkeypatch.setattr("k8s.config.load_kube_config", lambda config_file=None: seen.setdefault("file", config_file))
    assert load_kube("/tmp/kc") == "kubeconfig /tmp/kc"
    assert seen["file"] == "/tmp/kc"


def test_load_kube_falls_back_to_local(monkeypatch) -> None:
    from kubernetes.config.config_exception import ConfigException

    def _no_cluster():
        raise ConfigException("not in a cluster")

    monkeypatch.setattr("k8s.config.load_incluster_config", _no_cluster)
    monkeypatch.setattr("k8s.config.load_kube_config", lambda config_file=None: None)
    assert load_kube() == "kubeconfig (local)"

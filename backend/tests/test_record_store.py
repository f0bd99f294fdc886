"""
Tests for the record stores: JSON merge-patch, the in-memory store, and the
Kubernetes REST store against a stubbed ``requests.Session``.

Run from the backend/ directory:
    python -m pytest tests/test_record_store.py -v
"""
from __future__ import annotations
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
import requests
import yaml

from factories import StubSession, image_stream, intent, response as _response
from nbimage import config
from nbimage.constants import CRE_IMAGE_LABELS, ResourceKind
from nbimage.services import record_store
from nbimage.services.errors import ExternalStoreError
from nbimage.services.record_store import KubeRecordStore, MemoryRecordStore, merge_patch


# ─────────────────────────────────────────────────────────────────────────────
# Merge-patch
# ─────────────────────────────────────────────────────────────────────────────

class TestMergePatch:

    def test_nested_merge_and_delete(self):
        target = {"a": 1, "b": {"c": 2, "keep": True}}
        patch = {"b": {"c": None, "d": 3}, "e": 4}
        assert merge_patch(target, patch) == {"a": 1, "b": {"keep": True, "d": 3}, "e": 4}
        assert target == {"a": 1, "b": {"c": 2, "keep": True}}

    def test_lists_replaced(self):
        assert merge_patch({"tags": [1, 2]}, {"tags": [3]}) == {"tags": [3]}

    def test_non_dict_patch_replaces(self):
        assert merge_patch({"a": 1}, "x") == "x"


# ─────────────────────────────────────────────────────────────────────────────
# In-memory store
# ─────────────────────────────────────────────────────────────────────────────

class TestMemoryRecordStore:

    def setup_method(self):
        self.store = MemoryRecordStore("ns")

    def test_create_and_get(self):
        created = self.store.create(ResourceKind.CRE, intent("cre-1"))
        assert created["metadata"]["namespace"] == "ns"
        assert self.store.get(ResourceKind.CRE, "cre-1")["metadata"]["name"] == "cre-1"

    def test_create_conflict(self):
        self.store.create(ResourceKind.CRE, intent("cre-1"))
        with pytest.raises(ExternalStoreError) as exc:
            self.store.create(ResourceKind.CRE, intent("cre-1"))
        assert exc.value.status_code == 409

    def test_create_requires_name(self):
        with pytest.raises(ExternalStoreError) as exc:
            self.store.create(ResourceKind.CRE, {"metadata": {}})
        assert exc.value.status_code == 422

    def test_missing(self):
        with pytest.raises(ExternalStoreError) as exc:
            self.store.get(ResourceKind.CRE, "nope")
        assert exc.value.is_not_found
        with pytest.raises(ExternalStoreError):
            self.store.patch(ResourceKind.CRE, "nope", {})
        with pytest.raises(ExternalStoreError):
            self.store.delete(ResourceKind.CRE, "nope")

    def test_list_filters_labels(self):
        self.store.seed(ResourceKind.IMAGE_STREAM, image_stream("a", cre=True), image_stream("b"))
        assert [r["metadata"]["name"] for r in self.store.list(ResourceKind.IMAGE_STREAM, CRE_IMAGE_LABELS)] == ["a"]
        assert len(self.store.list(ResourceKind.IMAGE_STREAM)) == 2

    def test_kinds_are_separate(self):
        self.store.seed(ResourceKind.CRE, intent("x"))
        assert self.store.list(ResourceKind.IMAGE_STREAM) == []

    def test_returned_records_are_copies(self):
        self.store.seed(ResourceKind.CRE, intent("cre-1"))
        record = self.store.get(ResourceKind.CRE, "cre-1")
        record["metadata"]["name"] = "changed"
        assert self.store.get(ResourceKind.CRE, "cre-1")["metadata"]["name"] == "cre-1"

    def test_patch(self):
        self.store.seed(ResourceKind.CRE, intent("cre-1", display_name="a"))
        patched = self.store.patch(ResourceKind.CRE, "cre-1", {"metadata": {"labels": {"x": "1"}}})
        assert patched["metadata"]["labels"]["x"] == "1"
        assert patched["metadata"]["annotations"]

    def test_fail_and_heal(self):
        self.store.fail(ResourceKind.CRE)
        with pytest.raises(ExternalStoreError):
            self.store.list(ResourceKind.CRE)
        self.store.heal(ResourceKind.CRE)
        assert self.store.list(ResourceKind.CRE) == []

    def test_describe(self):
        assert self.store.describe() == "memory:ns"


# ─────────────────────────────────────────────────────────────────────────────
# Kubernetes store
# ─────────────────────────────────────────────────────────────────────────────

class TestKubeRecordStore:

    def _store(self, *responses) -> tuple[KubeRecordStore, StubSession]:
        session = StubSession(*responses)
        store = KubeRecordStore("https://api.example:6443/", "ns", token="t0k", session=session)
        return store, session

    def test_list_url_and_selector(self):
        store, session = self._store(_response(200, {"items": [intent("cre-1")]}))
        items = store.list(ResourceKind.IMAGE_STREAM, CRE_IMAGE_LABELS)
        assert [i["metadata"]["name"] for i in items] == ["cre-1"]
        call = session.requests[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://api.example:6443/apis/image.openshift.io/v1/namespaces/ns/imagestreams"
        assert call["params"] == {"labelSelector": "app.kubernetes.io/part-of=meteor-operator"}
        assert session.headers["Authorization"] == "Bearer t0k"

    def test_list_without_labels(self):
        store, session = self._store(_response(200, {"items": []}))
        assert store.list(ResourceKind.CRE) == []
        assert session.requests[0]["params"] is None

    def test_get(self):
        store, session = self._store(_response(200, intent("cre-1")))
        assert store.get(ResourceKind.CRE, "cre-1")["metadata"]["name"] == "cre-1"
        assert session.requests[0]["url"].endswith(
            "/apis/meteor.zone/v1alpha1/namespaces/ns/customruntimeenvironments/cre-1")

    def test_not_found(self):
        store, _ = self._store(_response(404, {"message": 'customruntimeenvironments "x" not found'}))
        with pytest.raises(ExternalStoreError) as exc:
            store.get(ResourceKind.CRE, "x")
        assert exc.value.is_not_found
        assert "not found" in str(exc.value)

    def test_error_without_json_body(self):
        resp = _response(500, reason="Internal Server Error")
        resp._content = b"oops"
        store, _ = self._store(resp)
        with pytest.raises(ExternalStoreError) as exc:
            store.delete(ResourceKind.CRE, "x")
        assert exc.value.status_code == 500
        assert exc.value.message == "oops"

    def test_unreachable(self):
        store, _ = self._store(requests.ConnectionError("refused"))
        with pytest.raises(ExternalStoreError) as exc:
            store.list(ResourceKind.CRE)
        assert exc.value.status_code is None

    def test_patch_uses_merge_patch(self):
        store, session = self._store(_response(200, intent("cre-1")))
        store.patch(ResourceKind.CRE, "cre-1", {"metadata": {"labels": {"a": "b"}}})
        call = session.requests[0]
        assert call["method"] == "PATCH"
        assert call["headers"]["Content-Type"] == "application/merge-patch+json"
        assert call["json"] == {"metadata": {"labels": {"a": "b"}}}

    def test_create_posts_body(self):
        body = intent("cre-1")
        store, session = self._store(_response(201, body))
        assert store.create(ResourceKind.CRE, body)["metadata"]["name"] == "cre-1"
        assert session.requests[0]["method"] == "POST"
        assert session.requests[0]["json"] == body

    def test_empty_body(self):
        store, _ = self._store(_response(200))
        store.delete(ResourceKind.CRE, "cre-1")

    def test_describe(self):
        store, _ = self._store()
        assert store.describe() == "kube:https://api.example:6443/ns"


class TestKubeconfig:

    def test_current_context(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "KUBE_NAMESPACE", "")
        monkeypatch.setattr(config, "KUBE_TOKEN", "")
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump({
            "apiVersion": "v1",
            "kind": "Config",
            "current-context": "dev",
            "contexts": [
                {"name": "prod", "context": {"cluster": "prod", "user": "admin"}},
                {"name": "dev", "context": {"cluster": "dev", "user": "me", "namespace": "notebooks"}},
            ],
            "clusters": [
                {"name": "prod", "cluster": {"server": "https://prod:6443"}},
                {"name": "dev", "cluster": {"server": "https://dev:6443", "insecure-skip-tls-verify": True}},
            ],
            "users": [
                {"name": "admin", "user": {"token": "prod-token"}},
                {"name": "me", "user": {"token": "dev-token"}},
            ],
        }))
        store = KubeRecordStore.from_kubeconfig(path)
        assert store.api_url == "https://dev:6443"
        assert store.namespace == "notebooks"
        assert store.session.verify is False
        assert store.session.headers["Authorization"] == "Bearer dev-token"

    def test_named_context_and_namespace_override(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "KUBE_NAMESPACE", "forced")
        monkeypatch.setattr(config, "KUBE_TOKEN", "")
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump({
            "current-context": "a",
            "contexts": [{"name": "b", "context": {"cluster": "b", "user": "b"}}],
            "clusters": [{"name": "b", "cluster": {"server": "https://b:6443"}}],
            "users": [{"name": "b", "user": {}}],
        }))
        store = KubeRecordStore.from_kubeconfig(path, context="b")
        assert store.api_url == "https://b:6443"
        assert store.namespace == "forced"
        assert "Authorization" not in store.session.headers

    def test_missing_server(self, tmp_path):
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump({"current-context": "none"}))
        with pytest.raises(ExternalStoreError):
            KubeRecordStore.from_kubeconfig(path)


class TestStoreSingleton:

    def teardown_method(self):
        record_store.set_store(None)

    def test_memory_backend(self, monkeypatch):
        monkeypatch.setattr(config, "STORE_BACKEND", "memory")
        record_store.set_store(None)
        store = record_store.get_store()
        assert isinstance(store, MemoryRecordStore)
        assert record_store.get_store() is store

    def test_set_store(self):
        mine = MemoryRecordStore("mine")
        record_store.set_store(mine)
        assert record_store.get_store() is mine

"""
Record Store — namespaced custom objects (CRE intents, ImageStreams).

Two implementations share one interface:
  - KubeRecordStore:   the Kubernetes REST API, spoken through ``requests``.
                       Configured from KUBE_* env vars, a kubeconfig YAML file,
                       or the in-cluster service account.
  - MemoryRecordStore: in-process dicts with the same semantics (404 on
                       missing, 409 on create conflict, JSON merge-patch),
                       used for local development and tests.

A "kind" is the (group, version, plural) triple from ``constants.ResourceKind``.
Every failure surfaces as ``ExternalStoreError`` carrying the HTTP status.
"""
from __future__ import annotations
import base64
import copy
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests
import yaml

from .. import config
from .. import logging_service as logger
from .annotation_codec import label_selector, matches_labels
from .errors import ExternalStoreError

Kind = tuple[str, str, str]


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 JSON merge-patch; ``None`` values delete keys."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


class RecordStore:
    """Interface for namespaced custom object access."""

    namespace: str = "default"

    def list(self, kind: Kind, labels: dict[str, str] | None = None) -> list[dict]:
        raise NotImplementedError

    def get(self, kind: Kind, name: str) -> dict:
        raise NotImplementedError

    def create(self, kind: Kind, body: dict) -> dict:
        raise NotImplementedError

    def patch(self, kind: Kind, name: str, patch: dict) -> dict:
        raise NotImplementedError

    def delete(self, kind: Kind, name: str) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


# ─── In-memory ───────────────────────────────────────────────────────────────

class MemoryRecordStore(RecordStore):
    """Thread-safe in-memory store with Kubernetes-like error semantics."""

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace
        self._records: dict[str, dict[str, dict]] = {}
        self._failures: dict[str, ExternalStoreError] = {}
        self._lock = threading.Lock()

    # ── Test helpers ──

    def seed(self, kind: Kind, *records: dict) -> None:
        """Insert records verbatim (no timestamp, no conflict check)."""
        with self._lock:
            bucket = self._records.setdefault(kind[2], {})
            for r in records:
                bucket[r["metadata"]["name"]] = copy.deepcopy(r)

    def fail(self, kind: Kind, error: ExternalStoreError | None = None) -> None:
        """Make every call on ``kind`` raise ``error`` until ``heal`` is called."""
        self._failures[kind[2]] = error or ExternalStoreError("injected failure", 500)

    def heal(self, kind: Kind) -> None:
        self._failures.pop(kind[2], None)

    def _check(self, kind: Kind) -> None:
        err = self._failures.get(kind[2])
        if err is not None:
            raise err

    def _not_found(self, kind: Kind, name: str) -> ExternalStoreError:
        return ExternalStoreError(f'{kind[2]}.{kind[0]} "{name}" not found', 404)

    # ── RecordStore ──

    def list(self, kind: Kind, labels: dict[str, str] | None = None) -> list[dict]:
        self._check(kind)
        with self._lock:
            items = list(self._records.get(kind[2], {}).values())
        return [copy.deepcopy(r) for r in items if matches_labels(r, labels)]

    def get(self, kind: Kind, name: str) -> dict:
        self._check(kind)
        with self._lock:
            record = self._records.get(kind[2], {}).get(name)
        if record is None:
            raise self._not_found(kind, name)
        return copy.deepcopy(record)

    def create(self, kind: Kind, body: dict) -> dict:
        self._check(kind)
        name = (body.get("metadata") or {}).get("name")
        if not name:
            raise ExternalStoreError("metadata.name is required", 422)
        record = copy.deepcopy(body)
        meta = record["metadata"]
        meta.setdefault("namespace", self.namespace)
        meta.setdefault("creationTimestamp", _now_iso())
        with self._lock:
            bucket = self._records.setdefault(kind[2], {})
            if name in bucket:
                raise ExternalStoreError(f'{kind[2]}.{kind[0]} "{name}" already exists', 409)
            bucket[name] = record
        return copy.deepcopy(record)

    def patch(self, kind: Kind, name: str, patch: dict) -> dict:
        self._check(kind)
        with self._lock:
            bucket = self._records.get(kind[2], {})
            if name not in bucket:
                raise self._not_found(kind, name)
            bucket[name] = merge_patch(bucket[name], patch)
            return copy.deepcopy(bucket[name])

    def delete(self, kind: Kind, name: str) -> None:
        self._check(kind)
        with self._lock:
            bucket = self._records.get(kind[2], {})
            if name not in bucket:
                raise self._not_found(kind, name)
            del bucket[name]

    def describe(self) -> str:
        return f"memory:{self.namespace}"


# ─── Kubernetes API ──────────────────────────────────────────────────────────

class KubeRecordStore(RecordStore):
    """Custom objects API over plain HTTP (``/apis/{group}/{version}/namespaces/...``)."""

    def __init__(
        self,
        api_url: str,
        namespace: str,
        *,
        token: str | None = None,
        verify: bool | str = True,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.namespace = namespace
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    # ── construction ──

    @classmethod
    def from_config(cls) -> "KubeRecordStore":
        """Build from KUBE_API_URL, else the kubeconfig file, else in-cluster settings."""
        if config.KUBE_API_URL:
            return cls(
                config.KUBE_API_URL,
                config.KUBE_NAMESPACE or _in_cluster_namespace(),
                token=config.KUBE_TOKEN or _read_file(config.KUBE_TOKEN_FILE),
                verify=_verify_setting(config.KUBE_CA_CERT),
                timeout=config.KUBE_TIMEOUT,
            )
        if Path(config.KUBECONFIG).is_file():
            return cls.from_kubeconfig(config.KUBECONFIG)

        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise ExternalStoreError(
                "No Kubernetes API configured: set KUBE_API_URL or KUBECONFIG, "
                "or run in-cluster"
            )
        return cls(
            f"https://{host}:{port}",
            config.KUBE_NAMESPACE or _in_cluster_namespace(),
            token=config.KUBE_TOKEN or _read_file(config.KUBE_TOKEN_FILE),
            verify=_verify_setting(config.KUBE_CA_CERT),
            timeout=config.KUBE_TIMEOUT,
        )

    @classmethod
    def from_kubeconfig(cls, path: str | Path, context: str | None = None) -> "KubeRecordStore":
        """Read server, token, CA and namespace for the current (or named) context."""
        with open(path) as f:
            kubeconfig = yaml.safe_load(f) or {}

        ctx_name = context or kubeconfig.get("current-context")
        ctx = _named(kubeconfig.get("contexts"), ctx_name).get("context", {})
        cluster = _named(kubeconfig.get("clusters"), ctx.get("cluster")).get("cluster", {})
        user = _named(kubeconfig.get("users"), ctx.get("user")).get("user", {})

        if not cluster.get("server"):
            raise ExternalStoreError(f"kubeconfig {path}: context '{ctx_name}' has no cluster server")

        verify: bool | str = config.KUBE_VERIFY_TLS and not cluster.get("insecure-skip-tls-verify", False)
        if verify and cluster.get("certificate-authority"):
            verify = cluster["certificate-authority"]
        elif verify and cluster.get("certificate-authority-data"):
            verify = _write_ca_bundle(cluster["certificate-authority-data"])

        token = user.get("token")
        if not token and user.get("tokenFile"):
            token = _read_file(user["tokenFile"])

        return cls(
            cluster["server"],
            config.KUBE_NAMESPACE or ctx.get("namespace") or "default",
            token=config.KUBE_TOKEN or token,
            verify=verify,
            timeout=config.KUBE_TIMEOUT,
        )

    def describe(self) -> str:
        return f"kube:{self.api_url}/{self.namespace}"

    # ── HTTP ──

    def _url(self, kind: Kind, name: str | None = None) -> str:
        group, version, plural = kind
        url = f"{self.api_url}/apis/{group}/{version}/namespaces/{self.namespace}/{plural}"
        return f"{url}/{name}" if name else url

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.log("store", "ERROR", f"{method} {url} failed", {"error": str(e)})
            raise ExternalStoreError(f"Kubernetes API unreachable: {e}") from e

        if resp.status_code >= 400:
            try:
                message = resp.json().get("message") or resp.reason
            except ValueError:
                message = resp.text or resp.reason
            level = "INFO" if resp.status_code == 404 else "ERROR"
            logger.log("store", level, f"{method} {url} -> {resp.status_code}", {"message": message})
            raise ExternalStoreError(message, resp.status_code)

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ExternalStoreError(f"Invalid JSON from Kubernetes API: {e}", resp.status_code) from e

    # ── RecordStore ──

    def list(self, kind: Kind, labels: dict[str, str] | None = None) -> list[dict]:
        params = {"labelSelector": label_selector(labels)} if labels else None
        body = self._request("GET", self._url(kind), params=params)
        return body.get("items") or []

    def get(self, kind: Kind, name: str) -> dict:
        return self._request("GET", self._url(kind, name))

    def create(self, kind: Kind, body: dict) -> dict:
        return self._request("POST", self._url(kind), json=body)

    def patch(self, kind: Kind, name: str, patch: dict) -> dict:
        return self._request(
            "PATCH", self._url(kind, name), json=patch,
            headers={"Content-Type": "application/merge-patch+json"},
        )

    def delete(self, kind: Kind, name: str) -> None:
        self._request("DELETE", self._url(kind, name))


# ─── helpers ─────────────────────────────────────────────────────────────────

def _named(entries: list[dict] | None, name: str | None) -> dict:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry
    return {}


def _read_file(path: str) -> str | None:
    try:
        return Path(path).read_text().strip() or None
    except OSError:
        return None


def _in_cluster_namespace() -> str:
    return _read_file(config.KUBE_NAMESPACE_FILE) or "default"


def _verify_setting(ca_path: str) -> bool | str:
    if not config.KUBE_VERIFY_TLS:
        return False
    return ca_path if ca_path and Path(ca_path).is_file() else True


def _write_ca_bundle(data: str) -> str:
    fd, path = tempfile.mkstemp(prefix="kube-ca-", suffix=".crt")
    with os.fdopen(fd, "wb") as f:
        f.write(base64.b64decode(data))
    return path


# ─── Module-level store ──────────────────────────────────────────────────────

_store: RecordStore | None = None
_store_lock = threading.Lock()


def get_store() -> RecordStore:
    """Process-wide store, built on first use from STORE_BACKEND."""
    global _store
    with _store_lock:
        if _store is None:
            if config.STORE_BACKEND == "memory":
                _store = MemoryRecordStore(config.KUBE_NAMESPACE or "default")
            else:
                _store = KubeRecordStore.from_config()
            logger.log("system", "INFO", "Record store initialised", {"store": _store.describe()})
        return _store


def set_store(store: RecordStore | None) -> None:
    """Replace the process-wide store (None resets to lazy construction)."""
    global _store
    with _store_lock:
        _store = store

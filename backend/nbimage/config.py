"""
Centralized configuration — all paths, env vars, and settings in one place.

Environment variables:
  - DATA_DIR:           override data root (default: backend/data/)
  - LOG_LEVEL:          minimum log level (default: INFO)
  - LOG_RETENTION_DAYS: auto-cleanup threshold (default: 30)
  - STORE_BACKEND:      "kube" (default) or "memory"
  - KUBE_*:             Kubernetes API access (see below)
  - CRE_SUBSTRING_JOIN: enable the legacy name-containment join (default: off)
  - AUTH_DISABLED:      treat every request as an admin user (local dev only)
"""
from __future__ import annotations
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.environ.get(name, default).split(",") if v.strip()]


# ─── Root directories ────────────────────────────────────────────────────────

# Backend root: <repo>/backend/
BACKEND_ROOT = Path(__file__).parent.parent

# Data root: log files live here
DATA_DIR = Path(os.environ.get("DATA_DIR", str(BACKEND_ROOT / "data")))
LOGS_DIR = DATA_DIR / "logs"

LOGS_DIR.mkdir(parents=True, exist_ok=True)

# ─── Logging ─────────────────────────────────────────────────────────────────

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "30"))

# ─── Record store ────────────────────────────────────────────────────────────

STORE_BACKEND = os.environ.get("STORE_BACKEND", "kube").lower()

# Empty KUBE_API_URL means: read KUBECONFIG, then fall back to in-cluster settings
KUBE_API_URL = os.environ.get("KUBE_API_URL", "")
KUBE_NAMESPACE = os.environ.get("KUBE_NAMESPACE", "")
KUBE_TOKEN = os.environ.get("KUBE_TOKEN", "")
KUBE_TOKEN_FILE = os.environ.get(
    "KUBE_TOKEN_FILE", "/var/run/secrets/kubernetes.io/serviceaccount/token"
)
KUBE_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
KUBE_CA_CERT = os.environ.get(
    "KUBE_CA_CERT", "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
)
KUBE_VERIFY_TLS = _env_bool("KUBE_VERIFY_TLS", True)
KUBECONFIG = os.environ.get("KUBECONFIG", str(Path.home() / ".kube" / "config"))
KUBE_TIMEOUT = float(os.environ.get("KUBE_TIMEOUT", "10"))

# ─── Reconciliation ──────────────────────────────────────────────────────────

CRE_SUBSTRING_JOIN = _env_bool("CRE_SUBSTRING_JOIN", False)

# Client-side poll interval for the CRE watcher (seconds)
POLL_INTERVAL = float(os.environ.get("POLL_INTERVAL", "30"))

# ─── Auth ────────────────────────────────────────────────────────────────────

AUTH_DISABLED = _env_bool("AUTH_DISABLED", False)
ADMIN_USERS: list[str] = _env_list("ADMIN_USERS")
ADMIN_GROUPS: list[str] = _env_list("ADMIN_GROUPS", "odh-admins")
USER_HEADER = os.environ.get("USER_HEADER", "X-Forwarded-User")
GROUPS_HEADER = os.environ.get("GROUPS_HEADER", "X-Forwarded-Groups")

# ─── CORS ─────────────────────────────────────────────────────────────────────

_DEFAULT_CORS = "http://localhost:4010,http://127.0.0.1:4010"
CORS_ORIGINS: list[str] = _env_list("CORS_ORIGINS", _DEFAULT_CORS)

# ─── App metadata ────────────────────────────────────────────────────────────

APP_NAME = "Notebook Image Curator API"
APP_VERSION = "0.3.0"

"""
Structured logging service — per-category log directories, daily rotation,
configurable minimum level, structured metadata, auto-cleanup.

Directory layout:
  backend/data/logs/
    system/system-YYYY-MM-DD.jsonl   (HTTP requests, startup, config)
    images/images-YYYY-MM-DD.jsonl   (ImageStream projection, updates, deletes)
    cre/cre-YYYY-MM-DD.jsonl         (intent creation, merge diagnostics)
    store/store-YYYY-MM-DD.jsonl     (record store failures)
"""
from __future__ import annotations
import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Literal

from .config import LOGS_DIR as LOG_DIR
from .config import LOG_LEVEL, LOG_RETENTION_DAYS

# ─── Configuration ──────────────────────────────────────────────────────────

Category = Literal["system", "images", "cre", "store"]
Level = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

_LEVEL_ORDER = {"DEBUG": 0, "INFO": 1, "WARNING": 2, "ERROR": 3}

# Runtime-configurable minimum level
_min_level: str = LOG_LEVEL
_lock = threading.Lock()


def set_min_level(level: str) -> None:
    """Set the minimum log level at runtime."""
    global _min_level
    _min_level = level.upper()


def get_min_level() -> str:
    return _min_level


# ─── Category directories ───────────────────────────────────────────────────

_CATEGORIES = ("system", "images", "cre", "store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _category_dir(category: str) -> Path:
    d = LOG_DIR / category
    d.mkdir(parents=True, exist_ok=True)
    return d


def _daily_file(category: str, date: datetime | None = None) -> Path:
    """Return the daily log file for a category."""
    dt = date or _utcnow()
    day_str = dt.strftime("%Y-%m-%d")
    return _category_dir(category) / f"{category}-{day_str}.jsonl"


# ─── Core log function ──────────────────────────────────────────────────────

def log(
    category: Category,
    level: Level,
    message: str,
    data: dict | None = None,
    *,
    resource_id: str | None = None,
    image: str | None = None,
    component: str | None = None,
) -> dict:
    """
    Write a structured log entry.

    ``resource_id`` (a CRE name) and ``image`` (an ImageStream name) are
    lifted to top-level fields so they can be filtered on; they are also
    picked up from ``data`` when passed there.
    """
    # Level gate
    if _LEVEL_ORDER.get(level, 1) < _LEVEL_ORDER.get(_min_level, 1):
        return {}

    entry = {
        "timestamp": _utcnow().isoformat().replace("+00:00", "Z"),
        "category": category,
        "level": level,
        "message": message,
        "data": data or {},
    }

    if resource_id:
        entry["resource_id"] = resource_id
    if image:
        entry["image"] = image
    if component:
        entry["component"] = component

    if isinstance(data, dict):
        if not resource_id and "resource_id" in data:
            entry["resource_id"] = data["resource_id"]
        if not image and "image" in data:
            entry["image"] = data["image"]

    line = json.dumps(entry, default=str) + "\n"

    with _lock:
        cat_file = _daily_file(category)
        with open(cat_file, "a") as f:
            f.write(line)

    return entry


# ─── Query / Read ────────────────────────────────────────────────────────────

def get_logs(
    category: str | None = None,
    level: str | None = None,
    limit: int = 100,
    offset: int = 0,
    *,
    resource_id: str | None = None,
    image: str | None = None,
    since: str | None = None,
    until: str | None = None,
    days: int = 7,
) -> list[dict]:
    """
    Read structured log entries with filters.

    Params:
        category: filter by category (None = all)
        level: filter by exact level
        limit: max entries to return
        offset: skip first N matching entries
        resource_id: filter by CRE name
        image: filter by ImageStream name
        since: ISO timestamp lower bound (inclusive)
        until: ISO timestamp upper bound (inclusive)
        days: how many days of log files to scan (default 7)
    """
    now = _utcnow()
    files_to_scan: list[Path] = []
    cats_to_scan = [category] if (category and category in _CATEGORIES) else list(_CATEGORIES)
    for cat in cats_to_scan:
        for d in range(days):
            f = _daily_file(cat, now - timedelta(days=d))
            if f.exists():
                files_to_scan.append(f)

    entries: list[dict] = []
    for fp in files_to_scan:
        try:
            with open(fp) as f:
                for raw_line in f:
                    raw_line = raw_line.strip()
                    if not raw_line:
                        continue
                    try:
                        entry = json.loads(raw_line)
                    except json.JSONDecodeError:
                        continue

                    if category and entry.get("category") != category:
                        continue
                    if level and entry.get("level") != level:
                        continue
                    if resource_id and entry.get("resource_id") != resource_id:
                        continue
                    if image and entry.get("image") != image:
                        continue
                    if since and entry.get("timestamp", "") < since:
                        continue
                    if until and entry.get("timestamp", "") > until:
                        continue

                    entries.append(entry)
        except OSError:
            continue

    # Most recent first
    entries.sort(key=lambda e: e.get("timestamp", ""), reverse=True)

    return entries[offset: offset + limit]


# ─── Clear / Cleanup ────────────────────────────────────────────────────────

def clear_logs() -> int:
    """Clear all logs across all categories. Returns total entries deleted."""
    count = 0
    for cat in _CATEGORIES:
        cat_dir = LOG_DIR / cat
        if not cat_dir.is_dir():
            continue
        for fp in cat_dir.glob("*.jsonl"):
            try:
                with open(fp) as f:
                    count += sum(1 for _ in f)
                fp.unlink()
            except OSError:
                continue
    return count


def cleanup_old_logs(retention_days: int | None = None) -> int:
    """Delete log files older than retention_days. Returns number of files deleted."""
    days = retention_days if retention_days is not None else LOG_RETENTION_DAYS
    if days <= 0:
        return 0

    cutoff_str = (_utcnow() - timedelta(days=days)).strftime("%Y-%m-%d")
    deleted = 0

    for cat in _CATEGORIES:
        cat_dir = LOG_DIR / cat
        if not cat_dir.is_dir():
            continue
        for fp in cat_dir.glob("*.jsonl"):
            # "images-2026-02-12" -> "2026-02-12"
            parts = fp.stem.rsplit("-", 3)
            if len(parts) >= 4:
                file_date = f"{parts[-3]}-{parts[-2]}-{parts[-1]}"
                if file_date < cutoff_str:
                    try:
                        fp.unlink()
                        deleted += 1
                    except OSError:
                        continue

    return deleted


def get_log_stats() -> dict:
    """Return summary stats about log storage."""
    stats: dict = {
        "min_level": _min_level,
        "retention_days": LOG_RETENTION_DAYS,
        "categories": {},
        "total_files": 0,
        "total_size_bytes": 0,
    }

    for cat in _CATEGORIES:
        cat_dir = LOG_DIR / cat
        if not cat_dir.is_dir():
            continue
        files = list(cat_dir.glob("*.jsonl"))
        size = sum(f.stat().st_size for f in files if f.exists())
        stats["categories"][cat] = {
            "file_count": len(files),
            "size_bytes": size,
        }
        stats["total_files"] += len(files)
        stats["total_size_bytes"] += size

    return stats

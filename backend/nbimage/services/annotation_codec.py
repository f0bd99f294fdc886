"""
Annotation Codec — structured values stored as string annotations and labels.

Kubernetes metadata only holds strings, so package lists, booleans and error
lists are stored as JSON text. Records can be edited by hand or written by
other tools, so every decode fails soft: missing or malformed input yields
the caller's fallback plus a diagnostic log line, never an exception.
"""
from __future__ import annotations
import json
import re
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .. import logging_service as logger
from ..constants import DEFAULT_IMAGE_ORDER, SPECIFIERS
from ..schemas.image import PackageRef

T = TypeVar("T")

_LINE_SPLIT = re.compile(r"\r?\n")
# longest operators first
_SPEC_RE = re.compile(
    r"^\s*(?P<name>[^\s=<>~!]+)\s*(?P<spec>" +
    "|".join(re.escape(s) for s in sorted(SPECIFIERS, key=len, reverse=True)) +
    r")\s*(?P<version>\S+)\s*$"
)


# ─── Generic JSON ────────────────────────────────────────────────────────────

def decode(raw: str | None, fallback: T, *, key: str | None = None) -> Any | T:
    """Parse a JSON annotation value; return ``fallback`` when missing or malformed."""
    if raw is None or raw == "":
        return fallback
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.log("images", "WARNING", "Unparsable annotation value, using fallback", {
            "key": key,
            "raw": raw[:200] if isinstance(raw, str) else repr(raw),
            "error": str(e),
        })
        return fallback


def encode(value: Any) -> str:
    """Serialize a value to its annotation string form."""
    if isinstance(value, list):
        value = [v.model_dump(by_alias=True, exclude_none=True) if isinstance(v, PackageRef) else v
                 for v in value]
    return json.dumps(value, separators=(",", ":"))


# ─── Typed helpers ───────────────────────────────────────────────────────────

def decode_bool(raw: str | None, fallback: bool = False, *, key: str | None = None) -> bool:
    """Booleans are stored as "true"/"false"; anything else is the fallback."""
    value = decode(raw, fallback, key=key)
    return value if isinstance(value, bool) else fallback


def encode_bool(value: bool) -> str:
    return "true" if value else "false"


def decode_packages(raw: str | None, *, key: str | None = None) -> list[PackageRef]:
    """Decode a JSON list of package refs, skipping entries that are not valid refs."""
    value = decode(raw, [], key=key)
    if not isinstance(value, list):
        logger.log("images", "WARNING", "Package annotation is not a list", {"key": key})
        return []
    packages: list[PackageRef] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        if item.get("version") is None:
            item = {**item, "version": ""}
        try:
            packages.append(PackageRef.model_validate(item))
        except PydanticValidationError:
            logger.log("images", "DEBUG", "Skipping malformed package entry",
                       {"key": key, "entry": item})
    return packages


def decode_messages(raw: str | None, *, key: str | None = None) -> list[str]:
    """Error message lists; a bare string is treated as a single message."""
    value = decode(raw, [], key=key)
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def decode_order(raw: str | None) -> int:
    """Permissive numeric parse; 0, missing and garbage all mean the default order."""
    if raw is None:
        return DEFAULT_IMAGE_ORDER
    try:
        order = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_IMAGE_ORDER
    return order or DEFAULT_IMAGE_ORDER


# ─── Package lines ───────────────────────────────────────────────────────────

def parse_requirements(text: str | None) -> list[str]:
    """Split free-text requirements into trimmed, non-empty lines."""
    if not text:
        return []
    return [line.strip() for line in _LINE_SPLIT.split(text) if line.strip()]


def clean_lines(lines: list[str] | None) -> list[str]:
    """Trim and drop blanks from an already-split package list."""
    return [line.strip() for line in (lines or []) if line and line.strip()]


def format_package(ref: PackageRef) -> str:
    """``numpy`` / ``numpy==1.2`` / ``numpy>=1.2``."""
    if not ref.version:
        return ref.name
    return f"{ref.name}{ref.specifier or '=='}{ref.version}"


def parse_package_line(line: str) -> PackageRef:
    """Inverse of :func:`format_package` for a single requirement line."""
    m = _SPEC_RE.match(line)
    if not m:
        return PackageRef(name=line.strip())
    return PackageRef(name=m.group("name"), version=m.group("version"), specifier=m.group("spec"))


# ─── Tags and labels ─────────────────────────────────────────────────────────

def tag_is_live(tag_name: str, image_stream: dict) -> bool:
    """A declared tag counts only once it also appears in ``status.tags``."""
    status_tags = (image_stream.get("status") or {}).get("tags") or []
    return any(t.get("tag") == tag_name for t in status_tags)


def label_selector(labels: dict[str, str] | None) -> str:
    """``{"a": "1", "b": "2"}`` -> ``"a=1,b=2"``."""
    if not labels:
        return ""
    return ",".join(f"{k}={v}" for k, v in labels.items())


def matches_labels(record: dict, labels: dict[str, str] | None) -> bool:
    """Client-side equivalent of a label selector."""
    if not labels:
        return True
    actual = (record.get("metadata") or {}).get("labels") or {}
    return all(actual.get(k) == v for k, v in labels.items())

"""
Build-Spec Compiler — creation mode + form fields -> CustomRuntimeEnvironment.

Modes and the spec shape each one produces:
  import   -> ImageImport   { fromImage, imagePullSecret? }
  existing -> PackageList   { baseImage | runtimeEnvironment, packageVersions }
  build    -> PackageList   { runtimeEnvironment, packageVersions (non-empty) }
  git      -> GitRepository { repository, gitRef? }

All checks run before anything is written. The duplicate-name guard is a
read-then-create sequence and can be raced by a concurrent creator.
"""
from __future__ import annotations
import time
from typing import Iterable

from ..constants import (
    CRE_NAME_PREFIX, BuildType, CREAnnotation, Label, Mode, ResourceKind,
)
from ..schemas.cre import (
    CREResourceCreateRequest, GitRepositorySpec, ImageImportSpec, ImagePullSecret,
    PackageListSpec, RuntimeEnvironment, RuntimeEnvironmentInput,
)
from .annotation_codec import clean_lines, format_package, parse_requirements
from .errors import DuplicateNameError, ValidationError

Spec = ImageImportSpec | PackageListSpec | GitRepositorySpec


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


# ─── Mode resolution ─────────────────────────────────────────────────────────

def resolve_mode(req: CREResourceCreateRequest) -> str:
    """Explicit ``mode`` wins; otherwise infer it from ``buildType``."""
    if req.mode:
        return req.mode
    if req.build_type == BuildType.IMAGE_IMPORT:
        return Mode.IMPORT
    if req.build_type == BuildType.GIT_REPOSITORY:
        return Mode.GIT
    if req.build_type == BuildType.PACKAGE_LIST:
        return Mode.BUILD if _blank(req.base_image) else Mode.EXISTING
    raise ValidationError(
        "Parameter 'mode' or 'buildType' is required "
        f"(mode: {', '.join(Mode.ALL)}; buildType: {', '.join(sorted(BuildType.ALL))})"
    )


# ─── Per-mode compilers ──────────────────────────────────────────────────────

def _runtime(env: RuntimeEnvironmentInput | None) -> RuntimeEnvironment | None:
    """The full triple, or None when any member is missing."""
    if env is None:
        return None
    if _blank(env.os_name) or _blank(env.os_version) or _blank(env.python_version):
        return None
    return RuntimeEnvironment(
        os_name=env.os_name.strip(),
        os_version=env.os_version.strip(),
        python_version=env.python_version.strip(),
    )


def _is_partial(env: RuntimeEnvironmentInput | None) -> bool:
    if env is None:
        return False
    members = (env.os_name, env.os_version, env.python_version)
    return any(not _blank(m) for m in members) and not all(not _blank(m) for m in members)


def package_versions(req: CREResourceCreateRequest) -> list[str]:
    """Collect requirement lines from free text, explicit lines and structured refs."""
    lines = parse_requirements(req.requirements)
    lines += clean_lines(req.package_versions)
    lines += [format_package(p) for p in (req.packages or []) if p.name.strip()]
    return list(dict.fromkeys(lines))


def compile_import(req: CREResourceCreateRequest) -> ImageImportSpec:
    if _blank(req.from_image):
        raise ValidationError("Parameter 'fromImage' is expected when using mode 'import'")
    spec = ImageImportSpec(from_image=req.from_image.strip())
    if not _blank(req.image_pull_secret_name):
        spec.image_pull_secret = ImagePullSecret(name=req.image_pull_secret_name.strip())
    return spec


def compile_build(req: CREResourceCreateRequest) -> PackageListSpec:
    packages = package_versions(req)
    if not packages:
        raise ValidationError("At least one package is expected when using mode 'build'")
    env = req.runtime_environment or RuntimeEnvironmentInput()
    missing = [alias for alias, value in (
        ("osName", env.os_name),
        ("osVersion", env.os_version),
        ("pythonVersion", env.python_version),
    ) if _blank(value)]
    if missing:
        raise ValidationError(
            f"Parameter(s) {', '.join(repr(m) for m in missing)} expected when using mode 'build'"
        )
    return PackageListSpec(runtime_environment=_runtime(env), package_versions=packages)


def compile_existing(req: CREResourceCreateRequest) -> PackageListSpec:
    """``baseImage`` takes precedence over ``runtimeEnvironment`` when both are given."""
    packages = package_versions(req)
    if not _blank(req.base_image):
        return PackageListSpec(base_image=req.base_image.strip(), package_versions=packages)
    if _is_partial(req.runtime_environment):
        raise ValidationError(
            "Parameter 'runtimeEnvironment' must set osName, osVersion and pythonVersion"
        )
    runtime = _runtime(req.runtime_environment)
    if runtime is None:
        raise ValidationError(
            "Parameter 'runtimeEnvironment' or 'baseImage' is expected when using mode 'existing'"
        )
    return PackageListSpec(runtime_environment=runtime, package_versions=packages)


def compile_git(req: CREResourceCreateRequest) -> GitRepositorySpec:
    if _blank(req.repository):
        raise ValidationError("Parameter 'repository' is expected when using mode 'git'")
    git_ref = None if _blank(req.git_ref) else req.git_ref.strip()
    return GitRepositorySpec(repository=req.repository.strip(), git_ref=git_ref)


_COMPILERS = {
    Mode.IMPORT: compile_import,
    Mode.BUILD: compile_build,
    Mode.EXISTING: compile_existing,
    Mode.GIT: compile_git,
}


def compile_spec(req: CREResourceCreateRequest) -> Spec:
    """Validate ``req`` for its mode and return the single matching spec shape."""
    if _blank(req.name):
        raise ValidationError("Parameter 'name' is required")
    return _COMPILERS[resolve_mode(req)](req)


def spec_to_dict(spec: Spec) -> dict:
    return spec.model_dump(by_alias=True, exclude_none=True)


# ─── Names ───────────────────────────────────────────────────────────────────

def display_name_of(record: dict) -> str | None:
    return ((record.get("metadata") or {}).get("annotations") or {}).get(CREAnnotation.NAME)


def check_duplicate_name(
    name: str,
    records: Iterable[dict],
    exclude: Iterable[str | None] = (),
) -> None:
    """Reject ``name`` if another record (not in ``exclude``) shows the same display name."""
    wanted = name.strip().casefold()
    skip = {e for e in exclude if e}
    for record in records:
        if (record.get("metadata") or {}).get("name") in skip:
            continue
        existing = display_name_of(record)
        if existing is not None and existing.strip().casefold() == wanted:
            raise DuplicateNameError(name.strip())


def generate_name(existing: Iterable[str], now_ms: int | None = None) -> str:
    """``cre-<epoch ms>``, moved forward a millisecond at a time past any taken name."""
    taken = set(existing)
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    while f"{CRE_NAME_PREFIX}-{stamp}" in taken:
        stamp += 1
    return f"{CRE_NAME_PREFIX}-{stamp}"


# ─── Payload ─────────────────────────────────────────────────────────────────

def build_payload(req: CREResourceCreateRequest, spec: Spec, name: str) -> dict:
    return {
        "kind": ResourceKind.CRE_KIND,
        "apiVersion": ResourceKind.CRE_API_VERSION,
        "metadata": {
            "name": name,
            "annotations": {
                CREAnnotation.DESC: req.description or "",
                CREAnnotation.NAME: req.name.strip(),
                CREAnnotation.CREATOR: req.user or "",
                CREAnnotation.IMAGE_REF: name,
            },
            "labels": {
                Label.PART_OF: Label.PART_OF_METEOR,
            },
        },
        "spec": spec_to_dict(spec),
    }


def compile_request(
    req: CREResourceCreateRequest,
    existing: list[dict],
    *,
    editing: str | None = None,
    now_ms: int | None = None,
) -> dict:
    """
    Full pipeline: validate, check the display name against ``existing``
    intents (ignoring ``editing``), and return the payload to create.
    """
    spec = compile_spec(req)
    check_duplicate_name(req.name, existing, exclude=[editing])
    names = [(r.get("metadata") or {}).get("name", "") for r in existing]
    return build_payload(req, spec, generate_name(names, now_ms))

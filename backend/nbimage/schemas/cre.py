"""
Schemas for CustomRuntimeEnvironment build intents.

Spec shapes are a tagged union on ``buildType``; the merged read view
(``CREDetails``) combines an intent with the ImageStream it produced.
"""
from __future__ import annotations
from typing import Annotated, Literal, Union

from pydantic import Field

from .image import CamelModel, PackageRef


# ─── Persisted spec shapes ───────────────────────────────────────────────────

class RuntimeEnvironment(CamelModel):
    os_name: str
    os_version: str
    python_version: str


class ImagePullSecret(CamelModel):
    name: str


class ImageImportSpec(CamelModel):
    build_type: Literal["ImageImport"] = "ImageImport"
    from_image: str
    image_pull_secret: ImagePullSecret | None = None


class PackageListSpec(CamelModel):
    """Exactly one of ``base_image`` / ``runtime_environment`` is set."""
    build_type: Literal["PackageList"] = "PackageList"
    base_image: str | None = None
    runtime_environment: RuntimeEnvironment | None = None
    package_versions: list[str] = Field(default_factory=list)


class GitRepositorySpec(CamelModel):
    build_type: Literal["GitRepository"] = "GitRepository"
    repository: str
    git_ref: str | None = None


CRESpec = Annotated[
    Union[ImageImportSpec, PackageListSpec, GitRepositorySpec],
    Field(discriminator="build_type"),
]


# ─── Status ──────────────────────────────────────────────────────────────────

class Condition(CamelModel):
    type: str = ""
    status: str = ""
    reason: str | None = None
    message: str | None = None
    last_transition_time: str | None = None


# ─── Requests ────────────────────────────────────────────────────────────────

class RuntimeEnvironmentInput(CamelModel):
    """Runtime triple as typed by the user; any member may be missing."""
    os_name: str | None = None
    os_version: str | None = None
    python_version: str | None = None


class CREResourceCreateRequest(CamelModel):
    """
    Body of ``POST /api/cre``.

    ``mode`` selects the form that produced the request (import, existing,
    build, git). Older clients send only ``buildType``; the compiler derives
    the mode from it.
    """
    mode: Literal["import", "existing", "build", "git"] | None = None
    build_type: Literal["ImageImport", "PackageList", "GitRepository"] | None = None
    name: str = ""
    description: str | None = None
    user: str | None = None

    # import
    from_image: str | None = None
    image_pull_secret_name: str | None = None

    # existing / build
    base_image: str | None = None
    runtime_environment: RuntimeEnvironmentInput | None = None
    package_versions: list[str] | None = None
    requirements: str | None = None
    packages: list[PackageRef] | None = None

    # git
    repository: str | None = None
    git_ref: str | None = None


# ─── Merged view ─────────────────────────────────────────────────────────────

class CREDetails(CamelModel):
    """
    An intent joined with its produced image. Image-derived fields
    (visible, packageAnnotations, softwareAnnotations, url, error, labels)
    are None when ``has_image`` is False.
    """
    id: str
    resource_id: str
    has_image: bool = False
    name: str | None = None
    description: str | None = None
    user: str | None = None
    phase: str | None = None
    last_condition: Condition | None = None
    uploaded: str | None = None

    visible: bool | None = None
    package_annotations: list[PackageRef] | None = None
    software_annotations: list[PackageRef] | None = None
    url: str | None = None
    error: list[str] | None = None
    labels: dict[str, str] | None = None

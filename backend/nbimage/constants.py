"""
Shared constants used across backend modules.
Consolidates custom-resource coordinates, annotation and label keys, and
the enumerations shared by the projector, merge engine and compiler.
"""
from __future__ import annotations


# ── Custom resource coordinates ───────────────────────────────────────────────

class ResourceKind:
    """(group, version, plural) triples for the namespaced custom objects we touch."""
    CRE = ("meteor.zone", "v1alpha1", "customruntimeenvironments")
    IMAGE_STREAM = ("image.openshift.io", "v1", "imagestreams")

    CRE_KIND = "CustomRuntimeEnvironment"
    CRE_API_VERSION = "meteor.zone/v1alpha1"


CRE_NAME_PREFIX = "cre"


# ── Annotation keys ──────────────────────────────────────────────────────────

class ImageAnnotation:
    """Annotations on ImageStreams (metadata and per-tag)."""
    NAME = "opendatahub.io/notebook-image-name"
    DESC = "opendatahub.io/notebook-image-desc"
    URL = "opendatahub.io/notebook-image-url"
    ORDER = "opendatahub.io/notebook-image-order"
    PHASE = "opendatahub.io/notebook-image-phase"
    MESSAGES = "opendatahub.io/notebook-image-messages"
    CREATOR = "opendatahub.io/notebook-image-creator"

    # per-tag
    SOFTWARE = "opendatahub.io/notebook-software"
    DEPENDENCIES = "opendatahub.io/notebook-python-dependencies"
    RECOMMENDED = "opendatahub.io/notebook-image-recommended"
    DEFAULT = "opendatahub.io/default-image"


class CREAnnotation:
    """Annotations on CustomRuntimeEnvironment records."""
    NAME = ImageAnnotation.NAME
    DESC = ImageAnnotation.DESC
    CREATOR = ImageAnnotation.CREATOR
    # explicit join key towards the produced ImageStream
    IMAGE_REF = "opendatahub.io/notebook-image-ref"


# ── Label keys ────────────────────────────────────────────────────────────────

class Label:
    PART_OF = "app.kubernetes.io/part-of"
    NOTEBOOK_IMAGE = "opendatahub.io/notebook-image"
    IMAGE_REF = CREAnnotation.IMAGE_REF

    PART_OF_METEOR = "meteor-operator"


# Label sets used to select ImageStreams per listing type
CRE_IMAGE_LABELS = {Label.PART_OF: Label.PART_OF_METEOR}
NOTEBOOK_IMAGE_LABELS = {Label.NOTEBOOK_IMAGE: "true"}


def labels_for_type(image_type: str) -> dict[str, str]:
    """Label selector for ``GET /api/images/{type}``."""
    if image_type == "cre":
        return dict(CRE_IMAGE_LABELS)
    return dict(NOTEBOOK_IMAGE_LABELS)


# ── Enumerations ──────────────────────────────────────────────────────────────

class BuildType:
    IMAGE_IMPORT = "ImageImport"
    PACKAGE_LIST = "PackageList"
    GIT_REPOSITORY = "GitRepository"

    ALL = frozenset({IMAGE_IMPORT, PACKAGE_LIST, GIT_REPOSITORY})


class Mode:
    """User-facing creation modes of the add-image form."""
    IMPORT = "import"
    EXISTING = "existing"
    BUILD = "build"
    GIT = "git"

    ALL = (IMPORT, EXISTING, BUILD, GIT)


SPECIFIERS = ("==", ">=", "<=", "<", ">", "~=")

DEFAULT_IMAGE_ORDER = 100

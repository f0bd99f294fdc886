"""
Schemas for produced images (OpenShift ImageStreams) as exposed to clients.

Wire names are camelCase to match the dashboard frontend; Python attributes
are snake_case. Build models with field names, dump with ``by_alias=True``.
"""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..constants import DEFAULT_IMAGE_ORDER, SPECIFIERS


class CamelModel(BaseModel):
    """Base for wire models: camelCase aliases, population by field name."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PackageRef(CamelModel):
    """A software/dependency declaration stored in tag annotations."""
    name: str
    version: str = ""
    specifier: str | None = None

    @field_validator("specifier")
    @classmethod
    def _check_specifier(cls, v: str | None) -> str | None:
        if v is not None and v not in SPECIFIERS:
            raise ValueError(f"specifier must be one of {', '.join(SPECIFIERS)}")
        return v


class TagContent(CamelModel):
    software: list[PackageRef] = Field(default_factory=list)
    dependencies: list[PackageRef] = Field(default_factory=list)


class ImageTagInfo(CamelModel):
    """One live tag of an ImageStream."""
    name: str
    content: TagContent = Field(default_factory=TagContent)
    recommended: bool = False
    default: bool = False
    annotations: dict[str, str] = Field(default_factory=dict)


class ImageInfo(BaseModel):
    """Notebook image as offered to end users picking a runtime."""
    name: str
    display_name: str
    description: str = ""
    url: str = ""
    order: int = DEFAULT_IMAGE_ORDER
    tags: list[ImageTagInfo] = Field(default_factory=list)
    docker_image_repo: str = Field("", alias="dockerImageRepo")
    labels: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class CREImageStreamDetails(CamelModel):
    """ImageStream produced by the meteor operator, flattened for the admin table."""
    id: str
    name: str | None = None
    description: str | None = None
    phase: str | None = None
    visible: bool = False
    error: list[str] = Field(default_factory=list)
    package_annotations: list[PackageRef] | None = None
    software_annotations: list[PackageRef] | None = None
    uploaded: str | None = None
    url: str | None = None
    user: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)


class ImageUpdateRequest(CamelModel):
    """Partial update for ``PUT /api/images/{image}``. Unset fields are left alone."""
    id: str | None = None
    name: str | None = None
    description: str | None = None
    visible: bool | None = None
    package_annotations: list[PackageRef] | None = None
    software_annotations: list[PackageRef] | None = None


class ResponseStatus(BaseModel):
    """Result envelope for every mutating endpoint."""
    success: bool
    error: str | None = None

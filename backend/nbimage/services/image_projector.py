"""
Image View Projector — raw ImageStream dicts to client views.

Two projections:
  - project_image_info: ImageInfo for runtime selection (live tags only).
  - project_cre_image:  CREImageStreamDetails for the admin table.
"""
from __future__ import annotations

from .. import logging_service as logger
from ..constants import ImageAnnotation, Label
from ..schemas.image import CREImageStreamDetails, ImageInfo, ImageTagInfo, PackageRef, TagContent
from . import annotation_codec as codec


def _meta(image_stream: dict) -> tuple[str, dict, dict]:
    meta = image_stream.get("metadata") or {}
    return meta.get("name", ""), meta.get("annotations") or {}, meta.get("labels") or {}


def _declared_tags(image_stream: dict) -> list[dict]:
    return (image_stream.get("spec") or {}).get("tags") or []


def project_image_info(image_stream: dict) -> ImageInfo:
    name, annotations, labels = _meta(image_stream)
    return ImageInfo(
        name=name,
        display_name=annotations.get(ImageAnnotation.NAME) or name,
        description=annotations.get(ImageAnnotation.DESC) or "",
        url=annotations.get(ImageAnnotation.URL) or "",
        order=codec.decode_order(annotations.get(ImageAnnotation.ORDER)),
        tags=get_tag_info(image_stream),
        docker_image_repo=(image_stream.get("status") or {}).get("dockerImageRepository") or "",
        labels=labels,
    )


def get_tag_info(image_stream: dict) -> list[ImageTagInfo]:
    """Declared tags that also exist in ``status.tags``, with decoded annotations."""
    name = _meta(image_stream)[0]
    tags = _declared_tags(image_stream)
    if not tags:
        logger.log("images", "WARNING", f"{name} does not have any tags", image=name)
        return []

    result: list[ImageTagInfo] = []
    for tag in tags:
        if not codec.tag_is_live(tag.get("name", ""), image_stream):
            continue
        tag_annotations = tag.get("annotations") or {}
        result.append(ImageTagInfo(
            name=tag.get("name", ""),
            content=get_tag_content(tag_annotations),
            recommended=codec.decode_bool(
                tag_annotations.get(ImageAnnotation.RECOMMENDED), key=ImageAnnotation.RECOMMENDED),
            default=codec.decode_bool(
                tag_annotations.get(ImageAnnotation.DEFAULT), key=ImageAnnotation.DEFAULT),
            annotations=tag_annotations,
        ))
    return result


def get_tag_content(tag_annotations: dict) -> TagContent:
    return TagContent(
        software=codec.decode_packages(
            tag_annotations.get(ImageAnnotation.SOFTWARE), key=ImageAnnotation.SOFTWARE),
        dependencies=codec.decode_packages(
            tag_annotations.get(ImageAnnotation.DEPENDENCIES), key=ImageAnnotation.DEPENDENCIES),
    )


def primary_tag(image_stream: dict) -> dict | None:
    """First live tag; the first declared tag while the image has no status yet."""
    tags = _declared_tags(image_stream)
    if not tags:
        return None
    for tag in tags:
        if codec.tag_is_live(tag.get("name", ""), image_stream):
            return tag
    if not (image_stream.get("status") or {}).get("tags"):
        return tags[0]
    return None


def project_cre_image(image_stream: dict) -> CREImageStreamDetails:
    name, annotations, labels = _meta(image_stream)

    package_annotations: list[PackageRef] | None = None
    software_annotations: list[PackageRef] | None = None
    tag = primary_tag(image_stream)
    if tag is not None:
        tag_annotations = tag.get("annotations") or {}
        package_annotations = codec.decode_packages(
            tag_annotations.get(ImageAnnotation.DEPENDENCIES), key=ImageAnnotation.DEPENDENCIES)
        software_annotations = codec.decode_packages(
            tag_annotations.get(ImageAnnotation.SOFTWARE), key=ImageAnnotation.SOFTWARE)

    return CREImageStreamDetails(
        id=name,
        name=annotations.get(ImageAnnotation.NAME),
        description=annotations.get(ImageAnnotation.DESC),
        phase=annotations.get(ImageAnnotation.PHASE),
        visible=codec.decode_bool(labels.get(Label.NOTEBOOK_IMAGE), key=Label.NOTEBOOK_IMAGE),
        error=codec.decode_messages(
            annotations.get(ImageAnnotation.MESSAGES), key=ImageAnnotation.MESSAGES),
        package_annotations=package_annotations,
        software_annotations=software_annotations,
        uploaded=(image_stream.get("metadata") or {}).get("creationTimestamp"),
        url=annotations.get(ImageAnnotation.URL),
        user=annotations.get(ImageAnnotation.CREATOR),
        labels=labels,
    )

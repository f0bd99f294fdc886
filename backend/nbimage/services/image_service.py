"""
Image Service — list, update and delete produced images (ImageStreams).
"""
from __future__ import annotations

from .. import logging_service as logger
from ..constants import NOTEBOOK_IMAGE_LABELS, ImageAnnotation, Label, ResourceKind, labels_for_type
from ..schemas.image import CREImageStreamDetails, ImageInfo, ImageUpdateRequest
from . import annotation_codec as codec
from .errors import ExternalStoreError
from .image_projector import primary_tag, project_cre_image, project_image_info
from .record_store import RecordStore
from .spec_compiler import check_duplicate_name


def fetch_image_streams(store: RecordStore, labels: dict[str, str] | None) -> list[dict]:
    """List ImageStreams; a failed list degrades to an empty result."""
    try:
        return store.list(ResourceKind.IMAGE_STREAM, labels)
    except ExternalStoreError as e:
        logger.log("store", "ERROR", "Unable to list image streams",
                   {"labels": labels, "error": str(e)})
        return []


def list_images(store: RecordStore, image_type: str) -> list[ImageInfo] | list[CREImageStreamDetails]:
    """``cre`` lists operator-produced images; any other type lists notebook images."""
    labels = labels_for_type(image_type)
    streams = fetch_image_streams(store, labels)
    if image_type == "cre":
        return [project_cre_image(s) for s in streams]
    images = [project_image_info(s) for s in streams]
    images.sort(key=lambda i: (i.order, i.display_name.lower()))
    return images


def build_update_patch(image_stream: dict, req: ImageUpdateRequest) -> dict:
    """Merge-patch body for the fields present in ``req``."""
    annotations: dict[str, str] = {}
    labels: dict[str, str] = {}
    patch: dict = {}

    if req.name:
        annotations[ImageAnnotation.NAME] = req.name
    if req.description is not None:
        annotations[ImageAnnotation.DESC] = req.description
    if req.visible is not None:
        labels[Label.NOTEBOOK_IMAGE] = codec.encode_bool(req.visible)

    tags = (image_stream.get("spec") or {}).get("tags") or []
    if tags and (req.package_annotations is not None or req.software_annotations is not None):
        target = primary_tag(image_stream) or tags[0]
        new_tags = []
        for tag in tags:
            # merge-patch replaces lists wholesale, so every tag is resent
            tag = dict(tag)
            if tag.get("name") == target.get("name"):
                tag_annotations = dict(tag.get("annotations") or {})
                if req.package_annotations is not None:
                    tag_annotations[ImageAnnotation.DEPENDENCIES] = codec.encode(req.package_annotations)
                if req.software_annotations is not None:
                    tag_annotations[ImageAnnotation.SOFTWARE] = codec.encode(req.software_annotations)
                tag["annotations"] = tag_annotations
            new_tags.append(tag)
        patch["spec"] = {"tags": new_tags}

    metadata: dict = {}
    if annotations:
        metadata["annotations"] = annotations
    if labels:
        metadata["labels"] = labels
    if metadata:
        patch["metadata"] = metadata
    return patch


def update_image(store: RecordStore, image: str, req: ImageUpdateRequest) -> dict:
    """
    Apply a partial update to an ImageStream.

    Raises DuplicateNameError when the new display name collides with another
    notebook image, ExternalStoreError when the image is missing or the patch
    fails.
    """
    image_stream = store.get(ResourceKind.IMAGE_STREAM, image)
    if req.name:
        others = store.list(ResourceKind.IMAGE_STREAM, NOTEBOOK_IMAGE_LABELS)
        check_duplicate_name(req.name, others, exclude={image, req.id})

    patch = build_update_patch(image_stream, req)
    if not patch:
        return image_stream

    updated = store.patch(ResourceKind.IMAGE_STREAM, image, patch)
    logger.log("images", "INFO", "Notebook image updated",
               {"fields": sorted(req.model_dump(exclude_none=True).keys())}, image=image)
    return updated


def delete_image(store: RecordStore, image: str) -> None:
    """Delete an ImageStream; deleting a missing image is a no-op."""
    try:
        store.delete(ResourceKind.IMAGE_STREAM, image)
    except ExternalStoreError as e:
        if not e.is_not_found:
            raise
        logger.log("images", "INFO", "Image already gone, nothing to delete", image=image)
        return
    logger.log("images", "INFO", "Notebook image deleted", image=image)

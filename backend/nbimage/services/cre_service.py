"""
CRE Service — the resource merge engine.

A CustomRuntimeEnvironment (the build intent) and the ImageStream the
operator produces for it evolve independently. Every read joins the two
collections afresh:

  1. list intents and CRE-labelled ImageStreams concurrently; a failed list
     degrades to an empty collection,
  2. correlate each intent with at most one image through its join key,
  3. derive a CREDetails view per intent.

Join key: the intent's ``notebook-image-ref`` annotation (written at
creation, defaults to the intent name) must equal the image's
``notebook-image-ref`` label or the image name. Name containment is only
consulted when CRE_SUBSTRING_JOIN is enabled.

Precedence: display metadata (name, description, user) comes from the
image when it carries a value, else from the intent annotations. Lifecycle
(phase, lastCondition, uploaded, id) comes from the intent; the image's
phase annotation is used only while the intent has no status phase.
"""
from __future__ import annotations
import asyncio

from .. import config
from .. import logging_service as logger
from ..constants import CRE_IMAGE_LABELS, CREAnnotation, Label, ResourceKind
from ..schemas.cre import Condition, CREDetails, CREResourceCreateRequest
from ..schemas.image import CREImageStreamDetails
from . import spec_compiler
from .errors import ExternalStoreError
from .image_projector import project_cre_image
from .record_store import RecordStore


# ─── Fetch ───────────────────────────────────────────────────────────────────

def fetch_intents(store: RecordStore) -> list[dict]:
    try:
        return store.list(ResourceKind.CRE)
    except ExternalStoreError as e:
        logger.log("store", "ERROR", "Unable to list CRE resources", {"error": str(e)})
        return []


def fetch_cre_images(store: RecordStore) -> list[CREImageStreamDetails]:
    try:
        streams = store.list(ResourceKind.IMAGE_STREAM, CRE_IMAGE_LABELS)
    except ExternalStoreError as e:
        logger.log("store", "ERROR", "Unable to list CRE image streams", {"error": str(e)})
        return []
    return [project_cre_image(s) for s in streams]


# ─── Join ────────────────────────────────────────────────────────────────────

def join_key(intent: dict) -> str:
    meta = intent.get("metadata") or {}
    annotations = meta.get("annotations") or {}
    return annotations.get(CREAnnotation.IMAGE_REF) or meta.get("name", "")


def find_image(
    intent: dict,
    images: list[CREImageStreamDetails],
    *,
    substring_join: bool = False,
) -> CREImageStreamDetails | None:
    key = join_key(intent)
    if not key:
        return None
    for image in images:
        if image.labels.get(Label.IMAGE_REF) == key:
            return image
    for image in images:
        if image.id == key:
            return image
    if substring_join:
        for image in images:
            if key in image.id:
                return image
    return None


def last_condition(intent: dict) -> Condition | None:
    """Newest condition by lastTransitionTime; the first entry when timestamps are absent."""
    conditions = (intent.get("status") or {}).get("conditions") or []
    conditions = [c for c in conditions if isinstance(c, dict)]
    if not conditions:
        return None
    if all(c.get("lastTransitionTime") for c in conditions):
        # RFC 3339 UTC timestamps sort lexically
        newest = max(conditions, key=lambda c: c["lastTransitionTime"])
    else:
        newest = conditions[0]
    return Condition.model_validate(newest)


def merge_resource(intent: dict, image: CREImageStreamDetails | None) -> CREDetails:
    meta = intent.get("metadata") or {}
    annotations = meta.get("annotations") or {}
    name = meta.get("name", "")
    phase = (intent.get("status") or {}).get("phase")

    details = CREDetails(
        id=name,
        resource_id=name,
        has_image=image is not None,
        name=annotations.get(CREAnnotation.NAME),
        description=annotations.get(CREAnnotation.DESC),
        user=annotations.get(CREAnnotation.CREATOR),
        phase=phase,
        last_condition=last_condition(intent),
        uploaded=meta.get("creationTimestamp"),
    )
    if image is None:
        return details

    details.name = image.name or details.name
    details.description = image.description or details.description
    details.user = image.user or details.user
    details.phase = phase or image.phase
    details.visible = image.visible
    details.package_annotations = image.package_annotations
    details.software_annotations = image.software_annotations
    details.url = image.url
    details.error = image.error
    details.labels = image.labels
    return details


def merge(
    intents: list[dict],
    images: list[CREImageStreamDetails],
    *,
    substring_join: bool | None = None,
) -> list[CREDetails]:
    if substring_join is None:
        substring_join = config.CRE_SUBSTRING_JOIN
    return [
        merge_resource(intent, find_image(intent, images, substring_join=substring_join))
        for intent in intents
    ]


# ─── Operations ──────────────────────────────────────────────────────────────

async def list_cre_details(store: RecordStore) -> list[CREDetails]:
    intents, images = await asyncio.gather(
        asyncio.to_thread(fetch_intents, store),
        asyncio.to_thread(fetch_cre_images, store),
    )
    return merge(intents, images)


async def get_cre_details(store: RecordStore, resource_id: str) -> CREDetails | None:
    """Merged view of one intent; None once the intent is gone."""
    try:
        intent = await asyncio.to_thread(store.get, ResourceKind.CRE, resource_id)
    except ExternalStoreError as e:
        if e.is_not_found:
            return None
        raise
    images = await asyncio.to_thread(fetch_cre_images, store)
    return merge([intent], images)[0]


def create_cre(store: RecordStore, req: CREResourceCreateRequest) -> dict:
    """
    Validate, guard against duplicate display names, and create the intent.
    ValidationError / DuplicateNameError are raised before any write.
    """
    spec_compiler.compile_spec(req)
    existing = store.list(ResourceKind.CRE)
    payload = spec_compiler.compile_request(req, existing)
    created = store.create(ResourceKind.CRE, payload)
    name = created.get("metadata", {}).get("name") or payload["metadata"]["name"]
    logger.log("cre", "INFO", "CRE resource created", {
        "display_name": req.name,
        "build_type": payload["spec"]["buildType"],
        "user": req.user,
    }, resource_id=name)
    return created


def delete_cre(store: RecordStore, resource_id: str) -> None:
    """Delete an intent; an already-deleted intent counts as success."""
    try:
        store.delete(ResourceKind.CRE, resource_id)
    except ExternalStoreError as e:
        if not e.is_not_found:
            raise
        logger.log("cre", "INFO", "CRE resource already gone", resource_id=resource_id)
        return
    logger.log("cre", "INFO", "CRE resource deleted", resource_id=resource_id)

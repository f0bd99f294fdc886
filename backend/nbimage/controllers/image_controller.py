"""
Image Controller — notebook images and operator-produced images (ImageStreams).
Tagged as "Images" for ReDoc grouping.
"""
from __future__ import annotations
import asyncio

from fastapi import APIRouter, Depends

from .. import logging_service as logger
from ..schemas.image import ImageUpdateRequest, ResponseStatus
from ..security import User, current_user, require_admin
from ..services import image_service
from ..services.errors import ExternalStoreError, ValidationError
from ..services.record_store import RecordStore, get_store

router = APIRouter(prefix="/api/images", tags=["Images"])


@router.get("/{image_type}", summary="List images of a type")
async def list_images(
    image_type: str,
    store: RecordStore = Depends(get_store),
    user: User = Depends(current_user),
):
    """
    - **cre**: images produced by the operator (CREImageStreamDetails)
    - anything else: curated notebook images (ImageInfo), sorted by order then name
    """
    images = await asyncio.to_thread(image_service.list_images, store, image_type)
    return [i.model_dump(by_alias=True) for i in images]


@router.put("/{image}", summary="Update a notebook image", response_model=ResponseStatus)
async def update_image(
    image: str,
    req: ImageUpdateRequest,
    store: RecordStore = Depends(get_store),
    user: User = Depends(require_admin),
):
    try:
        await asyncio.to_thread(image_service.update_image, store, image, req)
    except ValidationError as e:
        logger.log("images", "INFO", "Image update rejected", {"error": str(e)}, image=image)
        return ResponseStatus(success=False, error=str(e))
    except ExternalStoreError as e:
        logger.log("images", "ERROR", "Image update failed", {"error": str(e)}, image=image)
        return ResponseStatus(success=False, error=str(e))
    except Exception as e:
        logger.log("images", "ERROR", "Unexpected error updating image",
                   {"error": repr(e)}, image=image)
        return ResponseStatus(success=False, error=str(e))
    return ResponseStatus(success=True)


@router.delete("/{image}", summary="Delete a notebook image", response_model=ResponseStatus)
async def delete_image(
    image: str,
    store: RecordStore = Depends(get_store),
    user: User = Depends(require_admin),
):
    try:
        await asyncio.to_thread(image_service.delete_image, store, image)
    except ExternalStoreError as e:
        logger.log("images", "ERROR", "Image delete failed", {"error": str(e)}, image=image)
        return ResponseStatus(success=False, error=str(e))
    except Exception as e:
        logger.log("images", "ERROR", "Unexpected error deleting image",
                   {"error": repr(e)}, image=image)
        return ResponseStatus(success=False, error=str(e))
    return ResponseStatus(success=True)

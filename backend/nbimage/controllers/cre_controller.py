"""
CRE Controller — build intents (CustomRuntimeEnvironment) joined with the
images they produce.
"""
from __future__ import annotations
import asyncio

from fastapi import APIRouter, Depends, HTTPException

from .. import logging_service as logger
from ..schemas.cre import CREResourceCreateRequest
from ..schemas.image import ResponseStatus
from ..security import User, current_user, require_admin
from ..services import cre_service
from ..services.errors import ExternalStoreError, ValidationError
from ..services.record_store import RecordStore, get_store

router = APIRouter(prefix="/api/cre", tags=["CRE"])


@router.get("", summary="List CRE resources with their images")
async def list_resources(
    store: RecordStore = Depends(get_store),
    user: User = Depends(current_user),
):
    details = await cre_service.list_cre_details(store)
    return [d.model_dump(by_alias=True) for d in details]


@router.get("/{resource_id}", summary="Get one CRE resource")
async def get_resource(
    resource_id: str,
    store: RecordStore = Depends(get_store),
    user: User = Depends(current_user),
):
    try:
        details = await cre_service.get_cre_details(store, resource_id)
    except ExternalStoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if details is None:
        raise HTTPException(status_code=404, detail=f"CRE resource '{resource_id}' not found")
    return details.model_dump(by_alias=True)


@router.post("", summary="Create a CRE resource", response_model=ResponseStatus)
async def create_resource(
    req: CREResourceCreateRequest,
    store: RecordStore = Depends(get_store),
    user: User = Depends(require_admin),
):
    if not req.user:
        req = req.model_copy(update={"user": user.name})
    try:
        await asyncio.to_thread(cre_service.create_cre, store, req)
    except ValidationError as e:
        logger.log("cre", "INFO", "CRE creation rejected",
                   {"display_name": req.name, "error": str(e)})
        return ResponseStatus(success=False, error=str(e))
    except ExternalStoreError as e:
        logger.log("cre", "ERROR", "CRE creation failed",
                   {"display_name": req.name, "error": str(e)})
        return ResponseStatus(success=False, error=str(e))
    except Exception as e:
        logger.log("cre", "ERROR", "Unexpected error creating CRE resource",
                   {"display_name": req.name, "error": repr(e)})
        return ResponseStatus(success=False, error=str(e))
    return ResponseStatus(success=True)


@router.delete("/{resource_id}", summary="Delete a CRE resource", response_model=ResponseStatus)
async def delete_resource(
    resource_id: str,
    store: RecordStore = Depends(get_store),
    user: User = Depends(require_admin),
):
    try:
        await asyncio.to_thread(cre_service.delete_cre, store, resource_id)
    except ExternalStoreError as e:
        logger.log("cre", "ERROR", "CRE delete failed", {"error": str(e)}, resource_id=resource_id)
        return ResponseStatus(success=False, error=str(e))
    except Exception as e:
        logger.log("cre", "ERROR", "Unexpected error deleting CRE resource",
                   {"error": repr(e)}, resource_id=resource_id)
        return ResponseStatus(success=False, error=str(e))
    return ResponseStatus(success=True)

"""
Log Controller — structured application logs.
Tagged as "Logs" for ReDoc grouping.

Reading is open to any authenticated user; clearing, cleanup and level
changes need an administrator.
"""
from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException

from .. import logging_service as logger
from ..security import User, current_user, require_admin

router = APIRouter(prefix="/api/logs", tags=["Logs"])


@router.get("", summary="Fetch application logs")
async def get_logs(
    category: str | None = None,
    level: str | None = None,
    limit: int = 100,
    offset: int = 0,
    resource_id: str | None = None,
    image: str | None = None,
    since: str | None = None,
    until: str | None = None,
    days: int = 7,
    user: User = Depends(current_user),
):
    """
    Retrieve structured log entries with optional filters.

    - **category**: system, images, cre, store
    - **level**: DEBUG, INFO, WARNING, ERROR
    - **resource_id**: filter by CRE resource name
    - **image**: filter by ImageStream name
    - **since/until**: ISO timestamp bounds
    - **days**: how many days of logs to scan (default 7)
    """
    return logger.get_logs(
        category=category, level=level, limit=limit, offset=offset,
        resource_id=resource_id, image=image, since=since, until=until, days=days,
    )


@router.delete("", summary="Clear all logs")
async def clear_logs(user: User = Depends(require_admin)):
    count = logger.clear_logs()
    return {"message": f"Cleared {count} log entries"}


@router.get("/stats", summary="Get log storage stats")
async def get_log_stats(user: User = Depends(current_user)):
    return logger.get_log_stats()


@router.post("/cleanup", summary="Clean up old log files")
async def cleanup_old_logs(retention_days: int | None = None, user: User = Depends(require_admin)):
    """Delete log files older than retention_days (default: LOG_RETENTION_DAYS env var)."""
    deleted = logger.cleanup_old_logs(retention_days)
    return {"message": f"Deleted {deleted} old log files", "deleted": deleted}


@router.get("/level", summary="Get current minimum log level")
async def get_log_level(user: User = Depends(current_user)):
    return {"level": logger.get_min_level()}


@router.put("/level", summary="Set minimum log level")
async def set_log_level(level: str, user: User = Depends(require_admin)):
    level = level.upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        raise HTTPException(status_code=400, detail=f"Invalid level: {level}")
    logger.set_min_level(level)
    logger.log("system", "INFO", f"Minimum log level set to {level}", {"user": user.name})
    return {"message": f"Minimum log level set to {level}", "level": level}

"""
Request identity and the two auth tiers used by the routers.

The API sits behind an authenticating proxy that forwards the user name and
group list as headers. ``current_user`` is the read tier; ``require_admin``
additionally checks ADMIN_USERS / ADMIN_GROUPS.
"""
from __future__ import annotations
from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request

from . import config

_DEV_USER = "developer"


@dataclass(frozen=True)
class User:
    name: str
    groups: tuple[str, ...] = field(default_factory=tuple)
    is_admin: bool = False


def _is_admin(name: str, groups: tuple[str, ...]) -> bool:
    if name in config.ADMIN_USERS:
        return True
    return any(g in config.ADMIN_GROUPS for g in groups)


def current_user(request: Request) -> User:
    if config.AUTH_DISABLED:
        return User(name=request.headers.get(config.USER_HEADER) or _DEV_USER, is_admin=True)

    name = (request.headers.get(config.USER_HEADER) or "").strip()
    if not name:
        raise HTTPException(status_code=401, detail="Not authenticated")
    raw_groups = request.headers.get(config.GROUPS_HEADER) or ""
    groups = tuple(g.strip() for g in raw_groups.split(",") if g.strip())
    return User(name=name, groups=groups, is_admin=_is_admin(name, groups))


def require_admin(user: User = Depends(current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user

"""
CRE Client — small ``requests`` client for the ``/api/cre`` and
``/api/images`` endpoints, used by scripts and by the resource watcher.
"""
from __future__ import annotations
import asyncio

import requests

from ..schemas.cre import CREDetails, CREResourceCreateRequest
from ..schemas.image import ImageUpdateRequest, ResponseStatus


class CREClientError(RuntimeError):
    """The API could not be reached or answered with an error status."""


class CREClient:
    def __init__(
        self,
        base_url: str,
        *,
        user: str | None = None,
        groups: list[str] | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if user:
            self.session.headers["X-Forwarded-User"] = user
        if groups:
            self.session.headers["X-Forwarded-Groups"] = ",".join(groups)

    def _call(self, method: str, path: str, **kwargs):
        try:
            resp = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise CREClientError(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail") or resp.reason
            except ValueError:
                detail = resp.text or resp.reason
            raise CREClientError(f"{method} {path} -> {resp.status_code}: {detail}")
        return resp.json()

    def list_resources(self) -> list[CREDetails]:
        return [CREDetails.model_validate(r) for r in self._call("GET", "/api/cre")]

    async def fetch_resources(self) -> list[CREDetails]:
        """Async wrapper for :meth:`list_resources` (runs in a worker thread)."""
        return await asyncio.to_thread(self.list_resources)

    def create_resource(self, req: CREResourceCreateRequest) -> ResponseStatus:
        body = req.model_dump(by_alias=True, exclude_none=True)
        return ResponseStatus.model_validate(self._call("POST", "/api/cre", json=body))

    def delete_resource(self, resource_id: str) -> ResponseStatus:
        return ResponseStatus.model_validate(self._call("DELETE", f"/api/cre/{resource_id}"))

    def update_image(self, image: str, req: ImageUpdateRequest) -> ResponseStatus:
        body = req.model_dump(by_alias=True, exclude_none=True)
        return ResponseStatus.model_validate(self._call("PUT", f"/api/images/{image}", json=body))

    def delete_image(self, image: str) -> ResponseStatus:
        return ResponseStatus.model_validate(self._call("DELETE", f"/api/images/{image}"))

"""Deployment platform gateway (Akkeris-compatible release statuses)."""

from __future__ import annotations

from typing import Any

import httpx

from scangate.core.errors import PlatformReportError

# Internal verdict names → platform release-status states
_PLATFORM_STATES = {
    "pending": "pending",
    "success": "success",
    "fail": "failure",
    "error": "error",
}

_STATE_IMAGES = {
    "success": "success_sm.png",
    "failure": "failure_sm.png",
    "error": "failure_sm.png",
}


class PlatformGateway:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        callback_url: str,
        context: str = "security/scangate",
        name: str = "Security Scan",
    ) -> None:
        self._client = client
        self._callback_url = callback_url.rstrip("/")
        self._context = context
        self._name = name

    @classmethod
    def build_client(cls, base_url: str, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def get_app(self, token: str, app_name: str) -> dict[str, Any]:
        resp = await self._request(token, "GET", f"/apps/{app_name}")
        return _json(resp)

    async def create_release_status(
        self, token: str, app_name: str, release: str, state: str, description: str
    ) -> str:
        """Open the release status we keep updating; returns its id."""
        platform_state = _PLATFORM_STATES[state]
        resp = await self._request(
            token,
            "POST",
            f"/apps/{app_name}/releases/{release}/statuses",
            json={
                "state": platform_state,
                "context": self._context,
                "name": self._name,
                "description": description,
                "image_url": self._image_url(platform_state),
            },
        )
        status_id = _json(resp).get("id")
        if not status_id:
            raise PlatformReportError("Release status response did not include an id")
        return str(status_id)

    async def update_release_status(
        self,
        token: str,
        app_name: str,
        release: str,
        status_id: str,
        state: str,
        description: str,
        target_url: str | None = None,
    ) -> None:
        platform_state = _PLATFORM_STATES[state]
        body: dict[str, Any] = {
            "state": platform_state,
            "name": self._name,
            "description": description,
            "image_url": self._image_url(platform_state),
        }
        if target_url:
            body["target_url"] = target_url
        await self._request(
            token,
            "PATCH",
            f"/apps/{app_name}/releases/{release}/statuses/{status_id}",
            json=body,
        )

    async def update_release_status_with_error(
        self,
        token: str,
        app_name: str,
        release: str,
        status_id: str,
        error_id: str,
        error_type: str,
    ) -> None:
        await self.update_release_status(
            token,
            app_name,
            release,
            status_id,
            "error",
            f"Scan failed - {error_type}",
            target_url=f"{self._callback_url}/errors/{error_id}",
        )

    def _image_url(self, platform_state: str) -> str:
        return f"{self._callback_url}/static/{_STATE_IMAGES.get(platform_state, 'pending_sm.png')}"

    async def _request(self, token: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(
                method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PlatformReportError(
                f"Platform returned HTTP {exc.response.status_code} for {method} {path}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise PlatformReportError(f"Platform unreachable for {method} {path}: {exc}") from exc
        return resp


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise PlatformReportError(
            f"Platform sent a malformed body for {response.request.method} {response.request.url.path}",
            status_code=response.status_code,
        ) from exc

"""Scan provider gateway (Detectify REST v2 wire shape).

Thin request/response wrappers. Every transport error and non-2xx answer is
raised as :class:`ProviderError` tagged with the operation name and carrying
the provider's response body when it sent one.
"""

from __future__ import annotations

from typing import Any

import httpx

from scangate.core.errors import ProviderError, ReportFetchError
from scangate.core.logging import get_logger

logger = get_logger(__name__)

KEY_HEADER = "X-Detectify-Key"


class ProviderGateway:
    def __init__(self, client: httpx.AsyncClient, *, name_prefix: str = "scangate") -> None:
        self._client = client
        self._name_prefix = name_prefix

    @classmethod
    def build_client(cls, base_url: str, api_key: str, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={KEY_HEADER: api_key},
            timeout=timeout,
        )

    async def list_domains(self) -> list[dict[str, Any]]:
        """All domains the account may scan, as ``{"name", "token"}`` dicts."""
        resp = await self._request("list_domains", "GET", "/rest/v2/domains/")
        body = _json("list_domains", resp)
        if not isinstance(body, list):
            raise ProviderError(
                "list_domains",
                "Domain list response was not a list",
                status_code=resp.status_code,
                body=resp.text,
            )
        return [d for d in body if isinstance(d, dict) and d.get("name") and d.get("token")]

    async def create_profile(self, domain_token: str, host: str) -> dict[str, Any]:
        payload = {
            "domain_token": domain_token,
            "name": f"{self._name_prefix}-{host}",
            "endpoint": host,
            "unique": False,
            "valid": False,
        }
        resp = await self._request("create_profile", "POST", "/rest/v2/profiles/", json=payload)
        created = _object("create_profile", resp)
        if not created.get("token"):
            raise ProviderError(
                "create_profile",
                "Create profile response did not include a token",
                status_code=resp.status_code,
                body=resp.text,
            )
        return created

    async def delete_profile(self, token: str) -> None:
        await self._request("delete_profile", "DELETE", f"/rest/v2/profiles/{token}/")

    async def start_scan(self, token: str) -> None:
        await self._request("start_scan", "POST", f"/rest/v2/scans/{token}/")

    async def get_scan_status(self, token: str) -> str:
        """Current provider state of the profile's latest scan."""
        resp = await self._request("scan_status", "GET", f"/rest/v2/scans/{token}/")
        state = _object("scan_status", resp).get("state")
        if not state or not isinstance(state, str):
            raise ProviderError(
                "scan_status",
                "Scan status response did not include a state",
                status_code=resp.status_code,
                body=resp.text,
            )
        return state

    async def get_full_report(self, token: str) -> dict[str, Any]:
        try:
            resp = await self._request(
                "full_report", "GET", f"/rest/v2/fullreports/{token}/latest/"
            )
            return _object("full_report", resp)
        except ProviderError as exc:
            raise ReportFetchError(
                exc.operation, str(exc), status_code=exc.status_code, body=exc.body
            ) from exc

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = _response_body(exc.response)
            logger.warning(
                "Scan provider call failed",
                operation=operation,
                status_code=exc.response.status_code,
            )
            raise ProviderError(
                operation,
                f"Scan provider returned HTTP {exc.response.status_code} on {operation}",
                status_code=exc.response.status_code,
                body=body,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Scan provider unreachable", operation=operation, error=str(exc))
            raise ProviderError(operation, f"Scan provider unreachable on {operation}: {exc}") from exc
        return resp


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _json(operation: str, response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(
            operation,
            f"Scan provider sent a malformed body on {operation}",
            status_code=response.status_code,
            body=response.text,
        ) from exc


def _object(operation: str, response: httpx.Response) -> dict[str, Any]:
    body = _json(operation, response)
    if not isinstance(body, dict):
        raise ProviderError(
            operation,
            f"Scan provider sent a non-object body on {operation}",
            status_code=response.status_code,
            body=response.text,
        )
    return body

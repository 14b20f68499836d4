"""Thin async HTTP client for the Pulse backend."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from .config import ClientSettings, get_client_settings
from .errors import BackendReadError, BackendWriteError, ConfigurationError, LoginRequired

logger = logging.getLogger(__name__)

UPLOAD_NOT_CONFIGURED = "Upload service not configured"


def _error_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return body.get("detail") or body.get("error") or body
    return body


class BackendClient:
    """Bearer-authenticated requests with one timeout applied to every call."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: ClientSettings | None = None,
    ) -> None:
        self.settings = settings or get_client_settings()
        self.base_url = (base_url or self.settings.base_url).rstrip("/")
        self._token = token
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else self.settings.request_timeout,
            transport=transport,
        )

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    def realtime_url(self) -> str:
        if not self._token:
            raise LoginRequired()
        base = self.settings.resolved_realtime_url(self.base_url)
        return f"{base}?{urlencode({'token': self._token})}"

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, *, write: bool, **kwargs: Any) -> Any:
        error_cls = BackendWriteError if write else BackendReadError
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise error_cls(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            redirect_to = "/auth/login"
            try:
                body = response.json()
                redirect_to = body.get("redirect_to") or redirect_to
            except (ValueError, AttributeError):
                pass
            raise LoginRequired(redirect_to=redirect_to)

        if response.is_error:
            detail = _error_detail(response)
            raise error_cls(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, write=False, params=params)

    async def post(self, path: str, *, json: Any = None) -> Any:
        return await self._request("POST", path, write=True, json=json)

    async def put(self, path: str, *, json: Any = None) -> Any:
        return await self._request("PUT", path, write=True, json=json)

    async def patch(self, path: str, *, json: Any = None) -> Any:
        return await self._request("PATCH", path, write=True, json=json)

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path, write=True)

    async def upload(self, *, path: str, content: bytes, content_type: str, filename: str) -> str:
        """Send a file through the upload relay and return its public URL."""

        try:
            body = await self._request(
                "POST",
                "/api/upload",
                write=True,
                files={"file": (filename, content, content_type)},
                data={"filename": path},
            )
        except BackendWriteError as exc:
            if exc.detail == UPLOAD_NOT_CONFIGURED:
                raise ConfigurationError(UPLOAD_NOT_CONFIGURED) from exc
            raise
        if not isinstance(body, dict) or not body.get("success") or not body.get("url"):
            error = body.get("error") if isinstance(body, dict) else None
            raise BackendWriteError(f"Upload failed: {error or 'no URL returned'}", detail=error)
        return str(body["url"])


__all__ = ["BackendClient", "UPLOAD_NOT_CONFIGURED"]

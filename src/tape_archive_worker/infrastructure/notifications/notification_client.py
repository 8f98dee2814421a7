"""HTTP client for the notification service."""

from __future__ import annotations

from typing import Any, cast

import httpx


class NotificationClientError(RuntimeError):
    """Raised when notification delivery fails."""


class NotificationClient:
    """Wrapper around the notification service endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = self._normalize_base_url(base_url)
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def send_user_notification(self, payload: dict[str, Any]) -> None:
        """Call `/notifications/user`."""

        await self._post("/notifications/user", payload)

    async def send_admin_alert(self, payload: dict[str, Any]) -> None:
        """Call `/notifications/admin`."""

        await self._post("/notifications/admin", payload)

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        url = f"{self._base_url}{path}"
        transport = cast(httpx.AsyncBaseTransport | None, self._transport)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=transport,
            ) as http_client:
                response = await http_client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise NotificationClientError(f"POST {url} failed: {exc}") from exc
        self._ensure_success(response)

    def _ensure_success(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise NotificationClientError(
            f"{response.request.method} {response.request.url} failed: "
            f"{response.status_code} {self._detail_from_response(response)}"
        )

    def _detail_from_response(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            text = response.text.strip()
            return text or "<no response body>"

        if isinstance(payload, dict):
            detail = payload.get("detail")
            if isinstance(detail, str):
                return detail
        return str(payload)

    def _normalize_base_url(self, base_url: str) -> str:
        normalized = base_url.strip().rstrip("/")
        if not normalized:
            raise NotificationClientError("Notification endpoint cannot be empty.")
        return normalized


__all__ = ["NotificationClient", "NotificationClientError"]

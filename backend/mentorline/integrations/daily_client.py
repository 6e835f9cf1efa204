"""Daily.co Video Platform Integration Client.

Creates and deletes private rooms through the Daily REST API. Room names are
derived from the call or group session id, so provisioning is idempotent: a
second create for the same name returns the existing room's URL.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Protocol, cast

import httpx
from pydantic import SecretStr

logger = logging.getLogger(__name__)


class DailyError(RuntimeError):
    """Raised when the Daily API responds with an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class VideoRoomProvider(Protocol):
    def create_room(self, name: str, *, max_participants: int, expires_at: datetime) -> str:
        """Create (or return) the room called ``name`` and return its join URL."""

    def delete_room(self, name: str) -> None:
        """Delete the room called ``name``; missing rooms are not an error."""


class DailyClient:
    """HTTP client for the Daily REST API."""

    def __init__(
        self,
        *,
        api_key: str | SecretStr,
        base_url: str = "https://api.daily.co/v1",
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the Daily API."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(method, url, headers=headers, json=json_body)
        except httpx.TransportError as exc:
            logger.error("Daily API unreachable for %s %s: %s", method, path, exc)
            raise DailyError(message=f"Daily API unreachable: {exc}", status_code=None) from exc

        if response.status_code >= 400:
            error_body: dict[str, Any] = {}
            try:
                parsed_body = response.json()
                if isinstance(parsed_body, dict):
                    error_body = parsed_body
                else:
                    error_body = {"raw": response.text[:500]}
            except ValueError:
                error_body = {"raw": response.text[:500]}

            message = error_body.get("info") or error_body.get("error") or response.text
            logger.error(
                "Daily API error %s for %s %s: %s",
                response.status_code,
                method,
                path,
                response.text[:500],
            )
            raise DailyError(
                message=message,
                status_code=response.status_code,
                details=error_body.get("error"),
            )

        return cast(dict[str, Any], response.json())

    # ── High-level API methods ──────────────────────────────────────────

    def get_room(self, name: str) -> dict[str, Any]:
        return self._request("GET", f"rooms/{name}")

    def create_room(self, name: str, *, max_participants: int, expires_at: datetime) -> str:
        body: dict[str, Any] = {
            "name": name,
            "privacy": "private",
            "properties": {
                "exp": int(expires_at.timestamp()),
                "max_participants": max_participants,
                "enable_chat": True,
                "enable_screenshare": True,
                "enable_knocking": False,
                "eject_at_room_exp": True,
            },
        }
        try:
            room = self._request("POST", "rooms", json_body=body)
        except DailyError as exc:
            # Daily rejects duplicate names; reuse the room created by an earlier attempt
            if exc.status_code == 400 and "already exists" in str(exc.message).lower():
                room = self.get_room(name)
            else:
                raise
        return str(room["url"])

    def delete_room(self, name: str) -> None:
        try:
            self._request("DELETE", f"rooms/{name}")
        except DailyError as exc:
            if exc.status_code == 404:
                return
            raise


class FakeVideoRoomProvider:
    """In-memory stub for testing/non-production environments."""

    def __init__(self, base_url: str = "https://mentorline.daily.co", **kwargs: Any) -> None:
        self._base_url = base_url.rstrip("/")
        self._calls: list[dict[str, Any]] = []
        self._errors: dict[str, DailyError] = {}
        self.rooms: dict[str, str] = {}

    @property
    def calls(self) -> list[dict[str, Any]]:
        return list(self._calls)

    def set_error(self, method: str, error: DailyError) -> None:
        """Inject a method-specific error for deterministic failure testing."""
        self._errors[method] = error

    def clear_errors(self) -> None:
        """Reset all injected fake-client errors."""
        self._errors.clear()

    def _raise_if_injected(self, method: str) -> None:
        error = self._errors.get(method)
        if error is not None:
            raise error

    def create_room(self, name: str, *, max_participants: int, expires_at: datetime) -> str:
        self._calls.append(
            {
                "method": "create_room",
                "name": name,
                "max_participants": max_participants,
                "expires_at": expires_at,
            }
        )
        self._raise_if_injected("create_room")
        url = f"{self._base_url}/{name}"
        self.rooms[name] = url
        return url

    def delete_room(self, name: str) -> None:
        self._calls.append({"method": "delete_room", "name": name})
        self._raise_if_injected("delete_room")
        self.rooms.pop(name, None)

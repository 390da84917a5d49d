"""
REST client for the platform's room lookup endpoint.
"""

from typing import Any, Optional

import httpx
from pydantic import BaseModel

from webcast_relay.config import WebcastSettings, get_settings
from webcast_relay.errors import CredentialError

ROOM_STATUS_LIVE = 2
ROOM_STATUS_OFFLINE = 4


class RoomInfo(BaseModel):
    status: int
    room_id: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.status == ROOM_STATUS_LIVE


class RoomInfoClient:
    def __init__(
        self,
        settings: Optional[WebcastSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": self._settings.user_agent, "Accept": "application/json"},
            timeout=self._settings.http_timeout,
        )

    async def fetch_room_info(self, username: str) -> RoomInfo:
        """Current room status and id for `username`."""
        try:
            resp = await self._client.get(
                self._settings.room_info_url,
                params={"aid": 1988, "sourceType": 54, "uniqueId": username},
            )
        except httpx.HTTPError as e:
            raise CredentialError(f"Room lookup for @{username} failed: {e}") from e
        if resp.status_code >= 400:
            raise CredentialError(f"Room lookup for @{username} failed: HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError as e:
            raise CredentialError(f"Room lookup for @{username} returned invalid JSON") from e
        return self._parse(username, body)

    async def fetch_gift_list(self, room_id: str) -> list[dict[str, Any]]:
        """Every gift available in `room_id`, top-level and paged, unique by id."""
        try:
            resp = await self._client.get(
                self._settings.gift_list_url,
                params={"aid": 1988, "room_id": room_id, "app_language": self._settings.app_language},
            )
        except httpx.HTTPError as e:
            raise CredentialError(f"Gift list for room {room_id} failed: {e}") from e
        if resp.status_code >= 400:
            raise CredentialError(f"Gift list for room {room_id} failed: HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError as e:
            raise CredentialError(f"Gift list for room {room_id} returned invalid JSON") from e
        return self._merge_gifts(body)

    @staticmethod
    def _parse(username: str, body: Any) -> RoomInfo:
        user = (body.get("data") or {}).get("user") if isinstance(body, dict) else None
        if not user:
            raise CredentialError(f"User @{username} not found or invalid room lookup response")
        room_id = user.get("roomId")
        return RoomInfo(status=int(user.get("status", 0)), room_id=str(room_id) if room_id else None)

    @staticmethod
    def _merge_gifts(body: Any) -> list[dict[str, Any]]:
        data = (body.get("data") if isinstance(body, dict) else None) or {}
        gifts = list(data.get("gifts") or [])
        for page in data.get("pages") or []:
            gifts.extend(page.get("gifts") or [])
        # later duplicates win, first position is kept
        unique: dict[Any, dict[str, Any]] = {}
        for gift in gifts:
            unique[gift.get("id")] = gift
        return list(unique.values())

    async def close(self) -> None:
        await self._client.aclose()

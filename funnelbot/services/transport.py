import base64
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from funnelbot.logging_config import get_logger
from funnelbot.services.media_service import MediaFile

logger = get_logger("transport")

GROUP_SUFFIX = "@g.us"
BROADCAST_SUFFIX = "@broadcast"


def is_group_or_broadcast(contact_id: Optional[str]) -> bool:
    value = contact_id or ""
    return GROUP_SUFFIX in value or BROADCAST_SUFFIX in value


class MessagingTransport(ABC):
    """Delivery side of the WhatsApp session."""

    @abstractmethod
    async def send_text(self, contact_id: str, text: str) -> bool:
        """Deliver a text message. Returns False when delivery failed."""
        pass

    @abstractmethod
    async def send_media(self, contact_id: str, media: MediaFile) -> bool:
        """Deliver an image or document."""
        pass


class GatewayTransport(MessagingTransport):
    """Sends through the HTTP gateway that holds the WhatsApp Web session."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, endpoint: str, payload: dict) -> bool:
        url = f"{self.base_url}/{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Gateway request failed: {endpoint}: {e}")
            return False

        if response.is_error:
            logger.error(
                "Gateway rejected message",
                extra={"context": {"endpoint": endpoint, "status": response.status_code, "body": response.text[:200]}},
            )
            return False
        return True

    async def send_text(self, contact_id: str, text: str) -> bool:
        return await self._post("send-text", {"to": contact_id, "text": text})

    async def send_media(self, contact_id: str, media: MediaFile) -> bool:
        return await self._post(
            "send-media",
            {
                "to": contact_id,
                "mimetype": media.mime,
                "filename": media.filename,
                "data": base64.b64encode(media.data).decode("ascii"),
            },
        )

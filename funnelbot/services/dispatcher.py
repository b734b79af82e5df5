import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from funnelbot.logging_config import ContactLoggerAdapter, get_logger
from funnelbot.services.alert_service import alert_error
from funnelbot.services.media_service import MediaFetcher
from funnelbot.services.result import MEDIA_FETCH_FAILED, TRANSPORT_ERROR, Result
from funnelbot.services.transport import MessagingTransport

logger = get_logger("dispatcher")

TEXT = "text"
IMAGE = "image"
DOCUMENT = "document"
MEDIA_KINDS = {IMAGE, DOCUMENT}

MSG_IMAGE_UNAVAILABLE = "❌ Imagen no disponible."
MSG_DOCUMENT_UNAVAILABLE = "❌ PDF no disponible."
MSG_IMAGE_SEND_ERROR = "❌ Error al enviar imagen."
MSG_DOCUMENT_SEND_ERROR = "❌ Error al enviar PDF."
MSG_SEND_ERROR = "❌ Error al enviar la información."


@dataclass(frozen=True)
class OutboundItem:
    kind: str
    content: str

    @classmethod
    def text(cls, content: str) -> "OutboundItem":
        return cls(TEXT, content)

    @classmethod
    def image(cls, ref: str) -> "OutboundItem":
        return cls(IMAGE, ref)

    @classmethod
    def document(cls, ref: str) -> "OutboundItem":
        return cls(DOCUMENT, ref)


class ContentDispatcher:
    """Delivers an ordered sequence of items to one contact, paced to keep order."""

    def __init__(
        self,
        transport: MessagingTransport,
        media: MediaFetcher,
        *,
        delay_seconds: float = 1.0,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
        alert_func: Optional[Callable[..., Awaitable[bool]]] = alert_error,
    ):
        self.transport = transport
        self.media = media
        self.delay_seconds = delay_seconds
        self.sleep_func = sleep_func
        self.alert_func = alert_func

    async def _send_text(self, contact_id: str, text: str) -> bool:
        try:
            return bool(await self.transport.send_text(contact_id, text))
        except Exception as e:
            logger.error(f"send_text raised for {contact_id}: {e}")
            return False

    async def _send_media(self, contact_id: str, item: OutboundItem, log) -> bool:
        resolved = await self.media.resolve(item.content)
        if not resolved.ok:
            log.warning("Media unavailable, sending notice", context={"ref": item.content, "code": resolved.error_code})
            if resolved.error_code == MEDIA_FETCH_FAILED:
                notice = MSG_IMAGE_SEND_ERROR if item.kind == IMAGE else MSG_DOCUMENT_SEND_ERROR
            else:
                notice = MSG_IMAGE_UNAVAILABLE if item.kind == IMAGE else MSG_DOCUMENT_UNAVAILABLE
            return await self._send_text(contact_id, notice)

        try:
            return bool(await self.transport.send_media(contact_id, resolved.value))
        except Exception as e:
            logger.error(f"send_media raised for {contact_id}: {e}")
            return False

    async def send_item(self, contact_id: str, item: OutboundItem, log=None) -> bool:
        log = log or ContactLoggerAdapter(logger, {"contact_id": contact_id})
        if item.kind == TEXT:
            return await self._send_text(contact_id, item.content)
        if item.kind in MEDIA_KINDS:
            return await self._send_media(contact_id, item, log)
        log.warning(f"Unknown outbound kind {item.kind!r}, skipping")
        return True

    async def dispatch(self, contact_id: str, items: Iterable[OutboundItem]) -> Result[int]:
        """Send items in order. A transport failure aborts the rest of the sequence."""
        log = ContactLoggerAdapter(logger, {"contact_id": contact_id})
        delivered = 0
        for index, item in enumerate(items):
            if index and self.delay_seconds > 0:
                await self.sleep_func(self.delay_seconds)

            if not await self.send_item(contact_id, item, log):
                log.error("Delivery failed, aborting sequence", context={"step": index, "kind": item.kind})
                if self.alert_func is not None:
                    await self.alert_func("WhatsApp send failed", {"contact": contact_id, "step": index})
                await self._send_text(contact_id, MSG_SEND_ERROR)
                return Result.failure(f"Delivery failed at step {index}", TRANSPORT_ERROR)
            delivered += 1

        if delivered:
            log.info(f"Delivered {delivered} item(s)")
        return Result.success(delivered)

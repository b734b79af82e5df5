import asyncio
from unittest.mock import AsyncMock

from conftest import FakeMedia, RecordingTransport

from funnelbot.services.dispatcher import (
    MSG_DOCUMENT_SEND_ERROR,
    MSG_DOCUMENT_UNAVAILABLE,
    MSG_IMAGE_SEND_ERROR,
    MSG_IMAGE_UNAVAILABLE,
    MSG_SEND_ERROR,
    ContentDispatcher,
    OutboundItem,
)
from funnelbot.services.result import TRANSPORT_ERROR

CONTACT = "51999888777@c.us"


def _dispatcher(transport, media=None, alert=None):
    delays = []

    async def record_sleep(seconds):
        delays.append(seconds)

    dispatcher = ContentDispatcher(
        transport, media or FakeMedia(), delay_seconds=1.0, sleep_func=record_sleep, alert_func=alert
    )
    return dispatcher, delays


class TestDispatch:
    def test_sends_in_order_with_pacing(self):
        transport = RecordingTransport()
        dispatcher, delays = _dispatcher(transport)
        items = [OutboundItem.image("oro.png"), OutboundItem.text("Beneficios"), OutboundItem.document("oro.pdf")]

        result = asyncio.run(dispatcher.dispatch(CONTACT, items))

        assert result.ok
        assert result.value == 3
        assert transport.sent == [
            (CONTACT, "media", "oro.png"),
            (CONTACT, "text", "Beneficios"),
            (CONTACT, "media", "oro.pdf"),
        ]
        assert delays == [1.0, 1.0]

    def test_empty_sequence(self):
        transport = RecordingTransport()
        dispatcher, delays = _dispatcher(transport)

        result = asyncio.run(dispatcher.dispatch(CONTACT, []))

        assert result.value == 0
        assert transport.sent == []
        assert delays == []

    def test_unreachable_media_replaced_by_notice(self):
        transport = RecordingTransport()
        dispatcher, _ = _dispatcher(transport, FakeMedia(missing={"oro.png", "oro.pdf"}))
        items = [OutboundItem.image("oro.png"), OutboundItem.document("oro.pdf"), OutboundItem.text("Precio")]

        result = asyncio.run(dispatcher.dispatch(CONTACT, items))

        assert result.value == 3
        assert transport.texts() == [MSG_IMAGE_UNAVAILABLE, MSG_DOCUMENT_UNAVAILABLE, "Precio"]

    def test_failed_download_gets_send_error_notice(self):
        transport = RecordingTransport()
        dispatcher, _ = _dispatcher(transport, FakeMedia(broken={"oro.png", "oro.pdf"}))
        items = [OutboundItem.image("oro.png"), OutboundItem.document("oro.pdf"), OutboundItem.text("Precio")]

        result = asyncio.run(dispatcher.dispatch(CONTACT, items))

        assert result.value == 3
        assert transport.texts() == [MSG_IMAGE_SEND_ERROR, MSG_DOCUMENT_SEND_ERROR, "Precio"]

    def test_transport_failure_aborts_and_apologises(self):
        transport = RecordingTransport(fail_after=1)
        alert = AsyncMock(return_value=True)
        dispatcher, _ = _dispatcher(transport, alert=alert)
        items = [OutboundItem.text("uno"), OutboundItem.text("dos"), OutboundItem.text("tres")]

        result = asyncio.run(dispatcher.dispatch(CONTACT, items))

        assert not result.ok
        assert result.error_code == TRANSPORT_ERROR
        assert transport.texts() == ["uno", "dos", MSG_SEND_ERROR]
        alert.assert_awaited_once()

    def test_raising_transport_counts_as_failure(self):
        transport = RecordingTransport()
        transport.send_text = AsyncMock(side_effect=RuntimeError("socket closed"))
        dispatcher, _ = _dispatcher(transport)

        result = asyncio.run(dispatcher.dispatch(CONTACT, [OutboundItem.text("uno")]))

        assert result.error_code == TRANSPORT_ERROR


class TestSendItem:
    def test_unknown_kind_skipped(self):
        transport = RecordingTransport()
        dispatcher, _ = _dispatcher(transport)

        assert asyncio.run(dispatcher.send_item(CONTACT, OutboundItem("video", "x.mp4"))) is True
        assert transport.sent == []

from fastapi import APIRouter, Depends

from funnelbot.logging_config import get_logger
from funnelbot.schemas.webhook import InboundMessage, InboundResponse
from funnelbot.services.engine_controller import EngineController, get_controller
from funnelbot.services.transport import is_group_or_broadcast

logger = get_logger("webhook")

router = APIRouter()


@router.post("/webhook", response_model=InboundResponse)
async def receive_message(message: InboundMessage, controller: EngineController = Depends(get_controller)):
    """Inbound text from the WhatsApp gateway."""
    if is_group_or_broadcast(message.contact_id):
        return InboundResponse(success=True, message="Group or broadcast message ignored")

    engine = controller.engine
    if engine is None or not engine.accepting:
        logger.info("Inbound message while engine is stopped", extra={"context": {"contact_id": message.contact_id}})
        return InboundResponse(success=False, message="Engine not running")

    task = engine.submit(message.contact_id, message.body or "")
    return InboundResponse(success=True, accepted=task is not None, message="Queued")

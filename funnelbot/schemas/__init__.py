from funnelbot.schemas.engine import ContactStateResponse, EngineActionResponse, EngineStatusResponse, StartRequest
from funnelbot.schemas.webhook import InboundMessage, InboundResponse

__all__ = [
    "ContactStateResponse",
    "EngineActionResponse",
    "EngineStatusResponse",
    "InboundMessage",
    "InboundResponse",
    "StartRequest",
]

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class InboundMessage(BaseModel):
    contact_id: str = Field(validation_alias=AliasChoices("from", "remoteJid", "sender", "contact_id"))
    body: Optional[str] = Field(default=None, validation_alias=AliasChoices("body", "message", "text"))


class InboundResponse(BaseModel):
    success: bool
    accepted: bool = False
    message: str

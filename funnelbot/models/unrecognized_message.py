from sqlalchemy import Column, DateTime, Integer, Text

from funnelbot.database import Base


class UnrecognizedMessage(Base):
    __tablename__ = "unrecognized_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(Text, nullable=False, index=True)
    body = Column(Text, nullable=False)
    received_at = Column(DateTime(timezone=True), nullable=False)

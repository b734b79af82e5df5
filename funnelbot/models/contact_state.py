from sqlalchemy import Column, DateTime, Integer, Text

from funnelbot.database import Base


class ContactState(Base):
    __tablename__ = "bot_contact_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(Text, nullable=False, unique=True, index=True)
    tag = Column(Text, nullable=False, default="none")
    updated_at = Column(DateTime(timezone=True), nullable=False)

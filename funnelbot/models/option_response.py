from sqlalchemy import Column, ForeignKey, Integer, Text

from funnelbot.database import Base


class OptionResponse(Base):
    __tablename__ = "member_option_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    option_number = Column(Integer, nullable=False)
    response_kind = Column(Text, nullable=False, default="text")  # text, schedule, submenu
    message = Column(Text)

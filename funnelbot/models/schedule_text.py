from sqlalchemy import Column, ForeignKey, Integer, Text

from funnelbot.database import Base


class ScheduleText(Base):
    __tablename__ = "schedule_texts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    response_id = Column(Integer, ForeignKey("member_option_responses.id"), nullable=False, index=True)
    condition = Column(Text, nullable=False)  # within, outside
    message = Column(Text, nullable=False)

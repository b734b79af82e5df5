from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint

from funnelbot.database import Base


class PlanOption(Base):
    __tablename__ = "member_options"
    __table_args__ = (UniqueConstraint("plan_id", "option_number", name="uq_member_options_plan_number"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    option_number = Column(Integer, nullable=False)
    option_text = Column(Text, nullable=False)

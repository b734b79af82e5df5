from sqlalchemy import Column, ForeignKey, Integer, Text

from funnelbot.database import Base


class PaymentMethodStep(Base):
    __tablename__ = "payment_method_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    response_id = Column(Integer, ForeignKey("member_option_responses.id"), nullable=False, index=True)
    method_name = Column(Text, nullable=False)
    step_order = Column(Integer, nullable=False, default=1)
    step_kind = Column(Text, nullable=False, default="text")  # text, image
    content = Column(Text, nullable=False)

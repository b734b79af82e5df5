from sqlalchemy import Column, Integer, Text

from funnelbot.database import Base


class MembershipPlan(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    post_media_ref = Column(Text)  # image shown first
    benefit_text = Column(Text)
    pdf_media_ref = Column(Text)
    price = Column(Text)

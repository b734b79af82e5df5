from sqlalchemy import Column, Integer, Text

from funnelbot.database import Base

# (field, kind) in delivery order
PRESENTATION_STEPS = (
    ("welcome_text", "text"),
    ("presentation_media", "image"),
    ("brochure_media", "document"),
    ("modality_media_a", "image"),
    ("modality_media_b", "image"),
    ("session_text", "text"),
    ("investment_media", "image"),
    ("final_text", "text"),
)

PAYMENT_CHOICE_STEPS = {
    "yape": (
        ("yape_text_first", "text"),
        ("yape_media", "image"),
        ("yape_text_second", "text"),
    ),
    "card": (
        ("card_text_first", "text"),
        ("card_text_second", "text"),
    ),
}


class Campaign(Base):
    __tablename__ = "bot_foundation"

    id = Column(Integer, primary_key=True, autoincrement=True)
    welcome_text = Column(Text)
    presentation_media = Column(Text)
    brochure_media = Column(Text)
    modality_media_a = Column(Text)
    modality_media_b = Column(Text)
    session_text = Column(Text)
    investment_media = Column(Text)
    final_text = Column(Text)
    keywords = Column(Text, nullable=False, default="[]")  # JSON array of strings
    payment_prompt_text = Column(Text)
    yape_text_first = Column(Text)
    yape_media = Column(Text)
    yape_text_second = Column(Text)
    card_text_first = Column(Text)
    card_text_second = Column(Text)

    def iter_steps(self, descriptors):
        """Yield (kind, value) for every non-empty field in descriptor order."""
        for field, kind in descriptors:
            value = getattr(self, field, None)
            if value:
                yield kind, value

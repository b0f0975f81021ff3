from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Text

from app.database import Base


class ConversationSessionRecord(Base):
    __tablename__ = "conversation_sessions"

    user_id = Column(Text, primary_key=True)  # phone number
    state = Column(Text, nullable=False, default="initial")
    profile = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_active = Column(DateTime(timezone=True), nullable=False, index=True)
    message_count = Column(Integer, nullable=False, default=0)
    analysis = Column(JSON)
    analyzed_at = Column(DateTime(timezone=True))
    analysis_generation = Column(Integer, nullable=False, default=0)
    analysis_started_at = Column(DateTime(timezone=True))
    active_payment_order_id = Column(Text)
    pdf_delivered = Column(Boolean, nullable=False, default=False)
    has_paid = Column(Boolean, nullable=False, default=False)
    document_ref = Column(Text)
    completed_at = Column(DateTime(timezone=True))

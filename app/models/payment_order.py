from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.database import Base


class PaymentOrderRecord(Base):
    __tablename__ = "payment_orders"

    order_id = Column(Text, primary_key=True)  # gateway-assigned
    user_id = Column(Text, nullable=False, index=True)
    amount_minor_units = Column(Integer, nullable=False)
    currency = Column(String(8), nullable=False)
    status = Column(Text, nullable=False, default="created")  # created, completed, failed
    receipt = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))
    payment_id = Column(Text)
    failed_at = Column(DateTime(timezone=True))
    failure_reason = Column(Text)
    analysis_snapshot = Column(JSON)
    document_ref = Column(Text)

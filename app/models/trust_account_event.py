import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from app.db.base import Base


TRUST_EVENT_TYPES = (
    "Deposit",
    "Withdrawal",
    "Funding Disbursement",
    "Funding Reversal",
    "Payment Distribution",
    "Payment Reversal",
)


class TrustAccountEvent(Base):
    """Append-only trust account movement; rows are never updated or deleted."""

    __tablename__ = "trust_account_events"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_trust_events_amount_positive"),
        CheckConstraint(
            "event_type IN ('Deposit', 'Withdrawal', 'Funding Disbursement', 'Funding Reversal', "
            "'Payment Distribution', 'Payment Reversal')",
            name="ck_trust_events_type",
        ),
        Index("ix_trust_events_lender_date", "lender_id", "event_date"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lender_id = Column(String(36), ForeignKey("lenders.id", ondelete="RESTRICT"), nullable=False)
    event_type = Column(String(30), nullable=False)
    event_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    related_loan_id = Column(String(36), nullable=True, index=True)
    related_loan_code = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    lender = relationship("Lender", back_populates="trust_account_events")

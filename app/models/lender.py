import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.base import Base


class Lender(Base):
    __tablename__ = "lenders"
    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_lenders_version_positive"),
        CheckConstraint("trust_balance >= 0", name="ck_lenders_trust_balance_nonneg"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account = Column(String(50), nullable=False, unique=True)
    lender_name = Column(String(255), nullable=False)
    address = Column(JSONB, nullable=True)
    portfolio_value = Column(Numeric(14, 2), nullable=False, default=0)
    trust_balance = Column(Numeric(14, 2), nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    trust_account_events = relationship(
        "TrustAccountEvent",
        back_populates="lender",
        order_by="TrustAccountEvent.event_date",
        lazy="selectin",
    )

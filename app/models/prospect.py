import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class Prospect(Base):
    """A borrower application; becomes a loan once ``status`` is completed."""

    __tablename__ = "prospects"
    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_prospects_version_positive"),
        CheckConstraint("loan_amount >= 0", name="ck_prospects_loan_amount_nonneg"),
        CheckConstraint(
            "status IN ('in_progress', 'completed', 'rejected')",
            name="ck_prospects_status",
        ),
        CheckConstraint(
            "borrower_type IN ('individual', 'company', 'both')",
            name="ck_prospects_borrower_type",
        ),
        CheckConstraint(
            "loan_type IN ('purchase', 'refinance')",
            name="ck_prospects_loan_type",
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(32), nullable=True, unique=True)
    version = Column(Integer, nullable=False, default=1)
    borrower_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    county = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    borrower_type = Column(String(20), nullable=False)
    loan_type = Column(String(20), nullable=False)
    loan_amount = Column(Numeric(14, 2), nullable=False, default=0)
    assigned_to = Column(String(36), nullable=True, index=True)
    assigned_to_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="in_progress", index=True)
    rejected_at_stage = Column(Integer, nullable=True)
    current_stage = Column(Integer, nullable=False, default=1)
    current_stage_name = Column(String(50), nullable=False, default="")
    stages = Column(JSONB, nullable=False, default=list)
    terms = Column(JSONB, nullable=True)
    funders = Column(JSONB, nullable=False, default=list)
    history = Column(JSONB, nullable=False, default=list)
    properties = Column(JSONB, nullable=False, default=list)
    co_borrowers = Column(JSONB, nullable=False, default=list)
    borrower_details = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

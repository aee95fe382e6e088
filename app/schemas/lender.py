from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.prospect import Address


class TrustEventType(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    FUNDING_DISBURSEMENT = "Funding Disbursement"
    FUNDING_REVERSAL = "Funding Reversal"
    PAYMENT_DISTRIBUTION = "Payment Distribution"
    PAYMENT_REVERSAL = "Payment Reversal"


WITHDRAWAL_EVENT_TYPES = frozenset(
    {
        TrustEventType.WITHDRAWAL.value,
        TrustEventType.FUNDING_DISBURSEMENT.value,
        TrustEventType.PAYMENT_REVERSAL.value,
    }
)


class TrustAccountEvent(BaseModel):
    model_config = ConfigDict(use_enum_values=True, from_attributes=True)

    id: str
    lender_id: str | None = None
    event_type: TrustEventType
    event_date: date
    description: str
    amount: Decimal
    related_loan_id: str | None = None
    related_loan_code: str | None = None
    created_at: datetime | None = None


class Lender(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account: str
    lender_name: str
    address: Address | None = None
    portfolio_value: Decimal = Decimal("0")
    trust_balance: Decimal = Decimal("0")
    trust_account_events: list[TrustAccountEvent] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1


class LenderCreate(BaseModel):
    account: str = Field(min_length=1)
    lender_name: str = Field(min_length=1)
    address: Address | None = None


class LenderUpdate(BaseModel):
    account: str | None = None
    lender_name: str | None = None
    address: Address | None = None


class PortfolioLoan(BaseModel):
    """One funded loan in which the lender holds a participation."""

    loan_id: str
    code: str | None = None
    borrower_name: str
    closing_date: date | None = None
    funder_id: str
    principal_balance: Decimal
    pct_owned: Decimal
    lender_rate: Decimal


class LenderPortfolio(BaseModel):
    lender_id: str
    portfolio_value: Decimal = Decimal("0")
    loans: list[PortfolioLoan] = Field(default_factory=list)


class TrustTransactionCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    event_type: TrustEventType
    event_date: date
    description: str
    amount: Decimal
    related_loan_id: str | None = None
    related_loan_code: str | None = None

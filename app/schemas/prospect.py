from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BorrowerType(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"
    BOTH = "both"


class LoanType(str, Enum):
    PURCHASE = "purchase"
    REFINANCE = "refinance"


class ProspectStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class StageStatus(str, Enum):
    LOCKED = "locked"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DocumentStatus(str, Enum):
    MISSING = "missing"
    READY_FOR_REVIEW = "ready_for_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentBucket(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"
    PROPERTY = "property"
    GENERAL = "general"
    CLOSING_FINAL_APPROVAL = "closing_final_approval"


class ClosingCategory(str, Enum):
    DISCLOSURES = "disclosures"
    LOAN_DOCS = "loan_docs"


class ClosingFlag(str, Enum):
    SENT = "sent"
    SIGNED = "signed"
    FILLED = "filled"


class HistoryEventType(str, Enum):
    FUNDING = "Funding"
    PAYMENT = "Payment"


class Document(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str
    status: DocumentStatus = DocumentStatus.MISSING
    is_custom: bool = False
    is_optional: bool = False
    link: str | None = None
    sent: bool | None = None
    signed: bool | None = None
    filled: bool | None = None
    category: ClosingCategory | None = None


class StageDocuments(BaseModel):
    individual: list[Document] | None = None
    company: list[Document] | None = None
    property: list[Document] | None = None
    general: list[Document] | None = None
    closing_final_approval: list[Document] | None = None

    def bucket(self, name: DocumentBucket | str) -> list[Document]:
        return list(getattr(self, DocumentBucket(name).value) or [])

    def with_bucket(self, name: DocumentBucket | str, documents: list[Document]) -> StageDocuments:
        return self.model_copy(update={DocumentBucket(name).value: documents})


class Stage(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: int
    name: str
    status: StageStatus = StageStatus.LOCKED
    documents: StageDocuments = Field(default_factory=StageDocuments)


class Address(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    county: str | None = None
    country: str | None = None


class BorrowerDetails(BaseModel):
    salutation: str | None = None
    work_phone: str | None = None
    mobile_phone: str | None = None
    mailing_address: Address | None = None


class LoanTerms(BaseModel):
    original_amount: Decimal | None = None
    note_rate: Decimal | None = None
    principal_balance: Decimal | None = None
    trust_balance: Decimal | None = None
    closing_date: date | None = None
    maturity_date: date | None = None
    loan_term_months: int | None = None
    monthly_payment: Decimal | None = None


class ServicingFees(BaseModel):
    rounding_adjustment: bool = False
    broker_servicing_fee_enabled: bool = False
    broker_servicing_fee_percent: Decimal = Decimal("0")
    broker_servicing_fee_plus_amount: Decimal = Decimal("0")
    broker_servicing_fee_minimum: Decimal = Decimal("0")


class Funder(BaseModel):
    id: str
    lender_id: str
    lender_account: str
    lender_name: str
    original_amount: Decimal = Decimal("0")
    lender_rate: Decimal = Decimal("0")
    principal_balance: Decimal = Decimal("0")
    pct_owned: Decimal = Decimal("0")
    servicing_fees: ServicingFees | None = None


class Distribution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    funder_id: str = Field(alias="funderId")
    amount: Decimal


class HistoryEvent(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    type: HistoryEventType
    date_created: date
    date_received: date
    total_amount: Decimal
    notes: str | None = None
    distributions: list[Distribution] = Field(default_factory=list)
    created_by_user_id: str | None = None
    created_by_user_name: str | None = None
    # Participation sold out of the originator's share by a funding event.
    originator_funder_id: str | None = None
    participation_sold: Decimal = Decimal("0")
    # Set on the funding event created at conversion; it has no trust posting to undo.
    origination: bool = False


class PropertyPhoto(BaseModel):
    id: str
    url: str
    storage_path: str


class Property(BaseModel):
    id: str
    is_primary: bool = False
    is_reo: bool | None = None
    description: str = ""
    address: Address = Field(default_factory=Address)
    property_type: str | None = None
    occupancy: str | None = None
    appraisal_value: Decimal | None = None
    appraisal_date: date | None = None
    ltv: Decimal | None = None
    purchase_price: Decimal | None = None
    apn: str | None = None
    priority: str | None = None
    flood_zone: str | None = None
    zoning: str | None = None
    photos: list[PropertyPhoto] = Field(default_factory=list)


class CoBorrower(BaseModel):
    id: str
    full_name: str
    salutation: str | None = None
    email: str | None = None
    relation_type: str | None = None
    phone_numbers: dict[str, str] | None = None
    mailing_address: Address | None = None


class Prospect(BaseModel):
    model_config = ConfigDict(use_enum_values=True, from_attributes=True)

    id: str
    code: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1
    borrower_name: str
    email: str | None = None
    phone_number: str | None = None
    county: str | None = None
    state: str | None = None
    borrower_type: BorrowerType
    loan_type: LoanType
    loan_amount: Decimal = Decimal("0")
    assigned_to: str | None = None
    assigned_to_name: str | None = None
    status: ProspectStatus = ProspectStatus.IN_PROGRESS
    rejected_at_stage: int | None = None
    current_stage: int = 1
    current_stage_name: str = ""
    stages: list[Stage] = Field(default_factory=list)
    terms: LoanTerms | None = None
    funders: list[Funder] = Field(default_factory=list)
    history: list[HistoryEvent] = Field(default_factory=list)
    properties: list[Property] = Field(default_factory=list)
    co_borrowers: list[CoBorrower] = Field(default_factory=list)
    borrower_details: BorrowerDetails | None = None

    def stage(self, stage_id: int) -> Stage | None:
        return next((stage for stage in self.stages if stage.id == stage_id), None)

    def funder(self, funder_id: str) -> Funder | None:
        return next((funder for funder in self.funders if funder.id == funder_id), None)


class ProspectCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    borrower_name: str = Field(min_length=1)
    email: str | None = None
    phone_number: str | None = None
    county: str | None = None
    state: str | None = None
    borrower_type: BorrowerType
    loan_type: LoanType
    loan_amount: Decimal = Field(ge=0)
    assigned_to: str


class ProspectUpdate(BaseModel):
    """Partial update; only explicitly set fields are applied."""

    model_config = ConfigDict(use_enum_values=True)

    borrower_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    county: str | None = None
    state: str | None = None
    borrower_type: BorrowerType | None = None
    loan_type: LoanType | None = None
    loan_amount: Decimal | None = Field(default=None, ge=0)
    assigned_to: str | None = None
    terms: LoanTerms | None = None
    properties: list[Property] | None = None
    co_borrowers: list[CoBorrower] | None = None
    borrower_details: BorrowerDetails | None = None


class DocumentStatusUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    bucket: DocumentBucket
    status: DocumentStatus


class ClosingFlagUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    key: ClosingFlag
    value: bool


class CustomDocumentCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    bucket: DocumentBucket
    name: str = Field(min_length=1)


class DocumentLinkUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    bucket: DocumentBucket
    link: str = Field(min_length=1)


class RejectRequest(BaseModel):
    stage_id: int


class FunderCreate(BaseModel):
    lender_id: str
    original_amount: Decimal = Field(ge=0)
    lender_rate: Decimal = Field(ge=0)


class FundingEventCreate(BaseModel):
    funding_date: date
    reference: str | None = None
    funding_amount: Decimal
    distributions: dict[str, Decimal]


class PaymentCreate(BaseModel):
    payment_date: date
    amount: Decimal
    notes: str | None = None
    distributions: dict[str, Decimal]

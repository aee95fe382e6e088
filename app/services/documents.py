"""Canonical document checklists for each workflow stage.

Everything here is deterministic generation; nothing reads persisted state.
"""

from __future__ import annotations

import random
import re
from uuid import uuid4

from app.schemas.prospect import (
    BorrowerType,
    ClosingCategory,
    Document,
    DocumentStatus,
    LoanType,
    Stage,
    StageDocuments,
    StageStatus,
)


PRE_VALIDATION = "Pre-validation"
KYC = "KYC"
TITLE_WORK = "Title Work"
UNDERWRITING = "Underwriting"
APPRAISAL = "Appraisal"
CLOSING = "Closing"

STAGE_NAMES: tuple[str, ...] = (PRE_VALIDATION, KYC, TITLE_WORK, UNDERWRITING, APPRAISAL, CLOSING)

INDIVIDUAL_DOCUMENTS: tuple[tuple[str, str], ...] = (
    ("ind-doc-1", "Valid ID (Passport Driver License)"),
    ("ind-doc-2", "Bank Statements (3 months)"),
    ("ind-doc-3", "Proof of Residence"),
    ("ind-doc-4", "Bank Information Form o Voided Check"),
    ("ind-doc-5", "Tax Returns (2 years)"),
    ("ind-doc-6", "Loan Application"),
    ("ind-doc-7", "Customer Application"),
)

COMPANY_DOCUMENTS: tuple[tuple[str, str], ...] = (
    ("com-doc-1", "Articles of Incorporation"),
    ("com-doc-2", "Operating Agreement"),
    ("com-doc-3", "EIN"),
    ("com-doc-4", "W9"),
    ("com-doc-5", "Bank Statements (3 months)"),
    ("com-doc-6", "Bank Information Form o Voided Check"),
    ("com-doc-7", "Tax Returns (2 years)"),
    ("com-doc-8", "Loan Application"),
    ("com-doc-9", "Customer Application"),
)

STAGE_GENERAL_DOCUMENTS: dict[str, tuple[tuple[str, str], ...]] = {
    KYC: (("kyc-doc-1", "Risk Matrix"),),
    TITLE_WORK: (("tw-doc-1", "Title Commitment"),),
    UNDERWRITING: (("uw-doc-1", "UW Report"),),
    APPRAISAL: (("app-doc-1", "Appraisal Report"),),
}

CLOSING_DOCUMENTS: tuple[tuple[str, str, ClosingCategory], ...] = (
    ("cd1", "Loan Estimate", ClosingCategory.DISCLOSURES),
    ("cd2", "Term Sheet", ClosingCategory.DISCLOSURES),
    ("cd3", "Authority to Receive", ClosingCategory.DISCLOSURES),
    ("cd4", "Notice to Receive Copy of Appraisal", ClosingCategory.DISCLOSURES),
    ("cd5", "Ach Form", ClosingCategory.DISCLOSURES),
    ("cd6", "Business purpose affidavit", ClosingCategory.DISCLOSURES),
    ("cl1", "Promissory Note", ClosingCategory.LOAN_DOCS),
    ("cl2", "Guaranty Agreement", ClosingCategory.LOAN_DOCS),
    ("cl3", "Mortgage", ClosingCategory.LOAN_DOCS),
    ("cl4", "Wire Transfer Breakdown", ClosingCategory.LOAN_DOCS),
)


def _required(doc_id: str, name: str, *, optional: bool = False) -> Document:
    return Document(id=doc_id, name=name, status=DocumentStatus.MISSING.value, is_optional=optional)


def is_pre_validation(stage_name: str) -> bool:
    return stage_name.strip().lower() == PRE_VALIDATION.lower()


def includes_individual(borrower_type: str) -> bool:
    return borrower_type in {BorrowerType.INDIVIDUAL.value, BorrowerType.BOTH.value}


def includes_company(borrower_type: str) -> bool:
    return borrower_type in {BorrowerType.COMPANY.value, BorrowerType.BOTH.value}


def initial_documents(borrower_type: BorrowerType | str, loan_type: LoanType | str) -> StageDocuments:
    """Pre-validation checklist for the borrower/loan combination."""
    borrower_type = BorrowerType(borrower_type).value
    loan_type = LoanType(loan_type).value

    documents = StageDocuments()
    if includes_individual(borrower_type):
        documents.individual = [_required(doc_id, name) for doc_id, name in INDIVIDUAL_DOCUMENTS]
    if includes_company(borrower_type):
        documents.company = [_required(doc_id, name) for doc_id, name in COMPANY_DOCUMENTS]

    if loan_type == LoanType.PURCHASE.value:
        documents.property = [_required("prop-doc-1", "Purchase Agreement")]
    else:
        documents.property = [
            _required("prop-doc-2", "Deed"),
            _required("prop-doc-3", "Scope of Work", optional=True),
        ]
    return documents


def stage_documents(stage_name: str) -> StageDocuments:
    if stage_name == CLOSING:
        return StageDocuments(
            general=[
                Document(
                    id=doc_id,
                    name=name,
                    status=DocumentStatus.MISSING.value,
                    sent=False,
                    signed=False,
                    filled=False,
                    category=category.value,
                )
                for doc_id, name, category in CLOSING_DOCUMENTS
            ]
        )
    general = STAGE_GENERAL_DOCUMENTS.get(stage_name)
    if general is None:
        return StageDocuments()
    return StageDocuments(general=[_required(doc_id, name) for doc_id, name in general])


def build_stages(borrower_type: BorrowerType | str, loan_type: LoanType | str) -> list[Stage]:
    stages: list[Stage] = []
    for index, name in enumerate(STAGE_NAMES, start=1):
        documents = initial_documents(borrower_type, loan_type) if index == 1 else stage_documents(name)
        status = StageStatus.IN_PROGRESS if index == 1 else StageStatus.LOCKED
        stages.append(Stage(id=index, name=name, status=status.value, documents=documents))
    return stages


def new_custom_document(name: str) -> Document:
    return Document(id=f"doc-{uuid4()}", name=name.strip(), status=DocumentStatus.MISSING.value, is_custom=True)


def generate_prospect_code(prefix: str, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return f"{prefix}{rng.randint(1000, 9999):04d}"


def document_storage_path(code: str | None, prospect_id: str, stage_name: str, doc_id: str, file_name: str) -> str:
    folder = re.sub(r"\s+", "_", code or prospect_id)
    stage_folder = re.sub(r"\s+", "_", re.sub(r"[^\w\s-]", "", stage_name))
    return f"{folder}/{stage_folder}/{doc_id}-{file_name}"


def property_photo_storage_path(code: str | None, prospect_id: str, property_id: str, file_name: str) -> str:
    folder = re.sub(r"\s+", "_", code or prospect_id)
    return f"{folder}/properties/{property_id}/{uuid4()}-{file_name}"

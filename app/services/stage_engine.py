"""Stage gate for the prospect document workflow.

All functions are pure: they take a prospect snapshot and return a new one.
Callers resolve stage/document ids beforehand; these functions assume them valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import uuid4

from app.core.settings import settings
from app.schemas.prospect import (
    ClosingFlag,
    Distribution,
    Document,
    DocumentBucket,
    DocumentStatus,
    Funder,
    HistoryEvent,
    HistoryEventType,
    LoanTerms,
    Prospect,
    ProspectStatus,
    Stage,
    StageStatus,
)
from app.services import documents


@dataclass(frozen=True, slots=True)
class OriginatorIdentity:
    lender_id: str
    account: str
    name: str
    rate: Decimal


def default_originator() -> OriginatorIdentity:
    return OriginatorIdentity(
        lender_id=settings.originator_lender_id,
        account=settings.originator_lender_account,
        name=settings.originator_lender_name,
        rate=settings.originator_lender_rate,
    )


def active_stage_index(prospect: Prospect) -> int | None:
    for index, stage in enumerate(prospect.stages):
        if stage.status == StageStatus.IN_PROGRESS.value:
            return index
    return None


def required_documents(prospect: Prospect, stage: Stage) -> list[Document]:
    docs = stage.documents
    if documents.is_pre_validation(stage.name):
        gathered: list[Document] = []
        if documents.includes_individual(prospect.borrower_type):
            gathered.extend(docs.bucket(DocumentBucket.INDIVIDUAL))
        if documents.includes_company(prospect.borrower_type):
            gathered.extend(docs.bucket(DocumentBucket.COMPANY))
        gathered.extend(docs.bucket(DocumentBucket.PROPERTY))
        return gathered
    return docs.bucket(DocumentBucket.GENERAL) + docs.bucket(DocumentBucket.CLOSING_FINAL_APPROVAL)


def stage_is_complete(prospect: Prospect, stage: Stage) -> bool:
    gathered = required_documents(prospect, stage)
    # A stage without documents never completes on its own.
    if not gathered:
        return False
    return all(doc.status == DocumentStatus.APPROVED.value for doc in gathered if not doc.is_optional)


def _convert_to_loan(
    prospect: Prospect,
    stages: list[Stage],
    today: date,
    originator: OriginatorIdentity,
) -> Prospect:
    loan_amount = prospect.loan_amount or Decimal("0")
    funder = Funder(
        id=f"funder-{uuid4()}",
        lender_id=originator.lender_id,
        lender_account=originator.account,
        lender_name=originator.name,
        original_amount=loan_amount,
        lender_rate=originator.rate,
        principal_balance=loan_amount,
        pct_owned=Decimal("1"),
    )
    funding = HistoryEvent(
        id=f"hist-{uuid4()}",
        type=HistoryEventType.FUNDING.value,
        date_created=today,
        date_received=today,
        total_amount=loan_amount,
        notes="Initial loan funding by originator.",
        distributions=[Distribution(funder_id=funder.id, amount=loan_amount)],
        origination=True,
    )
    base_terms = prospect.terms or LoanTerms()
    terms = base_terms.model_copy(
        update={
            "original_amount": loan_amount,
            "principal_balance": loan_amount,
            "closing_date": today,
        }
    )
    last = stages[-1]
    return prospect.model_copy(
        update={
            "stages": stages,
            "status": ProspectStatus.COMPLETED.value,
            "current_stage": last.id,
            "current_stage_name": last.name,
            "terms": terms,
            "funders": [funder],
            "history": [funding],
        }
    )


def check_and_advance(
    prospect: Prospect,
    *,
    today: date | None = None,
    originator: OriginatorIdentity | None = None,
) -> Prospect:
    """Advance the active stage when every required document is approved.

    Completing the last stage turns the prospect into a funded loan held
    entirely by the originator.
    """
    if prospect.status != ProspectStatus.IN_PROGRESS.value:
        return prospect
    index = active_stage_index(prospect)
    if index is None:
        return prospect
    current = prospect.stages[index]
    if not stage_is_complete(prospect, current):
        return prospect

    stages = list(prospect.stages)
    stages[index] = current.model_copy(update={"status": StageStatus.COMPLETED.value})

    if index == len(stages) - 1:
        return _convert_to_loan(prospect, stages, today or date.today(), originator or default_originator())

    following = stages[index + 1].model_copy(update={"status": StageStatus.IN_PROGRESS.value})
    stages[index + 1] = following
    return prospect.model_copy(
        update={
            "stages": stages,
            "current_stage": following.id,
            "current_stage_name": following.name,
        }
    )


def _replace_stage(prospect: Prospect, stage: Stage) -> Prospect:
    stages = [stage if existing.id == stage.id else existing for existing in prospect.stages]
    return prospect.model_copy(update={"stages": stages})


def _map_documents(prospect: Prospect, stage_id: int, bucket: DocumentBucket | str, transform) -> Prospect:
    stage = prospect.stage(stage_id)
    updated = transform(stage.documents.bucket(bucket))
    return _replace_stage(
        prospect,
        stage.model_copy(update={"documents": stage.documents.with_bucket(bucket, updated)}),
    )


def set_document_status(
    prospect: Prospect,
    stage_id: int,
    bucket: DocumentBucket | str,
    doc_id: str,
    status: DocumentStatus | str,
    *,
    today: date | None = None,
    originator: OriginatorIdentity | None = None,
) -> Prospect:
    status = DocumentStatus(status).value
    updated = _map_documents(
        prospect,
        stage_id,
        bucket,
        lambda docs: [doc.model_copy(update={"status": status}) if doc.id == doc_id else doc for doc in docs],
    )
    if status == DocumentStatus.APPROVED.value:
        updated = check_and_advance(updated, today=today, originator=originator)
    return updated


def derive_closing_status(document: Document) -> str:
    complete = bool(document.sent and document.signed and document.filled)
    if complete:
        return DocumentStatus.APPROVED.value
    if document.status == DocumentStatus.APPROVED.value:
        return DocumentStatus.MISSING.value
    return document.status


def set_closing_flag(
    prospect: Prospect,
    stage_id: int,
    doc_id: str,
    key: ClosingFlag | str,
    value: bool,
    *,
    today: date | None = None,
    originator: OriginatorIdentity | None = None,
) -> Prospect:
    key = ClosingFlag(key).value
    flipped_to_approved = False

    def _toggle(docs: list[Document]) -> list[Document]:
        nonlocal flipped_to_approved
        result = []
        for doc in docs:
            if doc.id != doc_id:
                result.append(doc)
                continue
            toggled = doc.model_copy(update={key: value})
            status = derive_closing_status(toggled)
            if status == DocumentStatus.APPROVED.value and doc.status != DocumentStatus.APPROVED.value:
                flipped_to_approved = True
            result.append(toggled.model_copy(update={"status": status}))
        return result

    updated = _map_documents(prospect, stage_id, DocumentBucket.GENERAL, _toggle)
    if flipped_to_approved:
        updated = check_and_advance(updated, today=today, originator=originator)
    return updated


def add_document(prospect: Prospect, stage_id: int, bucket: DocumentBucket | str, document: Document) -> Prospect:
    return _map_documents(prospect, stage_id, bucket, lambda docs: docs + [document])


def delete_document(prospect: Prospect, stage_id: int, bucket: DocumentBucket | str, doc_id: str) -> Prospect:
    return _map_documents(prospect, stage_id, bucket, lambda docs: [doc for doc in docs if doc.id != doc_id])


def attach_document_link(
    prospect: Prospect, stage_id: int, bucket: DocumentBucket | str, doc_id: str, link: str
) -> Prospect:
    ready = DocumentStatus.READY_FOR_REVIEW.value
    return _map_documents(
        prospect,
        stage_id,
        bucket,
        lambda docs: [doc.model_copy(update={"link": link, "status": ready}) if doc.id == doc_id else doc for doc in docs],
    )


def remove_document_link(prospect: Prospect, stage_id: int, bucket: DocumentBucket | str, doc_id: str) -> Prospect:
    missing = DocumentStatus.MISSING.value
    return _map_documents(
        prospect,
        stage_id,
        bucket,
        lambda docs: [doc.model_copy(update={"link": None, "status": missing}) if doc.id == doc_id else doc for doc in docs],
    )


def replace_prevalidation_documents(stages: list[Stage], borrower_type: str, loan_type: str) -> list[Stage]:
    """Regenerate the Pre-validation checklist, discarding its current statuses."""
    fresh = documents.initial_documents(borrower_type, loan_type)
    return [
        stage.model_copy(update={"documents": fresh}) if documents.is_pre_validation(stage.name) else stage
        for stage in stages
    ]

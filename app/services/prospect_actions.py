from __future__ import annotations

from uuid import uuid4

from app.core.settings import settings
from app.schemas.prospect import (
    Document,
    DocumentBucket,
    DocumentStatus,
    LoanTerms,
    Prospect,
    ProspectCreate,
    ProspectStatus,
    ProspectUpdate,
    PropertyPhoto,
    Stage,
)
from app.services import documents, stage_engine
from app.services.errors import NotFoundError, ValidationError
from app.services.mutations import ProspectOrchestrator
from app.services.store import BlobStore


CODE_ATTEMPTS = 5

LEDGER_TERM_FIELDS = ("original_amount", "principal_balance")


def _stage(prospect: Prospect, stage_id: int) -> Stage:
    stage = prospect.stage(stage_id)
    if stage is None:
        raise NotFoundError("Stage not found", details={"prospect_id": prospect.id, "stage_id": stage_id})
    return stage


def _document(prospect: Prospect, stage_id: int, bucket: DocumentBucket | str, doc_id: str) -> Document:
    stage = _stage(prospect, stage_id)
    document = next((doc for doc in stage.documents.bucket(bucket) if doc.id == doc_id), None)
    if document is None:
        raise NotFoundError(
            "Document not found",
            details={"stage_id": stage_id, "bucket": DocumentBucket(bucket).value, "doc_id": doc_id},
        )
    return document


async def _unique_code(prospects: ProspectOrchestrator) -> str:
    for _ in range(CODE_ATTEMPTS):
        code = documents.generate_prospect_code(settings.prospect_code_prefix)
        if not await prospects.store.query({"code": code}):
            return code
    raise ValidationError("Could not allocate a unique prospect code")


async def list_prospects(prospects: ProspectOrchestrator, status: ProspectStatus | str | None = None) -> list[Prospect]:
    filters = {"status": ProspectStatus(status).value} if status is not None else None
    return await prospects.store.query(filters)


async def get_prospect(prospects: ProspectOrchestrator, prospect_id: str) -> Prospect:
    return await prospects.refresh(prospect_id)


async def create_prospect(prospects: ProspectOrchestrator, payload: ProspectCreate) -> Prospect:
    assigned_name = await prospects.users.display_name(payload.assigned_to)
    if assigned_name is None:
        raise ValidationError("Assigned user not found", details={"assigned_to": payload.assigned_to})

    stages = documents.build_stages(payload.borrower_type, payload.loan_type)
    prospect = Prospect(
        id=str(uuid4()),
        code=await _unique_code(prospects),
        borrower_name=payload.borrower_name.strip(),
        email=payload.email,
        phone_number=payload.phone_number,
        county=payload.county,
        state=payload.state,
        borrower_type=payload.borrower_type,
        loan_type=payload.loan_type,
        loan_amount=payload.loan_amount,
        assigned_to=payload.assigned_to,
        assigned_to_name=assigned_name,
        status=ProspectStatus.IN_PROGRESS.value,
        current_stage=stages[0].id,
        current_stage_name=stages[0].name,
        stages=stages,
    )
    return await prospects.create(prospect)


def _merge_terms(prospect: Prospect, sent: LoanTerms | None) -> LoanTerms | None:
    """Apply the term fields a client sent; ledger-owned amounts must not move."""
    current = prospect.terms or LoanTerms()
    if sent is None:
        if any(getattr(current, name) is not None for name in LEDGER_TERM_FIELDS):
            raise ValidationError("Loan terms cannot be cleared")
        return None
    values = {name: getattr(sent, name) for name in sent.model_fields_set}
    moved = [name for name in LEDGER_TERM_FIELDS if name in values and values[name] != getattr(current, name)]
    if moved:
        raise ValidationError(
            "Principal and original amount are maintained by the funding ledger",
            details={"fields": moved},
        )
    return current.model_copy(update=values)


async def update_prospect(prospects: ProspectOrchestrator, prospect_id: str, payload: ProspectUpdate) -> Prospect:
    patch = {name: getattr(payload, name) for name in payload.model_fields_set}
    for name in ("borrower_name", "borrower_type", "loan_type", "loan_amount"):
        if name in patch and patch[name] is None:
            raise ValidationError(f"{name} cannot be cleared")
    prospects.validate_patch(patch)

    def _transform(prospect: Prospect) -> Prospect:
        update = dict(patch)
        if "terms" in update:
            update["terms"] = _merge_terms(prospect, update["terms"])
        return prospect.model_copy(update=update)

    return await prospects.mutate(prospect_id, _transform)


async def change_document_status(
    prospects: ProspectOrchestrator,
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    bucket: DocumentBucket | str,
    status: DocumentStatus | str,
) -> Prospect:
    def _transform(prospect: Prospect) -> Prospect:
        _document(prospect, stage_id, bucket, doc_id)
        return stage_engine.set_document_status(prospect, stage_id, bucket, doc_id, status)

    return await prospects.mutate(prospect_id, _transform, action="prospect.document_status_changed")


async def toggle_closing_flag(
    prospects: ProspectOrchestrator,
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    key: str,
    value: bool,
) -> Prospect:
    def _transform(prospect: Prospect) -> Prospect:
        document = _document(prospect, stage_id, DocumentBucket.GENERAL, doc_id)
        if document.category is None:
            raise ValidationError("Only closing documents carry a sent/signed/filled checklist")
        return stage_engine.set_closing_flag(prospect, stage_id, doc_id, key, value)

    return await prospects.mutate(prospect_id, _transform, action="prospect.closing_checklist_changed")


async def add_custom_document(
    prospects: ProspectOrchestrator,
    prospect_id: str,
    stage_id: int,
    bucket: DocumentBucket | str,
    name: str,
) -> Prospect:
    if not name or not name.strip():
        raise ValidationError("Document name is required")

    def _transform(prospect: Prospect) -> Prospect:
        _stage(prospect, stage_id)
        return stage_engine.add_document(prospect, stage_id, bucket, documents.new_custom_document(name))

    return await prospects.mutate(prospect_id, _transform, action="prospect.document_added")


async def delete_document(
    prospects: ProspectOrchestrator,
    prospect_id: str,
    stage_id: int,
    bucket: DocumentBucket | str,
    doc_id: str,
) -> Prospect:
    def _transform(prospect: Prospect) -> Prospect:
        _document(prospect, stage_id, bucket, doc_id)
        return stage_engine.delete_document(prospect, stage_id, bucket, doc_id)

    return await prospects.mutate(prospect_id, _transform, action="prospect.document_deleted")


async def attach_document_link(
    prospects: ProspectOrchestrator,
    prospect_id: str,
    stage_id: int,
    bucket: DocumentBucket | str,
    doc_id: str,
    link: str,
) -> Prospect:
    if not link or not link.strip():
        raise ValidationError("Link is required")

    def _transform(prospect: Prospect) -> Prospect:
        _document(prospect, stage_id, bucket, doc_id)
        return stage_engine.attach_document_link(prospect, stage_id, bucket, doc_id, link.strip())

    return await prospects.mutate(prospect_id, _transform, action="prospect.document_linked")


async def remove_document_link(
    prospects: ProspectOrchestrator,
    prospect_id: str,
    stage_id: int,
    bucket: DocumentBucket | str,
    doc_id: str,
) -> Prospect:
    def _transform(prospect: Prospect) -> Prospect:
        _document(prospect, stage_id, bucket, doc_id)
        return stage_engine.remove_document_link(prospect, stage_id, bucket, doc_id)

    return await prospects.mutate(prospect_id, _transform, action="prospect.document_unlinked")


async def upload_document(
    prospects: ProspectOrchestrator,
    blobs: BlobStore,
    prospect_id: str,
    stage_id: int,
    bucket: DocumentBucket | str,
    doc_id: str,
    file_name: str,
    content: bytes,
) -> Prospect:
    prospect = await prospects.resolve(prospect_id)
    stage = _stage(prospect, stage_id)
    _document(prospect, stage_id, bucket, doc_id)
    path = documents.document_storage_path(prospect.code, prospect.id, stage.name, doc_id, file_name)
    url = await blobs.put(path, content)
    return await attach_document_link(prospects, prospect_id, stage_id, bucket, doc_id, url)


async def reject_prospect(prospects: ProspectOrchestrator, prospect_id: str, stage_id: int) -> Prospect:
    def _transform(prospect: Prospect) -> Prospect:
        if prospect.status != ProspectStatus.IN_PROGRESS.value:
            raise ValidationError("Only prospects in progress can be rejected", details={"status": prospect.status})
        _stage(prospect, stage_id)
        return prospect.model_copy(update={"status": ProspectStatus.REJECTED.value, "rejected_at_stage": stage_id})

    return await prospects.mutate(prospect_id, _transform, action="prospect.rejected")


async def reopen_prospect(prospects: ProspectOrchestrator, prospect_id: str) -> Prospect:
    def _transform(prospect: Prospect) -> Prospect:
        if prospect.status != ProspectStatus.REJECTED.value:
            raise ValidationError("Only rejected prospects can be reopened", details={"status": prospect.status})
        return prospect.model_copy(update={"status": ProspectStatus.IN_PROGRESS.value, "rejected_at_stage": None})

    return await prospects.mutate(prospect_id, _transform, action="prospect.reopened")


def _with_photos(prospect: Prospect, property_id: str, transform) -> Prospect:
    if not any(item.id == property_id for item in prospect.properties):
        raise NotFoundError("Property not found", details={"property_id": property_id})
    properties = [
        item.model_copy(update={"photos": transform(list(item.photos))}) if item.id == property_id else item
        for item in prospect.properties
    ]
    return prospect.model_copy(update={"properties": properties})


async def upload_property_photo(
    prospects: ProspectOrchestrator,
    blobs: BlobStore,
    prospect_id: str,
    property_id: str,
    file_name: str,
    content: bytes,
) -> Prospect:
    prospect = await prospects.resolve(prospect_id)
    _with_photos(prospect, property_id, lambda photos: photos)
    path = documents.property_photo_storage_path(prospect.code, prospect.id, property_id, file_name)
    url = await blobs.put(path, content)
    photo = PropertyPhoto(id=str(uuid4()), url=url, storage_path=path)
    return await prospects.mutate(
        prospect_id,
        lambda current: _with_photos(current, property_id, lambda photos: photos + [photo]),
        action="prospect.property_photo_added",
    )


async def delete_property_photo(
    prospects: ProspectOrchestrator,
    blobs: BlobStore,
    prospect_id: str,
    property_id: str,
    photo_id: str,
) -> Prospect:
    prospect = await prospects.resolve(prospect_id)
    target = next(
        (photo for item in prospect.properties if item.id == property_id for photo in item.photos if photo.id == photo_id),
        None,
    )
    if target is None:
        raise NotFoundError("Photo not found", details={"property_id": property_id, "photo_id": photo_id})
    await blobs.delete(target.storage_path)
    return await prospects.mutate(
        prospect_id,
        lambda current: _with_photos(
            current, property_id, lambda photos: [photo for photo in photos if photo.id != photo_id]
        ),
        action="prospect.property_photo_deleted",
    )

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.api import deps
from app.core.settings import settings
from app.schemas.prospect import (
    ClosingFlagUpdate,
    CustomDocumentCreate,
    DocumentBucket,
    DocumentLinkUpdate,
    DocumentStatusUpdate,
    Prospect,
    ProspectCreate,
    ProspectStatus,
    ProspectUpdate,
    RejectRequest,
)
from app.services import blob_store, prospect_actions
from app.services.errors import ValidationError
from app.services.mutations import ProspectOrchestrator
from app.services.store import BlobStore

router = APIRouter(prefix="/prospects", tags=["prospects"])


@router.get("", response_model=list[Prospect], summary="List prospects, newest first")
async def list_prospects(
    status_filter: ProspectStatus | None = Query(default=None, alias="status"),
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> list[Prospect]:
    return await prospect_actions.list_prospects(prospects, status_filter)


@router.post("", response_model=Prospect, status_code=status.HTTP_201_CREATED, summary="Create a prospect")
async def create_prospect(
    payload: ProspectCreate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.create_prospect(prospects, payload)


@router.get("/{prospect_id}", response_model=Prospect, summary="Fetch a prospect")
async def get_prospect(
    prospect_id: str,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.get_prospect(prospects, prospect_id)


@router.patch("/{prospect_id}", response_model=Prospect, summary="Update prospect fields")
async def update_prospect(
    prospect_id: str,
    payload: ProspectUpdate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.update_prospect(prospects, prospect_id, payload)


@router.patch(
    "/{prospect_id}/stages/{stage_id}/documents/{doc_id}/status",
    response_model=Prospect,
    summary="Change a document's review status",
)
async def change_document_status(
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    payload: DocumentStatusUpdate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.change_document_status(
        prospects, prospect_id, stage_id, doc_id, payload.bucket, payload.status
    )


@router.patch(
    "/{prospect_id}/stages/{stage_id}/documents/{doc_id}/closing",
    response_model=Prospect,
    summary="Toggle a closing document's sent/signed/filled flag",
)
async def toggle_closing_flag(
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    payload: ClosingFlagUpdate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.toggle_closing_flag(
        prospects, prospect_id, stage_id, doc_id, payload.key, payload.value
    )


@router.post(
    "/{prospect_id}/stages/{stage_id}/documents",
    response_model=Prospect,
    status_code=status.HTTP_201_CREATED,
    summary="Add a custom document to a stage",
)
async def add_custom_document(
    prospect_id: str,
    stage_id: int,
    payload: CustomDocumentCreate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.add_custom_document(prospects, prospect_id, stage_id, payload.bucket, payload.name)


@router.delete(
    "/{prospect_id}/stages/{stage_id}/documents/{doc_id}",
    response_model=Prospect,
    summary="Remove a document from a stage",
)
async def delete_document(
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    bucket: DocumentBucket = Query(...),
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.delete_document(prospects, prospect_id, stage_id, bucket, doc_id)


@router.put(
    "/{prospect_id}/stages/{stage_id}/documents/{doc_id}/link",
    response_model=Prospect,
    summary="Attach an uploaded file link to a document",
)
async def attach_document_link(
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    payload: DocumentLinkUpdate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.attach_document_link(
        prospects, prospect_id, stage_id, payload.bucket, doc_id, payload.link
    )


@router.delete(
    "/{prospect_id}/stages/{stage_id}/documents/{doc_id}/link",
    response_model=Prospect,
    summary="Detach a document's file link",
)
async def remove_document_link(
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    bucket: DocumentBucket = Query(...),
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.remove_document_link(prospects, prospect_id, stage_id, bucket, doc_id)


@router.post("/{prospect_id}/reject", response_model=Prospect, summary="Reject a prospect at a stage")
async def reject_prospect(
    prospect_id: str,
    payload: RejectRequest,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.reject_prospect(prospects, prospect_id, payload.stage_id)


@router.post("/{prospect_id}/reopen", response_model=Prospect, summary="Reopen a rejected prospect")
async def reopen_prospect(
    prospect_id: str,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await prospect_actions.reopen_prospect(prospects, prospect_id)


async def _read_upload(file: UploadFile) -> tuple[str, bytes]:
    name = blob_store.safe_file_name(file.filename)
    try:
        content = await file.read()
    finally:
        await file.close()
    limit = settings.max_upload_size_mb * 1024 * 1024
    if len(content) > limit:
        raise ValidationError(f"File exceeds maximum allowed size of {settings.max_upload_size_mb} MB")
    return name, content


@router.post(
    "/{prospect_id}/stages/{stage_id}/documents/{doc_id}/upload",
    response_model=Prospect,
    summary="Upload a file for a document and mark it ready for review",
)
async def upload_document(
    prospect_id: str,
    stage_id: int,
    doc_id: str,
    bucket: DocumentBucket = Query(...),
    file: UploadFile = File(...),
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    blobs: BlobStore = Depends(deps.get_blob_store),
) -> Prospect:
    file_name, content = await _read_upload(file)
    return await prospect_actions.upload_document(
        prospects, blobs, prospect_id, stage_id, bucket, doc_id, file_name, content
    )


@router.post(
    "/{prospect_id}/properties/{property_id}/photos",
    response_model=Prospect,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a property photo",
)
async def upload_property_photo(
    prospect_id: str,
    property_id: str,
    file: UploadFile = File(...),
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    blobs: BlobStore = Depends(deps.get_blob_store),
) -> Prospect:
    file_name, content = await _read_upload(file)
    return await prospect_actions.upload_property_photo(prospects, blobs, prospect_id, property_id, file_name, content)


@router.delete(
    "/{prospect_id}/properties/{property_id}/photos/{photo_id}",
    response_model=Prospect,
    summary="Delete a property photo",
)
async def delete_property_photo(
    prospect_id: str,
    property_id: str,
    photo_id: str,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    blobs: BlobStore = Depends(deps.get_blob_store),
) -> Prospect:
    return await prospect_actions.delete_property_photo(prospects, blobs, prospect_id, property_id, photo_id)

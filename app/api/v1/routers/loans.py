from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api import deps
from app.schemas.prospect import FunderCreate, FundingEventCreate, PaymentCreate, Prospect, ServicingFees
from app.services import loan_actions
from app.services.mutations import LenderOrchestrator, ProspectOrchestrator

router = APIRouter(prefix="/loans", tags=["loans"])


@router.get("", response_model=list[Prospect], summary="List funded loans")
async def list_loans(
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> list[Prospect]:
    return await loan_actions.list_loans(prospects)


@router.get("/{loan_id}", response_model=Prospect, summary="Fetch a loan")
async def get_loan(
    loan_id: str,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await loan_actions.get_loan(prospects, loan_id)


@router.post(
    "/{loan_id}/funders",
    response_model=Prospect,
    status_code=status.HTTP_201_CREATED,
    summary="Add a lender participation to a loan",
)
async def add_funder(
    loan_id: str,
    payload: FunderCreate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Prospect:
    return await loan_actions.add_funder(prospects, lenders, loan_id, payload)


@router.put(
    "/{loan_id}/funders/{funder_id}/servicing-fees",
    response_model=Prospect,
    summary="Edit a funder's servicing fees",
)
async def update_servicing_fees(
    loan_id: str,
    funder_id: str,
    payload: ServicingFees,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> Prospect:
    return await loan_actions.update_servicing_fees(prospects, loan_id, funder_id, payload)


@router.post(
    "/{loan_id}/funding-events",
    response_model=Prospect,
    status_code=status.HTTP_201_CREATED,
    summary="Record a funding event across funders",
)
async def record_funding_event(
    loan_id: str,
    payload: FundingEventCreate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Prospect:
    return await loan_actions.record_funding_event(prospects, lenders, loan_id, payload)


@router.post(
    "/{loan_id}/payments",
    response_model=Prospect,
    status_code=status.HTTP_201_CREATED,
    summary="Record a principal payment",
)
async def record_payment(
    loan_id: str,
    payload: PaymentCreate,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Prospect:
    return await loan_actions.record_payment(prospects, lenders, loan_id, payload)


@router.delete(
    "/{loan_id}/history/{event_id}",
    response_model=Prospect,
    summary="Reverse and delete a funding or payment event",
)
async def delete_history_event(
    loan_id: str,
    event_id: str,
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Prospect:
    return await loan_actions.delete_history_event(prospects, lenders, loan_id, event_id)

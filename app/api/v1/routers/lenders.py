from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api import deps
from app.schemas.lender import Lender, LenderCreate, LenderPortfolio, LenderUpdate, TrustTransactionCreate
from app.services import lender_actions
from app.services.mutations import LenderOrchestrator, ProspectOrchestrator

router = APIRouter(prefix="/lenders", tags=["lenders"])


@router.get("", response_model=list[Lender], summary="List lenders")
async def list_lenders(
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> list[Lender]:
    return await lender_actions.list_lenders(lenders)


@router.post("", response_model=Lender, status_code=status.HTTP_201_CREATED, summary="Create a lender")
async def create_lender(
    payload: LenderCreate,
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Lender:
    return await lender_actions.create_lender(lenders, payload)


@router.get("/{lender_id}", response_model=Lender, summary="Fetch a lender with its trust account")
async def get_lender(
    lender_id: str,
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Lender:
    return await lender_actions.get_lender(lenders, lender_id)


@router.get("/{lender_id}/portfolio", response_model=LenderPortfolio, summary="Completed loans the lender participates in")
async def list_portfolio(
    lender_id: str,
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
    prospects: ProspectOrchestrator = Depends(deps.get_prospect_orchestrator),
) -> LenderPortfolio:
    return await lender_actions.list_portfolio(lenders, prospects, lender_id)


@router.patch("/{lender_id}", response_model=Lender, summary="Edit lender details")
async def update_lender(
    lender_id: str,
    payload: LenderUpdate,
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Lender:
    return await lender_actions.update_lender(lenders, lender_id, payload)


@router.post(
    "/{lender_id}/trust-transactions",
    response_model=Lender,
    status_code=status.HTTP_201_CREATED,
    summary="Post a deposit or withdrawal to the lender trust account",
)
async def record_trust_transaction(
    lender_id: str,
    payload: TrustTransactionCreate,
    lenders: LenderOrchestrator = Depends(deps.get_lender_orchestrator),
) -> Lender:
    return await lender_actions.record_trust_transaction(lenders, lender_id, payload)

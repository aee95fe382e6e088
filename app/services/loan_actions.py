"""Loan-side operations that move money between funders and lender trust accounts.

Trust postings go first, then the loan write. If the loan write fails, every
posting already made is offset with its opposite type before the error
propagates, so no lender keeps a movement for a loan change that never landed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from app.schemas.lender import TrustEventType
from app.schemas.prospect import (
    FunderCreate,
    FundingEventCreate,
    PaymentCreate,
    Prospect,
    ProspectStatus,
    ServicingFees,
)
from app.services import funding_ledger, trust_ledger
from app.services.errors import ConflictError, InsufficientFundsError, NotFoundError, ValidationError
from app.services.funding_ledger import TrustMovement
from app.services.mutations import LenderOrchestrator, ProspectOrchestrator


logger = logging.getLogger(__name__)

LEDGER_FIELDS = ("funders", "terms", "history")

_OFFSETS = {
    TrustEventType.FUNDING_DISBURSEMENT.value: TrustEventType.FUNDING_REVERSAL.value,
    TrustEventType.FUNDING_REVERSAL.value: TrustEventType.FUNDING_DISBURSEMENT.value,
    TrustEventType.PAYMENT_DISTRIBUTION.value: TrustEventType.PAYMENT_REVERSAL.value,
    TrustEventType.PAYMENT_REVERSAL.value: TrustEventType.PAYMENT_DISTRIBUTION.value,
}


async def _resolve_loan(prospects: ProspectOrchestrator, loan_id: str) -> Prospect:
    loan = await prospects.resolve(loan_id)
    if loan.status != ProspectStatus.COMPLETED.value:
        raise NotFoundError("Loan not found", details={"id": loan_id, "status": loan.status})
    return loan


async def list_loans(prospects: ProspectOrchestrator) -> list[Prospect]:
    return await prospects.store.query({"status": ProspectStatus.COMPLETED.value})


async def get_loan(prospects: ProspectOrchestrator, loan_id: str) -> Prospect:
    await prospects.refresh(loan_id)
    return await _resolve_loan(prospects, loan_id)


async def _check_trust_capacity(lenders: LenderOrchestrator, movements: list[TrustMovement]) -> None:
    """Reject before posting anything if any lender cannot cover its movement."""
    for movement in movements:
        lender = await lenders.resolve(movement.lender_id)
        try:
            trust_ledger.validate_transaction(lender.trust_balance, movement.event_type, movement.amount, movement.description)
        except InsufficientFundsError as exc:
            raise InsufficientFundsError(
                f"{lender.lender_name} has insufficient trust balance for {movement.event_type}",
                details={**exc.details, "lender_id": lender.id},
            ) from exc


async def _post_movements(
    lenders: LenderOrchestrator,
    loan: Prospect,
    movements: list[TrustMovement],
    event_date: date,
) -> list[TrustMovement]:
    posted: list[TrustMovement] = []
    try:
        for movement in movements:
            await lenders.record_transaction(
                movement.lender_id,
                event_type=movement.event_type,
                event_date=event_date,
                description=movement.description,
                amount=movement.amount,
                related_loan_id=loan.id,
                related_loan_code=loan.code,
            )
            posted.append(movement)
    except Exception:
        await _compensate(lenders, loan, posted, event_date)
        raise
    return posted


async def _compensate(
    lenders: LenderOrchestrator,
    loan: Prospect,
    posted: list[TrustMovement],
    event_date: date,
) -> None:
    for movement in reversed(posted):
        offset = _OFFSETS[movement.event_type]
        try:
            await lenders.record_transaction(
                movement.lender_id,
                event_type=offset,
                event_date=event_date,
                description=f"Offset of {movement.description}",
                amount=movement.amount,
                related_loan_id=loan.id,
                related_loan_code=loan.code,
            )
        except Exception:
            # The original failure is re-raised by the caller; this one needs an operator.
            logger.exception(
                "Failed to offset %s of %s on lender %s for loan %s",
                movement.event_type,
                movement.amount,
                movement.lender_id,
                loan.id,
            )


LedgerChange = Callable[[Prospect], tuple[Prospect, list[TrustMovement]]]


async def _commit_ledger_change(
    prospects: ProspectOrchestrator,
    lenders: LenderOrchestrator,
    loan_id: str,
    change: LedgerChange,
    event_date: date,
    action: str,
) -> Prospect:
    """Compute, post and write one ledger change while holding the loan lock."""
    async with prospects.locked(loan_id):
        loan = await _resolve_loan(prospects, loan_id)
        updated, movements = change(loan)
        await _check_trust_capacity(lenders, movements)
        posted = await _post_movements(lenders, loan, movements, event_date)

        def _transform(current: Prospect) -> Prospect:
            if current.version != loan.version:
                raise ConflictError(
                    "Loan was modified while its ledger change was being posted",
                    details={"resource_type": "prospect", "id": loan_id, "version": loan.version},
                )
            return current.model_copy(update={name: getattr(updated, name) for name in LEDGER_FIELDS})

        try:
            return await prospects.mutate(loan_id, _transform, action=action, lock_held=True)
        except Exception:
            await _compensate(lenders, loan, posted, event_date)
            raise


async def record_funding_event(
    prospects: ProspectOrchestrator,
    lenders: LenderOrchestrator,
    loan_id: str,
    payload: FundingEventCreate,
) -> Prospect:
    def _change(loan: Prospect):
        updated, event = funding_ledger.apply_funding_event(
            loan,
            funding_date=payload.funding_date,
            total=payload.funding_amount,
            distributions=payload.distributions,
            reference=payload.reference,
        )
        return updated, funding_ledger.trust_movements_for(updated, event)

    return await _commit_ledger_change(
        prospects, lenders, loan_id, _change, payload.funding_date, "loan.funding_recorded"
    )


async def record_payment(
    prospects: ProspectOrchestrator,
    lenders: LenderOrchestrator,
    loan_id: str,
    payload: PaymentCreate,
) -> Prospect:
    def _change(loan: Prospect):
        updated, event = funding_ledger.apply_payment(
            loan,
            payment_date=payload.payment_date,
            amount=payload.amount,
            distributions=payload.distributions,
            notes=payload.notes,
        )
        return updated, funding_ledger.trust_movements_for(updated, event)

    return await _commit_ledger_change(
        prospects, lenders, loan_id, _change, payload.payment_date, "loan.payment_recorded"
    )


async def delete_history_event(
    prospects: ProspectOrchestrator,
    lenders: LenderOrchestrator,
    loan_id: str,
    event_id: str,
    *,
    on_date: date | None = None,
) -> Prospect:
    """Reverse a funding or payment event, then drop it from the history."""

    def _change(loan: Prospect):
        updated, event = funding_ledger.reverse_event(loan, event_id)
        return updated, funding_ledger.trust_movements_for(loan, event, reversal=True)

    return await _commit_ledger_change(
        prospects, lenders, loan_id, _change, on_date or date.today(), "loan.history_event_deleted"
    )


async def add_funder(
    prospects: ProspectOrchestrator,
    lenders: LenderOrchestrator,
    loan_id: str,
    payload: FunderCreate,
) -> Prospect:
    lender = await lenders.resolve(payload.lender_id)

    def _transform(loan: Prospect) -> Prospect:
        if loan.status != ProspectStatus.COMPLETED.value:
            raise ValidationError("Funders can only be added to funded loans")
        updated, _ = funding_ledger.add_funder(loan, lender, payload.original_amount, payload.lender_rate)
        return updated

    return await prospects.mutate(loan_id, _transform, action="loan.funder_added")


async def update_servicing_fees(
    prospects: ProspectOrchestrator,
    loan_id: str,
    funder_id: str,
    fees: ServicingFees,
) -> Prospect:
    await _resolve_loan(prospects, loan_id)
    return await prospects.mutate(
        loan_id,
        lambda loan: funding_ledger.update_servicing_fees(loan, funder_id, fees),
        action="loan.servicing_fees_updated",
    )

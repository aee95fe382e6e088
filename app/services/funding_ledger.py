"""Multi-lender participation ledger for funded loans.

Every function takes a loan snapshot and returns a new one; nothing here
persists. Validation happens up front so a rejected request never yields a
partially applied loan.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from uuid import uuid4

from app.core.settings import settings
from app.schemas.lender import Lender, TrustEventType
from app.schemas.prospect import (
    Distribution,
    Funder,
    HistoryEvent,
    HistoryEventType,
    LoanTerms,
    Prospect,
    ServicingFees,
)
from app.services.errors import NotFoundError, ValidationError


TWOPLACES = Decimal("0.01")
ZERO = Decimal("0")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def _money(value) -> Decimal:
    return _as_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _require_positive(value, label: str) -> Decimal:
    amount = _as_decimal(value)
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    if amount <= ZERO:
        raise ValidationError(f"{label} must be greater than zero")
    return _money(amount)


def _tolerance() -> Decimal:
    return _as_decimal(settings.distribution_tolerance)


@dataclass(frozen=True, slots=True)
class TrustMovement:
    """One trust-account posting implied by a loan history event."""

    lender_id: str
    event_type: str
    amount: Decimal
    description: str


def total_principal(funders: list[Funder]) -> Decimal:
    return sum((_as_decimal(funder.principal_balance) for funder in funders), ZERO)


def recompute_ownership(funders: list[Funder]) -> list[Funder]:
    total = total_principal(funders)
    if total == ZERO:
        return [funder.model_copy(update={"pct_owned": ZERO}) for funder in funders]
    return [
        funder.model_copy(update={"pct_owned": _as_decimal(funder.principal_balance) / total})
        for funder in funders
    ]


def _with_funders(loan: Prospect, funders: list[Funder], history: list[HistoryEvent]) -> Prospect:
    funders = recompute_ownership(funders)
    terms = (loan.terms or LoanTerms()).model_copy(update={"principal_balance": total_principal(funders)})
    return loan.model_copy(update={"funders": funders, "terms": terms, "history": history})


def validate_distribution(total, distributions: Mapping[str, object], funders: list[Funder]) -> dict[str, Decimal]:
    """Check a distribution map against its stated total.

    Returns the map with amounts quantised to the cent and zero entries dropped.
    """
    total = _require_positive(total, "Total amount")
    known = {funder.id for funder in funders}
    cleaned: dict[str, Decimal] = {}
    for funder_id, raw in distributions.items():
        if funder_id not in known:
            raise ValidationError(f"Unknown funder {funder_id}", details={"funder_id": funder_id})
        amount = _as_decimal(raw)
        if not amount.is_finite():
            raise ValidationError("Distributed amounts must be finite", details={"funder_id": funder_id})
        if amount < ZERO:
            raise ValidationError("Distributed amounts cannot be negative", details={"funder_id": funder_id})
        if amount > ZERO:
            cleaned[funder_id] = _money(amount)

    distributed = sum(cleaned.values(), ZERO)
    if (distributed - total).copy_abs() > _tolerance():
        raise ValidationError(
            "Distributed amounts must add up to the total",
            details={"total": str(total), "distributed": str(distributed)},
        )
    return cleaned


def originator_funder(loan: Prospect, originator_lender_id: str | None = None) -> Funder | None:
    lender_id = originator_lender_id or settings.originator_lender_id
    return next((funder for funder in loan.funders if funder.lender_id == lender_id), None)


def apply_funding_event(
    loan: Prospect,
    *,
    funding_date: date,
    total,
    distributions: Mapping[str, object],
    reference: str | None = None,
    originator_lender_id: str | None = None,
    created_on: date | None = None,
) -> tuple[Prospect, HistoryEvent]:
    """Credit each funder with its share of newly disbursed capital.

    When the originator holds a participation, money received by other funders
    is a sale out of the originator's share and is debited from it.
    """
    cleaned = validate_distribution(total, distributions, loan.funders)
    total = _money(total)

    originator = originator_funder(loan, originator_lender_id)
    sold = ZERO
    if originator is not None:
        sold = sum((amount for funder_id, amount in cleaned.items() if funder_id != originator.id), ZERO)

    funders: list[Funder] = []
    for funder in loan.funders:
        principal = _as_decimal(funder.principal_balance) + cleaned.get(funder.id, ZERO)
        if originator is not None and funder.id == originator.id:
            principal -= sold
            if principal < ZERO:
                raise ValidationError(
                    "Participation sold exceeds the originator's retained principal",
                    details={"sold": str(sold), "funder_id": funder.id},
                )
        funders.append(funder.model_copy(update={"principal_balance": principal}))

    event = HistoryEvent(
        id=f"hist-{uuid4()}",
        type=HistoryEventType.FUNDING.value,
        date_created=created_on or date.today(),
        date_received=funding_date,
        total_amount=total,
        notes=reference,
        distributions=[Distribution(funder_id=funder_id, amount=amount) for funder_id, amount in cleaned.items()],
        originator_funder_id=originator.id if originator is not None and sold > ZERO else None,
        participation_sold=sold,
    )
    return _with_funders(loan, funders, [*loan.history, event]), event


def apply_payment(
    loan: Prospect,
    *,
    payment_date: date,
    amount,
    distributions: Mapping[str, object],
    notes: str | None = None,
    created_on: date | None = None,
) -> tuple[Prospect, HistoryEvent]:
    amount = _require_positive(amount, "Payment amount")
    outstanding = total_principal(loan.funders)
    if loan.terms is not None and loan.terms.principal_balance is not None:
        outstanding = _as_decimal(loan.terms.principal_balance)
    if amount > outstanding:
        raise ValidationError(
            "Payment exceeds the outstanding principal",
            details={"amount": str(amount), "principal_balance": str(outstanding)},
        )
    cleaned = validate_distribution(amount, distributions, loan.funders)

    funders: list[Funder] = []
    for funder in loan.funders:
        allocated = cleaned.get(funder.id, ZERO)
        principal = _as_decimal(funder.principal_balance)
        if allocated > principal:
            raise ValidationError(
                f"Allocation exceeds the principal held by {funder.lender_name}",
                details={"funder_id": funder.id, "allocated": str(allocated), "principal_balance": str(principal)},
            )
        funders.append(funder.model_copy(update={"principal_balance": principal - allocated}))

    event = HistoryEvent(
        id=f"hist-{uuid4()}",
        type=HistoryEventType.PAYMENT.value,
        date_created=created_on or date.today(),
        date_received=payment_date,
        total_amount=amount,
        notes=notes,
        distributions=[Distribution(funder_id=funder_id, amount=value) for funder_id, value in cleaned.items()],
    )
    return _with_funders(loan, funders, [*loan.history, event]), event


def find_event(loan: Prospect, event_id: str) -> HistoryEvent:
    event = next((item for item in loan.history if item.id == event_id), None)
    if event is None:
        raise NotFoundError("History event not found", details={"event_id": event_id})
    return event


def reverse_event(loan: Prospect, event_id: str) -> tuple[Prospect, HistoryEvent]:
    """Undo the recorded distributions of a history event and drop it."""
    event = find_event(loan, event_id)
    if event.origination:
        raise ValidationError(
            "The origination funding event cannot be reversed", details={"event_id": event_id}
        )
    funding = event.type == HistoryEventType.FUNDING.value
    sign = Decimal("-1") if funding else Decimal("1")

    deltas: dict[str, Decimal] = {}
    for distribution in event.distributions:
        deltas[distribution.funder_id] = deltas.get(distribution.funder_id, ZERO) + sign * distribution.amount
    if funding and event.originator_funder_id and event.participation_sold:
        deltas[event.originator_funder_id] = deltas.get(event.originator_funder_id, ZERO) + event.participation_sold

    known = {funder.id for funder in loan.funders}
    missing = sorted(set(deltas) - known)
    if missing:
        raise ValidationError("History event references funders no longer on the loan", details={"funder_ids": missing})

    funders: list[Funder] = []
    for funder in loan.funders:
        principal = _as_decimal(funder.principal_balance) + deltas.get(funder.id, ZERO)
        if principal < ZERO:
            raise ValidationError(
                f"Reversal would leave {funder.lender_name} with negative principal",
                details={"funder_id": funder.id},
            )
        funders.append(funder.model_copy(update={"principal_balance": principal}))

    history = [item for item in loan.history if item.id != event_id]
    return _with_funders(loan, funders, history), event


def add_funder(loan: Prospect, lender: Lender, original_amount, lender_rate) -> tuple[Prospect, Funder]:
    if any(funder.lender_id == lender.id for funder in loan.funders):
        raise ValidationError(f"{lender.lender_name} already funds this loan", details={"lender_id": lender.id})
    rate = _as_decimal(lender_rate)
    if not rate.is_finite() or rate < ZERO:
        raise ValidationError("Lender rate must be a non-negative fraction")
    funder = Funder(
        id=f"funder-{uuid4()}",
        lender_id=lender.id,
        lender_account=lender.account,
        lender_name=lender.lender_name,
        original_amount=_money(original_amount),
        lender_rate=rate,
        principal_balance=ZERO,
    )
    return _with_funders(loan, [*loan.funders, funder], list(loan.history)), funder


def update_servicing_fees(loan: Prospect, funder_id: str, fees: ServicingFees) -> Prospect:
    if loan.funder(funder_id) is None:
        raise NotFoundError("Funder not found", details={"funder_id": funder_id})
    funders = [
        funder.model_copy(update={"servicing_fees": fees}) if funder.id == funder_id else funder
        for funder in loan.funders
    ]
    return loan.model_copy(update={"funders": funders})


_MOVEMENT_TYPES = {
    (HistoryEventType.FUNDING.value, False): TrustEventType.FUNDING_DISBURSEMENT,
    (HistoryEventType.FUNDING.value, True): TrustEventType.FUNDING_REVERSAL,
    (HistoryEventType.PAYMENT.value, False): TrustEventType.PAYMENT_DISTRIBUTION,
    (HistoryEventType.PAYMENT.value, True): TrustEventType.PAYMENT_REVERSAL,
}


def trust_movements_for(loan: Prospect, event: HistoryEvent, *, reversal: bool = False) -> list[TrustMovement]:
    """Postings to each funder's lender trust account for ``event``."""
    event_type = _MOVEMENT_TYPES[(event.type, reversal)]
    label = loan.code or loan.id
    description = f"{event_type.value} for loan {label}"
    by_funder = {funder.id: funder for funder in loan.funders}

    totals: dict[str, Decimal] = {}
    for distribution in event.distributions:
        funder = by_funder.get(distribution.funder_id)
        if funder is None:
            raise ValidationError("Distribution references an unknown funder", details={"funder_id": distribution.funder_id})
        totals[funder.lender_id] = totals.get(funder.lender_id, ZERO) + distribution.amount

    return [
        TrustMovement(lender_id=lender_id, event_type=event_type.value, amount=amount, description=description)
        for lender_id, amount in totals.items()
        if amount > ZERO
    ]

"""Client-side mirror of the trust-transaction RPC.

``validate_transaction`` applies exactly the checks the database function
performs so an optimistic result and the authoritative one agree.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from uuid import uuid4

from app.schemas.lender import WITHDRAWAL_EVENT_TYPES, Lender, TrustAccountEvent, TrustEventType
from app.services.errors import InsufficientFundsError, ValidationError


TWOPLACES = Decimal("0.01")


def is_withdrawal(event_type: TrustEventType | str) -> bool:
    return TrustEventType(event_type).value in WITHDRAWAL_EVENT_TYPES


def signed_amount(event_type: TrustEventType | str, amount: Decimal) -> Decimal:
    return -amount if is_withdrawal(event_type) else amount


def validate_transaction(
    balance: Decimal,
    event_type: TrustEventType | str,
    amount,
    description: str | None,
) -> Decimal:
    """Return the amount quantised to the cent, or raise before anything changes."""
    try:
        event_type = TrustEventType(event_type).value
    except ValueError as exc:
        raise ValidationError(f"Unknown trust event type: {event_type!r}") from exc
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Amount must be a number") from exc
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be a positive number", details={"amount": str(amount)})
    if not description or not description.strip():
        raise ValidationError("Description is required")
    value = value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    if event_type in WITHDRAWAL_EVENT_TYPES and value > balance:
        raise InsufficientFundsError(
            "Insufficient trust balance",
            details={"amount": str(value), "trust_balance": str(balance)},
        )
    return value


def sort_events(events: list[TrustAccountEvent]) -> list[TrustAccountEvent]:
    # Stable, so same-day events keep insertion order.
    return sorted(events, key=lambda event: event.event_date)


def replay_balance(events: list[TrustAccountEvent]) -> Decimal:
    return sum((signed_amount(event.event_type, event.amount) for event in events), Decimal("0"))


def record_transaction(
    lender: Lender,
    *,
    event_type: TrustEventType | str,
    event_date: date,
    description: str,
    amount,
    related_loan_id: str | None = None,
    related_loan_code: str | None = None,
    event_id: str | None = None,
) -> tuple[Lender, TrustAccountEvent]:
    value = validate_transaction(lender.trust_balance, event_type, amount, description)
    event = TrustAccountEvent(
        id=event_id or str(uuid4()),
        lender_id=lender.id,
        event_type=TrustEventType(event_type).value,
        event_date=event_date,
        description=description.strip(),
        amount=value,
        related_loan_id=related_loan_id,
        related_loan_code=related_loan_code,
        created_at=datetime.now(timezone.utc),
    )
    updated = lender.model_copy(
        update={
            "trust_balance": lender.trust_balance + signed_amount(event_type, value),
            "trust_account_events": sort_events([*lender.trust_account_events, event]),
        }
    )
    return updated, event

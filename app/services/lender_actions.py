from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from app.schemas.lender import Lender, LenderCreate, LenderPortfolio, LenderUpdate, PortfolioLoan, TrustTransactionCreate
from app.schemas.prospect import ProspectStatus
from app.services.errors import ValidationError
from app.services.mutations import LenderOrchestrator, ProspectOrchestrator


async def list_lenders(lenders: LenderOrchestrator) -> list[Lender]:
    return await lenders.store.query(order_by="lender_name")


async def get_lender(lenders: LenderOrchestrator, lender_id: str) -> Lender:
    return await lenders.refresh(lender_id)


async def create_lender(lenders: LenderOrchestrator, payload: LenderCreate) -> Lender:
    account = payload.account.strip()
    if await lenders.store.query({"account": account}):
        raise ValidationError("Lender account already exists", details={"account": account})
    lender = Lender(
        id=str(uuid4()),
        account=account,
        lender_name=payload.lender_name.strip(),
        address=payload.address,
    )
    return await lenders.create(lender)


async def update_lender(lenders: LenderOrchestrator, lender_id: str, payload: LenderUpdate) -> Lender:
    patch = {name: getattr(payload, name) for name in payload.model_fields_set}
    for name in ("account", "lender_name"):
        if name in patch and not (patch[name] or "").strip():
            raise ValidationError(f"{name} cannot be empty")
    return await lenders.apply_update(lender_id, patch)


async def record_trust_transaction(
    lenders: LenderOrchestrator,
    lender_id: str,
    payload: TrustTransactionCreate,
) -> Lender:
    return await lenders.record_transaction(
        lender_id,
        event_type=payload.event_type,
        event_date=payload.event_date,
        description=payload.description,
        amount=payload.amount,
        related_loan_id=payload.related_loan_id,
        related_loan_code=payload.related_loan_code,
    )


async def list_portfolio(lenders: LenderOrchestrator, prospects: ProspectOrchestrator, lender_id: str) -> LenderPortfolio:
    """Funded loans carrying a participation from ``lender_id``.

    The stored ``portfolio_value`` is brought in line with the summed principal.
    """
    lender = await lenders.refresh(lender_id)
    holdings: list[PortfolioLoan] = []
    for loan in await prospects.store.query({"status": ProspectStatus.COMPLETED.value}):
        funder = next((item for item in loan.funders if item.lender_id == lender_id), None)
        if funder is None:
            continue
        holdings.append(
            PortfolioLoan(
                loan_id=loan.id,
                code=loan.code,
                borrower_name=loan.borrower_name,
                closing_date=loan.terms.closing_date if loan.terms else None,
                funder_id=funder.id,
                principal_balance=funder.principal_balance,
                pct_owned=funder.pct_owned,
                lender_rate=funder.lender_rate,
            )
        )

    value = sum((item.principal_balance for item in holdings), Decimal("0"))
    if lender.portfolio_value != value:
        await lenders.apply_update(lender_id, {"portfolio_value": value}, action="lender.portfolio_revalued")
    return LenderPortfolio(lender_id=lender_id, portfolio_value=value, loans=holdings)

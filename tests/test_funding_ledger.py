from datetime import date
from decimal import Decimal

import pytest

from conftest import make_lender, make_loan

from app.schemas.prospect import ServicingFees
from app.services import funding_ledger
from app.services.errors import NotFoundError, ValidationError


FUNDED_ON = date(2026, 5, 1)


def _assert_consistent(loan) -> None:
    total = funding_ledger.total_principal(loan.funders)
    assert loan.terms.principal_balance == total
    for funder in loan.funders:
        expected = Decimal("0") if total == 0 else funder.principal_balance / total
        assert funder.pct_owned == expected


@pytest.fixture
def lender_b():
    return make_lender(id="lender-b", account="CCL", lender_name="Coastal Capital LLC")


@pytest.fixture
def originator_loan(lender_b):
    loan = make_loan(loan_amount=Decimal("50000"))
    loan, _ = funding_ledger.add_funder(loan, lender_b, Decimal("40000"), Decimal("0.1"))
    return loan


@pytest.fixture
def participant_loan(originator_loan):
    # Same loan, but funder A is an outside lender rather than the originator.
    first = originator_loan.funders[0].model_copy(update={"lender_id": "lender-a", "lender_account": "AAA"})
    return originator_loan.model_copy(update={"funders": [first, *originator_loan.funders[1:]]})


def _split(loan, a, b):
    return {loan.funders[0].id: Decimal(a), loan.funders[1].id: Decimal(b)}


def test_funding_between_outside_lenders_credits_each_share(participant_loan) -> None:
    loan, event = funding_ledger.apply_funding_event(
        participant_loan,
        funding_date=FUNDED_ON,
        total=Decimal("100000"),
        distributions=_split(participant_loan, "60000", "40000"),
        reference="Wire 881",
    )

    a, b = loan.funders
    assert a.principal_balance == Decimal("110000")
    assert b.principal_balance == Decimal("40000")
    assert abs(a.pct_owned - Decimal("0.7333")) < Decimal("0.0001")
    assert abs(b.pct_owned - Decimal("0.2667")) < Decimal("0.0001")
    assert event.participation_sold == Decimal("0")
    assert event.originator_funder_id is None
    assert event.notes == "Wire 881"
    _assert_consistent(loan)


def test_funding_sells_participation_out_of_originator_share(originator_loan) -> None:
    loan, event = funding_ledger.apply_funding_event(
        originator_loan,
        funding_date=FUNDED_ON,
        total=Decimal("100000"),
        distributions=_split(originator_loan, "60000", "40000"),
    )

    originator, b = loan.funders
    assert originator.principal_balance == Decimal("70000")
    assert b.principal_balance == Decimal("40000")
    assert event.participation_sold == Decimal("40000")
    assert event.originator_funder_id == originator.id
    assert loan.terms.principal_balance == Decimal("110000")
    _assert_consistent(loan)


def test_funding_cannot_sell_more_than_the_originator_holds(originator_loan) -> None:
    with pytest.raises(ValidationError):
        funding_ledger.apply_funding_event(
            originator_loan,
            funding_date=FUNDED_ON,
            total=Decimal("60000"),
            distributions=_split(originator_loan, "0", "60000"),
        )


@pytest.mark.parametrize(
    "distributions,total",
    [
        ({"funder-unknown": "100"}, "100"),
        ({"a": "-5", "b": "105"}, "100"),
        ({"a": "60", "b": "39.98"}, "100"),
        ({"a": "50", "b": "50"}, "0"),
        ({"a": "NaN", "b": "100"}, "100"),
    ],
)
def test_validate_distribution_rejects_bad_input(participant_loan, distributions, total) -> None:
    ids = {"a": participant_loan.funders[0].id, "b": participant_loan.funders[1].id}
    mapped = {ids.get(key, key): Decimal(value) for key, value in distributions.items()}

    with pytest.raises(ValidationError):
        funding_ledger.validate_distribution(Decimal(total), mapped, participant_loan.funders)


def test_validate_distribution_allows_a_cent_of_rounding_and_drops_zeros(participant_loan) -> None:
    cleaned = funding_ledger.validate_distribution(
        Decimal("100"), _split(participant_loan, "99.99", "0"), participant_loan.funders
    )

    assert cleaned == {participant_loan.funders[0].id: Decimal("99.99")}


def test_rejected_funding_leaves_loan_untouched(participant_loan) -> None:
    snapshot = participant_loan.model_copy(deep=True)

    with pytest.raises(ValidationError):
        funding_ledger.apply_funding_event(
            participant_loan,
            funding_date=FUNDED_ON,
            total=Decimal("100"),
            distributions=_split(participant_loan, "10", "10"),
        )

    assert participant_loan == snapshot


def test_payment_reduces_principal_per_allocation(originator_loan) -> None:
    funded, _ = funding_ledger.apply_funding_event(
        originator_loan,
        funding_date=FUNDED_ON,
        total=Decimal("100000"),
        distributions=_split(originator_loan, "60000", "40000"),
    )

    paid, event = funding_ledger.apply_payment(
        funded,
        payment_date=date(2026, 6, 1),
        amount=Decimal("11000"),
        distributions=_split(funded, "7000", "4000"),
        notes="June principal",
    )

    assert [f.principal_balance for f in paid.funders] == [Decimal("63000"), Decimal("36000")]
    assert event.type == "Payment"
    assert paid.terms.principal_balance == Decimal("99000")
    _assert_consistent(paid)


def test_payment_cannot_exceed_outstanding_principal(participant_loan) -> None:
    with pytest.raises(ValidationError):
        funding_ledger.apply_payment(
            participant_loan,
            payment_date=date(2026, 6, 1),
            amount=Decimal("50000.01"),
            distributions=_split(participant_loan, "50000.01", "0"),
        )


def test_payment_allocation_cannot_exceed_funder_principal(participant_loan) -> None:
    with pytest.raises(ValidationError):
        funding_ledger.apply_payment(
            participant_loan,
            payment_date=date(2026, 6, 1),
            amount=Decimal("1000"),
            distributions=_split(participant_loan, "0", "1000"),
        )


@pytest.mark.parametrize("loan_fixture", ["originator_loan", "participant_loan"])
def test_reversing_a_funding_event_restores_the_prior_state(request, loan_fixture) -> None:
    before = request.getfixturevalue(loan_fixture)
    funded, event = funding_ledger.apply_funding_event(
        before,
        funding_date=FUNDED_ON,
        total=Decimal("100000"),
        distributions=_split(before, "60000", "40000"),
    )

    restored, removed = funding_ledger.reverse_event(funded, event.id)

    assert removed.id == event.id
    assert restored.funders == before.funders
    assert restored.history == before.history
    assert restored.terms.principal_balance == before.terms.principal_balance


def test_reversing_a_payment_restores_principal(participant_loan) -> None:
    paid, event = funding_ledger.apply_payment(
        participant_loan,
        payment_date=date(2026, 6, 1),
        amount=Decimal("5000"),
        distributions=_split(participant_loan, "5000", "0"),
    )

    restored, _ = funding_ledger.reverse_event(paid, event.id)

    assert restored.funders == participant_loan.funders
    assert [item.id for item in restored.history] == [item.id for item in participant_loan.history]


def test_reversal_that_would_go_negative_is_rejected(participant_loan) -> None:
    funded, event = funding_ledger.apply_funding_event(
        participant_loan,
        funding_date=FUNDED_ON,
        total=Decimal("1000"),
        distributions=_split(participant_loan, "0", "1000"),
    )
    paid, _ = funding_ledger.apply_payment(
        funded,
        payment_date=date(2026, 6, 1),
        amount=Decimal("600"),
        distributions=_split(funded, "0", "600"),
    )

    with pytest.raises(ValidationError):
        funding_ledger.reverse_event(paid, event.id)


def test_origination_event_cannot_be_reversed(originator_loan) -> None:
    origination = originator_loan.history[0]

    with pytest.raises(ValidationError):
        funding_ledger.reverse_event(originator_loan, origination.id)


def test_find_event_raises_for_unknown_id(participant_loan) -> None:
    with pytest.raises(NotFoundError):
        funding_ledger.find_event(participant_loan, "hist-missing")


def test_add_funder_starts_at_zero_and_rejects_duplicates(originator_loan, lender_b) -> None:
    new = originator_loan.funders[1]
    assert new.principal_balance == Decimal("0")
    assert new.pct_owned == Decimal("0")
    assert new.original_amount == Decimal("40000.00")

    with pytest.raises(ValidationError):
        funding_ledger.add_funder(originator_loan, lender_b, Decimal("1"), Decimal("0.1"))


def test_recompute_ownership_with_zero_total() -> None:
    loan = make_loan(loan_amount=Decimal("0"))

    [funder] = funding_ledger.recompute_ownership(loan.funders)

    assert funder.pct_owned == Decimal("0")


def test_update_servicing_fees_targets_one_funder(originator_loan) -> None:
    fees = ServicingFees(broker_servicing_fee_enabled=True, broker_servicing_fee_percent=Decimal("0.5"))
    target = originator_loan.funders[1].id

    updated = funding_ledger.update_servicing_fees(originator_loan, target, fees)

    assert updated.funder(target).servicing_fees == fees
    assert updated.funders[0].servicing_fees is None
    with pytest.raises(NotFoundError):
        funding_ledger.update_servicing_fees(originator_loan, "funder-missing", fees)


def test_trust_movements_follow_event_type_and_direction(participant_loan) -> None:
    funded, event = funding_ledger.apply_funding_event(
        participant_loan,
        funding_date=FUNDED_ON,
        total=Decimal("100000"),
        distributions=_split(participant_loan, "60000", "40000"),
    )

    forward = funding_ledger.trust_movements_for(funded, event)
    backward = funding_ledger.trust_movements_for(funded, event, reversal=True)

    assert {(m.lender_id, m.event_type, m.amount) for m in forward} == {
        ("lender-a", "Funding Disbursement", Decimal("60000.00")),
        ("lender-b", "Funding Disbursement", Decimal("40000.00")),
    }
    assert {m.event_type for m in backward} == {"Funding Reversal"}
    assert forward[0].description == f"Funding Disbursement for loan {participant_loan.code}"

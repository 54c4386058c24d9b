from datetime import date
from decimal import Decimal

import pytest

from retail_ledger.core.errors import ContractAlreadySettled, ContractCancelled, InvalidTerms, NotFound
from retail_ledger.models.installments import ContractStatus, PaymentMethod
from retail_ledger.services import installments

TODAY = date(2026, 3, 10)


def _create(db, **overrides):
    params = {
        "total_amount": Decimal("1200000"),
        "down_payment": Decimal("200000"),
        "duration_months": 10,
        "customer_ref": "cust-1",
        "product_ref": "phone-1",
        "shop_id": 10,
        "start_date": TODAY,
        "created_by": 2,
        "today": TODAY,
    }
    params.update(overrides)
    return installments.create_contract(db, **params)


def test_create_contract_stores_schedule(db):
    contract = _create(db)

    assert contract.monthly_payment == Decimal("100000")
    assert contract.final_payment == Decimal("100000")
    assert contract.remaining_amount == Decimal("1000000")
    assert contract.paid_months == 0
    assert contract.next_payment_date == date(2026, 4, 10)
    assert contract.end_date == date(2027, 1, 10)
    assert contract.status == ContractStatus.ACTIVE


def test_create_contract_rejects_past_start_date(db):
    with pytest.raises(InvalidTerms):
        _create(db, start_date=date(2026, 3, 9))


@pytest.mark.parametrize(
    "overrides",
    [
        {"duration_months": 0},
        {"duration_months": 25},
        {"down_payment": Decimal("1200001")},
        {"total_amount": Decimal("1000.004"), "down_payment": Decimal("1000"), "duration_months": 3},
        {"total_amount": Decimal("1"), "down_payment": Decimal("0"), "duration_months": 3},
    ],
)
def test_create_contract_rejects_invalid_terms(db, overrides):
    with pytest.raises(InvalidTerms):
        _create(db, **overrides)
    assert installments.list_contracts(db) == []


def test_nothing_financed_is_completed_immediately(db):
    contract = _create(db, down_payment=Decimal("1200000"))

    assert contract.status == ContractStatus.COMPLETED
    assert contract.completed_at is not None
    assert contract.next_payment_date is None
    with pytest.raises(ContractAlreadySettled):
        installments.apply_payment(db, contract_id=contract.id, today=TODAY)


def test_three_payments_leave_seven_hundred_thousand(db):
    contract = _create(db)

    for expected_number in (1, 2, 3):
        contract, payment = installments.apply_payment(
            db,
            contract_id=contract.id,
            recorded_by=2,
            payment_method=PaymentMethod.CARD,
            today=TODAY,
        )
        assert payment.installment_number == expected_number
        assert payment.amount == Decimal("100000")

    assert contract.paid_months == 3
    assert contract.remaining_amount == Decimal("700000")
    assert contract.next_payment_date == date(2026, 7, 10)
    assert contract.status == ContractStatus.ACTIVE


def test_paying_every_installment_completes_the_contract(db):
    contract = _create(db, total_amount=Decimal("1000"), down_payment=Decimal("0"), duration_months=3)

    amounts = []
    for _ in range(3):
        contract, payment = installments.apply_payment(db, contract_id=contract.id, today=TODAY)
        amounts.append(payment.amount)

    assert amounts == [Decimal("333"), Decimal("333"), Decimal("334")]
    assert contract.status == ContractStatus.COMPLETED
    assert contract.remaining_amount == Decimal("0")
    assert contract.next_payment_date is None
    assert contract.completed_at is not None
    with pytest.raises(ContractAlreadySettled):
        installments.apply_payment(db, contract_id=contract.id, today=TODAY)
    with pytest.raises(ContractAlreadySettled):
        installments.cancel(db, contract_id=contract.id, reason="customer asked")


def test_cancelled_contract_rejects_payments(db):
    contract = _create(db)
    installments.apply_payment(db, contract_id=contract.id, today=TODAY)

    cancelled = installments.cancel(db, contract_id=contract.id, reason="device returned", cancelled_by=2)

    assert cancelled.status == ContractStatus.CANCELLED
    assert cancelled.cancel_reason == "device returned"
    assert cancelled.cancelled_at is not None
    assert cancelled.next_payment_date is None
    assert cancelled.paid_months == 1
    with pytest.raises(ContractCancelled):
        installments.apply_payment(db, contract_id=contract.id, today=TODAY)
    with pytest.raises(ContractCancelled):
        installments.cancel(db, contract_id=contract.id, reason="again")


def test_unknown_contract(db):
    with pytest.raises(NotFound):
        installments.apply_payment(db, contract_id=404, today=TODAY)


def test_effective_status_turns_overdue_after_missed_due_date(db):
    contract = _create(db)

    assert installments.effective_status(contract, date(2026, 4, 10)) == ContractStatus.ACTIVE
    assert installments.effective_status(contract, date(2026, 4, 11)) == ContractStatus.OVERDUE


def test_refresh_overdue_persists_status(db):
    late = _create(db, customer_ref="late")
    on_time = _create(db, customer_ref="on-time", start_date=date(2026, 4, 1))

    assert installments.refresh_overdue(db, date(2026, 4, 15)) == 1
    db.expire_all()
    assert installments.get_contract(db, late.id).status == ContractStatus.OVERDUE
    assert installments.get_contract(db, on_time.id).status == ContractStatus.ACTIVE

    overdue = installments.list_contracts(db, status=ContractStatus.OVERDUE, today=date(2026, 4, 15))
    assert [c.customer_ref for c in overdue] == ["late"]


def test_payment_brings_overdue_contract_back_to_active(db):
    contract = _create(db)
    installments.refresh_overdue(db, date(2026, 4, 20))

    contract, _ = installments.apply_payment(db, contract_id=contract.id, today=date(2026, 4, 20))

    assert contract.next_payment_date == date(2026, 5, 10)
    assert contract.status == ContractStatus.ACTIVE


def test_list_installments_reports_each_state(db):
    contract = _create(db, total_amount=Decimal("900"), down_payment=Decimal("0"), duration_months=3)
    installments.apply_payment(db, contract_id=contract.id, payment_method=PaymentMethod.TRANSFER, today=TODAY)

    rows = installments.list_installments(db, contract.id, today=date(2026, 5, 20))

    assert [(row.installment_number, row.state) for row in rows] == [(1, "paid"), (2, "overdue"), (3, "pending")]
    assert rows[0].payment_method == PaymentMethod.TRANSFER
    assert [row.due_date for row in rows] == [date(2026, 4, 10), date(2026, 5, 10), date(2026, 6, 10)]
    assert sum(row.amount for row in rows) == Decimal("900")

    installments.cancel(db, contract_id=contract.id, reason="written off")
    states = [row.state for row in installments.list_installments(db, contract.id, today=date(2026, 5, 20))]
    assert states == ["paid", "cancelled", "cancelled"]


def _single_installment_contract(file_session_factory) -> int:
    setup = file_session_factory()
    contract_id = _create(
        setup,
        total_amount=Decimal("500"),
        down_payment=Decimal("0"),
        duration_months=1,
    ).id
    setup.close()
    return contract_id


def test_concurrent_payments_settle_the_last_installment_once(file_session_factory, race):
    contract_id = _single_installment_contract(file_session_factory)

    def pay(session):
        installments.apply_payment(session, contract_id=contract_id, today=TODAY)

    outcomes = race(first=pay, second=pay)

    assert sorted(outcomes.values()) == ["ContractAlreadySettled", "ok"]
    check = file_session_factory()
    contract = installments.get_contract(check, contract_id)
    assert contract.status == ContractStatus.COMPLETED
    assert contract.paid_months == 1
    assert contract.remaining_amount == Decimal("0")
    assert [row.state for row in installments.list_installments(check, contract_id, today=TODAY)] == ["paid"]
    check.close()


def test_cancel_racing_a_payment_has_one_winner(file_session_factory, race):
    contract_id = _single_installment_contract(file_session_factory)

    outcomes = race(
        payment=lambda session: installments.apply_payment(session, contract_id=contract_id, today=TODAY),
        cancel=lambda session: installments.cancel(session, contract_id=contract_id, reason="device returned"),
    )

    check = file_session_factory()
    contract = installments.get_contract(check, contract_id)
    rows = installments.list_installments(check, contract_id, today=TODAY)
    if contract.status == ContractStatus.COMPLETED:
        assert outcomes == {"payment": "ok", "cancel": "ContractAlreadySettled"}
        assert contract.paid_months == 1
        assert [row.state for row in rows] == ["paid"]
    else:
        assert contract.status == ContractStatus.CANCELLED
        assert outcomes == {"payment": "ContractCancelled", "cancel": "ok"}
        assert contract.paid_months == 0
        assert contract.remaining_amount == Decimal("500")
        assert [row.state for row in rows] == ["cancelled"]
    check.close()

"""Unit tests for payment allocation"""

import pytest
from paybill_reconciler.domain.allocation import allocate_sequential, allocate_single
from paybill_reconciler.domain.models import PAID, PARTIALLY_PAID, PENDING, DebtSnapshot


def debt(code: str, principal: int, paid: int = 0) -> DebtSnapshot:
    return DebtSnapshot(code=code, principal_cents=principal, paid_cents=paid)


def test_single_partial_payment():
    """Test payment below the balance leaves the debt partially paid"""
    delta = allocate_single(debt("1", 50000), 20000)

    assert delta.new_paid_cents == 20000
    assert delta.new_remaining_cents == 30000
    assert delta.previous_status == PENDING
    assert delta.new_status == PARTIALLY_PAID


def test_single_exact_payment():
    delta = allocate_single(debt("1", 50000), 50000)

    assert delta.new_remaining_cents == 0
    assert delta.new_status == PAID


def test_single_overpayment_absorbed():
    """Test overpayment is recorded in full, not capped or rejected"""
    delta = allocate_single(debt("1", 50000, paid=30000), 50000)

    assert delta.applied_cents == 50000
    assert delta.new_paid_cents == 80000
    assert delta.new_remaining_cents == 0
    assert delta.new_status == PAID


def test_sequential_spreads_oldest_first():
    """Test 700 over [300, 500] clears the first and leaves 100 on the second"""
    result = allocate_sequential([debt("d1", 30000), debt("d2", 50000)], 70000)

    d1, d2 = result.deltas
    assert (d1.debt_code, d1.applied_cents, d1.new_remaining_cents, d1.new_status) == ("d1", 30000, 0, PAID)
    assert (d2.debt_code, d2.applied_cents, d2.new_remaining_cents, d2.new_status) == ("d2", 40000, 10000, PARTIALLY_PAID)
    assert result.excess_cents == 0


def test_sequential_small_payment_single_debt():
    """Test 50 against [300] leaves 250 outstanding"""
    result = allocate_sequential([debt("d1", 30000)], 5000)

    assert len(result.deltas) == 1
    assert result.deltas[0].new_remaining_cents == 25000
    assert result.deltas[0].new_status == PARTIALLY_PAID
    assert result.excess_cents == 0


def test_sequential_skips_settled_debts():
    """Test debts already paid receive nothing"""
    result = allocate_sequential([debt("d1", 30000, paid=30000), debt("d2", 20000)], 10000)

    assert [d.debt_code for d in result.deltas] == ["d2"]
    assert result.deltas[0].new_paid_cents == 10000


def test_sequential_reports_excess():
    """Test leftover money is returned, not applied"""
    result = allocate_sequential([debt("d1", 30000), debt("d2", 20000, paid=5000)], 60000)

    assert [d.new_status for d in result.deltas] == [PAID, PAID]
    assert result.applied_cents == 45000
    assert result.excess_cents == 15000


def test_sequential_stops_when_payment_used_up():
    """Test later debts are untouched once the payment is exhausted"""
    result = allocate_sequential([debt("d1", 30000), debt("d2", 50000), debt("d3", 10000)], 30000)

    assert [d.debt_code for d in result.deltas] == ["d1"]
    assert result.excess_cents == 0


def test_sequential_all_settled():
    """Test everything is excess when nothing is owed"""
    result = allocate_sequential([debt("d1", 30000, paid=30000)], 10000)

    assert result.deltas == []
    assert result.excess_cents == 10000


@pytest.mark.parametrize("amount", [1, 29999, 30000, 79999, 80000, 100000])
def test_sequential_conserves_money(amount):
    """Test applied + excess always equals the amount received"""
    debts = [debt("d1", 30000), debt("d2", 50000)]
    result = allocate_sequential(debts, amount)

    assert result.applied_cents + result.excess_cents == amount
    for d in result.deltas:
        assert d.new_remaining_cents == max(0, {"d1": 30000, "d2": 50000}[d.debt_code] - d.new_paid_cents)
        assert (d.new_status == PAID) == (d.new_remaining_cents == 0)


def test_sequential_is_deterministic():
    debts = [debt("d1", 30000), debt("d2", 50000)]
    assert allocate_sequential(debts, 45000) == allocate_sequential(debts, 45000)

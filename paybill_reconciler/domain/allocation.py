"""Allocation engine - applies a payment amount against debt balances"""

from typing import List, Sequence
from paybill_reconciler.domain.models import AllocationResult, DebtDelta, DebtSnapshot, debt_status


def _delta(debt: DebtSnapshot, applied_cents: int) -> DebtDelta:
    new_paid = debt.paid_cents + applied_cents
    new_remaining = max(0, debt.principal_cents - new_paid)
    return DebtDelta(
        debt_code=debt.code,
        applied_cents=applied_cents,
        previous_paid_cents=debt.paid_cents,
        new_paid_cents=new_paid,
        new_remaining_cents=new_remaining,
        previous_status=debt.status,
        new_status=debt_status(new_paid, new_remaining),
    )


def allocate_single(debt: DebtSnapshot, amount_cents: int) -> DebtDelta:
    """
    Apply the full amount to one debt.

    The amount is not capped at the remaining balance: an overpayment is
    recorded in paid_cents and the debt settles at remaining 0.

    Example:
        principal 50000, paid 30000, amount 50000
        -> paid 80000, remaining 0, status "paid"
    """
    return _delta(debt, amount_cents)


def allocate_sequential(debts: Sequence[DebtSnapshot], amount_cents: int) -> AllocationResult:
    """
    Spread one payment over several debts in the order given (oldest first).

    Requirements:
    - Each debt receives at most its remaining balance
    - Debts already settled are skipped
    - Whatever is left after the last debt is returned as excess_cents and
      applied nowhere

    Example:
        [d1 remaining 30000, d2 remaining 50000], amount 70000
        -> d1 +30000 (paid), d2 +40000 (partially_paid), excess 0
    """
    remaining_payment = amount_cents
    deltas: List[DebtDelta] = []

    for debt in debts:
        if remaining_payment <= 0:
            break
        if debt.remaining_cents == 0:
            continue

        applied = min(remaining_payment, debt.remaining_cents)
        deltas.append(_delta(debt, applied))
        remaining_payment -= applied

    return AllocationResult(deltas=deltas, excess_cents=max(0, remaining_payment))

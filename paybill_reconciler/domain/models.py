"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

# Debt status values
PENDING = "pending"
PARTIALLY_PAID = "partially_paid"
PAID = "paid"


@dataclass(frozen=True)
class ParsedPayment:
    """Structured payment facts extracted from an M-Pesa notification"""

    amount_cents: int
    account_token: str
    reference_id: Optional[str] = None
    payer_phone: Optional[str] = None
    payer_name: Optional[str] = None
    occurred_at: Optional[datetime] = None
    utility_balance_cents: Optional[int] = None


@dataclass(frozen=True)
class ParseError:
    """Typed parse failure - returned, never raised"""

    reason: str
    field: Optional[str] = None


ParseOutcome = Union[ParsedPayment, ParseError]


@dataclass(frozen=True)
class DebtSnapshot:
    """Debt balances as read from the store, before allocation"""

    code: str
    principal_cents: int
    paid_cents: int
    payer_phone: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def remaining_cents(self) -> int:
        return max(0, self.principal_cents - self.paid_cents)

    @property
    def status(self) -> str:
        return debt_status(self.paid_cents, self.remaining_cents)


@dataclass(frozen=True)
class DebtDelta:
    """Change to apply to one debt"""

    debt_code: str
    applied_cents: int
    previous_paid_cents: int
    new_paid_cents: int
    new_remaining_cents: int
    previous_status: str
    new_status: str


@dataclass
class AllocationResult:
    """Deltas from a sequential allocation plus whatever could not be applied"""

    deltas: List[DebtDelta] = field(default_factory=list)
    excess_cents: int = 0

    @property
    def applied_cents(self) -> int:
        return sum(d.applied_cents for d in self.deltas)


def debt_status(paid_cents: int, remaining_cents: int) -> str:
    """Status implied by a debt's balances"""
    if remaining_cents == 0:
        return PAID
    if paid_cents > 0:
        return PARTIALLY_PAID
    return PENDING

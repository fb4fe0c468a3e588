"""Idempotency guard keyed on the M-Pesa reference id"""

from dataclasses import dataclass
from typing import List, Optional, Union

from paybill_reconciler.infrastructure.database.repositories import ProcessedReferenceRepository


@dataclass(frozen=True)
class AlreadyProcessed:
    reference_id: str


@dataclass(frozen=True)
class ProceedToken:
    """Permission to apply; guarded is False when the notification had no reference"""

    reference_id: Optional[str]

    @property
    def guarded(self) -> bool:
        return self.reference_id is not None


GuardResult = Union[AlreadyProcessed, ProceedToken]


class IdempotencyGuard:
    """
    Check-then-reserve around a ledger commit.

    reserve() only stages the processed_reference row in the caller's
    session, so the key and the debt mutation land in the same commit. Two
    concurrent attempts with the same reference both pass check(); the
    primary key on processed_reference makes the second commit fail.
    """

    def __init__(self, references: ProcessedReferenceRepository):
        self.references = references

    def check(self, reference_id: Optional[str]) -> GuardResult:
        if reference_id and self.references.exists(reference_id):
            return AlreadyProcessed(reference_id=reference_id)
        return ProceedToken(reference_id=reference_id or None)

    def reserve(self, token: ProceedToken, debt_codes: List[str], amount_cents: int) -> None:
        if not token.guarded:
            return
        self.references.add(token.reference_id, debt_codes=debt_codes, amount_cents=amount_cents)

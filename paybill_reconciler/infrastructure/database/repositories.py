"""Data access layer for debts, payer accounts and the reconciliation audit trail"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.orm import Session
from paybill_reconciler.infrastructure.database.models import (
    Debt,
    PayerAccount,
    PaymentLog,
    ProcessedReference,
    UnmatchedTransaction,
)
from paybill_reconciler.domain.models import DebtDelta, DebtSnapshot, ParsedPayment


class DebtRepository:
    """Repository for debts"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Optional[Debt]:
        """Fetch a debt by its short numeric code"""
        return self.db.query(Debt).filter(Debt.code == code).first()

    def get_by_codes(self, codes: Sequence[str]) -> List[Debt]:
        """Fetch many debts in one query; unknown codes are simply absent"""
        if not codes:
            return []
        return self.db.query(Debt).filter(Debt.code.in_(list(codes))).all()

    @staticmethod
    def to_snapshot(debt: Debt) -> DebtSnapshot:
        return DebtSnapshot(
            code=debt.code,
            principal_cents=debt.principal_cents,
            paid_cents=debt.paid_cents or 0,
            payer_phone=debt.payer_phone,
            created_at=debt.created_at,
        )

    def apply_delta(self, debt: Debt, delta: DebtDelta, paid_at: datetime) -> None:
        """Stage balance changes on a loaded debt; written on the next flush"""
        debt.paid_cents = delta.new_paid_cents
        debt.remaining_cents = delta.new_remaining_cents
        debt.status = delta.new_status
        debt.payment_method = "mpesa_paybill"
        debt.last_payment_at = paid_at


class PayerAccountRepository:
    """Repository for payer accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_phone(self, phone: str) -> Optional[PayerAccount]:
        """Fetch payer account by normalized phone"""
        return self.db.get(PayerAccount, phone)


class ProcessedReferenceRepository:
    """Repository for idempotency keys"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, reference_id: str) -> bool:
        return self.db.get(ProcessedReference, reference_id) is not None

    def add(self, reference_id: str, debt_codes: List[str], amount_cents: int) -> ProcessedReference:
        """Stage the key in the current transaction"""
        record = ProcessedReference(
            reference_id=reference_id,
            debt_codes=debt_codes,
            amount_cents=amount_cents,
        )
        self.db.add(record)
        return record


class PaymentLogRepository:
    """Repository for the append-only payment audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, **fields: Any) -> PaymentLog:
        """Stage a new audit entry"""
        entry = PaymentLog(**fields)
        self.db.add(entry)
        return entry

    def summary_for_debt(self, debt_code: str, limit: int = 500) -> Dict[str, Any]:
        """
        Total paid, payment count and entries for one debt.

        Successful entries are scanned newest first and filtered on their
        affected_debts payload, so a lump-sum payment split over several debts
        contributes only the share applied to this one.
        """
        entries = (
            self.db.query(PaymentLog)
            .filter(PaymentLog.success.is_(True))
            .order_by(PaymentLog.created_at.desc())
            .limit(limit)
            .all()
        )

        payments = []
        for entry in entries:
            for affected in entry.affected_debts or []:
                if affected.get("debt_code") == debt_code:
                    payments.append((entry, affected["applied_cents"]))

        return {
            "total_paid_cents": sum(applied for _, applied in payments),
            "payment_count": len(payments),
            "payments": payments,
        }


class UnmatchedTransactionRepository:
    """Repository for payments awaiting manual reconciliation"""

    def __init__(self, db: Session):
        self.db = db

    def record(self, parsed: ParsedPayment, raw_text: Optional[str], reason: str) -> UnmatchedTransaction:
        """Stage an unmatched payment for human review"""
        row = UnmatchedTransaction(
            reference_id=parsed.reference_id,
            amount_cents=parsed.amount_cents,
            account_token=parsed.account_token,
            payer_phone=parsed.payer_phone,
            payer_name=parsed.payer_name,
            occurred_at=parsed.occurred_at,
            raw_text=raw_text,
            reason=reason,
            needs_review=True,
        )
        self.db.add(row)
        return row

    def list_recent(self, limit: int = 50) -> List[UnmatchedTransaction]:
        """Fetch entries still needing review, newest first"""
        return (
            self.db.query(UnmatchedTransaction)
            .filter(UnmatchedTransaction.needs_review.is_(True))
            .order_by(UnmatchedTransaction.created_at.desc())
            .limit(limit)
            .all()
        )

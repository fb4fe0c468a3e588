"""GET /v1/debts/{debt_code}/payments - Payment summary for one debt"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from paybill_reconciler.api.v1.schemas import PaymentSummaryResponse, PaymentItem
from paybill_reconciler.infrastructure.database.session import get_db
from paybill_reconciler.infrastructure.database.repositories import DebtRepository, PaymentLogRepository

router = APIRouter()


@router.get("/debts/{debt_code}/payments", response_model=PaymentSummaryResponse)
def get_payment_summary(debt_code: str, db: Session = Depends(get_db)):
    """
    Retrieve payments applied to a debt through M-Pesa notifications.

    Returns:
        Total paid, payment count and payments newest first
    """
    if DebtRepository(db).get_by_code(debt_code) is None:
        raise HTTPException(status_code=404, detail="Debt not found")

    summary = PaymentLogRepository(db).summary_for_debt(debt_code)

    payments = [
        PaymentItem(
            log_id=str(entry.id),
            reference_id=entry.reference_id,
            applied_cents=applied_cents,
            payer_phone=entry.payer_phone,
            created_at=entry.created_at.isoformat(),
        )
        for entry, applied_cents in summary["payments"]
    ]

    return PaymentSummaryResponse(
        debt_code=debt_code,
        total_paid_cents=summary["total_paid_cents"],
        payment_count=summary["payment_count"],
        payments=payments,
    )

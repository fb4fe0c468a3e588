"""GET /v1/unmatched - Payments awaiting manual reconciliation"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from paybill_reconciler.api.v1.schemas import UnmatchedResponse, UnmatchedItem
from paybill_reconciler.config import settings
from paybill_reconciler.infrastructure.database.session import get_db
from paybill_reconciler.infrastructure.database.repositories import UnmatchedTransactionRepository

router = APIRouter()


@router.get("/unmatched", response_model=UnmatchedResponse)
def list_unmatched_transactions(
    limit: int = Query(settings.unmatched_list_limit, ge=1, le=500, description="Maximum entries to return"),
    db: Session = Depends(get_db),
):
    """
    Retrieve recent payments that matched no debt or payer.

    Returns:
        Entries still flagged needs_review, newest first
    """
    unmatched_repo = UnmatchedTransactionRepository(db)
    rows = unmatched_repo.list_recent(limit=limit)

    items = [
        UnmatchedItem(
            id=str(row.id),
            reference_id=row.reference_id,
            amount_cents=row.amount_cents,
            account_token=row.account_token,
            payer_phone=row.payer_phone,
            payer_name=row.payer_name,
            reason=row.reason,
            needs_review=row.needs_review,
            created_at=row.created_at.isoformat(),
        )
        for row in rows
    ]

    return UnmatchedResponse(transactions=items)

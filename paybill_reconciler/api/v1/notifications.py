"""POST /v1/notifications - M-Pesa payment notification intake"""

from zoneinfo import ZoneInfo
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from paybill_reconciler.api.v1.schemas import (
    DebtUpdateSchema,
    ManualNotificationRequest,
    NotificationRequest,
    ParsedPaymentSchema,
    ParseResponse,
    ReconciliationResponse,
)
from paybill_reconciler.api.dependencies import get_reconciliation_service, get_request_id
from paybill_reconciler.config import settings
from paybill_reconciler.domain.models import ParseError
from paybill_reconciler.domain.parser import parse_notification
from paybill_reconciler.services.reconciliation import (
    PARSE_ERROR,
    SYSTEM_ERROR,
    UNMATCHED,
    ReconciliationResult,
    ReconciliationService,
)

router = APIRouter()

STATUS_BY_OUTCOME = {
    PARSE_ERROR: 400,
    UNMATCHED: 404,
    SYSTEM_ERROR: 500,
}


def _to_response(result: ReconciliationResult) -> JSONResponse:
    body = ReconciliationResponse(
        success=result.success,
        outcome=result.outcome,
        error_category=result.error_category,
        message=result.message,
        error=result.error,
        reference_id=result.reference_id,
        account_token=result.account_token,
        debts=[DebtUpdateSchema(**vars(d)) for d in result.debts],
        excess_cents=result.excess_cents,
        idempotency_guarded=result.idempotency_guarded,
        notification_sent=result.notification_sent,
    )
    return JSONResponse(
        status_code=STATUS_BY_OUTCOME.get(result.outcome, 200),
        content=body.model_dump(mode="json"),
    )


@router.post("/notifications", response_model=ReconciliationResponse)
async def submit_notification(
    request_body: NotificationRequest,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Apply a forwarded M-Pesa SMS to the debt ledger.

    Status codes:
    - 200: applied (done / notify_failed) or already_processed
    - 400: parse_error
    - 404: unmatched (account_token returned for triage)
    - 500: system_error
    """
    result = await service.submit(request_body.text, request_id=get_request_id(request))
    return _to_response(result)


@router.post("/notifications/manual", response_model=ReconciliationResponse)
async def submit_manual_notification(
    request_body: ManualNotificationRequest,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Re-process a notification, optionally against an operator-chosen debt code"""
    result = await service.submit(
        request_body.text,
        request_id=get_request_id(request),
        debt_code_override=request_body.debt_code,
    )
    return _to_response(result)


@router.post("/notifications/parse", response_model=ParseResponse)
def parse_notification_text(request_body: NotificationRequest):
    """Diagnostic: show what the parser extracts, without touching the ledger"""
    outcome = parse_notification(request_body.text, ZoneInfo(settings.notification_timezone))
    if isinstance(outcome, ParseError):
        return ParseResponse(success=False, reason=outcome.reason, field=outcome.field)
    return ParseResponse(success=True, payment=ParsedPaymentSchema(**vars(outcome)))

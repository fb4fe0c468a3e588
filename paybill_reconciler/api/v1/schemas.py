"""Pydantic schemas for API request/response validation"""

from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime
from typing import List, Optional

# Concatenated M-Pesa confirmations stay well under this
MAX_NOTIFICATION_LENGTH = 2000


class NotificationRequest(BaseModel):
    """Request body for POST /v1/notifications"""

    # SMS forwarder apps disagree on the field name
    text: str = Field(
        ...,
        min_length=1,
        max_length=MAX_NOTIFICATION_LENGTH,
        validation_alias=AliasChoices("text", "message", "smsText", "content"),
        description="Raw M-Pesa SMS text",
    )


class ManualNotificationRequest(NotificationRequest):
    """Request body for POST /v1/notifications/manual"""

    debt_code: Optional[str] = Field(None, min_length=1, description="Debt code to apply the payment to")


class ParsedPaymentSchema(BaseModel):
    """Fields extracted from a notification"""

    reference_id: Optional[str] = None
    amount_cents: int
    account_token: str
    payer_phone: Optional[str] = None
    payer_name: Optional[str] = None
    occurred_at: Optional[datetime] = None
    utility_balance_cents: Optional[int] = None


class DebtUpdateSchema(BaseModel):
    """Balance change applied to one debt"""

    debt_code: str
    applied_cents: int
    previous_paid_cents: int
    new_paid_cents: int
    new_remaining_cents: int
    previous_status: str
    new_status: str


class ReconciliationResponse(BaseModel):
    """Response for POST /v1/notifications"""

    success: bool
    outcome: str
    error_category: Optional[str] = None
    message: str
    error: Optional[str] = None
    reference_id: Optional[str] = None
    account_token: Optional[str] = None
    debts: List[DebtUpdateSchema] = []
    excess_cents: int = 0
    idempotency_guarded: bool = False
    notification_sent: bool = False


class ParseResponse(BaseModel):
    """Response for POST /v1/notifications/parse"""

    success: bool
    payment: Optional[ParsedPaymentSchema] = None
    reason: Optional[str] = None
    field: Optional[str] = None


class UnmatchedItem(BaseModel):
    """Single unmatched transaction"""

    id: str
    reference_id: Optional[str] = None
    amount_cents: int
    account_token: str
    payer_phone: Optional[str] = None
    payer_name: Optional[str] = None
    reason: str
    needs_review: bool
    created_at: str


class UnmatchedResponse(BaseModel):
    """Response for GET /v1/unmatched"""

    transactions: List[UnmatchedItem]


class PaymentItem(BaseModel):
    """Single payment applied to a debt"""

    log_id: str
    reference_id: Optional[str] = None
    applied_cents: int
    payer_phone: Optional[str] = None
    created_at: str


class PaymentSummaryResponse(BaseModel):
    """Response for GET /v1/debts/{debt_code}/payments"""

    debt_code: str
    total_paid_cents: int
    payment_count: int
    payments: List[PaymentItem]

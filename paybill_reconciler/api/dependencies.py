"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from paybill_reconciler.infrastructure.clients.sms import SmsClient
from paybill_reconciler.infrastructure.database.session import get_db
from paybill_reconciler.services.reconciliation import ReconciliationService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_sms_client() -> SmsClient:
    """Provide SMS gateway client instance"""
    return SmsClient()


def get_reconciliation_service(
    db: Session = Depends(get_db),
    sms_client: SmsClient = Depends(get_sms_client),
) -> ReconciliationService:
    """Provide a reconciliation service bound to this request's session"""
    return ReconciliationService(db, sms_client)

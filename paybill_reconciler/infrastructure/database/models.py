"""SQLAlchemy ORM models for debts, payer accounts and the reconciliation audit trail"""

import uuid
from sqlalchemy import Column, BigInteger, Boolean, DateTime, Integer, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Debt(Base):
    """Debt owed by a payer; balances are mutated only by reconciliation commits"""

    __tablename__ = "debt"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False, unique=True, index=True)
    principal_cents = Column(BigInteger, nullable=False)
    paid_cents = Column(BigInteger, nullable=False, default=0)
    remaining_cents = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    payer_phone = Column(Text, nullable=True, index=True)
    payment_method = Column(Text, nullable=True)
    last_payment_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    # UPDATE ... WHERE version = <read version>; raises StaleDataError on mismatch
    __mapper_args__ = {"version_id_col": version}


class PayerAccount(Base):
    """Customer keyed by normalized phone; debt_codes kept in creation order"""

    __tablename__ = "payer_account"

    phone = Column(Text, primary_key=True)
    name = Column(Text, nullable=True)
    debt_codes = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProcessedReference(Base):
    """M-Pesa reference already applied to the ledger; presence means do not reapply"""

    __tablename__ = "processed_reference"

    reference_id = Column(Text, primary_key=True)
    debt_codes = Column(JSON, nullable=False, default=list)
    amount_cents = Column(BigInteger, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentLog(Base):
    """Append-only audit record, one per reconciliation attempt"""

    __tablename__ = "payment_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(Text, nullable=True)
    outcome = Column(Text, nullable=False, index=True)
    success = Column(Boolean, nullable=False)
    reference_id = Column(Text, nullable=True, index=True)
    idempotency_guarded = Column(Boolean, nullable=False, default=False)
    amount_cents = Column(BigInteger, nullable=True)
    account_token = Column(Text, nullable=True)
    payer_phone = Column(Text, nullable=True)
    payer_name = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=True)
    raw_text = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=False, default="mpesa_paybill")
    affected_debts = Column(JSON, nullable=False, default=list)
    excess_cents = Column(BigInteger, nullable=False, default=0)
    notification_sent = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UnmatchedTransaction(Base):
    """Payment that matched no debt and no payer, parked for manual triage"""

    __tablename__ = "unmatched_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(Text, nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    account_token = Column(Text, nullable=False)
    payer_phone = Column(Text, nullable=True)
    payer_name = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=True)
    raw_text = Column(Text, nullable=True)
    reason = Column(Text, nullable=False)
    needs_review = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

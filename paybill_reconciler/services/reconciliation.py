"""Reconciliation orchestrator - parse, match, guard, allocate, commit, log, notify"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field, replace
from decimal import Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from paybill_reconciler.config import settings
from paybill_reconciler.domain.allocation import allocate_sequential, allocate_single
from paybill_reconciler.domain.exceptions import ConcurrentDebtUpdateError, NotificationSendError
from paybill_reconciler.domain.models import AllocationResult, DebtDelta, ParsedPayment, ParseError, ParseOutcome
from paybill_reconciler.domain.parser import parse_notification
from paybill_reconciler.infrastructure.database.repositories import (
    DebtRepository,
    PayerAccountRepository,
    PaymentLogRepository,
    ProcessedReferenceRepository,
    UnmatchedTransactionRepository,
)
from paybill_reconciler.infrastructure.observability.logging import log_reconciliation
from paybill_reconciler.infrastructure.observability.metrics import (
    debt_commit_conflicts_counter,
    record_reconciliation,
)
from paybill_reconciler.services.idempotency import AlreadyProcessed, IdempotencyGuard
from paybill_reconciler.services.ledger_lookup import LedgerLookup, NoMatch, SingleDebtMatch
from paybill_reconciler.utils.date_utils import utc_now
from paybill_reconciler.utils.phone_utils import normalize_phone

logger = logging.getLogger(__name__)

# Terminal states
DONE = "done"
NOTIFY_FAILED = "notify_failed"
PARSE_ERROR = "parse_error"
UNMATCHED = "unmatched"
ALREADY_PROCESSED = "already_processed"
SYSTEM_ERROR = "system_error"

SUCCESS_OUTCOMES = {DONE, NOTIFY_FAILED, ALREADY_PROCESSED}
ERROR_CATEGORIES = {PARSE_ERROR, UNMATCHED, ALREADY_PROCESSED, SYSTEM_ERROR}


@dataclass
class ReconciliationResult:
    """What happened to one notification"""

    outcome: str
    message: str
    parsed: Optional[ParsedPayment] = None
    parse_error: Optional[ParseError] = None
    debts: List[DebtDelta] = field(default_factory=list)
    excess_cents: int = 0
    idempotency_guarded: bool = False
    notification_sent: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES

    @property
    def error_category(self) -> Optional[str]:
        return self.outcome if self.outcome in ERROR_CATEGORIES else None

    @property
    def account_token(self) -> Optional[str]:
        return self.parsed.account_token if self.parsed else None

    @property
    def reference_id(self) -> Optional[str]:
        return self.parsed.reference_id if self.parsed else None


@dataclass
class _Confirmation:
    phone: Optional[str]
    text: str


def format_kes(cents: int) -> str:
    """150050 -> 'KES 1,500.50'"""
    return f"KES {Decimal(cents) / 100:,.2f}"


class ReconciliationService:
    """
    Applies M-Pesa payment notifications to the debt ledger.

    The store (a SQLAlchemy session) and the SMS transport are injected; one
    instance handles one request.
    """

    def __init__(
        self,
        db: Session,
        notifier,
        tz: Optional[ZoneInfo] = None,
        country_code: Optional[str] = None,
        business_name: Optional[str] = None,
        max_attempts: Optional[int] = None,
        notify_timeout: Optional[float] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.tz = tz or ZoneInfo(settings.notification_timezone)
        self.country_code = country_code or settings.default_country_code
        self.business_name = business_name or settings.business_name
        self.max_attempts = max_attempts or settings.commit_max_attempts
        self.notify_timeout = notify_timeout or settings.http_timeout_seconds

        self.debts = DebtRepository(db)
        self.logs = PaymentLogRepository(db)
        self.unmatched = UnmatchedTransactionRepository(db)
        self.lookup = LedgerLookup(self.debts, PayerAccountRepository(db), self.country_code)
        self.guard = IdempotencyGuard(ProcessedReferenceRepository(db))

    def test_parse(self, raw_text: str) -> ParseOutcome:
        """Parse only; never touches the store"""
        return parse_notification(raw_text, self.tz)

    async def submit(
        self,
        raw_text: str,
        request_id: Optional[str] = None,
        debt_code_override: Optional[str] = None,
    ) -> ReconciliationResult:
        """
        Run one notification through the pipeline.

        Flow:
        1. Parse (failure -> parse_error); a missing date becomes processing time
        2. Resolve debt or payer (nothing found -> unmatched)
        3. Idempotency check (seen before -> already_processed)
        4. Allocate and commit debts + processed reference together
        5. Send confirmation SMS (failure -> notify_failed, ledger untouched)
        6. Append exactly one payment_log entry

        debt_code_override replaces the account number typed by the payer,
        for operators re-processing a payment against a known debt.
        """
        start_time = time.time()

        parsed_or_error = self.test_parse(raw_text)
        if isinstance(parsed_or_error, ParseError):
            result = ReconciliationResult(
                outcome=PARSE_ERROR,
                message=f"Invalid payment notification: {parsed_or_error.reason}",
                parse_error=parsed_or_error,
                error=_describe_parse_error(parsed_or_error),
            )
        else:
            parsed = parsed_or_error
            if parsed.occurred_at is None:
                parsed = replace(parsed, occurred_at=utc_now())
            if debt_code_override:
                logger.info(
                    "Overriding account number with operator debt code",
                    extra={"request_id": request_id, "account_token": parsed.account_token, "debt_code": debt_code_override},
                )
                parsed = replace(parsed, account_token=debt_code_override)
            result = await self._reconcile(parsed, raw_text, request_id)

        self._append_log(result, raw_text, request_id)

        duration_ms = (time.time() - start_time) * 1000
        record_reconciliation(
            result.outcome,
            applied_cents=sum(d.applied_cents for d in result.debts),
            excess_cents=result.excess_cents,
        )
        log_reconciliation(
            request_id,
            result.outcome,
            result.reference_id,
            result.account_token,
            [d.debt_code for d in result.debts],
            result.excess_cents,
            duration_ms,
        )
        return result

    async def _reconcile(self, parsed: ParsedPayment, raw_text: str, request_id: Optional[str]) -> ReconciliationResult:
        try:
            result, confirmation = self._apply_with_retry(parsed, raw_text, request_id)
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Reconciliation failed: {e}",
                exc_info=True,
                extra={
                    "request_id": request_id,
                    "reference_id": parsed.reference_id,
                    "account_token": parsed.account_token,
                    "amount_cents": parsed.amount_cents,
                },
            )
            return ReconciliationResult(
                outcome=SYSTEM_ERROR,
                message="Payment could not be processed",
                parsed=parsed,
                error=str(e),
            )

        if confirmation is not None:
            await self._notify(result, confirmation, request_id)
        return result

    def _apply_with_retry(self, parsed: ParsedPayment, raw_text: str, request_id: Optional[str]):
        """Re-read and re-allocate when a debt changed between read and write"""
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._apply(parsed, raw_text, request_id)
            except StaleDataError as e:
                self.db.rollback()
                debt_commit_conflicts_counter.inc()
                if attempt >= self.max_attempts:
                    raise ConcurrentDebtUpdateError(
                        f"Debt changed concurrently on all {attempt} commit attempts"
                    ) from e
                logger.warning(
                    "Debt changed since read, retrying commit",
                    extra={"request_id": request_id, "reference_id": parsed.reference_id, "attempt": attempt},
                )

    def _apply(self, parsed: ParsedPayment, raw_text: str, request_id: Optional[str]):
        match = self.lookup.resolve(parsed.account_token, parsed.payer_phone)

        if isinstance(match, NoMatch):
            self.unmatched.record(parsed, raw_text, match.reason)
            self.db.commit()
            logger.warning(
                f"Unmatched payment: {match.reason}",
                extra={"request_id": request_id, "account_token": parsed.account_token},
            )
            return (
                ReconciliationResult(
                    outcome=UNMATCHED,
                    message="No debt found for this account number",
                    parsed=parsed,
                    error=match.reason,
                ),
                None,
            )

        token = self.guard.check(parsed.reference_id)
        if isinstance(token, AlreadyProcessed):
            self.db.rollback()
            return self._already_processed(parsed, token.reference_id), None

        if not token.guarded:
            logger.warning(
                "No reference id in notification, duplicate protection unavailable",
                extra={"request_id": request_id, "account_token": parsed.account_token},
            )

        paid_at = parsed.occurred_at
        if isinstance(match, SingleDebtMatch):
            targets = {match.debt.code: match.debt}
            allocation = AllocationResult(
                deltas=[allocate_single(self.debts.to_snapshot(match.debt), parsed.amount_cents)]
            )
            recipient = match.debt.payer_phone
        else:
            targets = {debt.code: debt for debt in match.debts}
            allocation = allocate_sequential(
                [self.debts.to_snapshot(debt) for debt in match.debts],
                parsed.amount_cents,
            )
            recipient = normalize_phone(parsed.payer_phone, self.country_code) or match.phone

        # Balances owed after this payment, across every debt in scope
        outstanding = sum(d.new_remaining_cents for d in allocation.deltas) + sum(
            self.debts.to_snapshot(debt).remaining_cents
            for code, debt in targets.items()
            if code not in {d.debt_code for d in allocation.deltas}
        )

        for delta in allocation.deltas:
            self.debts.apply_delta(targets[delta.debt_code], delta, paid_at)
        self.guard.reserve(token, [d.debt_code for d in allocation.deltas], parsed.amount_cents)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if token.guarded and self.guard.references.exists(token.reference_id):
                return self._already_processed(parsed, token.reference_id), None
            raise

        if allocation.excess_cents > 0:
            logger.warning(
                "Payment exceeds outstanding balance, excess left unapplied",
                extra={
                    "request_id": request_id,
                    "reference_id": parsed.reference_id,
                    "excess_cents": allocation.excess_cents,
                },
            )

        result = ReconciliationResult(
            outcome=DONE,
            message="Payment processed successfully",
            parsed=parsed,
            debts=allocation.deltas,
            excess_cents=allocation.excess_cents,
            idempotency_guarded=token.guarded,
        )
        return result, _Confirmation(
            phone=recipient,
            text=self._confirmation_text(list(targets), allocation, outstanding),
        )

    def _already_processed(self, parsed: ParsedPayment, reference_id: str) -> ReconciliationResult:
        logger.info("Transaction already processed", extra={"reference_id": reference_id})
        return ReconciliationResult(
            outcome=ALREADY_PROCESSED,
            message="Transaction already processed",
            parsed=parsed,
            idempotency_guarded=True,
        )

    def _confirmation_text(
        self,
        codes: List[str],
        allocation: AllocationResult,
        outstanding_cents: int,
    ) -> str:
        """Amount applied, remaining balance and any excess left unapplied"""
        paid_codes = [d.debt_code for d in allocation.deltas] or codes
        label = "debt" if len(paid_codes) == 1 else "debts"
        refs = ", ".join(f"#{code}" for code in paid_codes)
        text = (
            f"Payment of {format_kes(allocation.applied_cents)} received for {label} {refs}. "
            f"Outstanding balance: {format_kes(outstanding_cents)}. "
        )
        if allocation.excess_cents > 0:
            text += f"{format_kes(allocation.excess_cents)} exceeds the amount owed and was not applied. "
        return text + f"Thank you for your payment! - {self.business_name}"

    async def _notify(self, result: ReconciliationResult, confirmation: _Confirmation, request_id: Optional[str]) -> None:
        """Best effort; a failure downgrades the outcome but never the ledger"""
        if not confirmation.phone:
            result.outcome = NOTIFY_FAILED
            result.error = "No phone number to confirm payment to"
            logger.warning(result.error, extra={"request_id": request_id, "reference_id": result.reference_id})
            return

        try:
            await asyncio.wait_for(
                self.notifier.send(confirmation.phone, confirmation.text),
                timeout=self.notify_timeout,
            )
        except (NotificationSendError, asyncio.TimeoutError) as e:
            result.outcome = NOTIFY_FAILED
            result.error = str(e) or "Confirmation SMS timed out"
            logger.warning(
                f"Confirmation SMS failed: {result.error}",
                extra={"request_id": request_id, "reference_id": result.reference_id, "phone": confirmation.phone},
            )
            return
        except Exception as e:
            result.outcome = NOTIFY_FAILED
            result.error = str(e)
            logger.error(
                f"Unexpected error sending confirmation SMS: {e}",
                exc_info=True,
                extra={"request_id": request_id, "reference_id": result.reference_id},
            )
            return

        result.notification_sent = True

    def _append_log(self, result: ReconciliationResult, raw_text: str, request_id: Optional[str]) -> None:
        """Write the single audit entry for this attempt in its own transaction"""
        parsed = result.parsed
        try:
            self.logs.append(
                request_id=request_id,
                outcome=result.outcome,
                success=result.success,
                reference_id=parsed.reference_id if parsed else None,
                idempotency_guarded=result.idempotency_guarded,
                amount_cents=parsed.amount_cents if parsed else None,
                account_token=parsed.account_token if parsed else None,
                payer_phone=parsed.payer_phone if parsed else None,
                payer_name=parsed.payer_name if parsed else None,
                occurred_at=parsed.occurred_at if parsed else None,
                raw_text=raw_text if isinstance(raw_text, str) else None,
                affected_debts=[asdict(d) for d in result.debts],
                excess_cents=result.excess_cents,
                notification_sent=result.notification_sent,
                error=result.error,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                "Failed to write payment log",
                exc_info=True,
                extra={"request_id": request_id, "outcome": result.outcome, "reference_id": result.reference_id},
            )


def _describe_parse_error(error: ParseError) -> str:
    return f"{error.reason}: {error.field}" if error.field else error.reason

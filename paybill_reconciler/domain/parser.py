"""M-Pesa paybill notification parser - raw SMS text to ParsedPayment"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional
from zoneinfo import ZoneInfo

from paybill_reconciler.domain.models import ParsedPayment, ParseError, ParseOutcome
from paybill_reconciler.utils.date_utils import parse_mpesa_datetime

DEFAULT_TIMEZONE = ZoneInfo("Africa/Nairobi")

MISSING_REQUIRED_FIELD = "missing required field"
EMPTY_MESSAGE = "empty message"

# Forwarder apps prepend the sender line to the body
_ENVELOPE_PREFIX = re.compile(r"^From\s*:\s*MPESA\(\)\s*\n?")


@dataclass(frozen=True)
class ExtractionRule:
    """One named pattern; group 1 (and 2 for dates) carries the value"""

    name: str
    pattern: re.Pattern

    def search(self, text: str) -> Optional[re.Match]:
        return self.pattern.search(text)


REFERENCE_RULE = ExtractionRule("reference_id", re.compile(r"^([A-Z0-9]+)\s+Confirmed"))
AMOUNT_RULE = ExtractionRule("amount", re.compile(r"Ksh(\d[\d,]*(?:\.\d*)?)\s+received"))
ACCOUNT_RULE = ExtractionRule("account_token", re.compile(r"Account Number\s+(\d+)"))
PHONE_RULE = ExtractionRule("payer_phone", re.compile(r"(?<!\d)(\d{12})(?!\d)"))
SENDER_RULE = ExtractionRule("payer_name", re.compile(r"received from\s+([A-Z]+(?: [A-Z]+)*)\s+\d{12}"))
DATETIME_RULE = ExtractionRule(
    "occurred_at",
    re.compile(r"on\s+(\d{1,2}/\d{1,2}/\d{2})\s+at\s+(\d{1,2}:\d{2}\s+(?:AM|PM))"),
)
BALANCE_RULE = ExtractionRule("utility_balance", re.compile(r"New Utility balance is\s+Ksh(\d[\d,]*(?:\.\d+)?)"))


def to_cents(amount_text: str) -> Optional[int]:
    """'1,500.50' -> 150050. None if the text is not a number."""
    try:
        value = Decimal(amount_text.replace(",", ""))
    except InvalidOperation:
        return None
    return int((value * 100).to_integral_value())


def strip_envelope(raw: str) -> str:
    """Remove the forwarder's 'From : MPESA()' line and surrounding whitespace"""
    return _ENVELOPE_PREFIX.sub("", raw.strip(), count=1).strip()


def _group(rule: ExtractionRule, text: str) -> Optional[str]:
    match = rule.search(text)
    return match.group(1) if match else None


def parse_notification(raw: object, tz: ZoneInfo = DEFAULT_TIMEZONE) -> ParseOutcome:
    """
    Extract payment facts from one M-Pesa paybill confirmation.

    Amount and account number are required; a message missing either (or
    carrying a zero amount) yields ParseError rather than a partial result.
    Every other field is optional and defaults to None.

    Example input:
        RCK1234ABC Confirmed. on 12/3/24 at 10:15 AM Ksh1,000.00 received
        from JOHN DOE 254712345678. Account Number 12345 New Utility
        balance is Ksh5,000.00.
    """
    if not isinstance(raw, str) or not raw.strip():
        return ParseError(reason=EMPTY_MESSAGE)

    text = strip_envelope(raw)

    amount_text = _group(AMOUNT_RULE, text)
    amount_cents = to_cents(amount_text) if amount_text else None
    if not amount_cents or amount_cents <= 0:
        return ParseError(reason=MISSING_REQUIRED_FIELD, field=AMOUNT_RULE.name)

    account_token = _group(ACCOUNT_RULE, text)
    if not account_token:
        return ParseError(reason=MISSING_REQUIRED_FIELD, field=ACCOUNT_RULE.name)

    occurred_at = None
    date_match = DATETIME_RULE.search(text)
    if date_match:
        occurred_at = parse_mpesa_datetime(date_match.group(1), date_match.group(2), tz)

    sender = _group(SENDER_RULE, text)
    balance_text = _group(BALANCE_RULE, text)

    return ParsedPayment(
        amount_cents=amount_cents,
        account_token=account_token,
        reference_id=_group(REFERENCE_RULE, text),
        payer_phone=_group(PHONE_RULE, text),
        payer_name=sender.strip() if sender else None,
        occurred_at=occurred_at,
        utility_balance_cents=to_cents(balance_text) if balance_text else None,
    )

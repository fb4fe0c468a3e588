"""Ledger lookup - resolves an account token to a debt or a payer's debts"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from paybill_reconciler.infrastructure.database.models import Debt
from paybill_reconciler.infrastructure.database.repositories import DebtRepository, PayerAccountRepository
from paybill_reconciler.utils.phone_utils import normalize_phone


@dataclass
class SingleDebtMatch:
    """Account token is a debt code"""

    debt: Debt


@dataclass
class PayerDebtSet:
    """Account token (or payer phone) identifies a payer; debts oldest first"""

    phone: str
    debts: List[Debt] = field(default_factory=list)


@dataclass
class NoMatch:
    reason: str


LookupResult = Union[SingleDebtMatch, PayerDebtSet, NoMatch]

NO_DEBT_OR_PAYER = "No matching debt or payer account found"
PAYER_WITHOUT_DEBTS = "Payer account has no debts on record"

_EPOCH = datetime.min


class LedgerLookup:
    """Read-only resolution of payment targets"""

    def __init__(self, debts: DebtRepository, payers: PayerAccountRepository, country_code: str = "254"):
        self.debts = debts
        self.payers = payers
        self.country_code = country_code

    def resolve(self, account_token: str, payer_phone: Optional[str] = None) -> LookupResult:
        """
        Find what a payment should be applied to.

        Order:
        1. Debt whose code equals the account token
        2. Payer account keyed by the normalized account token, then by the
           normalized payer phone
        3. NoMatch
        """
        debt = self.debts.get_by_code(account_token)
        if debt is not None:
            return SingleDebtMatch(debt=debt)

        payer_found = False
        for candidate in self._phone_candidates(account_token, payer_phone):
            payer = self.payers.get_by_phone(candidate)
            if payer is None:
                continue
            payer_found = True
            debts = self._load_ordered(payer.debt_codes or [])
            if debts:
                return PayerDebtSet(phone=payer.phone, debts=debts)

        return NoMatch(reason=PAYER_WITHOUT_DEBTS if payer_found else NO_DEBT_OR_PAYER)

    def _phone_candidates(self, account_token: str, payer_phone: Optional[str]) -> List[str]:
        candidates = []
        for raw in (account_token, payer_phone):
            phone = normalize_phone(raw, self.country_code)
            if phone and phone not in candidates:
                candidates.append(phone)
        return candidates

    def _load_ordered(self, codes: List[str]) -> List[Debt]:
        """Load debts in one query, drop missing ones, oldest first"""
        position = {code: i for i, code in reversed(list(enumerate(codes)))}
        found = self.debts.get_by_codes(codes)
        return sorted(
            found,
            key=lambda d: (_naive(d.created_at) or _EPOCH, position.get(d.code, len(codes))),
        )


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes, Postgres aware ones
    if value is None:
        return None
    return value.replace(tzinfo=None)

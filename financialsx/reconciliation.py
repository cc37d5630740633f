"""
Bank Reconciliation Module

Work-in-progress bank reconciliations. A user builds one draft per company
and bank account (statement figures plus the checks ticked as cleared), saves
it as often as needed and finally commits it. Committed reconciliations form
the account's history. Everything lives in application storage; CHECKREC.DBF
is never written.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .currency import Currency, sum_currency
from .dbfmap import to_number, to_str
from .exceptions import ReconciliationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


logger = get_logger("financialsx.reconciliation")

RECONCILIATIONS_TABLE = "reconciliations"
DEFAULT_HISTORY_LIMIT = 50

MONEY_FIELDS = ("beginning_balance", "ending_balance", "statement_balance",
                "statement_credits", "statement_debits", "cleared_total")


class ReconciliationStatus(Enum):
    DRAFT = "draft"
    COMMITTED = "committed"


def _money(value: Any) -> Currency:
    if value is None:
        return Currency.zero()
    if isinstance(value, str):
        return Currency.parse(value)
    return Currency(value)


def _selected_check(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise one ticked check; accepts snake_case or the camelCase the desktop client sends"""
    def pick(*keys):
        for key in keys:
            if key in data:
                return data[key]
        return None

    return {
        "cidchec": to_str(pick("cidchec")),
        "check_number": to_str(pick("check_number", "checkNumber")),
        "amount": _money(pick("amount")).to_number(),
        "payee": to_str(pick("payee")),
        "check_date": to_str(pick("check_date", "checkDate")),
        "row_index": int(to_number(pick("row_index", "rowIndex"))),
    }


@dataclass
class Reconciliation(StorageRecord):
    """One reconciliation of a bank account against a statement"""
    company: str
    account_number: str
    statement_date: str
    beginning_balance: Decimal = Decimal("0.00")
    ending_balance: Decimal = Decimal("0.00")
    statement_balance: Decimal = Decimal("0.00")
    statement_credits: Decimal = Decimal("0.00")
    statement_debits: Decimal = Decimal("0.00")
    cleared_total: Decimal = Decimal("0.00")
    selected_checks: List[Dict[str, Any]] = field(default_factory=list)
    status: str = ReconciliationStatus.DRAFT.value
    created_by: Optional[str] = None
    committed_by: Optional[str] = None
    committed_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Reconciliation':
        data = dict(data)
        for key in MONEY_FIELDS:
            if key in data:
                data[key] = Decimal(str(data[key]))
        if isinstance(data.get('committed_at'), str):
            data['committed_at'] = datetime.fromisoformat(data['committed_at'])
        return super().from_dict(data)

    @property
    def difference(self) -> Currency:
        """Statement balance minus the computed ending balance"""
        return Currency(self.statement_balance) - Currency(self.ending_balance)

    def to_public(self) -> Dict[str, Any]:
        public = {
            "id": self.id,
            "company": self.company,
            "account_number": self.account_number,
            "statement_date": self.statement_date,
            "selected_checks": self.selected_checks,
            "cleared_count": len(self.selected_checks),
            "difference": self.difference.to_number(),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "committed_by": self.committed_by,
            "committed_at": self.committed_at.isoformat() if self.committed_at else None,
        }
        for key in MONEY_FIELDS:
            public[key] = Currency(getattr(self, key)).to_number()
        return public


class ReconciliationService:
    """Draft, commit and history of bank reconciliations"""

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit = audit_trail

    @staticmethod
    def _key(company: str, account_number: str) -> Dict[str, str]:
        company = (company or "").strip()
        account_number = (account_number or "").strip()
        if not company:
            raise ReconciliationError("Company name is required")
        if not account_number:
            raise ReconciliationError("Account number is required")
        return {"company": company, "account_number": account_number}

    def _save(self, reconciliation: Reconciliation) -> None:
        self.storage.save(RECONCILIATIONS_TABLE, reconciliation.id, reconciliation.to_dict())

    def save_draft(self, company: str, account_number: str, statement_date: str,
                   statement_balance: Any = 0, statement_credits: Any = 0,
                   statement_debits: Any = 0, beginning_balance: Any = 0,
                   selected_checks: Optional[List[Dict[str, Any]]] = None,
                   user_id: Optional[str] = None) -> Reconciliation:
        """
        Create or replace the account's draft.

        The ending balance is beginning + credits - debits. Only one draft
        exists per company and account; saving again updates it in place.

        Raises:
            ReconciliationError: Blank company/account or a statement date
                that is not YYYY-MM-DD
        """
        key = self._key(company, account_number)
        try:
            parsed = datetime.strptime((statement_date or "").strip(), "%Y-%m-%d").date()
        except ValueError:
            raise ReconciliationError(f"Invalid statement date format: {statement_date!r}, expected YYYY-MM-DD")

        beginning = _money(beginning_balance)
        credits = _money(statement_credits)
        debits = _money(statement_debits)
        checks = [_selected_check(c) for c in (selected_checks or [])]

        now = datetime.now(timezone.utc)
        existing = self.get_draft(key["company"], key["account_number"])
        draft = Reconciliation(
            id=existing.id if existing else str(uuid.uuid4()),
            created_at=existing.created_at if existing else now,
            updated_at=now,
            company=key["company"],
            account_number=key["account_number"],
            statement_date=parsed.isoformat(),
            beginning_balance=beginning.amount,
            ending_balance=(beginning + credits - debits).amount,
            statement_balance=_money(statement_balance).amount,
            statement_credits=credits.amount,
            statement_debits=debits.amount,
            cleared_total=sum_currency(c["amount"] for c in checks).amount,
            selected_checks=checks,
            created_by=existing.created_by if existing else user_id,
        )
        self._save(draft)

        if self.audit:
            self.audit.log_event(AuditEventType.RECONCILIATION_DRAFT_SAVED, "reconciliation", draft.id,
                                 {"account_number": draft.account_number,
                                  "statement_date": draft.statement_date,
                                  "cleared_count": len(checks)},
                                 user_id=user_id, company=draft.company)
        log_action(logger, "info", f"Saved reconciliation draft for account {draft.account_number}",
                   user_id=user_id, action="save_reconciliation_draft",
                   resource=draft.account_number, company=draft.company)
        return draft

    def get_draft(self, company: str, account_number: str) -> Optional[Reconciliation]:
        filters = dict(self._key(company, account_number), status=ReconciliationStatus.DRAFT.value)
        data = self.storage.find_one(RECONCILIATIONS_TABLE, filters)
        return Reconciliation.from_dict(data) if data else None

    def delete_draft(self, company: str, account_number: str,
                     user_id: Optional[str] = None) -> bool:
        draft = self.get_draft(company, account_number)
        if draft is None:
            return False
        self.storage.delete(RECONCILIATIONS_TABLE, draft.id)
        if self.audit:
            self.audit.log_event(AuditEventType.RECONCILIATION_DRAFT_DELETED, "reconciliation", draft.id,
                                 {"account_number": draft.account_number},
                                 user_id=user_id, company=draft.company)
        return True

    def commit_reconciliation(self, company: str, account_number: str,
                              user_id: Optional[str] = None) -> Reconciliation:
        """
        Turn the account's draft into a committed reconciliation.

        Raises:
            ReconciliationError: No draft exists for the account
        """
        draft = self.get_draft(company, account_number)
        if draft is None:
            raise ReconciliationError(f"No draft reconciliation for account {account_number.strip()}")

        now = datetime.now(timezone.utc)
        draft.status = ReconciliationStatus.COMMITTED.value
        draft.committed_at = now
        draft.committed_by = user_id
        draft.updated_at = now
        self._save(draft)

        if self.audit:
            self.audit.log_event(AuditEventType.RECONCILIATION_COMMITTED, "reconciliation", draft.id,
                                 {"account_number": draft.account_number,
                                  "statement_date": draft.statement_date,
                                  "ending_balance": draft.ending_balance,
                                  "statement_balance": draft.statement_balance},
                                 user_id=user_id, company=draft.company)
        log_action(logger, "info", f"Committed reconciliation {draft.statement_date} "
                                   f"for account {draft.account_number}",
                   user_id=user_id, action="commit_reconciliation",
                   resource=draft.account_number, company=draft.company)
        return draft

    def get_history(self, company: str, account_number: str,
                    limit: int = DEFAULT_HISTORY_LIMIT) -> List[Reconciliation]:
        """Committed reconciliations, newest statement date first"""
        if limit <= 0:
            limit = DEFAULT_HISTORY_LIMIT
        key = self._key(company, account_number)
        records = [Reconciliation.from_dict(d)
                   for d in self.storage.find(RECONCILIATIONS_TABLE, key)
                   if d.get("status") != ReconciliationStatus.DRAFT.value]
        records.sort(key=lambda r: (r.statement_date, r.committed_at or r.created_at), reverse=True)
        return records[:limit]

    def get_last_committed(self, company: str, account_number: str) -> Optional[Reconciliation]:
        history = self.get_history(company, account_number, limit=1)
        return history[0] if history else None

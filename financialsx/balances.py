"""
Bank Balance Cache Module

Computing a bank balance means scanning GLMASTER and CHECKS, which is slow on
large installations. The cache keeps the last computed figures per company and
bank account in application storage, plus a history row for every refresh, so
dashboards can show balances immediately and flag the stale ones.

Bank balance = GL balance + uncleared checks - uncleared deposits
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .banking import BankingService
from .companies import CompanyService
from .currency import ASSET, Currency, calculate_gl_balance
from .dbfmap import to_number, to_str
from .exceptions import CompanyError
from .logging_config import get_logger, log_action
from .schema import (CHECKS_TABLE, COA_COLUMNS, COA_TABLE, GLMASTER_TABLE,
                     check_views, gl_views, resolve_columns)
from .storage import StorageInterface, StorageRecord


logger = get_logger("financialsx.balances")

BALANCES_TABLE = "account_balances"
HISTORY_TABLE = "balance_history"
DEFAULT_HISTORY_LIMIT = 50

# Age in hours after which a figure is "aging" and then "stale"
GL_AGING_HOURS = 4
GL_STALE_HOURS = 24
CHECKS_AGING_HOURS = 1
CHECKS_STALE_HOURS = 4

DEPOSIT_ENTRY_TYPE = "D"


def _decimal_fields(data: Dict[str, Any], keys) -> Dict[str, Any]:
    for key in keys:
        if data.get(key) is not None:
            data[key] = Decimal(str(data[key]))
    return data


def _money(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else Currency(value).to_number()


def freshness(age_hours: float, aging: float, stale: float) -> str:
    if age_hours > stale:
        return "stale"
    if age_hours > aging:
        return "aging"
    return "fresh"


@dataclass
class CachedBalance(StorageRecord):
    """Last computed balance figures of one bank account"""
    company: str
    account_number: str
    account_name: str = ""
    account_type: int = ASSET
    gl_balance: Decimal = Decimal("0.00")
    gl_record_count: int = 0
    gl_last_updated: Optional[datetime] = None
    uncleared_checks: Decimal = Decimal("0.00")
    uncleared_deposits: Decimal = Decimal("0.00")
    check_count: int = 0
    deposit_count: int = 0
    checks_last_updated: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CachedBalance':
        data = _decimal_fields(dict(data), ("gl_balance", "uncleared_checks", "uncleared_deposits"))
        for key in ("gl_last_updated", "checks_last_updated"):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return super().from_dict(data)

    @property
    def outstanding_total(self) -> Currency:
        """Amount to add to the GL balance to reach the bank balance"""
        return Currency(self.uncleared_checks) - Currency(self.uncleared_deposits)

    @property
    def bank_balance(self) -> Currency:
        return Currency(self.gl_balance) + self.outstanding_total

    def to_public(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        gl_age = (now - self.gl_last_updated).total_seconds() / 3600 if self.gl_last_updated else None
        checks_age = ((now - self.checks_last_updated).total_seconds() / 3600
                      if self.checks_last_updated else None)
        return {
            "company": self.company,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "gl_balance": _money(self.gl_balance),
            "gl_record_count": self.gl_record_count,
            "gl_last_updated": self.gl_last_updated.isoformat() if self.gl_last_updated else None,
            "uncleared_checks": _money(self.uncleared_checks),
            "uncleared_deposits": _money(self.uncleared_deposits),
            "check_count": self.check_count,
            "deposit_count": self.deposit_count,
            "outstanding_total": self.outstanding_total.to_number(),
            "outstanding_count": self.check_count + self.deposit_count,
            "checks_last_updated": (self.checks_last_updated.isoformat()
                                    if self.checks_last_updated else None),
            "bank_balance": self.bank_balance.to_number(),
            "gl_age_hours": round(gl_age, 2) if gl_age is not None else None,
            "checks_age_hours": round(checks_age, 2) if checks_age is not None else None,
            "gl_freshness": freshness(gl_age, GL_AGING_HOURS, GL_STALE_HOURS)
            if gl_age is not None else "stale",
            "checks_freshness": freshness(checks_age, CHECKS_AGING_HOURS, CHECKS_STALE_HOURS)
            if checks_age is not None else "stale",
        }


@dataclass
class BalanceChange(StorageRecord):
    """History row written each time a cached balance is refreshed"""
    company: str
    account_number: str
    change_type: str = "refresh"
    old_gl_balance: Optional[Decimal] = None
    new_gl_balance: Optional[Decimal] = None
    old_outstanding_total: Optional[Decimal] = None
    new_outstanding_total: Optional[Decimal] = None
    old_bank_balance: Optional[Decimal] = None
    new_bank_balance: Optional[Decimal] = None
    change_reason: str = ""
    changed_by: Optional[str] = None

    MONEY_FIELDS = ("old_gl_balance", "new_gl_balance", "old_outstanding_total",
                    "new_outstanding_total", "old_bank_balance", "new_bank_balance")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BalanceChange':
        return super().from_dict(_decimal_fields(dict(data), cls.MONEY_FIELDS))

    def to_public(self) -> Dict[str, Any]:
        public = {
            "id": self.id,
            "company": self.company,
            "account_number": self.account_number,
            "change_type": self.change_type,
            "change_reason": self.change_reason,
            "changed_by": self.changed_by,
            "change_timestamp": self.created_at.isoformat(),
        }
        for key in self.MONEY_FIELDS:
            public[key] = _money(getattr(self, key))
        return public


class BalanceCache:
    """Cached GL, outstanding and bank balances per bank account"""

    def __init__(self, storage: StorageInterface, companies: CompanyService,
                 banking: Optional[BankingService] = None):
        self.storage = storage
        self.companies = companies
        self.banking = banking or BankingService(companies)

    @staticmethod
    def _cache_id(company: str, account_number: str) -> str:
        return f"{company}|{account_number}"

    def get_cached_balance(self, company: str, account_number: str) -> Optional[CachedBalance]:
        data = self.storage.load(BALANCES_TABLE, self._cache_id(company.strip(), account_number.strip()))
        return CachedBalance.from_dict(data) if data else None

    def get_cached_balances(self, company: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Every cached account of a company by account number, with age and freshness"""
        cached = [CachedBalance.from_dict(d)
                  for d in self.storage.find(BALANCES_TABLE, {"company": company.strip()})]
        cached.sort(key=lambda b: b.account_number)
        return [b.to_public(now) for b in cached]

    def _scan(self, company: str, accounts: List[str]) -> Dict[str, Dict[str, Any]]:
        """One pass over COA, GLMASTER and CHECKS for the given accounts"""
        wanted = set(accounts)
        figures = {a: {"name": "", "type": ASSET, "in_coa": False,
                       "debits": Currency.zero(), "credits": Currency.zero(), "gl_rows": 0,
                       "checks": Currency.zero(), "check_count": 0,
                       "deposits": Currency.zero(), "deposit_count": 0} for a in accounts}

        coa = self.companies.load_table(company, COA_TABLE)
        cols = resolve_columns(coa, COA_COLUMNS)
        for record in coa.records:
            number = to_str(record.get(cols["number"]))
            if number in wanted:
                figures[number]["in_coa"] = True
                figures[number]["name"] = to_str(record.get(cols["description"]))
                if cols["type"] and to_number(record.get(cols["type"])):
                    figures[number]["type"] = int(to_number(record.get(cols["type"])))

        gl = self.companies.try_load_table(company, GLMASTER_TABLE)
        for entry in gl_views(gl) if gl else []:
            if entry.account in wanted:
                item = figures[entry.account]
                item["debits"] += entry.debit
                item["credits"] += entry.credit
                item["gl_rows"] += 1

        checks = self.companies.try_load_table(company, CHECKS_TABLE)
        for check in check_views(checks) if checks else []:
            if check.account not in wanted or not check.outstanding:
                continue
            item = figures[check.account]
            if check.entry_type.upper() == DEPOSIT_ENTRY_TYPE:
                item["deposits"] += check.amount
                item["deposit_count"] += 1
            else:
                item["checks"] += check.amount
                item["check_count"] += 1
        return figures

    def _store(self, company: str, account_number: str, item: Dict[str, Any],
               user_id: Optional[str]) -> CachedBalance:
        now = datetime.now(timezone.utc)
        old = self.get_cached_balance(company, account_number)
        balance = CachedBalance(
            id=self._cache_id(company, account_number),
            created_at=old.created_at if old else now,
            updated_at=now,
            company=company,
            account_number=account_number,
            account_name=item["name"],
            account_type=item["type"],
            gl_balance=calculate_gl_balance(item["debits"], item["credits"], item["type"]).amount,
            gl_record_count=item["gl_rows"],
            gl_last_updated=now,
            uncleared_checks=item["checks"].amount,
            uncleared_deposits=item["deposits"].amount,
            check_count=item["check_count"],
            deposit_count=item["deposit_count"],
            checks_last_updated=now,
        )
        change = BalanceChange(
            id=str(uuid.uuid4()), created_at=now, updated_at=now,
            company=company,
            account_number=account_number,
            old_gl_balance=old.gl_balance if old else None,
            new_gl_balance=balance.gl_balance,
            old_outstanding_total=old.outstanding_total.amount if old else None,
            new_outstanding_total=balance.outstanding_total.amount,
            old_bank_balance=old.bank_balance.amount if old else None,
            new_bank_balance=balance.bank_balance.amount,
            change_reason="Balance refresh from GLMASTER and CHECKS",
            changed_by=user_id,
        )
        with self.storage.atomic():
            self.storage.save(BALANCES_TABLE, balance.id, balance.to_dict())
            self.storage.save(HISTORY_TABLE, change.id, change.to_dict())
        return balance

    def refresh_account_balance(self, company: str, account_number: str,
                                user_id: Optional[str] = None) -> CachedBalance:
        """
        Recompute one account from the DBF files and store it.

        The GL balance follows the account's normal side from COA.DBF
        (debit-normal when the type is missing).

        Raises:
            CompanyError: The account is in neither COA.DBF nor GLMASTER.DBF
        """
        company = company.strip()
        account_number = (account_number or "").strip()
        if not account_number:
            raise CompanyError("Account number is required")
        item = self._scan(company, [account_number])[account_number]
        if not item["in_coa"] and not item["gl_rows"]:
            raise CompanyError(f"Account {account_number} not found for company {company}")

        balance = self._store(company, account_number, item, user_id)
        log_action(logger, "info", f"Refreshed cached balance of {account_number}: "
                                   f"bank {balance.bank_balance.format()}",
                   user_id=user_id, action="refresh_account_balance",
                   resource=account_number, company=company)
        return balance

    def refresh_cached_balances(self, company: str, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Refresh every bank account of the company in one scan"""
        company = company.strip()
        accounts = [a["account_number"] for a in self.banking.get_bank_accounts(company)]
        figures = self._scan(company, accounts)
        balances = [self._store(company, number, figures[number], user_id) for number in accounts]
        logger.info(f"Refreshed {len(balances)} cached bank balances for {company}")
        return [b.to_public() for b in balances]

    def get_balance_history(self, company: str, account_number: str,
                            limit: int = DEFAULT_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Balance changes of one account, newest first"""
        if limit <= 0:
            limit = DEFAULT_HISTORY_LIMIT
        changes = [BalanceChange.from_dict(d)
                   for d in self.storage.find(HISTORY_TABLE, {"company": company.strip(),
                                                              "account_number": account_number.strip()})]
        # Same-instant refreshes keep their reversed insertion order
        changes = sorted(reversed(changes), key=lambda c: c.created_at, reverse=True)
        return [c.to_public() for c in changes[:limit]]
